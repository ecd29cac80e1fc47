"""
Vesting engine instrumentation.

Provides Prometheus metrics that track stream creation, claims and the
amount held in escrow, with helper functions that are safe to call from the
create/claim path.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

streams_created_counter = Counter(
    "tokenvest_streams_created_total", "Total vesting streams created", ["asset", "admission"]
)

tokens_claimed_counter = Counter(
    "tokenvest_tokens_claimed_total", "Total units released to beneficiaries", ["asset"]
)

streams_completed_counter = Counter(
    "tokenvest_streams_completed_total", "Total vesting streams claimed in full", ["asset"]
)

operations_rejected_counter = Counter(
    "tokenvest_operations_rejected_total",
    "Total create/claim operations rejected",
    ["operation", "reason"],
)

escrow_locked_gauge = Gauge(
    "tokenvest_escrow_locked", "Units committed to live streams and held in escrow", ["asset"]
)


def record_stream_created(asset: str, admission: str) -> None:
    streams_created_counter.labels(asset=asset, admission=admission).inc()


def record_claim(asset: str, amount: int, completed: bool) -> None:
    """Increment the claim counters for the specified asset."""
    if amount <= 0:
        return

    tokens_claimed_counter.labels(asset=asset).inc(amount)
    if completed:
        streams_completed_counter.labels(asset=asset).inc()


def record_rejection(operation: str, error: Exception) -> None:
    operations_rejected_counter.labels(operation=operation, reason=type(error).__name__).inc()


def update_escrow_locked(asset: str, locked: int) -> None:
    escrow_locked_gauge.labels(asset=asset).set(locked)
