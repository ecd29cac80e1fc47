"""
tokenvest - Vesting Math

Pure unlock-schedule arithmetic. Nothing here stores state or reads a clock:
the caller always passes the current instant explicitly.

Two cliff policies are supported and never mixed within one registry:

- ``CliffPolicy.DELAY``: the cliff is a time delay. Nothing unlocks before
  ``start_time + cliff``; the full amount then unlocks linearly over
  ``duration``.
- ``CliffPolicy.IMMEDIATE``: the cliff is an amount. ``cliff`` units unlock
  at ``start_time``; the remainder unlocks linearly over ``duration``.

All arithmetic is integer-only and rounds down, so the full amount is only
guaranteed once ``now >= unlock_end_time``.
"""

from __future__ import annotations

from enum import Enum


class CliffPolicy(Enum):
    """How the cliff parameter of a stream is interpreted."""

    DELAY = "delay"
    IMMEDIATE = "immediate"

    @classmethod
    def parse(cls, value: "CliffPolicy | str") -> "CliffPolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            choices = ", ".join(p.value for p in cls)
            raise ValueError(f"Unknown cliff policy {value!r} (expected one of: {choices})") from exc


def unlock_begin_time(start_time: int, cliff: int, policy: CliffPolicy) -> int:
    """Instant at which the cliff baseline becomes available."""
    if policy is CliffPolicy.DELAY:
        return start_time + cliff
    return start_time


def unlock_end_time(start_time: int, cliff: int, duration: int, policy: CliffPolicy) -> int:
    """Instant from which the whole amount is unlocked."""
    return unlock_begin_time(start_time, cliff, policy) + duration


def cliff_baseline(cliff: int, policy: CliffPolicy) -> int:
    """Amount unlocked at ``unlock_begin_time`` before any linear release."""
    if policy is CliffPolicy.IMMEDIATE:
        return cliff
    return 0


def unlocked_amount(
    total_amount: int,
    start_time: int,
    cliff: int,
    duration: int,
    now: int,
    policy: CliffPolicy = CliffPolicy.DELAY,
) -> int:
    """
    Calculate how much of a stream has unlocked at ``now``.

    Args:
        total_amount: Total units committed to the stream
        start_time: Instant after which unlocking begins
        cliff: Cliff duration (DELAY) or cliff amount (IMMEDIATE)
        duration: Length of the linear unlock window
        now: Current instant, supplied by the caller
        policy: Cliff interpretation

    Returns:
        Unlocked amount, between 0 and ``total_amount`` inclusive
    """
    begin = unlock_begin_time(start_time, cliff, policy)
    if now < begin:
        return 0

    end = begin + duration
    if now >= end:
        return total_amount

    baseline = cliff_baseline(cliff, policy)
    elapsed = now - begin
    return baseline + ((total_amount - baseline) * elapsed) // duration


def claimable_amount(
    total_amount: int,
    claimed_amount: int,
    start_time: int,
    cliff: int,
    duration: int,
    now: int,
    policy: CliffPolicy = CliffPolicy.DELAY,
) -> int:
    """Unlocked amount minus what has already been claimed (never negative)."""
    unlocked = unlocked_amount(total_amount, start_time, cliff, duration, now, policy)
    return max(0, unlocked - claimed_amount)
