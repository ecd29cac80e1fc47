"""
Audit facts emitted by the vesting engine.

The registry reports every committed lifecycle change to an ``EventSink``.
Sinks only observe: they run after the state change and fund movement are
both applied.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .structured_logger import StructuredLogger

STREAM_CREATED = "StreamCreated"
TOKENS_CLAIMED = "TokensClaimed"
STREAM_COMPLETED = "StreamCompleted"


@dataclass
class VestingEvent:
    """Represents a committed stream lifecycle fact."""

    event_type: str
    stream_id: str
    beneficiary: str
    amount: int = 0
    timestamp: int = field(default_factory=lambda: int(time.time()))
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@runtime_checkable
class EventSink(Protocol):
    def record(self, event: VestingEvent) -> None:
        ...


class InMemoryEventSink:
    """Keeps every event in order; useful for inspection and tests."""

    def __init__(self) -> None:
        self.events: List[VestingEvent] = []

    def record(self, event: VestingEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[VestingEvent]:
        return [event for event in self.events if event.event_type == event_type]

    def for_stream(self, stream_id: str) -> List[VestingEvent]:
        return [event for event in self.events if event.stream_id == stream_id]


class LoggingEventSink:
    """Writes events to the structured log, optionally forwarding to another sink."""

    def __init__(self, logger: StructuredLogger, forward_to: Optional[EventSink] = None):
        self.logger = logger
        self.forward_to = forward_to

    def record(self, event: VestingEvent) -> None:
        self.logger.stream_event(
            event.event_type,
            event.stream_id,
            event.beneficiary,
            amount=event.amount,
            at=event.timestamp,
            **event.data,
        )
        if self.forward_to is not None:
            self.forward_to.record(event)
