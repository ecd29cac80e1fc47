"""
Tests for event sinks.
"""

import logging

from tokenvest.core.events import (
    STREAM_CREATED,
    TOKENS_CLAIMED,
    EventSink,
    InMemoryEventSink,
    LoggingEventSink,
    VestingEvent,
)
from tokenvest.core.structured_logger import StructuredLogger


def test_sinks_satisfy_protocol(test_logger):
    assert isinstance(InMemoryEventSink(), EventSink)
    assert isinstance(LoggingEventSink(test_logger), EventSink)


def test_in_memory_sink_filters():
    sink = InMemoryEventSink()
    sink.record(VestingEvent(STREAM_CREATED, "0xa", "0xalice", 100, timestamp=1))
    sink.record(VestingEvent(TOKENS_CLAIMED, "0xa", "0xalice", 10, timestamp=2))
    sink.record(VestingEvent(STREAM_CREATED, "0xb", "0xbob", 5, timestamp=3))

    assert [e.stream_id for e in sink.of_type(STREAM_CREATED)] == ["0xa", "0xb"]
    assert [e.event_type for e in sink.for_stream("0xa")] == [STREAM_CREATED, TOKENS_CLAIMED]


def test_logging_sink_writes_and_forwards(caplog):
    logger = StructuredLogger("tokenvest.tests.events")
    forward = InMemoryEventSink()
    sink = LoggingEventSink(logger, forward_to=forward)
    event = VestingEvent(
        TOKENS_CLAIMED, "0xstream", "0xalice", 25, timestamp=7, data={"claimed_amount": 25}
    )

    with caplog.at_level(logging.INFO, logger="tokenvest.tests.events"):
        sink.record(event)

    fields = caplog.records[-1].extra_fields
    assert fields["event"] == "stream.TokensClaimed"
    assert fields["amount"] == 25
    assert fields["at"] == 7
    assert fields["claimed_amount"] == 25
    assert forward.events == [event]


def test_event_to_dict():
    event = VestingEvent(STREAM_CREATED, "0xa", "0xalice", 100, timestamp=1, data={"cliff": 5})
    assert event.to_dict()["data"] == {"cliff": 5}
