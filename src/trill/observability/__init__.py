"""Observability for reactive responses.

All events are frozen dataclasses with nanosecond timestamps, safe for
concurrent production from worker threads.

Quick Start:
    >>> from trill.observability import EventLog, ResponseCollector
    >>> collector = ResponseCollector(EventLog())
    >>> # ReactiveResponse(request, collector=collector)
    >>> # collector.log.query(event_type=ResponseFinalized)

"""

from trill.observability.collector import ResponseCollector
from trill.observability.events import (
    OperationEmitted,
    ResponseFinalized,
    StreamCompleted,
    StreamTerminated,
    TrillEvent,
    now_ns,
)
from trill.observability.log import EventLog

__all__ = [
    "EventLog",
    "OperationEmitted",
    "ResponseCollector",
    "ResponseFinalized",
    "StreamCompleted",
    "StreamTerminated",
    "TrillEvent",
    "now_ns",
]
