"""Event log — queryable, thread-safe event store.

Keeps a bounded ring buffer of ``TrillEvent`` objects for inspection.

Thread Safety:
    All methods are protected by a ``threading.Lock``. Streaming callbacks
    running in worker threads may record concurrently with the event loop.

"""

import threading
from collections import deque
from typing import Any

from trill.observability.events import TrillEvent


class EventLog:
    """Bounded event store with query support.

    When the buffer is full the oldest events are discarded.

    Args:
        max_events: Maximum number of events to retain.

    """

    __slots__ = ("_events", "_lock", "_max_events")

    def __init__(self, max_events: int = 10_000) -> None:
        self._max_events = max_events
        self._events: deque[TrillEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def append(self, event: TrillEvent) -> None:
        with self._lock:
            self._events.append(event)

    def query(
        self,
        *,
        event_type: type | None = None,
        since_ns: int = 0,
        path: str | None = None,
        limit: int = 100,
    ) -> list[TrillEvent]:
        """Query events, most recent first.

        Args:
            event_type: Only return events of this type.
            since_ns: Only return events at or after this timestamp.
            path: Only return events whose request path contains this string.
            limit: Maximum number of events to return.

        """
        with self._lock:
            snapshot = list(self._events)

        results: list[TrillEvent] = []
        for event in reversed(snapshot):
            if len(results) >= limit:
                break
            if event_type is not None and not isinstance(event, event_type):
                continue
            if since_ns and event.timestamp_ns < since_ns:
                continue
            if path is not None and path not in event.path:
                continue
            results.append(event)
        return results

    def recent(self, n: int = 20) -> list[TrillEvent]:
        """Return the N most recent events, oldest first."""
        with self._lock:
            items = list(self._events)
        return items[-n:]

    def clear(self) -> int:
        """Clear all events and return the count that was cleared."""
        with self._lock:
            count = len(self._events)
            self._events.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            events = list(self._events)

        by_type: dict[str, int] = {}
        for event in events:
            name = type(event).__name__
            by_type[name] = by_type.get(name, 0) + 1

        return {"total": len(events), "max_events": self._max_events, "by_type": by_type}
