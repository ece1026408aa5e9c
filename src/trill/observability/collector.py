"""Response collector — records what reactive responses do.

Pass one collector to every ``ReactiveResponse`` of an application to get a
single queryable log of emitted operations, finalizations and stream
lifecycles.

Thread Safety:
    Delegates to ``EventLog``, which is internally locked.

"""

from __future__ import annotations

from trill.observability.events import (
    OperationEmitted,
    ResponseFinalized,
    StreamCompleted,
    StreamTerminated,
    now_ns,
)
from trill.observability.log import EventLog


class ResponseCollector:
    """Records reactive response events into an ``EventLog``.

    Args:
        log: The EventLog to store events in.
        record_operations: Also record one event per emitted block.

    """

    __slots__ = ("_log", "_record_operations")

    def __init__(self, log: EventLog | None = None, *, record_operations: bool = True) -> None:
        self._log = log if log is not None else EventLog()
        self._record_operations = record_operations

    @property
    def log(self) -> EventLog:
        return self._log

    def record_operation(self, path: str, event: str, *, streaming: bool) -> None:
        if not self._record_operations:
            return
        self._log.append(
            OperationEmitted(path=path, event=event, streaming=streaming, timestamp_ns=now_ns())
        )

    def record_finalized(self, path: str, outcome: str, *, blocks: int = 0) -> None:
        self._log.append(
            ResponseFinalized(path=path, outcome=outcome, blocks=blocks, timestamp_ns=now_ns())  # type: ignore[arg-type]
        )

    def record_terminated(self, path: str, reason: str, detail: str = "") -> None:
        self._log.append(
            StreamTerminated(path=path, reason=reason, detail=detail, timestamp_ns=now_ns())
        )

    def record_completed(self, path: str, *, blocks_sent: int, duration_ms: float) -> None:
        self._log.append(
            StreamCompleted(
                path=path,
                blocks_sent=blocks_sent,
                duration_ms=duration_ms,
                timestamp_ns=now_ns(),
            )
        )
