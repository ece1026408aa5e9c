"""Event model for reactive response observability.

All events are frozen dataclasses with:
- ``timestamp_ns``: Monotonic nanosecond timestamp
- Descriptive fields for the specific event type

Thread Safety:
    All events are frozen (immutable) and safe to share across threads.

"""

import time
from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True, slots=True)
class OperationEmitted:
    """A patch operation was buffered or sent.

    Attributes:
        path: Request path of the response.
        event: SSE event type of the block.
        streaming: True if the block went straight to the transport.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    path: str
    event: str
    streaming: bool
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class ResponseFinalized:
    """A response was finalized.

    Attributes:
        path: Request path.
        outcome: Which finalization branch was taken.
        blocks: Number of buffered blocks in the batch payload (0 otherwise).
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    path: str
    outcome: Literal["batch", "stream", "fallback", "no_content", "redirect"]
    blocks: int
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class StreamTerminated:
    """A stream ended early through a terminal event.

    Attributes:
        path: Request path.
        reason: ``redirect``, ``dump``, ``document`` or ``error``.
        detail: Redirect URL or exception type name.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    path: str
    reason: str
    detail: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class StreamCompleted:
    """A streaming callback returned (or terminated) and the transport closed."""

    path: str
    blocks_sent: int
    duration_ms: float
    timestamp_ns: int


type TrillEvent = OperationEmitted | ResponseFinalized | StreamTerminated | StreamCompleted


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()
