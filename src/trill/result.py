"""Finalized response values.

``ReactiveResponse.finalize()`` returns one of these (or a fallback value
verbatim). They are framework-neutral; ``trill.integration.chirp`` turns
them into Chirp responses.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field

from trill._errors import UsageError
from trill.protocol.events import Block


@dataclass(frozen=True, slots=True)
class SSEPayload:
    """A batch response: the whole event stream as one body."""

    body: str
    headers: Mapping[str, str] = field(default_factory=dict)
    status: int = 200

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "text/event-stream")


class _OpenOnce:
    """Opener that refuses a second call."""

    __slots__ = ("_factory", "_opened")

    def __init__(self, factory: Callable[[], AsyncIterator[Block]]) -> None:
        self._factory = factory
        self._opened = False

    def __call__(self) -> AsyncIterator[Block]:
        if self._opened:
            msg = "A streaming response can only be opened once"
            raise UsageError(msg)
        self._opened = True
        return self._factory()


@dataclass(frozen=True, slots=True)
class SSEStream:
    """A streaming response.

    ``open()`` starts the callback and returns the blocks it emits, in order,
    as they are emitted. A second ``open()`` raises ``UsageError``.
    """

    open: Callable[[], AsyncIterator[Block]]
    headers: Mapping[str, str] = field(default_factory=dict)
    status: int = 200

    def __post_init__(self) -> None:
        if not isinstance(self.open, _OpenOnce):
            object.__setattr__(self, "open", _OpenOnce(self.open))

    async def chunks(self) -> AsyncIterator[str]:
        """Encoded wire text of every block, for hosts that write raw bytes."""
        async for block in self.open():
            yield block.encode()


@dataclass(frozen=True, slots=True)
class NoContent:
    """Empty success for non-protocol requests without a fallback."""

    status: int = 204


@dataclass(frozen=True, slots=True)
class RedirectTo:
    """A plain HTTP redirect for non-protocol requests."""

    url: str
    status: int = 302


type Finalized = SSEPayload | SSEStream | NoContent | RedirectTo
