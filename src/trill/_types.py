"""Shared type definitions for trill."""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Literal

# DOM patch modes understood by the client
type PatchMode = Literal[
    "outer",
    "inner",
    "outerMorph",
    "innerMorph",
    "append",
    "prepend",
    "before",
    "after",
    "remove",
]

# Viewport edge for scroll/show hints
type ScrollEdge = Literal["top", "bottom"]

# JSON-compatible client state
type StateMap = Mapping[str, Any]

# Streaming callback: fn(response, guard), sync or async
type StreamCallback = Callable[..., Awaitable[None] | None]

# Fallback response for non-protocol requests: a value or a thunk producing one
type Fallback = Any | Callable[[], Any]

PATCH_MODES: frozenset[str] = frozenset({
    "outer",
    "inner",
    "outerMorph",
    "innerMorph",
    "append",
    "prepend",
    "before",
    "after",
    "remove",
})

SCROLL_EDGES: frozenset[str] = frozenset({"top", "bottom"})
