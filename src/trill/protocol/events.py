"""Patch operations and their SSE wire blocks.

Every builder call produces one ``Block``: an event type, its ``data:``
lines, and the ``EventEnvelope`` (id / retry) in force when it was emitted.

Wire layout of one block::

    id: <opaque-id>            (optional)
    retry: <milliseconds>      (optional)
    event: <event-type>
    data: <line>
    ...
    <blank line>

All operations are frozen dataclasses and safe to share across threads.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar

from trill._errors import UsageError
from trill._types import PATCH_MODES, SCROLL_EDGES, PatchMode, ScrollEdge, StateMap

EVENT_STATE = "state-patch"
EVENT_COMPONENT_STATE = "component-state-patch"
EVENT_METHOD = "method-invoke"
EVENT_ELEMENTS = "element-patch"

EVENT_TYPES: frozenset[str] = frozenset({
    EVENT_STATE,
    EVENT_COMPONENT_STATE,
    EVENT_METHOD,
    EVENT_ELEMENTS,
})

# Leading comment of every batch payload
KEEPALIVE = ": keepalive\n\n"


def dumps(value: Any) -> str:
    """Encode a value as single-line compact JSON."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def _split_lines(text: str) -> list[str]:
    # SSE treats CR, LF and CRLF as line breaks; every line needs its own prefix.
    return text.strip().splitlines() or [""]


def _require_single_line(name: str, value: str) -> None:
    if "\n" in value or "\r" in value:
        msg = f"{name} cannot contain line breaks: {value!r}"
        raise UsageError(msg)


# ---------------------------------------------------------------------------
# Envelope + block
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EventEnvelope:
    """Optional ``id:`` / ``retry:`` fields applied to emitted blocks."""

    id: str | None = None
    retry_ms: int | None = None

    def __post_init__(self) -> None:
        if self.id is not None:
            _require_single_line("Event id", self.id)

    def lines(self) -> list[str]:
        out: list[str] = []
        if self.id is not None:
            out.append(f"id: {self.id}")
        if self.retry_ms is not None:
            out.append(f"retry: {self.retry_ms}")
        return out


@dataclass(frozen=True, slots=True)
class Block:
    """One serialized operation.

    Attributes:
        event: SSE event type (one of ``EVENT_TYPES``).
        data: Data lines without the ``data: `` prefix.
        envelope: Envelope in force when the block was emitted.

    """

    event: str
    data: tuple[str, ...]
    envelope: EventEnvelope = field(default_factory=EventEnvelope)

    def encode(self) -> str:
        """Return the wire text of this block, terminated by a blank line."""
        lines = self.envelope.lines()
        lines.append(f"event: {self.event}")
        lines.extend(f"data: {line}" for line in self.data)
        return "\n".join(lines) + "\n\n"


# ---------------------------------------------------------------------------
# Patch operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StatePatch:
    """RFC 7386 merge patch applied to the client's state.

    ``only_if_missing`` is a client-side flag; the server never evaluates it.
    """

    event_type: ClassVar[str] = EVENT_STATE

    state: StateMap
    only_if_missing: bool = False

    def data_lines(self) -> tuple[str, ...]:
        lines: list[str] = []
        if self.only_if_missing:
            lines.append("onlyIfMissing true")
        lines.append(f"state {dumps(dict(self.state))}")
        return tuple(lines)


@dataclass(frozen=True, slots=True)
class ElementPatch:
    """DOM patch: markup plus target selector, mode, and viewport hints."""

    event_type: ClassVar[str] = EVENT_ELEMENTS

    markup: str = ""
    selector: str | None = None
    mode: PatchMode | None = None
    use_view_transition: bool = False
    settle: int | None = None
    limit: int | None = None
    scroll: ScrollEdge | None = None
    show: ScrollEdge | None = None
    focus_scroll: bool = False

    def __post_init__(self) -> None:
        if self.selector:
            _require_single_line("Selector", self.selector)
        if self.mode is not None and self.mode not in PATCH_MODES:
            msg = (
                f"Unknown patch mode {self.mode!r}; "
                f"expected one of {', '.join(sorted(PATCH_MODES))}"
            )
            raise UsageError(msg)
        for name in ("scroll", "show"):
            edge = getattr(self, name)
            if edge is not None and edge not in SCROLL_EDGES:
                msg = f"{name} must be 'top' or 'bottom', got {edge!r}"
                raise UsageError(msg)
        if self.mode == "remove" and not self.selector:
            msg = "Removing elements requires a selector"
            raise UsageError(msg)

    def data_lines(self) -> tuple[str, ...]:
        lines: list[str] = []
        if self.selector:
            lines.append(f"selector {self.selector}")
        if self.mode:
            lines.append(f"mode {self.mode}")
        if self.use_view_transition:
            lines.append("useViewTransition true")
        if self.settle:
            lines.append(f"settle {int(self.settle)}")
        if self.limit:
            lines.append(f"limit {int(self.limit)}")
        if self.scroll:
            lines.append(f"scroll {self.scroll}")
        if self.show:
            lines.append(f"show {self.show}")
        if self.focus_scroll:
            lines.append("focusScroll true")
        if self.mode != "remove":
            lines.extend(f"elements {line}" for line in _split_lines(self.markup))
        return tuple(lines)


@dataclass(frozen=True, slots=True)
class ComponentStatePatch:
    """Merge patch addressed to a named client component."""

    event_type: ClassVar[str] = EVENT_COMPONENT_STATE

    component: str
    state: Mapping[str, Any]
    only_if_missing: bool = False

    def __post_init__(self) -> None:
        _require_single_line("Component name", self.component)

    def data_lines(self) -> tuple[str, ...]:
        lines = [f"component {self.component}"]
        if self.only_if_missing:
            lines.append("onlyIfMissing true")
        lines.append(f"state {dumps(dict(self.state))}")
        return tuple(lines)


@dataclass(frozen=True, slots=True)
class MethodInvocation:
    """Call a method on a named client component."""

    event_type: ClassVar[str] = EVENT_METHOD

    component: str
    method: str
    args: Sequence[Any] = ()

    def __post_init__(self) -> None:
        _require_single_line("Component name", self.component)
        _require_single_line("Method name", self.method)

    def data_lines(self) -> tuple[str, ...]:
        return (
            f"component {self.component}",
            f"method {self.method}",
            f"args {dumps(list(self.args))}",
        )


type PatchOperation = StatePatch | ElementPatch | ComponentStatePatch | MethodInvocation


def to_block(op: PatchOperation, envelope: EventEnvelope | None = None) -> Block:
    """Serialize an operation under the given envelope."""
    return Block(
        event=op.event_type,
        data=op.data_lines(),
        envelope=envelope if envelope is not None else EventEnvelope(),
    )
