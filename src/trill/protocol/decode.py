"""Decode SSE wire text back into blocks.

Used by the ``trill decode`` command and by tests to inspect payloads.
Comment lines (``: keepalive``) are skipped.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from trill._errors import TrillError
from trill.protocol.events import Block, EventEnvelope


class DecodeError(TrillError):
    """Malformed SSE text."""


def iter_blocks(lines: Iterable[str]) -> Iterator[Block]:
    """Yield blocks from an iterable of wire lines (without line endings)."""
    event: str | None = None
    data: list[str] = []
    event_id: str | None = None
    retry: int | None = None
    seen = False

    for lineno, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        if not line:
            if seen:
                if event is None:
                    msg = f"line {lineno}: block without an event field"
                    raise DecodeError(msg)
                yield Block(event, tuple(data), EventEnvelope(event_id, retry))
            event, data, event_id, retry, seen = None, [], None, None, False
            continue
        if line.startswith(":"):
            continue

        name, sep, value = line.partition(":")
        if not sep:
            msg = f"line {lineno}: expected 'field: value', got {line!r}"
            raise DecodeError(msg)
        value = value.removeprefix(" ")
        seen = True
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
        elif name == "id":
            event_id = value
        elif name == "retry":
            try:
                retry = int(value)
            except ValueError as exc:
                msg = f"line {lineno}: retry must be an integer, got {value!r}"
                raise DecodeError(msg) from exc
        else:
            msg = f"line {lineno}: unknown field {name!r}"
            raise DecodeError(msg)

    if seen:
        msg = "stream ended inside a block (missing blank line)"
        raise DecodeError(msg)


def parse_stream(text: str) -> list[Block]:
    """Parse a complete payload into its blocks."""
    return list(iter_blocks(text.split("\n")))
