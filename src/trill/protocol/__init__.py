"""SSE wire protocol: patch operations, blocks, scripts, headers, decoding."""

from trill.protocol.decode import DecodeError, iter_blocks, parse_stream
from trill.protocol.events import (
    EVENT_COMPONENT_STATE,
    EVENT_ELEMENTS,
    EVENT_METHOD,
    EVENT_STATE,
    KEEPALIVE,
    Block,
    ComponentStatePatch,
    ElementPatch,
    EventEnvelope,
    MethodInvocation,
    PatchOperation,
    StatePatch,
    to_block,
)
from trill.protocol.headers import response_headers

__all__ = [
    "EVENT_COMPONENT_STATE",
    "EVENT_ELEMENTS",
    "EVENT_METHOD",
    "EVENT_STATE",
    "KEEPALIVE",
    "Block",
    "ComponentStatePatch",
    "DecodeError",
    "ElementPatch",
    "EventEnvelope",
    "MethodInvocation",
    "PatchOperation",
    "StatePatch",
    "iter_blocks",
    "parse_stream",
    "response_headers",
    "to_block",
]
