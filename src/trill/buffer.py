"""Response buffer and the batch/streaming mode flag.

The buffer is append-only and owned by one request. In batch mode blocks
accumulate until finalization; after ``begin_streaming()`` every block goes
straight to the transport sink and nothing is buffered again.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from trill._errors import UsageError
from trill.protocol.events import KEEPALIVE, Block

type BlockSink = Callable[[Block], None]


class Mode(Enum):
    """Execution mode of a response. BATCH → STREAMING happens at most once."""

    BATCH = "batch"
    STREAMING = "streaming"


class ResponseBuffer:
    """Ordered blocks of one response plus its mode flag."""

    __slots__ = ("_blocks", "_mode", "_sink")

    def __init__(self) -> None:
        self._blocks: list[Block] = []
        self._mode = Mode.BATCH
        self._sink: BlockSink | None = None

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def blocks(self) -> tuple[Block, ...]:
        """Blocks buffered so far (always empty once streaming)."""
        return tuple(self._blocks)

    def push(self, block: Block) -> None:
        """Buffer a block, or send it now when streaming."""
        if self._sink is not None:
            self._sink(block)
        else:
            self._blocks.append(block)

    def begin_streaming(self, sink: BlockSink) -> int:
        """Switch to streaming, flushing buffered blocks to ``sink`` first.

        Returns the number of blocks flushed.
        """
        if self._mode is Mode.STREAMING:
            msg = "Response is already streaming"
            raise UsageError(msg)
        pending, self._blocks = self._blocks, []
        self._mode = Mode.STREAMING
        for block in pending:
            sink(block)
        self._sink = sink
        return len(pending)

    def encode(self) -> str:
        """Batch payload: keep-alive comment followed by every block in order."""
        return KEEPALIVE + "".join(block.encode() for block in self._blocks)

    def reset(self) -> None:
        self._blocks = []
        self._mode = Mode.BATCH
        self._sink = None

    def __len__(self) -> int:
        return len(self._blocks)
