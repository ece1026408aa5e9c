"""Streaming execution and early termination.

A streaming response runs the handler's callback while the connection is
open. Every block the callback emits is queued on a ``QueueWriter`` and
yielded to the transport immediately.

The callback receives the response builder and a ``StreamGuard``. The guard
is the only way to end a stream early: ``redirect()``, ``dump()`` and
``replace_document()`` each send one terminal block that takes over the
client's document, then raise ``TransportTermination`` to unwind the
callback. Uncaught exceptions are converted to a terminal error page by the
runner, so the stream always ends well-formed.
"""

from __future__ import annotations

import asyncio
import inspect
import sys
import time
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, NoReturn

from trill._errors import TransportTermination, UsageError
from trill.buffer import Mode
from trill.debug.error_page import (
    render_dump_page,
    render_error_page,
    render_fallback_error_page,
    wrap_output_document,
)
from trill.protocol.events import Block
from trill.protocol.scripts import location_code, replace_document_code, script_tag

if TYPE_CHECKING:
    from trill._types import StreamCallback
    from trill.response import ReactiveResponse

_CLOSE = object()


def send_terminal(response: ReactiveResponse, code: str, reason: str, detail: str = "") -> None:
    """Send the one block that takes over the client's document.

    Nothing may be emitted on ``response`` afterwards.
    """
    response._emit_terminal(script_tag(code, auto_remove=False))
    if response.collector is not None:
        response.collector.record_terminated(response.request.current_path(), reason, detail)


class QueueWriter:
    """Bridge from block emission to the async transport.

    ``send()`` may be called from the event loop or from a worker thread;
    blocks are delivered in the order they were sent.

    Args:
        loop: The event loop the transport iterates on.

    """

    __slots__ = ("_closed", "_loop", "_queue", "sent")

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self.sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, item: Any) -> None:
        try:
            on_loop = asyncio.get_running_loop() is self._loop
        except RuntimeError:
            on_loop = False
        if on_loop:
            self._queue.put_nowait(item)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    def send(self, block: Block) -> None:
        if self._closed:
            msg = "Stream transport is closed"
            raise ConnectionError(msg)
        self.sent += 1
        self._put(block)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._put(_CLOSE)

    async def __aiter__(self) -> AsyncIterator[Block]:
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            yield item


class StreamGuard:
    """Capability handed to streaming callbacks for ending a stream early.

    Every terminal method sends exactly one block and then raises
    ``TransportTermination``; the runner catches it and closes the stream.
    """

    __slots__ = ("_reason", "_response")

    def __init__(self, response: ReactiveResponse) -> None:
        self._response = response
        self._reason: str | None = None

    @property
    def terminated(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> str | None:
        return self._reason

    def _send_terminal(self, code: str, reason: str, detail: str = "") -> None:
        if self._reason is not None:
            msg = f"Stream already terminated ({self._reason})"
            raise UsageError(msg)
        send_terminal(self._response, code, reason, detail)
        self._reason = reason

    def redirect(self, url: str) -> NoReturn:
        """Send the client to ``url`` and end the stream."""
        self._send_terminal(location_code(url), "redirect", url)
        raise TransportTermination("redirect")

    def dump(self, *values: Any) -> NoReturn:
        """Replace the client's document with a rendering of ``values`` and end the stream."""
        page = render_dump_page(values, title=self._response.config.dump_title)
        self._send_terminal(replace_document_code(page), "dump")
        raise TransportTermination("dump")

    dump_and_terminate = dump

    def replace_document(self, output: str) -> NoReturn:
        """Replace the client's document with ``output`` and end the stream.

        Plain text is escaped into a ``<pre>``; HTML fragments are wrapped in
        a document.
        """
        self._send_terminal(replace_document_code(wrap_output_document(output)), "document")
        raise TransportTermination("document")

    def fail(self, exc: BaseException) -> None:
        """Replace the client's document with an error page for ``exc``.

        Used by the runner for uncaught exceptions; does not raise.
        """
        page = self._render_exception(exc)
        self._send_terminal(replace_document_code(page), "error", type(exc).__qualname__)

    def _render_exception(self, exc: BaseException) -> str:
        response = self._response
        renderer = response.exception_renderer
        if renderer is None and response.config.debug:
            renderer = render_error_page
        if renderer is None:
            return render_fallback_error_page(exc)
        try:
            return renderer(exc)
        except Exception as render_exc:
            print(
                f"trill: exception renderer failed ({type(render_exc).__name__}: {render_exc}); "
                "using fallback page",
                file=sys.stderr,
            )
            return render_fallback_error_page(exc)


async def _invoke(callback: StreamCallback, response: ReactiveResponse, guard: StreamGuard) -> None:
    if inspect.iscoroutinefunction(callback):
        await callback(response, guard)
        return
    # Sync callbacks may block between emissions; keep them off the loop.
    result = await asyncio.to_thread(callback, response, guard)
    if inspect.isawaitable(result):
        await result


async def run_stream(
    response: ReactiveResponse,
    callback: StreamCallback,
    writer: QueueWriter,
) -> None:
    """Run a streaming callback against ``writer``.

    Releases the session, flushes blocks buffered before ``stream()`` was
    called, then runs the callback. Teardown (builder reset, transport
    close) happens whether the callback returns, terminates, or raises.
    """
    guard = StreamGuard(response)
    path = response.request.current_path()
    started = time.perf_counter()
    cancelled = False
    try:
        session = response.request.session
        if session is not None:
            session.release()
        response._begin_streaming(writer.send)
        await _invoke(callback, response, guard)
    except TransportTermination:
        pass
    except asyncio.CancelledError:
        cancelled = True
        raise
    except Exception as exc:
        print(
            f"trill: exception in stream {path}: {type(exc).__name__}: {exc}",
            file=sys.stderr,
        )
        if response.mode is Mode.BATCH:
            response._begin_streaming(writer.send)
        if not guard.terminated and not response.terminated and not writer.closed:
            guard.fail(exc)
    finally:
        writer.close()
        # A cancelled worker-thread callback may still be running; leaving the
        # builder in streaming mode makes its next emission hit the closed writer.
        if not cancelled:
            response.reset()
        if response.collector is not None:
            response.collector.record_completed(
                path,
                blocks_sent=writer.sent,
                duration_ms=(time.perf_counter() - started) * 1000,
            )


async def stream_blocks(
    response: ReactiveResponse,
    callback: StreamCallback,
) -> AsyncIterator[Block]:
    """Yield the blocks of a streaming response as they are emitted.

    Closing the iterator (peer disconnect) cancels the callback.
    """
    writer = QueueWriter(asyncio.get_running_loop())
    task = asyncio.create_task(run_stream(response, callback, writer))
    try:
        async for block in writer:
            yield block
        await task
    finally:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
