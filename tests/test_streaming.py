"""Tests for trill.stream — streaming execution and early termination."""

from __future__ import annotations

import asyncio
import threading

import pytest
from conftest import FakeSession, make_request

from trill._errors import UsageError
from trill.buffer import Mode
from trill.config import TrillConfig
from trill.observability import EventLog, ResponseCollector, StreamCompleted, StreamTerminated
from trill.protocol.decode import parse_stream
from trill.protocol.events import Block
from trill.response import ReactiveResponse
from trill.result import SSEStream
from trill.stream import QueueWriter


async def _collect(result: SSEStream) -> list[Block]:
    return [block async for block in result.open()]


def _text(block: Block) -> str:
    return "\n".join(block.data)


class TestStreamOrder:
    @pytest.mark.asyncio
    async def test_buffered_blocks_flush_first(self, response: ReactiveResponse) -> None:
        response.state("before", 1)

        async def callback(r: ReactiveResponse, guard) -> None:
            r.state("during", 2)
            r.append("#log", "<li>x</li>")

        result = response.stream(callback).finalize()
        assert isinstance(result, SSEStream)
        assert result.headers["Content-Type"] == "text/event-stream"

        blocks = await _collect(result)

        assert [b.data[0] for b in blocks] == [
            'state {"before":1}',
            'state {"during":2}',
            "selector #log",
        ]

    @pytest.mark.asyncio
    async def test_builder_reset_after_stream(self, response: ReactiveResponse) -> None:
        async def callback(r: ReactiveResponse, guard) -> None:
            r.navigate("/a")

        await _collect(response.stream(callback).finalize())

        assert response.mode is Mode.BATCH
        assert response.blocks == ()
        response.navigate("/b")

    @pytest.mark.asyncio
    async def test_sync_callback_runs_off_loop(self, response: ReactiveResponse) -> None:
        threads: list[int] = []

        def callback(r: ReactiveResponse, guard) -> None:
            threads.append(threading.get_ident())
            for n in range(3):
                r.state("n", n)

        blocks = await _collect(response.stream(callback).finalize())

        assert [b.data[0] for b in blocks] == [f'state {{"n":{n}}}' for n in range(3)]
        assert threads and threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_chunks_are_wire_text(self, response: ReactiveResponse) -> None:
        async def callback(r: ReactiveResponse, guard) -> None:
            r.state("a", 1)

        result = response.stream(callback).finalize()
        text = "".join([chunk async for chunk in result.chunks()])

        assert text == 'event: state-patch\ndata: state {"a":1}\n\n'
        assert len(parse_stream(text)) == 1

    @pytest.mark.asyncio
    async def test_session_released_before_callback(self) -> None:
        session = FakeSession()
        response = ReactiveResponse(make_request(session=session))
        seen: list[int] = []

        async def callback(r: ReactiveResponse, guard) -> None:
            seen.append(session.released)

        await _collect(response.stream(callback).finalize())

        assert seen == [1]

    @pytest.mark.asyncio
    async def test_finalize_while_streaming_raises(self, response: ReactiveResponse) -> None:
        errors: list[Exception] = []

        async def callback(r: ReactiveResponse, guard) -> None:
            try:
                r.finalize()
            except UsageError as exc:
                errors.append(exc)

        await _collect(response.stream(callback).finalize())

        assert len(errors) == 1


class TestTermination:
    @pytest.mark.asyncio
    async def test_redirect_is_last_block(self, response: ReactiveResponse) -> None:
        reached: list[str] = []

        async def callback(r: ReactiveResponse, guard) -> None:
            r.state("progress", 50)
            guard.redirect("/done")
            reached.append("after")

        blocks = await _collect(response.stream(callback).finalize())

        assert len(blocks) == 2
        assert blocks[-1].data[:2] == ("selector body", "mode append")
        assert 'window.location.href = "/done";' in _text(blocks[-1])
        assert reached == []

    @pytest.mark.asyncio
    async def test_redirect_from_sync_callback(self, response: ReactiveResponse) -> None:
        def callback(r: ReactiveResponse, guard) -> None:
            guard.redirect("/done")

        blocks = await _collect(response.stream(callback).finalize())

        assert len(blocks) == 1
        assert "window.location.href" in _text(blocks[0])

    @pytest.mark.asyncio
    async def test_dump_replaces_document(self, response: ReactiveResponse) -> None:
        async def callback(r: ReactiveResponse, guard) -> None:
            guard.dump({"user": "ada"}, [1, 2])

        (block,) = await _collect(response.stream(callback).finalize())

        text = _text(block)
        assert "document.open(); document.write(" in text
        assert "Trill Dump" in text
        assert "ada" in text

    @pytest.mark.asyncio
    async def test_replace_document(self, response: ReactiveResponse) -> None:
        async def callback(r: ReactiveResponse, guard) -> None:
            guard.replace_document("plain output")

        (block,) = await _collect(response.stream(callback).finalize())

        assert "plain output" in _text(block)

    @pytest.mark.asyncio
    async def test_second_terminal_is_rejected(self, response: ReactiveResponse) -> None:
        errors: list[Exception] = []

        async def callback(r: ReactiveResponse, guard) -> None:
            try:
                guard.redirect("/a")
            finally:
                try:
                    r.state("late", 1)
                except UsageError as exc:
                    errors.append(exc)

        blocks = await _collect(response.stream(callback).finalize())

        assert len(blocks) == 1
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_terminated_recorded(self) -> None:
        collector = ResponseCollector(EventLog())
        response = ReactiveResponse(make_request(), collector=collector)

        async def callback(r: ReactiveResponse, guard) -> None:
            r.state("a", 1)
            guard.redirect("/done")

        await _collect(response.stream(callback).finalize())

        (terminated,) = collector.log.query(event_type=StreamTerminated)
        assert terminated.reason == "redirect"
        assert terminated.detail == "/done"
        (completed,) = collector.log.query(event_type=StreamCompleted)
        assert completed.blocks_sent == 2
        assert completed.path == "/items"

    @pytest.mark.asyncio
    async def test_builder_redirect_is_terminal(self, response: ReactiveResponse) -> None:
        reached: list[str] = []

        async def callback(r: ReactiveResponse, guard) -> None:
            r.state("step", 1)
            r.redirect("/done").finalize()
            reached.append("after")

        blocks = await _collect(response.stream(callback).finalize())

        assert len(blocks) == 2
        text = _text(blocks[-1])
        assert 'window.location.href = "/done";' in text
        assert "Exception in Stream" not in text
        assert reached == []
        assert response.mode is Mode.BATCH

    @pytest.mark.asyncio
    async def test_force_reload_is_terminal(self) -> None:
        collector = ResponseCollector(EventLog())
        response = ReactiveResponse(make_request(), collector=collector)

        def callback(r: ReactiveResponse, guard) -> None:
            r.redirect().force_reload()

        (block,) = await _collect(response.stream(callback).finalize())

        assert "window.location.reload();" in _text(block)
        (terminated,) = collector.log.query(event_type=StreamTerminated)
        assert terminated.reason == "reload"


class TestExceptions:
    @pytest.mark.asyncio
    async def test_exception_becomes_fallback_page(
        self, response: ReactiveResponse, capsys: pytest.CaptureFixture[str]
    ) -> None:
        async def callback(r: ReactiveResponse, guard) -> None:
            r.state("a", 1)
            raise RuntimeError("boom")

        blocks = await _collect(response.stream(callback).finalize())

        assert len(blocks) == 2
        text = _text(blocks[-1])
        assert "Exception in Stream" in text
        assert "RuntimeError" in text
        assert "boom" in text
        assert "exception in stream /items" in capsys.readouterr().err
        assert response.mode is Mode.BATCH

    @pytest.mark.asyncio
    async def test_custom_exception_renderer(self) -> None:
        response = ReactiveResponse(
            make_request(),
            exception_renderer=lambda exc: f"<h1>custom {exc}</h1>",
        )

        async def callback(r: ReactiveResponse, guard) -> None:
            raise ValueError("bad value")

        (block,) = await _collect(response.stream(callback).finalize())

        assert "custom bad value" in _text(block)

    @pytest.mark.asyncio
    async def test_failing_renderer_uses_fallback(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        def broken(exc: BaseException) -> str:
            raise KeyError("template")

        response = ReactiveResponse(make_request(), exception_renderer=broken)

        async def callback(r: ReactiveResponse, guard) -> None:
            raise ValueError("bad value")

        (block,) = await _collect(response.stream(callback).finalize())

        assert "Exception in Stream" in _text(block)
        assert "exception renderer failed" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_debug_uses_full_error_page(self) -> None:
        response = ReactiveResponse(make_request(), config=TrillConfig(debug=True))

        async def callback(r: ReactiveResponse, guard) -> None:
            raise ValueError("bad value")

        (block,) = await _collect(response.stream(callback).finalize())

        text = _text(block)
        assert "Stack trace" in text
        assert "Exception in Stream" not in text


    @pytest.mark.asyncio
    async def test_session_release_failure_still_ends_with_page(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        class BrokenSession(FakeSession):
            def release(self) -> None:
                raise RuntimeError("session store down")

        response = ReactiveResponse(make_request(session=BrokenSession()))
        called: list[str] = []

        async def callback(r: ReactiveResponse, guard) -> None:
            called.append("callback")

        response.state("before", 1)
        blocks = await _collect(response.stream(callback).finalize())

        assert len(blocks) == 2
        assert blocks[0].data == ('state {"before":1}',)
        text = _text(blocks[-1])
        assert "Exception in Stream" in text
        assert "session store down" in text
        assert called == []
        assert response.mode is Mode.BATCH
        assert "session store down" in capsys.readouterr().err


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_closing_iterator_cancels_callback(self, response: ReactiveResponse) -> None:
        cancelled = asyncio.Event()

        async def callback(r: ReactiveResponse, guard) -> None:
            r.state("tick", 1)
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        blocks = response.stream(callback).finalize().open()
        first = await blocks.__anext__()
        await blocks.aclose()

        assert first.data == ('state {"tick":1}',)
        assert cancelled.is_set()


class TestQueueWriter:
    @pytest.mark.asyncio
    async def test_delivers_in_order_until_closed(self) -> None:
        writer = QueueWriter()
        for n in range(3):
            writer.send(Block("state-patch", (str(n),)))
        writer.close()

        received = [block.data[0] async for block in writer]

        assert received == ["0", "1", "2"]
        assert writer.sent == 3

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self) -> None:
        writer = QueueWriter()
        writer.close()
        with pytest.raises(ConnectionError):
            writer.send(Block("state-patch", ("x",)))

    @pytest.mark.asyncio
    async def test_send_from_thread(self) -> None:
        writer = QueueWriter()

        def produce() -> None:
            for n in range(5):
                writer.send(Block("state-patch", (str(n),)))
            writer.close()

        await asyncio.to_thread(produce)
        received = [block.data[0] async for block in writer]

        assert received == [str(n) for n in range(5)]


class TestOpenOnce:
    @pytest.mark.asyncio
    async def test_second_open_raises(self, response: ReactiveResponse) -> None:
        async def callback(r: ReactiveResponse, guard) -> None:
            r.state("a", 1)

        result = response.stream(callback).finalize()
        blocks = await _collect(result)

        assert len(blocks) == 1
        with pytest.raises(UsageError, match="only be opened once"):
            result.open()

    @pytest.mark.asyncio
    async def test_second_open_while_live_leaves_first_intact(
        self, response: ReactiveResponse
    ) -> None:
        release = asyncio.Event()

        async def callback(r: ReactiveResponse, guard) -> None:
            r.state("a", 1)
            await release.wait()
            r.state("b", 2)

        result = response.stream(callback).finalize()
        first = result.open()
        head = await first.__anext__()
        with pytest.raises(UsageError):
            result.open()
        release.set()
        rest = [block async for block in first]

        assert [head.data[0]] + [b.data[0] for b in rest] == ['state {"a":1}', 'state {"b":2}']
