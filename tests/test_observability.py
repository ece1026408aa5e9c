"""Tests for trill.observability — event log and response collector."""

import threading

from conftest import make_request

from trill.observability.collector import ResponseCollector
from trill.observability.events import (
    OperationEmitted,
    ResponseFinalized,
    StreamCompleted,
    now_ns,
)
from trill.observability.log import EventLog
from trill.response import ReactiveResponse


def _op(path: str = "/a", event: str = "state-patch") -> OperationEmitted:
    return OperationEmitted(path=path, event=event, streaming=False, timestamp_ns=now_ns())


# ---------------------------------------------------------------------------
# EventLog
# ---------------------------------------------------------------------------


class TestEventLog:
    def test_append_and_len(self) -> None:
        log = EventLog()
        assert len(log) == 0
        log.append(_op())
        assert len(log) == 1

    def test_max_events_enforced(self) -> None:
        log = EventLog(max_events=5)
        for i in range(10):
            log.append(_op(f"/{i}"))
        assert len(log) == 5
        assert log.recent(1)[0].path == "/9"

    def test_recent_oldest_first(self) -> None:
        log = EventLog()
        for i in range(5):
            log.append(_op(f"/{i}"))
        assert [e.path for e in log.recent(3)] == ["/2", "/3", "/4"]

    def test_query_by_type_most_recent_first(self) -> None:
        log = EventLog()
        log.append(_op("/first"))
        log.append(ResponseFinalized(path="/x", outcome="batch", blocks=1, timestamp_ns=now_ns()))
        log.append(_op("/second"))

        ops = log.query(event_type=OperationEmitted)
        assert [e.path for e in ops] == ["/second", "/first"]

    def test_query_by_path_and_limit(self) -> None:
        log = EventLog()
        for i in range(5):
            log.append(_op(f"/items/{i}"))
        log.append(_op("/other"))

        assert len(log.query(path="/items")) == 5
        assert len(log.query(path="/items", limit=2)) == 2

    def test_query_since(self) -> None:
        log = EventLog()
        log.append(OperationEmitted(path="/old", event="e", streaming=False, timestamp_ns=10))
        log.append(OperationEmitted(path="/new", event="e", streaming=False, timestamp_ns=20))
        assert [e.path for e in log.query(since_ns=15)] == ["/new"]

    def test_clear(self) -> None:
        log = EventLog()
        log.append(_op())
        log.append(_op())
        assert log.clear() == 2
        assert len(log) == 0

    def test_stats(self) -> None:
        log = EventLog(max_events=50)
        log.append(_op())
        log.append(StreamCompleted(path="/s", blocks_sent=3, duration_ms=1.0, timestamp_ns=now_ns()))
        stats = log.stats()
        assert stats["total"] == 2
        assert stats["max_events"] == 50
        assert stats["by_type"] == {"OperationEmitted": 1, "StreamCompleted": 1}

    def test_concurrent_appends(self) -> None:
        log = EventLog()

        def worker() -> None:
            for _ in range(100):
                log.append(_op())

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(log) == 400


# ---------------------------------------------------------------------------
# ResponseCollector
# ---------------------------------------------------------------------------


class TestResponseCollector:
    def test_records_operations_and_finalize(self) -> None:
        collector = ResponseCollector()
        response = ReactiveResponse(make_request(path="/cart"), collector=collector)

        response.state("a", 1).append("#x", "<p/>").finalize()

        ops = collector.log.query(event_type=OperationEmitted)
        assert [e.event for e in ops] == ["element-patch", "state-patch"]
        assert all(e.path == "/cart" and not e.streaming for e in ops)
        (final,) = collector.log.query(event_type=ResponseFinalized)
        assert final.outcome == "batch"
        assert final.blocks == 2

    def test_operations_can_be_skipped(self) -> None:
        collector = ResponseCollector(record_operations=False)
        ReactiveResponse(make_request(), collector=collector).state("a", 1).finalize()
        assert collector.log.query(event_type=OperationEmitted) == []
        assert len(collector.log) == 1

    def test_non_protocol_outcomes(self) -> None:
        collector = ResponseCollector()
        ReactiveResponse(make_request(protocol=False), collector=collector).finalize()
        ReactiveResponse(make_request(protocol=False), collector=collector).web("x").finalize()

        outcomes = [e.outcome for e in collector.log.query(event_type=ResponseFinalized)]
        assert outcomes == ["fallback", "no_content"]

    def test_shared_log(self) -> None:
        log = EventLog()
        assert ResponseCollector(log).log is log
