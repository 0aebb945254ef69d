"""Tests for the provenance log and stage instrumentation."""

import logging
import threading

import pytest

from marquee.core.instrumentation import Instrumentation, LoggingSink, RecordingSink
from marquee.core.models import RelaxationEvent, RelaxationState
from marquee.core.provenance import ProvenanceLog
from marquee.planner.tree_builder import build_constraint_tree


class TestProvenanceLog:
    """Tests for ProvenanceLog."""

    def test_record_tree_adds_each_leaf(self):
        log = ProvenanceLog()
        tree = build_constraint_tree(
            [
                {"type": "genre", "value": "horror", "resolved_id": "27"},
                {"type": "date", "value": "1990s"},
            ]
        )
        log.record_tree(tree)
        assert [r.action for r in log.records] == ["added", "added"]
        assert [r.constraint.key for r in log.records] == ["genre_id", "date"]
        assert all(r.state == RelaxationState.STRICT for r in log.records)

    def test_event_with_removals(self):
        log = ProvenanceLog()
        tree = build_constraint_tree([{"type": "keyword", "value": "heist", "resolved_id": "1"}])
        event = RelaxationEvent(
            removed_or_modified_constraint=tree.records(),
            reason="dropped tertiary",
            tier_before=RelaxationState.STRICT,
            tier_after=RelaxationState.RELAX_TERTIARY,
        )
        log.record_event(event)
        assert log.events == [event]
        assert [(r.action, r.constraint.key) for r in log.records] == [("removed", "keyword_id")]

    def test_event_without_removals_is_a_note(self):
        log = ProvenanceLog()
        log.record_event(
            RelaxationEvent(
                reason="nothing to drop",
                tier_before=RelaxationState.STRICT,
                tier_after=RelaxationState.RELAX_TERTIARY,
            )
        )
        assert log.records[0].action == "note"
        assert log.records[0].state == RelaxationState.RELAX_TERTIARY

    def test_snapshots_are_copies(self):
        log = ProvenanceLog()
        log.note("executor", "first")
        snapshot = log.records
        log.note("executor", "second")
        assert len(snapshot) == 1
        assert len(log) == 2

    def test_concurrent_appends(self):
        log = ProvenanceLog()

        def worker(n):
            for i in range(200):
                log.note("lookup", f"{n}-{i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(log) == 800


class TestInstrumentation:
    """Tests for Instrumentation spans."""

    def test_span_records_attributes(self):
        instrumentation, sink = Instrumentation.recording()
        with instrumentation.span("scorer", candidates=3) as span:
            span["selected"] = "/discover/movie"
        [record] = sink.spans
        assert record.stage == "scorer"
        assert record.status == "ok"
        assert record.attributes == {"candidates": 3, "selected": "/discover/movie"}
        assert record.duration_ms >= 0

    def test_span_error_is_reraised(self):
        instrumentation, sink = Instrumentation.recording()
        with pytest.raises(RuntimeError):
            with instrumentation.span("executor"):
                raise RuntimeError("boom")
        assert sink.spans[0].status == "error"
        assert "boom" in sink.spans[0].error

    def test_failing_sink_does_not_break_stage(self):
        class Broken:
            def emit(self, span):
                raise OSError("disk full")

        recorder = RecordingSink()
        instrumentation = Instrumentation(sinks=[Broken(), recorder])
        with instrumentation.span("builder"):
            pass
        assert len(recorder.by_stage("builder")) == 1

    def test_logging_sink(self, caplog):
        instrumentation = Instrumentation(sinks=[LoggingSink(level=logging.INFO)])
        with caplog.at_level(logging.INFO, logger="marquee.core.instrumentation"):
            with instrumentation.span("relaxation", state="strict"):
                pass
        assert "[SPAN] relaxation ok" in caplog.text
        assert "state=strict" in caplog.text
