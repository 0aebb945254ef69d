"""Structured stage instrumentation.

Each pipeline stage (builder, scorer, injector, executor, relaxation) runs
inside `Instrumentation.span()`, which emits one SpanRecord to every attached
sink when the stage finishes. Sinks are the seam for an external
observability backend.

Usage:
    recorder = RecordingSink()
    instrumentation = Instrumentation(sinks=[recorder, LoggingSink()])
    with instrumentation.span("scorer", candidates=12) as span:
        ...
        span["selected"] = "/discover/movie"
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Iterator, Protocol

from .models import SpanRecord

logger = logging.getLogger(__name__)

STAGES = ("builder", "lookup", "scorer", "injector", "sort", "executor", "enrichment", "relaxation")


class SpanSink(Protocol):
    def emit(self, span: SpanRecord) -> None: ...


class RecordingSink:
    """Keeps spans in memory (tests, CLI diagnostics)."""

    def __init__(self) -> None:
        self.spans: list[SpanRecord] = []

    def emit(self, span: SpanRecord) -> None:
        self.spans.append(span)

    def by_stage(self, stage: str) -> list[SpanRecord]:
        return [s for s in self.spans if s.stage == stage]


class LoggingSink:
    """Writes one debug line per span."""

    def __init__(self, level: int = logging.DEBUG) -> None:
        self.level = level

    def emit(self, span: SpanRecord) -> None:
        attrs = " ".join(f"{k}={v}" for k, v in sorted(span.attributes.items()))
        logger.log(
            self.level,
            f"[SPAN] {span.stage} {span.status} {span.duration_ms:.1f}ms {attrs}".rstrip(),
        )


class Instrumentation:
    """Fan-out of stage spans to sinks. With no sinks it is a no-op."""

    def __init__(self, sinks: list[SpanSink] | None = None) -> None:
        self.sinks: list[SpanSink] = list(sinks or [])

    @classmethod
    def recording(cls) -> tuple["Instrumentation", RecordingSink]:
        sink = RecordingSink()
        return cls(sinks=[sink]), sink

    @contextmanager
    def span(self, stage: str, **attributes: Any) -> Iterator[dict[str, Any]]:
        """Time a stage. Callers may add attributes to the yielded dict."""
        attrs = dict(attributes)
        started_at = time.time()
        start = time.perf_counter()
        try:
            yield attrs
        except BaseException as e:
            self._emit(stage, started_at, start, attrs, status="error", error=f"{type(e).__name__}: {e}")
            raise
        self._emit(stage, started_at, start, attrs)

    def _emit(
        self,
        stage: str,
        started_at: float,
        start: float,
        attrs: dict[str, Any],
        status: str = "ok",
        error: str | None = None,
    ) -> None:
        if not self.sinks:
            return
        record = SpanRecord(
            stage=stage,
            started_at=started_at,
            duration_ms=(time.perf_counter() - start) * 1000.0,
            status=status,
            attributes=attrs,
            error=error,
        )
        for sink in self.sinks:
            try:
                sink.emit(record)
            except Exception as e:
                logger.warning(f"[SPAN] sink {type(sink).__name__} failed: {e}")
