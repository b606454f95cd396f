"""
Research Tracing - OpenTelemetry Integration
============================================

Spans around plan generation, execution paths and the stop sequence.

Only the OpenTelemetry API is used here; without an SDK configured by the
host application the spans are no-ops.

Usage:
    tracer = ResearchTracer()
    with tracer.span("webprobe.plan", {"webprobe.mode": "fast"}) as span:
        ...
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode, Tracer, TracerProvider

logger = logging.getLogger("webprobe.observability.tracing")


class SpanAttributes:
    """Standard span attribute names."""

    SESSION_ID = "webprobe.session_id"
    PLAN_ID = "webprobe.plan_id"
    MODE = "webprobe.mode"
    PATH_ID = "webprobe.path_id"
    QUESTIONS = "webprobe.questions"
    DOMAINS = "webprobe.domains"
    STOP_REASON = "webprobe.stop_reason"
    CONFIDENCE = "webprobe.confidence"
    LATENCY_MS = "webprobe.latency_ms"


class ResearchTracer:
    def __init__(
        self,
        tracer_provider: TracerProvider | None = None,
        instrumentation_name: str = "webprobe",
    ) -> None:
        self._tracer: Tracer = trace.get_tracer(
            instrumentation_name, tracer_provider=tracer_provider
        )

    @contextmanager
    def span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[Span]:
        """Start a span; exceptions are recorded on it and re-raised."""
        start = time.perf_counter()
        with self._tracer.start_as_current_span(
            name, attributes=attributes, record_exception=False, set_status_on_exception=False
        ) as span:
            try:
                yield span
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            finally:
                span.set_attribute(
                    SpanAttributes.LATENCY_MS, (time.perf_counter() - start) * 1000
                )

    def add_event(self, span: Span, name: str, attributes: dict[str, Any] | None = None) -> None:
        span.add_event(name, attributes or {})
