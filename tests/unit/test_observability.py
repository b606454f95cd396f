"""
Tests for metrics, tracing and logging setup
"""

import io
import json
import logging
import sys

import pytest

from webprobe.logging_config import (
    JSONFormatter,
    get_correlation_id,
    get_session_id,
    session_context,
    setup_logging,
)
from webprobe.observability.metrics import ResearchMetrics
from webprobe.observability.tracing import ResearchTracer


class TestMetrics:
    """Tests for ResearchMetrics"""

    def test_isolated_registries(self):
        first = ResearchMetrics()
        second = ResearchMetrics()

        first.record_claim()

        assert first.sample("webprobe_claims_total") == 1.0
        assert second.sample("webprobe_claims_total") == 0.0

    def test_labelled_counters(self, metrics):
        metrics.record_page_load(True)
        metrics.record_page_load(False)
        metrics.record_page_load(False)
        metrics.record_error(recoverable=False)

        assert metrics.sample("webprobe_page_loads_total", {"outcome": "success"}) == 1.0
        assert metrics.sample("webprobe_page_loads_total", {"outcome": "failure"}) == 2.0
        assert metrics.sample("webprobe_errors_total", {"recoverable": "false"}) == 1.0
        assert metrics.sample("webprobe_errors_total", {"recoverable": "true"}) is None

    def test_gauges_and_histogram(self, metrics):
        metrics.set_confidence(0.65)
        metrics.set_cache_hit_rate(0.5)
        metrics.observe_stop_latency(0.02)

        summary = metrics.get_metrics()
        assert summary["confidence"] == pytest.approx(0.65)
        assert summary["stop_count"] == 1.0
        assert metrics.sample("webprobe_cache_hit_rate") == pytest.approx(0.5)

    def test_render(self, metrics):
        metrics.record_event("page_load")

        text = metrics.render().decode()

        assert 'webprobe_telemetry_events_total{type="page_load"} 1.0' in text


class TestTracing:
    def test_span_yields(self):
        tracer = ResearchTracer()

        with tracer.span("webprobe.plan", {"webprobe.mode": "fast"}) as span:
            tracer.add_event(span, "questions", {"count": 2})

        assert span is not None

    def test_span_reraises(self):
        tracer = ResearchTracer()

        with pytest.raises(RuntimeError):
            with tracer.span("webprobe.path"):
                raise RuntimeError("driver crashed")


class TestLogging:
    """Tests for logging setup and session context"""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_session_context(self):
        assert get_session_id() == ""

        with session_context("session-1", correlation_id="corr-1"):
            assert get_session_id() == "session-1"
            assert get_correlation_id() == "corr-1"

        assert get_session_id() == ""
        assert get_correlation_id() == ""

    def test_json_lines(self):
        stream = io.StringIO()
        setup_logging("INFO", json_format=True, stream=stream)

        with session_context("session-1"):
            logging.getLogger("webprobe.research.engine").info("Run finished")

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert record["message"] == "Run finished"
        assert record["logger"] == "webprobe.research.engine"
        assert record["session_id"] == "session-1"

    def test_module_levels(self):
        stream = io.StringIO()
        setup_logging("DEBUG", module_levels={"webprobe.cache": "ERROR"}, stream=stream)

        logging.getLogger("webprobe.cache.manager").warning("quiet")
        logging.getLogger("webprobe.research.planner").warning("loud")

        output = stream.getvalue()
        assert "quiet" not in output
        assert "loud" in output

    def test_formatter_includes_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "webprobe", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )

        payload = json.loads(JSONFormatter().format(record))

        assert "ValueError: boom" in payload["exception"]
