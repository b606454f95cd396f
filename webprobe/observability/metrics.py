"""
Research Metrics - Prometheus Collection
========================================

Prometheus counters, gauges and histograms for one research engine.

Each ``ResearchMetrics`` owns its own ``CollectorRegistry`` unless one is
injected, so several engines in one process never collide on metric names.

Usage:
    metrics = ResearchMetrics()
    telemetry = TelemetryEngine(metrics=metrics)

    metrics.record_page_load(success=True)
    text = metrics.render()
"""

from __future__ import annotations

import logging
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger("webprobe.observability.metrics")

STOP_LATENCY_BUCKETS = [0.005, 0.01, 0.025, 0.05, 0.1, 0.2, 0.5, 1.0]


class ResearchMetrics:
    """Prometheus metrics for page loads, claims, confidence and stop latency."""

    def __init__(
        self,
        registry: CollectorRegistry | None = None,
        namespace: str = "webprobe",
    ) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self.namespace = namespace
        ns = namespace

        self.events_total = Counter(
            f"{ns}_telemetry_events_total",
            "Telemetry events recorded",
            ["type"],
            registry=self.registry,
        )
        self.page_loads_total = Counter(
            f"{ns}_page_loads_total",
            "Page loads attempted",
            ["outcome"],
            registry=self.registry,
        )
        self.claims_total = Counter(
            f"{ns}_claims_total",
            "Claims found",
            registry=self.registry,
        )
        self.errors_total = Counter(
            f"{ns}_errors_total",
            "Errors recorded",
            ["recoverable"],
            registry=self.registry,
        )
        self.confidence = Gauge(
            f"{ns}_confidence",
            "Aggregate research confidence",
            registry=self.registry,
        )
        self.active_paths = Gauge(
            f"{ns}_active_paths",
            "Execution paths currently running",
            registry=self.registry,
        )
        self.cache_hit_rate = Gauge(
            f"{ns}_cache_hit_rate",
            "Aggregate cache hit rate",
            registry=self.registry,
        )
        self.stop_latency_seconds = Histogram(
            f"{ns}_stop_latency_seconds",
            "Time from stop request to completion report",
            registry=self.registry,
            buckets=STOP_LATENCY_BUCKETS,
        )

    def record_event(self, event_type: str) -> None:
        self.events_total.labels(type=event_type).inc()

    def record_page_load(self, success: bool) -> None:
        self.page_loads_total.labels(outcome="success" if success else "failure").inc()

    def record_claim(self) -> None:
        self.claims_total.inc()

    def record_error(self, recoverable: bool) -> None:
        self.errors_total.labels(recoverable=str(recoverable).lower()).inc()

    def set_confidence(self, value: float) -> None:
        self.confidence.set(value)

    def set_active_paths(self, count: int) -> None:
        self.active_paths.set(count)

    def set_cache_hit_rate(self, rate: float) -> None:
        self.cache_hit_rate.set(rate)

    def observe_stop_latency(self, seconds: float) -> None:
        self.stop_latency_seconds.observe(seconds)

    def sample(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        """Current value of one sample, e.g. ``sample("webprobe_claims_total")``."""
        return self.registry.get_sample_value(name, labels or {})

    def render(self) -> bytes:
        """Prometheus exposition format."""
        return generate_latest(self.registry)

    def get_metrics(self) -> dict[str, Any]:
        return {
            "claims_total": self.sample(f"{self.namespace}_claims_total") or 0.0,
            "confidence": self.sample(f"{self.namespace}_confidence") or 0.0,
            "active_paths": self.sample(f"{self.namespace}_active_paths") or 0.0,
            "stop_count": self.sample(f"{self.namespace}_stop_latency_seconds_count") or 0.0,
        }
