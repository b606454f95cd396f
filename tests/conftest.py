"""
Shared pytest fixtures for webprobe tests

Includes:
    - A manual clock for TTL and telemetry timing
    - A scripted navigation driver
    - Component fixtures wired with isolated metrics registries
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from webprobe.cache.manager import CacheManager
from webprobe.core.config import CacheConfig, SourceIntelligenceConfig, WebProbeConfig
from webprobe.core.helpers import normalize_url
from webprobe.core.types import ExtractionResult
from webprobe.observability.metrics import ResearchMetrics
from webprobe.observability.telemetry import TelemetryEngine
from webprobe.research.claim_graph import ClaimGraph
from webprobe.research.engine import NavigationResult
from webprobe.research.source_intelligence import SourceIntelligence


def pytest_addoption(parser):
    """Add custom pytest options"""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests",
    )


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless asked for"""
    skip_slow = pytest.mark.skip(reason="Need --run-slow option to run slow tests")
    for item in items:
        if "slow" in item.keywords and not config.getoption("--run-slow"):
            item.add_marker(skip_slow)


# =============================================================================
# Clock
# =============================================================================


class ManualClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


# =============================================================================
# Navigation driver
# =============================================================================


class FakePage:
    def __init__(self, number: int) -> None:
        self.number = number
        self.url = ""


class FakeDriver:
    """
    Scripted navigation driver.

    ``pages`` maps normalized URLs to the extractions found there. URLs not
    listed load fine and yield nothing, unless ``fail_all`` is set.
    """

    def __init__(
        self,
        pages: dict[str, list[ExtractionResult]] | None = None,
        fail_all: bool = False,
        on_navigate: Callable[[str], Any] | None = None,
    ) -> None:
        self.pages = {normalize_url(url): list(found) for url, found in (pages or {}).items()}
        self.fail_all = fail_all
        self.on_navigate = on_navigate
        self.navigations: list[str] = []
        self.opened = 0
        self.closed = 0

    async def open_page(self) -> FakePage:
        self.opened += 1
        return FakePage(self.opened)

    async def navigate(self, page: FakePage, target: str) -> NavigationResult:
        self.navigations.append(target)
        page.url = target
        if self.on_navigate is not None:
            outcome = self.on_navigate(target)
            if hasattr(outcome, "__await__"):
                await outcome
        if self.fail_all:
            return NavigationResult(success=False, final_url=target, error="connection refused")
        return NavigationResult(success=True, final_url=target, title=target)

    async def extract(self, page: FakePage) -> list[ExtractionResult]:
        found = self.pages.get(normalize_url(page.url), [])
        return [
            ExtractionResult(e.schema_name, dict(e.data), page.url, e.confidence) for e in found
        ]

    async def close_page(self, page: FakePage) -> None:
        self.closed += 1


def make_extraction(
    schema_name: str,
    data: dict[str, Any],
    url: str = "https://acme.com",
    confidence: float = 1.0,
) -> ExtractionResult:
    return ExtractionResult(schema_name=schema_name, data=data, source_url=url, confidence=confidence)


@pytest.fixture
def extraction() -> Callable[..., ExtractionResult]:
    """Factory for extraction results"""
    return make_extraction


@pytest.fixture
def driver_factory() -> type[FakeDriver]:
    return FakeDriver


@pytest.fixture
def acme_pricing() -> ExtractionResult:
    return make_extraction(
        "pricing",
        {"plans": ["Starter", "Pro"], "price": "$10", "billing_period": "month"},
        url="https://acme.com/pricing",
    )


@pytest.fixture
def fake_driver(acme_pricing: ExtractionResult) -> FakeDriver:
    return FakeDriver(pages={"https://acme.com/pricing": [acme_pricing]})


# =============================================================================
# Components
# =============================================================================


@pytest.fixture
def config() -> WebProbeConfig:
    config = WebProbeConfig()
    config.engine.pause_poll_seconds = 0.01
    return config


@pytest.fixture
def metrics() -> ResearchMetrics:
    return ResearchMetrics()


@pytest.fixture
def telemetry(metrics: ResearchMetrics, clock: ManualClock) -> TelemetryEngine:
    return TelemetryEngine(session_id="session-test", metrics=metrics, clock=clock)


@pytest.fixture
def caches(clock: ManualClock) -> CacheManager:
    return CacheManager(CacheConfig(page_max_size=3), clock=clock)


@pytest.fixture
def source_intelligence() -> SourceIntelligence:
    return SourceIntelligence(SourceIntelligenceConfig())


@pytest.fixture
def claim_graph() -> ClaimGraph:
    return ClaimGraph()
