"""
Tests for the async research engine
"""

import asyncio
import json

import pytest

from webprobe.core.exceptions import EngineBusyError, StateImportError
from webprobe.core.types import ConfidenceLevel
from webprobe.observability.telemetry import (
    CommandType,
    ExecutionStatus,
    StopReason,
    TelemetryEventType,
)
from webprobe.research.engine import ResearchEngine, create_research_engine
from webprobe.research.types import ResearchConstraints, ResearchObjective

PRICING_PAGES = [
    "https://acme.com/",
    "https://acme.com/about",
    "https://acme.com/pricing",
    "https://acme.com/features",
]


def _objective(**kwargs):
    kwargs.setdefault("known_domains", ("acme.com",))
    return ResearchObjective(query="What is Acme's pricing?", **kwargs)


@pytest.fixture
def engine(config, fake_driver):
    return ResearchEngine(config, driver=fake_driver)


class TestResearchRun:
    """End-to-end runs against the scripted driver"""

    @pytest.mark.asyncio
    async def test_answers_question(self, engine, fake_driver):
        result = await engine.research(_objective())

        assert result.success is True
        assert len(result.answers) == 1
        answer = result.answers[0]
        assert answer.value["price"] == "$10"
        assert answer.confidence_score == pytest.approx(0.7)
        assert answer.confidence_level == ConfidenceLevel.VERIFIED
        assert [s.domain for s in answer.sources] == ["acme.com"]

        assert fake_driver.navigations == PRICING_PAGES
        assert fake_driver.opened == fake_driver.closed == 1
        assert result.stop_condition.reason == StopReason.PATHS_EXHAUSTED
        assert result.plan.finalized is True
        assert engine.telemetry.status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stats(self, engine):
        result = await engine.research(_objective())

        stats = result.stats
        assert stats["pages_visited"] == 4
        assert stats["claims_found"] == 1
        assert stats["claims_verified"] == 1
        assert stats["contradictions_found"] == 0
        assert stats["cache_misses"] == 4
        assert stats["paths_completed"] == 1
        assert stats["paths_terminated"] == 0
        assert len(result.visited_urls) == 4
        assert engine.metrics.sample("webprobe_claims_total") == 1.0

    @pytest.mark.asyncio
    async def test_confidence_threshold_stops_run(self, engine, fake_driver):
        result = await engine.research(_objective(required_confidence=0.6))

        assert result.stop_condition.reason == StopReason.CONFIDENCE_REACHED
        assert fake_driver.navigations == PRICING_PAGES[:3]

    @pytest.mark.asyncio
    async def test_corroboration_across_domains(self, config, driver_factory, extraction):
        data = {"plans": ["Starter", "Pro"], "price": "$10"}
        driver = driver_factory(
            pages={
                "https://acme.com/pricing": [extraction("pricing", data)],
                "https://docs.acme.com/": [extraction("pricing", data)],
            }
        )
        engine = ResearchEngine(config, driver=driver)
        verifications = engine.telemetry.subscribe_events()

        result = await engine.research(_objective(known_domains=("acme.com", "docs.acme.com")))

        answer = result.answers[0]
        assert answer.confidence_score == pytest.approx(0.85)
        assert answer.confidence_level == ConfidenceLevel.VERIFIED
        assert {s.domain for s in answer.sources} == {"acme.com", "docs.acme.com"}
        assert result.stop_condition.reason == StopReason.CONFIDENCE_REACHED
        outcomes = [
            e.data["outcome"]
            for e in verifications.drain()
            if e.type == TelemetryEventType.VERIFICATION
        ]
        assert outcomes == ["corroborated"]

    @pytest.mark.asyncio
    async def test_low_quality_extractions_dropped(self, config, driver_factory, extraction):
        driver = driver_factory(
            pages={
                "https://acme.com/pricing": [
                    extraction("pricing", {"currency": "USD"}, confidence=0.1),
                    extraction("features", {"highlights": ["fast"]}),
                ]
            }
        )
        engine = ResearchEngine(config, driver=driver)

        result = await engine.research(_objective())

        assert engine.claim_graph.get_all_claims() == []
        assert result.success is False
        assert result.answers[0].value is None
        assert result.answers[0].reasoning == "No data found"

    @pytest.mark.asyncio
    async def test_consecutive_failures_terminate_path(self, config, driver_factory):
        driver = driver_factory(fail_all=True)
        engine = ResearchEngine(config, driver=driver)

        result = await engine.research(_objective())

        assert driver.navigations == PRICING_PAGES[:3]
        assert engine.telemetry.get_events(TelemetryEventType.BLOCKED) == []
        assert len(engine.telemetry.get_events(TelemetryEventType.PATH_TERMINATED)) == 1
        assert result.stats["paths_terminated"] == 1
        assert engine.source_intelligence.should_avoid("acme.com") is False
        assert result.success is False
        assert result.stop_condition.reason == StopReason.PATHS_EXHAUSTED
        assert engine.telemetry.status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_second_run_reuses_cache(self, engine, fake_driver):
        await engine.research(_objective())
        first_session = engine.telemetry.session_id

        result = await engine.research(_objective())

        assert engine.telemetry.session_id != first_session
        assert len(fake_driver.navigations) == 4
        assert result.stats["cache_hits"] >= 4
        assert result.answers[0].confidence_score == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_requires_driver(self, config):
        with pytest.raises(ValueError):
            await ResearchEngine(config).research(_objective())


class TestRunControl:
    """Tests for host-driven pause, resume and stop"""

    @pytest.mark.asyncio
    async def test_user_stop(self, engine, fake_driver):
        fake_driver.on_navigate = lambda url: engine.stop("operator")
        stops = engine.telemetry.subscribe_stop()

        result = await engine.research(_objective())

        assert fake_driver.navigations == PRICING_PAGES[:1]
        assert result.stop_condition.reason == StopReason.USER_STOP
        assert result.stop_condition.message == "operator"
        assert len(stops.drain()) == 1
        assert fake_driver.opened == fake_driver.closed

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, engine, fake_driver):
        paused = []

        def pause_once(url):
            if not paused:
                paused.append(engine.pause("operator"))
                asyncio.get_running_loop().call_later(0.05, engine.resume)

        fake_driver.on_navigate = pause_once
        commands = engine.telemetry.subscribe_commands()

        result = await engine.research(_objective())

        assert paused == [True]
        assert fake_driver.navigations == PRICING_PAGES
        assert [c.type for c in commands.drain()] == [
            CommandType.PAUSE,
            CommandType.RESUME,
            CommandType.STOP,
        ]
        assert result.stop_condition.reason == StopReason.PATHS_EXHAUSTED

    @pytest.mark.asyncio
    async def test_one_run_at_a_time(self, engine, fake_driver):
        gate = asyncio.Event()
        fake_driver.on_navigate = lambda url: gate.wait()

        task = asyncio.create_task(engine.research(_objective()))
        while not engine.is_running:
            await asyncio.sleep(0)

        with pytest.raises(EngineBusyError):
            await engine.research(_objective())

        gate.set()
        result = await task
        assert result.success is True
        assert engine.is_running is False


class TestPlanOutcomes:
    @pytest.mark.asyncio
    async def test_invalid_plan_fails_run(self, engine, fake_driver):
        errors = engine.telemetry.subscribe_errors()

        result = await engine.research(
            _objective(constraints=ResearchConstraints(max_pages=0))
        )

        assert result.success is False
        assert result.plan.is_valid is False
        assert result.stop_condition.reason == StopReason.ERROR
        assert engine.telemetry.status == ExecutionStatus.FAILED
        assert len(errors.drain()) == 1
        assert fake_driver.navigations == []

    @pytest.mark.asyncio
    async def test_simulation_never_navigates(self, config, fake_driver):
        engine = create_research_engine(fake_driver, config, mode="simulation")

        result = await engine.research(_objective())

        assert result.plan.is_valid is True
        assert fake_driver.navigations == []
        assert result.stop_condition.reason == StopReason.PATHS_EXHAUSTED
        assert [a.confidence_level for a in result.answers] == [ConfidenceLevel.UNCERTAIN]


class TestState:
    """Tests for export_state / import_state"""

    @pytest.mark.asyncio
    async def test_export_import_roundtrip(self, engine, config, driver_factory):
        await engine.research(_objective())
        state = json.loads(json.dumps(engine.export_state()))

        restored = ResearchEngine(config, driver=driver_factory())
        restored.import_state(state)

        assert len(restored.claim_graph.get_all_claims()) == 1
        assert restored.caches.get_extractions("https://acme.com/pricing")[0].data["price"] == "$10"
        assert restored.source_intelligence.get_intelligence("acme.com").visits == 4

    def test_corrupted_state_reported(self, engine):
        errors = engine.telemetry.subscribe_errors()

        with pytest.raises(StateImportError):
            engine.import_state({"claim_graph": {"claims": [{"id": "broken"}]}})

        received = errors.drain()
        assert len(received) == 1
        assert received[0].recoverable is False
        assert received[0].details["component"] == "claim_graph"

    def test_state_must_be_mapping(self, engine):
        with pytest.raises(StateImportError):
            engine.import_state(["not", "a", "mapping"])

    def test_stats(self, engine):
        stats = engine.get_stats()

        assert stats["runs"] == 0
        assert stats["running"] is False
        assert stats["telemetry"]["status"] == "idle"
