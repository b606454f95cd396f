"""
Research Engine - Main Orchestrator
===================================

Thin async driver that wires the planner, caches, source intelligence,
claim graph, confidence engine and telemetry around a navigation driver
supplied by the host.

Flow of one run:
1. Plan and validate the objective
2. Run execution paths concurrently, highest priority first
3. For every URL: cache first, else navigate and extract
4. Feed extractions into the claim graph and source intelligence
5. Re-prioritize the plan after each path, stop on the first stop condition
6. Finalize the plan and build answers

Usage:
    engine = ResearchEngine(config, driver=my_playwright_driver)
    engine.telemetry.subscribe_progress(print)

    result = await engine.research(ResearchObjective(query="What is Acme's pricing?"))
    for answer in result.answers:
        print(answer.question, answer.value, answer.confidence_score)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from webprobe.cache.manager import CacheManager, PageSnapshot
from webprobe.core.config import WebProbeConfig
from webprobe.core.exceptions import EngineBusyError, PlanningError, StateImportError
from webprobe.core.helpers import extract_domain, normalize_url
from webprobe.core.types import ConfidenceLevel, ExtractionResult, TrustTier
from webprobe.logging_config import session_context
from webprobe.observability.metrics import ResearchMetrics
from webprobe.observability.telemetry import (
    ExecutionStatus,
    StopCondition,
    StopReason,
    TelemetryEngine,
)
from webprobe.observability.tracing import ResearchTracer, SpanAttributes

from .claim_graph import ClaimGraph
from .confidence import ConfidenceEngine
from .planner import Planner
from .rules import apply_confidence_rules
from .source_intelligence import SourceIntelligence
from .types import (
    EXTRACTION_SCHEMAS,
    Claim,
    ClaimSource,
    ExecutionPath,
    OperatorMode,
    PathStatus,
    PrimaryQuestion,
    ResearchObjective,
    ResearchPlan,
    ScoringContext,
    VisitOutcome,
)

logger = logging.getLogger("webprobe.research.engine")


# =============================================================================
# Navigation collaborator
# =============================================================================


@dataclass
class NavigationResult:
    success: bool
    final_url: str
    error: str | None = None
    blocked: bool = False
    title: str = ""
    text: str = ""


class NavigationDriver(Protocol):
    """Browser automation supplied by the host; the engine never sees markup."""

    async def open_page(self) -> Any:
        ...

    async def navigate(self, page: Any, target: str) -> NavigationResult:
        ...

    async def extract(self, page: Any) -> list[ExtractionResult]:
        ...

    async def close_page(self, page: Any) -> None:
        ...


# =============================================================================
# Results
# =============================================================================


@dataclass
class Answer:
    question_id: str
    question: str
    value: Any
    confidence_level: ConfidenceLevel
    confidence_score: float
    sources: list[ClaimSource] = field(default_factory=list)
    reasoning: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "question": self.question,
            "value": self.value,
            "confidence_level": self.confidence_level.value,
            "confidence_score": self.confidence_score,
            "sources": [s.to_dict() for s in self.sources],
            "reasoning": self.reasoning,
        }


@dataclass
class ResearchResult:
    session_id: str
    objective: ResearchObjective
    plan: ResearchPlan
    success: bool
    answers: list[Answer]
    claims: list[Claim]
    confidence: float
    stats: dict[str, Any]
    visited_urls: list[str]
    stop_condition: StopCondition | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "objective": self.objective.to_dict(),
            "plan": self.plan.to_dict(),
            "success": self.success,
            "answers": [a.to_dict() for a in self.answers],
            "claims": [c.to_dict() for c in self.claims],
            "confidence": self.confidence,
            "stats": self.stats,
            "visited_urls": list(self.visited_urls),
            "stop_condition": self.stop_condition.to_dict() if self.stop_condition else None,
        }


@dataclass
class _RunState:
    """Mutable bookkeeping of one ``research()`` call."""

    plan: ResearchPlan
    telemetry: TelemetryEngine
    confidence: ConfidenceEngine
    semaphore: asyncio.Semaphore
    started: float = field(default_factory=time.monotonic)
    visited: list[str] = field(default_factory=list)
    active_paths: int = 0

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000


# =============================================================================
# Engine
# =============================================================================


class ResearchEngine:
    """
    Runs research objectives against a navigation driver.

    One run at a time per engine; a second concurrent ``research()`` call
    raises ``EngineBusyError``. Components not passed in are built from
    ``config``.
    """

    def __init__(
        self,
        config: WebProbeConfig | None = None,
        driver: NavigationDriver | None = None,
        planner: Planner | None = None,
        source_intelligence: SourceIntelligence | None = None,
        claim_graph: ClaimGraph | None = None,
        caches: CacheManager | None = None,
        telemetry: TelemetryEngine | None = None,
        metrics: ResearchMetrics | None = None,
        tracer: ResearchTracer | None = None,
    ) -> None:
        self.config = config or WebProbeConfig()
        self.driver = driver
        self.metrics = metrics or ResearchMetrics()
        self.tracer = tracer or ResearchTracer()
        self.source_intelligence = source_intelligence or SourceIntelligence(
            self.config.source_intelligence
        )
        self.claim_graph = claim_graph or ClaimGraph(self.config.claim_graph)
        self.caches = caches or CacheManager(self.config.cache)
        self.planner = planner or Planner(
            self.source_intelligence,
            mode=OperatorMode(self.config.engine.mode),
            tracer=self.tracer,
        )
        self.telemetry = telemetry or self._new_telemetry()

        self._running = False
        self._runs = 0
        self._logger = logger

    def _new_telemetry(self) -> TelemetryEngine:
        return TelemetryEngine(self.config.telemetry, metrics=self.metrics, tracer=self.tracer)

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Host control

    def pause(self, reason: str = "") -> bool:
        return self.telemetry.pause(reason)

    def resume(self, reason: str = "") -> bool:
        return self.telemetry.resume(reason)

    def stop(self, reason: str = "User requested stop") -> StopCondition:
        return self.telemetry.stop(reason, StopReason.USER_STOP)

    # ------------------------------------------------------------------
    # Run

    async def research(
        self,
        objective: ResearchObjective,
        telemetry: TelemetryEngine | None = None,
    ) -> ResearchResult:
        """
        Plan and execute ``objective``.

        Uses ``telemetry`` when given, else the engine's idle telemetry, else
        a fresh one, so hosts can subscribe before the run starts.

        Raises:
            EngineBusyError: A run is already in progress on this engine
        """
        if self.driver is None:
            raise ValueError("A navigation driver is required to run research")
        if self._running:
            raise EngineBusyError(self.telemetry.session_id)

        self._running = True
        if telemetry is not None:
            self.telemetry = telemetry
        elif self.telemetry.status != ExecutionStatus.IDLE:
            self.telemetry = self._new_telemetry()
        telemetry = self.telemetry

        try:
            with session_context(telemetry.session_id):
                return await self._run(objective, telemetry)
        finally:
            self._running = False
            self._runs += 1

    async def _run(self, objective: ResearchObjective, telemetry: TelemetryEngine) -> ResearchResult:
        self._housekeeping()
        telemetry.start("Generating research plan")

        try:
            plan = self.planner.generate_plan(objective)
        except Exception as e:
            telemetry.record_error(f"Planning failed: {e}", recoverable=False)
            telemetry.stop(str(e), StopReason.ERROR)
            raise PlanningError(f"Planning failed: {e}", cause=e, recoverable=False) from e

        confidence = ConfidenceEngine(plan, self.claim_graph)
        run = _RunState(
            plan=plan,
            telemetry=telemetry,
            confidence=confidence,
            semaphore=asyncio.Semaphore(
                max(1, min(plan.budgets.max_concurrency or 1, self.config.engine.parallelism))
            ),
        )

        if not plan.is_valid:
            telemetry.record_error(
                f"Invalid plan: {', '.join(plan.validation_errors)}",
                recoverable=False,
                details={"plan_id": plan.id},
            )
            telemetry.stop("Invalid plan", StopReason.ERROR)
            return self._finish(run)

        if plan.mode == OperatorMode.SIMULATION:
            telemetry.stop("Simulation mode: plan only", StopReason.PATHS_EXHAUSTED)
            return self._finish(run)

        telemetry.begin_execution(plan.summary())
        telemetry.record_strategy_shift("executing", "Plan ready")
        self.planner.adjust_plan(plan, confidence.snapshot())

        try:
            await self._execute(run)
        except Exception as e:
            telemetry.record_error(f"Execution failed: {e}", recoverable=False)
            telemetry.stop(str(e), StopReason.ERROR)
            raise

        if telemetry.get_stop_condition() is None:
            telemetry.stop("All execution paths finished", StopReason.PATHS_EXHAUSTED)
        return self._finish(run)

    def _housekeeping(self) -> None:
        if self.config.source_intelligence.stale_after_seconds is not None:
            self.source_intelligence.forget_stale()
        if self.config.claim_graph.stale_after_seconds is not None:
            self.claim_graph.prune_stale()
        self.caches.cleanup()

    def _should_stop(self, run: _RunState) -> bool:
        return run.telemetry.has_pending_stop() or run.telemetry.status in (
            ExecutionStatus.FAILED,
            ExecutionStatus.COMPLETED,
        )

    async def _wait_while_paused(self, run: _RunState) -> None:
        while run.telemetry.is_paused() and not self._should_stop(run):
            await asyncio.sleep(self.config.engine.pause_poll_seconds)

    def _next_path(self, plan: ResearchPlan) -> ExecutionPath | None:
        for path in plan.execution_paths:
            if path.status == PathStatus.PENDING:
                return path
        return None

    async def _execute(self, run: _RunState) -> None:
        tasks: set[asyncio.Task[None]] = set()
        try:
            while True:
                await self._wait_while_paused(run)
                if self._should_stop(run):
                    break
                await run.semaphore.acquire()
                path = self._next_path(run.plan)
                if path is None or self._should_stop(run):
                    run.semaphore.release()
                    break
                path.status = PathStatus.ACTIVE
                task = asyncio.create_task(self._run_path(path, run))
                tasks.add(task)
                task.add_done_callback(tasks.discard)
        finally:
            if tasks:
                await asyncio.gather(*tasks)

    # ------------------------------------------------------------------
    # Paths

    def _urls_for_path(self, path: ExecutionPath, plan: ResearchPlan) -> list[str]:
        targets = {d.domain: d for d in plan.target_domains}
        urls: list[str] = []
        for domain in path.domain_scope:
            urls.extend(self.caches.get_high_signal_urls(domain))
            target = targets.get(domain)
            pages = target.expected_pages if target and target.expected_pages else ["/"]
            urls.extend(f"https://{domain}{page}" for page in pages)

        seen: set[str] = set()
        unique = []
        for url in urls:
            key = normalize_url(url)
            if key not in seen:
                seen.add(key)
                unique.append(url)
        return unique[: self.config.engine.max_urls_per_path]

    async def _run_path(self, path: ExecutionPath, run: _RunState) -> None:
        telemetry = run.telemetry
        run.active_paths += 1
        telemetry.update_active_paths(run.active_paths)
        page = None
        failures = 0

        try:
            with self.tracer.span(
                "webprobe.path",
                {SpanAttributes.PATH_ID: path.id, SpanAttributes.PLAN_ID: run.plan.id},
            ):
                page = await self.driver.open_page()
                for url in self._urls_for_path(path, run.plan):
                    await self._wait_while_paused(run)
                    if self._should_stop(run):
                        break

                    key = normalize_url(url)
                    if key in run.visited:
                        continue
                    domain = extract_domain(url)
                    if self.source_intelligence.should_avoid(domain):
                        telemetry.record_blocked(url, "Low-quality source")
                        continue
                    run.visited.append(key)

                    if await self._visit(url, path, page, run):
                        failures = 0
                    else:
                        failures += 1
                        if failures >= self.config.engine.max_consecutive_failures:
                            path.status = PathStatus.TERMINATED
                            telemetry.record_path_terminated(
                                path.id, f"{failures} consecutive failures"
                            )
                            break

                    self._check_stop(run)

        except Exception as e:
            path.status = PathStatus.TERMINATED
            telemetry.record_error(
                f"Path {path.id} failed: {e}", recoverable=True, details={"path_id": path.id}
            )
        finally:
            if page is not None:
                try:
                    await self.driver.close_page(page)
                except Exception as e:
                    self._logger.warning(f"Failed to close page for path {path.id}: {e}")
            if path.status == PathStatus.ACTIVE:
                path.status = PathStatus.COMPLETED
            run.active_paths -= 1
            telemetry.update_active_paths(run.active_paths)
            self.planner.adjust_plan(run.plan, run.confidence.snapshot())
            run.semaphore.release()

    def _check_stop(self, run: _RunState) -> None:
        if self._should_stop(run):
            return
        progress = run.telemetry.get_progress()
        condition = run.confidence.check_stop_condition(progress.pages_visited, run.elapsed_ms)
        if condition is not None:
            run.telemetry.stop(condition.message, condition.reason)

    async def _visit(self, url: str, path: ExecutionPath, page: Any, run: _RunState) -> bool:
        """One URL: cached extractions or a fresh page load. False on failure."""
        telemetry = run.telemetry
        domain = extract_domain(url)

        extractions = self.caches.get_extractions(url)
        if extractions is None:
            started = time.perf_counter()
            try:
                result = await self.driver.navigate(page, url)
            except Exception as e:
                result = NavigationResult(success=False, final_url=url, error=str(e))
            duration_ms = (time.perf_counter() - started) * 1000

            telemetry.record_page_load(url, result.success, duration_ms, result.error)
            if not result.success:
                if result.blocked:
                    telemetry.record_blocked(url, result.error or "blocked")
                else:
                    telemetry.record_error(
                        f"Navigation failed: {url}",
                        recoverable=True,
                        details={"url": url, "error": result.error},
                    )
                self.source_intelligence.update_source_intelligence(
                    domain,
                    VisitOutcome(url, False, blocked=result.blocked, duration_ms=duration_ms),
                )
                return False

            try:
                extractions = await self.driver.extract(page)
            except Exception as e:
                telemetry.record_error(
                    f"Extraction failed: {url}", recoverable=True, details={"error": str(e)}
                )
                extractions = []

            self.caches.set_extractions(url, extractions)
            if result.text:
                self.caches.set_page(
                    PageSnapshot(url=result.final_url or url, text=result.text, title=result.title)
                )
                self.source_intelligence.score_domain(
                    domain, ScoringContext(url=url, content=result.text)
                )
            self.source_intelligence.update_source_intelligence(
                domain,
                VisitOutcome(url, True, extraction_count=len(extractions), duration_ms=duration_ms),
            )
            if extractions:
                self.caches.update_domain_map(domain, [url])

        accepted = self._ingest(url, domain, path, extractions, run)
        schemas = sorted({e.schema_name for e in extractions})
        telemetry.record_extraction(url, ",".join(schemas), accepted)

        snapshot = run.confidence.update(f"visited:{url}")
        telemetry.update_confidence(snapshot.overall)
        telemetry.update_estimated_remaining(run.confidence.estimate_remaining_ms(run.elapsed_ms))
        return True

    def _tier_for(self, domain: str, plan: ResearchPlan) -> TrustTier:
        tier = self.source_intelligence.classify_domain(domain)
        for target in plan.target_domains:
            if domain == target.domain or domain.endswith(f".{target.domain}"):
                return min(tier, target.expected_tier)
        return tier

    def _match_question(
        self, path: ExecutionPath, plan: ResearchPlan, schema_name: str
    ) -> PrimaryQuestion | None:
        for question_id in path.question_ids:
            question = plan.get_question(question_id)
            if question is not None and question.schema_name == schema_name:
                return question
        return None

    def _ingest(
        self,
        url: str,
        domain: str,
        path: ExecutionPath,
        extractions: list[ExtractionResult],
        run: _RunState,
    ) -> int:
        telemetry = run.telemetry
        tier = self._tier_for(domain, run.plan)
        min_confidence = self.config.engine.min_extraction_confidence
        accepted = 0
        touched_questions: set[str] = set()

        for extraction in extractions:
            schema = EXTRACTION_SCHEMAS.get(extraction.schema_name)
            if schema is not None and not schema.conforms(extraction.data):
                self._logger.debug(
                    f"Dropped {extraction.schema_name} from {url}: "
                    f"missing {schema.missing_fields(extraction.data)}"
                )
                continue
            rules = schema.confidence_rules if schema is not None else ()
            adjusted = apply_confidence_rules(extraction.confidence, extraction.data, rules)
            if adjusted < min_confidence:
                self._logger.debug(
                    f"Dropped {extraction.schema_name} from {url}: confidence {adjusted:.2f}"
                )
                continue

            question = self._match_question(path, run.plan, extraction.schema_name)
            question_id = question.id if question is not None else None
            result = self.claim_graph.ingest(
                extraction, url, tier, question_id, category=extraction.schema_name
            )
            claim = result.claim
            accepted += 1

            if result.created:
                telemetry.record_claim_found(claim.id, claim.text, claim.confidence_score)
            elif result.corroborated:
                event = claim.verification_history[-1]
                telemetry.record_verification(
                    claim.id, "corroborated", event.confidence_before, event.confidence_after
                )
            for other_id in result.contradicted:
                other = self.claim_graph.get_claim(other_id)
                if other is not None and other.verification_history:
                    event = other.verification_history[-1]
                    telemetry.record_verification(
                        other_id, "contradicted", event.confidence_before, event.confidence_after
                    )

            if question_id:
                touched_questions.add(question_id)

        for question_id in touched_questions:
            self.source_intelligence.update_consistency(
                self.claim_graph.consistency_observations(question_id)
            )
        return accepted

    # ------------------------------------------------------------------
    # Results

    def _finish(self, run: _RunState) -> ResearchResult:
        plan = run.plan
        plan.finalized = True
        telemetry = run.telemetry

        answers = []
        for question in plan.primary_questions:
            best = self.claim_graph.get_best_answer_for_question(question.id)
            if best is None:
                answers.append(
                    Answer(
                        question_id=question.id,
                        question=question.text,
                        value=None,
                        confidence_level=ConfidenceLevel.UNCERTAIN,
                        confidence_score=0.0,
                        reasoning="No data found",
                    )
                )
                continue
            answers.append(
                Answer(
                    question_id=question.id,
                    question=question.text,
                    value=best.normalized_value,
                    confidence_level=best.confidence_level,
                    confidence_score=best.confidence_score,
                    sources=list(best.sources),
                    reasoning=(
                        f"Based on {len(best.sources)} source(s) with "
                        f"{best.corroboration_count} corroboration(s)"
                    ),
                )
            )

        claims = [
            c
            for q in plan.primary_questions
            for c in self.claim_graph.get_claims_for_question(q.id)
        ]
        graph_stats = self.claim_graph.get_stats()
        cache_stats = self.caches.get_stats()
        self.metrics.set_cache_hit_rate(cache_stats["hit_rate"])
        progress = telemetry.get_progress()
        overall = run.confidence.get_overall_confidence()

        stats = {
            "total_time_ms": run.elapsed_ms,
            "pages_visited": progress.pages_visited,
            "claims_found": progress.claims_found,
            "claims_verified": graph_stats["by_level"][ConfidenceLevel.VERIFIED.value]
            + graph_stats["by_level"][ConfidenceLevel.HIGH.value],
            "contradictions_found": graph_stats["relationships"],
            "cache_hits": cache_stats["hits"],
            "cache_misses": cache_stats["misses"],
            "paths_completed": sum(
                1 for p in plan.execution_paths if p.status == PathStatus.COMPLETED
            ),
            "paths_terminated": sum(
                1 for p in plan.execution_paths if p.status == PathStatus.TERMINATED
            ),
            "avg_confidence_per_page": overall / max(progress.pages_visited, 1),
        }

        result = ResearchResult(
            session_id=telemetry.session_id,
            objective=plan.objective,
            plan=plan,
            success=any(a.confidence_score > 0.5 for a in answers),
            answers=answers,
            claims=claims,
            confidence=overall,
            stats=stats,
            visited_urls=list(run.visited),
            stop_condition=telemetry.get_stop_condition(),
        )
        self._logger.info(
            f"Run {telemetry.session_id} finished: {len(answers)} answers, "
            f"confidence={overall:.2f}, pages={progress.pages_visited}"
        )
        return result

    # ------------------------------------------------------------------
    # State

    def export_state(self) -> dict[str, Any]:
        return {
            "cache": self.caches.export_state(),
            "source_intelligence": self.source_intelligence.export_state(),
            "claim_graph": self.claim_graph.export_state(),
        }

    def import_state(self, state: dict[str, Any]) -> None:
        """
        Restore exported state. A corrupted snapshot is reported on the
        telemetry error channel as unrecoverable and re-raised.
        """
        try:
            if not isinstance(state, dict):
                raise StateImportError("engine", f"expected a mapping, got {type(state).__name__}")
            if "cache" in state:
                self.caches.import_state(state["cache"])
            if "source_intelligence" in state:
                self.source_intelligence.import_state(state["source_intelligence"])
            if "claim_graph" in state:
                self.claim_graph.import_state(state["claim_graph"])
        except StateImportError as e:
            self.telemetry.record_error(str(e), recoverable=False, details=e.details)
            raise

    def get_stats(self) -> dict[str, Any]:
        return {
            "runs": self._runs,
            "running": self._running,
            "cache": self.caches.get_stats(),
            "source_intelligence": self.source_intelligence.get_stats(),
            "claim_graph": self.claim_graph.get_stats(),
            "telemetry": self.telemetry.get_stats(),
            "metrics": self.metrics.get_metrics(),
        }


def create_research_engine(
    driver: NavigationDriver,
    config: WebProbeConfig | None = None,
    mode: OperatorMode | str | None = None,
) -> ResearchEngine:
    """Engine with default components; ``mode`` overrides the configured one."""
    config = config or WebProbeConfig()
    if mode is not None:
        config.engine.mode = OperatorMode(mode).value
    return ResearchEngine(config, driver=driver)
