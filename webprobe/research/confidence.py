"""
Confidence Engine
=================

Aggregates per-question claim confidence into one run-level number and
decides when further browsing stops paying off.

Stop conditions, checked in order:
1. Overall confidence reached the plan's threshold
2. Mean of the last 3 marginal gains fell below the budget's floor
3. Time budget used up
4. Page budget used up

Usage:
    engine = ConfidenceEngine(plan, claim_graph)
    engine.update()
    condition = engine.check_stop_condition(pages_visited=12, elapsed_ms=40_000)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from webprobe.core.types import TrustTier
from webprobe.observability.telemetry import StopCondition, StopReason

from .claim_graph import ClaimGraph, tier_baseline
from .types import ConfidenceSnapshot, PrimaryQuestion, ResearchPlan

logger = logging.getLogger("webprobe.research.confidence")

GAIN_WINDOW = 3
PROJECTION_WINDOW = 5
PROJECTION_DECAY = 0.8


@dataclass
class MarginalGain:
    action: str
    before: float
    after: float
    timestamp: float = field(default_factory=time.time)

    @property
    def gain(self) -> float:
        return self.after - self.before


class ConfidenceEngine:
    """Run-level confidence for one plan, fed from a claim graph."""

    def __init__(self, plan: ResearchPlan, claim_graph: ClaimGraph | None = None) -> None:
        self.plan = plan
        self.claim_graph = claim_graph or ClaimGraph()
        self._overall = 0.0
        self._per_question: dict[str, float] = {q.id: 0.0 for q in plan.primary_questions}
        self._gains: list[MarginalGain] = []
        self._logger = logger

    @property
    def updates(self) -> int:
        return len(self._gains)

    def snapshot(self) -> ConfidenceSnapshot:
        return ConfidenceSnapshot(overall=self._overall, per_question=dict(self._per_question))

    def update(self, action: str = "") -> ConfidenceSnapshot:
        """Recompute from the claim graph and record the marginal gain."""
        before = self._overall
        for question in self.plan.primary_questions:
            self._per_question[question.id] = self.claim_graph.get_question_confidence(question.id)

        total_weight = sum(q.priority for q in self.plan.primary_questions)
        if total_weight > 0:
            weighted = sum(
                self._per_question[q.id] * q.priority for q in self.plan.primary_questions
            )
            self._overall = weighted / total_weight
        else:
            self._overall = 0.0

        self._gains.append(MarginalGain(action=action, before=before, after=self._overall))
        self._logger.debug(f"Confidence {before:.3f} -> {self._overall:.3f} after {action or 'update'}")
        return self.snapshot()

    def get_overall_confidence(self) -> float:
        return self._overall

    def get_question_confidence(self, question_id: str) -> float:
        return self._per_question.get(question_id, 0.0)

    def recent_gain(self, window: int = GAIN_WINDOW) -> float | None:
        recent = self._gains[-window:]
        if len(recent) < window:
            return None
        return sum(g.gain for g in recent) / len(recent)

    def check_stop_condition(self, pages_visited: int, elapsed_ms: float) -> StopCondition | None:
        budgets = self.plan.budgets
        threshold = self.plan.confidence_threshold

        if self._overall >= threshold:
            return StopCondition(
                reason=StopReason.CONFIDENCE_REACHED,
                confidence=self._overall,
                message=f"Confidence {self._overall:.1%} reached threshold {threshold:.1%}",
            )

        gain = self.recent_gain()
        if gain is not None and gain < budgets.marginal_gain_floor:
            return StopCondition(
                reason=StopReason.MARGINAL_GAIN_LOW,
                confidence=self._overall,
                message=(
                    f"Marginal gain {gain:.2%} below floor {budgets.marginal_gain_floor:.2%}"
                ),
            )

        if elapsed_ms >= budgets.max_time_ms:
            return StopCondition(
                reason=StopReason.TIME_BUDGET,
                confidence=self._overall,
                message=f"Time budget used: {elapsed_ms / 1000:.1f}s of {budgets.max_time_ms / 1000:.1f}s",
            )

        if pages_visited >= budgets.max_pages:
            return StopCondition(
                reason=StopReason.PAGE_BUDGET,
                confidence=self._overall,
                message=f"Page budget used: {pages_visited} of {budgets.max_pages}",
            )
        return None

    def get_underconfident_questions(self) -> list[PrimaryQuestion]:
        return [
            q
            for q in self.plan.primary_questions
            if self._per_question.get(q.id, 0.0) < q.required_confidence
        ]

    def projected_gain(self) -> float:
        recent = self._gains[-PROJECTION_WINDOW:]
        if not recent:
            return 0.1
        return sum(g.gain for g in recent) / len(recent) * PROJECTION_DECAY

    def estimate_remaining_ms(self, elapsed_ms: float) -> float | None:
        """
        Rough time to threshold from the average time per update and the
        projected gain. ``None`` when progress has stalled.
        """
        gap = self.plan.confidence_threshold - self._overall
        if gap <= 0:
            return 0.0
        projected = self.projected_gain()
        if projected <= 0 or not self._gains:
            return None
        per_update_ms = elapsed_ms / len(self._gains)
        return gap / projected * per_update_ms

    def expected_domain_value(self, tier: TrustTier | int, pages_visited: int) -> float:
        """Value of visiting a domain of ``tier``, with diminishing returns per page."""
        return tier_baseline(TrustTier.coerce(tier)) / (1 + 0.1 * pages_visited)

    def get_summary(self, pages_visited: int = 0, elapsed_ms: float = 0.0) -> dict[str, Any]:
        answered = sum(
            1
            for q in self.plan.primary_questions
            if self._per_question.get(q.id, 0.0) >= q.required_confidence
        )
        recent = self._gains[-PROJECTION_WINDOW:]
        avg_gain = sum(g.gain for g in recent) / len(recent) if recent else 0.0
        budgets = self.plan.budgets
        return {
            "overall": self._overall,
            "overall_pct": f"{self._overall:.1%}",
            "questions_answered": answered,
            "questions_total": len(self.plan.primary_questions),
            "avg_marginal_gain": avg_gain,
            "updates": len(self._gains),
            "pages_visited": pages_visited,
            "elapsed_ms": elapsed_ms,
            "budget_used": {
                "time": elapsed_ms / budgets.max_time_ms if budgets.max_time_ms else 1.0,
                "pages": pages_visited / budgets.max_pages if budgets.max_pages else 1.0,
            },
        }
