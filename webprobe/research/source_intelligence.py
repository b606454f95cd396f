"""
Source Intelligence
===================

Classifies domains into five trust tiers and keeps a five-dimension
quality score per domain that adapts to what the run observes.

Dimensions and weights of the overall score:
- authority    0.30
- originality  0.25
- freshness    0.15
- specificity  0.20
- consistency  0.10

Usage:
    intel = SourceIntelligence()
    intel.classify_domain("docs.acme.com")            # TrustTier.TIER_1
    score = intel.score_domain("acme.com", ScoringContext(content=page_text))
    ranked = intel.rank_domains(["reddit.com", "github.com"])
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from webprobe.core.config import SourceIntelligenceConfig
from webprobe.core.exceptions import StateImportError
from webprobe.core.helpers import normalize_domain, url_path
from webprobe.core.types import TrustTier

from .types import DomainIntelligence, DomainScore, ScoringContext, VisitOutcome

logger = logging.getLogger("webprobe.research.source_intelligence")

SCORE_WEIGHTS: dict[str, float] = {
    "authority": 0.30,
    "originality": 0.25,
    "freshness": 0.15,
    "specificity": 0.20,
    "consistency": 0.10,
}

NEUTRAL_SCORE = 0.5
FRESHNESS_DECAY_PER_YEAR = 0.2
LONG_CONTENT_WORDS = 500
SHORT_CONTENT_WORDS = 100


@dataclass(frozen=True)
class TierRule:
    pattern: re.Pattern[str]
    tier: TrustTier
    category: str
    authority: float
    originality: float
    specificity: float
    examples: tuple[str, ...] = ()

    def matches(self, domain: str) -> bool:
        return bool(self.pattern.search(domain))


def _rule(
    pattern: str,
    tier: int,
    category: str,
    authority: float,
    originality: float,
    specificity: float,
    examples: tuple[str, ...] = (),
) -> TierRule:
    return TierRule(
        re.compile(pattern, re.IGNORECASE),
        TrustTier(tier),
        category,
        authority,
        originality,
        specificity,
        examples,
    )


# Order matters: the first matching rule wins.
TIER_RULES: tuple[TierRule, ...] = (
    # Tier 1: official sites, documentation, code, filings
    _rule(r"(^|\.)github\.com$", 1, "code", 0.95, 0.95, 0.9, ("github.com",)),
    _rule(r"(^|\.)gitlab\.com$", 1, "code", 0.9, 0.95, 0.9, ("gitlab.com",)),
    _rule(r"(^|\.)sec\.gov$", 1, "filings", 1.0, 1.0, 0.95, ("sec.gov",)),
    _rule(r"\.gov$", 1, "official", 1.0, 0.95, 0.8),
    _rule(r"^docs\.", 1, "docs", 0.9, 0.9, 0.95),
    _rule(r"^developers?\.", 1, "docs", 0.9, 0.9, 0.9),
    # Tier 2: first-party blogs, professional networks, funding databases
    _rule(r"^blog\.", 2, "blog", 0.8, 0.9, 0.7),
    _rule(r"(^|\.)crunchbase\.com$", 2, "company_info", 0.85, 0.7, 0.9, ("crunchbase.com",)),
    _rule(r"(^|\.)linkedin\.com$", 2, "company_info", 0.8, 0.75, 0.8, ("linkedin.com",)),
    _rule(r"(^|\.)pitchbook\.com$", 2, "funding", 0.9, 0.8, 0.9, ("pitchbook.com",)),
    # Tier 3: reputable news and reviews
    _rule(r"(^|\.)techcrunch\.com$", 3, "news", 0.75, 0.7, 0.6, ("techcrunch.com",)),
    _rule(r"(^|\.)bloomberg\.com$", 3, "news", 0.85, 0.75, 0.7, ("bloomberg.com",)),
    _rule(r"(^|\.)reuters\.com$", 3, "news", 0.9, 0.8, 0.7, ("reuters.com",)),
    _rule(r"(^|\.)wsj\.com$", 3, "news", 0.9, 0.75, 0.7, ("wsj.com",)),
    _rule(r"(^|\.)g2\.com$", 3, "reviews", 0.7, 0.65, 0.8, ("g2.com",)),
    _rule(r"(^|\.)capterra\.com$", 3, "reviews", 0.7, 0.6, 0.75, ("capterra.com",)),
    _rule(r"(^|\.)trustradius\.com$", 3, "reviews", 0.7, 0.65, 0.75, ("trustradius.com",)),
    # Tier 4: forums and Q&A, corroboration only
    _rule(r"(^|\.)reddit\.com$", 4, "forum", 0.4, 0.8, 0.5, ("reddit.com",)),
    _rule(r"(^|\.)quora\.com$", 4, "forum", 0.35, 0.6, 0.4, ("quora.com",)),
    _rule(r"(^|\.)stackexchange\.com$", 4, "forum", 0.6, 0.7, 0.7, ("stackexchange.com",)),
    _rule(r"(^|\.)stackoverflow\.com$", 4, "forum", 0.65, 0.7, 0.75, ("stackoverflow.com",)),
    _rule(r"(^|\.)ycombinator\.com$", 4, "forum", 0.55, 0.8, 0.6, ("news.ycombinator.com",)),
    # Tier 5: content farms and SEO, actively penalized
    _rule(r"(^|\.)medium\.com$", 5, "blog", 0.3, 0.4, 0.3),
    _rule(r"\.blogspot\.", 5, "blog", 0.2, 0.3, 0.2),
    _rule(r"(^|\.)wordpress\.com$", 5, "blog", 0.25, 0.35, 0.25),
    _rule(r"(^|\.)hubspot\.com$", 5, "seo", 0.3, 0.2, 0.3),
)

BLOCKED_DOMAINS: frozenset[str] = frozenset(
    {
        "pinterest.com",
        "pinterest.co.uk",
        "facebook.com",
        "instagram.com",
        "twitter.com",
        "x.com",
        "tiktok.com",
        "youtube.com",
        "amazon.com",
        "ebay.com",
    }
)

MONTHS = (
    "january|february|march|april|may|june|july|august|september|october|november|december"
    "|jan|feb|mar|apr|jun|jul|aug|sep|sept|oct|nov|dec"
)

DATE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?:updated|published|posted|modified)\s*(?:on)?\s*:?\s*(\d{4})", re.I),
    re.compile(r"\b(\d{4})-\d{2}-\d{2}\b"),
    re.compile(r"\b\d{1,2}/\d{1,2}/(\d{4})\b"),
    re.compile(rf"\b(?:{MONTHS})\.?\s+\d{{1,2}},?\s+(\d{{4}})\b", re.I),
    re.compile(rf"\b\d{{1,2}}\s+(?:{MONTHS})\.?\s+(\d{{4}})\b", re.I),
    re.compile(r"(?:©|\(c\)|copyright)\s*(?:\d{4}\s*-\s*)?(\d{4})", re.I),
)


def most_recent_year(content: str, current_year: int | None = None) -> int | None:
    """Latest plausible year mentioned in a date-like context, if any."""
    current_year = current_year or datetime.now().year
    years = [
        int(match)
        for pattern in DATE_PATTERNS
        for match in pattern.findall(content)
        if 1990 <= int(match) <= current_year
    ]
    return max(years) if years else None


def overall_score(score: DomainScore) -> float:
    return (
        SCORE_WEIGHTS["authority"] * score.authority
        + SCORE_WEIGHTS["originality"] * score.originality
        + SCORE_WEIGHTS["freshness"] * score.freshness
        + SCORE_WEIGHTS["specificity"] * score.specificity
        + SCORE_WEIGHTS["consistency"] * score.consistency
    )


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass
class ConsistencyObservation:
    """One domain's reported value for a question."""

    domain: str
    value: str
    question_id: str | None = None


@dataclass
class _PairAgreement:
    scores: dict[str, dict[str, float]] = field(default_factory=dict)

    def get(self, a: str, b: str) -> float:
        return self.scores.get(a, {}).get(b, NEUTRAL_SCORE)

    def set(self, a: str, b: str, value: float) -> None:
        self.scores.setdefault(a, {})[b] = value
        self.scores.setdefault(b, {})[a] = value

    def row_mean(self, domain: str) -> float | None:
        row = self.scores.get(domain)
        if not row:
            return None
        return sum(row.values()) / len(row)


class SourceIntelligence:
    """
    Domain trust classification and adaptive quality scoring.

    Thread-safe. Score updates are exponential smoothing, so concurrent
    updates of one domain settle on last-write-wins without harm.
    """

    def __init__(self, config: SourceIntelligenceConfig | None = None) -> None:
        self.config = config or SourceIntelligenceConfig()
        self._scores: dict[str, DomainScore] = {}
        self._intel: dict[str, DomainIntelligence] = {}
        self._agreement = _PairAgreement()
        self._blocked = set(BLOCKED_DOMAINS) | {
            normalize_domain(d) for d in self.config.blocked_domains
        }
        self._lock = threading.RLock()
        self._logger = logger

    # ------------------------------------------------------------------
    # Classification

    def is_blocked(self, domain: str) -> bool:
        domain = normalize_domain(domain)
        return any(domain == b or domain.endswith(f".{b}") for b in self._blocked)

    def _match_rule(self, domain: str) -> TierRule | None:
        for rule in TIER_RULES:
            if rule.matches(domain):
                return rule
        return None

    def classify_domain(self, domain: str) -> TrustTier:
        """Deny-list first, then known scores and static rules; unknown is tier 3."""
        domain = normalize_domain(domain)
        if self.is_blocked(domain):
            return TrustTier.TIER_5

        with self._lock:
            known = self._scores.get(domain)
        if known is not None:
            return known.tier

        rule = self._match_rule(domain)
        return rule.tier if rule else TrustTier.TIER_3

    # ------------------------------------------------------------------
    # Scoring

    def _baseline(self, domain: str) -> DomainScore:
        tier = self.classify_domain(domain)
        rule = None if self.is_blocked(domain) else self._match_rule(domain)
        score = DomainScore(
            domain=domain,
            tier=tier,
            authority=rule.authority if rule else NEUTRAL_SCORE,
            originality=rule.originality if rule else NEUTRAL_SCORE,
            specificity=rule.specificity if rule else NEUTRAL_SCORE,
        )
        if self.is_blocked(domain):
            score.authority = score.originality = score.specificity = 0.1
        score.overall = overall_score(score)
        return score

    def get_domain_score(self, domain: str) -> DomainScore:
        """Current score, created lazily from rules or neutral defaults."""
        domain = normalize_domain(domain)
        with self._lock:
            score = self._scores.get(domain)
            if score is None:
                score = self._baseline(domain)
                self._scores[domain] = score
            return score

    def score_domain(self, domain: str, context: ScoringContext | None = None) -> DomainScore:
        """
        Refresh a domain's score from a content sample.

        Freshness comes from the most recent year in date-like text,
        losing 0.2 per year of age. Specificity is the rule baseline plus 0.1
        for content above 500 words or minus 0.2 below 100 words.
        """
        domain = normalize_domain(domain)
        with self._lock:
            score = self.get_domain_score(domain)
            if context is not None and context.content:
                year = most_recent_year(context.content)
                if year is not None:
                    years_old = datetime.now().year - year
                    score.freshness = max(0.0, 1 - years_old * FRESHNESS_DECAY_PER_YEAR)

                baseline = self._baseline(domain).specificity
                words = len(context.content.split())
                if words > LONG_CONTENT_WORDS:
                    baseline += 0.1
                elif words < SHORT_CONTENT_WORDS:
                    baseline -= 0.2
                score.specificity = _clamp(baseline)

            score.overall = overall_score(score)
            score.sample_size += 1
            score.last_updated = time.time()
            return score

    # ------------------------------------------------------------------
    # Learning

    def update_source_intelligence(self, domain: str, outcome: VisitOutcome) -> DomainIntelligence:
        """Fold one visit into the domain's success rate and extraction yield."""
        domain = normalize_domain(domain)
        alpha = self.config.success_rate_alpha
        with self._lock:
            intel = self._intel.get(domain)
            if intel is None:
                intel = DomainIntelligence(domain=domain)
                self._intel[domain] = intel

            success = 1.0 if outcome.success else 0.0
            intel.success_rate = alpha * success + (1 - alpha) * intel.success_rate
            intel.extraction_yield = (
                alpha * outcome.extraction_count + (1 - alpha) * intel.extraction_yield
            )
            intel.visits += 1
            intel.last_visit = time.time()

            path = url_path(outcome.url)
            if outcome.blocked:
                if path not in intel.blocked_paths:
                    intel.blocked_paths.append(path)
            elif outcome.success and outcome.extraction_count > 0:
                if path not in intel.learned_patterns:
                    intel.learned_patterns.append(path)

        self._logger.debug(
            f"{domain}: success_rate={intel.success_rate:.2f} "
            f"yield={intel.extraction_yield:.2f} visits={intel.visits}"
        )
        return intel

    def update_consistency(self, observations: Iterable[ConsistencyObservation]) -> dict[str, float]:
        """
        Smooth pairwise agreement between domains reporting on one question.

        Returns the new consistency score of every domain involved.
        """
        alpha = self.config.consistency_alpha
        items = [
            ConsistencyObservation(normalize_domain(o.domain), o.value, o.question_id)
            for o in observations
        ]
        touched: set[str] = set()

        with self._lock:
            for i, first in enumerate(items):
                for second in items[i + 1 :]:
                    if first.domain == second.domain:
                        continue
                    target = 1.0 if first.value == second.value else 0.0
                    current = self._agreement.get(first.domain, second.domain)
                    self._agreement.set(
                        first.domain, second.domain, alpha * target + (1 - alpha) * current
                    )
                    touched.update((first.domain, second.domain))

            updated: dict[str, float] = {}
            for domain in touched:
                mean = self._agreement.row_mean(domain)
                if mean is None:
                    continue
                score = self.get_domain_score(domain)
                score.consistency = mean
                score.overall = overall_score(score)
                score.last_updated = time.time()
                updated[domain] = mean
        return updated

    # ------------------------------------------------------------------
    # Decisions

    def should_avoid(self, domain: str) -> bool:
        domain = normalize_domain(domain)
        if self.is_blocked(domain):
            return True
        if self.classify_domain(domain) == TrustTier.TIER_5:
            return True
        with self._lock:
            intel = self._intel.get(domain)
        return intel is not None and intel.success_rate < self.config.avoid_success_rate

    def rank_domains(self, domains: Iterable[str]) -> list[DomainScore]:
        """Drop avoided domains, then order by tier ascending, score descending."""
        seen: set[str] = set()
        scores: list[DomainScore] = []
        for raw in domains:
            domain = normalize_domain(raw)
            if not domain or domain in seen or self.should_avoid(domain):
                continue
            seen.add(domain)
            scores.append(self.get_domain_score(domain))
        return sorted(scores, key=lambda s: (int(s.tier), -s.overall))

    def get_domains_by_tier(self, tier: TrustTier) -> list[DomainScore]:
        with self._lock:
            return [s for s in self._scores.values() if s.tier == tier]

    def best_domains_for_category(self, category: str, limit: int = 3) -> list[str]:
        """Representative domains of the rules serving ``category``, best first."""
        candidates = [
            example for rule in TIER_RULES if rule.category == category for example in rule.examples
        ]
        return [s.domain for s in self.rank_domains(candidates)[:limit]]

    def get_intelligence(self, domain: str) -> DomainIntelligence | None:
        with self._lock:
            return self._intel.get(normalize_domain(domain))

    # ------------------------------------------------------------------
    # Housekeeping and persistence

    def forget_stale(self, older_than_seconds: float | None = None) -> int:
        """
        Remove learned state not touched for ``older_than_seconds``.

        Defaults to ``config.stale_after_seconds``; does nothing when neither
        is set. Rule-derived baselines come back on the next lookup.
        """
        horizon = older_than_seconds
        if horizon is None:
            horizon = self.config.stale_after_seconds
        if horizon is None:
            return 0
        cutoff = time.time() - horizon
        with self._lock:
            stale = [d for d, s in self._scores.items() if s.last_updated < cutoff]
            for domain in stale:
                del self._scores[domain]
                self._agreement.scores.pop(domain, None)
                for row in self._agreement.scores.values():
                    row.pop(domain, None)
            stale_intel = [
                d for d, i in self._intel.items() if i.last_visit and i.last_visit < cutoff
            ]
            for domain in stale_intel:
                del self._intel[domain]
        removed = len(stale) + len(stale_intel)
        if removed:
            self._logger.info(f"Forgot {removed} stale source records")
        return removed

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            by_tier = {int(t): 0 for t in TrustTier}
            for score in self._scores.values():
                by_tier[int(score.tier)] += 1
            return {
                "domains_scored": len(self._scores),
                "domains_visited": len(self._intel),
                "by_tier": by_tier,
                "avoided": sum(1 for d in self._intel if self.should_avoid(d)),
            }

    def export_state(self) -> dict[str, Any]:
        with self._lock:
            return {
                "scores": [s.to_dict() for s in self._scores.values()],
                "intelligence": [i.to_dict() for i in self._intel.values()],
                "agreement": {a: dict(row) for a, row in self._agreement.scores.items()},
            }

    def import_state(self, state: dict[str, Any]) -> None:
        """Replace learned state with a snapshot; raises StateImportError if malformed."""
        try:
            scores = {s.domain: s for s in (DomainScore.from_dict(d) for d in state["scores"])}
            intel = {
                i.domain: i
                for i in (DomainIntelligence.from_dict(d) for d in state.get("intelligence", []))
            }
            agreement = {
                str(a): {str(b): float(v) for b, v in row.items()}
                for a, row in state.get("agreement", {}).items()
            }
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StateImportError("source_intelligence", str(e), cause=e)

        with self._lock:
            self._scores = scores
            self._intel = intel
            self._agreement = _PairAgreement(agreement)
        self._logger.info(f"Imported {len(scores)} domain scores")
