"""
Claim Graph
===========

Deduplicates extracted facts into claims, tracks which independent sources
back each claim and which claims disagree, and derives a confidence score
and level per claim.

Scoring:
    score = tier_baseline
          + min(0.1 * corroborations, 0.3)
          + min(0.05 * (unique_domains - 1), 0.15)
          - 0.2 * contradictions            (clamped to [0, 1])

Usage:
    graph = ClaimGraph()
    claim = graph.create_claim(extraction, "https://acme.com/about", TrustTier.TIER_2, "q-1")
    best = graph.get_best_answer_for_question("q-1")
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from webprobe.core.config import ClaimGraphConfig
from webprobe.core.exceptions import StateImportError
from webprobe.core.helpers import extract_domain, generate_id
from webprobe.core.types import ConfidenceLevel, ExtractionResult, TrustTier

from .source_intelligence import ConsistencyObservation
from .types import Claim, ClaimRelationship, ClaimSource, RelationshipType, VerificationEvent

logger = logging.getLogger("webprobe.research.claim_graph")

TIER_BASELINES: dict[TrustTier, float] = {
    TrustTier.TIER_1: 0.7,
    TrustTier.TIER_2: 0.5,
    TrustTier.TIER_3: 0.35,
    TrustTier.TIER_4: 0.2,
    TrustTier.TIER_5: 0.1,
}

_KEY_STRIP = str.maketrans("", "", "_- \t\n")


def normalize_key(key: str) -> str:
    return str(key).lower().translate(_KEY_STRIP)


def normalize_value(value: Any) -> Any:
    """Comparison form: lower-cased trimmed strings, sorted lists, normalized keys."""
    if isinstance(value, str):
        return value.strip().lower()
    if isinstance(value, dict):
        return {normalize_key(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        items = [normalize_value(v) for v in value]
        return sorted(items, key=_serialize)
    return value


def _serialize(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _jaccard(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 1.0
    return len(a & b) / len(a | b)


def claim_text(data: dict[str, Any]) -> str:
    """``"key: value; other: a, b"``, or the JSON payload when there are no fields."""
    parts = []
    for key, value in data.items():
        if isinstance(value, (list, tuple)):
            parts.append(f"{key}: {', '.join(str(v) for v in value)}")
        else:
            parts.append(f"{key}: {value}")
    return "; ".join(parts) if parts else _serialize(data)


def tier_baseline(tier: TrustTier) -> float:
    return TIER_BASELINES[TrustTier.coerce(tier)]


def compute_confidence_score(claim: Claim) -> float:
    score = (
        tier_baseline(claim.primary_source_tier)
        + min(0.1 * claim.corroboration_count, 0.3)
        + min(0.05 * (len(claim.unique_domains) - 1), 0.15)
        - 0.2 * claim.contradiction_count
    )
    return max(0.0, min(1.0, score))


def determine_confidence_level(claim: Claim) -> ConfidenceLevel:
    score = claim.confidence_score
    authoritative = claim.primary_source_tier in (TrustTier.TIER_1, TrustTier.TIER_2)
    if (
        (claim.corroboration_count >= 2 or authoritative)
        and claim.contradiction_count == 0
        and score >= 0.7
    ):
        return ConfidenceLevel.VERIFIED
    if claim.contradiction_count > 0 and score < 0.3:
        return ConfidenceLevel.CONTRADICTED
    if score >= 0.7:
        return ConfidenceLevel.HIGH
    if score >= 0.5:
        return ConfidenceLevel.MEDIUM
    if score >= 0.25:
        return ConfidenceLevel.LOW
    return ConfidenceLevel.UNCERTAIN


@dataclass
class ClaimIngestResult:
    """What happened to one extraction when it entered the graph."""

    claim: Claim
    created: bool
    corroborated: bool = False
    contradicted: list[str] = field(default_factory=list)


class ClaimGraph:
    """
    Claim store with deduplication, corroboration and contradiction tracking.

    All writes go through one re-entrant lock, which linearizes merges and
    contradiction checks across concurrently running paths.
    """

    def __init__(self, config: ClaimGraphConfig | None = None) -> None:
        self.config = config or ClaimGraphConfig()
        self._claims: dict[str, Claim] = {}
        self._relationships: list[ClaimRelationship] = []
        self._by_category: dict[str, list[str]] = defaultdict(list)
        self._by_question: dict[str, list[str]] = defaultdict(list)
        self._lock = threading.RLock()
        self._logger = logger

    # ------------------------------------------------------------------
    # Similarity

    def values_similar(self, a: Any, b: Any) -> bool:
        if isinstance(a, str) and isinstance(b, str):
            return _jaccard(set(a.split()), set(b.split())) >= self.config.string_similarity
        if _is_number(a) and _is_number(b):
            return abs(a - b) / max(abs(a), abs(b), 1) <= self.config.numeric_tolerance
        if isinstance(a, list) and isinstance(b, list):
            overlap = _jaccard({_serialize(v) for v in a}, {_serialize(v) for v in b})
            return overlap >= self.config.array_similarity
        if isinstance(a, dict) and isinstance(b, dict):
            return a.keys() == b.keys() and all(self.values_similar(a[k], b[k]) for k in a)
        return _serialize(a) == _serialize(b)

    # ------------------------------------------------------------------
    # Ingestion

    def create_claim(
        self,
        extraction: ExtractionResult,
        source_url: str,
        tier: TrustTier | int,
        question_id: str | None = None,
        category: str | None = None,
    ) -> Claim:
        """Add an observation; returns the new claim or the one it merged into."""
        return self.ingest(extraction, source_url, tier, question_id, category).claim

    def ingest(
        self,
        extraction: ExtractionResult,
        source_url: str,
        tier: TrustTier | int,
        question_id: str | None = None,
        category: str | None = None,
    ) -> ClaimIngestResult:
        tier = TrustTier.coerce(tier)
        category = category or extraction.schema_name
        normalized = normalize_value(extraction.data)
        source = ClaimSource(
            url=source_url,
            domain=extract_domain(source_url),
            tier=tier,
            timestamp=extraction.timestamp,
            content_hash=extraction.content_hash,
        )

        with self._lock:
            existing = self._find_similar(category, normalized)
            if existing is not None:
                if question_id and question_id not in existing.question_ids:
                    existing.question_ids.append(question_id)
                    self._by_question[question_id].append(existing.id)
                corroborated = self._merge(existing, source)
                return ClaimIngestResult(existing, created=False, corroborated=corroborated)

            now = time.time()
            claim = Claim(
                id=generate_id("claim"),
                text=claim_text(extraction.data),
                normalized_value=normalized,
                category=category,
                question_id=question_id,
                question_ids=[question_id] if question_id else [],
                sources=[source],
                primary_source_tier=tier,
                created_at=now,
                updated_at=now,
            )
            self._recompute(claim)
            self._claims[claim.id] = claim
            self._by_category[category].append(claim.id)
            if question_id:
                self._by_question[question_id].append(claim.id)

            contradicted = self._check_contradictions(claim)
            self._logger.debug(
                f"New claim {claim.id} [{category}] {claim.text[:60]!r} "
                f"score={claim.confidence_score:.2f}"
            )
            return ClaimIngestResult(claim, created=True, contradicted=contradicted)

    def _find_similar(self, category: str, normalized: Any) -> Claim | None:
        for claim_id in self._by_category.get(category, []):
            claim = self._claims[claim_id]
            if self.values_similar(claim.normalized_value, normalized):
                return claim
        return None

    def _merge(self, claim: Claim, source: ClaimSource) -> bool:
        """Returns True when the source counted as corroboration."""
        independent = source.domain not in claim.unique_domains
        claim.sources.append(source)
        claim.updated_at = time.time()
        if not independent:
            return False

        before = claim.confidence_score
        claim.corroboration_count += 1
        if source.tier < claim.primary_source_tier:
            claim.primary_source_tier = source.tier
        self._recompute(claim)
        claim.verification_history.append(
            VerificationEvent(
                event_type="corroboration",
                source_url=source.url,
                details=f"Corroborated by {source.domain} (tier {int(source.tier)})",
                confidence_before=before,
                confidence_after=claim.confidence_score,
            )
        )
        self._logger.debug(
            f"Claim {claim.id} corroborated by {source.domain}: "
            f"{before:.2f} -> {claim.confidence_score:.2f}"
        )
        return True

    def _check_contradictions(self, claim: Claim) -> list[str]:
        if not claim.question_id:
            return []
        contradicted = []
        for other_id in self._by_category.get(claim.category, []):
            other = self._claims[other_id]
            if other.id == claim.id or claim.question_id not in other.question_ids:
                continue
            if not self.values_similar(claim.normalized_value, other.normalized_value):
                self._record_contradiction(claim, other)
                contradicted.append(other.id)
        return contradicted

    def _has_relationship(self, a: str, b: str, rel_type: RelationshipType) -> bool:
        return any(
            r.type == rel_type and {r.source_claim_id, r.target_claim_id} == {a, b}
            for r in self._relationships
        )

    def _record_contradiction(self, new: Claim, existing: Claim) -> None:
        if self._has_relationship(new.id, existing.id, RelationshipType.CONTRADICTS):
            return
        self._relationships.append(
            ClaimRelationship(new.id, existing.id, RelationshipType.CONTRADICTS, 1.0)
        )
        for claim, opponent in ((new, existing), (existing, new)):
            before = claim.confidence_score
            claim.contradiction_count += 1
            claim.updated_at = time.time()
            self._recompute(claim)
            claim.verification_history.append(
                VerificationEvent(
                    event_type="contradiction",
                    source_url=opponent.sources[0].url if opponent.sources else "",
                    details=f"Contradicted by: {opponent.text[:50]}",
                    confidence_before=before,
                    confidence_after=claim.confidence_score,
                )
            )
        self._logger.info(f"Contradiction between {new.id} and {existing.id}")

    def _recompute(self, claim: Claim) -> None:
        claim.confidence_score = compute_confidence_score(claim)
        claim.confidence_level = determine_confidence_level(claim)

    # ------------------------------------------------------------------
    # Queries

    def get_claim(self, claim_id: str) -> Claim | None:
        with self._lock:
            return self._claims.get(claim_id)

    def get_all_claims(self) -> list[Claim]:
        with self._lock:
            return list(self._claims.values())

    def get_claims_by_category(self, category: str) -> list[Claim]:
        with self._lock:
            return [self._claims[c] for c in self._by_category.get(category, [])]

    def get_claims_for_question(self, question_id: str) -> list[Claim]:
        with self._lock:
            return [self._claims[c] for c in self._by_question.get(question_id, [])]

    def get_verified_claims(self) -> list[Claim]:
        return [c for c in self.get_all_claims() if c.confidence_level == ConfidenceLevel.VERIFIED]

    def get_unverified_claims(self) -> list[Claim]:
        weak = (ConfidenceLevel.UNCERTAIN, ConfidenceLevel.LOW)
        return [c for c in self.get_all_claims() if c.confidence_level in weak]

    def get_contradicted_claims(self) -> list[Claim]:
        return [c for c in self.get_all_claims() if c.contradiction_count > 0]

    def get_relationships(self, claim_id: str | None = None) -> list[ClaimRelationship]:
        with self._lock:
            if claim_id is None:
                return list(self._relationships)
            return [
                r
                for r in self._relationships
                if claim_id in (r.source_claim_id, r.target_claim_id)
            ]

    def get_best_answer_for_question(self, question_id: str) -> Claim | None:
        claims = self.get_claims_for_question(question_id)
        if not claims:
            return None
        return max(claims, key=lambda c: c.confidence_score)

    def get_question_confidence(self, question_id: str) -> float:
        best = self.get_best_answer_for_question(question_id)
        return best.confidence_score if best else 0.0

    def get_overall_confidence(self) -> float:
        claims = self.get_all_claims()
        if not claims:
            return 0.0
        return sum(c.confidence_score for c in claims) / len(claims)

    def get_graph(self) -> dict[str, Any]:
        with self._lock:
            questions = list(self._by_question.keys())
            return {
                "claims": [c.to_dict() for c in self._claims.values()],
                "relationships": [r.to_dict() for r in self._relationships],
                "overall_confidence": self.get_overall_confidence(),
                "question_confidence": {q: self.get_question_confidence(q) for q in questions},
            }

    def consistency_observations(self, question_id: str) -> list[ConsistencyObservation]:
        """Every (domain, value) pair reported for a question, one per source."""
        observations = []
        for claim in self.get_claims_for_question(question_id):
            value = _serialize(claim.normalized_value)
            for source in claim.sources:
                observations.append(ConsistencyObservation(source.domain, value, question_id))
        return observations

    def get_stats(self) -> dict[str, Any]:
        claims = self.get_all_claims()
        by_level = {level.value: 0 for level in ConfidenceLevel}
        for claim in claims:
            by_level[claim.confidence_level.value] += 1
        with self._lock:
            by_category = {k: len(v) for k, v in self._by_category.items()}
            relationships = len(self._relationships)
        overall = self.get_overall_confidence()
        return {
            "total_claims": len(claims),
            "by_level": by_level,
            "by_category": by_category,
            "relationships": relationships,
            "overall_confidence": overall,
            "overall_confidence_pct": f"{overall:.1%}",
        }

    # ------------------------------------------------------------------
    # Housekeeping and persistence

    def clear(self) -> None:
        with self._lock:
            self._claims.clear()
            self._relationships.clear()
            self._by_category.clear()
            self._by_question.clear()

    def prune_stale(self, older_than_seconds: float | None = None) -> int:
        """
        Drop claims not updated for ``older_than_seconds`` (default
        ``config.stale_after_seconds``; no-op when unset).
        """
        horizon = older_than_seconds
        if horizon is None:
            horizon = self.config.stale_after_seconds
        if horizon is None:
            return 0
        cutoff = time.time() - horizon
        with self._lock:
            stale = {cid for cid, c in self._claims.items() if c.updated_at < cutoff}
            if not stale:
                return 0
            kept = [c for c in self._claims.values() if c.id not in stale]
            relationships = [
                r
                for r in self._relationships
                if r.source_claim_id not in stale and r.target_claim_id not in stale
            ]
            self._rebuild(kept, relationships)
        self._logger.info(f"Pruned {len(stale)} stale claims")
        return len(stale)

    def _rebuild(self, claims: list[Claim], relationships: list[ClaimRelationship]) -> None:
        self._claims = {c.id: c for c in claims}
        self._relationships = list(relationships)
        self._by_category = defaultdict(list)
        self._by_question = defaultdict(list)
        for claim in claims:
            self._by_category[claim.category].append(claim.id)
            for question_id in claim.question_ids:
                self._by_question[question_id].append(claim.id)

    def export_state(self) -> dict[str, Any]:
        with self._lock:
            return {
                "claims": [c.to_dict() for c in self._claims.values()],
                "relationships": [r.to_dict() for r in self._relationships],
            }

    def import_state(self, state: dict[str, Any]) -> None:
        """Replace the graph with a snapshot; raises StateImportError if malformed."""
        try:
            claims = [Claim.from_dict(c) for c in state["claims"]]
            relationships = [ClaimRelationship.from_dict(r) for r in state.get("relationships", [])]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StateImportError("claim_graph", str(e), cause=e)

        known = {c.id for c in claims}
        dangling = [
            r
            for r in relationships
            if r.source_claim_id not in known or r.target_claim_id not in known
        ]
        if dangling:
            raise StateImportError(
                "claim_graph", f"{len(dangling)} relationships reference unknown claims"
            )

        with self._lock:
            self._rebuild(claims, relationships)
        self._logger.info(f"Imported {len(claims)} claims")
