"""
Research Types
==============

Data structures shared by the planner, source intelligence, claim graph
and research driver. Every persisted record has ``to_dict`` /
``from_dict`` so exported state round-trips.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from webprobe.core.helpers import generate_id
from webprobe.core.types import ConfidenceLevel, TrustTier

from .rules import ConfidenceRule, HasField, LengthAbove, Threshold


class OperatorMode(str, Enum):
    """Budget presets selected by the operator."""

    FAST = "fast"
    STANDARD = "standard"
    DEEP = "deep"
    COMPLIANCE = "compliance"
    SIMULATION = "simulation"  # plan only, never executed


class AnswerType(str, Enum):
    NUMERIC = "numeric"
    DATE = "date"
    CATEGORICAL = "categorical"
    TEXT = "text"
    LIST = "list"
    BOOLEAN = "boolean"
    STRUCTURED = "structured"


class PathStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    TERMINATED = "terminated"


class RelationshipType(str, Enum):
    CONTRADICTS = "contradicts"
    SUPPORTS = "supports"


# =============================================================================
# Extraction schemas
# =============================================================================


@dataclass(frozen=True)
class ExtractionSchema:
    """
    Documented, versioned field set for one payload category.

    ``confidence_rules`` adjust an adapter's reported confidence according to
    which fields it managed to fill.
    """

    name: str
    version: int
    fields: tuple[str, ...]
    required: tuple[str, ...] = ()
    confidence_rules: tuple[ConfidenceRule, ...] = ()

    def missing_fields(self, data: dict[str, Any]) -> list[str]:
        return [f for f in self.required if data.get(f) in (None, "", [])]

    def unknown_fields(self, data: dict[str, Any]) -> list[str]:
        return [k for k in data if k not in self.fields]

    def conforms(self, data: dict[str, Any]) -> bool:
        return not self.missing_fields(data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "fields": list(self.fields),
            "required": list(self.required),
        }


EXTRACTION_SCHEMAS: dict[str, ExtractionSchema] = {
    schema.name: schema
    for schema in (
        ExtractionSchema(
            name="company_info",
            version=1,
            fields=(
                "company_name",
                "description",
                "founded",
                "headquarters",
                "employees",
                "website",
            ),
            required=("company_name",),
            confidence_rules=(HasField("description", 0.1), HasField("founded", 0.05)),
        ),
        ExtractionSchema(
            name="pricing",
            version=1,
            fields=("plans", "price", "currency", "billing_period", "free_tier", "enterprise"),
            confidence_rules=(
                HasField("price", 0.2),
                LengthAbove("plans", 1, 0.1),
                HasField("billing_period", 0.05),
            ),
        ),
        ExtractionSchema(
            name="features",
            version=1,
            fields=("features", "categories", "highlights"),
            required=("features",),
            confidence_rules=(LengthAbove("features", 3, 0.1),),
        ),
        ExtractionSchema(
            name="technical",
            version=1,
            fields=("languages", "frameworks", "apis", "sdks", "repositories", "documentation_url"),
            confidence_rules=(HasField("apis", 0.1), HasField("documentation_url", 0.1)),
        ),
        ExtractionSchema(
            name="security",
            version=1,
            fields=("certifications", "compliance", "encryption", "sso", "data_residency"),
            confidence_rules=(HasField("certifications", 0.15),),
        ),
        ExtractionSchema(
            name="funding",
            version=1,
            fields=("total_raised", "last_round", "investors", "valuation"),
            confidence_rules=(Threshold("total_raised", ">", 0, 0.1), HasField("investors", 0.05)),
        ),
        ExtractionSchema(
            name="contact",
            version=1,
            fields=("email", "phone", "address", "sales_contact"),
        ),
        ExtractionSchema(
            name="integrations",
            version=1,
            fields=("integrations", "marketplace_url"),
            required=("integrations",),
            confidence_rules=(LengthAbove("integrations", 5, 0.1),),
        ),
        ExtractionSchema(
            name="competitive",
            version=1,
            fields=("competitors", "alternatives", "differentiators"),
        ),
    )
}

# Question category -> extraction schema
CATEGORY_SCHEMAS: dict[str, str] = {
    "pricing": "pricing",
    "features": "features",
    "technical": "technical",
    "company_history": "company_info",
    "company_size": "company_info",
    "security": "security",
    "integrations": "integrations",
    "competitive": "competitive",
    "funding": "funding",
    "contact": "contact",
    "general": "company_info",
}


# =============================================================================
# Objective and plan
# =============================================================================


@dataclass(frozen=True)
class ResearchConstraints:
    """Caller-supplied limits. ``None`` keeps the mode preset."""

    max_time_ms: int | None = None
    max_pages: int | None = None
    max_concurrency: int | None = None
    max_cost: int | None = None
    allowed_tiers: tuple[int, ...] | None = None
    blocked_domains: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_time_ms": self.max_time_ms,
            "max_pages": self.max_pages,
            "max_concurrency": self.max_concurrency,
            "max_cost": self.max_cost,
            "allowed_tiers": list(self.allowed_tiers) if self.allowed_tiers else None,
            "blocked_domains": list(self.blocked_domains),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResearchConstraints:
        tiers = data.get("allowed_tiers")
        return cls(
            max_time_ms=data.get("max_time_ms"),
            max_pages=data.get("max_pages"),
            max_concurrency=data.get("max_concurrency"),
            max_cost=data.get("max_cost"),
            allowed_tiers=tuple(int(t) for t in tiers) if tiers else None,
            blocked_domains=tuple(data.get("blocked_domains", ())),
        )


@dataclass(frozen=True)
class ResearchObjective:
    """
    What the caller wants to know.

    Attributes:
        query: Free-text research question
        context: Optional hints ("compare with competitors", "latest")
        constraints: Budget and source restrictions
        required_confidence: Global confidence threshold, default 0.8
        known_entities: Names already known to be relevant
        known_domains: Domains the caller knows to be authoritative
    """

    query: str
    context: str = ""
    constraints: ResearchConstraints = field(default_factory=ResearchConstraints)
    required_confidence: float | None = None
    known_entities: tuple[str, ...] = ()
    known_domains: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "context": self.context,
            "constraints": self.constraints.to_dict(),
            "required_confidence": self.required_confidence,
            "known_entities": list(self.known_entities),
            "known_domains": list(self.known_domains),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResearchObjective:
        return cls(
            query=data["query"],
            context=data.get("context", ""),
            constraints=ResearchConstraints.from_dict(data.get("constraints") or {}),
            required_confidence=data.get("required_confidence"),
            known_entities=tuple(data.get("known_entities", ())),
            known_domains=tuple(data.get("known_domains", ())),
        )


@dataclass
class PrimaryQuestion:
    id: str
    text: str
    category: str
    priority: int
    required_confidence: float = 0.7
    answer_type: AnswerType = AnswerType.TEXT

    @property
    def schema_name(self) -> str:
        return CATEGORY_SCHEMAS.get(self.category, "company_info")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "category": self.category,
            "priority": self.priority,
            "required_confidence": self.required_confidence,
            "answer_type": self.answer_type.value,
        }


@dataclass
class RankedDomain:
    domain: str
    expected_tier: TrustTier
    relevance: float
    expected_content: list[str] = field(default_factory=list)
    expected_pages: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "expected_tier": int(self.expected_tier),
            "relevance": self.relevance,
            "expected_content": list(self.expected_content),
            "expected_pages": list(self.expected_pages),
        }


@dataclass
class ExecutionBudgets:
    max_time_ms: int
    max_pages: int
    max_concurrency: int
    max_cost: int
    marginal_gain_floor: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_time_ms": self.max_time_ms,
            "max_pages": self.max_pages,
            "max_concurrency": self.max_concurrency,
            "max_cost": self.max_cost,
            "marginal_gain_floor": self.marginal_gain_floor,
        }


@dataclass
class ExecutionPath:
    """One independent navigate → extract → verify sequence."""

    id: str
    goal: str
    domain_scope: list[str]
    extraction_targets: list[str]
    question_ids: list[str]
    priority: int
    status: PathStatus = PathStatus.PENDING
    deprioritized: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "goal": self.goal,
            "domain_scope": list(self.domain_scope),
            "extraction_targets": list(self.extraction_targets),
            "question_ids": list(self.question_ids),
            "priority": self.priority,
            "status": self.status.value,
        }


@dataclass
class ConfidenceSnapshot:
    """Aggregate and per-question confidence at one point of a run."""

    overall: float
    per_question: dict[str, float] = field(default_factory=dict)


@dataclass
class PlanValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class ResearchPlan:
    objective: ResearchObjective
    mode: OperatorMode
    primary_questions: list[PrimaryQuestion]
    expected_answer_types: list[AnswerType]
    target_domains: list[RankedDomain]
    extraction_schemas: list[ExtractionSchema]
    confidence_threshold: float
    budgets: ExecutionBudgets
    execution_paths: list[ExecutionPath]
    id: str = field(default_factory=lambda: generate_id("plan"))
    created_at: float = field(default_factory=time.time)
    is_valid: bool = True
    validation_errors: list[str] = field(default_factory=list)
    finalized: bool = False

    def get_question(self, question_id: str) -> PrimaryQuestion | None:
        for question in self.primary_questions:
            if question.id == question_id:
                return question
        return None

    def summary(self) -> str:
        return (
            f"{len(self.primary_questions)} questions, "
            f"{len(self.target_domains)} domains, "
            f"{len(self.execution_paths)} paths ({self.mode.value})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "mode": self.mode.value,
            "objective": self.objective.to_dict(),
            "primary_questions": [q.to_dict() for q in self.primary_questions],
            "expected_answer_types": [t.value for t in self.expected_answer_types],
            "target_domains": [d.to_dict() for d in self.target_domains],
            "extraction_schemas": [s.to_dict() for s in self.extraction_schemas],
            "confidence_threshold": self.confidence_threshold,
            "budgets": self.budgets.to_dict(),
            "execution_paths": [p.to_dict() for p in self.execution_paths],
            "is_valid": self.is_valid,
            "validation_errors": list(self.validation_errors),
            "finalized": self.finalized,
        }


# =============================================================================
# Source intelligence
# =============================================================================


@dataclass
class DomainScore:
    domain: str
    tier: TrustTier
    authority: float = 0.5
    originality: float = 0.5
    freshness: float = 0.5
    specificity: float = 0.5
    consistency: float = 0.5
    overall: float = 0.5
    last_updated: float = field(default_factory=time.time)
    sample_size: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "tier": int(self.tier),
            "authority": self.authority,
            "originality": self.originality,
            "freshness": self.freshness,
            "specificity": self.specificity,
            "consistency": self.consistency,
            "overall": self.overall,
            "last_updated": self.last_updated,
            "sample_size": self.sample_size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DomainScore:
        return cls(
            domain=data["domain"],
            tier=TrustTier(int(data["tier"])),
            authority=float(data["authority"]),
            originality=float(data["originality"]),
            freshness=float(data["freshness"]),
            specificity=float(data["specificity"]),
            consistency=float(data["consistency"]),
            overall=float(data["overall"]),
            last_updated=float(data.get("last_updated", time.time())),
            sample_size=int(data.get("sample_size", 0)),
        )


@dataclass
class DomainIntelligence:
    """Visit history of one domain."""

    domain: str
    visits: int = 0
    success_rate: float = 1.0
    extraction_yield: float = 0.0
    learned_patterns: list[str] = field(default_factory=list)
    blocked_paths: list[str] = field(default_factory=list)
    last_visit: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "visits": self.visits,
            "success_rate": self.success_rate,
            "extraction_yield": self.extraction_yield,
            "learned_patterns": list(self.learned_patterns),
            "blocked_paths": list(self.blocked_paths),
            "last_visit": self.last_visit,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DomainIntelligence:
        return cls(
            domain=data["domain"],
            visits=int(data.get("visits", 0)),
            success_rate=float(data.get("success_rate", 1.0)),
            extraction_yield=float(data.get("extraction_yield", 0.0)),
            learned_patterns=list(data.get("learned_patterns", [])),
            blocked_paths=list(data.get("blocked_paths", [])),
            last_visit=float(data.get("last_visit", 0.0)),
        )


@dataclass
class VisitOutcome:
    url: str
    success: bool
    extraction_count: int = 0
    blocked: bool = False
    duration_ms: float = 0.0


@dataclass
class ScoringContext:
    """Page sample used to refresh a domain's freshness and specificity."""

    url: str = ""
    content: str = ""
    timestamp: float = field(default_factory=time.time)


# =============================================================================
# Claims
# =============================================================================


@dataclass
class ClaimSource:
    url: str
    domain: str
    tier: TrustTier
    timestamp: float = field(default_factory=time.time)
    content_hash: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "domain": self.domain,
            "tier": int(self.tier),
            "timestamp": self.timestamp,
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClaimSource:
        return cls(
            url=data["url"],
            domain=data["domain"],
            tier=TrustTier(int(data["tier"])),
            timestamp=float(data.get("timestamp", time.time())),
            content_hash=data.get("content_hash", ""),
        )


@dataclass
class VerificationEvent:
    event_type: str  # corroboration | contradiction
    source_url: str
    details: str
    confidence_before: float
    confidence_after: float
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "source_url": self.source_url,
            "details": self.details,
            "confidence_before": self.confidence_before,
            "confidence_after": self.confidence_after,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerificationEvent:
        return cls(
            event_type=data["event_type"],
            source_url=data.get("source_url", ""),
            details=data.get("details", ""),
            confidence_before=float(data["confidence_before"]),
            confidence_after=float(data["confidence_after"]),
            timestamp=float(data.get("timestamp", time.time())),
        )


@dataclass
class Claim:
    """
    A deduplicated assertion about one value for a category/question.

    ``normalized_value`` is what similarity checks compare; ``text`` is for
    humans. ``question_ids`` lists every question the claim answers,
    including ones it was merged under after creation.
    """

    id: str
    text: str
    normalized_value: Any
    category: str
    question_id: str | None
    sources: list[ClaimSource]
    primary_source_tier: TrustTier
    corroboration_count: int = 0
    contradiction_count: int = 0
    confidence_level: ConfidenceLevel = ConfidenceLevel.UNCERTAIN
    confidence_score: float = 0.0
    verification_history: list[VerificationEvent] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    question_ids: list[str] = field(default_factory=list)

    @property
    def unique_domains(self) -> set[str]:
        return {source.domain for source in self.sources}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "normalized_value": self.normalized_value,
            "category": self.category,
            "question_id": self.question_id,
            "question_ids": list(self.question_ids),
            "sources": [s.to_dict() for s in self.sources],
            "primary_source_tier": int(self.primary_source_tier),
            "corroboration_count": self.corroboration_count,
            "contradiction_count": self.contradiction_count,
            "confidence_level": self.confidence_level.value,
            "confidence_score": self.confidence_score,
            "verification_history": [e.to_dict() for e in self.verification_history],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Claim:
        return cls(
            id=data["id"],
            text=data["text"],
            normalized_value=data["normalized_value"],
            category=data["category"],
            question_id=data.get("question_id"),
            sources=[ClaimSource.from_dict(s) for s in data["sources"]],
            primary_source_tier=TrustTier(int(data["primary_source_tier"])),
            corroboration_count=int(data.get("corroboration_count", 0)),
            contradiction_count=int(data.get("contradiction_count", 0)),
            confidence_level=ConfidenceLevel(data["confidence_level"]),
            confidence_score=float(data["confidence_score"]),
            verification_history=[
                VerificationEvent.from_dict(e) for e in data.get("verification_history", [])
            ],
            created_at=float(data.get("created_at", time.time())),
            updated_at=float(data.get("updated_at", time.time())),
            question_ids=list(data.get("question_ids") or filter(None, [data.get("question_id")])),
        )


@dataclass
class ClaimRelationship:
    source_claim_id: str
    target_claim_id: str
    type: RelationshipType
    strength: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_claim_id": self.source_claim_id,
            "target_claim_id": self.target_claim_id,
            "type": self.type.value,
            "strength": self.strength,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClaimRelationship:
        return cls(
            source_claim_id=data["source_claim_id"],
            target_claim_id=data["target_claim_id"],
            type=RelationshipType(data["type"]),
            strength=float(data.get("strength", 1.0)),
        )
