"""
Research Planner
================

Turns a free-text objective into a structured, validated research plan:
questions, target domains, extraction schemas, budgets and execution paths.

Usage:
    planner = Planner(source_intelligence, mode=OperatorMode.FAST)
    plan = planner.generate_plan(ResearchObjective(query="What is Acme's pricing?"))

    if not plan.is_valid:
        print(plan.validation_errors)

    # later, as answers arrive
    planner.adjust_plan(plan, ConfidenceSnapshot(overall=0.6, per_question={"q-1": 0.9}))
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Protocol

from webprobe.core.helpers import generate_id, normalize_domain
from webprobe.core.types import TrustTier
from webprobe.observability.tracing import ResearchTracer, SpanAttributes

from .source_intelligence import SourceIntelligence
from .types import (
    CATEGORY_SCHEMAS,
    EXTRACTION_SCHEMAS,
    AnswerType,
    ConfidenceSnapshot,
    ExecutionBudgets,
    ExecutionPath,
    ExtractionSchema,
    OperatorMode,
    PlanValidation,
    PrimaryQuestion,
    RankedDomain,
    ResearchObjective,
    ResearchPlan,
)

logger = logging.getLogger("webprobe.research.planner")

DEFAULT_CONFIDENCE_THRESHOLD = 0.8
DEFAULT_QUESTION_CONFIDENCE = 0.7
FOLLOW_UP_CONFIDENCE = 0.6
SATISFIED_PATH_PENALTY = 5
MAX_CATEGORY_PATHS = 3
MAX_VERIFICATION_DOMAINS = 5
MIN_PAGES = 1
MIN_TIME_MS = 1000
COMPLIANCE_TIERS = (1, 2)


# =============================================================================
# Question classification
# =============================================================================


@dataclass(frozen=True)
class QuestionPattern:
    """Keyword heuristic for one question category."""

    category: str
    pattern: re.Pattern[str]
    answer_type: AnswerType
    source_categories: tuple[str, ...]
    extraction_hints: tuple[str, ...]
    template: str

    def matches(self, text: str) -> bool:
        return bool(self.pattern.search(text))


def _pattern(
    category: str,
    regex: str,
    answer_type: AnswerType,
    sources: tuple[str, ...],
    hints: tuple[str, ...],
    template: str,
) -> QuestionPattern:
    return QuestionPattern(
        category, re.compile(regex, re.IGNORECASE), answer_type, sources, hints, template
    )


# Source categories name the TierRule categories of source intelligence;
# "official" means the subject's own site.
QUESTION_PATTERNS: tuple[QuestionPattern, ...] = (
    _pattern(
        "pricing",
        r"\b(?:pricing|costs?|prices?|how much|subscriptions?|plans?)\b",
        AnswerType.STRUCTURED,
        ("official", "docs"),
        ("pricing-page", "plans-section", "pricing-table"),
        "What is the pricing structure for {subject}?",
    ),
    _pattern(
        "features",
        r"\b(?:features?|capabilities|what can|does it|functionality)\b",
        AnswerType.LIST,
        ("official", "docs"),
        ("features-page", "product-page", "capabilities"),
        "What are the main features of {subject}?",
    ),
    _pattern(
        "technical",
        r"\b(?:tech stack|technologies|built with|frameworks?|languages?)\b",
        AnswerType.LIST,
        ("code", "docs"),
        ("readme", "package-manifest", "architecture"),
        "What technologies does {subject} use?",
    ),
    _pattern(
        "company_history",
        r"\b(?:founded|started|when was|history|origin)\b",
        AnswerType.DATE,
        ("official", "news", "company_info"),
        ("about-page", "company-history", "timeline"),
        "When was {subject} founded?",
    ),
    _pattern(
        "company_size",
        r"\b(?:employees?|team size|headcount|how many people)\b",
        AnswerType.NUMERIC,
        ("official", "company_info", "news"),
        ("about-page", "careers-page", "team"),
        "How many employees does {subject} have?",
    ),
    _pattern(
        "security",
        r"\b(?:security|compliance|soc ?2?|gdpr|hipaa|certifications?)\b",
        AnswerType.STRUCTURED,
        ("official", "docs"),
        ("security-page", "trust-center", "compliance"),
        "What security certifications does {subject} have?",
    ),
    _pattern(
        "integrations",
        r"\b(?:integrat\w*|apis?|connect\w*|webhooks?)\b",
        AnswerType.LIST,
        ("docs", "official"),
        ("integrations-page", "api-docs", "marketplace"),
        "What integrations does {subject} support?",
    ),
    _pattern(
        "competitive",
        r"\b(?:competitors?|alternatives?|vs\.?|versus|compared to|similar)\b",
        AnswerType.LIST,
        ("reviews", "news"),
        ("comparison", "alternatives", "reviews"),
        "Who are the main competitors of {subject}?",
    ),
    _pattern(
        "funding",
        r"\b(?:funding|investors?|raised|valuation|series [a-z])\b",
        AnswerType.STRUCTURED,
        ("funding", "company_info", "news"),
        ("funding-rounds", "investors", "press-release"),
        "What is the funding history of {subject}?",
    ),
    _pattern(
        "contact",
        r"\b(?:contact|email|phone|address|headquarters|location)\b",
        AnswerType.STRUCTURED,
        ("official",),
        ("contact-page", "footer", "about-page"),
        "What is the contact information for {subject}?",
    ),
)

GENERAL_PATTERN = QuestionPattern(
    category="general",
    pattern=re.compile(r".*"),
    answer_type=AnswerType.TEXT,
    source_categories=("official",),
    extraction_hints=("about-page", "homepage"),
    template="What is {subject}?",
)


class QuestionClassifier(Protocol):
    """Maps query text to the question patterns it asks about, most relevant first."""

    def classify(self, text: str) -> list[QuestionPattern]:
        ...


class KeywordQuestionClassifier:
    """Regex keyword heuristics over ``QUESTION_PATTERNS``."""

    def __init__(self, patterns: tuple[QuestionPattern, ...] = QUESTION_PATTERNS) -> None:
        self.patterns = patterns

    def classify(self, text: str) -> list[QuestionPattern]:
        return [p for p in self.patterns if p.matches(text)]


# =============================================================================
# Budgets and domain templates
# =============================================================================

MODE_BUDGETS: dict[OperatorMode, ExecutionBudgets] = {
    OperatorMode.FAST: ExecutionBudgets(
        max_time_ms=30_000, max_pages=10, max_concurrency=5, max_cost=10, marginal_gain_floor=0.05
    ),
    OperatorMode.STANDARD: ExecutionBudgets(
        max_time_ms=120_000, max_pages=30, max_concurrency=3, max_cost=50, marginal_gain_floor=0.02
    ),
    OperatorMode.DEEP: ExecutionBudgets(
        max_time_ms=600_000, max_pages=100, max_concurrency=5, max_cost=200, marginal_gain_floor=0.01
    ),
    OperatorMode.COMPLIANCE: ExecutionBudgets(
        max_time_ms=300_000, max_pages=50, max_concurrency=2, max_cost=100, marginal_gain_floor=0.03
    ),
    OperatorMode.SIMULATION: ExecutionBudgets(
        max_time_ms=0, max_pages=0, max_concurrency=0, max_cost=0, marginal_gain_floor=1.0
    ),
}

# (domain regex, page templates); {slug} is the subject's URL slug.
DOMAIN_TEMPLATES: tuple[tuple[re.Pattern[str], tuple[str, ...]], ...] = (
    (re.compile(r"(^|\.)github\.com$"), ("/{slug}", "/{slug}/blob/main/README.md", "/{slug}/releases")),
    (re.compile(r"^docs\."), ("/", "/getting-started", "/api")),
    (re.compile(r"\.gov$"), ("/",)),
    (re.compile(r"(^|\.)crunchbase\.com$"), ("/organization/{slug}",)),
    (re.compile(r"(^|\.)linkedin\.com$"), ("/company/{slug}",)),
    (re.compile(r"(^|\.)(g2|capterra|trustradius)\.com$"), ("/products/{slug}",)),
    (re.compile(r"(^|\.)(reddit|quora)\.com$"), ("/search?q={slug}",)),
)
DEFAULT_PAGES: tuple[str, ...] = ("/", "/about", "/pricing", "/features")

QUESTION_WORDS = re.compile(
    r"^(?:what|who|when|where|how|why|is|are|does|do|can|could|would|"
    r"tell me about|find|search|look up)\s+",
    re.IGNORECASE,
)
CAPITALIZED_RUN = re.compile(r"[A-Z][A-Za-z0-9&.-]*(?:\s+[A-Z][A-Za-z0-9&.-]*)*")
COMPARE_CONTEXT = re.compile(r"\b(?:compare|comparison|versus|vs)\b", re.IGNORECASE)
RECENT_CONTEXT = re.compile(r"\b(?:recent|latest|new|updates?)\b", re.IGNORECASE)


def subject_slug(subject: str) -> str:
    return re.sub(r"[^a-z0-9]", "", subject.lower())


def expected_pages(domain: str, subject: str) -> list[str]:
    slug = subject_slug(subject)
    for pattern, pages in DOMAIN_TEMPLATES:
        if pattern.search(domain):
            return [page.format(slug=slug) for page in pages]
    return list(DEFAULT_PAGES)


# =============================================================================
# Planner
# =============================================================================


class Planner:
    """
    Objective decomposition, domain targeting and plan re-prioritization.

    Plans are reported invalid through ``validation_errors``; the planner
    never raises for a bad objective and never repairs a plan.
    """

    def __init__(
        self,
        source_intelligence: SourceIntelligence | None = None,
        mode: OperatorMode = OperatorMode.STANDARD,
        classifier: QuestionClassifier | None = None,
        tracer: ResearchTracer | None = None,
    ) -> None:
        self.source_intelligence = source_intelligence or SourceIntelligence()
        self.mode = OperatorMode(mode)
        self.classifier = classifier or KeywordQuestionClassifier()
        self.tracer = tracer or ResearchTracer()
        self._plans_generated = 0
        self._logger = logger

    # ------------------------------------------------------------------
    # Plan generation

    def generate_plan(
        self, objective: ResearchObjective, mode: OperatorMode | None = None
    ) -> ResearchPlan:
        """Build a plan for ``objective``; validation results are stored on it."""
        mode = OperatorMode(mode) if mode is not None else self.mode
        with self.tracer.span("webprobe.plan", {SpanAttributes.MODE: mode.value}) as span:
            subject = self.extract_subject(objective)
            patterns = self.classifier.classify(objective.query) or [GENERAL_PATTERN]

            questions = self._decompose(objective, subject, patterns)
            domains = self._target_domains(objective, subject, patterns, mode)
            schemas = self._schemas_for(questions)
            budgets = self._budgets_for(objective, mode)
            paths = self._build_paths(questions, domains, patterns)

            threshold = objective.required_confidence
            plan = ResearchPlan(
                objective=objective,
                mode=mode,
                primary_questions=questions,
                expected_answer_types=[q.answer_type for q in questions],
                target_domains=domains,
                extraction_schemas=schemas,
                confidence_threshold=(
                    DEFAULT_CONFIDENCE_THRESHOLD if threshold is None else threshold
                ),
                budgets=budgets,
                execution_paths=paths,
            )

            validation = self.validate_plan(plan)
            plan.is_valid = validation.valid
            plan.validation_errors = validation.errors

            span.set_attribute(SpanAttributes.PLAN_ID, plan.id)
            span.set_attribute(SpanAttributes.QUESTIONS, len(questions))
            span.set_attribute(SpanAttributes.DOMAINS, len(domains))

        self._plans_generated += 1
        self._logger.info(f"Plan {plan.id} for {subject!r}: {plan.summary()}")
        if not plan.is_valid:
            self._logger.warning(f"Plan {plan.id} invalid: {', '.join(plan.validation_errors)}")
        return plan

    def extract_subject(self, objective: ResearchObjective) -> str:
        """Known entity if given, else the first capitalized run of the query."""
        if objective.known_entities:
            return objective.known_entities[0]
        cleaned = QUESTION_WORDS.sub("", objective.query.strip()).rstrip("?").strip()
        match = CAPITALIZED_RUN.search(cleaned)
        if match:
            return match.group(0).rstrip(".")
        return cleaned

    def _decompose(
        self,
        objective: ResearchObjective,
        subject: str,
        patterns: list[QuestionPattern],
    ) -> list[PrimaryQuestion]:
        questions = []
        for index, pattern in enumerate(patterns):
            questions.append(
                PrimaryQuestion(
                    id=generate_id("q"),
                    text=pattern.template.format(subject=subject),
                    category=pattern.category,
                    priority=10 if index == 0 else 5,
                    required_confidence=DEFAULT_QUESTION_CONFIDENCE,
                    answer_type=pattern.answer_type,
                )
            )

        context = objective.context
        if context and COMPARE_CONTEXT.search(context):
            questions.append(
                PrimaryQuestion(
                    id=generate_id("q"),
                    text=f"How does {subject} compare to alternatives?",
                    category="competitive",
                    priority=3,
                    required_confidence=FOLLOW_UP_CONFIDENCE,
                    answer_type=AnswerType.LIST,
                )
            )
        if context and RECENT_CONTEXT.search(context):
            questions.append(
                PrimaryQuestion(
                    id=generate_id("q"),
                    text=f"What are the most recent updates or changes at {subject}?",
                    category="general",
                    priority=4,
                    required_confidence=FOLLOW_UP_CONFIDENCE,
                    answer_type=AnswerType.TEXT,
                )
            )
        return questions

    def _infer_primary_domain(self, subject: str) -> str | None:
        words = subject.split()
        if not words or len(words) > 3:
            return None
        slug = subject_slug(subject)
        return f"{slug}.com" if slug else None

    def _target_domains(
        self,
        objective: ResearchObjective,
        subject: str,
        patterns: list[QuestionPattern],
        mode: OperatorMode,
    ) -> list[RankedDomain]:
        intel = self.source_intelligence
        constraints = objective.constraints
        blocked = {normalize_domain(d) for d in constraints.blocked_domains}
        allowed_tiers = constraints.allowed_tiers
        if allowed_tiers is None and mode == OperatorMode.COMPLIANCE:
            allowed_tiers = COMPLIANCE_TIERS

        def is_blocked(domain: str) -> bool:
            return any(domain == b or domain.endswith(f".{b}") for b in blocked)

        candidates: dict[str, RankedDomain] = {}

        def add(domain: str, tier: TrustTier, relevance: float, content: list[str]) -> None:
            domain = normalize_domain(domain)
            if not domain or is_blocked(domain):
                return
            if allowed_tiers is not None and int(tier) not in allowed_tiers:
                return
            existing = candidates.get(domain)
            if existing is not None:
                existing.relevance = max(existing.relevance, relevance)
                existing.expected_content.extend(
                    c for c in content if c not in existing.expected_content
                )
                return
            candidates[domain] = RankedDomain(
                domain=domain,
                expected_tier=tier,
                relevance=relevance,
                expected_content=list(content),
                expected_pages=expected_pages(domain, subject),
            )

        for domain in objective.known_domains:
            add(domain, TrustTier.TIER_1, 1.0, ["primary", "official"])

        primary = self._infer_primary_domain(subject)
        if primary and not intel.should_avoid(primary):
            add(primary, TrustTier.TIER_2, 0.95, ["official", "product"])

        categories: list[str] = []
        for pattern in patterns:
            categories.extend(
                c for c in pattern.source_categories if c != "official" and c not in categories
            )
        for category in categories:
            for domain in intel.best_domains_for_category(category):
                score = intel.get_domain_score(domain)
                relevance = round(min(0.9, 0.4 + 0.5 * score.overall), 3)
                add(domain, score.tier, relevance, [category])

        return sorted(candidates.values(), key=lambda d: d.relevance, reverse=True)

    def _schemas_for(self, questions: list[PrimaryQuestion]) -> list[ExtractionSchema]:
        names = ["company_info"]
        for question in questions:
            name = CATEGORY_SCHEMAS.get(question.category, "company_info")
            if name not in names:
                names.append(name)
        return [EXTRACTION_SCHEMAS[name] for name in names]

    def _budgets_for(self, objective: ResearchObjective, mode: OperatorMode) -> ExecutionBudgets:
        budgets = replace(MODE_BUDGETS[mode])
        constraints = objective.constraints
        if constraints.max_time_ms is not None:
            budgets.max_time_ms = constraints.max_time_ms
        if constraints.max_pages is not None:
            budgets.max_pages = constraints.max_pages
        if constraints.max_concurrency is not None:
            budgets.max_concurrency = constraints.max_concurrency
        if constraints.max_cost is not None:
            budgets.max_cost = constraints.max_cost
        return budgets

    def _build_paths(
        self,
        questions: list[PrimaryQuestion],
        domains: list[RankedDomain],
        patterns: list[QuestionPattern],
    ) -> list[ExecutionPath]:
        if not domains:
            return []

        all_ids = [q.id for q in questions]
        paths = [
            ExecutionPath(
                id=generate_id("path"),
                goal="Primary source investigation",
                domain_scope=[domains[0].domain],
                extraction_targets=[q.text for q in questions],
                question_ids=all_ids,
                priority=10,
            )
        ]

        # Which questions each source category serves
        by_category: dict[str, list[PrimaryQuestion]] = {}
        hints: dict[str, list[str]] = {}
        pattern_by_category = {p.category: p for p in patterns}
        for question in questions:
            pattern = pattern_by_category.get(question.category)
            if pattern is None:
                continue
            for source_category in pattern.source_categories:
                by_category.setdefault(source_category, []).append(question)
                hints.setdefault(source_category, [])
                hints[source_category].extend(
                    h for h in pattern.extraction_hints if h not in hints[source_category]
                )

        ranked = sorted(by_category.items(), key=lambda item: len(item[1]), reverse=True)
        category_paths = 0
        for source_category, served in ranked:
            if category_paths >= MAX_CATEGORY_PATHS:
                break
            scope = [d.domain for d in domains if source_category in d.expected_content]
            if not scope or scope == paths[0].domain_scope:
                continue
            paths.append(
                ExecutionPath(
                    id=generate_id("path"),
                    goal=f"Investigate {source_category} sources",
                    domain_scope=scope,
                    extraction_targets=hints[source_category],
                    question_ids=[q.id for q in served],
                    priority=len(served),
                )
            )
            category_paths += 1

        verification_scope = [d.domain for d in domains[1 : 1 + MAX_VERIFICATION_DOMAINS]]
        if verification_scope:
            paths.append(
                ExecutionPath(
                    id=generate_id("path"),
                    goal="Cross-source verification",
                    domain_scope=verification_scope,
                    extraction_targets=["verify", "corroborate"],
                    question_ids=all_ids,
                    priority=1,
                )
            )
        return paths

    # ------------------------------------------------------------------
    # Validation and adjustment

    def validate_plan(self, plan: ResearchPlan) -> PlanValidation:
        errors = []
        if not plan.primary_questions:
            errors.append("No primary questions generated")
        if not plan.target_domains:
            errors.append("No target domains identified")
        if not plan.execution_paths:
            errors.append("No execution paths generated")
        if plan.mode != OperatorMode.SIMULATION:
            if plan.budgets.max_pages < MIN_PAGES:
                errors.append("Page budget too low")
            if plan.budgets.max_time_ms < MIN_TIME_MS:
                errors.append("Time budget too low")
        return PlanValidation(valid=not errors, errors=errors)

    def adjust_plan(self, plan: ResearchPlan, confidence_state: ConfidenceSnapshot) -> ResearchPlan:
        """
        Deprioritize paths whose questions are all answered well enough.

        Each such path loses 5 priority once (floor 0) and sorts below the
        paths still working on open questions.
        """
        if plan.finalized:
            return plan

        satisfied = {
            q.id
            for q in plan.primary_questions
            if confidence_state.per_question.get(q.id, 0.0) >= q.required_confidence
        }

        def is_satisfied(path: ExecutionPath) -> bool:
            return bool(path.question_ids) and all(q in satisfied for q in path.question_ids)

        demoted = 0
        for path in plan.execution_paths:
            if is_satisfied(path) and not path.deprioritized:
                path.priority = max(0, path.priority - SATISFIED_PATH_PENALTY)
                path.deprioritized = True
                demoted += 1

        plan.execution_paths.sort(
            key=lambda p: (not is_satisfied(p), p.priority), reverse=True
        )
        if demoted:
            self._logger.debug(f"Plan {plan.id}: deprioritized {demoted} satisfied paths")
        return plan

    def get_stats(self) -> dict[str, int | str]:
        return {"plans_generated": self._plans_generated, "mode": self.mode.value}


def create_planner(
    source_intelligence: SourceIntelligence | None = None,
    mode: OperatorMode | str = OperatorMode.STANDARD,
) -> Planner:
    return Planner(source_intelligence=source_intelligence, mode=OperatorMode(mode))
