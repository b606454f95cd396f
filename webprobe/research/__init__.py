"""
webprobe Research
=================

Planner, source intelligence, claim graph, confidence engine and the async
research driver.

Usage:
    from webprobe.research import ResearchEngine, ResearchObjective

    engine = ResearchEngine(driver=my_driver)
    result = await engine.research(ResearchObjective(query="Who invests in Acme?"))
"""

from .claim_graph import (
    TIER_BASELINES,
    ClaimGraph,
    ClaimIngestResult,
    compute_confidence_score,
    determine_confidence_level,
)
from .confidence import ConfidenceEngine
from .engine import (
    Answer,
    NavigationDriver,
    NavigationResult,
    ResearchEngine,
    ResearchResult,
    create_research_engine,
)
from .planner import (
    MODE_BUDGETS,
    QUESTION_PATTERNS,
    KeywordQuestionClassifier,
    Planner,
    QuestionClassifier,
    QuestionPattern,
    create_planner,
)
from .rules import ConfidenceRule, Equals, HasField, LengthAbove, Threshold, apply_confidence_rules
from .source_intelligence import ConsistencyObservation, SourceIntelligence
from .types import (
    EXTRACTION_SCHEMAS,
    AnswerType,
    Claim,
    ClaimRelationship,
    ClaimSource,
    ConfidenceSnapshot,
    DomainIntelligence,
    DomainScore,
    ExecutionBudgets,
    ExecutionPath,
    ExtractionSchema,
    OperatorMode,
    PathStatus,
    PlanValidation,
    PrimaryQuestion,
    RankedDomain,
    ResearchConstraints,
    ResearchObjective,
    ResearchPlan,
    ScoringContext,
    VisitOutcome,
)

__all__ = [
    # Engine
    "ResearchEngine",
    "ResearchResult",
    "Answer",
    "NavigationDriver",
    "NavigationResult",
    "create_research_engine",
    # Planner
    "Planner",
    "QuestionClassifier",
    "KeywordQuestionClassifier",
    "QuestionPattern",
    "QUESTION_PATTERNS",
    "MODE_BUDGETS",
    "create_planner",
    # Components
    "SourceIntelligence",
    "ConsistencyObservation",
    "ClaimGraph",
    "ClaimIngestResult",
    "ConfidenceEngine",
    "TIER_BASELINES",
    "compute_confidence_score",
    "determine_confidence_level",
    # Rules
    "ConfidenceRule",
    "HasField",
    "Equals",
    "Threshold",
    "LengthAbove",
    "apply_confidence_rules",
    # Types
    "EXTRACTION_SCHEMAS",
    "AnswerType",
    "Claim",
    "ClaimRelationship",
    "ClaimSource",
    "ConfidenceSnapshot",
    "DomainIntelligence",
    "DomainScore",
    "ExecutionBudgets",
    "ExecutionPath",
    "ExtractionSchema",
    "OperatorMode",
    "PathStatus",
    "PlanValidation",
    "PrimaryQuestion",
    "RankedDomain",
    "ResearchConstraints",
    "ResearchObjective",
    "ResearchPlan",
    "ScoringContext",
    "VisitOutcome",
]
