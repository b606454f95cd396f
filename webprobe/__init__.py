"""
webprobe
========

Autonomous web research core: plans a bounded investigation for a
natural-language objective, runs concurrent navigation and extraction paths
through a host-supplied browser driver, cross-verifies extracted claims and
reports answers with calibrated confidence.

Components:
    - Planner: objective decomposition, domain targeting, budgets
    - Source Intelligence: five-tier domain trust and adaptive scores
    - Claim Graph: deduplication, corroboration, contradictions
    - Cache Manager: TTL caches with least-hit eviction
    - Telemetry: progress, events and pause/resume/stop control

Usage:
    from webprobe import ResearchEngine, ResearchObjective

    engine = ResearchEngine(driver=my_driver)
    result = await engine.research(ResearchObjective(query="What is Acme's pricing?"))
"""

__version__ = "0.1.0"

from .cache import CacheManager, TTLCache
from .core import (
    ConfidenceLevel,
    ExtractionResult,
    StateImportError,
    TrustTier,
    WebProbeConfig,
    WebProbeError,
    load_config,
)
from .logging_config import setup_logging
from .observability import (
    ExecutionStatus,
    ResearchMetrics,
    ResearchTracer,
    StopCondition,
    StopReason,
    TelemetryEngine,
)
from .research import (
    ClaimGraph,
    ConfidenceEngine,
    NavigationDriver,
    NavigationResult,
    OperatorMode,
    Planner,
    ResearchConstraints,
    ResearchEngine,
    ResearchObjective,
    ResearchPlan,
    ResearchResult,
    SourceIntelligence,
    create_planner,
    create_research_engine,
)

__all__ = [
    "__version__",
    "CacheManager",
    "TTLCache",
    "ConfidenceLevel",
    "ExtractionResult",
    "StateImportError",
    "TrustTier",
    "WebProbeConfig",
    "WebProbeError",
    "load_config",
    "setup_logging",
    "ExecutionStatus",
    "ResearchMetrics",
    "ResearchTracer",
    "StopCondition",
    "StopReason",
    "TelemetryEngine",
    "ClaimGraph",
    "ConfidenceEngine",
    "NavigationDriver",
    "NavigationResult",
    "OperatorMode",
    "Planner",
    "ResearchConstraints",
    "ResearchEngine",
    "ResearchObjective",
    "ResearchPlan",
    "ResearchResult",
    "SourceIntelligence",
    "create_planner",
    "create_research_engine",
]
