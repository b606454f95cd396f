"""
webprobe Core
=============

Shared types, configuration, exceptions, event channels and helpers.
"""

from .config import (
    CacheConfig,
    ClaimGraphConfig,
    ConfigLoader,
    EngineConfig,
    SourceIntelligenceConfig,
    TelemetryConfig,
    WebProbeConfig,
    load_config,
)
from .events import EventChannel, Subscription
from .exceptions import (
    ConfigLoadError,
    ConfigurationError,
    EngineBusyError,
    InvalidConfigValueError,
    InvalidStateTransitionError,
    PlanningError,
    ResearchError,
    StateError,
    StateImportError,
    WebProbeError,
)
from .helpers import extract_domain, generate_id, hash_string, normalize_domain, normalize_url
from .types import ConfidenceLevel, ExtractionResult, TrustTier

__all__ = [
    "CacheConfig",
    "ClaimGraphConfig",
    "ConfigLoader",
    "EngineConfig",
    "SourceIntelligenceConfig",
    "TelemetryConfig",
    "WebProbeConfig",
    "load_config",
    "EventChannel",
    "Subscription",
    "ConfigLoadError",
    "ConfigurationError",
    "EngineBusyError",
    "InvalidConfigValueError",
    "InvalidStateTransitionError",
    "PlanningError",
    "ResearchError",
    "StateError",
    "StateImportError",
    "WebProbeError",
    "extract_domain",
    "generate_id",
    "hash_string",
    "normalize_domain",
    "normalize_url",
    "ConfidenceLevel",
    "ExtractionResult",
    "TrustTier",
]
