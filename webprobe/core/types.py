"""
Core Types
==========

Types shared by every layer: trust tiers, confidence levels and the
extraction payload handed over by the navigation collaborator.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from .helpers import content_hash


class TrustTier(IntEnum):
    """Source trust tier. Lower is more authoritative."""

    TIER_1 = 1  # official, government, documentation, code repositories
    TIER_2 = 2  # first-party blogs, professional networks, funding databases
    TIER_3 = 3  # reputable news and review sites, unknown domains
    TIER_4 = 4  # forums and Q&A
    TIER_5 = 5  # content farms, deny-listed platforms

    @classmethod
    def coerce(cls, value: Any) -> TrustTier:
        """Clamp arbitrary input into a tier, defaulting to neutral."""
        try:
            number = int(value)
        except (TypeError, ValueError):
            return cls.TIER_3
        return cls(min(max(number, 1), 5))


class ConfidenceLevel(str, Enum):
    VERIFIED = "verified"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNCERTAIN = "uncertain"
    CONTRADICTED = "contradicted"


@dataclass
class ExtractionResult:
    """
    Structured data pulled from one page by an extraction adapter.

    ``data`` holds the fields of the schema named by ``schema_name``
    (see ``webprobe.research.types.EXTRACTION_SCHEMAS``).
    """

    schema_name: str
    data: dict[str, Any]
    source_url: str
    confidence: float = 1.0
    timestamp: float = field(default_factory=time.time)
    content_hash: str = ""

    def __post_init__(self) -> None:
        if not self.content_hash:
            self.content_hash = content_hash(self.data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_name": self.schema_name,
            "data": self.data,
            "source_url": self.source_url,
            "confidence": self.confidence,
            "timestamp": self.timestamp,
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExtractionResult:
        return cls(
            schema_name=data["schema_name"],
            data=dict(data["data"]),
            source_url=data["source_url"],
            confidence=float(data.get("confidence", 1.0)),
            timestamp=float(data.get("timestamp", time.time())),
            content_hash=data.get("content_hash", ""),
        )
