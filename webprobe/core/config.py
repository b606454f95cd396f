"""
webprobe Configuration
======================

All tunables of the research core, grouped per component.

Every parameter can be set from:
- Code (dataclass fields)
- A YAML or JSON file
- ``WEBPROBE_*`` environment variables

Usage:
    config = WebProbeConfig.deep()
    config.cache.page_max_size = 500

    config = load_config("webprobe.yaml")
"""

from __future__ import annotations

import json
import logging
import os
from copy import deepcopy
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigLoadError, InvalidConfigValueError

logger = logging.getLogger("webprobe.core.config")


@dataclass
class CacheConfig:
    """Sizes and lifetimes of the four specialized caches."""

    page_max_size: int = 100
    page_ttl_seconds: float = 30 * 60
    extraction_max_size: int = 1000
    extraction_ttl_seconds: float = 60 * 60
    domain_map_max_size: int = 1000
    domain_map_ttl_seconds: float = 24 * 60 * 60
    query_max_size: int = 1000
    query_ttl_seconds: float = 60 * 60

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SourceIntelligenceConfig:
    success_rate_alpha: float = 0.3
    consistency_alpha: float = 0.2
    avoid_success_rate: float = 0.2
    stale_after_seconds: float | None = None
    blocked_domains: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ClaimGraphConfig:
    string_similarity: float = 0.8
    array_similarity: float = 0.8
    numeric_tolerance: float = 0.05
    stale_after_seconds: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TelemetryConfig:
    max_events: int = 10_000
    max_event_age_seconds: float = 60 * 60
    stop_target_ms: float = 200.0
    subscriber_buffer_size: int = 1000

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class EngineConfig:
    """Settings for the research driver."""

    mode: str = "standard"
    parallelism: int = 3
    max_urls_per_path: int = 5
    max_consecutive_failures: int = 3
    min_extraction_confidence: float = 0.3
    pause_poll_seconds: float = 0.05

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class WebProbeConfig:
    """
    Master configuration.

    Usage:
        config = WebProbeConfig.from_dict({"engine": {"mode": "deep"}})
    """

    cache: CacheConfig = field(default_factory=CacheConfig)
    source_intelligence: SourceIntelligenceConfig = field(
        default_factory=SourceIntelligenceConfig
    )
    claim_graph: ClaimGraphConfig = field(default_factory=ClaimGraphConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    log_level: str = "INFO"
    log_json: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "cache": self.cache.to_dict(),
            "source_intelligence": self.source_intelligence.to_dict(),
            "claim_graph": self.claim_graph.to_dict(),
            "telemetry": self.telemetry.to_dict(),
            "engine": self.engine.to_dict(),
            "log_level": self.log_level,
            "log_json": self.log_json,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WebProbeConfig:
        config = cls()
        sections = {
            "cache": CacheConfig,
            "source_intelligence": SourceIntelligenceConfig,
            "claim_graph": ClaimGraphConfig,
            "telemetry": TelemetryConfig,
            "engine": EngineConfig,
        }
        for name, section_cls in sections.items():
            if name not in data:
                continue
            section = data[name]
            if not isinstance(section, dict):
                raise InvalidConfigValueError(name, section, "mapping")
            try:
                setattr(config, name, section_cls(**_coerce_section(section_cls, section)))
            except TypeError as e:
                raise InvalidConfigValueError(name, section, section_cls.__name__, cause=e)

        if "log_level" in data:
            config.log_level = str(data["log_level"]).upper()
        if "log_json" in data:
            config.log_json = _to_bool(data["log_json"])
        return config

    @classmethod
    def fast(cls) -> WebProbeConfig:
        """Quick, shallow runs."""
        return cls(engine=EngineConfig(mode="fast", parallelism=5, max_urls_per_path=2))

    @classmethod
    def standard(cls) -> WebProbeConfig:
        return cls()

    @classmethod
    def deep(cls) -> WebProbeConfig:
        """Long runs with larger caches."""
        return cls(
            cache=CacheConfig(page_max_size=500, extraction_max_size=5000),
            engine=EngineConfig(mode="deep", parallelism=5, max_urls_per_path=10),
        )


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _coerce_section(section_cls: type, values: dict[str, Any]) -> dict[str, Any]:
    """Convert env-provided strings to the types of the dataclass defaults."""
    defaults = section_cls()
    result: dict[str, Any] = {}
    for key, value in values.items():
        current = getattr(defaults, key, None)
        if isinstance(value, str):
            try:
                if current is None:
                    # optional durations
                    value = float(value) if value.strip() else None
                elif isinstance(current, bool):
                    value = _to_bool(value)
                elif isinstance(current, int):
                    value = int(value)
                elif isinstance(current, float):
                    value = float(value)
                elif isinstance(current, list):
                    value = [item.strip() for item in value.split(",") if item.strip()]
            except ValueError as e:
                raise InvalidConfigValueError(key, value, type(current).__name__, cause=e)
        result[key] = value
    return result


class ConfigLoader:
    """
    Loads configuration from files (YAML/JSON) and environment variables.
    """

    ENV_MAPPINGS: dict[str, tuple[str, ...]] = {
        "LOG_LEVEL": ("log_level",),
        "LOG_JSON": ("log_json",),
        "MODE": ("engine", "mode"),
        "PARALLELISM": ("engine", "parallelism"),
        "MAX_URLS_PER_PATH": ("engine", "max_urls_per_path"),
        "PAGE_CACHE_SIZE": ("cache", "page_max_size"),
        "PAGE_CACHE_TTL": ("cache", "page_ttl_seconds"),
        "STOP_TARGET_MS": ("telemetry", "stop_target_ms"),
        "MAX_EVENTS": ("telemetry", "max_events"),
        "BLOCKED_DOMAINS": ("source_intelligence", "blocked_domains"),
        "SOURCE_STALE_AFTER": ("source_intelligence", "stale_after_seconds"),
        "CLAIM_STALE_AFTER": ("claim_graph", "stale_after_seconds"),
    }

    def __init__(self, env_prefix: str = "WEBPROBE_"):
        self.env_prefix = env_prefix
        self._logger = logging.getLogger("webprobe.core.config.loader")

    def load_from_file(self, path: str) -> dict[str, Any]:
        """Load configuration from a YAML or JSON file"""
        file_path = Path(path)

        if not file_path.exists():
            raise ConfigLoadError(config_path=path, reason="File does not exist")

        suffix = file_path.suffix.lower()
        if suffix not in (".yaml", ".yml", ".json"):
            raise ConfigLoadError(config_path=path, reason=f"Unsupported file format: {suffix}")

        try:
            content = file_path.read_text(encoding="utf-8")
            if suffix == ".json":
                data = json.loads(content)
            else:
                data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ConfigLoadError(config_path=path, reason=f"YAML error: {e}", cause=e)
        except json.JSONDecodeError as e:
            raise ConfigLoadError(config_path=path, reason=f"JSON error: {e}", cause=e)
        except OSError as e:
            raise ConfigLoadError(config_path=path, reason=str(e), cause=e)

        if not isinstance(data, dict):
            raise ConfigLoadError(config_path=path, reason="Top level must be a mapping")

        self._logger.debug(f"Loaded configuration from {path}")
        return data

    def load_from_env(self) -> dict[str, Any]:
        """Load configuration from environment variables"""
        config: dict[str, Any] = {}
        for suffix, config_path in self.ENV_MAPPINGS.items():
            value = os.environ.get(f"{self.env_prefix}{suffix}")
            if value is not None:
                self._set_nested(config, config_path, value)
        return config

    def _set_nested(self, config: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
        current = config
        for key in path[:-1]:
            current = current.setdefault(key, {})
        current[path[-1]] = value

    def deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        result = deepcopy(base)

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self.deep_merge(result[key], value)
            else:
                result[key] = deepcopy(value)

        return result


def load_config(path: str | None = None, env_prefix: str = "WEBPROBE_") -> WebProbeConfig:
    """Defaults, then the file at ``path``, then environment overrides."""
    loader = ConfigLoader(env_prefix=env_prefix)
    data: dict[str, Any] = {}
    if path:
        data = loader.load_from_file(path)
    data = loader.deep_merge(data, loader.load_from_env())
    return WebProbeConfig.from_dict(data)
