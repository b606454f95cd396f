"""
Cache Manager
=============

Four specialized caches on top of :class:`TTLCache`:

- page content, keyed by normalized URL
- extraction results, keyed by normalized URL
- per-domain navigation knowledge, keyed by domain
- query → URL memoization, keyed by a hash of the query

Usage:
    caches = CacheManager(CacheConfig())
    caches.set_page(PageSnapshot(url="https://acme.com/pricing", text="..."))
    page = caches.get_page("http://www.acme.com/pricing/")
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from webprobe.cache.base import CacheEntry
from webprobe.cache.memory_cache import TTLCache
from webprobe.core.config import CacheConfig
from webprobe.core.exceptions import StateImportError
from webprobe.core.helpers import hash_string, normalize_domain, normalize_url
from webprobe.core.types import ExtractionResult

logger = logging.getLogger("webprobe.cache.manager")


@dataclass
class PageSnapshot:
    url: str
    text: str = ""
    html: str = ""
    title: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "text": self.text,
            "html": self.html,
            "title": self.title,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PageSnapshot:
        return cls(
            url=data["url"],
            text=data.get("text", ""),
            html=data.get("html", ""),
            title=data.get("title", ""),
            timestamp=float(data.get("timestamp", time.time())),
        )


@dataclass
class DomainNavigation:
    """What has been learned about navigating one domain."""

    domain: str
    high_signal_urls: list[str] = field(default_factory=list)
    navigation_paths: dict[str, list[str]] = field(default_factory=dict)
    last_updated: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "high_signal_urls": list(self.high_signal_urls),
            "navigation_paths": {k: list(v) for k, v in self.navigation_paths.items()},
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DomainNavigation:
        return cls(
            domain=data["domain"],
            high_signal_urls=list(data.get("high_signal_urls", [])),
            navigation_paths={k: list(v) for k, v in data.get("navigation_paths", {}).items()},
            last_updated=float(data.get("last_updated", time.time())),
        )


def query_key(query: str) -> str:
    return hash_string(query.strip().lower())


class CacheManager:
    """
    Owns the four research caches and their aggregate counters.

    All sub-caches are thread-safe, so paths running concurrently can share
    one manager.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or CacheConfig()
        self._clock = clock
        self.pages: TTLCache[PageSnapshot] = TTLCache(
            "pages", self.config.page_ttl_seconds, self.config.page_max_size, clock
        )
        self.extractions: TTLCache[list[ExtractionResult]] = TTLCache(
            "extractions",
            self.config.extraction_ttl_seconds,
            self.config.extraction_max_size,
            clock,
        )
        self.domain_maps: TTLCache[DomainNavigation] = TTLCache(
            "domain_maps",
            self.config.domain_map_ttl_seconds,
            self.config.domain_map_max_size,
            clock,
        )
        self.queries: TTLCache[list[str]] = TTLCache(
            "queries", self.config.query_ttl_seconds, self.config.query_max_size, clock
        )
        self._logger = logger

    def _caches(self) -> dict[str, TTLCache[Any]]:
        return {
            "pages": self.pages,
            "extractions": self.extractions,
            "domain_maps": self.domain_maps,
            "queries": self.queries,
        }

    # ------------------------------------------------------------------
    # Pages and extractions

    def get_page(self, url: str) -> PageSnapshot | None:
        return self.pages.get(normalize_url(url))

    def set_page(self, page: PageSnapshot, ttl_seconds: float | None = None) -> None:
        self.pages.set(normalize_url(page.url), page, ttl_seconds)

    def get_extractions(self, url: str) -> list[ExtractionResult] | None:
        return self.extractions.get(normalize_url(url))

    def set_extractions(
        self, url: str, results: list[ExtractionResult], ttl_seconds: float | None = None
    ) -> None:
        self.extractions.set(normalize_url(url), list(results), ttl_seconds)

    # ------------------------------------------------------------------
    # Domain navigation knowledge

    def get_domain_map(self, domain: str) -> DomainNavigation | None:
        return self.domain_maps.get(normalize_domain(domain))

    def update_domain_map(
        self,
        domain: str,
        high_signal_urls: list[str] | None = None,
        navigation_paths: dict[str, list[str]] | None = None,
    ) -> DomainNavigation:
        """
        Merge new knowledge into a domain's entry.

        High-signal URLs are unioned with what is already known; navigation
        paths given here replace the stored ones for the same goal.
        """
        key = normalize_domain(domain)

        def merge(current: DomainNavigation | None) -> DomainNavigation:
            current = current or DomainNavigation(domain=key)
            urls = list(current.high_signal_urls)
            for url in high_signal_urls or []:
                if url not in urls:
                    urls.append(url)
            return DomainNavigation(
                domain=key,
                high_signal_urls=urls,
                navigation_paths={**current.navigation_paths, **(navigation_paths or {})},
                last_updated=self._clock(),
            )

        return self.domain_maps.update(key, merge)

    def get_high_signal_urls(self, domain: str) -> list[str]:
        entry = self.domain_maps.get_entry(normalize_domain(domain))
        return list(entry.value.high_signal_urls) if entry else []

    # ------------------------------------------------------------------
    # Query memoization

    def get_query_results(self, query: str) -> list[str] | None:
        return self.queries.get(query_key(query))

    def set_query_results(self, query: str, urls: list[str]) -> None:
        self.queries.set(query_key(query), list(urls))

    # ------------------------------------------------------------------
    # Housekeeping

    def get_stats(self) -> dict[str, Any]:
        per_cache = {name: cache.get_stats() for name, cache in self._caches().items()}
        hits = sum(s["hits"] for s in per_cache.values())
        misses = sum(s["misses"] for s in per_cache.values())
        total = hits + misses
        return {
            "hits": hits,
            "misses": misses,
            "hit_rate": hits / total if total else 0.0,
            "hit_rate_pct": f"{(hits / total if total else 0.0):.1%}",
            "caches": per_cache,
        }

    def cleanup(self) -> int:
        return sum(cache.cleanup() for cache in self._caches().values())

    def clear(self) -> None:
        for cache in self._caches().values():
            cache.clear()

    def reset_counters(self) -> None:
        for cache in self._caches().values():
            cache.reset_counters()

    def estimate_memory(self) -> int:
        """Rough size in bytes of the cached values, serialized."""
        total = 0
        for entries in self.export_state()["caches"].values():
            total += len(json.dumps(entries, default=str))
        return total

    # ------------------------------------------------------------------
    # Persistence

    def export_state(self) -> dict[str, Any]:
        return {
            "exported_at": self._clock(),
            "caches": {
                "pages": [_entry_to_dict(e, e.value.to_dict()) for e in self.pages.export_entries()],
                "extractions": [
                    _entry_to_dict(e, [r.to_dict() for r in e.value])
                    for e in self.extractions.export_entries()
                ],
                "domain_maps": [
                    _entry_to_dict(e, e.value.to_dict()) for e in self.domain_maps.export_entries()
                ],
                "queries": [_entry_to_dict(e, list(e.value)) for e in self.queries.export_entries()],
            },
        }

    def import_state(self, state: dict[str, Any]) -> int:
        """
        Restore a snapshot produced by :meth:`export_state`.

        Expired entries are skipped. Raises StateImportError on a malformed
        snapshot, leaving the current contents untouched.
        """
        decoders: dict[str, Callable[[Any], Any]] = {
            "pages": PageSnapshot.from_dict,
            "extractions": lambda v: [ExtractionResult.from_dict(r) for r in v],
            "domain_maps": DomainNavigation.from_dict,
            "queries": lambda v: [str(u) for u in v],
        }
        try:
            caches = state["caches"]
            decoded = {
                name: [_entry_from_dict(raw, decoders[name]) for raw in caches.get(name, [])]
                for name in decoders
            }
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StateImportError("cache", str(e), cause=e)

        kept = 0
        for name, entries in decoded.items():
            kept += self._caches()[name].import_entries(entries)
        self._logger.info(f"Imported {kept} cache entries")
        return kept


def _entry_to_dict(entry: CacheEntry[Any], value: Any) -> dict[str, Any]:
    return {
        "key": entry.key,
        "value": value,
        "created_at": entry.created_at,
        "expires_at": entry.expires_at,
        "version": entry.version,
        "hits": entry.hits,
    }


def _entry_from_dict(raw: dict[str, Any], decode: Callable[[Any], Any]) -> CacheEntry[Any]:
    return CacheEntry(
        key=str(raw["key"]),
        value=decode(raw["value"]),
        created_at=float(raw["created_at"]),
        expires_at=float(raw["expires_at"]),
        version=int(raw.get("version", 1)),
        hits=int(raw.get("hits", 0)),
    )
