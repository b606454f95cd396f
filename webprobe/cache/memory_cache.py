from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any, TypeVar

from webprobe.cache.base import CacheBackend, CacheEntry

T = TypeVar("T")

logger = logging.getLogger("webprobe.cache.memory")


class TTLCache(CacheBackend[T]):
    """
    In-memory cache with per-entry TTL and least-frequently-used eviction.

    At capacity, expired entries are dropped first; if the cache is still
    full the entry with the fewest hits goes (earliest insertion wins ties).
    Recency plays no part in eviction.
    """

    def __init__(
        self,
        name: str = "cache",
        ttl_seconds: float = 3600,
        max_size: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(ttl_seconds=ttl_seconds, max_size=max_size, clock=clock)
        self.name = name
        self._cache: dict[str, CacheEntry[T]] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._record_miss()
                return None

            if entry.is_expired(self._clock()):
                del self._cache[key]
                self._record_miss()
                self._record_eviction()
                return None

            entry.access()
            self._record_hit()
            return entry.value

    def get_entry(self, key: str) -> CacheEntry[T] | None:
        """Entry metadata without counting a hit."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None or entry.is_expired(self._clock()):
                return None
            return entry

    def set(self, key: str, value: T, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self._clock()

        with self._lock:
            previous = self._cache.get(key)
            if previous is None and len(self._cache) >= self.max_size:
                self._make_room(now)

            self._cache[key] = CacheEntry(
                key=key,
                value=value,
                created_at=now,
                expires_at=now + ttl,
                version=previous.version + 1 if previous else 1,
                hits=previous.hits if previous else 0,
            )
            self._record_set()

    def update(
        self, key: str, fn: Callable[[T | None], T], ttl_seconds: float | None = None
    ) -> T:
        """Replace the live value under the lock: ``fn(current_or_None)`` is stored."""
        with self._lock:
            entry = self.get_entry(key)
            value = fn(entry.value if entry else None)
            self.set(key, value, ttl_seconds)
            return value

    def _make_room(self, now: float) -> None:
        expired = [k for k, e in self._cache.items() if e.is_expired(now)]
        for key in expired:
            del self._cache[key]
            self._record_eviction()

        while len(self._cache) >= self.max_size and self._cache:
            victim = min(self._cache.values(), key=lambda e: e.hits)
            del self._cache[victim.key]
            self._record_eviction()
            logger.debug(f"{self.name}: evicted {victim.key} (hits={victim.hits})")

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def has(self, key: str) -> bool:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._cache[key]
                self._record_eviction()
                return False
            return True

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self.reset_counters()

    def cleanup(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._cache.items() if e.is_expired(now)]
            for key in expired:
                del self._cache[key]
                self._record_eviction()
        if expired:
            logger.debug(f"{self.name}: cleaned {len(expired)} expired entries")
        return len(expired)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._cache.keys())

    def size(self) -> int:
        with self._lock:
            return len(self._cache)

    def get_stats(self) -> dict[str, Any]:
        now = self._clock()
        with self._lock:
            ages = [entry.age(now) for entry in self._cache.values()]
            return {
                **super().get_stats(),
                "name": self.name,
                "size": len(self._cache),
                "max_size": self.max_size,
                "avg_age_seconds": sum(ages) / len(ages) if ages else 0.0,
            }

    def export_entries(self) -> list[CacheEntry[T]]:
        """Snapshot of unexpired entries."""
        now = self._clock()
        with self._lock:
            return [
                CacheEntry(e.key, e.value, e.created_at, e.expires_at, e.version, e.hits)
                for e in self._cache.values()
                if not e.is_expired(now)
            ]

    def import_entries(self, entries: list[CacheEntry[T]]) -> int:
        """Load entries, silently skipping expired ones; returns the count kept."""
        now = self._clock()
        kept = 0
        with self._lock:
            for entry in entries:
                if entry.is_expired(now):
                    continue
                if entry.key not in self._cache and len(self._cache) >= self.max_size:
                    self._make_room(now)
                self._cache[entry.key] = entry
                kept += 1
        return kept
