from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with its lifetime and hit count."""

    key: str
    value: T
    created_at: float
    expires_at: float
    version: int = 1
    hits: int = 0

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.time()) > self.expires_at

    def access(self) -> None:
        self.hits += 1

    def age(self, now: float | None = None) -> float:
        return (now if now is not None else time.time()) - self.created_at


class CacheBackend(ABC, Generic[T]):
    """Common interface and counters for cache implementations."""

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_size: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "evictions": 0}

    @abstractmethod
    def get(self, key: str) -> T | None:
        pass

    @abstractmethod
    def set(self, key: str, value: T, ttl_seconds: float | None = None) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def has(self, key: str) -> bool:
        pass

    def get_stats(self) -> dict[str, Any]:
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = self._stats["hits"] / total if total > 0 else 0.0
        return {
            **self._stats,
            "hit_rate": hit_rate,
            "total_requests": total,
        }

    def reset_counters(self) -> None:
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "evictions": 0}

    def _record_hit(self) -> None:
        self._stats["hits"] += 1

    def _record_miss(self) -> None:
        self._stats["misses"] += 1

    def _record_set(self) -> None:
        self._stats["sets"] += 1

    def _record_eviction(self) -> None:
        self._stats["evictions"] += 1
