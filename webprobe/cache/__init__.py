from webprobe.cache.base import CacheBackend, CacheEntry
from webprobe.cache.manager import CacheManager, DomainNavigation, PageSnapshot, query_key
from webprobe.cache.memory_cache import TTLCache

__all__ = [
    "CacheBackend",
    "CacheEntry",
    "CacheManager",
    "DomainNavigation",
    "PageSnapshot",
    "TTLCache",
    "query_key",
]
