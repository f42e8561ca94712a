"""Response cache for the resilient fetcher."""

from resilient_fetch.cache.store import CacheEntry, ResponseCache, make_cache_key

__all__ = [
    "CacheEntry",
    "ResponseCache",
    "make_cache_key",
]
