"""
Booking service caching package.

An in-process TTL store fronting the public doctor read routes, with
cache-aside interception on reads and explicit invalidation on writes.
Prefer idempotent, short-lived caches and explicit invalidation.
"""

from .store import CacheEntry, CacheStats, CacheStore, DEFAULT_TTL_SECONDS, NO_EXPIRY
from .keys import build_cache_key, collection_targets, request_cache_key
from .interceptor import CachedResponse, CacheInterceptor
from .invalidation import InvalidationTrigger
from .sweeper import CacheSweeper

__all__ = [
    "CacheEntry",
    "CacheStats",
    "CacheStore",
    "DEFAULT_TTL_SECONDS",
    "NO_EXPIRY",
    "build_cache_key",
    "collection_targets",
    "request_cache_key",
    "CachedResponse",
    "CacheInterceptor",
    "InvalidationTrigger",
    "CacheSweeper",
]
