"""
In-memory cache with LRU eviction, TTL expiration and lifecycle hooks.

Provides:
- CacheManager: LRU + TTL cache with pattern invalidation and single-flight get_or_set
- CacheHooks: lifecycle callbacks (hit, miss, set, evict, expire, delete)
- @cached: Decorator giving a function its own private cache
- @cache_invalidate: Decorator for invalidating cache on writes
"""

from .cache_manager import CacheEntry, CacheManager, CacheStats
from .decorators import CachedFunction, cache_invalidate, cached
from .exceptions import CacheConfigError, CacheError
from .hooks import (
    CacheHooks,
    DeleteEvent,
    DeleteSource,
    EvictEvent,
    ExpireEvent,
    ExpireSource,
    HitEvent,
    MissEvent,
    MissReason,
    SetEvent,
)

__all__ = [
    "CacheManager",
    "CacheEntry",
    "CacheStats",
    "CachedFunction",
    "cached",
    "cache_invalidate",
    "CacheError",
    "CacheConfigError",
    "CacheHooks",
    "HitEvent",
    "MissEvent",
    "SetEvent",
    "EvictEvent",
    "ExpireEvent",
    "DeleteEvent",
    "MissReason",
    "ExpireSource",
    "DeleteSource",
]
