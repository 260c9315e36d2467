"""
In-memory cache manager with TTL expiration, LRU eviction, and pattern invalidation.

Features:
- Recency-ordered store: the first entry is always the least recently used
- TTL-based entry expiration with lazy cleanup and explicit prune()
- Prefix and wildcard ("magic string") bulk deletion
- Hit/miss/eviction/expiration statistics
- Single-flight get_or_set() for async read-through
- Lifecycle hooks that can never break the cache

Not thread-safe: a CacheManager belongs to one thread (or one event loop).
"""

import asyncio
import inspect
import logging
import math
import re
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from . import config
from .exceptions import CacheConfigError
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

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.monotonic() * 1000


@dataclass(slots=True)
class CacheEntry:
    """A stored value and the time it was last written (ms)."""

    value: Any
    timestamp: float


@dataclass
class CacheStats:
    """Cache statistics snapshot."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict:
        """Convert to dict."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "size": self.size,
            "hit_rate": self.hit_rate,
        }


class CacheManager:
    """In-memory cache with TTL, LRU eviction, pattern invalidation and hooks."""

    def __init__(
        self,
        max_size: int = config.DEFAULT_MAX_SIZE,
        ttl: float = config.DEFAULT_TTL_MS,
        hooks: CacheHooks | None = None,
    ):
        """
        Initialize cache manager.

        Args:
            max_size: Maximum number of entries before LRU eviction. 0 means unlimited.
            ttl: Entry time-to-live in milliseconds. 0 means entries never expire.
            hooks: Optional lifecycle callbacks.

        Raises:
            CacheConfigError: If max_size or ttl is negative or not a number.
        """
        if isinstance(max_size, bool) or not isinstance(max_size, int) or max_size < 0:
            raise CacheConfigError(f"max_size must be a non-negative integer, got {max_size!r}")
        if (
            isinstance(ttl, bool)
            or not isinstance(ttl, int | float)
            or math.isnan(ttl)
            or ttl < 0
        ):
            raise CacheConfigError(f"ttl must be a non-negative number, got {ttl!r}")

        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._in_flight: dict[str, asyncio.Future] = {}
        self._max_size = max_size
        self._ttl = ttl
        self._hooks = hooks or CacheHooks()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def ttl(self) -> float:
        return self._ttl

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return self._ttl > 0 and now - entry.timestamp > self._ttl

    # ------------------------------------------------------------------
    # Reads and writes
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get value from cache.

        A hit moves the entry to the most-recently-used position. An expired
        entry is removed and reported as a miss.

        Args:
            key: Cache key
            default: Returned when the key is absent or expired

        Returns:
            Cached value, or default. Use has() to tell a cached None from a miss.
        """
        entry = self._store.get(key)
        if entry is None:
            self._misses += 1
            self._hooks.emit("on_miss", MissEvent(key, MissReason.NOT_FOUND))
            return default

        if self._is_expired(entry, _now_ms()):
            del self._store[key]
            self._expirations += 1
            self._misses += 1
            self._hooks.emit("on_expire", ExpireEvent(key, entry.value, ExpireSource.GET))
            self._hooks.emit("on_miss", MissEvent(key, MissReason.EXPIRED))
            return default

        self._store.move_to_end(key)
        self._hits += 1
        self._hooks.emit("on_hit", HitEvent(key, entry.value))
        return entry.value

    def has(self, key: str) -> bool:
        """
        Check whether a live entry exists for key, whatever its value.

        Does not affect LRU order or hit/miss statistics. An expired entry is
        removed and on_expire fires.
        """
        entry = self._store.get(key)
        if entry is None:
            return False

        if self._is_expired(entry, _now_ms()):
            del self._store[key]
            self._hooks.emit("on_expire", ExpireEvent(key, entry.value, ExpireSource.HAS))
            return False

        return True

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def set(self, key: str, value: Any) -> None:
        """
        Set value in cache.

        A new key stored while the cache is full evicts the least recently used
        entry first. Updating an existing key never evicts.

        Args:
            key: Cache key
            value: Value to cache (None is a valid value)
        """
        is_update = key in self._store

        if not is_update and self._max_size > 0 and len(self._store) >= self._max_size:
            self._evict_lru()

        if is_update:
            self._store.move_to_end(key)
        self._store[key] = CacheEntry(value, _now_ms())
        self._hooks.emit("on_set", SetEvent(key, value, is_update))

    def _evict_lru(self) -> None:
        """Evict the least-recently-used entry."""
        lru_key, lru_entry = next(iter(self._store.items()))
        self._evictions += 1
        self._hooks.emit("on_evict", EvictEvent(lru_key, lru_entry.value))
        self._store.pop(lru_key, None)
        logger.debug(f"Evicted LRU key: {lru_key}")

    async def get_or_set(self, key: str, fetcher: Callable[[], Any]) -> Any:
        """
        Return the cached value for key, or compute, cache and return it.

        Concurrent callers asking for the same missing key share one call to
        fetcher: the first caller runs it, the rest await its outcome. Failures
        are propagated to every waiting caller and nothing is cached, so the
        next call fetches again.

        Args:
            key: Cache key
            fetcher: Zero-argument callable returning a value or an awaitable

        Returns:
            The cached or freshly fetched value

        Example:
            user = await cache.get_or_set(f"user:{user_id}", lambda: api.fetch_user(user_id))
        """
        if self.has(key):
            return self.get(key)

        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug(f"Joining in-flight fetch for key: {key}")
            # Shield so a cancelled waiter does not cancel the shared fetch
            return await asyncio.shield(pending)

        self._misses += 1
        self._hooks.emit("on_miss", MissEvent(key, MissReason.NOT_FOUND))

        future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = fetcher()
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            self._in_flight.pop(key, None)
            if isinstance(exc, StopIteration):
                # Futures reject StopIteration
                future.set_exception(RuntimeError(f"fetcher for {key!r} raised StopIteration"))
            else:
                future.set_exception(exc)
            # Mark retrieved; this caller re-raises it
            future.exception()
            raise
        except BaseException:
            # Joiners see CancelledError rather than the leader's own BaseException
            self._in_flight.pop(key, None)
            future.cancel()
            raise

        self.set(key, result)
        self._in_flight.pop(key, None)
        future.set_result(result)
        return result

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def _remove(self, key: str, source: DeleteSource) -> bool:
        entry = self._store.pop(key, None)
        if entry is None:
            return False
        self._hooks.emit("on_delete", DeleteEvent(key, entry.value, source))
        return True

    def delete(self, key: str) -> bool:
        """
        Delete specific key from cache.

        Args:
            key: Cache key to delete

        Returns:
            True if an entry was removed
        """
        return self._remove(key, DeleteSource.DELETE)

    def delete_if(self, key: str, value: Any) -> bool:
        """
        Delete key only while it still holds this exact value object.

        Leaves LRU order and statistics untouched.

        Returns:
            True if an entry was removed
        """
        entry = self._store.get(key)
        if entry is None or entry.value is not value:
            return False
        return self._remove(key, DeleteSource.DELETE)

    async def delete_async(self, key: str) -> bool:
        """Awaitable form of delete(), for callers with an async interface."""
        return self._remove(key, DeleteSource.DELETE_ASYNC)

    def clear(self) -> None:
        """Clear entire cache, firing on_delete for every entry."""
        for key, entry in list(self._store.items()):
            self._hooks.emit("on_delete", DeleteEvent(key, entry.value, DeleteSource.CLEAR))
        self._store.clear()

    def delete_by_prefix(self, prefix: str) -> int:
        """
        Delete all keys starting with prefix.

        Examples:
            - "user:123:" matches "user:123:name", "user:123:email"
            - "" matches every key

        Args:
            prefix: Key prefix to match

        Returns:
            Number of keys deleted
        """
        keys_to_delete = [key for key in self._store if key.startswith(prefix)]
        count = sum(self._remove(key, DeleteSource.DELETE_BY_PREFIX) for key in keys_to_delete)

        logger.debug(f"Deleted {count} keys with prefix: {prefix!r}")
        return count

    def delete_by_magic_string(self, pattern: str) -> int:
        """
        Delete all keys matching a wildcard pattern.

        "*" matches any run of characters (including none); every other
        character matches itself. The pattern must match the whole key.

        Examples:
            - "user:123:*" matches "user:123:name", "user:123:email"
            - "user:*:name" matches "user:123:name", "user:456:name"
            - "a.b" matches only "a.b", never "axb"
            - "" matches nothing

        Args:
            pattern: Wildcard pattern

        Returns:
            Number of keys deleted
        """
        if not pattern:
            return 0

        regex = _compile_magic_string(pattern)
        keys_to_delete = [key for key in self._store if regex.fullmatch(key)]
        count = sum(self._remove(key, DeleteSource.DELETE_BY_MAGIC_STRING) for key in keys_to_delete)

        logger.debug(f"Deleted {count} keys matching pattern: {pattern!r}")
        return count

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def size(self) -> int:
        """Number of live entries (expired entries are pruned first)."""
        self.prune()
        return len(self._store)

    def __len__(self) -> int:
        return self.size()

    def keys(self) -> list[str]:
        """Live keys, least recently used first."""
        self.prune()
        return list(self._store.keys())

    def values(self) -> list[Any]:
        """Live values, least recently used first."""
        self.prune()
        return [entry.value for entry in self._store.values()]

    def entries(self) -> list[tuple[str, Any]]:
        """Live (key, value) pairs, least recently used first."""
        self.prune()
        return [(key, entry.value) for key, entry in self._store.items()]

    def get_stats(self) -> CacheStats:
        """
        Get cache statistics.

        Returns:
            CacheStats snapshot; size is computed after pruning expired entries
        """
        # Prune first so the counters include anything it expires
        size = self.size()
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            expirations=self._expirations,
            size=size,
        )

    def reset_stats(self) -> None:
        """Reset hit/miss/eviction/expiration counters. Entries are kept."""
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def prune(self) -> int:
        """
        Remove all expired entries.

        Returns:
            Number of expired entries removed (always 0 when ttl is disabled)
        """
        if self._ttl <= 0:
            return 0

        now = _now_ms()
        expired = [(key, entry) for key, entry in self._store.items() if self._is_expired(entry, now)]

        removed = 0
        for key, entry in expired:
            # A hook may already have removed a later key
            if self._store.pop(key, None) is None:
                continue
            removed += 1
            self._expirations += 1
            self._hooks.emit("on_expire", ExpireEvent(key, entry.value, ExpireSource.PRUNE))

        if removed:
            logger.debug(f"Pruned {removed} expired entries")
        return removed


def _compile_magic_string(pattern: str) -> re.Pattern:
    """Translate a "*" wildcard pattern into a regex; everything else is literal."""
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")), re.DOTALL)
