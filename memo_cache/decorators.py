"""
Caching decorators for functions.

Provides decorators to memoize function results and invalidate cache on writes.
Supports sync functions, async functions and methods.

Every function decorated with @cached owns a private CacheManager; there is no
process-wide cache.
"""

import asyncio
import functools
import hashlib
import inspect
import json
import logging
from collections.abc import Callable
from typing import Any

from . import config
from .cache_manager import CacheManager
from .hooks import CacheHooks

logger = logging.getLogger(__name__)


def _serialize_args(args: tuple, kwargs: dict) -> str:
    """
    Deterministically serialize call arguments.

    Raises:
        ValueError: On circular references
        TypeError: On dict keys that cannot be sorted
    """
    return json.dumps([list(args), kwargs], sort_keys=True, default=repr)


class CachedFunction:
    """
    A function wrapped with a private cache.

    Works as a plain function and as a method: when accessed through an
    instance, the instance is passed to the function but left out of the
    cache key, so every instance shares the same cached results.
    """

    def __init__(
        self,
        func: Callable,
        cache: CacheManager,
        key_generator: Callable[..., str] | None = None,
        hash_keys: bool = False,
    ):
        functools.update_wrapper(self, func)
        self._func = func
        self._key_generator = key_generator
        self._hash_keys = hash_keys
        self._is_async = inspect.iscoroutinefunction(func)
        self.cache = cache

    def make_key(self, *args: Any, **kwargs: Any) -> str:
        """
        Build the cache key for a call.

        key_generator wins over hash_keys. The result is always prefixed with
        the function's qualified name.
        """
        if self._key_generator is not None:
            derived = self._key_generator(*args, **kwargs)
        else:
            derived = _serialize_args(args, kwargs)
            if self._hash_keys:
                derived = hashlib.md5(derived.encode()).hexdigest()  # nosec B324 # noqa: S324 cache key, not crypto

        return f"{self._func.__qualname__}:{derived}"

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._invoke((), *args, **kwargs)

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        bound = functools.partial(self._invoke, (instance,))
        functools.update_wrapper(bound, self._func)
        bound.cache = self.cache
        return bound

    def _invoke(self, bound: tuple, /, *args: Any, **kwargs: Any) -> Any:
        cache_key = self.make_key(*args, **kwargs)

        if self._is_async:
            return self._invoke_async(cache_key, bound, args, kwargs)

        if self.cache.has(cache_key):
            logger.debug(f"Cache hit for {cache_key}")
            return self.cache.get(cache_key)

        result = self._func(*bound, *args, **kwargs)
        self.cache.set(cache_key, result)

        if asyncio.isfuture(result):
            result.add_done_callback(functools.partial(self._discard_if_failed, cache_key))
        return result

    async def _invoke_async(self, cache_key: str, bound: tuple, args: tuple, kwargs: dict) -> Any:
        return await self.cache.get_or_set(cache_key, lambda: self._func(*bound, *args, **kwargs))

    def _discard_if_failed(self, cache_key: str, future: asyncio.Future) -> None:
        """Drop a cached future once it settles with an error or is cancelled."""
        if future.cancelled() or future.exception() is not None:
            # A newer call may have cached a fresh future under the same key
            if self.cache.delete_if(cache_key, future):
                logger.debug(f"Dropped failed future for {cache_key}")


def cached(
    max_size: int = config.DEFAULT_MAX_SIZE,
    ttl: float = config.DEFAULT_TTL_MS,
    hooks: CacheHooks | None = None,
    key_generator: Callable[..., str] | None = None,
    hash_keys: bool = False,
) -> Callable[[Callable], CachedFunction]:
    """
    Decorator to cache function results.

    Caches the return value per distinct argument set. Supports sync functions,
    async functions and methods. Exceptions are never cached: a call that raises
    is retried on the next call. For async functions the awaited result is
    cached and overlapping calls with the same arguments share one run. A
    failing sync-returned future is dropped once it fails.

    Args:
        max_size: Maximum number of cached argument sets. 0 means unlimited.
        ttl: Time-to-live in milliseconds. 0 means results never expire.
        hooks: Optional lifecycle callbacks for the private cache.
        key_generator: Optional function building the key from the call
                       arguments. Takes precedence over hash_keys.
        hash_keys: Store an MD5 digest of the serialized arguments instead of
                   the serialization itself.

    Returns:
        Decorator producing a CachedFunction; its cache is available as `.cache`

    Raises:
        CacheConfigError: If max_size or ttl is invalid (at decoration time)

    Example:
        @cached(ttl=60_000)
        def get_user(user_id):
            return db.users.get(user_id)

        @cached(key_generator=lambda client_id, **_: f"client:{client_id}")
        async def get_client_data(client_id, verbose=False):
            return await api.fetch_client(client_id)
    """

    def decorator(func: Callable) -> CachedFunction:
        cache = CacheManager(max_size=max_size, ttl=ttl, hooks=hooks)
        return CachedFunction(func, cache, key_generator=key_generator, hash_keys=hash_keys)

    return decorator


def cache_invalidate(target: CacheManager | CachedFunction, pattern: str) -> Callable:
    """
    Decorator to invalidate cache entries matching a pattern on function call.

    Used on write operations to clear related cached reads.
    Invalidates cache AFTER the function executes, even if it raises.

    Args:
        target: CacheManager, or @cached function whose cache to invalidate
        pattern: Wildcard pattern ("*" matches anything) checked against keys.
                 Keys of @cached functions start with the function's qualified
                 name, e.g. "get_client:*".

    Returns:
        Decorated function

    Example:
        @cached(key_generator=lambda client_id: f"client:{client_id}")
        def get_client(client_id):
            return db.clients.get(client_id)

        @cache_invalidate(get_client, "get_client:client:*")
        def update_client(client_id, data):
            db.clients.update(client_id, data)
    """
    cache = target.cache if isinstance(target, CachedFunction) else target

    def decorator(func: Callable) -> Callable:
        is_async = inspect.iscoroutinefunction(func)

        if is_async:

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    result = await func(*args, **kwargs)
                finally:
                    count = cache.delete_by_magic_string(pattern)
                    logger.debug(f"Invalidated {count} cache keys matching pattern: {pattern}")

                return result

            return async_wrapper
        else:

            @functools.wraps(func)
            def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    result = func(*args, **kwargs)
                finally:
                    count = cache.delete_by_magic_string(pattern)
                    logger.debug(f"Invalidated {count} cache keys matching pattern: {pattern}")

                return result

            return sync_wrapper

    return decorator
