"""
Lifecycle hooks for CacheManager.

Every hook receives a single event object describing what happened. Hooks run
synchronously inside the triggering operation; failures are swallowed so that
an observer can never break the cache it observes.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

# =============================================================================
# EVENT ENUMS
# =============================================================================


class MissReason(StrEnum):
    """Why a lookup missed."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"


class ExpireSource(StrEnum):
    """Operation that discovered an expired entry."""

    GET = "get"
    HAS = "has"
    PRUNE = "prune"


class DeleteSource(StrEnum):
    """Operation that removed an entry on request."""

    DELETE = "delete"
    DELETE_ASYNC = "delete_async"
    CLEAR = "clear"
    DELETE_BY_PREFIX = "delete_by_prefix"
    DELETE_BY_MAGIC_STRING = "delete_by_magic_string"


# =============================================================================
# EVENTS
# =============================================================================


@dataclass(frozen=True)
class HitEvent:
    key: str
    value: Any


@dataclass(frozen=True)
class MissEvent:
    key: str
    reason: MissReason


@dataclass(frozen=True)
class SetEvent:
    key: str
    value: Any
    is_update: bool


@dataclass(frozen=True)
class EvictEvent:
    key: str
    value: Any


@dataclass(frozen=True)
class ExpireEvent:
    key: str
    value: Any
    source: ExpireSource


@dataclass(frozen=True)
class DeleteEvent:
    key: str
    value: Any
    source: DeleteSource


# =============================================================================
# HOOK CONTAINER
# =============================================================================


@dataclass
class CacheHooks:
    """
    Optional lifecycle callbacks.

    Example:
        hooks = CacheHooks(
            on_evict=lambda event: logger.info(f"evicted {event.key}"),
            on_miss=lambda event: miss_reasons.append(event.reason),
        )
        cache = CacheManager(max_size=500, hooks=hooks)
    """

    on_hit: Callable[[HitEvent], Any] | None = None
    on_miss: Callable[[MissEvent], Any] | None = None
    on_set: Callable[[SetEvent], Any] | None = None
    on_evict: Callable[[EvictEvent], Any] | None = None
    on_expire: Callable[[ExpireEvent], Any] | None = None
    on_delete: Callable[[DeleteEvent], Any] | None = None

    def emit(self, name: str, event: object) -> None:
        """
        Invoke the hook called `name` with `event`, discarding any failure.

        Args:
            name: Hook attribute name, e.g. "on_hit"
            event: Event object passed to the hook
        """
        hook = getattr(self, name, None)
        if hook is None:
            return
        try:
            hook(event)
        except Exception:
            logger.debug(f"Cache hook {name} raised; ignoring", exc_info=True)
