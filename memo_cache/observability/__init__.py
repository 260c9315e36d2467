"""
Observability module: structured logging and log-emitting cache hooks.

Usage:
    from memo_cache.observability import configure_logging, logging_hooks

    configure_logging("DEBUG")
    cache = CacheManager(hooks=logging_hooks())
"""

from .logging import HumanFormatter, JSONFormatter, configure_logging, get_logger, logging_hooks

__all__ = [
    "get_logger",
    "configure_logging",
    "JSONFormatter",
    "HumanFormatter",
    "logging_hooks",
]
