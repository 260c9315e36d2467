"""
Exception hierarchy for memo_cache.
"""


class CacheError(Exception):
    """Base class for all cache errors."""


class CacheConfigError(CacheError, ValueError):
    """Raised when a cache is constructed with invalid options."""
