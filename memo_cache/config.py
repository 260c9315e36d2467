"""
Centralized defaults for memo_cache.

Override via environment variables where marked. Values are read once at import.
"""

import os

# ============================================================
# Engine defaults
# ============================================================

DEFAULT_MAX_SIZE: int = int(os.environ.get("MEMO_CACHE_MAX_SIZE", "100"))
"""Maximum number of entries before LRU eviction. 0 disables eviction."""

DEFAULT_TTL_MS: int = int(os.environ.get("MEMO_CACHE_TTL_MS", "300000"))
"""Entry time-to-live in milliseconds (5 minutes). 0 disables expiration."""

# ============================================================
# Logging
# ============================================================

LOG_LEVEL: str = os.environ.get("MEMO_CACHE_LOG_LEVEL", "INFO")
"""Level used by configure_logging() when none is passed."""
