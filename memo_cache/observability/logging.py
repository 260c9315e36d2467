"""
Structured logging for cache events.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from .. import config
from ..hooks import (
    CacheHooks,
    DeleteEvent,
    EvictEvent,
    ExpireEvent,
    HitEvent,
    MissEvent,
    SetEvent,
)

# Standard LogRecord attributes; anything else on a record came from `extra`
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    }
)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.000Z",
        "level": "DEBUG",
        "logger": "memo_cache.events",
        "message": "cache evict user:42",
        "cache_event": "evict",
        "cache_key": "user:42",
        ...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_obj[key] = value

        return json.dumps(log_obj, default=str)


class HumanFormatter(logging.Formatter):
    """Human-readable formatter for local development."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        line = f"{timestamp} [{record.levelname}] {record.name}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to MEMO_CACHE_LOG_LEVEL.
        json_format: Use JSON format. If None, auto-detect based on environment.
    """
    if level is None:
        level = config.LOG_LEVEL
    if json_format is None:
        # Use JSON in production (when not a TTY), human format in dev
        json_format = not sys.stderr.isatty()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else HumanFormatter())
    root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("Warmed cache", extra={"count": 42})
    """
    return logging.getLogger(name)


def logging_hooks(logger: logging.Logger | None = None, level: int = logging.DEBUG) -> CacheHooks:
    """
    Build CacheHooks that log every cache lifecycle event.

    Each record carries `cache_event` and `cache_key` extra fields, plus
    `reason`, `source` or `is_update` where the event has one. Values are not
    logged.

    Args:
        logger: Target logger. Defaults to "memo_cache.events".
        level: Level for every event record.

    Returns:
        CacheHooks to pass to CacheManager or @cached

    Example:
        cache = CacheManager(hooks=logging_hooks(level=logging.INFO))
    """
    log = logger or logging.getLogger("memo_cache.events")

    def emit(event_name: str, key: str, **fields: Any) -> None:
        if not log.isEnabledFor(level):
            return
        log.log(
            level,
            f"cache {event_name} {key}",
            extra={"cache_event": event_name, "cache_key": key, **fields},
        )

    def on_hit(event: HitEvent) -> None:
        emit("hit", event.key)

    def on_miss(event: MissEvent) -> None:
        emit("miss", event.key, reason=str(event.reason))

    def on_set(event: SetEvent) -> None:
        emit("set", event.key, is_update=event.is_update)

    def on_evict(event: EvictEvent) -> None:
        emit("evict", event.key)

    def on_expire(event: ExpireEvent) -> None:
        emit("expire", event.key, source=str(event.source))

    def on_delete(event: DeleteEvent) -> None:
        emit("delete", event.key, source=str(event.source))

    return CacheHooks(
        on_hit=on_hit,
        on_miss=on_miss,
        on_set=on_set,
        on_evict=on_evict,
        on_expire=on_expire,
        on_delete=on_delete,
    )
