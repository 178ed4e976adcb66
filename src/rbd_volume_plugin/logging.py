"""Logging configuration for the RBD volume plugin.

Supports two formats:
- text: Human-readable, with volume context appended as key=value pairs
- json: Structured logging for production (log aggregation)

Lifecycle log lines use a fixed message and carry the volume, image,
device or path in `extra`; both the rate limiter and the text format take
those fields into account.
"""

import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger import json as jsonlogger

from rbd_volume_plugin.config import LoggingConfig

# extra fields that identify what a log line is about
CONTEXT_FIELDS = ("event", "volume", "image", "device", "path", "operation", "command")


def record_context(record: logging.LogRecord) -> list[tuple[str, Any]]:
    """(field, value) pairs of CONTEXT_FIELDS present on record."""
    return [
        (field, getattr(record, field))
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    ]


class RateLimitFilter(logging.Filter):
    """Suppress repeats of the same low-level record within a time window.

    Only records below `pass_level` are throttled; Docker's Get/List/Path
    polling logs at DEBUG. Two records are the same only if logger, line,
    message and context fields all match, so events for different volumes
    never suppress each other.

    Args:
        rate_limit_seconds: Minimum seconds between identical records (default: 5)
        max_cache_size: Maximum number of records to track (default: 1000)
        pass_level: Records at or above this level are never throttled (default: INFO)
    """

    def __init__(
        self,
        rate_limit_seconds: float = 5.0,
        max_cache_size: int = 1000,
        pass_level: int = logging.INFO,
        name: str = "",
    ) -> None:
        super().__init__(name)
        self._rate_limit = rate_limit_seconds
        self._max_cache = max_cache_size
        self._pass_level = pass_level
        self._last_log: dict[tuple, float] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= self._pass_level:
            return True

        key = (record.name, record.lineno, record.getMessage(), *record_context(record))

        now = time.monotonic()
        last_time = self._last_log.get(key)
        if last_time is not None and now - last_time < self._rate_limit:
            return False

        self._last_log[key] = now

        if len(self._last_log) > self._max_cache:
            oldest_keys = sorted(self._last_log, key=self._last_log.get)[:100]  # type: ignore[arg-type]
            for old_key in oldest_keys:
                del self._last_log[old_key]

        return True


class PluginTextFormatter(logging.Formatter):
    """Plain text formatter that appends context fields.

    Example:
        ... - INFO - Volume mounted [event=volume_mounted volume=vol1 path=/mnt/volumes/rbd/vol1]
    """

    def __init__(self) -> None:
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{field}={value}" for field, value in context)
        # Keep tracebacks after the context
        head, sep, tail = line.partition("\n")
        return f"{head} [{pairs}]{sep}{tail}"


class PluginJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with standard fields for log aggregation.

    Adds timestamp (ISO 8601, UTC), level, logger, service and pid; extra
    fields such as event and volume pass through as top-level keys.
    """

    def __init__(self, config: LoggingConfig, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._service = config.service_name

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(
            record.created, tz=timezone.utc
        ).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = self._service
        log_record["pid"] = record.process

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging(config: LoggingConfig) -> None:
    """Configure root and uvicorn logging for the plugin."""
    level = getattr(logging, config.level.upper(), logging.INFO)

    formatter: logging.Formatter
    if config.format == "json":
        formatter = PluginJsonFormatter(config)
    else:
        formatter = PluginTextFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RateLimitFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in ("uvicorn", "uvicorn.error"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = False
        uv_logger.addHandler(handler)

    # Docker's polling would flood the access log
    logging.getLogger("uvicorn.access").disabled = True
