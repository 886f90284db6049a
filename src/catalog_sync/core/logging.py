"""
Logging utilities for catalog synchronisation.

Provides structured or human-readable output with run context (run id,
scope, asset type) attached to every record emitted inside a ``LogContext``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


CONTEXT_FIELDS = ("run_id", "scope", "asset_type")

PACKAGE_LOGGER = "catalog_sync"


class LogContext:
    """
    Context manager that tags log records with run context.

    Example:
        >>> with LogContext(run_id="abc", scope="site-1"):
        ...     logger.info("Reconciling")  # carries run_id and scope
    """

    _current: Optional["LogContext"] = None

    def __init__(self, **fields: Any):
        parent = LogContext.get_current()
        parent.update({k: v for k, v in fields.items() if v is not None})
        self.context = parent
        self._previous: Optional["LogContext"] = None

    def __enter__(self) -> "LogContext":
        self._previous = LogContext._current
        LogContext._current = self
        return self

    def __exit__(self, *args) -> None:
        LogContext._current = self._previous

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the current context fields."""
        if cls._current is None:
            return {}
        return cls._current.context.copy()


class ContextFilter(logging.Filter):
    """Copies the active LogContext onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in LogContext.get_current().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs JSON-structured log lines.
    """

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Format: TIMESTAMP [LEVEL] LOGGER - MESSAGE [run_id=X scope=Y]
    """

    def __init__(self, include_timestamp: bool = True):
        if include_timestamp:
            fmt = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
        else:
            fmt = "[%(levelname)s] %(name)s - %(message)s"
        super().__init__(fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        context_parts = []
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                context_parts.append(f"{field}={value}")

        if context_parts:
            return f"{base} [{' '.join(context_parts)}]"
        return base


def configure_logging(
    level: int = logging.INFO,
    structured: bool = False,
    include_timestamp: bool = True,
) -> logging.Logger:
    """
    Configure the ``catalog_sync`` package logger.

    Args:
        level: Logging level (default: INFO)
        structured: If True, output JSON lines; if False, human-readable
        include_timestamp: Whether to include timestamps

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)

    # Avoid duplicate handlers when called more than once
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.addFilter(ContextFilter())
        package_logger.addHandler(handler)

    for handler in package_logger.handlers:
        handler.setLevel(level)
        if structured:
            handler.setFormatter(StructuredFormatter(include_timestamp=include_timestamp))
        else:
            handler.setFormatter(HumanReadableFormatter(include_timestamp=include_timestamp))

    return package_logger
