"""Structured logging configuration for localchat."""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Identifies the execution context (tab/process) that emitted a log line
context_id_var: ContextVar[str | None] = ContextVar("context_id", default=None)

_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName",
    "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "context_id", "event_type", "taskName",
}


class SensitiveDataFilter(logging.Filter):
    """Filter to prevent logging credential material."""

    SENSITIVE_KEYS = {
        "password",
        "password_hash",
        "password_salt",
        "salt",
        "hash",
        "token",
        "secret",
        "api_key",
        "apikey",
        "remote_api_key",
        "authorization",
    }

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter sensitive data from log records."""
        if hasattr(record, "msg"):
            record.msg = self._sanitize(record.msg)
        if hasattr(record, "args") and record.args:
            if isinstance(record.args, dict):
                record.args = self._sanitize(record.args)
            else:
                record.args = tuple(self._sanitize(arg) for arg in record.args)
        return True

    def _sanitize(self, obj: Any) -> Any:
        """Recursively sanitize objects to remove sensitive data."""
        if isinstance(obj, dict):
            return {
                k: "***REDACTED***" if str(k).lower() in self.SENSITIVE_KEYS else self._sanitize(v)
                for k, v in obj.items()
            }
        elif isinstance(obj, (list, tuple)):
            return type(obj)(self._sanitize(item) for item in obj)
        elif isinstance(obj, str) and "=" in obj:
            key, _, _ = obj.partition("=")
            if key.strip().lower() in self.SENSITIVE_KEYS:
                return f"{key}=***REDACTED***"
            return obj
        return obj


class StructuredFormatter(logging.Formatter):
    """Formatter that adds the context id and event type to every line."""

    def format(self, record: logging.LogRecord) -> str:
        record.context_id = context_id_var.get() or "-"
        if not hasattr(record, "event_type"):
            record.event_type = "general"
        return super().format(record)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "context_id": context_id_var.get() or "-",
            "event_type": getattr(record, "event_type", "general"),
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = "".join(
                traceback.format_exception(*record.exc_info)
            )

        return json.dumps(log_data, default=str)


def setup_logging(
    level: str = "INFO",
    json_logs: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output logs in JSON format (for production)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.addFilter(SensitiveDataFilter())

    if json_logs:
        console_handler.setFormatter(JsonFormatter())
    else:
        format_str = (
            "%(asctime)s | %(levelname)-8s | %(context_id)s | "
            "%(name)s:%(funcName)s:%(lineno)d | %(message)s"
        )
        console_handler.setFormatter(StructuredFormatter(format_str))

    root_logger.addHandler(console_handler)

    # Set logging level for third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)


def log_error(
    logger: logging.Logger,
    message: str,
    error: Exception | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Log an error with full stack trace and context.

    Args:
        logger: Logger instance
        message: Error message
        error: Exception instance (optional)
        extra: Additional context data (optional)
    """
    extra_data = dict(extra or {})
    extra_data["event_type"] = "error"

    if error:
        logger.error(
            f"{message}: {error}",
            exc_info=error,
            extra=extra_data,
        )
    else:
        logger.error(message, extra=extra_data)


def set_context_id(context_id: str) -> None:
    """Set the execution context id for log lines in the current task."""
    context_id_var.set(context_id)


def get_context_id() -> str | None:
    """Get the execution context id of the current task."""
    return context_id_var.get()
