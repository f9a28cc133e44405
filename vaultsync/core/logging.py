"""
vaultsync/core/logging.py

Purpose: Logging configuration

- JSON lines in production, colored single lines in development
- Per-request context (request_id, user_id, contact_id, doc_code) carried
  through async code with a ContextVar
- Client identifiers (SSN, EIN, passwords, secrets) never reach the output
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict

from vaultsync.core.config import settings


CONTEXT_FIELDS = ("request_id", "user_id", "contact_id", "doc_code", "role")

REDACTED_FIELDS = {"ssn", "ein", "password", "new_password", "secret", "token"}
REDACTED = "***"

_log_context: ContextVar[Dict[str, Any]] = ContextVar("vaultsync_log_context", default={})


def redact(data: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of `data` with sensitive values masked (one level of nesting)."""
    cleaned = {}
    for key, value in data.items():
        if key.lower() in REDACTED_FIELDS:
            cleaned[key] = REDACTED
        elif isinstance(value, dict):
            cleaned[key] = {
                k: REDACTED if k.lower() in REDACTED_FIELDS else v
                for k, v in value.items()
            }
        else:
            cleaned[key] = value
    return cleaned


class ContextFilter(logging.Filter):
    """Copies the active LogContext onto every record passing the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    context = {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }
    payload = getattr(record, "payload", None)
    if isinstance(payload, dict):
        context["payload"] = redact(payload)
    return context


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for log shipping in production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            **_record_context(record),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """
    Human-readable formatter for development environment.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        message = f"{color}[{timestamp}] {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        context = _record_context(record)
        if context:
            message += " [" + ", ".join(f"{key}={value}" for key, value in context.items()) + "]"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging() -> logging.Logger:
    """
    Configures the root logger once at import of the application.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if settings.is_production else DevelopmentFormatter())
    handler.addFilter(ContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Third-party noise
    for name in ("httpx", "httpcore", "motor", "pymongo", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger("vaultsync")
    logger.info(f"Logging configured (environment={settings.ENVIRONMENT}, level={settings.LOG_LEVEL})")
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Logger under the "vaultsync" namespace.

    Args:
        name: Logger name (usually __name__)
    """
    if name.startswith("vaultsync"):
        return logging.getLogger(name)
    return logging.getLogger(f"vaultsync.{name}")


class LogContext:
    """
    Adds structured context to every log line emitted inside the block.

    Contexts nest; inner values win. Each asyncio task sees only its own
    context.

    Usage:
        with LogContext(user_id="123", contact_id="abc"):
            logger.info("Reconciling tags")
    """

    def __init__(self, **kwargs):
        self.context = kwargs
        self._token = None

    def __enter__(self):
        self._token = _log_context.set({**_log_context.get(), **self.context})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _log_context.reset(self._token)
