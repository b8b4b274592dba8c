"""Structured logging configuration with JSON output and sensitive field redaction."""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from typing import Any

# Keys whose values must never reach the logs: wallet signing keys and
# credentials for the backend or a hosted RPC node
_SECRET_NAMES = r"(?:api[_-]?key|token|secret|private[_-]?key)"
_SENSITIVE_KEY_RE = re.compile(_SECRET_NAMES, re.IGNORECASE)
_INLINE_SECRET_RE = re.compile(rf"({_SECRET_NAMES}[\s=:]+)[^\s&]+", re.IGNORECASE)

REDACTED = "***REDACTED***"

_RESERVED_RECORD_KEYS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__)


def is_sensitive_key(key: str) -> bool:
    return _SENSITIVE_KEY_RE.search(key) is not None


def redact_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively redact sensitive fields from a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if is_sensitive_key(key):
            result[key] = REDACTED
        elif isinstance(value, dict):
            result[key] = redact_dict(value)
        elif isinstance(value, list):
            result[key] = [redact_dict(item) if isinstance(item, dict) else item for item in value]
        else:
            result[key] = value
    return result


def redact_string(text: str) -> str:
    """Redact credentials embedded in freeform text, e.g. a node URL query string."""
    return _INLINE_SECRET_RE.sub(lambda m: m.group(1) + REDACTED, text)


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter with sensitive field redaction."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_string(record.getMessage()),
        }

        ticket_id = getattr(record, "ticket_id", None)
        if ticket_id and ticket_id != "-":
            log_entry["ticket_id"] = ticket_id

        log_entry["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        extras = {
            k: v
            for k, v in record.__dict__.items()
            if k not in _RESERVED_RECORD_KEYS and k not in ("message", "ticket_id")
        }
        if extras:
            log_entry["extra"] = redact_dict(extras)

        return json.dumps(log_entry, default=str)


class RedactingFormatter(logging.Formatter):
    """Standard text formatter with sensitive field redaction."""

    def __init__(self, fmt: str | None = None, datefmt: str | None = None) -> None:
        super().__init__(
            fmt=fmt or "%(asctime)s [%(levelname)s] %(name)s [%(ticket_id)s]: %(message)s",
            datefmt=datefmt or "%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "ticket_id"):
            record.ticket_id = "-"
        original = super().format(record)
        return redact_string(original)


class TicketContextFilter(logging.Filter):
    """Logging filter that adds the current ticket id from contextvars."""

    def filter(self, record: logging.LogRecord) -> bool:
        from drawsync.core.context import get_ticket_id

        record.ticket_id = get_ticket_id() or "-"
        return True


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Configure process-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: "json" for structured JSON output, "text" for human-readable.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    root.handlers.clear()

    handler = logging.StreamHandler()

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(RedactingFormatter())

    handler.addFilter(TicketContextFilter())

    root.addHandler(handler)

    # Transport libraries log every request and packet at INFO
    for name in ("httpx", "httpcore", "socketio.client", "engineio.client"):
        logging.getLogger(name).setLevel(logging.WARNING)
