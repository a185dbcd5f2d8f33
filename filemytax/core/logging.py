"""Structured JSON logging with correlation-id context."""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

CORRELATION_ID_CTX: ContextVar[str] = ContextVar("correlation_id", default="")

_EXTRA_KEYS = ["user_id", "path", "method", "status_code", "provider", "error_code"]

_JWT_RE = re.compile(r"\beyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\b")
_BEARER_RE = re.compile(r"(?i)\bBearer\s+[A-Za-z0-9_\-\.=]+")
_URL_CREDENTIALS_RE = re.compile(r"(?i)([a-z][a-z0-9+\-.]*://)[^:@/\s]+:[^@/\s]+@")
_KV_RE = re.compile(
    r"(?i)\b(password|new_password|current_password|secret|api_key|fmt_refresh)=[^\s&,;]+"
)


def redact(text: str) -> str:
    """Mask JWTs, bearer headers, URL credentials and password-like pairs."""
    text = _URL_CREDENTIALS_RE.sub(r"\1***REDACTED***@", text)
    text = _JWT_RE.sub("***REDACTED***", text)
    text = _BEARER_RE.sub("Bearer ***REDACTED***", text)
    return _KV_RE.sub(lambda match: f"{match.group(1)}=***REDACTED***", text)


class JsonLogFormatter(logging.Formatter):
    """Serialize log records into compact JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        """Return JSON string for the given log record."""
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
            "correlation_id": CORRELATION_ID_CTX.get(),
        }

        for key in _EXTRA_KEYS:
            value = getattr(record, key, None)
            if value not in (None, ""):
                payload[key] = value

        if record.exc_info:
            payload["exception"] = redact(self.formatException(record.exc_info))

        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logger to emit structured JSON logs."""
    normalized_level = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(normalized_level)
    root_logger.addHandler(handler)


def set_correlation_id(correlation_id: str) -> None:
    """Store correlation id in request-local context."""
    CORRELATION_ID_CTX.set(correlation_id)


def mask_email(email: str) -> str:
    """Return an email with the local part reduced to its first character."""
    local, sep, domain = (email or "").partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"
