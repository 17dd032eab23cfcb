"""
Logging redaction helpers.
Masks credentials and account identifiers in log messages.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable


_PATTERNS: Iterable[tuple[re.Pattern, str]] = (
    # Authorization: Bearer <token>
    (re.compile(r"(Bearer\s+)([A-Za-z0-9\-\._~+/]+=*)"), r"\1[REDACTED]"),
    # token=... / api_token: ...
    (re.compile(r"(?i)\b(api[_-]?token|access_token|token)\s*[:=]\s*([A-Za-z0-9\-\._]+)"), r"\1=[REDACTED]"),
    # accountId=<id> in query strings and log text
    (re.compile(r"(?i)(account[_-]?id)\s*[:=]\s*([A-Za-z0-9\-]{4,})"), r"\1=[REDACTED]"),
)


def redact_message(message: str) -> str:
    redacted = message
    for pattern, replacement in _PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


class RedactingFilter(logging.Filter):
    """Filter that redacts sensitive data from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        record.msg = redact_message(message)
        record.args = ()
        return True


def install_redaction_filter(logger: logging.Logger | None = None) -> None:
    target = logger or logging.getLogger()
    for handler in target.handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(RedactingFilter())
    # Avoid duplicate filters
    for existing in target.filters:
        if isinstance(existing, RedactingFilter):
            return
    target.addFilter(RedactingFilter())
