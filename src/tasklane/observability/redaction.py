"""Redaction helpers for safe operational logging.

Task payloads are opaque caller data: operational log lines only ever show
their structure. The dead-letter diagnostic is the single exception.
"""

import re
from typing import Any

# Patterns that should never appear in logs
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_SECRET_PATTERN = re.compile(r"(?i)\b(bearer|token|password|secret)([=:\s]+)\S+")

_REDACTED = "[REDACTED]"

# Error messages are truncated so one failing payload cannot flood the logs.
MAX_ERROR_CHARS = 500


def redact_string(value: str) -> str:
    """Redact emails and credential-looking tokens from a string."""
    result = _EMAIL_PATTERN.sub(_REDACTED, value)
    result = _SECRET_PATTERN.sub(lambda m: f"{m.group(1)}{m.group(2)}{_REDACTED}", result)
    return result


def redact_value(value: Any) -> str:
    """Redact any value for safe logging. Returns string representation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        # For dicts, only log keys (structure), never values
        return f"dict(keys={sorted(str(k) for k in value.keys())})"
    if isinstance(value, (list, tuple)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def error_summary(exc: BaseException) -> str:
    """Message of an exception, truncated for storage as last_error."""
    message = str(exc) or type(exc).__name__
    if len(message) > MAX_ERROR_CHARS:
        message = message[: MAX_ERROR_CHARS - 3] + "..."
    return message


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging. All values are redacted."""
    return {k: redact_value(v) for k, v in kwargs.items()}
