"""Redaction helpers for safe logging. All customer data must pass through these.

Customer phone numbers, UPI handles and message bodies never reach the logs.
Use `hash_identifier` when two log lines must be correlated to one contact.
"""

import hashlib
import re
from typing import Any

_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
# UPI virtual payment addresses have no TLD (e.g. "shop@okaxis")
_VPA_PATTERN = re.compile(r"\b[a-zA-Z0-9._-]{2,}@[a-zA-Z]{2,}\b")

_REDACTED = "[REDACTED]"


def hash_identifier(value: str) -> str:
    """Create non-reversible hash for logging. Returns first 12 chars of sha256."""
    return hashlib.sha256(value.encode()).hexdigest()[:12]


def redact_string(value: str) -> str:
    """Redact PII patterns from a string."""
    result = _PHONE_PATTERN.sub(_REDACTED, value)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    result = _VPA_PATTERN.sub(_REDACTED, result)
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
        # Structure only, never values
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging. All values are redacted."""
    return {k: redact_value(v) for k, v in kwargs.items()}


def id_prefix(value: str | None, length: int = 12) -> str | None:
    """Shorten a provider message id for log lines."""
    if not value:
        return None
    return value[:length] if len(value) >= length else value
