"""Sensitive-value masking and log sanitising.

``sanitize_log_value`` strips control characters from user-controlled strings
before they reach a log line.  ``mask_secret`` removes a known secret from
free text such as exception messages.
"""

from __future__ import annotations

import re

# Field names masked in ``key=value`` and ``"key": value`` text, case-insensitive.
SENSITIVE_KEY_MARKERS: list[str] = [
    "password",
    "secret",
    "token",
    "override_code",
    "overridecode",
    "apikey",
    "credential",
    "authorization",
]

_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")
_MAX_LOG_VALUE_LENGTH = 256


def sanitize_log_value(value: object, *, max_length: int = _MAX_LOG_VALUE_LENGTH) -> str:
    """Replace control characters (newlines, carriage returns, etc.) to prevent log injection."""
    text = _CONTROL_CHAR_RE.sub("_", str(value))
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def mask_secret(text: str, secret: str | None, *, mask: str = "***MASKED***") -> str:
    """Remove every occurrence of ``secret`` from ``text``."""
    if not secret:
        return text
    return text.replace(secret, mask)
