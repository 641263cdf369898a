"""Redaction of secrets from log output.

Webhook headers routinely carry bearer tokens and API keys, and those
headers end up in warning and error logs when a delivery fails.
"""

from __future__ import annotations

import re

_DEFAULT_PATTERNS = [
    (re.compile(r"bearer\s+[a-zA-Z0-9._~+/=-]+", re.IGNORECASE), "Bearer [REDACTED]"),
    (re.compile(r"sk-[a-zA-Z0-9_-]{20,}"), "[REDACTED_API_KEY]"),
    (re.compile(r"gh[po]_[a-zA-Z0-9]{36}"), "[REDACTED_GITHUB_TOKEN]"),
    (
        re.compile(r"(x-api-key|api[_-]?key)[\"']?\s*[:=]\s*[\"']?[^\"'\s,}]+", re.IGNORECASE),
        r"\1=[REDACTED]",
    ),
    (
        re.compile(r"password[\"']?\s*[:=]\s*[\"']?[^\"'\s,}]+", re.IGNORECASE),
        "password=[REDACTED]",
    ),
    (re.compile(r"token[\"']?\s*[:=]\s*[\"']?[^\"'\s,}]+", re.IGNORECASE), "token=[REDACTED]"),
]


def sanitize_log_message(message: str, sensitive_patterns: list[str] | None = None) -> str:
    """Sanitize a log message to remove sensitive data.

    Args:
        message: Message to sanitize
        sensitive_patterns: Additional patterns to redact

    Returns:
        Sanitized message with sensitive data redacted
    """
    result = message
    for pattern, replacement in _DEFAULT_PATTERNS:
        result = pattern.sub(replacement, result)

    if sensitive_patterns:
        for pattern in sensitive_patterns:
            result = re.sub(pattern, "[REDACTED]", result, flags=re.IGNORECASE)

    return result
