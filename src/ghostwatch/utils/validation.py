"""Input sanitation helpers."""

from __future__ import annotations

import re

# Default sensitive patterns
_SENSITIVE_PATTERNS = [
    (r"https://discord(?:app)?\.com/api/webhooks/\S+", "[REDACTED_DISCORD_WEBHOOK]"),
    (r"(postgres(?:ql)?://[^:/\s]+:)[^@\s]+@", r"\1[REDACTED]@"),
    (r'password["\']?\s*[:=]\s*["\']?[^"\'\s]+', "password=[REDACTED]"),
    (r'token["\']?\s*[:=]\s*["\']?[^"\'\s]+', "token=[REDACTED]"),
    (r'secret["\']?\s*[:=]\s*["\']?[^"\'\s]+', "secret=[REDACTED]"),
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

    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE)

    if sensitive_patterns:
        for pattern in sensitive_patterns:
            result = re.sub(pattern, "[REDACTED]", result, flags=re.IGNORECASE)

    return result
