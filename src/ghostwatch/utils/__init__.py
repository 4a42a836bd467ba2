"""Shared utilities."""

from .retry import DEFAULT_RETRYABLE_EXCEPTIONS, RetryConfig, retry_call
from .validation import sanitize_log_message

__all__ = [
    "DEFAULT_RETRYABLE_EXCEPTIONS",
    "RetryConfig",
    "retry_call",
    "sanitize_log_message",
]
