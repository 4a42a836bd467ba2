"""Retry with exponential backoff for transient failures.

Used by the data source registry so that network blips against the
metrics service do not fail a rule run outright.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import requests

from ghostwatch.errors import TransientFetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Exceptions that represent a transient failure of an external call
DEFAULT_RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    TransientFetchError,
    ConnectionError,
    TimeoutError,
    requests.ConnectionError,
    requests.Timeout,
)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 0.5  # seconds
    max_delay: float = 10.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: tuple[type[Exception], ...] = field(
        default_factory=lambda: DEFAULT_RETRYABLE_EXCEPTIONS
    )

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay after the given attempt number (0-indexed)."""
        delay = self.base_delay * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay)
        if self.jitter:
            # Add up to 25% jitter
            delay = delay * (0.75 + random.random() * 0.5)
        return delay


def retry_call(
    func: Callable[[], T],
    config: RetryConfig | None = None,
    label: str = "call",
    on_retry: Callable[[Exception, int], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` until it succeeds or attempts run out.

    Non-retryable exceptions propagate immediately. When attempts are
    exhausted the last retryable exception is re-raised unchanged.

    Args:
        func: Zero-argument callable to invoke
        config: Retry configuration
        label: Name used in log messages
        on_retry: Optional callback called before each retry with (exception, attempt)
        sleep: Sleep function (injectable for tests)
    """
    config = config or RetryConfig()
    attempts = max(1, config.max_attempts)

    for attempt in range(attempts):
        try:
            return func()
        except config.retryable_exceptions as exc:
            if attempt + 1 >= attempts:
                logger.warning("Giving up on %s after %d attempt(s): %s", label, attempts, exc)
                raise

            delay = config.calculate_delay(attempt)
            logger.info(
                "Retry %d/%d for %s after %.2fs: %s",
                attempt + 1,
                attempts - 1,
                label,
                delay,
                exc,
            )
            if on_retry:
                on_retry(exc, attempt)
            sleep(delay)

    raise RuntimeError(f"Unexpected state in retry loop for {label}")
