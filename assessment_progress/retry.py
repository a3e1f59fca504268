"""Exponential backoff shared by polling reconnects and activity reporting."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from assessment_progress.domain.progress.errors import TransportError

LOG = logging.getLogger("assessment_progress.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Capped exponential backoff settings."""

    max_retries: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds cannot be negative")
        if self.max_delay_seconds < self.initial_delay_seconds:
            raise ValueError("max_delay_seconds must be >= initial_delay_seconds")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""

        if attempt < 1:
            raise ValueError("attempt must be >= 1")
        delay = self.initial_delay_seconds * (self.backoff_factor ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, TransportError) and error.retryable


def with_retry(
    operation: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    *,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Runs ``operation``, retrying retryable failures with backoff."""

    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as exc:
            attempt += 1
            if attempt > policy.max_retries or not should_retry(exc):
                raise
            delay = policy.delay_for(attempt)
            LOG.warning(
                "Operation failed (attempt %d/%d), retrying in %.2fs: %s",
                attempt,
                policy.max_retries + 1,
                delay,
                exc,
            )
            sleep(delay)
