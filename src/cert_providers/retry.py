"""Bounded exponential backoff for transient network failures."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from cert_providers.errors import TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a transient failure is retried."""

    max_attempts: int = 4
    base_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got: {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must not be negative")
        if not 0 <= self.jitter <= 1:
            raise ValueError(f"jitter must be between 0 and 1, got: {self.jitter}")

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        delay = min(self.max_delay, self.base_delay * 2 ** (attempt - 1))
        delay *= random.uniform(1 - self.jitter, 1 + self.jitter)
        if retry_after is not None:
            delay = max(delay, retry_after)
        return delay


NO_RETRY = RetryPolicy(max_attempts=1)


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    action: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func``, retrying only on ``TransientNetworkError``.

    Every other exception propagates immediately. When attempts are
    exhausted the last transient error is re-raised.
    """
    attempt = 1
    while True:
        try:
            return func()
        except TransientNetworkError as e:
            if attempt >= policy.max_attempts:
                logger.error("%s failed after %d attempt(s): %s", action, attempt, e)
                raise
            delay = policy.delay_for(attempt, e.retry_after)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                action,
                attempt,
                policy.max_attempts,
                delay,
                e,
            )
            sleep(delay)
            attempt += 1
