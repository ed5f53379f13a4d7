"""Retry strategies with exponential backoff.

Example:
    >>> strategy = ExponentialBackoff(max_retries=2, base_delay=10.0, multiplier=2.0)
    >>> [strategy.next_delay(attempt) for attempt in range(2)]
    [10.0, 20.0]
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass

from alertspine.core.errors import AlertSpineError
from alertspine.models import RetryPolicy


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Delay before the next retry.

        Args:
            attempt: Zero-based retry number (0 = first retry)
        """
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: BaseException | None = None) -> bool:
        """Whether retry number *attempt* (zero-based) may be made."""
        ...


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** attempt), max_delay) + jitter

    A multiplier of 1 gives a constant delay. Engine errors flagged as not
    retryable (for instance a missing sender) stop retries immediately.
    """

    max_retries: int = 3
    base_delay: float = 30.0
    multiplier: float = 2.0
    max_delay: float | None = None
    jitter: bool = False
    jitter_range: float = 0.25

    @classmethod
    def from_policy(cls, policy: RetryPolicy) -> ExponentialBackoff:
        return cls(
            max_retries=policy.max_retries,
            base_delay=policy.retry_delay,
            multiplier=policy.backoff_multiplier,
        )

    def next_delay(self, attempt: int) -> float:
        delay = self.base_delay * (self.multiplier**attempt)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0.0, delay)

        return delay

    def should_retry(self, attempt: int, error: BaseException | None = None) -> bool:
        if attempt >= self.max_retries:
            return False
        if isinstance(error, AlertSpineError) and not error.retryable:
            return False
        return True
