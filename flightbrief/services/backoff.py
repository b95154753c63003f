"""Retry delay policy for summarization calls."""

import random
from dataclasses import dataclass, field
from typing import Optional

from flightbrief.config import RetryConfig


@dataclass
class BackoffPolicy:
    """
    Bounded exponential backoff.

    A provider retry-after hint is used as-is. Without one, the delay for
    attempt n (1-based) is base * factor**(n-1) plus up to jitter_ratio of
    that delay, capped at max_delay.
    """
    base_delay: float = 2.0
    factor: float = 2.0
    max_delay: float = 60.0
    max_attempts: int = 5
    jitter_ratio: float = 0.1
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @classmethod
    def from_config(cls, retry: RetryConfig) -> 'BackoffPolicy':
        return cls(
            base_delay=retry.base_delay_seconds,
            max_delay=retry.max_delay_seconds,
            max_attempts=retry.max_attempts,
            jitter_ratio=retry.jitter_ratio,
        )

    def delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Seconds to wait after the given failed attempt."""
        if retry_after is not None:
            return retry_after

        delay = self.base_delay * (self.factor ** max(0, attempt - 1))
        if self.jitter_ratio > 0:
            delay += self.rng.uniform(0, delay * self.jitter_ratio)
        return min(delay, self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts
