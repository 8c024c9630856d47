"""
Retry primitives: exponential backoff schedule and per-fetch retry state.

The retry loop itself lives in the fetcher; this module only knows how long
to wait and what a single fetch has been through so far.
"""

import random
from dataclasses import dataclass
from typing import Callable, Optional


class ExponentialBackoff:
    """
    Exponential backoff calculator with additive jitter.

    The un-jittered delay doubles (by default) from `base` and is capped at
    `max_delay`. Jitter only ever adds time, up to `jitter * delay`, so the
    plain doubling schedule is a lower bound on the actual wait.

    Args:
        base: Base delay in seconds (default: 1.0)
        multiplier: Exponential growth factor (default: 2.0)
        max_delay: Maximum delay cap in seconds (default: 30.0)
        jitter: Fraction of the delay added at random (default: 0.0)
        rng: Random source in [0, 1) (default: random.random)

    Example:
        >>> backoff = ExponentialBackoff(base=1.0, multiplier=2.0)
        >>> backoff.calculate(attempt=0)  # First retry
        1.0
        >>> backoff.calculate(attempt=1)  # Second retry
        2.0
        >>> backoff.calculate(attempt=2)  # Third retry
        4.0
    """

    def __init__(
        self,
        base: float = 1.0,
        multiplier: float = 2.0,
        max_delay: float = 30.0,
        jitter: float = 0.0,
        rng: Callable[[], float] = random.random,
    ):
        if base < 0 or max_delay < 0:
            raise ValueError("Backoff delays must be non-negative")
        if multiplier < 1:
            raise ValueError("Backoff multiplier must be >= 1")
        self.base = base
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.jitter = max(0.0, jitter)
        self._rng = rng

    def calculate(self, attempt: int, floor: Optional[float] = None) -> float:
        """
        Calculate delay before the retry following failed attempt `attempt`.

        Args:
            attempt: Retry number (0-indexed)
            floor: Minimum delay requested by the upstream (e.g. Retry-After)

        Returns:
            Delay in seconds, never above max_delay
        """
        delay = self.base * (self.multiplier**attempt)
        if floor is not None:
            delay = max(delay, floor)
        if self.jitter:
            delay += self._rng() * self.jitter * delay
        return min(delay, self.max_delay)


@dataclass
class RetryState:
    """
    Transient bookkeeping for one fetch.

    Owned by a single fetch call, discarded when it returns or raises.
    """

    attempt: int = 0  # attempts made so far
    next_delay: float = 0.0  # wait before the next attempt
    total_delay: float = 0.0  # time spent waiting so far
    last_error: Optional[Exception] = None
