"""
Retry and polling delays for the worker pool.
"""

import random
from collections.abc import Callable


def compute_backoff(attempt: int, base_s: float, max_s: float) -> float:
    """
    Delay before the next attempt after ``attempt`` failed.

    Exponential: ``base_s`` after the first attempt, doubling per attempt,
    capped at ``max_s``.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got: {attempt}")
    return min(max_s, base_s * (2 ** (attempt - 1)))


def poll_delay(
    interval_s: float,
    spread: float = 0.5,
    rand: Callable[[], float] = random.random,
) -> float:
    """Idle wait between claim attempts, randomized by ±``spread``."""
    return max(0.0, interval_s * (1 + spread * (2 * rand() - 1)))
