"""
Shared math utilities for indicator calculations.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

EPSILON = 1e-9


def safe_divide(numerator: float, denominator: float) -> Optional[float]:
    """Divide two numbers, returning None if the denominator is near zero."""
    return numerator / denominator if abs(denominator) > EPSILON else None


def simple_average(values: Iterable[float]) -> Optional[float]:
    """Return the arithmetic mean of values, or None if empty."""
    values_list = list(values)
    if not values_list:
        return None
    return sum(values_list) / len(values_list)


def average_last(values: Sequence[float], window: int) -> Optional[float]:
    """
    Return the average of exactly the last `window` values.

    Unlike a rolling average this does not fall back to a shorter slice:
    fewer than `window` values yields None.
    """
    if window <= 0 or len(values) < window:
        return None
    return simple_average(values[-window:])


def first_last_change(values: List[float]) -> Optional[Tuple[float, Optional[float]]]:
    """
    Absolute and relative change from the first to the last value.

    Needs at least two values. The relative change is None when the first
    value is zero.
    """
    if len(values) < 2:
        return None
    first, last = values[0], values[-1]
    absolute = last - first
    return absolute, safe_divide(absolute, first)
