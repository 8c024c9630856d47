"""
Signal Calculators

Each calculator reduces a PriceSeries to at most one Indicator. Calculators
are pure: they only look at close values and their order, never at the
symbol or timestamps. Returning None is a legitimate "insufficient data"
outcome, not an error.

Most calculators describe the sampling window itself. A calculator with a
non-zero `history` instead looks back over that many trailing closes, which
may reach past the window start; the scheduler fetches enough extra days
to cover it.

New indicators are added by writing another SignalCalculator subclass and
putting it in the calculator set handed to the scheduler.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from .calculations import average_last, first_last_change
from .models import Indicator, PriceChange, PriceSeries

logger = logging.getLogger(__name__)

# Calendar days added on top of the weekend-adjusted span to absorb market holidays
HOLIDAY_SLACK_DAYS = 7


class SignalCalculator(ABC):
    """Common interface for all per-series calculations."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Indicator name this calculator produces (unique within a set)."""

    @abstractmethod
    def calculate(self, series: PriceSeries) -> Optional[Indicator]:
        """Return the indicator, or None if the series cannot support it."""

    @property
    def history(self) -> int:
        """Trailing closes needed regardless of the window (0 = window only)."""
        return 0


class MinPrice(SignalCalculator):
    """Lowest close in the series."""

    name = "min"

    def calculate(self, series: PriceSeries) -> Optional[Indicator]:
        if series.is_empty:
            return None
        return Indicator(self.name, min(series.closes))


class MaxPrice(SignalCalculator):
    """Highest close in the series."""

    name = "max"

    def calculate(self, series: PriceSeries) -> Optional[Indicator]:
        if series.is_empty:
            return None
        return Indicator(self.name, max(series.closes))


class LastPrice(SignalCalculator):
    """Most recent close."""

    name = "price"

    def calculate(self, series: PriceSeries) -> Optional[Indicator]:
        if series.is_empty:
            return None
        return Indicator(self.name, series.points[-1].close)


class PriceDifference(SignalCalculator):
    """
    Change between the first and last close.

    Produces a PriceChange holding both the absolute difference and the
    relative change. A single point has no defined difference.
    """

    name = "price_diff"

    def calculate(self, series: PriceSeries) -> Optional[Indicator]:
        change = first_last_change(series.closes)
        if change is None:
            return None
        return Indicator(self.name, PriceChange(*change))


@dataclass(frozen=True)
class WindowedSMA(SignalCalculator):
    """Arithmetic mean of the trailing `window` closes."""

    window: int

    def __post_init__(self):
        if self.window < 1:
            raise ValueError(f"SMA window must be at least 1, got {self.window}")

    @property
    def history(self) -> int:
        return self.window

    @property
    def name(self) -> str:
        return f"sma{self.window}"

    def calculate(self, series: PriceSeries) -> Optional[Indicator]:
        value = average_last(series.closes, self.window)
        if value is None:
            return None
        return Indicator(self.name, value)


def default_calculators(sma_window: int = 30) -> Tuple[SignalCalculator, ...]:
    """Calculator set backing the standard output columns, in column order."""
    return (LastPrice(), PriceDifference(), MinPrice(), MaxPrice(), WindowedSMA(sma_window))


def history_period(calculators: Sequence[SignalCalculator]) -> timedelta:
    """
    Extra calendar time to fetch before the window so every calculator
    with a history requirement can see enough trading days.

    Five trading days per seven calendar days, plus HOLIDAY_SLACK_DAYS.
    """
    needed = max((c.history for c in calculators), default=0)
    if needed <= 0:
        return timedelta(0)
    return timedelta(days=math.ceil(needed * 7 / 5) + HOLIDAY_SLACK_DAYS)


def validate_calculators(calculators: Sequence[SignalCalculator]) -> None:
    """Reject calculator sets whose indicator names collide."""
    seen = set()
    for calculator in calculators:
        if calculator.name in seen:
            raise ValueError(f"Duplicate indicator name in calculator set: {calculator.name!r}")
        seen.add(calculator.name)


def compute_indicators(
    series: PriceSeries,
    calculators: Sequence[SignalCalculator],
    since: Optional[datetime] = None,
) -> Tuple[Tuple[Indicator, ...], Tuple[str, ...]]:
    """
    Run every calculator over one series.

    Returns:
        (indicators in calculator order, names of calculators that raised)

    A calculator returning None simply leaves its indicator out. One that
    raises is logged and reported back so the record can be flagged
    partial; it never affects the other calculators.

    With since given, calculators without a history requirement only see
    the points at or after since; the others see the whole series.
    """
    indicators: List[Indicator] = []
    failed: List[str] = []
    windowed = series if since is None else series.since(since)

    for calculator in calculators:
        try:
            indicator = calculator.calculate(series if calculator.history else windowed)
        except Exception:
            logger.exception(
                "Calculator %s failed on %s (%d points)",
                calculator.name,
                series.symbol,
                len(series),
            )
            failed.append(calculator.name)
            continue
        if indicator is not None:
            indicators.append(indicator)

    return tuple(indicators), tuple(failed)
