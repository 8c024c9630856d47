"""
Core data types for the sampling pipeline.

These are the atomic units flowing from the provider, through the
calculators, into the emitted record stream.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from types import MappingProxyType
from typing import Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union


def ensure_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# PRICES
# =============================================================================


@dataclass(frozen=True, slots=True)
class PricePoint:
    """Single closing price at a point in time."""

    timestamp: datetime
    close: float

    def __post_init__(self):
        if not math.isfinite(self.close) or self.close < 0:
            raise ValueError(f"Close price must be finite and non-negative, got {self.close!r}")
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))


@dataclass(frozen=True)
class PriceSeries:
    """
    Chronologically ordered closes for one symbol over one window.

    An empty series is a valid outcome (the provider had no data for the
    window) and is distinct from a failed fetch.
    """

    symbol: str
    points: Tuple[PricePoint, ...] = ()

    def __post_init__(self):
        object.__setattr__(
            self, "points", tuple(sorted(self.points, key=lambda p: p.timestamp))
        )

    @classmethod
    def from_pairs(
        cls, symbol: str, pairs: Iterable[Tuple[datetime, float]]
    ) -> "PriceSeries":
        return cls(symbol, tuple(PricePoint(ts, close) for ts, close in pairs))

    @property
    def closes(self) -> List[float]:
        return [p.close for p in self.points]

    @property
    def is_empty(self) -> bool:
        return not self.points

    def __len__(self) -> int:
        return len(self.points)

    def since(self, start: datetime) -> "PriceSeries":
        """Points at or after start."""
        start = ensure_utc(start)
        return PriceSeries(self.symbol, tuple(p for p in self.points if p.timestamp >= start))


@dataclass(frozen=True)
class Window:
    """Half-open time range [start, end) over which prices are requested."""

    start: datetime
    end: datetime

    def __post_init__(self):
        start = ensure_utc(self.start)
        end = ensure_utc(self.end)
        if start >= end:
            raise ValueError(
                f"Window start {start.isoformat()} must be before end {end.isoformat()}"
            )
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @classmethod
    def trailing(cls, end: datetime, lookback: timedelta) -> "Window":
        """Window of length lookback ending at end."""
        return cls(end - lookback, end)

    def extended(self, history: timedelta) -> "Window":
        """Same end, start moved back by history."""
        return Window(self.start - history, self.end)

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"


# =============================================================================
# INDICATORS
# =============================================================================


class PriceChange(NamedTuple):
    """Absolute and relative change between the first and last close."""

    absolute: float
    relative: Optional[float]  # None when the first close is zero

    @property
    def percent(self) -> Optional[float]:
        return None if self.relative is None else self.relative * 100


IndicatorValue = Union[float, str, PriceChange]


@dataclass(frozen=True, slots=True)
class Indicator:
    """A named value derived from one PriceSeries by one calculator."""

    name: str
    value: IndicatorValue


# =============================================================================
# RECORDS
# =============================================================================


class RecordStatus(Enum):
    """Outcome of one symbol in one wave."""

    OK = "ok"
    PARTIAL = "partial"  # fetched, but at least one calculator raised
    FAILED = "failed"  # fetch failed, no indicators

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Record:
    """
    One symbol's aggregated output for one wave.

    Immutable once built; this is the unit delivered to every sink.
    ``point_count`` lets consumers tell "no data" (OK with zero points)
    apart from "not fetched" (FAILED).
    """

    wave_at: datetime
    symbol: str
    window: Window
    indicators: Tuple[Indicator, ...] = ()
    status: RecordStatus = RecordStatus.OK
    error: Optional[str] = None
    point_count: int = 0
    failed_calculators: Tuple[str, ...] = field(default=())

    @property
    def values(self) -> Mapping[str, IndicatorValue]:
        """Read-only ordered mapping from indicator name to value."""
        return MappingProxyType({ind.name: ind.value for ind in self.indicators})

    def get(self, name: str) -> Optional[IndicatorValue]:
        return self.values.get(name)

    @property
    def failed(self) -> bool:
        return self.status is RecordStatus.FAILED

    @property
    def partial(self) -> bool:
        return self.status is RecordStatus.PARTIAL
