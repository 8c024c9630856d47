import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Dict, List, Optional

import pytest

TESTS_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(TESTS_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from stock_signals.engines.data_fetcher import SymbolNotFoundError  # noqa: E402
from stock_signals.engines.models import PriceSeries  # noqa: E402

T0 = datetime(2024, 3, 1, 21, 0, tzinfo=timezone.utc)


def build_series(symbol: str, closes: List[float], start: datetime = T0) -> PriceSeries:
    """Daily series ending the day before start."""
    first = start - timedelta(days=len(closes))
    return PriceSeries.from_pairs(
        symbol, [(first + timedelta(days=i), c) for i, c in enumerate(closes)]
    )


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingSleep:
    """Stands in for asyncio.sleep; records delays without waiting."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.delays: List[float] = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._clock is not None:
            self._clock.advance(delay)
        await asyncio.sleep(0)

    @property
    def total(self) -> float:
        return sum(self.delays)


class ScriptedProvider:
    """
    In-memory PriceProvider.

    Args:
        closes: closes per known symbol; unknown symbols raise SymbolNotFoundError
        failures: errors raised (in order) before a symbol starts succeeding
        always_fail: error raised on every call for a symbol
        yields: event-loop yields per call, to shuffle completion order
        gate: if set, every call waits for it before answering
    """

    def __init__(
        self,
        closes: Dict[str, List[float]],
        failures: Optional[Dict[str, List[Exception]]] = None,
        always_fail: Optional[Dict[str, Exception]] = None,
        yields: Optional[Dict[str, int]] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.closes = closes
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.always_fail = always_fail or {}
        self.yields = yields or {}
        self.gate = gate
        self.calls: List[str] = []
        self.windows: List[tuple] = []
        self.completed: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def get_prices(self, symbol: str, start: datetime, end: datetime) -> PriceSeries:
        self.calls.append(symbol)
        self.windows.append((start, end))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            for _ in range(self.yields.get(symbol, 1)):
                await asyncio.sleep(0)
            pending = self.failures.get(symbol)
            if pending:
                raise pending.pop(0)
            if symbol in self.always_fail:
                raise self.always_fail[symbol]
            if symbol not in self.closes:
                raise SymbolNotFoundError(symbol)
            self.completed.append(symbol)
            return build_series(symbol, self.closes[symbol], end)
        finally:
            self.in_flight -= 1

    def call_count(self, symbol: str) -> int:
        return self.calls.count(symbol)


class RecordingSink:
    """StreamSink that keeps everything it is given."""

    def __init__(self):
        self.records = []
        self.flushes = 0
        self.closed = False
        self.opened = False

    def open(self) -> None:
        self.opened = True

    def emit(self, record) -> None:
        self.records.append(record)

    def flush(self) -> None:
        self.flushes += 1

    def close(self) -> None:
        self.closed = True

    @property
    def symbols(self) -> List[str]:
        return [r.symbol for r in self.records]


async def ticks_from(times: List[datetime]) -> AsyncIterator[datetime]:
    for t in times:
        await asyncio.sleep(0)
        yield t


async def endless_ticks(start: datetime = T0, period: float = 30.0) -> AsyncIterator[datetime]:
    k = 0
    while True:
        await asyncio.sleep(0)
        yield start + timedelta(seconds=period * k)
        k += 1


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def make_series():
    return build_series


@pytest.fixture
def make_provider():
    return ScriptedProvider


@pytest.fixture
def fixed_closes():
    """Fixed closes for the three-symbol scenarios."""
    return {
        "AAPL": [180.0, 182.5, 181.0, 185.25],
        "MSFT": [400.0, 398.0, 405.5, 410.0],
        "GOOG": [140.0, 141.0, 139.5, 142.0],
    }


@pytest.fixture
def tick_source():
    return ticks_from


@pytest.fixture
def endless_tick_source():
    return endless_ticks


@pytest.fixture
def make_sink():
    return RecordingSink


@pytest.fixture
def clocked_sleeper(clock):
    """Sleep stand-in that moves the fake clock forward."""
    return RecordingSleep(clock)
