"""
Wave Scheduler

Drives the pipeline either once over an explicit window (batch) or once per
tick over a trailing window (streaming). Both modes share one wave engine:

    WAVE_START -> FETCHING_ALL -> AGGREGATING -> WAVE_END

Within a wave every symbol gets its own work unit (fetch, then compute
indicators). Units run concurrently, but provider calls are gated by a
counting semaphore. Waves never overlap: a tick that arrives before the
previous wave finished emitting is skipped.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

from .aggregator import ResultAggregator, SymbolOutcome, WaveResult
from .calculators import (
    SignalCalculator,
    compute_indicators,
    history_period,
    validate_calculators,
)
from .fetcher import FetchError, RetryingFetcher, Sleep
from .models import Window, ensure_utc

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SchedulerState(Enum):
    """Lifecycle states of the scheduler."""

    IDLE = "idle"
    WAVE_START = "wave_start"
    FETCHING_ALL = "fetching_all"
    AGGREGATING = "aggregating"
    WAVE_END = "wave_end"
    DONE = "done"  # batch finished
    STOPPED = "stopped"  # streaming ended, or any run aborted


@dataclass(frozen=True)
class StateTransition:
    """Record of a state transition."""

    from_state: SchedulerState
    to_state: SchedulerState
    wave_number: int
    at: datetime


# =============================================================================
# TICK SOURCE
# =============================================================================


class IntervalTicker:
    """
    Fixed-period tick source.

    Yields the deadlines start, start + period, start + 2*period, ... where
    start is the clock reading when iteration begins. The first tick fires
    immediately; a deadline that has already passed is yielded without
    waiting, and the scheduler decides whether it is stale.

    Args:
        period: seconds between ticks
        clock: returns the current UTC time
        sleep: awaitable delay
        limit: stop after this many ticks (None = never)
    """

    def __init__(
        self,
        period: float,
        clock: Clock = utc_now,
        sleep: Sleep = asyncio.sleep,
        limit: Optional[int] = None,
    ):
        if period <= 0:
            raise ValueError(f"Tick period must be positive, got {period}")
        self.period = period
        self._clock = clock
        self._sleep = sleep
        self.limit = limit

    def __aiter__(self) -> AsyncIterator[datetime]:
        return self._ticks()

    async def _ticks(self) -> AsyncIterator[datetime]:
        start = ensure_utc(self._clock())
        count = 0
        while self.limit is None or count < self.limit:
            deadline = start + timedelta(seconds=self.period * count)
            wait = (deadline - ensure_utc(self._clock())).total_seconds()
            if wait > 0:
                await self._sleep(wait)
            yield deadline
            count += 1


async def _next_tick(ticks: AsyncIterator[datetime]) -> Optional[datetime]:
    try:
        return await ticks.__anext__()
    except StopAsyncIteration:
        return None


# =============================================================================
# SCHEDULER
# =============================================================================


class WaveScheduler:
    """
    Runs waves of per-symbol work units and hands results to the aggregator.

    Usage:
        scheduler = WaveScheduler(symbols, fetcher, calculators, aggregator)
        await scheduler.run_batch(window)
        # or
        await scheduler.run_streaming(IntervalTicker(30), timedelta(days=14))

    stop() ends a streaming run at the next wave boundary and lets the
    current wave finish. abort() cancels the current wave outright; nothing
    from that wave reaches the sink.
    """

    def __init__(
        self,
        symbols: Sequence[str],
        fetcher: RetryingFetcher,
        calculators: Sequence[SignalCalculator],
        aggregator: ResultAggregator,
        max_concurrency: int = 4,
        clock: Clock = utc_now,
    ):
        if not symbols:
            raise ValueError("Scheduler needs at least one symbol")
        if len(set(symbols)) != len(symbols):
            raise ValueError(f"Duplicate symbols in {list(symbols)}")
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        validate_calculators(calculators)

        self.symbols = tuple(symbols)
        self.max_concurrency = max_concurrency
        self._fetcher = fetcher
        self._calculators = tuple(calculators)
        self._history = history_period(self._calculators)
        self._aggregator = aggregator
        self._clock = clock

        self._gate = asyncio.Semaphore(max_concurrency)
        self._stop_event = asyncio.Event()
        self._aborted = False
        self._running = False
        self._wave_task: Optional[asyncio.Task] = None
        self._last_finished_at: Optional[datetime] = None

        self._state = SchedulerState.IDLE
        self._on_state_change_callbacks: List[Callable[[StateTransition], Any]] = []

        self.waves_completed = 0
        self.skipped_ticks = 0

    # === Properties ===

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    # === Callback Registration ===

    def on_state_change(self, callback: Callable[[StateTransition], Any]) -> None:
        """Register callback for state changes."""
        self._on_state_change_callbacks.append(callback)

    def _transition(self, to_state: SchedulerState, wave_number: int = 0) -> None:
        transition = StateTransition(self._state, to_state, wave_number, ensure_utc(self._clock()))
        self._state = to_state
        logger.debug(
            "State transition: %s -> %s (wave %d)",
            transition.from_state.value,
            transition.to_state.value,
            wave_number,
        )
        for callback in self._on_state_change_callbacks:
            try:
                callback(transition)
            except Exception as e:
                logger.error("State change callback error: %s", e)

    # === Control ===

    def stop(self) -> None:
        """Finish the current wave, then end the run."""
        if not self._stop_event.is_set():
            logger.info("Stop requested; finishing current wave")
        self._stop_event.set()

    def abort(self) -> None:
        """Cancel the current wave without emitting it, then end the run."""
        logger.warning("Abort requested")
        self._aborted = True
        self._stop_event.set()
        if self._wave_task is not None and not self._wave_task.done():
            self._wave_task.cancel()

    # === Wave engine ===

    async def _run_unit(self, symbol: str, window: Window) -> SymbolOutcome:
        try:
            async with self._gate:
                series = await self._fetcher.fetch(symbol, window.extended(self._history))
        except FetchError as e:
            return SymbolOutcome(symbol, error=e)

        point_count = len(series.since(window.start))
        if not point_count:
            logger.info("No prices for %s in %s", symbol, window)
        indicators, failed = compute_indicators(series, self._calculators, since=window.start)
        return SymbolOutcome(symbol, indicators, point_count, failed)

    async def _run_wave(self, number: int, wave_at: datetime, window: Window) -> WaveResult:
        started = time.monotonic()
        self._transition(SchedulerState.FETCHING_ALL, number)

        results = await asyncio.gather(
            *(self._run_unit(symbol, window) for symbol in self.symbols),
            return_exceptions=True,
        )
        outcomes: Dict[str, Any] = dict(zip(self.symbols, results))

        self._transition(SchedulerState.AGGREGATING, number)
        records = self._aggregator.aggregate(self.symbols, outcomes, wave_at, window)
        self._aggregator.publish(records)

        result = WaveResult(number, wave_at, window, records, time.monotonic() - started)
        logger.info(
            "Wave %d over %s: %d ok, %d partial, %d failed in %.2fs",
            number,
            window,
            result.ok_count,
            result.partial_count,
            result.failed_count,
            result.duration_seconds,
        )
        return result

    async def _execute_wave(
        self, number: int, wave_at: datetime, window: Window
    ) -> Optional[WaveResult]:
        self._wave_task = asyncio.create_task(self._run_wave(number, wave_at, window))
        try:
            return await self._wave_task
        except asyncio.CancelledError:
            if not self._aborted:
                raise
            logger.warning("Wave %d aborted; its records were discarded", number)
            return None
        finally:
            self._wave_task = None

    def _begin(self) -> None:
        if self._running:
            raise RuntimeError("Scheduler is already running")
        self._running = True

    # === Run modes ===

    async def run_batch(self, window: Window) -> Optional[WaveResult]:
        """
        Run exactly one wave over window.

        Returns:
            The wave result, or None if the run was aborted
        """
        self._begin()
        try:
            result = await self._execute_wave(1, ensure_utc(self._clock()), window)
        finally:
            self._running = False

        if result is None:
            self._transition(SchedulerState.STOPPED)
            return None
        self.waves_completed += 1
        self._transition(SchedulerState.DONE, 1)
        return result

    async def _wait_for_tick(self, ticks: AsyncIterator[datetime]) -> Optional[datetime]:
        """Next tick, or None once the source is exhausted or a stop arrives."""
        tick_task = asyncio.create_task(_next_tick(ticks))
        stop_task = asyncio.create_task(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {tick_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            stop_task.cancel()
            if not tick_task.done():
                tick_task.cancel()
                await asyncio.wait({tick_task})

        if stop_task in done or tick_task.cancelled():
            return None
        tick = tick_task.result()
        return None if tick is None else ensure_utc(tick)

    async def run_streaming(
        self,
        ticks: AsyncIterator[datetime],
        lookback: timedelta,
        max_waves: Optional[int] = None,
    ) -> int:
        """
        Run one wave per tick until stopped, aborted, out of ticks, or
        max_waves waves have completed.

        Returns:
            Number of waves completed
        """
        self._begin()
        iterator = ticks.__aiter__()
        completed = 0
        try:
            while not self.stop_requested and (max_waves is None or completed < max_waves):
                tick = await self._wait_for_tick(iterator)
                if tick is None:
                    break

                if self._last_finished_at is not None and tick < self._last_finished_at:
                    self.skipped_ticks += 1
                    logger.warning(
                        "Skipping tick at %s: previous wave finished at %s",
                        tick.isoformat(),
                        self._last_finished_at.isoformat(),
                    )
                    continue

                number = completed + 1
                self._transition(SchedulerState.WAVE_START, number)
                result = await self._execute_wave(number, tick, Window.trailing(tick, lookback))
                if result is None:
                    break

                completed += 1
                self.waves_completed += 1
                self._last_finished_at = ensure_utc(self._clock())
                self._transition(SchedulerState.WAVE_END, number)
        finally:
            self._running = False
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

        self._transition(SchedulerState.STOPPED, completed)
        logger.info("Streaming ended after %d waves (%d ticks skipped)", completed, self.skipped_ticks)
        return completed
