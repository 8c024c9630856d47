"""
Result aggregation for one wave.

Turns per-symbol outcomes into Records and hands them to the sink in the
configured symbol order, whatever order the fetches finished in.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Mapping, Optional, Sequence, Tuple, Union

from ..display.sinks import StreamSink
from .fetcher import FetchError
from .models import Indicator, Record, RecordStatus, Window

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SymbolOutcome:
    """What one work unit produced: indicators, or the reason it has none."""

    symbol: str
    indicators: Tuple[Indicator, ...] = ()
    point_count: int = 0
    failed_calculators: Tuple[str, ...] = ()
    error: Optional[FetchError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


UnitResult = Union[SymbolOutcome, BaseException]


@dataclass
class WaveResult:
    """Records emitted by one wave plus summary counts."""

    number: int
    wave_at: datetime
    window: Window
    records: List[Record] = field(default_factory=list)
    duration_seconds: float = 0.0

    def _count(self, status: RecordStatus) -> int:
        return sum(1 for r in self.records if r.status is status)

    @property
    def ok_count(self) -> int:
        return self._count(RecordStatus.OK)

    @property
    def partial_count(self) -> int:
        return self._count(RecordStatus.PARTIAL)

    @property
    def failed_count(self) -> int:
        return self._count(RecordStatus.FAILED)

    @property
    def failed_symbols(self) -> List[str]:
        return [r.symbol for r in self.records if r.failed]


class ResultAggregator:
    """
    Builds Records from unit outcomes and is the only writer to the sink.

    A symbol whose fetch failed still gets a Record (status FAILED) so the
    failure is visible downstream instead of silently missing.
    """

    def __init__(self, sink: StreamSink):
        self._sink = sink

    def build_record(
        self, symbol: str, result: Optional[UnitResult], wave_at: datetime, window: Window
    ) -> Record:
        if isinstance(result, SymbolOutcome) and result.succeeded:
            status = RecordStatus.PARTIAL if result.failed_calculators else RecordStatus.OK
            return Record(
                wave_at=wave_at,
                symbol=symbol,
                window=window,
                indicators=result.indicators,
                status=status,
                point_count=result.point_count,
                failed_calculators=result.failed_calculators,
            )

        if isinstance(result, SymbolOutcome):
            error_text = str(result.error)
        elif result is None:
            error_text = "no outcome reported"
            logger.error("No outcome for %s in wave at %s", symbol, wave_at.isoformat())
        else:
            error_text = f"{type(result).__name__}: {result}"
            logger.error(
                "Unexpected failure for %s", symbol, exc_info=(type(result), result, result.__traceback__)
            )

        return Record(
            wave_at=wave_at,
            symbol=symbol,
            window=window,
            status=RecordStatus.FAILED,
            error=error_text,
        )

    def aggregate(
        self,
        symbols: Sequence[str],
        results: Mapping[str, UnitResult],
        wave_at: datetime,
        window: Window,
    ) -> List[Record]:
        """One Record per configured symbol, in configured order."""
        return [self.build_record(s, results.get(s), wave_at, window) for s in symbols]

    def publish(self, records: Sequence[Record]) -> None:
        """Push a wave's records to the sink, then flush once."""
        for record in records:
            self._sink.emit(record)
        self._sink.flush()
