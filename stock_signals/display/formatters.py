"""Formatting utilities for record output (console and CSV share these)."""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from ..engines.models import IndicatorValue, PriceChange, Record

FAILED_MARKER = "FAILED"


def format_money(value: float) -> str:
    """Format a price as $123.45."""
    return f"${value:.2f}"


def format_percent(value: float) -> str:
    """Format a percentage as 12.34%."""
    return f"{value:.2f}%"


def format_timestamp(value: datetime) -> str:
    """RFC 3339 rendering of an aware datetime, to whole seconds."""
    return value.replace(microsecond=0).isoformat()


def _money_cell(value: IndicatorValue) -> str:
    if isinstance(value, (int, float)):
        return format_money(value)
    return str(value)


def _change_cell(value: IndicatorValue) -> str:
    if isinstance(value, PriceChange):
        return "" if value.percent is None else format_percent(value.percent)
    if isinstance(value, (int, float)):
        return format_percent(value)
    return str(value)


@dataclass(frozen=True)
class Column:
    """One output column bound to one indicator name."""

    header: str
    indicator: str
    render: Callable[[IndicatorValue], str] = _money_cell

    def cell(self, record: Record) -> str:
        value = record.get(self.indicator)
        if value is None:
            return ""
        return self.render(value)


def default_columns(sma_window: int = 30) -> Tuple[Column, ...]:
    """
    Indicator columns matching the default calculator set.

    Together with the leading period start and symbol columns this gives
    the header: period start,symbol,price,change %,min,max,30d avg
    """
    return (
        Column("price", "price"),
        Column("change %", "price_diff", _change_cell),
        Column("min", "min"),
        Column("max", "max"),
        Column(f"{sma_window}d avg", f"sma{sma_window}"),
    )


def header_cells(columns: Sequence[Column]) -> List[str]:
    return ["period start", "symbol"] + [c.header for c in columns]


def record_cells(record: Record, columns: Sequence[Column]) -> List[str]:
    """
    Render one record as a row of strings.

    Absent indicators give empty cells. A failed record carries the FAILED
    marker in the first indicator column and nothing else.
    """
    cells = [format_timestamp(record.window.start), record.symbol]
    if record.failed:
        if columns:
            cells.append(FAILED_MARKER)
            cells.extend("" for _ in columns[1:])
        return cells
    cells.extend(c.cell(record) for c in columns)
    return cells


def change_percent(record: Record) -> Optional[float]:
    """Relative first-to-last change in percent, when the record has one."""
    value = record.get("price_diff")
    if isinstance(value, PriceChange):
        return value.percent
    return None
