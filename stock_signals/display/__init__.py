"""Display utilities for record stream output."""

from .colors import Colors, change_color, paint
from .formatters import (
    Column,
    default_columns,
    format_money,
    format_percent,
    format_timestamp,
    header_cells,
    record_cells,
)
from .sinks import ConsoleSink, CsvSink, MultiSink, StreamSink

__all__ = [
    # Colors
    "Colors",
    "change_color",
    "paint",
    # Formatters
    "Column",
    "default_columns",
    "format_money",
    "format_percent",
    "format_timestamp",
    "header_cells",
    "record_cells",
    # Sinks
    "StreamSink",
    "ConsoleSink",
    "CsvSink",
    "MultiSink",
]
