"""
Output sinks for the record stream.

A sink receives completed Records in emission order. ConsoleSink renders a
line per record; CsvSink appends rows to a file; MultiSink fans the same
records out to several sinks so they can never diverge.
"""

import csv
import logging
import sys
from pathlib import Path
from typing import IO, List, Optional, Protocol, Sequence, TextIO

from ..engines.models import Record
from .colors import Colors, change_color, paint
from .formatters import (
    Column,
    change_percent,
    default_columns,
    header_cells,
    record_cells,
)

logger = logging.getLogger(__name__)


class StreamSink(Protocol):
    """Receiver of the ordered record stream."""

    def open(self) -> None:
        ...

    def emit(self, record: Record) -> None:
        ...

    def flush(self) -> None:
        ...

    def close(self) -> None:
        ...


class _SinkBase:
    def open(self) -> None:
        """Acquire output resources ahead of the first record."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# =============================================================================
# CONSOLE
# =============================================================================


class ConsoleSink(_SinkBase):
    """
    Line-oriented console renderer.

    Prints a header once, before the first record, then one aligned line per
    record. Failed records show the error text instead of values.
    """

    WIDTHS = (25, 8, 10, 9, 10, 10, 10)

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        color: bool = True,
        columns: Optional[Sequence[Column]] = None,
    ):
        self._stream = stream if stream is not None else sys.stdout
        self._color = color
        self._columns = tuple(columns) if columns is not None else default_columns()
        self._header_written = False

    def _width(self, index: int) -> int:
        return self.WIDTHS[index] if index < len(self.WIDTHS) else 10

    def _line(self, cells: Sequence[str]) -> str:
        parts = []
        for i, cell in enumerate(cells):
            parts.append(cell.ljust(self._width(i)) if i < 2 else cell.rjust(self._width(i)))
        return " ".join(parts).rstrip()

    def _write_header(self) -> None:
        line = self._line(header_cells(self._columns))
        self._stream.write(paint(line, Colors.BOLD, self._color) + "\n")
        self._header_written = True

    def render(self, record: Record) -> str:
        """Render one record as a console line (no trailing newline)."""
        cells = record_cells(record, self._columns)
        if record.failed:
            line = self._line(cells[:3])
            return paint(f"{line}  {record.error or ''}".rstrip(), Colors.RED, self._color)

        line = self._line(cells)
        if record.partial:
            line += "  (partial: " + ", ".join(record.failed_calculators) + ")"
        elif record.point_count == 0:
            line += "  (no data)"

        percent = change_percent(record)
        if percent is None or not self._color:
            return line
        return paint(line, change_color(percent), self._color)

    def emit(self, record: Record) -> None:
        if not self._header_written:
            self._write_header()
        self._stream.write(self.render(record) + "\n")

    def flush(self) -> None:
        self._stream.flush()

    def close(self) -> None:
        self.flush()


# =============================================================================
# CSV
# =============================================================================


class CsvSink(_SinkBase):
    """
    Append-only CSV file.

    The header is written only when the file is new or empty, so repeated
    runs keep appending rows under a single header. The file is opened by
    open(), or on the first record if open() was never called.
    """

    def __init__(self, path: str, columns: Optional[Sequence[Column]] = None):
        self.path = Path(path)
        self._columns = tuple(columns) if columns is not None else default_columns()
        self._file: Optional[IO[str]] = None
        self._writer = None
        self.rows_written = 0

    def open(self) -> None:
        if self._file is not None:
            return
        needs_header = not self.path.exists() or self.path.stat().st_size == 0
        self._file = self.path.open("a", newline="", encoding="utf-8")
        self._writer = csv.writer(self._file, lineterminator="\n")
        if needs_header:
            self._writer.writerow(header_cells(self._columns))
        logger.debug("Appending records to %s", self.path)

    def emit(self, record: Record) -> None:
        if self._file is None:
            self.open()
        self._writer.writerow(record_cells(record, self._columns))
        self.rows_written += 1

    def flush(self) -> None:
        if self._file is not None:
            self._file.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
            self._writer = None


# =============================================================================
# FAN-OUT
# =============================================================================


class MultiSink(_SinkBase):
    """Delivers every record, in order, to each wrapped sink."""

    def __init__(self, *sinks: StreamSink):
        self.sinks: List[StreamSink] = list(sinks)

    def open(self) -> None:
        for sink in self.sinks:
            sink.open()

    def emit(self, record: Record) -> None:
        for sink in self.sinks:
            sink.emit(record)

    def flush(self) -> None:
        for sink in self.sinks:
            sink.flush()

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()
