"""
Tests for core data types.
"""

import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from stock_signals.engines.models import (
    Indicator,
    PricePoint,
    PriceSeries,
    Record,
    RecordStatus,
    Window,
    ensure_utc,
)

T = datetime(2024, 3, 1, tzinfo=timezone.utc)


class TestPricePoint:
    """Tests for PricePoint validation."""

    @pytest.mark.parametrize("close", [float("nan"), float("inf"), -0.01])
    def test_rejects_bad_close(self, close):
        with pytest.raises(ValueError):
            PricePoint(T, close)

    def test_naive_timestamp_is_utc(self):
        point = PricePoint(datetime(2024, 3, 1), 1.0)
        assert point.timestamp == T


class TestPriceSeries:
    """Tests for PriceSeries ordering."""

    def test_sorted_on_construction(self):
        series = PriceSeries.from_pairs("AAPL", [(T + timedelta(days=2), 3.0), (T, 1.0), (T + timedelta(days=1), 2.0)])
        assert series.closes == [1.0, 2.0, 3.0]
        assert len(series) == 3

    def test_empty(self):
        assert PriceSeries("AAPL").is_empty

    def test_since(self):
        series = PriceSeries.from_pairs("AAPL", [(T - timedelta(days=i), float(i)) for i in range(5)])
        assert series.since(T - timedelta(days=2)).closes == [2.0, 1.0, 0.0]
        assert series.since(T + timedelta(days=1)).is_empty


class TestWindow:
    """Tests for Window."""

    def test_start_before_end(self):
        with pytest.raises(ValueError):
            Window(T, T)

    def test_trailing(self):
        window = Window.trailing(T, timedelta(days=14))
        assert window.start == T - timedelta(days=14)
        assert str(window).startswith("[2024-02-16")

    def test_extended(self):
        window = Window.trailing(T, timedelta(days=14))
        wider = window.extended(timedelta(days=49))
        assert wider.end == window.end
        assert wider.start == T - timedelta(days=63)

    def test_offsets_normalized(self):
        east = timezone(timedelta(hours=5))
        assert ensure_utc(datetime(2024, 3, 1, 5, tzinfo=east)) == T


class TestRecord:
    """Tests for Record."""

    def test_immutable_ordered_values(self):
        record = Record(T, "AAPL", Window.trailing(T, timedelta(days=1)), (Indicator("min", 1.0), Indicator("max", 2.0)))
        assert list(record.values) == ["min", "max"]
        assert record.get("max") == 2.0
        assert record.get("sma30") is None
        with pytest.raises(TypeError):
            record.values["min"] = 5.0
        with pytest.raises(dataclasses.FrozenInstanceError):
            record.symbol = "MSFT"

    def test_status_flags(self):
        window = Window.trailing(T, timedelta(days=1))
        assert Record(T, "A", window, status=RecordStatus.FAILED).failed
        assert Record(T, "A", window, status=RecordStatus.PARTIAL).partial
        assert str(RecordStatus.OK) == "ok"
