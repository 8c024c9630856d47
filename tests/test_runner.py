"""
Tests for the command-line runner and the end-to-end pipeline.
"""

import csv
import io
from datetime import datetime, timedelta, timezone

import pytest

from stock_signals.apps.runner import (
    EXIT_CONFIG_ERROR,
    build_config,
    build_parser,
    build_sink,
    main,
    run,
)
from stock_signals.config import DEFAULT_SYMBOLS, AppConfig, ConfigError, OutputConfig
from stock_signals.display.formatters import default_columns, header_cells, record_cells
from stock_signals.display.sinks import ConsoleSink, CsvSink, MultiSink
from stock_signals.engines.models import Window

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def config_for(argv, env=None):
    return build_config(build_parser().parse_args(argv), env=env or {}, now=NOW)


class TestBuildConfig:
    """Tests for merging defaults, environment and flags."""

    def test_defaults_stream(self):
        config = config_for([])
        assert config.symbols == DEFAULT_SYMBOLS
        assert not config.batch
        assert config.scheduler.interval_seconds == 30.0
        assert config.scheduler.max_concurrency == 4
        assert config.retry.max_attempts == 5
        assert config.output.csv_path == "data.csv"
        assert config.max_waves is None

    def test_symbols_flag_overrides_file(self, tmp_path):
        path = tmp_path / "symbols.txt"
        path.write_text("UBER\n", encoding="utf-8")
        config = config_for(["--symbols", "msft,aapl,MSFT", "--symbols-file", str(path)])
        assert config.symbols == ("MSFT", "AAPL")

    def test_symbols_file(self, tmp_path):
        path = tmp_path / "symbols.txt"
        path.write_text("UBER, goog\n", encoding="utf-8")
        assert config_for(["--symbols-file", str(path)]).symbols == ("UBER", "GOOG")

    def test_batch_window(self):
        config = config_for(["--from", "2024-01-01", "--to", "2024-02-01"])
        assert config.batch
        assert config.window == Window(
            datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 2, 1, tzinfo=timezone.utc)
        )

    def test_from_only_runs_until_now(self):
        config = config_for(["-f", "2024-02-20"])
        assert config.window.end == NOW

    def test_to_only_uses_lookback(self):
        config = config_for(["-t", "2024-03-01", "--lookback-days", "7"])
        assert config.window.start == datetime(2024, 2, 23, tzinfo=timezone.utc)

    def test_env_then_cli(self):
        env = {"STOCK_SIGNALS_INTERVAL": "10", "STOCK_SIGNALS_MAX_CONCURRENCY": "2", "STOCK_SIGNALS_CSV_PATH": "env.csv"}
        config = config_for(["--max-concurrency", "8"], env=env)
        assert config.scheduler.interval_seconds == 10.0
        assert config.scheduler.max_concurrency == 8
        assert config.output.csv_path == "env.csv"

    def test_ticks_and_sma(self):
        config = config_for(["--ticks", "3", "--sma-window", "10", "--no-color"])
        assert config.max_waves == 3
        assert config.sma_window == 10
        assert config.output.color is False

    @pytest.mark.parametrize(
        "argv",
        [
            ["--symbols", " , "],
            ["--from", "2024-02-01", "--to", "2024-01-01"],
            ["--interval", "0"],
            ["--max-attempts", "0"],
            ["--max-concurrency", "0"],
            ["--sma-window", "0"],
            ["--ticks", "0"],
            ["--from", "not-a-date"],
        ],
    )
    def test_invalid(self, argv):
        with pytest.raises(ConfigError):
            config_for(argv)


class TestMain:
    """Tests for process exit codes."""

    def test_config_error_exit_code(self, capsys):
        assert main(["--symbols", ",", "--log-level", "ERROR"]) == EXIT_CONFIG_ERROR
        assert "Symbol list is empty" in capsys.readouterr().err

    def test_invalid_range_exit_code(self):
        argv = ["--from", "2024-02-01", "--to", "2024-01-01", "--log-level", "ERROR"]
        assert main(argv) == EXIT_CONFIG_ERROR

    def test_missing_csv_directory_exit_code(self, tmp_path, capsys):
        """An unwritable CSV path is a configuration error reported before any output."""
        csv_path = tmp_path / "nope" / "data.csv"
        assert main(["--csv", str(csv_path), "--log-level", "ERROR"]) == EXIT_CONFIG_ERROR
        captured = capsys.readouterr()
        assert "Cannot open CSV output" in captured.err
        assert captured.out == ""
        assert not csv_path.parent.exists()

    def test_argparse_errors_exit_2(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["--interval", "soon"])
        assert exc_info.value.code == 2


class TestEndToEnd:
    """Full pipeline with an in-memory provider."""

    @pytest.mark.asyncio
    async def test_one_tick_three_symbols_both_sinks(self, make_provider, fixed_closes, sink, tmp_path):
        """One streaming tick gives three matching records in console and CSV."""
        csv_path = tmp_path / "data.csv"
        config = AppConfig(
            symbols=("AAPL", "MSFT", "GOOG"),
            max_waves=1,
            output=OutputConfig(csv_path=str(csv_path), color=False),
        )
        console_stream = io.StringIO()
        console = ConsoleSink(console_stream, color=False)
        csv_sink = CsvSink(str(csv_path))

        with MultiSink(sink, console, csv_sink) as multi:
            exit_code = await run(config, provider=make_provider(fixed_closes), sink=multi)

        assert exit_code == 0
        assert sink.symbols == ["AAPL", "MSFT", "GOOG"]

        columns = default_columns()
        rows = list(csv.reader(csv_path.read_text(encoding="utf-8").splitlines()))
        assert rows[0] == header_cells(columns)
        assert rows[1:] == [record_cells(r, columns) for r in sink.records]

        console_lines = console_stream.getvalue().splitlines()
        assert len(console_lines) == 4
        assert console_lines[1:] == [console.render(r) for r in sink.records]
        for line, row in zip(console_lines[1:], rows[1:]):
            assert row[1] in line
            assert row[2] in line

        wave_at = sink.records[0].wave_at
        assert all(r.wave_at == wave_at for r in sink.records)
        assert sink.records[0].window.end - sink.records[0].window.start == timedelta(days=14)

    @pytest.mark.asyncio
    async def test_batch_run(self, make_provider, fixed_closes, sink):
        window = Window(datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 2, 1, tzinfo=timezone.utc))
        config = AppConfig(symbols=("AAPL", "ZZZZ"), window=window)

        exit_code = await run(config, provider=make_provider(fixed_closes), sink=sink)

        assert exit_code == 0
        assert [r.window for r in sink.records] == [window, window]
        assert [r.failed for r in sink.records] == [False, True]
        assert not sink.closed

    @pytest.mark.asyncio
    async def test_default_config_fills_sma_column(self, make_provider, sink, tmp_path):
        """With default settings every row of a streaming wave carries the 30-day average."""
        csv_path = tmp_path / "data.csv"
        config = config_for(["--ticks", "1", "--csv", str(csv_path), "--no-color"])
        closes = [100.0 + i for i in range(40)]
        provider = make_provider({symbol: closes for symbol in DEFAULT_SYMBOLS})

        with MultiSink(sink, CsvSink(str(csv_path))) as multi:
            await run(config, provider=provider, sink=multi)

        expected = sum(closes[-30:]) / 30
        assert [r.get("sma30") for r in sink.records] == [pytest.approx(expected)] * len(DEFAULT_SYMBOLS)
        rows = list(csv.reader(csv_path.read_text(encoding="utf-8").splitlines()))
        assert rows[0][-1] == "30d avg"
        assert [row[-1] for row in rows[1:]] == [f"${expected:.2f}"] * len(DEFAULT_SYMBOLS)


class TestBuildSink:
    """Tests for sink construction."""

    def test_opens_csv_up_front(self, tmp_path):
        csv_path = tmp_path / "data.csv"
        config = AppConfig(output=OutputConfig(csv_path=str(csv_path), color=False))
        with build_sink(config):
            assert csv_path.read_text(encoding="utf-8").splitlines() == [",".join(header_cells(default_columns()))]

    def test_missing_directory_is_config_error(self, tmp_path):
        config = AppConfig(output=OutputConfig(csv_path=str(tmp_path / "nope" / "data.csv")))
        with pytest.raises(ConfigError, match="Cannot open CSV output"):
            build_sink(config)
