#!/usr/bin/env python3
"""
Stock Signals Runner

Samples closing prices for a list of symbols, computes indicators and
streams one record per symbol per wave to the console and a CSV file.

Usage:
    python -m stock_signals                              # Stream default symbols every 30s
    python -m stock_signals -s AAPL,MSFT --ticks 3       # Three waves, then exit
    python -m stock_signals --from 2024-01-01 --to 2024-02-01   # One batch wave

Ctrl-C once finishes the current wave and exits; twice abandons it.
"""

import argparse
import asyncio
import logging
import signal
import sys
from contextlib import AsyncExitStack
from datetime import datetime
from typing import Mapping, Optional, Sequence

from ..config import (
    DEFAULT_SYMBOLS,
    AppConfig,
    ConfigError,
    OutputConfig,
    RetryConfig,
    SchedulerConfig,
    load_config_from_env,
    load_symbols_file,
    parse_symbols,
    parse_window,
    split_symbol_list,
)
from ..display.formatters import default_columns
from ..display.sinks import ConsoleSink, CsvSink, MultiSink, StreamSink
from ..engines.aggregator import ResultAggregator
from ..engines.calculators import default_calculators
from ..engines.data_fetcher import PriceProvider, YahooPriceProvider
from ..engines.fetcher import RetryingFetcher
from ..engines.scheduler import Clock, IntervalTicker, WaveScheduler, utc_now
from ..logging_config import configure_default_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2


# =============================================================================
# CONFIGURATION
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stock-signals",
        description="Sample stock prices and stream price indicators",
    )
    parser.add_argument(
        "--symbols",
        "-s",
        help="Comma-separated symbols, overrides --symbols-file "
        f"(default: {','.join(DEFAULT_SYMBOLS)})",
    )
    parser.add_argument("--symbols-file", help="File with symbols, comma or line separated")
    parser.add_argument(
        "--from",
        "-f",
        dest="start",
        help="Batch window start, ISO-8601 (default: --to minus the lookback)",
    )
    parser.add_argument(
        "--to", "-t", dest="end", help="Batch window end, ISO-8601 (default: now)"
    )
    parser.add_argument("--interval", type=float, help="Seconds between streaming waves (default: 30)")
    parser.add_argument("--lookback-days", type=int, help="Trailing window in days (default: 14)")
    parser.add_argument(
        "--max-concurrency", type=int, help="Simultaneous provider calls (default: 4)"
    )
    parser.add_argument("--max-attempts", type=int, help="Attempts per fetch (default: 5)")
    parser.add_argument("--sma-window", type=int, default=30, help="SMA length (default: 30)")
    parser.add_argument("--ticks", type=int, help="Stop streaming after this many waves")
    parser.add_argument("--csv", dest="csv_path", help="CSV output file (default: data.csv)")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR (default: INFO)")
    return parser


def build_config(
    args: argparse.Namespace,
    env: Optional[Mapping[str, str]] = None,
    now: Optional[datetime] = None,
) -> AppConfig:
    """
    Merge defaults, environment overrides and CLI flags (in that order).

    Raises:
        ConfigError: on any invalid value
    """
    overrides = load_config_from_env(env)

    def pick(cli_value, key: str, default):
        if cli_value is not None:
            return cli_value
        return overrides.get(key, default)

    if args.symbols is not None:
        symbols = parse_symbols(split_symbol_list(args.symbols))
    elif args.symbols_file:
        symbols = load_symbols_file(args.symbols_file)
    else:
        symbols = DEFAULT_SYMBOLS

    scheduler = SchedulerConfig(
        interval_seconds=pick(args.interval, "interval_seconds", SchedulerConfig.interval_seconds),
        lookback_days=pick(args.lookback_days, "lookback_days", SchedulerConfig.lookback_days),
        max_concurrency=pick(
            args.max_concurrency, "max_concurrency", SchedulerConfig.max_concurrency
        ),
    )
    retry = RetryConfig(
        max_attempts=pick(args.max_attempts, "max_attempts", RetryConfig.max_attempts)
    )
    output = OutputConfig(
        csv_path=pick(args.csv_path, "csv_path", OutputConfig.csv_path),
        color=not args.no_color,
    )

    if args.sma_window < 1:
        raise ConfigError(f"--sma-window must be at least 1, got {args.sma_window}")
    if args.ticks is not None and args.ticks < 1:
        raise ConfigError(f"--ticks must be at least 1, got {args.ticks}")

    window = parse_window(args.start, args.end, scheduler.lookback, now=now)
    if window is not None and args.ticks is not None:
        logger.warning("--ticks has no effect in batch mode")

    return AppConfig(
        symbols=symbols,
        window=window,
        sma_window=args.sma_window,
        max_waves=args.ticks,
        retry=retry,
        scheduler=scheduler,
        output=output,
    )


# =============================================================================
# PIPELINE
# =============================================================================


def build_sink(config: AppConfig) -> MultiSink:
    """
    Console plus CSV, fed the same records.

    The CSV file is opened here, before any wave runs.

    Raises:
        ConfigError: if the CSV file cannot be opened for appending
    """
    columns = default_columns(config.sma_window)
    sink = MultiSink(
        ConsoleSink(sys.stdout, color=config.output.color and sys.stdout.isatty(), columns=columns),
        CsvSink(config.output.csv_path, columns=columns),
    )
    try:
        sink.open()
    except OSError as e:
        sink.close()
        raise ConfigError(f"Cannot open CSV output {config.output.csv_path}: {e}") from e
    return sink


def build_scheduler(
    config: AppConfig,
    provider: PriceProvider,
    sink: StreamSink,
    clock: Clock = utc_now,
) -> WaveScheduler:
    fetcher = RetryingFetcher(provider, config.retry)
    return WaveScheduler(
        config.symbols,
        fetcher,
        default_calculators(config.sma_window),
        ResultAggregator(sink),
        max_concurrency=config.scheduler.max_concurrency,
        clock=clock,
    )


def _install_signal_handlers(scheduler: WaveScheduler) -> bool:
    """SIGINT: first stops at the wave boundary, second aborts. SIGTERM stops."""
    loop = asyncio.get_running_loop()

    def on_interrupt() -> None:
        if scheduler.stop_requested:
            scheduler.abort()
        else:
            scheduler.stop()

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
        loop.add_signal_handler(signal.SIGTERM, scheduler.stop)
    except (NotImplementedError, RuntimeError):
        # Not available on this platform or outside the main thread
        return False
    return True


def _remove_signal_handlers() -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.remove_signal_handler(sig)


async def run(
    config: AppConfig,
    provider: Optional[PriceProvider] = None,
    sink: Optional[StreamSink] = None,
    clock: Clock = utc_now,
) -> int:
    """
    Run the pipeline in batch or streaming mode.

    A provider or sink passed in is borrowed and left open; ones built
    here are closed on exit.
    """
    async with AsyncExitStack() as stack:
        if provider is None:
            provider = await stack.enter_async_context(YahooPriceProvider())
        if sink is None:
            sink = build_sink(config)
            stack.callback(sink.close)

        scheduler = build_scheduler(config, provider, sink, clock)
        if _install_signal_handlers(scheduler):
            stack.callback(_remove_signal_handlers)

        if config.batch:
            logger.info("Batch run for %d symbols over %s", len(config.symbols), config.window)
            await scheduler.run_batch(config.window)
        else:
            logger.info(
                "Streaming %d symbols every %.0fs over a %d-day window",
                len(config.symbols),
                config.scheduler.interval_seconds,
                config.scheduler.lookback_days,
            )
            ticker = IntervalTicker(config.scheduler.interval_seconds, clock=clock)
            await scheduler.run_streaming(ticker, config.scheduler.lookback, config.max_waves)

    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_default_logging(level=args.log_level, color=not args.no_color)

    try:
        config = build_config(args)
        sink = build_sink(config)
    except ConfigError as e:
        print(f"stock-signals: error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    with sink:
        try:
            return asyncio.run(run(config, sink=sink))
        except KeyboardInterrupt:
            return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
