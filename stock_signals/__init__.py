"""Stock price sampling and indicator streaming.

Public symbols are exposed lazily so importing `stock_signals` does not
eagerly import the network dependency (`aiohttp` via the price provider).
"""

from __future__ import annotations

import importlib
from typing import Dict, Tuple

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "AppConfig",
    "ConfigError",
    "OutputConfig",
    "RetryConfig",
    "SchedulerConfig",
    "DEFAULT_SYMBOLS",
    # Data model
    "PricePoint",
    "PriceSeries",
    "Window",
    "Indicator",
    "PriceChange",
    "Record",
    "RecordStatus",
    # Calculators
    "SignalCalculator",
    "MinPrice",
    "MaxPrice",
    "LastPrice",
    "PriceDifference",
    "WindowedSMA",
    "default_calculators",
    "compute_indicators",
    # Provider
    "PriceProvider",
    "YahooPriceProvider",
    "RequestConfig",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderConnectionError",
    "ProviderRateLimitError",
    "ProviderServerError",
    "SymbolNotFoundError",
    "ProviderRequestError",
    "ProviderResponseError",
    # Fetcher
    "RetryingFetcher",
    "ErrorClass",
    "classify_error",
    "FetchError",
    "FetchExhausted",
    "FetchRejected",
    # Aggregation and scheduling
    "ResultAggregator",
    "SymbolOutcome",
    "WaveResult",
    "WaveScheduler",
    "SchedulerState",
    "StateTransition",
    "IntervalTicker",
    # Sinks
    "StreamSink",
    "ConsoleSink",
    "CsvSink",
    "MultiSink",
]


_EXPORT_TO_SOURCE: Dict[str, Tuple[str, str]] = {}


def _register(module: str, names: list[str]) -> None:
    for name in names:
        _EXPORT_TO_SOURCE[name] = (module, name)


_register(
    ".config",
    ["AppConfig", "ConfigError", "OutputConfig", "RetryConfig", "SchedulerConfig", "DEFAULT_SYMBOLS"],
)

_register(
    ".engines.models",
    ["PricePoint", "PriceSeries", "Window", "Indicator", "PriceChange", "Record", "RecordStatus"],
)

_register(
    ".engines.calculators",
    [
        "SignalCalculator",
        "MinPrice",
        "MaxPrice",
        "LastPrice",
        "PriceDifference",
        "WindowedSMA",
        "default_calculators",
        "compute_indicators",
    ],
)

_register(
    ".engines.data_fetcher",
    [
        "PriceProvider",
        "YahooPriceProvider",
        "RequestConfig",
        "ProviderError",
        "ProviderTimeoutError",
        "ProviderConnectionError",
        "ProviderRateLimitError",
        "ProviderServerError",
        "SymbolNotFoundError",
        "ProviderRequestError",
        "ProviderResponseError",
    ],
)

_register(
    ".engines.fetcher",
    [
        "RetryingFetcher",
        "ErrorClass",
        "classify_error",
        "FetchError",
        "FetchExhausted",
        "FetchRejected",
    ],
)

_register(".engines.aggregator", ["ResultAggregator", "SymbolOutcome", "WaveResult"])

_register(
    ".engines.scheduler",
    ["WaveScheduler", "SchedulerState", "StateTransition", "IntervalTicker"],
)

_register(".display.sinks", ["StreamSink", "ConsoleSink", "CsvSink", "MultiSink"])


_missing_exports = [name for name in __all__ if name not in _EXPORT_TO_SOURCE]
if _missing_exports:
    raise RuntimeError(f"Lazy export map incomplete: {_missing_exports}")


def __getattr__(name: str):
    if name not in _EXPORT_TO_SOURCE:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_name, symbol_name = _EXPORT_TO_SOURCE[name]
    module = importlib.import_module(module_name, __name__)
    value = getattr(module, symbol_name)

    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
