"""
Configuration Module
Centralizes tunable parameters, symbol list handling and window parsing.

Every problem found here is a ConfigError: it is reported before any
fetching starts and the process does not run.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .engines.models import Window, ensure_utc

DEFAULT_SYMBOLS: Tuple[str, ...] = ("AAPL", "MSFT", "UBER", "GOOG")

ENV_PREFIX = "STOCK_SIGNALS_"


class ConfigError(Exception):
    """Invalid configuration: bad symbol list, bad window, bad numbers."""


# =============================================================================
# CONFIG DATACLASSES
# =============================================================================


@dataclass
class RetryConfig:
    """Retry policy for provider calls."""

    max_attempts: int = 5  # Includes the initial call
    base_delay: float = 1.0  # Delay before the first retry (seconds)
    multiplier: float = 2.0  # Doubling schedule
    max_delay: float = 30.0  # Cap on any single delay
    jitter: float = 0.1  # Up to +10% random extra per delay

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigError(f"max_attempts must be >= 1, got {self.max_attempts}")


@dataclass
class SchedulerConfig:
    """Wave scheduling parameters."""

    interval_seconds: float = 30.0  # Streaming tick period
    lookback_days: int = 14  # Trailing window per streaming tick
    max_concurrency: int = 4  # Simultaneous provider calls per wave

    def __post_init__(self):
        if self.interval_seconds <= 0:
            raise ConfigError(f"interval must be positive, got {self.interval_seconds}")
        if self.lookback_days < 1:
            raise ConfigError(f"lookback must be at least one day, got {self.lookback_days}")
        if self.max_concurrency < 1:
            raise ConfigError(f"max_concurrency must be >= 1, got {self.max_concurrency}")

    @property
    def lookback(self) -> timedelta:
        return timedelta(days=self.lookback_days)


@dataclass
class OutputConfig:
    """Sink settings."""

    csv_path: str = "data.csv"
    color: bool = True


@dataclass
class AppConfig:
    """Everything the runner needs to build and drive the pipeline."""

    symbols: Tuple[str, ...] = DEFAULT_SYMBOLS
    window: Optional[Window] = None  # Set => batch mode
    sma_window: int = 30
    max_waves: Optional[int] = None  # Streaming only; None => until stopped
    retry: RetryConfig = field(default_factory=RetryConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @property
    def batch(self) -> bool:
        return self.window is not None


# =============================================================================
# SYMBOLS
# =============================================================================


def parse_symbol(token: str) -> str:
    """Normalize one symbol token (trimmed, upper-case, non-empty)."""
    symbol = token.strip().upper()
    if not symbol:
        raise ConfigError("Empty symbol token")
    if any(ch.isspace() or ch == "," for ch in symbol):
        raise ConfigError(f"Invalid symbol token: {token!r}")
    return symbol


def parse_symbols(tokens: Iterable[str]) -> Tuple[str, ...]:
    """
    Normalize and deduplicate symbols, keeping first occurrence order.

    Raises:
        ConfigError: if a token is invalid or the resulting list is empty
    """
    seen: Dict[str, None] = {}
    for token in tokens:
        seen.setdefault(parse_symbol(token), None)
    if not seen:
        raise ConfigError("Symbol list is empty")
    return tuple(seen)


def split_symbol_list(text: str) -> List[str]:
    """Split a comma-separated symbol string, ignoring blank entries."""
    return [part for part in text.split(",") if part.strip()]


def load_symbols_file(path: str) -> Tuple[str, ...]:
    """
    Load symbols from a text file.

    One or more comma-separated symbols per line; '#' starts a comment;
    blank lines are ignored.
    """
    file_path = Path(path)
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read symbols file {path}: {e}") from e

    tokens: List[str] = []
    for line in text.splitlines():
        content = line.split("#", 1)[0]
        tokens.extend(split_symbol_list(content))
    return parse_symbols(tokens)


# =============================================================================
# WINDOWS
# =============================================================================


def parse_timestamp(text: str) -> datetime:
    """Parse an ISO-8601 date or datetime; naive values are taken as UTC."""
    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise ConfigError(f"Invalid date/time {text!r}: expected ISO-8601") from e
    return ensure_utc(parsed)


def parse_window(
    start: Optional[str],
    end: Optional[str],
    lookback: timedelta,
    now: Optional[datetime] = None,
) -> Optional[Window]:
    """
    Build the batch window from optional --from/--to values.

    Returns None when neither is given (streaming mode). A missing end means
    now; a missing start means end - lookback.
    """
    if start is None and end is None:
        return None

    end_at = parse_timestamp(end) if end is not None else ensure_utc(now or datetime.now(timezone.utc))
    start_at = parse_timestamp(start) if start is not None else end_at - lookback

    try:
        return Window(start_at, end_at)
    except ValueError as e:
        raise ConfigError(f"Invalid date range: {e}") from e


# =============================================================================
# ENVIRONMENT
# =============================================================================


def _env_number(env: Mapping[str, str], key: str, kind: type) -> Optional[float]:
    raw = env.get(ENV_PREFIX + key)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = kind(raw)
    except ValueError as e:
        raise ConfigError(f"{ENV_PREFIX}{key} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{ENV_PREFIX}{key} must be positive, got {raw!r}")
    return value


def load_config_from_env(env: Optional[Mapping[str, str]] = None) -> Dict[str, object]:
    """
    Read configuration overrides from environment variables.

    - STOCK_SIGNALS_INTERVAL: streaming period in seconds
    - STOCK_SIGNALS_LOOKBACK_DAYS: trailing window length
    - STOCK_SIGNALS_MAX_CONCURRENCY: concurrent provider calls
    - STOCK_SIGNALS_MAX_ATTEMPTS: retry budget per fetch
    - STOCK_SIGNALS_CSV_PATH: CSV output file
    """
    env = os.environ if env is None else env
    overrides: Dict[str, object] = {}

    interval = _env_number(env, "INTERVAL", float)
    if interval is not None:
        overrides["interval_seconds"] = interval
    lookback = _env_number(env, "LOOKBACK_DAYS", int)
    if lookback is not None:
        overrides["lookback_days"] = lookback
    concurrency = _env_number(env, "MAX_CONCURRENCY", int)
    if concurrency is not None:
        overrides["max_concurrency"] = concurrency
    attempts = _env_number(env, "MAX_ATTEMPTS", int)
    if attempts is not None:
        overrides["max_attempts"] = attempts

    csv_path = env.get(ENV_PREFIX + "CSV_PATH")
    if csv_path:
        overrides["csv_path"] = csv_path

    return overrides
