"""
Yahoo Finance Price Provider
Fetches daily closing prices for one symbol over one window.

The provider makes exactly one HTTP attempt per call and reports failures
through the ProviderError hierarchy below. Retrying is the fetcher's job.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

import aiohttp

from .models import PriceSeries

logger = logging.getLogger(__name__)


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================


class ProviderError(Exception):
    """Base exception for price provider failures."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    """Raised when the request times out."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Request timed out after {timeout}s")


class ProviderConnectionError(ProviderError):
    """Raised when the transport fails (DNS, reset connection, ...)."""

    def __init__(self, original_error: Exception):
        self.original_error = original_error
        super().__init__(f"Connection error: {original_error}")


class ProviderRateLimitError(ProviderError):
    """Raised when rate limit (HTTP 429) is hit."""

    def __init__(self, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__("Rate limit exceeded", 429)


class ProviderServerError(ProviderError):
    """Raised on HTTP 408 and 5xx responses."""


class SymbolNotFoundError(ProviderError):
    """Raised when the provider does not know the symbol."""

    def __init__(self, symbol: str, detail: str = ""):
        self.symbol = symbol
        message = f"Symbol {symbol!r} not found"
        super().__init__(f"{message}: {detail}" if detail else message, 404)


class ProviderRequestError(ProviderError):
    """Raised on any other 4xx: the request itself is wrong."""


class ProviderResponseError(ProviderError):
    """Raised when a 200 response cannot be parsed into prices."""


# =============================================================================
# PROVIDER CAPABILITY
# =============================================================================


class PriceProvider(Protocol):
    """Anything that can return the closes for a symbol over [start, end)."""

    async def get_prices(self, symbol: str, start: datetime, end: datetime) -> PriceSeries:
        ...


@dataclass
class RequestConfig:
    """Configuration for HTTP requests."""

    timeout_total: float = 30.0  # Total request timeout in seconds
    timeout_connect: float = 10.0  # Connection timeout in seconds
    interval: str = "1d"  # Bar size requested from the chart API


DEFAULT_REQUEST_CONFIG = RequestConfig()


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def error_for_status(
    symbol: str, status: int, body: str, headers: Mapping[str, str]
) -> Optional[ProviderError]:
    """Map a non-200 HTTP status onto the provider error taxonomy."""
    if status == 200:
        return None
    if status == 429:
        return ProviderRateLimitError(_parse_retry_after(headers.get("Retry-After")))
    if status == 408 or status >= 500:
        return ProviderServerError(f"Server error {status}: {body[:200]}", status)
    if status == 404:
        return SymbolNotFoundError(symbol, body[:200])
    return ProviderRequestError(f"Request rejected with {status}: {body[:200]}", status)


def parse_chart_payload(symbol: str, payload: Any) -> PriceSeries:
    """
    Turn a v8 chart API payload into a PriceSeries.

    Uses adjusted closes when present, plain closes otherwise. Null closes
    (non-trading days inside the window) are dropped.
    """
    try:
        chart = payload["chart"]
        error = chart.get("error")
        if error:
            code = str(error.get("code", ""))
            description = str(error.get("description", ""))
            if code.lower() == "not found":
                raise SymbolNotFoundError(symbol, description)
            raise ProviderRequestError(f"{code}: {description}")

        results = chart.get("result") or []
        if not results:
            return PriceSeries(symbol)
        result = results[0]

        timestamps: List[int] = result.get("timestamp") or []
        if not timestamps:
            return PriceSeries(symbol)

        indicators = result.get("indicators") or {}
        adjclose = indicators.get("adjclose") or []
        if adjclose and adjclose[0].get("adjclose"):
            closes = adjclose[0]["adjclose"]
        else:
            closes = (indicators.get("quote") or [{}])[0].get("close") or []
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise ProviderResponseError(f"Malformed chart payload for {symbol}: {e!r}") from e

    if len(closes) != len(timestamps):
        raise ProviderResponseError(
            f"Malformed chart payload for {symbol}: "
            f"{len(timestamps)} timestamps vs {len(closes)} closes"
        )

    pairs: List[Tuple[datetime, float]] = []
    for ts, close in zip(timestamps, closes):
        if close is None:
            continue
        try:
            price = float(close)
        except (TypeError, ValueError) as e:
            raise ProviderResponseError(f"Non-numeric close for {symbol}: {close!r}") from e
        if not math.isfinite(price) or price < 0:
            logger.debug("Dropping invalid close %r for %s at %s", close, symbol, ts)
            continue
        try:
            timestamp = datetime.fromtimestamp(int(ts), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise ProviderResponseError(f"Bad timestamp for {symbol}: {ts!r}") from e
        pairs.append((timestamp, price))

    return PriceSeries.from_pairs(symbol, pairs)


class YahooPriceProvider:
    """
    Fetches daily closes from the Yahoo Finance chart endpoint.

    Usage:
        async with YahooPriceProvider() as provider:
            series = await provider.get_prices("AAPL", start, end)
    """

    CHART_BASE = "https://query1.finance.yahoo.com/v8/finance/chart"
    HEADERS = {"User-Agent": "Mozilla/5.0 (compatible; stock-signals)"}

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        request_config: Optional[RequestConfig] = None,
    ):
        self._session = session
        self._owns_session = session is None
        self._config = request_config or DEFAULT_REQUEST_CONFIG

    async def __aenter__(self):
        if self._session is None:
            timeout = aiohttp.ClientTimeout(
                total=self._config.timeout_total, connect=self._config.timeout_connect
            )
            self._session = aiohttp.ClientSession(timeout=timeout, headers=self.HEADERS)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def get_prices(self, symbol: str, start: datetime, end: datetime) -> PriceSeries:
        """
        Fetch closes for symbol in [start, end).

        Raises:
            ProviderError: one of the subclasses above, never a raw aiohttp error
        """
        if self._session is None:
            raise RuntimeError(
                "Session not initialized. Use 'async with YahooPriceProvider()' "
                "or pass a session to __init__."
            )

        url = f"{self.CHART_BASE}/{symbol}"
        params: Dict[str, str] = {
            "period1": str(int(start.timestamp())),
            "period2": str(int(end.timestamp())),
            "interval": self._config.interval,
            "events": "history",
            "includeAdjustedClose": "true",
        }

        logger.debug("GET %s params=%s", url, params)
        try:
            async with self._session.get(url, params=params) as response:
                if response.status != 200:
                    body = await response.text()
                    error = error_for_status(symbol, response.status, body, response.headers)
                    raise error
                payload = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(self._config.timeout_total) from e
        except aiohttp.ClientError as e:
            raise ProviderConnectionError(e) from e
        except ValueError as e:
            raise ProviderResponseError(f"Invalid JSON for {symbol}: {e}") from e

        return parse_chart_payload(symbol, payload)
