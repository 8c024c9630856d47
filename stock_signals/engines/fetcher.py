"""
Retrying price fetcher.

Wraps one provider call in a bounded retry loop with exponential backoff.
Transient provider failures are retried; permanent ones fail at once.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Type

from ..config import RetryConfig
from ..utils.retry import ExponentialBackoff, RetryState
from .data_fetcher import (
    PriceProvider,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
    ProviderRequestError,
    ProviderResponseError,
    ProviderServerError,
    ProviderTimeoutError,
    SymbolNotFoundError,
)
from .models import PriceSeries, Window

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
RetryHook = Callable[[str, RetryState], None]


class ErrorClass(Enum):
    """Whether another attempt could help."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"


# Resolved along the exception's MRO, so every ProviderError subclass lands
# on exactly one entry; the ProviderError row catches anything unlisted.
ERROR_CLASSIFICATION: Dict[Type[ProviderError], ErrorClass] = {
    ProviderTimeoutError: ErrorClass.TRANSIENT,
    ProviderConnectionError: ErrorClass.TRANSIENT,
    ProviderRateLimitError: ErrorClass.TRANSIENT,
    ProviderServerError: ErrorClass.TRANSIENT,
    SymbolNotFoundError: ErrorClass.PERMANENT,
    ProviderRequestError: ErrorClass.PERMANENT,
    ProviderResponseError: ErrorClass.PERMANENT,
    ProviderError: ErrorClass.PERMANENT,
}


def classify_error(error: ProviderError) -> ErrorClass:
    """Look up the retry class of a provider error."""
    for klass in type(error).__mro__:
        if klass in ERROR_CLASSIFICATION:
            return ERROR_CLASSIFICATION[klass]
    raise TypeError(f"Not a provider error: {error!r}")


# =============================================================================
# FETCH ERRORS
# =============================================================================


class FetchError(Exception):
    """Terminal failure of one symbol's fetch in one wave."""

    def __init__(self, symbol: str, attempts: int, last_error: ProviderError):
        self.symbol = symbol
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(self._describe())

    def _describe(self) -> str:
        return f"{self.symbol}: {self.last_error}"


class FetchExhausted(FetchError):
    """Retry budget spent on transient failures."""

    def _describe(self) -> str:
        return f"{self.symbol}: gave up after {self.attempts} attempts: {self.last_error}"


class FetchRejected(FetchError):
    """Permanent failure; no retry was attempted."""

    def _describe(self) -> str:
        return f"{self.symbol}: rejected: {self.last_error}"


# =============================================================================
# FETCHER
# =============================================================================


class RetryingFetcher:
    """
    Obtains a PriceSeries for one symbol, retrying transient failures.

    Each fetch() call keeps its own RetryState, so one fetcher can serve
    many concurrent work units.

    Args:
        provider: the price source being protected
        config: retry budget and backoff schedule
        sleep: awaitable delay (inject a fake in tests)
        on_retry: called with (symbol, state) before each backoff wait
    """

    def __init__(
        self,
        provider: PriceProvider,
        config: Optional[RetryConfig] = None,
        sleep: Sleep = asyncio.sleep,
        on_retry: Optional[RetryHook] = None,
    ):
        self._provider = provider
        self.config = config or RetryConfig()
        self._backoff = ExponentialBackoff(
            base=self.config.base_delay,
            multiplier=self.config.multiplier,
            max_delay=self.config.max_delay,
            jitter=self.config.jitter,
        )
        self._sleep = sleep
        self._on_retry = on_retry

    async def fetch(self, symbol: str, window: Window) -> PriceSeries:
        """
        Fetch closes for symbol over window.

        Returns:
            The (possibly empty) series

        Raises:
            FetchRejected: the provider failed permanently
            FetchExhausted: every attempt failed transiently
        """
        state = RetryState()
        max_attempts = self.config.max_attempts

        while True:
            state.attempt += 1
            try:
                series = await self._provider.get_prices(symbol, window.start, window.end)
            except ProviderError as e:
                state.last_error = e
            else:
                if state.attempt > 1:
                    logger.info(
                        "Fetched %s on attempt %d/%d after %.2fs of backoff",
                        symbol,
                        state.attempt,
                        max_attempts,
                        state.total_delay,
                    )
                return series

            error = state.last_error
            if classify_error(error) is ErrorClass.PERMANENT:
                logger.error("Fetch for %s failed permanently: %s", symbol, error)
                raise FetchRejected(symbol, state.attempt, error)

            if state.attempt >= max_attempts:
                logger.error(
                    "Fetch for %s failed after %d attempts. Last error: %s",
                    symbol,
                    state.attempt,
                    error,
                )
                raise FetchExhausted(symbol, state.attempt, error)

            floor = error.retry_after if isinstance(error, ProviderRateLimitError) else None
            state.next_delay = self._backoff.calculate(state.attempt - 1, floor=floor)
            logger.warning(
                "Attempt %d/%d failed for %s: %s. Retrying in %.2fs",
                state.attempt,
                max_attempts,
                symbol,
                error,
                state.next_delay,
            )
            if self._on_retry:
                self._on_retry(symbol, state)

            await self._sleep(state.next_delay)
            state.total_delay += state.next_delay
