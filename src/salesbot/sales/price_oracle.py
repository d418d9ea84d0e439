"""Native-to-USD price oracle with a time-bounded cache.

The oracle is the only state shared between concurrent sale evaluations.
An asyncio.Lock serializes refreshes: callers that queued behind an in-flight
fetch re-check freshness once they hold the lock, so one staleness transition
issues one request to the (rate-limited) quote API.

Staleness is a soft guarantee. If a refresh fails and a previous rate exists,
that rate is served and the source is left alone for ``retry_seconds``. Only a
failure with no rate at all surfaces as PriceUnavailableError.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from enum import Enum

import aiohttp

from salesbot.exceptions import PriceFetchError, PriceUnavailableError
from salesbot.logging import get_logger
from salesbot.models import PriceQuote

logger = get_logger(__name__)

DEFAULT_FRESHNESS_SECONDS = 60 * 60
DEFAULT_RETRY_SECONDS = 60.0


class OracleState(str, Enum):
    """Cache state of the oracle."""

    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"


class QuoteSource(ABC):
    """Source of the current USD-per-native rate."""

    @abstractmethod
    async def fetch_rate(self) -> Decimal:
        """Return the current rate.

        Raises:
            PriceFetchError: On transport or parse failure.
        """
        ...


class CryptoCompareQuoteSource(QuoteSource):
    """Unauthenticated JSON price endpoint, CryptoCompare by default.

    Expects a body like ``{"USD": 3012.45}``.

    Args:
        url: Full quote URL including query string.
        field: JSON key holding the rate.
        session: Optional shared aiohttp session. Created lazily otherwise.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        url: str = "https://min-api.cryptocompare.com/data/price?fsym=ETH&tsyms=USD",
        field: str = "USD",
        session: aiohttp.ClientSession | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._field = field
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch_rate(self) -> Decimal:
        logger.info("fetching_native_price", url=self._url)
        try:
            session = await self._get_session()
            async with session.get(self._url) as response:
                if response.status != 200:
                    raise PriceFetchError(f"Quote API returned HTTP {response.status}")
                body = await response.json(content_type=None)
        except PriceFetchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PriceFetchError(f"Quote API request failed: {e}") from e

        if not isinstance(body, dict) or body.get(self._field) is None:
            raise PriceFetchError(f"Quote response has no {self._field!r} field: {body!r}")
        try:
            rate = Decimal(str(body[self._field]))
        except InvalidOperation as e:
            raise PriceFetchError(f"Quote is not numeric: {body[self._field]!r}") from e
        if not rate.is_finite() or rate <= 0:
            raise PriceFetchError(f"Quote is not a positive number: {rate}")
        return rate


class PriceOracle:
    """Cached USD-per-native rate with single-flight refresh.

    Args:
        source: Where fresh quotes come from.
        freshness_seconds: Age at which a cached quote becomes stale.
        retry_seconds: After a failed refresh, how long the stale rate is
            served before the source is asked again.
        clock: Returns the current unix time. Injectable for tests.
    """

    def __init__(
        self,
        source: QuoteSource,
        freshness_seconds: float = DEFAULT_FRESHNESS_SECONDS,
        retry_seconds: float = DEFAULT_RETRY_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._source = source
        self._freshness_seconds = freshness_seconds
        self._retry_seconds = retry_seconds
        self._clock = clock
        self._quote = PriceQuote()
        self._lock = asyncio.Lock()
        self._attempts = 0
        self._last_failure_at: float | None = None

    @property
    def quote(self) -> PriceQuote:
        """A copy of the cached quote."""
        return PriceQuote(self._quote.rate_usd_per_native, self._quote.fetched_at)

    @property
    def state(self) -> OracleState:
        if self._quote.fetched_at is None:
            return OracleState.EMPTY
        if self._clock() - self._quote.fetched_at >= self._freshness_seconds:
            return OracleState.STALE
        return OracleState.FRESH

    def _in_retry_backoff(self) -> bool:
        return (
            self._last_failure_at is not None
            and self._clock() - self._last_failure_at < self._retry_seconds
        )

    async def get_rate(self) -> Decimal:
        """Return the USD-per-native rate, refreshing it when stale.

        Raises:
            PriceUnavailableError: The cache is empty and the fetch failed.
        """
        if self.state is OracleState.FRESH:
            return self._quote.rate_usd_per_native

        attempts_seen = self._attempts
        async with self._lock:
            state = self.state
            if state is OracleState.FRESH:
                return self._quote.rate_usd_per_native
            if state is OracleState.STALE and self._in_retry_backoff():
                return self._quote.rate_usd_per_native
            if state is OracleState.EMPTY and self._attempts != attempts_seen:
                # The fetch we queued behind already failed
                raise PriceUnavailableError(
                    "No native price available and the quote fetch failed"
                )

            try:
                rate = await self._source.fetch_rate()
            except PriceFetchError as e:
                self._last_failure_at = self._clock()
                if state is OracleState.EMPTY:
                    raise PriceUnavailableError(
                        "No native price available and the quote fetch failed"
                    ) from e
                logger.warning(
                    "price_refresh_failed_using_stale",
                    rate=str(self._quote.rate_usd_per_native),
                    age_seconds=round(self._clock() - (self._quote.fetched_at or 0.0)),
                    retry_in=self._retry_seconds,
                    error=str(e),
                )
                return self._quote.rate_usd_per_native
            finally:
                self._attempts += 1

            self._last_failure_at = None
            self._quote = PriceQuote(rate_usd_per_native=rate, fetched_at=self._clock())
            logger.info("native_price_updated", rate=str(rate))
            return rate
