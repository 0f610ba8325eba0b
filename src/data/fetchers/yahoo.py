"""Yahoo Finance fetcher for live quotes."""

import asyncio
import logging
import time
from decimal import Decimal

import pandas as pd
import yfinance as yf
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.data.fetchers.base import (
    BaseFetcher,
    DataNotAvailableError,
    FetchError,
    RateLimitError,
)
from src.data.models import Quote

logger = logging.getLogger(__name__)


class YahooQuoteFetcherError(FetchError):
    """Custom exception for Yahoo Finance fetcher errors."""

    pass


def _to_price(value: float) -> Decimal:
    return Decimal(str(round(float(value), 4)))


class YahooQuoteFetcher(BaseFetcher):
    """Fetcher for Yahoo Finance quotes.

    The quote is derived from the last two daily bars: the last close is the
    price, the bar before it gives the previous close, and the last bar's
    high, low and volume describe the current session. NSE symbols use the
    ``.NS`` suffix (e.g. RELIANCE.NS).

    Rate limiting: Yahoo Finance has undocumented rate limits. This
    implementation includes exponential backoff and configurable delays
    between requests.
    """

    def __init__(
        self, delay_between_requests: float = 0.5, max_retries: int = 3
    ) -> None:
        """Initialize the Yahoo Finance fetcher.

        Args:
            delay_between_requests: Delay in seconds between API requests
                to respect rate limits (default: 0.5s)
            max_retries: Maximum number of retry attempts for rate-limited
                requests (default: 3)
        """
        self._delay = delay_between_requests
        self._max_retries = max_retries
        self._last_request_time: float = 0.0

    def validate_connection(self) -> bool:
        """Validate that the connection to Yahoo Finance is working.

        Returns:
            True if connection is valid, False otherwise.
        """
        try:
            data = yf.Ticker("SPY").history(period="1d")
            return not data.empty
        except Exception:
            return False

    def _rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        current_time = time.time()
        time_since_last_request = current_time - self._last_request_time

        if time_since_last_request < self._delay:
            time.sleep(self._delay - time_since_last_request)

        self._last_request_time = time.time()

    def _fetch_recent_bars(self, symbol: str) -> pd.DataFrame:
        """Fetch the last few daily bars, retrying on rate limiting."""
        fetch = retry(
            retry=retry_if_exception_type(RateLimitError),
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=10),
        )(self._fetch_recent_bars_once)
        return fetch(symbol)

    def _fetch_recent_bars_once(self, symbol: str) -> pd.DataFrame:
        """Fetch recent daily bars for a single ticker.

        Args:
            symbol: Ticker symbol to fetch

        Returns:
            DataFrame with OHLCV data

        Raises:
            YahooQuoteFetcherError: If fetch fails
            RateLimitError: If rate limit is exceeded
            DataNotAvailableError: If Yahoo returns no bars
        """
        self._rate_limit()

        try:
            data = yf.Ticker(symbol).history(period="5d", auto_adjust=False)

            if data.empty:
                raise DataNotAvailableError(
                    f"No recent data available for {symbol}",
                    source="Yahoo Finance",
                )

            return data

        except FetchError:
            raise
        except Exception as e:
            error_msg = str(e).lower()
            if "429" in error_msg or "rate limit" in error_msg:
                raise RateLimitError(
                    f"Rate limit exceeded for {symbol}", source="Yahoo Finance"
                ) from e

            raise YahooQuoteFetcherError(
                f"Failed to fetch data for {symbol}: {e!s}",
                source="Yahoo Finance",
            ) from e

    def fetch_quote(self, symbol: str) -> Quote:
        """Fetch the latest quote of a symbol.

        Args:
            symbol: Ticker symbol

        Returns:
            Latest quote

        Raises:
            YahooQuoteFetcherError: If fetch fails or retries are exhausted
            DataNotAvailableError: If no usable bar is available
        """
        try:
            df = self._fetch_recent_bars(symbol)
        except RetryError as e:
            raise YahooQuoteFetcherError(
                f"Max retries exceeded for {symbol}", source="Yahoo Finance"
            ) from e

        df = df.dropna(subset=["Close"])
        if df.empty:
            raise DataNotAvailableError(
                f"No closing price available for {symbol}", source="Yahoo Finance"
            )

        last = df.iloc[-1]
        price = _to_price(last["Close"])
        previous_close = _to_price(df.iloc[-2]["Close"]) if len(df) > 1 else None
        change_percent = (
            float((price - previous_close) / previous_close * 100)
            if previous_close
            else 0.0
        )

        timestamp = df.index[-1]
        quote = Quote(
            symbol=symbol,
            price=price,
            previous_close=previous_close,
            change_percent=change_percent,
            volume=int(last["Volume"]) if not pd.isna(last["Volume"]) else 0,
            day_high=_to_price(last["High"]) if not pd.isna(last["High"]) else None,
            day_low=_to_price(last["Low"]) if not pd.isna(last["Low"]) else None,
            timestamp=(
                timestamp.to_pydatetime()
                if isinstance(timestamp, pd.Timestamp)
                else pd.Timestamp.now().to_pydatetime()
            ),
        )
        logger.debug(f"Quote {symbol}: {quote.price} ({quote.change_percent:+.2f}%)")
        return quote

    async def get_quote(self, symbol: str) -> Quote:
        """Fetch a quote without blocking the event loop."""
        return await asyncio.to_thread(self.fetch_quote, symbol)
