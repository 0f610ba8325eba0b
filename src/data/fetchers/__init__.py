"""Data fetchers for market data sources."""

from src.data.fetchers.base import (
    BaseFetcher,
    DataNotAvailableError,
    FetchError,
    RateLimitError,
)
from src.data.fetchers.yahoo import YahooQuoteFetcher, YahooQuoteFetcherError

__all__ = [
    "BaseFetcher",
    "DataNotAvailableError",
    "FetchError",
    "RateLimitError",
    "YahooQuoteFetcher",
    "YahooQuoteFetcherError",
]
