"""Base fetcher abstract class for data sources."""

from abc import ABC, abstractmethod

from src.data.models import Quote


class FetchError(Exception):
    """Base exception for data fetching errors."""

    def __init__(self, message: str, source: str | None = None) -> None:
        """Initialize fetch error.

        Args:
            message: Error description
            source: Data source name (e.g., 'Yahoo Finance')
        """
        self.source = source
        super().__init__(f"[{source}] {message}" if source else message)


class RateLimitError(FetchError):
    """Exception raised when rate limit is exceeded."""

    pass


class DataNotAvailableError(FetchError):
    """Exception raised when requested data is not available."""

    pass


class BaseFetcher(ABC):
    """Abstract base class for quote fetchers.

    Defines the interface that all quote fetchers must implement.
    """

    @abstractmethod
    def validate_connection(self) -> bool:
        """Validate that the connection to the data source is working.

        Returns:
            True if connection is valid, False otherwise.
        """
        pass

    @abstractmethod
    def fetch_quote(self, symbol: str) -> Quote:
        """Fetch the latest quote of a symbol.

        Args:
            symbol: Ticker symbol

        Returns:
            Latest quote

        Raises:
            FetchError: If the quote cannot be fetched
        """
        pass
