"""Price feed interface for the Paper Trading Engine.

External ticks enter the engine through PriceFeed.set_price, which writes the
ledger price cache and then notifies tick listeners such as the protective
order monitor.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from src.paper_trading.models import PriceEntry, normalize_symbol
from src.paper_trading.storage import LedgerStore

logger = logging.getLogger(__name__)

PriceListener = Callable[[str, Decimal], None]


class PriceFeed:
    """Single entry point for market prices."""

    def __init__(self, store: LedgerStore) -> None:
        """Initialize the price feed.

        Args:
            store: Ledger store holding the price cache.
        """
        self.store = store
        self._lock = threading.Lock()
        self._listeners: list[PriceListener] = []

    def subscribe(self, callback: PriceListener) -> Callable[[], None]:
        """Register a tick listener.

        Args:
            callback: Function called with (symbol, price) after each update.

        Returns:
            Function that removes the listener.
        """
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def set_price(
        self,
        symbol: str,
        price: Decimal | float | str,
        timestamp: datetime | None = None,
    ) -> PriceEntry:
        """Store a price and notify listeners.

        Args:
            symbol: Instrument symbol.
            price: Last traded price.
            timestamp: Price time (store clock if None).

        Returns:
            The stored price entry.

        Raises:
            ValueError: If the symbol is empty or the price is not positive.
        """
        key = normalize_symbol(symbol)
        if not key:
            raise ValueError("symbol is required")
        value = Decimal(str(price))
        if not value.is_finite() or value <= 0:
            raise ValueError(f"price must be positive, got {price}")

        entry = self.store.set_price(key, value, timestamp)

        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(key, entry.price)
            except Exception:
                logger.exception(f"Price listener failed for {key}")
        return entry

    def get_price(self, symbol: str) -> Decimal | None:
        """Return the cached price of a symbol, if any."""
        return self.store.read().last_price(symbol)
