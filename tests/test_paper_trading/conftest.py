"""Pytest fixtures for paper trading tests."""

import tempfile
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from src.data.fetchers.base import DataNotAvailableError
from src.data.models import Quote
from src.paper_trading.events import EventBus, TradeEvent
from src.paper_trading.executor import NoSlippage, OrderExecutor
from src.paper_trading.price_feed import PriceFeed
from src.paper_trading.protective import ProtectiveOrderMonitor
from src.paper_trading.storage import InMemoryLedgerBackend, LedgerStore


class FixedClock:
    """Controllable time source."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set_time(self, hour: int, minute: int = 0, second: int = 0) -> datetime:
        self.now = self.now.replace(hour=hour, minute=minute, second=second)
        return self.now


class FakeQuoteProvider:
    """In-memory asynchronous quote provider."""

    def __init__(self, quotes: dict[str, Quote] | None = None) -> None:
        self.quotes = quotes or {}
        self.requested: list[str] = []
        self.before_return = None

    async def get_quote(self, symbol: str) -> Quote:
        self.requested.append(symbol)
        if self.before_return is not None:
            self.before_return(symbol)
        if symbol not in self.quotes:
            raise DataNotAvailableError(f"No quote for {symbol}", source="Fake")
        return self.quotes[symbol]


def _make_quote(
    symbol: str,
    price: str = "100",
    change_percent: float = 1.0,
    volume: int = 5_000_000,
    range_pct: float = 2.0,
) -> Quote:
    """Build a quote whose intraday range is ``range_pct`` percent of price."""
    value = Decimal(price)
    half_range = value * Decimal(str(range_pct)) / Decimal("200")
    return Quote(
        symbol=symbol,
        price=value,
        change_percent=change_percent,
        volume=volume,
        day_high=value + half_range,
        day_low=value - half_range,
    )


@pytest.fixture
def temp_db_path() -> Path:
    """Create a temporary database path (path only, not the file)."""
    temp_dir = Path(tempfile.gettempdir())
    return temp_dir / f"test_paper_trading_{uuid.uuid4().hex}.duckdb"


@pytest.fixture
def clock() -> FixedClock:
    """Clock fixed at Monday 2025-01-06 10:00."""
    return FixedClock(datetime(2025, 1, 6, 10, 0, 0))


@pytest.fixture
def backend() -> InMemoryLedgerBackend:
    """Create an in-memory ledger backend."""
    return InMemoryLedgerBackend()


@pytest.fixture
def store(backend: InMemoryLedgerBackend, clock: FixedClock) -> LedgerStore:
    """Create an initialized in-memory ledger store."""
    ledger_store = LedgerStore(backend, clock=clock)
    ledger_store.initialize()
    return ledger_store


@pytest.fixture
def event_bus() -> EventBus:
    """Create an event bus."""
    return EventBus()


@pytest.fixture
def events(event_bus: EventBus) -> list[TradeEvent]:
    """Collect every event published on the bus."""
    received: list[TradeEvent] = []
    event_bus.subscribe(received.append)
    return received


@pytest.fixture
def executor(
    store: LedgerStore, event_bus: EventBus, clock: FixedClock
) -> OrderExecutor:
    """Create an executor without slippage."""
    return OrderExecutor(store, event_bus, NoSlippage(), clock)


@pytest.fixture
def feed(store: LedgerStore) -> PriceFeed:
    """Create a price feed on the store."""
    return PriceFeed(store)


@pytest.fixture
def monitor(
    store: LedgerStore, executor: OrderExecutor, feed: PriceFeed
) -> ProtectiveOrderMonitor:
    """Create a protective monitor subscribed to the price feed."""
    protective = ProtectiveOrderMonitor(store, executor)
    protective.attach(feed)
    return protective


@pytest.fixture
def make_quote():
    """Factory building quotes with a given price, change, volume and range."""
    return _make_quote


@pytest.fixture
def quote_provider() -> FakeQuoteProvider:
    """Create a fake quote provider with no quotes."""
    return FakeQuoteProvider()
