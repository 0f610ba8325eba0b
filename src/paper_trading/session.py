"""Paper Trading Session Manager.

This module provides the main orchestrator for paper trading, wiring the
ledger store, order executor, price feed, protective order monitor, event bus
and automated strategy scheduler around one ledger.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from pathlib import Path

from src.data.fetchers.yahoo import YahooQuoteFetcher
from src.paper_trading.automation import (
    AutoTradingScheduler,
    QuoteProvider,
    SchedulerIntervals,
)
from src.paper_trading.events import EventBus
from src.paper_trading.executor import OrderExecutor, SlippageModel
from src.paper_trading.models import (
    AutoTradingConfig,
    AutoTradingState,
    EngineConfig,
    LedgerState,
    OrderResult,
    OrderSide,
    PerformanceSummary,
    PriceEntry,
    ProductType,
    normalize_symbol,
)
from src.paper_trading.performance import PerformanceTracker
from src.paper_trading.price_feed import PriceFeed
from src.paper_trading.protective import ProtectiveOrderMonitor
from src.paper_trading.storage import DuckDBLedgerBackend, LedgerStore

logger = logging.getLogger(__name__)


class PaperTradingSession:
    """Main orchestrator for paper trading simulation.

    Example:
        ```python
        session = PaperTradingSession.open("data/paper_trading.duckdb")

        session.set_price("RELIANCE.NS", Decimal("2850.50"))
        result = session.buy("RELIANCE.NS", quantity=Decimal("10"))

        summary = session.get_performance_summary()
        ```
    """

    def __init__(
        self,
        store: LedgerStore,
        slippage_model: SlippageModel | None = None,
        quote_provider: QuoteProvider | None = None,
        clock: Callable[[], datetime] = datetime.now,
        intervals: SchedulerIntervals | None = None,
    ) -> None:
        """Initialize paper trading session.

        Args:
            store: Ledger store to operate on.
            slippage_model: Slippage model (random within the configured
                maximum if None).
            quote_provider: Live quote source for automated sessions
                (Yahoo Finance if None).
            clock: Time source shared by all components.
            intervals: Polling intervals of the automated session.
        """
        self.store = store
        self.store.initialize()

        self.event_bus = EventBus()
        self.executor = OrderExecutor(
            store, event_bus=self.event_bus, slippage_model=slippage_model, clock=clock
        )
        self.price_feed = PriceFeed(store)
        self.monitor = ProtectiveOrderMonitor(store, self.executor, self.event_bus)
        self._detach_monitor = self.monitor.attach(self.price_feed)
        self.scheduler = AutoTradingScheduler(
            store,
            self.executor,
            self.price_feed,
            quote_provider or YahooQuoteFetcher(),
            monitor=self.monitor,
            clock=clock,
            intervals=intervals,
        )

    @classmethod
    def open(
        cls,
        db_path: str | Path = "data/paper_trading.duckdb",
        ledger_id: str = "default",
        config: EngineConfig | None = None,
        **kwargs,
    ) -> "PaperTradingSession":
        """Open (or create) a ledger persisted in DuckDB.

        Args:
            db_path: Path to DuckDB database.
            ledger_id: Ledger document identifier.
            config: Engine configuration for a newly created ledger.
            **kwargs: Passed to the constructor.

        Returns:
            Session bound to the persisted ledger.
        """
        store = LedgerStore(
            DuckDBLedgerBackend(db_path), ledger_id=ledger_id, config=config
        )
        return cls(store, **kwargs)

    @classmethod
    def in_memory(
        cls, config: EngineConfig | None = None, **kwargs
    ) -> "PaperTradingSession":
        """Create a session on a throwaway in-memory ledger."""
        return cls(LedgerStore(config=config), **kwargs)

    def close(self) -> None:
        """Detach the protective monitor from the price feed."""
        self._detach_monitor()

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    def set_price(self, symbol: str, price: Decimal | float | str) -> PriceEntry:
        """Push a market price (triggers protective checks)."""
        return self.price_feed.set_price(symbol, price)

    def buy(
        self,
        symbol: str,
        amount: Decimal | None = None,
        quantity: Decimal | None = None,
        stop_loss: Decimal | None = None,
        take_profit: Decimal | None = None,
        product_type: ProductType | str | None = None,
    ) -> OrderResult:
        """Submit a market BUY. See OrderExecutor.submit."""
        return self.executor.submit(
            symbol,
            OrderSide.BUY,
            amount=amount,
            quantity=quantity,
            stop_loss=stop_loss,
            take_profit=take_profit,
            product_type=product_type,
        )

    def sell(
        self,
        symbol: str,
        amount: Decimal | None = None,
        quantity: Decimal | None = None,
        product_type: ProductType | str | None = None,
    ) -> OrderResult:
        """Submit a market SELL. See OrderExecutor.submit."""
        return self.executor.submit(
            symbol,
            OrderSide.SELL,
            amount=amount,
            quantity=quantity,
            product_type=product_type,
        )

    def set_protection(
        self,
        symbol: str,
        stop_loss: Decimal | None = None,
        take_profit: Decimal | None = None,
    ) -> bool:
        """Store protective thresholds on an open position."""
        return self.monitor.set_thresholds(symbol, stop_loss, take_profit)

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    def get_ledger(self) -> LedgerState:
        """Return a copy of the current ledger."""
        return self.store.read()

    def get_performance_summary(self) -> PerformanceSummary:
        """Get performance summary of the ledger."""
        return PerformanceTracker(self.store.read()).get_performance_summary()

    def add_funds(self, amount: Decimal) -> Decimal:
        """Credit cash to the wallet and return the new balance."""
        balance = self.store.add_funds(amount)
        logger.info(f"Added {amount} to wallet, balance {balance}")
        return balance

    def add_to_watchlist(self, symbol: str) -> list[str]:
        """Add a symbol to the watchlist and return the watchlist."""
        key = normalize_symbol(symbol)
        if not key:
            raise ValueError("symbol is required")

        def _add(state: LedgerState) -> list[str]:
            if key not in state.watchlist:
                state.watchlist.append(key)
            return list(state.watchlist)

        return self.store.write_atomic(_add)

    def remove_from_watchlist(self, symbol: str) -> list[str]:
        """Remove a symbol from the watchlist and return the watchlist."""
        key = normalize_symbol(symbol)

        def _remove(state: LedgerState) -> list[str]:
            state.watchlist = [s for s in state.watchlist if s != key]
            return list(state.watchlist)

        return self.store.write_atomic(_remove)

    def export_ledger(self) -> str:
        """Serialize the ledger as a JSON document."""
        return self.store.export_snapshot()

    def import_ledger(self, document: str) -> tuple[bool, str | None]:
        """Replace the ledger with an exported JSON document."""
        return self.store.import_snapshot(document)

    def reset(self) -> LedgerState:
        """Reset the ledger to a fresh wallet; stops any automated session."""
        self.scheduler.stop_session()
        return self.store.reset_session()

    # ------------------------------------------------------------------
    # Automated trading
    # ------------------------------------------------------------------

    async def start_auto_trading(self, config: AutoTradingConfig) -> AutoTradingState:
        """Start an automated session. See AutoTradingScheduler.start_session."""
        return await self.scheduler.start_session(config)

    def stop_auto_trading(self) -> AutoTradingState:
        """Stop the automated session, closing what it opened."""
        return self.scheduler.stop_session()

    def get_auto_trading_state(self) -> AutoTradingState:
        """Return the automated session state."""
        return self.scheduler.get_session_state()
