"""Tests for the paper trading session orchestrator."""

import asyncio
from decimal import Decimal
from pathlib import Path

import pytest

from src.paper_trading.events import TradeEventType
from src.paper_trading.executor import NoSlippage
from src.paper_trading.models import (
    AutoTradingConfig,
    EngineConfig,
    RejectionReason,
    SessionStage,
)
from src.paper_trading.session import PaperTradingSession


@pytest.fixture
def session(quote_provider, clock) -> PaperTradingSession:
    """In-memory session without slippage."""
    return PaperTradingSession.in_memory(
        slippage_model=NoSlippage(), quote_provider=quote_provider, clock=clock
    )


class TestTrading:
    """Tests for manual trading through the session."""

    def test_buy_and_sell(self, session: PaperTradingSession) -> None:
        """Test the session routes orders through the executor."""
        session.set_price("TCS.NS", Decimal("100"))

        bought = session.buy("TCS.NS", quantity=Decimal("10"))
        sold = session.sell("TCS.NS", quantity=Decimal("10"))

        assert bought.success and sold.success
        assert session.get_ledger().wallet.cash == Decimal("99981.84")

    def test_rejection_is_returned(self, session: PaperTradingSession) -> None:
        """Test rejections come back as results."""
        result = session.buy("TCS.NS", quantity=Decimal("1"))

        assert result.success is False
        assert result.reason == RejectionReason.PRICE_UNAVAILABLE

    def test_protective_exit_through_price_feed(
        self, session: PaperTradingSession
    ) -> None:
        """Test a price update closes a protected position."""
        exits = []
        session.event_bus.subscribe(exits.append, [TradeEventType.PROTECTIVE_EXIT])
        session.set_price("TCS.NS", Decimal("100"))
        session.buy("TCS.NS", quantity=Decimal("5"), stop_loss=Decimal("97"))

        session.set_price("TCS.NS", Decimal("96.5"))

        assert "TCS.NS" not in session.get_ledger().positions
        assert len(exits) == 1

    def test_set_protection(self, session: PaperTradingSession) -> None:
        """Test protection can be added after the buy."""
        session.set_price("TCS.NS", Decimal("100"))
        session.buy("TCS.NS", quantity=Decimal("5"))

        assert session.set_protection("TCS.NS", take_profit=Decimal("104")) is True
        session.set_price("TCS.NS", Decimal("104"))

        assert "TCS.NS" not in session.get_ledger().positions

    def test_close_detaches_monitor(self, session: PaperTradingSession) -> None:
        """Test a closed session no longer reacts to ticks."""
        session.set_price("TCS.NS", Decimal("100"))
        session.buy("TCS.NS", quantity=Decimal("5"), stop_loss=Decimal("97"))

        session.close()
        session.set_price("TCS.NS", Decimal("90"))

        assert "TCS.NS" in session.get_ledger().positions


class TestAccount:
    """Tests for account maintenance."""

    def test_add_funds(self, session: PaperTradingSession) -> None:
        """Test funds are credited."""
        assert session.add_funds(Decimal("1000")) == Decimal("101000")

    def test_watchlist(self, session: PaperTradingSession) -> None:
        """Test adding and removing watchlist symbols."""
        watchlist = session.add_to_watchlist("hdfcbank.ns")
        assert watchlist[-1] == "HDFCBANK.NS"
        assert session.add_to_watchlist("HDFCBANK.NS").count("HDFCBANK.NS") == 1

        watchlist = session.remove_from_watchlist("AAPL")
        assert "AAPL" not in watchlist

    def test_watchlist_rejects_blank(self, session: PaperTradingSession) -> None:
        """Test a blank symbol is not added."""
        with pytest.raises(ValueError):
            session.add_to_watchlist(" ")

    def test_performance_summary(self, session: PaperTradingSession) -> None:
        """Test the summary reflects the ledger."""
        session.set_price("TCS.NS", Decimal("100"))
        session.buy("TCS.NS", quantity=Decimal("10"))

        summary = session.get_performance_summary()

        assert summary.total_trades == 1
        assert summary.total_charges == Decimal("1.19")

    def test_export_import(self, session: PaperTradingSession) -> None:
        """Test an export can be imported into another session."""
        session.set_price("TCS.NS", Decimal("100"))
        session.buy("TCS.NS", quantity=Decimal("3"))
        document = session.export_ledger()

        other = PaperTradingSession.in_memory(slippage_model=NoSlippage())
        success, reason = other.import_ledger(document)

        assert success is True
        assert other.get_ledger().positions["TCS.NS"].quantity == Decimal("3")

    def test_reset(self, session: PaperTradingSession) -> None:
        """Test reset restores the starting balance."""
        session.set_price("TCS.NS", Decimal("100"))
        session.buy("TCS.NS", quantity=Decimal("3"))

        state = session.reset()

        assert state.wallet.cash == Decimal("100000")
        assert state.orders == []


class TestAutomatedTrading:
    """Tests for the automated session through the orchestrator."""

    def test_start_and_stop(
        self, session: PaperTradingSession, quote_provider, make_quote
    ) -> None:
        """Test a session opens positions and stopping closes them."""
        quote_provider.quotes = {"TCS.NS": make_quote("TCS.NS")}
        config = AutoTradingConfig(selected_symbols=["TCS.NS"])

        state = asyncio.run(session.start_auto_trading(config))

        assert state.stage == SessionStage.ACTIVE
        assert "TCS.NS" in session.get_ledger().positions

        state = session.stop_auto_trading()

        assert state.stage == SessionStage.IDLE
        assert session.get_ledger().positions == {}
        assert session.get_auto_trading_state().stage == SessionStage.IDLE

    def test_reset_stops_session(
        self, session: PaperTradingSession, quote_provider, make_quote
    ) -> None:
        """Test a ledger reset also ends the automated session."""
        quote_provider.quotes = {"TCS.NS": make_quote("TCS.NS")}
        asyncio.run(
            session.start_auto_trading(AutoTradingConfig(selected_symbols=["TCS.NS"]))
        )

        session.reset()

        assert session.get_auto_trading_state().stage == SessionStage.IDLE
        assert session.get_ledger().positions == {}


class TestPersistence:
    """Tests for DuckDB-backed sessions."""

    def test_reopen_keeps_ledger(self, temp_db_path: Path, quote_provider) -> None:
        """Test a reopened session sees earlier trades."""
        first = PaperTradingSession.open(
            temp_db_path,
            config=EngineConfig(starting_balance=Decimal("50000")),
            slippage_model=NoSlippage(),
            quote_provider=quote_provider,
        )
        first.set_price("TCS.NS", Decimal("100"))
        first.buy("TCS.NS", quantity=Decimal("10"))

        second = PaperTradingSession.open(temp_db_path, quote_provider=quote_provider)
        ledger = second.get_ledger()

        assert ledger.config.starting_balance == Decimal("50000")
        assert ledger.positions["TCS.NS"].quantity == Decimal("10")
        assert ledger.wallet.cash == Decimal("48998.81")

    def test_ledgers_are_isolated(self, temp_db_path: Path, quote_provider) -> None:
        """Test ledger ids select independent documents."""
        alpha = PaperTradingSession.open(
            temp_db_path, ledger_id="alpha", quote_provider=quote_provider
        )
        alpha.add_funds(Decimal("5"))

        beta = PaperTradingSession.open(
            temp_db_path, ledger_id="beta", quote_provider=quote_provider
        )

        assert beta.get_ledger().wallet.cash == Decimal("100000")
