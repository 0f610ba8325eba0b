"""Tests for the automated trading scheduler."""

import asyncio
from datetime import time
from decimal import Decimal

import pytest

from src.paper_trading.automation import (
    DEFAULT_UNIVERSE,
    AutoTradingScheduler,
    SchedulerIntervals,
    filter_reason,
    per_trade_amount,
    rank_candidates,
    volatility_tier,
    volume_tier,
)
from src.paper_trading.errors import SessionAlreadyActiveError
from src.paper_trading.events import EventBus, TradeEvent, TradeEventType
from src.paper_trading.executor import NoSlippage, OrderExecutor
from src.paper_trading.models import (
    AutoTradingConfig,
    EngineConfig,
    OrderSide,
    ProductType,
    SessionStage,
)
from src.paper_trading.price_feed import PriceFeed
from src.paper_trading.protective import ProtectiveOrderMonitor
from src.paper_trading.storage import InMemoryLedgerBackend, LedgerStore


def _messages(scheduler: AutoTradingScheduler) -> list[str]:
    return [entry.message for entry in scheduler.get_session_state().logs]


@pytest.fixture
def three_quotes(quote_provider, make_quote):
    """Provider serving AAA (+1%), BBB (+3%) and CCC (+2%) at 100."""
    quote_provider.quotes = {
        "AAA": make_quote("AAA", change_percent=1.0),
        "BBB": make_quote("BBB", change_percent=3.0),
        "CCC": make_quote("CCC", change_percent=2.0),
    }
    return quote_provider


@pytest.fixture
def scheduler(
    store: LedgerStore,
    executor: OrderExecutor,
    feed: PriceFeed,
    monitor: ProtectiveOrderMonitor,
    three_quotes,
    clock,
) -> AutoTradingScheduler:
    """Scheduler over the three-quote provider."""
    return AutoTradingScheduler(
        store, executor, feed, three_quotes, monitor=monitor, clock=clock
    )


@pytest.fixture
def config() -> AutoTradingConfig:
    """Momentum session over AAA, BBB and CCC taking the top two."""
    return AutoTradingConfig(
        selected_symbols=["AAA", "BBB", "CCC"],
        max_trades_per_day=2,
        total_budget=Decimal("10000"),
    )


class TestSelectionHelpers:
    """Tests for tiering, filtering, ranking and sizing."""

    def test_volume_tier(self) -> None:
        """Test volume tier boundaries."""
        assert volume_tier(999_999) == "low"
        assert volume_tier(1_000_000) == "medium"
        assert volume_tier(10_000_000) == "high"

    def test_volatility_tier(self) -> None:
        """Test intraday range tier boundaries."""
        assert volatility_tier(0.5) == "low"
        assert volatility_tier(1.0) == "medium"
        assert volatility_tier(3.0) == "high"

    def test_filter_reason(self, make_quote) -> None:
        """Test each filter in turn."""
        quote = make_quote(
            "AAA", price="100", change_percent=-1.0, volume=500, range_pct=4.0
        )

        assert filter_reason(quote, AutoTradingConfig()) is None
        assert "below" in filter_reason(
            quote, AutoTradingConfig(price_min=Decimal("150"))
        )
        assert "above" in filter_reason(
            quote, AutoTradingConfig(price_max=Decimal("50"))
        )
        assert "volume tier low" in filter_reason(
            quote, AutoTradingConfig(volume_filter="high")
        )
        assert "volatility tier high" in filter_reason(
            quote, AutoTradingConfig(volatility_filter="low")
        )
        assert "not bullish" in filter_reason(
            quote, AutoTradingConfig(market_trend="bullish")
        )
        assert filter_reason(quote, AutoTradingConfig(market_trend="bearish")) is None

    def test_rank_candidates(self, make_quote) -> None:
        """Test each strategy's ordering."""
        quotes = [
            make_quote("A", change_percent=1.0, volume=300, range_pct=1.0),
            make_quote("B", change_percent=-2.0, volume=100, range_pct=5.0),
            make_quote("C", change_percent=3.0, volume=200, range_pct=2.0),
        ]

        def order(strategy: str) -> list[str]:
            return [q.symbol for q in rank_candidates(quotes, strategy)]

        assert order("momentum") == ["C", "A", "B"]
        assert order("mean_reversion") == ["B", "A", "C"]
        assert order("breakout") == ["B", "C", "A"]
        assert order("scalping") == ["A", "C", "B"]

    def test_rank_unknown_strategy(self) -> None:
        """Test an unknown strategy is rejected."""
        with pytest.raises(ValueError, match="Unknown strategy"):
            rank_candidates([], "astrology")

    def test_per_trade_amount(self) -> None:
        """Test the even split and per-trade caps."""
        budget = Decimal("10000")

        assert per_trade_amount(budget, 3, AutoTradingConfig()) == Decimal("3333.33")
        fixed = AutoTradingConfig(
            per_trade_type="fixed", per_trade_amount=Decimal("2000")
        )
        assert per_trade_amount(budget, 3, fixed) == Decimal("2000.00")
        percent = AutoTradingConfig(per_trade_type="percentage", per_trade_percent=10)
        assert per_trade_amount(budget, 3, percent) == Decimal("1000.00")

    def test_default_universe(self) -> None:
        """Test the default universe is NSE symbols."""
        assert len(DEFAULT_UNIVERSE) == 12
        assert all(symbol.endswith(".NS") for symbol in DEFAULT_UNIVERSE)


class TestStartSession:
    """Tests for session start and entry."""

    def test_entry_inside_window_buys_top_ranked(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        config: AutoTradingConfig,
    ) -> None:
        """Test the top two momentum names are bought with thresholds."""
        state = asyncio.run(scheduler.start_session(config))

        assert state.stage == SessionStage.ACTIVE
        assert [p.symbol for p in state.opened_positions] == ["BBB", "CCC"]
        assert all(p.quantity == Decimal("50") for p in state.opened_positions)

        ledger = store.read()
        assert set(ledger.prices) == {"AAA", "BBB", "CCC"}
        assert set(ledger.positions) == {"BBB", "CCC"}
        position = ledger.positions["BBB"]
        assert position.stop_loss == Decimal("98.0000")
        assert position.take_profit == Decimal("105.0000")
        assert all(o.strategy == "momentum" for o in ledger.orders)
        assert all(o.product_type.value == "intraday" for o in ledger.orders)

        messages = _messages(scheduler)
        assert messages[0].startswith("Session started")
        assert any(m.startswith("Selected BBB, CCC") for m in messages)

    def test_session_state_is_persisted(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        config: AutoTradingConfig,
    ) -> None:
        """Test an active session is saved through the store."""
        asyncio.run(scheduler.start_session(config))

        persisted = store.load_session_state()
        assert persisted.stage == SessionStage.ACTIVE
        assert len(persisted.opened_positions) == 2

    def test_start_twice_raises(
        self, scheduler: AutoTradingScheduler, config: AutoTradingConfig
    ) -> None:
        """Test only one session runs at a time."""
        asyncio.run(scheduler.start_session(config))

        with pytest.raises(SessionAlreadyActiveError):
            asyncio.run(scheduler.start_session(config))

    def test_waits_for_entry_time(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        config: AutoTradingConfig,
        clock,
    ) -> None:
        """Test a session started early waits, then enters on check."""
        clock.set_time(9, 0)

        state = asyncio.run(scheduler.start_session(config))

        assert state.stage == SessionStage.WAITING_ENTRY
        assert "in 20m 0s" in _messages(scheduler)[0]
        assert store.read().orders == []

        clock.set_time(9, 10)
        assert asyncio.run(scheduler.check_entry()) is False

        clock.set_time(9, 20)
        assert asyncio.run(scheduler.check_entry()) is True
        assert scheduler.stage == SessionStage.ACTIVE
        assert len(store.read().orders) == 2

    def test_entry_window_closed(
        self, scheduler: AutoTradingScheduler, store: LedgerStore
    ) -> None:
        """Test a start after the window does nothing."""
        config = AutoTradingConfig(entry_time_to=time(9, 30))

        state = asyncio.run(scheduler.start_session(config))

        assert state.stage == SessionStage.IDLE
        assert _messages(scheduler)[0].startswith("Entry window closed")
        assert store.load_session_state() is None

    def test_entry_window_missed_while_waiting(
        self, scheduler: AutoTradingScheduler, config: AutoTradingConfig, clock
    ) -> None:
        """Test a waiting session ends if the check comes too late."""
        config = config.model_copy(update={"entry_time_to": time(9, 30)})
        clock.set_time(9, 0)
        asyncio.run(scheduler.start_session(config))

        clock.set_time(9, 45)
        assert asyncio.run(scheduler.check_entry()) is False
        assert scheduler.stage == SessionStage.IDLE
        assert "Entry window missed" in _messages(scheduler)[-1]

    def test_no_candidates_returns_to_idle(
        self, scheduler: AutoTradingScheduler, store: LedgerStore
    ) -> None:
        """Test a session with no survivors aborts."""
        config = AutoTradingConfig(
            selected_symbols=["AAA", "BBB"], price_min=Decimal("1000")
        )

        state = asyncio.run(scheduler.start_session(config))

        assert state.stage == SessionStage.IDLE
        messages = _messages(scheduler)
        assert any(m.startswith("Filtered out AAA") for m in messages)
        assert messages[-1] == "No instruments passed the filters; session aborted"
        assert store.read().orders == []

    def test_budget_below_minimum_aborts(
        self, scheduler: AutoTradingScheduler, store: LedgerStore
    ) -> None:
        """Test a budget below the minimum aborts the session."""
        config = AutoTradingConfig(
            selected_symbols=["AAA"],
            total_budget=Decimal("500"),
            min_budget=Decimal("1000"),
        )

        state = asyncio.run(scheduler.start_session(config))

        assert state.stage == SessionStage.IDLE
        assert _messages(scheduler)[-1].endswith("session aborted")
        assert store.read().orders == []

    def test_budget_reduced_to_available_cash(self, three_quotes, clock) -> None:
        """Test the budget is capped at 95% of cash."""
        store = LedgerStore(
            InMemoryLedgerBackend(),
            config=EngineConfig(starting_balance=Decimal("5000")),
            clock=clock,
        )
        store.initialize()
        executor = OrderExecutor(store, slippage_model=NoSlippage(), clock=clock)
        scheduler = AutoTradingScheduler(
            store, executor, PriceFeed(store), three_quotes, clock=clock
        )
        config = AutoTradingConfig(selected_symbols=["BBB"], min_budget=Decimal("0"))

        asyncio.run(scheduler.start_session(config))

        assert any(m.startswith("Budget reduced") for m in _messages(scheduler))
        assert store.read().orders[0].quantity == Decimal("47.5")

    def test_unavailable_quote_is_skipped(
        self, scheduler: AutoTradingScheduler, store: LedgerStore
    ) -> None:
        """Test a failed fetch skips the symbol."""
        config = AutoTradingConfig(selected_symbols=["ZZZ", "AAA"])

        asyncio.run(scheduler.start_session(config))

        assert any(
            m.startswith("Skipped ZZZ: quote unavailable")
            for m in _messages(scheduler)
        )
        assert set(store.read().positions) == {"AAA"}

    def test_stop_during_fetch_discards_result(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        three_quotes,
        config: AutoTradingConfig,
    ) -> None:
        """Test a quote arriving after stop is not used."""

        def _stop_on_bbb(symbol: str) -> None:
            if symbol == "BBB":
                scheduler.stop_session()

        three_quotes.before_return = _stop_on_bbb

        asyncio.run(scheduler.start_session(config))

        assert scheduler.stage == SessionStage.IDLE
        assert three_quotes.requested == ["AAA", "BBB"]
        ledger = store.read()
        assert ledger.last_price("AAA") == Decimal("100")
        assert ledger.last_price("BBB") is None
        assert ledger.orders == []
        assert "Session stopped" in _messages(scheduler)

    def test_start_after_exit_time_stays_idle(
        self, scheduler: AutoTradingScheduler, store: LedgerStore, clock
    ) -> None:
        """Test a start at or after the exit time places no orders."""
        clock.set_time(15, 30)
        config = AutoTradingConfig(selected_symbols=["AAA"])

        state = asyncio.run(scheduler.start_session(config))

        assert state.stage == SessionStage.IDLE
        assert _messages(scheduler) == [
            "Exit time 15:15 already passed; session not started"
        ]
        assert store.read().orders == []
        assert store.load_session_state() is None

    def test_waiting_session_ends_after_exit_time(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        config: AutoTradingConfig,
        clock,
    ) -> None:
        """Test a waiting session checked after the exit time does not enter."""
        clock.set_time(9, 0)
        asyncio.run(scheduler.start_session(config))

        clock.set_time(15, 15)
        assert asyncio.run(scheduler.check_entry()) is False

        assert scheduler.stage == SessionStage.IDLE
        assert "exit time 15:15 passed" in _messages(scheduler)[-1]
        assert store.read().orders == []

    def test_fixed_thresholds(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        config: AutoTradingConfig,
    ) -> None:
        """Test fixed stop-loss and take-profit distances around the fill."""
        config = config.model_copy(
            update={
                "stop_loss_type": "fixed",
                "stop_loss_amount": Decimal("3"),
                "take_profit_type": "fixed",
                "take_profit_amount": Decimal("4"),
            }
        )

        asyncio.run(scheduler.start_session(config))

        position = store.read().positions["BBB"]
        assert position.stop_loss == Decimal("97")
        assert position.take_profit == Decimal("104")
        assert position.product_type == ProductType.INTRADAY


class TestEntryContainment:
    """Tests for per-instrument failures during entry."""

    def test_threshold_rounding_to_zero_is_skipped(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        three_quotes,
        make_quote,
    ) -> None:
        """Test a sub-tick stop-loss is dropped and the entry continues."""
        three_quotes.quotes["PENNY"] = make_quote(
            "PENNY", price="0.0001", change_percent=5.0
        )
        config = AutoTradingConfig(
            selected_symbols=["PENNY", "AAA", "BBB"],
            max_trades_per_day=3,
            stop_loss_pct=99.99,
        )

        state = asyncio.run(scheduler.start_session(config))

        assert state.stage == SessionStage.ACTIVE
        assert [p.symbol for p in state.opened_positions] == ["PENNY", "BBB", "AAA"]
        ledger = store.read()
        assert set(ledger.positions) == {"PENNY", "AAA", "BBB"}
        assert ledger.positions["PENNY"].stop_loss is None
        assert ledger.positions["PENNY"].take_profit == Decimal("0.0001")
        assert ledger.positions["BBB"].stop_loss == Decimal("0.0100")
        assert "Stop-loss for PENNY is not positive; not set" in _messages(
            scheduler
        )

    def test_unexpected_error_does_not_stop_entry(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        monitor: ProtectiveOrderMonitor,
        config: AutoTradingConfig,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test a failure after a fill keeps the fill and buys the rest."""
        set_thresholds = monitor.set_thresholds

        def _fail_for_bbb(symbol, stop_loss=None, take_profit=None):
            if symbol == "BBB":
                raise RuntimeError("threshold store unavailable")
            return set_thresholds(symbol, stop_loss, take_profit)

        monkeypatch.setattr(monitor, "set_thresholds", _fail_for_bbb)

        state = asyncio.run(scheduler.start_session(config))

        assert state.stage == SessionStage.ACTIVE
        assert [p.symbol for p in state.opened_positions] == ["BBB", "CCC"]
        assert set(store.read().positions) == {"BBB", "CCC"}
        assert (
            "Entry for BBB failed: threshold store unavailable"
            in _messages(scheduler)
        )

        scheduler.stop_session()
        assert store.read().positions == {}

    def test_rejection_mid_batch_buys_later_instruments(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        event_bus: EventBus,
    ) -> None:
        """Test a funds rejection for one instrument leaves the others bought."""
        saved_cash: list[Decimal] = []

        def _set_cash(cash: Decimal) -> None:
            def _mutate(state) -> None:
                state.wallet.cash = cash

            store.write_atomic(_mutate)

        def _on_event(event: TradeEvent) -> None:
            if event.event_type == TradeEventType.TRADE_EXECUTED and not saved_cash:
                saved_cash.append(store.read().wallet.cash)
                _set_cash(Decimal("0"))
            elif event.event_type == TradeEventType.ORDER_FAILED and saved_cash:
                _set_cash(saved_cash[0])

        event_bus.subscribe(_on_event)
        config = AutoTradingConfig(
            selected_symbols=["AAA", "BBB", "CCC"], max_trades_per_day=3
        )

        state = asyncio.run(scheduler.start_session(config))

        assert state.stage == SessionStage.ACTIVE
        assert [p.symbol for p in state.opened_positions] == ["BBB", "AAA"]
        assert set(store.read().positions) == {"BBB", "AAA"}
        assert any(
            m.startswith("Buy CCC rejected: InsufficientFunds")
            for m in _messages(scheduler)
        )


class TestExitAndRisk:
    """Tests for session unwinding and risk checks."""

    def test_exit_time_unwinds(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        config: AutoTradingConfig,
        clock,
    ) -> None:
        """Test positions opened by the session are sold at exit time."""
        asyncio.run(scheduler.start_session(config))

        clock.set_time(15, 14)
        assert scheduler.check_exit() is False

        clock.set_time(15, 15)
        assert scheduler.check_exit() is True

        ledger = store.read()
        assert ledger.positions == {}
        assert [o.side for o in ledger.orders[:2]] == [OrderSide.SELL] * 2
        assert scheduler.stage == SessionStage.IDLE
        assert _messages(scheduler)[-1] == "Session complete"
        assert store.load_session_state() is None

    def test_exit_skips_symbols_no_longer_held(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        executor: OrderExecutor,
        config: AutoTradingConfig,
    ) -> None:
        """Test a position closed elsewhere is not sold again."""
        asyncio.run(scheduler.start_session(config))
        executor.submit("BBB", OrderSide.SELL, quantity=Decimal("50"))

        scheduler.stop_session()

        assert "BBB no longer held; nothing to sell" in _messages(scheduler)
        assert store.read().positions == {}

    def test_exit_only_sells_session_quantity(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        executor: OrderExecutor,
        config: AutoTradingConfig,
    ) -> None:
        """Test units bought outside the session stay held."""
        asyncio.run(scheduler.start_session(config))
        executor.submit("BBB", OrderSide.BUY, quantity=Decimal("5"))

        scheduler.stop_session()

        assert store.read().positions["BBB"].quantity == Decimal("5")

    def test_stop_while_waiting(
        self, scheduler: AutoTradingScheduler, config: AutoTradingConfig, clock
    ) -> None:
        """Test stopping a waiting session places no orders."""
        clock.set_time(9, 0)
        asyncio.run(scheduler.start_session(config))

        state = scheduler.stop_session()

        assert state.stage == SessionStage.IDLE
        assert state.opened_positions == []
        assert _messages(scheduler)[-1] == "Session stopped"

    def test_stop_when_idle_is_noop(self, scheduler: AutoTradingScheduler) -> None:
        """Test stopping without a session changes nothing."""
        state = scheduler.stop_session()

        assert state.stage == SessionStage.IDLE
        assert state.logs == []

    def test_check_risk_sweeps_positions(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        config: AutoTradingConfig,
    ) -> None:
        """Test the risk check closes breached positions."""
        asyncio.run(scheduler.start_session(config))
        store.set_price("BBB", Decimal("97"))

        results = scheduler.check_risk()

        assert len(results) == 1
        assert "BBB" not in store.read().positions
        assert _messages(scheduler)[-1].startswith("Protective exit: sold 50")

    def test_check_risk_inactive(self, scheduler: AutoTradingScheduler) -> None:
        """Test no sweep happens without an active session."""
        assert scheduler.check_risk() == []


class TestRestoreAndRun:
    """Tests for persistence across restarts and the periodic loop."""

    def test_restores_persisted_session(
        self,
        scheduler: AutoTradingScheduler,
        store: LedgerStore,
        executor: OrderExecutor,
        feed: PriceFeed,
        three_quotes,
        config: AutoTradingConfig,
        clock,
    ) -> None:
        """Test a new scheduler resumes an in-progress session."""
        asyncio.run(scheduler.start_session(config))

        restored = AutoTradingScheduler(
            store, executor, feed, three_quotes, clock=clock
        )

        assert restored.stage == SessionStage.ACTIVE
        state = restored.get_session_state()
        assert [p.symbol for p in state.opened_positions] == ["BBB", "CCC"]
        assert state.logs[-1].message == "Restored session in stage active"

        clock.set_time(15, 30)
        assert restored.check_exit() is True
        assert store.read().positions == {}

    def test_run_until_idle(
        self,
        store: LedgerStore,
        executor: OrderExecutor,
        feed: PriceFeed,
        three_quotes,
        config: AutoTradingConfig,
        clock,
    ) -> None:
        """Test the periodic loop enters and exits, then stops."""
        intervals = SchedulerIntervals(
            entry_check_seconds=0.01,
            exit_check_seconds=0.01,
            risk_check_seconds=0.01,
        )
        scheduler = AutoTradingScheduler(
            store, executor, feed, three_quotes, clock=clock, intervals=intervals
        )
        clock.set_time(9, 0)

        async def _close_after_entry() -> None:
            while scheduler.stage != SessionStage.ACTIVE:
                await asyncio.sleep(0.01)
            clock.set_time(15, 20)

        async def _scenario() -> None:
            await scheduler.start_session(config)
            clock.set_time(9, 20)
            await asyncio.wait_for(
                asyncio.gather(
                    scheduler.run(stop_when_idle=True), _close_after_entry()
                ),
                timeout=5,
            )

        asyncio.run(_scenario())

        assert scheduler.stage == SessionStage.IDLE
        ledger = store.read()
        assert ledger.positions == {}
        assert len(ledger.orders) == 4
        messages = _messages(scheduler)
        assert "Entry time 09:20 reached" in messages
        assert messages[-1] == "Session complete"

    def test_run_stops_on_event(self, scheduler: AutoTradingScheduler) -> None:
        """Test a set stop event ends the loop."""

        async def _scenario() -> None:
            stop_event = asyncio.Event()
            stop_event.set()
            await asyncio.wait_for(scheduler.run(stop_event), timeout=5)

        asyncio.run(_scenario())

        assert scheduler.stage == SessionStage.IDLE
