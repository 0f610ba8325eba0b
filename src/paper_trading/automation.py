"""Automated strategy scheduler for the Paper Trading Engine.

A session moves through ``idle -> waiting_entry -> active -> idle``. At entry
time the scheduler scans a universe of instruments, filters and ranks them by
the configured strategy, splits the budget across the survivors and buys them
through the order executor with protective thresholds. At exit time (or when
stopped) it sells what it opened.

The periodic checks (entry, exit, risk) run as asyncio tasks owned by
``AutoTradingScheduler.run``. Quote fetches are the only suspension points;
a session stopped while a fetch is pending discards the fetched result.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, time
from decimal import ROUND_DOWN, Decimal
from typing import Protocol

from pydantic import BaseModel, Field

from src.data.models import Quote
from src.paper_trading.errors import SessionAlreadyActiveError
from src.paper_trading.executor import OrderExecutor
from src.paper_trading.models import (
    AutoTradingConfig,
    AutoTradingState,
    OpenedPosition,
    OrderResult,
    OrderSide,
    SessionLogEntry,
    SessionStage,
)
from src.paper_trading.price_feed import PriceFeed
from src.paper_trading.protective import (
    ProtectiveOrderMonitor,
    thresholds_from_config,
)
from src.paper_trading.storage import LedgerStore

logger = logging.getLogger(__name__)

DEFAULT_UNIVERSE = [
    "RELIANCE.NS",
    "TCS.NS",
    "HDFCBANK.NS",
    "INFY.NS",
    "ICICIBANK.NS",
    "HINDUNILVR.NS",
    "ITC.NS",
    "SBIN.NS",
    "BHARTIARTL.NS",
    "KOTAKBANK.NS",
    "LT.NS",
    "AXISBANK.NS",
]

# Share of available cash the session may commit.
CASH_UTILIZATION = Decimal("0.95")
MAX_SESSION_LOGS = 500

LOW_VOLUME_LIMIT = 1_000_000
MEDIUM_VOLUME_LIMIT = 10_000_000
LOW_VOLATILITY_LIMIT = 1.0
MEDIUM_VOLATILITY_LIMIT = 3.0

Callback = Callable[[], Awaitable[object] | object]


class QuoteProvider(Protocol):
    """Asynchronous source of live quotes."""

    async def get_quote(self, symbol: str) -> Quote: ...


class SchedulerIntervals(BaseModel):
    """Polling intervals of the periodic session tasks, in seconds."""

    entry_check_seconds: float = Field(default=1.0, gt=0.0)
    exit_check_seconds: float = Field(default=1.0, gt=0.0)
    risk_check_seconds: float = Field(default=3.0, gt=0.0)


def volume_tier(volume: int) -> str:
    """Classify session volume as low, medium or high."""
    if volume < LOW_VOLUME_LIMIT:
        return "low"
    if volume < MEDIUM_VOLUME_LIMIT:
        return "medium"
    return "high"


def volatility_tier(range_pct: float) -> str:
    """Classify the intraday range (percent of price) as low, medium or high."""
    if range_pct < LOW_VOLATILITY_LIMIT:
        return "low"
    if range_pct < MEDIUM_VOLATILITY_LIMIT:
        return "medium"
    return "high"


def filter_reason(quote: Quote, config: AutoTradingConfig) -> str | None:
    """Return why a quote fails the session filters, or None if it passes.

    Filters apply in order: price range, volume tier, volatility tier and
    trend bias.
    """
    if config.price_min is not None and quote.price < config.price_min:
        return f"price {quote.price} below {config.price_min}"
    if config.price_max is not None and quote.price > config.price_max:
        return f"price {quote.price} above {config.price_max}"

    if config.volume_filter != "any":
        tier = volume_tier(quote.volume)
        if tier != config.volume_filter:
            return f"volume tier {tier}, wanted {config.volume_filter}"

    if config.volatility_filter != "any":
        tier = volatility_tier(quote.intraday_range_pct)
        if tier != config.volatility_filter:
            return f"volatility tier {tier}, wanted {config.volatility_filter}"

    if config.market_trend == "bullish" and quote.change_percent <= 0:
        return f"change {quote.change_percent:+.2f}% is not bullish"
    if config.market_trend == "bearish" and quote.change_percent >= 0:
        return f"change {quote.change_percent:+.2f}% is not bearish"

    return None


def rank_candidates(quotes: list[Quote], strategy: str) -> list[Quote]:
    """Order candidates by the strategy's preference, best first.

    Args:
        quotes: Quotes that passed the filters.
        strategy: momentum (strongest gainers), mean_reversion (weakest),
            breakout (widest intraday range) or scalping (highest volume).

    Returns:
        Sorted copy of the quotes.
    """
    if strategy == "momentum":
        return sorted(quotes, key=lambda q: q.change_percent, reverse=True)
    if strategy == "mean_reversion":
        return sorted(quotes, key=lambda q: q.change_percent)
    if strategy == "breakout":
        return sorted(quotes, key=lambda q: q.intraday_range_pct, reverse=True)
    if strategy == "scalping":
        return sorted(quotes, key=lambda q: q.volume, reverse=True)
    raise ValueError(f"Unknown strategy: {strategy}")


def per_trade_amount(
    budget: Decimal, instruments: int, config: AutoTradingConfig
) -> Decimal:
    """Split the budget evenly, capped by the per-trade sizing rule."""
    amount = budget / instruments
    if config.per_trade_type == "fixed" and config.per_trade_amount is not None:
        amount = min(amount, config.per_trade_amount)
    elif config.per_trade_type == "percentage" and config.per_trade_percent:
        cap = budget * Decimal(str(config.per_trade_percent)) / Decimal("100")
        amount = min(amount, cap)
    return amount.quantize(Decimal("0.01"), rounding=ROUND_DOWN)


def _format_wait(now: datetime, target: time) -> str:
    remaining = datetime.combine(now.date(), target) - now.replace(tzinfo=None)
    minutes, seconds = divmod(max(int(remaining.total_seconds()), 0), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


class AutoTradingScheduler:
    """Runs one automated trading session at a time.

    The session state is persisted through the ledger store after every
    change and restored on construction, so a restarted process resumes an
    in-progress session.
    """

    def __init__(
        self,
        store: LedgerStore,
        executor: OrderExecutor,
        price_feed: PriceFeed,
        quote_provider: QuoteProvider,
        monitor: ProtectiveOrderMonitor | None = None,
        clock: Callable[[], datetime] = datetime.now,
        intervals: SchedulerIntervals | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Ledger store (also persists the session state).
            executor: Executor used for entry and exit orders.
            price_feed: Feed receiving every fetched quote price.
            quote_provider: Asynchronous quote source.
            monitor: Protective monitor for thresholds and risk sweeps.
            clock: Time source for session timing.
            intervals: Polling intervals for ``run``.
        """
        self.store = store
        self.executor = executor
        self.price_feed = price_feed
        self.quote_provider = quote_provider
        self.monitor = monitor or ProtectiveOrderMonitor(store, executor)
        self.clock = clock
        self.intervals = intervals or SchedulerIntervals()

        self._generation = 0
        self._state = store.load_session_state() or AutoTradingState()
        self._active = self._state.stage != SessionStage.IDLE
        if self._active:
            self._log(f"Restored session in stage {self._state.stage.value}")

    @property
    def stage(self) -> SessionStage:
        """Current session stage."""
        return self._state.stage

    def get_session_state(self) -> AutoTradingState:
        """Return a copy of the session state (stage, logs, opened positions)."""
        return self._state.model_copy(deep=True)

    def _log(self, message: str) -> None:
        """Append a timestamped session log line and persist the session."""
        entry = SessionLogEntry(timestamp=self.clock(), message=message)
        self._state.logs.append(entry)
        overflow = len(self._state.logs) - MAX_SESSION_LOGS
        if overflow > 0:
            del self._state.logs[:overflow]
        logger.info(f"[auto] {message}")
        self._save()

    def _save(self) -> None:
        if self._state.stage != SessionStage.IDLE:
            self.store.save_session_state(self._state)

    def _finish(self) -> None:
        """Return to idle and drop the persisted session."""
        self._active = False
        self._generation += 1
        self._state.stage = SessionStage.IDLE
        self._state.opened_positions = []
        self.store.clear_session_state()

    def _is_current(self, generation: int) -> bool:
        return self._active and generation == self._generation

    async def start_session(self, config: AutoTradingConfig) -> AutoTradingState:
        """Start a session.

        Before ``entry_time_from`` the session waits; inside the entry window
        the entry runs immediately; after ``entry_time_to`` or at or after
        ``exit_time`` nothing starts.

        Args:
            config: Session configuration.

        Returns:
            Session state after the start.

        Raises:
            SessionAlreadyActiveError: If a session is not idle.
        """
        if self._state.stage != SessionStage.IDLE:
            raise SessionAlreadyActiveError(
                f"A session is already {self._state.stage.value}"
            )

        now = self.clock()
        self._generation += 1
        self._state = AutoTradingState(
            stage=SessionStage.WAITING_ENTRY, config=config, started_at=now
        )
        current = now.time()

        if config.entry_time_to is not None and current > config.entry_time_to:
            self._log(
                f"Entry window closed at {config.entry_time_to:%H:%M}; "
                "session not started"
            )
            self._finish()
            return self.get_session_state()
        if current >= config.exit_time:
            self._log(
                f"Exit time {config.exit_time:%H:%M} already passed; "
                "session not started"
            )
            self._finish()
            return self.get_session_state()

        self._active = True
        if current < config.entry_time_from:
            self._log(
                f"Session scheduled: {config.strategy} entry at "
                f"{config.entry_time_from:%H:%M} "
                f"(in {_format_wait(now, config.entry_time_from)}), "
                f"exit at {config.exit_time:%H:%M}"
            )
            return self.get_session_state()

        self._state.stage = SessionStage.ACTIVE
        self._log(
            f"Session started: {config.strategy}, exit at {config.exit_time:%H:%M}"
        )
        await self._execute_entry(self._generation)
        return self.get_session_state()

    async def check_entry(self, now: datetime | None = None) -> bool:
        """Enter the market once the entry time is reached.

        Returns:
            True if the entry ran.
        """
        if self._state.stage != SessionStage.WAITING_ENTRY:
            return False
        config = self._state.config
        now = now or self.clock()
        current = now.time()
        if current < config.entry_time_from:
            return False

        if config.entry_time_to is not None and current > config.entry_time_to:
            self._log(
                f"Entry window missed (closed at {config.entry_time_to:%H:%M}); "
                "session ended"
            )
            self._finish()
            return False
        if current >= config.exit_time:
            self._log(
                f"Entry window missed (exit time {config.exit_time:%H:%M} passed); "
                "session ended"
            )
            self._finish()
            return False

        self._state.stage = SessionStage.ACTIVE
        self._log(f"Entry time {config.entry_time_from:%H:%M} reached")
        await self._execute_entry(self._generation)
        return True

    async def _execute_entry(self, generation: int) -> None:
        """Scan, filter, rank, size and buy."""
        config = self._state.config
        universe = config.selected_symbols or DEFAULT_UNIVERSE
        self._log(f"Scanning {len(universe)} symbols")

        candidates: list[Quote] = []
        for symbol in universe:
            try:
                quote = await self.quote_provider.get_quote(symbol)
            except Exception as e:
                if not self._is_current(generation):
                    return
                self._log(f"Skipped {symbol}: quote unavailable ({e})")
                continue
            if not self._is_current(generation):
                logger.info(f"Discarding quote for {symbol}: session stopped")
                return

            self.price_feed.set_price(symbol, quote.price)
            reason = filter_reason(quote, config)
            if reason:
                self._log(f"Filtered out {symbol}: {reason}")
                continue
            candidates.append(quote)

        ranked = rank_candidates(candidates, config.strategy)
        selected = ranked[: config.max_trades_per_day]

        cash = self.store.read().wallet.cash
        available = (cash * CASH_UTILIZATION).quantize(
            Decimal("0.01"), rounding=ROUND_DOWN
        )
        budget = min(config.total_budget, available)
        if budget < config.total_budget:
            self._log(
                f"Budget reduced from {config.total_budget} to {budget} "
                f"({CASH_UTILIZATION:.0%} of available cash {cash})"
            )
        if budget < config.min_budget:
            self._log(
                f"Budget {budget} below minimum {config.min_budget}; session aborted"
            )
            self._finish()
            return

        if not selected:
            self._log("No instruments passed the filters; session aborted")
            self._finish()
            return

        amount = per_trade_amount(budget, len(selected), config)
        self._log(
            f"Selected {', '.join(q.symbol for q in selected)}; "
            f"{amount} per instrument"
        )

        for quote in selected:
            if not self._is_current(generation):
                return
            try:
                self._enter_position(quote.symbol, amount, config)
            except Exception as e:
                logger.exception(f"Entry for {quote.symbol} failed")
                self._log(f"Entry for {quote.symbol} failed: {e}")

        if not self._state.opened_positions:
            self._log("No entry order filled; session returned to idle")
            self._finish()

    def _enter_position(
        self, symbol: str, amount: Decimal, config: AutoTradingConfig
    ) -> OrderResult:
        result = self.executor.submit(
            symbol,
            OrderSide.BUY,
            amount=amount,
            product_type=config.product_type,
            strategy=config.strategy,
        )
        if not result.success:
            self._log(f"Buy {symbol} rejected: {result.reason.value}: {result.message}")
            return result

        order = result.order
        self._record_opened(order.symbol, order.quantity)
        self._log(f"Bought {order.quantity} {order.symbol} @ {order.price}")

        position = self.store.read().positions.get(order.symbol)
        if position is None:
            return result
        stop_loss, take_profit = thresholds_from_config(position.average_price, config)
        if stop_loss is not None and stop_loss <= 0:
            self._log(f"Stop-loss for {order.symbol} is not positive; not set")
            stop_loss = None
        if take_profit is not None and take_profit <= 0:
            self._log(f"Take-profit for {order.symbol} is not positive; not set")
            take_profit = None
        if stop_loss is not None or take_profit is not None:
            self.monitor.set_thresholds(order.symbol, stop_loss, take_profit)
            self._log(
                f"Protection for {order.symbol}: SL {stop_loss}, TP {take_profit}"
            )
        return result

    def _record_opened(self, symbol: str, quantity: Decimal) -> None:
        for opened in self._state.opened_positions:
            if opened.symbol == symbol:
                opened.quantity += quantity
                break
        else:
            self._state.opened_positions.append(
                OpenedPosition(symbol=symbol, quantity=quantity)
            )

    def check_exit(self, now: datetime | None = None) -> bool:
        """Unwind the session once the exit time is reached.

        Returns:
            True if the session was unwound.
        """
        if self._state.stage != SessionStage.ACTIVE:
            return False
        config = self._state.config
        now = now or self.clock()
        if now.time() < config.exit_time:
            return False

        self._log(f"Exit time {config.exit_time:%H:%M} reached; closing positions")
        self._unwind()
        return True

    def _unwind(self) -> list[OrderResult]:
        """Sell what the session opened and return to idle."""
        config = self._state.config
        results = []
        for opened in list(self._state.opened_positions):
            position = self.store.read().positions.get(opened.symbol)
            if position is None:
                self._log(f"{opened.symbol} no longer held; nothing to sell")
                continue
            quantity = min(opened.quantity, position.quantity)
            result = self.executor.submit(
                opened.symbol,
                OrderSide.SELL,
                quantity=quantity,
                product_type=position.product_type,
                strategy=config.strategy if config else None,
            )
            if result.success:
                self._log(
                    f"Sold {result.order.quantity} {opened.symbol} "
                    f"@ {result.order.price}"
                )
            else:
                self._log(
                    f"Sell {opened.symbol} rejected: "
                    f"{result.reason.value}: {result.message}"
                )
            results.append(result)

        self._log("Session complete")
        self._finish()
        return results

    def stop_session(self) -> AutoTradingState:
        """Stop the session, closing anything it opened.

        Pending quote fetches are not interrupted; their results are
        discarded when they complete.

        Returns:
            Session state after the stop.
        """
        if self._state.stage == SessionStage.IDLE:
            return self.get_session_state()

        was_active = self._state.stage == SessionStage.ACTIVE
        self._active = False
        self._generation += 1
        self._log("Session stopped")
        if was_active:
            self._unwind()
        else:
            self._finish()
        return self.get_session_state()

    def check_risk(self) -> list[OrderResult]:
        """Sweep held positions for breached protective thresholds."""
        if self._state.stage != SessionStage.ACTIVE:
            return []
        results = self.monitor.sweep()
        for result in results:
            if result.success:
                self._log(
                    f"Protective exit: sold {result.order.quantity} "
                    f"{result.order.symbol} @ {result.order.price}"
                )
        return results

    async def _maybe_call(self, callback: Callback) -> None:
        result = callback()
        if inspect.isawaitable(result):
            await result

    async def _run_periodic(
        self,
        name: str,
        interval: float,
        callback: Callback,
        stop_event: asyncio.Event,
    ) -> None:
        loop = asyncio.get_running_loop()
        while not stop_event.is_set():
            start = loop.time()
            try:
                await self._maybe_call(callback)
            except Exception:
                logger.exception(f"Scheduler {name} check failed")
            delay = max(0.0, interval - (loop.time() - start))
            if delay:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass

    def _stop_if_idle(self, stop_event: asyncio.Event) -> None:
        if self._state.stage == SessionStage.IDLE:
            stop_event.set()

    async def run(
        self,
        stop_event: asyncio.Event | None = None,
        stop_when_idle: bool = False,
    ) -> None:
        """Drive the periodic entry, exit and risk checks until stopped.

        Args:
            stop_event: Event that ends the loops when set.
            stop_when_idle: Also end the loops once the session is idle.
        """
        if stop_event is None:
            stop_event = asyncio.Event()

        async with asyncio.TaskGroup() as group:
            group.create_task(
                self._run_periodic(
                    "entry",
                    self.intervals.entry_check_seconds,
                    self.check_entry,
                    stop_event,
                )
            )
            group.create_task(
                self._run_periodic(
                    "exit",
                    self.intervals.exit_check_seconds,
                    self.check_exit,
                    stop_event,
                )
            )
            group.create_task(
                self._run_periodic(
                    "risk",
                    self.intervals.risk_check_seconds,
                    self.check_risk,
                    stop_event,
                )
            )
            if stop_when_idle:
                group.create_task(
                    self._run_periodic(
                        "idle",
                        self.intervals.exit_check_seconds,
                        lambda: self._stop_if_idle(stop_event),
                        stop_event,
                    )
                )
            await stop_event.wait()
