"""Protective order monitor for the Paper Trading Engine.

Stop-loss and take-profit thresholds are absolute prices stored on a
position. The monitor evaluates them on every price tick (push-based, via the
price feed subscription) and on demand through ``sweep``; a breached threshold
closes the whole position with a market SELL and is then cleared.
"""

import logging
import threading
from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal

from src.paper_trading.events import EventBus, TradeEvent, TradeEventType
from src.paper_trading.executor import OrderExecutor
from src.paper_trading.models import (
    AutoTradingConfig,
    LedgerState,
    OrderResult,
    OrderSide,
    normalize_symbol,
)
from src.paper_trading.price_feed import PriceFeed
from src.paper_trading.storage import LedgerStore

logger = logging.getLogger(__name__)

PROTECTIVE_STRATEGY = "protective_exit"


def thresholds_from_percent(
    reference_price: Decimal,
    stop_loss_pct: float | None,
    take_profit_pct: float | None,
) -> tuple[Decimal | None, Decimal | None]:
    """Convert percentage distances into absolute thresholds.

    Args:
        reference_price: Price the distances are measured from.
        stop_loss_pct: Stop-loss distance in percent below the reference.
        take_profit_pct: Take-profit distance in percent above the reference.

    Returns:
        Tuple of (stop_loss, take_profit), each rounded to 4 decimals.
    """
    step = Decimal("0.0001")
    stop_loss = None
    take_profit = None
    if stop_loss_pct is not None:
        factor = Decimal("1") - Decimal(str(stop_loss_pct)) / Decimal("100")
        stop_loss = (reference_price * factor).quantize(step, rounding=ROUND_HALF_UP)
    if take_profit_pct is not None:
        factor = Decimal("1") + Decimal(str(take_profit_pct)) / Decimal("100")
        take_profit = (reference_price * factor).quantize(
            step, rounding=ROUND_HALF_UP
        )
    return stop_loss, take_profit


def thresholds_from_config(
    reference_price: Decimal, config: AutoTradingConfig
) -> tuple[Decimal | None, Decimal | None]:
    """Absolute thresholds for a session entry filled at reference_price.

    Percentage settings are converted with ``thresholds_from_percent``; fixed
    settings are price distances below (stop-loss) and above (take-profit) the
    reference.
    """
    stop_loss, take_profit = thresholds_from_percent(
        reference_price,
        config.stop_loss_pct if config.stop_loss_type == "percentage" else None,
        config.take_profit_pct if config.take_profit_type == "percentage" else None,
    )
    if config.stop_loss_type == "fixed":
        stop_loss = reference_price - config.stop_loss_amount
    if config.take_profit_type == "fixed":
        take_profit = reference_price + config.take_profit_amount
    return stop_loss, take_profit


class ProtectiveOrderMonitor:
    """Closes positions whose stored protective thresholds are breached."""

    def __init__(
        self,
        store: LedgerStore,
        executor: OrderExecutor,
        event_bus: EventBus | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            store: Ledger store holding positions and prices.
            executor: Executor used for closing orders.
            event_bus: Bus receiving PROTECTIVE_EXIT (executor's bus if None).
        """
        self.store = store
        self.executor = executor
        self.event_bus = event_bus or executor.event_bus
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()

    def attach(self, feed: PriceFeed) -> Callable[[], None]:
        """Subscribe to a price feed and return the unsubscribe function."""
        return feed.subscribe(self.on_price)

    def on_price(self, symbol: str, price: Decimal) -> OrderResult | None:
        """Evaluate a tick against the position's thresholds.

        Args:
            symbol: Symbol of the tick.
            price: Tick price.

        Returns:
            Result of the closing order, or None if nothing was triggered.
        """
        key = normalize_symbol(symbol)
        return self._evaluate(self.store.read(), key, Decimal(price))

    def sweep(self) -> list[OrderResult]:
        """Evaluate every protected position against its cached price."""
        state = self.store.read()
        results = []
        for symbol, position in state.positions.items():
            if not position.has_protection:
                continue
            price = state.last_price(symbol)
            if price is None:
                continue
            result = self._evaluate(state, symbol, price)
            if result is not None:
                results.append(result)
        return results

    def _evaluate(
        self, state: LedgerState, symbol: str, price: Decimal
    ) -> OrderResult | None:
        position = state.positions.get(symbol)
        if position is None or not position.has_protection:
            return None

        if position.stop_loss is not None and price <= position.stop_loss:
            trigger = "stop_loss"
            threshold = position.stop_loss
        elif position.take_profit is not None and price >= position.take_profit:
            trigger = "take_profit"
            threshold = position.take_profit
        else:
            return None

        with self._lock:
            if symbol in self._in_flight:
                return None
            self._in_flight.add(symbol)

        try:
            logger.info(
                f"{trigger} hit for {symbol}: price {price} vs threshold {threshold}"
            )
            result = self.executor.submit(
                symbol,
                OrderSide.SELL,
                quantity=position.quantity,
                product_type=position.product_type,
                strategy=PROTECTIVE_STRATEGY,
            )
            if not result.success:
                logger.warning(
                    f"Protective exit for {symbol} failed "
                    f"({result.reason.value if result.reason else 'unknown'}): "
                    f"{result.message}; thresholds kept"
                )
                return result

            self._clear_thresholds(symbol)
            self.event_bus.publish(
                TradeEvent(
                    event_type=TradeEventType.PROTECTIVE_EXIT,
                    timestamp=result.order.timestamp,
                    symbol=symbol,
                    order=result.order,
                    message=f"{trigger} at {price} (threshold {threshold})",
                )
            )
            return result
        finally:
            with self._lock:
                self._in_flight.discard(symbol)

    def _clear_thresholds(self, symbol: str) -> None:
        """Clear both thresholds if the position survived the exit."""
        if symbol not in self.store.read().positions:
            return

        def _clear(state: LedgerState) -> None:
            position = state.positions.get(symbol)
            if position is not None:
                state.positions[symbol] = position.model_copy(
                    update={"stop_loss": None, "take_profit": None}
                )

        self.store.write_atomic(_clear)

    def set_thresholds(
        self,
        symbol: str,
        stop_loss: Decimal | None = None,
        take_profit: Decimal | None = None,
    ) -> bool:
        """Store thresholds on an existing position.

        Thresholds left as None keep their current value.

        Args:
            symbol: Position symbol.
            stop_loss: Absolute stop-loss price.
            take_profit: Absolute take-profit price.

        Returns:
            True if the position exists and was updated.

        Raises:
            ValueError: If a threshold is not positive.
        """
        key = normalize_symbol(symbol)
        update = {}
        for name, value in (("stop_loss", stop_loss), ("take_profit", take_profit)):
            if value is None:
                continue
            value = Decimal(str(value))
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
            update[name] = value

        if key not in self.store.read().positions:
            return False
        if not update:
            return True

        def _store(state: LedgerState) -> bool:
            position = state.positions.get(key)
            if position is None:
                return False
            state.positions[key] = position.model_copy(update=update)
            return True

        updated = self.store.write_atomic(_store)
        if updated:
            logger.info(f"Protective thresholds for {key}: {update}")
        return updated
