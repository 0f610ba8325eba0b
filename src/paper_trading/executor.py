"""Virtual Order Executor for Paper Trading Engine.

This module simulates market order execution against the ledger: input
validation, slippage modeling, fee calculation, funds/holdings checks and the
ledger update all happen in one atomic store transaction.
"""

import logging
import random
from collections.abc import Callable
from datetime import datetime
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

from src.paper_trading.charges import fee_schedule_for
from src.paper_trading.errors import (
    InsufficientFundsError,
    InsufficientHoldingsError,
    OrderRejectedError,
)
from src.paper_trading.events import EventBus, TradeEvent, TradeEventType
from src.paper_trading.models import (
    ChargeBreakdown,
    LedgerState,
    OrderRecord,
    OrderResult,
    OrderSide,
    OrderStatus,
    ProductType,
    RejectionReason,
    new_order_id,
    normalize_symbol,
)
from src.paper_trading.positions import QUANTITY_TOLERANCE, apply_fill
from src.paper_trading.storage import LedgerStore

logger = logging.getLogger(__name__)

QUANTITY_STEP = Decimal("0.00000001")
PRICE_STEP = Decimal("0.0001")

SlippageModel = Callable[[OrderSide, float], float]


class RandomSlippage:
    """Uniform random slippage in [-max_pct, +max_pct]."""

    def __call__(self, side: OrderSide, max_pct: float) -> float:
        return random.uniform(-max_pct, max_pct)  # noqa: S311 - simulation


class NoSlippage:
    """Fills exactly at the reference price."""

    def __call__(self, side: OrderSide, max_pct: float) -> float:
        return 0.0


def amount_to_quantity(
    amount: Decimal, price: Decimal, allow_fractional: bool = True
) -> Decimal:
    """Convert a cash amount into a quantity at the given price.

    The quantity is floored to 8 decimals, or to whole units when fractional
    shares are disabled.
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    raw = Decimal(amount) / Decimal(price)
    if allow_fractional:
        return raw.quantize(QUANTITY_STEP, rounding=ROUND_DOWN)
    return raw.to_integral_value(rounding=ROUND_DOWN)


def quantity_to_amount(quantity: Decimal, price: Decimal) -> Decimal:
    """Return the value of a quantity at the given price, rounded to cents."""
    return (Decimal(quantity) * Decimal(price)).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )


def _to_decimal(value: Decimal | float | int | str | None, name: str) -> Decimal | None:
    if value is None:
        return None
    try:
        result = Decimal(str(value))
    except InvalidOperation as e:
        raise OrderRejectedError(
            RejectionReason.INVALID_INPUT, f"{name} is not a number: {value!r}"
        ) from e
    if not result.is_finite():
        raise OrderRejectedError(
            RejectionReason.INVALID_INPUT, f"{name} must be finite"
        )
    return result


class OrderExecutor:
    """Executes simulated market orders against the ledger.

    Each submission is a single read-modify-write transaction on the
    LedgerStore, so the price read, sizing and ledger update cannot interleave
    with another operation. There are no partial fills.
    """

    def __init__(
        self,
        store: LedgerStore,
        event_bus: EventBus | None = None,
        slippage_model: SlippageModel | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the executor.

        Args:
            store: Ledger store to execute against.
            event_bus: Bus receiving order notifications (private bus if None).
            slippage_model: Callable returning the slippage fraction for a
                side and a max fraction (RandomSlippage if None).
            clock: Time source for order timestamps.
        """
        self.store = store
        self.event_bus = event_bus or EventBus()
        self.slippage_model = slippage_model or RandomSlippage()
        self.clock = clock

    def submit(
        self,
        symbol: str,
        side: OrderSide | str,
        amount: Decimal | float | str | None = None,
        quantity: Decimal | float | str | None = None,
        stop_loss: Decimal | float | str | None = None,
        take_profit: Decimal | float | str | None = None,
        product_type: ProductType | str | None = None,
        strategy: str | None = None,
    ) -> OrderResult:
        """Submit a market order.

        Exactly one sizing input is used: ``quantity`` when given, otherwise
        ``amount`` converted at the cached price.

        Args:
            symbol: Instrument symbol (case-insensitive).
            side: BUY or SELL.
            amount: Cash amount to trade.
            quantity: Units to trade.
            stop_loss: Absolute stop-loss threshold stored on a BUY.
            take_profit: Absolute take-profit threshold stored on a BUY.
            product_type: Fee regime (ledger default if None).
            strategy: Optional tag recorded on the order.

        Returns:
            OrderResult with the filled order or the rejection reason.
        """
        key = normalize_symbol(symbol)
        try:
            request = self._validate(
                key, side, amount, quantity, stop_loss, take_profit, product_type
            )
            order = self.store.write_atomic(
                lambda state: self._execute(state, key, strategy, **request)
            )
        except OrderRejectedError as e:
            logger.info(f"Order rejected for {key or symbol!r}: {e.reason.value}: {e}")
            self.event_bus.publish(
                TradeEvent(
                    event_type=TradeEventType.ORDER_FAILED,
                    timestamp=self.clock(),
                    symbol=key,
                    reason=e.reason,
                    message=str(e),
                )
            )
            return OrderResult.rejected(e.reason, str(e))

        logger.info(
            f"Filled {order.side.value} {order.quantity} {order.symbol} "
            f"@ {order.price} (net {order.net_amount} {order.currency})"
        )
        for event_type in (
            TradeEventType.ORDER_CONFIRMED,
            TradeEventType.TRADE_EXECUTED,
        ):
            self.event_bus.publish(
                TradeEvent(
                    event_type=event_type,
                    timestamp=order.timestamp,
                    symbol=order.symbol,
                    order=order,
                )
            )
        return OrderResult.filled(order)

    def _validate(
        self,
        symbol: str,
        side: OrderSide | str,
        amount: Decimal | float | str | None,
        quantity: Decimal | float | str | None,
        stop_loss: Decimal | float | str | None,
        take_profit: Decimal | float | str | None,
        product_type: ProductType | str | None,
    ) -> dict:
        """Validate and normalize order inputs.

        Raises:
            OrderRejectedError: With reason INVALID_INPUT.
        """
        if not symbol:
            raise OrderRejectedError(
                RejectionReason.INVALID_INPUT, "Symbol is required"
            )

        try:
            order_side = OrderSide(str(getattr(side, "value", side)).upper())
        except ValueError as e:
            raise OrderRejectedError(
                RejectionReason.INVALID_INPUT, f"Unknown order side: {side!r}"
            ) from e

        try:
            product = ProductType(product_type) if product_type is not None else None
        except ValueError as e:
            raise OrderRejectedError(
                RejectionReason.INVALID_INPUT, f"Unknown product type: {product_type!r}"
            ) from e

        qty = _to_decimal(quantity, "quantity")
        amt = _to_decimal(amount, "amount")
        if qty is None and amt is None:
            raise OrderRejectedError(
                RejectionReason.INVALID_INPUT, "Either amount or quantity is required"
            )
        if qty is not None and qty <= 0:
            raise OrderRejectedError(
                RejectionReason.INVALID_INPUT, "Quantity must be positive"
            )
        if qty is None and amt is not None and amt <= 0:
            raise OrderRejectedError(
                RejectionReason.INVALID_INPUT, "Amount must be positive"
            )

        sl = _to_decimal(stop_loss, "stop_loss")
        tp = _to_decimal(take_profit, "take_profit")
        for name, threshold in (("stop_loss", sl), ("take_profit", tp)):
            if threshold is not None and threshold <= 0:
                raise OrderRejectedError(
                    RejectionReason.INVALID_INPUT, f"{name} must be positive"
                )

        return {
            "side": order_side,
            "amount": amt,
            "quantity": qty,
            "stop_loss": sl,
            "take_profit": tp,
            "product_type": product,
        }

    def _execute(
        self,
        state: LedgerState,
        symbol: str,
        strategy: str | None,
        side: OrderSide,
        amount: Decimal | None,
        quantity: Decimal | None,
        stop_loss: Decimal | None,
        take_profit: Decimal | None,
        product_type: ProductType | None,
    ) -> OrderRecord:
        """Execute a validated order on the working copy of the ledger."""
        config = state.config

        price = state.last_price(symbol)
        if price is None:
            raise OrderRejectedError(
                RejectionReason.PRICE_UNAVAILABLE, f"No price available for {symbol}"
            )

        if quantity is None:
            if amount is None:
                raise OrderRejectedError(
                    RejectionReason.INVALID_INPUT,
                    "Either amount or quantity is required",
                )
            quantity = amount_to_quantity(amount, price, config.allow_fractional)
            if quantity <= 0:
                raise OrderRejectedError(
                    RejectionReason.INVALID_INPUT,
                    f"Amount {amount} buys no units of {symbol} at {price}",
                )
        elif not config.allow_fractional and quantity != quantity.to_integral_value():
            raise OrderRejectedError(
                RejectionReason.INVALID_INPUT, "Fractional quantities are disabled"
            )

        fill_price = self._simulate_fill_price(side, price, config.slippage_pct)
        breakdown = fee_schedule_for(symbol, config.commission).calculate(
            side, quantity, fill_price, product_type or config.product_type
        )

        position = state.positions.get(symbol)
        if side == OrderSide.BUY:
            if state.wallet.cash < breakdown.net_amount:
                raise InsufficientFundsError(
                    f"Insufficient funds for {symbol}: need "
                    f"{breakdown.net_amount}, have {state.wallet.cash}"
                )
            state.wallet.cash -= breakdown.net_amount
        else:
            held = position.quantity if position else Decimal("0")
            if held + QUANTITY_TOLERANCE < quantity:
                raise InsufficientHoldingsError(
                    f"Insufficient holdings in {symbol}: need {quantity}, have {held}"
                )
            state.wallet.cash += breakdown.net_amount

        now = self.clock()
        updated = apply_fill(position, symbol, side, quantity, fill_price, now)
        if updated is None:
            state.positions.pop(symbol, None)
        else:
            if side == OrderSide.BUY:
                extra = {}
                if position is None:
                    extra["product_type"] = breakdown.product_type
                if stop_loss is not None:
                    extra["stop_loss"] = stop_loss
                if take_profit is not None:
                    extra["take_profit"] = take_profit
                if extra:
                    updated = updated.model_copy(update=extra)
            state.positions[symbol] = updated

        order = OrderRecord(
            id=new_order_id(now),
            timestamp=now,
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=fill_price,
            gross_amount=breakdown.gross_amount,
            charges=breakdown.charges,
            total_charges=breakdown.total_charges,
            net_amount=breakdown.net_amount,
            status=OrderStatus.FILLED,
            currency=breakdown.currency,
            product_type=breakdown.product_type,
            strategy=strategy,
        )
        state.orders.insert(0, order)
        return order

    def _simulate_fill_price(
        self, side: OrderSide, price: Decimal, max_pct: float
    ) -> Decimal:
        """Apply slippage to the reference price.

        Args:
            side: Order side passed to the slippage model.
            price: Cached reference price.
            max_pct: Maximum slippage fraction.

        Returns:
            Fill price rounded to 4 decimals.
        """
        fraction = Decimal(str(self.slippage_model(side, max_pct)))
        fill_price = price * (Decimal("1") + fraction)
        return fill_price.quantize(PRICE_STEP, rounding=ROUND_HALF_UP)

    def preview(
        self,
        symbol: str,
        side: OrderSide | str,
        quantity: Decimal | float | str,
        price: Decimal | float | str | None = None,
        product_type: ProductType | str | None = None,
    ) -> ChargeBreakdown:
        """Preview the fee breakdown of an order without executing it.

        Args:
            symbol: Instrument symbol.
            side: BUY or SELL.
            quantity: Units to trade.
            price: Reference price (cached price if None).
            product_type: Fee regime (ledger default if None).

        Returns:
            ChargeBreakdown at the reference price, without slippage.

        Raises:
            ValueError: If no price is available or inputs are invalid.
        """
        state = self.store.read()
        order_side = OrderSide(str(getattr(side, "value", side)).upper())
        if price is None:
            reference = state.last_price(symbol)
            if reference is None:
                raise ValueError(f"No price available for {normalize_symbol(symbol)}")
        else:
            reference = Decimal(str(price))

        schedule = fee_schedule_for(symbol, state.config.commission)
        return schedule.calculate(
            order_side,
            Decimal(str(quantity)),
            reference,
            ProductType(product_type) if product_type else state.config.product_type,
        )
