"""Position bookkeeping for simulated fills.

Applies a fill to a position, maintaining the weighted average cost and the
open/partial/closed lifecycle. Short positions are not supported.
"""

from datetime import datetime
from decimal import Decimal

from src.paper_trading.errors import InsufficientHoldingsError
from src.paper_trading.models import OrderSide, Position

QUANTITY_TOLERANCE = Decimal("1e-9")


def apply_fill(
    position: Position | None,
    symbol: str,
    side: OrderSide,
    quantity: Decimal,
    fill_price: Decimal,
    filled_at: datetime | None = None,
) -> Position | None:
    """Apply a fill to a position.

    Args:
        position: Existing position, or None if nothing is held.
        symbol: Instrument symbol.
        side: BUY or SELL.
        quantity: Units filled (positive).
        fill_price: Execution price.
        filled_at: Fill time, used as the opening time of a new position.

    Returns:
        The updated position, or None when the position is closed.

    Raises:
        InsufficientHoldingsError: If a sell exceeds the quantity held.
        ValueError: If quantity is not positive.
    """
    if quantity <= 0:
        raise ValueError(f"quantity must be positive, got {quantity}")

    held = position.quantity if position else Decimal("0")

    if OrderSide(side) == OrderSide.BUY:
        new_quantity = held + quantity
        old_cost = position.average_price * held if position else Decimal("0")
        new_average = (old_cost + fill_price * quantity) / new_quantity

        if position is None:
            return Position(
                symbol=symbol,
                quantity=new_quantity,
                average_price=new_average,
                opened_at=filled_at or datetime.now(),
            )
        return position.model_copy(
            update={"quantity": new_quantity, "average_price": new_average}
        )

    if held + QUANTITY_TOLERANCE < quantity:
        raise InsufficientHoldingsError(
            f"Insufficient holdings in {symbol}: need {quantity}, have {held}"
        )

    remaining = held - quantity
    if position is None or remaining <= QUANTITY_TOLERANCE:
        return None

    return position.model_copy(update={"quantity": remaining})
