"""Trade commands for simulated market orders.

``trade buy`` and ``trade sell`` submit a market order against the cached
price of the symbol. ``--price`` updates the cached price first.
"""

import logging
from typing import Optional

import typer

from src.cli.commands.common import (
    console,
    open_session,
    print_order_result,
    to_decimal,
)
from src.paper_trading.models import OrderSide, ProductType

logger = logging.getLogger(__name__)

trade_app = typer.Typer(
    help="Submit simulated market orders.",
    no_args_is_help=True,
)


def _submit(
    side: OrderSide,
    symbol: str,
    quantity: Optional[float],
    amount: Optional[float],
    price: Optional[float],
    product: Optional[str],
    stop_loss: Optional[float],
    take_profit: Optional[float],
    db_path: Optional[str],
    ledger_id: Optional[str],
) -> None:
    if quantity is None and amount is None:
        console.print("[red]Error:[/red] Provide --quantity or --amount.")
        raise typer.Exit(code=1)

    if product is not None and product.lower() not in {p.value for p in ProductType}:
        console.print(
            f"[red]Error:[/red] Invalid product type. "
            f"Choose from: {', '.join(p.value for p in ProductType)}"
        )
        raise typer.Exit(code=1)

    try:
        session = open_session(db_path, ledger_id)
        if price is not None:
            session.set_price(symbol, to_decimal(price))
        result = session.executor.submit(
            symbol,
            side,
            amount=to_decimal(amount),
            quantity=to_decimal(quantity),
            stop_loss=to_decimal(stop_loss),
            take_profit=to_decimal(take_profit),
            product_type=product.lower() if product else None,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e
    except Exception as e:
        logger.exception("Order submission failed")
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    print_order_result(result)
    if not result.success:
        raise typer.Exit(code=1)


@trade_app.command("buy")
def buy(
    symbol: str = typer.Argument(..., help="Instrument symbol, e.g. RELIANCE.NS"),
    quantity: Optional[float] = typer.Option(
        None, "--quantity", "-q", help="Units to buy."
    ),
    amount: Optional[float] = typer.Option(
        None, "--amount", "-a", help="Cash amount to invest."
    ),
    price: Optional[float] = typer.Option(
        None, "--price", "-p", help="Set the market price before ordering."
    ),
    product: Optional[str] = typer.Option(
        None, "--product", help="Fee regime: 'delivery' or 'intraday'."
    ),
    stop_loss: Optional[float] = typer.Option(
        None, "--stop-loss", help="Absolute stop-loss price."
    ),
    take_profit: Optional[float] = typer.Option(
        None, "--take-profit", help="Absolute take-profit price."
    ),
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
) -> None:
    """Buy at the market price.

    Example:
        paperdesk trade buy TCS.NS --quantity 5 --price 3900
        paperdesk trade buy INFY.NS --amount 20000 --stop-loss 1400
    """
    _submit(
        OrderSide.BUY,
        symbol,
        quantity,
        amount,
        price,
        product,
        stop_loss,
        take_profit,
        db_path,
        ledger_id,
    )


@trade_app.command("sell")
def sell(
    symbol: str = typer.Argument(..., help="Instrument symbol, e.g. RELIANCE.NS"),
    quantity: Optional[float] = typer.Option(
        None, "--quantity", "-q", help="Units to sell."
    ),
    amount: Optional[float] = typer.Option(
        None, "--amount", "-a", help="Cash amount to sell."
    ),
    price: Optional[float] = typer.Option(
        None, "--price", "-p", help="Set the market price before ordering."
    ),
    product: Optional[str] = typer.Option(
        None, "--product", help="Fee regime: 'delivery' or 'intraday'."
    ),
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
) -> None:
    """Sell at the market price.

    Example:
        paperdesk trade sell TCS.NS --quantity 5
    """
    _submit(
        OrderSide.SELL,
        symbol,
        quantity,
        amount,
        price,
        product,
        None,
        None,
        db_path,
        ledger_id,
    )
