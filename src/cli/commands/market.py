"""Market commands: price updates and fee previews."""

import logging
from typing import Optional

import typer
from rich.table import Table

from src.cli.commands.common import console, open_session, to_decimal
from src.data.fetchers.base import FetchError
from src.data.fetchers.yahoo import YahooQuoteFetcher
from src.paper_trading.models import OrderSide, ProductType

logger = logging.getLogger(__name__)


def price(
    symbol: str = typer.Argument(..., help="Instrument symbol."),
    value: Optional[float] = typer.Argument(
        None, help="Price to set. Omit with --fetch to use a live quote."
    ),
    fetch: bool = typer.Option(
        False, "--fetch", help="Fetch the last price from Yahoo Finance."
    ),
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
) -> None:
    """Set the market price of a symbol.

    Updating a price runs the protective stop-loss/take-profit checks.

    Example:
        paperdesk price RELIANCE.NS 2850.5
        paperdesk price AAPL --fetch
    """
    if value is None and not fetch:
        console.print("[red]Error:[/red] Provide a price or --fetch.")
        raise typer.Exit(code=1)

    try:
        if fetch:
            with console.status(f"[bold blue]Fetching {symbol}...[/bold blue]"):
                quote = YahooQuoteFetcher().fetch_quote(symbol.upper())
            new_price = quote.price
        else:
            new_price = to_decimal(value)

        session = open_session(db_path, ledger_id)
        entry = session.set_price(symbol, new_price)
    except (ValueError, FetchError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    console.print(f"{symbol.upper()}: [bold]{entry.price}[/bold]")

    state = session.get_ledger()
    for order in state.orders:
        if order.strategy == "protective_exit" and order.timestamp >= entry.timestamp:
            console.print(
                f"[yellow]Protective exit:[/yellow] sold {order.quantity} "
                f"{order.symbol} @ {order.price}"
            )


def fees(
    symbol: str = typer.Argument(..., help="Instrument symbol (selects the market)."),
    side: str = typer.Argument(..., help="BUY or SELL."),
    quantity: float = typer.Argument(..., min=0, help="Units traded."),
    trade_price: Optional[float] = typer.Argument(
        None, min=0, help="Price per unit. Omit to use the cached price."
    ),
    product: Optional[str] = typer.Option(
        None,
        "--product",
        help="Fee regime: 'delivery' or 'intraday' (ledger default if omitted).",
    ),
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
) -> None:
    """Preview the charges of a trade under the ledger's fee settings.

    Example:
        paperdesk fees TCS.NS BUY 10 100
        paperdesk fees INFY.NS SELL 50 1500 --product intraday
        paperdesk fees AAPL SELL 20
    """
    try:
        order_side = OrderSide(side.upper())
        product_type = ProductType(product.lower()) if product else None
        session = open_session(db_path, ledger_id)
        breakdown = session.executor.preview(
            symbol,
            order_side,
            to_decimal(quantity),
            to_decimal(trade_price),
            product_type,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(
        title=(
            f"{order_side.value} {quantity:g} {symbol.upper()} @ {breakdown.price} "
            f"({breakdown.product_type.value}, {breakdown.currency})"
        ),
        show_header=True,
    )
    table.add_column("Component", style="cyan")
    table.add_column("Amount", justify="right")
    table.add_row("Turnover", f"{breakdown.gross_amount:,.2f}")
    for name, amount in breakdown.charges.model_dump().items():
        table.add_row(name.replace("_", " ").title(), f"{amount:,.2f}")
    table.add_row("[bold]Total charges[/bold]", f"{breakdown.total_charges:,.2f}")
    table.add_row("[bold]Net amount[/bold]", f"{breakdown.net_amount:,.2f}")
    console.print(table)
