"""Account command for ledger monitoring.

This command displays the paper trading account: cash, equity, open
positions with unrealized P&L, and the most recent orders.
"""

import json
import logging
from decimal import Decimal
from typing import Optional

import typer
from rich.panel import Panel
from rich.table import Table

from src.cli.commands.common import console, open_session
from src.paper_trading.models import LedgerState

logger = logging.getLogger(__name__)


def account(
    db_path: Optional[str] = typer.Option(
        None,
        "--database",
        "-d",
        help="Path to paper trading database (default: PAPERDESK_DB_PATH).",
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
    output_format: str = typer.Option(
        "rich",
        "--format",
        "-f",
        help="Output format: 'rich' (default), 'json', or 'plain'.",
    ),
    orders: int = typer.Option(
        10, "--orders", "-n", min=0, help="Number of recent orders to show."
    ),
) -> None:
    """Display the paper trading account status.

    Example:
        paperdesk account
        paperdesk account --format json --orders 0
    """
    if output_format not in ("rich", "json", "plain"):
        console.print(f"[red]Error:[/red] Invalid output format: {output_format}")
        raise typer.Exit(code=1)

    try:
        session = open_session(db_path, ledger_id)
        state = session.get_ledger()
    except Exception as e:
        logger.exception("Failed to load account")
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    data = _summarize(state, orders)

    if output_format == "json":
        console.print(json.dumps(data, indent=2, default=str))
    elif output_format == "plain":
        _display_plain(data)
    else:
        _display_rich(data)


def _summarize(state: LedgerState, order_count: int) -> dict:
    """Build a plain summary of the ledger.

    Args:
        state: Ledger snapshot
        order_count: Number of recent orders to include

    Returns:
        Account summary dictionary
    """
    positions = []
    positions_value = Decimal("0")
    for symbol, position in sorted(state.positions.items()):
        price = state.last_price(symbol) or position.average_price
        value = position.quantity * price
        positions_value += value
        positions.append(
            {
                "symbol": symbol,
                "quantity": float(position.quantity),
                "average_price": float(position.average_price),
                "last_price": float(price),
                "market_value": float(value),
                "unrealized_pnl": float(value - position.cost_basis),
                "stop_loss": float(position.stop_loss) if position.stop_loss else None,
                "take_profit": (
                    float(position.take_profit) if position.take_profit else None
                ),
            }
        )

    return {
        "currency": state.config.currency,
        "cash": float(state.wallet.cash),
        "positions_value": float(positions_value),
        "equity": float(state.wallet.cash + positions_value),
        "positions": positions,
        "orders": [
            {
                "id": o.id,
                "timestamp": o.timestamp.isoformat(),
                "symbol": o.symbol,
                "side": o.side.value,
                "quantity": float(o.quantity),
                "price": float(o.price),
                "total_charges": float(o.total_charges),
                "net_amount": float(o.net_amount),
            }
            for o in state.orders[:order_count]
        ],
        "watchlist": state.watchlist,
    }


def _display_plain(data: dict) -> None:
    """Display the account in plain text format."""
    currency = data["currency"]
    print(f"Cash: {data['cash']:,.2f} {currency}")
    print(f"Equity: {data['equity']:,.2f} {currency}")
    print()
    print("Positions:")
    for pos in data["positions"]:
        print(
            f"  {pos['symbol']}: {pos['quantity']} @ {pos['average_price']:.2f} "
            f"(last {pos['last_price']:.2f}, P&L {pos['unrealized_pnl']:+,.2f})"
        )
    if data["orders"]:
        print()
        print("Recent orders:")
        for order in data["orders"]:
            print(
                f"  {order['timestamp']} {order['side']} {order['quantity']} "
                f"{order['symbol']} @ {order['price']:.4f}"
            )


def _display_rich(data: dict) -> None:
    """Display the account with rich formatting."""
    currency = data["currency"]
    console.print()
    console.print(
        Panel(
            f"[bold]Equity: {data['equity']:,.2f} {currency}[/bold]\n"
            f"Cash: {data['cash']:,.2f} {currency}\n"
            f"Positions: {data['positions_value']:,.2f} {currency}",
            title="[bold cyan]Paper Trading Account[/bold cyan]",
        )
    )

    pos_table = Table(title="Open Positions", show_header=True)
    pos_table.add_column("Symbol", style="cyan")
    pos_table.add_column("Quantity", justify="right")
    pos_table.add_column("Avg Price", justify="right")
    pos_table.add_column("Last", justify="right")
    pos_table.add_column("Value", justify="right")
    pos_table.add_column("P&L", justify="right")
    pos_table.add_column("SL / TP", justify="right")

    for pos in data["positions"]:
        pnl = pos["unrealized_pnl"]
        pnl_color = "green" if pnl >= 0 else "red"
        protection = (
            f"{pos['stop_loss'] or '-'} / {pos['take_profit'] or '-'}"
            if pos["stop_loss"] or pos["take_profit"]
            else "-"
        )
        pos_table.add_row(
            pos["symbol"],
            f"{pos['quantity']:g}",
            f"{pos['average_price']:,.2f}",
            f"{pos['last_price']:,.2f}",
            f"{pos['market_value']:,.2f}",
            f"[{pnl_color}]{pnl:+,.2f}[/{pnl_color}]",
            protection,
        )
    console.print(pos_table)

    if data["orders"]:
        order_table = Table(title="Recent Orders", show_header=True)
        order_table.add_column("Time")
        order_table.add_column("Side", justify="center")
        order_table.add_column("Symbol", style="cyan")
        order_table.add_column("Quantity", justify="right")
        order_table.add_column("Price", justify="right")
        order_table.add_column("Charges", justify="right")
        order_table.add_column("Net", justify="right")
        for order in data["orders"]:
            side_color = "green" if order["side"] == "BUY" else "yellow"
            order_table.add_row(
                order["timestamp"][:19],
                f"[{side_color}]{order['side']}[/{side_color}]",
                order["symbol"],
                f"{order['quantity']:g}",
                f"{order['price']:,.4f}",
                f"{order['total_charges']:,.2f}",
                f"{order['net_amount']:,.2f}",
            )
        console.print(order_table)
