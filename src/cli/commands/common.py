"""Helpers shared by the CLI commands."""

from decimal import Decimal
from pathlib import Path
from typing import Optional

from rich.console import Console

from src.config.settings import load_settings
from src.paper_trading.models import OrderResult
from src.paper_trading.session import PaperTradingSession

console = Console()


def open_session(
    db_path: Optional[str] = None, ledger_id: Optional[str] = None
) -> PaperTradingSession:
    """Open the ledger selected by the options, falling back to settings.

    Args:
        db_path: DuckDB file (PAPERDESK_DB_PATH if None).
        ledger_id: Ledger identifier (PAPERDESK_LEDGER_ID if None).

    Returns:
        Session bound to the persisted ledger.
    """
    settings = load_settings()
    return PaperTradingSession.open(
        Path(db_path) if db_path else settings.db_path,
        ledger_id=ledger_id or settings.ledger_id,
        config=settings.engine_config(),
    )


def to_decimal(value: Optional[float]) -> Optional[Decimal]:
    """Convert a float option to Decimal without binary noise."""
    return None if value is None else Decimal(str(value))


def print_order_result(result: OrderResult) -> None:
    """Print the outcome of an order submission."""
    if not result.success:
        console.print(
            f"[red]Rejected:[/red] {result.reason.value if result.reason else ''} "
            f"- {result.message}"
        )
        return

    order = result.order
    color = "green" if order.side.value == "BUY" else "yellow"
    console.print(
        f"[{color}]{order.side.value}[/{color}] {order.quantity} {order.symbol} "
        f"@ {order.price:,.4f} {order.currency}\n"
        f"  Gross: {order.gross_amount:,.2f}  Charges: {order.total_charges:,.2f}  "
        f"Net: {order.net_amount:,.2f}\n"
        f"  Order id: {order.id}"
    )
