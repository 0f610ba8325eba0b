"""Report command for paper trading performance."""

import json
import logging
from typing import Optional

import typer
from rich.table import Table

from src.cli.commands.common import console, open_session

logger = logging.getLogger(__name__)


def _pct(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.2%}"


def report(
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
    output_format: str = typer.Option(
        "rich", "--format", "-f", help="Output format: 'rich' (default) or 'json'."
    ),
) -> None:
    """Show performance metrics of the paper trading ledger.

    Example:
        paperdesk report
        paperdesk report --format json
    """
    summary = open_session(db_path, ledger_id).get_performance_summary()

    if output_format == "json":
        console.print(json.dumps(summary.model_dump(mode="json"), indent=2))
        return

    table = Table(title="Performance Summary", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    return_color = "green" if summary.total_return >= 0 else "red"
    table.add_row("Period", f"{summary.start_date or '-'} to {summary.end_date or '-'}")
    table.add_row("Starting balance", f"{summary.starting_balance:,.2f}")
    table.add_row("Current equity", f"{summary.current_equity:,.2f}")
    table.add_row(
        "Total return",
        f"[{return_color}]{summary.total_return:+.2%}[/{return_color}]",
    )
    table.add_row("Realized P&L", f"{summary.realized_pnl:+,.2f}")
    table.add_row("Unrealized P&L", f"{summary.unrealized_pnl:+,.2f}")
    table.add_row("Total charges", f"{summary.total_charges:,.2f}")
    table.add_row("Trades", str(summary.total_trades))
    table.add_row("Win rate", _pct(summary.win_rate))
    table.add_row("Max drawdown", _pct(summary.max_drawdown))
    table.add_row("Volatility", _pct(summary.volatility))
    console.print(table)
