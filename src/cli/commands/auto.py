"""Automated trading commands.

``auto start`` reads a session configuration (JSON) and, unless
``--detach`` is given, drives the session in the foreground until it
returns to idle. A detached session is persisted and can be driven later
with ``auto run``.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.panel import Panel
from rich.table import Table

from src.cli.commands.common import console, open_session
from src.paper_trading.errors import SessionAlreadyActiveError
from src.paper_trading.models import AutoTradingConfig, AutoTradingState
from src.paper_trading.session import PaperTradingSession

logger = logging.getLogger(__name__)

auto_app = typer.Typer(
    help="Run automated strategy sessions.",
    no_args_is_help=True,
)


def _load_config(config_file: Path) -> AutoTradingConfig:
    if not config_file.exists():
        console.print(f"[red]Error:[/red] Config file not found: {config_file}")
        raise typer.Exit(code=1)
    try:
        return AutoTradingConfig.model_validate_json(
            config_file.read_text(encoding="utf-8")
        )
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid session config: {e}")
        raise typer.Exit(code=1) from e


def _drive(session: PaperTradingSession) -> None:
    """Run the periodic session checks until the session is idle."""
    try:
        asyncio.run(session.scheduler.run(stop_when_idle=True))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted; stopping session.[/yellow]")
        session.stop_auto_trading()


def _print_state(state: AutoTradingState, log_lines: int = 10) -> None:
    opened = ", ".join(f"{p.symbol} x {p.quantity}" for p in state.opened_positions)
    strategy = state.config.strategy if state.config else "-"
    console.print(
        Panel(
            f"Stage: [bold]{state.stage.value}[/bold]\n"
            f"Strategy: {strategy}\n"
            f"Opened: {opened or '-'}",
            title="[bold cyan]Automated Session[/bold cyan]",
        )
    )
    if log_lines and state.logs:
        table = Table(show_header=True, title="Session Log")
        table.add_column("Time")
        table.add_column("Message")
        for entry in state.logs[-log_lines:]:
            table.add_row(entry.timestamp.strftime("%H:%M:%S"), entry.message)
        console.print(table)


@auto_app.command("start")
def start(
    config_file: Path = typer.Option(
        ..., "--config", "-c", help="Session configuration (JSON)."
    ),
    detach: bool = typer.Option(
        False, "--detach", help="Start and return without driving the session."
    ),
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
) -> None:
    """Start an automated trading session.

    Example:
        paperdesk auto start --config momentum.json
    """
    config = _load_config(config_file)
    session = open_session(db_path, ledger_id)
    try:
        state = asyncio.run(session.start_auto_trading(config))
    except SessionAlreadyActiveError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    _print_state(state)
    if not detach and state.stage.value != "idle":
        _drive(session)
        _print_state(session.get_auto_trading_state())


@auto_app.command("run")
def run(
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
) -> None:
    """Drive a persisted session until it completes."""
    session = open_session(db_path, ledger_id)
    if session.get_auto_trading_state().stage.value == "idle":
        console.print("[yellow]No automated session in progress.[/yellow]")
        return
    _drive(session)
    _print_state(session.get_auto_trading_state())


@auto_app.command("stop")
def stop(
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
) -> None:
    """Stop the session and close the positions it opened."""
    state = open_session(db_path, ledger_id).stop_auto_trading()
    _print_state(state)


@auto_app.command("status")
def status(
    logs: int = typer.Option(10, "--logs", "-n", min=0, help="Log lines to show."),
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
) -> None:
    """Show the automated session state."""
    _print_state(open_session(db_path, ledger_id).get_auto_trading_state(), logs)
