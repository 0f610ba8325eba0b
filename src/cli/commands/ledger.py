"""Ledger commands: export, import, reset and wallet top-up."""

import logging
from pathlib import Path
from typing import Optional

import typer

from src.cli.commands.common import console, open_session, to_decimal

logger = logging.getLogger(__name__)

ledger_app = typer.Typer(
    help="Export, import and reset the paper trading ledger.",
    no_args_is_help=True,
)


@ledger_app.command("export")
def export_ledger(
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the JSON document to this file."
    ),
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
) -> None:
    """Export the ledger as a JSON document.

    Example:
        paperdesk ledger export --output backup.json
    """
    document = open_session(db_path, ledger_id).export_ledger()
    if output is None:
        typer.echo(document)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(document, encoding="utf-8")
    console.print(f"[green]Ledger exported to {output}[/green]")


@ledger_app.command("import")
def import_ledger(
    source: Path = typer.Argument(..., help="JSON document produced by export."),
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
) -> None:
    """Replace the ledger with an exported JSON document."""
    if not source.exists():
        console.print(f"[red]Error:[/red] File not found: {source}")
        raise typer.Exit(code=1)

    success, reason = open_session(db_path, ledger_id).import_ledger(
        source.read_text(encoding="utf-8")
    )
    if not success:
        console.print(f"[red]Import failed:[/red] {reason}")
        raise typer.Exit(code=1)
    console.print(f"[green]Ledger imported from {source}[/green]")


@ledger_app.command("reset")
def reset_ledger(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
) -> None:
    """Reset to a fresh wallet, dropping positions and history."""
    if not yes:
        typer.confirm("Reset the ledger and lose all orders?", abort=True)

    state = open_session(db_path, ledger_id).reset()
    console.print(
        f"[green]Ledger reset.[/green] Cash: {state.wallet.cash:,.2f} "
        f"{state.config.currency}"
    )


@ledger_app.command("add-funds")
def add_funds(
    amount: float = typer.Argument(..., help="Cash to credit."),
    db_path: Optional[str] = typer.Option(
        None, "--database", "-d", help="Path to paper trading database."
    ),
    ledger_id: Optional[str] = typer.Option(
        None, "--ledger", "-l", help="Ledger identifier."
    ),
) -> None:
    """Credit cash to the wallet."""
    try:
        balance = open_session(db_path, ledger_id).add_funds(to_decimal(amount))
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e
    console.print(f"[green]Funds added.[/green] Cash: {balance:,.2f}")
