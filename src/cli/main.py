"""Main CLI entry point for the PaperDesk application.

This module defines the main Typer application and registers all subcommands.
It provides logging configuration options and error handling.
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from src.config.logging import setup_logging

app = typer.Typer(
    name="paperdesk",
    help="PaperDesk - Paper trading simulator and automated strategy runner.",
    add_completion=True,
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output (DEBUG level logging).",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-essential output (WARNING level logging).",
    ),
    log_file: Optional[str] = typer.Option(
        None,
        "--log-file",
        help="Path to log file for persistent logging.",
    ),
) -> None:
    """PaperDesk - Paper trading simulator.

    Trade a virtual wallet against market prices with realistic slippage
    and exchange charges, and run scheduled automated strategy sessions.
    """
    if verbose and quiet:
        console.print(
            "[yellow]Warning:[/yellow] Both --verbose and --quiet specified. "
            "Using --verbose."
        )
        log_level = "DEBUG"
    elif verbose:
        log_level = "DEBUG"
    elif quiet:
        log_level = "WARNING"
    else:
        log_level = "INFO"

    setup_logging(level=log_level, log_file=Path(log_file) if log_file else None)


# Import and register subcommands
from src.cli.commands.account import account  # noqa: E402
from src.cli.commands.auto import auto_app  # noqa: E402
from src.cli.commands.ledger import ledger_app  # noqa: E402
from src.cli.commands.market import fees, price  # noqa: E402
from src.cli.commands.report import report  # noqa: E402
from src.cli.commands.trade import trade_app  # noqa: E402

app.command(name="account")(account)
app.command(name="price")(price)
app.command(name="fees")(fees)
app.command(name="report")(report)
app.add_typer(trade_app, name="trade")
app.add_typer(ledger_app, name="ledger")
app.add_typer(auto_app, name="auto")


def cli_main() -> None:
    """Entry point for the CLI application."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user.[/yellow]")
        raise typer.Exit(code=130) from None
    except Exception as e:
        logger = logging.getLogger(__name__)
        logger.exception("Unexpected error occurred")
        console.print(f"\n[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e


if __name__ == "__main__":
    cli_main()
