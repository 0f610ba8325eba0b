"""CLI commands for the PaperDesk paper trading simulator."""

from src.cli.commands.account import account
from src.cli.commands.auto import auto_app
from src.cli.commands.ledger import ledger_app
from src.cli.commands.market import fees, price
from src.cli.commands.report import report
from src.cli.commands.trade import trade_app

__all__ = [
    "account",
    "auto_app",
    "fees",
    "ledger_app",
    "price",
    "report",
    "trade_app",
]
