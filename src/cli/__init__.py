"""CLI module for the PaperDesk paper trading simulator.

Commands:
    account: Show cash, equity, positions and recent orders
    trade: Submit simulated market orders (buy, sell)
    price: Set or fetch the market price of a symbol
    fees: Preview the charges of a trade
    ledger: Export, import, reset and top up the ledger
    auto: Start, drive, stop and inspect automated sessions
    report: Show performance metrics
"""

from src.cli.main import app

__all__ = ["app"]
