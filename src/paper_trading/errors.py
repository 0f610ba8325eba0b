"""Exceptions raised inside the Paper Trading Engine.

Public entry points convert these into result values; they only escape
from the lower-level helpers.
"""

from src.paper_trading.models import RejectionReason


class PaperTradingError(Exception):
    """Base exception for paper trading errors."""

    pass


class OrderRejectedError(PaperTradingError):
    """Raised inside a ledger transaction to abort an order."""

    def __init__(self, reason: RejectionReason, message: str) -> None:
        """Initialize the rejection.

        Args:
            reason: Machine-readable rejection reason.
            message: Human-readable explanation.
        """
        self.reason = reason
        super().__init__(message)


class InsufficientFundsError(OrderRejectedError):
    """Raised when cash does not cover the net amount of a buy."""

    def __init__(self, message: str) -> None:
        super().__init__(RejectionReason.INSUFFICIENT_FUNDS, message)


class InsufficientHoldingsError(OrderRejectedError):
    """Raised when a sell exceeds the quantity held."""

    def __init__(self, message: str) -> None:
        super().__init__(RejectionReason.INSUFFICIENT_HOLDINGS, message)


class SessionAlreadyActiveError(PaperTradingError):
    """Raised when starting an automated session while one is running."""

    pass
