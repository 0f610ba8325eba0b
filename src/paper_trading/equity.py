"""Equity recorder for the paper trading ledger."""

from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from src.paper_trading.models import EquitySnapshot, LedgerState

MAX_EQUITY_SNAPSHOTS = 500


class EquityRecorder:
    """Appends mark-to-market equity snapshots to the ledger.

    Positions are marked at their cached price; a position whose symbol has
    never been priced is marked at its average cost.
    """

    def __init__(
        self,
        max_entries: int = MAX_EQUITY_SNAPSHOTS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the recorder.

        Args:
            max_entries: Size of the equity history ring.
            clock: Time source for snapshot timestamps.
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self.clock = clock

    @staticmethod
    def compute_equity(state: LedgerState) -> Decimal:
        """Return cash plus the marked value of all open positions."""
        positions_value = Decimal("0")
        for symbol, position in state.positions.items():
            price = state.last_price(symbol)
            if price is None:
                price = position.average_price
            positions_value += position.quantity * price
        return state.wallet.cash + positions_value

    def record(self, state: LedgerState) -> EquitySnapshot:
        """Append a snapshot to ``state.equity_history`` and trim the ring."""
        snapshot = EquitySnapshot(
            timestamp=self.clock(),
            equity=self.compute_equity(state).quantize(Decimal("0.0001")),
        )
        state.equity_history.append(snapshot)
        overflow = len(state.equity_history) - self.max_entries
        if overflow > 0:
            del state.equity_history[:overflow]
        return snapshot
