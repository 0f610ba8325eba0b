"""Performance Tracker for Paper Trading Engine.

This module derives performance metrics from a ledger snapshot: returns and
risk from the equity history, realized P&L and trade statistics from the
order history.
"""

from decimal import Decimal

import numpy as np
import pandas as pd

from src.paper_trading.models import LedgerState, OrderSide, PerformanceSummary


class PerformanceTracker:
    """Calculates performance metrics for a paper trading ledger.

    Realized P&L is measured against the average cost at the time of each
    sell, before charges; charges are reported separately.
    """

    MIN_RETURNS_FOR_VOLATILITY = 2

    def __init__(self, state: LedgerState) -> None:
        """Initialize performance tracker.

        Args:
            state: Ledger snapshot to analyze.
        """
        self.state = state

    def get_performance_summary(self) -> PerformanceSummary:
        """Get comprehensive performance summary.

        Returns:
            Performance summary with all metrics.
        """
        state = self.state
        starting_balance = state.config.starting_balance

        realized_pnl, winning, losing = self._calculate_realized_pnl()
        unrealized_pnl = Decimal("0")
        positions_value = Decimal("0")
        for symbol, position in state.positions.items():
            price = state.last_price(symbol) or position.average_price
            positions_value += position.quantity * price
            unrealized_pnl += position.quantity * (price - position.average_price)

        current_equity = state.wallet.cash + positions_value
        total_return = float((current_equity - starting_balance) / starting_balance)
        total_charges = sum((o.total_charges for o in state.orders), Decimal("0"))

        closed = winning + losing
        win_rate = winning / closed if closed > 0 else None

        equity = self._equity_series()
        returns = self._calculate_returns(equity)

        return PerformanceSummary(
            start_date=equity.index[0].date() if len(equity) else None,
            end_date=equity.index[-1].date() if len(equity) else None,
            starting_balance=starting_balance,
            current_equity=current_equity.quantize(Decimal("0.01")),
            total_return=total_return,
            realized_pnl=realized_pnl.quantize(Decimal("0.01")),
            unrealized_pnl=unrealized_pnl.quantize(Decimal("0.01")),
            total_charges=total_charges,
            total_trades=len(state.orders),
            winning_trades=winning,
            losing_trades=losing,
            win_rate=win_rate,
            max_drawdown=self._calculate_max_drawdown(equity),
            volatility=self._calculate_volatility(returns),
        )

    def _calculate_realized_pnl(self) -> tuple[Decimal, int, int]:
        """Replay the order history oldest first.

        Returns:
            Tuple of (realized P&L, winning sells, losing sells).
        """
        holdings: dict[str, tuple[Decimal, Decimal]] = {}
        realized = Decimal("0")
        winning = 0
        losing = 0

        for order in reversed(self.state.orders):
            quantity, average = holdings.get(order.symbol, (Decimal("0"), Decimal("0")))
            if order.side == OrderSide.BUY:
                new_quantity = quantity + order.quantity
                average = (average * quantity + order.price * order.quantity) / (
                    new_quantity
                )
                holdings[order.symbol] = (new_quantity, average)
                continue

            if quantity <= 0:
                continue
            sold = min(order.quantity, quantity)
            pnl = (order.price - average) * sold
            realized += pnl
            if pnl > 0:
                winning += 1
            elif pnl < 0:
                losing += 1
            remaining = quantity - sold
            if remaining > 0:
                holdings[order.symbol] = (remaining, average)
            else:
                holdings.pop(order.symbol, None)

        return realized, winning, losing

    def _equity_series(self) -> pd.Series:
        """Equity history as a time-indexed float series."""
        history = self.state.equity_history
        if not history:
            return pd.Series(dtype=float)
        return pd.Series(
            [float(s.equity) for s in history],
            index=pd.DatetimeIndex([s.timestamp for s in history]),
            name="equity",
        )

    def _calculate_returns(self, equity: pd.Series) -> list[float]:
        """Calculate snapshot-to-snapshot returns, skipping flat steps."""
        if len(equity) < 2:
            return []
        returns = equity.pct_change().dropna()
        returns = returns[returns != 0]
        return [float(r) for r in returns.replace([np.inf, -np.inf], np.nan).dropna()]

    def _calculate_volatility(self, returns: list[float]) -> float | None:
        """Calculate the standard deviation of returns.

        Args:
            returns: Snapshot returns.

        Returns:
            Volatility or None if insufficient data.
        """
        if len(returns) < self.MIN_RETURNS_FOR_VOLATILITY:
            return None
        return float(np.std(returns, ddof=1))

    def _calculate_max_drawdown(self, equity: pd.Series) -> float | None:
        """Calculate maximum drawdown.

        Returns:
            Maximum drawdown as a decimal (e.g., 0.15 for 15%) or None.
        """
        if len(equity) < 2:
            return None

        values = equity.to_numpy()
        peaks = np.maximum.accumulate(values)
        drawdowns = np.where(peaks > 0, (peaks - values) / peaks, 0.0)
        max_dd = float(drawdowns.max())

        return max_dd if max_dd > 0 else None

    def get_trade_log(self) -> list[dict]:
        """Get complete trade log with details, newest first.

        Returns:
            List of trade dictionaries.
        """
        return [
            {
                "order_id": o.id,
                "timestamp": o.timestamp.isoformat(),
                "symbol": o.symbol,
                "side": o.side.value,
                "quantity": float(o.quantity),
                "price": float(o.price),
                "gross_amount": float(o.gross_amount),
                "total_charges": float(o.total_charges),
                "net_amount": float(o.net_amount),
                "product_type": o.product_type.value,
                "strategy": o.strategy,
            }
            for o in self.state.orders
        ]

    def export_to_dataframe(self) -> pd.DataFrame:
        """Export the equity history for analysis.

        Returns:
            DataFrame with equity, return and drawdown columns.
        """
        equity = self._equity_series()
        if equity.empty:
            return pd.DataFrame(columns=["equity", "return", "drawdown"])

        starting = float(self.state.config.starting_balance)
        df = equity.to_frame()
        df["return"] = df["equity"].pct_change().fillna(0.0)
        df["cumulative_return"] = (df["equity"] - starting) / starting
        df["drawdown"] = 1 - df["equity"] / df["equity"].cummax()
        df.index.name = "timestamp"
        return df
