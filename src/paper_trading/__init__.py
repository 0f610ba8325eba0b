"""Paper Trading Engine for simulated equity trading.

This module provides a paper trading simulation engine: a persisted virtual
brokerage ledger, simulated fills with slippage and an NSE-style fee
schedule, protective stop-loss/take-profit exits, and a scheduled automated
trading session.

Key components:
- PaperTradingSession: Wires all components around one ledger
- LedgerStore: Single owner of the ledger, atomic read-modify-write
- OrderExecutor: Simulates market order execution
- ProtectiveOrderMonitor: Closes positions on breached thresholds
- AutoTradingScheduler: Runs automated strategy sessions

Example usage:
    from src.paper_trading import PaperTradingSession

    session = PaperTradingSession.in_memory()
    session.set_price("TCS.NS", Decimal("3900"))

    result = session.buy("TCS.NS", amount=Decimal("10000"))
    if not result.success:
        print(result.reason)

    summary = session.get_performance_summary()
"""

from src.paper_trading.automation import AutoTradingScheduler, SchedulerIntervals
from src.paper_trading.charges import FeeSchedule, fee_schedule_for, resolve_market
from src.paper_trading.equity import EquityRecorder
from src.paper_trading.errors import (
    InsufficientFundsError,
    InsufficientHoldingsError,
    OrderRejectedError,
    PaperTradingError,
    SessionAlreadyActiveError,
)
from src.paper_trading.events import EventBus, TradeEvent, TradeEventType
from src.paper_trading.executor import NoSlippage, OrderExecutor, RandomSlippage
from src.paper_trading.models import (
    AutoTradingConfig,
    AutoTradingState,
    ChargeBreakdown,
    EngineConfig,
    LedgerState,
    OrderRecord,
    OrderResult,
    OrderSide,
    PerformanceSummary,
    Position,
    ProductType,
    RejectionReason,
    SessionStage,
)
from src.paper_trading.price_feed import PriceFeed
from src.paper_trading.protective import ProtectiveOrderMonitor
from src.paper_trading.session import PaperTradingSession
from src.paper_trading.storage import (
    DuckDBLedgerBackend,
    InMemoryLedgerBackend,
    LedgerStore,
)

__all__ = [
    "AutoTradingConfig",
    "AutoTradingScheduler",
    "AutoTradingState",
    "ChargeBreakdown",
    "DuckDBLedgerBackend",
    "EngineConfig",
    "EquityRecorder",
    "EventBus",
    "FeeSchedule",
    "InMemoryLedgerBackend",
    "InsufficientFundsError",
    "InsufficientHoldingsError",
    "LedgerState",
    "LedgerStore",
    "NoSlippage",
    "OrderExecutor",
    "OrderRecord",
    "OrderRejectedError",
    "OrderResult",
    "OrderSide",
    "PaperTradingError",
    "PaperTradingSession",
    "PerformanceSummary",
    "Position",
    "PriceFeed",
    "ProductType",
    "ProtectiveOrderMonitor",
    "RandomSlippage",
    "RejectionReason",
    "SchedulerIntervals",
    "SessionAlreadyActiveError",
    "SessionStage",
    "TradeEvent",
    "TradeEventType",
    "fee_schedule_for",
    "resolve_market",
]
