"""Pydantic models for the Paper Trading Engine.

This module defines all data models used throughout the paper trading system,
including the ledger document, orders, positions, charges, and the automated
trading session configuration and state.
"""

import secrets
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_WATCHLIST = ["RELIANCE.NS", "TCS.NS", "INFY.NS", "AAPL"]


def normalize_symbol(symbol: str) -> str:
    """Return the canonical (stripped, upper-cased) form of a symbol."""
    return (symbol or "").strip().upper()


def new_order_id(now: datetime) -> str:
    """Generate an order id in the ``ord_<epoch-ms>_<random>`` form."""
    return f"ord_{int(now.timestamp() * 1000)}_{secrets.token_hex(3)}"


class OrderSide(str, Enum):
    """Order side."""

    BUY = "BUY"
    SELL = "SELL"


class OrderStatus(str, Enum):
    """Status of an order record."""

    FILLED = "FILLED"


class ProductType(str, Enum):
    """Fee regime of a trade."""

    DELIVERY = "delivery"
    INTRADAY = "intraday"


class RejectionReason(str, Enum):
    """Why an order was not executed."""

    PRICE_UNAVAILABLE = "PriceUnavailable"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    INSUFFICIENT_HOLDINGS = "InsufficientHoldings"
    INVALID_INPUT = "InvalidInput"


class EngineConfig(BaseModel):
    """Configuration of the simulated brokerage."""

    starting_balance: Decimal = Field(
        default=Decimal("100000"),
        gt=Decimal("0"),
        description="Cash credited to a fresh wallet",
    )
    currency: str = Field(default="INR", description="Ledger currency")
    slippage_pct: float = Field(
        default=0.0005,
        ge=0.0,
        le=0.05,
        description="Max slippage as a fraction of price (0.0005 = 0.05%)",
    )
    commission: Decimal = Field(
        default=Decimal("0"),
        ge=Decimal("0"),
        description="Flat commission override; replaces brokerage when > 0",
    )
    allow_fractional: bool = Field(
        default=True, description="Allow fractional share quantities"
    )
    product_type: ProductType = Field(
        default=ProductType.DELIVERY, description="Default fee regime for orders"
    )


class Wallet(BaseModel):
    """Virtual cash wallet."""

    cash: Decimal = Field(description="Available cash")


class Position(BaseModel):
    """Open position in a single instrument (long only)."""

    symbol: str = Field(description="Instrument symbol")
    quantity: Decimal = Field(ge=Decimal("0"), description="Units held")
    average_price: Decimal = Field(ge=Decimal("0"), description="Average cost")
    stop_loss: Decimal | None = Field(
        default=None, description="Absolute stop-loss threshold"
    )
    take_profit: Decimal | None = Field(
        default=None, description="Absolute take-profit threshold"
    )
    product_type: ProductType = Field(
        default=ProductType.DELIVERY, description="Product type of the opening fill"
    )
    opened_at: datetime = Field(default_factory=datetime.now)

    @property
    def has_protection(self) -> bool:
        """Whether a stop-loss or take-profit threshold is stored."""
        return self.stop_loss is not None or self.take_profit is not None

    @property
    def cost_basis(self) -> Decimal:
        """Total cost of the units held."""
        return self.quantity * self.average_price


class ChargeComponents(BaseModel):
    """Individual fee components of a trade, rounded to 2 decimals."""

    model_config = ConfigDict(frozen=True)

    brokerage: Decimal = Decimal("0")
    transaction_tax: Decimal = Decimal("0")
    exchange_charge: Decimal = Decimal("0")
    regulatory_charge: Decimal = Decimal("0")
    stamp_duty: Decimal = Decimal("0")
    settlement_charge: Decimal = Decimal("0")
    service_tax: Decimal = Decimal("0")


class ChargeBreakdown(BaseModel):
    """Fee calculation result for one trade."""

    model_config = ConfigDict(frozen=True)

    side: OrderSide
    product_type: ProductType
    quantity: Decimal
    price: Decimal
    currency: str = "INR"
    gross_amount: Decimal = Field(description="quantity x price")
    charges: ChargeComponents
    total_charges: Decimal
    net_amount: Decimal = Field(
        description="Cash debited (BUY) or credited (SELL) for the trade"
    )


class OrderRecord(BaseModel):
    """Immutable record of a filled order."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Order id")
    timestamp: datetime = Field(description="Fill time")
    symbol: str
    side: OrderSide
    quantity: Decimal
    price: Decimal = Field(description="Fill price after slippage")
    gross_amount: Decimal
    charges: ChargeComponents
    total_charges: Decimal
    net_amount: Decimal
    status: OrderStatus = OrderStatus.FILLED
    currency: str = "INR"
    product_type: ProductType = ProductType.DELIVERY
    strategy: str | None = Field(default=None, description="Originating strategy")


class PriceEntry(BaseModel):
    """Last known price of a symbol."""

    price: Decimal = Field(gt=Decimal("0"))
    timestamp: datetime = Field(default_factory=datetime.now)


class EquitySnapshot(BaseModel):
    """Point-in-time total of cash plus marked positions."""

    timestamp: datetime
    equity: Decimal


class LedgerState(BaseModel):
    """The whole persisted ledger document.

    Serialized with ``by_alias=True`` so that the JSON document carries the
    top-level keys ``config``, ``wallet``, ``positions``, ``orders``,
    ``prices``, ``watchlist`` and ``equityHistory``.
    """

    model_config = ConfigDict(populate_by_name=True)

    config: EngineConfig = Field(default_factory=EngineConfig)
    wallet: Wallet
    positions: dict[str, Position] = Field(default_factory=dict)
    orders: list[OrderRecord] = Field(
        default_factory=list, description="Newest first"
    )
    prices: dict[str, PriceEntry] = Field(default_factory=dict)
    watchlist: list[str] = Field(default_factory=lambda: list(DEFAULT_WATCHLIST))
    equity_history: list[EquitySnapshot] = Field(
        default_factory=list, alias="equityHistory"
    )

    @classmethod
    def fresh(cls, config: EngineConfig | None = None) -> "LedgerState":
        """Create a default ledger with a full wallet and nothing else."""
        config = config or EngineConfig()
        return cls(config=config, wallet=Wallet(cash=config.starting_balance))

    def last_price(self, symbol: str) -> Decimal | None:
        """Return the cached price for a symbol, if any."""
        entry = self.prices.get(normalize_symbol(symbol))
        return entry.price if entry else None


class OrderResult(BaseModel):
    """Outcome of an order submission."""

    success: bool
    order: OrderRecord | None = None
    reason: RejectionReason | None = None
    message: str | None = None

    @classmethod
    def filled(cls, order: OrderRecord) -> "OrderResult":
        """Build a successful result."""
        return cls(success=True, order=order)

    @classmethod
    def rejected(cls, reason: RejectionReason, message: str) -> "OrderResult":
        """Build a rejection result."""
        return cls(success=False, reason=reason, message=message)


class PerformanceSummary(BaseModel):
    """Summary of paper trading performance."""

    start_date: date | None = Field(default=None, description="First equity point")
    end_date: date | None = Field(default=None, description="Last equity point")
    starting_balance: Decimal = Field(description="Initial capital")
    current_equity: Decimal = Field(description="Cash plus marked positions")
    total_return: float = Field(description="Total return fraction")
    realized_pnl: Decimal = Field(description="Realized P&L before charges")
    unrealized_pnl: Decimal = Field(description="Unrealized P&L of open positions")
    total_charges: Decimal = Field(description="Sum of all charges paid")
    total_trades: int = Field(ge=0, description="Number of filled orders")
    winning_trades: int = Field(ge=0, description="Closing sells with a gain")
    losing_trades: int = Field(ge=0, description="Closing sells with a loss")
    win_rate: float | None = Field(default=None, description="Win rate fraction")
    max_drawdown: float | None = Field(default=None, description="Maximum drawdown")
    volatility: float | None = Field(
        default=None, description="Std-dev of equity returns per snapshot"
    )


# ---------------------------------------------------------------------------
# Automated trading session
# ---------------------------------------------------------------------------


class SessionStage(str, Enum):
    """Stage of the automated trading session."""

    IDLE = "idle"
    WAITING_ENTRY = "waiting_entry"
    ACTIVE = "active"


TierFilter = Literal["any", "low", "medium", "high"]
ThresholdType = Literal["percentage", "fixed"]


class AutoTradingConfig(BaseModel):
    """Configuration of one automated trading session."""

    selected_symbols: list[str] = Field(
        default_factory=list,
        description="Explicit universe; the default universe is used when empty",
    )
    price_min: Decimal | None = Field(default=None, ge=Decimal("0"))
    price_max: Decimal | None = Field(default=None, gt=Decimal("0"))
    volume_filter: TierFilter = Field(default="any", description="Volume tier")
    volatility_filter: TierFilter = Field(
        default="any", description="Intraday range tier"
    )
    market_trend: Literal["any", "bullish", "bearish"] = Field(
        default="any", description="Trend bias of the day's change"
    )
    strategy: Literal["momentum", "mean_reversion", "breakout", "scalping"] = (
        "momentum"
    )
    execution_mode: Literal["paper"] = Field(
        default="paper", description="Only simulated execution is supported"
    )
    total_budget: Decimal = Field(default=Decimal("10000"), gt=Decimal("0"))
    per_trade_type: Literal["fixed", "percentage"] | None = Field(
        default=None,
        description="Optional per-trade cap on top of the even budget split",
    )
    per_trade_amount: Decimal | None = Field(default=None, gt=Decimal("0"))
    per_trade_percent: float | None = Field(default=None, gt=0.0, le=100.0)
    max_trades_per_day: int = Field(default=5, ge=1, le=50)
    stop_loss_pct: float | None = Field(default=2.0, gt=0.0, lt=100.0)
    stop_loss_type: ThresholdType = "percentage"
    take_profit_pct: float | None = Field(default=5.0, gt=0.0)
    take_profit_type: ThresholdType = "percentage"
    stop_loss_amount: Decimal | None = Field(
        default=None, gt=Decimal("0"), description="Fixed distance below entry"
    )
    take_profit_amount: Decimal | None = Field(
        default=None, gt=Decimal("0"), description="Fixed distance above entry"
    )
    entry_time_from: time = Field(default=time(9, 20))
    entry_time_to: time | None = Field(default=None)
    exit_time: time = Field(default=time(15, 15))
    min_budget: Decimal = Field(
        default=Decimal("1000"),
        ge=Decimal("0"),
        description="Sessions with a smaller effective budget are aborted",
    )
    product_type: ProductType = ProductType.INTRADAY

    @field_validator("selected_symbols")
    @classmethod
    def normalize_symbols(cls, value: list[str]) -> list[str]:
        """Upper-case symbols and drop blanks and duplicates."""
        seen: list[str] = []
        for raw in value:
            symbol = normalize_symbol(raw)
            if symbol and symbol not in seen:
                seen.append(symbol)
        return seen

    @model_validator(mode="after")
    def validate_consistency(self) -> "AutoTradingConfig":
        """Validate price range, sizing and time window."""
        if (
            self.price_min is not None
            and self.price_max is not None
            and self.price_min > self.price_max
        ):
            raise ValueError("price_min must be <= price_max")
        if self.per_trade_type == "fixed" and self.per_trade_amount is None:
            raise ValueError("per_trade_amount required for fixed sizing")
        if self.per_trade_type == "percentage" and self.per_trade_percent is None:
            raise ValueError("per_trade_percent required for percentage sizing")
        if self.stop_loss_type == "fixed" and self.stop_loss_amount is None:
            raise ValueError("stop_loss_amount required for a fixed stop-loss")
        if self.take_profit_type == "fixed" and self.take_profit_amount is None:
            raise ValueError("take_profit_amount required for a fixed take-profit")
        if self.entry_time_to is not None and self.entry_time_to < self.entry_time_from:
            raise ValueError("entry_time_to must be after entry_time_from")
        if self.exit_time <= self.entry_time_from:
            raise ValueError("exit_time must be after entry_time_from")
        return self


class SessionLogEntry(BaseModel):
    """Timestamped line of the automated session log."""

    timestamp: datetime
    message: str


class OpenedPosition(BaseModel):
    """Quantity bought by the automated session for one symbol."""

    symbol: str
    quantity: Decimal = Field(gt=Decimal("0"))


class AutoTradingState(BaseModel):
    """Persisted state of the automated trading session."""

    stage: SessionStage = SessionStage.IDLE
    config: AutoTradingConfig | None = None
    started_at: datetime | None = None
    logs: list[SessionLogEntry] = Field(default_factory=list)
    opened_positions: list[OpenedPosition] = Field(default_factory=list)
