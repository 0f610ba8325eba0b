"""Pydantic models for market data.

This module defines the quote snapshot consumed by the paper trading engine
and the automated strategy scheduler.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator


class Quote(BaseModel):
    """Latest quote of an instrument.

    Attributes:
        symbol: Ticker symbol
        price: Last traded price
        previous_close: Previous session close
        change_percent: Change versus the previous close, in percent
        volume: Shares traded in the current session
        day_high: Highest price of the current session
        day_low: Lowest price of the current session
        timestamp: Time of the quote
    """

    symbol: str
    price: Decimal = Field(gt=Decimal("0"))
    previous_close: Decimal | None = Field(default=None, gt=Decimal("0"))
    change_percent: float = 0.0
    volume: int = Field(default=0, ge=0)
    day_high: Decimal | None = Field(default=None, gt=Decimal("0"))
    day_low: Decimal | None = Field(default=None, gt=Decimal("0"))
    timestamp: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def validate_range(self) -> "Quote":
        """Validate that day_high >= day_low when both are present."""
        if (
            self.day_high is not None
            and self.day_low is not None
            and self.day_high < self.day_low
        ):
            raise ValueError("day_high must be >= day_low")
        return self

    @property
    def intraday_range_pct(self) -> float:
        """Session high-low range as a percentage of the last price."""
        if self.day_high is None or self.day_low is None:
            return 0.0
        return float((self.day_high - self.day_low) / self.price * 100)
