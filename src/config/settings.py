"""Environment-driven settings for PaperDesk.

Values are read from the process environment, after loading a ``.env`` file
when one is present. Variables:

- PAPERDESK_DB_PATH: DuckDB file holding the ledgers (data/paper_trading.duckdb)
- PAPERDESK_LEDGER_ID: Ledger document to operate on (default)
- PAPERDESK_STARTING_BALANCE: Cash credited to a fresh wallet (100000)
- PAPERDESK_CURRENCY: Ledger currency (INR)
- PAPERDESK_SLIPPAGE_PCT: Max slippage fraction (0.0005)
- PAPERDESK_COMMISSION: Flat commission per order replacing brokerage (0)
"""

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from src.paper_trading.models import EngineConfig


class SettingsError(ValueError):
    """Raised when an environment variable holds an invalid value."""

    pass


class Settings(BaseModel):
    """Resolved application settings."""

    db_path: Path = Field(default=Path("data/paper_trading.duckdb"))
    ledger_id: str = Field(default="default", min_length=1)
    starting_balance: Decimal = Field(default=Decimal("100000"), gt=Decimal("0"))
    currency: str = Field(default="INR", min_length=1)
    slippage_pct: float = Field(default=0.0005, ge=0.0, le=0.05)
    commission: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))

    def engine_config(self) -> EngineConfig:
        """Engine configuration used when a ledger is created."""
        return EngineConfig(
            starting_balance=self.starting_balance,
            currency=self.currency,
            slippage_pct=self.slippage_pct,
            commission=self.commission,
        )


def _read_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return Decimal(raw.strip())
    except InvalidOperation as e:
        raise SettingsError(f"{name} must be a number, got {raw!r}") from e


def _read_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise SettingsError(f"{name} must be a number, got {raw!r}") from e


def load_settings(env_file: Path | None = None) -> Settings:
    """Load settings from the environment.

    Args:
        env_file: Optional .env file to load (searches upwards if None).
            Variables already set in the environment take precedence.

    Returns:
        Resolved settings.

    Raises:
        SettingsError: If a numeric variable cannot be parsed.
    """
    load_dotenv(env_file)

    defaults = Settings()
    return Settings(
        db_path=Path(os.getenv("PAPERDESK_DB_PATH", str(defaults.db_path))),
        ledger_id=os.getenv("PAPERDESK_LEDGER_ID", defaults.ledger_id),
        starting_balance=_read_decimal(
            "PAPERDESK_STARTING_BALANCE", defaults.starting_balance
        ),
        currency=os.getenv("PAPERDESK_CURRENCY", defaults.currency),
        slippage_pct=_read_float("PAPERDESK_SLIPPAGE_PCT", defaults.slippage_pct),
        commission=_read_decimal("PAPERDESK_COMMISSION", defaults.commission),
    )
