"""Ledger storage layer for the Paper Trading Engine.

This module handles persistence of the paper trading ledger (wallet,
positions, order history, price cache, equity history, configuration) and of
the automated trading session state. The ledger is stored as a single JSON
document so that export, import and persistence share one format.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import TypeVar

import duckdb
from pydantic import ValidationError

from src.paper_trading.equity import EquityRecorder
from src.paper_trading.models import (
    AutoTradingState,
    EngineConfig,
    LedgerState,
    PriceEntry,
    normalize_symbol,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerBackend(ABC):
    """Raw document persistence used by LedgerStore."""

    @abstractmethod
    def load_document(self, ledger_id: str) -> str | None:
        """Return the stored ledger document, or None if absent."""

    @abstractmethod
    def save_document(self, ledger_id: str, document: str) -> None:
        """Store the ledger document, replacing any previous one."""

    @abstractmethod
    def load_session(self, ledger_id: str) -> str | None:
        """Return the stored automated session document, or None."""

    @abstractmethod
    def save_session(self, ledger_id: str, document: str) -> None:
        """Store the automated session document."""

    @abstractmethod
    def delete_session(self, ledger_id: str) -> None:
        """Remove the automated session document."""


class InMemoryLedgerBackend(LedgerBackend):
    """Dictionary backend, mainly for tests."""

    def __init__(self) -> None:
        self.documents: dict[str, str] = {}
        self.sessions: dict[str, str] = {}

    def load_document(self, ledger_id: str) -> str | None:
        return self.documents.get(ledger_id)

    def save_document(self, ledger_id: str, document: str) -> None:
        self.documents[ledger_id] = document

    def load_session(self, ledger_id: str) -> str | None:
        return self.sessions.get(ledger_id)

    def save_session(self, ledger_id: str, document: str) -> None:
        self.sessions[ledger_id] = document

    def delete_session(self, ledger_id: str) -> None:
        self.sessions.pop(ledger_id, None)


class DuckDBLedgerBackend(LedgerBackend):
    """DuckDB storage for paper trading documents.

    Note: SQL queries use f-strings with SCHEMA constant (not user input).
    This is safe because SCHEMA is a class constant, not user-controlled.
    """

    SCHEMA = "paper_trading"  # noqa: S608 - constant, not user input

    def __init__(self, db_path: str | Path = "data/paper_trading.duckdb") -> None:
        """Initialize storage with database path.

        Args:
            db_path: Path to the DuckDB database file.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get a database connection."""
        return duckdb.connect(str(self.db_path))

    def _init_schema(self) -> None:
        """Initialize the paper trading schema and tables."""
        with self._get_connection() as conn:
            conn.execute(f"CREATE SCHEMA IF NOT EXISTS {self.SCHEMA}")

            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.SCHEMA}.ledgers (
                    ledger_id VARCHAR PRIMARY KEY,
                    document TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.SCHEMA}.auto_sessions (
                    ledger_id VARCHAR PRIMARY KEY,
                    state_json TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

    def load_document(self, ledger_id: str) -> str | None:
        with self._get_connection() as conn:
            result = conn.execute(
                f"SELECT document FROM {self.SCHEMA}.ledgers WHERE ledger_id = ?",
                [ledger_id],
            ).fetchone()
        return result[0] if result else None

    def save_document(self, ledger_id: str, document: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                f"""
                INSERT INTO {self.SCHEMA}.ledgers (ledger_id, document, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT (ledger_id) DO UPDATE SET
                    document = EXCLUDED.document,
                    updated_at = EXCLUDED.updated_at
                """,
                [ledger_id, document, datetime.now()],
            )

    def load_session(self, ledger_id: str) -> str | None:
        with self._get_connection() as conn:
            result = conn.execute(
                f"""
                SELECT state_json FROM {self.SCHEMA}.auto_sessions
                WHERE ledger_id = ?
                """,
                [ledger_id],
            ).fetchone()
        return result[0] if result else None

    def save_session(self, ledger_id: str, document: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                f"""
                INSERT INTO {self.SCHEMA}.auto_sessions
                (ledger_id, state_json, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT (ledger_id) DO UPDATE SET
                    state_json = EXCLUDED.state_json,
                    updated_at = EXCLUDED.updated_at
                """,
                [ledger_id, document, datetime.now()],
            )

    def delete_session(self, ledger_id: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                f"DELETE FROM {self.SCHEMA}.auto_sessions WHERE ledger_id = ?",
                [ledger_id],
            )


class LedgerStore:
    """Single owner of the paper trading ledger.

    Every mutation goes through ``write_atomic``, which applies a mutator to a
    working copy under a re-entrant lock, records an equity snapshot and
    persists the result as one unit. A mutator that raises leaves both the
    in-memory and the persisted ledger untouched.
    """

    def __init__(
        self,
        backend: LedgerBackend | None = None,
        ledger_id: str = "default",
        config: EngineConfig | None = None,
        equity_recorder: EquityRecorder | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the ledger store.

        Args:
            backend: Persistence backend (in-memory if None).
            ledger_id: Identifier of the ledger document.
            config: Engine configuration for a freshly created ledger. An
                existing persisted ledger keeps its own configuration.
            equity_recorder: Equity recorder (default ring of 500 if None).
            clock: Time source for price cache timestamps.
        """
        self.backend = backend or InMemoryLedgerBackend()
        self.ledger_id = ledger_id
        self.default_config = config or EngineConfig()
        self.equity_recorder = equity_recorder or EquityRecorder(clock=clock)
        self.clock = clock

        self._lock = threading.RLock()
        self._state: LedgerState | None = None

    def initialize(self) -> LedgerState:
        """Load the ledger, creating a default one if none exists.

        Idempotent. A corrupted document is replaced by a fresh ledger.

        Returns:
            Copy of the current ledger.
        """
        with self._lock:
            if self._state is None:
                self._state = self._load()
            return self._state.model_copy(deep=True)

    def _load(self) -> LedgerState:
        document = self.backend.load_document(self.ledger_id)
        if document is not None:
            try:
                return LedgerState.model_validate_json(document)
            except ValidationError as e:
                logger.warning(
                    f"Ledger '{self.ledger_id}' is unreadable, "
                    f"starting a fresh ledger: {e.error_count()} error(s)"
                )

        state = LedgerState.fresh(self.default_config)
        self.equity_recorder.record(state)
        self._persist(state)
        logger.info(
            f"Created ledger '{self.ledger_id}' with "
            f"{state.wallet.cash} {state.config.currency}"
        )
        return state

    def _current(self) -> LedgerState:
        if self._state is None:
            self._state = self._load()
        return self._state

    def _persist(self, state: LedgerState) -> None:
        self.backend.save_document(
            self.ledger_id, state.model_dump_json(by_alias=True)
        )

    def read(self) -> LedgerState:
        """Return a copy of the current ledger snapshot."""
        with self._lock:
            return self._current().model_copy(deep=True)

    def write_atomic(self, mutator: Callable[[LedgerState], T]) -> T:
        """Apply a mutation to the ledger as a single unit.

        Args:
            mutator: Function receiving a working copy of the ledger. It may
                mutate the copy in place; raising aborts the transaction.

        Returns:
            Whatever the mutator returns.
        """
        with self._lock:
            working = self._current().model_copy(deep=True)
            result = mutator(working)
            self.equity_recorder.record(working)
            self._persist(working)
            self._state = working
            return result

    def set_price(
        self, symbol: str, price: Decimal, timestamp: datetime | None = None
    ) -> PriceEntry:
        """Store the latest price of a symbol in the price cache.

        Args:
            symbol: Instrument symbol.
            price: Last traded price (must be positive).
            timestamp: Price time (clock time if None).

        Returns:
            The stored price entry.
        """
        entry = PriceEntry(price=Decimal(price), timestamp=timestamp or self.clock())
        key = normalize_symbol(symbol)

        def _store(state: LedgerState) -> PriceEntry:
            state.prices[key] = entry
            return entry

        return self.write_atomic(_store)

    def add_funds(self, amount: Decimal) -> Decimal:
        """Credit cash to the wallet and return the new balance."""
        amount = Decimal(amount)
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")

        def _credit(state: LedgerState) -> Decimal:
            state.wallet.cash += amount
            return state.wallet.cash

        return self.write_atomic(_credit)

    def export_snapshot(self) -> str:
        """Serialize the whole ledger as a JSON document."""
        return self.read().model_dump_json(by_alias=True, indent=2)

    def import_snapshot(self, document: str) -> tuple[bool, str | None]:
        """Replace the ledger with a previously exported JSON document.

        Args:
            document: JSON document in the export format.

        Returns:
            Tuple of (success, reason). The ledger is unchanged on failure.
        """
        try:
            state = LedgerState.model_validate_json(document)
        except ValidationError as e:
            logger.warning(f"Rejected ledger import: {e.error_count()} error(s)")
            return False, f"Invalid ledger document: {e.errors()[0]['msg']}"

        with self._lock:
            self._persist(state)
            self._state = state
        logger.info(f"Imported ledger '{self.ledger_id}'")
        return True, None

    def reset_session(self) -> LedgerState:
        """Restore a fresh wallet and clear positions, orders and history.

        The ledger configuration is kept, so the new wallet holds the
        configured starting balance.

        Returns:
            Copy of the reset ledger.
        """
        with self._lock:
            config = self._current().config
            state = LedgerState.fresh(config)
            self.equity_recorder.record(state)
            self._persist(state)
            self._state = state
            logger.info(f"Reset ledger '{self.ledger_id}'")
            return state.model_copy(deep=True)

    def load_session_state(self) -> AutoTradingState | None:
        """Load the persisted automated session state, if any."""
        document = self.backend.load_session(self.ledger_id)
        if document is None:
            return None
        try:
            return AutoTradingState.model_validate_json(document)
        except ValidationError as e:
            logger.warning(
                f"Discarding unreadable session state: {e.error_count()} error(s)"
            )
            return None

    def save_session_state(self, state: AutoTradingState) -> None:
        """Persist the automated session state."""
        self.backend.save_session(self.ledger_id, state.model_dump_json())

    def clear_session_state(self) -> None:
        """Remove the persisted automated session state."""
        self.backend.delete_session(self.ledger_id)
