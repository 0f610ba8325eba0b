"""Trade notifications for the Paper Trading Engine.

Components publish TradeEvent instances on an EventBus; the CLI, the
automated scheduler and tests subscribe to them.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from src.paper_trading.models import OrderRecord, RejectionReason

logger = logging.getLogger(__name__)


class TradeEventType(str, Enum):
    """Kinds of trade notifications."""

    TRADE_EXECUTED = "TRADE_EXECUTED"
    ORDER_CONFIRMED = "ORDER_CONFIRMED"
    ORDER_FAILED = "ORDER_FAILED"
    PROTECTIVE_EXIT = "PROTECTIVE_EXIT"


class TradeEvent(BaseModel):
    """Notification payload."""

    event_type: TradeEventType
    timestamp: datetime = Field(default_factory=datetime.now)
    symbol: str
    order: OrderRecord | None = None
    reason: RejectionReason | None = None
    message: str | None = None


EventCallback = Callable[[TradeEvent], None]
_Subscription = tuple[EventCallback, frozenset[TradeEventType] | None]


class EventBus:
    """Synchronous publish/subscribe channel for trade events.

    Subscribers run in the publisher's thread. An exception raised by a
    subscriber is logged and never reaches the publisher.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[_Subscription] = []

    def subscribe(
        self,
        callback: EventCallback,
        event_types: Iterable[TradeEventType] | None = None,
    ) -> Callable[[], None]:
        """Register a callback.

        Args:
            callback: Function called with each matching event.
            event_types: Event types to receive (all types if None).

        Returns:
            Function that removes the subscription.
        """
        types = (
            frozenset(TradeEventType(t) for t in event_types) if event_types else None
        )
        entry = (callback, types)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event: TradeEvent) -> None:
        """Deliver an event to every matching subscriber."""
        with self._lock:
            subscribers = list(self._subscribers)

        for callback, types in subscribers:
            if types is not None and event.event_type not in types:
                continue
            try:
                callback(event)
            except Exception:
                logger.exception(
                    f"Subscriber failed handling {event.event_type.value} "
                    f"for {event.symbol}"
                )
