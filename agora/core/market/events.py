"""
Marketplace events for external observers and indexers.

Events are staged while an operation runs and only published once the
whole operation has succeeded, so observers never see effects of a call
that was rolled back.
"""

import json
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional

from agora.core.market.sale import SaleRecord
from agora.crypto import bytes_to_hex, keccak256
from agora.utils.logger import get_logger

logger = get_logger("events")


class EventType(IntEnum):
    """Kinds of emitted events."""
    SALE_LISTED = 0
    SALE_CANCELLED = 1
    SALE_EXPIRED = 2
    BID_PLACED = 3
    BID_REMOVED = 4
    OFFER_MADE = 5
    TRADE_EXECUTED = 6


@dataclass
class MarketEvent:
    """
    An emitted event.

    Attributes:
        seq: Publication order, starting at 0
        event_type: Kind of event
        sale: Snapshot of the sale record when the event was raised
        timestamp: Engine clock at emission
        data: Event-specific fields (addresses as bytes, amounts as int)
    """
    seq: int
    event_type: EventType
    sale: SaleRecord
    timestamp: int
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def sale_id(self) -> int:
        return self.sale.sale_id

    def to_dict(self) -> dict:
        return {
            "seq": self.seq,
            "event_type": self.event_type.name,
            "sale": self.sale.to_dict(),
            "timestamp": self.timestamp,
            "data": {
                key: bytes_to_hex(value) if isinstance(value, bytes) else value
                for key, value in self.data.items()
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @property
    def event_id(self) -> bytes:
        """Content hash of the event."""
        return keccak256(self.to_json().encode("utf-8"))


Subscriber = Callable[[MarketEvent], None]


class EventBus:
    """
    Collects events and fans them out to subscribers.

    Attributes:
        history: Every published event
        subscribers: Callbacks run on publication
    """

    def __init__(self):
        self.history: List[MarketEvent] = []
        self.subscribers: List[Subscriber] = []
        self._pending: Optional[List[MarketEvent]] = None

    def subscribe(self, callback: Subscriber) -> None:
        self.subscribers.append(callback)

    @property
    def staging(self) -> bool:
        return self._pending is not None

    def begin(self) -> None:
        """Start staging events for one operation."""
        self._pending = []

    def commit(self) -> List[MarketEvent]:
        """Publish staged events; all of them reach history before any subscriber runs."""
        pending, self._pending = self._pending or [], None
        self.history.extend(pending)
        for event in pending:
            self._notify(event)
        return pending

    def mark(self) -> int:
        """Position in the staging buffer, for partial rollback."""
        return len(self._pending or [])

    def rollback(self, mark: int) -> None:
        """Drop events staged after `mark`."""
        if self._pending is not None:
            del self._pending[mark:]

    def discard(self) -> int:
        """Drop staged events of a failed operation."""
        dropped = len(self._pending or [])
        self._pending = None
        return dropped

    def emit(self, event_type: EventType, sale: SaleRecord, timestamp: int, **data) -> MarketEvent:
        seq = len(self.history) + len(self._pending or [])
        event = MarketEvent(
            seq=seq,
            event_type=event_type,
            sale=sale.snapshot(),
            timestamp=timestamp,
            data=data,
        )
        if self._pending is not None:
            self._pending.append(event)
        else:
            self._publish(event)
        return event

    def _publish(self, event: MarketEvent) -> None:
        self.history.append(event)
        self._notify(event)

    def _notify(self, event: MarketEvent) -> None:
        # The operation behind the event is final; a failing observer cannot undo it
        logger.debug(f"Event #{event.seq} {event.event_type.name} sale={event.sale_id}")
        for callback in self.subscribers:
            try:
                callback(event)
            except Exception as exc:
                logger.warning(f"Subscriber {callback!r} failed on event #{event.seq}: {exc}")

    def of_type(self, event_type: EventType) -> List[MarketEvent]:
        return [e for e in self.history if e.event_type == event_type]
