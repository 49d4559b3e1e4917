"""
Agora Market Module.

This module provides the sale/auction/offer engine:
- Sale records and the Sale Ledger (Marketplace)
- Reservation accounting
- Bid book
- Settlement
- Events
"""

from agora.core.market.sale import SaleKind, SaleRecord
from agora.core.market.reservation import ReservationLedger, ReservationRecord
from agora.core.market.bids import BidBook, BidRecord
from agora.core.market.events import EventBus, EventType, MarketEvent
from agora.core.market.settlement import FeeBreakdown, SettlementEngine, compute_fees
from agora.core.market.engine import Marketplace, wall_clock

__all__ = [
    # Records
    "SaleKind",
    "SaleRecord",
    # Ledgers
    "ReservationLedger",
    "ReservationRecord",
    "BidBook",
    "BidRecord",
    # Events
    "EventBus",
    "EventType",
    "MarketEvent",
    # Settlement
    "FeeBreakdown",
    "SettlementEngine",
    "compute_fees",
    # Engine
    "Marketplace",
    "wall_clock",
]
