"""
Sale records - the unit of the Sale Ledger.

A sale is either open (listed, within or past its time window but not yet
closed) or closed. Closed is encoded by zeroing both time fields: a
tombstoned record keeps every other field for history, and its id is
never reused.
"""

import copy
from dataclasses import dataclass, asdict
from enum import IntEnum

from agora.crypto import ZERO_ADDRESS, bytes_to_hex


class SaleKind(IntEnum):
    """Kinds of sale."""
    FIXED_SALE = 0   # Fixed unit price, partial fills allowed
    AUCTION = 1      # Timed auction, single unit, highest bid wins
    OFFER = 2        # Unsolicited escrowed offer to an owner


@dataclass
class SaleRecord:
    """
    A listing, auction, or offer.

    Attributes:
        sale_id: Monotonically assigned identifier
        creator: Royalty recipient (item's designated creator)
        seller: Lister, or the designated owner for offers
        collection: Collection address
        item_id: Item within the collection
        quantity: Copies outstanding
        payment_method: 0 = native currency, n = n-th registered token
        unit_price: Price per copy (reserve price for auctions)
        kind: FIXED_SALE / AUCTION / OFFER
        start_time: Window start (0 together with end_time = closed)
        end_time: Window end
        fee_ratio: Platform fee snapshot, parts per 10000
        royalty_ratio: Royalty snapshot, parts per 10000
        counterparty: Buyer or offerer once known
    """
    sale_id: int
    creator: bytes
    seller: bytes
    collection: bytes
    item_id: int
    quantity: int
    payment_method: int
    unit_price: int
    kind: SaleKind
    start_time: int
    end_time: int
    fee_ratio: int
    royalty_ratio: int
    counterparty: bytes = ZERO_ADDRESS

    @property
    def is_closed(self) -> bool:
        return self.start_time == 0 and self.end_time == 0

    @property
    def total_price(self) -> int:
        return self.unit_price * self.quantity

    def is_expired(self, now: int) -> bool:
        """Past the window (the window is [start_time, end_time))."""
        return now >= self.end_time

    def in_window(self, now: int) -> bool:
        return self.start_time <= now < self.end_time

    def tombstone(self) -> None:
        self.start_time = 0
        self.end_time = 0

    def snapshot(self) -> "SaleRecord":
        """Independent copy, attached to emitted events."""
        return copy.copy(self)

    def restore(self, saved: "SaleRecord") -> None:
        """Reset every field from a snapshot, keeping this object's identity."""
        vars(self).update(vars(saved))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.name
        for key in ("creator", "seller", "collection", "counterparty"):
            data[key] = bytes_to_hex(data[key])
        return data

    def __repr__(self) -> str:
        state = "closed" if self.is_closed else "open"
        return (
            f"SaleRecord(id={self.sale_id}, kind={self.kind.name}, item={self.item_id}, "
            f"qty={self.quantity}, unit_price={self.unit_price}, {state})"
        )
