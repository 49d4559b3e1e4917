"""
Reservation Ledger - prevents listing the same units twice.

Per (collection, item, holder) the ledger tracks how many units the holder
has committed to open sales. The free quantity is derived from the live
balance, which the engine does not control (units can move elsewhere):

    free = live_balance - committed     (once initialized)
    free = live_balance                 (never touched)

Invariants:
- committed >= 0
- a reservation never makes free negative; such calls fail closed
- free + committed == live balance between operations, as long as the
  holder does not move reserved units outside the engine
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from agora.core.assets import AssetAdapter
from agora.core.errors import InsufficientFree, InvalidQuantity, OverRelease
from agora.crypto import short_address
from agora.utils.logger import get_logger

logger = get_logger("reservation")

ReservationKey = Tuple[bytes, int, bytes]


@dataclass
class ReservationRecord:
    """Committed units of one holder for one item."""
    committed_amount: int = 0
    initialized: bool = False


class ReservationLedger:
    """
    Tracks committed inventory per holder and item.

    Attributes:
        adapter: Source of live balances
        records: (collection, item_id, holder) -> ReservationRecord
    """

    def __init__(self, adapter: AssetAdapter):
        self.adapter = adapter
        self.records: Dict[ReservationKey, ReservationRecord] = {}

    def _touch(self, collection: bytes, item_id: int, holder: bytes) -> ReservationRecord:
        key = (collection, item_id, holder)
        record = self.records.get(key)
        if record is None:
            record = ReservationRecord()
            self.records[key] = record
        if not record.initialized:
            # First touch syncs to the live balance: nothing committed yet
            record.committed_amount = 0
            record.initialized = True
        return record

    # =========================================================================
    # Queries
    # =========================================================================

    def free_amount(self, collection: bytes, item_id: int, holder: bytes) -> int:
        """Units the holder can still commit."""
        live = self.adapter.balance_of(collection, item_id, holder)
        record = self.records.get((collection, item_id, holder))
        if record is None or not record.initialized:
            return live
        return max(0, live - record.committed_amount)

    def committed_amount(self, collection: bytes, item_id: int, holder: bytes) -> int:
        record = self.records.get((collection, item_id, holder))
        return record.committed_amount if record else 0

    # =========================================================================
    # Mutations
    # =========================================================================

    def reserve(self, collection: bytes, item_id: int, holder: bytes, amount: int) -> None:
        """
        Commit `amount` units to an open sale.

        Raises:
            InvalidQuantity: amount is not positive
            InsufficientFree: fewer than `amount` free units
        """
        if amount <= 0:
            raise InvalidQuantity(f"Reservation amount must be positive, got {amount}")

        free = self.free_amount(collection, item_id, holder)
        if free < amount:
            raise InsufficientFree(requested=amount, free=free)

        record = self._touch(collection, item_id, holder)
        record.committed_amount += amount
        logger.debug(
            f"Reserved {amount} of item {item_id} for {short_address(holder)} "
            f"(committed={record.committed_amount})"
        )

    def release(self, collection: bytes, item_id: int, holder: bytes, amount: int) -> None:
        """
        Return committed units to the free pool.

        Raises:
            OverRelease: more than the committed amount would be released
        """
        record = self._touch(collection, item_id, holder)
        if amount < 0 or amount > record.committed_amount:
            raise OverRelease(requested=amount, committed=record.committed_amount)

        record.committed_amount -= amount
        logger.debug(
            f"Released {amount} of item {item_id} for {short_address(holder)} "
            f"(committed={record.committed_amount})"
        )

    def consume(self, collection: bytes, item_id: int, holder: bytes, amount: int) -> None:
        """
        Drop committed units that left the holder through settlement.

        The units are gone from the live balance, so they leave the
        committed count too and free stays unchanged.
        """
        record = self._touch(collection, item_id, holder)
        if amount < 0 or amount > record.committed_amount:
            raise OverRelease(requested=amount, committed=record.committed_amount)
        record.committed_amount -= amount

    # =========================================================================
    # Rollback support
    # =========================================================================

    def snapshot(self) -> Dict[ReservationKey, Tuple[int, bool]]:
        return {key: (r.committed_amount, r.initialized) for key, r in self.records.items()}

    def restore(self, state: Dict[ReservationKey, Tuple[int, bool]]) -> None:
        for key in [key for key in self.records if key not in state]:
            del self.records[key]
        for key, (committed, initialized) in state.items():
            record = self.records.setdefault(key, ReservationRecord())
            record.committed_amount = committed
            record.initialized = initialized
