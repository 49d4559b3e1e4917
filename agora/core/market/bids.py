"""
Bid Book - escrowed bids per auction sale.

Every bid's price is held in engine custody while it is active.

Rules:
- a bidder has at most one active bid per sale
- a bid must meet the reserve (unit_price * quantity)
- rebidding refunds the old price before capturing the new one, so a
  bidder is never charged twice, even when the new bid is lower
- removal refunds in full; order among remaining bids is not meaningful
- the winner is the strictly highest price; the earliest of equal
  prices wins
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from agora.core.errors import InvalidPrice, NoActiveBid
from agora.core.market.sale import SaleRecord
from agora.core.payments import PaymentRegistry
from agora.crypto import short_address
from agora.utils.logger import get_logger

logger = get_logger("bids")


@dataclass
class BidRecord:
    """An active bid."""
    bidder: bytes
    price: int


class BidBook:
    """
    Active bids keyed by sale id.

    Attributes:
        payments: Registry used to capture and refund escrow
        bids: sale_id -> active bids
    """

    def __init__(self, payments: PaymentRegistry):
        self.payments = payments
        self.bids: Dict[int, List[BidRecord]] = {}

    # =========================================================================
    # Queries
    # =========================================================================

    def bids_for(self, sale_id: int) -> List[BidRecord]:
        return list(self.bids.get(sale_id, ()))

    def find(self, sale_id: int, bidder: bytes) -> Optional[int]:
        """Index of the bidder's active bid, if any."""
        for index, bid in enumerate(self.bids.get(sale_id, ())):
            if bid.bidder == bidder:
                return index
        return None

    def highest(self, sale_id: int) -> Optional[BidRecord]:
        """
        Strictly highest bid; the first of equal prices wins.
        """
        best: Optional[BidRecord] = None
        for bid in self.bids.get(sale_id, ()):
            if best is None or bid.price > best.price:
                best = bid
        return best

    def total_escrowed(self, sale_id: int) -> int:
        return sum(bid.price for bid in self.bids.get(sale_id, ()))

    # =========================================================================
    # Mutations
    # =========================================================================

    def place(self, sale: SaleRecord, bidder: bytes, price: int) -> Optional[int]:
        """
        Place or replace a bid.

        Returns:
            The replaced price, or None for a first bid
        """
        reserve = sale.total_price
        if price < reserve:
            raise InvalidPrice(f"Bid {price} below reserve {reserve}")

        book = self.bids.setdefault(sale.sale_id, [])
        index = self.find(sale.sale_id, bidder)

        replaced = None
        if index is not None:
            replaced = book[index].price
            self.payments.push(sale.payment_method, bidder, replaced)

        self.payments.pull(sale.payment_method, bidder, price)

        if index is not None:
            book[index].price = price
        else:
            book.append(BidRecord(bidder=bidder, price=price))

        logger.debug(
            f"Bid on sale {sale.sale_id} by {short_address(bidder)}: {price}"
            + (f" (replaces {replaced})" if replaced is not None else "")
        )
        return replaced

    def remove(self, sale: SaleRecord, bidder: bytes) -> int:
        """
        Withdraw a bid with a full refund.

        Returns:
            The refunded price
        """
        index = self.find(sale.sale_id, bidder)
        if index is None:
            raise NoActiveBid(f"No active bid by {short_address(bidder)} on sale {sale.sale_id}")

        book = self.bids[sale.sale_id]
        bid = book[index]
        book[index] = book[-1]
        book.pop()

        self.payments.push(sale.payment_method, bidder, bid.price)
        logger.debug(f"Bid removed on sale {sale.sale_id} by {short_address(bidder)}: refunded {bid.price}")
        return bid.price

    def close(self, sale: SaleRecord) -> Tuple[Optional[BidRecord], List[BidRecord]]:
        """
        Discard the sale's book, refunding every bid except the winner.

        Returns:
            (winner or None, refunded bids)
        """
        winner = self.highest(sale.sale_id)
        if winner is not None and winner.price == 0:
            winner = None

        book = self.bids.pop(sale.sale_id, [])
        refunded = [bid for bid in book if bid is not winner]
        for bid in refunded:
            self.payments.push(sale.payment_method, bid.bidder, bid.price)

        return winner, refunded

    # =========================================================================
    # Rollback support
    # =========================================================================

    def snapshot(self) -> Dict[int, Tuple[List[BidRecord], List[Tuple[BidRecord, int]]]]:
        # Keep the list and record objects so a rollback can restore them in place
        return {sale_id: (book, [(bid, bid.price) for bid in book]) for sale_id, book in self.bids.items()}

    def restore(self, state: Dict[int, Tuple[List[BidRecord], List[Tuple[BidRecord, int]]]]) -> None:
        self.bids.clear()
        for sale_id, (book, entries) in state.items():
            for bid, price in entries:
                bid.price = price
            book[:] = [bid for bid, _ in entries]
            self.bids[sale_id] = book
