"""
Settlement Engine - executes a trade against an open sale.

Given a sale, a total price already held in engine custody and the
number of units settled, a trade:

1. Splits the price:
       service_fee   = total * fee_ratio // 10000
       royalty       = total * royalty_ratio // 10000
       dev_fee       = total * dev_fee_ratio // 10000   (only with a dev recipient)
       seller_payout = total - service_fee - royalty
2. Pays out seller, creator (royalty > 0) and dev recipient (dev fee > 0)
   from custody. The service fee stays in custody as accrued platform fees.
3. Moves the units from seller to buyer.
4. Consumes the seller's reservation, decrements the sale quantity and
   closes the sale when nothing is left (offers always close).
5. Emits the trade event with the pre-trade sale snapshot.

The dev fee is not deducted from the seller payout, so total outflow is
total - service_fee + dev_fee. It is paid from the platform's retained
fees in custody.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from agora.core.assets import AssetAdapter
from agora.core.config import RATIO_DENOMINATOR
from agora.core.errors import InvalidQuantity, SaleNotOpen
from agora.core.market.events import EventBus, EventType
from agora.core.market.reservation import ReservationLedger
from agora.core.market.sale import SaleKind, SaleRecord
from agora.core.payments import PaymentRegistry
from agora.crypto import short_address
from agora.utils.logger import get_logger

logger = get_logger("settlement")


@dataclass
class FeeBreakdown:
    """How a trade's total price is split."""
    total_price: int
    service_fee: int
    royalty: int
    dev_fee: int
    seller_payout: int

    @property
    def disbursed(self) -> int:
        """Amount leaving custody (service fee stays)."""
        return self.seller_payout + self.royalty + self.dev_fee


def compute_fees(
    total_price: int,
    fee_ratio: int,
    royalty_ratio: int,
    dev_fee_ratio: int = 0,
) -> FeeBreakdown:
    """
    Split a trade's total price.

    Args:
        total_price: Price of all units settled
        fee_ratio: Platform fee, parts per 10000
        royalty_ratio: Creator royalty, parts per 10000
        dev_fee_ratio: Dev cut, parts per 10000 (0 when no recipient)

    Returns:
        FeeBreakdown
    """
    service_fee = total_price * fee_ratio // RATIO_DENOMINATOR
    royalty = total_price * royalty_ratio // RATIO_DENOMINATOR
    dev_fee = total_price * dev_fee_ratio // RATIO_DENOMINATOR
    return FeeBreakdown(
        total_price=total_price,
        service_fee=service_fee,
        royalty=royalty,
        dev_fee=dev_fee,
        seller_payout=total_price - service_fee - royalty,
    )


class SettlementEngine:
    """
    Atomic trade execution.

    The caller guarantees the transaction boundary; this class only fixes
    the order of side effects within it.
    """

    def __init__(
        self,
        adapter: AssetAdapter,
        payments: PaymentRegistry,
        reservations: ReservationLedger,
        events: EventBus,
        clock: Callable[[], int],
        dev_fee_ratio: int = 10,
    ):
        self.adapter = adapter
        self.payments = payments
        self.reservations = reservations
        self.events = events
        self.clock = clock
        self.dev_fee_ratio = dev_fee_ratio
        self.dev_recipient: Optional[bytes] = None

        # Platform fees retained in custody, per payment method
        self.accrued_fees: Dict[int, int] = {}

        self.trade_count = 0
        self.volume: Dict[int, int] = {}

    def quote(self, sale: SaleRecord, total_price: int) -> FeeBreakdown:
        dev_ratio = self.dev_fee_ratio if self.dev_recipient is not None else 0
        return compute_fees(total_price, sale.fee_ratio, sale.royalty_ratio, dev_ratio)

    def trade(self, sale: SaleRecord, total_price: int, quantity: int, buyer: bytes) -> FeeBreakdown:
        """
        Settle `quantity` units of `sale` to `buyer` for `total_price`.

        The total price must already be in custody.
        """
        if sale.is_closed:
            raise SaleNotOpen(sale.sale_id)
        if quantity <= 0 or quantity > sale.quantity:
            raise InvalidQuantity(f"Cannot settle {quantity} of {sale.quantity} outstanding")

        before = sale.snapshot()
        fees = self.quote(sale, total_price)

        # Funds out
        self.payments.push(sale.payment_method, sale.seller, fees.seller_payout)
        if fees.royalty > 0:
            self.payments.push(sale.payment_method, sale.creator, fees.royalty)
        # The dev cut is not taken from the payout. When fee_ratio is below
        # dev_fee_ratio it exceeds the service fee, the difference comes out of
        # whatever else custody holds (escrowed bids and offers), and
        # accrued_fees for the method goes negative by the same amount.
        if fees.dev_fee > 0:
            self.payments.push(sale.payment_method, self.dev_recipient, fees.dev_fee)

        # Asset custody
        self.adapter.transfer(sale.collection, sale.seller, buyer, sale.item_id, quantity)

        # Ledger
        self.reservations.consume(sale.collection, sale.item_id, sale.seller, quantity)
        sale.quantity -= quantity
        sale.counterparty = buyer
        if sale.quantity == 0 or sale.kind == SaleKind.OFFER:
            sale.tombstone()

        method = sale.payment_method
        self.accrued_fees[method] = self.accrued_fees.get(method, 0) + fees.service_fee - fees.dev_fee
        self.volume[method] = self.volume.get(method, 0) + total_price
        self.trade_count += 1

        self.events.emit(
            EventType.TRADE_EXECUTED,
            before,
            timestamp=self.clock(),
            buyer=buyer,
            quantity=quantity,
            total_price=total_price,
            service_fee=fees.service_fee,
            royalty=fees.royalty,
            dev_fee=fees.dev_fee,
            seller_payout=fees.seller_payout,
        )

        logger.info(
            f"Trade on sale {sale.sale_id}: {quantity} x item {sale.item_id} -> "
            f"{short_address(buyer)} for {total_price} (fee={fees.service_fee}, "
            f"royalty={fees.royalty}, dev={fees.dev_fee})"
        )
        return fees
