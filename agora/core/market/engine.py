"""
Marketplace - the Sale Ledger and the engine handle.

Conceptual Background:
---------------------
The marketplace owns every sale record and drives it through a two-state
machine:

    OPEN  --(cancel | sweep | final trade | auction finalize)-->  CLOSED

A closed record is tombstoned (start_time == end_time == 0) and never
reopened; sale ids are never reused.

Three kinds of sale share the ledger:

1. **Fixed sale**: the seller reserves units up front; buyers take any
   part of the outstanding quantity at the unit price.
2. **Auction**: one reserved unit, escrowed bids, highest bid wins when
   the window has elapsed.
3. **Offer**: a buyer escrows the full price for units someone else
   holds; the owner's inventory is only checked when accepting.

Atomicity:
---------
Every public operation is one atomic unit. The engine snapshots its own
ledgers and the state of its collaborators (payment media, asset
collections) before running, and restores them if anything raises.
Events are staged and only published when the whole operation succeeded.

Reentrancy:
----------
Paying out native currency runs the payee's receive hooks, which may try
to call back into the engine. Funds-moving entry points hold a single
engine-wide flag for their whole duration; a nested entry fails with
Reentrant, which aborts (and rolls back) the outer call as well.
"""

import time
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional, Set

from agora.core.assets import AssetAdapter, AssetKind
from agora.core.config import RATIO_DENOMINATOR, MarketConfig
from agora.core.errors import (
    InsufficientFree,
    InsufficientFunds,
    InvalidDuration,
    InvalidPrice,
    InvalidQuantity,
    InvalidRatio,
    NotAuthorized,
    NotOwner,
    Reentrant,
    SaleNotExpired,
    SaleNotOpen,
    SaleWindowError,
    SelfOffer,
    WrongSaleKind,
)
from agora.core.market.bids import BidBook, BidRecord
from agora.core.market.events import EventBus, EventType
from agora.core.market.reservation import ReservationLedger
from agora.core.market.sale import SaleKind, SaleRecord
from agora.core.market.settlement import FeeBreakdown, SettlementEngine
from agora.core.payments import NativeCurrency, PaymentRegistry
from agora.crypto import address_from_label, short_address
from agora.utils.logger import get_logger

logger = get_logger("market")


def wall_clock() -> int:
    """Current unix time in whole seconds."""
    return int(time.time())


class Marketplace:
    """
    Marketplace engine handle.

    Attributes:
        config: Economic defaults and limits
        custody: Address holding escrowed funds
        assets: Asset Capability Adapter
        payments: Payment Medium Registry
        reservations: Reservation Ledger
        bids: Bid Book
        settlement: Settlement Engine
        events: Event bus
        sales: Sale records indexed by sale id
        admins: Addresses allowed to run administrative operations
    """

    def __init__(
        self,
        admin: bytes,
        config: Optional[MarketConfig] = None,
        clock: Optional[Callable[[], int]] = None,
        native: Optional[NativeCurrency] = None,
    ):
        """
        Initialize an empty marketplace.

        Args:
            admin: Initial administrator
            config: Configuration (defaults to MarketConfig())
            clock: Time source in seconds (defaults to wall clock)
            native: Native currency ledger to settle in
        """
        self.config = config or MarketConfig()
        self.clock = clock or wall_clock
        self.custody = address_from_label("market:custody")
        self.admins: Set[bytes] = {admin}

        self.assets = AssetAdapter(operator=self.custody)
        self.payments = PaymentRegistry(self.custody, native)
        self.reservations = ReservationLedger(self.assets)
        self.events = EventBus()
        self.bids = BidBook(self.payments)
        self.settlement = SettlementEngine(
            adapter=self.assets,
            payments=self.payments,
            reservations=self.reservations,
            events=self.events,
            clock=self.clock,
            dev_fee_ratio=self.config.dev_fee_ratio,
        )

        self.sales: List[SaleRecord] = []
        self.default_fee_ratio = self.config.default_fee_ratio
        self.default_royalty_ratio = self.config.default_royalty_ratio

        self._entered: Optional[str] = None

        logger.info(
            f"Marketplace initialized: fee={self.default_fee_ratio}, "
            f"royalty={self.default_royalty_ratio}, custody={short_address(self.custody)}"
        )

    # =========================================================================
    # Transaction boundary
    # =========================================================================

    @contextmanager
    def _non_reentrant(self, operation: str):
        if self._entered is not None:
            logger.warning(f"Reentrant call into {operation} during {self._entered}")
            raise Reentrant(operation)
        self._entered = operation
        try:
            yield
        finally:
            self._entered = None

    def _snapshot(self) -> dict:
        return {
            "sales": [sale.snapshot() for sale in self.sales],
            "reservations": self.reservations.snapshot(),
            "bids": self.bids.snapshot(),
            "accrued_fees": dict(self.settlement.accrued_fees),
            "volume": dict(self.settlement.volume),
            "trade_count": self.settlement.trade_count,
            "dev_recipient": self.settlement.dev_recipient,
            "default_fee_ratio": self.default_fee_ratio,
            "default_royalty_ratio": self.default_royalty_ratio,
            "admins": set(self.admins),
            "assets": self.assets.snapshot(),
            "payments": self.payments.snapshot(),
        }

    def _restore(self, state: dict) -> None:
        # In place: an enclosing operation may still hold these records
        saved = state["sales"]
        del self.sales[len(saved):]
        for sale, before in zip(self.sales, saved):
            sale.restore(before)
        self.reservations.restore(state["reservations"])
        self.bids.restore(state["bids"])
        for live, key in ((self.settlement.accrued_fees, "accrued_fees"), (self.settlement.volume, "volume")):
            live.clear()
            live.update(state[key])
        self.settlement.trade_count = state["trade_count"]
        self.settlement.dev_recipient = state["dev_recipient"]
        self.default_fee_ratio = state["default_fee_ratio"]
        self.default_royalty_ratio = state["default_royalty_ratio"]
        self.admins.clear()
        self.admins.update(state["admins"])
        self.assets.restore(state["assets"])
        self.payments.restore(state["payments"])

    @contextmanager
    def _atomic(self, operation: str):
        """All-or-nothing scope: restore state and drop events on failure."""
        outermost = not self.events.staging
        if outermost:
            self.events.begin()
        mark = self.events.mark()
        state = self._snapshot()
        try:
            yield
        except Exception as exc:
            self._restore(state)
            self.events.rollback(mark)
            if outermost:
                self.events.discard()
            logger.warning(f"{operation} rolled back: {exc}")
            raise
        if outermost:
            self.events.commit()

    @contextmanager
    def _guarded(self, operation: str):
        with self._non_reentrant(operation), self._atomic(operation):
            yield

    # =========================================================================
    # Lookups
    # =========================================================================

    @property
    def sale_count(self) -> int:
        return len(self.sales)

    def is_open(self, sale_id: int) -> bool:
        """True while the sale is listed (whether or not its window has passed)."""
        if not 0 <= sale_id < len(self.sales):
            return False
        sale = self.sales[sale_id]
        return sale.start_time != 0 and sale.end_time != 0

    def get_sale(self, sale_id: int) -> Optional[SaleRecord]:
        """Snapshot of a sale record, or None for unknown ids."""
        if not 0 <= sale_id < len(self.sales):
            return None
        return self.sales[sale_id].snapshot()

    def open_sales(self) -> List[SaleRecord]:
        return [sale.snapshot() for sale in self.sales if self.is_open(sale.sale_id)]

    def bids_for(self, sale_id: int) -> List[BidRecord]:
        return self.bids.bids_for(sale_id)

    def highest_bid(self, sale_id: int) -> Optional[BidRecord]:
        return self.bids.highest(sale_id)

    def free_amount(self, collection: bytes, item_id: int, holder: bytes) -> int:
        return self.reservations.free_amount(collection, item_id, holder)

    def is_admin(self, address: bytes) -> bool:
        return address in self.admins

    def _open_sale(self, sale_id: int) -> SaleRecord:
        if not self.is_open(sale_id):
            raise SaleNotOpen(sale_id)
        return self.sales[sale_id]

    def _require_kind(self, sale: SaleRecord, kind: SaleKind) -> None:
        if sale.kind != kind:
            raise WrongSaleKind(f"Sale {sale.sale_id} is {sale.kind.name}, expected {kind.name}")

    def _require_window(self, sale: SaleRecord, now: int) -> None:
        if not sale.in_window(now):
            raise SaleWindowError(
                f"Sale {sale.sale_id} window is [{sale.start_time}, {sale.end_time}), now {now}"
            )

    def _require_admin(self, caller: bytes) -> None:
        if caller not in self.admins:
            raise NotAuthorized(f"{short_address(caller)} is not an administrator")

    # =========================================================================
    # Validation helpers
    # =========================================================================

    def _validate_terms(
        self,
        kind: SaleKind,
        asset_kind: AssetKind,
        quantity: int,
        duration: int,
        unit_price: int,
        payment_method: int,
    ) -> None:
        if quantity < 1:
            raise InvalidQuantity(f"Quantity must be at least 1, got {quantity}")
        if kind == SaleKind.AUCTION and quantity != 1:
            raise InvalidQuantity(f"Auctions sell exactly one unit, got {quantity}")
        if asset_kind == AssetKind.UNIQUE and quantity != 1:
            raise InvalidQuantity(f"Unique items have a single unit, got {quantity}")
        if not self.config.min_duration <= duration <= self.config.max_duration:
            raise InvalidDuration(
                f"Duration {duration} outside [{self.config.min_duration}, {self.config.max_duration}]"
            )
        if unit_price <= 0:
            raise InvalidPrice(f"Unit price must be positive, got {unit_price}")
        self.payments.resolve(payment_method)

    def _royalty_ratio(self, override: Optional[int]) -> int:
        royalty_ratio = self.default_royalty_ratio if override is None else override
        if not 0 <= royalty_ratio <= self.config.max_royalty_ratio:
            raise InvalidRatio(
                f"Royalty ratio {royalty_ratio} outside [0, {self.config.max_royalty_ratio}]"
            )
        if self.default_fee_ratio + royalty_ratio > RATIO_DENOMINATOR:
            raise InvalidRatio(
                f"Fee {self.default_fee_ratio} + royalty {royalty_ratio} exceeds {RATIO_DENOMINATOR}"
            )
        return royalty_ratio

    # =========================================================================
    # Listing
    # =========================================================================

    def _list(
        self,
        kind: SaleKind,
        seller: bytes,
        collection: bytes,
        item_id: int,
        quantity: int,
        payment_method: int,
        duration: int,
        unit_price: int,
        royalty_ratio: Optional[int],
    ) -> int:
        asset_kind = self.assets.classify(collection)
        self._validate_terms(kind, asset_kind, quantity, duration, unit_price, payment_method)

        if self.assets.balance_of(collection, item_id, seller) == 0:
            raise NotOwner(f"{short_address(seller)} holds none of item {item_id}")

        royalty = self._royalty_ratio(royalty_ratio)
        creator = self.assets.creator_of(collection, item_id) or seller

        self.reservations.reserve(collection, item_id, seller, quantity)

        now = self.clock()
        sale = SaleRecord(
            sale_id=len(self.sales),
            creator=creator,
            seller=seller,
            collection=collection,
            item_id=item_id,
            quantity=quantity,
            payment_method=payment_method,
            unit_price=unit_price,
            kind=kind,
            start_time=now,
            end_time=now + duration,
            fee_ratio=self.default_fee_ratio,
            royalty_ratio=royalty,
        )
        self.sales.append(sale)

        self.events.emit(
            EventType.SALE_LISTED,
            sale,
            timestamp=now,
            locator=self.assets.locator(collection, item_id),
        )
        logger.info(
            f"Listed sale {sale.sale_id} ({kind.name}): {quantity} x item {item_id} "
            f"at {unit_price} by {short_address(seller)}"
        )
        return sale.sale_id

    def create_fixed_sale(
        self,
        seller: bytes,
        collection: bytes,
        item_id: int,
        quantity: int,
        payment_method: int,
        duration: int,
        unit_price: int,
        royalty_ratio: Optional[int] = None,
    ) -> int:
        """
        List units at a fixed unit price.

        Args:
            seller: Holder listing the units
            collection: Collection address
            item_id: Item within the collection
            quantity: Units to list (1 for unique items)
            payment_method: 0 = native currency, n = registered token
            duration: Window length in seconds
            unit_price: Price per unit
            royalty_ratio: Optional royalty override (parts per 10000)

        Returns:
            The new sale id
        """
        with self._atomic("create_fixed_sale"):
            return self._list(
                SaleKind.FIXED_SALE, seller, collection, item_id,
                quantity, payment_method, duration, unit_price, royalty_ratio,
            )

    def create_auction(
        self,
        seller: bytes,
        collection: bytes,
        item_id: int,
        quantity: int,
        payment_method: int,
        duration: int,
        unit_price: int,
        royalty_ratio: Optional[int] = None,
    ) -> int:
        """
        Start a timed auction of one unit; `unit_price` is the reserve.

        Returns:
            The new sale id
        """
        with self._atomic("create_auction"):
            return self._list(
                SaleKind.AUCTION, seller, collection, item_id,
                quantity, payment_method, duration, unit_price, royalty_ratio,
            )

    def create_offer(
        self,
        offerer: bytes,
        collection: bytes,
        item_id: int,
        owner: bytes,
        quantity: int,
        payment_method: int,
        unit_price: int,
        duration: int,
    ) -> int:
        """
        Offer to buy units held by `owner`, escrowing the full price now.

        The owner's inventory is not checked until the offer is accepted.

        Returns:
            The new sale id
        """
        with self._guarded("create_offer"):
            if offerer == owner:
                raise SelfOffer("Cannot make an offer on your own item")

            asset_kind = self.assets.classify(collection)
            self._validate_terms(SaleKind.OFFER, asset_kind, quantity, duration, unit_price, payment_method)
            royalty = self._royalty_ratio(None)
            creator = self.assets.creator_of(collection, item_id) or owner

            total = quantity * unit_price
            self.payments.pull(payment_method, offerer, total)

            now = self.clock()
            sale = SaleRecord(
                sale_id=len(self.sales),
                creator=creator,
                seller=owner,
                collection=collection,
                item_id=item_id,
                quantity=quantity,
                payment_method=payment_method,
                unit_price=unit_price,
                kind=SaleKind.OFFER,
                start_time=now,
                end_time=now + duration,
                fee_ratio=self.default_fee_ratio,
                royalty_ratio=royalty,
                counterparty=offerer,
            )
            self.sales.append(sale)

            self.events.emit(EventType.OFFER_MADE, sale, timestamp=now, offerer=offerer, escrowed=total)
            logger.info(
                f"Offer {sale.sale_id}: {short_address(offerer)} offers {quantity} x {unit_price} "
                f"for item {item_id} held by {short_address(owner)}"
            )
            return sale.sale_id

    # =========================================================================
    # Cancellation
    # =========================================================================

    def _refund_offer(self, sale: SaleRecord) -> int:
        refund = sale.total_price
        self.payments.push(sale.payment_method, sale.counterparty, refund)
        return refund

    def cancel(self, sale_id: int, caller: bytes) -> None:
        """
        Cancel an open fixed sale or offer.

        Allowed for the seller and administrators, and for the offerer of an
        offer. Auctions cannot be cancelled; they run to finalization.
        """
        with self._guarded("cancel"):
            sale = self._open_sale(sale_id)
            if sale.kind == SaleKind.AUCTION:
                raise WrongSaleKind(f"Auction {sale_id} cannot be cancelled")

            allowed = caller == sale.seller or caller in self.admins
            if sale.kind == SaleKind.OFFER and caller == sale.counterparty:
                allowed = True
            if not allowed:
                raise NotAuthorized(f"{short_address(caller)} cannot cancel sale {sale_id}")

            refund = 0
            if sale.kind == SaleKind.FIXED_SALE:
                self.reservations.release(sale.collection, sale.item_id, sale.seller, sale.quantity)
            else:
                refund = self._refund_offer(sale)

            sale.tombstone()
            self.events.emit(EventType.SALE_CANCELLED, sale, timestamp=self.clock(), caller=caller, refund=refund)
            logger.info(f"Sale {sale_id} cancelled by {short_address(caller)}")

    def remove_offer(self, sale_id: int, caller: bytes) -> int:
        """
        Withdraw an offer (offerer only) with a full refund.

        Returns:
            The refunded amount
        """
        with self._guarded("remove_offer"):
            sale = self._open_sale(sale_id)
            self._require_kind(sale, SaleKind.OFFER)
            if caller != sale.counterparty:
                raise NotAuthorized(f"Only the offerer can withdraw offer {sale_id}")

            refund = self._refund_offer(sale)
            sale.tombstone()
            self.events.emit(EventType.SALE_CANCELLED, sale, timestamp=self.clock(), caller=caller, refund=refund)
            logger.info(f"Offer {sale_id} withdrawn, refunded {refund}")
            return refund

    # =========================================================================
    # Fixed-price purchase
    # =========================================================================

    def buy(
        self,
        sale_id: int,
        buyer: bytes,
        amount: int,
        payment: Optional[int] = None,
    ) -> FeeBreakdown:
        """
        Buy `amount` units from a fixed sale.

        Args:
            sale_id: Fixed sale to buy from
            buyer: Buyer address
            amount: Units to buy (0 < amount <= outstanding)
            payment: Native currency attached; defaults to the exact price.
                     Any surplus is refunded. Ignored for token sales.

        Returns:
            FeeBreakdown of the settled trade
        """
        with self._guarded("buy"):
            sale = self._open_sale(sale_id)
            self._require_kind(sale, SaleKind.FIXED_SALE)
            self._require_window(sale, self.clock())
            if buyer == sale.seller:
                raise NotAuthorized("Seller cannot buy their own listing")
            if not 0 < amount <= sale.quantity:
                raise InvalidQuantity(f"Amount {amount} not in (0, {sale.quantity}]")

            total = amount * sale.unit_price
            surplus = 0
            if self.payments.is_native(sale.payment_method):
                paid = total if payment is None else payment
                if paid < total:
                    raise InsufficientFunds(required=total, available=paid)
                self.payments.pull(sale.payment_method, buyer, paid)
                surplus = paid - total
            else:
                self.payments.pull(sale.payment_method, buyer, total)

            fees = self.settlement.trade(sale, total, amount, buyer)

            if surplus:
                self.payments.push(sale.payment_method, buyer, surplus)
            return fees

    # =========================================================================
    # Auctions
    # =========================================================================

    def place_bid(self, sale_id: int, bidder: bytes, price: int) -> None:
        """
        Place or replace a bid; the price is escrowed.

        A previous bid by the same bidder is refunded before the new one is
        captured.
        """
        with self._guarded("place_bid"):
            sale = self._open_sale(sale_id)
            self._require_kind(sale, SaleKind.AUCTION)
            now = self.clock()
            self._require_window(sale, now)
            if bidder == sale.seller:
                raise NotAuthorized("Seller cannot bid on their own auction")

            replaced = self.bids.place(sale, bidder, price)
            self.events.emit(
                EventType.BID_PLACED, sale, timestamp=now,
                bidder=bidder, price=price, replaced=replaced,
            )
            logger.info(f"Bid on auction {sale_id}: {short_address(bidder)} -> {price}")

    def remove_bid(self, sale_id: int, bidder: bytes) -> int:
        """
        Withdraw a bid while the auction is running.

        Returns:
            The refunded price
        """
        with self._guarded("remove_bid"):
            sale = self._open_sale(sale_id)
            self._require_kind(sale, SaleKind.AUCTION)
            now = self.clock()
            self._require_window(sale, now)

            refund = self.bids.remove(sale, bidder)
            self.events.emit(EventType.BID_REMOVED, sale, timestamp=now, bidder=bidder, refund=refund)
            return refund

    def _finalize(self, sale: SaleRecord, now: int) -> Optional[BidRecord]:
        self._require_kind(sale, SaleKind.AUCTION)
        if not sale.is_expired(now):
            raise SaleNotExpired(sale.sale_id, sale.end_time)

        winner, refunded = self.bids.close(sale)
        if winner is None:
            self.reservations.release(sale.collection, sale.item_id, sale.seller, sale.quantity)
            sale.tombstone()
            self.events.emit(EventType.SALE_EXPIRED, sale, timestamp=now, refunded=len(refunded))
            logger.info(f"Auction {sale.sale_id} closed without a winner")
            return None

        self.settlement.trade(sale, winner.price, sale.quantity, winner.bidder)
        logger.info(
            f"Auction {sale.sale_id} won by {short_address(winner.bidder)} at {winner.price}, "
            f"{len(refunded)} bids refunded"
        )
        return winner

    def finalize_auction(self, sale_id: int, caller: bytes) -> Optional[BidRecord]:
        """
        Close an auction whose window has elapsed (seller or administrator).

        Returns:
            The winning bid, or None when the auction closed unsold
        """
        with self._guarded("finalize_auction"):
            sale = self._open_sale(sale_id)
            if caller != sale.seller and caller not in self.admins:
                raise NotAuthorized(f"{short_address(caller)} cannot finalize auction {sale_id}")
            return self._finalize(sale, self.clock())

    # =========================================================================
    # Offer acceptance
    # =========================================================================

    def accept_offer(self, sale_id: int, caller: bytes) -> FeeBreakdown:
        """
        Accept an offer as the designated owner.

        When the owner now holds fewer free units than offered, only the
        free units are settled and the shortfall is refunded to the offerer.

        Returns:
            FeeBreakdown of the settled trade
        """
        with self._guarded("accept_offer"):
            sale = self._open_sale(sale_id)
            self._require_kind(sale, SaleKind.OFFER)
            if caller != sale.seller:
                raise NotAuthorized(f"Only the designated owner can accept offer {sale_id}")
            self._require_window(sale, self.clock())

            free = self.reservations.free_amount(sale.collection, sale.item_id, sale.seller)
            if free == 0:
                raise InsufficientFree(requested=sale.quantity, free=0)

            settled = min(free, sale.quantity)
            if settled < sale.quantity:
                shortfall = (sale.quantity - settled) * sale.unit_price
                self.payments.push(sale.payment_method, sale.counterparty, shortfall)
                logger.info(
                    f"Offer {sale_id} partially filled: {settled}/{sale.quantity}, "
                    f"refunded {shortfall} to {short_address(sale.counterparty)}"
                )
                sale.quantity = settled

            self.reservations.reserve(sale.collection, sale.item_id, sale.seller, settled)
            return self.settlement.trade(sale, settled * sale.unit_price, settled, sale.counterparty)

    # =========================================================================
    # Expiry sweeper
    # =========================================================================

    def sweep(self, sale_ids: List[int], caller: bytes) -> List[int]:
        """
        Close every listed sale whose window has elapsed.

        Fixed sales release their reservation, auctions are finalized and
        offers are refunded. Ids that are closed, unknown or still running
        are skipped.

        Returns:
            Ids that were closed by this call
        """
        with self._guarded("sweep"):
            self._require_admin(caller)
            now = self.clock()
            swept = []

            for sale_id in sale_ids:
                if not self.is_open(sale_id):
                    continue
                sale = self.sales[sale_id]
                if not sale.is_expired(now):
                    continue

                if sale.kind == SaleKind.FIXED_SALE:
                    self.reservations.release(sale.collection, sale.item_id, sale.seller, sale.quantity)
                    sale.tombstone()
                    self.events.emit(EventType.SALE_EXPIRED, sale, timestamp=now)
                elif sale.kind == SaleKind.AUCTION:
                    self._finalize(sale, now)
                else:
                    refund = self._refund_offer(sale)
                    sale.tombstone()
                    self.events.emit(EventType.SALE_EXPIRED, sale, timestamp=now, refund=refund)

                swept.append(sale_id)

            logger.info(f"Sweep closed {len(swept)} of {len(sale_ids)} sales")
            return swept

    def list_expired(self, start: int = 0, end: Optional[int] = None) -> List[SaleRecord]:
        """
        Open sales past their window with ids in [start, end).

        Read-only.
        """
        now = self.clock()
        stop = len(self.sales) if end is None else min(end, len(self.sales))
        return [
            self.sales[sale_id].snapshot()
            for sale_id in range(max(0, start), stop)
            if self.is_open(sale_id) and self.sales[sale_id].is_expired(now)
        ]

    # =========================================================================
    # Administration
    # =========================================================================

    def register_collection(self, contract) -> bytes:
        """Make a deployed asset collection tradeable by address."""
        return self.assets.register(contract)

    def register_payment_token(self, caller: bytes, token) -> int:
        """Register a fungible token as a payment method."""
        self._require_admin(caller)
        return self.payments.register_token(token)

    def add_admin(self, caller: bytes, address: bytes) -> None:
        self._require_admin(caller)
        self.admins.add(address)

    def remove_admin(self, caller: bytes, address: bytes) -> None:
        self._require_admin(caller)
        if address in self.admins and len(self.admins) == 1:
            raise NotAuthorized("Cannot remove the last administrator")
        self.admins.discard(address)

    def _check_ratio(self, name: str, ratio: int, limit: int = RATIO_DENOMINATOR) -> None:
        if not 0 <= ratio <= limit:
            raise InvalidRatio(f"{name} {ratio} outside [0, {limit}]")

    def set_default_fee_ratio(self, caller: bytes, ratio: int) -> None:
        """Platform fee for sales created from now on."""
        self._require_admin(caller)
        self._check_ratio("Fee ratio", ratio)
        self.default_fee_ratio = ratio
        logger.info(f"Default fee ratio set to {ratio}")

    def set_default_royalty_ratio(self, caller: bytes, ratio: int) -> None:
        """Royalty for sales created from now on without an override."""
        self._require_admin(caller)
        self._check_ratio("Royalty ratio", ratio, self.config.max_royalty_ratio)
        self.default_royalty_ratio = ratio
        logger.info(f"Default royalty ratio set to {ratio}")

    def set_dev_recipient(self, caller: bytes, recipient: Optional[bytes]) -> None:
        """Enable (or disable with None) the dev cut on future trades."""
        self._require_admin(caller)
        self.settlement.dev_recipient = recipient
        logger.info(f"Dev recipient set to {short_address(recipient) if recipient else None}")

    def accrued_fees(self, payment_method: int) -> int:
        return self.settlement.accrued_fees.get(payment_method, 0)

    def withdraw_fees(self, caller: bytes, payment_method: int, recipient: bytes) -> int:
        """
        Pay accrued platform fees out of custody.

        Returns:
            Amount withdrawn (0 when nothing positive has accrued)
        """
        with self._guarded("withdraw_fees"):
            self._require_admin(caller)
            self.payments.resolve(payment_method)
            amount = max(0, self.accrued_fees(payment_method))
            if amount:
                self.payments.push(payment_method, recipient, amount)
                self.settlement.accrued_fees[payment_method] = 0
                logger.info(f"Withdrew {amount} fees (method {payment_method}) to {short_address(recipient)}")
            return amount

    # =========================================================================
    # Stats
    # =========================================================================

    def stats(self) -> dict:
        """Get marketplace statistics."""
        open_by_kind: Dict[str, int] = {kind.name: 0 for kind in SaleKind}
        for sale in self.sales:
            if self.is_open(sale.sale_id):
                open_by_kind[sale.kind.name] += 1

        return {
            "sale_count": len(self.sales),
            "open_sales": sum(open_by_kind.values()),
            "open_by_kind": open_by_kind,
            "trade_count": self.settlement.trade_count,
            "volume": dict(self.settlement.volume),
            "accrued_fees": dict(self.settlement.accrued_fees),
            "custody": {method: medium.held() for method, medium in enumerate(self.payments.media)},
            "events": len(self.events.history),
        }

    def __repr__(self) -> str:
        return f"Marketplace(sales={len(self.sales)}, trades={self.settlement.trade_count})"
