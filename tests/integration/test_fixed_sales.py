"""
Integration tests for fixed-price listings.

Tests cover:
1. Listing validation and reservations
2. Full and partial purchases
3. Native surplus refunds and token payments
4. Cancellation and idempotent closure
5. Fee snapshots at creation
"""

import pytest

from agora.core.errors import (
    InsufficientFree,
    InsufficientFunds,
    InvalidDuration,
    InvalidPrice,
    InvalidQuantity,
    InvalidRatio,
    NotAuthorized,
    NotOwner,
    SaleNotOpen,
    SaleWindowError,
    UnknownPaymentMethod,
    UnsupportedAsset,
    WrongSaleKind,
)
from agora.core.market import EventType
from agora.crypto import address_from_label


# Starting balance of every funded actor
FUNDS = 100_000


# =============================================================================
# Listing
# =============================================================================


class TestListing:
    """Tests for create_fixed_sale."""

    def test_list_unique_item(self, market, art, actors):
        sale_id = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 500)

        sale = market.get_sale(sale_id)
        assert sale_id == 0
        assert market.is_open(sale_id)
        assert sale.seller == actors.alice
        assert sale.creator == actors.carol
        assert sale.fee_ratio == 250
        assert sale.end_time - sale.start_time == 3600
        assert market.free_amount(art.address, 1, actors.alice) == 0

        listed = market.events.of_type(EventType.SALE_LISTED)
        assert len(listed) == 1
        assert listed[0].data["locator"] == "ipfs://art/1"

    def test_sale_ids_are_sequential(self, market, art, actors):
        ids = [market.create_fixed_sale(actors.alice, art.address, i, 1, 0, 3600, 500) for i in (1, 2, 3)]
        assert ids == [0, 1, 2]
        assert market.sale_count == 3

    def test_unique_item_cannot_be_listed_twice(self, market, art, actors):
        market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 500)

        with pytest.raises(InsufficientFree):
            market.create_auction(actors.alice, art.address, 1, 1, 0, 3600, 500)
        assert market.sale_count == 1

    def test_multi_unit_reservation_bound(self, market, prints, actors):
        market.create_fixed_sale(actors.alice, prints.address, 7, 8, 0, 3600, 10)

        with pytest.raises(InsufficientFree):
            market.create_fixed_sale(actors.alice, prints.address, 7, 3, 0, 3600, 10)

        market.create_fixed_sale(actors.alice, prints.address, 7, 2, 0, 3600, 10)
        assert market.free_amount(prints.address, 7, actors.alice) == 0

    @pytest.mark.parametrize(
        "quantity, duration, price, method, error",
        [
            (2, 3600, 500, 0, InvalidQuantity),
            (0, 3600, 500, 0, InvalidQuantity),
            (1, 0, 500, 0, InvalidDuration),
            (1, 3600, 0, 0, InvalidPrice),
            (1, 3600, 500, 9, UnknownPaymentMethod),
        ],
    )
    def test_invalid_terms(self, market, art, actors, quantity, duration, price, method, error):
        with pytest.raises(error):
            market.create_fixed_sale(actors.alice, art.address, 1, quantity, method, duration, price)
        assert market.sale_count == 0
        assert market.free_amount(art.address, 1, actors.alice) == 1

    def test_non_holder_cannot_list(self, market, art, actors):
        with pytest.raises(NotOwner):
            market.create_fixed_sale(actors.bob, art.address, 1, 1, 0, 3600, 500)

    def test_unsupported_collection(self, market, actors):
        with pytest.raises(UnsupportedAsset):
            market.create_fixed_sale(actors.alice, address_from_label("nowhere"), 1, 1, 0, 3600, 500)

    def test_royalty_above_cap(self, market, art, actors):
        with pytest.raises(InvalidRatio):
            market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 500, royalty_ratio=5001)

    def test_fee_plus_royalty_over_denominator(self, market, art, actors):
        market.set_default_fee_ratio(actors.admin, 9_800)
        with pytest.raises(InvalidRatio):
            market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 500, royalty_ratio=300)


# =============================================================================
# Purchase
# =============================================================================


class TestBuy:
    """Tests for buy."""

    def test_buy_unique_item(self, market, art, native, actors):
        """Reference split: 10000 at 2.5% fee and 3% royalty."""
        sale_id = market.create_fixed_sale(
            actors.alice, art.address, 1, 1, 0, 3600, 10_000, royalty_ratio=300,
        )

        fees = market.buy(sale_id, actors.bob, 1)

        assert (fees.service_fee, fees.royalty, fees.seller_payout) == (250, 300, 9_450)
        assert art.owner_of(1) == actors.bob
        assert native.balance_of(actors.bob) == FUNDS - 10_000
        assert native.balance_of(actors.alice) == 9_450
        assert native.balance_of(actors.carol) == FUNDS + 300
        assert native.balance_of(market.custody) == 250
        assert market.accrued_fees(0) == 250
        assert not market.is_open(sale_id)

    def test_partial_fill(self, market, prints, native, actors):
        sale_id = market.create_fixed_sale(actors.alice, prints.address, 7, 5, 0, 3600, 100)

        market.buy(sale_id, actors.bob, 2)

        assert market.is_open(sale_id)
        assert market.get_sale(sale_id).quantity == 3
        assert prints.balance_of(actors.bob, 7) == 2
        assert market.free_amount(prints.address, 7, actors.alice) == 5

        market.buy(sale_id, actors.dave, 3)

        assert not market.is_open(sale_id)
        assert prints.balance_of(actors.alice, 7) == 5
        assert market.free_amount(prints.address, 7, actors.alice) == 5

    def test_buy_more_than_outstanding(self, market, prints, native, actors):
        sale_id = market.create_fixed_sale(actors.alice, prints.address, 7, 2, 0, 3600, 100)

        with pytest.raises(InvalidQuantity):
            market.buy(sale_id, actors.bob, 3)
        with pytest.raises(InvalidQuantity):
            market.buy(sale_id, actors.bob, 0)
        assert native.balance_of(actors.bob) == FUNDS

    def test_surplus_refunded(self, market, art, native, actors):
        sale_id = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 1_000)

        market.buy(sale_id, actors.bob, 1, payment=1_500)

        assert native.balance_of(actors.bob) == FUNDS - 1_000

    def test_underpayment_rejected(self, market, art, native, actors):
        sale_id = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 1_000)

        with pytest.raises(InsufficientFunds):
            market.buy(sale_id, actors.bob, 1, payment=999)

        assert native.balance_of(actors.bob) == FUNDS
        assert market.is_open(sale_id)

    def test_token_payment(self, market, prints, usd, actors):
        sale_id = market.create_fixed_sale(actors.alice, prints.address, 7, 4, 1, 3600, 1_000)

        fees = market.buy(sale_id, actors.bob, 4)

        assert usd.balance_of(actors.bob) == FUNDS - 4_000
        assert usd.balance_of(actors.alice) == fees.seller_payout == 3_900
        assert usd.balance_of(market.custody) == 100
        assert market.accrued_fees(1) == 100
        assert market.accrued_fees(0) == 0

    def test_token_payment_without_allowance(self, market, prints, usd, actors):
        usd.approve(actors.bob, market.custody, 10)
        sale_id = market.create_fixed_sale(actors.alice, prints.address, 7, 1, 1, 3600, 1_000)

        with pytest.raises(InsufficientFunds):
            market.buy(sale_id, actors.bob, 1)
        assert prints.balance_of(actors.bob, 7) == 0

    def test_seller_cannot_buy(self, market, prints, native, actors):
        native.mint(actors.alice, 1_000)
        sale_id = market.create_fixed_sale(actors.alice, prints.address, 7, 1, 0, 3600, 100)

        with pytest.raises(NotAuthorized):
            market.buy(sale_id, actors.alice, 1)

    def test_window_is_half_open(self, market, art, native, actors, clock):
        """Buying works until end_time, exclusive."""
        first = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 100, 100)
        second = market.create_fixed_sale(actors.alice, art.address, 2, 1, 0, 100, 100)

        clock.advance(99)
        market.buy(first, actors.bob, 1)

        clock.advance(1)
        with pytest.raises(SaleWindowError):
            market.buy(second, actors.bob, 1)

    def test_buy_auction_rejected(self, market, art, native, actors):
        sale_id = market.create_auction(actors.alice, art.address, 1, 1, 0, 3600, 100)
        with pytest.raises(WrongSaleKind):
            market.buy(sale_id, actors.bob, 1)

    def test_unknown_sale(self, market, native, actors):
        with pytest.raises(SaleNotOpen):
            market.buy(42, actors.bob, 1)


# =============================================================================
# Cancellation
# =============================================================================


class TestCancel:
    """Tests for cancelling fixed sales."""

    def test_cancel_releases_reservation(self, market, prints, actors):
        sale_id = market.create_fixed_sale(actors.alice, prints.address, 7, 6, 0, 3600, 100)

        market.cancel(sale_id, actors.alice)

        sale = market.get_sale(sale_id)
        assert sale.start_time == 0 and sale.end_time == 0
        assert market.free_amount(prints.address, 7, actors.alice) == 10
        cancelled = market.events.of_type(EventType.SALE_CANCELLED)
        assert cancelled[0].data["caller"] == actors.alice

    def test_admin_may_cancel(self, market, art, actors):
        sale_id = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 100)
        market.cancel(sale_id, actors.admin)
        assert not market.is_open(sale_id)

    def test_stranger_cannot_cancel(self, market, art, actors):
        sale_id = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 100)
        with pytest.raises(NotAuthorized):
            market.cancel(sale_id, actors.bob)
        assert market.is_open(sale_id)

    def test_closure_is_idempotent(self, market, art, native, actors):
        """Every operation on a closed sale fails without side effects."""
        sale_id = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 100)
        market.cancel(sale_id, actors.alice)
        events_before = len(market.events.history)

        with pytest.raises(SaleNotOpen):
            market.cancel(sale_id, actors.alice)
        with pytest.raises(SaleNotOpen):
            market.buy(sale_id, actors.bob, 1)

        assert len(market.events.history) == events_before
        assert market.free_amount(art.address, 1, actors.alice) == 1

    def test_relist_after_cancel_gets_new_id(self, market, art, actors):
        first = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 100)
        market.cancel(first, actors.alice)

        second = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 100)

        assert second == first + 1
        assert not market.is_open(first)


# =============================================================================
# Fees
# =============================================================================


class TestFees:
    """Tests for fee snapshots and the dev cut."""

    def test_fee_change_not_retroactive(self, market, art, native, actors):
        sale_id = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 10_000)
        market.set_default_fee_ratio(actors.admin, 1_000)
        market.set_default_royalty_ratio(actors.admin, 500)

        fees = market.buy(sale_id, actors.bob, 1)

        assert fees.service_fee == 250
        assert fees.royalty == 0

    def test_new_defaults_apply_to_new_sales(self, market, art, actors):
        market.set_default_fee_ratio(actors.admin, 1_000)
        market.set_default_royalty_ratio(actors.admin, 500)

        sale = market.get_sale(market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 100))

        assert (sale.fee_ratio, sale.royalty_ratio) == (1_000, 500)

    def test_dev_fee_paid_from_platform_cut(self, market, art, native, actors):
        market.set_dev_recipient(actors.admin, actors.dev)
        sale_id = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 10_000)

        fees = market.buy(sale_id, actors.bob, 1)

        assert fees.dev_fee == 10
        assert fees.seller_payout == 9_750
        assert native.balance_of(actors.dev) == 10
        assert native.balance_of(market.custody) == 240
        assert market.accrued_fees(0) == 240

    def test_withdraw_fees(self, market, art, native, actors):
        sale_id = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 10_000)
        market.buy(sale_id, actors.bob, 1)

        withdrawn = market.withdraw_fees(actors.admin, 0, actors.treasury)

        assert withdrawn == 250
        assert native.balance_of(actors.treasury) == 250
        assert native.balance_of(market.custody) == 0
        assert market.accrued_fees(0) == 0
        assert market.withdraw_fees(actors.admin, 0, actors.treasury) == 0
