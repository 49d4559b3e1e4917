"""
Unit tests for the settlement engine.

Tests cover:
1. Fee split arithmetic
2. Dev fee only with a recipient
3. Trade side effects (payouts, custody, ledger, event)
"""

import pytest

from agora.core.errors import InvalidQuantity, SaleNotOpen
from agora.core.market import EventType, SaleKind, compute_fees


class TestComputeFees:
    """Tests for the fee split."""

    def test_reference_split(self):
        """10000 at 2.5% fee and 3% royalty."""
        fees = compute_fees(10_000, 250, 300)
        assert fees.service_fee == 250
        assert fees.royalty == 300
        assert fees.dev_fee == 0
        assert fees.seller_payout == 9_450

    def test_identity_holds(self):
        """seller + royalty + service fee always equals the total."""
        for total in (1, 7, 99, 1_000, 123_457, 10**18 + 3):
            for fee_ratio, royalty_ratio in ((0, 0), (250, 0), (250, 500), (9_999, 1), (5_000, 5_000)):
                fees = compute_fees(total, fee_ratio, royalty_ratio)
                assert fees.seller_payout + fees.royalty + fees.service_fee == total
                assert fees.seller_payout >= 0

    def test_rounds_down(self):
        fees = compute_fees(399, 250, 0)
        assert fees.service_fee == 9
        assert fees.seller_payout == 390

    def test_dev_fee_not_taken_from_seller(self):
        fees = compute_fees(10_000, 250, 0, dev_fee_ratio=10)
        assert fees.dev_fee == 10
        assert fees.seller_payout == 9_750
        assert fees.disbursed == 9_760


class TestTrade:
    """Tests for SettlementEngine.trade through a listed sale."""

    def test_quote_without_dev_recipient(self, market, art, native, actors):
        sale_id = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 10_000)
        fees = market.settlement.quote(market.sales[sale_id], 10_000)
        assert fees.dev_fee == 0

    def test_quote_with_dev_recipient(self, market, art, native, actors):
        market.set_dev_recipient(actors.admin, actors.dev)
        sale_id = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 10_000)
        fees = market.settlement.quote(market.sales[sale_id], 10_000)
        assert fees.dev_fee == 10

    def test_trade_moves_funds_and_asset(self, market, art, native, actors):
        """Funds in custody are split; the item changes hands."""
        sale_id = market.create_fixed_sale(
            actors.alice, art.address, 1, 1, 0, 3600, 10_000, royalty_ratio=300,
        )
        sale = market.sales[sale_id]
        native.transfer(actors.bob, market.custody, 10_000)

        fees = market.settlement.trade(sale, 10_000, 1, actors.bob)

        assert fees.seller_payout == 9_450
        assert native.balance_of(actors.alice) == 9_450
        assert native.balance_of(actors.carol) == 100_000 + 300
        assert native.balance_of(market.custody) == 250
        assert art.owner_of(1) == actors.bob
        assert sale.is_closed
        assert market.settlement.accrued_fees[0] == 250
        assert market.settlement.volume[0] == 10_000
        assert market.settlement.trade_count == 1

    def test_trade_event_carries_pre_trade_snapshot(self, market, prints, native, actors):
        sale_id = market.create_fixed_sale(actors.alice, prints.address, 7, 4, 0, 3600, 100)
        sale = market.sales[sale_id]
        native.transfer(actors.bob, market.custody, 300)

        market.settlement.trade(sale, 300, 3, actors.bob)

        event = market.events.of_type(EventType.TRADE_EXECUTED)[-1]
        assert event.sale.quantity == 4
        assert event.data["quantity"] == 3
        assert event.data["buyer"] == actors.bob
        assert sale.quantity == 1
        assert not sale.is_closed

    def test_partial_trade_consumes_reservation(self, market, prints, native, actors):
        sale_id = market.create_fixed_sale(actors.alice, prints.address, 7, 4, 0, 3600, 100)
        native.transfer(actors.bob, market.custody, 200)

        market.settlement.trade(market.sales[sale_id], 200, 2, actors.bob)

        assert market.reservations.committed_amount(prints.address, 7, actors.alice) == 2
        assert market.free_amount(prints.address, 7, actors.alice) == 6

    def test_offer_always_closes(self, market, prints, native, actors):
        sale_id = market.create_offer(actors.bob, prints.address, 7, actors.alice, 5, 0, 100, 3600)
        sale = market.sales[sale_id]
        assert sale.kind == SaleKind.OFFER
        market.reservations.reserve(prints.address, 7, actors.alice, 2)

        market.settlement.trade(sale, 200, 2, actors.bob)

        assert sale.is_closed

    def test_trade_on_closed_sale(self, market, art, native, actors):
        sale_id = market.create_fixed_sale(actors.alice, art.address, 1, 1, 0, 3600, 100)
        market.cancel(sale_id, actors.alice)

        with pytest.raises(SaleNotOpen):
            market.settlement.trade(market.sales[sale_id], 100, 1, actors.bob)

    def test_trade_more_than_outstanding(self, market, prints, native, actors):
        sale_id = market.create_fixed_sale(actors.alice, prints.address, 7, 2, 0, 3600, 100)

        with pytest.raises(InvalidQuantity):
            market.settlement.trade(market.sales[sale_id], 300, 3, actors.bob)
