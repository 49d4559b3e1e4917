"""
Shared fixtures: a marketplace on a controllable clock, named actors,
one collection of each kind and funded payment media.
"""

from types import SimpleNamespace

import pytest

from agora.core.assets import MultiUnitCollection, UniqueCollection
from agora.core.market import Marketplace
from agora.core.payments import FungibleToken
from agora.crypto import address_from_label


START_TIME = 1_700_000_000
FUNDS = 100_000


class FakeClock:
    """Clock the tests move by hand."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def actors():
    return SimpleNamespace(**{
        name: address_from_label(name)
        for name in ("admin", "alice", "bob", "carol", "dave", "dev", "treasury")
    })


@pytest.fixture
def market(clock, actors):
    return Marketplace(admin=actors.admin, clock=clock)


@pytest.fixture
def art(market, actors):
    """Unique collection; alice holds items 1-3, created by carol."""
    collection = UniqueCollection("art")
    market.register_collection(collection)
    for item_id in (1, 2, 3):
        collection.mint(actors.alice, item_id, creator=actors.carol, uri=f"ipfs://art/{item_id}")
    for holder in (actors.alice, actors.bob, actors.dave):
        collection.set_approval_for_all(holder, market.custody, True)
    return collection


@pytest.fixture
def prints(market, actors):
    """Multi-unit collection; alice holds 10 of item 7, created by carol."""
    collection = MultiUnitCollection("prints")
    market.register_collection(collection)
    collection.mint(actors.alice, 7, 10, creator=actors.carol, uri="ipfs://prints/7")
    for holder in (actors.alice, actors.bob, actors.dave):
        collection.set_approval_for_all(holder, market.custody, True)
    return collection


@pytest.fixture
def native(market, actors):
    """Native currency with bob, dave and carol funded."""
    currency = market.payments.native
    for holder in (actors.bob, actors.dave, actors.carol):
        currency.mint(holder, FUNDS)
    return currency


@pytest.fixture
def usd(market, actors):
    """Registered token (method 1) with bob funded and approved."""
    token = FungibleToken("USDX")
    method = market.register_payment_token(actors.admin, token)
    assert method == 1
    token.mint(actors.bob, FUNDS)
    token.approve(actors.bob, market.custody, FUNDS)
    return token
