"""
Asset Capability Adapter - uniform access to asset collections.

The marketplace trades items from two kinds of collections:

1. **Unique** collections: every item has exactly one owner
   (owner_of / transfer_from).
2. **Multi-unit** collections: every item has a per-holder balance
   (balance_of / safe_transfer_from).

The adapter probes a collection's capability profile once, caches the
resulting tagged variant, and from then on dispatches through a single
contract (balance, creator, locator, transfer). A collection matching
neither profile is rejected with UnsupportedAsset everywhere.

The two collection classes below are in-memory stand-ins for the
external asset contracts. They keep their own ownership bookkeeping and
support snapshot/restore so the engine can roll them back when an
operation aborts.
"""

import copy
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Optional, Tuple

from agora.core.errors import AssetTransferError, UnsupportedAsset
from agora.crypto import address_from_label, short_address
from agora.utils.logger import get_logger

logger = get_logger("assets")


# =============================================================================
# Enums
# =============================================================================


class AssetKind(IntEnum):
    """Capability profile of a collection."""
    UNSUPPORTED = 0   # Neither profile matched
    UNIQUE = 1        # Single owner per item
    MULTI_UNIT = 2    # Per-holder balances per item


# =============================================================================
# Collections (external collaborators)
# =============================================================================


def _refill(containers, saved) -> None:
    """Copy saved contents back into live containers without rebinding them."""
    for live, before in zip(containers, saved):
        live.clear()
        live.update(before)


class UniqueCollection:
    """
    A collection of single-owner items.

    Attributes:
        address: Collection address
        owners: item_id -> owner
        creators: item_id -> creator (royalty recipient)
        uris: item_id -> metadata URI
        operators: (owner, operator) pairs approved for all items
    """

    def __init__(self, name: str, address: Optional[bytes] = None):
        self.name = name
        self.address = address or address_from_label(f"unique:{name}")
        self.owners: Dict[int, bytes] = {}
        self.creators: Dict[int, bytes] = {}
        self.uris: Dict[int, str] = {}
        self.operators: set = set()

    def mint(self, to: bytes, item_id: int, creator: Optional[bytes] = None, uri: str = "") -> None:
        if item_id in self.owners:
            raise ValueError(f"Item {item_id} already minted")
        self.owners[item_id] = to
        self.creators[item_id] = creator or to
        self.uris[item_id] = uri

    def owner_of(self, item_id: int) -> Optional[bytes]:
        return self.owners.get(item_id)

    def creator_of(self, item_id: int) -> Optional[bytes]:
        return self.creators.get(item_id)

    def token_uri(self, item_id: int) -> str:
        return self.uris.get(item_id, "")

    def set_approval_for_all(self, owner: bytes, operator: bytes, approved: bool) -> None:
        if approved:
            self.operators.add((owner, operator))
        else:
            self.operators.discard((owner, operator))

    def is_approved_for_all(self, owner: bytes, operator: bytes) -> bool:
        return (owner, operator) in self.operators

    def transfer_from(self, operator: bytes, sender: bytes, recipient: bytes, item_id: int) -> None:
        if self.owners.get(item_id) != sender:
            raise AssetTransferError(f"{self.name}#{item_id} not owned by {short_address(sender)}")
        if operator != sender and not self.is_approved_for_all(sender, operator):
            raise AssetTransferError(f"{short_address(operator)} not approved for {short_address(sender)}")
        self.owners[item_id] = recipient

    def snapshot(self):
        return copy.deepcopy((self.owners, self.creators, self.uris, self.operators))

    def restore(self, state) -> None:
        _refill((self.owners, self.creators, self.uris, self.operators), state)


class MultiUnitCollection:
    """
    A collection of multi-owner items with per-holder balances.

    Attributes:
        address: Collection address
        balances: (item_id, holder) -> units held
        creators: item_id -> creator (royalty recipient)
        uris: item_id -> metadata URI
    """

    def __init__(self, name: str, address: Optional[bytes] = None):
        self.name = name
        self.address = address or address_from_label(f"multi:{name}")
        self.balances: Dict[Tuple[int, bytes], int] = {}
        self.creators: Dict[int, bytes] = {}
        self.uris: Dict[int, str] = {}
        self.operators: set = set()

    def mint(
        self,
        to: bytes,
        item_id: int,
        amount: int,
        creator: Optional[bytes] = None,
        uri: str = "",
    ) -> None:
        if amount <= 0:
            raise ValueError("Mint amount must be positive")
        key = (item_id, to)
        self.balances[key] = self.balances.get(key, 0) + amount
        self.creators.setdefault(item_id, creator or to)
        self.uris.setdefault(item_id, uri)

    def burn(self, holder: bytes, item_id: int, amount: int) -> None:
        key = (item_id, holder)
        if self.balances.get(key, 0) < amount:
            raise ValueError("Burn amount exceeds balance")
        self.balances[key] -= amount

    def balance_of(self, holder: bytes, item_id: int) -> int:
        return self.balances.get((item_id, holder), 0)

    def creator_of(self, item_id: int) -> Optional[bytes]:
        return self.creators.get(item_id)

    def uri(self, item_id: int) -> str:
        return self.uris.get(item_id, "")

    def set_approval_for_all(self, owner: bytes, operator: bytes, approved: bool) -> None:
        if approved:
            self.operators.add((owner, operator))
        else:
            self.operators.discard((owner, operator))

    def is_approved_for_all(self, owner: bytes, operator: bytes) -> bool:
        return (owner, operator) in self.operators

    def safe_transfer_from(
        self,
        operator: bytes,
        sender: bytes,
        recipient: bytes,
        item_id: int,
        amount: int,
    ) -> None:
        if operator != sender and not self.is_approved_for_all(sender, operator):
            raise AssetTransferError(f"{short_address(operator)} not approved for {short_address(sender)}")
        held = self.balance_of(sender, item_id)
        if held < amount:
            raise AssetTransferError(f"{self.name}#{item_id}: balance {held} < {amount}")
        self.balances[(item_id, sender)] = held - amount
        key = (item_id, recipient)
        self.balances[key] = self.balances.get(key, 0) + amount

    def snapshot(self):
        return copy.deepcopy((self.balances, self.creators, self.uris, self.operators))

    def restore(self, state) -> None:
        _refill((self.balances, self.creators, self.uris, self.operators), state)


# =============================================================================
# Capability variants
# =============================================================================


@dataclass
class UniqueAsset:
    """Capability view over a unique collection."""
    contract: UniqueCollection
    kind: AssetKind = field(default=AssetKind.UNIQUE, init=False)

    def balance_of(self, item_id: int, holder: bytes) -> int:
        return 1 if self.contract.owner_of(item_id) == holder else 0

    def creator_of(self, item_id: int) -> Optional[bytes]:
        return self.contract.creator_of(item_id)

    def locator(self, item_id: int) -> str:
        return self.contract.token_uri(item_id)

    def transfer(self, operator: bytes, sender: bytes, recipient: bytes, item_id: int, amount: int) -> None:
        if amount != 1:
            raise AssetTransferError(f"Unique item transfer amount must be 1, got {amount}")
        self.contract.transfer_from(operator, sender, recipient, item_id)


@dataclass
class MultiUnitAsset:
    """Capability view over a multi-unit collection."""
    contract: MultiUnitCollection
    kind: AssetKind = field(default=AssetKind.MULTI_UNIT, init=False)

    def balance_of(self, item_id: int, holder: bytes) -> int:
        return self.contract.balance_of(holder, item_id)

    def creator_of(self, item_id: int) -> Optional[bytes]:
        return self.contract.creator_of(item_id)

    def locator(self, item_id: int) -> str:
        return self.contract.uri(item_id)

    def transfer(self, operator: bytes, sender: bytes, recipient: bytes, item_id: int, amount: int) -> None:
        self.contract.safe_transfer_from(operator, sender, recipient, item_id, amount)


def _has(contract, *names: str) -> bool:
    return all(callable(getattr(contract, name, None)) for name in names)


# =============================================================================
# Adapter
# =============================================================================


class AssetAdapter:
    """
    Resolves collections to capability variants and dispatches calls.

    Attributes:
        operator: Address the engine acts as when moving assets
        collections: collection address -> contract object
    """

    def __init__(self, operator: bytes):
        self.operator = operator
        self.collections: Dict[bytes, object] = {}
        self._variants: Dict[bytes, object] = {}

    def register(self, contract) -> bytes:
        """Make a deployed collection reachable by its address."""
        self.collections[contract.address] = contract
        self._variants.pop(contract.address, None)
        logger.debug(f"Collection registered: {short_address(contract.address)}")
        return contract.address

    def _variant(self, collection: bytes):
        variant = self._variants.get(collection)
        if variant is not None:
            return variant

        contract = self.collections.get(collection)
        if contract is None:
            raise UnsupportedAsset(collection)

        if _has(contract, "owner_of", "transfer_from", "creator_of", "token_uri"):
            variant = UniqueAsset(contract)
        elif _has(contract, "balance_of", "safe_transfer_from", "creator_of", "uri"):
            variant = MultiUnitAsset(contract)
        else:
            raise UnsupportedAsset(collection)

        self._variants[collection] = variant
        logger.debug(f"Collection {short_address(collection)} classified as {variant.kind.name}")
        return variant

    def classify(self, collection: bytes) -> AssetKind:
        """Capability profile of a collection (raises UnsupportedAsset)."""
        return self._variant(collection).kind

    def is_supported(self, collection: bytes) -> bool:
        try:
            self._variant(collection)
        except UnsupportedAsset:
            return False
        return True

    def balance_of(self, collection: bytes, item_id: int, holder: bytes) -> int:
        """Units of item held (1/0 for unique items)."""
        return self._variant(collection).balance_of(item_id, holder)

    def creator_of(self, collection: bytes, item_id: int) -> Optional[bytes]:
        return self._variant(collection).creator_of(item_id)

    def locator(self, collection: bytes, item_id: int) -> str:
        return self._variant(collection).locator(item_id)

    def transfer(
        self,
        collection: bytes,
        sender: bytes,
        recipient: bytes,
        item_id: int,
        amount: int,
    ) -> None:
        """Move custody of `amount` units as the engine operator."""
        self._variant(collection).transfer(self.operator, sender, recipient, item_id, amount)

    # =========================================================================
    # Rollback support
    # =========================================================================

    def snapshot(self) -> Dict[bytes, object]:
        return {addr: contract.snapshot() for addr, contract in self.collections.items()}

    def restore(self, state: Dict[bytes, object]) -> None:
        for addr, contract_state in state.items():
            self.collections[addr].restore(contract_state)
