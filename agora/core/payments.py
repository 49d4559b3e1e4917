"""
Payment Medium Registry - how buyers pay and how the engine pays out.

A sale names its payment medium by index:

    0      -> native currency
    n >= 1 -> n-th registered fungible token

Every medium exposes the same two operations relative to the engine's
custody account:

- pull(payer, amount): move funds from the payer into custody
- push(recipient, amount): move funds from custody to the recipient

Native currency transfers notify the recipient through receive hooks.
Hooks run arbitrary caller code before the transfer returns, which is
how a payee can try to call back into the engine mid-operation.
"""

import copy
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Tuple

from agora.core.errors import InsufficientFunds, UnknownPaymentMethod
from agora.crypto import address_from_label, short_address
from agora.utils.logger import get_logger

logger = get_logger("payments")

NATIVE_PAYMENT_METHOD = 0

ReceiveHook = Callable[[bytes, int], None]


# =============================================================================
# Currencies (external collaborators)
# =============================================================================


class NativeCurrency:
    """
    Native currency balances.

    Attributes:
        symbol: Display symbol
        balances: address -> balance
        hooks: address -> callbacks run on receipt (sender, amount)
    """

    def __init__(self, symbol: str = "ETH"):
        self.symbol = symbol
        self.balances: Dict[bytes, int] = defaultdict(int)
        self.hooks: Dict[bytes, List[ReceiveHook]] = defaultdict(list)

    def mint(self, to: bytes, amount: int) -> None:
        self.balances[to] += amount

    def balance_of(self, address: bytes) -> int:
        return self.balances.get(address, 0)

    def on_receive(self, address: bytes, hook: ReceiveHook) -> None:
        """Register code that runs whenever `address` receives funds."""
        self.hooks[address].append(hook)

    def transfer(self, sender: bytes, recipient: bytes, amount: int) -> None:
        available = self.balances.get(sender, 0)
        if available < amount:
            raise InsufficientFunds(required=amount, available=available)
        self.balances[sender] = available - amount
        self.balances[recipient] += amount
        for hook in list(self.hooks.get(recipient, ())):
            hook(sender, amount)

    def snapshot(self):
        return copy.deepcopy(dict(self.balances))

    def restore(self, state) -> None:
        self.balances.clear()
        self.balances.update(state)


class FungibleToken:
    """
    A fungible token with allowances.

    Attributes:
        symbol: Display symbol
        address: Token address
        balances: address -> balance
        allowances: (owner, spender) -> allowance
    """

    def __init__(self, symbol: str, address: Optional[bytes] = None):
        self.symbol = symbol
        self.address = address or address_from_label(f"token:{symbol}")
        self.balances: Dict[bytes, int] = defaultdict(int)
        self.allowances: Dict[Tuple[bytes, bytes], int] = defaultdict(int)

    def mint(self, to: bytes, amount: int) -> None:
        self.balances[to] += amount

    def balance_of(self, address: bytes) -> int:
        return self.balances.get(address, 0)

    def approve(self, owner: bytes, spender: bytes, amount: int) -> None:
        self.allowances[(owner, spender)] = amount

    def allowance(self, owner: bytes, spender: bytes) -> int:
        return self.allowances.get((owner, spender), 0)

    def transfer(self, sender: bytes, recipient: bytes, amount: int) -> None:
        available = self.balances.get(sender, 0)
        if available < amount:
            raise InsufficientFunds(required=amount, available=available)
        self.balances[sender] = available - amount
        self.balances[recipient] += amount

    def transfer_from(self, spender: bytes, owner: bytes, recipient: bytes, amount: int) -> None:
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise InsufficientFunds(required=amount, available=allowed)
        self.transfer(owner, recipient, amount)
        self.allowances[(owner, spender)] = allowed - amount

    def snapshot(self):
        return copy.deepcopy((dict(self.balances), dict(self.allowances)))

    def restore(self, state) -> None:
        balances, allowances = state
        self.balances.clear()
        self.balances.update(balances)
        self.allowances.clear()
        self.allowances.update(allowances)


# =============================================================================
# Media
# =============================================================================


class NativeMedium:
    """Native currency moved in and out of custody."""

    def __init__(self, currency: NativeCurrency, custody: bytes):
        self.currency = currency
        self.custody = custody

    @property
    def symbol(self) -> str:
        return self.currency.symbol

    def pull(self, payer: bytes, amount: int) -> None:
        if amount > 0:
            self.currency.transfer(payer, self.custody, amount)

    def push(self, recipient: bytes, amount: int) -> None:
        if amount > 0:
            self.currency.transfer(self.custody, recipient, amount)

    def held(self) -> int:
        return self.currency.balance_of(self.custody)


class TokenMedium:
    """Fungible token pulled via allowance and pushed from custody."""

    def __init__(self, token: FungibleToken, custody: bytes):
        self.token = token
        self.custody = custody

    @property
    def symbol(self) -> str:
        return self.token.symbol

    def pull(self, payer: bytes, amount: int) -> None:
        if amount > 0:
            self.token.transfer_from(self.custody, payer, self.custody, amount)

    def push(self, recipient: bytes, amount: int) -> None:
        if amount > 0:
            self.token.transfer(self.custody, recipient, amount)

    def held(self) -> int:
        return self.token.balance_of(self.custody)


# =============================================================================
# Registry
# =============================================================================


class PaymentRegistry:
    """
    Resolves payment method indices to media.

    Index 0 is always the native currency.
    """

    def __init__(self, custody: bytes, native: Optional[NativeCurrency] = None):
        self.custody = custody
        self.native = native or NativeCurrency()
        self.media: List[object] = [NativeMedium(self.native, custody)]

    def register_token(self, token: FungibleToken) -> int:
        """Register a token and return its payment method index."""
        for index, medium in enumerate(self.media):
            if isinstance(medium, TokenMedium) and medium.token.address == token.address:
                return index
        self.media.append(TokenMedium(token, self.custody))
        index = len(self.media) - 1
        logger.info(f"Payment token registered: {token.symbol} ({short_address(token.address)}) as method {index}")
        return index

    def is_known(self, payment_method: int) -> bool:
        return 0 <= payment_method < len(self.media)

    def is_native(self, payment_method: int) -> bool:
        return payment_method == NATIVE_PAYMENT_METHOD

    def resolve(self, payment_method: int):
        if not self.is_known(payment_method):
            raise UnknownPaymentMethod(payment_method)
        return self.media[payment_method]

    def pull(self, payment_method: int, payer: bytes, amount: int) -> None:
        self.resolve(payment_method).pull(payer, amount)

    def push(self, payment_method: int, recipient: bytes, amount: int) -> None:
        self.resolve(payment_method).push(recipient, amount)

    # =========================================================================
    # Rollback support
    # =========================================================================

    def _currencies(self) -> list:
        return [self.native] + [m.token for m in self.media if isinstance(m, TokenMedium)]

    def snapshot(self) -> list:
        return [currency.snapshot() for currency in self._currencies()]

    def restore(self, state: list) -> None:
        for currency, currency_state in zip(self._currencies(), state):
            currency.restore(currency_state)
