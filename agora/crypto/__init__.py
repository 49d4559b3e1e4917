"""
Identity helpers for Agora.

Participants in the marketplace (sellers, bidders, creators, the engine's
own custody account) are identified by 20-byte addresses, derived the way
EVM chains derive them so that wallet-generated identities can be used
unchanged:

    address = keccak256(uncompressed_public_key)[-20:]

Keyless accounts (the engine custody account, collection contracts in
tests) get a deterministic address from a label instead.
"""

import re
import secrets
from dataclasses import dataclass

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# Order of the secp256k1 group; valid secret keys lie in [1, N)
CURVE_ORDER_N = secp256k1.N

ADDRESS_SIZE = 20

# "No counterparty yet"
ZERO_ADDRESS = bytes(ADDRESS_SIZE)

LABEL_DOMAIN = b"agora:"

_HEX_ADDRESS = re.compile(r"0x[0-9a-fA-F]{40}")


# =============================================================================
# Hashing
# =============================================================================


def keccak256(data: bytes) -> bytes:
    """Keccak-256 digest (pre-standard SHA3, as used by EVM chains)."""
    return keccak.new(data=data, digest_bits=256).digest()


# =============================================================================
# Keys
# =============================================================================


@dataclass
class KeyPair:
    """secp256k1 secret key with its 64-byte public key (x || y)."""
    private_key: bytes
    public_key: bytes

    @property
    def address(self) -> bytes:
        return address_from_public_key(self.public_key)

    @property
    def address_hex(self) -> str:
        return bytes_to_hex(self.address)


def generate_keypair() -> KeyPair:
    """Fresh random identity, e.g. for demo participants."""
    secret = (secrets.randbelow(CURVE_ORDER_N - 1) + 1).to_bytes(32, "big")
    return KeyPair(private_key=secret, public_key=private_key_to_public_key(secret))


def private_key_to_public_key(private_key: bytes) -> bytes:
    if len(private_key) != 32:
        raise ValueError(f"Expected a 32-byte secret key, got {len(private_key)} bytes")
    x, y = secp256k1.privtopub(private_key)
    return x.to_bytes(32, "big") + y.to_bytes(32, "big")


# =============================================================================
# Addresses
# =============================================================================


def address_from_public_key(public_key: bytes) -> bytes:
    if len(public_key) != 64:
        raise ValueError(f"Expected a 64-byte public key, got {len(public_key)} bytes")
    return keccak256(public_key)[-ADDRESS_SIZE:]


def address_from_label(label: str) -> bytes:
    """Deterministic address for a keyless account, under the agora: prefix."""
    return keccak256(LABEL_DOMAIN + label.encode("utf-8"))[-ADDRESS_SIZE:]


def bytes_to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def short_address(address: bytes) -> str:
    """First four bytes in hex, for log lines."""
    return bytes_to_hex(address)[:10]


def is_valid_address(address: str) -> bool:
    """True for a 0x-prefixed, 40-hex-digit address string."""
    return _HEX_ADDRESS.fullmatch(address) is not None
