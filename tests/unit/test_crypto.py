"""
Unit tests for cryptographic helpers.

Tests cover:
1. Key generation
2. Hashing
3. Address derivation
"""

from agora.crypto import (
    ADDRESS_SIZE,
    ZERO_ADDRESS,
    address_from_label,
    address_from_public_key,
    bytes_to_hex,
    generate_keypair,
    is_valid_address,
    keccak256,
    private_key_to_public_key,
    short_address,
)


class TestKeyGeneration:
    """Tests for key generation."""

    def test_keypair_lengths(self):
        kp = generate_keypair()
        assert len(kp.private_key) == 32
        assert len(kp.public_key) == 64

    def test_keypairs_are_unique(self):
        assert generate_keypair().private_key != generate_keypair().private_key

    def test_derive_public_key_from_private(self):
        kp = generate_keypair()
        assert private_key_to_public_key(kp.private_key) == kp.public_key


class TestHashing:
    """Tests for Keccak-256."""

    def test_keccak_empty(self):
        """Keccak (not SHA3) of the empty string."""
        assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"

    def test_keccak_length(self):
        assert len(keccak256(b"agora")) == 32


class TestAddresses:
    """Tests for address derivation."""

    def test_keypair_address(self):
        kp = generate_keypair()
        assert len(kp.address) == ADDRESS_SIZE
        assert kp.address == address_from_public_key(kp.public_key)
        assert is_valid_address(kp.address_hex)

    def test_label_addresses_are_deterministic(self):
        assert address_from_label("market:custody") == address_from_label("market:custody")
        assert address_from_label("alice") != address_from_label("bob")
        assert address_from_label("alice") != ZERO_ADDRESS

    def test_hex_helpers(self):
        address = address_from_label("alice")
        assert bytes_to_hex(address) == "0x" + address.hex()
        assert short_address(address) == bytes_to_hex(address)[:10]

    def test_is_valid_address(self):
        assert is_valid_address("0x" + "ab" * 20)
        assert not is_valid_address("ab" * 20)
        assert not is_valid_address("0x" + "ab" * 19)
        assert not is_valid_address("0x" + "zz" * 20)
