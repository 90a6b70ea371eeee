"""Tests for BIP39 / BIP32 keys, bech32 and ECDSA — signing/keys.py."""

from __future__ import annotations

import pytest
from ecdsa import SECP256k1

from domain_clients.signing.keys import (
    COSMOS_HD_PATH,
    ExtendedKey,
    bech32_decode,
    bech32_encode,
    compress_public_key,
    mnemonic_to_seed,
    private_key_to_public_key,
    sign_digest,
    verify_digest,
)
from domain_clients.utils.crypto import hash160, ripemd160, sha256

# ---------------------------------------------------------------------------
# BIP32 Test Vector 1 (from BIP32 spec)
# Seed: 000102030405060708090a0b0c0d0e0f
# ---------------------------------------------------------------------------

_SEED_1 = bytes.fromhex("000102030405060708090a0b0c0d0e0f")
_MASTER_KEY = "e8f32e723decf4051aefac8e2c93c9c5b214313817cdb01a1494b917c8436b35"
_MASTER_CHAIN_CODE = "873dff81c02f525623fd1fe5167eac3a55a049de3d314bb42ee227ffed37d508"
_CHILD_0H_KEY = "edb2e14f9ee77d26dd93b4ecede8d16ed408ce149b6cd80b0715a2d911a0afea"

# Generator point G (private key 1)
_KEY_ONE = (1).to_bytes(32, "big")
_G_COMPRESSED = "0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"

_MNEMONIC = "test test test test test test test test test test test junk"


class TestBech32:
    """BIP173 encoding / decoding."""

    def test_empty_payload_vector(self) -> None:
        assert bech32_encode("a", b"") == "a12uel5l"

    def test_decode_vector(self) -> None:
        address = "abcdef1qpzry9x8gf2tvdw0s3jn54khce6mua7lmqqqxw"
        hrp, payload = bech32_decode(address)
        assert hrp == "abcdef"
        assert len(payload) == 20
        assert bech32_encode(hrp, payload) == address

    def test_uppercase_accepted(self) -> None:
        hrp, payload = bech32_decode("A12UEL5L")
        assert hrp == "a"
        assert payload == b""

    def test_roundtrip_20_bytes(self) -> None:
        payload = hash160(b"payload")
        hrp, decoded = bech32_decode(bech32_encode("osmo", payload))
        assert (hrp, decoded) == ("osmo", payload)

    def test_mixed_case_rejected(self) -> None:
        with pytest.raises(ValueError, match="mixed case"):
            bech32_decode("A12uEL5L")

    def test_checksum_mismatch(self) -> None:
        with pytest.raises(ValueError, match="checksum"):
            bech32_decode("a12uel5m")

    def test_invalid_character(self) -> None:
        with pytest.raises(ValueError, match="invalid character"):
            bech32_decode("a1b2uel5l")

    def test_missing_separator(self) -> None:
        with pytest.raises(ValueError, match="separator"):
            bech32_decode("qpzry9x8gf2tvdw0")


class TestBip39:
    def test_valid_mnemonic_seed_length(self) -> None:
        assert len(mnemonic_to_seed(_MNEMONIC)) == 64

    def test_passphrase_changes_seed(self) -> None:
        assert mnemonic_to_seed(_MNEMONIC) != mnemonic_to_seed(_MNEMONIC, "extra")

    def test_whitespace_normalized(self) -> None:
        assert mnemonic_to_seed("  " + _MNEMONIC.replace(" ", "   ")) == mnemonic_to_seed(
            _MNEMONIC
        )

    def test_bad_word_count_rejected(self) -> None:
        with pytest.raises(ValueError, match="Invalid BIP39"):
            mnemonic_to_seed(" ".join(["test"] * 11))

    def test_unknown_word_rejected(self) -> None:
        with pytest.raises(ValueError, match="Invalid BIP39"):
            mnemonic_to_seed(_MNEMONIC.replace("junk", "zzzz"))


class TestExtendedKey:
    def test_master_from_vector_1(self) -> None:
        master = ExtendedKey.from_seed(_SEED_1)
        assert master.key.hex() == _MASTER_KEY
        assert master.chain_code.hex() == _MASTER_CHAIN_CODE
        assert master.depth == 0
        assert master.parent_fingerprint == b"\x00\x00\x00\x00"

    def test_hardened_child_vector_1(self) -> None:
        child = ExtendedKey.from_seed(_SEED_1).derive_path("m/0'")
        assert child.key.hex() == _CHILD_0H_KEY
        assert child.depth == 1
        assert child.child_index == 0x80000000

    def test_parent_fingerprint(self) -> None:
        master = ExtendedKey.from_seed(_SEED_1)
        child = master.derive_child(0)
        assert child.parent_fingerprint == master.fingerprint()
        assert master.fingerprint().hex() == "3442193e"

    def test_h_suffix_equals_apostrophe(self) -> None:
        master = ExtendedKey.from_seed(_SEED_1)
        assert master.derive_path("m/0h/1").key == master.derive_path("m/0'/1").key

    def test_cosmos_path_depth(self) -> None:
        key = ExtendedKey.from_seed(mnemonic_to_seed(_MNEMONIC)).derive_path(COSMOS_HD_PATH)
        assert key.depth == 5
        assert key.child_index == 0

    @pytest.mark.parametrize("length", [15, 65])
    def test_seed_length_checked(self, length: int) -> None:
        with pytest.raises(ValueError, match="16-64"):
            ExtendedKey.from_seed(b"\x01" * length)


class TestEcdsa:
    def test_generator_point(self) -> None:
        assert private_key_to_public_key(_KEY_ONE).hex() == _G_COMPRESSED

    def test_uncompressed_form(self) -> None:
        uncompressed = private_key_to_public_key(_KEY_ONE, compressed=False)
        assert len(uncompressed) == 65
        assert uncompressed[0] == 0x04
        assert compress_public_key(uncompressed).hex() == _G_COMPRESSED

    def test_compress_passthrough(self) -> None:
        compressed = bytes.fromhex(_G_COMPRESSED)
        assert compress_public_key(compressed) == compressed

    def test_compress_bad_length(self) -> None:
        with pytest.raises(ValueError, match="length"):
            compress_public_key(b"\x04" * 10)

    def test_sign_and_verify(self) -> None:
        digest = sha256(b"sign doc bytes")
        signature = sign_digest(_KEY_ONE, digest)
        assert len(signature) == 64
        assert verify_digest(private_key_to_public_key(_KEY_ONE), digest, signature)

    def test_wrong_digest_fails_verification(self) -> None:
        signature = sign_digest(_KEY_ONE, sha256(b"a"))
        pubkey = private_key_to_public_key(_KEY_ONE, compressed=False)[1:]
        assert verify_digest(pubkey, sha256(b"b"), signature) is False

    def test_deterministic(self) -> None:
        digest = sha256(b"same")
        assert sign_digest(_KEY_ONE, digest) == sign_digest(_KEY_ONE, digest)

    def test_low_s(self) -> None:
        for i in range(8):
            signature = sign_digest(_KEY_ONE, sha256(bytes([i])))
            s = int.from_bytes(signature[32:], "big")
            assert s <= SECP256k1.order // 2

    def test_digest_length_checked(self) -> None:
        with pytest.raises(ValueError, match="32 bytes"):
            sign_digest(_KEY_ONE, b"short")


class TestHashing:
    def test_ripemd160_empty(self) -> None:
        assert ripemd160(b"").hex() == "9c1185a5c5e9fc54612808977ee8f548b2258d31"

    def test_hash160_generator(self) -> None:
        assert hash160(bytes.fromhex(_G_COMPRESSED)).hex() == (
            "751e76e8199196d454941c45d1b3a323f1433bd6"
        )
