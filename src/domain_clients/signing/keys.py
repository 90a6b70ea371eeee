"""secp256k1 keys — BIP39 seeds, BIP32 derivation, bech32, ECDSA.

Implements the key material both backends sign with:
- BIP39 mnemonic → seed (``mnemonic`` library)
- BIP32 private child derivation (hardened & normal)
- Compressed / uncompressed public key encoding
- Deterministic (RFC 6979) low-S ECDSA over a 32-byte digest
- Bech32 encoding for Cosmos account addresses
"""

from __future__ import annotations

import hashlib
import hmac
import struct
from dataclasses import dataclass

from ecdsa import BadSignatureError, SECP256k1, SigningKey, VerifyingKey
from ecdsa.util import sigdecode_string, sigencode_string_canonize
from mnemonic import Mnemonic

from domain_clients.utils.crypto import hash160

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_CURVE = SECP256k1
_CURVE_ORDER = _CURVE.order

# BIP32 seed HMAC key
_MASTER_HMAC_KEY = b"Bitcoin seed"

_HARDENED = 0x80000000

# SLIP-44 default paths
COSMOS_HD_PATH = "m/44'/118'/0'/0/0"
EVM_HD_PATH = "m/44'/60'/0'/0/0"


# ---------------------------------------------------------------------------
# BIP39
# ---------------------------------------------------------------------------


def mnemonic_to_seed(phrase: str, passphrase: str = "") -> bytes:
    """Validate a BIP39 mnemonic and stretch it into a 64-byte seed.

    Raises:
        ValueError: If the phrase fails the BIP39 word list / checksum check.
    """
    normalized = " ".join(phrase.split())
    if not Mnemonic("english").check(normalized):
        msg = "Invalid BIP39 mnemonic"
        raise ValueError(msg)
    return Mnemonic.to_seed(normalized, passphrase=passphrase)


# ---------------------------------------------------------------------------
# Bech32 (BIP173)
# ---------------------------------------------------------------------------

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


def _bech32_polymod(values: list[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ value
        for i, gen in enumerate(_BECH32_GENERATOR):
            if (top >> i) & 1:
                chk ^= gen
    return chk


def _bech32_hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _convert_bits(data: bytes | list[int], from_bits: int, to_bits: int, *, pad: bool) -> list[int]:
    """Regroup a sequence of ``from_bits``-wide values into ``to_bits``-wide values."""
    acc = 0
    bits = 0
    out: list[int] = []
    maxv = (1 << to_bits) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            msg = f"Invalid value for {from_bits}-bit group: {value}"
            raise ValueError(msg)
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & maxv)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or ((acc << (to_bits - bits)) & maxv):
        msg = "Invalid padding in bech32 data"
        raise ValueError(msg)
    return out


def bech32_encode(hrp: str, payload: bytes) -> str:
    """Encode raw bytes as a bech32 string with human-readable part ``hrp``."""
    data = _convert_bits(payload, 8, 5, pad=True)
    polymod = _bech32_polymod(_bech32_hrp_expand(hrp) + data + [0] * 6) ^ 1
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(_BECH32_CHARSET[d] for d in data + checksum)


def bech32_decode(address: str) -> tuple[str, bytes]:
    """Decode a bech32 string into ``(hrp, payload)``, verifying the checksum.

    Raises:
        ValueError: On mixed case, bad characters, or checksum mismatch.
    """
    if address.lower() != address and address.upper() != address:
        msg = "Bech32 string has mixed case"
        raise ValueError(msg)
    address = address.lower()
    pos = address.rfind("1")
    if pos < 1 or pos + 7 > len(address):
        msg = "Bech32 separator misplaced"
        raise ValueError(msg)
    hrp = address[:pos]
    try:
        data = [_BECH32_CHARSET.index(c) for c in address[pos + 1 :]]
    except ValueError:
        msg = "Bech32 string contains an invalid character"
        raise ValueError(msg) from None
    if _bech32_polymod(_bech32_hrp_expand(hrp) + data) != 1:
        msg = "Bech32 checksum mismatch"
        raise ValueError(msg)
    return hrp, bytes(_convert_bits(data[:-6], 5, 8, pad=False))


# ---------------------------------------------------------------------------
# ECDSA helpers
# ---------------------------------------------------------------------------


def private_key_to_public_key(privkey_bytes: bytes, *, compressed: bool = True) -> bytes:
    """Derive the public key from a 32-byte private key.

    Args:
        privkey_bytes: 32-byte big-endian scalar.
        compressed: If True, return the 33-byte SEC compressed encoding.

    Returns:
        The public key bytes (33 compressed or 65 uncompressed).
    """
    sk = SigningKey.from_string(privkey_bytes, curve=_CURVE)
    vk = sk.get_verifying_key()
    if compressed:
        return compress_public_key(vk.to_string())
    return b"\x04" + vk.to_string()


def compress_public_key(raw_pubkey: bytes) -> bytes:
    """Compress a 64-byte (or 65-byte with 0x04 prefix) raw public key to 33 bytes."""
    if len(raw_pubkey) == 65 and raw_pubkey[0] == 0x04:
        raw_pubkey = raw_pubkey[1:]
    if len(raw_pubkey) != 64:
        if len(raw_pubkey) == 33 and raw_pubkey[0] in (0x02, 0x03):
            return raw_pubkey  # Already compressed
        msg = f"Invalid raw public key length: {len(raw_pubkey)}"
        raise ValueError(msg)
    x = int.from_bytes(raw_pubkey[:32], "big")
    y = int.from_bytes(raw_pubkey[32:], "big")
    prefix = b"\x02" if y % 2 == 0 else b"\x03"
    return prefix + x.to_bytes(32, "big")


def sign_digest(privkey_bytes: bytes, digest: bytes) -> bytes:
    """Sign a 32-byte digest; returns the 64-byte ``r || s`` form with low S.

    RFC 6979 nonces make the signature a pure function of key and digest.
    """
    if len(digest) != 32:
        msg = f"Digest must be 32 bytes, got {len(digest)}"
        raise ValueError(msg)
    sk = SigningKey.from_string(privkey_bytes, curve=_CURVE)
    return sk.sign_digest_deterministic(
        digest,
        hashfunc=hashlib.sha256,
        sigencode=sigencode_string_canonize,
    )


def verify_digest(pubkey_bytes: bytes, digest: bytes, signature: bytes) -> bool:
    """Verify a 64-byte ``r || s`` signature against a public key and digest."""
    vk = VerifyingKey.from_string(pubkey_bytes, curve=_CURVE)
    try:
        return vk.verify_digest(signature, digest, sigdecode=sigdecode_string)
    except BadSignatureError:
        return False


# ---------------------------------------------------------------------------
# BIP32 Extended Key (private derivation only)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExtendedKey:
    """A BIP32 extended private key.

    Attributes:
        key: 32-byte private key scalar.
        chain_code: 32-byte chain code.
        depth: Derivation depth (0 for master).
        parent_fingerprint: First 4 bytes of parent's Hash160(pubkey).
        child_index: Index used in derivation.
    """

    key: bytes
    chain_code: bytes
    depth: int
    parent_fingerprint: bytes
    child_index: int

    def public_key(self) -> bytes:
        """Return the 33-byte compressed public key."""
        return private_key_to_public_key(self.key, compressed=True)

    def fingerprint(self) -> bytes:
        """First 4 bytes of Hash160(compressed pubkey)."""
        return hash160(self.public_key())[:4]

    def derive_child(self, index: int) -> ExtendedKey:
        """Derive a child key at the given index.

        Use ``index >= 0x80000000`` for hardened derivation.

        Raises:
            ValueError: If the derived key is invalid.
        """
        if index >= _HARDENED:
            # Data = 0x00 || private_key || index
            data = b"\x00" + self.key + struct.pack(">I", index)
        else:
            # Data = compressed_pubkey || index
            data = self.public_key() + struct.pack(">I", index)

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        il, ir = hmac_result[:32], hmac_result[32:]

        il_int = int.from_bytes(il, "big")
        if il_int >= _CURVE_ORDER:
            msg = "Derived key is invalid (il >= curve order)"
            raise ValueError(msg)

        key_int = (il_int + int.from_bytes(self.key, "big")) % _CURVE_ORDER
        if key_int == 0:
            msg = "Derived key is invalid (key == 0)"
            raise ValueError(msg)
        return ExtendedKey(
            key=key_int.to_bytes(32, "big"),
            chain_code=ir,
            depth=self.depth + 1,
            parent_fingerprint=self.fingerprint(),
            child_index=index,
        )

    def derive_path(self, path: str) -> ExtendedKey:
        """Derive using a BIP32 path string like ``m/44'/118'/0'/0/0``.

        Apostrophe (') or h indicates hardened derivation.
        """
        parts = path.strip().split("/")
        key = self
        for part in parts:
            if part in ("m", "M", ""):
                continue
            hardened = part.endswith(("'", "h", "H"))
            idx = int(part.rstrip("'hH"))
            if hardened:
                idx += _HARDENED
            key = key.derive_child(idx)
        return key

    @classmethod
    def from_seed(cls, seed: bytes) -> ExtendedKey:
        """Create a master private extended key from a BIP32 seed.

        Raises:
            ValueError: If seed length is out of range.
        """
        if not 16 <= len(seed) <= 64:
            msg = f"Seed must be 16-64 bytes, got {len(seed)}"
            raise ValueError(msg)
        hmac_result = hmac.new(_MASTER_HMAC_KEY, seed, hashlib.sha512).digest()
        il, ir = hmac_result[:32], hmac_result[32:]
        il_int = int.from_bytes(il, "big")
        if il_int == 0 or il_int >= _CURVE_ORDER:
            msg = "Invalid seed (derived key out of range)"
            raise ValueError(msg)
        return cls(
            key=il,
            chain_code=ir,
            depth=0,
            parent_fingerprint=b"\x00\x00\x00\x00",
            child_index=0,
        )
