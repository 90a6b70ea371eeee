"""Cryptographic helpers — hashing."""

from __future__ import annotations

import hashlib

from Crypto.Hash import RIPEMD160


def sha256(data: bytes) -> bytes:
    """Single SHA-256 hash."""
    return hashlib.sha256(data).digest()


def ripemd160(data: bytes) -> bytes:
    """RIPEMD-160 hash.

    OpenSSL 3 builds move RIPEMD-160 to the legacy provider, so hashlib may
    not offer it; pycryptodome always does.
    """
    try:
        h = hashlib.new("ripemd160")
    except ValueError:
        return RIPEMD160.new(data).digest()
    h.update(data)
    return h.digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD-160(SHA-256(data)) — Cosmos account address bytes."""
    return ripemd160(sha256(data))
