"""Secp256k1 signer shared by the Cosmos and EVM backends."""

from __future__ import annotations

from eth_utils import keccak, to_checksum_address

from domain_clients.signing.keys import (
    COSMOS_HD_PATH,
    ExtendedKey,
    bech32_encode,
    mnemonic_to_seed,
    private_key_to_public_key,
    sign_digest,
)
from domain_clients.utils.crypto import hash160


class Secp256k1Signer:
    """Holds one secp256k1 private key and derives its chain addresses.

    Usage::

        signer = Secp256k1Signer.from_mnemonic(phrase)          # Cosmos path
        evm = Secp256k1Signer.from_mnemonic(phrase, EVM_HD_PATH)
        evm.evm_address()
    """

    def __init__(self, private_key: bytes) -> None:
        if len(private_key) != 32:
            msg = f"Private key must be 32 bytes, got {len(private_key)}"
            raise ValueError(msg)
        self._private_key = private_key
        self._public_key = private_key_to_public_key(private_key, compressed=True)

    @classmethod
    def from_mnemonic(
        cls,
        phrase: str,
        path: str = COSMOS_HD_PATH,
        *,
        passphrase: str = "",
    ) -> Secp256k1Signer:
        """Derive the signer at ``path`` from a BIP39 mnemonic."""
        seed = mnemonic_to_seed(phrase, passphrase)
        return cls(ExtendedKey.from_seed(seed).derive_path(path).key)

    @classmethod
    def from_hex(cls, private_key_hex: str) -> Secp256k1Signer:
        return cls(bytes.fromhex(private_key_hex.removeprefix("0x")))

    @property
    def private_key(self) -> bytes:
        return self._private_key

    @property
    def public_key(self) -> bytes:
        """33-byte compressed public key."""
        return self._public_key

    def sign_digest(self, digest: bytes) -> bytes:
        """64-byte canonical ``r || s`` signature over a 32-byte digest."""
        return sign_digest(self._private_key, digest)

    def cosmos_address(self, prefix: str = "cosmos") -> str:
        """Bech32 account address: ``bech32(prefix, ripemd160(sha256(pubkey)))``."""
        return bech32_encode(prefix, hash160(self._public_key))

    def evm_address(self) -> str:
        """EIP-55 checksummed address: last 20 bytes of keccak(uncompressed pubkey)."""
        uncompressed = private_key_to_public_key(self._private_key, compressed=False)
        return to_checksum_address(keccak(uncompressed[1:])[-20:])

    def __repr__(self) -> str:
        return f"Secp256k1Signer(public_key={self._public_key.hex()})"
