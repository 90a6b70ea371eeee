"""Capability contracts shared by the chain backends.

Backends implement these structurally; there is no common base class.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from domain_clients.chain.models import (
        Account,
        BroadcastOutcome,
        ConfirmationStatus,
        GasEstimate,
        SignedTx,
        TxIntent,
    )


@runtime_checkable
class SequenceSource(Protocol):
    """Anything that can report an account's on-chain sequence / nonce."""

    async def account_sequence(self, address: str) -> int: ...


class Signer(Protocol):
    """secp256k1 key holder used by ``build_and_sign``."""

    @property
    def public_key(self) -> bytes: ...

    @property
    def private_key(self) -> bytes: ...

    def sign_digest(self, digest: bytes) -> bytes: ...


@runtime_checkable
class ChainClient(SequenceSource, Protocol):
    """Uniform transaction capability of a Cosmos-SDK or EVM endpoint."""

    @property
    def chain_id(self) -> str: ...

    async def query(self, path: str, params: bytes) -> bytes:
        """Read-only call; never retried by the lifecycle."""
        ...

    async def simulate(self, intent: TxIntent, account: Account) -> GasEstimate:
        """Dry-run the intent and estimate gas.

        Raises:
            BuildError: The chain rejected the dry run.
            InsufficientFunds: The account cannot cover it.
        """
        ...

    def build_and_sign(
        self,
        intent: TxIntent,
        account: Account,
        signer: Signer,
    ) -> SignedTx:
        """Deterministically encode and sign using ``account.sequence``."""
        ...

    async def broadcast(self, signed_tx: SignedTx) -> BroadcastOutcome:
        """Submit signed bytes.

        Raises:
            NetworkError: Transport failure; rejections are returned, not raised.
        """
        ...

    async def poll_confirmation(self, tx_hash: str, timeout: float) -> ConfirmationStatus:
        """Re-check until a terminal status or ``timeout`` seconds elapse."""
        ...
