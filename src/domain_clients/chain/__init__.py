"""Chain clients — Cosmos (gRPC) and EVM (JSON-RPC) backends."""

from domain_clients.chain.base import ChainClient, SequenceSource, Signer
from domain_clients.chain.models import (
    Account,
    BroadcastOutcome,
    ConfirmationState,
    ConfirmationStatus,
    EvmCall,
    FeeBounds,
    GasEstimate,
    RejectionKind,
    SignedTx,
    TxEvent,
    TxIntent,
)

__all__ = [
    "Account",
    "BroadcastOutcome",
    "ChainClient",
    "ConfirmationState",
    "ConfirmationStatus",
    "EvmCall",
    "FeeBounds",
    "GasEstimate",
    "RejectionKind",
    "SequenceSource",
    "SignedTx",
    "Signer",
    "TxEvent",
    "TxIntent",
]
