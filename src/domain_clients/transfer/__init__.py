"""Cross-chain transfers — packet tracking and refund coordination."""

from __future__ import annotations

from domain_clients.transfer.coordinator import CrossChainTransferCoordinator
from domain_clients.transfer.models import TransferRequest, TransferState, TransferStatus
from domain_clients.transfer.tracker import IbcTransferTracker, PacketTracker, packet_commitment

__all__ = [
    "CrossChainTransferCoordinator",
    "IbcTransferTracker",
    "PacketTracker",
    "TransferRequest",
    "TransferState",
    "TransferStatus",
    "packet_commitment",
]
