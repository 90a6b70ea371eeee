"""Cross-chain transfer request and state."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from domain_clients.chain.models import FeeBounds

if TYPE_CHECKING:
    from domain_clients.codec.messages import Coin, Packet


class TransferStatus(enum.StrEnum):
    SENT = "sent"
    ACKNOWLEDGED = "acknowledged"
    TIMED_OUT = "timed_out"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in (TransferStatus.ACKNOWLEDGED, TransferStatus.REFUNDED)


def _new_transfer_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class TransferRequest:
    """Move ``token`` from the source chain to ``receiver`` over ``source_channel``."""

    source_channel: str
    token: Coin
    receiver: str
    source_port: str = "transfer"
    memo: str = ""
    fee: FeeBounds = field(default_factory=FeeBounds)
    transfer_id: str = field(default_factory=_new_transfer_id)


@dataclass
class TransferState:
    """Tracked state of one transfer. Mutated only by the coordinator."""

    transfer_id: str
    source_chain: str
    dest_chain: str
    channel_or_bridge_id: str
    packet_sequence: int
    commitment_hash: str
    send_tx_hash: str
    packet: Packet
    status: TransferStatus = TransferStatus.SENT
    refund_tx_hash: str = ""
