"""Packet trackers — how a transfer is sent, observed and refunded.

:class:`IbcTransferTracker` implements ICS-20 over IBC: the send is a
``MsgTransfer``, acknowledgement evidence is the destination channel's
packet receipt, and the refund is a ``MsgTimeout`` carrying the
destination's proof of non-receipt. Before refunding, the source's stored
packet commitment is compared with the one recorded at send time.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from domain_clients.chain.cosmos.client import (
    PACKET_COMMITMENT_METHOD,
    PACKET_RECEIPT_METHOD,
    to_unix_nanos,
)
from domain_clients.chain.models import TxIntent
from domain_clients.codec.codec import default_codec
from domain_clients.codec.messages import (
    Height,
    MsgTimeout,
    MsgTransfer,
    Packet,
    PacketCommitment,
    PacketReceipt,
    QueryPacketCommitment,
    QueryPacketReceipt,
)
from domain_clients.config.settings import TransferConfig
from domain_clients.errors.chain_errors import NotFoundError
from domain_clients.errors.client_errors import ClientError
from domain_clients.errors.tx_errors import BuildError
from domain_clients.utils.crypto import sha256

if TYPE_CHECKING:
    from domain_clients.chain.base import ChainClient
    from domain_clients.chain.cosmos.client import CosmosClient
    from domain_clients.chain.models import Account, ConfirmationStatus
    from domain_clients.codec.codec import ProtoCodec
    from domain_clients.transfer.models import TransferRequest

logger = logging.getLogger(__name__)

SEND_PACKET_EVENT = "send_packet"


def packet_commitment(packet: Packet) -> bytes:
    """ICS-04 commitment: ``sha256(timeout_ts || rev_number || rev_height || sha256(data))``."""
    return sha256(
        packet.timeout_timestamp.to_bytes(8, "big")
        + packet.timeout_height.revision_number.to_bytes(8, "big")
        + packet.timeout_height.revision_height.to_bytes(8, "big")
        + sha256(packet.data)
    )


def _parse_height(value: str) -> Height:
    """Parse the ``"<revision>-<height>"`` event encoding."""
    if not value:
        return Height()
    number, _, height = value.partition("-")
    return Height(revision_number=int(number), revision_height=int(height or 0))


class PacketTracker(Protocol):
    """Protocol-specific half of a cross-chain transfer."""

    async def build_send(
        self,
        request: TransferRequest,
        source: ChainClient,
        account: Account,
    ) -> TxIntent: ...

    def extract_packet(self, status: ConfirmationStatus) -> Packet: ...

    async def is_received(self, dest: ChainClient, packet: Packet) -> bool: ...

    async def source_commitment(self, source: ChainClient, packet: Packet) -> bytes: ...

    async def build_refund(
        self,
        source: ChainClient,
        dest: ChainClient,
        packet: Packet,
        account: Account,
    ) -> TxIntent: ...


class IbcTransferTracker:
    """ICS-20 transfer tracking between two Cosmos chains."""

    def __init__(
        self,
        config: TransferConfig | None = None,
        *,
        codec: ProtoCodec | None = None,
    ) -> None:
        self._config = config or TransferConfig()
        self._codec = codec or default_codec()

    async def build_send(
        self,
        request: TransferRequest,
        source: CosmosClient,
        account: Account,
    ) -> TxIntent:
        """``MsgTransfer`` timing out ``packet_timeout`` seconds past source chain time."""
        block_time = await source.latest_block_time()
        timeout_ns = to_unix_nanos(block_time) + round(self._config.packet_timeout * 1_000_000_000)
        msg = MsgTransfer(
            source_port=request.source_port,
            source_channel=request.source_channel,
            token=request.token,
            sender=account.address,
            receiver=request.receiver,
            timeout_height=Height(),
            timeout_timestamp=timeout_ns,
        )
        return TxIntent(
            chain_id=source.chain_id,
            messages=(msg,),
            fee=request.fee,
            memo=request.memo,
        )

    def extract_packet(self, status: ConfirmationStatus) -> Packet:
        """Rebuild the packet from the ``send_packet`` event of the included send.

        Raises:
            ClientError: The included transaction emitted no ``send_packet``.
        """
        events = status.find_events(SEND_PACKET_EVENT)
        if not events:
            msg = "Included transfer emitted no send_packet event"
            raise ClientError(msg, code="packet-not-found")
        attrs = events[0].attributes
        if "packet_data_hex" in attrs:
            data = bytes.fromhex(attrs["packet_data_hex"])
        else:
            data = attrs.get("packet_data", "").encode()
        try:
            return Packet(
                sequence=int(attrs["packet_sequence"]),
                source_port=attrs["packet_src_port"],
                source_channel=attrs["packet_src_channel"],
                destination_port=attrs["packet_dst_port"],
                destination_channel=attrs["packet_dst_channel"],
                data=data,
                timeout_height=_parse_height(attrs.get("packet_timeout_height", "")),
                timeout_timestamp=int(attrs.get("packet_timeout_timestamp", "0") or 0),
            )
        except (KeyError, ValueError) as exc:
            msg = f"Malformed send_packet event: {exc}"
            raise ClientError(msg, code="packet-not-found") from exc

    async def receipt(self, dest: ChainClient, packet: Packet) -> PacketReceipt:
        """Destination channel's packet receipt (with proof) for ``packet``."""
        request = QueryPacketReceipt(
            port_id=packet.destination_port,
            channel_id=packet.destination_channel,
            sequence=packet.sequence,
        )
        raw = await dest.query(PACKET_RECEIPT_METHOD, self._codec.encode(request))
        return self._codec.decode(self._codec.type_url_for(PacketReceipt), raw)

    async def is_received(self, dest: ChainClient, packet: Packet) -> bool:
        receipt = await self.receipt(dest, packet)
        return receipt.received

    async def source_commitment(self, source: ChainClient, packet: Packet) -> bytes:
        """Commitment the source chain still stores for ``packet``.

        Returns ``b""`` once the source has deleted it, which happens when the
        packet is acknowledged or its timeout has been relayed.
        """
        request = QueryPacketCommitment(
            port_id=packet.source_port,
            channel_id=packet.source_channel,
            sequence=packet.sequence,
        )
        try:
            raw = await source.query(PACKET_COMMITMENT_METHOD, self._codec.encode(request))
        except NotFoundError:
            return b""
        commitment = self._codec.decode(self._codec.type_url_for(PacketCommitment), raw)
        return commitment.commitment

    async def build_refund(
        self,
        source: ChainClient,
        dest: ChainClient,
        packet: Packet,
        account: Account,
    ) -> TxIntent:
        """``MsgTimeout`` for ``packet``, proven against the destination's non-receipt.

        Raises:
            BuildError: The destination has in fact received the packet.
        """
        receipt = await self.receipt(dest, packet)
        if receipt.received:
            msg = f"Packet {packet.sequence} was received on {dest.chain_id}; nothing to refund"
            raise BuildError(msg, chain_id=source.chain_id, address=account.address)
        msg_timeout = MsgTimeout(
            packet=packet,
            proof_unreceived=receipt.proof,
            proof_height=receipt.proof_height,
            next_sequence_recv=packet.sequence,
            signer=account.address,
        )
        logger.info(
            "Built timeout refund for packet %s/%s #%d",
            packet.source_port,
            packet.source_channel,
            packet.sequence,
        )
        return TxIntent(chain_id=source.chain_id, messages=(msg_timeout,))
