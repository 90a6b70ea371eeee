"""Mappings between package messages and cosmpy's generated protobuf classes.

Each ``(py_type, pb_type, to_proto, from_proto)`` row is registered on the
default codec by :func:`register_defaults`. Swapping the generated-class
provider means editing this module only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from cosmpy.protos.cosmos.bank.v1beta1.tx_pb2 import MsgSend as MsgSendPb
from cosmpy.protos.cosmos.base.v1beta1.coin_pb2 import Coin as CoinPb
from cosmpy.protos.cosmwasm.wasm.v1.tx_pb2 import MsgExecuteContract as MsgExecuteContractPb
from cosmpy.protos.ibc.applications.transfer.v1.tx_pb2 import MsgTransfer as MsgTransferPb
from cosmpy.protos.ibc.core.channel.v1.channel_pb2 import Packet as PacketPb
from cosmpy.protos.ibc.core.channel.v1.query_pb2 import (
    QueryPacketCommitmentRequest,
    QueryPacketCommitmentResponse,
    QueryPacketReceiptRequest,
    QueryPacketReceiptResponse,
)
from cosmpy.protos.ibc.core.channel.v1.tx_pb2 import MsgTimeout as MsgTimeoutPb
from cosmpy.protos.ibc.core.client.v1.client_pb2 import Height as HeightPb

from domain_clients.codec.messages import (
    Coin,
    Height,
    MsgExecuteContract,
    MsgSend,
    MsgTimeout,
    MsgTransfer,
    Packet,
    PacketCommitment,
    PacketReceipt,
    QueryPacketCommitment,
    QueryPacketReceipt,
)

if TYPE_CHECKING:
    from domain_clients.codec.codec import ProtoCodec


# -- Coin / Height --


def coin_to_proto(coin: Coin) -> CoinPb:
    return CoinPb(denom=coin.denom, amount=str(coin.amount))


def coin_from_proto(pb: CoinPb) -> Coin:
    return Coin(denom=pb.denom, amount=int(pb.amount or 0))


def height_to_proto(height: Height) -> HeightPb:
    return HeightPb(
        revision_number=height.revision_number,
        revision_height=height.revision_height,
    )


def height_from_proto(pb: HeightPb) -> Height:
    return Height(revision_number=pb.revision_number, revision_height=pb.revision_height)


# -- Bank / wasm --


def msg_send_to_proto(msg: MsgSend) -> MsgSendPb:
    return MsgSendPb(
        from_address=msg.from_address,
        to_address=msg.to_address,
        amount=[coin_to_proto(c) for c in msg.amount],
    )


def msg_send_from_proto(pb: MsgSendPb) -> MsgSend:
    return MsgSend(
        from_address=pb.from_address,
        to_address=pb.to_address,
        amount=tuple(coin_from_proto(c) for c in pb.amount),
    )


def msg_execute_contract_to_proto(msg: MsgExecuteContract) -> MsgExecuteContractPb:
    return MsgExecuteContractPb(
        sender=msg.sender,
        contract=msg.contract,
        msg=msg.msg,
        funds=[coin_to_proto(c) for c in msg.funds],
    )


def msg_execute_contract_from_proto(pb: MsgExecuteContractPb) -> MsgExecuteContract:
    return MsgExecuteContract(
        sender=pb.sender,
        contract=pb.contract,
        msg=bytes(pb.msg),
        funds=tuple(coin_from_proto(c) for c in pb.funds),
    )


# -- IBC --


def msg_transfer_to_proto(msg: MsgTransfer) -> MsgTransferPb:
    pb = MsgTransferPb(
        source_port=msg.source_port,
        source_channel=msg.source_channel,
        token=coin_to_proto(msg.token),
        sender=msg.sender,
        receiver=msg.receiver,
        timeout_height=height_to_proto(msg.timeout_height),
        timeout_timestamp=msg.timeout_timestamp,
    )
    if msg.memo:
        pb.memo = msg.memo
    return pb


def msg_transfer_from_proto(pb: MsgTransferPb) -> MsgTransfer:
    return MsgTransfer(
        source_port=pb.source_port,
        source_channel=pb.source_channel,
        token=coin_from_proto(pb.token),
        sender=pb.sender,
        receiver=pb.receiver,
        timeout_height=height_from_proto(pb.timeout_height),
        timeout_timestamp=pb.timeout_timestamp,
        memo=getattr(pb, "memo", ""),
    )


def packet_to_proto(packet: Packet) -> PacketPb:
    return PacketPb(
        sequence=packet.sequence,
        source_port=packet.source_port,
        source_channel=packet.source_channel,
        destination_port=packet.destination_port,
        destination_channel=packet.destination_channel,
        data=packet.data,
        timeout_height=height_to_proto(packet.timeout_height),
        timeout_timestamp=packet.timeout_timestamp,
    )


def packet_from_proto(pb: PacketPb) -> Packet:
    return Packet(
        sequence=pb.sequence,
        source_port=pb.source_port,
        source_channel=pb.source_channel,
        destination_port=pb.destination_port,
        destination_channel=pb.destination_channel,
        data=bytes(pb.data),
        timeout_height=height_from_proto(pb.timeout_height),
        timeout_timestamp=pb.timeout_timestamp,
    )


def msg_timeout_to_proto(msg: MsgTimeout) -> MsgTimeoutPb:
    return MsgTimeoutPb(
        packet=packet_to_proto(msg.packet),
        proof_unreceived=msg.proof_unreceived,
        proof_height=height_to_proto(msg.proof_height),
        next_sequence_recv=msg.next_sequence_recv,
        signer=msg.signer,
    )


def msg_timeout_from_proto(pb: MsgTimeoutPb) -> MsgTimeout:
    return MsgTimeout(
        packet=packet_from_proto(pb.packet),
        proof_unreceived=bytes(pb.proof_unreceived),
        proof_height=height_from_proto(pb.proof_height),
        next_sequence_recv=pb.next_sequence_recv,
        signer=pb.signer,
    )


def packet_receipt_query_to_proto(query: QueryPacketReceipt) -> QueryPacketReceiptRequest:
    return QueryPacketReceiptRequest(
        port_id=query.port_id,
        channel_id=query.channel_id,
        sequence=query.sequence,
    )


def packet_receipt_query_from_proto(pb: QueryPacketReceiptRequest) -> QueryPacketReceipt:
    return QueryPacketReceipt(port_id=pb.port_id, channel_id=pb.channel_id, sequence=pb.sequence)


def packet_receipt_to_proto(receipt: PacketReceipt) -> QueryPacketReceiptResponse:
    return QueryPacketReceiptResponse(
        received=receipt.received,
        proof=receipt.proof,
        proof_height=height_to_proto(receipt.proof_height),
    )


def packet_receipt_from_proto(pb: QueryPacketReceiptResponse) -> PacketReceipt:
    return PacketReceipt(
        received=pb.received,
        proof=bytes(pb.proof),
        proof_height=height_from_proto(pb.proof_height),
    )


def packet_commitment_query_to_proto(query: QueryPacketCommitment) -> QueryPacketCommitmentRequest:
    return QueryPacketCommitmentRequest(
        port_id=query.port_id,
        channel_id=query.channel_id,
        sequence=query.sequence,
    )


def packet_commitment_query_from_proto(pb: QueryPacketCommitmentRequest) -> QueryPacketCommitment:
    return QueryPacketCommitment(
        port_id=pb.port_id, channel_id=pb.channel_id, sequence=pb.sequence
    )


def packet_commitment_to_proto(commitment: PacketCommitment) -> QueryPacketCommitmentResponse:
    return QueryPacketCommitmentResponse(
        commitment=commitment.commitment,
        proof=commitment.proof,
        proof_height=height_to_proto(commitment.proof_height),
    )


def packet_commitment_from_proto(pb: QueryPacketCommitmentResponse) -> PacketCommitment:
    return PacketCommitment(
        commitment=bytes(pb.commitment),
        proof=bytes(pb.proof),
        proof_height=height_from_proto(pb.proof_height),
    )


def register_defaults(codec: ProtoCodec) -> None:
    """Register every built-in message type on ``codec``."""
    codec.register(Coin, CoinPb, to_proto=coin_to_proto, from_proto=coin_from_proto)
    codec.register(Height, HeightPb, to_proto=height_to_proto, from_proto=height_from_proto)
    codec.register(MsgSend, MsgSendPb, to_proto=msg_send_to_proto, from_proto=msg_send_from_proto)
    codec.register(
        MsgTransfer,
        MsgTransferPb,
        to_proto=msg_transfer_to_proto,
        from_proto=msg_transfer_from_proto,
    )
    codec.register(
        MsgExecuteContract,
        MsgExecuteContractPb,
        to_proto=msg_execute_contract_to_proto,
        from_proto=msg_execute_contract_from_proto,
    )
    codec.register(Packet, PacketPb, to_proto=packet_to_proto, from_proto=packet_from_proto)
    codec.register(
        MsgTimeout,
        MsgTimeoutPb,
        to_proto=msg_timeout_to_proto,
        from_proto=msg_timeout_from_proto,
    )
    codec.register(
        QueryPacketReceipt,
        QueryPacketReceiptRequest,
        to_proto=packet_receipt_query_to_proto,
        from_proto=packet_receipt_query_from_proto,
    )
    codec.register(
        PacketReceipt,
        QueryPacketReceiptResponse,
        to_proto=packet_receipt_to_proto,
        from_proto=packet_receipt_from_proto,
    )
    codec.register(
        QueryPacketCommitment,
        QueryPacketCommitmentRequest,
        to_proto=packet_commitment_query_to_proto,
        from_proto=packet_commitment_query_from_proto,
    )
    codec.register(
        PacketCommitment,
        QueryPacketCommitmentResponse,
        to_proto=packet_commitment_to_proto,
        from_proto=packet_commitment_from_proto,
    )
