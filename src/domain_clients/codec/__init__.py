"""Codec — package-owned chain messages and their protobuf wire format."""

from __future__ import annotations

from domain_clients.codec.codec import ProtoCodec, default_codec
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
    ProtoMessage,
    QueryPacketCommitment,
    QueryPacketReceipt,
)

__all__ = [
    "Coin",
    "Height",
    "MsgExecuteContract",
    "MsgSend",
    "MsgTimeout",
    "MsgTransfer",
    "Packet",
    "PacketCommitment",
    "PacketReceipt",
    "ProtoCodec",
    "ProtoMessage",
    "QueryPacketCommitment",
    "QueryPacketReceipt",
    "default_codec",
]
