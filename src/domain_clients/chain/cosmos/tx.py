"""Cosmos SDK transaction envelope: body, auth info, sign doc, raw tx.

All encoders serialise deterministically, so identical inputs produce
byte-identical output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from cosmpy.protos.cosmos.crypto.secp256k1.keys_pb2 import PubKey
from cosmpy.protos.cosmos.tx.signing.v1beta1.signing_pb2 import SIGN_MODE_DIRECT
from cosmpy.protos.cosmos.tx.v1beta1.tx_pb2 import (
    AuthInfo,
    Fee,
    ModeInfo,
    SignDoc,
    SignerInfo,
    TxBody,
    TxRaw,
)
from google.protobuf.any_pb2 import Any as AnyPb

from domain_clients.codec.bindings import coin_to_proto
from domain_clients.utils.crypto import sha256

if TYPE_CHECKING:
    from collections.abc import Iterable

    from domain_clients.codec.codec import ProtoCodec
    from domain_clients.codec.messages import Coin

SECP256K1_PUBKEY_TYPE_URL = "/cosmos.crypto.secp256k1.PubKey"


def pack_any(codec: ProtoCodec, message: object) -> AnyPb:
    packed = codec.pack(message)
    return AnyPb(type_url=packed.type_url, value=packed.value)


def encode_body(codec: ProtoCodec, messages: Iterable[object], memo: str = "") -> bytes:
    body = TxBody(messages=[pack_any(codec, m) for m in messages], memo=memo)
    return body.SerializeToString(deterministic=True)


def encode_auth_info(
    public_key: bytes,
    sequence: int,
    gas_limit: int,
    fee: Iterable[Coin],
) -> bytes:
    """Single-signer SIGN_MODE_DIRECT auth info."""
    pubkey_any = AnyPb(
        type_url=SECP256K1_PUBKEY_TYPE_URL,
        value=PubKey(key=public_key).SerializeToString(deterministic=True),
    )
    signer_info = SignerInfo(
        public_key=pubkey_any,
        mode_info=ModeInfo(single=ModeInfo.Single(mode=SIGN_MODE_DIRECT)),
        sequence=sequence,
    )
    auth_info = AuthInfo(
        signer_infos=[signer_info],
        fee=Fee(amount=[coin_to_proto(c) for c in fee], gas_limit=gas_limit),
    )
    return auth_info.SerializeToString(deterministic=True)


def encode_sign_doc(
    body_bytes: bytes,
    auth_info_bytes: bytes,
    chain_id: str,
    account_number: int,
) -> bytes:
    doc = SignDoc(
        body_bytes=body_bytes,
        auth_info_bytes=auth_info_bytes,
        chain_id=chain_id,
        account_number=account_number,
    )
    return doc.SerializeToString(deterministic=True)


def encode_tx_raw(body_bytes: bytes, auth_info_bytes: bytes, signature: bytes) -> bytes:
    raw = TxRaw(body_bytes=body_bytes, auth_info_bytes=auth_info_bytes, signatures=[signature])
    return raw.SerializeToString(deterministic=True)


def tx_hash(raw_bytes: bytes) -> str:
    """Upper-case hex SHA-256 of the ``TxRaw`` bytes (CometBFT tx hash)."""
    return sha256(raw_bytes).hex().upper()
