"""Chain messages as plain frozen dataclasses.

These are the only message types callers see; the generated protobuf
classes they map to stay behind :class:`~domain_clients.codec.codec.ProtoCodec`.
Repeated fields are stored as tuples so messages hash and compare by value.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ProtoMessage:
    """An encoded message tagged with its type URL (the body of an ``Any``)."""

    type_url: str
    value: bytes


@dataclass(frozen=True)
class Coin:
    denom: str
    amount: int

    def __post_init__(self) -> None:
        if self.amount < 0:
            msg = f"Coin amount must be non-negative, got {self.amount}"
            raise ValueError(msg)

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


@dataclass(frozen=True, order=True)
class Height:
    """IBC height. ``Height()`` (all zeros) disables height-based timeout."""

    revision_number: int = 0
    revision_height: int = 0

    @property
    def is_zero(self) -> bool:
        return self.revision_number == 0 and self.revision_height == 0


# ---------------------------------------------------------------------------
# Transaction messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MsgSend:
    from_address: str
    to_address: str
    amount: tuple[Coin, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", tuple(self.amount))


@dataclass(frozen=True)
class MsgTransfer:
    """ICS-20 fungible token transfer."""

    source_port: str
    source_channel: str
    token: Coin
    sender: str
    receiver: str
    timeout_height: Height = field(default_factory=Height)
    timeout_timestamp: int = 0  # unix nanoseconds, 0 = disabled
    memo: str = ""


@dataclass(frozen=True)
class MsgExecuteContract:
    """CosmWasm contract execution; ``msg`` is the raw JSON payload."""

    sender: str
    contract: str
    msg: bytes
    funds: tuple[Coin, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "funds", tuple(self.funds))


# ---------------------------------------------------------------------------
# IBC channel
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Packet:
    sequence: int
    source_port: str
    source_channel: str
    destination_port: str
    destination_channel: str
    data: bytes
    timeout_height: Height = field(default_factory=Height)
    timeout_timestamp: int = 0


@dataclass(frozen=True)
class MsgTimeout:
    """Refund an unreceived packet on its source chain."""

    packet: Packet
    proof_unreceived: bytes
    proof_height: Height
    next_sequence_recv: int
    signer: str


@dataclass(frozen=True)
class QueryPacketReceipt:
    port_id: str
    channel_id: str
    sequence: int


@dataclass(frozen=True)
class PacketReceipt:
    received: bool
    proof: bytes = b""
    proof_height: Height = field(default_factory=Height)


@dataclass(frozen=True)
class QueryPacketCommitment:
    port_id: str
    channel_id: str
    sequence: int


@dataclass(frozen=True)
class PacketCommitment:
    """Source-side commitment; empty once the packet is acknowledged or timed out."""

    commitment: bytes = b""
    proof: bytes = b""
    proof_height: Height = field(default_factory=Height)
