"""Domain-neutral transaction models shared by every chain backend."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True)
class Account:
    """A signing account on one chain.

    ``sequence`` is only a starting hint; the live value is owned by
    :class:`~domain_clients.lifecycle.sequencer.AccountSequencer`.
    """

    chain_id: str
    address: str
    public_key: bytes = b""
    account_number: int = 0
    sequence: int | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.chain_id, self.address)


@dataclass(frozen=True)
class FeeBounds:
    """Fee parameters and caps for one transaction.

    ``gas_limit=None`` or a zero ``gas_price`` means "estimate via simulate".
    For EVM chains ``gas_price`` is wei per gas and ``denom`` is ignored.
    """

    gas_limit: int | None = None
    gas_price: Decimal = Decimal(0)
    denom: str = ""
    max_gas: int | None = None
    max_fee: int | None = None
    max_priority_fee: int = 0

    @property
    def is_complete(self) -> bool:
        return self.gas_limit is not None and self.gas_price > 0


@dataclass(frozen=True)
class EvmCall:
    """A single EVM call: the message type EVM intents carry."""

    to: str
    value: int = 0
    data: bytes = b""


@dataclass(frozen=True)
class TxIntent:
    """What the caller wants executed, before sequence and signature."""

    chain_id: str
    messages: tuple[Any, ...]
    fee: FeeBounds = field(default_factory=FeeBounds)
    memo: str = ""
    deadline: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", tuple(self.messages))

    def with_fee(self, fee: FeeBounds) -> TxIntent:
        return TxIntent(
            chain_id=self.chain_id,
            messages=self.messages,
            fee=fee,
            memo=self.memo,
            deadline=self.deadline,
        )


@dataclass(frozen=True)
class GasEstimate:
    gas_limit: int
    gas_price: Decimal
    denom: str = ""

    @property
    def fee_amount(self) -> int:
        """``ceil(gas_limit * gas_price)`` in the smallest unit."""
        return math.ceil(Decimal(self.gas_limit) * self.gas_price)


@dataclass(frozen=True)
class SignedTx:
    chain_id: str
    raw_bytes: bytes
    tx_hash: str
    signer_sequence: int


# ---------------------------------------------------------------------------
# Broadcast
# ---------------------------------------------------------------------------


class RejectionKind(enum.StrEnum):
    """Classified reason a node refused a broadcast."""

    SEQUENCE_MISMATCH = "sequence_mismatch"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INVALID_SIGNATURE = "invalid_signature"
    MEMPOOL_FULL = "mempool_full"
    REJECTED = "rejected"


@dataclass(frozen=True)
class BroadcastOutcome:
    tx_hash: str
    accepted: bool
    raw_error: str = ""
    rejection: RejectionKind | None = None

    @classmethod
    def ok(cls, tx_hash: str) -> BroadcastOutcome:
        return cls(tx_hash=tx_hash, accepted=True)

    @classmethod
    def rejected(cls, tx_hash: str, kind: RejectionKind, raw_error: str) -> BroadcastOutcome:
        return cls(tx_hash=tx_hash, accepted=False, raw_error=raw_error, rejection=kind)


# ---------------------------------------------------------------------------
# Confirmation
# ---------------------------------------------------------------------------


class ConfirmationState(enum.StrEnum):
    PENDING = "pending"
    INCLUDED = "included"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class TxEvent:
    """A chain event emitted by an included transaction (Cosmos ABCI / EVM log)."""

    type: str
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ConfirmationStatus:
    """Where a broadcast transaction stands. Every state but PENDING is terminal."""

    state: ConfirmationState
    block_height: int | None = None
    result_code: int = 0
    raw_log: str = ""
    events: tuple[TxEvent, ...] = ()
    reason: str = ""

    @classmethod
    def pending(cls) -> ConfirmationStatus:
        return cls(ConfirmationState.PENDING)

    @classmethod
    def included(
        cls,
        block_height: int,
        result_code: int = 0,
        raw_log: str = "",
        events: tuple[TxEvent, ...] = (),
    ) -> ConfirmationStatus:
        return cls(
            ConfirmationState.INCLUDED,
            block_height=block_height,
            result_code=result_code,
            raw_log=raw_log,
            events=tuple(events),
        )

    @classmethod
    def failed(cls, reason: str) -> ConfirmationStatus:
        return cls(ConfirmationState.FAILED, reason=reason)

    @classmethod
    def timed_out(cls) -> ConfirmationStatus:
        return cls(ConfirmationState.TIMED_OUT)

    @property
    def is_terminal(self) -> bool:
        return self.state != ConfirmationState.PENDING

    @property
    def succeeded(self) -> bool:
        return self.state == ConfirmationState.INCLUDED and self.result_code == 0

    def find_events(self, event_type: str) -> list[TxEvent]:
        return [e for e in self.events if e.type == event_type]
