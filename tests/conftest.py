"""Shared test fixtures for the domain-clients test suite.

The in-process ``FakeChainClient`` implements the ``ChainClient`` capability
with a scripted chain sequence, scripted broadcast results and scripted
confirmation statuses. ``FakeClock`` provides a monotonic clock whose
``sleep`` advances time instantly.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import pytest

from domain_clients.chain.models import (
    Account,
    BroadcastOutcome,
    ConfirmationStatus,
    GasEstimate,
    RejectionKind,
    SignedTx,
    TxEvent,
    TxIntent,
)
from domain_clients.config.settings import ConfirmationConfig, RetryConfig
from domain_clients.lifecycle.manager import TxLifecycleManager
from domain_clients.lifecycle.sequencer import AccountSequencer
from domain_clients.signing.signer import Secp256k1Signer
from domain_clients.utils.crypto import sha256

# Private key from the eth-account documentation
TEST_PRIVATE_KEY = "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

# Hardhat / Anvil default mnemonic
TEST_MNEMONIC = "test test test test test test test test test test test junk"


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time without waiting."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeChainClient:
    """Scriptable in-memory ``ChainClient``.

    ``broadcast_script`` items are consumed one per broadcast call:
    an exception is raised, a ``RejectionKind`` is returned as a rejection,
    ``None`` means "behave like a real chain" (accept only the expected
    sequence). ``confirmations`` items are consumed one per poll the same
    way; once empty, ``default_confirmation`` is returned.
    """

    def __init__(self, chain_id: str = "test-1", *, chain_sequence: int = 0) -> None:
        self.chain_id = chain_id
        self.chain_sequence = chain_sequence
        self.gas_used = 100_000
        self.gas_price = Decimal("0.025")
        self.denom = "utest"
        self.block_time = datetime(2024, 1, 1, tzinfo=UTC)
        self.events: tuple[TxEvent, ...] = ()

        self.broadcast_script: list[Any] = []
        self.confirmations: list[Any] = []
        self.default_confirmation: ConfirmationStatus | None = None
        self.query_handler: Any = None
        self.simulate_error: Exception | None = None

        self.signed_intents: list[TxIntent] = []
        self.broadcasts: list[SignedTx] = []
        self.accepted: list[SignedTx] = []
        self.polls: list[tuple[str, float]] = []
        self.simulate_calls = 0

    async def account_sequence(self, address: str) -> int:
        return self.chain_sequence

    async def latest_block_time(self) -> datetime:
        return self.block_time

    async def query(self, path: str, params: bytes) -> bytes:
        if self.query_handler is None:
            msg = f"unexpected query {path}"
            raise AssertionError(msg)
        return self.query_handler(path, params)

    async def simulate(self, intent: TxIntent, account: Account) -> GasEstimate:
        self.simulate_calls += 1
        if self.simulate_error is not None:
            raise self.simulate_error
        return GasEstimate(gas_limit=self.gas_used, gas_price=self.gas_price, denom=self.denom)

    def build_and_sign(self, intent: TxIntent, account: Account, signer: Any) -> SignedTx:
        self.signed_intents.append(intent)
        payload = repr(
            (intent.chain_id, intent.messages, intent.fee, intent.memo, account.sequence)
        )
        signature = signer.sign_digest(sha256(payload.encode()))
        raw = payload.encode() + signature
        return SignedTx(
            chain_id=self.chain_id,
            raw_bytes=raw,
            tx_hash=sha256(raw).hex().upper(),
            signer_sequence=account.sequence,
        )

    async def broadcast(self, signed_tx: SignedTx) -> BroadcastOutcome:
        self.broadcasts.append(signed_tx)
        await asyncio.sleep(0)
        item = self.broadcast_script.pop(0) if self.broadcast_script else None
        if isinstance(item, Exception):
            raise item
        if isinstance(item, RejectionKind):
            return BroadcastOutcome.rejected(signed_tx.tx_hash, item, f"node says {item}")
        if signed_tx.signer_sequence != self.chain_sequence:
            return BroadcastOutcome.rejected(
                signed_tx.tx_hash,
                RejectionKind.SEQUENCE_MISMATCH,
                f"account sequence mismatch, expected {self.chain_sequence}, "
                f"got {signed_tx.signer_sequence}",
            )
        self.chain_sequence += 1
        self.accepted.append(signed_tx)
        return BroadcastOutcome.ok(signed_tx.tx_hash)

    async def poll_confirmation(self, tx_hash: str, timeout: float) -> ConfirmationStatus:
        self.polls.append((tx_hash, timeout))
        item = self.confirmations.pop(0) if self.confirmations else self.default_confirmation
        if isinstance(item, Exception):
            raise item
        if item is None:
            return ConfirmationStatus.included(block_height=42, events=self.events)
        return item


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def signer() -> Secp256k1Signer:
    return Secp256k1Signer.from_hex(TEST_PRIVATE_KEY)


@pytest.fixture
def chain() -> FakeChainClient:
    return FakeChainClient("test-1", chain_sequence=5)


@pytest.fixture
def make_chain():
    """Factory for additional fake chains."""
    return FakeChainClient


@pytest.fixture
def account(signer) -> Account:
    return Account(
        chain_id="test-1",
        address="test1sender",
        public_key=signer.public_key,
        account_number=7,
        sequence=5,
    )


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(max_attempts=3, base_delay=1.0, multiplier=2.0, max_delay=30.0)


@pytest.fixture
def manager(clock, retry_config) -> TxLifecycleManager:
    return TxLifecycleManager(
        AccountSequencer(),
        retry=retry_config,
        confirmation=ConfirmationConfig(timeout=60.0, poll_interval=2.0),
        clock=clock,
        sleep=clock.sleep,
    )
