"""Transaction lifecycle — build, sign, broadcast, confirm.

``TxLifecycleManager.submit`` drives one ``TxIntent`` through::

    Building -> Signed -> Broadcasting -> Pending -> {Included | Failed | TimedOut}

The account's sequence lease is held from fee preparation until the
broadcast is accepted, then committed; confirmation polling runs outside
the lease so the next transaction from the same account can proceed.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import math
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Self

from domain_clients.chain.models import ConfirmationState, ConfirmationStatus, RejectionKind
from domain_clients.config.settings import ConfirmationConfig, RetryConfig
from domain_clients.errors.client_errors import ClientError
from domain_clients.errors.tx_errors import (
    BroadcastRejected,
    BuildError,
    ConfirmationTimeout,
    InsufficientFunds,
    NetworkError,
    NetworkExhausted,
    SequenceConflict,
    TransactionFailed,
)
from domain_clients.lifecycle.retry import backoff_schedule

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from domain_clients.chain.base import ChainClient, Signer
    from domain_clients.chain.models import Account, BroadcastOutcome, SignedTx, TxIntent
    from domain_clients.lifecycle.sequencer import AccountSequencer, SequenceLease
    from domain_clients.metrics.collector import LifecycleMetrics

logger = logging.getLogger(__name__)


class LifecycleStage(enum.StrEnum):
    BUILDING = "building"
    SIGNED = "signed"
    BROADCASTING = "broadcasting"
    PENDING = "pending"
    INCLUDED = "included"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


_TERMINAL_STAGE = {
    ConfirmationState.INCLUDED: LifecycleStage.INCLUDED,
    ConfirmationState.FAILED: LifecycleStage.FAILED,
    ConfirmationState.TIMED_OUT: LifecycleStage.TIMED_OUT,
}


@dataclasses.dataclass(frozen=True)
class TxOutcome:
    """Terminal result of one submission.

    Attributes:
        chain_id: Chain the transaction was sent to.
        address: Signing account address.
        tx_hash: Hash of the accepted transaction.
        sequence: Sequence / nonce the accepted transaction carries.
        status: Terminal confirmation status (never Pending).
        broadcast_attempts: Total broadcast calls, including re-sequenced ones.
        stages: Stage history in order of occurrence.
    """

    chain_id: str
    address: str
    tx_hash: str
    sequence: int
    status: ConfirmationStatus
    broadcast_attempts: int
    stages: tuple[LifecycleStage, ...]

    @property
    def succeeded(self) -> bool:
        return self.status.succeeded

    def raise_for_status(self) -> Self:
        """Return ``self`` on success, otherwise raise the matching error.

        Raises:
            ConfirmationTimeout: Status is TimedOut (the tx may still land).
            TransactionFailed: Status is Failed, or Included with a non-zero code.
        """
        context = {"chain_id": self.chain_id, "address": self.address, "sequence": self.sequence}
        status = self.status
        if status.state == ConfirmationState.TIMED_OUT:
            msg = f"Transaction {self.tx_hash} not confirmed before the deadline"
            raise ConfirmationTimeout(msg, tx_hash=self.tx_hash, **context)
        if status.state == ConfirmationState.FAILED:
            raise TransactionFailed(
                status.reason or "transaction dropped",
                tx_hash=self.tx_hash,
                **context,
            )
        if status.result_code != 0:
            raise TransactionFailed(
                status.raw_log or f"execution failed with code {status.result_code}",
                tx_hash=self.tx_hash,
                result_code=status.result_code,
                **context,
            )
        return self


class TxLifecycleManager:
    """Submits intents through any ``ChainClient`` with retry and confirmation.

    Usage::

        manager = TxLifecycleManager(AccountSequencer())
        outcome = await manager.submit(client, intent, account, signer)
        outcome.raise_for_status()
    """

    def __init__(
        self,
        sequencer: AccountSequencer,
        *,
        retry: RetryConfig | None = None,
        confirmation: ConfirmationConfig | None = None,
        metrics: LifecycleMetrics | None = None,
        lease_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the manager.

        Args:
            sequencer: Shared sequence authority.
            retry: Broadcast retry policy.
            confirmation: Confirmation deadline and poll window.
            metrics: Optional Prometheus metrics.
            lease_timeout: Max seconds to wait for an account's lease.
            clock: Monotonic clock for deadlines.
            sleep: Suspension used for backoff and poll pacing.
        """
        self._sequencer = sequencer
        self._retry = retry or RetryConfig()
        self._confirmation = confirmation or ConfirmationConfig()
        self._metrics = metrics
        self._lease_timeout = lease_timeout
        self._clock = clock
        self._sleep = sleep

    @property
    def sequencer(self) -> AccountSequencer:
        return self._sequencer

    async def submit(
        self,
        client: ChainClient,
        intent: TxIntent,
        account: Account,
        signer: Signer,
    ) -> TxOutcome:
        """Build, sign, broadcast and confirm one intent.

        Args:
            client: Backend for ``intent.chain_id``.
            intent: What to execute.
            account: Signing account (its ``sequence`` is only a hint).
            signer: Key matching ``account``.

        Returns:
            TxOutcome with a terminal status. Call ``raise_for_status()``
            to turn TimedOut / Failed into exceptions.

        Raises:
            BuildError: Malformed intent, failed simulation, or fee bounds exceeded.
            EncodingError: A message the codec cannot encode.
            InsufficientFunds: The account cannot pay.
            SequenceConflict: Sequence still rejected after one refresh.
            NetworkExhausted: Transient failures on every broadcast attempt.
            BroadcastRejected: Any other chain-level rejection.
        """
        stages: list[LifecycleStage] = [LifecycleStage.BUILDING]
        deadline = self._deadline_of(intent)
        self._validate(client, intent, account)

        async with self._sequencer.lease(account, client, timeout=self._lease_timeout) as lease:
            try:
                intent = await self._prepare_fee(client, intent, lease.account)
                signed, attempts = await self._sign_and_broadcast(
                    client, intent, signer, lease, stages, deadline
                )
            except ClientError as exc:
                exc.attach(
                    chain_id=intent.chain_id, address=account.address, sequence=lease.sequence
                )
                raise
            lease.commit()

        logger.info(
            "Tx %s accepted by %s (address=%s, sequence=%d)",
            signed.tx_hash,
            intent.chain_id,
            account.address,
            signed.signer_sequence,
        )
        stages.append(LifecycleStage.PENDING)
        status = await self._await_confirmation(client, signed.tx_hash, deadline)
        stages.append(_TERMINAL_STAGE[status.state])

        if self._metrics is not None:
            self._metrics.record_outcome(intent.chain_id, str(status.state))
        if status.succeeded:
            logger.info("Tx %s included at height %s", signed.tx_hash, status.block_height)
        else:
            logger.warning(
                "Tx %s finished as %s: %s",
                signed.tx_hash,
                status.state,
                status.raw_log or status.reason,
            )

        return TxOutcome(
            chain_id=intent.chain_id,
            address=account.address,
            tx_hash=signed.tx_hash,
            sequence=signed.signer_sequence,
            status=status,
            broadcast_attempts=attempts,
            stages=tuple(stages),
        )

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(client: ChainClient, intent: TxIntent, account: Account) -> None:
        if intent.chain_id != client.chain_id or account.chain_id != client.chain_id:
            msg = (
                f"Chain mismatch: intent={intent.chain_id!r} "
                f"account={account.chain_id!r} client={client.chain_id!r}"
            )
            raise BuildError(msg, chain_id=intent.chain_id, address=account.address)
        if not intent.messages:
            msg = "Intent has no messages"
            raise BuildError(msg, chain_id=intent.chain_id, address=account.address)

    def _deadline_of(self, intent: TxIntent) -> float | None:
        """Convert the intent's wall-clock deadline onto the monotonic clock."""
        if intent.deadline is None:
            return None
        remaining = (intent.deadline - datetime.now(UTC)).total_seconds()
        if remaining <= 0:
            msg = f"Intent deadline {intent.deadline.isoformat()} has already passed"
            raise BuildError(msg, chain_id=intent.chain_id)
        return self._clock() + remaining

    async def _prepare_fee(
        self,
        client: ChainClient,
        intent: TxIntent,
        account: Account,
    ) -> TxIntent:
        """Fill missing fee fields via ``simulate`` and enforce the caps."""
        fee = intent.fee
        if not fee.is_complete:
            estimate = await client.simulate(intent, account)
            fee = dataclasses.replace(
                fee,
                gas_limit=fee.gas_limit if fee.gas_limit is not None else estimate.gas_limit,
                gas_price=fee.gas_price if fee.gas_price > 0 else estimate.gas_price,
                denom=fee.denom or estimate.denom,
            )

        gas_limit = fee.gas_limit or 0
        if fee.max_gas is not None and gas_limit > fee.max_gas:
            msg = f"Gas limit {gas_limit} exceeds max_gas {fee.max_gas}"
            raise BuildError(msg)
        fee_amount = math.ceil(gas_limit * fee.gas_price)
        if fee.max_fee is not None and fee_amount > fee.max_fee:
            msg = f"Fee {fee_amount} exceeds max_fee {fee.max_fee}"
            raise BuildError(msg)
        return intent.with_fee(fee)

    # ------------------------------------------------------------------
    # Broadcasting
    # ------------------------------------------------------------------

    async def _sign_and_broadcast(
        self,
        client: ChainClient,
        intent: TxIntent,
        signer: Signer,
        lease: SequenceLease,
        stages: list[LifecycleStage],
        deadline: float | None,
    ) -> tuple[SignedTx, int]:
        """Sign at the leased sequence and broadcast, re-sequencing at most once."""
        resequenced = False
        total_attempts = 0
        while True:
            signed = client.build_and_sign(intent, lease.account, signer)
            stages.append(LifecycleStage.SIGNED)
            stages.append(LifecycleStage.BROADCASTING)
            outcome, attempts = await self._broadcast_with_retry(client, signed, lease, deadline)
            total_attempts += attempts
            if outcome.accepted:
                return signed, total_attempts

            if outcome.rejection == RejectionKind.SEQUENCE_MISMATCH:
                if resequenced:
                    raise SequenceConflict(outcome.raw_error or "sequence mismatch after refresh")
                resequenced = True
                await lease.refresh()
                continue
            if outcome.rejection == RejectionKind.INSUFFICIENT_FUNDS:
                raise InsufficientFunds(outcome.raw_error)
            raise BroadcastRejected(
                outcome.raw_error or "transaction rejected",
                rejection=outcome.rejection,
            )

    async def _broadcast_with_retry(
        self,
        client: ChainClient,
        signed: SignedTx,
        lease: SequenceLease,
        deadline: float | None,
    ) -> tuple[BroadcastOutcome, int]:
        """Broadcast the same bytes until a definitive answer or the attempt budget is spent.

        Raises:
            NetworkExhausted: Every attempt hit a transport error or full mempool.
        """
        delays = backoff_schedule(self._retry)
        max_attempts = self._retry.max_attempts
        last_error = ""
        attempt = 0
        deadline_expired = False
        while attempt < max_attempts:
            if deadline is not None and self._clock() >= deadline:
                if attempt == 0:
                    msg = "Intent deadline passed before broadcast"
                    raise BuildError(msg)
                deadline_expired = True
                break
            attempt += 1
            lease.mark_broadcast()
            try:
                outcome = await client.broadcast(signed)
            except NetworkError as exc:
                last_error = exc.message
                self._record_broadcast(signed.chain_id, "network_error")
            else:
                if outcome.rejection != RejectionKind.MEMPOOL_FULL:
                    self._record_broadcast(
                        signed.chain_id,
                        "accepted" if outcome.accepted else "rejected",
                    )
                    return outcome, attempt
                last_error = outcome.raw_error or "mempool full"
                self._record_broadcast(signed.chain_id, "mempool_full")

            if attempt < max_attempts:
                delay = delays[attempt - 1]
                logger.warning(
                    "Broadcast %d/%d of %s failed (%s); retrying in %.1fs",
                    attempt,
                    max_attempts,
                    signed.tx_hash,
                    last_error,
                    delay,
                )
                await self._sleep(delay)

        if deadline_expired:
            msg = (
                f"Broadcast of {signed.tx_hash} stopped by the intent deadline after "
                f"{attempt} of {max_attempts} attempts: {last_error}"
            )
        else:
            msg = f"Broadcast of {signed.tx_hash} failed after {attempt} attempts: {last_error}"
        raise NetworkExhausted(msg, attempts=attempt, deadline_expired=deadline_expired)

    def _record_broadcast(self, chain_id: str, result: str) -> None:
        if self._metrics is not None:
            self._metrics.record_broadcast(chain_id, result)

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    async def _await_confirmation(
        self,
        client: ChainClient,
        tx_hash: str,
        deadline: float | None,
    ) -> ConfirmationStatus:
        """Poll in ``poll_interval`` windows until terminal or the deadline."""
        end = self._clock() + self._confirmation.timeout
        if deadline is not None:
            end = min(end, deadline)

        if self._metrics is not None:
            with self._metrics.track_confirmation(client.chain_id):
                return await self._poll_until(client, tx_hash, end)
        return await self._poll_until(client, tx_hash, end)

    async def _poll_until(
        self, client: ChainClient, tx_hash: str, end: float
    ) -> ConfirmationStatus:
        while True:
            remaining = end - self._clock()
            if remaining <= 0:
                logger.warning("Tx %s still unconfirmed on %s; giving up", tx_hash, client.chain_id)
                return ConfirmationStatus.timed_out()

            window = min(self._confirmation.poll_interval, remaining)
            started = self._clock()
            try:
                status = await client.poll_confirmation(tx_hash, window)
            except NetworkError as exc:
                logger.warning("Confirmation poll for %s failed: %s", tx_hash, exc)
                status = ConfirmationStatus.pending()

            # A client-side TimedOut only closes this window
            if status.is_terminal and status.state != ConfirmationState.TIMED_OUT:
                return status
            logger.debug("Tx %s pending on %s", tx_hash, client.chain_id)

            elapsed = self._clock() - started
            if elapsed < window:
                await self._sleep(window - elapsed)
