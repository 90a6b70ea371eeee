"""Cross-chain transfer coordinator.

Drives one transfer across a source and a destination ``ChainClient``::

    Initiated -> Sent -> {Acknowledged | TimedOut} -> [Refunded]

Both the send and the refund go through the shared
:class:`~domain_clients.lifecycle.manager.TxLifecycleManager`, so transfers
from the same account serialise on its sequence lease.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from domain_clients.config.settings import TransferConfig
from domain_clients.errors.client_errors import ClientError
from domain_clients.errors.tx_errors import TransferTimeout
from domain_clients.transfer.models import TransferState, TransferStatus
from domain_clients.transfer.tracker import IbcTransferTracker, packet_commitment

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from domain_clients.chain.base import ChainClient, Signer
    from domain_clients.chain.models import Account
    from domain_clients.codec.messages import Packet
    from domain_clients.lifecycle.manager import TxLifecycleManager
    from domain_clients.metrics.collector import LifecycleMetrics
    from domain_clients.transfer.models import TransferRequest
    from domain_clients.transfer.tracker import PacketTracker

logger = logging.getLogger(__name__)


class CrossChainTransferCoordinator:
    """Sends, observes and, when needed, refunds cross-chain transfers.

    Usage::

        coordinator = CrossChainTransferCoordinator(manager)
        state = await coordinator.transfer(request, source, dest, account, signer)
        assert state.status in (TransferStatus.ACKNOWLEDGED, TransferStatus.REFUNDED)
    """

    def __init__(
        self,
        lifecycle: TxLifecycleManager,
        *,
        tracker: PacketTracker | None = None,
        config: TransferConfig | None = None,
        metrics: LifecycleMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._lifecycle = lifecycle
        self._config = config or TransferConfig()
        self._tracker = tracker or IbcTransferTracker(self._config)
        self._metrics = metrics
        self._clock = clock
        self._sleep = sleep
        self._active: dict[str, TransferState] = {}
        self._archive: dict[str, TransferState] = {}

    # ------------------------------------------------------------------
    # Table access
    # ------------------------------------------------------------------

    def get(self, transfer_id: str) -> TransferState | None:
        return self._active.get(transfer_id) or self._archive.get(transfer_id)

    def active(self) -> list[TransferState]:
        return list(self._active.values())

    def archived(self) -> list[TransferState]:
        return list(self._archive.values())

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    async def transfer(
        self,
        request: TransferRequest,
        source: ChainClient,
        dest: ChainClient,
        account: Account,
        signer: Signer,
    ) -> TransferState:
        """Run a transfer to a terminal state.

        Args:
            request: What to send and where.
            source: Chain the funds leave from (and where a refund lands).
            dest: Chain queried for receipt evidence.
            account: Sender account on ``source``.
            signer: Key for ``account``.

        Returns:
            The archived state, ACKNOWLEDGED or REFUNDED.

        Raises:
            ClientError: The send itself failed; no state is recorded.
            TransferTimeout: The packet expired and the refund did not succeed,
                or the source holds a different commitment for the packet.
        """
        intent = await self._tracker.build_send(request, source, account)
        send = await self._lifecycle.submit(source, intent, account, signer)
        send.raise_for_status()

        packet = self._tracker.extract_packet(send.status)
        state = TransferState(
            transfer_id=request.transfer_id,
            source_chain=source.chain_id,
            dest_chain=dest.chain_id,
            channel_or_bridge_id=packet.source_channel,
            packet_sequence=packet.sequence,
            commitment_hash=packet_commitment(packet).hex(),
            send_tx_hash=send.tx_hash,
            packet=packet,
        )
        self._active[state.transfer_id] = state
        self._record(state)
        logger.info(
            "Transfer %s sent: %s %s/%s #%d -> %s",
            state.transfer_id,
            source.chain_id,
            packet.source_port,
            packet.source_channel,
            packet.sequence,
            dest.chain_id,
        )

        if await self._await_receipt(dest, packet):
            self._advance(state, TransferStatus.ACKNOWLEDGED)
            return state

        self._advance(state, TransferStatus.TIMED_OUT)
        return await self._refund(state, source, dest, account, signer)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _await_receipt(self, dest: ChainClient, packet: Packet) -> bool:
        """Poll the destination until a receipt shows up or the packet window closes.

        A failed receipt query counts as "not yet received", so a destination
        that keeps failing ends in TimedOut rather than leaving the transfer Sent.
        """
        window = self._config.packet_timeout + self._config.relay_grace_period
        end = self._clock() + window
        while True:
            try:
                if await self._tracker.is_received(dest, packet):
                    return True
            except ClientError as exc:
                logger.warning("Receipt query on %s failed: %s", dest.chain_id, exc)
            remaining = end - self._clock()
            if remaining <= 0:
                return False
            logger.debug("Packet #%d not yet received on %s", packet.sequence, dest.chain_id)
            await self._sleep(min(self._config.poll_interval, remaining))

    async def _refund(
        self,
        state: TransferState,
        source: ChainClient,
        dest: ChainClient,
        account: Account,
        signer: Signer,
    ) -> TransferState:
        """Refund a timed-out transfer after matching the source's packet commitment.

        A commitment the source has already deleted means some relayer
        settled the packet first. Without a destination receipt that was a
        relayed timeout and the funds are already back (REFUNDED); with one
        the packet was delivered late and the transfer stays TIMED_OUT.
        """
        context = {"chain_id": source.chain_id, "address": account.address}
        try:
            on_source = await self._tracker.source_commitment(source, state.packet)
            if not on_source:
                received = await self._tracker.is_received(dest, state.packet)
        except ClientError as exc:
            msg = f"Transfer {state.transfer_id} timed out and its commitment check failed: {exc}"
            raise TransferTimeout(msg, state=state, **context) from exc

        if not on_source:
            logger.info(
                "Transfer %s: packet commitment already cleared on %s",
                state.transfer_id,
                source.chain_id,
            )
            if received:
                msg = f"Transfer {state.transfer_id} was delivered after its timeout window"
                raise TransferTimeout(msg, state=state, **context)
            self._advance(state, TransferStatus.REFUNDED)
            return state
        if on_source.hex() != state.commitment_hash:
            msg = (
                f"Transfer {state.transfer_id}: source commitment {on_source.hex()} "
                f"does not match the sent packet's {state.commitment_hash}"
            )
            raise TransferTimeout(msg, state=state, **context)

        try:
            intent = await self._tracker.build_refund(source, dest, state.packet, account)
            refund = await self._lifecycle.submit(source, intent, account, signer)
        except ClientError as exc:
            msg = f"Transfer {state.transfer_id} timed out and its refund failed: {exc}"
            raise TransferTimeout(msg, state=state, **context) from exc

        state.refund_tx_hash = refund.tx_hash
        if not refund.succeeded:
            msg = (
                f"Transfer {state.transfer_id} timed out and refund {refund.tx_hash} "
                f"ended as {refund.status.state}"
            )
            raise TransferTimeout(msg, state=state, **context)

        self._advance(state, TransferStatus.REFUNDED)
        return state

    def _advance(self, state: TransferState, status: TransferStatus) -> None:
        previous = state.status
        state.status = status
        if status.is_terminal:
            self._active.pop(state.transfer_id, None)
            self._archive[state.transfer_id] = state
        log = logger.info if status != TransferStatus.TIMED_OUT else logger.warning
        log("Transfer %s: %s -> %s", state.transfer_id, previous, status)
        self._record(state)

    def _record(self, state: TransferState) -> None:
        if self._metrics is not None:
            self._metrics.record_transfer(str(state.status))
            self._metrics.set_active_transfers(len(self._active))
