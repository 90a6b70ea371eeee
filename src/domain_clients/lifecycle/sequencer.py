"""Per-account sequence / nonce leasing.

The sequencer is the only component that hands out sequence numbers.
A lease holds the account's lock from assignment until the signed bytes
are accepted, so two in-flight transactions from one account never share
a sequence. Different accounts lease independently.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from domain_clients.chain.base import SequenceSource
    from domain_clients.chain.models import Account

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class _Slot:
    lock: asyncio.Lock = dataclasses.field(default_factory=asyncio.Lock)
    next_sequence: int | None = None
    # One past the highest sequence an accepted transaction carries
    floor: int = 0
    users: int = 0


class SequenceLease:
    """Exclusive use of one sequence number for one account.

    Obtained from :meth:`AccountSequencer.lease`; settled when the
    ``async with`` block exits.
    """

    def __init__(
        self,
        account: Account,
        sequence: int,
        source: SequenceSource,
        *,
        floor: int = 0,
    ) -> None:
        self._account = account
        self._sequence = sequence
        self._source = source
        self._floor = floor
        self._broadcast = False
        self._committed = False

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def account(self) -> Account:
        """The leased account with ``sequence`` set to the leased value."""
        return dataclasses.replace(self._account, sequence=self._sequence)

    @property
    def broadcast(self) -> bool:
        return self._broadcast

    @property
    def committed(self) -> bool:
        return self._committed

    def mark_broadcast(self) -> None:
        """Record that bytes signed with this sequence left the process."""
        self._broadcast = True

    async def refresh(self) -> int:
        """Re-read the on-chain sequence and lease that value instead.

        Never goes below the sequence after the last accepted transaction: a
        lagging node may not count accepted transactions still in its mempool.
        Clears the broadcast mark: the chain has just told us the previous
        sequence was not consumed by our transaction.
        """
        previous = self._sequence
        on_chain = await self._source.account_sequence(self._account.address)
        self._sequence = max(on_chain, self._floor)
        self._broadcast = False
        logger.warning(
            "Re-sequenced %s on %s: %d -> %d",
            self._account.address,
            self._account.chain_id,
            previous,
            self._sequence,
        )
        return self._sequence

    def commit(self) -> None:
        """Mark the sequence consumed; the next lease gets ``sequence + 1``."""
        self._committed = True


class AccountSequencer:
    """Table of per-account sequence baselines keyed by ``(chain_id, address)``.

    Usage::

        async with sequencer.lease(account, client) as lease:
            signed = client.build_and_sign(intent, lease.account, signer)
            lease.mark_broadcast()
            outcome = await client.broadcast(signed)
            if outcome.accepted:
                lease.commit()

    With ``max_accounts`` set, the least recently used idle accounts are
    dropped once the table grows past it; a dropped account is re-read from
    the chain on its next lease. Without it the table keeps every account
    it has seen.
    """

    def __init__(self, *, max_accounts: int | None = None) -> None:
        if max_accounts is not None and max_accounts < 1:
            msg = f"max_accounts must be at least 1, got {max_accounts}"
            raise ValueError(msg)
        self._slots: dict[tuple[str, str], _Slot] = {}
        self._max_accounts = max_accounts

    def __len__(self) -> int:
        return len(self._slots)

    def _slot(self, account: Account) -> _Slot:
        slot = self._slots.pop(account.key, None)
        if slot is None:
            slot = _Slot()
        # Re-insert so dict order tracks recency
        self._slots[account.key] = slot
        return slot

    def _evict_idle(self) -> None:
        if self._max_accounts is None:
            return
        excess = len(self._slots) - self._max_accounts
        if excess <= 0:
            return
        idle = [key for key, slot in self._slots.items() if slot.users == 0][:excess]
        for key in idle:
            del self._slots[key]
        if idle:
            logger.debug("Evicted %d idle sequence slots", len(idle))

    def current(self, account: Account) -> int | None:
        """Cached next sequence, or ``None`` if the chain has not been consulted."""
        slot = self._slots.get(account.key)
        return slot.next_sequence if slot else None

    def invalidate(self, account: Account) -> None:
        """Forget the baseline so the next lease re-reads the chain.

        The re-read value is still raised to the sequence after the last
        accepted transaction.
        """
        slot = self._slots.get(account.key)
        if slot is not None:
            slot.next_sequence = None

    @asynccontextmanager
    async def lease(
        self,
        account: Account,
        source: SequenceSource,
        *,
        timeout: float | None = None,
    ) -> AsyncIterator[SequenceLease]:
        """Lease the account's next sequence.

        The first lease for an account seeds the baseline from
        ``account.sequence`` or, when that is ``None``, from ``source``.

        Args:
            account: Account to lease for.
            source: On-chain sequence authority (usually the ChainClient).
            timeout: Seconds to wait for the account's lock.

        Raises:
            TimeoutError: The lock was not acquired within ``timeout``.
        """
        slot = self._slot(account)
        slot.users += 1
        try:
            async with asyncio.timeout(timeout):
                await slot.lock.acquire()
            try:
                if slot.next_sequence is None:
                    if account.sequence is not None:
                        seed = account.sequence
                    else:
                        seed = await source.account_sequence(account.address)
                    slot.next_sequence = max(seed, slot.floor)
                lease = SequenceLease(account, slot.next_sequence, source, floor=slot.floor)
                try:
                    yield lease
                finally:
                    slot.next_sequence = self._settle(lease, slot.next_sequence)
                    if lease.committed:
                        slot.floor = max(slot.floor, lease.sequence + 1)
            finally:
                slot.lock.release()
        finally:
            slot.users -= 1
            self._evict_idle()

    @staticmethod
    def _settle(lease: SequenceLease, baseline: int) -> int:
        if lease.committed:
            return lease.sequence + 1
        if lease.broadcast:
            # Status unknown: the bytes may still land, never reuse the number
            return max(baseline, lease.sequence + 1)
        return lease.sequence
