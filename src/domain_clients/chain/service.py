"""Client registry — every configured chain behind one object.

Builds the Cosmos and EVM clients named in ``AppConfig``, connects and
closes them together, and owns the shared sequencer, lifecycle manager
and transfer coordinator.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from domain_clients.chain.cosmos.client import CosmosClient
from domain_clients.chain.evm.client import EvmClient
from domain_clients.errors.client_errors import ClientError
from domain_clients.lifecycle.manager import TxLifecycleManager
from domain_clients.lifecycle.sequencer import AccountSequencer
from domain_clients.metrics.collector import LifecycleMetrics
from domain_clients.transfer.coordinator import CrossChainTransferCoordinator

if TYPE_CHECKING:
    from domain_clients.chain.base import ChainClient, Signer
    from domain_clients.chain.models import Account, TxIntent
    from domain_clients.config.settings import AppConfig
    from domain_clients.lifecycle.manager import TxOutcome


class ClientRegistry:
    """Unified access to all configured chains.

    Usage::

        registry = ClientRegistry(config)
        await registry.connect()
        try:
            hub = registry.cosmos("hub")
            outcome = await registry.submit(intent, account, signer)
        finally:
            await registry.close()
    """

    def __init__(self, config: AppConfig, *, metrics: LifecycleMetrics | None = None) -> None:
        """Initialize the registry with app config.

        Args:
            config: Application configuration with ``cosmos`` and ``evm`` chain tables.
            metrics: Metrics sink; created automatically when ``metrics.enabled``.
        """
        self._config = config
        self._cosmos = {name: CosmosClient(cfg) for name, cfg in config.cosmos.items()}
        self._evm = {name: EvmClient(cfg) for name, cfg in config.evm.items()}

        if metrics is None and config.metrics.enabled:
            metrics = LifecycleMetrics()
        self._metrics = metrics

        self._sequencer = AccountSequencer(max_accounts=config.sequencer.max_accounts)
        self._lifecycle = TxLifecycleManager(
            self._sequencer,
            retry=config.retry,
            confirmation=config.confirmation,
            lease_timeout=config.sequencer.lease_timeout,
            metrics=metrics,
        )
        self._coordinator = CrossChainTransferCoordinator(
            self._lifecycle,
            config=config.transfer,
            metrics=metrics,
        )

    async def connect(self) -> None:
        """Connect every configured client."""
        await asyncio.gather(*(c.connect() for c in self._all()))

    async def close(self) -> None:
        """Close every configured client."""
        await asyncio.gather(*(c.close() for c in self._all()))

    @property
    def is_connected(self) -> bool:
        """Check if all clients are connected."""
        return all(c.is_connected for c in self._all())

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def cosmos(self, name: str) -> CosmosClient:
        try:
            return self._cosmos[name]
        except KeyError:
            msg = f"No Cosmos chain configured as {name!r}"
            raise ClientError(msg, code="unknown-chain") from None

    def evm(self, name: str) -> EvmClient:
        try:
            return self._evm[name]
        except KeyError:
            msg = f"No EVM chain configured as {name!r}"
            raise ClientError(msg, code="unknown-chain") from None

    def by_chain_id(self, chain_id: str) -> ChainClient:
        """Find the client serving ``chain_id`` (Cosmos chain id or EVM numeric id)."""
        for client in self._all():
            if client.chain_id == chain_id:
                return client
        msg = f"No client serves chain {chain_id!r}"
        raise ClientError(msg, code="unknown-chain", chain_id=chain_id)

    @property
    def sequencer(self) -> AccountSequencer:
        return self._sequencer

    @property
    def lifecycle(self) -> TxLifecycleManager:
        return self._lifecycle

    @property
    def coordinator(self) -> CrossChainTransferCoordinator:
        return self._coordinator

    @property
    def metrics(self) -> LifecycleMetrics | None:
        return self._metrics

    # ------------------------------------------------------------------
    # Delegation
    # ------------------------------------------------------------------

    async def submit(self, intent: TxIntent, account: Account, signer: Signer) -> TxOutcome:
        """Submit through the client serving ``intent.chain_id``."""
        client = self.by_chain_id(intent.chain_id)
        return await self._lifecycle.submit(client, intent, account, signer)

    def _all(self) -> list[CosmosClient | EvmClient]:
        return [*self._cosmos.values(), *self._evm.values()]
