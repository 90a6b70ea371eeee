"""EVM backend — JSON-RPC client."""

from domain_clients.chain.evm.client import EvmClient, classify_rejection

__all__ = ["EvmClient", "classify_rejection"]
