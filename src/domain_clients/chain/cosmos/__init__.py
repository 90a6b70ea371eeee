"""Cosmos-SDK backend — gRPC transport, tx envelope, client."""

from domain_clients.chain.cosmos.client import CosmosClient, classify_rejection
from domain_clients.chain.cosmos.transport import GrpcTransport

__all__ = ["CosmosClient", "GrpcTransport", "classify_rejection"]
