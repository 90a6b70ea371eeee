"""RPC / query errors raised by the chain backends."""

from __future__ import annotations

from typing import Any

from domain_clients.errors.client_errors import ClientError


class RpcError(ClientError):
    """Non-transient error returned by a gRPC or JSON-RPC endpoint."""

    def __init__(self, message: str, *, rpc_code: int | str | None = None, **context: Any) -> None:
        super().__init__(message, code="rpc-error", **context)
        self.rpc_code = rpc_code


class NotFoundError(RpcError):
    """The requested object (transaction, account, receipt) does not exist yet."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, rpc_code="NOT_FOUND", **context)
        self.code = "not-found"
