"""Raw-bytes unary gRPC transport for Cosmos-SDK nodes.

Requests and responses are passed as already-serialised protobuf bytes;
no generated stubs are involved. Status codes are mapped onto the
package error taxonomy here so the client never sees ``grpc`` types.
"""

from __future__ import annotations

import logging

import grpc

from domain_clients.errors.chain_errors import NotFoundError, RpcError
from domain_clients.errors.tx_errors import NetworkError

logger = logging.getLogger(__name__)

# Status codes a retry might cure
_TRANSIENT_CODES = frozenset(
    {
        grpc.StatusCode.UNAVAILABLE,
        grpc.StatusCode.DEADLINE_EXCEEDED,
        grpc.StatusCode.RESOURCE_EXHAUSTED,
        grpc.StatusCode.ABORTED,
    }
)


class GrpcTransport:
    """Async gRPC channel wrapper exposing a single ``unary`` call.

    Usage::

        transport = GrpcTransport("localhost:9090")
        await transport.connect()
        try:
            raw = await transport.unary(method, request_bytes, timeout=10)
        finally:
            await transport.close()
    """

    def __init__(self, target: str, *, tls: bool = False) -> None:
        self._target = target
        self._tls = tls
        self._channel: grpc.aio.Channel | None = None

    async def connect(self) -> None:
        """Open the underlying channel (connection happens lazily on first call)."""
        if self._channel is not None:
            return
        if self._tls:
            self._channel = grpc.aio.secure_channel(self._target, grpc.ssl_channel_credentials())
        else:
            self._channel = grpc.aio.insecure_channel(self._target)

    async def close(self) -> None:
        if self._channel is not None:
            await self._channel.close()
            self._channel = None

    @property
    def is_connected(self) -> bool:
        return self._channel is not None

    async def unary(self, method: str, request: bytes, *, timeout: float) -> bytes:
        """Invoke a unary RPC with serialised request bytes.

        Args:
            method: Full method path, e.g. ``/cosmos.tx.v1beta1.Service/GetTx``.
            request: Serialised request message.
            timeout: Per-call deadline in seconds.

        Returns:
            Serialised response message.

        Raises:
            NetworkError: Transient status (unavailable, deadline, exhausted).
            NotFoundError: ``NOT_FOUND`` status.
            RpcError: Any other non-OK status.
        """
        if self._channel is None:
            msg = "gRPC transport not connected. Call connect() first."
            raise RpcError(msg)

        call = self._channel.unary_unary(method)
        try:
            return await call(request, timeout=timeout)
        except grpc.aio.AioRpcError as exc:
            code = exc.code()
            detail = exc.details() or code.name
            msg = f"{method}: {detail}"
            if code in _TRANSIENT_CODES:
                logger.warning("gRPC %s transient failure: %s", method, detail)
                raise NetworkError(msg) from exc
            if code == grpc.StatusCode.NOT_FOUND:
                raise NotFoundError(msg) from exc
            raise RpcError(msg, rpc_code=code.name) from exc
