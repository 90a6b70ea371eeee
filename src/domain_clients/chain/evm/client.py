"""EVM chain client over JSON-RPC 2.0.

Provides the ``ChainClient`` capability for EVM-compatible chains:
- ``eth_getTransactionCount`` (pending) — nonce
- ``eth_estimateGas`` / ``eth_gasPrice`` — gas estimation
- ``eth_sendRawTransaction`` — submission
- ``eth_getTransactionReceipt`` — confirmation polling
- ``eth_blockNumber`` / ``eth_getBalance`` / ``eth_call`` — reads
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import math
import time
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import httpx
from eth_account import Account as EthAccount
from eth_utils import to_checksum_address

from domain_clients.chain.models import (
    Account,
    BroadcastOutcome,
    ConfirmationStatus,
    EvmCall,
    GasEstimate,
    RejectionKind,
    SignedTx,
    TxEvent,
)
from domain_clients.errors.chain_errors import RpcError
from domain_clients.errors.tx_errors import BuildError, InsufficientFunds, NetworkError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from domain_clients.chain.base import Signer
    from domain_clients.chain.models import TxIntent
    from domain_clients.config.settings import EvmChainConfig
    from domain_clients.signing.signer import Secp256k1Signer

logger = logging.getLogger(__name__)

# HTTP statuses worth retrying
_TRANSIENT_STATUS = frozenset({429, 502, 503, 504})

# EIP-1559 envelope
_TYPE_DYNAMIC_FEE = 2


def classify_rejection(message: str) -> RejectionKind | None:
    """Map an ``eth_sendRawTransaction`` error onto a :class:`RejectionKind`.

    Returns ``None`` for "already known": the node holds the transaction.
    """
    text = message.lower()
    if "already known" in text or "known transaction" in text:
        return None
    if "nonce too low" in text or "nonce too high" in text or "invalid nonce" in text:
        return RejectionKind.SEQUENCE_MISMATCH
    if "insufficient funds" in text:
        return RejectionKind.INSUFFICIENT_FUNDS
    if "txpool is full" in text or "transaction pool is full" in text:
        return RejectionKind.MEMPOOL_FULL
    if "invalid sender" in text or "invalid signature" in text:
        return RejectionKind.INVALID_SIGNATURE
    return RejectionKind.REJECTED


def _hex_int(value: str | int | None) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)


class EvmClient:
    """Async ``ChainClient`` for one EVM chain.

    Usage::

        evm = EvmClient(config)
        await evm.connect()
        try:
            nonce = await evm.account_sequence(address)
        finally:
            await evm.close()
    """

    def __init__(
        self,
        config: EvmChainConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            config: RPC endpoint and gas settings.
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
            clock: Monotonic clock used by confirmation polling.
            sleep: Suspension used between confirmation polls.
        """
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)
        self._clock = clock
        self._sleep = sleep

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=self._config.request_timeout,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def chain_id(self) -> str:
        return str(self._config.chain_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def query(self, path: str, params: bytes) -> bytes:
        """Raw JSON-RPC call; ``params`` is the JSON-encoded params array.

        Returns:
            The JSON-encoded ``result``.
        """
        decoded = json.loads(params) if params else []
        result = await self._rpc(path, decoded)
        return json.dumps(result).encode()

    async def account_sequence(self, address: str) -> int:
        """Pending nonce, so transactions already in the pool are counted."""
        return _hex_int(await self._rpc("eth_getTransactionCount", [address, "pending"]))

    async def load_account(self, signer: Secp256k1Signer) -> Account:
        address = signer.evm_address()
        return Account(
            chain_id=self.chain_id,
            address=address,
            public_key=signer.public_key,
            sequence=await self.account_sequence(address),
        )

    async def block_number(self) -> int:
        return _hex_int(await self._rpc("eth_blockNumber", []))

    async def get_balance(self, address: str, block: str = "latest") -> int:
        """Balance in wei."""
        return _hex_int(await self._rpc("eth_getBalance", [address, block]))

    async def call(self, to: str, data: bytes, block: str = "latest") -> bytes:
        """``eth_call`` against ``to``; returns the raw return data."""
        result = await self._rpc("eth_call", [{"to": to, "data": "0x" + data.hex()}, block])
        return bytes.fromhex(str(result).removeprefix("0x"))

    async def gas_price(self) -> int:
        return _hex_int(await self._rpc("eth_gasPrice", []))

    # ------------------------------------------------------------------
    # Build / sign
    # ------------------------------------------------------------------

    async def simulate(self, intent: TxIntent, account: Account) -> GasEstimate:
        """``eth_estimateGas`` scaled by ``gas_multiplier``; price from ``eth_gasPrice``.

        Raises:
            InsufficientFunds: Node reported insufficient funds.
            BuildError: Reverted or otherwise rejected estimate.
        """
        call = self._single_call(intent)
        params: dict[str, Any] = {
            "from": account.address,
            "to": call.to,
            "value": hex(call.value),
        }
        if call.data:
            params["data"] = "0x" + call.data.hex()
        try:
            estimated = _hex_int(await self._rpc("eth_estimateGas", [params]))
        except RpcError as exc:
            if "insufficient funds" in exc.message.lower():
                raise InsufficientFunds(exc.message, chain_id=self.chain_id) from exc
            msg = f"Gas estimation failed: {exc.message}"
            raise BuildError(msg, chain_id=self.chain_id) from exc

        price = intent.fee.gas_price
        if price <= 0:
            price = Decimal(await self.gas_price())
        return GasEstimate(
            gas_limit=math.ceil(estimated * self._config.gas_multiplier),
            gas_price=Decimal(price),
            denom="wei",
        )

    def build_and_sign(self, intent: TxIntent, account: Account, signer: Signer) -> SignedTx:
        """Sign an EIP-155 legacy tx, or EIP-1559 when ``max_priority_fee`` is set.

        ``fee.gas_price`` is the gas price (legacy) or ``maxFeePerGas`` (EIP-1559).

        Raises:
            BuildError: Missing nonce or fee fields, or an invalid recipient.
        """
        call = self._single_call(intent)
        if account.sequence is None:
            msg = "Account nonce must be leased before signing"
            raise BuildError(msg, chain_id=self.chain_id, address=account.address)
        fee = intent.fee
        if fee.gas_limit is None or fee.gas_price <= 0:
            msg = "Fee gas_limit and gas_price must be set; simulate first"
            raise BuildError(msg, chain_id=self.chain_id, address=account.address)
        try:
            to = to_checksum_address(call.to)
        except ValueError as exc:
            msg = f"Invalid recipient address {call.to!r}"
            raise BuildError(msg, chain_id=self.chain_id, address=account.address) from exc

        tx: dict[str, Any] = {
            "nonce": account.sequence,
            "gas": fee.gas_limit,
            "to": to,
            "value": call.value,
            "data": call.data,
            "chainId": self._config.chain_id,
        }
        if fee.max_priority_fee:
            tx["type"] = _TYPE_DYNAMIC_FEE
            tx["maxFeePerGas"] = int(fee.gas_price)
            tx["maxPriorityFeePerGas"] = fee.max_priority_fee
        else:
            tx["gasPrice"] = int(fee.gas_price)

        signed = EthAccount.sign_transaction(tx, signer.private_key)
        return SignedTx(
            chain_id=self.chain_id,
            raw_bytes=bytes(signed.raw_transaction),
            tx_hash="0x" + bytes(signed.hash).hex(),
            signer_sequence=account.sequence,
        )

    # ------------------------------------------------------------------
    # Broadcast / confirm
    # ------------------------------------------------------------------

    async def broadcast(self, signed_tx: SignedTx) -> BroadcastOutcome:
        """Submit via ``eth_sendRawTransaction``.

        Raises:
            NetworkError: Transport failure or overloaded endpoint.
        """
        try:
            result = await self._rpc("eth_sendRawTransaction", ["0x" + signed_tx.raw_bytes.hex()])
        except RpcError as exc:
            kind = classify_rejection(exc.message)
            if kind is None:
                logger.info("Tx %s already known to chain %s", signed_tx.tx_hash, self.chain_id)
                return BroadcastOutcome.ok(signed_tx.tx_hash)
            return BroadcastOutcome.rejected(signed_tx.tx_hash, kind, exc.message)
        return BroadcastOutcome.ok(str(result or signed_tx.tx_hash))

    async def get_tx_status(self, tx_hash: str) -> ConfirmationStatus:
        """Single receipt lookup. A reverted receipt is Included with code 1."""
        receipt = await self._rpc("eth_getTransactionReceipt", [tx_hash])
        if not receipt or receipt.get("blockNumber") is None:
            return ConfirmationStatus.pending()
        reverted = _hex_int(receipt.get("status", "0x1")) == 0
        events = tuple(
            TxEvent(
                type="log",
                attributes={
                    "address": log.get("address", ""),
                    "topics": ",".join(log.get("topics", [])),
                    "data": log.get("data", "0x"),
                },
            )
            for log in receipt.get("logs", [])
        )
        return ConfirmationStatus.included(
            block_height=_hex_int(receipt["blockNumber"]),
            result_code=1 if reverted else 0,
            raw_log="execution reverted" if reverted else "",
            events=events,
        )

    async def poll_confirmation(self, tx_hash: str, timeout: float) -> ConfirmationStatus:
        """Poll the receipt every ``poll_interval`` until mined or ``timeout`` elapses."""
        deadline = self._clock() + timeout
        while True:
            status = await self.get_tx_status(tx_hash)
            if status.is_terminal:
                return status
            remaining = deadline - self._clock()
            if remaining <= 0:
                return ConfirmationStatus.timed_out()
            logger.debug("Tx %s pending on chain %s", tx_hash, self.chain_id)
            await self._sleep(min(self._config.poll_interval, remaining))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _single_call(self, intent: TxIntent) -> EvmCall:
        if intent.chain_id != self.chain_id:
            msg = f"Intent targets {intent.chain_id!r}, client serves {self.chain_id!r}"
            raise BuildError(msg, chain_id=self.chain_id)
        if len(intent.messages) != 1 or not isinstance(intent.messages[0], EvmCall):
            msg = "EVM intents carry exactly one EvmCall"
            raise BuildError(msg, chain_id=self.chain_id)
        return intent.messages[0]

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "EVM client not connected. Call connect() first."
            raise RpcError(msg, chain_id=self.chain_id)
        return self._client

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        """POST one JSON-RPC request and return its ``result``.

        Raises:
            NetworkError: Transport failure or a transient HTTP status.
            RpcError: JSON-RPC error object or unexpected HTTP status.
        """
        client = self._ensure_connected()
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await client.post(self._config.rpc_url, json=payload)
        except httpx.TransportError as exc:
            msg = f"{method} failed: {exc}"
            raise NetworkError(msg, chain_id=self.chain_id) from exc

        if response.status_code in _TRANSIENT_STATUS:
            msg = f"{method} failed: HTTP {response.status_code}"
            raise NetworkError(msg, chain_id=self.chain_id)
        if response.status_code != 200:
            msg = f"{method} failed: HTTP {response.status_code}"
            raise RpcError(msg, rpc_code=response.status_code, chain_id=self.chain_id)

        try:
            body = response.json()
        except ValueError as exc:
            msg = f"{method} returned invalid JSON"
            raise RpcError(msg, chain_id=self.chain_id) from exc

        error = body.get("error")
        if error:
            if not isinstance(error, dict):
                error = {"message": str(error)}
            raise RpcError(
                str(error.get("message", error)),
                rpc_code=error.get("code"),
                chain_id=self.chain_id,
            )
        return body.get("result")
