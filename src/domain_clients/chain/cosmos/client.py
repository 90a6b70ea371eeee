"""Cosmos-SDK chain client over raw gRPC.

Provides the ``ChainClient`` capability for Cosmos chains:
- ``/cosmos.auth.v1beta1.Query/Account`` — account number + sequence
- ``/cosmos.tx.v1beta1.Service/Simulate`` — gas estimation
- ``/cosmos.tx.v1beta1.Service/BroadcastTx`` — sync / async submission
- ``/cosmos.tx.v1beta1.Service/GetTx`` — confirmation polling
- ``/cosmos.base.tendermint.v1beta1.Service/GetLatestBlock`` — chain time
- ``/cosmos.bank.v1beta1.Query/Balance`` — single-denom balance
- ``/cosmwasm.wasm.v1.Query/SmartContractState`` — CosmWasm smart queries
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import time
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from cosmpy.protos.cosmos.auth.v1beta1.auth_pb2 import BaseAccount
from cosmpy.protos.cosmos.auth.v1beta1.query_pb2 import QueryAccountRequest, QueryAccountResponse
from cosmpy.protos.cosmos.bank.v1beta1.query_pb2 import QueryBalanceRequest, QueryBalanceResponse
from cosmpy.protos.cosmos.base.tendermint.v1beta1.query_pb2 import (
    GetLatestBlockRequest,
    GetLatestBlockResponse,
)
from cosmpy.protos.cosmos.tx.v1beta1.service_pb2 import (
    BROADCAST_MODE_ASYNC,
    BROADCAST_MODE_SYNC,
    BroadcastTxRequest,
    BroadcastTxResponse,
    GetTxRequest,
    GetTxResponse,
    SimulateRequest,
    SimulateResponse,
)
from cosmpy.protos.cosmwasm.wasm.v1.query_pb2 import (
    QuerySmartContractStateRequest,
    QuerySmartContractStateResponse,
)
from google.protobuf.message import DecodeError

from domain_clients.chain.cosmos import tx as cosmos_tx
from domain_clients.chain.cosmos.transport import GrpcTransport
from domain_clients.chain.models import (
    Account,
    BroadcastOutcome,
    ConfirmationStatus,
    GasEstimate,
    RejectionKind,
    SignedTx,
    TxEvent,
)
from domain_clients.codec.codec import default_codec
from domain_clients.codec.messages import Coin
from domain_clients.config.settings import BroadcastMode
from domain_clients.errors.chain_errors import NotFoundError, RpcError
from domain_clients.errors.tx_errors import BuildError, InsufficientFunds
from domain_clients.utils.crypto import sha256

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from cosmpy.protos.cosmos.base.abci.v1beta1.abci_pb2 import TxResponse

    from domain_clients.chain.base import Signer
    from domain_clients.chain.models import TxIntent
    from domain_clients.codec.codec import ProtoCodec
    from domain_clients.config.settings import CosmosChainConfig
    from domain_clients.signing.signer import Secp256k1Signer

logger = logging.getLogger(__name__)

# gRPC method paths
ACCOUNT_METHOD = "/cosmos.auth.v1beta1.Query/Account"
SIMULATE_METHOD = "/cosmos.tx.v1beta1.Service/Simulate"
BROADCAST_METHOD = "/cosmos.tx.v1beta1.Service/BroadcastTx"
GET_TX_METHOD = "/cosmos.tx.v1beta1.Service/GetTx"
LATEST_BLOCK_METHOD = "/cosmos.base.tendermint.v1beta1.Service/GetLatestBlock"
PACKET_RECEIPT_METHOD = "/ibc.core.channel.v1.Query/PacketReceipt"
PACKET_COMMITMENT_METHOD = "/ibc.core.channel.v1.Query/PacketCommitment"
BALANCE_METHOD = "/cosmos.bank.v1beta1.Query/Balance"
SMART_CONTRACT_STATE_METHOD = "/cosmwasm.wasm.v1.Query/SmartContractState"

_BASE_ACCOUNT_TYPE_URL = "/cosmos.auth.v1beta1.BaseAccount"

# Cosmos SDK error codes (codespace "sdk")
_SDK_CODESPACE = "sdk"
_CODE_UNAUTHORIZED = 4
_CODE_INSUFFICIENT_FUNDS = 5
_CODE_INVALID_PUBKEY = 8
_CODE_TX_IN_MEMPOOL_CACHE = 19
_CODE_MEMPOOL_FULL = 20
_CODE_WRONG_SEQUENCE = 32

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def classify_rejection(codespace: str, code: int, raw_log: str) -> RejectionKind | None:
    """Map a CheckTx error onto a :class:`RejectionKind`.

    Returns ``None`` when the "error" means the node already holds the
    transaction, which counts as accepted.
    """
    log = raw_log.lower()
    if codespace == _SDK_CODESPACE:
        if code == _CODE_TX_IN_MEMPOOL_CACHE:
            return None
        if code == _CODE_WRONG_SEQUENCE:
            return RejectionKind.SEQUENCE_MISMATCH
        if code == _CODE_INSUFFICIENT_FUNDS:
            return RejectionKind.INSUFFICIENT_FUNDS
        if code in (_CODE_UNAUTHORIZED, _CODE_INVALID_PUBKEY):
            return RejectionKind.INVALID_SIGNATURE
        if code == _CODE_MEMPOOL_FULL:
            return RejectionKind.MEMPOOL_FULL
    # Fallback on log text for chains with custom codespaces
    if "already in mempool" in log or "tx already exists in cache" in log:
        return None
    if "account sequence mismatch" in log or "incorrect account sequence" in log:
        return RejectionKind.SEQUENCE_MISMATCH
    if "insufficient funds" in log:
        return RejectionKind.INSUFFICIENT_FUNDS
    if "signature verification failed" in log:
        return RejectionKind.INVALID_SIGNATURE
    if "mempool is full" in log:
        return RejectionKind.MEMPOOL_FULL
    return RejectionKind.REJECTED


def _text(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def to_unix_nanos(moment: datetime) -> int:
    """Exact integer nanoseconds since the Unix epoch for an aware datetime."""
    return (moment - _EPOCH) // timedelta(microseconds=1) * 1000


class CosmosClient:
    """Async ``ChainClient`` for one Cosmos-SDK chain.

    Usage::

        client = CosmosClient(config)
        await client.connect()
        try:
            account = await client.load_account(signer)
            estimate = await client.simulate(intent, account)
        finally:
            await client.close()
    """

    def __init__(
        self,
        config: CosmosChainConfig,
        *,
        transport: GrpcTransport | None = None,
        codec: ProtoCodec | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            config: Chain endpoint and fee settings.
            transport: Replacement gRPC transport (tests inject a fake).
            codec: Message codec; the default registry when omitted.
            clock: Monotonic clock used by confirmation polling.
            sleep: Suspension used between confirmation polls.
        """
        self._config = config
        self._transport = transport or GrpcTransport(config.grpc_url, tls=config.tls)
        self._codec = codec or default_codec()
        self._clock = clock
        self._sleep = sleep

    async def connect(self) -> None:
        await self._transport.connect()

    async def close(self) -> None:
        await self._transport.close()

    @property
    def is_connected(self) -> bool:
        return self._transport.is_connected

    @property
    def chain_id(self) -> str:
        return self._config.chain_id

    @property
    def config(self) -> CosmosChainConfig:
        return self._config

    @property
    def codec(self) -> ProtoCodec:
        return self._codec

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def query(self, path: str, params: bytes) -> bytes:
        """Raw gRPC query; ``path`` is the method, ``params`` the encoded request."""
        return await self._transport.unary(path, params, timeout=self._config.request_timeout)

    async def account_info(self, address: str) -> tuple[int, int]:
        """Return ``(account_number, sequence)`` for an address.

        Raises:
            NotFoundError: The account has never received funds.
            RpcError: The account is not a ``BaseAccount``.
        """
        request = QueryAccountRequest(address=address).SerializeToString(deterministic=True)
        response = QueryAccountResponse()
        response.ParseFromString(await self.query(ACCOUNT_METHOD, request))
        if response.account.type_url != _BASE_ACCOUNT_TYPE_URL:
            msg = f"Unsupported account type {response.account.type_url!r}"
            raise RpcError(msg, chain_id=self.chain_id, address=address)
        account = BaseAccount()
        account.ParseFromString(response.account.value)
        return account.account_number, account.sequence

    async def account_sequence(self, address: str) -> int:
        _, sequence = await self.account_info(address)
        return sequence

    async def load_account(
        self, signer: Secp256k1Signer, *, prefix: str | None = None
    ) -> Account:
        """Resolve the signer's on-chain account (address, number, sequence)."""
        address = signer.cosmos_address(prefix or self._config.address_prefix)
        account_number, sequence = await self.account_info(address)
        return Account(
            chain_id=self.chain_id,
            address=address,
            public_key=signer.public_key,
            account_number=account_number,
            sequence=sequence,
        )

    async def latest_block_time(self) -> datetime:
        """Header time of the latest committed block (UTC)."""
        request = GetLatestBlockRequest().SerializeToString(deterministic=True)
        response = GetLatestBlockResponse()
        response.ParseFromString(await self.query(LATEST_BLOCK_METHOD, request))
        ts = response.block.header.time
        return _EPOCH + timedelta(seconds=ts.seconds, microseconds=ts.nanos // 1000)

    async def query_balance(self, address: str, denom: str | None = None) -> Coin:
        """Bank balance of ``address`` in ``denom`` (the chain's fee denom by default)."""
        request = QueryBalanceRequest(
            address=address, denom=denom or self._config.denom
        ).SerializeToString(deterministic=True)
        response = QueryBalanceResponse()
        response.ParseFromString(await self.query(BALANCE_METHOD, request))
        return Coin(
            denom=response.balance.denom or denom or self._config.denom,
            amount=int(response.balance.amount or 0),
        )

    async def query_contract_state(self, contract: str, query: dict[str, Any]) -> Any:
        """Run a CosmWasm smart query and return the contract's decoded JSON answer.

        Raises:
            RpcError: The contract rejected the query or answered with invalid JSON.
        """
        request = QuerySmartContractStateRequest(
            address=contract,
            query_data=json.dumps(query, separators=(",", ":"), sort_keys=True).encode(),
        ).SerializeToString(deterministic=True)
        response = QuerySmartContractStateResponse()
        response.ParseFromString(await self.query(SMART_CONTRACT_STATE_METHOD, request))
        try:
            return json.loads(response.data)
        except ValueError as exc:
            msg = f"Contract {contract} answered with invalid JSON: {exc}"
            raise RpcError(msg, chain_id=self.chain_id) from exc

    # ------------------------------------------------------------------
    # Build / sign
    # ------------------------------------------------------------------

    async def simulate(self, intent: TxIntent, account: Account) -> GasEstimate:
        """Dry-run with an empty signature and scale ``gas_used`` by ``gas_adjustment``.

        Raises:
            InsufficientFunds: Node reported insufficient funds.
            BuildError: Any other simulation rejection.
        """
        self._check_intent(intent)
        body = cosmos_tx.encode_body(self._codec, intent.messages, intent.memo)
        auth_info = cosmos_tx.encode_auth_info(
            account.public_key,
            account.sequence or 0,
            0,
            [],
        )
        tx_bytes = cosmos_tx.encode_tx_raw(body, auth_info, b"")
        request = SimulateRequest(tx_bytes=tx_bytes).SerializeToString(deterministic=True)
        try:
            raw = await self.query(SIMULATE_METHOD, request)
        except RpcError as exc:
            if "insufficient funds" in exc.message.lower():
                raise InsufficientFunds(exc.message, chain_id=self.chain_id) from exc
            msg = f"Simulation failed: {exc.message}"
            raise BuildError(msg, chain_id=self.chain_id) from exc

        response = SimulateResponse()
        response.ParseFromString(raw)
        gas_used = response.gas_info.gas_used
        gas_limit = math.ceil(gas_used * self._config.gas_adjustment)
        gas_price = intent.fee.gas_price if intent.fee.gas_price > 0 else self._config.gas_price
        logger.debug("Simulated %s: gas_used=%d gas_limit=%d", self.chain_id, gas_used, gas_limit)
        return GasEstimate(
            gas_limit=gas_limit,
            gas_price=Decimal(gas_price),
            denom=intent.fee.denom or self._config.denom,
        )

    def build_and_sign(self, intent: TxIntent, account: Account, signer: Signer) -> SignedTx:
        """Encode a SIGN_MODE_DIRECT transaction at ``account.sequence`` and sign it.

        Raises:
            BuildError: Missing sequence or gas limit, or chain mismatch.
            EncodingError: A message type the codec cannot encode.
        """
        self._check_intent(intent)
        if account.sequence is None:
            msg = "Account sequence must be leased before signing"
            raise BuildError(msg, chain_id=self.chain_id, address=account.address)
        if intent.fee.gas_limit is None:
            msg = "Fee gas_limit is not set; simulate first"
            raise BuildError(msg, chain_id=self.chain_id, address=account.address)

        gas_price = intent.fee.gas_price if intent.fee.gas_price > 0 else self._config.gas_price
        estimate = GasEstimate(
            gas_limit=intent.fee.gas_limit,
            gas_price=Decimal(gas_price),
            denom=intent.fee.denom or self._config.denom,
        )
        fee = [Coin(denom=estimate.denom, amount=estimate.fee_amount)]

        body = cosmos_tx.encode_body(self._codec, intent.messages, intent.memo)
        auth_info = cosmos_tx.encode_auth_info(
            signer.public_key,
            account.sequence,
            estimate.gas_limit,
            fee,
        )
        sign_doc = cosmos_tx.encode_sign_doc(body, auth_info, self.chain_id, account.account_number)
        signature = signer.sign_digest(sha256(sign_doc))
        raw = cosmos_tx.encode_tx_raw(body, auth_info, signature)
        return SignedTx(
            chain_id=self.chain_id,
            raw_bytes=raw,
            tx_hash=cosmos_tx.tx_hash(raw),
            signer_sequence=account.sequence,
        )

    # ------------------------------------------------------------------
    # Broadcast / confirm
    # ------------------------------------------------------------------

    async def broadcast(self, signed_tx: SignedTx) -> BroadcastOutcome:
        """Submit via ``BroadcastTx`` in the configured mode.

        Raises:
            NetworkError: Transport failure.
        """
        mode = (
            BROADCAST_MODE_ASYNC
            if self._config.broadcast_mode == BroadcastMode.ASYNC
            else BROADCAST_MODE_SYNC
        )
        request = BroadcastTxRequest(tx_bytes=signed_tx.raw_bytes, mode=mode)
        try:
            raw = await self.query(BROADCAST_METHOD, request.SerializeToString(deterministic=True))
        except RpcError as exc:
            kind = classify_rejection("", 0, exc.message)
            if kind is None:
                return BroadcastOutcome.ok(signed_tx.tx_hash)
            return BroadcastOutcome.rejected(signed_tx.tx_hash, kind, exc.message)

        response = BroadcastTxResponse()
        response.ParseFromString(raw)
        tx_response = response.tx_response
        tx_hash = tx_response.txhash.upper() or signed_tx.tx_hash
        if tx_response.code == 0:
            return BroadcastOutcome.ok(tx_hash)

        kind = classify_rejection(tx_response.codespace, tx_response.code, tx_response.raw_log)
        if kind is None:
            logger.info("Tx %s already known to %s", tx_hash, self.chain_id)
            return BroadcastOutcome.ok(tx_hash)
        return BroadcastOutcome.rejected(tx_hash, kind, tx_response.raw_log)

    async def get_tx_status(self, tx_hash: str) -> ConfirmationStatus:
        """Single ``GetTx`` lookup; unknown hashes are still pending."""
        request = GetTxRequest(hash=tx_hash).SerializeToString(deterministic=True)
        try:
            raw = await self.query(GET_TX_METHOD, request)
        except NotFoundError:
            return ConfirmationStatus.pending()

        response = GetTxResponse()
        try:
            response.ParseFromString(raw)
        except DecodeError as exc:
            msg = f"Malformed GetTx response for {tx_hash}"
            raise RpcError(msg, chain_id=self.chain_id) from exc
        tx_response = response.tx_response
        if tx_response.height <= 0:
            return ConfirmationStatus.pending()
        return ConfirmationStatus.included(
            block_height=tx_response.height,
            result_code=tx_response.code,
            raw_log=tx_response.raw_log,
            events=self._events_of(tx_response),
        )

    async def poll_confirmation(self, tx_hash: str, timeout: float) -> ConfirmationStatus:
        """Poll ``GetTx`` every ``poll_interval`` until included or ``timeout`` elapses.

        Raises:
            NetworkError: Transport failure during a poll.
        """
        deadline = self._clock() + timeout
        while True:
            status = await self.get_tx_status(tx_hash)
            if status.is_terminal:
                return status
            remaining = deadline - self._clock()
            if remaining <= 0:
                return ConfirmationStatus.timed_out()
            logger.debug("Tx %s pending on %s", tx_hash, self.chain_id)
            await self._sleep(min(self._config.poll_interval, remaining))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_intent(self, intent: TxIntent) -> None:
        if intent.chain_id != self.chain_id:
            msg = f"Intent targets {intent.chain_id!r}, client serves {self.chain_id!r}"
            raise BuildError(msg, chain_id=self.chain_id)

    @staticmethod
    def _events_of(tx_response: TxResponse) -> tuple[TxEvent, ...]:
        events = [
            TxEvent(
                type=event.type,
                attributes={_text(a.key): _text(a.value) for a in event.attributes},
            )
            for event in tx_response.events
        ]
        if events:
            return tuple(events)
        # Pre-0.46 nodes only populate the per-message string logs
        return tuple(
            TxEvent(type=event.type, attributes={a.key: a.value for a in event.attributes})
            for log in tx_response.logs
            for event in log.events
        )
