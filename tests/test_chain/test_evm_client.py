"""Tests for the EVM JSON-RPC client — uses httpx mock transport."""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest
from eth_account import Account as EthAccount

from domain_clients.chain.evm import EvmClient, classify_rejection
from domain_clients.chain.models import (
    Account,
    ConfirmationState,
    EvmCall,
    FeeBounds,
    RejectionKind,
    TxIntent,
)
from domain_clients.config.settings import EvmChainConfig
from domain_clients.errors.chain_errors import RpcError
from domain_clients.errors.tx_errors import BuildError, InsufficientFunds, NetworkError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_CHAIN_ID = 1337
_RECIPIENT = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"


def _rpc_handler(results: dict, calls: list | None = None):
    """MockTransport handler answering JSON-RPC methods from ``results``.

    A value may be a callable taking the params list, or a dict with an
    ``"error"`` key which is returned as the JSON-RPC error object.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append((body["method"], body["params"]))
        value = results[body["method"]]
        if callable(value):
            value = value(body["params"])
        if isinstance(value, dict) and "error" in value:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **value})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": value})

    return handler


async def _client(handler, clock=None) -> EvmClient:
    kwargs = {}
    if clock is not None:
        kwargs = {"clock": clock, "sleep": clock.sleep}
    client = EvmClient(
        EvmChainConfig(chain_id=_CHAIN_ID, rpc_url="http://evm.test"),
        transport=httpx.MockTransport(handler),
        **kwargs,
    )
    await client.connect()
    return client


def _intent(*messages, **fee) -> TxIntent:
    return TxIntent(
        chain_id=str(_CHAIN_ID),
        messages=messages or (EvmCall(to=_RECIPIENT, value=10**15),),
        fee=FeeBounds(**fee),
    )


def _account(signer, sequence: int | None = 3) -> Account:
    return Account(chain_id=str(_CHAIN_ID), address=signer.evm_address(), sequence=sequence)


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


class TestEvmClientLifecycle:
    async def test_not_connected_by_default(self) -> None:
        client = EvmClient(EvmChainConfig(chain_id=1))
        assert client.is_connected is False
        assert client.chain_id == "1"

    async def test_connect_and_close(self) -> None:
        client = await _client(_rpc_handler({}))
        assert client.is_connected is True
        await client.close()
        assert client.is_connected is False

    async def test_call_before_connect(self) -> None:
        client = EvmClient(EvmChainConfig(chain_id=1))
        with pytest.raises(RpcError, match="not connected"):
            await client.block_number()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestReads:
    async def test_pending_nonce(self, signer) -> None:
        calls: list = []
        client = await _client(_rpc_handler({"eth_getTransactionCount": "0x5"}, calls))

        assert await client.account_sequence("0xabc") == 5
        assert calls == [("eth_getTransactionCount", ["0xabc", "pending"])]

    async def test_load_account(self, signer) -> None:
        client = await _client(_rpc_handler({"eth_getTransactionCount": "0x2a"}))
        account = await client.load_account(signer)
        assert account.address == signer.evm_address()
        assert account.sequence == 42
        assert account.chain_id == "1337"

    async def test_balance_and_block(self) -> None:
        client = await _client(
            _rpc_handler({"eth_getBalance": "0xde0b6b3a7640000", "eth_blockNumber": "0x10"})
        )
        assert await client.get_balance(_RECIPIENT) == 10**18
        assert await client.block_number() == 16

    async def test_eth_call(self) -> None:
        calls: list = []
        client = await _client(_rpc_handler({"eth_call": "0x" + "00" * 31 + "07"}, calls))

        result = await client.call(_RECIPIENT, bytes.fromhex("70a08231"))

        assert int.from_bytes(result, "big") == 7
        assert calls[0][1][0]["data"] == "0x70a08231"

    async def test_raw_query(self) -> None:
        client = await _client(_rpc_handler({"eth_chainId": lambda params: hex(_CHAIN_ID)}))
        raw = await client.query("eth_chainId", b"[]")
        assert json.loads(raw) == "0x539"


# ---------------------------------------------------------------------------
# Transport errors
# ---------------------------------------------------------------------------


class TestRpcErrors:
    async def test_error_object(self) -> None:
        client = await _client(
            _rpc_handler({"eth_blockNumber": {"error": {"code": -32000, "message": "boom"}}})
        )
        with pytest.raises(RpcError, match="boom") as exc_info:
            await client.block_number()
        assert exc_info.value.rpc_code == -32000

    @pytest.mark.parametrize("status", [429, 502, 503, 504])
    async def test_transient_status(self, status: int) -> None:
        client = await _client(lambda request: httpx.Response(status))
        with pytest.raises(NetworkError):
            await client.block_number()

    async def test_other_status(self) -> None:
        client = await _client(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(RpcError) as exc_info:
            await client.block_number()
        assert exc_info.value.rpc_code == 500

    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = await _client(handler)
        with pytest.raises(NetworkError, match="refused"):
            await client.block_number()

    async def test_invalid_json(self) -> None:
        client = await _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(RpcError, match="invalid JSON"):
            await client.block_number()


# ---------------------------------------------------------------------------
# Simulate
# ---------------------------------------------------------------------------


class TestSimulate:
    async def test_estimate_scaled(self, signer) -> None:
        calls: list = []
        client = await _client(
            _rpc_handler({"eth_estimateGas": "0x5208", "eth_gasPrice": "0x3b9aca00"}, calls)
        )

        estimate = await client.simulate(_intent(), _account(signer))

        assert estimate.gas_limit == 25_200
        assert estimate.gas_price == Decimal(1_000_000_000)
        assert estimate.denom == "wei"
        assert calls[0][1][0]["from"] == signer.evm_address()
        assert calls[0][1][0]["value"] == hex(10**15)

    async def test_caller_price_kept(self, signer) -> None:
        calls: list = []
        client = await _client(_rpc_handler({"eth_estimateGas": "0x5208"}, calls))

        estimate = await client.simulate(_intent(gas_price=Decimal(7)), _account(signer))

        assert estimate.gas_price == Decimal(7)
        assert [method for method, _ in calls] == ["eth_estimateGas"]

    async def test_insufficient_funds(self, signer) -> None:
        client = await _client(
            _rpc_handler(
                {
                    "eth_estimateGas": {
                        "error": {"code": -32000, "message": "insufficient funds for transfer"}
                    }
                }
            )
        )
        with pytest.raises(InsufficientFunds):
            await client.simulate(_intent(), _account(signer))

    async def test_revert(self, signer) -> None:
        client = await _client(
            _rpc_handler(
                {"eth_estimateGas": {"error": {"code": 3, "message": "execution reverted"}}}
            )
        )
        with pytest.raises(BuildError, match="reverted"):
            await client.simulate(_intent(), _account(signer))

    async def test_multiple_calls_rejected(self, signer) -> None:
        client = await _client(_rpc_handler({}))
        intent = _intent(EvmCall(to=_RECIPIENT), EvmCall(to=_RECIPIENT))
        with pytest.raises(BuildError, match="exactly one"):
            await client.simulate(intent, _account(signer))


# ---------------------------------------------------------------------------
# Build / sign
# ---------------------------------------------------------------------------


class TestBuildAndSign:
    def test_legacy_transaction(self, signer) -> None:
        client = EvmClient(EvmChainConfig(chain_id=_CHAIN_ID))
        intent = _intent(gas_limit=21_000, gas_price=Decimal(2_000_000_000))

        signed = client.build_and_sign(intent, _account(signer), signer)

        assert signed.signer_sequence == 3
        assert signed.chain_id == "1337"
        assert signed.tx_hash.startswith("0x")
        assert len(signed.tx_hash) == 66
        assert EthAccount.recover_transaction(signed.raw_bytes) == signer.evm_address()

    def test_matches_eth_account(self, signer) -> None:
        client = EvmClient(EvmChainConfig(chain_id=_CHAIN_ID))
        intent = _intent(gas_limit=21_000, gas_price=Decimal(2_000_000_000))

        signed = client.build_and_sign(intent, _account(signer), signer)

        expected = EthAccount.sign_transaction(
            {
                "nonce": 3,
                "gas": 21_000,
                "gasPrice": 2_000_000_000,
                "to": _RECIPIENT,
                "value": 10**15,
                "data": b"",
                "chainId": _CHAIN_ID,
            },
            signer.private_key,
        )
        assert signed.raw_bytes == bytes(expected.raw_transaction)

    def test_dynamic_fee_transaction(self, signer) -> None:
        client = EvmClient(EvmChainConfig(chain_id=_CHAIN_ID))
        intent = _intent(
            gas_limit=21_000,
            gas_price=Decimal(30_000_000_000),
            max_priority_fee=1_000_000_000,
        )

        signed = client.build_and_sign(intent, _account(signer), signer)

        assert signed.raw_bytes[0] == 0x02
        assert EthAccount.recover_transaction(signed.raw_bytes) == signer.evm_address()

    def test_deterministic(self, signer) -> None:
        client = EvmClient(EvmChainConfig(chain_id=_CHAIN_ID))
        intent = _intent(gas_limit=21_000, gas_price=Decimal(1))
        first = client.build_and_sign(intent, _account(signer), signer)
        second = client.build_and_sign(intent, _account(signer), signer)
        assert first.raw_bytes == second.raw_bytes

    def test_requires_nonce(self, signer) -> None:
        client = EvmClient(EvmChainConfig(chain_id=_CHAIN_ID))
        intent = _intent(gas_limit=21_000, gas_price=Decimal(1))
        with pytest.raises(BuildError, match="nonce"):
            client.build_and_sign(intent, _account(signer, sequence=None), signer)

    def test_requires_fee(self, signer) -> None:
        client = EvmClient(EvmChainConfig(chain_id=_CHAIN_ID))
        with pytest.raises(BuildError, match="simulate first"):
            client.build_and_sign(_intent(), _account(signer), signer)

    def test_invalid_recipient(self, signer) -> None:
        client = EvmClient(EvmChainConfig(chain_id=_CHAIN_ID))
        intent = _intent(EvmCall(to="0x1234"), gas_limit=21_000, gas_price=Decimal(1))
        with pytest.raises(BuildError, match="recipient"):
            client.build_and_sign(intent, _account(signer), signer)

    def test_chain_mismatch(self, signer) -> None:
        client = EvmClient(EvmChainConfig(chain_id=1))
        intent = _intent(gas_limit=21_000, gas_price=Decimal(1))
        with pytest.raises(BuildError, match="client serves"):
            client.build_and_sign(intent, _account(signer), signer)


# ---------------------------------------------------------------------------
# Broadcast
# ---------------------------------------------------------------------------


def _signed(signer):
    client = EvmClient(EvmChainConfig(chain_id=_CHAIN_ID))
    intent = _intent(gas_limit=21_000, gas_price=Decimal(1))
    return client.build_and_sign(intent, _account(signer), signer)


class TestBroadcast:
    async def test_accepted(self, signer) -> None:
        signed = _signed(signer)
        calls: list = []
        client = await _client(_rpc_handler({"eth_sendRawTransaction": signed.tx_hash}, calls))

        outcome = await client.broadcast(signed)

        assert outcome.accepted
        assert outcome.tx_hash == signed.tx_hash
        assert calls[0][1] == ["0x" + signed.raw_bytes.hex()]

    async def test_already_known_counts_as_accepted(self, signer) -> None:
        signed = _signed(signer)
        client = await _client(
            _rpc_handler(
                {"eth_sendRawTransaction": {"error": {"code": -32000, "message": "already known"}}}
            )
        )
        outcome = await client.broadcast(signed)
        assert outcome.accepted
        assert outcome.tx_hash == signed.tx_hash

    async def test_nonce_too_low(self, signer) -> None:
        signed = _signed(signer)
        client = await _client(
            _rpc_handler(
                {"eth_sendRawTransaction": {"error": {"code": -32000, "message": "nonce too low"}}}
            )
        )
        outcome = await client.broadcast(signed)
        assert not outcome.accepted
        assert outcome.rejection == RejectionKind.SEQUENCE_MISMATCH
        assert outcome.raw_error == "nonce too low"

    async def test_transport_failure_raises(self, signer) -> None:
        client = await _client(lambda request: httpx.Response(503))
        with pytest.raises(NetworkError):
            await client.broadcast(_signed(signer))


class TestClassifyRejection:
    @pytest.mark.parametrize(
        ("message", "kind"),
        [
            ("already known", None),
            ("known transaction: 0xabc", None),
            ("nonce too low: next nonce 5, tx nonce 3", RejectionKind.SEQUENCE_MISMATCH),
            ("nonce too high", RejectionKind.SEQUENCE_MISMATCH),
            ("insufficient funds for gas * price + value", RejectionKind.INSUFFICIENT_FUNDS),
            ("txpool is full", RejectionKind.MEMPOOL_FULL),
            ("invalid sender", RejectionKind.INVALID_SIGNATURE),
            ("replacement transaction underpriced", RejectionKind.REJECTED),
        ],
    )
    def test_classify(self, message: str, kind: RejectionKind | None) -> None:
        assert classify_rejection(message) == kind


# ---------------------------------------------------------------------------
# Confirmation
# ---------------------------------------------------------------------------


_RECEIPT = {
    "blockNumber": "0x1b4",
    "status": "0x1",
    "logs": [
        {
            "address": _RECIPIENT,
            "topics": ["0xddf252ad", "0x01"],
            "data": "0x00",
        }
    ],
}


class TestConfirmation:
    async def test_unknown_is_pending(self) -> None:
        client = await _client(_rpc_handler({"eth_getTransactionReceipt": None}))
        status = await client.get_tx_status("0xabc")
        assert status.state == ConfirmationState.PENDING

    async def test_mined_receipt(self) -> None:
        client = await _client(_rpc_handler({"eth_getTransactionReceipt": _RECEIPT}))

        status = await client.get_tx_status("0xabc")

        assert status.succeeded
        assert status.block_height == 436
        (event,) = status.find_events("log")
        assert event.attributes["topics"] == "0xddf252ad,0x01"

    async def test_reverted_receipt(self) -> None:
        receipt = {**_RECEIPT, "status": "0x0", "logs": []}
        client = await _client(_rpc_handler({"eth_getTransactionReceipt": receipt}))

        status = await client.get_tx_status("0xabc")

        assert status.state == ConfirmationState.INCLUDED
        assert status.result_code == 1
        assert status.raw_log == "execution reverted"

    async def test_poll_until_mined(self, clock) -> None:
        receipts = [None, None, _RECEIPT]
        client = await _client(
            _rpc_handler({"eth_getTransactionReceipt": lambda params: receipts.pop(0)}), clock
        )

        status = await client.poll_confirmation("0xabc", timeout=10.0)

        assert status.block_height == 436
        assert clock.sleeps == [1.0, 1.0]

    async def test_poll_times_out(self, clock) -> None:
        client = await _client(_rpc_handler({"eth_getTransactionReceipt": None}), clock)

        status = await client.poll_confirmation("0xabc", timeout=2.5)

        assert status.state == ConfirmationState.TIMED_OUT
        assert clock.sleeps == [1.0, 1.0, 0.5]
