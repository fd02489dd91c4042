"""Tests for the pooled client against an in-memory node."""

from __future__ import annotations

import json
from typing import Any

import pytest
from eth_abi import encode
from eth_account import Account
from eth_utils import to_checksum_address

from eth_pool_client.exceptions import (
    EmptyOutputError,
    NoContractCodeError,
    ReceiptTimeoutError,
    RpcError,
    TransactionFailedError,
    ValidationError,
)
from eth_pool_client.rpc.client import EthClient
from eth_pool_client.rpc.config import ClientConfig, RetryPolicy
from eth_pool_client.types import CompileResult, TxOptions

PRIVATE_KEY = "0x" + "11" * 32
SENDER = Account.from_key(PRIVATE_KEY).address
CONTRACT = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
ALICE = to_checksum_address("0x00000000000000000000000000000000000000a1")
TX_HASH = "0x" + "ab" * 32

TOKEN_ABI = [
    {"type": "constructor", "inputs": [{"name": "supply", "type": "uint256"}]},
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "balance", "type": "uint256"}],
    },
    {
        "name": "transfer",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "ping",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [],
    },
]


class FakeNode:
    """Answers JSON-RPC methods from a table of values or callables."""

    def __init__(self) -> None:
        self.handlers: dict[str, Any] = {
            "eth_chainId": "0x54c",
            "eth_gasPrice": "0x3b9aca00",
            "eth_getTransactionCount": "0x3",
            "eth_sendRawTransaction": TX_HASH,
            "eth_getTransactionReceipt": {"status": "0x1", "blockNumber": "0x5", "transactionHash": TX_HASH},
        }
        self.calls: list[tuple[str, list[Any]]] = []

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def params(self, method: str) -> list[Any]:
        return [params for name, params in self.calls if name == method][-1]

    def handle(self, method: str, params: list[Any]) -> Any:
        self.calls.append((method, params))
        handler = self.handlers[method]
        if isinstance(handler, BaseException):
            raise handler
        if callable(handler):
            return handler(params)
        return handler


class StubConnection:
    def __init__(self, node: FakeNode) -> None:
        self.endpoint = "http://stub"
        self.closed = False
        self._node = node

    def request(self, method: str, params: list[Any]) -> Any:
        return self._node.handle(method, params)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def connections() -> list[StubConnection]:
    return []


@pytest.fixture
def client(node, connections):
    def factory() -> StubConnection:
        conn = StubConnection(node)
        connections.append(conn)
        return conn

    config = ClientConfig(
        endpoints=("http://stub",),
        private_key=PRIVATE_KEY,
        retry=RetryPolicy(outer_backoff=0, inner_backoff=0),
        receipt_attempts=3,
    )
    instance = EthClient(config, connection_factory=factory, sleep=lambda _: None)
    yield instance
    instance.close()


def _hex_word(value: int) -> str:
    return "0x" + encode(["uint256"], [value]).hex()


class TestQueries:
    """Plain JSON-RPC queries."""

    def test_raw_call_returns_result(self, client, node):
        node.handlers["eth_blockNumber"] = "0x10"
        assert client.call("eth_blockNumber") == "0x10"

    def test_quantities_are_parsed(self, client, node):
        node.handlers["eth_getBalance"] = "0xde0b6b3a7640000"
        assert client.gas_price() == 1_000_000_000
        assert client.get_balance(ALICE, 5) == 10**18
        assert node.params("eth_getBalance") == [ALICE, "0x5"]

    def test_block_queries(self, client, node):
        node.handlers["eth_getBlockByNumber"] = {"number": "0x1"}
        node.handlers["eth_getBlockTransactionCountByNumber"] = "0x2"
        assert client.get_block_by_number(1, True) == {"number": "0x1"}
        assert node.params("eth_getBlockByNumber") == ["0x1", True]
        assert client.get_block_transaction_count_by_number() == 2
        assert node.params("eth_getBlockTransactionCountByNumber") == ["latest"]

    def test_estimate_gas_encodes_call_object(self, client, node):
        node.handlers["eth_estimateGas"] = "0x5208"
        assert client.estimate_gas({"to": ALICE, "value": 1, "data": b"\x01"}) == 21000
        assert node.params("eth_estimateGas") == [{"to": ALICE, "value": "0x1", "data": "0x01"}]

    def test_chain_id_is_cached(self, client, node):
        assert client.chain_id() == 1356
        assert client.chain_id() == 1356
        assert node.count("eth_chainId") == 1

    def test_rpc_error_propagates(self, client, node):
        node.handlers["eth_gasPrice"] = RpcError("eth_gasPrice failed: boom", code=-32000)
        with pytest.raises(RpcError):
            client.gas_price()
        assert node.count("eth_gasPrice") == 1


class TestContractCalls:
    """Read-only contract calls."""

    def test_eth_call_decodes_outputs(self, client, node):
        node.handlers["eth_call"] = _hex_word(250)
        assert client.eth_call(TOKEN_ABI, CONTRACT, "balanceOf", [ALICE]) == [250]

        call_object, block = node.params("eth_call")
        assert call_object["to"] == CONTRACT
        assert call_object["from"] == SENDER
        assert call_object["data"].startswith("0x70a08231")
        assert block == "latest"

    def test_invoke_constant_with_text_arguments(self, client, node):
        node.handlers["eth_call"] = _hex_word(7)
        assert client.invoke(TOKEN_ABI, CONTRACT, "balanceOf", ALICE) == [7]
        assert node.count("eth_sendRawTransaction") == 0

    def test_empty_output_without_code(self, client, node):
        node.handlers["eth_call"] = "0x"
        node.handlers["eth_getCode"] = "0x"
        with pytest.raises(NoContractCodeError):
            client.eth_call(TOKEN_ABI, CONTRACT, "balanceOf", [ALICE])

    def test_empty_output_with_code(self, client, node):
        node.handlers["eth_call"] = "0x"
        node.handlers["eth_getCode"] = "0x6001"
        with pytest.raises(EmptyOutputError):
            client.eth_call(TOKEN_ABI, CONTRACT, "balanceOf", [ALICE])

    def test_method_without_outputs_returns_none(self, client, node):
        node.handlers["eth_call"] = "0x"
        assert client.eth_call(TOKEN_ABI, CONTRACT, "ping") is None


class TestTransactions:
    """Signing, submission and receipts."""

    def test_invoke_sends_signed_transaction(self, client, node):
        result = client.invoke(TOKEN_ABI, CONTRACT, "transfer", [ALICE, 5])

        assert result == [TX_HASH]
        raw = node.params("eth_sendRawTransaction")[0]
        assert Account.recover_transaction(raw) == SENDER
        assert node.params("eth_getTransactionCount") == [SENDER, "pending"]

    def test_receipt_polling_until_available(self, client, node):
        receipts = iter([None, None, {"status": "0x1", "blockNumber": "0x9"}])
        node.handlers["eth_getTransactionReceipt"] = lambda params: next(receipts)

        receipt = client.get_transaction_receipt(TX_HASH)
        assert receipt["blockNumber"] == "0x9"
        assert node.count("eth_getTransactionReceipt") == 3

    def test_receipt_timeout(self, client, node):
        node.handlers["eth_getTransactionReceipt"] = None
        with pytest.raises(ReceiptTimeoutError) as excinfo:
            client.get_transaction_receipt(TX_HASH)
        assert excinfo.value.tx_hash == TX_HASH
        assert node.count("eth_getTransactionReceipt") == 3

    def test_failed_receipt_raises(self, client, node):
        node.handlers["eth_getTransactionReceipt"] = {"status": "0x0", "blockNumber": "0x5"}
        with pytest.raises(TransactionFailedError) as excinfo:
            client.send_transaction_with_receipt({"to": ALICE, "value": 1})
        assert excinfo.value.tx_hash == TX_HASH
        assert excinfo.value.receipt["status"] == "0x0"

    def test_send_transaction_honours_options(self, client, node):
        tx_hash = client.send_transaction({"to": ALICE, "value": 1}, TxOptions(nonce=42, gas_price=7))
        assert tx_hash == TX_HASH
        assert node.count("eth_getTransactionCount") == 0
        assert node.count("eth_gasPrice") == 0

    def test_send_raw_transaction_with_receipt(self, client, node):
        receipt = client.send_raw_transaction_with_receipt(b"\x01\x02")
        assert node.params("eth_sendRawTransaction") == ["0x0102"]
        assert receipt["status"] == "0x1"

    def test_missing_key_is_rejected(self, node):
        config = ClientConfig(endpoints=("http://stub",))
        with EthClient(config, connection_factory=lambda: StubConnection(node)) as keyless:
            with pytest.raises(ValidationError):
                keyless.send_transaction({"to": ALICE, "value": 1})

    def test_nonce_tracker_counts_locally(self, client, node):
        tracker = client.nonce_tracker()
        assert [tracker.next(), tracker.next(), tracker.next()] == [3, 4, 5]
        assert node.count("eth_getTransactionCount") == 1

        tracker.reset()
        assert tracker.next() == 3


class TestDeploy:
    def test_deploy_by_code(self, client, node):
        node.handlers["eth_getTransactionReceipt"] = {
            "status": "0x1",
            "blockNumber": "0x7",
            "contractAddress": CONTRACT.lower(),
        }
        address, block = client.deploy_by_code(TOKEN_ABI, "0x6001", "1000")
        assert address == CONTRACT
        assert block == 7

    def test_deploy_skips_empty_bytecode(self, client, node):
        node.handlers["eth_getTransactionReceipt"] = {
            "status": "0x1",
            "blockNumber": "0x7",
            "contractAddress": CONTRACT,
        }
        result = CompileResult(
            abis=[json.dumps(TOKEN_ABI), "[]"],
            bins=["0x6001", "0x"],
            names=["Token", "IToken"],
        )
        assert client.deploy(result, [1000]) == [CONTRACT]
        assert node.count("eth_sendRawTransaction") == 1

    def test_deploy_failure_reports_hash(self, client, node):
        node.handlers["eth_getTransactionReceipt"] = {"status": "0x0", "blockNumber": "0x7"}
        with pytest.raises(TransactionFailedError, match="deploy contract failed"):
            client.deploy_by_code(TOKEN_ABI, "0x6001", [1])

    def test_empty_compile_result(self, client):
        with pytest.raises(ValidationError):
            client.deploy(CompileResult())


def test_close_closes_pooled_connections(node):
    connections = []

    def factory():
        conn = StubConnection(node)
        connections.append(conn)
        return conn

    with EthClient(ClientConfig(endpoints=("http://stub",)), connection_factory=factory) as client:
        node.handlers["eth_blockNumber"] = "0x1"
        client.call("eth_blockNumber")

    assert connections
    assert all(conn.closed for conn in connections)
