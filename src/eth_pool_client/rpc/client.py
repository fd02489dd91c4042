"""Pooled, failover-aware Ethereum JSON-RPC client."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from eth_utils import to_checksum_address
from hexbytes import HexBytes

from ..abi.contract import CONSTRUCTOR, ContractAbi
from ..abi.convert import convert_args, parse_cli_args
from ..constants import (
    DEFAULT_DEPLOY_GAS_LIMIT,
    DEFAULT_INVOKE_GAS_LIMIT,
    DEFAULT_TRANSFER_GAS_LIMIT,
    EMPTY_BYTECODE,
    LATEST_BLOCK,
)
from ..exceptions import (
    EmptyOutputError,
    NoContractCodeError,
    TransactionError,
    ValidationError,
)
from ..types import Address, CompileResult, TxHash, TxOptions, Wei
from ..utils import hex_to_bytes, parse_quantity, strip_hex_prefix, to_quantity
from .compiler import compile_files
from .config import ClientConfig
from .connections import random_endpoint_factory
from .dispatcher import ResilientDispatcher
from .pool import ConnectionPool, Factory
from .transactions import NonceTracker, TransactionSender, ensure_success, poll_receipt

logger = logging.getLogger(__name__)

AbiLike = ContractAbi | str | Sequence[Mapping[str, Any]]
Args = str | Sequence[Any] | None
BlockId = int | str


class EthClient:
    """Ethereum JSON-RPC client backed by a connection pool.

    Every remote call borrows a pooled connection through a
    :class:`ResilientDispatcher`, so unreachable endpoints are rotated away
    from transparently. Contract arguments may be given as typed values or as
    CLI-style text (``"a^[1,2]^[]"``), which is converted using the ABI.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        connection_factory: Factory | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        config = (config or ClientConfig()).with_defaults()
        self._config = config
        self._log = config.logger or logger
        self._sleep = sleep

        factory = connection_factory or random_endpoint_factory(
            config.endpoints, request_timeout=config.request_timeout
        )
        self._pool = ConnectionPool(
            factory,
            init=config.pool_init,
            capacity=config.pool_size,
            idle_timeout=config.idle_timeout,
        )
        self._dispatcher = ResilientDispatcher(
            self._pool,
            endpoint_count=len(config.endpoints),
            policy=config.retry,
            call_timeout=config.call_timeout,
            log=self._log,
            sleep=sleep,
        )
        self._sender = TransactionSender(self, default_private_key=config.private_key)
        self._chain_id: int | None = None
        self._chain_id_lock = threading.Lock()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @property
    def dispatcher(self) -> ResilientDispatcher:
        return self._dispatcher

    @property
    def address(self) -> Address | None:
        """Address of the configured signing key, if any."""

        if not self._config.private_key:
            return None
        return self._sender.signer().address

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        self._pool.close()

    def __enter__(self) -> EthClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Raw JSON-RPC
    # ------------------------------------------------------------------
    def call(self, method: str, *params: Any) -> Any:
        """Issue ``method`` and return the raw ``result`` member."""

        return self._dispatcher.execute(lambda conn: conn.request(method, list(params)), label=method)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def gas_price(self) -> Wei:
        return parse_quantity(self.call("eth_gasPrice"))

    def estimate_gas(self, tx: Mapping[str, Any]) -> int:
        return parse_quantity(self.call("eth_estimateGas", _call_object(tx)))

    def chain_id(self) -> int:
        """Chain id of the endpoints; fetched once and cached."""

        with self._chain_id_lock:
            if self._chain_id is None:
                self._chain_id = parse_quantity(self.call("eth_chainId"))
            return self._chain_id

    def get_balance(self, address: Address, block: BlockId = LATEST_BLOCK) -> Wei:
        return parse_quantity(self.call("eth_getBalance", address, _block_id(block)))

    def get_transaction_count(self, address: Address, block: BlockId = "pending") -> int:
        return parse_quantity(self.call("eth_getTransactionCount", address, _block_id(block)))

    def get_code(self, address: Address, block: BlockId = LATEST_BLOCK) -> bytes:
        return hex_to_bytes(self.call("eth_getCode", address, _block_id(block)) or EMPTY_BYTECODE)

    def get_block_by_number(self, block: BlockId = LATEST_BLOCK, full_transactions: bool = False) -> Any:
        return self.call("eth_getBlockByNumber", _block_id(block), full_transactions)

    def get_block_transaction_count_by_hash(self, block_hash: str) -> int:
        return parse_quantity(self.call("eth_getBlockTransactionCountByHash", block_hash))

    def get_block_transaction_count_by_number(self, block: BlockId = LATEST_BLOCK) -> int:
        return parse_quantity(self.call("eth_getBlockTransactionCountByNumber", _block_id(block)))

    def get_transaction_by_hash(self, tx_hash: TxHash) -> Any:
        return self.call("eth_getTransactionByHash", tx_hash)

    def get_transaction_by_block_hash_and_index(self, block_hash: str, index: int) -> Any:
        return self.call("eth_getTransactionByBlockHashAndIndex", block_hash, to_quantity(index))

    def get_transaction_by_block_number_and_index(self, block: BlockId, index: int) -> Any:
        return self.call("eth_getTransactionByBlockNumberAndIndex", _block_id(block), to_quantity(index))

    def get_transaction_receipt(self, tx_hash: TxHash, *, wait: bool = True) -> Any:
        """Fetch a receipt, polling with Fibonacci backoff while it is pending.

        With ``wait=False`` a single lookup is made and ``None`` is returned
        for an unknown or pending transaction.
        """

        def fetch() -> Any:
            return self.call("eth_getTransactionReceipt", tx_hash)

        if not wait:
            return fetch()
        return poll_receipt(
            fetch,
            tx_hash,
            attempts=self._config.receipt_attempts,
            backoff=self._config.receipt_backoff,
            sleep=self._sleep,
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def send_raw_transaction(self, raw: bytes | str) -> TxHash:
        payload = raw if isinstance(raw, str) else HexBytes(raw).to_0x_hex()
        return self.call("eth_sendRawTransaction", payload)

    def send_raw_transaction_with_receipt(self, raw: bytes | str) -> Any:
        tx_hash = self.send_raw_transaction(raw)
        receipt = self.get_transaction_receipt(tx_hash)
        return ensure_success(receipt, tx_hash)

    def send_transaction(self, tx: Mapping[str, Any], options: TxOptions | None = None) -> TxHash:
        """Sign ``tx`` with the configured (or per-call) key and submit it."""

        tx_hash, _ = self._sender.send(
            tx, options, default_gas_limit=_default_gas_limit(tx), wait=False, action="transaction"
        )
        return tx_hash

    def send_transaction_with_receipt(self, tx: Mapping[str, Any], options: TxOptions | None = None) -> Any:
        _, receipt = self._sender.send(
            tx, options, default_gas_limit=_default_gas_limit(tx), wait=True, action="transaction"
        )
        return receipt

    def transfer(self, to: Address, value: Wei, options: TxOptions | None = None) -> Any:
        """Send ``value`` wei to ``to`` and wait for the receipt."""

        return self.send_transaction_with_receipt({"to": to_checksum_address(to), "value": value}, options)

    def nonce_tracker(self, address: Address | None = None) -> NonceTracker:
        """Local nonce counter for concurrent sends from one account.

        See :class:`NonceTracker` for the single-process restriction.
        """

        account = address or self.address
        if account is None:
            raise ValidationError("An address or private key is required", field="address")
        return NonceTracker(lambda: self.get_transaction_count(account))

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------
    def compile(self, *source_files: str | Path, solc_version: str | None = None, **solc_options: Any) -> CompileResult:
        return compile_files(*source_files, solc_version=solc_version, **solc_options)

    def deploy(
        self,
        result: CompileResult,
        args: Args = None,
        options: TxOptions | None = None,
    ) -> list[Address]:
        """Deploy every contract of a compile result that has bytecode.

        Deployment stops at the first failure; contracts deployed before it
        stay on chain and their addresses are not returned.
        """

        if result.is_empty():
            raise ValidationError("empty contract", field="result")

        addresses = []
        for name, abi, bytecode in result.entries():
            if not bytecode or bytecode == EMPTY_BYTECODE:
                self._log.debug("Skipping %s: no bytecode", name)
                continue
            address, _ = self.deploy_by_code(abi, bytecode, args, options)
            self._log.info("Deployed %s at %s", name, address)
            addresses.append(address)
        return addresses

    def deploy_by_code(
        self,
        abi: AbiLike,
        bytecode: str | bytes,
        args: Args = None,
        options: TxOptions | None = None,
    ) -> tuple[Address, int]:
        """Deploy ``bytecode`` and return ``(contract address, block number)``."""

        contract = _as_contract(abi)
        code = hex_to_bytes(strip_hex_prefix(bytecode.strip()) if isinstance(bytecode, str) else bytecode)
        if not code:
            raise ValidationError("bytecode is empty", field="bytecode")

        data = code + contract.encode_constructor(self._arguments(contract, CONSTRUCTOR, args))
        tx_hash, receipt = self._sender.send(
            {"data": data},
            options,
            default_gas_limit=DEFAULT_DEPLOY_GAS_LIMIT,
            wait=True,
            action="deploy contract",
        )
        address = receipt.get("contractAddress") if receipt is not None else None
        if not address:
            raise TransactionError("receipt carries no contract address", tx_hash=tx_hash)
        return to_checksum_address(address), parse_quantity(receipt.get("blockNumber", 0))

    def eth_call(
        self,
        abi: AbiLike,
        address: Address,
        method: str,
        args: Args = None,
        block: BlockId = LATEST_BLOCK,
    ) -> list[Any] | None:
        """Run a read-only call and decode its outputs.

        Returns ``None`` for methods that declare no outputs. Empty return
        data raises :class:`NoContractCodeError` when ``address`` has no code,
        :class:`EmptyOutputError` otherwise.
        """

        contract = _as_contract(abi)
        data = contract.encode_call(method, self._arguments(contract, method, args))
        call_object: dict[str, Any] = {"to": to_checksum_address(address), "data": HexBytes(data).to_0x_hex()}
        sender = self.address
        if sender is not None:
            call_object["from"] = sender

        output = hex_to_bytes(self.call("eth_call", call_object, _block_id(block)) or EMPTY_BYTECODE)
        if not contract.output_types(method):
            return None
        if not output:
            if not self.get_code(address):
                raise NoContractCodeError(address)
            raise EmptyOutputError(address)
        return contract.decode_output(method, output)

    def invoke(
        self,
        abi: AbiLike,
        address: Address,
        method: str,
        args: Args = None,
        options: TxOptions | None = None,
        *,
        wait: bool = True,
    ) -> list[Any] | None:
        """Call ``method``: constant methods via ``eth_call``, others as a transaction.

        Transactions return ``[tx_hash]``; with ``wait`` the receipt must
        report success first.
        """

        contract = _as_contract(abi)
        if contract.is_constant(method):
            return self.eth_call(contract, address, method, args)

        data = contract.encode_call(method, self._arguments(contract, method, args))
        tx_hash, _ = self._sender.send(
            {"to": to_checksum_address(address), "data": data},
            options,
            default_gas_limit=DEFAULT_INVOKE_GAS_LIMIT,
            wait=wait,
            action=method,
        )
        return [tx_hash]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _arguments(contract: ContractAbi, method: str, args: Args) -> list[Any]:
        if args is None:
            return []
        if isinstance(args, str):
            return convert_args(contract, method, parse_cli_args(args)) if args else []
        return list(args)


def _as_contract(abi: AbiLike) -> ContractAbi:
    return abi if isinstance(abi, ContractAbi) else ContractAbi(abi)


def _block_id(block: BlockId) -> str:
    if isinstance(block, bool):
        raise ValidationError("Block must be a number or tag", field="block", value=block)
    if isinstance(block, int):
        return to_quantity(block)
    return block


def _default_gas_limit(tx: Mapping[str, Any]) -> int:
    return DEFAULT_INVOKE_GAS_LIMIT if tx.get("data") else DEFAULT_TRANSFER_GAS_LIMIT


def _call_object(tx: Mapping[str, Any]) -> dict[str, Any]:
    """Translate a transaction dict into JSON-RPC call object encoding."""

    call: dict[str, Any] = {}
    for key, value in tx.items():
        if value is None:
            continue
        if isinstance(value, bool):
            call[key] = value
        elif isinstance(value, int):
            call[key] = to_quantity(value)
        elif isinstance(value, bytes | bytearray):
            call[key] = HexBytes(value).to_0x_hex()
        else:
            call[key] = value
    return call
