"""Pooled Ethereum JSON-RPC client.

Connections to a set of interchangeable JSON-RPC endpoints are pooled and
every call is retried across endpoints when one becomes unreachable. Contract
ABIs are turned into named struct descriptors, and CLI-style text arguments
are converted into typed ABI values.
"""

from .abi import (
    ContractAbi,
    ContractLayout,
    StructDescriptor,
    StructInstance,
    convert,
    convert_args,
    load_abi,
    parse_cli_args,
)
from .accounts import keystore_to_private_key, load_account, new_account, private_key_to_address
from .exceptions import (
    AbiError,
    ArgumentCountError,
    CompileError,
    ContractError,
    ConversionError,
    EmptyOutputError,
    EthClientError,
    MethodNotFoundError,
    NetworkError,
    NoContractCodeError,
    PoolClosedError,
    PoolError,
    PoolFullError,
    PoolTimeoutError,
    ReceiptTimeoutError,
    RpcError,
    TransactionError,
    TransactionFailedError,
    ValidationError,
)
from .rpc import (
    ClientConfig,
    ConnectionPool,
    EthClient,
    NonceTracker,
    ResilientDispatcher,
    RetryPolicy,
    load_config,
)
from .types import Address, CompileResult, TxHash, TxOptions, Wei

__version__ = "0.1.0"

__all__ = [
    # Client and plumbing
    "EthClient",
    "ClientConfig",
    "RetryPolicy",
    "load_config",
    "ConnectionPool",
    "ResilientDispatcher",
    "NonceTracker",
    # ABI
    "ContractAbi",
    "ContractLayout",
    "StructDescriptor",
    "StructInstance",
    "load_abi",
    "convert",
    "convert_args",
    "parse_cli_args",
    # Accounts
    "new_account",
    "keystore_to_private_key",
    "load_account",
    "private_key_to_address",
    # Types
    "Address",
    "CompileResult",
    "TxHash",
    "TxOptions",
    "Wei",
    # Exceptions
    "EthClientError",
    "PoolError",
    "PoolClosedError",
    "PoolTimeoutError",
    "PoolFullError",
    "NetworkError",
    "RpcError",
    "ValidationError",
    "AbiError",
    "MethodNotFoundError",
    "ArgumentCountError",
    "ConversionError",
    "ContractError",
    "EmptyOutputError",
    "NoContractCodeError",
    "TransactionError",
    "TransactionFailedError",
    "ReceiptTimeoutError",
    "CompileError",
]
