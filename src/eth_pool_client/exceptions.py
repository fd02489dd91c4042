"""Exception hierarchy for the pooled Ethereum JSON-RPC client."""

from typing import Any


class EthClientError(Exception):
    """Base exception for all client errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class PoolError(EthClientError):
    """Raised when the connection pool cannot hand out or take back a slot."""

    pass


class PoolClosedError(PoolError):
    """Raised when acquiring from or releasing into a closed pool."""

    def __init__(self, message: str = "pool is closed"):
        super().__init__(message)


class PoolTimeoutError(PoolError):
    """Raised when no pool slot became free before the deadline."""

    def __init__(self, message: str = "get connection from pool timed out", timeout: float | None = None):
        super().__init__(message, {"timeout": timeout})
        self.timeout = timeout


class PoolFullError(PoolError):
    """Raised when a slot is released into a pool that is already full."""

    def __init__(self, message: str = "put a connection into a full pool"):
        super().__init__(message)


class NetworkError(EthClientError):
    """Raised when an endpoint is unreachable or the transport fails."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class RpcError(EthClientError):
    """Raised when a node answers with a JSON-RPC error object."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        endpoint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.code = code
        self.endpoint = endpoint


class ValidationError(EthClientError):
    """Raised when caller input is invalid."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class AbiError(ValidationError):
    """Raised for ABI lookup, encoding and decoding problems."""

    pass


class AbiDefinitionError(AbiError):
    """Raised when an ABI document is malformed."""

    pass


class MethodNotFoundError(AbiError):
    """Raised when a method is absent from the contract ABI."""

    def __init__(self, method: str):
        super().__init__(f"method {method} is not existed", field="method", value=method)
        self.method = method


class ArgumentCountError(AbiError):
    """Raised when fewer arguments are supplied than the method declares."""

    def __init__(self, method: str, expected: int, received: int):
        super().__init__(
            f"the num of inputs is {expected}, received {received}",
            field="args",
            value=received,
            details={"method": method},
        )
        self.method = method
        self.expected = expected
        self.received = received


class ConversionError(AbiError):
    """Raised when a textual argument cannot be converted to its ABI type."""

    def __init__(self, value: Any, abi_type: str, reason: str | None = None):
        message = f"convert {value!r} to {abi_type} failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, field=abi_type, value=value)
        self.abi_type = abi_type
        self.reason = reason


class ContractError(EthClientError):
    """Raised when a contract call returns nothing usable."""

    def __init__(self, message: str, address: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.address = address


class EmptyOutputError(ContractError):
    """Raised when a constant call returned no data from a deployed contract."""

    def __init__(self, address: str | None = None):
        super().__init__("output is empty", address=address)


class NoContractCodeError(ContractError):
    """Raised when the call target has no code deployed."""

    def __init__(self, address: str | None = None):
        super().__init__("no code at your contract address", address=address)


class TransactionError(EthClientError):
    """Raised when a transaction cannot be submitted or confirmed."""

    def __init__(self, message: str, tx_hash: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.tx_hash = tx_hash


class TransactionFailedError(TransactionError):
    """Raised when the chain mined a transaction with a failed status."""

    def __init__(self, message: str, tx_hash: str | None = None, receipt: Any | None = None):
        super().__init__(message, tx_hash=tx_hash)
        self.receipt = receipt


class ReceiptTimeoutError(TransactionError):
    """Raised when a receipt did not become available in time."""

    pass


class CompileError(EthClientError):
    """Raised when the Solidity compiler fails."""

    pass
