"""Connection pooling, failover dispatch and the JSON-RPC client."""

from .client import EthClient
from .config import ClientConfig, RetryPolicy, load_config
from .connections import EndpointConnection, random_endpoint_factory
from .dispatcher import ErrorKind, ResilientDispatcher, classify_error
from .pool import ConnectionPool, PooledConnection
from .transactions import NonceTracker

__all__ = [
    "ClientConfig",
    "ConnectionPool",
    "EndpointConnection",
    "ErrorKind",
    "EthClient",
    "NonceTracker",
    "PooledConnection",
    "ResilientDispatcher",
    "RetryPolicy",
    "classify_error",
    "load_config",
    "random_endpoint_factory",
]
