"""Tests for retry and failover dispatch."""

from __future__ import annotations

import itertools
from types import SimpleNamespace

import pytest
import requests

from eth_pool_client.exceptions import NetworkError, PoolTimeoutError, RpcError, ValidationError
from eth_pool_client.rpc.config import RetryPolicy
from eth_pool_client.rpc.dispatcher import ErrorKind, ResilientDispatcher, classify_error
from eth_pool_client.rpc.pool import ConnectionPool

NO_BACKOFF = RetryPolicy(outer_backoff=0, inner_backoff=0)


class FakeConnection:
    def __init__(self, endpoint: str) -> None:
        self.endpoint = endpoint
        self.closed = False

    def close(self) -> None:
        self.closed = True


class RoundRobinFactory:
    """Hands out connections to each endpoint in turn."""

    def __init__(self, endpoints: list[str]) -> None:
        self._cycle = itertools.cycle(endpoints)
        self.created: list[FakeConnection] = []

    def __call__(self) -> FakeConnection:
        conn = FakeConnection(next(self._cycle))
        self.created.append(conn)
        return conn


def _dispatcher(endpoints, policy=NO_BACKOFF, sleeps=None, **kwargs):
    factory = RoundRobinFactory(endpoints)
    pool = ConnectionPool(factory, init=0, capacity=1)
    dispatcher = ResilientDispatcher(
        pool,
        endpoint_count=len(endpoints),
        policy=policy,
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
        **kwargs,
    )
    return dispatcher, factory


def test_rotates_to_next_endpoint_on_connection_refused():
    dispatcher, factory = _dispatcher(["http://a", "http://b"])
    seen = []

    def operation(conn):
        seen.append(conn.endpoint)
        if conn.endpoint == "http://a":
            raise requests.ConnectionError("dial tcp 127.0.0.1:8881: connection refused")
        return "ok"

    assert dispatcher.execute(operation, label="eth_blockNumber") == "ok"
    assert seen == ["http://a", "http://b"]
    assert factory.created[0].closed
    assert not factory.created[1].closed


def test_outer_backoff_between_attempts():
    sleeps: list[float] = []
    policy = RetryPolicy(outer_backoff=0.5, inner_backoff=0)
    dispatcher, _ = _dispatcher(["http://a", "http://b"], policy=policy, sleeps=sleeps)

    def operation(conn):
        if conn.endpoint == "http://a":
            raise ConnectionRefusedError("Connection refused")
        return 1

    assert dispatcher.execute(operation) == 1
    assert sleeps == [0.5]


def test_application_error_returned_without_retry():
    dispatcher, factory = _dispatcher(["http://a", "http://b"])
    error = RpcError("eth_call failed: execution reverted", code=3)
    calls = []

    def operation(conn):
        calls.append(conn.endpoint)
        raise error

    with pytest.raises(RpcError) as excinfo:
        dispatcher.execute(operation, label="eth_call")

    assert excinfo.value is error
    assert calls == ["http://a"]
    assert not factory.created[0].closed
    assert dispatcher.pool.available() == 1


def test_connectivity_exhaustion_raises_network_error():
    dispatcher, factory = _dispatcher(["http://a", "http://b"])
    calls = []

    def operation(conn):
        calls.append(conn.endpoint)
        raise requests.ConnectionError("connection refused")

    with pytest.raises(NetworkError) as excinfo:
        dispatcher.execute(operation, label="eth_gasPrice")

    assert dispatcher.max_attempts == 4
    assert len(calls) == 4
    assert excinfo.value.endpoint == "http://b"
    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)
    assert all(conn.closed for conn in factory.created)


@pytest.mark.parametrize(
    "error",
    [
        requests.ConnectionError("Failed to resolve 'node1' (Name or service not known)"),
        requests.HTTPError("502 Server Error: Bad Gateway", response=SimpleNamespace(status_code=502)),
    ],
)
def test_other_transport_errors_surface_as_network_error(error):
    dispatcher, factory = _dispatcher(["http://a", "http://b"])
    calls = []

    def operation(conn):
        calls.append(conn.endpoint)
        raise error

    with pytest.raises(NetworkError) as excinfo:
        dispatcher.execute(operation, label="eth_chainId")

    assert calls == ["http://a"]
    assert excinfo.value.endpoint == "http://a"
    assert excinfo.value.__cause__ is error
    assert not factory.created[0].closed


def test_http_error_keeps_status_code():
    dispatcher, _ = _dispatcher(["http://a"])
    error = requests.HTTPError("503 Server Error", response=SimpleNamespace(status_code=503))

    def operation(conn):
        raise error

    with pytest.raises(NetworkError) as excinfo:
        dispatcher.execute(operation)
    assert excinfo.value.status_code == 503


def test_transient_error_retried_on_same_connection():
    dispatcher, factory = _dispatcher(["http://a", "http://b"])
    attempts = []

    def operation(conn):
        attempts.append(conn)
        if len(attempts) == 1:
            raise requests.Timeout("read timed out")
        return 42

    assert dispatcher.execute(operation) == 42
    assert attempts[0] is attempts[1]
    assert len(factory.created) == 1


def test_transient_exhaustion_rotates_connection():
    policy = RetryPolicy(attempts_per_endpoint=1, inner_attempts=2, outer_backoff=0, inner_backoff=0)
    dispatcher, factory = _dispatcher(["http://a", "http://b"], policy=policy)
    calls = []

    def operation(conn):
        calls.append(conn.endpoint)
        raise TimeoutError("timed out")

    with pytest.raises(NetworkError):
        dispatcher.execute(operation)

    assert calls == ["http://a", "http://a", "http://b", "http://b"]
    assert len(factory.created) == 2


def test_pool_timeout_counts_as_attempt():
    policy = RetryPolicy(attempts_per_endpoint=2, outer_backoff=0)
    dispatcher, _ = _dispatcher(["http://a"], policy=policy, call_timeout=0.01)
    held = dispatcher.pool.acquire()

    with pytest.raises(PoolTimeoutError):
        dispatcher.execute(lambda conn: "never")

    dispatcher.pool.release(held)
    assert dispatcher.execute(lambda conn: "now") == "now"


class TestClassifyError:
    """Error classification."""

    def test_connection_refused_anywhere_in_chain(self):
        try:
            try:
                raise ConnectionRefusedError("[Errno 111] Connection refused")
            except ConnectionRefusedError as inner:
                raise RuntimeError("request failed") from inner
        except RuntimeError as exc:
            assert classify_error(exc, NO_BACKOFF) is ErrorKind.CONNECTIVITY

    def test_timeouts_are_transient(self):
        assert classify_error(TimeoutError(), NO_BACKOFF) is ErrorKind.TRANSIENT
        assert classify_error(requests.ReadTimeout("slow"), NO_BACKOFF) is ErrorKind.TRANSIENT

    def test_own_errors_are_not_sniffed_for_timeouts(self):
        exc = ValidationError("timeout must be positive", field="timeout")
        assert classify_error(exc, NO_BACKOFF) is ErrorKind.APPLICATION

    def test_other_errors_are_application_errors(self):
        assert classify_error(ValueError("bad"), NO_BACKOFF) is ErrorKind.APPLICATION
