"""Retry and failover around pooled connections.

Two nested loops guard every remote operation:

* the outer loop covers acquire + execute + release and may land on a
  different connection (and therefore endpoint) on each attempt;
* the inner loop re-runs the operation on the *same* connection, but only
  for transient failures such as timeouts.

A connectivity failure ("connection refused") discards the connection and
moves on to the next outer attempt. Any other error is an application error:
it ends the attempt immediately, the connection goes back to the pool
untouched, and the error is raised to the caller. Other transport failures
(DNS errors, resets, HTTP 5xx) end the attempt the same way but surface as
:class:`NetworkError`.
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import requests

from ..exceptions import EthClientError, NetworkError, PoolError
from .config import RetryPolicy
from .pool import ConnectionPool, PooledConnection

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(enum.Enum):
    CONNECTIVITY = "connectivity"
    TRANSIENT = "transient"
    APPLICATION = "application"


def exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` followed by its causes/contexts, without cycles."""

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_error(exc: BaseException, policy: RetryPolicy) -> ErrorKind:
    """Decide how the dispatcher reacts to ``exc``."""

    chain = list(exception_chain(exc))
    messages = [str(item).lower() for item in chain]

    for marker in policy.connectivity_markers:
        if any(marker in message for message in messages):
            return ErrorKind.CONNECTIVITY

    if any(isinstance(item, requests.Timeout | TimeoutError) for item in chain):
        return ErrorKind.TRANSIENT
    # Our own errors carry their own meaning; only raw transport text is sniffed.
    if not isinstance(exc, EthClientError) or isinstance(exc, NetworkError):
        for marker in policy.transient_markers:
            if any(marker in message for message in messages):
                return ErrorKind.TRANSIENT

    return ErrorKind.APPLICATION


def is_transport_error(exc: BaseException) -> bool:
    """True for raw HTTP or socket failures that are neither refused nor timed out."""

    if isinstance(exc, EthClientError):
        return False
    return any(isinstance(item, requests.RequestException | OSError) for item in exception_chain(exc))


@dataclass
class _Outcome(Generic[T]):
    value: T | None = None
    error: BaseException | None = None
    rotate: bool = False


class ResilientDispatcher:
    """Run operations against pooled connections with layered retries."""

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        endpoint_count: int,
        policy: RetryPolicy | None = None,
        call_timeout: float | None = None,
        log: logging.Logger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._pool = pool
        self._endpoint_count = max(1, endpoint_count)
        self._policy = policy or RetryPolicy()
        self._call_timeout = call_timeout
        self._log = log or logger
        self._sleep = sleep

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def max_attempts(self) -> int:
        return self._policy.outer_attempts(self._endpoint_count)

    def execute(self, operation: Callable[[Any], T], *, label: str = "operation") -> T:
        """Run ``operation(connection)`` and return its result.

        Raises the operation's own error for application failures, or the last
        connectivity/acquisition error once every outer attempt is used up.
        """

        attempts = self.max_attempts
        last_error: BaseException | None = None

        for attempt in range(1, attempts + 1):
            try:
                slot = self._pool.acquire(timeout=self._call_timeout)
            except PoolError as exc:
                self._log.warning(
                    "%s: acquiring a connection failed (attempt %s/%s): %s", label, attempt, attempts, exc
                )
                last_error = exc
                self._backoff(attempt, attempts)
                continue

            outcome = self._run_on_connection(slot, operation, label)

            if outcome.rotate:
                self._log.warning(
                    "%s: dropping connection to %s (attempt %s/%s): %s",
                    label,
                    slot.endpoint,
                    attempt,
                    attempts,
                    outcome.error,
                )
                self._give_back(slot, discard=True)
                last_error = outcome.error
                self._backoff(attempt, attempts)
                continue

            self._give_back(slot, discard=False)
            if outcome.error is not None:
                raise outcome.error
            return outcome.value  # type: ignore[return-value]

        assert last_error is not None
        self._log.error("%s: giving up after %s attempts: %s", label, attempts, last_error)
        raise last_error

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _run_on_connection(
        self, slot: PooledConnection, operation: Callable[[Any], T], label: str
    ) -> _Outcome[T]:
        policy = self._policy
        inner_attempts = max(1, policy.inner_attempts)
        last_transient: BaseException | None = None

        for inner in range(1, inner_attempts + 1):
            try:
                return _Outcome(value=operation(slot.connection))
            except Exception as exc:
                kind = classify_error(exc, policy)
                if kind is ErrorKind.APPLICATION:
                    self._log.debug("%s: application error on %s: %s", label, slot.endpoint, exc)
                    if is_transport_error(exc):
                        return _Outcome(error=self._wrap_transport_error(exc, label, slot.endpoint))
                    return _Outcome(error=exc)

                wrapped = self._wrap_transport_error(exc, label, slot.endpoint)
                if kind is ErrorKind.CONNECTIVITY:
                    return _Outcome(error=wrapped, rotate=True)

                last_transient = wrapped
                self._log.debug(
                    "%s: transient error on %s (try %s/%s): %s", label, slot.endpoint, inner, inner_attempts, exc
                )
                if inner < inner_attempts and policy.inner_backoff > 0:
                    self._sleep(policy.inner_backoff)

        return _Outcome(error=last_transient, rotate=True)

    def _give_back(self, slot: PooledConnection, *, discard: bool) -> None:
        try:
            if discard:
                self._pool.discard(slot)
            else:
                self._pool.release(slot)
        except PoolError as exc:
            # The pool was closed mid-call; it has already retired the slot.
            self._log.debug("Could not return connection to pool: %s", exc)

    def _backoff(self, attempt: int, attempts: int) -> None:
        if attempt < attempts and self._policy.outer_backoff > 0:
            self._sleep(self._policy.outer_backoff)

    @staticmethod
    def _wrap_transport_error(exc: BaseException, label: str, endpoint: str | None) -> BaseException:
        if isinstance(exc, NetworkError):
            return exc
        response = getattr(exc, "response", None)
        wrapped = NetworkError(
            f"{label} failed against {endpoint}: {exc}",
            endpoint=endpoint,
            status_code=getattr(response, "status_code", None),
            details={"error": str(exc), "type": type(exc).__name__},
        )
        wrapped.__cause__ = exc
        return wrapped
