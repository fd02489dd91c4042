"""Bounded pool of lazily created, reusable endpoint connections.

The pool hands out *slots*. A slot always exists for every unit of capacity,
but it only carries a live connection once one has been created for it, so
the pool grows lazily up to its cap without paying for connections it never
uses. The slot store is a bounded :class:`queue.Queue`; the number of slots in
circulation (idle in the queue plus borrowed) is always exactly ``capacity``.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from typing import Any, Protocol

from ..constants import DEFAULT_IDLE_TIMEOUT, DEFAULT_POOL_CAPACITY
from ..exceptions import PoolClosedError, PoolFullError, PoolTimeoutError

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Anything the pool can hold: it must be closable."""

    def close(self) -> None: ...


Factory = Callable[[], Connection]


class PooledConnection:
    """One pool slot: an optional live connection and its last-used time."""

    __slots__ = ("connection", "last_used")

    def __init__(self, connection: Any | None = None, last_used: float | None = None) -> None:
        self.connection = connection
        self.last_used = time.monotonic() if last_used is None else last_used

    @property
    def endpoint(self) -> str | None:
        return getattr(self.connection, "endpoint", None)

    @property
    def is_live(self) -> bool:
        return self.connection is not None

    def idle_for(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.last_used

    def close(self) -> None:
        """Close the live connection, leaving an empty placeholder behind."""

        connection, self.connection = self.connection, None
        if connection is None:
            return
        try:
            connection.close()
        except Exception as exc:  # pragma: no cover - close failures are not actionable
            logger.warning("Failed to close connection to %s: %s", getattr(connection, "endpoint", "?"), exc)

    def __repr__(self) -> str:
        return f"PooledConnection(endpoint={self.endpoint!r}, live={self.is_live})"


class ConnectionPool:
    """Thread-safe connection pool with idle recycling."""

    def __init__(
        self,
        factory: Factory,
        init: int = 1,
        capacity: int = DEFAULT_POOL_CAPACITY,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
    ) -> None:
        if capacity <= 0:
            capacity = DEFAULT_POOL_CAPACITY
        init = min(max(init, 0), capacity)
        if idle_timeout <= 0:
            idle_timeout = DEFAULT_IDLE_TIMEOUT

        self._factory = factory
        self._capacity = capacity
        self._idle_timeout = idle_timeout
        self._lock = threading.Lock()
        self._draining: queue.Queue[PooledConnection] | None = None

        slots: queue.Queue[PooledConnection] = queue.Queue(maxsize=capacity)
        opened: list[PooledConnection] = []
        try:
            for _ in range(init):
                opened.append(PooledConnection(factory()))
        except Exception:
            for slot in opened:
                slot.close()
            raise

        for slot in opened:
            slots.put_nowait(slot)
        for _ in range(capacity - init):
            slots.put_nowait(PooledConnection())

        self._slots: queue.Queue[PooledConnection] | None = slots
        logger.debug("Created connection pool capacity=%s init=%s idle_timeout=%s", capacity, init, idle_timeout)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def idle_timeout(self) -> float:
        return self._idle_timeout

    @property
    def closed(self) -> bool:
        return self._get_slots() is None

    def available(self) -> int:
        """Number of slots currently waiting in the pool (live or empty)."""

        slots = self._get_slots()
        return 0 if slots is None else slots.qsize()

    # ------------------------------------------------------------------
    # Borrowing
    # ------------------------------------------------------------------
    def acquire(self, timeout: float | None = None) -> PooledConnection:
        """Borrow a slot holding a live connection.

        Blocks until a slot is free. ``timeout`` of ``None`` or ``0`` waits
        indefinitely; otherwise :class:`PoolTimeoutError` is raised once it
        elapses.
        """

        slots = self._get_slots()
        if slots is None:
            raise PoolClosedError()

        try:
            if timeout:
                slot = slots.get(timeout=timeout)
            else:
                slot = slots.get()
        except queue.Empty:
            raise PoolTimeoutError(timeout=timeout) from None

        # The pool may have been closed while we were waiting; the closer
        # is counting slots, so hand this one straight back to it.
        if self._get_slots() is None:
            slots.put_nowait(slot)
            raise PoolClosedError()

        if slot.is_live and slot.idle_for() > self._idle_timeout:
            logger.debug("Recycling idle connection to %s", slot.endpoint)
            slot.close()

        if not slot.is_live:
            try:
                slot.connection = self._factory()
            except Exception:
                slots.put_nowait(PooledConnection())
                raise
        return slot

    def release(self, slot: PooledConnection) -> None:
        """Return a borrowed slot to the pool."""

        with self._lock:
            slots = self._slots
            draining = self._draining

        if slots is None:
            if draining is not None:
                # Close is waiting for this slot; retire it so close completes.
                slot.close()
                try:
                    draining.put_nowait(slot)
                except queue.Full:
                    pass
            raise PoolClosedError()

        slot.last_used = time.monotonic()
        try:
            slots.put_nowait(slot)
        except queue.Full:
            raise PoolFullError() from None

    def discard(self, slot: PooledConnection) -> None:
        """Close a borrowed slot's connection and return the empty slot."""

        slot.close()
        self.release(slot)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Close every connection, waiting for borrowed slots to come back.

        Idempotent: only the first caller drains the pool, later or
        concurrent callers return immediately.
        """

        with self._lock:
            slots = self._slots
            if slots is None:
                return
            self._slots = None
            self._draining = slots

        closed = 0
        for _ in range(self._capacity):
            slot = slots.get()
            if slot.is_live:
                slot.close()
                closed += 1

        with self._lock:
            self._draining = None
        # Wake callers that passed the closed check before close() started;
        # each takes an empty slot, sees the pool closed and puts it back.
        for _ in range(self._capacity):
            slots.put_nowait(PooledConnection())
        logger.info("Connection pool closed (%s live connections closed)", closed)

    def __enter__(self) -> ConnectionPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get_slots(self) -> queue.Queue[PooledConnection] | None:
        with self._lock:
            return self._slots
