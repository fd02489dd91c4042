"""Tests for receipt polling, nonce tracking and signing helpers."""

from __future__ import annotations

import threading

import pytest
from web3.exceptions import TransactionNotFound

from eth_pool_client.exceptions import ReceiptTimeoutError, TransactionFailedError, ValidationError
from eth_pool_client.rpc.transactions import (
    NonceTracker,
    ensure_success,
    fibonacci_delays,
    load_signer,
    poll_receipt,
)

TX_HASH = "0x" + "cd" * 32


def test_fibonacci_delays():
    assert list(fibonacci_delays(0.5, 6)) == [0.5, 0.5, 1.0, 1.5, 2.5, 4.0]
    assert list(fibonacci_delays(1, 0)) == []


class TestPollReceipt:
    """Receipt polling with backoff."""

    def test_returns_first_available_receipt(self):
        results = iter([None, None, {"status": "0x1"}])
        sleeps: list[float] = []

        receipt = poll_receipt(lambda: next(results), TX_HASH, attempts=5, backoff=1, sleep=sleeps.append)

        assert receipt == {"status": "0x1"}
        assert sleeps == [1, 1]

    def test_not_found_counts_as_pending(self):
        calls = []

        def fetch():
            calls.append(1)
            if len(calls) < 2:
                raise TransactionNotFound("not yet")
            return {"status": 1}

        assert poll_receipt(fetch, TX_HASH, attempts=3, backoff=0) == {"status": 1}

    def test_timeout_after_attempts(self):
        sleeps: list[float] = []
        with pytest.raises(ReceiptTimeoutError) as excinfo:
            poll_receipt(lambda: None, TX_HASH, attempts=4, backoff=2, sleep=sleeps.append)

        assert excinfo.value.tx_hash == TX_HASH
        assert sleeps == [2, 2, 4]

    def test_other_errors_propagate(self):
        def fetch():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            poll_receipt(fetch, TX_HASH, attempts=3, backoff=0)


class TestEnsureSuccess:
    def test_success_passes_through(self):
        receipt = {"status": "0x1"}
        assert ensure_success(receipt, TX_HASH) is receipt

    def test_failure_carries_hash_and_action(self):
        with pytest.raises(TransactionFailedError) as excinfo:
            ensure_success({"status": 0, "blockHash": b"\x01"}, TX_HASH, action="transfer")

        assert str(excinfo.value).startswith(f"transfer failed, tx hash is: {TX_HASH}")
        assert excinfo.value.receipt == {"status": 0, "blockHash": "0x01"}


class TestNonceTracker:
    """Local nonce counting."""

    def test_seeds_once_and_increments(self):
        fetches = []

        def fetch():
            fetches.append(1)
            return 10

        tracker = NonceTracker(fetch)
        assert [tracker.next() for _ in range(3)] == [10, 11, 12]
        assert len(fetches) == 1

    def test_concurrent_callers_get_distinct_nonces(self):
        tracker = NonceTracker(lambda: 0)
        seen: list[int] = []
        lock = threading.Lock()

        def worker():
            for _ in range(50):
                nonce = tracker.next()
                with lock:
                    seen.append(nonce)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(seen) == list(range(200))

    def test_reset_refetches(self):
        values = iter([5, 9])
        tracker = NonceTracker(lambda: next(values))
        assert tracker.next() == 5
        tracker.reset()
        assert tracker.next() == 9


def test_load_signer_hides_key():
    with pytest.raises(ValidationError) as excinfo:
        load_signer("0xnot-a-key")
    assert "not-a-key" not in str(excinfo.value)
    assert "not-a-key" not in str(excinfo.value.details)
