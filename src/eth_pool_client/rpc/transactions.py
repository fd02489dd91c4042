"""Transaction construction, signing and receipt handling."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3.exceptions import TransactionNotFound

from ..exceptions import ReceiptTimeoutError, TransactionFailedError, ValidationError
from ..types import TxOptions
from ..utils import parse_quantity, serialise_receipt

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from .client import EthClient

logger = logging.getLogger(__name__)


def fibonacci_delays(base: float, count: int) -> Iterator[float]:
    """Yield ``count`` delays growing as base * 1, 1, 2, 3, 5, ..."""

    previous, current = 0, 1
    for _ in range(count):
        yield base * current
        previous, current = current, previous + current


def poll_receipt(
    fetch: Callable[[], Any],
    tx_hash: str,
    *,
    attempts: int,
    backoff: float,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Poll ``fetch`` until the receipt exists.

    Only "not found yet" is retried: receipts appear some time after the
    transaction is accepted. Every other error propagates immediately.
    """

    attempts = max(1, attempts)
    delays = fibonacci_delays(backoff, attempts - 1)
    for attempt in range(1, attempts + 1):
        try:
            receipt = fetch()
        except TransactionNotFound:
            receipt = None
        if receipt is not None:
            return receipt
        if attempt < attempts:
            delay = next(delays)
            logger.debug("Receipt for %s not available yet (attempt %s/%s)", tx_hash, attempt, attempts)
            if delay > 0:
                sleep(delay)

    raise ReceiptTimeoutError(
        f"Receipt for {tx_hash} not available after {attempts} attempts", tx_hash=tx_hash
    )


def ensure_success(receipt: Any, tx_hash: str, *, action: str = "transaction") -> Any:
    """Raise :class:`TransactionFailedError` when the receipt status is not 1."""

    status = receipt.get("status") if isinstance(receipt, Mapping) else getattr(receipt, "status", None)
    if status is not None and parse_quantity(status) == 0:
        raise TransactionFailedError(
            f"{action} failed, tx hash is: {tx_hash}",
            tx_hash=tx_hash,
            receipt=serialise_receipt(receipt),
        )
    return receipt


def load_signer(private_key: str | bytes) -> LocalAccount:
    try:
        return Account.from_key(private_key)
    except Exception as exc:
        # The key itself must never reach the error text.
        raise ValidationError(
            "Failed to derive signer account from provided private key",
            field="private_key",
            details={"error": type(exc).__name__},
        ) from exc


class NonceTracker:
    """Hand out sequential nonces for one account within one process.

    The counter is seeded once from ``eth_getTransactionCount`` and then
    incremented locally, so concurrent threads can submit without waiting for
    each other. It is only correct while nothing else (another process, a
    wallet) sends from the same account; call :meth:`reset` after a failed
    submission or whenever the account may have been used elsewhere.
    """

    def __init__(self, fetch: Callable[[], int]) -> None:
        self._fetch = fetch
        self._lock = threading.Lock()
        self._next: int | None = None

    def next(self) -> int:
        with self._lock:
            if self._next is None:
                self._next = int(self._fetch())
            nonce = self._next
            self._next += 1
            return nonce

    def reset(self) -> None:
        with self._lock:
            self._next = None


class TransactionSender:
    """Fill in, sign and submit legacy transactions through an :class:`EthClient`."""

    def __init__(self, client: EthClient, *, default_private_key: str | None = None) -> None:
        self._client = client
        self._default_private_key = default_private_key

    def signer(self, options: TxOptions | None = None) -> LocalAccount:
        key = (options.private_key if options else None) or self._default_private_key
        if not key:
            raise ValidationError("A private key is required to send transactions", field="private_key")
        return load_signer(key)

    def prepare(
        self,
        tx: Mapping[str, Any],
        options: TxOptions | None,
        *,
        default_gas_limit: int,
        sender: str,
    ) -> dict[str, Any]:
        """Return a complete legacy transaction dict; explicit fields win."""

        options = options or TxOptions()
        prepared = dict(tx)

        if "nonce" not in prepared:
            prepared["nonce"] = (
                options.nonce if options.nonce is not None else self._client.get_transaction_count(sender)
            )
        if "gasPrice" not in prepared:
            prepared["gasPrice"] = (
                options.gas_price if options.gas_price is not None else self._client.gas_price()
            )
        if "gas" not in prepared:
            prepared["gas"] = options.gas_limit if options.gas_limit is not None else default_gas_limit
        prepared.setdefault("value", options.value)
        prepared.setdefault("chainId", self._client.chain_id())
        prepared.setdefault("data", b"")
        return prepared

    def sign(self, tx: Mapping[str, Any], signer: LocalAccount) -> bytes:
        signed = signer.sign_transaction(dict(tx))
        return bytes(signed.raw_transaction)

    def send(
        self,
        tx: Mapping[str, Any],
        options: TxOptions | None = None,
        *,
        default_gas_limit: int,
        wait: bool = True,
        action: str = "transaction",
    ) -> tuple[str, Any | None]:
        """Sign and submit ``tx``; optionally wait for a successful receipt."""

        signer = self.signer(options)
        prepared = self.prepare(tx, options, default_gas_limit=default_gas_limit, sender=signer.address)
        raw = self.sign(prepared, signer)

        tx_hash = self._client.send_raw_transaction(raw)
        logger.info("Transaction sent for action=%s hash=%s nonce=%s", action, tx_hash, prepared["nonce"])

        if not wait:
            return tx_hash, None

        receipt = self._client.get_transaction_receipt(tx_hash)
        ensure_success(receipt, tx_hash, action=action)
        logger.info(
            "Transaction confirmed for action=%s hash=%s block=%s",
            action,
            tx_hash,
            _receipt_field(receipt, "blockNumber"),
        )
        return tx_hash, receipt


def _receipt_field(receipt: Any, name: str) -> Any:
    if isinstance(receipt, Mapping):
        return receipt.get(name)
    return getattr(receipt, name, None)
