"""Keystore-backed signing accounts."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from eth_account import Account
from hexbytes import HexBytes

from .exceptions import ValidationError
from .types import Address

logger = logging.getLogger(__name__)

ACCOUNT_KEY_FILE = "account.key"
PASSWORD_FILE = "password"
# Light scrypt work factor, as used for keystores generated on developer machines.
LIGHT_SCRYPT_N = 1 << 12


def new_account(directory: str | Path, password: str, file_name: str = ACCOUNT_KEY_FILE) -> tuple[str, Address]:
    """Create a key, store it as an encrypted keystore and return ``(private_key, address)``."""

    account = Account.create()
    keystore = Account.encrypt(account.key, password, kdf="scrypt", iterations=LIGHT_SCRYPT_N)

    target = Path(directory) / file_name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(keystore))
    logger.info("Stored new account %s in %s", account.address, target)
    return HexBytes(account.key).to_0x_hex(), account.address


def keystore_to_private_key(path: str | Path, password: str) -> tuple[str, Address]:
    """Decrypt a keystore file into ``(private_key, address)``."""

    keystore_path = Path(path)
    try:
        keystore = json.loads(keystore_path.read_text())
    except OSError as exc:
        raise ValidationError("Keystore file cannot be read", field="path", value=str(keystore_path)) from exc
    except ValueError as exc:
        raise ValidationError("Keystore file is not valid JSON", field="path", value=str(keystore_path)) from exc

    try:
        key = Account.decrypt(keystore, password)
    except (ValueError, KeyError, TypeError) as exc:
        # Never echo the password back.
        raise ValidationError(
            "Failed to decrypt keystore", field="path", value=str(keystore_path), details={"error": str(exc)}
        ) from exc

    private_key = HexBytes(key).to_0x_hex()
    return private_key, private_key_to_address(private_key)


def load_account(config_dir: str | Path) -> tuple[str, Address]:
    """Unlock ``account.key`` with the password stored beside it."""

    directory = Path(config_dir)
    password_path = directory / PASSWORD_FILE
    try:
        password = password_path.read_text().strip()
    except OSError as exc:
        raise ValidationError("Password file cannot be read", field="path", value=str(password_path)) from exc
    return keystore_to_private_key(directory / ACCOUNT_KEY_FILE, password)


def private_key_to_address(private_key: str | bytes) -> Address:
    try:
        return Account.from_key(private_key).address
    except Exception as exc:
        raise ValidationError(
            "Failed to derive address from private key",
            field="private_key",
            details={"error": type(exc).__name__},
        ) from exc
