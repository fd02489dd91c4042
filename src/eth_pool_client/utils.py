"""Utility functions for the Ethereum client."""

from collections.abc import Mapping, Sequence
from typing import Any

from hexbytes import HexBytes

from .exceptions import ValidationError


def parse_quantity(value: str | int) -> int:
    """Parse a JSON-RPC quantity (``0x``-prefixed hex or decimal) into an int."""
    if isinstance(value, bool):
        raise ValidationError("Quantity cannot be a boolean", field="value", value=value)
    if isinstance(value, int):
        return value

    text = str(value).strip()
    try:
        if text[:2].lower() == "0x":
            return int(text[2:] or "0", 16)
        return int(text, 10)
    except ValueError:
        raise ValidationError("Quantity must be a hex or decimal string", field="value", value=value)


def to_quantity(value: int) -> str:
    """Encode an int as a JSON-RPC quantity."""
    if value < 0:
        raise ValidationError("Quantity cannot be negative", field="value", value=value)
    return hex(value)


def strip_hex_prefix(value: str) -> str:
    return value[2:] if value[:2].lower() == "0x" else value


def add_hex_prefix(value: str) -> str:
    return value if value[:2].lower() == "0x" else f"0x{value}"


def hex_to_bytes(value: str | bytes) -> bytes:
    """Decode a hex string with or without ``0x`` prefix."""
    if isinstance(value, bytes | bytearray):
        return bytes(value)
    try:
        return bytes(HexBytes(add_hex_prefix(value.strip())))
    except ValueError:
        raise ValidationError("Value is not valid hex", field="value", value=value)


def to_pascal_case(name: str) -> str:
    """Canonicalise an ABI parameter name into a struct field name.

    ``snake_case`` becomes ``SnakeCase``; a leading underscore disappears
    (``_owner`` -> ``Owner``) and camelCase keeps its inner capitals.
    """
    parts = name.split("_")
    return "".join(part[:1].upper() + part[1:] for part in parts if part)


def serialise_receipt(receipt: Any) -> Any:
    """Serialise web3 receipt objects into JSON-friendly structures."""
    if receipt is None:
        return None
    if isinstance(receipt, Mapping):
        return {key: serialise_receipt(value) for key, value in receipt.items()}
    if isinstance(receipt, Sequence) and not isinstance(
        receipt, str | bytes | bytearray | HexBytes
    ):
        return [serialise_receipt(item) for item in receipt]
    if isinstance(receipt, bytes | bytearray | HexBytes):
        return HexBytes(receipt).to_0x_hex()
    return receipt
