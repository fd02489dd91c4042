"""Conversion of textual (CLI or config) arguments into typed ABI values."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from eth_utils import collapse_if_tuple, is_hex_address, to_checksum_address

from ..exceptions import ArgumentCountError, ConversionError, ValidationError
from ..utils import hex_to_bytes
from .builder import ZERO_ADDRESS, split_array
from .contract import ContractAbi

logger = logging.getLogger(__name__)

CLI_SEPARATOR = "^"

_INT_RE = re.compile(r"^(?P<unsigned>u?)int(?P<bits>\d*)$")
_FIXED_BYTES_RE = re.compile(r"^bytes(?P<size>\d+)$")
_FIXED_RE = re.compile(r"^u?fixed(\d+x\d+)?$")
_INT_TEXT_RE = re.compile(r"^(?P<sign>[+-]?)(?:0[xX](?P<hex>[0-9a-fA-F]+)|(?P<dec>[0-9]+))$")

_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def convert(abi_type: str, value: Any) -> Any:
    """Convert ``value`` (a string or a sequence of strings) to ``abi_type``.

    An empty string converts to the zero value of scalar types. Any failure
    raises :class:`ConversionError`.
    """

    array = split_array(abi_type)
    if array is not None:
        inner, size = array
        items = _as_elements(value, abi_type)
        if size is not None:
            items = (items + [""] * size)[:size]
        return [convert(inner, item) for item in items]

    if abi_type.startswith("("):
        raise ConversionError(value, abi_type, "tuple arguments cannot be converted from text")

    if isinstance(value, bytes | bytearray) and (abi_type == "bytes" or _FIXED_BYTES_RE.match(abi_type)):
        return _fixed_bytes(bytes(value), abi_type) if abi_type != "bytes" else bytes(value)
    if isinstance(value, Sequence) and not isinstance(value, str):
        raise ConversionError(value, abi_type, "expected a single value")
    text = value if isinstance(value, str) else str(value)

    match = _INT_RE.match(abi_type)
    if match is not None:
        return _integer(text, abi_type, unsigned=bool(match.group("unsigned")), bits=match.group("bits"))
    if abi_type == "bool":
        return _boolean(text, abi_type)
    if abi_type == "address":
        return _address(text, abi_type)
    if abi_type == "string":
        return text
    if abi_type == "bytes":
        if not text:
            return b""
        try:
            return hex_to_bytes(text)
        except ValidationError as exc:
            raise ConversionError(value, abi_type, "not a hex string") from exc
    if _FIXED_BYTES_RE.match(abi_type):
        return _fixed_bytes(text.encode(), abi_type)
    if _FIXED_RE.match(abi_type):
        try:
            return Decimal(text or "0")
        except InvalidOperation as exc:
            raise ConversionError(value, abi_type, "not a decimal number") from exc

    raise ConversionError(value, abi_type, "unsupported type")


def convert_args(contract_abi: ContractAbi, method: str, args: Sequence[Any]) -> list[Any]:
    """Convert textual arguments for ``method`` (``""`` is the constructor)."""

    inputs = contract_abi.inputs(method)
    if len(args) < len(inputs):
        raise ArgumentCountError(method or "constructor", expected=len(inputs), received=len(args))
    if len(args) > len(inputs):
        logger.debug("Ignoring %s extra arguments for %s", len(args) - len(inputs), method or "constructor")

    converted = []
    for pos, (param, arg) in enumerate(zip(inputs, args)):
        abi_type = collapse_if_tuple(dict(param))
        try:
            converted.append(convert(abi_type, arg))
        except ConversionError as exc:
            name = param.get("name") or f"#{pos}"
            raise ConversionError(arg, abi_type, f"argument {name}: {exc.reason}") from exc
    return converted


def parse_cli_args(text: str, separator: str = CLI_SEPARATOR) -> list[str | list[str]]:
    """Split ``a^[1,2]^[]`` into ``["a", ["1", "2"], []]``."""

    if not text:
        return []
    parsed: list[str | list[str]] = []
    for part in text.split(separator):
        if part.startswith("[") and part.endswith("]"):
            inner = part[1:-1]
            parsed.append(inner.split(",") if inner else [])
        else:
            parsed.append(part)
    return parsed


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _as_elements(value: Any, abi_type: str) -> list[Any]:
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("[") and text.endswith("]"):
            return _split_bracketed(text[1:-1], value, abi_type)
        return [value]
    if isinstance(value, Sequence) and not isinstance(value, bytes | bytearray):
        return list(value)
    raise ConversionError(value, abi_type, "expected a string or a sequence")


def _split_bracketed(inner: str, value: Any, abi_type: str) -> list[str]:
    """Split on top-level commas only, so ``[1,2],[3]`` keeps nested lists."""

    if not inner.strip():
        return []
    items: list[str] = []
    depth = 0
    current: list[str] = []
    for char in inner:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth < 0:
                raise ConversionError(value, abi_type, "unbalanced brackets")
        if char == "," and depth == 0:
            items.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    if depth != 0:
        raise ConversionError(value, abi_type, "unbalanced brackets")
    items.append("".join(current).strip())
    return items


def _integer(text: str, abi_type: str, *, unsigned: bool, bits: str) -> int:
    width = int(bits) if bits else 256
    if width < 8 or width > 256 or width % 8:
        raise ConversionError(text, abi_type, "unsupported integer width")

    raw = text.strip()
    if not raw:
        return 0
    match = _INT_TEXT_RE.match(raw)
    if match is None:
        raise ConversionError(text, abi_type, "not an integer")
    if match["hex"] is not None:
        number = int(match["hex"], 16)
    else:
        number = int(match["dec"], 10)
    if match["sign"] == "-":
        number = -number

    if unsigned:
        low, high = 0, 2**width - 1
    else:
        low, high = -(2 ** (width - 1)), 2 ** (width - 1) - 1
    if not low <= number <= high:
        raise ConversionError(text, abi_type, "out of range")
    return number


def _boolean(text: str, abi_type: str) -> bool:
    raw = text.strip()
    if not raw or raw in _FALSE:
        return False
    if raw in _TRUE:
        return True
    raise ConversionError(text, abi_type, "not a boolean")


def _address(text: str, abi_type: str) -> str:
    raw = text.strip()
    if not raw:
        return ZERO_ADDRESS
    if not is_hex_address(raw):
        raise ConversionError(text, abi_type, "not a 20-byte hex address")
    return to_checksum_address(raw)


def _fixed_bytes(raw: bytes, abi_type: str) -> bytes:
    """Pad or truncate to ``bytesN``; N is limited to the ABI's legal 1..32."""

    size = int(abi_type[len("bytes") :])
    if not 1 <= size <= 32:
        raise ConversionError(raw, abi_type, "unsupported fixed bytes size")
    return raw[:size].ljust(size, b"\x00")
