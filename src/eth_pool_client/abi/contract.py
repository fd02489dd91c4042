"""Contract ABI documents: lookup, encoding and decoding of calls."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from pathlib import Path
from types import MappingProxyType
from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import collapse_if_tuple, event_abi_to_log_topic, function_abi_to_4byte_selector

from ..exceptions import AbiDefinitionError, AbiError, ArgumentCountError, MethodNotFoundError
from .builder import to_abi_value

CONSTRUCTOR = ""

AbiEntry = Mapping[str, Any]


def load_abi(path: str | Path) -> ContractAbi:
    """Read an ABI JSON file."""

    abi_path = Path(path)
    try:
        text = abi_path.read_text()
    except OSError as exc:
        raise AbiDefinitionError("ABI file cannot be read", field="path", value=str(abi_path)) from exc
    return ContractAbi(text)


def overloaded_name(raw_name: str, taken: Mapping[str, Any]) -> str:
    """``name`` for the first declaration, then ``name0``, ``name1``, ..."""

    name = raw_name
    index = 0
    while name in taken:
        name = f"{raw_name}{index}"
        index += 1
    return name


class ContractAbi:
    """Parsed contract ABI with overload-aware method lookup."""

    def __init__(self, abi: str | bytes | Sequence[AbiEntry]) -> None:
        entries = _parse_entries(abi)

        functions: dict[str, AbiEntry] = {}
        events: dict[str, AbiEntry] = {}
        constructor: AbiEntry | None = None
        for entry in entries:
            kind = entry.get("type", "function")
            if kind == "function":
                functions[overloaded_name(_entry_name(entry), functions)] = entry
            elif kind == "event":
                events[overloaded_name(_entry_name(entry), events)] = entry
            elif kind == "constructor":
                constructor = entry

        self._entries = tuple(entries)
        self._functions = MappingProxyType(functions)
        self._events = MappingProxyType(events)
        self._constructor = constructor

    @property
    def entries(self) -> tuple[AbiEntry, ...]:
        return self._entries

    @property
    def functions(self) -> Mapping[str, AbiEntry]:
        return self._functions

    @property
    def events(self) -> Mapping[str, AbiEntry]:
        return self._events

    @property
    def constructor_inputs(self) -> list[AbiEntry]:
        return list(self._constructor.get("inputs", [])) if self._constructor else []

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def function(self, name: str) -> AbiEntry:
        try:
            return self._functions[name]
        except KeyError:
            raise MethodNotFoundError(name) from None

    def inputs(self, name: str) -> list[AbiEntry]:
        """Input parameters of ``name``; the empty name means the constructor."""

        if name == CONSTRUCTOR:
            return self.constructor_inputs
        return list(self.function(name).get("inputs", []))

    def outputs(self, name: str) -> list[AbiEntry]:
        return list(self.function(name).get("outputs", []))

    def input_types(self, name: str) -> list[str]:
        return [collapse_if_tuple(dict(param)) for param in self.inputs(name)]

    def output_types(self, name: str) -> list[str]:
        return [collapse_if_tuple(dict(param)) for param in self.outputs(name)]

    def is_constant(self, name: str) -> bool:
        entry = self.function(name)
        if entry.get("stateMutability") in ("view", "pure"):
            return True
        return bool(entry.get("constant", False))

    def selector(self, name: str) -> bytes:
        return bytes(function_abi_to_4byte_selector(dict(self.function(name))))

    def event_topic(self, name: str) -> bytes:
        try:
            entry = self._events[name]
        except KeyError:
            raise MethodNotFoundError(name) from None
        return bytes(event_abi_to_log_topic(dict(entry)))

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------
    def encode_arguments(self, name: str, args: Sequence[Any]) -> bytes:
        types = self.input_types(name)
        if len(args) != len(types):
            raise ArgumentCountError(name or "constructor", expected=len(types), received=len(args))
        try:
            return encode(types, [to_abi_value(arg) for arg in args])
        except (EncodingError, TypeError, ValueError, OverflowError) as exc:
            raise AbiError(
                f"encode arguments for {name or 'constructor'} failed: {exc}",
                field="args",
                details={"types": types},
            ) from exc

    def encode_call(self, name: str, args: Sequence[Any] = ()) -> bytes:
        """Selector followed by the encoded arguments."""

        return self.selector(name) + self.encode_arguments(name, args)

    def encode_constructor(self, args: Sequence[Any] = ()) -> bytes:
        return self.encode_arguments(CONSTRUCTOR, args)

    def decode_output(self, name: str, data: bytes) -> list[Any] | None:
        """Decode return data; ``None`` when the method declares no outputs."""

        types = self.output_types(name)
        if not types:
            return None
        return list(decode_values(types, data, context=name))

    def decode_input(self, name: str, calldata: bytes) -> list[Any]:
        """Decode call data, with or without its 4-byte selector."""

        selector = self.selector(name)
        if calldata[:4] == selector:
            calldata = calldata[4:]
        return list(decode_values(self.input_types(name), calldata, context=name))

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def __repr__(self) -> str:
        return f"ContractAbi(functions={list(self._functions)!r}, events={list(self._events)!r})"


def decode_values(types: Sequence[str], data: bytes, *, context: str) -> tuple[Any, ...]:
    try:
        return decode(list(types), bytes(data))
    except (DecodingError, TypeError, ValueError, OverflowError) as exc:
        raise AbiError(
            f"decode {context} failed: {exc}",
            field=context,
            details={"types": list(types), "size": len(data)},
        ) from exc


def _entry_name(entry: AbiEntry) -> str:
    name = entry.get("name")
    if not name:
        raise AbiDefinitionError("ABI entry has no name", field="name", value=dict(entry))
    return str(name)


def _parse_entries(abi: str | bytes | Sequence[AbiEntry]) -> list[AbiEntry]:
    if isinstance(abi, str | bytes):
        try:
            abi = json.loads(abi)
        except ValueError as exc:
            raise AbiDefinitionError("ABI is not valid JSON", field="abi") from exc
    if isinstance(abi, Mapping) and "abi" in abi:
        abi = abi["abi"]
    if not isinstance(abi, Sequence) or isinstance(abi, str | bytes):
        raise AbiDefinitionError("ABI must be a list of entries", field="abi", value=type(abi).__name__)
    entries = []
    for entry in abi:
        if not isinstance(entry, Mapping):
            raise AbiDefinitionError("ABI entry must be an object", field="abi", value=entry)
        entries.append(entry)
    return entries
