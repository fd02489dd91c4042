"""Struct descriptors for every method, event and the constructor of a contract."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from eth_utils import collapse_if_tuple
from hexbytes import HexBytes

from ..exceptions import AbiError, MethodNotFoundError
from ..utils import hex_to_bytes
from .builder import StructBuilder, StructDescriptor, StructInstance, params_to_descriptor, split_array, tuple_to_struct
from .contract import CONSTRUCTOR, ContractAbi, decode_values

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MethodLayout:
    """Descriptor for one parameter list.

    ``flattened`` is set when the list is a single tuple parameter: the
    descriptor then describes the tuple's components directly.
    """

    descriptor: StructDescriptor
    types: tuple[str, ...]
    flattened: bool = False

    def instance_from_values(self, values: Sequence[Any]) -> StructInstance:
        if self.flattened:
            return self.descriptor.from_values(values[0])
        return self.descriptor.from_values(values)

    def arguments(self, instance: StructInstance) -> list[Any]:
        values = instance.as_abi_values()
        return [values] if self.flattened else list(values)


class ContractLayout:
    """Immutable per-contract set of struct descriptors.

    ``inputs`` and ``outputs`` are keyed by (overload-aware) method name,
    ``events`` and ``aliases`` by the event's topic as 0x hex.
    """

    def __init__(
        self,
        abi: ContractAbi,
        constructor: MethodLayout,
        inputs: Mapping[str, MethodLayout],
        outputs: Mapping[str, MethodLayout],
        events: Mapping[str, StructDescriptor],
        aliases: Mapping[str, str],
    ) -> None:
        self.abi = abi
        self.constructor = constructor
        self.inputs = MappingProxyType(dict(inputs))
        self.outputs = MappingProxyType(dict(outputs))
        self.events = MappingProxyType(dict(events))
        self.aliases = MappingProxyType(dict(aliases))

    @classmethod
    def from_abi(cls, abi: ContractAbi | str | bytes | Sequence[Mapping[str, Any]]) -> ContractLayout:
        contract = abi if isinstance(abi, ContractAbi) else ContractAbi(abi)

        constructor = _method_layout(contract.constructor_inputs, "Constructor")
        inputs: dict[str, MethodLayout] = {}
        outputs: dict[str, MethodLayout] = {}
        for name, entry in contract.functions.items():
            struct_name = name[:1].upper() + name[1:]
            inputs[name] = _method_layout(entry.get("inputs", []), f"{struct_name}Input")
            outputs[name] = _method_layout(entry.get("outputs", []), f"{struct_name}Output")

        events: dict[str, StructDescriptor] = {}
        aliases: dict[str, str] = {}
        for name, entry in contract.events.items():
            if entry.get("anonymous"):
                logger.debug("Skipping anonymous event %s", name)
                continue
            topic = HexBytes(contract.event_topic(name)).to_0x_hex()
            events[topic] = _event_descriptor(entry.get("inputs", []), name[:1].upper() + name[1:])
            aliases[topic] = name

        return cls(contract, constructor, inputs, outputs, events, aliases)

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------
    def input_layout(self, method: str) -> MethodLayout:
        if method == CONSTRUCTOR:
            return self.constructor
        try:
            return self.inputs[method]
        except KeyError:
            raise MethodNotFoundError(method) from None

    def output_layout(self, method: str) -> MethodLayout:
        try:
            return self.outputs[method]
        except KeyError:
            raise MethodNotFoundError(method) from None

    def decode_output(self, method: str, data: bytes) -> StructInstance:
        layout = self.output_layout(method)
        values = decode_values(layout.types, data, context=method)
        return layout.instance_from_values(values)

    def decode_input(self, method: str, calldata: bytes) -> StructInstance:
        layout = self.input_layout(method)
        if method != CONSTRUCTOR and calldata[:4] == self.abi.selector(method):
            calldata = calldata[4:]
        values = decode_values(layout.types, calldata, context=method or "constructor")
        return layout.instance_from_values(values)

    def arguments(self, method: str, params: StructInstance | Mapping[str, Any]) -> list[Any]:
        """Positional call arguments from a struct instance or a field mapping."""

        layout = self.input_layout(method)
        if isinstance(params, StructInstance):
            instance = params
        else:
            instance = layout.descriptor.from_dict(params)
        return layout.arguments(instance)

    def encode_input(self, method: str, params: StructInstance | Mapping[str, Any]) -> bytes:
        """Call data (selector included) for ``method``; constructor data has no selector."""

        args = self.arguments(method, params)
        if method == CONSTRUCTOR:
            return self.abi.encode_constructor(args)
        return self.abi.encode_call(method, args)

    def decode_params(self, method: str, params: str | bytes | Mapping[str, Any]) -> list[Any]:
        """Turn a JSON object of named parameters into positional arguments."""

        if isinstance(params, str | bytes):
            try:
                params = json.loads(params)
            except ValueError as exc:
                raise AbiError("parameters are not valid JSON", field="params") from exc
        if not isinstance(params, Mapping):
            raise AbiError("parameters must be a JSON object", field="params", value=params)
        return self.arguments(method, params)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def decode_log(self, log: Mapping[str, Any]) -> tuple[str, StructInstance]:
        """Decode a receipt log into ``(event name, instance)``."""

        topics = [_as_bytes(topic) for topic in log.get("topics", [])]
        if not topics:
            raise AbiError("log has no topics", field="topics")
        topic = HexBytes(topics[0]).to_0x_hex()
        descriptor = self.events.get(topic)
        if descriptor is None:
            raise AbiError(f"no event for topic {topic}", field="topics", value=topic)

        name = self.aliases[topic]
        entry = self.abi.events[name]
        params = entry.get("inputs", [])
        indexed_types = [spec.abi_type for spec, param in zip(descriptor.fields, params) if param.get("indexed")]
        data_types = [spec.abi_type for spec, param in zip(descriptor.fields, params) if not param.get("indexed")]

        if len(topics) - 1 != len(indexed_types):
            raise AbiError(
                f"event {name} expects {len(indexed_types)} indexed topics, got {len(topics) - 1}",
                field="topics",
            )
        indexed = [
            decode_values([abi_type], raw, context=name)[0] for abi_type, raw in zip(indexed_types, topics[1:])
        ]
        data = list(decode_values(data_types, _as_bytes(log.get("data", b"")), context=name))

        values = [indexed.pop(0) if param.get("indexed") else data.pop(0) for param in params]
        return name, descriptor.from_values(values)

    def __repr__(self) -> str:
        return f"ContractLayout(methods={list(self.inputs)!r}, events={list(self.aliases.values())!r})"


def _method_layout(params: Sequence[Mapping[str, Any]], name: str) -> MethodLayout:
    types = tuple(collapse_if_tuple(dict(param)) for param in params)
    if len(params) == 1 and params[0].get("type") == "tuple":
        return MethodLayout(tuple_to_struct(params[0].get("components", []), name), types, flattened=True)
    return MethodLayout(params_to_descriptor(params, name), types)


def _event_descriptor(params: Sequence[Mapping[str, Any]], name: str) -> StructDescriptor:
    """Event inputs; indexed dynamic values only survive as their bytes32 hash."""

    builder = StructBuilder()
    plain = params_to_descriptor(params, name, tag_indexed=False)
    for spec, param in zip(plain.fields, params):
        if param.get("indexed") and _is_dynamic(spec.abi_type):
            builder.add_field(spec.name, "bytes32", tag=spec.tag)
        else:
            builder.add_field(spec.name, spec.abi_type, tag=spec.tag, descriptor=spec.descriptor)
    return builder.build(name)


def _is_dynamic(abi_type: str) -> bool:
    return abi_type in ("string", "bytes") or abi_type.startswith("(") or split_array(abi_type) is not None


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return hex_to_bytes(value)
    return bytes(value)
