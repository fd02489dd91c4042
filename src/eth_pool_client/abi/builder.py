"""Runtime struct synthesis for ABI parameter lists.

Decoded ABI values are positional tuples. Callers usually want named access,
so every parameter list (method inputs/outputs, event inputs, tuple
components) is described by an immutable :class:`StructDescriptor` built at
load time. A descriptor hands out mutable :class:`StructInstance` objects that
hold the values in declaration order, the order ABI encoding depends on.

Descriptors are shared freely between threads; instances are not.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from eth_abi import is_encodable
from eth_utils import collapse_if_tuple
from hexbytes import HexBytes

from ..exceptions import AbiError, ValidationError
from ..utils import hex_to_bytes, to_pascal_case

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

_ARRAY_RE = re.compile(r"^(?P<inner>.+)\[(?P<size>\d*)\]$")
_FIXED_BYTES_RE = re.compile(r"^bytes(?P<size>\d+)$")

__all__ = [
    "FieldSpec",
    "StructBuilder",
    "StructDescriptor",
    "StructInstance",
    "params_to_descriptor",
    "split_array",
    "to_abi_value",
    "to_pascal_case",
    "tuple_to_struct",
    "zero_value",
]


def split_array(abi_type: str) -> tuple[str, int | None] | None:
    """Split the outermost array dimension: ``uint8[2][]`` -> ``("uint8[2]", None)``.

    Returns ``None`` for non-array types.
    """

    match = _ARRAY_RE.match(abi_type)
    if match is None:
        return None
    size = match.group("size")
    return match.group("inner"), int(size) if size else None


def zero_value(abi_type: str, descriptor: StructDescriptor | None = None) -> Any:
    """Return the zero value a freshly created field of ``abi_type`` holds."""

    array = split_array(abi_type)
    if array is not None:
        inner, size = array
        if size is None:
            return []
        return [zero_value(inner, descriptor) for _ in range(size)]

    if abi_type.startswith("("):
        if descriptor is None:
            raise AbiError(f"tuple type {abi_type} has no descriptor", field="abi_type", value=abi_type)
        return descriptor.new()
    if abi_type.startswith(("uint", "int")):
        return 0
    if abi_type.startswith(("ufixed", "fixed")):
        return Decimal(0)
    if abi_type == "bool":
        return False
    if abi_type == "address":
        return ZERO_ADDRESS
    if abi_type == "string":
        return ""
    if abi_type == "bytes":
        return b""
    fixed = _FIXED_BYTES_RE.match(abi_type)
    if fixed is not None:
        return b"\x00" * int(fixed.group("size"))
    raise AbiError(f"unsupported abi type {abi_type}", field="abi_type", value=abi_type)


@dataclass(frozen=True)
class FieldSpec:
    """One field of a synthesized struct.

    ``abi_type`` is the canonical type string with tuples collapsed, e.g.
    ``(uint256,uint256)[]``. ``tag`` is the raw ABI parameter name used for
    wire (de)serialisation; indexed event inputs carry no tag.
    ``descriptor`` describes the tuple element for tuple and tuple-array fields.
    """

    name: str
    abi_type: str
    tag: str | None = None
    descriptor: StructDescriptor | None = None

    @property
    def is_tuple(self) -> bool:
        return self.descriptor is not None

    @property
    def key(self) -> str:
        return self.tag or self.name


class StructBuilder:
    """Accumulate field specs and build an immutable :class:`StructDescriptor`.

    Field names must be unique within one builder, exactly like parameter names
    within one ABI signature. Building with duplicate names yields a descriptor
    whose name lookup only sees the last duplicate.
    """

    def __init__(self) -> None:
        self._fields: list[FieldSpec] = []

    def add_field(
        self,
        name: str,
        abi_type: str,
        tag: str | None = None,
        descriptor: StructDescriptor | None = None,
    ) -> StructBuilder:
        if abi_type.startswith("(") and descriptor is None:
            raise AbiError(f"tuple field {name} needs a descriptor", field=name, value=abi_type)
        self._fields.append(FieldSpec(name=name, abi_type=abi_type, tag=tag, descriptor=descriptor))
        return self

    def is_empty(self) -> bool:
        return not self._fields

    def build(self, name: str = "Struct") -> StructDescriptor:
        return StructDescriptor(name, self._fields)


class StructDescriptor:
    """Immutable, ordered description of a struct's fields."""

    __slots__ = ("_name", "_fields", "_index", "_tags")

    def __init__(self, name: str, fields: Iterable[FieldSpec]) -> None:
        self._name = name
        self._fields = tuple(fields)
        self._index = MappingProxyType({spec.name: pos for pos, spec in enumerate(self._fields)})
        self._tags = MappingProxyType(
            {spec.tag: pos for pos, spec in enumerate(self._fields) if spec.tag}
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def fields(self) -> tuple[FieldSpec, ...]:
        return self._fields

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[FieldSpec]:
        return iter(self._fields)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def field(self, name: str) -> FieldSpec | None:
        pos = self._index.get(name)
        return None if pos is None else self._fields[pos]

    def field_by_tag(self, tag: str) -> FieldSpec | None:
        pos = self._tags.get(tag)
        return None if pos is None else self._fields[pos]

    def position(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise AbiError(f"field {name} is not existed in {self._name}", field=name) from None

    def names(self) -> list[str]:
        return [spec.name for spec in self._fields]

    def abi_types(self) -> list[str]:
        return [spec.abi_type for spec in self._fields]

    def new(self) -> StructInstance:
        """Return a fresh instance with every field at its zero value."""

        return StructInstance(self, [zero_value(spec.abi_type, spec.descriptor) for spec in self._fields])

    def from_values(self, values: Sequence[Any]) -> StructInstance:
        """Build an instance from positional (decoded) values."""

        if len(values) != len(self._fields):
            raise AbiError(
                f"{self._name} has {len(self._fields)} fields, got {len(values)} values",
                field=self._name,
                value=len(values),
            )
        return StructInstance(
            self, [_strict_coerce(spec, value) for spec, value in zip(self._fields, values)]
        )

    def from_dict(self, mapping: Mapping[str, Any]) -> StructInstance:
        """Build an instance from a mapping keyed by field names or tags.

        Missing fields keep their zero value; unknown keys or incompatible
        values raise :class:`AbiError`.
        """

        instance = self.new()
        for key, value in mapping.items():
            spec = self.field(key) or self.field_by_tag(key)
            if spec is None:
                raise AbiError(f"field {key} is not existed in {self._name}", field=key, value=value)
            instance._values[self._index[spec.name]] = _strict_coerce(spec, value)
        return instance

    def __str__(self) -> str:
        parts = []
        for spec in self._fields:
            tag = f' `abi:"{spec.tag}"`' if spec.tag else ""
            parts.append(f"{spec.name} {spec.abi_type}{tag}")
        return f"{self._name}{{{'; '.join(parts)}}}"

    def __repr__(self) -> str:
        return f"StructDescriptor({self._name!r}, fields={self.names()!r})"


class StructInstance:
    """Mutable values for one :class:`StructDescriptor`, in field order.

    Field assignment is best effort: :meth:`set_field` reports failure through
    its return value (and a warning) instead of raising, so instances can be
    assembled field by field from partial sources.
    """

    __slots__ = ("_descriptor", "_values")

    def __init__(self, descriptor: StructDescriptor, values: list[Any]) -> None:
        self._descriptor = descriptor
        self._values = values

    @property
    def descriptor(self) -> StructDescriptor:
        return self._descriptor

    # ------------------------------------------------------------------
    # Field access
    # ------------------------------------------------------------------
    def set_field(self, name: str, value: Any) -> bool:
        spec = self._descriptor.field(name)
        if spec is None:
            logger.warning("set field %s on %s failed: no such field", name, self._descriptor.name)
            return False
        try:
            coerced = _coerce(spec.abi_type, spec.descriptor, value)
        except (ValidationError, TypeError, ValueError, ArithmeticError) as exc:
            logger.warning(
                "set field %s (%s) on %s failed: %s", name, spec.abi_type, self._descriptor.name, exc
            )
            return False
        self._values[self._descriptor.position(name)] = coerced
        return True

    def batch_set_fields(self, values: Mapping[str, Any] | Sequence[Any]) -> bool:
        """Set several fields; returns ``True`` only if every assignment succeeded.

        A mapping is keyed by field name, a sequence is applied positionally.
        """

        if not isinstance(values, Mapping):
            values = dict(zip(self._descriptor.names(), values))
        ok = True
        for name, value in values.items():
            ok = self.set_field(name, value) and ok
        return ok

    def get_field(self, name: str) -> Any:
        return self._values[self._descriptor.position(name)]

    def __getitem__(self, name: str) -> Any:
        return self.get_field(name)

    def iterate(self) -> list[Any]:
        """Field values in declaration order."""

        return list(self._values)

    def as_abi_values(self) -> tuple[Any, ...]:
        """Positional values ready for ``eth_abi.encode``."""

        return tuple(to_abi_value(value) for value in self._values)

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------
    def to_dict(self, by_tag: bool = False) -> dict[str, Any]:
        return {
            (spec.key if by_tag else spec.name): _to_plain(value, by_tag)
            for spec, value in zip(self._descriptor.fields, self._values)
        }

    def update_from(self, mapping: Mapping[str, Any]) -> bool:
        """Set fields from a mapping keyed by field names or tags."""

        ok = True
        for key, value in mapping.items():
            spec = self._descriptor.field(key) or self._descriptor.field_by_tag(key)
            if spec is None:
                logger.warning("update %s failed: no field for key %s", self._descriptor.name, key)
                ok = False
                continue
            ok = self.set_field(spec.name, value) and ok
        return ok

    def marshal(self, by_tag: bool = True) -> bytes:
        """JSON encoding, keyed by tags by default; bytes become 0x hex strings."""

        return json.dumps(self.to_dict(by_tag=by_tag), default=_json_default).encode()

    def unmarshal(self, data: bytes | str) -> bool:
        try:
            mapping = json.loads(data)
        except ValueError as exc:
            raise AbiError("struct data is not valid JSON", field=self._descriptor.name) from exc
        if not isinstance(mapping, dict):
            raise AbiError("struct data must be a JSON object", field=self._descriptor.name, value=mapping)
        return self.update_from(mapping)

    def copy_into(self, other: StructInstance) -> bool:
        """Copy values into an instance of a field-compatible descriptor."""

        return other.unmarshal(self.marshal(by_tag=False))

    def copy(self) -> StructInstance:
        clone = self._descriptor.new()
        self.copy_into(clone)
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StructInstance):
            return NotImplemented
        return (
            self._descriptor.names() == other._descriptor.names()
            and self._descriptor.abi_types() == other._descriptor.abi_types()
            and self._values == other._values
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        inner = ", ".join(f"{name}={value!r}" for name, value in zip(self._descriptor.names(), self._values))
        return f"{self._descriptor.name}({inner})"


# ----------------------------------------------------------------------
# Tuple flattening
# ----------------------------------------------------------------------
def params_to_descriptor(
    params: Sequence[Mapping[str, Any]],
    name: str = "Struct",
    *,
    tag_indexed: bool = True,
) -> StructDescriptor:
    """Build a descriptor from an ABI parameter list.

    Tuple components recurse into nested descriptors. Unnamed parameters
    become ``Arg0``, ``Arg1``, ...; with ``tag_indexed=False`` indexed event
    inputs get no wire tag.
    """

    builder = StructBuilder()
    for pos, param in enumerate(params):
        raw_name = param.get("name") or ""
        field_name = to_pascal_case(raw_name) or f"Arg{pos}"
        abi_type = collapse_if_tuple(dict(param))
        nested = None
        if str(param.get("type", "")).startswith("tuple"):
            nested = tuple_to_struct(param.get("components", []), name=f"{name}{field_name}")
        tag = raw_name or None
        if not tag_indexed and param.get("indexed"):
            tag = None
        builder.add_field(field_name, abi_type, tag=tag, descriptor=nested)
    return builder.build(name)


def tuple_to_struct(components: Sequence[Mapping[str, Any]], name: str = "Tuple") -> StructDescriptor:
    """Descriptor for the components of an ABI tuple type."""

    return params_to_descriptor(components, name)


# ----------------------------------------------------------------------
# Value coercion
# ----------------------------------------------------------------------
def _strict_coerce(spec: FieldSpec, value: Any) -> Any:
    try:
        return _coerce(spec.abi_type, spec.descriptor, value)
    except (TypeError, ValueError, ArithmeticError) as exc:
        raise AbiError(
            f"field {spec.name} cannot hold {value!r} as {spec.abi_type}: {exc}", field=spec.name, value=value
        ) from exc


def _coerce(abi_type: str, descriptor: StructDescriptor | None, value: Any) -> Any:
    array = split_array(abi_type)
    if array is not None:
        inner, size = array
        if isinstance(value, str | bytes | bytearray) or not isinstance(value, Sequence):
            raise TypeError(f"{abi_type} expects a sequence, got {type(value).__name__}")
        if size is not None and len(value) != size:
            raise ValueError(f"{abi_type} expects {size} elements, got {len(value)}")
        if descriptor is not None:
            return [_coerce(inner, descriptor, item) for item in value]
        items = [_normalise_scalar(inner, item) for item in value]
        if not is_encodable(abi_type, [to_abi_value(item) for item in items]):
            raise ValueError(f"value {value!r} is not encodable as {abi_type}")
        return items

    if descriptor is not None:
        if isinstance(value, StructInstance):
            if value.descriptor is descriptor:
                return value
            return descriptor.from_dict(value.to_dict())
        if isinstance(value, Mapping):
            return descriptor.from_dict(value)
        if isinstance(value, Sequence) and not isinstance(value, str | bytes | bytearray):
            return descriptor.from_values(value)
        raise TypeError(f"{abi_type} expects a struct, mapping or sequence, got {type(value).__name__}")

    item = _normalise_scalar(abi_type, value)
    if not is_encodable(abi_type, item):
        raise ValueError(f"value {value!r} is not encodable as {abi_type}")
    return item


def _normalise_scalar(abi_type: str, value: Any) -> Any:
    if split_array(abi_type) is not None:
        if isinstance(value, Sequence) and not isinstance(value, str | bytes | bytearray):
            inner = split_array(abi_type)[0]  # type: ignore[index]
            return [_normalise_scalar(inner, item) for item in value]
        return value
    if isinstance(value, str) and (abi_type == "bytes" or _FIXED_BYTES_RE.match(abi_type)):
        return hex_to_bytes(value)
    if isinstance(value, HexBytes | bytearray):
        return bytes(value)
    if isinstance(value, str) and abi_type.startswith(("ufixed", "fixed")):
        return Decimal(value)
    return value


def to_abi_value(value: Any) -> Any:
    if isinstance(value, StructInstance):
        return value.as_abi_values()
    if isinstance(value, list | tuple):
        return [to_abi_value(item) for item in value]
    return value


def _to_plain(value: Any, by_tag: bool) -> Any:
    if isinstance(value, StructInstance):
        return value.to_dict(by_tag=by_tag)
    if isinstance(value, list | tuple):
        return [_to_plain(item, by_tag) for item in value]
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes | bytearray):
        return HexBytes(value).to_0x_hex()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
