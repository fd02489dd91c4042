"""ABI parsing, struct synthesis and textual argument conversion."""

from .builder import FieldSpec, StructBuilder, StructDescriptor, StructInstance, to_pascal_case, tuple_to_struct
from .contract import ContractAbi, load_abi
from .convert import convert, convert_args, parse_cli_args
from .layout import ContractLayout, MethodLayout

__all__ = [
    "ContractAbi",
    "ContractLayout",
    "FieldSpec",
    "MethodLayout",
    "StructBuilder",
    "StructDescriptor",
    "StructInstance",
    "convert",
    "convert_args",
    "load_abi",
    "parse_cli_args",
    "to_pascal_case",
    "tuple_to_struct",
]
