"""Type definitions and data models for the Ethereum client."""

from collections.abc import Iterator
from dataclasses import dataclass, field

from eth_typing import HexStr

Address = str  # Ethereum address, checksummed when produced by this library
Wei = int  # Wei amount
TxHash = HexStr  # 0x-prefixed transaction hash


@dataclass
class CompileResult:
    """Output of a Solidity compilation: one entry per contract."""

    abis: list[str] = field(default_factory=list)
    bins: list[str] = field(default_factory=list)
    names: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.abis and self.bins and self.names)

    def entries(self) -> Iterator[tuple[str, str, str]]:
        """Yield ``(name, abi_json, bytecode)`` triples in compiler order."""

        return zip(self.names, self.abis, self.bins)


@dataclass(frozen=True)
class TxOptions:
    """Per-call overrides for transaction construction.

    Every field left as ``None`` is filled in from the node (gas price, nonce)
    or from the client defaults (gas limit, signing key).
    """

    gas_limit: int | None = None
    gas_price: Wei | None = None
    nonce: int | None = None
    value: Wei = 0
    private_key: str | None = None
