"""Type definitions and data models for evm-tx."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from eth_typing import HexStr
from web3.types import TxParams, TxReceipt

ParseReceipt = Callable[[TxReceipt], Any]


@dataclass(frozen=True)
class NativeCurrency:
    """Native gas token of a chain."""

    name: str = "Ether"
    symbol: str = "ETH"
    decimals: int = 18


@dataclass(frozen=True)
class ChainInfo:
    """Structured chain descriptor as supplied by the chain table."""

    chain_id: int
    name: str
    rpc: tuple[str, ...] = ()
    native_currency: NativeCurrency = field(default_factory=NativeCurrency)
    slug: str | None = None
    testnet: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChainInfo:
        """Construct a descriptor from a camelCase or snake_case mapping."""

        raw_chain_id = data.get("chainId", data.get("chain_id"))
        if raw_chain_id is None:
            raise ValueError("Chain descriptor is missing 'chainId'")

        rpc = data.get("rpc") or ()
        if isinstance(rpc, str):
            rpc = (rpc,)

        currency = data.get("nativeCurrency") or data.get("native_currency")
        if isinstance(currency, Mapping):
            native_currency = NativeCurrency(
                name=str(currency.get("name", "Ether")),
                symbol=str(currency.get("symbol", "ETH")),
                decimals=int(currency.get("decimals", 18)),
            )
        else:
            native_currency = NativeCurrency()

        return cls(
            chain_id=int(raw_chain_id),
            name=str(data.get("name") or data.get("slug") or raw_chain_id),
            rpc=tuple(str(url) for url in rpc),
            native_currency=native_currency,
            slug=data.get("slug"),
            testnet=bool(data.get("testnet", False)),
        )


@dataclass(frozen=True)
class ChainNetwork:
    """Network identity reported alongside transaction errors."""

    chain_id: int
    name: str


@dataclass(frozen=True)
class FeeData:
    """Current fee-market snapshot of a network, all values in wei."""

    gas_price: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None
    last_base_fee_per_gas: int | None = None

    @property
    def supports_eip1559(self) -> bool:
        return self.max_fee_per_gas is not None and self.max_priority_fee_per_gas is not None


@dataclass(frozen=True)
class GasCost:
    """Estimated cost of a transaction."""

    ether: Decimal
    wei: int


@dataclass
class GaslessTransaction:
    """Payload handed to a relay service for a meta-transaction."""

    from_address: str
    to: str
    data: HexStr
    chain_id: int
    gas_limit: int
    function_name: str
    function_args: list[Any]
    call_overrides: TxParams = field(default_factory=lambda: TxParams())


@dataclass
class TransactionResult:
    """Default result of an executed transaction."""

    receipt: TxReceipt


@dataclass(frozen=True)
class ContractSource:
    """A single Solidity source file referenced by contract metadata."""

    filename: str
    source: str


@dataclass(frozen=True)
class ContractMetadata:
    """Contract metadata resolved from deployed bytecode."""

    name: str | None
    abi: Sequence[Mapping[str, Any]]
    metadata: Mapping[str, Any] = field(default_factory=dict)
    metadata_uri: str | None = None

    @property
    def has_sources(self) -> bool:
        return bool(self.metadata.get("sources"))


@dataclass(frozen=True)
class ContractIdentity:
    """Best-effort identity of a contract used to enrich diagnostics."""

    name: str | None = None
    sources: tuple[ContractSource, ...] | None = None

