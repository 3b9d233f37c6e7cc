"""Configuration containers for evm-tx."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal

from .constants import (
    DEFAULT_API_KEY,
    DEFAULT_IPFS_GATEWAY,
    OPENZEPPELIN_FORWARDER_DOMAIN_NAME,
    OPENZEPPELIN_FORWARDER_DOMAIN_VERSION,
)
from .types import ChainInfo

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_RECEIPT_TIMEOUT = 120.0
DEFAULT_RECEIPT_POLL_INTERVAL = 0.1
DEFAULT_BICONOMY_DEADLINE_SECONDS = 3600


@dataclass(frozen=True)
class GasSettings:
    """Bounds applied by the fee policy, in gwei."""

    max_price_in_gwei: Decimal = Decimal(300)
    min_priority_fee_in_gwei: Decimal = Decimal("2.5")
    tip_percent: int = 10


@dataclass(frozen=True)
class OpenZeppelinGasless:
    """Relay meta-transactions through an OpenZeppelin Defender autotask."""

    relayer_url: str
    relayer_forwarder_address: str
    domain_name: str = OPENZEPPELIN_FORWARDER_DOMAIN_NAME
    domain_version: str = OPENZEPPELIN_FORWARDER_DOMAIN_VERSION


@dataclass(frozen=True)
class BiconomyGasless:
    """Relay meta-transactions through the Biconomy native meta-tx API."""

    api_id: str
    api_key: str
    deadline_seconds: int = DEFAULT_BICONOMY_DEADLINE_SECONDS


GaslessOptions = OpenZeppelinGasless | BiconomyGasless


@dataclass(frozen=True)
class ClientOptions:
    """Aggregated configuration for provider resolution and execution."""

    api_key: str = DEFAULT_API_KEY
    infura_api_key: str | None = None
    alchemy_api_key: str | None = None
    supported_chains: tuple[ChainInfo, ...] = field(default_factory=tuple)
    gasless: GaslessOptions | None = None
    gas_settings: GasSettings = field(default_factory=GasSettings)
    ipfs_gateway_url: str = DEFAULT_IPFS_GATEWAY
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    receipt_poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL
    interactive: bool = False

    @property
    def api_keys(self) -> dict[str, str | None]:
        """Template placeholders understood in chain RPC URLs."""

        return {
            "THIRDWEB_API_KEY": self.api_key,
            "INFURA_API_KEY": self.infura_api_key,
            "ALCHEMY_API_KEY": self.alchemy_api_key,
        }

    def with_chain(self, chain: ChainInfo) -> ClientOptions:
        """Return a copy with ``chain`` taking priority in the chain table."""

        others = tuple(c for c in self.supported_chains if c.chain_id != chain.chain_id)
        return replace(self, supported_chains=(chain, *others))
