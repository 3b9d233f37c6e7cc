"""Chain reference resolution and RPC URL templating."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping

from .constants import CHAIN_NAME_TO_ID, ChainId
from .exceptions import ConfigurationError, UnresolvedChainError
from .types import ChainInfo, NativeCurrency

logger = logging.getLogger(__name__)

NetworkInput = int | str | ChainInfo

_RPC_URL_PATTERN = re.compile(r"^(ws|http)s?:", re.IGNORECASE)
_TEMPLATE_PATTERN = re.compile(r"\$\{(\w+)\}")


def _chain(
    chain_id: int,
    name: str,
    slug: str,
    *rpc: str,
    symbol: str = "ETH",
    currency: str = "Ether",
    testnet: bool = False,
) -> ChainInfo:
    return ChainInfo(
        chain_id=chain_id,
        name=name,
        rpc=(f"https://{slug}.rpc.thirdweb.com/${{THIRDWEB_API_KEY}}", *rpc),
        native_currency=NativeCurrency(name=currency, symbol=symbol),
        slug=slug,
        testnet=testnet,
    )


# Minimal built-in table for the chains addressable by name; callers
# extend or replace entries through ClientOptions.supported_chains.
DEFAULT_CHAINS: tuple[ChainInfo, ...] = (
    _chain(
        ChainId.MAINNET,
        "Ethereum Mainnet",
        "ethereum",
        "https://mainnet.infura.io/v3/${INFURA_API_KEY}",
        "https://eth-mainnet.g.alchemy.com/v2/${ALCHEMY_API_KEY}",
    ),
    _chain(
        ChainId.GOERLI,
        "Goerli",
        "goerli",
        "https://eth-goerli.g.alchemy.com/v2/${ALCHEMY_API_KEY}",
        "https://goerli.infura.io/v3/${INFURA_API_KEY}",
        currency="Goerli Ether",
        testnet=True,
    ),
    _chain(
        ChainId.POLYGON,
        "Polygon Mainnet",
        "polygon",
        "https://polygon-mainnet.infura.io/v3/${INFURA_API_KEY}",
        "https://polygon-mainnet.g.alchemy.com/v2/${ALCHEMY_API_KEY}",
        symbol="MATIC",
        currency="MATIC",
    ),
    _chain(
        ChainId.MUMBAI,
        "Mumbai",
        "mumbai",
        "https://polygon-mumbai.infura.io/v3/${INFURA_API_KEY}",
        "https://polygon-mumbai.g.alchemy.com/v2/${ALCHEMY_API_KEY}",
        symbol="MATIC",
        currency="MATIC",
        testnet=True,
    ),
    _chain(
        ChainId.OPTIMISM,
        "Optimism",
        "optimism",
        "https://optimism-mainnet.infura.io/v3/${INFURA_API_KEY}",
        "https://opt-mainnet.g.alchemy.com/v2/${ALCHEMY_API_KEY}",
    ),
    _chain(
        ChainId.OPTIMISM_GOERLI,
        "Optimism Goerli Testnet",
        "optimism-goerli",
        "https://opt-goerli.g.alchemy.com/v2/${ALCHEMY_API_KEY}",
        currency="Goerli Ether",
        testnet=True,
    ),
    _chain(
        ChainId.ARBITRUM,
        "Arbitrum One",
        "arbitrum",
        "https://arbitrum-mainnet.infura.io/v3/${INFURA_API_KEY}",
        "https://arb-mainnet.g.alchemy.com/v2/${ALCHEMY_API_KEY}",
    ),
    _chain(
        ChainId.ARBITRUM_GOERLI,
        "Arbitrum Goerli",
        "arbitrum-goerli",
        "https://goerli-rollup.arbitrum.io/rpc",
        currency="Arbitrum Goerli Ether",
        testnet=True,
    ),
    _chain(
        ChainId.FANTOM,
        "Fantom Opera",
        "fantom",
        "https://rpc.ftm.tools",
        symbol="FTM",
        currency="Fantom",
    ),
    _chain(
        ChainId.FANTOM_TESTNET,
        "Fantom Testnet",
        "fantom-testnet",
        "https://rpc.testnet.fantom.network",
        symbol="FTM",
        currency="Fantom",
        testnet=True,
    ),
    _chain(
        ChainId.AVALANCHE,
        "Avalanche C-Chain",
        "avalanche",
        "https://api.avax.network/ext/bc/C/rpc",
        symbol="AVAX",
        currency="Avalanche",
    ),
    _chain(
        ChainId.AVALANCHE_FUJI_TESTNET,
        "Avalanche Fuji Testnet",
        "avalanche-fuji",
        "https://api.avax-test.network/ext/bc/C/rpc",
        symbol="AVAX",
        currency="Avalanche",
        testnet=True,
    ),
    _chain(
        ChainId.BINANCE_SMART_CHAIN_MAINNET,
        "Binance Smart Chain Mainnet",
        "binance",
        "https://bsc-dataseed.binance.org",
        symbol="BNB",
        currency="BNB Chain Native Token",
    ),
    _chain(
        ChainId.BINANCE_SMART_CHAIN_TESTNET,
        "Binance Smart Chain Testnet",
        "binance-testnet",
        "https://data-seed-prebsc-1-s1.binance.org:8545",
        symbol="tBNB",
        currency="BNB Chain Native Token",
        testnet=True,
    ),
    ChainInfo(ChainId.HARDHAT, "Hardhat", ("http://localhost:8545",), slug="hardhat", testnet=True),
    ChainInfo(
        ChainId.LOCALHOST, "Localhost", ("http://localhost:8545",), slug="localhost", testnet=True
    ),
)


def is_rpc_url(url: str) -> bool:
    """Return ``True`` when the string is an http(s) or ws(s) URL."""

    return isinstance(url, str) and _RPC_URL_PATTERN.match(url) is not None


def get_chain_id_from_network(network: NetworkInput) -> int:
    """Resolve a chain descriptor, chain id or chain name to a chain id."""

    if isinstance(network, ChainInfo):
        return network.chain_id
    if isinstance(network, int) and not isinstance(network, bool):
        return network
    if isinstance(network, str) and network in CHAIN_NAME_TO_ID:
        return int(CHAIN_NAME_TO_ID[network])

    raise UnresolvedChainError(
        f"Cannot resolve chainId from: {network} - please pass the chainId instead "
        "and specify it in the 'supported_chains' option.",
        network=network,
    )


def build_default_map(chains: Iterable[ChainInfo] = ()) -> dict[int, ChainInfo]:
    """Merge caller supplied chains on top of the built-in table.

    Earlier entries in ``chains`` take priority over later ones, and every
    caller entry takes priority over a built-in entry with the same id.
    """

    merged: dict[int, ChainInfo] = {chain.chain_id: chain for chain in DEFAULT_CHAINS}
    for chain in reversed(tuple(chains)):
        merged[chain.chain_id] = chain
    return merged


def get_chain_rpc(
    chain: ChainInfo | None,
    *,
    api_keys: Mapping[str, str | None],
    mode: str = "http",
) -> str:
    """Return the first usable RPC URL of a chain with API keys substituted.

    Templates referencing a key that is not configured are skipped. URLs of
    the requested ``mode`` ("http" or "ws") are preferred over the others.
    """

    if chain is None:
        raise ConfigurationError("Chain is not present in the chain table")

    candidates: list[str] = []
    for template in chain.rpc:
        url = _substitute_api_keys(template, api_keys)
        if url is not None and is_rpc_url(url):
            candidates.append(url)

    for url in candidates:
        if url.lower().startswith(mode):
            return url
    if candidates:
        return candidates[0]

    raise ConfigurationError(
        f"No RPC available for chainId {chain.chain_id}", network=chain.chain_id
    )


def _substitute_api_keys(template: str, api_keys: Mapping[str, str | None]) -> str | None:
    missing = False

    def replace(match: re.Match[str]) -> str:
        nonlocal missing
        value = api_keys.get(match.group(1))
        if not value:
            missing = True
            return match.group(0)
        return value

    url = _TEMPLATE_PATTERN.sub(replace, template)
    return None if missing else url
