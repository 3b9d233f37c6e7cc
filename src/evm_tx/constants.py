"""Constants and mappings for evm-tx."""

from enum import IntEnum


class ChainId(IntEnum):
    """Chain ids for the networks that can be addressed by name."""

    MAINNET = 1
    GOERLI = 5
    OPTIMISM = 10
    BINANCE_SMART_CHAIN_MAINNET = 56
    BINANCE_SMART_CHAIN_TESTNET = 97
    POLYGON = 137
    FANTOM = 250
    OPTIMISM_GOERLI = 420
    FANTOM_TESTNET = 4002
    LOCALHOST = 1337
    HARDHAT = 31337
    ARBITRUM = 42161
    AVALANCHE_FUJI_TESTNET = 43113
    AVALANCHE = 43114
    MUMBAI = 80001
    ARBITRUM_GOERLI = 421613


CHAIN_NAME_TO_ID: dict[str, int] = {
    "avalanche-fuji": ChainId.AVALANCHE_FUJI_TESTNET,
    "avalanche-testnet": ChainId.AVALANCHE_FUJI_TESTNET,
    "fantom-testnet": ChainId.FANTOM_TESTNET,
    # common alias for `mainnet`
    "ethereum": ChainId.MAINNET,
    # common alias for `polygon`
    "matic": ChainId.POLYGON,
    "mumbai": ChainId.MUMBAI,
    "goerli": ChainId.GOERLI,
    "polygon": ChainId.POLYGON,
    "mainnet": ChainId.MAINNET,
    "optimism": ChainId.OPTIMISM,
    "optimism-goerli": ChainId.OPTIMISM_GOERLI,
    "arbitrum": ChainId.ARBITRUM,
    "arbitrum-goerli": ChainId.ARBITRUM_GOERLI,
    "fantom": ChainId.FANTOM,
    "avalanche": ChainId.AVALANCHE,
    "binance": ChainId.BINANCE_SMART_CHAIN_MAINNET,
    "binance-testnet": ChainId.BINANCE_SMART_CHAIN_TESTNET,
    "hardhat": ChainId.HARDHAT,
    "localhost": ChainId.LOCALHOST,
}

CHAIN_ID_TO_NAME: dict[int, str] = {v: k for k, v in CHAIN_NAME_TO_ID.items()}

# No shared access key is bundled; callers supply their own
DEFAULT_API_KEY = ""
DEFAULT_RPC_URL_TEMPLATE = "https://{chain_id}.rpc.thirdweb.com/{api_key}"
DEFAULT_IPFS_GATEWAY = "https://gateway.ipfscdn.io/ipfs/"

GWEI = 10**9

# Gasless gas-limit policy
GASLESS_GAS_MULTIPLIER = 2
GASLESS_MIN_ESTIMATE = 100_000
GASLESS_FALLBACK_GAS_LIMIT = 500_000

POLYGON_GAS_STATION_URLS: dict[int, str] = {
    ChainId.POLYGON: "https://gasstation.polygon.technology/v2",
    ChainId.MUMBAI: "https://gasstation-testnet.polygon.technology/v2",
}

# Used when the gas station cannot be reached
POLYGON_DEFAULT_PRIORITY_FEE_GWEI: dict[int, int] = {
    ChainId.POLYGON: 31,
    ChainId.MUMBAI: 1,
}

BICONOMY_NATIVE_API = "https://api.biconomy.io/api/v2/meta-tx/native"

BICONOMY_FORWARDER_ADDRESS: dict[int, str] = {
    ChainId.MAINNET: "0x84a0856b038eaAd1cC7E297cF34A7e72685A8693",
    ChainId.GOERLI: "0xE041608922d06a4F26C0d4c27d8bCD01daf1f792",
    ChainId.POLYGON: "0x86C80a8aa58e0A4fa09A69624c31Ab2a6CAD56b8",
    ChainId.MUMBAI: "0x9399BB24DBB5C4b782C70c2969F58716Ebbd6a3b",
    ChainId.AVALANCHE: "0x64CD353384109423a966dCd3Aa30D884C9b2E057",
    ChainId.AVALANCHE_FUJI_TESTNET: "0x6271Ca63D30507f2Dcbf99B52787032506D75BBF",
}

OPENZEPPELIN_FORWARDER_DOMAIN_NAME = "GSNv2 Forwarder"
OPENZEPPELIN_FORWARDER_DOMAIN_VERSION = "0.0.1"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
