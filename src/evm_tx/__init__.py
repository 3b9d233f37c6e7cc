"""evm-tx - Contract transaction execution for EVM chains.

This library resolves RPC connections for EVM chains, prices transactions
under legacy or EIP-1559 fee rules, and builds, simulates, sends and
diagnoses contract calls, optionally through a gasless relay.
"""

from .chains import (
    DEFAULT_CHAINS,
    build_default_map,
    get_chain_id_from_network,
    get_chain_rpc,
    is_rpc_url,
)
from .config import (
    BiconomyGasless,
    ClientOptions,
    GaslessOptions,
    GasSettings,
    OpenZeppelinGasless,
)
from .constants import ChainId
from .diagnostics import CallContext, diagnose, format_method_signature
from .exceptions import (
    ConfigurationError,
    EVMTxError,
    FunctionNotFoundError,
    InsufficientFundsError,
    MetadataResolutionError,
    NetworkError,
    RelayError,
    TransactionError,
    TransactionRevertedError,
    UnresolvedChainError,
    ValidationError,
)
from .gas import FeePolicy, get_fee_data
from .metadata import ContractMetadataResolver, MetadataResolver
from .providers import ProviderCache, ProviderResolver
from .revert import parse_revert_reason
from .storage import IpfsStorage
from .transactions import SentTransaction, Transaction, Transactions
from .types import (
    ChainInfo,
    ChainNetwork,
    ContractMetadata,
    ContractSource,
    FeeData,
    GasCost,
    GaslessTransaction,
    NativeCurrency,
    TransactionResult,
)

__version__ = "0.1.0"

__all__ = [
    # Execution
    "Transaction",
    "Transactions",
    "SentTransaction",
    "FeePolicy",
    "get_fee_data",
    # Providers and chains
    "ProviderCache",
    "ProviderResolver",
    "ChainId",
    "DEFAULT_CHAINS",
    "build_default_map",
    "get_chain_id_from_network",
    "get_chain_rpc",
    "is_rpc_url",
    # Diagnostics
    "CallContext",
    "diagnose",
    "format_method_signature",
    "parse_revert_reason",
    # Metadata
    "ContractMetadataResolver",
    "MetadataResolver",
    "IpfsStorage",
    # Configuration
    "ClientOptions",
    "GasSettings",
    "GaslessOptions",
    "OpenZeppelinGasless",
    "BiconomyGasless",
    # Types
    "ChainInfo",
    "ChainNetwork",
    "ContractMetadata",
    "ContractSource",
    "FeeData",
    "GasCost",
    "GaslessTransaction",
    "NativeCurrency",
    "TransactionResult",
    # Exceptions
    "EVMTxError",
    "NetworkError",
    "ValidationError",
    "ConfigurationError",
    "UnresolvedChainError",
    "MetadataResolutionError",
    "FunctionNotFoundError",
    "RelayError",
    "TransactionError",
    "TransactionRevertedError",
    "InsufficientFundsError",
]
