"""Exception hierarchy for evm-tx."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from .types import ChainNetwork, ContractSource


class EVMTxError(Exception):
    """Base exception for all evm-tx errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NetworkError(EVMTxError):
    """Raised when an auxiliary HTTP or RPC endpoint cannot be reached."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class ValidationError(EVMTxError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConfigurationError(EVMTxError):
    """Raised when no usable RPC endpoint can be derived for a network."""

    def __init__(self, message: str, network: Any | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.network = network


class UnresolvedChainError(ConfigurationError):
    """Raised when a chain reference cannot be mapped to a chain id."""


class MetadataResolutionError(EVMTxError):
    """Raised when no ABI can be obtained for a contract address."""

    def __init__(self, message: str, address: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.address = address


class FunctionNotFoundError(EVMTxError):
    """Raised when a method is absent from the contract interface."""

    def __init__(self, address: str, method: str):
        super().__init__(f'Contract "{address}" does not have function "{method}"')
        self.address = address
        self.method = method


class RelayError(EVMTxError):
    """Raised when a gasless relay rejects a request or is misconfigured."""

    def __init__(self, message: str, provider: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.provider = provider


class TransactionRevertedError(EVMTxError):
    """Raised when a mined transaction reports a failed status."""

    def __init__(self, transaction_hash: str, receipt: Any | None = None):
        super().__init__(f"Transaction {transaction_hash} reverted")
        self.transaction_hash = transaction_hash
        self.receipt = receipt


class TransactionError(EVMTxError):
    """Structured execution failure carrying the full diagnostic context."""

    def __init__(
        self,
        reason: str,
        *,
        from_address: str | None,
        to_address: str,
        method: str,
        data: str,
        network: ChainNetwork | None,
        rpc_url: str | None = None,
        value: int = 0,
        tx_hash: str | None = None,
        contract_name: str | None = None,
        sources: Sequence[ContractSource] | None = None,
        source_trace: str | None = None,
        details: dict | None = None,
    ):
        self.reason = reason
        self.from_address = from_address
        self.to_address = to_address
        self.method = method
        self.data = data
        self.network = network
        self.rpc_url = rpc_url
        self.value = value
        self.tx_hash = tx_hash
        self.contract_name = contract_name
        self.sources = list(sources) if sources is not None else None
        self.source_trace = source_trace
        super().__init__(self._render(), details)

    def _render(self) -> str:
        to = f"{self.to_address} ({self.contract_name})" if self.contract_name else self.to_address
        chain = "unknown"
        if self.network is not None:
            chain = f"{self.network.name} ({self.network.chain_id})"
        lines = [
            "",
            "TRANSACTION ERROR",
            "",
            f"Reason: {self.reason}",
            "",
            "TRANSACTION INFORMATION",
            "",
            f"from:      {self.from_address}",
            f"to:        {to}",
            f"chain:     {chain}",
        ]
        if self.rpc_url:
            lines.append(f"rpc:       {self.rpc_url}")
        lines.extend(
            [
                f"data:      {self.data}",
                f"method:    {self.method}",
                f"value:     {self.value}",
            ]
        )
        if self.tx_hash:
            lines.append(f"tx hash:   {self.tx_hash}")
        if self.source_trace:
            lines.extend(["", "SOURCE TRACE", "", self.source_trace])
        return "\n".join(lines)


class InsufficientFundsError(TransactionError):
    """Raised when the sender balance cannot cover the transaction."""

    def __init__(self, *args: Any, balance: int | None = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.balance = balance
