"""Turn raw execution failures into structured transaction errors."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from web3 import AsyncWeb3
from web3.contract import AsyncContract
from web3.types import TxParams

from .constants import CHAIN_ID_TO_NAME
from .exceptions import EVMTxError, TransactionError
from .metadata import MetadataResolver
from .providers import get_rpc_url
from .revert import parse_revert_reason
from .types import ChainNetwork, ContractIdentity, ContractSource
from .utils import json_default, serialise_receipt, to_hex

logger = logging.getLogger(__name__)

MAX_INLINE_LENGTH = 80
SOURCE_CONTEXT_LINES = 2

_CUSTOM_ERROR_NAME = re.compile(r"^(\w+)\(")


@dataclass
class CallContext:
    """Everything needed to re-derive the context of a failed call."""

    web3: AsyncWeb3
    contract: AsyncContract
    method: str
    args: Sequence[Any]
    overrides: TxParams
    signer_address: str | None
    metadata_resolver: MetadataResolver | None = None

    @property
    def from_address(self) -> str | None:
        return self.overrides.get("from") or self.signer_address

    @property
    def value(self) -> int:
        return int(self.overrides.get("value") or 0)

    @property
    def function_name(self) -> str:
        return self.method.split("(", 1)[0]

    def encode(self) -> str:
        return self.contract.encode_abi(self.method, args=list(self.args))


def format_argument(arg: Any) -> str:
    compact = json.dumps(arg, default=json_default, separators=(",", ":"))
    if len(compact) <= MAX_INLINE_LENGTH:
        return compact
    return json.dumps(arg, default=json_default, indent=2)


def format_method_signature(name: str, args: Sequence[Any]) -> str:
    """Render ``name(arg, ...)`` with long arguments spread over several lines."""

    rendered = [format_argument(arg) for arg in args]
    joined = ", ".join(rendered)
    if len(joined) > MAX_INLINE_LENGTH:
        indented = ("  " + arg.replace("\n", "\n  ") for arg in rendered)
        joined = "\n" + ",\n".join(indented) + "\n"
    return f"{name}({joined})"


def extract_transaction_hash(error: Any) -> str | None:
    """Return the transaction hash carried by an error, if any."""

    candidates: list[Any] = [getattr(error, "transaction_hash", None)]

    transaction = getattr(error, "transaction", None)
    if isinstance(transaction, Mapping):
        candidates.append(transaction.get("hash"))

    receipt = getattr(error, "receipt", None)
    if isinstance(receipt, Mapping):
        candidates.append(receipt.get("transactionHash"))

    for candidate in candidates:
        if isinstance(candidate, bytes | bytearray):
            return to_hex(candidate)
        if isinstance(candidate, str) and candidate:
            return candidate
    return None


async def get_network(web3: AsyncWeb3) -> ChainNetwork | None:
    try:
        chain_id = int(await web3.eth.chain_id)
    except Exception as exc:
        logger.debug("Could not read chain id while diagnosing: %s", exc)
        return None
    return ChainNetwork(chain_id=chain_id, name=CHAIN_ID_TO_NAME.get(chain_id, "unknown"))


async def resolve_contract_identity(context: CallContext) -> ContractIdentity | None:
    """Look up the contract name and sources; ``None`` when unavailable."""

    resolver = context.metadata_resolver
    if resolver is None:
        return None

    address = str(context.contract.address)
    try:
        metadata = await resolver.fetch_metadata(address, context.web3)
        sources = await resolver.fetch_sources(metadata) if metadata.has_sources else None
    except Exception as exc:
        logger.debug("Contract metadata unavailable for %s: %s", address, exc)
        return None

    return ContractIdentity(
        name=metadata.name or None,
        sources=tuple(sources) if sources else None,
    )


def render_source_trace(sources: Sequence[ContractSource], reason: str) -> str | None:
    """Locate the revert site of ``reason`` in the contract sources."""

    if not reason:
        return None

    needles = [f'"{reason}"', f"'{reason}'"]
    match = _CUSTOM_ERROR_NAME.match(reason)
    if match:
        needles.append(f"revert {match.group(1)}(")

    for source in sources:
        lines = source.source.splitlines()
        for index, line in enumerate(lines):
            if not any(needle in line for needle in needles):
                continue
            start = max(0, index - SOURCE_CONTEXT_LINES)
            end = min(len(lines), index + SOURCE_CONTEXT_LINES + 1)
            width = len(str(end))
            snippet = [
                f"{'>' if i == index else ' '} {str(i + 1).rjust(width)} | {lines[i]}"
                for i in range(start, end)
            ]
            return "\n".join([f"at {source.filename}:{index + 1}", *snippet])
    return None


async def diagnose(
    error: BaseException,
    context: CallContext,
    *,
    error_class: type[TransactionError] = TransactionError,
    **extra: Any,
) -> TransactionError:
    """Build a structured error for ``error`` from freshly derived context."""

    network = await get_network(context.web3)
    try:
        data = context.encode()
    except Exception as exc:
        logger.debug("Could not encode call data while diagnosing: %s", exc)
        data = ""

    if isinstance(error, TransactionError):
        reason = error.reason
    elif isinstance(error, EVMTxError):
        reason = error.message
    else:
        reason = parse_revert_reason(error, getattr(context.contract, "abi", None) or ())

    identity = await resolve_contract_identity(context)
    sources = identity.sources if identity else None

    details: dict[str, Any] = {"error": str(error), "error_type": type(error).__name__}
    receipt = getattr(error, "receipt", None)
    if receipt is not None:
        details["receipt"] = serialise_receipt(receipt)

    return error_class(
        reason,
        from_address=context.from_address,
        to_address=str(context.contract.address),
        method=format_method_signature(context.function_name, context.args),
        data=data,
        network=network,
        rpc_url=get_rpc_url(context.web3),
        value=context.value,
        tx_hash=extract_transaction_hash(error),
        contract_name=identity.name if identity else None,
        sources=sources,
        source_trace=render_source_trace(sources, reason) if sources else None,
        details=details,
        **extra,
    )
