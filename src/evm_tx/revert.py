"""Decoding of revert data returned by failed calls."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from enum import IntEnum
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes
from web3 import Web3

from .utils import json_default, to_hex

logger = logging.getLogger(__name__)

ERROR_SELECTOR = bytes.fromhex("08c379a0")
PANIC_SELECTOR = bytes.fromhex("4e487b71")
STANDARD_ERROR_SIGNATURES = {
    ERROR_SELECTOR: "Error(string)",
    PANIC_SELECTOR: "Panic(uint256)",
}

_MESSAGE_PATTERNS = (
    re.compile(r"""["']message["']\s*:\s*["']([^"'\\]*)"""),
    re.compile(r"""["']reason["']\s*:\s*["']([^"'\\]*)"""),
)


class PanicCode(IntEnum):
    GENERIC = 0
    ASSERT_FAIL = 0x01
    UNDERFLOW_OVERFLOW = 0x11
    DIVISION_MODULO_BY_ZERO = 0x12
    INVALID_CONVERSION_TO_ENUM = 0x21
    ACCESS_TO_INCORRECTLY_ENCODED_STORAGE_BYTE_ARRAY = 0x22
    POP_EMPTY_ARRAY = 0x31
    INDEX_ACCESS_OUT_OF_BOUNDS = 0x32
    TOO_MUCH_MEMORY_ALLOCATED = 0x41
    INVALID_INTERNAL_FUNCTION_CALL = 0x51


PANIC_DESCRIPTIONS: dict[PanicCode, str] = {
    PanicCode.GENERIC: "Generic compiler panic",
    PanicCode.ASSERT_FAIL: "Assert evaluated to false",
    PanicCode.UNDERFLOW_OVERFLOW: "Integer underflow or overflow",
    PanicCode.DIVISION_MODULO_BY_ZERO: "Division or modulo by zero",
    PanicCode.INVALID_CONVERSION_TO_ENUM: "Too big or negative integer for conversion to enum",
    PanicCode.ACCESS_TO_INCORRECTLY_ENCODED_STORAGE_BYTE_ARRAY: (
        "Access to incorrectly encoded storage byte array"
    ),
    PanicCode.POP_EMPTY_ARRAY: ".pop() on empty array",
    PanicCode.INDEX_ACCESS_OUT_OF_BOUNDS: (
        "Out-of-bounds or negative index access to fixed-length array"
    ),
    PanicCode.TOO_MUCH_MEMORY_ALLOCATED: "Too much memory allocated",
    PanicCode.INVALID_INTERNAL_FUNCTION_CALL: "Called invalid internal function",
}


def parse_revert_reason(error: BaseException | Any, abi: Sequence[Mapping[str, Any]] = ()) -> str:
    """Best-effort human readable reason for a failed call.

    Tries, in order: decoding revert data found on the error, an explicit
    ``reason`` attribute, and the ``message``/``reason`` fields of the raw
    RPC error payload. Falls back to the string form of the error.
    """

    data = find_revert_data(error)
    if data is not None:
        decoded = decode_revert_data(data, abi)
        if decoded:
            return decoded

    reason = getattr(error, "reason", None)
    if isinstance(reason, str) and reason:
        return reason

    rendered = _render_error(error)
    for pattern in _MESSAGE_PATTERNS:
        match = pattern.search(rendered)
        if match and match.group(1):
            return match.group(1)

    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error)


def find_revert_data(error: BaseException | Any) -> bytes | None:
    """Locate raw revert data on a web3 exception or RPC error payload."""

    candidates: list[Any] = [getattr(error, "data", None)]

    rpc_response = getattr(error, "rpc_response", None)
    if isinstance(rpc_response, Mapping):
        candidates.append(rpc_response.get("error"))

    candidates.extend(getattr(error, "args", ()))

    for candidate in candidates:
        data = _coerce_revert_data(candidate)
        if data is not None:
            return data
    return None


def decode_revert_data(data: bytes | str, abi: Sequence[Mapping[str, Any]] = ()) -> str | None:
    """Decode ``Error(string)``, ``Panic(uint256)`` or an ABI custom error."""

    raw = bytes(HexBytes(data))
    if len(raw) < 4:
        return None

    selector, payload = raw[:4], raw[4:]
    try:
        if selector == ERROR_SELECTOR:
            (message,) = abi_decode(["string"], payload)
            return str(message)

        if selector == PANIC_SELECTOR:
            (code,) = abi_decode(["uint256"], payload)
            return describe_panic(int(code))

        custom = _decode_custom_error(selector, payload, abi)
        if custom is not None:
            return custom
    except (DecodingError, ValueError, OverflowError) as exc:
        logger.debug("Failed to decode revert data %s: %s", to_hex(raw), exc)
        if selector in STANDARD_ERROR_SIGNATURES:
            return f"reverted with malformed {STANDARD_ERROR_SIGNATURES[selector]} data"

    return f"reverted with custom error {to_hex(selector)}"


def describe_panic(code: int) -> str:
    try:
        description = PANIC_DESCRIPTIONS[PanicCode(code)]
    except ValueError:
        description = "Unknown panic code"
    return f"Panic(0x{code:02x}): {description}"


def error_signature(entry: Mapping[str, Any]) -> str:
    inputs = entry.get("inputs") or []
    return f"{entry.get('name', '')}({','.join(_canonical_type(item) for item in inputs)})"


def _decode_custom_error(
    selector: bytes, payload: bytes, abi: Sequence[Mapping[str, Any]]
) -> str | None:
    for entry in abi:
        if entry.get("type") != "error":
            continue
        signature = error_signature(entry)
        if bytes(Web3.keccak(text=signature)[:4]) != selector:
            continue

        inputs = entry.get("inputs") or []
        values = abi_decode([_canonical_type(item) for item in inputs], payload)
        rendered = ", ".join(
            json.dumps(value, default=json_default, separators=(",", ":")) for value in values
        )
        return f"{entry.get('name')}({rendered})"
    return None


def _canonical_type(item: Mapping[str, Any]) -> str:
    abi_type = str(item.get("type", ""))
    if not abi_type.startswith("tuple"):
        return abi_type
    components = ",".join(_canonical_type(c) for c in item.get("components") or [])
    return f"({components}){abi_type[len('tuple'):]}"


def _coerce_revert_data(candidate: Any) -> bytes | None:
    if isinstance(candidate, Mapping):
        candidate = candidate.get("data")
        if isinstance(candidate, Mapping):
            candidate = candidate.get("data")

    if isinstance(candidate, bytes | bytearray) and len(candidate) >= 4:
        return bytes(candidate)

    if isinstance(candidate, str) and candidate.startswith("0x") and len(candidate) >= 10:
        try:
            return bytes(HexBytes(candidate))
        except ValueError:
            return None
    return None


def _render_error(error: Any) -> str:
    parts = [str(error)]
    for arg in getattr(error, "args", ()):
        if isinstance(arg, Mapping):
            parts.append(json.dumps(arg, default=json_default))
    rpc_response = getattr(error, "rpc_response", None)
    if isinstance(rpc_response, Mapping):
        parts.append(json.dumps(rpc_response, default=json_default))
    return " ".join(parts)
