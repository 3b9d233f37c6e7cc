"""Gasless meta-transaction submission through supported relay services."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Mapping
from typing import Any

import aiohttp
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import AsyncWeb3, Web3

from .config import DEFAULT_REQUEST_TIMEOUT, BiconomyGasless, GaslessOptions, OpenZeppelinGasless
from .constants import BICONOMY_FORWARDER_ADDRESS, BICONOMY_NATIVE_API, ZERO_ADDRESS
from .exceptions import RelayError
from .types import GaslessTransaction
from .utils import http_session

logger = logging.getLogger(__name__)

FORWARDER_ABI = (
    {
        "inputs": [{"internalType": "address", "name": "from", "type": "address"}],
        "name": "getNonce",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
)

BICONOMY_FORWARDER_ABI = (
    {
        "inputs": [
            {"internalType": "address", "name": "from", "type": "address"},
            {"internalType": "uint256", "name": "batchId", "type": "uint256"},
        ],
        "name": "getNonce",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
)

FORWARD_REQUEST_TYPE = [
    {"name": "from", "type": "address"},
    {"name": "to", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "gas", "type": "uint256"},
    {"name": "nonce", "type": "uint256"},
    {"name": "data", "type": "bytes"},
]


async def send_gasless(
    tx: GaslessTransaction,
    signer: LocalAccount,
    web3: AsyncWeb3,
    options: GaslessOptions,
    *,
    session: aiohttp.ClientSession | None = None,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> str:
    """Submit ``tx`` through the relay selected by the type of ``options``."""

    if isinstance(options, BiconomyGasless):
        return await biconomy_send(
            tx, signer, web3, options, session=session, request_timeout=request_timeout
        )
    if isinstance(options, OpenZeppelinGasless):
        return await defender_send(
            tx, signer, web3, options, session=session, request_timeout=request_timeout
        )
    raise RelayError(
        "Unsupported gasless configuration",
        details={"type": type(options).__name__},
    )


async def defender_send(
    tx: GaslessTransaction,
    signer: LocalAccount,
    web3: AsyncWeb3,
    options: OpenZeppelinGasless,
    *,
    session: aiohttp.ClientSession | None = None,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> str:
    forwarder = web3.eth.contract(
        address=Web3.to_checksum_address(options.relayer_forwarder_address),
        abi=FORWARDER_ABI,
    )
    nonce = await forwarder.functions.getNonce(tx.from_address).call()

    request = {
        "from": tx.from_address,
        "to": tx.to,
        "value": 0,
        "gas": tx.gas_limit,
        "nonce": int(nonce),
        "data": bytes(HexBytes(tx.data)),
    }
    domain = {
        "name": options.domain_name,
        "version": options.domain_version,
        "chainId": tx.chain_id,
        "verifyingContract": forwarder.address,
    }
    signed = signer.sign_typed_data(
        domain_data=domain,
        message_types={"ForwardRequest": FORWARD_REQUEST_TYPE},
        message_data=request,
    )

    body = {
        "request": {
            **request,
            "value": "0",
            "gas": str(tx.gas_limit),
            "nonce": str(nonce),
            "data": tx.data,
        },
        "signature": signed.signature.to_0x_hex(),
        "forwarderAddress": forwarder.address,
        "type": "forward",
    }
    payload = await _post_json(
        options.relayer_url,
        body,
        provider="openzeppelin",
        session=session,
        request_timeout=request_timeout,
    )

    if payload.get("status") == "success":
        result = payload.get("result")
        if isinstance(result, str):
            try:
                result = json.loads(result)
            except ValueError as exc:
                raise RelayError(
                    f"relay returned a malformed result: {result}",
                    provider="openzeppelin",
                    details={"response": dict(payload)},
                ) from exc
        if isinstance(result, Mapping) and result.get("txHash"):
            logger.info("Relayed %s via OpenZeppelin: %s", tx.function_name, result["txHash"])
            return str(result["txHash"])

    raise RelayError(
        f"relay transaction failed with status: {payload.get('status')} ({payload.get('result')})",
        provider="openzeppelin",
        details={"response": dict(payload)},
    )


async def biconomy_send(
    tx: GaslessTransaction,
    signer: LocalAccount,
    web3: AsyncWeb3,
    options: BiconomyGasless,
    *,
    session: aiohttp.ClientSession | None = None,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> str:
    forwarder_address = BICONOMY_FORWARDER_ADDRESS.get(tx.chain_id)
    if forwarder_address is None:
        raise RelayError(
            f"Biconomy is not supported on chain {tx.chain_id}",
            provider="biconomy",
        )

    forwarder = web3.eth.contract(address=forwarder_address, abi=BICONOMY_FORWARDER_ABI)
    batch_nonce = int(await forwarder.functions.getNonce(tx.from_address, 0).call())
    deadline = int(time.time()) + options.deadline_seconds

    request = {
        "from": tx.from_address,
        "to": tx.to,
        "token": ZERO_ADDRESS,
        "txGas": tx.gas_limit,
        "tokenGasPrice": "0",
        "batchId": 0,
        "batchNonce": batch_nonce,
        "deadline": deadline,
        "data": tx.data,
    }
    digest = Web3.solidity_keccak(
        [
            "address",
            "address",
            "address",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "bytes32",
        ],
        [
            Web3.to_checksum_address(tx.from_address),
            Web3.to_checksum_address(tx.to),
            ZERO_ADDRESS,
            tx.gas_limit,
            0,
            0,
            batch_nonce,
            deadline,
            Web3.keccak(hexstr=tx.data),
        ],
    )
    signed = signer.sign_message(encode_defunct(primitive=bytes(digest)))

    body = {
        "from": tx.from_address,
        "apiId": options.api_id,
        "params": [request, signed.signature.to_0x_hex()],
        "to": tx.to,
        "gasLimit": hex(tx.gas_limit),
    }
    payload = await _post_json(
        BICONOMY_NATIVE_API,
        body,
        provider="biconomy",
        headers={"x-api-key": options.api_key},
        session=session,
        request_timeout=request_timeout,
    )

    tx_hash = payload.get("txHash")
    if tx_hash:
        logger.info("Relayed %s via Biconomy: %s", tx.function_name, tx_hash)
        return str(tx_hash)

    raise RelayError(
        f"relay transaction failed: {payload.get('log')}",
        provider="biconomy",
        details={"response": dict(payload)},
    )


async def _post_json(
    url: str,
    body: Mapping[str, Any],
    *,
    provider: str,
    headers: Mapping[str, str] | None = None,
    session: aiohttp.ClientSession | None = None,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> Mapping[str, Any]:
    merged_headers = {"Content-Type": "application/json;charset=utf-8", **(headers or {})}
    timeout = aiohttp.ClientTimeout(total=request_timeout)
    try:
        async with http_session(session) as client:
            async with client.post(
                url, json=body, headers=merged_headers, timeout=timeout
            ) as response:
                payload = await response.json(content_type=None)
                if response.status >= 400:
                    raise RelayError(
                        f"Relay request failed with HTTP {response.status}",
                        provider=provider,
                        details={"url": url, "response": payload},
                    )
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
        raise RelayError(
            f"Relay request to {url} failed",
            provider=provider,
            details={"error": str(exc)},
        ) from exc

    if not isinstance(payload, Mapping):
        raise RelayError(
            "Relay returned an unexpected response",
            provider=provider,
            details={"response": payload},
        )
    return payload
