"""Shared fakes for web3 connections, contracts and signers."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from eth_account import Account
from hexbytes import HexBytes
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from evm_tx.constants import GWEI
from evm_tx.exceptions import MetadataResolutionError

CONTRACT_ADDRESS = Web3.to_checksum_address("0x" + "aa" * 20)
TX_HASH = "0x" + "ab" * 32

TEST_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "data", "type": "bytes[]"}],
        "name": "multicall",
        "outputs": [{"name": "results", "type": "bytes[]"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "caller", "type": "address"}],
        "name": "Unauthorized",
        "type": "error",
    },
]


async def _ready(value: Any) -> Any:
    return value


class FakeEth:
    """Subset of ``AsyncEth`` used by the fee policy and execution engine."""

    def __init__(
        self,
        *,
        chain_id: int = 1,
        gas_price: int = 20 * GWEI,
        base_fee: int | None = None,
        priority_fee: int = GWEI,
        balance: int = 10**18,
        receipt: dict[str, Any] | None = None,
    ) -> None:
        self._chain_id = chain_id
        self._gas_price = gas_price
        self._priority_fee = priority_fee
        self.base_fee = base_fee
        self.balance = balance
        self.receipt = receipt if receipt is not None else {"status": 1, "blockNumber": 7}
        self.send_error: Exception | None = None
        self.raw_transactions: list[bytes] = []

    @property
    def chain_id(self):
        return _ready(self._chain_id)

    @property
    def gas_price(self):
        return _ready(self._gas_price)

    @property
    def max_priority_fee(self):
        return _ready(self._priority_fee)

    async def get_block(self, block_identifier: str) -> dict[str, Any]:
        if self.base_fee is None:
            return {"number": 1}
        return {"number": 1, "baseFeePerGas": self.base_fee}

    async def get_balance(self, address: str) -> int:
        return self.balance

    async def get_transaction_count(self, address: str, block_identifier: str) -> int:
        return 3

    async def get_code(self, address: str) -> bytes:
        return b""

    async def send_raw_transaction(self, raw: bytes) -> HexBytes:
        if self.send_error is not None:
            raise self.send_error
        self.raw_transactions.append(raw)
        return HexBytes(TX_HASH)

    async def wait_for_transaction_receipt(
        self, tx_hash: HexBytes, timeout: float, poll_latency: float
    ) -> dict[str, Any]:
        return {**self.receipt, "transactionHash": HexBytes(tx_hash)}


def make_web3(**kwargs: Any) -> Any:
    return SimpleNamespace(
        eth=FakeEth(**kwargs),
        provider=SimpleNamespace(endpoint_uri="http://localhost:8545"),
    )


class FakeContractFunction:
    def __init__(self, contract: FakeContract, name: str, args: tuple[Any, ...]) -> None:
        self._contract = contract
        self._name = name
        self._args = args

    async def call(self, params: dict[str, Any]) -> Any:
        self._contract.calls.append((self._name, self._args, dict(params)))
        if self._contract.call_error is not None:
            raise self._contract.call_error
        return self._contract.call_result

    async def estimate_gas(self, params: dict[str, Any]) -> int:
        self._contract.estimates.append((self._name, self._args, dict(params)))
        if self._contract.estimate_error is not None:
            raise self._contract.estimate_error
        return self._contract.gas_estimate

    async def build_transaction(self, params: dict[str, Any]) -> dict[str, Any]:
        tx = {
            "to": self._contract.address,
            "value": 0,
            "chainId": 1,
            "data": self._contract.encode_abi(self._name, args=list(self._args)),
            **params,
        }
        self._contract.built.append(tx)
        return tx


class FakeContractFunctions:
    def __init__(self, contract: FakeContract) -> None:
        self._contract = contract

    def __getitem__(self, name: str):
        if name not in self._contract.function_names:
            raise AttributeError(name)

        def bind(*args: Any) -> FakeContractFunction:
            return FakeContractFunction(self._contract, name, args)

        return bind


class FakeContract:
    """Contract double that encodes with a real ABI and records calls."""

    def __init__(self, web3: Any, abi: list[dict[str, Any]] | None = None) -> None:
        self.abi = abi if abi is not None else TEST_ABI
        self.w3 = web3
        self._encoder = AsyncWeb3(AsyncHTTPProvider("http://localhost:8545")).eth.contract(
            address=CONTRACT_ADDRESS, abi=self.abi
        )
        self.address = self._encoder.address
        self.function_names = {entry["name"] for entry in self.abi if entry["type"] == "function"}
        self.functions = FakeContractFunctions(self)
        self.call_result: Any = True
        self.call_error: Exception | None = None
        self.gas_estimate = 50_000
        self.estimate_error: Exception | None = None
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.estimates: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.built: list[dict[str, Any]] = []

    def encode_abi(self, name: str, args: list[Any] | None = None) -> str:
        return self._encoder.encode_abi(name, args=args or [])


class NoMetadataResolver:
    async def fetch_metadata(self, address: str, web3: Any):
        raise MetadataResolutionError("no metadata", address=address)

    async def fetch_sources(self, metadata: Any):
        return []


@pytest.fixture
def signer():
    return Account.from_key("0x" + "11" * 32)


@pytest.fixture
def web3():
    return make_web3()


@pytest.fixture
def contract(web3):
    return FakeContract(web3)
