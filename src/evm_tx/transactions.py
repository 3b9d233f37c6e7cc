"""Transaction building, execution and batching."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Iterable, Iterator, Sequence
from decimal import Decimal
from typing import Any, cast

from eth_abi.packed import encode_packed
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.contract.async_contract import AsyncContractFunction
from web3.types import TxParams, TxReceipt

from .config import ClientOptions
from .constants import (
    GASLESS_FALLBACK_GAS_LIMIT,
    GASLESS_GAS_MULTIPLIER,
    GASLESS_MIN_ESTIMATE,
)
from .diagnostics import CallContext, diagnose
from .exceptions import (
    EVMTxError,
    FunctionNotFoundError,
    InsufficientFundsError,
    MetadataResolutionError,
    RelayError,
    TransactionError,
    TransactionRevertedError,
    ValidationError,
)
from .gas import FeePolicy
from .metadata import ContractMetadataResolver, MetadataResolver
from .relay import send_gasless
from .storage import IpfsStorage
from .types import GasCost, GaslessTransaction, ParseReceipt, TransactionResult
from .utils import to_hex

logger = logging.getLogger(__name__)

_LEGACY_FEE_FIELDS = ("gasPrice",)
_EIP1559_FEE_FIELDS = ("maxFeePerGas", "maxPriorityFeePerGas")


def pack_sender(call: bytes | str, sender: str) -> bytes:
    """Append ``sender`` to an encoded call so relays can attribute it."""

    return encode_packed(["bytes", "address"], [bytes(HexBytes(call)), sender])


def select_gasless_gas_limit(estimate: int | None, override: int | None = None) -> int:
    """Gas limit for a relayed call from a raw estimate and explicit override."""

    gas = estimate * GASLESS_GAS_MULTIPLIER if estimate else 0
    # some wallets under-report estimates; cover most calls with a flat limit
    if gas < GASLESS_MIN_ESTIMATE:
        gas = GASLESS_FALLBACK_GAS_LIMIT
    if override and int(override) > gas:
        gas = int(override)
    return gas


def merge_overrides(gas_overrides: TxParams, overrides: TxParams) -> TxParams:
    """Layer explicit overrides over computed fee fields.

    An explicit legacy gas price drops computed EIP-1559 fields and vice
    versa, so the two pricing models are never mixed.
    """

    computed = dict(gas_overrides)
    if any(overrides.get(key) is not None for key in _LEGACY_FEE_FIELDS):
        for key in _EIP1559_FEE_FIELDS:
            computed.pop(key, None)
    if any(overrides.get(key) is not None for key in _EIP1559_FEE_FIELDS):
        for key in _LEGACY_FEE_FIELDS:
            computed.pop(key, None)
    return cast(TxParams, {**computed, **overrides})


class SentTransaction:
    """A broadcast transaction whose receipt can be awaited."""

    def __init__(
        self,
        web3: AsyncWeb3,
        tx_hash: str,
        *,
        timeout: float,
        poll_latency: float,
    ) -> None:
        self._web3 = web3
        self.hash = tx_hash
        self._timeout = timeout
        self._poll_latency = poll_latency

    async def wait(self) -> TxReceipt:
        receipt = await self._web3.eth.wait_for_transaction_receipt(
            HexBytes(self.hash), timeout=self._timeout, poll_latency=self._poll_latency
        )
        if receipt.get("status") == 0:
            raise TransactionRevertedError(self.hash, receipt)
        logger.info(
            "Transaction confirmed hash=%s block=%s", self.hash, receipt.get("blockNumber")
        )
        return receipt

    def __repr__(self) -> str:
        return f"SentTransaction(hash={self.hash!r})"


class Transaction:
    """A single pending contract call with its overrides and signer."""

    def __init__(
        self,
        contract: AsyncContract,
        method: str,
        args: Sequence[Any] = (),
        *,
        signer: LocalAccount | None,
        web3: AsyncWeb3 | None = None,
        options: ClientOptions | None = None,
        overrides: TxParams | None = None,
        parse: ParseReceipt | None = None,
        metadata_resolver: MetadataResolver | None = None,
        fee_policy: FeePolicy | None = None,
    ) -> None:
        if signer is None:
            raise ValidationError(
                "Cannot create a transaction without a signer. "
                "Please ensure that you have a connected signer.",
                field="signer",
            )

        options = options or ClientOptions()
        self._contract = contract
        self._method = method
        self._args = list(args)
        self._overrides: TxParams = cast(TxParams, dict(overrides or {}))
        self._web3 = web3 if web3 is not None else contract.w3
        self._signer = signer
        self._gasless = options.gasless
        self._parse = parse
        self._options = options
        self._fee_policy = fee_policy or FeePolicy(
            options.gas_settings,
            interactive=options.interactive,
            request_timeout=options.request_timeout,
        )
        self._metadata_resolver = metadata_resolver or _default_resolver(options)

    @classmethod
    def from_contract(
        cls,
        contract: AsyncContract,
        method: str,
        args: Sequence[Any] = (),
        *,
        signer: LocalAccount | None,
        **kwargs: Any,
    ) -> Transaction:
        """Build a transaction for an already connected contract."""

        return cls(contract, method, args, signer=signer, **kwargs)

    @classmethod
    async def from_contract_info(
        cls,
        *,
        address: str,
        method: str,
        args: Sequence[Any] = (),
        web3: AsyncWeb3,
        signer: LocalAccount | None,
        abi: Sequence[dict[str, Any]] | None = None,
        options: ClientOptions | None = None,
        metadata_resolver: MetadataResolver | None = None,
        **kwargs: Any,
    ) -> Transaction:
        """Build a transaction for a bare address, resolving its ABI if needed."""

        resolver = metadata_resolver or _default_resolver(options or ClientOptions())
        if abi is None:
            try:
                metadata = await resolver.fetch_metadata(address, web3)
            except Exception as exc:
                raise MetadataResolutionError(
                    f"Could not resolve contract metadata for address {address}. "
                    "Please pass the contract ABI manually with the 'abi' option.",
                    address=address,
                    details={"error": str(exc)},
                ) from exc
            abi = list(metadata.abi)

        contract = web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        return cls(
            contract,
            method,
            args,
            web3=web3,
            signer=signer,
            options=options,
            metadata_resolver=resolver,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------
    def set_overrides(self, overrides: TxParams) -> None:
        self._overrides = cast(TxParams, {**self._overrides, **overrides})

    def set_from(self, from_address: str) -> None:
        self.set_overrides({"from": Web3.to_checksum_address(from_address)})

    def set_value(self, value: int) -> None:
        self.set_overrides({"value": value})

    def set_gas_limit(self, gas_limit: int) -> None:
        self.set_overrides({"gas": gas_limit})

    def set_gas_price(self, gas_price: int) -> None:
        self.set_overrides({"gasPrice": gas_price})

    def set_max_fee_per_gas(self, max_fee_per_gas: int) -> None:
        self.set_overrides({"maxFeePerGas": max_fee_per_gas})

    def set_max_priority_fee_per_gas(self, max_priority_fee_per_gas: int) -> None:
        self.set_overrides({"maxPriorityFeePerGas": max_priority_fee_per_gas})

    def set_parse(self, parse: ParseReceipt) -> None:
        self._parse = parse

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def method(self) -> str:
        return self._method

    @property
    def args(self) -> list[Any]:
        return list(self._args)

    @property
    def overrides(self) -> TxParams:
        return cast(TxParams, dict(self._overrides))

    @property
    def contract(self) -> AsyncContract:
        return self._contract

    def encode(self) -> str:
        """Encode the function call data for this transaction."""

        return self._contract.encode_abi(self._method, args=list(self._args))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    async def simulate(self) -> Any:
        """Run the call against current state without submitting it."""

        function = self._contract_function()
        params: TxParams = {"from": self._from_address}
        if self._overrides.get("value"):
            params["value"] = self._overrides["value"]

        try:
            return await function(*self._args).call(params)
        except Exception as exc:
            raise await self._transaction_error(exc) from exc

    async def estimate_gas_limit(self) -> int:
        function = self._contract_function()
        try:
            return await function(*self._args).estimate_gas(self._call_params())
        except Exception as exc:
            # estimation failures rarely say why; a static call usually does
            await self.simulate()
            raise await self._transaction_error(exc) from exc

    async def estimate_gas_cost(self) -> GasCost:
        """Estimate the total gas cost of this transaction."""

        gas_limit = await self.estimate_gas_limit()
        try:
            gas_price = await self.get_gas_price()
        except Exception as exc:
            raise await self._transaction_error(exc) from exc

        gas_cost = gas_limit * gas_price
        return GasCost(ether=Decimal(Web3.from_wei(gas_cost, "ether")), wei=gas_cost)

    async def get_gas_price(self) -> int:
        """Network gas price with the configured tip, capped at the maximum."""

        return await self._fee_policy.get_gas_price(self._web3)

    async def send(self) -> SentTransaction:
        """Submit the transaction without waiting for it to be mined."""

        function = self._contract_function()
        if self._gasless is not None:
            return await self._send_gasless()

        try:
            gas_overrides = await self._fee_policy.get_gas_overrides(self._web3)
        except Exception as exc:
            raise await self._transaction_error(exc) from exc

        overrides = merge_overrides(gas_overrides, self._overrides)
        if not overrides.get("gas"):
            overrides["gas"] = await self.estimate_gas_limit()

        try:
            return await self._sign_and_send(function, overrides)
        except Exception as exc:
            await self._raise_if_insufficient_funds(overrides, exc)
            raise await self._transaction_error(exc) from exc

    async def execute(self) -> Any:
        """Send the transaction and wait for it to be mined."""

        sent = await self.send()
        try:
            receipt = await sent.wait()
        except Exception as exc:
            # a failed receipt carries no reason, the static call may
            await self.simulate()
            raise await self._transaction_error(exc) from exc

        if self._parse is not None:
            result = self._parse(receipt)
            if inspect.isawaitable(result):
                result = await result
            return result

        return TransactionResult(receipt=receipt)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @property
    def _from_address(self) -> str:
        return str(self._overrides.get("from") or self._signer.address)

    def _call_params(self) -> TxParams:
        params = cast(TxParams, dict(self._overrides))
        params.setdefault("from", self._signer.address)
        return params

    def _contract_function(self) -> AsyncContractFunction:
        try:
            return self._contract.functions[self._method]
        except (AttributeError, KeyError) as exc:
            raise FunctionNotFoundError(str(self._contract.address), self._method) from exc

    async def _sign_and_send(
        self, function: AsyncContractFunction, overrides: TxParams
    ) -> SentTransaction:
        params = cast(TxParams, dict(overrides))
        params.setdefault("from", self._signer.address)
        if "nonce" not in params:
            params["nonce"] = await self._web3.eth.get_transaction_count(
                params["from"], "pending"
            )

        tx = await function(*self._args).build_transaction(params)
        signed = self._signer.sign_transaction(tx)
        tx_hash = to_hex(await self._web3.eth.send_raw_transaction(signed.raw_transaction))
        logger.info("Transaction sent for %s hash=%s", self._method, tx_hash)
        return self._sent(tx_hash)

    async def _raise_if_insufficient_funds(self, overrides: TxParams, error: Exception) -> None:
        from_address = overrides.get("from") or self._signer.address
        value = int(overrides.get("value") or 0)
        try:
            balance = int(await self._web3.eth.get_balance(from_address))
        except Exception as exc:
            logger.debug("Balance check for %s failed: %s", from_address, exc)
            return

        if balance == 0 or (value and balance < value):
            raise await self._transaction_error(
                EVMTxError(
                    "You have insufficient funds in your account to execute this transaction."
                ),
                error_class=InsufficientFundsError,
                balance=balance,
            ) from error

    async def _send_gasless(self) -> SentTransaction:
        assert self._gasless is not None

        sender = self._signer.address
        args = list(self._args)
        if (
            self._method == "multicall"
            and args
            and isinstance(args[0], list | tuple)
            and len(args[0]) > 0
        ):
            args[0] = [pack_sender(call, sender) for call in args[0]]

        value = int(self._overrides.get("value") or 0)
        if value > 0:
            raise RelayError(
                "Cannot send native token value with gasless transaction",
                details={"value": value},
            )

        from_address = self._from_address
        try:
            chain_id = int(await self._web3.eth.chain_id)
        except Exception as exc:
            raise await self._transaction_error(exc) from exc

        estimate: int | None = None
        try:
            estimate = await self._contract.functions[self._method](*args).estimate_gas(
                {"from": from_address}
            )
        except Exception as exc:
            logger.debug("Gas estimation for gasless %s failed: %s", self._method, exc)

        tx = GaslessTransaction(
            from_address=from_address,
            to=str(self._contract.address),
            data=self._contract.encode_abi(self._method, args=args),
            chain_id=chain_id,
            gas_limit=select_gasless_gas_limit(estimate, self._overrides.get("gas")),
            function_name=self._method,
            function_args=args,
            call_overrides=self.overrides,
        )
        try:
            tx_hash = await send_gasless(
                tx,
                self._signer,
                self._web3,
                self._gasless,
                request_timeout=self._options.request_timeout,
            )
        except RelayError:
            raise
        except Exception as exc:
            raise await self._transaction_error(exc) from exc
        return self._sent(tx_hash)

    def _sent(self, tx_hash: str) -> SentTransaction:
        return SentTransaction(
            self._web3,
            tx_hash,
            timeout=self._options.receipt_timeout,
            poll_latency=self._options.receipt_poll_interval,
        )

    def _call_context(self) -> CallContext:
        return CallContext(
            web3=self._web3,
            contract=self._contract,
            method=self._method,
            args=self._args,
            overrides=self._overrides,
            signer_address=self._signer.address,
            metadata_resolver=self._metadata_resolver,
        )

    async def _transaction_error(self, error: BaseException, **kwargs: Any) -> TransactionError:
        return await diagnose(error, self._call_context(), **kwargs)


class Transactions:
    """An ordered batch of transactions executed one after another."""

    def __init__(self, transactions: Iterable[Transaction] = ()) -> None:
        self._transactions = list(transactions)

    def add(self, transaction: Transaction) -> None:
        self._transactions.append(transaction)

    def get(self, index: int) -> Transaction:
        return self._transactions[index]

    def get_all(self) -> list[Transaction]:
        return list(self._transactions)

    async def execute_all(self) -> list[Any]:
        """Execute every transaction in order, stopping at the first failure.

        Execution is strictly sequential so that nonces from the same sender
        are consumed in submission order.
        """

        results = []
        for transaction in self._transactions:
            results.append(await transaction.execute())
        return results

    def __len__(self) -> int:
        return len(self._transactions)

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self._transactions)


def _default_resolver(options: ClientOptions) -> ContractMetadataResolver:
    return ContractMetadataResolver(
        IpfsStorage(options.ipfs_gateway_url, request_timeout=options.request_timeout)
    )
