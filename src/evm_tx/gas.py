"""Gas price and EIP-1559 fee policy."""

from __future__ import annotations

import asyncio
import logging
from decimal import ROUND_DOWN, Decimal, InvalidOperation

import aiohttp
from web3 import AsyncWeb3, Web3
from web3.types import TxParams, Wei

from .config import DEFAULT_REQUEST_TIMEOUT, GasSettings
from .constants import (
    GWEI,
    POLYGON_DEFAULT_PRIORITY_FEE_GWEI,
    POLYGON_GAS_STATION_URLS,
)
from .types import FeeData
from .utils import http_session, loads_decimal

logger = logging.getLogger(__name__)

_NANO = Decimal("0.000000001")


async def get_fee_data(web3: AsyncWeb3) -> FeeData:
    """Snapshot the network's gas price and, when available, fee-market data."""

    block = await web3.eth.get_block("latest")
    gas_price = await web3.eth.gas_price
    base_fee = block.get("baseFeePerGas")
    if base_fee is None:
        return FeeData(gas_price=gas_price)

    priority_fee = await web3.eth.max_priority_fee
    return FeeData(
        gas_price=gas_price,
        max_fee_per_gas=base_fee * 2 + priority_fee,
        max_priority_fee_per_gas=priority_fee,
        last_base_fee_per_gas=base_fee,
    )


async def get_polygon_gas_priority_fee(
    chain_id: int,
    *,
    session: aiohttp.ClientSession | None = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> int:
    """Fetch the "fast" priority fee from the Polygon gas station, in wei."""

    url = POLYGON_GAS_STATION_URLS[chain_id]
    try:
        async with http_session(session) as client:
            async with client.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                response.raise_for_status()
                data = await response.json(loads=loads_decimal)

        # take the fast speed here, the fee policy adds its own tip on top
        priority_fee = Decimal(data["fast"]["maxPriorityFee"])
        if priority_fee > 0:
            return Web3.to_wei(priority_fee.quantize(_NANO, rounding=ROUND_DOWN), "gwei")
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.warning("Failed to fetch gas from %s: %s", url, exc)
    except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
        logger.warning("Unexpected gas station response from %s: %s", url, exc)

    return POLYGON_DEFAULT_PRIORITY_FEE_GWEI[chain_id] * GWEI


class FeePolicy:
    """Compute the fee fields attached to outgoing transactions."""

    def __init__(
        self,
        gas_settings: GasSettings | None = None,
        *,
        interactive: bool = False,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.gas_settings = gas_settings or GasSettings()
        self.interactive = interactive
        self._request_timeout = request_timeout

    @property
    def max_price(self) -> int:
        return Web3.to_wei(self.gas_settings.max_price_in_gwei, "gwei")

    @property
    def min_priority_fee(self) -> int:
        return Web3.to_wei(self.gas_settings.min_priority_fee_in_gwei, "gwei")

    async def get_gas_overrides(self, web3: AsyncWeb3) -> TxParams:
        """Return gas price or EIP-1559 fee fields for the next transaction.

        When a wallet UI prompts the user for fees, nothing is returned so the
        wallet stays in control of pricing.
        """

        if self.interactive:
            return {}

        fee_data = await get_fee_data(web3)
        if not fee_data.supports_eip1559:
            return {"gasPrice": Wei(await self.get_gas_price(web3, fee_data.gas_price))}

        chain_id = await web3.eth.chain_id
        base_fee = (
            fee_data.last_base_fee_per_gas
            if fee_data.last_base_fee_per_gas is not None
            else GWEI
        )
        if chain_id in POLYGON_GAS_STATION_URLS:
            default_priority_fee = await get_polygon_gas_priority_fee(
                chain_id, timeout=self._request_timeout
            )
        else:
            default_priority_fee = int(fee_data.max_priority_fee_per_gas or 0)

        max_priority_fee_per_gas = self.get_preferred_priority_fee(default_priority_fee)
        # https://eips.ethereum.org/EIPS/eip-1559
        max_fee_per_gas = base_fee * 2 + max_priority_fee_per_gas
        return {
            "maxFeePerGas": Wei(max_fee_per_gas),
            "maxPriorityFeePerGas": Wei(max_priority_fee_per_gas),
        }

    def get_preferred_priority_fee(self, default_priority_fee: int) -> int:
        """Add the tip buffer to a priority fee and clamp it to the bounds."""

        tx_priority_fee = self._with_tip(default_priority_fee)
        if tx_priority_fee > self.max_price:
            return self.max_price
        if tx_priority_fee < self.min_priority_fee:
            return self.min_priority_fee
        return tx_priority_fee

    async def get_gas_price(self, web3: AsyncWeb3, gas_price: int | None = None) -> int:
        """Network gas price plus the tip buffer, capped at the maximum price.

        Unlike the priority fee, no floor is applied here.
        """

        if gas_price is None:
            gas_price = await web3.eth.gas_price
        return min(self._with_tip(int(gas_price)), self.max_price)

    def _with_tip(self, fee: int) -> int:
        return fee + (fee // 100) * self.gas_settings.tip_percent
