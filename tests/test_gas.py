"""Tests for the gas price and fee-market policy."""

from contextlib import asynccontextmanager
from decimal import Decimal
from unittest.mock import AsyncMock

import aiohttp
import pytest
from conftest import make_web3

from evm_tx import gas
from evm_tx.config import GasSettings
from evm_tx.constants import GWEI
from evm_tx.gas import FeePolicy, get_fee_data, get_polygon_gas_priority_fee


class TestLegacyGasPrice:
    @pytest.mark.asyncio
    async def test_adds_ten_percent_tip(self):
        web3 = make_web3(gas_price=20 * GWEI)
        overrides = await FeePolicy().get_gas_overrides(web3)
        assert overrides == {"gasPrice": 22 * GWEI}

    @pytest.mark.asyncio
    async def test_price_is_capped_at_ceiling(self):
        web3 = make_web3(gas_price=500 * GWEI)
        assert await FeePolicy().get_gas_price(web3) == 300 * GWEI

    @pytest.mark.asyncio
    async def test_no_floor_on_legacy_price(self):
        web3 = make_web3(gas_price=GWEI)
        assert await FeePolicy().get_gas_price(web3) == GWEI + GWEI // 10

    @pytest.mark.asyncio
    async def test_price_stays_within_bounds(self):
        policy = FeePolicy()
        for reported in (1, 7 * GWEI, 123 * GWEI, 299 * GWEI, 10_000 * GWEI):
            price = await policy.get_gas_price(make_web3(gas_price=reported))
            assert price == min(reported + reported // 100 * 10, 300 * GWEI)


class TestPriorityFee:
    def test_floor_applied(self):
        assert FeePolicy().get_preferred_priority_fee(GWEI) == 2_500_000_000

    def test_ceiling_applied(self):
        assert FeePolicy().get_preferred_priority_fee(1000 * GWEI) == 300 * GWEI

    def test_tip_within_bounds(self):
        assert FeePolicy().get_preferred_priority_fee(10 * GWEI) == 11 * GWEI

    def test_custom_settings(self):
        policy = FeePolicy(
            GasSettings(
                max_price_in_gwei=Decimal(50),
                min_priority_fee_in_gwei=Decimal("0.5"),
                tip_percent=20,
            )
        )
        assert policy.get_preferred_priority_fee(GWEI) == 1_200_000_000
        assert policy.get_preferred_priority_fee(100 * GWEI) == 50 * GWEI


class TestFeeMarketOverrides:
    @pytest.mark.asyncio
    async def test_fee_data_reports_eip1559_support(self):
        fee_data = await get_fee_data(make_web3(base_fee=30 * GWEI, priority_fee=2 * GWEI))
        assert fee_data.supports_eip1559
        assert fee_data.last_base_fee_per_gas == 30 * GWEI

        legacy = await get_fee_data(make_web3())
        assert not legacy.supports_eip1559

    @pytest.mark.asyncio
    async def test_max_fee_is_double_base_plus_priority(self):
        web3 = make_web3(base_fee=30 * GWEI, priority_fee=10 * GWEI)
        overrides = await FeePolicy().get_gas_overrides(web3)
        assert overrides == {
            "maxFeePerGas": 60 * GWEI + 11 * GWEI,
            "maxPriorityFeePerGas": 11 * GWEI,
        }

    @pytest.mark.asyncio
    async def test_low_network_priority_fee_is_raised(self):
        web3 = make_web3(base_fee=GWEI, priority_fee=GWEI)
        overrides = await FeePolicy().get_gas_overrides(web3)
        assert overrides["maxPriorityFeePerGas"] == 2_500_000_000

    @pytest.mark.asyncio
    async def test_interactive_returns_nothing(self):
        web3 = make_web3(base_fee=GWEI)
        assert await FeePolicy(interactive=True).get_gas_overrides(web3) == {}

    @pytest.mark.asyncio
    async def test_polygon_uses_gas_station(self, monkeypatch):
        station = AsyncMock(return_value=40 * GWEI)
        monkeypatch.setattr(gas, "get_polygon_gas_priority_fee", station)
        web3 = make_web3(chain_id=137, base_fee=100 * GWEI, priority_fee=GWEI)

        overrides = await FeePolicy().get_gas_overrides(web3)

        station.assert_awaited_once()
        assert overrides["maxPriorityFeePerGas"] == 44 * GWEI
        assert overrides["maxFeePerGas"] == 200 * GWEI + 44 * GWEI


class TestPolygonGasStation:
    @pytest.mark.asyncio
    async def test_falls_back_on_network_failure(self, monkeypatch):
        @asynccontextmanager
        async def failing_session(session=None):
            raise aiohttp.ClientConnectionError("unreachable")
            yield  # pragma: no cover

        monkeypatch.setattr(gas, "http_session", failing_session)
        assert await get_polygon_gas_priority_fee(137) == 31 * GWEI
        assert await get_polygon_gas_priority_fee(80001) == GWEI

    @pytest.mark.asyncio
    async def test_reads_fast_priority_fee(self, monkeypatch):
        class Response:
            def raise_for_status(self):
                return None

            async def json(self, loads):
                return loads('{"fast": {"maxPriorityFee": 42.123456789123}}')

        class Request:
            async def __aenter__(self):
                return Response()

            async def __aexit__(self, *exc):
                return False

        class Session:
            def get(self, url, timeout):
                assert url == "https://gasstation.polygon.technology/v2"
                return Request()

        @asynccontextmanager
        async def session(session=None):
            yield Session()

        monkeypatch.setattr(gas, "http_session", session)
        assert await get_polygon_gas_priority_fee(137) == 42_123_456_789
