"""Tests for chain resolution and the provider cache."""

from types import SimpleNamespace

import pytest

from evm_tx.chains import (
    build_default_map,
    get_chain_id_from_network,
    get_chain_rpc,
    is_rpc_url,
)
from evm_tx.config import ClientOptions
from evm_tx.constants import ChainId
from evm_tx.exceptions import ConfigurationError, UnresolvedChainError
from evm_tx.providers import ProviderCache, ProviderResolver, get_rpc_url
from evm_tx.types import ChainInfo


class TestChainResolution:
    def test_chain_id_passthrough(self):
        assert get_chain_id_from_network(137) == 137

    def test_chain_name_lookup(self):
        assert get_chain_id_from_network("polygon") == ChainId.POLYGON
        assert get_chain_id_from_network("mumbai") == ChainId.MUMBAI

    def test_chain_descriptor(self):
        chain = ChainInfo(chain_id=8453, name="Base", rpc=("https://base.example",))
        assert get_chain_id_from_network(chain) == 8453

    def test_unknown_name_raises(self):
        with pytest.raises(UnresolvedChainError) as exc_info:
            get_chain_id_from_network("not-a-chain")
        assert exc_info.value.network == "not-a-chain"
        assert isinstance(exc_info.value, ConfigurationError)

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://rpc.example", True),
            ("HTTP://rpc.example", True),
            ("wss://rpc.example", True),
            ("ws://localhost:8546", True),
            ("ipc:///tmp/geth.ipc", False),
            ("polygon", False),
        ],
    )
    def test_is_rpc_url(self, url, expected):
        assert is_rpc_url(url) is expected


class TestChainRpc:
    def test_templates_with_missing_keys_are_skipped(self):
        chain = ChainInfo(
            chain_id=1,
            name="Ethereum",
            rpc=(
                "https://mainnet.infura.io/v3/${INFURA_API_KEY}",
                "https://eth-mainnet.g.alchemy.com/v2/${ALCHEMY_API_KEY}",
            ),
        )
        url = get_chain_rpc(chain, api_keys={"INFURA_API_KEY": None, "ALCHEMY_API_KEY": "abc"})
        assert url == "https://eth-mainnet.g.alchemy.com/v2/abc"

    def test_http_preferred_over_ws(self):
        chain = ChainInfo(chain_id=1, name="x", rpc=("wss://ws.example", "https://http.example"))
        assert get_chain_rpc(chain, api_keys={}) == "https://http.example"
        assert get_chain_rpc(chain, api_keys={}, mode="ws") == "wss://ws.example"

    def test_no_usable_rpc_raises(self):
        chain = ChainInfo(chain_id=1, name="x", rpc=("https://x/${THIRDWEB_API_KEY}",))
        with pytest.raises(ConfigurationError):
            get_chain_rpc(chain, api_keys={"THIRDWEB_API_KEY": ""})

    def test_caller_chains_take_priority(self):
        custom = ChainInfo(chain_id=1, name="Custom", rpc=("https://custom.example",))
        later = ChainInfo(chain_id=1, name="Later", rpc=("https://later.example",))
        merged = build_default_map([custom, later])
        assert merged[1] is custom
        assert ChainId.POLYGON in merged


class TestProviderCache:
    def test_get_or_create_builds_once(self):
        cache = ProviderCache()
        built = []

        def factory():
            web3 = SimpleNamespace()
            built.append(web3)
            return web3

        first = cache.get_or_create("https://rpc.example", 1, factory)
        second = cache.get_or_create("https://rpc.example", 1, factory)
        assert first is second
        assert len(built) == 1
        assert ("https://rpc.example", 1) in cache

    def test_chain_id_is_part_of_key(self):
        cache = ProviderCache()
        cache.set("https://rpc.example", 1, SimpleNamespace())
        assert cache.get("https://rpc.example", 5) is None
        assert len(cache) == 1


class TestProviderResolver:
    @pytest.mark.asyncio
    async def test_same_chain_resolves_to_same_connection(self):
        resolver = ProviderResolver(ClientOptions(api_key="key"))
        first = await resolver.resolve(1)
        second = await resolver.resolve("ethereum")
        assert first is second
        assert get_rpc_url(first) == "https://ethereum.rpc.thirdweb.com/key"

    @pytest.mark.asyncio
    async def test_shared_cache_across_resolvers(self):
        cache = ProviderCache()
        first = await ProviderResolver(ClientOptions(api_key="key"), cache).resolve(137)
        second = await ProviderResolver(ClientOptions(api_key="key"), cache).resolve(137)
        assert first is second
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_rpc_url_bypasses_chain_table(self):
        cache = ProviderCache()
        resolver = ProviderResolver(cache=cache)
        web3 = await resolver.resolve("https://my-node.example")
        assert get_rpc_url(web3) == "https://my-node.example"
        assert ("https://my-node.example", None) in cache

    @pytest.mark.asyncio
    async def test_descriptor_overrides_builtin_chain(self):
        resolver = ProviderResolver(ClientOptions())
        chain = ChainInfo(chain_id=1, name="Private", rpc=("https://private.example",))
        web3 = await resolver.resolve(chain)
        assert get_rpc_url(web3) == "https://private.example"

    def test_falls_back_to_default_template(self):
        resolver = ProviderResolver(ClientOptions(api_key="key"))
        assert resolver.resolve_rpc_url(999_999) == (
            "https://999999.rpc.thirdweb.com/key",
            999_999,
        )

    def test_unresolved_chain_propagates(self):
        resolver = ProviderResolver()
        with pytest.raises(UnresolvedChainError):
            resolver.resolve_rpc_url("atlantis")

    def test_unhashable_reference_is_unresolved(self):
        resolver = ProviderResolver()
        with pytest.raises(UnresolvedChainError):
            resolver.resolve_rpc_url({"chainId": 1})

    @pytest.mark.asyncio
    async def test_bool_is_not_served_from_memo(self):
        resolver = ProviderResolver(ClientOptions(api_key="key"))
        await resolver.resolve(1)
        with pytest.raises(UnresolvedChainError):
            resolver.resolve_rpc_url(True)

    @pytest.mark.asyncio
    async def test_websocket_connections_are_not_cached(self, monkeypatch):
        resolver = ProviderResolver()
        connections = []

        async def fake_ws(url):
            web3 = SimpleNamespace(provider=SimpleNamespace(endpoint_uri=url))
            connections.append(web3)
            return web3

        monkeypatch.setattr(resolver, "_build_ws_web3", fake_ws)
        first = await resolver.resolve("wss://ws.example")
        second = await resolver.resolve("wss://ws.example")
        assert first is not second
        assert len(resolver.cache) == 0

    @pytest.mark.asyncio
    async def test_construction_failure_degrades_to_default(self, monkeypatch):
        resolver = ProviderResolver()

        def broken(url, chain_id):
            raise RuntimeError("boom")

        monkeypatch.setattr(resolver, "_build_http_web3", broken)
        web3 = await resolver.resolve("https://rpc.example")
        assert get_rpc_url(web3) == "https://rpc.example"
        assert len(resolver.cache) == 0
