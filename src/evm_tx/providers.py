"""RPC provider resolution and the process-wide connection cache."""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable

from aiohttp import ClientTimeout
from web3 import AsyncHTTPProvider, AsyncWeb3, WebSocketProvider

from .chains import (
    NetworkInput,
    build_default_map,
    get_chain_id_from_network,
    get_chain_rpc,
    is_rpc_url,
)
from .config import ClientOptions
from .constants import DEFAULT_RPC_URL_TEMPLATE
from .exceptions import ConfigurationError
from .types import ChainInfo

logger = logging.getLogger(__name__)

CacheKey = tuple[str, int | None]


class ProviderCache:
    """Reusable HTTP connections keyed by ``(rpc_url, chain_id)``.

    Entries live for the lifetime of the cache. Two coroutines resolving the
    same key may both build a connection; the last one stored wins.
    """

    def __init__(self) -> None:
        self._providers: dict[CacheKey, AsyncWeb3] = {}

    def get(self, rpc_url: str, chain_id: int | None = None) -> AsyncWeb3 | None:
        return self._providers.get((rpc_url, chain_id))

    def set(self, rpc_url: str, chain_id: int | None, web3: AsyncWeb3) -> None:
        self._providers[(rpc_url, chain_id)] = web3

    def get_or_create(
        self,
        rpc_url: str,
        chain_id: int | None,
        factory: Callable[[], AsyncWeb3],
    ) -> AsyncWeb3:
        existing = self.get(rpc_url, chain_id)
        if existing is not None:
            logger.debug("Provider cache hit for %s (chain %s)", rpc_url, chain_id)
            return existing

        web3 = factory()
        self.set(rpc_url, chain_id, web3)
        return web3

    def clear(self) -> None:
        self._providers.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._providers

    def __len__(self) -> int:
        return len(self._providers)


class ProviderResolver:
    """Turn chain references and RPC URLs into live ``AsyncWeb3`` connections."""

    def __init__(
        self,
        options: ClientOptions | None = None,
        cache: ProviderCache | None = None,
    ) -> None:
        self.options = options or ClientOptions()
        self.cache = cache if cache is not None else ProviderCache()
        self._resolved_urls: dict[Hashable, CacheKey] = {}

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------
    async def resolve(self, network: NetworkInput) -> AsyncWeb3:
        """Return a connection for a chain id, chain name, descriptor or URL."""

        if isinstance(network, str) and is_rpc_url(network):
            return await self.get_provider_from_rpc_url(network)

        rpc_url, chain_id = self.resolve_rpc_url(network)
        return await self.get_provider_from_rpc_url(rpc_url, chain_id)

    def resolve_rpc_url(self, network: NetworkInput) -> CacheKey:
        """Resolve the RPC URL and chain id for a non-URL chain reference."""

        chain_id = get_chain_id_from_network(network)

        memo_key: Hashable = (type(network), network)
        memoised = self._resolved_urls.get(memo_key)
        if memoised is not None and memoised in self.cache:
            return memoised

        options = self.options
        if isinstance(network, ChainInfo):
            options = options.with_chain(network)
        rpc_map = build_default_map(options.supported_chains)

        rpc_url = ""
        try:
            rpc_url = get_chain_rpc(rpc_map.get(chain_id), api_keys=options.api_keys)
        except ConfigurationError as exc:
            logger.warning("Failed to get chain RPC for %s: %s", chain_id, exc)

        if not rpc_url:
            rpc_url = DEFAULT_RPC_URL_TEMPLATE.format(
                chain_id=chain_id, api_key=options.api_key or ""
            )

        if not rpc_url:
            raise ConfigurationError(
                f"No rpc url found for chain {network}. Please provide a valid rpc url "
                "via the 'supported_chains' option.",
                network=network,
            )

        resolved = (rpc_url, chain_id)
        self._resolved_urls[memo_key] = resolved
        return resolved

    async def get_provider_from_rpc_url(
        self, rpc_url: str, chain_id: int | None = None
    ) -> AsyncWeb3:
        """Build, or fetch from cache, the connection for an RPC URL."""

        try:
            scheme = rpc_url.split(":", 1)[0].lower() if is_rpc_url(rpc_url) else ""
            if scheme in ("http", "https"):
                return self.cache.get_or_create(
                    rpc_url, chain_id, lambda: self._build_http_web3(rpc_url, chain_id)
                )
            if scheme in ("ws", "wss"):
                return await self._build_ws_web3(rpc_url)
        except Exception as exc:
            logger.warning("Falling back to default provider for %s: %s", rpc_url, exc)

        return self._build_default_web3(rpc_url)

    # ------------------------------------------------------------------
    # Internal wiring
    # ------------------------------------------------------------------
    def _build_http_web3(self, rpc_url: str, chain_id: int | None) -> AsyncWeb3:
        provider = AsyncHTTPProvider(
            rpc_url,
            request_kwargs={"timeout": ClientTimeout(total=self.options.request_timeout)},
            exception_retry_configuration=None,
            # chain id and other static lookups only need one round-trip
            cache_allowed_requests=chain_id is not None,
        )
        logger.info("Created HTTP provider for %s (chain %s)", rpc_url, chain_id)
        return AsyncWeb3(provider)

    async def _build_ws_web3(self, rpc_url: str) -> AsyncWeb3:
        provider = WebSocketProvider(rpc_url, request_timeout=self.options.request_timeout)
        web3 = await AsyncWeb3(provider)
        logger.info("Connected websocket provider for %s", rpc_url)
        return web3

    def _build_default_web3(self, rpc_url: str) -> AsyncWeb3:
        return AsyncWeb3(AsyncHTTPProvider(rpc_url, exception_retry_configuration=None))


def get_rpc_url(web3: AsyncWeb3) -> str | None:
    """Best-effort endpoint URL of a connection."""

    provider = getattr(web3, "provider", None)
    url = getattr(provider, "endpoint_uri", None)
    return str(url) if url else None
