"""IPFS gateway downloads used for contract metadata and sources."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from .config import DEFAULT_REQUEST_TIMEOUT
from .constants import DEFAULT_IPFS_GATEWAY
from .exceptions import NetworkError
from .utils import http_session

logger = logging.getLogger(__name__)

_IPFS_PREFIXES = ("ipfs://", "dweb:/ipfs/", "/ipfs/")


class IpfsStorage:
    """Download content addressed by ``ipfs://`` style URIs through a gateway."""

    def __init__(
        self,
        gateway_url: str = DEFAULT_IPFS_GATEWAY,
        *,
        session: aiohttp.ClientSession | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.gateway_url = gateway_url if gateway_url.endswith("/") else f"{gateway_url}/"
        self._session = session
        self._request_timeout = request_timeout

    def resolve_uri(self, uri: str) -> str:
        for prefix in _IPFS_PREFIXES:
            if uri.startswith(prefix):
                return f"{self.gateway_url}{uri[len(prefix):]}"
        return uri

    async def download_json(self, uri: str) -> Any:
        return await self._download(uri, as_json=True)

    async def download_text(self, uri: str) -> str:
        return await self._download(uri, as_json=False)

    async def _download(self, uri: str, *, as_json: bool) -> Any:
        url = self.resolve_uri(uri)
        timeout = aiohttp.ClientTimeout(total=self._request_timeout)
        try:
            async with http_session(self._session) as session:
                async with session.get(url, timeout=timeout) as response:
                    if response.status >= 400:
                        raise NetworkError(
                            f"Failed to download {uri}",
                            endpoint=url,
                            status_code=response.status,
                        )
                    if as_json:
                        return await response.json(content_type=None)
                    return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise NetworkError(
                f"Failed to download {uri}",
                endpoint=url,
                details={"error": str(exc)},
            ) from exc
