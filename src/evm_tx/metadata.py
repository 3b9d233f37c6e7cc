"""Contract metadata and source resolution from deployed bytecode."""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Mapping
from typing import Any, Protocol

from web3 import AsyncWeb3, Web3

from .exceptions import MetadataResolutionError, NetworkError
from .storage import IpfsStorage
from .types import ContractMetadata, ContractSource

logger = logging.getLogger(__name__)

# CBOR text key "ipfs" followed by a 34 byte byte-string header
_IPFS_CBOR_MARKER = b"\x64ipfs\x58\x22"
_MULTIHASH_LENGTH = 34
_CID_V1_DAG_PB = b"\x01\x70"


class MetadataResolver(Protocol):
    """Storage collaborator used for ABI lookup and error enrichment."""

    async def fetch_metadata(self, address: str, web3: AsyncWeb3) -> ContractMetadata: ...

    async def fetch_sources(self, metadata: ContractMetadata) -> list[ContractSource]: ...


def extract_ipfs_hash(bytecode: bytes) -> str | None:
    """Return the CIDv1 of the metadata hash solc appends to runtime bytecode."""

    if len(bytecode) < 2:
        return None

    cbor_length = int.from_bytes(bytecode[-2:], "big")
    if cbor_length == 0 or cbor_length + 2 > len(bytecode):
        return None

    cbor = bytecode[-2 - cbor_length : -2]
    index = cbor.find(_IPFS_CBOR_MARKER)
    if index < 0:
        return None

    start = index + len(_IPFS_CBOR_MARKER)
    multihash = cbor[start : start + _MULTIHASH_LENGTH]
    if len(multihash) != _MULTIHASH_LENGTH:
        return None

    encoded = base64.b32encode(_CID_V1_DAG_PB + multihash).decode("ascii")
    return "b" + encoded.lower().rstrip("=")


class ContractMetadataResolver:
    """Resolve Solidity metadata for deployed contracts via IPFS."""

    def __init__(self, storage: IpfsStorage | None = None) -> None:
        self._storage = storage or IpfsStorage()
        self._by_hash: dict[str, ContractMetadata] = {}

    @property
    def storage(self) -> IpfsStorage:
        return self._storage

    async def fetch_metadata(self, address: str, web3: AsyncWeb3) -> ContractMetadata:
        checksum = Web3.to_checksum_address(address)
        code = bytes(await web3.eth.get_code(checksum))
        ipfs_hash = extract_ipfs_hash(code)
        if ipfs_hash is None:
            raise MetadataResolutionError(
                f"No metadata hash found in bytecode of {checksum}", address=checksum
            )

        cached = self._by_hash.get(ipfs_hash)
        if cached is not None:
            return cached

        uri = f"ipfs://{ipfs_hash}"
        try:
            raw = await self._storage.download_json(uri)
        except NetworkError as exc:
            raise MetadataResolutionError(
                f"Could not download metadata for {checksum}",
                address=checksum,
                details={"uri": uri, "error": str(exc)},
            ) from exc

        metadata = _parse_metadata(raw, uri, checksum)
        self._by_hash[ipfs_hash] = metadata
        logger.debug("Resolved metadata for %s (%s)", checksum, metadata.name)
        return metadata

    async def fetch_sources(self, metadata: ContractMetadata) -> list[ContractSource]:
        sources = metadata.metadata.get("sources")
        if not isinstance(sources, Mapping):
            return []

        entries = [
            (str(filename), entry)
            for filename, entry in sources.items()
            if isinstance(entry, Mapping)
        ]
        contents = await asyncio.gather(*(self._source_content(entry) for _, entry in entries))
        return [
            ContractSource(filename=filename, source=content)
            for (filename, _), content in zip(entries, contents)
            if content is not None
        ]

    async def _source_content(self, entry: Mapping[str, Any]) -> str | None:
        content = entry.get("content")
        if isinstance(content, str):
            return content

        for url in entry.get("urls") or []:
            if not isinstance(url, str) or "ipfs" not in url:
                continue
            try:
                return await self._storage.download_text(url)
            except NetworkError as exc:
                logger.debug("Failed to download source %s: %s", url, exc)
        return None


def _parse_metadata(raw: Any, uri: str, address: str) -> ContractMetadata:
    if not isinstance(raw, Mapping):
        raise MetadataResolutionError(
            f"Metadata for {address} is not a JSON object", address=address, details={"uri": uri}
        )

    output = raw.get("output")
    abi = output.get("abi") if isinstance(output, Mapping) else None
    if not isinstance(abi, list):
        raise MetadataResolutionError(
            f"Metadata for {address} does not contain an ABI", address=address, details={"uri": uri}
        )

    name = None
    settings = raw.get("settings")
    target = settings.get("compilationTarget") if isinstance(settings, Mapping) else None
    if isinstance(target, Mapping) and target:
        name = str(next(iter(target.values())))

    return ContractMetadata(name=name, abi=abi, metadata=raw, metadata_uri=uri)
