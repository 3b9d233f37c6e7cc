"""Tests for contract metadata resolution and IPFS storage."""

from unittest.mock import AsyncMock

import pytest
from conftest import TEST_ABI, make_web3

from evm_tx.exceptions import MetadataResolutionError, NetworkError
from evm_tx.metadata import ContractMetadataResolver, extract_ipfs_hash
from evm_tx.storage import IpfsStorage

ADDRESS = "0x" + "aa" * 20
MULTIHASH = b"\x12\x20" + bytes(range(32))


def _bytecode_with_metadata(multihash: bytes = MULTIHASH) -> bytes:
    cbor = b"\xa2\x64ipfs\x58\x22" + multihash + b"\x64solc\x43\x00\x08\x13"
    return b"\x60\x80\x60\x40" + cbor + len(cbor).to_bytes(2, "big")


METADATA = {
    "compiler": {"version": "0.8.19"},
    "output": {"abi": TEST_ABI},
    "settings": {"compilationTarget": {"contracts/Token.sol": "Token"}},
    "sources": {
        "contracts/Token.sol": {"content": "contract Token {}"},
        "contracts/Lib.sol": {"urls": ["bzz-raw://ffff", "dweb:/ipfs/QmLib"]},
    },
}


class TestIpfsHash:
    def test_extracts_cid_v1(self):
        cid = extract_ipfs_hash(_bytecode_with_metadata())
        assert cid is not None
        assert cid.startswith("bafybei")
        assert len(cid) == 59

    def test_distinct_hashes(self):
        other = b"\x12\x20" + bytes(range(1, 33))
        assert extract_ipfs_hash(_bytecode_with_metadata()) != extract_ipfs_hash(
            _bytecode_with_metadata(other)
        )

    @pytest.mark.parametrize("code", [b"", b"\x00", b"\x60\x80\x60\x40\x00\x00", b"\xff" * 40])
    def test_no_metadata(self, code):
        assert extract_ipfs_hash(code) is None


class TestContractMetadataResolver:
    def _resolver(self, metadata=METADATA):
        storage = IpfsStorage("https://gateway.example/ipfs")
        storage.download_json = AsyncMock(return_value=metadata)
        storage.download_text = AsyncMock(return_value="library Lib {}")
        return ContractMetadataResolver(storage), storage

    def _web3(self, code: bytes):
        web3 = make_web3()
        web3.eth.get_code = AsyncMock(return_value=code)
        return web3

    @pytest.mark.asyncio
    async def test_fetch_metadata(self):
        resolver, storage = self._resolver()
        web3 = self._web3(_bytecode_with_metadata())

        metadata = await resolver.fetch_metadata(ADDRESS, web3)

        assert metadata.name == "Token"
        assert list(metadata.abi) == TEST_ABI
        assert metadata.metadata_uri.startswith("ipfs://bafybei")
        assert metadata.has_sources

    @pytest.mark.asyncio
    async def test_metadata_cached_by_hash(self):
        resolver, storage = self._resolver()
        web3 = self._web3(_bytecode_with_metadata())

        first = await resolver.fetch_metadata(ADDRESS, web3)
        second = await resolver.fetch_metadata("0x" + "bb" * 20, web3)

        assert first is second
        storage.download_json.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_bytecode_without_metadata(self):
        resolver, _ = self._resolver()
        with pytest.raises(MetadataResolutionError):
            await resolver.fetch_metadata(ADDRESS, self._web3(b"\x60\x80"))

    @pytest.mark.asyncio
    async def test_download_failure(self):
        resolver, storage = self._resolver()
        storage.download_json.side_effect = NetworkError("gateway timeout")
        with pytest.raises(MetadataResolutionError) as exc_info:
            await resolver.fetch_metadata(ADDRESS, self._web3(_bytecode_with_metadata()))
        assert isinstance(exc_info.value.__cause__, NetworkError)

    @pytest.mark.asyncio
    async def test_metadata_without_abi(self):
        resolver, _ = self._resolver({"settings": {}})
        with pytest.raises(MetadataResolutionError):
            await resolver.fetch_metadata(ADDRESS, self._web3(_bytecode_with_metadata()))

    @pytest.mark.asyncio
    async def test_fetch_sources(self):
        resolver, storage = self._resolver()
        web3 = self._web3(_bytecode_with_metadata())
        metadata = await resolver.fetch_metadata(ADDRESS, web3)

        sources = await resolver.fetch_sources(metadata)

        assert [source.filename for source in sources] == [
            "contracts/Token.sol",
            "contracts/Lib.sol",
        ]
        assert sources[1].source == "library Lib {}"
        storage.download_text.assert_awaited_once_with("dweb:/ipfs/QmLib")

    @pytest.mark.asyncio
    async def test_non_string_urls_are_skipped(self):
        metadata = {
            **METADATA,
            "sources": {"contracts/Lib.sol": {"urls": [None, 42, "dweb:/ipfs/QmLib"]}},
        }
        resolver, storage = self._resolver(metadata)
        web3 = self._web3(_bytecode_with_metadata())

        sources = await resolver.fetch_sources(await resolver.fetch_metadata(ADDRESS, web3))

        assert [source.filename for source in sources] == ["contracts/Lib.sol"]
        storage.download_text.assert_awaited_once_with("dweb:/ipfs/QmLib")


class TestIpfsStorage:
    @pytest.mark.parametrize(
        "uri,expected",
        [
            ("ipfs://QmHash/meta.json", "https://gateway.example/ipfs/QmHash/meta.json"),
            ("dweb:/ipfs/QmHash", "https://gateway.example/ipfs/QmHash"),
            ("/ipfs/QmHash", "https://gateway.example/ipfs/QmHash"),
            ("https://other.example/file", "https://other.example/file"),
        ],
    )
    def test_resolve_uri(self, uri, expected):
        assert IpfsStorage("https://gateway.example/ipfs").resolve_uri(uri) == expected
