"""
Artifact Fetcher Tests.

============================================================
PURPOSE
============================================================
Unit tests for the fetcher base class and the Moralis, Helius
and fixture providers.

TEST CATEGORIES:
- Validation tests: address checks before any I/O
- Error mapping tests: HTTP status -> pipeline errors, retry policy
- Provider tests: request shapes and raw record conversion
- Progress tests: callbacks scheduled, never awaited

============================================================
"""

import asyncio

import aiohttp
import pytest
from unittest.mock import AsyncMock, patch

from artifact_adapters.base import is_valid_address
from artifact_adapters.models import ChainFamily, FetcherStatus, FetchPage
from artifact_adapters.providers import FixtureFetcher, HeliusFetcher, MoralisFetcher
from core.config import FetcherSettings, NetworkEndpoint
from core.exceptions import InvalidAddressError, NetworkUnavailableError


EVM_ADDRESS = "0x" + "ab" * 20
SOLANA_ADDRESS = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


# ============================================================
# FIXTURES
# ============================================================

class FakeResponse:
    """Minimal aiohttp response stand-in."""

    def __init__(self, status=200, payload=None, headers=None, text=""):
        self.status = status
        self.headers = headers or {}
        self._payload = payload
        self._text = text

    async def text(self):
        return self._text

    async def json(self, content_type=None):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Session returning queued responses in order."""

    closed = False

    def __init__(self, *responses):
        self._responses = list(responses)
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        self.closed = True


def moralis_nft(token_id="1", **overrides):
    nft = {
        "token_address": "0xCONTRACT",
        "token_id": token_id,
        "contract_type": "ERC721",
        "name": "Collection",
        "symbol": "COL",
        "amount": "1",
        "token_uri": "ipfs://QmMeta/1.json",
        "metadata": '{"name": "Piece #1", "image": "ipfs://QmImg/1.png"}',
        "normalized_metadata": {"name": "Piece #1", "image": "ipfs://QmImg/1.png"},
        "possible_spam": False,
    }
    nft.update(overrides)
    return nft


@pytest.fixture
def no_backoff():
    with patch("artifact_adapters.base.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


# ============================================================
# VALIDATION TESTS
# ============================================================

class TestAddressValidation:
    """Tests for address validation."""

    def test_address_formats(self):
        """Test EVM and Solana address patterns."""
        assert is_valid_address(EVM_ADDRESS)
        assert is_valid_address("0x" + "AbCdEf0123" * 4)
        assert not is_valid_address("0x123")
        assert not is_valid_address("vitalik.eth")
        assert is_valid_address(SOLANA_ADDRESS, ChainFamily.SOLANA)
        assert not is_valid_address(EVM_ADDRESS, ChainFamily.SOLANA)

    @pytest.mark.asyncio
    async def test_invalid_address_before_io(self):
        """Test a malformed address raises without any request."""
        session = FakeSession()
        fetcher = MoralisFetcher(api_key="k", session=session)

        with pytest.raises(InvalidAddressError):
            await fetcher.fetch("0xnot-an-address", "eth")

        assert session.requests == []

    @pytest.mark.asyncio
    async def test_solana_address_on_evm_network(self):
        """Test the address family must match the network."""
        fetcher = MoralisFetcher(api_key="k", session=FakeSession())

        with pytest.raises(InvalidAddressError):
            await fetcher.fetch(SOLANA_ADDRESS, "polygon")

    @pytest.mark.asyncio
    async def test_unsupported_network(self):
        """Test a network outside the fetcher's coverage."""
        fetcher = MoralisFetcher(api_key="k", session=FakeSession())

        with pytest.raises(NetworkUnavailableError):
            await fetcher.fetch(SOLANA_ADDRESS, "solana")


# ============================================================
# ERROR MAPPING TESTS
# ============================================================

class TestErrorMapping:
    """Tests for HTTP error mapping and retry policy."""

    @pytest.mark.asyncio
    async def test_http_400_is_invalid_address(self, no_backoff):
        """Test HTTP 400 maps to InvalidAddressError and is not retried."""
        session = FakeSession(FakeResponse(400, text="invalid address"))
        fetcher = MoralisFetcher(api_key="k", session=session)

        with pytest.raises(InvalidAddressError):
            await fetcher.fetch(EVM_ADDRESS, "eth")

        assert len(session.requests) == 1
        no_backoff.assert_not_called()

    @pytest.mark.asyncio
    async def test_http_429_not_retried(self, no_backoff):
        """Test rate limiting surfaces immediately with Retry-After."""
        session = FakeSession(FakeResponse(429, headers={"Retry-After": "30"}))
        fetcher = MoralisFetcher(api_key="k", session=session)

        with pytest.raises(NetworkUnavailableError) as exc_info:
            await fetcher.fetch(EVM_ADDRESS, "eth")

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after_seconds == 30
        assert len(session.requests) == 1
        assert fetcher.get_health().status == FetcherStatus.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_server_error_retried(self, no_backoff):
        """Test a 5xx is retried once and the retry can succeed."""
        session = FakeSession(
            FakeResponse(503, text="busy"),
            FakeResponse(200, payload={"result": [moralis_nft()], "cursor": None}),
        )
        fetcher = MoralisFetcher(api_key="k", session=session)

        page = await fetcher.fetch(EVM_ADDRESS, "eth")

        assert len(page.artifacts) == 1
        assert len(session.requests) == 2
        no_backoff.assert_awaited_once_with(1.0)
        assert fetcher.get_health().status == FetcherStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, no_backoff):
        """Test persistent 5xx raises after the retry budget."""
        session = FakeSession(FakeResponse(500), FakeResponse(500))
        fetcher = MoralisFetcher(api_key="k", session=session)

        with pytest.raises(NetworkUnavailableError) as exc_info:
            await fetcher.fetch(EVM_ADDRESS, "eth")

        assert "Failed after 2 attempts" in exc_info.value.message
        assert exc_info.value.status_code == 500
        assert exc_info.value.network == "eth"

    @pytest.mark.asyncio
    async def test_connection_error(self, no_backoff):
        """Test transport errors become NetworkUnavailableError."""
        session = FakeSession(
            aiohttp.ClientConnectionError("refused"),
            aiohttp.ClientConnectionError("refused"),
        )
        fetcher = MoralisFetcher(api_key="k", session=session)

        with pytest.raises(NetworkUnavailableError):
            await fetcher.fetch(EVM_ADDRESS, "eth")

    @pytest.mark.asyncio
    async def test_undecodable_body(self, no_backoff):
        """Test an invalid JSON body becomes NetworkUnavailableError."""
        session = FakeSession(
            FakeResponse(200, payload=ValueError("bad json")),
            FakeResponse(200, payload=ValueError("bad json")),
        )
        fetcher = MoralisFetcher(api_key="k", session=session)

        with pytest.raises(NetworkUnavailableError):
            await fetcher.fetch(EVM_ADDRESS, "eth")

    @pytest.mark.asyncio
    async def test_health_degrades(self, no_backoff):
        """Test consecutive failures degrade the fetcher's health."""
        fetcher = FixtureFetcher()
        fetcher.fail("eth", NetworkUnavailableError("down", network="eth"))

        for _ in range(FixtureFetcher.DEGRADED_THRESHOLD):
            with pytest.raises(NetworkUnavailableError):
                await fetcher.fetch(EVM_ADDRESS, "eth")

        assert fetcher.get_health().status == FetcherStatus.DEGRADED
        assert fetcher.get_health().consecutive_failures == FixtureFetcher.DEGRADED_THRESHOLD


# ============================================================
# MORALIS TESTS
# ============================================================

class TestMoralisFetcher:
    """Tests for MoralisFetcher."""

    @pytest.mark.asyncio
    async def test_request_shape(self):
        """Test the listing request carries chain id, limit and cursor."""
        fetcher = MoralisFetcher(api_key="secret")
        payload = {"result": [moralis_nft()], "cursor": "next-page"}

        with patch.object(MoralisFetcher, "_request_json", new=AsyncMock(return_value=payload)) as request:
            page = await fetcher.fetch(EVM_ADDRESS, "polygon", cursor="abc", page_size=50)

        method, url = request.call_args.args
        kwargs = request.call_args.kwargs
        assert method == "GET"
        assert url == f"https://deep-index.moralis.io/api/v2.2/{EVM_ADDRESS}/nft"
        assert kwargs["params"]["chain"] == "0x89"
        assert kwargs["params"]["limit"] == 50
        assert kwargs["params"]["cursor"] == "abc"
        assert kwargs["headers"]["X-API-Key"] == "secret"
        assert page.cursor == "next-page"
        assert page.has_more

    @pytest.mark.asyncio
    async def test_network_override(self):
        """Test per-network endpoint and key overrides."""
        settings = FetcherSettings(
            moralis_api_key="default",
            network_overrides={"base": NetworkEndpoint("https://base.example/api/", "base-key")},
        )
        fetcher = MoralisFetcher.from_settings(settings)

        with patch.object(MoralisFetcher, "_request_json", new=AsyncMock(return_value={"result": []})) as request:
            page = await fetcher.fetch(EVM_ADDRESS, "base")

        assert request.call_args.args[1] == f"https://base.example/api/{EVM_ADDRESS}/nft"
        assert request.call_args.kwargs["headers"]["X-API-Key"] == "base-key"
        assert page.artifacts == []
        assert not page.has_more

    def test_to_raw_record(self):
        """Test Moralis records convert to the neutral shape."""
        record = MoralisFetcher.to_raw_record(moralis_nft(
            token_id="7",
            contract_type="ERC1155",
            amount="3",
            normalized_metadata={
                "name": "Song",
                "image": "ipfs://QmImg/7.png",
                "animation_url": "ipfs://QmAudio/7.mp3",
            },
            possible_spam=True,
        ))

        assert record["id"] == {"tokenId": "7"}
        assert record["contract"]["address"] == "0xCONTRACT"
        assert record["contract"]["type"] == "ERC1155"
        assert record["title"] == "Song"
        assert record["media"][0] == {"gateway": "ipfs://QmAudio/7.mp3", "kind": "animation"}
        assert record["balance"] == "3"
        assert record["possibleSpam"] is True
        assert isinstance(record["metadata"], str)

    @pytest.mark.asyncio
    async def test_resolve_ens(self):
        """Test ENS names resolve to addresses."""
        fetcher = MoralisFetcher(api_key="k")

        with patch.object(MoralisFetcher, "_request_json", new=AsyncMock(return_value={"address": EVM_ADDRESS})):
            assert await fetcher.resolve_ens("vitalik.eth") == EVM_ADDRESS

    @pytest.mark.asyncio
    async def test_resolve_ens_not_found(self):
        """Test an unknown ENS name is an invalid address."""
        fetcher = MoralisFetcher(api_key="k")
        not_found = NetworkUnavailableError("HTTP 404", network="eth", status_code=404)

        with patch.object(MoralisFetcher, "_request_json", new=AsyncMock(side_effect=not_found)):
            with pytest.raises(InvalidAddressError):
                await fetcher.resolve_ens("nobody.eth")


# ============================================================
# HELIUS TESTS
# ============================================================

class TestHeliusFetcher:
    """Tests for HeliusFetcher."""

    def _asset(self, asset_id="Asset1"):
        return {
            "id": asset_id,
            "interface": "V1_NFT",
            "content": {
                "json_uri": "https://arweave.net/meta",
                "metadata": {"name": "Sol Piece", "symbol": "SP"},
                "links": {"image": "https://arweave.net/img"},
                "files": [{"uri": "https://arweave.net/img", "mime": "image/png"}],
            },
            "grouping": [{"group_key": "collection", "group_value": "Coll1"}],
        }

    @pytest.mark.asyncio
    async def test_page_cursor(self):
        """Test a full page yields the next page number as cursor."""
        fetcher = HeliusFetcher(api_key="hk")
        payload = {"result": {"items": [self._asset("A1"), self._asset("A2")]}}

        with patch.object(HeliusFetcher, "_request_json", new=AsyncMock(return_value=payload)) as request:
            page = await fetcher.fetch(SOLANA_ADDRESS, "solana", page_size=2)

        body = request.call_args.kwargs["json_body"]
        assert request.call_args.args[0] == "POST"
        assert body["method"] == "getAssetsByOwner"
        assert body["params"] == {"ownerAddress": SOLANA_ADDRESS, "page": 1, "limit": 2}
        assert request.call_args.kwargs["params"] == {"api-key": "hk"}
        assert page.cursor == "2"

    @pytest.mark.asyncio
    async def test_short_page_ends_listing(self):
        """Test a short page has no continuation."""
        fetcher = HeliusFetcher(api_key="hk")
        payload = {"result": {"items": [self._asset()]}}

        with patch.object(HeliusFetcher, "_request_json", new=AsyncMock(return_value=payload)):
            page = await fetcher.fetch(SOLANA_ADDRESS, "solana", cursor="3", page_size=10)

        assert page.cursor is None

    @pytest.mark.asyncio
    async def test_invalid_params_error(self):
        """Test the RPC invalid-params error maps to InvalidAddressError."""
        fetcher = HeliusFetcher(api_key="hk")
        payload = {"error": {"code": -32602, "message": "invalid owner"}}

        with patch.object(HeliusFetcher, "_request_json", new=AsyncMock(return_value=payload)) as request:
            with pytest.raises(InvalidAddressError):
                await fetcher.fetch(SOLANA_ADDRESS, "solana")

        assert request.await_count == 1

    @pytest.mark.asyncio
    async def test_malformed_asset_shapes(self):
        """Test non-object content, links and token info do not break a page."""
        fetcher = HeliusFetcher(api_key="hk")
        odd = {
            "id": "Odd1",
            "content": "x",
            "grouping": "not-a-list",
            "token_info": ["nope"],
        }
        payload = {"result": {"items": [odd, "junk", self._asset("A1")]}}

        with patch.object(HeliusFetcher, "_request_json", new=AsyncMock(return_value=payload)):
            page = await fetcher.fetch(SOLANA_ADDRESS, "solana", page_size=10)

        assert len(page.artifacts) == 2
        record = page.artifacts[0]
        assert record["id"] == {"tokenId": "Odd1"}
        assert record["contract"]["address"] == "Odd1"
        assert record["media"] == []
        assert record["balance"] is None

    @pytest.mark.asyncio
    async def test_non_object_result(self):
        """Test a list-valued result yields an empty final page."""
        fetcher = HeliusFetcher(api_key="hk")

        with patch.object(HeliusFetcher, "_request_json", new=AsyncMock(return_value={"result": []})):
            page = await fetcher.fetch(SOLANA_ADDRESS, "solana")

        assert page.artifacts == []
        assert page.cursor is None

    def test_nested_non_objects(self):
        """Test metadata and links of the wrong type are ignored."""
        asset = self._asset()
        asset["content"]["metadata"] = "plain"
        asset["content"]["links"] = ["x"]
        asset["content"]["files"] = "none"

        record = HeliusFetcher.to_raw_record(asset)

        assert record["metadata"] == {}
        assert record["media"] == []
        assert record["tokenUri"] == "https://arweave.net/meta"

    def test_to_raw_record(self):
        """Test DAS assets convert to the neutral shape."""
        record = HeliusFetcher.to_raw_record(self._asset())

        assert record["id"] == {"tokenId": "Asset1"}
        assert record["contract"]["address"] == "Coll1"
        assert record["contract"]["type"] == "V1_NFT"
        assert record["title"] == "Sol Piece"
        assert record["metadata"]["image"] == "https://arweave.net/img"
        assert record["metadata"]["mimeType"] == "image/png"


# ============================================================
# FIXTURE FETCHER / PROGRESS TESTS
# ============================================================

class TestFixtureFetcher:
    """Tests for FixtureFetcher and progress events."""

    @pytest.mark.asyncio
    async def test_offset_pagination(self):
        """Test offsets are used as cursors."""
        records = [{"id": {"tokenId": str(i)}, "contract": {"address": "0xc"}} for i in range(3)]
        fetcher = FixtureFetcher({"polygon": {EVM_ADDRESS.upper().replace("0X", "0x"): records}})

        first = await fetcher.fetch(EVM_ADDRESS, "polygon", page_size=2)
        second = await fetcher.fetch(EVM_ADDRESS, "polygon", cursor=first.cursor, page_size=2)

        assert [r["id"]["tokenId"] for r in first.artifacts] == ["0", "1"]
        assert first.cursor == "2"
        assert [r["id"]["tokenId"] for r in second.artifacts] == ["2"]
        assert second.cursor is None

    @pytest.mark.asyncio
    async def test_progress_callback_scheduled(self):
        """Test progress is delivered after fetch returns, not awaited inline."""
        fetcher = FixtureFetcher({"eth": {EVM_ADDRESS: [{"id": {"tokenId": "1"}}]}})
        events = []

        page = await fetcher.fetch(EVM_ADDRESS, "eth", on_progress=events.append)
        assert isinstance(page, FetchPage)
        assert events == []

        await asyncio.sleep(0)
        assert len(events) == 1
        assert events[0].fetched == 1
        assert events[0].done

    @pytest.mark.asyncio
    async def test_failing_progress_callback(self):
        """Test a raising callback does not affect the fetch."""
        fetcher = FixtureFetcher({"eth": {EVM_ADDRESS: []}})

        def broken(progress):
            raise RuntimeError("ui gone")

        page = await fetcher.fetch(EVM_ADDRESS, "eth", on_progress=broken)
        await asyncio.sleep(0)

        assert page.artifacts == []

    @pytest.mark.asyncio
    async def test_async_progress_callback(self):
        """Test coroutine callbacks run as background tasks."""
        fetcher = FixtureFetcher({"eth": {EVM_ADDRESS: []}})
        events = []

        async def on_progress(progress):
            events.append(progress)

        await fetcher.fetch(EVM_ADDRESS, "eth", on_progress=on_progress)
        await asyncio.sleep(0)

        assert len(events) == 1
