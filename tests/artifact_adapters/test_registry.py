"""
Fetcher Registry Tests.

============================================================
PURPOSE
============================================================
Tests for network routing, cursor following with the page cap,
and wallet identity resolution.

TEST CATEGORIES:
- Routing tests: registration, replacement, unknown networks
- Pagination tests: cursor following, page cap, progress totals
- Identity tests: raw addresses, ENS names, rejects without I/O

============================================================
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, patch

from artifact_adapters.providers import FixtureFetcher, MoralisFetcher
from artifact_adapters.registry import FetcherRegistry, create_default_registry
from core.config import FetcherSettings
from core.exceptions import InvalidAddressError, NetworkUnavailableError


EVM_ADDRESS = "0x" + "cd" * 20
SOLANA_ADDRESS = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


# ============================================================
# FIXTURES
# ============================================================

def records(count, contract="0xc0ffee"):
    return [
        {"id": {"tokenId": str(i)}, "contract": {"address": contract}}
        for i in range(count)
    ]


@pytest.fixture
def fixture_fetcher():
    return FixtureFetcher({"polygon": {EVM_ADDRESS: records(5)}})


@pytest.fixture
def registry(fixture_fetcher):
    reg = FetcherRegistry(page_size=2, max_pages=20)
    reg.register(fixture_fetcher)
    return reg


# ============================================================
# ROUTING TESTS
# ============================================================

class TestRouting:
    """Tests for fetcher registration and routing."""

    def test_register_routes_networks(self, registry):
        """Test every served network routes to the fetcher."""
        assert registry.list_fetchers() == ["fixture"]
        assert "polygon" in registry.list_networks()
        assert "solana" in registry.list_networks()

    def test_later_registration_wins(self, registry, fixture_fetcher):
        """Test a later fetcher takes over the networks it serves."""
        moralis = MoralisFetcher(api_key="k")
        registry.register(moralis)

        assert registry.get_fetcher("eth") is moralis
        assert registry.get_fetcher("solana") is fixture_fetcher

    def test_unregister(self, registry):
        """Test unregistering removes routes."""
        registry.unregister("fixture")

        with pytest.raises(NetworkUnavailableError):
            registry.get_fetcher("polygon")

    def test_unknown_network(self):
        """Test a network without a fetcher is unavailable."""
        with pytest.raises(NetworkUnavailableError) as exc_info:
            FetcherRegistry().get_fetcher("tezos")
        assert exc_info.value.network == "tezos"

    def test_default_registry(self):
        """Test the default registry wires EVM and Solana providers."""
        registry = create_default_registry(FetcherSettings(moralis_api_key="m", helius_api_key="h"))

        assert set(registry.list_fetchers()) == {"moralis", "helius"}
        assert registry.get_fetcher("eth").name == "moralis"
        assert registry.get_fetcher("solana").name == "helius"


# ============================================================
# PAGINATION TESTS
# ============================================================

class TestFetchAllPages:
    """Tests for cursor following."""

    @pytest.mark.asyncio
    async def test_follows_cursors(self, registry, fixture_fetcher):
        """Test every page is fetched until the cursor runs out."""
        collected = await registry.fetch_all_pages(EVM_ADDRESS, "polygon")

        assert [r["id"]["tokenId"] for r in collected] == ["0", "1", "2", "3", "4"]
        assert [c["cursor"] for c in fixture_fetcher.calls] == [None, "2", "4"]

    @pytest.mark.asyncio
    async def test_page_cap(self, registry, fixture_fetcher):
        """Test listing stops at max_pages even when more pages exist."""
        collected = await registry.fetch_all_pages(EVM_ADDRESS, "polygon", max_pages=2)

        assert len(collected) == 4
        assert len(fixture_fetcher.calls) == 2

    @pytest.mark.asyncio
    async def test_progress_totals(self, registry):
        """Test progress events carry running totals."""
        events = []

        await registry.fetch_all_pages(EVM_ADDRESS, "polygon", on_progress=events.append)
        await asyncio.sleep(0)

        assert [(e.page, e.total_so_far) for e in events] == [(1, 2), (2, 4), (3, 5)]
        assert events[-1].done

    @pytest.mark.asyncio
    async def test_empty_wallet(self, registry):
        """Test a wallet with no artifacts yields an empty list."""
        assert await registry.fetch_all_pages(EVM_ADDRESS, "eth") == []

    @pytest.mark.asyncio
    async def test_failure_propagates(self, registry, fixture_fetcher):
        """Test a failing network raises to the caller."""
        fixture_fetcher.fail("polygon", NetworkUnavailableError("down", network="polygon"))

        with pytest.raises(NetworkUnavailableError):
            await registry.fetch_all_pages(EVM_ADDRESS, "polygon")


# ============================================================
# IDENTITY TESTS
# ============================================================

class TestResolveIdentity:
    """Tests for resolve_identity."""

    @pytest.mark.asyncio
    async def test_raw_addresses_unchanged(self, registry):
        """Test valid EVM and Solana addresses are returned as-is."""
        assert await registry.resolve_identity(EVM_ADDRESS) == EVM_ADDRESS
        assert await registry.resolve_identity(f"  {SOLANA_ADDRESS} ") == SOLANA_ADDRESS

    @pytest.mark.asyncio
    async def test_garbage_rejected_without_io(self):
        """Test an unparseable identity is rejected before any provider call."""
        registry = FetcherRegistry()
        moralis = MoralisFetcher(api_key="k")
        registry.register(moralis)

        with patch.object(MoralisFetcher, "_request_json", new=AsyncMock()) as request:
            with pytest.raises(InvalidAddressError):
                await registry.resolve_identity("not a wallet")
            with pytest.raises(InvalidAddressError):
                await registry.resolve_identity(".eth")

        request.assert_not_called()

    @pytest.mark.asyncio
    async def test_ens_name(self):
        """Test ENS names go through an ENS-capable fetcher."""
        registry = FetcherRegistry()
        registry.register(MoralisFetcher(api_key="k"))

        with patch.object(MoralisFetcher, "resolve_ens", new=AsyncMock(return_value=EVM_ADDRESS)) as resolve:
            address = await registry.resolve_identity("Vitalik.eth")

        assert address == EVM_ADDRESS
        resolve.assert_awaited_once_with("vitalik.eth")

    @pytest.mark.asyncio
    async def test_ens_without_resolver(self, registry):
        """Test ENS names fail when no fetcher can resolve them."""
        with pytest.raises(InvalidAddressError):
            await registry.resolve_identity("vitalik.eth")
