"""
Artifact Adapters Package - Per-network artifact listing.

Features:
- One fetcher per provider, routed by network identifier
- Cursor pagination with a page cap
- Address validation before any network call
- Transient failures retried with backoff, client errors never retried

Quick Start:
    from artifact_adapters import create_default_registry
    from core import load_settings

    settings = load_settings()
    async with create_default_registry(settings.fetcher) as registry:
        address = await registry.resolve_identity("vitalik.eth")
        records = await registry.fetch_all_pages(address, "polygon")

Adding New Fetchers:
    class NewFetcher(BaseArtifactFetcher):
        @property
        def name(self) -> str:
            return "new_fetcher"

        @property
        def networks(self) -> list:
            return ["eth"]

        async def fetch_page_raw(self, address, network, cursor, page_size): ...

    registry.register(NewFetcher())
"""

from artifact_adapters.base import (
    BaseArtifactFetcher,
    is_valid_address,
)
from artifact_adapters.models import (
    NETWORKS,
    ChainFamily,
    FetcherHealth,
    FetcherStatus,
    FetchPage,
    FetchProgress,
    NetworkInfo,
    get_network,
    networks_for_family,
)
from artifact_adapters.providers import (
    FixtureFetcher,
    HeliusFetcher,
    MoralisFetcher,
)
from artifact_adapters.registry import FetcherRegistry, create_default_registry


__all__ = [
    # Base
    "BaseArtifactFetcher",
    "is_valid_address",

    # Models
    "NETWORKS",
    "NetworkInfo",
    "ChainFamily",
    "FetchPage",
    "FetchProgress",
    "FetcherHealth",
    "FetcherStatus",
    "get_network",
    "networks_for_family",

    # Providers
    "MoralisFetcher",
    "HeliusFetcher",
    "FixtureFetcher",

    # Registry
    "FetcherRegistry",
    "create_default_registry",
]
