"""
Artifact Fetcher Registry - Network routing and cursor following.

Features:
- Fetcher registration and network -> fetcher routing
- Cursor-following pagination up to a page cap
- Wallet identity resolution (raw addresses and ENS names)
"""

import logging
from typing import Any, Dict, List, Optional

from artifact_adapters.base import (
    BaseArtifactFetcher,
    ProgressCallback,
    is_valid_address,
)
from artifact_adapters.models import ChainFamily, FetcherHealth, FetchPage
from artifact_adapters.providers.helius import HeliusFetcher
from artifact_adapters.providers.moralis import MoralisFetcher
from core.cancellation import CancellationToken
from core.config import FetcherSettings
from core.exceptions import InvalidAddressError, NetworkUnavailableError


logger = logging.getLogger(__name__)


ENS_SUFFIX = ".eth"


class FetcherRegistry:
    """
    Central registry for artifact fetchers.

    Later registrations win for the networks they serve.

    Usage:
        registry = FetcherRegistry()
        registry.register(MoralisFetcher(api_key="..."))
        registry.register(HeliusFetcher(api_key="..."))

        records = await registry.fetch_all_pages(address, "polygon")
    """

    def __init__(self, page_size: int = 100, max_pages: int = 20) -> None:
        self._fetchers: Dict[str, BaseArtifactFetcher] = {}
        self._routes: Dict[str, str] = {}
        self._page_size = page_size
        self._max_pages = max_pages

    def register(self, fetcher: BaseArtifactFetcher) -> None:
        """Register a fetcher for every network it serves."""
        name = fetcher.name
        if name in self._fetchers:
            logger.warning(f"Fetcher '{name}' already registered, replacing")
        self._fetchers[name] = fetcher
        for network in fetcher.networks:
            self._routes[network] = name
        logger.info(f"Registered artifact fetcher '{name}' for {len(fetcher.networks)} networks")

    def unregister(self, name: str) -> Optional[BaseArtifactFetcher]:
        fetcher = self._fetchers.pop(name, None)
        if fetcher is not None:
            self._routes = {n: f for n, f in self._routes.items() if f != name}
            logger.info(f"Unregistered fetcher '{name}'")
        return fetcher

    def list_fetchers(self) -> List[str]:
        return list(self._fetchers)

    def list_networks(self) -> List[str]:
        return list(self._routes)

    def get_fetcher(self, network: str) -> BaseArtifactFetcher:
        """
        Fetcher serving `network`.

        Raises:
            NetworkUnavailableError: No fetcher serves the network
        """
        name = self._routes.get(network)
        if name is None:
            raise NetworkUnavailableError(
                f"No fetcher registered for network '{network}'",
                network=network,
            )
        return self._fetchers[name]

    async def fetch(
        self,
        address: str,
        network: str,
        cursor: Optional[str] = None,
        page_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> FetchPage:
        """Fetch one page through the network's fetcher."""
        return await self.get_fetcher(network).fetch(
            address,
            network,
            cursor=cursor,
            page_size=page_size or self._page_size,
            on_progress=on_progress,
            cancel_token=cancel_token,
        )

    async def fetch_all_pages(
        self,
        address: str,
        network: str,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[Dict[str, Any]]:
        """
        Follow continuation cursors and collect every raw record.

        Stops after `max_pages` pages even when the provider reports more.
        """
        fetcher = self.get_fetcher(network)
        limit = max_pages or self._max_pages
        records: List[Dict[str, Any]] = []
        cursor: Optional[str] = None

        for page_number in range(1, limit + 1):
            page = await fetcher.fetch(
                address,
                network,
                cursor=cursor,
                page_size=page_size or self._page_size,
                on_progress=on_progress,
                cancel_token=cancel_token,
                page_number=page_number,
                total_so_far=len(records),
            )
            records.extend(page.artifacts)
            cursor = page.cursor
            if cursor is None:
                break
        else:
            if cursor is not None:
                logger.warning(
                    f"[{fetcher.name}] Stopped {network} listing for {address} "
                    f"after {limit} pages ({len(records)} records)"
                )

        return records

    async def resolve_identity(self, address: str) -> str:
        """
        Resolve a user-supplied identity to a wallet address.

        Raw EVM and Solana addresses are returned unchanged; `*.eth`
        names are resolved through an ENS-capable fetcher.

        Raises:
            InvalidAddressError: Not an address and not a resolvable name
        """
        candidate = (address or "").strip()
        if is_valid_address(candidate, ChainFamily.EVM) or is_valid_address(candidate, ChainFamily.SOLANA):
            return candidate

        if not candidate.lower().endswith(ENS_SUFFIX) or len(candidate) <= len(ENS_SUFFIX):
            raise InvalidAddressError("Invalid wallet address", address=address)

        for fetcher in self._fetchers.values():
            resolve_ens = getattr(fetcher, "resolve_ens", None)
            if resolve_ens is not None:
                return await resolve_ens(candidate.lower())

        raise InvalidAddressError(
            f"No ENS resolver available for {candidate}",
            address=address,
        )

    def get_health(self) -> Dict[str, FetcherHealth]:
        return {name: fetcher.get_health() for name, fetcher in self._fetchers.items()}

    async def close(self) -> None:
        for fetcher in self._fetchers.values():
            await fetcher.close()

    async def __aenter__(self) -> "FetcherRegistry":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_default_registry(settings: Optional[FetcherSettings] = None) -> FetcherRegistry:
    """Registry with the Moralis (EVM) and Helius (Solana) fetchers."""
    settings = settings or FetcherSettings()
    registry = FetcherRegistry(page_size=settings.page_size, max_pages=settings.max_pages)
    registry.register(MoralisFetcher.from_settings(settings))
    registry.register(HeliusFetcher.from_settings(settings))
    if not settings.moralis_api_key:
        logger.warning("MORALIS_API_KEY not set, EVM listings will be rejected by the provider")
    if not settings.helius_api_key:
        logger.warning("HELIUS_API_KEY not set, Solana listings will be rejected by the provider")
    return registry
