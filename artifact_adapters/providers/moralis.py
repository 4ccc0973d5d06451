"""
Moralis Artifact Fetcher - EVM NFT listing.

Lists artifacts owned by a wallet through the Moralis Web3 Data API
and converts each record into the provider-neutral raw shape consumed
by the artifact normalizer.

Endpoints:
- GET /{address}/nft?chain=0x1&format=decimal&limit=N&cursor=...
- GET /resolve/ens/{domain}

Supported chains: every EVM network in artifact_adapters.models.NETWORKS
"""

import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from artifact_adapters.base import BaseArtifactFetcher, is_valid_address
from artifact_adapters.models import ChainFamily, FetchPage, get_network, networks_for_family
from core.config import FetcherSettings
from core.exceptions import InvalidAddressError, NetworkUnavailableError


logger = logging.getLogger(__name__)


class MoralisFetcher(BaseArtifactFetcher):
    """
    Moralis Web3 Data API fetcher for EVM networks.

    Usage:
        fetcher = MoralisFetcher(api_key="...")
        page = await fetcher.fetch("0xabc...", "polygon")
    """

    DEFAULT_BASE_URL = "https://deep-index.moralis.io/api/v2.2"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
        settings: Optional[FetcherSettings] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key, timeout, session, **kwargs)
        self._base_url = base_url.rstrip("/")
        self._settings = settings

    @classmethod
    def from_settings(cls, settings: FetcherSettings, **kwargs: Any) -> "MoralisFetcher":
        return cls(
            api_key=settings.moralis_api_key,
            base_url=settings.moralis_base_url,
            timeout=settings.timeout_seconds,
            settings=settings,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return "moralis"

    @property
    def networks(self) -> List[str]:
        return networks_for_family(ChainFamily.EVM)

    def _endpoint_for(self, network: str) -> str:
        if self._settings is not None:
            override = self._settings.override_for(network)
            if override.endpoint:
                return override.endpoint.rstrip("/")
        return self._base_url

    def _headers_for(self, network: Optional[str] = None) -> Dict[str, str]:
        api_key = self._api_key
        if network and self._settings is not None:
            override = self._settings.override_for(network)
            if override.api_key:
                api_key = override.api_key
        headers = {"accept": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        return headers

    async def fetch_page_raw(
        self,
        address: str,
        network: str,
        cursor: Optional[str],
        page_size: int,
    ) -> FetchPage:
        info = get_network(network)
        params: Dict[str, Any] = {
            "chain": info.chain_id if info else network,
            "format": "decimal",
            "limit": page_size,
            "normalizeMetadata": "true",
        }
        if cursor:
            params["cursor"] = cursor

        data = await self._request_json(
            "GET",
            f"{self._endpoint_for(network)}/{address}/nft",
            network=network,
            params=params,
            headers=self._headers_for(network),
            address=address,
        )
        if not isinstance(data, dict):
            raise NetworkUnavailableError(
                "Unexpected Moralis response shape",
                network=network,
            )

        records = [self.to_raw_record(nft) for nft in data.get("result") or [] if isinstance(nft, dict)]
        return FetchPage(artifacts=records, cursor=data.get("cursor") or None)

    @staticmethod
    def to_raw_record(nft: Dict[str, Any]) -> Dict[str, Any]:
        """Convert a Moralis NFT record into the neutral raw shape."""
        normalized = nft.get("normalized_metadata") or {}
        if not isinstance(normalized, dict):
            normalized = {}

        metadata = nft.get("metadata")
        parsed: Dict[str, Any] = {}
        if isinstance(metadata, dict):
            parsed = metadata
        elif isinstance(metadata, str) and metadata:
            try:
                loaded = json.loads(metadata)
                if isinstance(loaded, dict):
                    parsed = loaded
            except ValueError:
                pass

        title = normalized.get("name") or parsed.get("name") or nft.get("name")
        description = normalized.get("description") or parsed.get("description")
        image = normalized.get("image") or parsed.get("image")
        animation = normalized.get("animation_url") or parsed.get("animation_url")

        media = []
        if animation:
            media.append({"gateway": animation, "kind": "animation"})
        if image:
            media.append({"gateway": image, "kind": "image"})

        return {
            "id": {"tokenId": nft.get("token_id")},
            "contract": {
                "address": nft.get("token_address"),
                "name": nft.get("name"),
                "symbol": nft.get("symbol"),
                "type": nft.get("contract_type"),
            },
            "title": title,
            "description": description,
            "media": media,
            "metadata": metadata,
            "balance": nft.get("amount"),
            "tokenUri": nft.get("token_uri"),
            "possibleSpam": bool(nft.get("possible_spam", False)),
        }

    async def resolve_ens(self, name: str) -> str:
        """
        Resolve an ENS name to its address.

        Raises:
            InvalidAddressError: Name does not resolve
            NetworkUnavailableError: Resolver unreachable
        """
        try:
            data = await self._request_json(
                "GET",
                f"{self._base_url}/resolve/ens/{name}",
                network="eth",
                headers=self._headers_for("eth"),
                address=name,
            )
        except NetworkUnavailableError as e:
            if e.status_code == 404:
                raise InvalidAddressError(
                    f"ENS name {name} does not resolve",
                    address=name,
                    network="eth",
                    original_error=e,
                ) from e
            raise

        address = data.get("address") if isinstance(data, dict) else None
        if not address or not is_valid_address(address, ChainFamily.EVM):
            raise InvalidAddressError(
                f"ENS name {name} does not resolve",
                address=name,
                network="eth",
            )
        logger.info(f"[{self.name}] Resolved {name} -> {address}")
        return address
