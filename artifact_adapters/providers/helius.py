"""
Helius Artifact Fetcher - Solana digital asset listing.

Uses the DAS `getAssetsByOwner` JSON-RPC method. Pagination is
page-number based; the continuation cursor is the next page number
as a string and is absent once a short page comes back.
"""

import logging
from typing import Any, Dict, List, Optional

import aiohttp

from artifact_adapters.base import BaseArtifactFetcher
from artifact_adapters.models import ChainFamily, FetchPage, networks_for_family
from core.config import FetcherSettings
from core.exceptions import InvalidAddressError, NetworkUnavailableError


logger = logging.getLogger(__name__)


# JSON-RPC "invalid params"
INVALID_PARAMS_CODE = -32602


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


class HeliusFetcher(BaseArtifactFetcher):
    """Helius DAS fetcher for Solana."""

    DEFAULT_RPC_URL = "https://mainnet.helius-rpc.com"

    def __init__(
        self,
        api_key: Optional[str] = None,
        rpc_url: str = DEFAULT_RPC_URL,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key, timeout, session, **kwargs)
        self._rpc_url = rpc_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: FetcherSettings, **kwargs: Any) -> "HeliusFetcher":
        override = settings.override_for("solana")
        return cls(
            api_key=override.api_key or settings.helius_api_key,
            rpc_url=override.endpoint or settings.helius_rpc_url,
            timeout=settings.timeout_seconds,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return "helius"

    @property
    def networks(self) -> List[str]:
        return networks_for_family(ChainFamily.SOLANA)

    async def fetch_page_raw(
        self,
        address: str,
        network: str,
        cursor: Optional[str],
        page_size: int,
    ) -> FetchPage:
        try:
            page = int(cursor) if cursor else 1
        except ValueError:
            page = 1

        body = {
            "jsonrpc": "2.0",
            "id": "artifact-ingest",
            "method": "getAssetsByOwner",
            "params": {
                "ownerAddress": address,
                "page": page,
                "limit": page_size,
            },
        }
        params = {"api-key": self._api_key} if self._api_key else None

        data = await self._request_json(
            "POST",
            f"{self._rpc_url}/",
            network=network,
            params=params,
            json_body=body,
            address=address,
        )
        if not isinstance(data, dict):
            raise NetworkUnavailableError("Unexpected Helius response shape", network=network)

        error = data.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else str(error)
            if code == INVALID_PARAMS_CODE:
                raise InvalidAddressError(
                    f"Helius rejected owner address: {message}",
                    address=address,
                    network=network,
                )
            raise NetworkUnavailableError(f"Helius RPC error: {message}", network=network)

        result = _as_dict(data.get("result"))
        items = [item for item in _as_list(result.get("items")) if isinstance(item, dict)]
        next_cursor = str(page + 1) if len(items) >= page_size else None
        return FetchPage(
            artifacts=[self.to_raw_record(item) for item in items],
            cursor=next_cursor,
        )

    @staticmethod
    def to_raw_record(asset: Dict[str, Any]) -> Dict[str, Any]:
        """Convert a DAS asset into the neutral raw shape."""
        content = _as_dict(asset.get("content"))
        metadata = dict(_as_dict(content.get("metadata")))
        links = _as_dict(content.get("links"))
        files = [f for f in _as_list(content.get("files")) if isinstance(f, dict)]

        collection = None
        for group in _as_list(asset.get("grouping")):
            if isinstance(group, dict) and group.get("group_key") == "collection":
                collection = group.get("group_value")
                break

        image = links.get("image") or (files[0].get("uri") if files else None)
        animation = links.get("animation_url")
        if animation:
            metadata.setdefault("animation_url", animation)
        if image:
            metadata.setdefault("image", image)
        if files and files[0].get("mime"):
            metadata.setdefault("mimeType", files[0]["mime"])

        media = []
        if animation:
            media.append({"gateway": animation, "kind": "animation"})
        if image:
            media.append({"gateway": image, "kind": "image"})

        token_info = _as_dict(asset.get("token_info"))
        return {
            "id": {"tokenId": asset.get("id")},
            "contract": {
                "address": collection or asset.get("id"),
                "name": metadata.get("name") if not collection else None,
                "symbol": metadata.get("symbol"),
                "type": asset.get("interface"),
            },
            "title": metadata.get("name"),
            "description": metadata.get("description"),
            "media": media,
            "metadata": metadata,
            "balance": token_info.get("balance"),
            "tokenUri": content.get("json_uri"),
            "possibleSpam": False,
        }
