"""
Fixture Artifact Fetcher - Offline provider backed by in-memory records.

Serves raw records from a mapping of network -> address -> records,
optionally loaded from a JSON file. Used for offline runs of the
CLI and throughout the test suite.

JSON file shape:
    {
        "polygon": {"0xabc...": [ {raw record}, ... ]},
        "eth": {"0xabc...": []}
    }
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from artifact_adapters.base import BaseArtifactFetcher
from artifact_adapters.models import NETWORKS, FetchPage


logger = logging.getLogger(__name__)


class FixtureFetcher(BaseArtifactFetcher):
    """
    In-memory fetcher.

    Usage:
        fetcher = FixtureFetcher({"polygon": {address: [record, ...]}})
        fetcher.fail("eth", NetworkUnavailableError("down", network="eth"))
    """

    def __init__(
        self,
        records: Optional[Dict[str, Dict[str, List[Dict[str, Any]]]]] = None,
        networks: Optional[Iterable[str]] = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("max_retries", 1)
        super().__init__(**kwargs)
        self._records: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
        for network, by_address in (records or {}).items():
            self._records[network] = {
                address.lower(): list(items) for address, items in by_address.items()
            }
        self._networks = list(networks) if networks is not None else list(NETWORKS)
        self._failures: Dict[str, Exception] = {}
        self.calls: List[Dict[str, Any]] = []

    @classmethod
    def from_file(cls, path: Union[str, Path], **kwargs: Any) -> "FixtureFetcher":
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        logger.info(f"Loaded fixture records for {len(data)} networks from {path}")
        return cls(records=data, **kwargs)

    @property
    def name(self) -> str:
        return "fixture"

    @property
    def networks(self) -> List[str]:
        return self._networks

    def add(self, network: str, address: str, records: List[Dict[str, Any]]) -> None:
        self._records.setdefault(network, {}).setdefault(address.lower(), []).extend(records)

    def fail(self, network: str, error: Exception) -> None:
        """Make every fetch on `network` raise `error`."""
        self._failures[network] = error

    async def fetch_page_raw(
        self,
        address: str,
        network: str,
        cursor: Optional[str],
        page_size: int,
    ) -> FetchPage:
        self.calls.append({
            "address": address,
            "network": network,
            "cursor": cursor,
            "page_size": page_size,
        })
        if network in self._failures:
            raise self._failures[network]

        records = self._records.get(network, {}).get(address.lower(), [])
        offset = int(cursor) if cursor else 0
        chunk = records[offset:offset + page_size]
        next_offset = offset + len(chunk)
        return FetchPage(
            artifacts=[dict(r) for r in chunk],
            cursor=str(next_offset) if next_offset < len(records) else None,
        )
