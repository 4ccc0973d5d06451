"""
Media Resolution - Resolver Entry Point.

============================================================
RESPONSIBILITY
============================================================
resolve_media(artifact) -> ResolvedMedia for renderers.

- ProtocolResolver translates the artifact's media URI
- MediaTypeDetector classifies it
- ProxyChain produces a fetchable URL for CORS-restricted hosts
- Failures degrade to a placeholder, never an exception

Results are cached in-process by source URL (bounded, no TTL).

============================================================
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from core.cancellation import CancellationToken
from core.exceptions import ProxyExhaustedError
from media_resolution import protocol
from media_resolution.media_types import MediaType, MediaTypeDetector
from media_resolution.proxy_chain import ProxyChain


logger = logging.getLogger(__name__)


PLACEHOLDER_IMAGE_URL = "https://via.placeholder.com/400?text=No+Image"

# Metadata keys consulted when the artifact has no media URL
_FALLBACK_MEDIA_KEYS = ("animation_url", "image", "image_url", "content")


class ResolutionMethod(str, Enum):
    """How a renderable URL was produced."""
    PASSTHROUGH = "passthrough"
    PROTOCOL = "protocol"
    DATA_URI = "data_uri"
    DIRECT = "direct"
    AUTHENTICATED_PROXY = "authenticated_proxy"
    FALLBACK_PROXY = "fallback_proxy"
    DIRECT_GATEWAY = "direct_gateway"
    PLACEHOLDER = "placeholder"


@dataclass(frozen=True)
class ResolvedMedia:
    """Renderable media for one artifact (ephemeral)."""
    source_url: Optional[str]
    resolved_url: str
    media_type: MediaType
    resolution_method: ResolutionMethod

    @property
    def url(self) -> str:
        return self.resolved_url

    @property
    def type(self) -> MediaType:
        return self.media_type

    @property
    def is_placeholder(self) -> bool:
        return self.resolution_method == ResolutionMethod.PLACEHOLDER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_url": self.source_url,
            "resolved_url": self.resolved_url,
            "media_type": self.media_type.value,
            "resolution_method": self.resolution_method.value,
        }


class ResolvedMediaCache:
    """Bounded in-process cache keyed by source URL, oldest evicted first."""

    def __init__(self, max_entries: int = 5000) -> None:
        self._max_entries = max_entries
        self._entries: "OrderedDict[str, ResolvedMedia]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, source_url: str) -> Optional[ResolvedMedia]:
        with self._lock:
            return self._entries.get(source_url)

    def put(self, media: ResolvedMedia) -> None:
        if not media.source_url:
            return
        with self._lock:
            self._entries[media.source_url] = media
            self._entries.move_to_end(media.source_url)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _field(artifact: Any, name: str) -> Any:
    if isinstance(artifact, Mapping):
        return artifact.get(name)
    return getattr(artifact, name, None)


def artifact_metadata(artifact: Any) -> Dict[str, Any]:
    """Structured metadata of an artifact ({} when raw or missing)."""
    metadata = _field(artifact, "metadata_dict")
    if metadata is None:
        metadata = _field(artifact, "metadata")
    return dict(metadata) if isinstance(metadata, Mapping) else {}


def artifact_source_url(artifact: Any, metadata: Mapping[str, Any]) -> Optional[str]:
    """The artifact's primary media URL."""
    media_url = _field(artifact, "media_url")
    if isinstance(media_url, str) and media_url:
        return media_url
    for key in _FALLBACK_MEDIA_KEYS:
        value = metadata.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class MediaResolver:
    """
    Produces renderable URLs and media types for artifacts.

    Usage:
        resolver = MediaResolver(ProxyChain(settings.proxy))
        media = await resolver.resolve_media(artifact)
        render(media.url, media.type)
    """

    def __init__(
        self,
        proxy_chain: Optional[ProxyChain] = None,
        detector: Optional[MediaTypeDetector] = None,
        cache: Optional[ResolvedMediaCache] = None,
        probe_unknown: bool = True,
        verify_method: str = "HEAD",
    ) -> None:
        self._proxy_chain = proxy_chain or ProxyChain()
        self._detector = detector or MediaTypeDetector(self._proxy_chain)
        self._cache = cache if cache is not None else ResolvedMediaCache()
        self._probe_unknown = probe_unknown
        self._verify_method = verify_method

    @property
    def cache(self) -> ResolvedMediaCache:
        return self._cache

    async def resolve_media(
        self,
        artifact: Any,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResolvedMedia:
        """
        Resolve an artifact's displayable media.

        Never raises for upstream failures; returns a placeholder
        ResolvedMedia instead.
        """
        metadata = artifact_metadata(artifact)
        source_url = artifact_source_url(artifact, metadata)
        explicit_type = _field(artifact, "media_type")

        if not source_url:
            return ResolvedMedia(
                source_url=None,
                resolved_url=PLACEHOLDER_IMAGE_URL,
                media_type=MediaType.UNKNOWN,
                resolution_method=ResolutionMethod.PLACEHOLDER,
            )

        cached = self._cache.get(source_url)
        if cached is not None:
            return cached

        gateway_url = protocol.resolve(source_url)
        if self._probe_unknown:
            media_type = await self._detector.detect_with_probe(metadata, gateway_url, explicit_type)
        else:
            media_type = self._detector.detect(metadata, gateway_url, explicit_type)

        if source_url.startswith("data:"):
            media = ResolvedMedia(source_url, source_url, media_type, ResolutionMethod.DATA_URI)
            self._cache.put(media)
            return media

        # Re-anchoring can move a foreign gateway onto a restricted host
        needs_proxy = (
            self._proxy_chain.needs_cors_proxy(source_url)
            or self._proxy_chain.needs_cors_proxy(gateway_url)
        )
        if not needs_proxy:
            method = (
                ResolutionMethod.PASSTHROUGH if gateway_url == source_url
                else ResolutionMethod.PROTOCOL
            )
            media = ResolvedMedia(source_url, gateway_url, media_type, method)
            self._cache.put(media)
            return media

        try:
            response = await self._proxy_chain.fetch_through_proxy(
                source_url, method=self._verify_method, cancel_token=cancel_token,
            )
        except ProxyExhaustedError as e:
            logger.warning(f"Media unavailable for {source_url}, using placeholder: {e}")
            return ResolvedMedia(
                source_url=source_url,
                resolved_url=PLACEHOLDER_IMAGE_URL,
                media_type=media_type,
                resolution_method=ResolutionMethod.PLACEHOLDER,
            )

        media = ResolvedMedia(
            source_url=source_url,
            resolved_url=response.final_url,
            media_type=media_type,
            resolution_method=ResolutionMethod(response.strategy.value),
        )
        self._cache.put(media)
        return media
