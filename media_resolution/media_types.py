"""
Media Resolution - Media Type Detection.

============================================================
RESPONSIBILITY
============================================================
Classifies a (metadata, resolved URL) pair into a MediaType.
Never raises: anything unresolvable is UNKNOWN and the render
layer shows a placeholder.

============================================================
PRIORITY (first match wins)
============================================================
1. Explicit type already on the artifact record
2. MIME-like field in metadata (mimeType / mime_type / contentType)
3. File extension of the resolved URL
4. Content-addressed URL without extension:
   audio-ish trait -> AUDIO, otherwise ARTICLE
5. UNKNOWN
   (detect_with_probe adds a live content-type probe before 5)

============================================================
"""

import logging
from enum import Enum
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import urlsplit

from core.exceptions import ProxyExhaustedError
from media_resolution import protocol


logger = logging.getLogger(__name__)


class MediaType(str, Enum):
    """Renderable media categories."""
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    ARTICLE = "article"
    HOSTED = "hosted"
    UNKNOWN = "unknown"


VIDEO_EXTENSIONS = frozenset({"mp4", "webm", "mov", "avi", "m4v", "ogv"})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "ogg", "m4a", "flac", "aac", "oga"})
HOSTED_EXTENSIONS = frozenset({"html", "htm"})
IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "svg", "bmp", "avif"})

MIME_FIELDS = ("mimeType", "mime_type", "contentType")
AUDIO_TRAIT_KEYWORDS = ("audio", "music", "sound")

# Aliases accepted for an explicit type field
_EXPLICIT_ALIASES = {
    "animation": MediaType.VIDEO,
    "interactive": MediaType.HOSTED,
    "html": MediaType.HOSTED,
    "text": MediaType.ARTICLE,
}


def extension_of(url: Optional[str]) -> str:
    """Lower-cased file extension of a URL path ('' when none)."""
    if not url or url.startswith("data:"):
        return ""
    try:
        path = urlsplit(url).path
    except ValueError:
        path = url.split("?", 1)[0]
    filename = path.rsplit("/", 1)[-1]
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def classify_mime(mime: Optional[str]) -> Optional[MediaType]:
    """Map a MIME string to a MediaType (None when not recognized)."""
    if not mime or not isinstance(mime, str):
        return None
    mime = mime.strip().lower()
    if mime.startswith("video/"):
        return MediaType.VIDEO
    if mime.startswith("audio/"):
        return MediaType.AUDIO
    if "html" in mime:
        return MediaType.HOSTED
    if mime.startswith("text/"):
        return MediaType.ARTICLE
    if mime.startswith("image/"):
        return MediaType.IMAGE
    return None


def classify_extension(extension: str) -> Optional[MediaType]:
    if extension in VIDEO_EXTENSIONS:
        return MediaType.VIDEO
    if extension in AUDIO_EXTENSIONS:
        return MediaType.AUDIO
    if extension in HOSTED_EXTENSIONS:
        return MediaType.HOSTED
    if extension in IMAGE_EXTENSIONS:
        return MediaType.IMAGE
    return None


def _coerce_explicit(value: Any) -> Optional[MediaType]:
    if isinstance(value, MediaType):
        return value
    if not value or not isinstance(value, str):
        return None
    value = value.strip().lower()
    try:
        return MediaType(value)
    except ValueError:
        return _EXPLICIT_ALIASES.get(value)


def _mime_from_metadata(metadata: Mapping[str, Any]) -> Optional[str]:
    for key in MIME_FIELDS:
        value = metadata.get(key)
        if isinstance(value, str) and value:
            return value
    media = metadata.get("media")
    if isinstance(media, Mapping):
        for key in MIME_FIELDS:
            value = media.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _has_audio_trait(attributes: Any) -> bool:
    if not isinstance(attributes, Iterable) or isinstance(attributes, (str, bytes)):
        return False
    for attribute in attributes:
        if not isinstance(attribute, Mapping):
            continue
        name = attribute.get("trait_type") or attribute.get("name") or ""
        if isinstance(name, str) and any(k in name.lower() for k in AUDIO_TRAIT_KEYWORDS):
            return True
    return False


class MediaTypeDetector:
    """
    Classifies artifact media.

    Usage:
        detector = MediaTypeDetector(proxy_chain)
        detector.detect({"mimeType": "audio/mp3"}, url)        # AUDIO
        await detector.detect_with_probe(metadata, url)         # may HEAD
    """

    def __init__(self, proxy_chain: Optional[Any] = None, probe_timeout: float = 5.0) -> None:
        self._proxy_chain = proxy_chain
        self._probe_timeout = probe_timeout

    def detect(
        self,
        metadata: Optional[Mapping[str, Any]],
        resolved_url: Optional[str],
        explicit_type: Any = None,
    ) -> MediaType:
        """Classify without any I/O."""
        try:
            return self._detect(metadata, resolved_url, explicit_type)
        except Exception as e:
            logger.warning(f"Media type detection failed for {resolved_url}: {e}")
            return MediaType.UNKNOWN

    def _detect(
        self,
        metadata: Optional[Mapping[str, Any]],
        resolved_url: Optional[str],
        explicit_type: Any,
    ) -> MediaType:
        explicit = _coerce_explicit(explicit_type)
        if explicit is not None:
            return explicit

        metadata = metadata if isinstance(metadata, Mapping) else {}

        by_mime = classify_mime(_mime_from_metadata(metadata))
        if by_mime is not None:
            return by_mime

        extension = extension_of(resolved_url)
        by_extension = classify_extension(extension)
        if by_extension is not None:
            return by_extension

        if resolved_url and not extension and protocol.is_content_addressed(resolved_url):
            if _has_audio_trait(metadata.get("attributes")):
                return MediaType.AUDIO
            return MediaType.ARTICLE

        if resolved_url and resolved_url.startswith("data:image/"):
            return MediaType.IMAGE

        return MediaType.UNKNOWN

    async def detect_with_probe(
        self,
        metadata: Optional[Mapping[str, Any]],
        resolved_url: Optional[str],
        explicit_type: Any = None,
    ) -> MediaType:
        """Classify, falling back to a live content-type probe."""
        detected = self.detect(metadata, resolved_url, explicit_type)
        if detected != MediaType.UNKNOWN or not resolved_url or self._proxy_chain is None:
            return detected
        if resolved_url.startswith("data:"):
            return detected
        return await self._probe(resolved_url)

    async def _probe(self, url: str) -> MediaType:
        try:
            response = await self._proxy_chain.fetch_through_proxy(
                url, method="HEAD", timeout=self._probe_timeout,
            )
        except ProxyExhaustedError as e:
            logger.warning(f"Content-type probe failed for {url}: {e}")
            return MediaType.UNKNOWN

        if response.opaque:
            return MediaType.UNKNOWN

        content_type = (response.content_type or "").lower()
        if not content_type:
            return MediaType.UNKNOWN
        if "json" in content_type or content_type.startswith("text/plain"):
            return MediaType.ARTICLE
        return classify_mime(content_type) or MediaType.UNKNOWN
