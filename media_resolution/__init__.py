"""
Media Resolution Package - Renderable media for artifacts.

Features:
- Content-addressed URI translation (ipfs://, ar://)
- Ordered CORS-bypass proxy chain with outcome caching
- Media type detection from metadata, extension and probes
- Placeholder degradation instead of errors

Quick Start:
    from media_resolution import MediaResolver, ProxyChain, ProxyCache
    from core import load_settings

    settings = load_settings()
    async with ProxyChain(settings.proxy, cache=ProxyCache()) as chain:
        resolver = MediaResolver(chain)
        media = await resolver.resolve_media(artifact)
        print(media.url, media.type.value)
"""

from media_resolution import protocol
from media_resolution.content import extract_article_body, fetch_article_body
from media_resolution.media_types import (
    MediaType,
    MediaTypeDetector,
    classify_extension,
    classify_mime,
    extension_of,
)
from media_resolution.proxy_chain import (
    FailureRecord,
    HttpResult,
    ProxyCache,
    ProxyChain,
    ProxyResponse,
    ProxyStrategy,
    StrategyHit,
    apply_proxy_template,
)
from media_resolution.resolver import (
    PLACEHOLDER_IMAGE_URL,
    MediaResolver,
    ResolutionMethod,
    ResolvedMedia,
    ResolvedMediaCache,
)


__all__ = [
    # Protocol
    "protocol",

    # Proxy chain
    "ProxyChain",
    "ProxyCache",
    "ProxyResponse",
    "ProxyStrategy",
    "HttpResult",
    "StrategyHit",
    "FailureRecord",
    "apply_proxy_template",

    # Detection
    "MediaType",
    "MediaTypeDetector",
    "classify_mime",
    "classify_extension",
    "extension_of",

    # Resolver
    "MediaResolver",
    "ResolvedMedia",
    "ResolvedMediaCache",
    "ResolutionMethod",
    "PLACEHOLDER_IMAGE_URL",

    # Content
    "extract_article_body",
    "fetch_article_body",
]
