"""
Media Resolution - Article Content.

Extracts renderable article text from artifact content, which may be
an ar:// / ipfs:// pointer, a pre-parsed JSON object (Mirror-style
`content.body`), or inline markdown.
"""

import json
import logging
from typing import Any, Mapping, Optional

from core.cancellation import CancellationToken
from core.exceptions import ProxyExhaustedError
from media_resolution import protocol


logger = logging.getLogger(__name__)


def extract_article_body(payload: Any) -> Optional[str]:
    """
    Pull the article body out of a content payload.

    Recognized shapes, in order: {"content": {"body": ...}},
    {"body": ...}, {"text": ...}, {"content": "..."}; any other
    mapping is pretty-printed as JSON.
    """
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload or None
    if isinstance(payload, Mapping):
        content = payload.get("content")
        if isinstance(content, Mapping) and content.get("body"):
            return str(content["body"])
        if payload.get("body"):
            return str(payload["body"])
        if payload.get("text"):
            return str(payload["text"])
        if isinstance(content, str) and content:
            return content
        return json.dumps(payload, indent=2, default=str)
    return str(payload)


async def fetch_article_body(
    content: Any,
    proxy_chain: Any,
    cancel_token: Optional[CancellationToken] = None,
) -> Optional[str]:
    """
    Resolve article text, fetching content-addressed pointers.

    Args:
        content: Inline content or a content-addressed URI
        proxy_chain: ProxyChain used for the fetch
        cancel_token: Optional cancellation

    Returns:
        Article text, or None when unavailable
    """
    if not content:
        return None

    is_pointer = isinstance(content, str) and (
        protocol.is_content_addressed(content) or bool(protocol.ARWEAVE_TX_ID.match(content))
    )
    if is_pointer:
        try:
            response = await proxy_chain.fetch_through_proxy(
                protocol.resolve_arweave_id(content), cancel_token=cancel_token,
            )
        except ProxyExhaustedError as e:
            logger.error(f"Error fetching article content {content}: {e}")
            return None
        if response.opaque:
            logger.warning(f"Article content for {content} came back opaque")
            return None
        try:
            return extract_article_body(response.json())
        except ValueError:
            return extract_article_body(response.text())

    return extract_article_body(content)
