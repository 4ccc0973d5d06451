"""
Media Resolution - Protocol Resolver.

Translates content-addressed URIs into canonical HTTP gateway URLs.
Pure functions: no I/O, never raise, unknown schemes pass through.

    resolve("ipfs://Qm123")  -> "https://ipfs.io/ipfs/Qm123"
    resolve("ar://abc")      -> "https://arweave.net/abc"
    resolve("https://cloudflare-ipfs.com/ipfs/Qm1/a.png")
                             -> "https://ipfs.io/ipfs/Qm1/a.png"
"""

import re
from typing import Optional
from urllib.parse import urlsplit


IPFS_SCHEME = "ipfs://"
ARWEAVE_SCHEME = "ar://"

IPFS_GATEWAY = "https://ipfs.io/ipfs/"
ARWEAVE_GATEWAY = "https://arweave.net/"

IPFS_PATH_SEGMENT = "/ipfs/"
ARWEAVE_HOSTS = ("arweave.net", "ar-io.net")

# Raw Arweave transaction ids are 43 url-safe base64 characters
ARWEAVE_TX_ID = re.compile(r"^[a-zA-Z0-9_-]{43}$")


def resolve(uri: Optional[str]) -> Optional[str]:
    """
    Translate a content-addressed URI into an HTTP gateway URL.

    Args:
        uri: Any URI (ipfs://, ar://, gateway URL, data:, https://)

    Returns:
        Gateway URL, or the input unchanged when not content-addressed
    """
    if not uri or not isinstance(uri, str):
        return uri

    if uri.startswith(IPFS_SCHEME):
        path = uri[len(IPFS_SCHEME):]
        if path.startswith("ipfs/"):
            path = path[len("ipfs/"):]
        return f"{IPFS_GATEWAY}{path}"

    if uri.startswith(ARWEAVE_SCHEME):
        return f"{ARWEAVE_GATEWAY}{uri[len(ARWEAVE_SCHEME):]}"

    if uri.startswith("data:"):
        return uri

    if IPFS_PATH_SEGMENT in uri:
        # Re-anchor URLs served by non-preferred gateways
        path = uri.split(IPFS_PATH_SEGMENT, 1)[1]
        if path:
            return f"{IPFS_GATEWAY}{path}"

    return uri


def resolve_arweave_id(value: Optional[str]) -> Optional[str]:
    """Resolve ar:// URIs and bare Arweave transaction ids."""
    if value and ARWEAVE_TX_ID.match(value):
        return f"{ARWEAVE_GATEWAY}{value}"
    return resolve(value)


def is_ipfs(uri: Optional[str]) -> bool:
    """Check if a URI addresses IPFS content."""
    if not uri:
        return False
    return uri.startswith(IPFS_SCHEME) or IPFS_PATH_SEGMENT in uri


def is_arweave(uri: Optional[str]) -> bool:
    """Check if a URI addresses Arweave content."""
    if not uri:
        return False
    if uri.startswith(ARWEAVE_SCHEME):
        return True
    host = _hostname(uri)
    return bool(host) and any(
        host == h or host.endswith(f".{h}") for h in ARWEAVE_HOSTS
    )


def is_content_addressed(uri: Optional[str]) -> bool:
    """Check if a URI addresses content by hash (IPFS or Arweave)."""
    return is_ipfs(uri) or is_arweave(uri)


def ipfs_gateway_url(uri: Optional[str]) -> Optional[str]:
    """
    Canonical gateway URL for the IPFS root hash of a URI.

    Drops any sub-path; used for the last-resort direct gateway request.
    """
    if not is_ipfs(uri):
        return None
    resolved = resolve(uri)
    cid = resolved[len(IPFS_GATEWAY):].split("/", 1)[0].split("?", 1)[0]
    return f"{IPFS_GATEWAY}{cid}" if cid else None


def _hostname(uri: str) -> str:
    try:
        return (urlsplit(uri).hostname or "").lower()
    except ValueError:
        return ""
