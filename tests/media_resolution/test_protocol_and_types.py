"""
Protocol Resolver and Media Type Detection Tests.

============================================================
PURPOSE
============================================================
Unit tests for content-addressed URI translation and media
classification. Neither component performs I/O except the
optional content-type probe, which is mocked.

TEST CATEGORIES:
- Protocol tests: ipfs:// and ar:// translation, gateway re-anchoring
- Detection tests: priority order of explicit type, MIME, extension
- Probe tests: content-type fallback for unknown URLs

============================================================
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from core.exceptions import ProxyExhaustedError
from media_resolution import protocol
from media_resolution.media_types import (
    MediaType,
    MediaTypeDetector,
    classify_mime,
    extension_of,
)
from media_resolution.proxy_chain import ProxyResponse, ProxyStrategy


# ============================================================
# PROTOCOL TESTS
# ============================================================

class TestProtocolResolve:
    """Tests for protocol.resolve."""

    def test_ipfs_scheme(self):
        """Test ipfs:// maps onto the preferred gateway."""
        assert protocol.resolve("ipfs://Qm123") == "https://ipfs.io/ipfs/Qm123"

    def test_ipfs_scheme_with_ipfs_prefix(self):
        """Test ipfs://ipfs/<cid> does not duplicate the path segment."""
        assert protocol.resolve("ipfs://ipfs/Qm123/1.png") == "https://ipfs.io/ipfs/Qm123/1.png"

    def test_arweave_scheme(self):
        """Test ar:// maps onto arweave.net."""
        assert protocol.resolve("ar://abc") == "https://arweave.net/abc"

    def test_gateway_url_reanchored(self):
        """Test URLs on other IPFS gateways are re-anchored, keeping the sub-path."""
        url = "https://cloudflare-ipfs.com/ipfs/Qm1/a.png"
        assert protocol.resolve(url) == "https://ipfs.io/ipfs/Qm1/a.png"

    def test_plain_https_passthrough(self):
        """Test ordinary URLs are returned unchanged."""
        url = "https://example.com/image.png"
        assert protocol.resolve(url) == url

    def test_data_uri_passthrough(self):
        """Test data URIs are returned unchanged."""
        uri = "data:image/svg+xml;base64,PHN2Zz4="
        assert protocol.resolve(uri) == uri

    def test_empty_values(self):
        """Test None and empty strings pass through without raising."""
        assert protocol.resolve(None) is None
        assert protocol.resolve("") == ""

    def test_bare_arweave_id(self):
        """Test a bare 43-character Arweave id becomes a gateway URL."""
        tx_id = "a" * 43
        assert protocol.resolve_arweave_id(tx_id) == f"https://arweave.net/{tx_id}"

    def test_ipfs_gateway_url_drops_sub_path(self):
        """Test the direct gateway URL addresses the root CID only."""
        assert protocol.ipfs_gateway_url("ipfs://Qm1/meta/1.json") == "https://ipfs.io/ipfs/Qm1"
        assert protocol.ipfs_gateway_url("https://example.com/a.png") is None

    def test_content_addressed_checks(self):
        """Test IPFS and Arweave detection."""
        assert protocol.is_ipfs("ipfs://Qm1")
        assert protocol.is_arweave("https://arweave.net/xyz")
        assert protocol.is_arweave("ar://xyz")
        assert not protocol.is_content_addressed("https://example.com/a.png")


# ============================================================
# DETECTION TESTS
# ============================================================

class TestMediaTypeDetector:
    """Tests for MediaTypeDetector.detect."""

    @pytest.fixture
    def detector(self):
        return MediaTypeDetector()

    def test_explicit_type_wins(self, detector):
        """Test an explicit type overrides MIME and extension."""
        detected = detector.detect({"mimeType": "image/png"}, "https://x.io/a.mp4", "audio")
        assert detected == MediaType.AUDIO

    def test_mime_beats_extension(self, detector):
        """Test a MIME field beats the file extension."""
        detected = detector.detect({"mimeType": "audio/mp3"}, "https://x.io/a.png")
        assert detected == MediaType.AUDIO

    def test_extension_classification(self, detector):
        """Test extension-based classification."""
        assert detector.detect({}, "https://x.io/clip.MP4") == MediaType.VIDEO
        assert detector.detect({}, "https://x.io/song.wav?x=1") == MediaType.AUDIO
        assert detector.detect({}, "https://x.io/page.html") == MediaType.HOSTED
        assert detector.detect({}, "https://x.io/pic.webp") == MediaType.IMAGE

    def test_content_addressed_without_extension_is_article(self, detector):
        """Test an extensionless Arweave URL is treated as an article."""
        assert detector.detect({}, "https://arweave.net/abc") == MediaType.ARTICLE

    def test_content_addressed_with_audio_trait(self, detector):
        """Test an audio-ish trait turns extensionless content into audio."""
        metadata = {"attributes": [{"trait_type": "Music Genre", "value": "ambient"}]}
        assert detector.detect(metadata, "https://ipfs.io/ipfs/Qm1") == MediaType.AUDIO

    def test_unknown(self, detector):
        """Test unrecognized URLs are UNKNOWN."""
        assert detector.detect({}, "https://x.io/blob") == MediaType.UNKNOWN
        assert detector.detect(None, None) == MediaType.UNKNOWN

    def test_classify_mime(self):
        """Test MIME mapping, including HTML as hosted."""
        assert classify_mime("text/html; charset=utf-8") == MediaType.HOSTED
        assert classify_mime("text/markdown") == MediaType.ARTICLE
        assert classify_mime("application/octet-stream") is None

    def test_extension_of(self):
        """Test extension extraction ignores query strings and data URIs."""
        assert extension_of("https://x.io/a/b.JPEG?w=200") == "jpeg"
        assert extension_of("data:image/png;base64,AAA") == ""
        assert extension_of("https://x.io/noext") == ""


# ============================================================
# PROBE TESTS
# ============================================================

class TestDetectWithProbe:
    """Tests for the live content-type probe."""

    def _response(self, content_type, opaque=False):
        return ProxyResponse(
            url="https://x.io/blob",
            final_url="https://x.io/blob",
            strategy=ProxyStrategy.DIRECT,
            status=200,
            headers={"Content-Type": content_type} if content_type else {},
            opaque=opaque,
        )

    @pytest.mark.asyncio
    async def test_probe_used_only_for_unknown(self):
        """Test the probe runs only when static detection is inconclusive."""
        chain = MagicMock()
        chain.fetch_through_proxy = AsyncMock(return_value=self._response("video/mp4"))
        detector = MediaTypeDetector(chain)

        assert await detector.detect_with_probe({}, "https://x.io/a.png") == MediaType.IMAGE
        chain.fetch_through_proxy.assert_not_called()

        assert await detector.detect_with_probe({}, "https://x.io/blob") == MediaType.VIDEO
        chain.fetch_through_proxy.assert_awaited_once()
        assert chain.fetch_through_proxy.call_args.kwargs["method"] == "HEAD"

    @pytest.mark.asyncio
    async def test_probe_json_is_article(self):
        """Test a JSON content type is classified as article."""
        chain = MagicMock()
        chain.fetch_through_proxy = AsyncMock(return_value=self._response("application/json"))
        detector = MediaTypeDetector(chain)

        assert await detector.detect_with_probe({}, "https://x.io/blob") == MediaType.ARTICLE

    @pytest.mark.asyncio
    async def test_probe_failure_is_unknown(self):
        """Test an exhausted proxy chain leaves the type UNKNOWN."""
        chain = MagicMock()
        chain.fetch_through_proxy = AsyncMock(side_effect=ProxyExhaustedError("down"))
        detector = MediaTypeDetector(chain)

        assert await detector.detect_with_probe({}, "https://x.io/blob") == MediaType.UNKNOWN

    @pytest.mark.asyncio
    async def test_opaque_probe_is_unknown(self):
        """Test an opaque response cannot be classified."""
        chain = MagicMock()
        chain.fetch_through_proxy = AsyncMock(return_value=self._response(None, opaque=True))
        detector = MediaTypeDetector(chain)

        assert await detector.detect_with_probe({}, "https://x.io/blob") == MediaType.UNKNOWN
