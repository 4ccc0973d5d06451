"""
Media Resolution - CORS Proxy Chain.

============================================================
RESPONSIBILITY
============================================================
Fetches media/metadata URLs that third-party gateways refuse
to serve cross-origin, by walking an ordered set of strategies:

1. Direct fetch (only for unrestricted, non content-addressed URLs)
2. Authenticated proxy (only when a credential is configured)
3. Public fallback proxies, in order
4. Opaque direct request to the canonical IPFS gateway

============================================================
CACHING
============================================================
Outcomes are memoized in an injected ProxyCache:
- success hit: reuse the known-good proxied URL, skip the chain
- failure hit: logged only, the chain still runs (upstream
  conditions such as rate limits may have reset)

============================================================
"""

import asyncio
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urlsplit

import aiohttp

from core.cancellation import CancellationToken, run_cancellable
from core.config import ProxySettings
from core.exceptions import ProxyExhaustedError
from media_resolution import protocol


logger = logging.getLogger(__name__)


DEFAULT_ACCEPT = "application/json, image/*, */*"
CORS_API_KEY_HEADER = "x-cors-api-key"

# Warn when the authenticated proxy's remaining quota drops below this share
RATE_LIMIT_WARNING_RATIO = 0.10


# ============================================================
# MODELS
# ============================================================

class ProxyStrategy(str, Enum):
    """Strategy that produced a response."""
    DIRECT = "direct"
    AUTHENTICATED_PROXY = "authenticated_proxy"
    FALLBACK_PROXY = "fallback_proxy"
    DIRECT_GATEWAY = "direct_gateway"


@dataclass
class HttpResult:
    """Raw outcome of a single HTTP request."""
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    final_url: Optional[str] = None


@dataclass
class ProxyResponse:
    """Response returned by the proxy chain."""
    url: str
    final_url: str
    strategy: ProxyStrategy
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    opaque: bool = False
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        """Opaque responses are usable even though their status is unknown."""
        return self.opaque or 200 <= self.status < 300

    @property
    def content_type(self) -> Optional[str]:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return None

    def text(self, encoding: str = "utf-8") -> str:
        if self.body is None:
            raise ValueError(f"Response body of {self.url} cannot be introspected")
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        return json.loads(self.text())


@dataclass(frozen=True)
class StrategyHit:
    """A strategy that previously succeeded for a URL."""
    strategy: ProxyStrategy
    proxied_url: str
    headers: Tuple[Tuple[str, str], ...] = ()
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class FailureRecord:
    """Informational record of a URL that exhausted the chain."""
    timestamp: datetime
    reason: str
    attempts: Tuple[str, ...] = ()


# ============================================================
# CACHE
# ============================================================

class ProxyCache:
    """
    Process-lifetime memo of proxy outcomes.

    Unbounded and TTL-free. Access is guarded by a lock so one
    instance can be shared between event loops on different threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._success: Dict[str, StrategyHit] = {}
        self._failures: Dict[str, FailureRecord] = {}
        self._hits = 0
        self._misses = 0

    def get_success(self, url: str) -> Optional[StrategyHit]:
        with self._lock:
            hit = self._success.get(url)
            if hit is None:
                self._misses += 1
            else:
                self._hits += 1
            return hit

    def record_success(self, url: str, hit: StrategyHit) -> None:
        with self._lock:
            self._success[url] = hit
            self._failures.pop(url, None)

    def evict_success(self, url: str) -> None:
        with self._lock:
            self._success.pop(url, None)

    def get_failure(self, url: str) -> Optional[FailureRecord]:
        with self._lock:
            return self._failures.get(url)

    def record_failure(self, url: str, reason: str, attempts: List[str]) -> None:
        with self._lock:
            self._failures[url] = FailureRecord(
                timestamp=datetime.now(timezone.utc),
                reason=reason,
                attempts=tuple(attempts),
            )

    def clear(self) -> None:
        with self._lock:
            self._success.clear()
            self._failures.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "successes": len(self._success),
                "failures": len(self._failures),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate_percent": round(self._hits / total * 100, 2) if total else 0,
            }


# ============================================================
# PROXY CHAIN
# ============================================================

def apply_proxy_template(template: str, url: str) -> str:
    """
    Apply a fallback proxy's URL-templating convention.

    Templates use {url} (raw) or {encoded_url} (percent-encoded);
    a template without a placeholder is a plain prefix.
    """
    if "{encoded_url}" in template:
        return template.replace("{encoded_url}", quote(url, safe=""))
    if "{url}" in template:
        return template.replace("{url}", url)
    return f"{template}{url}"


class ProxyChain:
    """
    Ordered CORS-bypass strategies with outcome caching.

    Usage:
        chain = ProxyChain(settings.proxy, cache=ProxyCache())
        response = await chain.fetch_through_proxy("ipfs://Qm...")
        image_src = response.final_url
    """

    def __init__(
        self,
        settings: Optional[ProxySettings] = None,
        cache: Optional[ProxyCache] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._settings = settings or ProxySettings()
        self._cache = cache if cache is not None else ProxyCache()
        self._session = session
        self._owns_session = session is None

    @property
    def cache(self) -> ProxyCache:
        return self._cache

    @property
    def settings(self) -> ProxySettings:
        return self._settings

    def clear_cache(self) -> None:
        """Forget every recorded proxy outcome."""
        self._cache.clear()

    # ─────────────────────────────────────────────────────────────
    # URL helpers
    # ─────────────────────────────────────────────────────────────

    def needs_cors_proxy(self, url: Optional[str]) -> bool:
        """Check if a URL is content-addressed or on a CORS-restricted host."""
        if not url or not isinstance(url, str):
            return False
        if url.startswith((protocol.IPFS_SCHEME, protocol.ARWEAVE_SCHEME)):
            return True
        try:
            host = (urlsplit(url).hostname or "").lower()
        except ValueError as e:
            logger.warning(f"[proxy] Could not parse URL {url!r}: {e}")
            return False
        if not host:
            return False
        return any(
            host == domain or host.endswith(f".{domain}")
            for domain in self._settings.restricted_domains
        )

    def authenticated_proxy_url(self, url: str) -> Tuple[str, Dict[str, str]]:
        """Proxied URL and headers for the authenticated proxy."""
        gateway_url = protocol.resolve(url)
        headers = {}
        if self._settings.api_key:
            headers[CORS_API_KEY_HEADER] = self._settings.api_key
        return f"{self._settings.authenticated_proxy_url}{gateway_url}", headers

    def fallback_proxy_urls(self, url: str) -> List[str]:
        """Proxied URLs for every fallback proxy, in order."""
        gateway_url = protocol.resolve(url)
        return [
            apply_proxy_template(template, gateway_url)
            for template in self._settings.fallback_proxies
        ]

    def proxied_url_for(self, url: str) -> str:
        """
        Best proxied URL for a URL without performing any I/O.

        Prefers a cached success, then the authenticated proxy, then
        the first fallback proxy.
        """
        hit = self._cache.get_success(url)
        if hit is not None:
            return hit.proxied_url
        if not self.needs_cors_proxy(url):
            return url
        if self._settings.has_authenticated_proxy:
            return self.authenticated_proxy_url(url)[0]
        fallbacks = self.fallback_proxy_urls(url)
        return fallbacks[0] if fallbacks else protocol.resolve(url)

    # ─────────────────────────────────────────────────────────────
    # Fetch
    # ─────────────────────────────────────────────────────────────

    async def fetch_through_proxy(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ProxyResponse:
        """
        Fetch a URL through the strategy chain.

        Args:
            url: Original URL (may be ipfs:// or ar://)
            method: HTTP method (GET or HEAD)
            headers: Extra request headers
            timeout: Per-attempt timeout in seconds
            cancel_token: Aborts the in-flight attempt when cancelled

        Returns:
            First successful ProxyResponse

        Raises:
            ProxyExhaustedError: After every strategy failed
            asyncio.CancelledError: If cancel_token fired
        """
        if not url:
            raise ValueError("URL is required")

        timeout = timeout or self._settings.timeout_seconds
        base_headers = {"Accept": DEFAULT_ACCEPT, **(headers or {})}
        attempts: List[str] = []
        last_reason = "no strategy applicable"

        cached = self._cache.get_success(url)
        if cached is not None:
            logger.debug(f"[proxy] Cache hit ({cached.strategy.value}) for {url}")
            response = await self._reuse(url, cached, method, base_headers, timeout, cancel_token)
            if response is not None:
                return response
            logger.info(f"[proxy] Cached strategy {cached.strategy.value} failed, re-running chain")
            self._cache.evict_success(url)

        previous_failure = self._cache.get_failure(url)
        if previous_failure is not None:
            logger.info(
                f"[proxy] {url} failed before at {previous_failure.timestamp.isoformat()} "
                f"({previous_failure.reason}), retrying"
            )

        # 1. Direct
        if not self.needs_cors_proxy(url):
            response, reason = await self._attempt(
                ProxyStrategy.DIRECT, url, url, method, base_headers, timeout, cancel_token,
            )
            attempts.append(ProxyStrategy.DIRECT.value)
            if response is not None:
                return self._remember(url, response, url, {})
            last_reason = reason
            logger.debug(f"[proxy] Direct fetch failed for {url}: {reason}")

        # 2. Authenticated proxy
        if self._settings.has_authenticated_proxy:
            proxied_url, auth_headers = self.authenticated_proxy_url(url)
            response, reason = await self._attempt(
                ProxyStrategy.AUTHENTICATED_PROXY, url, proxied_url, method,
                {**base_headers, **auth_headers}, timeout, cancel_token,
            )
            attempts.append(ProxyStrategy.AUTHENTICATED_PROXY.value)
            if response is not None:
                return self._remember(url, response, proxied_url, auth_headers)
            last_reason = reason
            logger.warning(f"[proxy] Authenticated proxy failed for {url}: {reason}")

        # 3. Fallback proxies
        for index, proxied_url in enumerate(self.fallback_proxy_urls(url), start=1):
            response, reason = await self._attempt(
                ProxyStrategy.FALLBACK_PROXY, url, proxied_url, method,
                base_headers, timeout, cancel_token,
            )
            attempts.append(f"{ProxyStrategy.FALLBACK_PROXY.value}_{index}")
            if response is not None:
                logger.debug(f"[proxy] Fallback proxy {index} succeeded for {url}")
                return self._remember(url, response, proxied_url, {})
            last_reason = reason
            logger.warning(f"[proxy] Fallback proxy {index} failed for {url}: {reason}")

        # 4. Opaque request to the canonical gateway
        gateway_url = protocol.ipfs_gateway_url(url)
        if gateway_url:
            attempts.append(ProxyStrategy.DIRECT_GATEWAY.value)
            response = await self._opaque(url, gateway_url, method, base_headers, timeout, cancel_token)
            if response is not None:
                return self._remember(url, response, gateway_url, {})
            last_reason = "direct gateway request failed"

        self._cache.record_failure(url, last_reason, attempts)
        logger.error(f"[proxy] All strategies failed for {url}: {last_reason}")
        raise ProxyExhaustedError(
            f"All CORS proxies failed for URL: {url}",
            url=url,
            attempts=attempts,
            context={"last_reason": last_reason},
        )

    async def _reuse(
        self,
        url: str,
        hit: StrategyHit,
        method: str,
        headers: Dict[str, str],
        timeout: float,
        cancel_token: Optional[CancellationToken],
    ) -> Optional[ProxyResponse]:
        """Replay a cached strategy with a single request."""
        request_headers = {**headers, **dict(hit.headers)}
        if hit.strategy == ProxyStrategy.DIRECT_GATEWAY:
            response = await self._opaque(url, hit.proxied_url, method, request_headers, timeout, cancel_token)
        else:
            response, _ = await self._attempt(
                hit.strategy, url, hit.proxied_url, method, request_headers, timeout, cancel_token,
            )
        if response is not None:
            response.from_cache = True
        return response

    async def _attempt(
        self,
        strategy: ProxyStrategy,
        url: str,
        request_url: str,
        method: str,
        headers: Dict[str, str],
        timeout: float,
        cancel_token: Optional[CancellationToken],
    ) -> Tuple[Optional[ProxyResponse], str]:
        """
        Run one timeout-bounded attempt.

        Returns:
            (response, "") on HTTP 2xx, otherwise (None, reason)
        """
        try:
            result = await run_cancellable(
                self._send(method, request_url, headers, timeout),
                cancel_token,
                timeout,
            )
        except asyncio.TimeoutError:
            return None, f"timeout after {timeout:.1f}s"
        except aiohttp.ClientError as e:
            return None, f"connection error: {e}"

        if strategy == ProxyStrategy.AUTHENTICATED_PROXY:
            self._check_rate_limit(result.headers)

        if result.status == 429:
            return None, "rate limited (HTTP 429)"
        if not 200 <= result.status < 300:
            return None, f"HTTP {result.status}"

        return ProxyResponse(
            url=url,
            final_url=request_url,
            strategy=strategy,
            status=result.status,
            headers=result.headers,
            body=result.body,
        ), ""

    async def _opaque(
        self,
        url: str,
        gateway_url: str,
        method: str,
        headers: Dict[str, str],
        timeout: float,
        cancel_token: Optional[CancellationToken],
    ) -> Optional[ProxyResponse]:
        """Last-resort request whose status and body are not inspected."""
        try:
            result = await run_cancellable(
                self._send(method, gateway_url, headers, timeout, read_body=False),
                cancel_token,
                timeout,
            )
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            logger.error(f"[proxy] Direct IPFS gateway fallback failed for {url}: {e}")
            return None
        return ProxyResponse(
            url=url,
            final_url=gateway_url,
            strategy=ProxyStrategy.DIRECT_GATEWAY,
            status=result.status,
            headers=result.headers,
            body=None,
            opaque=True,
        )

    def _remember(
        self,
        url: str,
        response: ProxyResponse,
        proxied_url: str,
        headers: Dict[str, str],
    ) -> ProxyResponse:
        self._cache.record_success(url, StrategyHit(
            strategy=response.strategy,
            proxied_url=proxied_url,
            headers=tuple(headers.items()),
        ))
        return response

    def _check_rate_limit(self, headers: Dict[str, str]) -> None:
        """Warn when the authenticated proxy's quota is nearly spent."""
        lowered = {k.lower(): v for k, v in headers.items()}
        remaining = lowered.get("x-ratelimit-remaining") or lowered.get("x-rate-limit-remaining")
        limit = lowered.get("x-ratelimit-limit") or lowered.get("x-rate-limit-limit")
        if remaining is None or limit is None:
            return
        try:
            remaining_value = int(remaining)
            limit_value = int(limit)
        except ValueError:
            return
        if limit_value > 0 and remaining_value < limit_value * RATE_LIMIT_WARNING_RATIO:
            logger.warning(
                f"[proxy] Authenticated proxy quota low: {remaining_value}/{limit_value} remaining"
            )

    # ─────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        timeout: float,
        read_body: bool = True,
    ) -> HttpResult:
        """Perform one HTTP request."""
        session = await self._get_session()
        async with session.request(
            method,
            url,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as response:
            body = None
            if read_body and method.upper() != "HEAD":
                body = await response.read()
            return HttpResult(
                status=response.status,
                headers=dict(response.headers),
                body=body,
                final_url=str(response.url),
            )

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "ProxyChain":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
