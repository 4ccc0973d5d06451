"""
Base Artifact Fetcher - Abstract interface for per-network artifact providers.

All fetchers MUST:
- Validate the wallet address before any network call
- Return one page of raw records plus an opaque continuation cursor
- Map provider failures onto the pipeline error taxonomy
- Never retry client errors
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

import aiohttp

from artifact_adapters.models import (
    ChainFamily,
    FetcherHealth,
    FetcherStatus,
    FetchPage,
    FetchProgress,
    get_network,
)
from core.cancellation import CancellationToken, run_cancellable
from core.exceptions import (
    ArtifactPipelineError,
    InvalidAddressError,
    NetworkUnavailableError,
)


logger = logging.getLogger(__name__)


EVM_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
SOLANA_ADDRESS_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

ProgressCallback = Callable[[FetchProgress], Any]


def is_valid_address(address: str, family: ChainFamily = ChainFamily.EVM) -> bool:
    """Check an address against its chain family's format."""
    if not isinstance(address, str):
        return False
    if family == ChainFamily.SOLANA:
        return bool(SOLANA_ADDRESS_PATTERN.match(address))
    return bool(EVM_ADDRESS_PATTERN.match(address))


def family_of(network: str) -> ChainFamily:
    info = get_network(network)
    return info.family if info else ChainFamily.EVM


class BaseArtifactFetcher(ABC):
    """
    Abstract base class for artifact fetchers.

    Each fetcher must:
    1. Implement name / networks - identity and coverage
    2. Implement fetch_page_raw() - one provider page for (address, network)

    Features:
    - Address validation before I/O
    - Limited retry with backoff for transient failures only
    - Progress events scheduled on the event loop, never awaited
    - Health tracking
    """

    DEFAULT_TIMEOUT = 30.0
    MAX_RETRIES = 2
    RETRY_BACKOFF_BASE = 1.5
    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
        max_retries: int = MAX_RETRIES,
        retry_backoff_base: float = RETRY_BACKOFF_BASE,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._max_retries = max(1, max_retries)
        self._retry_backoff_base = retry_backoff_base

        self._health = FetcherHealth(
            status=FetcherStatus.UNKNOWN,
            last_check=datetime.utcnow(),
        )
        self._progress_tasks: Set[asyncio.Task] = set()

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this fetcher."""
        pass

    @property
    @abstractmethod
    def networks(self) -> List[str]:
        """Network identifiers this fetcher serves."""
        pass

    @abstractmethod
    async def fetch_page_raw(
        self,
        address: str,
        network: str,
        cursor: Optional[str],
        page_size: int,
    ) -> FetchPage:
        """
        Fetch one page of raw records from the provider.

        Returns:
            FetchPage with records shaped for the artifact normalizer

        Raises:
            InvalidAddressError: Provider rejected the address
            NetworkUnavailableError: Provider unreachable or failing
        """
        pass

    def supports(self, network: str) -> bool:
        return network in self.networks

    async def fetch(
        self,
        address: str,
        network: str,
        cursor: Optional[str] = None,
        page_size: int = 100,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        page_number: int = 1,
        total_so_far: int = 0,
    ) -> FetchPage:
        """
        Fetch one page of artifacts owned by `address` on `network`.

        Args:
            address: Wallet address (validated before any I/O)
            network: Network identifier
            cursor: Continuation cursor from a previous page
            page_size: Provider page size
            on_progress: Callback receiving FetchProgress events
            cancel_token: Optional cancellation

        Returns:
            FetchPage(artifacts, cursor)

        Raises:
            InvalidAddressError: Malformed address or provider rejection
            NetworkUnavailableError: Provider unreachable after retries
        """
        if not self.supports(network):
            raise NetworkUnavailableError(
                f"Fetcher '{self.name}' does not serve network '{network}'",
                network=network,
            )
        if not is_valid_address(address, family_of(network)):
            raise InvalidAddressError(
                f"Invalid {family_of(network).value} address",
                network=network,
                address=address,
            )

        start = time.monotonic()
        try:
            page = await run_cancellable(
                self._fetch_with_retry(address, network, cursor, page_size),
                token=cancel_token,
                timeout=self._timeout * self._max_retries,
            )
        except asyncio.TimeoutError as e:
            error = NetworkUnavailableError(
                f"Timed out fetching {network}",
                network=network,
                original_error=e,
            )
            self._on_error(error)
            raise error from e
        except ArtifactPipelineError as e:
            self._on_error(e)
            raise

        self._on_success((time.monotonic() - start) * 1000)
        logger.debug(
            f"[{self.name}] {network} page {page_number}: "
            f"{len(page.artifacts)} records, more={page.has_more}"
        )
        self._emit_progress(on_progress, FetchProgress(
            address=address,
            network=network,
            page=page_number,
            fetched=len(page.artifacts),
            total_so_far=total_so_far + len(page.artifacts),
            done=not page.has_more,
        ))
        return page

    async def _fetch_with_retry(
        self,
        address: str,
        network: str,
        cursor: Optional[str],
        page_size: int,
    ) -> FetchPage:
        """Fetch with limited retries."""
        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                return await self.fetch_page_raw(address, network, cursor, page_size)

            except InvalidAddressError:
                raise

            except NetworkUnavailableError as e:
                if e.status_code and 400 <= e.status_code < 500:
                    # Don't retry client errors or rate limits
                    if e.status_code == 429:
                        self._health.status = FetcherStatus.RATE_LIMITED
                        self._health.rate_limit_remaining = 0
                    raise
                last_error = e

            if attempt + 1 < self._max_retries:
                wait_time = self._retry_backoff_base ** attempt
                logger.warning(
                    f"[{self.name}] Retry {attempt + 1}/{self._max_retries} "
                    f"for {network} in {wait_time:.1f}s: {last_error}"
                )
                await asyncio.sleep(wait_time)

        raise NetworkUnavailableError(
            f"Failed after {self._max_retries} attempts",
            network=network,
            status_code=getattr(last_error, "status_code", None),
            original_error=last_error,
        )

    # ─────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def _request_json(
        self,
        method: str,
        url: str,
        network: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        json_body: Optional[Any] = None,
        address: Optional[str] = None,
    ) -> Any:
        """
        Make an HTTP request and decode the JSON body.

        Raises:
            InvalidAddressError: HTTP 400
            NetworkUnavailableError: Any other failure
        """
        session = await self._get_session()
        try:
            async with session.request(
                method, url, params=params, headers=headers, json=json_body,
            ) as response:
                if response.status == 400:
                    text = await response.text()
                    raise InvalidAddressError(
                        f"Provider rejected request: {text[:200]}",
                        network=network,
                        address=address,
                    )

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise NetworkUnavailableError(
                        "Rate limit exceeded",
                        network=network,
                        status_code=429,
                        retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
                        request_url=url,
                    )

                if response.status >= 400:
                    text = await response.text()
                    raise NetworkUnavailableError(
                        f"HTTP {response.status}: {text[:200]}",
                        network=network,
                        status_code=response.status,
                        request_url=url,
                    )

                return await response.json(content_type=None)

        except aiohttp.ClientError as e:
            raise NetworkUnavailableError(
                f"Network error: {e}",
                network=network,
                request_url=url,
                original_error=e,
            ) from e
        except asyncio.TimeoutError as e:
            raise NetworkUnavailableError(
                "Request timeout",
                network=network,
                request_url=url,
                original_error=e,
            ) from e
        except ValueError as e:
            raise NetworkUnavailableError(
                f"Undecodable response: {e}",
                network=network,
                request_url=url,
                original_error=e,
            ) from e

    # ─────────────────────────────────────────────────────────────
    # Progress
    # ─────────────────────────────────────────────────────────────

    def _emit_progress(
        self,
        on_progress: Optional[ProgressCallback],
        progress: FetchProgress,
    ) -> None:
        """Schedule a progress callback without awaiting it."""
        if on_progress is None:
            return
        loop = asyncio.get_running_loop()
        if asyncio.iscoroutinefunction(on_progress):
            task = loop.create_task(on_progress(progress))
            self._progress_tasks.add(task)
            task.add_done_callback(self._progress_done)
        else:
            loop.call_soon(self._run_progress_callback, on_progress, progress)

    def _run_progress_callback(self, on_progress: ProgressCallback, progress: FetchProgress) -> None:
        try:
            on_progress(progress)
        except Exception as e:
            logger.warning(f"[{self.name}] Progress callback failed: {e}")

    def _progress_done(self, task: asyncio.Task) -> None:
        self._progress_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"[{self.name}] Progress callback failed: {task.exception()}")

    # ─────────────────────────────────────────────────────────────
    # Health Tracking
    # ─────────────────────────────────────────────────────────────

    def _on_success(self, latency_ms: float) -> None:
        self._health.status = FetcherStatus.HEALTHY
        self._health.last_check = datetime.utcnow()
        self._health.latency_ms = latency_ms
        self._health.consecutive_failures = 0

    def _on_error(self, error: ArtifactPipelineError) -> None:
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_check = datetime.utcnow()

        if isinstance(error, InvalidAddressError):
            return
        if self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            self._health.status = FetcherStatus.UNAVAILABLE
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            self._health.status = FetcherStatus.DEGRADED

        logger.warning(f"[{self.name}] Error: {error}")

    def get_health(self) -> FetcherHealth:
        return self._health

    def is_usable(self) -> bool:
        return self._health.is_usable()

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close HTTP session if we own it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "BaseArtifactFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
