"""
Data Ingestion - Ingestion Orchestrator.

============================================================
RESPONSIBILITY
============================================================
Runs one ingestion pass for a wallet across a list of networks.

- Resolves the wallet identity (the only failure that aborts)
- Fetches each network sequentially, isolating failures
- Normalizes records and counts malformed drops
- Rewrites the wallet's active networks
- Persists through PersistenceSync when a user is signed in
- Reports progress through the UI notifier, fire-and-forget

============================================================
STATE MACHINE
============================================================
PENDING -> FETCHING(n) -> SUCCESS(n) | FAILED(n) -> ...
        -> AGGREGATING -> PERSISTING -> DONE

Runs for the same wallet are serialized by a per-wallet lock.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union
from uuid import UUID

from artifact_adapters.models import FetchProgress
from artifact_adapters.registry import FetcherRegistry
from core.cancellation import CancellationToken
from core.collaborators import AuthContext, UINotifier, notify_safely
from core.config import PipelineSettings
from core.exceptions import ArtifactPipelineError, PersistenceConflictError
from data_ingestion.normalizers.artifact_normalizer import ArtifactNormalizer
from data_ingestion.types import IngestionResult, IngestionState, NormalizedArtifact
from storage.sync import PersistenceSync, UpsertSummary


logger = logging.getLogger(__name__)


@dataclass
class IngestionServiceConfig:
    """Fetch limits for one ingestion run."""
    page_size: int = 100
    max_pages: int = 20

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "IngestionServiceConfig":
        return cls(
            page_size=settings.fetcher.page_size,
            max_pages=settings.fetcher.max_pages,
        )


class IngestionOrchestrator:
    """
    Ingests a wallet's artifacts across networks.

    Usage:
        orchestrator = IngestionOrchestrator(
            registry=create_default_registry(settings.fetcher),
            persistence=PersistenceSync(get_session_factory()),
            auth=StaticAuthContext(user_id),
            notifier=LoggingNotifier(),
        )
        result = await orchestrator.ingest(wallet.id, wallet.address, ["eth", "polygon"])
    """

    def __init__(
        self,
        registry: FetcherRegistry,
        persistence: Optional[PersistenceSync] = None,
        auth: Optional[AuthContext] = None,
        notifier: Optional[UINotifier] = None,
        normalizer: Optional[ArtifactNormalizer] = None,
        config: Optional[IngestionServiceConfig] = None,
    ) -> None:
        self._registry = registry
        self._persistence = persistence
        self._auth = auth
        self._notifier = notifier
        self._normalizer = normalizer or ArtifactNormalizer()
        self._config = config or IngestionServiceConfig()
        self._wallet_locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, wallet_id: Union[UUID, str]) -> asyncio.Lock:
        key = str(wallet_id)
        lock = self._wallet_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._wallet_locks[key] = lock
        return lock

    async def ingest(
        self,
        wallet_id: Union[UUID, str],
        address: str,
        networks: Sequence[str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> IngestionResult:
        """
        Run one ingestion pass.

        Args:
            wallet_id: Owning wallet
            address: Wallet address or ENS name
            networks: Networks to query, in order
            cancel_token: Aborts in-flight I/O when cancelled

        Returns:
            IngestionResult with per-network outcomes

        Raises:
            InvalidAddressError: Identity could not be resolved
            asyncio.CancelledError: Run was cancelled
        """
        lock = self._lock_for(wallet_id)
        if lock.locked():
            logger.info(f"[ingest] Waiting for running ingestion of wallet {wallet_id}")
        async with lock:
            return await self._run(wallet_id, address, networks, cancel_token)

    async def _run(
        self,
        wallet_id: Union[UUID, str],
        address: str,
        networks: Sequence[str],
        cancel_token: Optional[CancellationToken],
    ) -> IngestionResult:
        result = IngestionResult(wallet_id=wallet_id, address=address)
        result.transition(IngestionState.PENDING)
        networks = list(dict.fromkeys(networks))

        try:
            resolved = await self._registry.resolve_identity(address)
        except ArtifactPipelineError as e:
            logger.error(f"[ingest] Identity resolution failed for {address}: {e}")
            notify_safely(self._notifier, "error", "Invalid wallet", e.message)
            raise
        result.address = resolved

        collected: List[NormalizedArtifact] = []
        for index, network in enumerate(networks, start=1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            result.transition(IngestionState.FETCHING, network)
            notify_safely(
                self._notifier,
                "progress",
                f"Fetching artifacts from {network}",
                {"network": network, "step": index, "of": len(networks)},
            )

            try:
                raws = await self._registry.fetch_all_pages(
                    resolved,
                    network,
                    page_size=self._config.page_size,
                    max_pages=self._config.max_pages,
                    on_progress=self._on_fetch_progress,
                    cancel_token=cancel_token,
                )
            except ArtifactPipelineError as e:
                result.failures[network] = e.message
                result.transition(IngestionState.FAILED, network, e.message)
                logger.warning(f"[ingest] {network} failed for {resolved}: {e}")
                continue
            except Exception as e:
                reason = f"Unexpected error: {e}"
                result.failures[network] = reason
                result.transition(IngestionState.FAILED, network, reason)
                logger.error(f"[ingest] {network} failed for {resolved}: {e}", exc_info=True)
                continue

            artifacts, dropped = self._normalizer.normalize_batch(raws, wallet_id, network)
            result.malformed_dropped += dropped
            result.per_network[network] = len(artifacts)
            collected.extend(artifacts)
            result.transition(IngestionState.SUCCESS, network, f"{len(artifacts)} artifacts")
            logger.info(f"[ingest] {network}: {len(artifacts)} artifacts ({dropped} dropped)")

        result.transition(IngestionState.AGGREGATING)
        # Same contract and token on two networks is one stored row
        collected = list({a.natural_key: a for a in collected}.values())
        result.artifacts = collected
        result.total_ingested = len(collected)
        result.active_networks = [n for n in networks if result.per_network.get(n, 0) > 0]

        if self._should_persist():
            result.transition(IngestionState.PERSISTING)
            result.persistence = await self._persist(wallet_id, collected, result.active_networks)
        else:
            logger.info(f"[ingest] No signed-in user, skipping persistence for wallet {wallet_id}")

        result.transition(IngestionState.DONE)
        self._notify_outcome(result)
        return result

    def _should_persist(self) -> bool:
        if self._persistence is None or self._auth is None:
            return False
        return self._auth.current_user_id() is not None

    async def _persist(
        self,
        wallet_id: Union[UUID, str],
        artifacts: List[NormalizedArtifact],
        active_networks: List[str],
    ) -> UpsertSummary:
        summary = await asyncio.to_thread(self._persistence.upsert_batch, artifacts)
        try:
            await asyncio.to_thread(self._persistence.set_active_networks, wallet_id, active_networks)
        except ArtifactPipelineError as e:
            logger.error(f"[ingest] Could not update active networks for wallet {wallet_id}: {e}")
            summary.errors.append(PersistenceConflictError(
                f"Active networks not saved: {e.message}",
                original_error=e,
            ))
        return summary

    def _on_fetch_progress(self, progress: FetchProgress) -> None:
        notify_safely(
            self._notifier,
            "progress",
            f"Fetched {progress.total_so_far} artifacts from {progress.network}",
            progress.to_dict(),
        )

    def _notify_outcome(self, result: IngestionResult) -> None:
        if result.failures and not result.active_networks:
            notify_safely(
                self._notifier,
                "error",
                "Ingestion failed",
                f"No artifacts fetched; {len(result.failures)} network(s) failed",
            )
            return

        message = (
            f"Found {result.total_ingested} artifacts on "
            f"{len(result.active_networks)} network(s)"
        )
        if result.failures:
            message += f"; {', '.join(sorted(result.failures))} unavailable"
        if result.persistence is not None and result.persistence.errors:
            message += f"; {len(result.persistence.errors)} not saved"
        notify_safely(self._notifier, "success", "Ingestion complete", message)
