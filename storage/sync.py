"""
Storage - Persistence Sync.

============================================================
RESPONSIBILITY
============================================================
Idempotent batch upsert of normalized artifacts.

- Chunks of at most 100 artifacts, one transaction per chunk
- Per artifact: look up by natural key, update in place or insert
- A unique-constraint violation (a concurrent writer won the
  race) rolls the chunk back and replays it row by row; the
  replayed insert finds the winner's row and becomes an update
- Rows that still fail are reported, never raised

Running the same batch twice yields zero inserts the second time.

============================================================
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from sqlalchemy.orm import sessionmaker

from core.config import MAX_PERSISTENCE_BATCH_SIZE
from core.exceptions import PersistenceConflictError
from storage.database import session_scope
from storage.models.artifacts import Artifact, Wallet
from storage.repositories.artifacts import ArtifactRepository
from storage.repositories.exceptions import DuplicateRecordError, RepositoryException
from storage.repositories.wallets import WalletRepository


logger = logging.getLogger(__name__)


INSERTED = "inserted"
UPDATED = "updated"


@dataclass
class UpsertSummary:
    """Outcome of one upsert_batch call."""
    inserted: int = 0
    updated: int = 0
    errors: List[PersistenceConflictError] = field(default_factory=list)
    chunks: int = 0
    replayed_chunks: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated

    def count(self, outcome: str) -> None:
        if outcome == INSERTED:
            self.inserted += 1
        else:
            self.updated += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "errors": [e.to_dict() for e in self.errors],
            "chunks": self.chunks,
            "replayed_chunks": self.replayed_chunks,
        }


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class PersistenceSync:
    """
    Writes normalized artifacts to the store.

    Usage:
        sync = PersistenceSync(get_session_factory())
        summary = sync.upsert_batch(artifacts)
        print(summary.inserted, summary.updated, len(summary.errors))
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        batch_size: int = MAX_PERSISTENCE_BATCH_SIZE,
    ) -> None:
        self._session_factory = session_factory
        self._batch_size = max(1, min(batch_size, MAX_PERSISTENCE_BATCH_SIZE))

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def upsert_batch(self, artifacts: Sequence[Any]) -> UpsertSummary:
        """
        Upsert artifacts by natural key.

        Args:
            artifacts: NormalizedArtifact instances

        Returns:
            UpsertSummary(inserted, updated, errors)
        """
        summary = UpsertSummary()
        artifacts = list(artifacts)
        if not artifacts:
            return summary

        for chunk in chunked(artifacts, self._batch_size):
            summary.chunks += 1
            self._upsert_chunk(chunk, summary)

        logger.info(
            f"[persistence] Upserted {len(artifacts)} artifacts: "
            f"{summary.inserted} inserted, {summary.updated} updated, "
            f"{len(summary.errors)} failed"
        )
        return summary

    def _upsert_chunk(self, chunk: Sequence[Any], summary: UpsertSummary) -> None:
        outcomes: List[str] = []
        with session_scope(self._session_factory) as session:
            repo = ArtifactRepository(session)
            try:
                for artifact in chunk:
                    outcomes.append(self._apply(repo, artifact))
                repo.commit()
            except RepositoryException as e:
                repo.rollback()
                summary.replayed_chunks += 1
                logger.warning(
                    f"[persistence] Chunk of {len(chunk)} rolled back ({e.message}), "
                    f"replaying row by row"
                )
                self._replay(repo, chunk, summary)
                return

        for outcome in outcomes:
            summary.count(outcome)

    def _replay(self, repo: ArtifactRepository, chunk: Sequence[Any], summary: UpsertSummary) -> None:
        for artifact in chunk:
            last_error: Optional[RepositoryException] = None
            # Second attempt sees the concurrently inserted row and updates it
            for _ in range(2):
                try:
                    outcome = self._apply(repo, artifact)
                    repo.commit()
                except DuplicateRecordError as e:
                    repo.rollback()
                    last_error = e
                    continue
                except RepositoryException as e:
                    repo.rollback()
                    last_error = e
                    break
                summary.count(outcome)
                last_error = None
                break

            if last_error is not None:
                error = PersistenceConflictError(
                    f"Could not persist artifact: {last_error.message}",
                    network=getattr(artifact, "network", None),
                    natural_key=artifact.natural_key,
                    original_error=last_error,
                )
                logger.error(f"[persistence] {error}")
                summary.errors.append(error)

    @staticmethod
    def _apply(repo: ArtifactRepository, artifact: Any) -> str:
        existing = repo.find_by_natural_key(*artifact.natural_key)
        if existing is not None:
            repo.update(existing, artifact.to_record())
            return UPDATED
        repo.insert(artifact)
        return INSERTED

    # ─────────────────────────────────────────────────────────────
    # Wallet-level operations
    # ─────────────────────────────────────────────────────────────

    def set_active_networks(
        self,
        wallet_id: Union[uuid.UUID, str],
        networks: Sequence[str],
    ) -> None:
        """
        Raises:
            RepositoryException: Unknown wallet or store failure
        """
        with session_scope(self._session_factory) as session:
            repo = WalletRepository(session)
            repo.update_active_networks(wallet_id, networks)
            repo.commit()

    def set_spam(self, artifact_id: Union[uuid.UUID, str], flag: bool) -> Artifact:
        with session_scope(self._session_factory) as session:
            repo = ArtifactRepository(session)
            artifact = repo.set_spam(artifact_id, flag)
            repo.commit()
            return artifact

    def delete_wallet(self, wallet_id: Union[uuid.UUID, str]) -> bool:
        """Delete a wallet together with all of its artifacts."""
        with session_scope(self._session_factory) as session:
            repo = WalletRepository(session)
            deleted = repo.delete(wallet_id)
            repo.commit()
            return deleted

    def list_artifacts(
        self,
        wallet_id: Union[uuid.UUID, str],
        network: Optional[str] = None,
    ) -> List[Artifact]:
        with session_scope(self._session_factory) as session:
            return ArtifactRepository(session).list_for_wallet(wallet_id, network=network)

    def get_wallet(self, wallet_id: Union[uuid.UUID, str]) -> Optional[Wallet]:
        with session_scope(self._session_factory) as session:
            return WalletRepository(session).get(wallet_id)
