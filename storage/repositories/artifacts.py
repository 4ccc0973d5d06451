"""
Artifact Repository.

============================================================
PURPOSE
============================================================
Reads and writes Artifact rows by primary key and by natural
key (wallet_id, contract_address, token_id).

============================================================
"""

import uuid
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from storage.models.artifacts import Artifact
from storage.repositories.base import BaseRepository


# Columns owned by the user once a row exists
USER_OWNED_FIELDS = frozenset({"is_spam"})


def as_uuid(value: Union[uuid.UUID, str]) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class ArtifactRepository(BaseRepository[Artifact]):
    """
    Repository for artifacts.

    Usage:
        repo = ArtifactRepository(session)
        existing = repo.find_by_natural_key(wallet_id, contract, token_id)
        if existing is None:
            repo.insert(normalized)
        else:
            repo.update(existing, normalized.to_record())
        repo.commit()
    """

    def __init__(self, session: Session) -> None:
        super().__init__(session, Artifact, "artifacts")

    def get(self, artifact_id: Union[uuid.UUID, str]) -> Optional[Artifact]:
        return self._get_by_id(as_uuid(artifact_id))

    def find_by_natural_key(
        self,
        wallet_id: Union[uuid.UUID, str],
        contract_address: str,
        token_id: str,
    ) -> Optional[Artifact]:
        stmt = select(Artifact).where(
            Artifact.wallet_id == as_uuid(wallet_id),
            Artifact.contract_address == contract_address,
            Artifact.token_id == token_id,
        )
        return self._execute_scalar(stmt)

    def insert(self, artifact: Any) -> Artifact:
        """
        Insert a normalized artifact.

        Raises:
            DuplicateRecordError: Natural key already present
        """
        entity = Artifact(
            wallet_id=as_uuid(artifact.wallet_id),
            contract_address=artifact.contract_address,
            token_id=artifact.token_id,
            **artifact.to_record(),
        )
        return self._add(entity)

    def update(self, entity: Artifact, values: Dict[str, Any]) -> Artifact:
        """Overwrite provider-owned columns in place."""
        for key, value in values.items():
            if key in USER_OWNED_FIELDS:
                continue
            setattr(entity, key, value)
        self._flush("update")
        return entity

    def delete(self, artifact_id: Union[uuid.UUID, str]) -> bool:
        entity = self.get(artifact_id)
        if entity is None:
            return False
        self._delete(entity)
        self._logger.info(f"Deleted artifact {artifact_id}")
        return True

    def list_for_wallet(
        self,
        wallet_id: Union[uuid.UUID, str],
        network: Optional[str] = None,
        include_spam: bool = True,
    ) -> List[Artifact]:
        stmt = select(Artifact).where(Artifact.wallet_id == as_uuid(wallet_id))
        if network is not None:
            stmt = stmt.where(Artifact.network == network)
        if not include_spam:
            stmt = stmt.where(Artifact.is_spam.is_(False))
        stmt = stmt.order_by(Artifact.network, Artifact.contract_address, Artifact.token_id)
        return self._execute_query(stmt)

    def count_for_wallet(self, wallet_id: Union[uuid.UUID, str]) -> int:
        return self._count(Artifact.wallet_id == as_uuid(wallet_id))

    def set_spam(self, artifact_id: Union[uuid.UUID, str], flag: bool) -> Artifact:
        """
        Toggle the spam flag.

        Raises:
            RecordNotFoundError: Unknown artifact
        """
        entity = self._get_by_id_or_raise(as_uuid(artifact_id))
        entity.is_spam = bool(flag)
        self._flush("set_spam")
        self._logger.info(f"Artifact {artifact_id} is_spam={entity.is_spam}")
        return entity
