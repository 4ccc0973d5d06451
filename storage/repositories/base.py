"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Shared plumbing for the wallet and artifact repositories:

- Injected session (repositories never open their own)
- Every statement runs inside translate(), which turns
  SQLAlchemy errors into repository exceptions
- Writes are flushed immediately so unique / FK constraints
  fail at the call that caused them
- Callers own transaction boundaries through commit() and
  rollback()

============================================================
"""

import logging
from contextlib import contextmanager
from typing import Any, Generic, Iterator, List, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import (
    IntegrityError as SQLAlchemyIntegrityError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session

from storage.models.base import Base
from storage.repositories.exceptions import (
    ConnectionError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    RecordNotFoundError,
    RepositoryException,
    TransactionError,
)


T = TypeVar("T", bound=Base)


def _driver_message(error: SQLAlchemyError) -> str:
    return str(getattr(error, "orig", None) or error)


def constraint_name(error: SQLAlchemyIntegrityError) -> Optional[str]:
    """Best-effort name of the violated constraint (postgres diag or sqlite text)."""
    diag = getattr(error.orig, "diag", None)
    if getattr(diag, "constraint_name", None):
        return diag.constraint_name
    text = _driver_message(error)
    marker = "constraint failed:"
    return text.split(marker, 1)[1].strip() if marker in text else None


def is_unique_violation(error: BaseException) -> bool:
    """Check if an IntegrityError came from a unique constraint."""
    text = str(getattr(error, "orig", error)).lower()
    return "unique" in text or "duplicate" in text


class BaseRepository(Generic[T]):
    """
    Base class for repositories.

    Usage:
        class WalletRepository(BaseRepository[Wallet]):
            def __init__(self, session: Session):
                super().__init__(session, Wallet, "wallets")
    """

    def __init__(self, session: Session, model_class: Type[T], repository_name: str) -> None:
        self._session = session
        self._model_class = model_class
        self._repository_name = repository_name
        self._logger = logging.getLogger(f"repository.{repository_name}")

    @property
    def session(self) -> Session:
        return self._session

    # =========================================================
    # ERROR TRANSLATION
    # =========================================================

    def _translate(self, error: SQLAlchemyError, operation: str) -> RepositoryException:
        name = self._repository_name
        detail = _driver_message(error)

        if isinstance(error, SQLAlchemyIntegrityError):
            if is_unique_violation(error):
                self._logger.warning(f"Unique constraint hit in {operation}: {detail}")
                return DuplicateRecordError(name, operation, constraint_name(error), detail)
            self._logger.error(f"Integrity error in {operation}: {detail}")
            return IntegrityError(name, operation, detail)

        self._logger.error(f"Database error in {operation}: {detail}", exc_info=True)
        if isinstance(error, OperationalError):
            return ConnectionError(name, operation, detail)
        return QueryError(name, operation, detail)

    @contextmanager
    def translate(self, operation: str) -> Iterator[None]:
        """Run a block, re-raising SQLAlchemy errors as repository errors."""
        try:
            yield
        except SQLAlchemyError as e:
            raise self._translate(e, operation) from e

    # =========================================================
    # HELPERS
    # =========================================================

    def _add(self, entity: T) -> T:
        with self.translate("add"):
            self._session.add(entity)
            self._session.flush()
        return entity

    def _flush(self, operation: str) -> None:
        with self.translate(operation):
            self._session.flush()

    def _delete(self, entity: T) -> None:
        with self.translate("delete"):
            self._session.delete(entity)
            self._session.flush()

    def _get_by_id(self, record_id: UUID) -> Optional[T]:
        with self.translate("get_by_id"):
            return self._session.get(self._model_class, record_id)

    def _get_by_id_or_raise(self, record_id: UUID, id_field: str = "id") -> T:
        """
        Raises:
            RecordNotFoundError: If entity does not exist
        """
        entity = self._get_by_id(record_id)
        if entity is None:
            raise RecordNotFoundError(self._repository_name, record_id, id_field)
        return entity

    def _count(self, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(self._model_class)
        if criteria:
            stmt = stmt.where(*criteria)
        with self.translate("count"):
            return self._session.execute(stmt).scalar() or 0

    def _execute_query(self, stmt: Any) -> List[T]:
        with self.translate("query"):
            return list(self._session.execute(stmt).scalars())

    def _execute_scalar(self, stmt: Any) -> Optional[T]:
        with self.translate("query_scalar"):
            return self._session.execute(stmt).scalar_one_or_none()

    # =========================================================
    # TRANSACTIONS
    # =========================================================

    def commit(self) -> None:
        """
        Commit the current transaction, rolling back on failure.

        Raises:
            DuplicateRecordError: A unique constraint rejected a pending write
            IntegrityError: Any other constraint rejected a pending write
            TransactionError: Any other commit failure
        """
        try:
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            if isinstance(e, SQLAlchemyIntegrityError):
                raise self._translate(e, "commit") from e
            raise TransactionError(self._repository_name, "commit", _driver_message(e)) from e

    def rollback(self) -> None:
        try:
            self._session.rollback()
        except SQLAlchemyError as e:
            self._logger.error(f"Rollback failed: {e}")
            raise TransactionError(self._repository_name, "rollback", _driver_message(e)) from e
