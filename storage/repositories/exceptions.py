"""
Repository Layer Exceptions.

============================================================
PURPOSE
============================================================
Errors raised by the wallet and artifact repositories. Driver
exceptions never leave a repository; they are translated into
one of the classes below.

============================================================
HIERARCHY
============================================================
RepositoryException (ArtifactPipelineError)
├── RecordNotFoundError
├── DuplicateRecordError     natural key / address already stored
├── ValidationError          rejected before the database
└── DriverError
    ├── IntegrityError       FK / not-null violations
    ├── ConnectionError      store unreachable or locked
    ├── QueryError
    └── TransactionError     commit / rollback failed

============================================================
"""

from typing import Any, Dict, Optional

from core.exceptions import ArtifactPipelineError, ErrorClassification


class RepositoryException(ArtifactPipelineError):
    """Failure inside a repository, tagged with where it happened."""

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            f"[{repository_name}] {operation}: {message}",
            context=dict(details or {}),
        )
        self.repository_name = repository_name
        self.operation = operation

    @property
    def details(self) -> Dict[str, Any]:
        return self.context

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["repository"] = self.repository_name
        data["operation"] = self.operation
        return data


class RecordNotFoundError(RepositoryException):
    """Wallet or artifact id does not exist."""

    default_classification = ErrorClassification.PERMANENT

    def __init__(self, repository_name: str, record_id: Any, id_field: str = "id") -> None:
        self.record_id = record_id
        self.id_field = id_field
        super().__init__(
            f"no record with {id_field}={record_id}",
            repository_name,
            "get",
            {id_field: str(record_id)},
        )


class DuplicateRecordError(RepositoryException):
    """
    Unique constraint rejected a write.

    For artifacts another writer already stored the same
    (wallet_id, contract_address, token_id); for wallets the user
    already tracks the address. Retrying the write as an update
    resolves the artifact case.
    """

    def __init__(
        self,
        repository_name: str,
        operation: str,
        constraint_name: Optional[str] = None,
        original_error: Optional[str] = None,
    ) -> None:
        self.constraint_name = constraint_name
        super().__init__(
            f"unique constraint {constraint_name or 'unknown'} violated",
            repository_name,
            operation,
            {"constraint": constraint_name, "driver_error": original_error},
        )


class ValidationError(RepositoryException):
    """Value rejected before reaching the database."""

    default_classification = ErrorClassification.PERMANENT

    def __init__(self, repository_name: str, operation: str, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(
            f"invalid {field}: {reason}",
            repository_name,
            operation,
            {"field": field, "reason": reason},
        )


class DriverError(RepositoryException):
    """Translated SQLAlchemy / DBAPI failure."""

    summary = "database error"

    def __init__(self, repository_name: str, operation: str, original_error: str) -> None:
        self.driver_error = original_error
        super().__init__(
            f"{self.summary}: {original_error}",
            repository_name,
            operation,
            {"driver_error": original_error},
        )


class IntegrityError(DriverError):
    default_classification = ErrorClassification.PERMANENT
    summary = "integrity constraint violated"


class ConnectionError(DriverError):
    summary = "database unavailable"


class QueryError(DriverError):
    default_classification = ErrorClassification.PERMANENT
    summary = "query failed"


class TransactionError(DriverError):
    """Commit or rollback failed; `operation` names the phase."""

    summary = "transaction failed"

    def __init__(self, repository_name: str, phase: str, original_error: str) -> None:
        self.phase = phase
        super().__init__(repository_name, phase, original_error)
