"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The repository layer is the only gateway to persistent storage.

============================================================
ARCHITECTURE PRINCIPLES
============================================================
1. Session Injection: sessions are injected, never created here
2. Explicit Methods: no generic 'execute', clear method names
3. Exception Handling: all DB errors wrapped in repository exceptions
4. Callers own transaction boundaries (commit / rollback)

============================================================
REPOSITORIES
============================================================
- WalletRepository: wallets per user, cascade delete
- ArtifactRepository: artifacts by id and natural key

============================================================
"""

from storage.repositories.artifacts import ArtifactRepository, as_uuid
from storage.repositories.base import BaseRepository, is_unique_violation
from storage.repositories.exceptions import (
    ConnectionError,
    DriverError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    RecordNotFoundError,
    RepositoryException,
    TransactionError,
    ValidationError,
)
from storage.repositories.wallets import WalletRepository, detect_chain_family


__all__ = [
    # Base
    "BaseRepository",
    "is_unique_violation",
    "as_uuid",

    # Repositories
    "WalletRepository",
    "ArtifactRepository",
    "detect_chain_family",

    # Exceptions
    "RepositoryException",
    "RecordNotFoundError",
    "DuplicateRecordError",
    "IntegrityError",
    "ConnectionError",
    "DriverError",
    "QueryError",
    "TransactionError",
    "ValidationError",
]
