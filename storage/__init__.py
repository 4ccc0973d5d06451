"""
Storage Package.

Persists wallets and their artifacts.

Modules:
- database: engine and session management
- models/: ORM models (Wallet, Artifact)
- repositories/: data access layer
- sync: idempotent batch upsert (PersistenceSync)
- schemas: pydantic read shapes
"""

from storage.database import (
    configure,
    create_database_engine,
    create_session_factory,
    get_engine,
    get_session_factory,
    init_database,
    session_scope,
    verify_database_connection,
)
from storage.models import Artifact, Base, Wallet
from storage.repositories import ArtifactRepository, WalletRepository
from storage.schemas import ArtifactRead, WalletRead
from storage.sync import PersistenceSync, UpsertSummary


__all__ = [
    # Database
    "configure",
    "create_database_engine",
    "create_session_factory",
    "get_engine",
    "get_session_factory",
    "init_database",
    "session_scope",
    "verify_database_connection",

    # Models
    "Base",
    "Wallet",
    "Artifact",

    # Repositories
    "WalletRepository",
    "ArtifactRepository",

    # Sync
    "PersistenceSync",
    "UpsertSummary",

    # Schemas
    "ArtifactRead",
    "WalletRead",
]
