"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Engine and session management for the artifact store.

- Engine creation from DATABASE_URL (SQLite or PostgreSQL)
- Foreign keys enforced on SQLite connections
- Session factory and scoped session helpers
- Table creation (schema administration beyond that is external)

============================================================
"""

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storage.models.base import Base
from storage.repositories.exceptions import ConnectionError


logger = logging.getLogger(__name__)


DEFAULT_DATABASE_URL = "sqlite:///artifacts.db"

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def get_database_url() -> str:
    """Get database URL from environment."""
    load_dotenv()
    url = os.getenv("DATABASE_URL")
    if not url:
        url = DEFAULT_DATABASE_URL
        logger.info(f"DATABASE_URL not set, using default: {url}")
    return url


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def create_database_engine(
    database_url: Optional[str] = None,
    echo: bool = False,
) -> Engine:
    """
    Create a SQLAlchemy engine.

    In-memory SQLite uses a single shared connection so every
    session sees the same database.
    """
    url = database_url or get_database_url()
    logger.info(f"Creating database engine for: {url.split('@')[-1]}")

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if _is_memory_sqlite(url):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=echo,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


def get_engine() -> Engine:
    """Get the process-wide engine, creating if necessary."""
    global _engine
    if _engine is None:
        _engine = create_database_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    """Get the process-wide session factory, creating if necessary."""
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = create_session_factory(get_engine())
    return _SessionFactory


def configure(database_url: str, echo: bool = False) -> sessionmaker:
    """Replace the process-wide engine (CLI start-up and tests)."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = create_database_engine(database_url, echo=echo)
    _SessionFactory = create_session_factory(_engine)
    return _SessionFactory


@contextmanager
def session_scope(
    factory: Optional[sessionmaker] = None,
) -> Generator[Session, None, None]:
    """
    Session with automatic rollback on error and close on exit.

    Usage:
        with session_scope() as session:
            WalletRepository(session).create(user_id, address)
            session.commit()
    """
    session = (factory or get_session_factory())()
    try:
        yield session
    except SQLAlchemyError as e:
        logger.error(f"Database error, rolling back: {e}")
        session.rollback()
        raise
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_database(engine: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet."""
    engine = engine or get_engine()
    Base.metadata.create_all(engine)
    logger.info(f"Database tables ready: {', '.join(sorted(Base.metadata.tables))}")


def verify_database_connection(engine: Optional[Engine] = None) -> bool:
    """
    Raises:
        ConnectionError: Database unreachable
    """
    engine = engine or get_engine()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.info("Database connection verified")
        return True
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise ConnectionError(
            repository_name="database",
            operation="connect",
            original_error=str(e),
        ) from e
