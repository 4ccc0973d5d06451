"""
Base ORM Model and Mixins.

============================================================
COMPONENTS
============================================================
- Base: declarative base for wallet and artifact tables
- TimestampMixin: created_at / updated_at columns
- UUIDPrimaryKeyMixin: client-generated UUID primary key

Timestamps are set client-side so SQLite and PostgreSQL behave
the same and values are available without a refresh.

============================================================
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import DateTime, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
        uuid.UUID: Uuid(),
    }

    def column_values(self) -> Dict[str, Any]:
        """Mapped column values keyed by attribute name."""
        return {
            attr.key: getattr(self, attr.key)
            for attr in self.__mapper__.column_attrs
        }


class UUIDPrimaryKeyMixin:
    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )


class TimestampMixin:
    """
    Mixin providing standard timestamp columns.

    Usage:
        class Wallet(Base, UUIDPrimaryKeyMixin, TimestampMixin):
            __tablename__ = "wallets"
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="Record creation timestamp (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        comment="Last update timestamp (UTC)",
    )
