"""
Wallet and Artifact ORM Models.

============================================================
PURPOSE
============================================================
Durable store for wallets a user tracks and the artifacts
ingested for them.

============================================================
DATA LIFECYCLE ROLE
============================================================
- Wallet: created on user add, active_networks rewritten after
  every ingestion run, destroyed on explicit removal
- Artifact: upserted by natural key on every ingestion run,
  destroyed with its wallet (ORM cascade + ON DELETE CASCADE)

============================================================
MODELS
============================================================
- Wallet
- Artifact

============================================================
"""

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storage.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Wallet(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    A wallet address tracked by a user.

    Addresses are unique per owner regardless of case; address_key
    holds the lower-cased form the constraint is declared on.
    """

    __tablename__ = "wallets"

    user_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Owning user identity",
    )

    address: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Address as entered by the user",
    )

    address_key: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Lower-cased address for uniqueness",
    )

    chain_family: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="evm",
        comment="evm | solana",
    )

    nickname: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    active_networks: Mapped[List[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Networks that held artifacts in the last ingestion run",
    )

    artifacts: Mapped[List["Artifact"]] = relationship(
        back_populates="wallet",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "address_key", name="uq_wallets_user_address"),
        Index("ix_wallets_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Wallet(id={self.id}, address={self.address}, user_id={self.user_id})>"


class Artifact(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    One NFT owned by a wallet on a network.

    ============================================================
    IDENTITY
    ============================================================
    Natural key: (wallet_id, contract_address, token_id), unique.
    EVM contract addresses are stored lower-cased.

    ============================================================
    METADATA
    ============================================================
    metadata_json holds either a JSON object or, when the provider
    metadata was not an object, the raw string verbatim.

    ============================================================
    """

    __tablename__ = "artifacts"

    wallet_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("wallets.id", ondelete="CASCADE"),
        nullable=False,
    )

    network: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Network identifier (eth, polygon, solana, ...)",
    )

    contract_address: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )

    token_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    token_standard: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
        comment="ERC721 | ERC1155 | provider interface name",
    )

    balance: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Meaningful only for multi-balance standards",
    )

    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    media_url: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Protocol-resolved primary media URL",
    )

    cover_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    media_type: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
        comment="Explicit media type from metadata, if any",
    )

    contract_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    token_uri: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    metadata_json: Mapped[Optional[Any]] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    attributes: Mapped[List[Any]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    is_spam: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="User-togglable; seeded from provider spam flag",
    )

    wallet: Mapped["Wallet"] = relationship(back_populates="artifacts")

    __table_args__ = (
        UniqueConstraint(
            "wallet_id", "contract_address", "token_id",
            name="uq_artifacts_natural_key",
        ),
        Index("ix_artifacts_wallet_network", "wallet_id", "network"),
    )

    @property
    def natural_key(self) -> tuple:
        return (self.wallet_id, self.contract_address, self.token_id)

    @property
    def metadata_dict(self) -> Dict[str, Any]:
        return self.metadata_json if isinstance(self.metadata_json, dict) else {}

    def __repr__(self) -> str:
        return (
            f"<Artifact(id={self.id}, network={self.network}, "
            f"contract={self.contract_address}, token_id={self.token_id})>"
        )
