"""
Pydantic Schemas for stored wallets and artifacts.

Stable read shapes handed to renderers and catalog collaborators.
"""

from datetime import datetime
from typing import Any, List, Optional, Tuple
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field


class WalletRead(BaseModel):
    """Wallet as exposed to callers."""
    id: UUID
    user_id: str
    address: str
    chain_family: str
    nickname: Optional[str] = None
    active_networks: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ArtifactRead(BaseModel):
    """Artifact as exposed to renderers and catalogs."""
    id: UUID
    wallet_id: UUID
    network: str
    contract_address: str
    token_id: str
    token_standard: Optional[str] = None
    balance: int = 1
    title: Optional[str] = None
    description: Optional[str] = None
    media_url: Optional[str] = None
    cover_image_url: Optional[str] = None
    media_type: Optional[str] = None
    contract_name: Optional[str] = None
    token_uri: Optional[str] = None
    metadata: Any = Field(
        default=None,
        validation_alias=AliasChoices("metadata_json", "metadata"),
    )
    attributes: List[Any] = Field(default_factory=list)
    is_spam: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def list_key(self) -> Tuple[str, str]:
        """Stable key for list rendering."""
        return (self.contract_address, self.token_id)

    @property
    def metadata_dict(self) -> dict:
        return self.metadata if isinstance(self.metadata, dict) else {}
