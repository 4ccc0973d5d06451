"""
Data Ingestion - Type Definitions.

============================================================
PURPOSE
============================================================
Shared types for the artifact ingestion layer.

- Tagged metadata values
- Canonical normalized artifact
- Ingestion state machine and result types

============================================================
DESIGN PRINCIPLES
============================================================
- Metadata representation decided once, at the ingestion boundary
- No I/O, no persistence logic
- Serializable for logging and the CLI

============================================================
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Union
from uuid import UUID

if TYPE_CHECKING:
    from storage.sync import UpsertSummary


# =============================================================
# METADATA
# =============================================================

@dataclass(frozen=True)
class ParsedMetadata:
    """Metadata that decoded to a JSON object."""
    data: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    def storable(self) -> Any:
        return self.data


@dataclass(frozen=True)
class RawMetadata:
    """Metadata kept verbatim because it is not a JSON object."""
    text: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {}

    def storable(self) -> Any:
        return self.text


MetadataValue = Union[ParsedMetadata, RawMetadata]


def parse_metadata(value: Any) -> MetadataValue:
    """
    Decide the metadata representation once.

    Mappings are taken as-is; strings get a single JSON parse pass
    and stay raw when that pass does not yield an object.
    """
    if value is None:
        return ParsedMetadata({})
    if isinstance(value, dict):
        return ParsedMetadata(dict(value))
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return RawMetadata(value)
        if isinstance(decoded, dict):
            return ParsedMetadata(decoded)
        return RawMetadata(value)
    return RawMetadata(str(value))


def metadata_from_storage(value: Any) -> MetadataValue:
    """Rebuild the tagged value from a stored JSON column."""
    if isinstance(value, dict):
        return ParsedMetadata(value)
    if value is None:
        return ParsedMetadata({})
    return RawMetadata(str(value))


# =============================================================
# NORMALIZED ARTIFACT
# =============================================================

NaturalKey = Tuple[Any, str, str]


@dataclass
class NormalizedArtifact:
    """Canonical artifact produced by the normalizer."""
    wallet_id: Union[UUID, str]
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
    metadata: MetadataValue = field(default_factory=ParsedMetadata)
    attributes: List[Any] = field(default_factory=list)
    is_spam: bool = False

    @property
    def natural_key(self) -> NaturalKey:
        return (self.wallet_id, self.contract_address, self.token_id)

    @property
    def list_key(self) -> Tuple[str, str]:
        """Stable key for list rendering."""
        return (self.contract_address, self.token_id)

    @property
    def metadata_dict(self) -> Dict[str, Any]:
        return self.metadata.as_dict()

    def to_record(self) -> Dict[str, Any]:
        """Column values for persistence (natural key excluded)."""
        return {
            "network": self.network,
            "token_standard": self.token_standard,
            "balance": self.balance,
            "title": self.title,
            "description": self.description,
            "media_url": self.media_url,
            "cover_image_url": self.cover_image_url,
            "media_type": self.media_type,
            "contract_name": self.contract_name,
            "token_uri": self.token_uri,
            "metadata_json": self.metadata.storable(),
            "attributes": list(self.attributes),
            "is_spam": self.is_spam,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_record()
        data["metadata"] = data.pop("metadata_json")
        data.update({
            "wallet_id": str(self.wallet_id),
            "contract_address": self.contract_address,
            "token_id": self.token_id,
        })
        return data


# =============================================================
# INGESTION STATE
# =============================================================

class IngestionState(str, Enum):
    """States of one ingestion run."""
    PENDING = "pending"
    FETCHING = "fetching"
    SUCCESS = "success"
    FAILED = "failed"
    AGGREGATING = "aggregating"
    PERSISTING = "persisting"
    DONE = "done"


@dataclass(frozen=True)
class StateTransition:
    """One entry in a run's state history."""
    state: IngestionState
    network: Optional[str] = None
    detail: Optional[str] = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "network": self.network,
            "detail": self.detail,
            "at": self.at.isoformat(),
        }


@dataclass
class IngestionResult:
    """Result of one ingestion run for a wallet."""
    wallet_id: Union[UUID, str]
    address: str
    active_networks: List[str] = field(default_factory=list)
    total_ingested: int = 0
    failures: Dict[str, str] = field(default_factory=dict)
    per_network: Dict[str, int] = field(default_factory=dict)
    malformed_dropped: int = 0
    persistence: Optional["UpsertSummary"] = None
    state_history: List[StateTransition] = field(default_factory=list)
    artifacts: List[NormalizedArtifact] = field(default_factory=list)

    @property
    def state(self) -> IngestionState:
        if not self.state_history:
            return IngestionState.PENDING
        return self.state_history[-1].state

    def transition(
        self,
        state: IngestionState,
        network: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        self.state_history.append(StateTransition(state, network, detail))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/CLI output."""
        return {
            "wallet_id": str(self.wallet_id),
            "address": self.address,
            "active_networks": self.active_networks,
            "total_ingested": self.total_ingested,
            "failures": self.failures,
            "per_network": self.per_network,
            "malformed_dropped": self.malformed_dropped,
            "persistence": self.persistence.to_dict() if self.persistence else None,
            "state_history": [t.to_dict() for t in self.state_history],
        }
