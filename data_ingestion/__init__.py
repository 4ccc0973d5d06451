"""
Data Ingestion Package.

Fetch orchestration and normalization of wallet artifacts.

Sub-packages:
- normalizers: raw provider records -> NormalizedArtifact

Main service:
- ingestion_service: IngestionOrchestrator, one run per wallet
"""

from data_ingestion.ingestion_service import IngestionOrchestrator, IngestionServiceConfig
from data_ingestion.normalizers import ArtifactNormalizer, normalize, normalize_batch
from data_ingestion.types import (
    IngestionResult,
    IngestionState,
    MetadataValue,
    NormalizedArtifact,
    ParsedMetadata,
    RawMetadata,
    StateTransition,
    metadata_from_storage,
    parse_metadata,
)


__all__ = [
    # Service
    "IngestionOrchestrator",
    "IngestionServiceConfig",
    # Normalizers
    "ArtifactNormalizer",
    "normalize",
    "normalize_batch",
    # Types
    "IngestionResult",
    "IngestionState",
    "StateTransition",
    "NormalizedArtifact",
    "MetadataValue",
    "ParsedMetadata",
    "RawMetadata",
    "parse_metadata",
    "metadata_from_storage",
]
