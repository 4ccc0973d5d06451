"""
Data Ingestion - Normalizers Package.

Normalizers convert raw provider records to canonical artifacts.

Normalizers:
- artifact_normalizer: NFT records from any artifact fetcher
"""

from data_ingestion.normalizers.artifact_normalizer import (
    MULTI_BALANCE_STANDARDS,
    ArtifactNormalizer,
    normalize,
    normalize_batch,
)


__all__ = [
    "ArtifactNormalizer",
    "MULTI_BALANCE_STANDARDS",
    "normalize",
    "normalize_batch",
]
