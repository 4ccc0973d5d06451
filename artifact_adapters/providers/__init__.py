"""
Providers package - Artifact fetcher implementations.
"""

from artifact_adapters.providers.fixture import FixtureFetcher
from artifact_adapters.providers.helius import HeliusFetcher
from artifact_adapters.providers.moralis import MoralisFetcher


__all__ = [
    "FixtureFetcher",
    "HeliusFetcher",
    "MoralisFetcher",
]
