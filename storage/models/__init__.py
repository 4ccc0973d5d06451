"""
Storage Models Package.

============================================================
MODEL ORGANIZATION
============================================================

Base (base.py)
- Base
- TimestampMixin
- UUIDPrimaryKeyMixin

Artifacts (artifacts.py)
- Wallet
- Artifact

============================================================
"""

from storage.models.artifacts import Artifact, Wallet
from storage.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Wallet",
    "Artifact",
]
