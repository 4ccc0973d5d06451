"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the exception taxonomy shared by the ingestion and
media-resolution layers.

- Separates permanent from transient failures
- Carries network / URL context for structured logs
- Lets callers aggregate failures instead of aborting runs

============================================================
EXCEPTION HIERARCHY
============================================================
ArtifactPipelineError (base)
├── ConfigurationError
├── InvalidAddressError        (permanent, never retried)
├── NetworkUnavailableError    (transient, per network)
├── ProxyExhaustedError        (all media strategies failed)
├── MalformedRecordError       (dropped at normalization)
└── PersistenceConflictError   (store write failed)

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    PERMANENT = "permanent"
    """Retrying will not help."""

    DEGRADED = "degraded"
    """Caller should fall back to a degraded result."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class ArtifactPipelineError(Exception):
    """
    Base exception for all pipeline errors.

    All exceptions carry:
    - network: the network identifier involved, if any
    - context: for debugging
    - original_error: the wrapped low-level error
    - timestamp: when the error occurred
    """

    default_classification: ErrorClassification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        network: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.network = network
        self.original_error = original_error
        self.context = context or {}
        self.classification = self.default_classification
        self.timestamp = datetime.now(timezone.utc)

    @property
    def is_retryable(self) -> bool:
        """Check if a retry may succeed."""
        return self.classification == ErrorClassification.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "network": self.network,
            "classification": self.classification.value,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.network:
            parts.append(f"[network={self.network}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(ArtifactPipelineError):
    """Configuration value missing or invalid."""

    default_classification = ErrorClassification.PERMANENT

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.config_key = config_key

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data


# ============================================================
# FETCH ERRORS
# ============================================================

class InvalidAddressError(ArtifactPipelineError):
    """
    Address cannot be used for the requested network.

    Permanent: the caller must not retry, and the failure is
    surfaced to the user immediately.
    """

    default_classification = ErrorClassification.PERMANENT

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.address = address

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["address"] = self.address
        return data


class NetworkUnavailableError(ArtifactPipelineError):
    """
    A network's listing API could not be reached or refused service.

    Transient and isolated: sibling networks continue.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after_seconds: Optional[int] = None,
        request_url: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.retry_after_seconds = retry_after_seconds
        self.request_url = request_url

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "retry_after_seconds": self.retry_after_seconds,
            "request_url": self.request_url,
        })
        return data


# ============================================================
# MEDIA ERRORS
# ============================================================

class ProxyExhaustedError(ArtifactPipelineError):
    """Every media resolution strategy failed for one URL."""

    default_classification = ErrorClassification.DEGRADED

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        attempts: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.url = url
        self.attempts = attempts or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"url": self.url, "attempts": self.attempts})
        return data


# ============================================================
# RECORD / PERSISTENCE ERRORS
# ============================================================

class MalformedRecordError(ArtifactPipelineError):
    """Raw provider record lacks identity fields."""

    default_classification = ErrorClassification.PERMANENT

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        raw_data: Optional[Any] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.field_name = field_name
        self.raw_data = raw_data

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "field_name": self.field_name,
            "raw_data": str(self.raw_data)[:500] if self.raw_data else None,
        })
        return data


class PersistenceConflictError(ArtifactPipelineError):
    """
    Store write failed for one artifact.

    The artifact stays valid for display; only durability is lost.
    """

    def __init__(
        self,
        message: str,
        natural_key: Optional[tuple] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.natural_key = natural_key

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["natural_key"] = [str(part) for part in self.natural_key] if self.natural_key else None
        return data
