"""
Core Module Package.

This package contains the infrastructure components that the
ingestion, media-resolution and storage layers depend on.

Components:
- config: Environment-backed settings
- exceptions: Pipeline exception hierarchy
- cancellation: Explicit cancellation token
- collaborators: AuthContext / UINotifier interfaces
- logging_setup: Entry-point logging configuration
"""

from core.cancellation import CancellationToken, run_cancellable
from core.collaborators import (
    AuthContext,
    LoggingNotifier,
    StaticAuthContext,
    UINotifier,
    notify_safely,
)
from core.config import (
    FetcherSettings,
    NetworkEndpoint,
    PipelineSettings,
    ProxySettings,
    load_settings,
)
from core.exceptions import (
    ArtifactPipelineError,
    ConfigurationError,
    ErrorClassification,
    InvalidAddressError,
    MalformedRecordError,
    NetworkUnavailableError,
    PersistenceConflictError,
    ProxyExhaustedError,
)
from core.logging_setup import configure_logging


__all__ = [
    # Cancellation
    "CancellationToken",
    "run_cancellable",

    # Collaborators
    "AuthContext",
    "UINotifier",
    "StaticAuthContext",
    "LoggingNotifier",
    "notify_safely",

    # Config
    "PipelineSettings",
    "ProxySettings",
    "FetcherSettings",
    "NetworkEndpoint",
    "load_settings",

    # Exceptions
    "ArtifactPipelineError",
    "ErrorClassification",
    "ConfigurationError",
    "InvalidAddressError",
    "NetworkUnavailableError",
    "ProxyExhaustedError",
    "MalformedRecordError",
    "PersistenceConflictError",

    # Logging
    "configure_logging",
]
