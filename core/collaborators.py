"""
Core Module - Collaborator Interfaces.

============================================================
RESPONSIBILITY
============================================================
Interfaces the pipeline consumes from the surrounding
application:

- AuthContext: current user identity scoping persistence
- UINotifier: fire-and-forget progress/success/error messages

The pipeline never blocks on, or depends on, notifier delivery.

============================================================
"""

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable


logger = logging.getLogger(__name__)


@runtime_checkable
class AuthContext(Protocol):
    """Supplies the identity used to scope persistence calls."""

    def current_user_id(self) -> Optional[str]:
        """Return the current user id, or None when anonymous."""
        ...


@runtime_checkable
class UINotifier(Protocol):
    """Receives user-facing notifications."""

    def progress(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        ...

    def success(self, title: str, message: str) -> None:
        ...

    def error(self, title: str, message: str) -> None:
        ...


class StaticAuthContext:
    """AuthContext with a fixed identity (None means anonymous)."""

    def __init__(self, user_id: Optional[str] = None) -> None:
        self._user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self._user_id


class LoggingNotifier:
    """Default notifier that writes notifications to the log."""

    def __init__(self, name: str = "notifier") -> None:
        self._logger = logging.getLogger(name)

    def progress(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self._logger.info(f"{message} {details or ''}".rstrip())

    def success(self, title: str, message: str) -> None:
        self._logger.info(f"{title}: {message}")

    def error(self, title: str, message: str) -> None:
        self._logger.error(f"{title}: {message}")


def notify_safely(notifier: Optional[UINotifier], method: str, *args: Any) -> None:
    """
    Deliver a notification without letting notifier errors escape.

    Args:
        notifier: Target notifier (None is a no-op)
        method: One of "progress", "success", "error"
        *args: Arguments for the notifier method
    """
    if notifier is None:
        return
    try:
        getattr(notifier, method)(*args)
    except Exception as e:
        logger.warning(f"Notifier {method} delivery failed: {e}")
