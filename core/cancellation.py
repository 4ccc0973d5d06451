"""
Core Module - Cancellation.

============================================================
RESPONSIBILITY
============================================================
Explicit cancellation token threaded through every suspension
point of an ingestion run or media resolution.

When the owning context is torn down it calls cancel(); any
awaitable wrapped with run_cancellable() is aborted and the
in-flight I/O task is cancelled rather than merely ignored.

============================================================
"""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    Cooperative cancellation signal.

    Usage:
        token = CancellationToken()
        task = asyncio.create_task(orchestrator.ingest(..., cancel_token=token))
        ...
        token.cancel("view closed")
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        """Reason passed to cancel()."""
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()
            logger.debug(f"Cancellation requested: {reason}")

    def raise_if_cancelled(self) -> None:
        """Raise CancelledError if cancellation was requested."""
        if self._event.is_set():
            raise asyncio.CancelledError(self._reason)

    async def wait(self) -> None:
        """Wait until cancellation is requested."""
        await self._event.wait()


async def run_cancellable(
    awaitable: Awaitable[T],
    token: Optional[CancellationToken] = None,
    timeout: Optional[float] = None,
) -> T:
    """
    Await with an optional timeout and cancellation token.

    Args:
        awaitable: The I/O operation
        token: Cancels the operation when triggered
        timeout: Seconds before asyncio.TimeoutError

    Returns:
        Result of the awaitable

    Raises:
        asyncio.TimeoutError: On timeout
        asyncio.CancelledError: If the token fired first
    """
    if token is None:
        return await asyncio.wait_for(awaitable, timeout=timeout)

    if token.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        token.raise_if_cancelled()

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait(
            {work, waiter},
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if work in done:
            return work.result()
        work.cancel()
        if waiter in done:
            raise asyncio.CancelledError(token.reason)
        raise asyncio.TimeoutError()
    finally:
        waiter.cancel()
        if not work.done():
            work.cancel()
