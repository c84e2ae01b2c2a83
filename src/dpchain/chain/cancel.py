"""Cooperative cancellation shared by the poll loop and the transport."""
import asyncio
import contextlib
import logging
from typing import Awaitable, Optional, TypeVar

from .errors import ChainCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """Set once from outside (a signal handler, a caller) to stop a chain."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            logger.warning(f"Cancellation requested: {reason}")
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self, operation: Optional[str] = None) -> None:
        if self._event.is_set():
            raise ChainCancelled(f"Execution cancelled: {self.reason}", operation=operation)

    async def sleep(self, seconds: float) -> None:
        """Sleep, waking early (and raising) if cancelled.

        Raises:
            ChainCancelled: if the token is set before or during the sleep
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(seconds, 0))
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()

    async def guard(self, awaitable: Awaitable[T], operation: Optional[str] = None) -> T:
        """Await something, abandoning it if the token is set first.

        Raises:
            ChainCancelled: if cancelled before the awaitable completes
        """
        self.raise_if_cancelled(operation)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task.done():
            return task.result()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise ChainCancelled(f"Execution cancelled: {self.reason}", operation=operation)
