"""Cancellation token for pending retry sequences"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RetryCancelled(Exception):
    """Raised inside the executor when its cancellation token fires"""

    pass


class CancellationToken:
    """Signal shared between a caller and a running retry sequence

    The token does not interrupt an attempt that is already running; it stops
    the sequence before the next attempt and cuts a pending delay short.
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation (idempotent)"""
        if not self._event.is_set():
            logger.debug("Cancellation requested")
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise RetryCancelled if cancellation was requested

        Raises:
            RetryCancelled: If the token is cancelled
        """
        if self._event.is_set():
            raise RetryCancelled("Retry sequence cancelled")

    async def sleep(
        self,
        delay: float,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        """Wait for ``delay`` seconds unless cancelled first

        Args:
            delay: Seconds to wait
            sleep: Custom sleep coroutine function; cancellation is then
                checked before and after it instead of while waiting

        Raises:
            RetryCancelled: If the token is or becomes cancelled
        """
        self.raise_if_cancelled()
        if sleep is not None:
            await sleep(delay)
            self.raise_if_cancelled()
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()
