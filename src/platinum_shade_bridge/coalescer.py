"""Single-flight coordination for status refreshes."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .logging import get_logger
from .metrics import record_refresh_coalesced

T = TypeVar("T")


def _retrieve_exception(task: asyncio.Task[T]) -> None:
    # Every caller may have been cancelled; mark the failure as observed.
    if not task.cancelled():
        task.exception()


class RefreshCoalescer(Generic[T]):
    """Collapse concurrent refresh requests into one outstanding operation.

    The first caller starts ``operation`` and occupies the slot; callers that
    arrive while it is running wait on the same task and see the same result
    or exception. The slot is released when the operation finishes, whatever
    the outcome, so the next request starts a fresh operation.
    """

    def __init__(self, operation: Callable[[], Awaitable[T]]) -> None:
        self._operation = operation
        self._inflight: Optional[asyncio.Task[T]] = None
        self.logger = get_logger("shades.coalescer")

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    async def request_refresh(self) -> T:
        task = self._inflight
        if task is not None:
            self.logger.debug("Re-using in-flight refresh")
            record_refresh_coalesced()
        else:
            self.logger.debug("Starting new refresh")
            task = asyncio.create_task(self._run())
            task.add_done_callback(_retrieve_exception)
            self._inflight = task
        # A cancelled caller must not cancel the operation other callers share.
        return await asyncio.shield(task)

    async def cancel(self) -> None:
        """Cancel the in-flight operation, if any, and wait for it to unwind."""

        task = self._inflight
        if task is None:
            return
        self.logger.debug("Cancelling in-flight refresh")
        task.cancel()
        await asyncio.wait([task])

    async def _run(self) -> T:
        try:
            return await self._operation()
        finally:
            self.logger.debug("Clearing in-flight refresh")
            self._inflight = None
