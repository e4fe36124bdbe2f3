"""
Fire-and-forget execution of notification jobs.
Requests submit a job and return immediately; failures end up in the log.
"""
import asyncio
import logging
from functools import partial
from typing import Awaitable, Set

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Runs submitted coroutines as background tasks on the running loop."""

    def __init__(self):
        # Strong references; the event loop only keeps weak ones
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, job: Awaitable, description: str) -> asyncio.Task:
        """Schedule job without awaiting it."""
        task = asyncio.ensure_future(job)
        self._tasks.add(task)
        task.add_done_callback(partial(self._finished, description))
        return task

    def _finished(self, description: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background job cancelled: {description}")
            return

        exc = task.exception()
        if exc is not None:
            logger.error(f"Background job failed: {description}: {exc}")
        else:
            logger.debug(f"Background job done: {description}")

    async def drain(self) -> None:
        """Wait for every outstanding job, including ones submitted meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
