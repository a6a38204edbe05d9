"""Monotonic clock backed by the running asyncio loop."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class ScheduledCallback:
    """Handle for a callback scheduled with ``loop.call_later``.

    Cancelling before the deadline drops the callback entirely. Once the
    deadline passes the callback runs as a task and is left to complete.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, delay: float,
                 callback: Callable[[], Awaitable[None]], tasks: Set[asyncio.Task]):
        self._loop = loop
        self._callback = callback
        self._tasks = tasks
        self._handle = loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        task = self._loop.create_task(self._callback())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def cancel(self) -> None:
        self._handle.cancel()


class AsyncioClock:
    """Clock implementation used by the daemon."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._tasks: Set[asyncio.Task] = set()

    def now(self) -> float:
        return time.monotonic()

    def schedule(self, delay: float, callback: Callable[[], Awaitable[None]]) -> ScheduledCallback:
        loop = self._loop or asyncio.get_running_loop()
        return ScheduledCallback(loop, max(0.0, delay), callback, self._tasks)

    async def drain(self) -> None:
        """Wait for callbacks that already fired."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
