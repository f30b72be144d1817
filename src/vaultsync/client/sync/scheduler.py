"""Single-timer scheduler for recurring work on the event loop.

This module provides:
- SyncScheduler: owns at most one pending asyncio.TimerHandle and runs an
  async callback each time it fires

The owner re-arms the timer after every run (with whatever delay its backoff
dictates), so "time until next tick" is always observable.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Runs an async callback when a single cancellable timer fires."""

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            callback: Coroutine factory run on each tick.
            loop: Event loop to schedule on (defaults to the running loop).
        """
        self._callback = callback
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def armed(self) -> bool:
        """True while a tick is pending."""
        return self._handle is not None

    @property
    def running(self) -> bool:
        """True while a fired callback has not finished."""
        return bool(self._tasks)

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, delay: float) -> None:
        """Arm the timer, replacing any pending tick."""
        self.cancel()
        loop = self._get_loop()
        self._handle = loop.call_later(max(0.0, delay), self._fire)
        logger.debug(f"Next tick in {delay:.1f}s")

    def cancel(self) -> None:
        """Drop the pending tick. A callback already running is left alone."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def time_until_next(self) -> float | None:
        """Seconds until the pending tick, or None if not armed."""
        if self._handle is None:
            return None
        return max(0.0, self._handle.when() - self._get_loop().time())

    async def wait_idle(self) -> None:
        """Wait for every in-flight callback to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        task = self._get_loop().create_task(self._run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self) -> None:
        try:
            await self._callback()
        except Exception:
            logger.exception("Scheduled callback failed")
