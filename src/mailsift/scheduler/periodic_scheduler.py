"""Generic scheduler for periodic background jobs.

Provides a reusable async task runner that calls a user-supplied coroutine on
a fixed interval. Handles lifecycle (start/shutdown) and standard error
handling: a failing run is logged and the next tick retries.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from mailsift.util.logger import get_logger

logger = get_logger("periodic_scheduler")


class PeriodicScheduler:
    """
    Reusable scheduler for one periodic job.

    Args:
        name: Human-readable name for logging (e.g., "SWEEP", "CACHE CHECK").
        job: Async callable taking no arguments.
        get_interval: Callable returning the interval in seconds (called at start).
    """

    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[Any]],
        get_interval: Callable[[], float],
    ) -> None:
        self.name = name
        self._job = job
        self._get_interval = get_interval
        self._task: asyncio.Task | None = None
        self.runs = 0
        self.failures = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> None:
        """Run the job a single time, logging instead of raising on failure."""
        try:
            await self._job()
            self.runs += 1
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failures += 1
            logger.error("[%s] Unexpected error during run: %s", self.name, exc)

    async def _run_loop(self, interval: float) -> None:
        """Infinite loop: run, sleep, repeat."""
        logger.info("[%s] Starting periodic job (interval=%.1fs)", self.name, interval)
        try:
            while True:
                await self.run_once()
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("[%s] Periodic job cancelled", self.name)
            raise

    def start(self) -> None:
        """Start the background task if not already running."""
        if self.is_running:
            logger.warning("[%s] Task already running", self.name)
            return
        interval = self._get_interval()
        if interval <= 0:
            logger.warning("[%s] Non-positive interval %.1fs, not starting", self.name, interval)
            return
        self._task = asyncio.create_task(self._run_loop(interval))

    async def shutdown(self) -> None:
        """Stop the task and wait for it to finish."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        logger.info("[%s] Scheduler shutdown complete", self.name)
