# Periodic sweep of expired sessions and bearer tokens.
# Created: 2026-09-20

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from workspace_gateway.errors import StorageUnavailable

logger = logging.getLogger(__name__)

SweepFn = Callable[[], Awaitable[int]]


class CleanupScheduler:
    """Runs each named sweep every *interval* seconds on the event loop."""

    def __init__(self, sweeps: dict[str, SweepFn], interval: float = 3600.0):
        self.sweeps = sweeps
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Cleanup scheduler started (every %ss)", self.interval)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Cleanup scheduler stopped")

    async def run_once(self) -> dict[str, int]:
        results: dict[str, int] = {}
        started = time.monotonic()
        for name, sweep in self.sweeps.items():
            try:
                results[name] = await sweep()
            except StorageUnavailable as e:
                logger.error("Cleanup of %s failed: %s", name, e)
                results[name] = 0
            except Exception:
                logger.exception("Cleanup of %s raised", name)
                results[name] = 0
        logger.info(
            "Cleanup completed in %.0fms: %s",
            (time.monotonic() - started) * 1000,
            ", ".join(f"{k}={v}" for k, v in results.items()),
        )
        return results

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception:
                # The next tick still runs
                logger.exception("Cleanup run failed")
