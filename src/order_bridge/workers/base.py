"""Periodic background workers started from the application lifespan."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


class PeriodicWorker(ABC):
    """Runs ``tick`` every ``interval`` seconds until stopped.

    A tick that finds the previous one still running is skipped, and an
    exception inside a tick is logged without ending the loop.
    """

    def __init__(
        self,
        interval: float,
        *,
        lock: asyncio.Lock | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.interval = interval
        self._lock = lock or asyncio.Lock()
        self._clock = clock
        self._task: asyncio.Task | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Worker name used in logs."""

    @abstractmethod
    async def tick(self, now: datetime) -> None:
        """One unit of work at *now*."""

    async def run_once(self) -> bool:
        """Run a single guarded tick; ``False`` if it was skipped."""
        if self._lock.locked():
            logger.info("%s: previous run still in progress, skipping", self.name)
            return False
        async with self._lock:
            try:
                await self.tick(self._clock())
            except Exception:
                logger.exception("%s: tick failed", self.name)
        return True

    async def _loop(self) -> None:
        logger.info("%s started (every %ss)", self.name, self.interval)
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("%s stopped", self.name)
