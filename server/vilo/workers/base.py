"""Base worker class for background tasks."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

from ..core.observability import WORKER_RUNS

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Abstract base class for background workers.

    Runs `process()` every `interval_seconds` until stopped. A failing
    iteration is logged and counted; the loop carries on at the next interval.
    """

    def __init__(self, name: str, interval_seconds: int = 60):
        self.name = name
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @abstractmethod
    async def process(self) -> int:
        """Process one iteration and return how many records were affected."""

    async def start(self) -> None:
        if self._running:
            logger.warning("Worker is already running", extra={"worker": self.name})
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(
            "Worker started",
            extra={"worker": self.name, "interval_seconds": self.interval_seconds},
        )

    async def stop(self) -> None:
        """Stop the worker and wait for the loop to exit."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Worker stopped", extra={"worker": self.name})

    async def run_once(self) -> int:
        """Run a single iteration, recording its outcome."""
        started = time.monotonic()
        try:
            affected = await self.process()
        except Exception:
            WORKER_RUNS.labels(worker=self.name, outcome="error").inc()
            raise

        WORKER_RUNS.labels(worker=self.name, outcome="success").inc()
        logger.debug(
            "Worker iteration completed",
            extra={
                "worker": self.name,
                "affected": affected,
                "duration_seconds": round(time.monotonic() - started, 3),
            },
        )
        return affected

    async def _run(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(
                    "Worker iteration failed",
                    exc_info=True,
                    extra={"worker": self.name, "error": str(e)},
                )

            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
