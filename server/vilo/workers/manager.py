"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict

from ..core.config import settings
from .auto_checkout_worker import AutoCheckoutWorker
from .base import BaseWorker
from .quote_expiry_worker import QuoteExpiryWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """Starts, stops and reports on the application's background workers."""

    def __init__(self):
        self.workers: Dict[str, BaseWorker] = {}
        self._setup_workers()

    def _setup_workers(self) -> None:
        self.workers["quote_expiry"] = QuoteExpiryWorker(
            interval_seconds=settings.quote_expiry_interval_seconds
        )
        self.workers["auto_checkout"] = AutoCheckoutWorker(
            interval_seconds=settings.auto_checkout_interval_seconds
        )

    async def start_all(self) -> None:
        if not settings.workers_enabled:
            logger.info("Background workers disabled by configuration")
            return

        for worker in self.workers.values():
            await worker.start()
        logger.info("Started workers", extra={"worker_count": len(self.workers)})

    async def stop_all(self) -> None:
        """Stop all workers, logging any that fail to stop cleanly."""
        names = list(self.workers)
        results = await asyncio.gather(
            *(worker.stop() for worker in self.workers.values()),
            return_exceptions=True,
        )
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error("Error stopping worker", extra={"worker": name, "error": str(result)})
        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        return {name: worker.is_running for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()
