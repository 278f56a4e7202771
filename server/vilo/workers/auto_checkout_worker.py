"""Background worker for checking out guests whose stay has ended."""

import logging

from ..core.database import async_session_factory
from ..services.booking_service import BookingService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class AutoCheckoutWorker(BaseWorker):
    """
    Checks out checked-in bookings once the check-out date has arrived and the
    property's check-out time has passed.
    """

    def __init__(self, interval_seconds: int = 900, session_factory=async_session_factory):
        super().__init__(name="auto_checkout", interval_seconds=interval_seconds)
        self.session_factory = session_factory

    async def process(self) -> int:
        async with self.session_factory() as db:
            try:
                checked_out = await BookingService(db).auto_checkout()
            except Exception:
                await db.rollback()
                raise

        if checked_out:
            logger.info(
                "Bookings checked out automatically",
                extra={"checked_out_count": checked_out, "worker": self.name},
            )
        return checked_out
