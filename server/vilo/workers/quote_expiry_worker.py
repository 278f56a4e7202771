"""Background worker for expiring stale quote requests."""

import logging

from ..core.database import async_session_factory
from ..services.quote_request_service import QuoteRequestService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class QuoteExpiryWorker(BaseWorker):
    """Expires pending and responded quote requests past their expiry time."""

    def __init__(self, interval_seconds: int = 3600, session_factory=async_session_factory):
        super().__init__(name="quote_expiry", interval_seconds=interval_seconds)
        self.session_factory = session_factory

    async def process(self) -> int:
        async with self.session_factory() as db:
            try:
                expired = await QuoteRequestService(db).expire_old_quote_requests()
            except Exception:
                await db.rollback()
                raise

        if expired:
            logger.info("Quote requests expired", extra={"expired_count": expired, "worker": self.name})
        return expired
