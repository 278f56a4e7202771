"""FastAPI routers package."""

from .bookings import router as bookings_router
from .health import router as health_router
from .metrics import router as metrics_router
from .promotions import router as promotions_router
from .quote_requests import router as quote_requests_router
from .refunds import router as refunds_router
from .rooms import router as rooms_router
from .webhooks import router as webhooks_router

__all__ = [
    "bookings_router",
    "health_router",
    "metrics_router",
    "promotions_router",
    "quote_requests_router",
    "refunds_router",
    "rooms_router",
    "webhooks_router",
]
