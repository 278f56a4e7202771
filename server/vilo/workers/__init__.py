"""Background workers."""

from .auto_checkout_worker import AutoCheckoutWorker
from .base import BaseWorker
from .quote_expiry_worker import QuoteExpiryWorker

__all__ = ["AutoCheckoutWorker", "BaseWorker", "QuoteExpiryWorker"]
