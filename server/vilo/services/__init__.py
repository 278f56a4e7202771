"""Service layer package."""

from .audit_service import AuditService
from .booking_service import BookingService
from .customer_service import CustomerService
from .idempotency_service import IdempotencyService
from .invoice_service import InvoiceService
from .payment_gateway import PaymentGatewayClient
from .promotion_service import PromotionService
from .quote_request_service import QuoteRequestService
from .refund_service import RefundService
from .room_service import RoomService

__all__ = [
    "AuditService",
    "BookingService",
    "CustomerService",
    "IdempotencyService",
    "InvoiceService",
    "PaymentGatewayClient",
    "PromotionService",
    "QuoteRequestService",
    "RefundService",
    "RoomService",
]
