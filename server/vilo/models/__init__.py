"""Models module exporting all database models."""

from .audit_log import AuditLog
from .booking import (
    Booking,
    BookingAddon,
    BookingPayment,
    BookingRoom,
    BookingStatus,
    PaymentMethod,
    PaymentRecordStatus,
    PaymentStatus,
    RefundState,
)
from .company import CancellationPolicy, Company, Property
from .customer import Customer, CustomerStatus
from .idempotency import IdempotencyRecord
from .promotion import DiscountType, Promotion
from .quote_request import DateFlexibility, GroupType, QuoteRequest, QuoteStatus
from .refund import RefundItemStatus, RefundRequest, RefundStatus, RefundStatusHistory
from .room import AddOn, AddOnPricingType, PricingMode, Room, SeasonalRate

__all__ = [
    # Catalog
    "Company",
    "Property",
    "CancellationPolicy",
    "Room",
    "SeasonalRate",
    "PricingMode",
    "AddOn",
    "AddOnPricingType",
    "Promotion",
    "DiscountType",

    # Bookings
    "Booking",
    "BookingRoom",
    "BookingAddon",
    "BookingPayment",
    "BookingStatus",
    "PaymentStatus",
    "PaymentMethod",
    "PaymentRecordStatus",
    "RefundState",

    # Refunds
    "RefundRequest",
    "RefundStatusHistory",
    "RefundStatus",
    "RefundItemStatus",

    # CRM
    "Customer",
    "CustomerStatus",
    "QuoteRequest",
    "QuoteStatus",
    "DateFlexibility",
    "GroupType",

    # Infrastructure
    "AuditLog",
    "IdempotencyRecord",
]
