"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from ..models.booking import BookingStatus, PaymentMethod, PaymentRecordStatus
from .common import EMAIL_PATTERN


class BookingRoomRequest(BaseModel):
    """A room to book and who stays in it."""

    room_id: UUID
    adults: int = Field(1, ge=1, le=50)
    children: int = Field(0, ge=0, le=50)
    children_ages: List[int] = Field(default_factory=list)


class BookingAddonRequest(BaseModel):
    """An add-on to attach to the booking."""

    addon_id: UUID
    quantity: int = Field(1, ge=1, le=100)


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking."""

    property_id: UUID
    guest_name: str = Field(..., min_length=1, max_length=255)
    guest_email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    guest_phone: Optional[str] = Field(None, max_length=50)
    check_in_date: date
    check_out_date: date
    rooms: List[BookingRoomRequest] = Field(..., min_length=1, max_length=20)
    addons: List[BookingAddonRequest] = Field(default_factory=list)
    coupon_code: Optional[str] = Field(None, max_length=50)
    special_requests: Optional[str] = Field(None, max_length=2000)
    source: str = Field("website", max_length=30)
    confirm: bool = Field(False, description="Owner only: create the booking already confirmed")

    @model_validator(mode="after")
    def check_dates(self):
        if self.check_out_date <= self.check_in_date:
            raise ValueError("check_out_date must be after check_in_date")
        return self


class UpdateBookingRequest(BaseModel):
    """Non-financial booking fields an owner may edit."""

    guest_name: Optional[str] = Field(None, min_length=1, max_length=255)
    guest_email: Optional[str] = Field(None, pattern=EMAIL_PATTERN, max_length=255)
    guest_phone: Optional[str] = Field(None, max_length=50)
    special_requests: Optional[str] = Field(None, max_length=2000)
    internal_notes: Optional[str] = Field(None, max_length=5000)


class UpdateBookingDatesRequest(BaseModel):
    """Request schema for moving a booking to new dates."""

    check_in_date: date
    check_out_date: date

    @model_validator(mode="after")
    def check_dates(self):
        if self.check_out_date <= self.check_in_date:
            raise ValueError("check_out_date must be after check_in_date")
        return self


class UpdateBookingStatusRequest(BaseModel):
    """Request schema for a booking status transition."""

    status: BookingStatus
    reason: Optional[str] = Field(None, max_length=1000)


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    reason: Optional[str] = Field(None, max_length=1000)


class RecordPaymentRequest(BaseModel):
    """Request schema for recording a payment against a booking."""

    amount: int = Field(..., gt=0, description="Amount in minor units")
    payment_method: PaymentMethod
    status: PaymentRecordStatus = PaymentRecordStatus.COMPLETED
    payment_reference: Optional[str] = Field(None, max_length=255)
    gateway_reference: Optional[str] = Field(None, max_length=255)
    paid_at: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)


class BookingRoomSchema(BaseModel):
    """A booked room in responses."""

    id: UUID
    room_id: UUID
    room_name: str
    adults: int
    children: int
    children_ages: list[int] = []
    nightly_rates: list
    room_subtotal: int

    model_config = {"from_attributes": True}


class BookingAddonSchema(BaseModel):
    """A booked add-on in responses."""

    id: UUID
    addon_id: UUID
    addon_name: str
    pricing_type: str
    unit_price: int
    quantity: int
    addon_total: int

    model_config = {"from_attributes": True}


class PaymentSchema(BaseModel):
    """A booking payment in responses."""

    id: UUID
    booking_id: UUID
    amount: int
    currency: str
    payment_method: str
    status: str
    payment_reference: Optional[str] = None
    gateway_reference: Optional[str] = None
    notes: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingSchema(BaseModel):
    """Booking response schema."""

    id: UUID
    booking_reference: str
    property_id: UUID
    customer_id: Optional[UUID] = None
    guest_id: Optional[UUID] = None
    guest_name: str
    guest_email: str
    guest_phone: Optional[str] = None
    check_in_date: date
    check_out_date: date
    total_nights: int
    adults: int
    children: int
    room_total: int
    addons_total: int
    subtotal: int
    discount_amount: int
    tax_amount: int
    total_amount: int
    amount_paid: int
    total_refunded: int
    balance_due: int
    currency: str
    coupon_code: Optional[str] = None
    booking_status: str
    payment_status: str
    refund_status: str
    source: str
    special_requests: Optional[str] = None
    internal_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    rooms: List[BookingRoomSchema] = Field(default_factory=list)
    addons: List[BookingAddonSchema] = Field(default_factory=list)
    payments: List[PaymentSchema] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingSummarySchema(BaseModel):
    """Compact booking row for list responses."""

    id: UUID
    booking_reference: str
    property_id: UUID
    guest_name: str
    guest_email: str
    check_in_date: date
    check_out_date: date
    total_nights: int
    total_amount: int
    amount_paid: int
    currency: str
    booking_status: str
    payment_status: str
    refund_status: str
    created_at: datetime

    model_config = {"from_attributes": True}
