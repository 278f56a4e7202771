"""Booking, booked room, booked add-on and payment model definitions."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base


class BookingStatus(str, Enum):
    """Booking lifecycle status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PENDING_MODIFICATION = "pending_modification"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentStatus(str, Enum):
    """Aggregate payment state of a booking."""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class RefundState(str, Enum):
    """How much of a booking has been refunded."""
    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"


class PaymentMethod(str, Enum):
    """How a payment was made."""
    PAYSTACK = "paystack"
    PAYPAL = "paypal"
    EFT = "eft"
    CASH = "cash"
    CARD_ON_SITE = "card_on_site"
    OTHER = "other"


GATEWAY_METHODS = frozenset({PaymentMethod.PAYSTACK.value, PaymentMethod.PAYPAL.value})


class PaymentRecordStatus(str, Enum):
    """Status of a single payment record."""
    PENDING = "pending"
    COMPLETED = "completed"
    VERIFIED = "verified"
    FAILED = "failed"


SETTLED_PAYMENT_STATUSES = frozenset({
    PaymentRecordStatus.COMPLETED.value,
    PaymentRecordStatus.VERIFIED.value,
})

# Bookings in these states do not occupy inventory
INACTIVE_BOOKING_STATUSES = frozenset({BookingStatus.CANCELLED.value, BookingStatus.NO_SHOW.value})


class Booking(Base):
    """A guest reservation of one or more rooms at a property."""

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_reference: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)

    property_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    customer_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    guest_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    created_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    guest_name: Mapped[str] = mapped_column(String(255), nullable=False)
    guest_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    guest_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    check_in_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    total_nights: Mapped[int] = mapped_column(Integer, nullable=False)
    adults: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    children: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Amounts in minor units
    room_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    addons_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    subtotal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount_paid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_refunded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    coupon_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    promotion_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("room_promotions.id", ondelete="SET NULL"), nullable=True
    )

    booking_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=BookingStatus.PENDING.value, index=True
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )
    refund_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RefundState.NONE.value
    )

    source: Mapped[str] = mapped_column(String(30), nullable=False, default="website")
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    checked_out_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("check_out_date > check_in_date", name="ck_booking_date_order"),
        CheckConstraint("adults >= 1", name="ck_booking_adults_positive"),
        CheckConstraint("children >= 0", name="ck_booking_children_non_negative"),
        CheckConstraint("total_amount >= 0", name="ck_booking_total_non_negative"),
        CheckConstraint("amount_paid >= 0", name="ck_booking_paid_non_negative"),
        CheckConstraint("total_refunded >= 0", name="ck_booking_refunded_non_negative"),
    )

    rooms: Mapped[list["BookingRoom"]] = relationship(
        "BookingRoom", back_populates="booking", cascade="all, delete-orphan", lazy="selectin"
    )
    addons: Mapped[list["BookingAddon"]] = relationship(
        "BookingAddon", back_populates="booking", cascade="all, delete-orphan", lazy="selectin"
    )
    payments: Mapped[list["BookingPayment"]] = relationship(
        "BookingPayment",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BookingPayment.created_at",
    )

    @property
    def balance_due(self) -> int:
        return max(0, self.total_amount - self.amount_paid)

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, ref='{self.booking_reference}', "
            f"status={self.booking_status}, payment={self.payment_status})>"
        )


class BookingRoom(Base):
    """One room on a booking with its priced nights."""

    __tablename__ = "booking_rooms"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    room_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("rooms.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    room_name: Mapped[str] = mapped_column(String(255), nullable=False)
    adults: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    children: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    children_ages: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    # [{"date": "2025-01-01", "rate": 120000, "rate_name": "Base Rate", "is_seasonal": false}, ...]
    nightly_rates: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    room_subtotal: Mapped[int] = mapped_column(Integer, nullable=False)

    booking: Mapped["Booking"] = relationship("Booking", back_populates="rooms")


class BookingAddon(Base):
    """An add-on line on a booking, priced at booking time."""

    __tablename__ = "booking_addons"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    addon_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("add_ons.id", ondelete="RESTRICT"), nullable=False
    )
    addon_name: Mapped[str] = mapped_column(String(255), nullable=False)
    pricing_type: Mapped[str] = mapped_column(String(30), nullable=False)
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    addon_total: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_booking_addon_quantity_positive"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="addons")


class BookingPayment(Base):
    """A payment received (or pending) against a booking."""

    __tablename__ = "booking_payments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentRecordStatus.COMPLETED.value
    )
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gateway_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    recorded_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_booking_payment_amount_positive"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="payments")

    def __repr__(self) -> str:
        return (
            f"<BookingPayment(id={self.id}, amount={self.amount}, "
            f"method={self.payment_method}, status={self.status})>"
        )
