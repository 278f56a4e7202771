"""Quote request model definition."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class QuoteStatus(str, Enum):
    """Quote request lifecycle status."""
    PENDING = "pending"
    RESPONDED = "responded"
    CONVERTED = "converted"
    DECLINED = "declined"
    EXPIRED = "expired"


class DateFlexibility(str, Enum):
    """How firm the guest's dates are."""
    EXACT = "exact"
    FLEXIBLE = "flexible"
    VERY_FLEXIBLE = "very_flexible"


class GroupType(str, Enum):
    """Kind of group asking for a quote."""
    FAMILY = "family"
    FRIENDS = "friends"
    BUSINESS = "business"
    WEDDING = "wedding"
    CORPORATE_EVENT = "corporate_event"
    RETREAT = "retreat"
    CONFERENCE = "conference"
    CELEBRATION = "celebration"
    OTHER = "other"


class QuoteRequest(Base):
    """A pre-booking inquiry asking the property for custom pricing."""

    __tablename__ = "quote_requests"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    property_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    company_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    customer_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    booking_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True
    )

    guest_name: Mapped[str] = mapped_column(String(255), nullable=False)
    guest_email: Mapped[str] = mapped_column(String(255), nullable=False)
    guest_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    date_flexibility: Mapped[str] = mapped_column(String(20), nullable=False)
    preferred_check_in: Mapped[date | None] = mapped_column(Date, nullable=True)
    preferred_check_out: Mapped[date | None] = mapped_column(Date, nullable=True)
    flexible_date_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    flexible_date_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    nights_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    adults_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    children_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    group_size: Mapped[int] = mapped_column(Integer, nullable=False)
    group_type: Mapped[str] = mapped_column(String(30), nullable=False, default=GroupType.OTHER.value)

    # Budget in minor units
    budget_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    budget_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    special_requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
    dietary_restrictions: Mapped[str | None] = mapped_column(Text, nullable=True)
    accessibility_needs: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    event_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QuoteStatus.PENDING.value, index=True
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    owner_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    responded_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    converted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(30), nullable=False, default="website")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("adults_count >= 1", name="ck_quote_adults_positive"),
        CheckConstraint("children_count >= 0", name="ck_quote_children_non_negative"),
        CheckConstraint("priority >= 0 AND priority <= 3", name="ck_quote_priority_range"),
        CheckConstraint(
            "budget_min IS NULL OR budget_max IS NULL OR budget_min <= budget_max",
            name="ck_quote_budget_order",
        ),
    )

    def __repr__(self) -> str:
        return f"<QuoteRequest(id={self.id}, status={self.status}, priority={self.priority})>"
