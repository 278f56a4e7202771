"""Promotion (coupon code) model definition."""

import re
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class DiscountType(str, Enum):
    """Discount calculation strategy."""
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FREE_NIGHTS = "free_nights"


def normalize_code(code: str) -> str:
    """Coupon codes are matched upper-case with non-alphanumerics stripped."""
    return re.sub(r"[^A-Z0-9]", "", code.upper())


class Promotion(Base):
    """A discount code scoped to a property, optionally to a single room."""

    __tablename__ = "room_promotions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    property_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    room_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=True, index=True
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    # Percent for percentage, minor units for fixed_amount, nights for free_nights
    discount_value: Mapped[int] = mapped_column(Integer, nullable=False)

    valid_from: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    valid_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_uses_per_customer: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_booking_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    min_nights: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("discount_value > 0", name="ck_promotion_discount_positive"),
        CheckConstraint(
            "discount_type <> 'percentage' OR discount_value <= 100",
            name="ck_promotion_percentage_max",
        ),
        CheckConstraint("current_uses >= 0", name="ck_promotion_uses_non_negative"),
        UniqueConstraint("property_id", "code", name="uq_promotion_property_code"),
    )

    def __repr__(self) -> str:
        return (
            f"<Promotion(id={self.id}, code='{self.code}', "
            f"{self.discount_type}={self.discount_value}, uses={self.current_uses})>"
        )
