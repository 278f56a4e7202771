"""Company and Property model definitions."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, Float, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base

if TYPE_CHECKING:
    from .room import Room


class CancellationPolicy(str, Enum):
    """Cancellation policy used to suggest refund amounts."""
    FLEXIBLE = "flexible"
    MODERATE = "moderate"
    STRICT = "strict"
    NON_REFUNDABLE = "non_refundable"


class Company(Base):
    """A business account owning one or more properties."""

    __tablename__ = "companies"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    owner_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    vat_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    default_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ZAR")
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "vat_percentage IS NULL OR (vat_percentage >= 0 AND vat_percentage <= 100)",
            name="ck_company_vat_range",
        ),
    )

    properties: Mapped[list["Property"]] = relationship("Property", back_populates="company")

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name='{self.name}')>"


class Property(Base):
    """A rentable accommodation listing containing one or more rooms."""

    __tablename__ = "properties"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    owner_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    country: Mapped[str | None] = mapped_column(String(120), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ZAR")

    # "HH:MM" in the property's local time
    check_in_time: Mapped[str] = mapped_column(String(5), nullable=False, default="14:00")
    check_out_time: Mapped[str] = mapped_column(String(5), nullable=False, default="11:00")

    cancellation_policy: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CancellationPolicy.MODERATE.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_listed_publicly: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("length(currency) = 3", name="ck_property_currency_length"),
        CheckConstraint("length(slug) > 0", name="ck_property_slug_not_empty"),
    )

    company: Mapped["Company"] = relationship("Company", back_populates="properties")
    rooms: Mapped[list["Room"]] = relationship(
        "Room", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, slug='{self.slug}', active={self.is_active})>"
