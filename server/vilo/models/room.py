"""Room, seasonal rate and add-on model definitions."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
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


class PricingMode(str, Enum):
    """How a room's nightly rate scales with guests."""
    PER_UNIT = "per_unit"
    PER_PERSON = "per_person"
    PER_PERSON_SHARING = "per_person_sharing"


class AddOnPricingType(str, Enum):
    """How an add-on's unit price is multiplied."""
    PER_BOOKING = "per_booking"
    PER_NIGHT = "per_night"
    PER_GUEST = "per_guest"
    PER_ROOM = "per_room"
    PER_GUEST_PER_NIGHT = "per_guest_per_night"


class Room(Base):
    """A bookable unit within a property."""

    __tablename__ = "rooms"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    property_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    room_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    pricing_mode: Mapped[str] = mapped_column(
        String(30), nullable=False, default=PricingMode.PER_UNIT.value
    )
    # Amounts in minor units of the property's currency
    base_price_per_night: Mapped[int] = mapped_column(Integer, nullable=False)
    additional_person_rate: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    child_price_per_night: Mapped[int | None] = mapped_column(Integer, nullable=True)
    child_free_until_age: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    child_age_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=12)

    max_guests: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    min_nights: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_nights: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_units: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paused_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("base_price_per_night >= 0", name="ck_room_base_price_non_negative"),
        CheckConstraint("additional_person_rate >= 0", name="ck_room_additional_rate_non_negative"),
        CheckConstraint("max_guests > 0", name="ck_room_max_guests_positive"),
        CheckConstraint("min_nights > 0", name="ck_room_min_nights_positive"),
        CheckConstraint("total_units > 0", name="ck_room_total_units_positive"),
    )

    seasonal_rates: Mapped[list["SeasonalRate"]] = relationship(
        "SeasonalRate",
        back_populates="room",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by=lambda: (SeasonalRate.priority.desc(), SeasonalRate.start_date),
    )

    @property
    def is_bookable(self) -> bool:
        return self.is_active and not self.is_paused

    def __repr__(self) -> str:
        return f"<Room(id={self.id}, name='{self.name}', mode={self.pricing_mode})>"


class SeasonalRate(Base):
    """A nightly price override for an inclusive date range."""

    __tablename__ = "room_seasonal_rates"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    room_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    price_per_night: Mapped[int] = mapped_column(Integer, nullable=False)
    additional_person_rate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_seasonal_rate_date_order"),
        CheckConstraint("price_per_night >= 0", name="ck_seasonal_rate_price_non_negative"),
    )

    room: Mapped["Room"] = relationship("Room", back_populates="seasonal_rates")

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def __repr__(self) -> str:
        return f"<SeasonalRate(id={self.id}, {self.start_date}..{self.end_date}, price={self.price_per_night})>"


class AddOn(Base):
    """An optional extra (service, product, experience) sold with a booking."""

    __tablename__ = "add_ons"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    property_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="service")
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    pricing_type: Mapped[str] = mapped_column(
        String(30), nullable=False, default=AddOnPricingType.PER_BOOKING.value
    )
    max_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_add_on_price_non_negative"),
        CheckConstraint("max_quantity > 0", name="ck_add_on_max_quantity_positive"),
    )

    def __repr__(self) -> str:
        return f"<AddOn(id={self.id}, name='{self.name}', pricing={self.pricing_type})>"
