"""Room lookups, availability and price quotes."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NotFoundError, ValidationError
from ..models.booking import INACTIVE_BOOKING_STATUSES, Booking, BookingRoom
from ..models.company import Company, Property
from ..models.room import Room
from .pricing import PriceBreakdown, calculate_price, count_nights

logger = logging.getLogger(__name__)


@dataclass
class Availability:
    """Outcome of an availability check for one room."""

    room_id: UUID
    check_in: date
    check_out: date
    available: bool
    total_units: int
    booked_units: int
    reason: Optional[str] = None


class RoomService:
    """Service for room-related reads."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_room_by_id(self, room_id: UUID) -> Optional[Room]:
        result = await self.db.execute(select(Room).where(Room.id == room_id))
        return result.scalar_one_or_none()

    async def get_room_by_id_or_raise(self, room_id: UUID) -> Room:
        room = await self.get_room_by_id(room_id)
        if not room:
            raise NotFoundError(resource_type="room", resource_id=room_id)
        return room

    async def get_property_by_id_or_raise(self, property_id: UUID) -> Property:
        result = await self.db.execute(select(Property).where(Property.id == property_id))
        prop = result.scalar_one_or_none()
        if not prop:
            raise NotFoundError(resource_type="property", resource_id=property_id)
        return prop

    async def get_company_for_property(self, prop: Property) -> Company:
        company = await self.db.get(Company, prop.company_id)
        if not company:
            raise NotFoundError(resource_type="company", resource_id=prop.company_id)
        return company

    async def count_booked_units(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[UUID] = None,
    ) -> int:
        """Booked rooms of this type whose stay overlaps [check_in, check_out)."""
        stmt = (
            select(func.count(BookingRoom.id))
            .join(Booking, Booking.id == BookingRoom.booking_id)
            .where(
                BookingRoom.room_id == room_id,
                Booking.check_in_date < check_out,
                Booking.check_out_date > check_in,
                Booking.booking_status.not_in(INACTIVE_BOOKING_STATUSES),
            )
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)

        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def check_availability(
        self,
        room: Room,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[UUID] = None,
    ) -> Availability:
        """
        Check whether a unit of `room` is free for the stay.

        Inactive and paused rooms are never available. Otherwise every
        overlapping booking that is not cancelled or a no-show takes one unit.
        """
        count_nights(check_in, check_out)

        if not room.is_bookable:
            reason = "Room is paused" if room.is_paused else "Room is not active"
            return Availability(room.id, check_in, check_out, False, room.total_units, 0, reason)

        booked = await self.count_booked_units(room.id, check_in, check_out, exclude_booking_id)
        available = booked < room.total_units
        return Availability(
            room_id=room.id,
            check_in=check_in,
            check_out=check_out,
            available=available,
            total_units=room.total_units,
            booked_units=booked,
            reason=None if available else "No units available for the selected dates",
        )

    @staticmethod
    def validate_stay(room: Room, nights: int, adults: int, children: int) -> None:
        """
        Check guest capacity and stay length against the room's limits.

        Raises:
            ValidationError: With the offending limit in details
        """
        guests = adults + children
        if guests > room.max_guests:
            raise ValidationError(
                f"{room.name} accommodates at most {room.max_guests} guests",
                details={"room_id": str(room.id), "max_guests": room.max_guests, "requested_guests": guests},
            )
        if nights < room.min_nights:
            raise ValidationError(
                f"{room.name} requires a minimum stay of {room.min_nights} nights",
                details={"room_id": str(room.id), "min_nights": room.min_nights, "nights": nights},
            )
        if room.max_nights is not None and nights > room.max_nights:
            raise ValidationError(
                f"{room.name} allows a maximum stay of {room.max_nights} nights",
                details={"room_id": str(room.id), "max_nights": room.max_nights, "nights": nights},
            )

    async def quote_price(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        adults: int = 1,
        children: int = 0,
        children_ages: Optional[Sequence[int]] = None,
    ) -> PriceBreakdown:
        """Price a stay in one room with its seasonal rates applied."""
        room = await self.get_room_by_id_or_raise(room_id)
        if not room.is_bookable:
            raise ValidationError("Room is not available for booking", details={"room_id": str(room_id)})

        nights = count_nights(check_in, check_out)
        self.validate_stay(room, nights, adults, children)

        prop = await self.get_property_by_id_or_raise(room.property_id)
        breakdown = calculate_price(
            room, room.seasonal_rates, check_in, check_out, adults, children, children_ages
        )
        breakdown.currency = prop.currency

        logger.info(
            "Price quoted",
            extra={
                "room_id": str(room_id),
                "nights": nights,
                "pricing_mode": breakdown.pricing_mode,
                "total": breakdown.total,
            },
        )
        return breakdown
