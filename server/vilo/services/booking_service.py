"""Booking service for business logic operations."""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import settings
from ..core.database import acquire_advisory_lock
from ..core.dependencies import is_super_admin
from ..core.exceptions import (
    ForbiddenError,
    NotFoundError,
    PaymentLockError,
    ValidationError,
)
from ..core.observability import (
    AUTO_CHECKOUTS,
    BOOKING_STATUS_CHANGES,
    BOOKINGS_CREATED,
    PAYMENTS_RECORDED,
)
from ..models.booking import (
    SETTLED_PAYMENT_STATUSES,
    Booking,
    BookingAddon,
    BookingPayment,
    BookingRoom,
    BookingStatus,
    PaymentRecordStatus,
    PaymentStatus,
    RefundState,
)
from ..models.company import Property
from ..models.promotion import Promotion
from ..models.refund import ACTIVE_REFUND_STATUSES, RefundRequest
from ..models.room import AddOn, Room
from ..schemas.booking import (
    CreateBookingRequest,
    RecordPaymentRequest,
    UpdateBookingDatesRequest,
    UpdateBookingRequest,
)
from .audit_service import AuditService
from .customer_service import CustomerService
from .pricing import PriceBreakdown, calculate_addon_total, calculate_price, calculate_tax, count_nights
from .promotion_service import PromotionService, calculate_discount
from .room_service import RoomService

logger = logging.getLogger(__name__)

BOOKING_REFERENCE_PREFIX = "VL-"

BOOKING_TRANSITIONS: dict[str, frozenset[str]] = {
    BookingStatus.PENDING.value: frozenset({
        BookingStatus.CONFIRMED.value,
        BookingStatus.CANCELLED.value,
    }),
    BookingStatus.CONFIRMED.value: frozenset({
        BookingStatus.PENDING_MODIFICATION.value,
        BookingStatus.CHECKED_IN.value,
        BookingStatus.CANCELLED.value,
        BookingStatus.NO_SHOW.value,
    }),
    BookingStatus.PENDING_MODIFICATION.value: frozenset({
        BookingStatus.CONFIRMED.value,
        BookingStatus.CANCELLED.value,
    }),
    BookingStatus.CHECKED_IN.value: frozenset({
        BookingStatus.CHECKED_OUT.value,
        BookingStatus.COMPLETED.value,
    }),
    BookingStatus.CHECKED_OUT.value: frozenset({BookingStatus.COMPLETED.value}),
    BookingStatus.COMPLETED.value: frozenset(),
    BookingStatus.CANCELLED.value: frozenset(),
    BookingStatus.NO_SHOW.value: frozenset(),
}

# Money received locks the booking against financial edits
LOCKED_PAYMENT_STATUSES = frozenset({PaymentStatus.PARTIAL.value, PaymentStatus.PAID.value})

NOT_CANCELLABLE_STATUSES = frozenset({
    BookingStatus.CHECKED_OUT.value,
    BookingStatus.COMPLETED.value,
    BookingStatus.CANCELLED.value,
    BookingStatus.NO_SHOW.value,
})

DATE_CHANGE_STATUSES = frozenset({
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.PENDING_MODIFICATION.value,
})


def allowed_transitions(status: str) -> list[str]:
    return sorted(BOOKING_TRANSITIONS.get(status, frozenset()))


def payment_status_for(amount_paid: int, total_amount: int) -> str:
    if amount_paid <= 0:
        return PaymentStatus.PENDING.value
    if amount_paid >= total_amount:
        return PaymentStatus.PAID.value
    return PaymentStatus.PARTIAL.value


def _parse_time(value: str) -> time:
    hours, _, minutes = (value or "11:00").partition(":")
    return time(int(hours), int(minutes or 0))


def _snapshot(booking: Booking) -> dict:
    return {
        "booking_status": booking.booking_status,
        "payment_status": booking.payment_status,
        "check_in_date": booking.check_in_date,
        "check_out_date": booking.check_out_date,
        "total_amount": booking.total_amount,
        "amount_paid": booking.amount_paid,
    }


@dataclass
class PricedRoom:
    """A requested room with its stay priced."""

    room: Room
    adults: int
    children: int
    children_ages: list[int]
    breakdown: PriceBreakdown


class BookingService:
    """Service for booking-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.rooms = RoomService(db)
        self.promotions = PromotionService(db)
        self.customers = CustomerService(db)
        self.audit = AuditService(db)

    def _generate_booking_reference(self, length: int = 8) -> str:
        """Generate a booking reference such as VL-7K2M9QXA."""
        alphabet = string.ascii_uppercase + string.digits
        return BOOKING_REFERENCE_PREFIX + "".join(secrets.choice(alphabet) for _ in range(length))

    async def _unique_booking_reference(self) -> str:
        while True:
            reference = self._generate_booking_reference()
            result = await self.db.execute(
                select(Booking.id).where(Booking.booking_reference == reference)
            )
            if result.scalar_one_or_none() is None:
                return reference

    async def get_booking_by_id(self, booking_id: UUID) -> Optional[Booking]:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_booking_by_id_or_raise(self, booking_id: UUID) -> Booking:
        booking = await self.get_booking_by_id(booking_id)
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=booking_id)
        return booking

    async def get_booking_by_reference_or_raise(self, reference: str) -> Booking:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.booking_reference == reference.strip().upper())
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=reference)
        return booking

    # Access checks

    async def is_property_owner(self, property_id: UUID, user: dict) -> bool:
        result = await self.db.execute(select(Property.owner_id).where(Property.id == property_id))
        owner_id = result.scalar_one_or_none()
        return owner_id is not None and owner_id == user["user_id"]

    async def ensure_owner(self, booking: Booking, user: dict) -> None:
        """Raise ForbiddenError unless the caller manages the booking's property."""
        if is_super_admin(user) or await self.is_property_owner(booking.property_id, user):
            return
        raise ForbiddenError("Only the property owner can manage this booking")

    def is_guest(self, booking: Booking, user: dict) -> bool:
        if booking.guest_id is not None and booking.guest_id == user["user_id"]:
            return True
        email = (user.get("email") or "").lower()
        return bool(email) and email == booking.guest_email.lower()

    async def ensure_can_view(self, booking: Booking, user: dict) -> None:
        if self.is_guest(booking, user):
            return
        await self.ensure_owner(booking, user)

    # Locks

    def check_payment_lock(self, booking: Booking, operation: str) -> None:
        """
        Refuse financial edits once money has been received.

        Raises:
            PaymentLockError: When payment_status is partial or paid
        """
        if booking.payment_status not in LOCKED_PAYMENT_STATUSES:
            return
        logger.warning(
            "Booking change blocked by payment lock",
            extra={"booking_id": str(booking.id), "operation": operation},
        )
        raise PaymentLockError(
            "This booking has received payments and cannot be changed. "
            "Cancel it and create a new booking instead.",
            details={
                "booking_reference": booking.booking_reference,
                "payment_status": booking.payment_status,
                "operation": operation,
                "suggestion": "cancel_and_rebook",
            },
        )

    async def active_refund_ids(self, booking_id: UUID) -> list[UUID]:
        result = await self.db.execute(
            select(RefundRequest.id).where(
                RefundRequest.booking_id == booking_id,
                RefundRequest.status.in_(ACTIVE_REFUND_STATUSES),
            )
        )
        return list(result.scalars().all())

    async def check_refund_lock(self, booking: Booking, operation: str) -> None:
        """
        Refuse modifications while a refund request is open.

        Raises:
            PaymentLockError: With the ids of the active refund requests
        """
        refund_ids = await self.active_refund_ids(booking.id)
        if not refund_ids:
            return
        logger.warning(
            "Booking change blocked by refund lock",
            extra={"booking_id": str(booking.id), "operation": operation, "refund_count": len(refund_ids)},
        )
        raise PaymentLockError(
            "This booking has an active refund request and cannot be modified",
            details={
                "booking_reference": booking.booking_reference,
                "operation": operation,
                "active_refund_ids": [str(refund_id) for refund_id in refund_ids],
            },
        )

    # Pricing helpers

    async def _price_rooms(
        self,
        prop: Property,
        room_requests: list[tuple[UUID, int, int, list[int]]],
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[UUID] = None,
    ) -> list[PricedRoom]:
        """Lock, validate and price each requested room."""
        nights = count_nights(check_in, check_out)

        # Lock in a stable order so concurrent bookings of the same rooms queue up
        for room_id in sorted({str(request[0]) for request in room_requests}):
            await acquire_advisory_lock(self.db, f"room:{room_id}")

        requested_units: dict[UUID, int] = {}
        priced = []
        for room_id, adults, children, children_ages in room_requests:
            room = await self.rooms.get_room_by_id_or_raise(room_id)
            if room.property_id != prop.id:
                raise ValidationError(
                    "Room does not belong to this property",
                    details={"room_id": str(room_id), "property_id": str(prop.id)},
                )
            self.rooms.validate_stay(room, nights, adults, children)

            availability = await self.rooms.check_availability(
                room, check_in, check_out, exclude_booking_id=exclude_booking_id
            )
            requested_units[room.id] = requested_units.get(room.id, 0) + 1
            if not availability.available or (
                availability.booked_units + requested_units[room.id] > room.total_units
            ):
                raise ValidationError(
                    f"{room.name} is not available for the selected dates",
                    details={
                        "room_id": str(room.id),
                        "check_in": check_in.isoformat(),
                        "check_out": check_out.isoformat(),
                        "reason": availability.reason or "No units available for the selected dates",
                    },
                )

            breakdown = calculate_price(
                room, room.seasonal_rates, check_in, check_out, adults, children, children_ages
            )
            priced.append(PricedRoom(
                room=room,
                adults=adults,
                children=children,
                children_ages=list(children_ages or [])[:children],
                breakdown=breakdown,
            ))
        return priced

    async def _vat_percentage(self, prop: Property) -> float:
        company = await self.rooms.get_company_for_property(prop)
        if company.vat_percentage is None:
            return settings.default_vat_percentage
        return company.vat_percentage

    # Create / read

    async def create_booking(self, request: CreateBookingRequest, user: dict) -> Booking:
        """
        Create a booking with every room and add-on priced server-side.

        Raises:
            NotFoundError: If the property, a room or an add-on does not exist
            ValidationError: For unavailable rooms, capacity or stay length
                violations and invalid coupons
            ForbiddenError: If a non-owner asks for a confirmed booking
        """
        prop = await self.rooms.get_property_by_id_or_raise(request.property_id)
        if not prop.is_active:
            raise ValidationError("Property is not accepting bookings", details={"property_id": str(prop.id)})

        is_owner = is_super_admin(user) or prop.owner_id == user["user_id"]
        if request.confirm and not is_owner:
            raise ForbiddenError("Only the property owner can create confirmed bookings")

        nights = count_nights(request.check_in_date, request.check_out_date)
        priced_rooms = await self._price_rooms(
            prop,
            [(r.room_id, r.adults, r.children, r.children_ages) for r in request.rooms],
            request.check_in_date,
            request.check_out_date,
        )
        room_total = sum(p.breakdown.total for p in priced_rooms)
        adults = sum(p.adults for p in priced_rooms)
        children = sum(p.children for p in priced_rooms)

        booking_addons = []
        for addon_request in request.addons:
            addon = await self.db.get(AddOn, addon_request.addon_id)
            if not addon or addon.property_id != prop.id or not addon.is_active:
                raise NotFoundError(resource_type="add_on", resource_id=addon_request.addon_id)
            if addon_request.quantity > addon.max_quantity:
                raise ValidationError(
                    f"At most {addon.max_quantity} of {addon.name} can be added",
                    details={"addon_id": str(addon.id), "max_quantity": addon.max_quantity},
                )
            booking_addons.append(BookingAddon(
                addon_id=addon.id,
                addon_name=addon.name,
                pricing_type=addon.pricing_type,
                unit_price=addon.price,
                quantity=addon_request.quantity,
                addon_total=calculate_addon_total(
                    addon.price, addon.pricing_type, addon_request.quantity, nights, adults + children
                ),
            ))
        addons_total = sum(line.addon_total for line in booking_addons)
        subtotal = room_total + addons_total

        discount_amount = 0
        promotion = None
        if request.coupon_code:
            validation = await self.promotions.validate_coupon(
                request.coupon_code,
                prop.id,
                room_ids=[p.room.id for p in priced_rooms],
                booking_amount=subtotal,
                nights=nights,
                guest_email=request.guest_email,
            )
            if not validation.valid:
                raise ValidationError(
                    validation.error or "Invalid coupon code",
                    details={"coupon_code": request.coupon_code},
                )
            promotion = validation.promotion
            discount_amount = validation.discount_amount

        taxable = subtotal - discount_amount
        tax_amount = calculate_tax(taxable, await self._vat_percentage(prop))
        total_amount = max(0, taxable + tax_amount)

        customer = await self.customers.find_or_create_customer(
            email=request.guest_email,
            property_id=prop.id,
            company_id=prop.company_id,
            full_name=request.guest_name,
            phone=request.guest_phone,
            user_id=None if is_owner else user["user_id"],
            source="booking",
        )

        status = BookingStatus.CONFIRMED.value if request.confirm else BookingStatus.PENDING.value
        booking = Booking(
            booking_reference=await self._unique_booking_reference(),
            property_id=prop.id,
            customer_id=customer.id,
            guest_id=None if is_owner else user["user_id"],
            created_by=user["user_id"],
            guest_name=request.guest_name,
            guest_email=request.guest_email.strip().lower(),
            guest_phone=request.guest_phone,
            check_in_date=request.check_in_date,
            check_out_date=request.check_out_date,
            total_nights=nights,
            adults=adults,
            children=children,
            room_total=room_total,
            addons_total=addons_total,
            subtotal=subtotal,
            discount_amount=discount_amount,
            tax_amount=tax_amount,
            total_amount=total_amount,
            amount_paid=0,
            total_refunded=0,
            currency=prop.currency,
            coupon_code=promotion.code if promotion else None,
            promotion_id=promotion.id if promotion else None,
            booking_status=status,
            payment_status=PaymentStatus.PENDING.value,
            refund_status=RefundState.NONE.value,
            source=request.source,
            special_requests=request.special_requests,
            rooms=[
                BookingRoom(
                    room_id=p.room.id,
                    room_name=p.room.name,
                    adults=p.adults,
                    children=p.children,
                    children_ages=p.children_ages,
                    nightly_rates=[night.as_dict() for night in p.breakdown.nightly_rates],
                    room_subtotal=p.breakdown.total,
                )
                for p in priced_rooms
            ],
            addons=booking_addons,
        )
        self.db.add(booking)
        await self.db.flush()

        if promotion:
            await self.promotions.increment_usage(promotion.id)
        await self.customers.sync_booking_stats(customer.id)
        await self.audit.log(
            user["user_id"], "booking.created", "booking", booking.id, new_data=_snapshot(booking)
        )
        await self.db.commit()

        BOOKINGS_CREATED.labels(source=booking.source).inc()
        logger.info(
            "Booking created successfully",
            extra={
                "booking_id": str(booking.id),
                "booking_reference": booking.booking_reference,
                "property_id": str(prop.id),
                "nights": nights,
                "total_amount": total_amount,
                "status": status,
            },
        )
        return await self.get_booking_by_id_or_raise(booking.id)

    async def list_bookings(
        self,
        user: dict,
        property_id: Optional[UUID] = None,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Booking], int]:
        """
        Bookings visible to the caller.

        Owners see the bookings of their properties, guests their own bookings,
        super admins everything.
        """
        stmt = select(Booking)
        if not is_super_admin(user):
            owned = select(Property.id).where(Property.owner_id == user["user_id"])
            visibility = [Booking.property_id.in_(owned), Booking.guest_id == user["user_id"]]
            if user.get("email"):
                visibility.append(Booking.guest_email == user["email"].lower())
            stmt = stmt.where(or_(*visibility))

        if property_id:
            stmt = stmt.where(Booking.property_id == property_id)
        if status:
            stmt = stmt.where(Booking.booking_status == status)
        if date_from:
            stmt = stmt.where(Booking.check_in_date >= date_from)
        if date_to:
            stmt = stmt.where(Booking.check_out_date <= date_to)
        if search:
            pattern = f"%{search.strip().lower()}%"
            stmt = stmt.where(or_(
                func.lower(Booking.guest_name).like(pattern),
                func.lower(Booking.guest_email).like(pattern),
                func.lower(Booking.booking_reference).like(pattern),
            ))

        total = (await self.db.execute(
            select(func.count()).select_from(stmt.subquery())
        )).scalar_one()

        result = await self.db.execute(
            stmt.order_by(Booking.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    # Modifications

    async def update_booking(self, booking_id: UUID, request: UpdateBookingRequest, user: dict) -> Booking:
        """Edit guest contact details and notes. Owner only."""
        booking = await self.get_booking_by_id_or_raise(booking_id)
        await self.ensure_owner(booking, user)
        await self.check_refund_lock(booking, "update_booking")

        changes = request.model_dump(exclude_unset=True)
        if not changes:
            return booking

        old_data = {field: getattr(booking, field) for field in changes}
        for field, value in changes.items():
            if field == "guest_email" and value:
                value = value.strip().lower()
            setattr(booking, field, value)

        await self.audit.log(user["user_id"], "booking.updated", "booking", booking.id, old_data, changes)
        await self.db.commit()

        logger.info(
            "Booking updated",
            extra={"booking_id": str(booking_id), "fields": sorted(changes)},
        )
        return await self.get_booking_by_id_or_raise(booking_id)

    async def update_dates(self, booking_id: UUID, request: UpdateBookingDatesRequest, user: dict) -> Booking:
        """
        Move a booking to new dates, re-pricing every room.

        Raises:
            PaymentLockError: If payments were received or a refund is open
            ValidationError: If a room is not available for the new dates
        """
        booking = await self.get_booking_by_id_or_raise(booking_id)
        await self.ensure_owner(booking, user)
        self.check_payment_lock(booking, "update_dates")
        await self.check_refund_lock(booking, "update_dates")

        if booking.booking_status not in DATE_CHANGE_STATUSES:
            raise ValidationError(
                f"Dates cannot be changed on a {booking.booking_status} booking",
                details={"booking_status": booking.booking_status},
            )

        prop = await self.rooms.get_property_by_id_or_raise(booking.property_id)
        old_data = _snapshot(booking)
        check_in, check_out = request.check_in_date, request.check_out_date
        nights = count_nights(check_in, check_out)

        priced_rooms = await self._price_rooms(
            prop,
            [(line.room_id, line.adults, line.children, line.children_ages or []) for line in booking.rooms],
            check_in,
            check_out,
            exclude_booking_id=booking.id,
        )
        for line, priced in zip(booking.rooms, priced_rooms):
            line.nightly_rates = [night.as_dict() for night in priced.breakdown.nightly_rates]
            line.room_subtotal = priced.breakdown.total

        guests = booking.adults + booking.children
        for addon_line in booking.addons:
            addon_line.addon_total = calculate_addon_total(
                addon_line.unit_price, addon_line.pricing_type, addon_line.quantity, nights, guests
            )

        booking.check_in_date = check_in
        booking.check_out_date = check_out
        booking.total_nights = nights
        booking.room_total = sum(p.breakdown.total for p in priced_rooms)
        booking.addons_total = sum(line.addon_total for line in booking.addons)
        booking.subtotal = booking.room_total + booking.addons_total

        booking.discount_amount = 0
        if booking.promotion_id:
            promotion = await self.db.get(Promotion, booking.promotion_id)
            if promotion:
                booking.discount_amount = calculate_discount(
                    promotion.discount_type, promotion.discount_value, booking.subtotal, nights
                )

        taxable = booking.subtotal - booking.discount_amount
        booking.tax_amount = calculate_tax(taxable, await self._vat_percentage(prop))
        booking.total_amount = max(0, taxable + booking.tax_amount)

        await self.audit.log(
            user["user_id"], "booking.dates_changed", "booking", booking.id, old_data, _snapshot(booking)
        )
        await self.db.commit()

        logger.info(
            "Booking dates changed",
            extra={
                "booking_id": str(booking_id),
                "check_in": check_in.isoformat(),
                "check_out": check_out.isoformat(),
                "total_amount": booking.total_amount,
            },
        )
        return await self.get_booking_by_id_or_raise(booking_id)

    # Status lifecycle

    async def _apply_status(
        self,
        booking: Booking,
        new_status: str,
        actor_id: Optional[UUID],
        reason: Optional[str] = None,
    ) -> None:
        old_status = booking.booking_status
        now = utcnow()
        booking.booking_status = new_status
        if new_status == BookingStatus.CANCELLED.value:
            booking.cancelled_at = now
            booking.cancellation_reason = reason
        elif new_status == BookingStatus.CHECKED_IN.value:
            booking.checked_in_at = now
        elif new_status == BookingStatus.CHECKED_OUT.value:
            booking.checked_out_at = now

        await self.audit.log(
            actor_id,
            "booking.status_changed",
            "booking",
            booking.id,
            {"booking_status": old_status},
            {"booking_status": new_status, "reason": reason},
        )
        if new_status in (BookingStatus.CANCELLED.value, BookingStatus.NO_SHOW.value) and booking.customer_id:
            await self.customers.sync_booking_stats(booking.customer_id)

        BOOKING_STATUS_CHANGES.labels(from_status=old_status, to_status=new_status).inc()
        logger.info(
            "Booking status changed",
            extra={
                "booking_id": str(booking.id),
                "from_status": old_status,
                "to_status": new_status,
            },
        )

    async def update_status(
        self,
        booking_id: UUID,
        new_status: str,
        user: dict,
        reason: Optional[str] = None,
    ) -> Booking:
        """
        Move a booking along its lifecycle.

        Setting the current status again is a no-op.

        Raises:
            ValidationError: If the transition is not allowed, with the allowed targets
        """
        booking = await self.get_booking_by_id_or_raise(booking_id)
        await self.ensure_owner(booking, user)

        current = booking.booking_status
        if new_status == current:
            return booking
        if new_status not in BOOKING_TRANSITIONS.get(current, frozenset()):
            raise ValidationError(
                f"Cannot change booking status from {current} to {new_status}",
                details={
                    "current_status": current,
                    "requested_status": new_status,
                    "allowed_transitions": allowed_transitions(current),
                },
            )

        await self._apply_status(booking, new_status, user["user_id"], reason)
        await self.db.commit()
        return await self.get_booking_by_id_or_raise(booking_id)

    async def check_in(self, booking_id: UUID, user: dict) -> Booking:
        booking = await self.get_booking_by_id_or_raise(booking_id)
        await self.ensure_owner(booking, user)
        if booking.booking_status != BookingStatus.CONFIRMED.value:
            raise ValidationError(
                "Only confirmed bookings can be checked in",
                details={"booking_status": booking.booking_status},
            )
        await self._apply_status(booking, BookingStatus.CHECKED_IN.value, user["user_id"])
        await self.db.commit()
        return await self.get_booking_by_id_or_raise(booking_id)

    async def check_out(self, booking_id: UUID, user: dict) -> Booking:
        booking = await self.get_booking_by_id_or_raise(booking_id)
        await self.ensure_owner(booking, user)
        if booking.booking_status != BookingStatus.CHECKED_IN.value:
            raise ValidationError(
                "Only checked-in bookings can be checked out",
                details={"booking_status": booking.booking_status},
            )
        await self._apply_status(booking, BookingStatus.CHECKED_OUT.value, user["user_id"])
        await self.db.commit()
        return await self.get_booking_by_id_or_raise(booking_id)

    async def cancel_booking(self, booking_id: UUID, user: dict, reason: Optional[str] = None) -> Booking:
        """Cancel a booking. The guest or the property owner may cancel."""
        booking = await self.get_booking_by_id_or_raise(booking_id)
        await self.ensure_can_view(booking, user)
        if booking.booking_status in NOT_CANCELLABLE_STATUSES:
            raise ValidationError(
                f"A {booking.booking_status} booking cannot be cancelled",
                details={"booking_status": booking.booking_status},
            )
        await self._apply_status(booking, BookingStatus.CANCELLED.value, user["user_id"], reason)
        await self.db.commit()
        return await self.get_booking_by_id_or_raise(booking_id)

    async def auto_checkout(self, now: Optional[datetime] = None) -> int:
        """
        Check out guests whose stay has ended.

        A checked-in booking is checked out once its check-out date has been
        reached and the property's check-out time has passed.

        Returns:
            Number of bookings checked out
        """
        now = now or utcnow()
        result = await self.db.execute(
            select(Booking, Property.check_out_time)
            .join(Property, Property.id == Booking.property_id)
            .where(
                Booking.booking_status == BookingStatus.CHECKED_IN.value,
                Booking.check_out_date <= now.date(),
            )
        )

        count = 0
        for booking, check_out_time in result.all():
            if booking.check_out_date == now.date() and now.time() < _parse_time(check_out_time):
                continue
            await self._apply_status(booking, BookingStatus.CHECKED_OUT.value, None, "automatic checkout")
            count += 1

        if count:
            await self.db.commit()
            AUTO_CHECKOUTS.inc(count)
            logger.info("Automatic checkout completed", extra={"checked_out_count": count})
        return count

    # Payments

    def _apply_payment(self, booking: Booking, amount: int) -> None:
        booking.amount_paid += amount
        booking.payment_status = payment_status_for(booking.amount_paid, booking.total_amount)

    async def record_payment(self, booking_id: UUID, request: RecordPaymentRequest, user: dict) -> BookingPayment:
        """
        Record a payment against a booking. Owner only.

        Raises:
            ValidationError: If the booking is cancelled or the amount exceeds the balance
        """
        booking = await self.get_booking_by_id_or_raise(booking_id)
        await self.ensure_owner(booking, user)

        if booking.booking_status == BookingStatus.CANCELLED.value:
            raise ValidationError("Payments cannot be recorded on a cancelled booking")
        if request.amount > booking.balance_due:
            raise ValidationError(
                "Payment amount exceeds the outstanding balance",
                details={"amount": request.amount, "balance_due": booking.balance_due},
            )

        payment = BookingPayment(
            booking_id=booking.id,
            amount=request.amount,
            currency=booking.currency,
            payment_method=request.payment_method.value,
            status=request.status.value,
            payment_reference=request.payment_reference,
            gateway_reference=request.gateway_reference,
            notes=request.notes,
            paid_at=request.paid_at or utcnow(),
            recorded_by=user["user_id"],
        )
        self.db.add(payment)

        if payment.status in SETTLED_PAYMENT_STATUSES:
            self._apply_payment(booking, payment.amount)
        await self.db.flush()

        if booking.customer_id:
            await self.customers.sync_booking_stats(booking.customer_id)
        await self.audit.log(
            user["user_id"],
            "booking.payment_recorded",
            "booking",
            booking.id,
            None,
            {"payment_id": payment.id, "amount": payment.amount, "method": payment.payment_method},
        )
        await self.db.commit()

        PAYMENTS_RECORDED.labels(payment_method=payment.payment_method).inc()
        logger.info(
            "Payment recorded",
            extra={
                "booking_id": str(booking_id),
                "payment_id": str(payment.id),
                "amount": payment.amount,
                "payment_status": booking.payment_status,
            },
        )
        return payment

    async def verify_payment(self, booking_id: UUID, payment_id: UUID, user: dict) -> BookingPayment:
        """Mark a pending payment verified and credit it to the booking."""
        booking = await self.get_booking_by_id_or_raise(booking_id)
        await self.ensure_owner(booking, user)

        payment = next((p for p in booking.payments if p.id == payment_id), None)
        if payment is None:
            raise NotFoundError(resource_type="payment", resource_id=payment_id)
        if payment.status != PaymentRecordStatus.PENDING.value:
            raise ValidationError(
                "Only pending payments can be verified",
                details={"payment_status": payment.status},
            )
        if payment.amount > booking.balance_due:
            raise ValidationError(
                "Payment amount exceeds the outstanding balance",
                details={"amount": payment.amount, "balance_due": booking.balance_due},
            )

        payment.status = PaymentRecordStatus.VERIFIED.value
        self._apply_payment(booking, payment.amount)
        if booking.customer_id:
            await self.db.flush()
            await self.customers.sync_booking_stats(booking.customer_id)
        await self.audit.log(
            user["user_id"],
            "booking.payment_verified",
            "booking",
            booking.id,
            {"payment_id": payment.id, "status": PaymentRecordStatus.PENDING.value},
            {"payment_id": payment.id, "status": payment.status},
        )
        await self.db.commit()

        logger.info(
            "Payment verified",
            extra={"booking_id": str(booking_id), "payment_id": str(payment_id)},
        )
        return payment

    async def list_payments(self, booking_id: UUID, user: dict) -> list[BookingPayment]:
        booking = await self.get_booking_by_id_or_raise(booking_id)
        await self.ensure_can_view(booking, user)
        return list(booking.payments)
