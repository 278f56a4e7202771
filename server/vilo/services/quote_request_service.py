"""Quote request service: submission, owner workflow, statistics and expiry."""

import logging
from collections import Counter
from datetime import timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import settings
from ..core.dependencies import is_super_admin
from ..core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..core.observability import QUOTE_REQUESTS_CREATED, QUOTE_REQUESTS_EXPIRED
from ..models.booking import Booking
from ..models.company import Property
from ..models.quote_request import GroupType, QuoteRequest, QuoteStatus
from ..schemas.quote_request import CreateQuoteRequest
from .audit_service import AuditService
from .customer_service import CustomerService

logger = logging.getLogger(__name__)

LARGE_GROUP_SIZE = 10
# 50 000 in major units
HIGH_BUDGET_MINOR_UNITS = 50_000 * 100
EVENT_GROUP_TYPES = frozenset({
    GroupType.WEDDING.value,
    GroupType.CORPORATE_EVENT.value,
    GroupType.CONFERENCE.value,
})
MAX_PRIORITY = 3

QUOTE_TRANSITIONS: dict[str, frozenset[str]] = {
    QuoteStatus.PENDING.value: frozenset({
        QuoteStatus.RESPONDED.value,
        QuoteStatus.DECLINED.value,
        QuoteStatus.EXPIRED.value,
    }),
    QuoteStatus.RESPONDED.value: frozenset({
        QuoteStatus.CONVERTED.value,
        QuoteStatus.DECLINED.value,
        QuoteStatus.EXPIRED.value,
    }),
    QuoteStatus.CONVERTED.value: frozenset(),
    QuoteStatus.DECLINED.value: frozenset(),
    QuoteStatus.EXPIRED.value: frozenset(),
}

OPEN_QUOTE_STATUSES = (QuoteStatus.PENDING.value, QuoteStatus.RESPONDED.value)


def calculate_priority(group_size: int, budget_max: Optional[int], group_type: str) -> int:
    """
    Score a quote request from 0 (normal) to 3.

    One point each for a group of ten or more, a maximum budget of at least
    50 000 in major units, and a wedding, corporate event or conference.
    """
    priority = 0
    if group_size >= LARGE_GROUP_SIZE:
        priority += 1
    if budget_max is not None and budget_max >= HIGH_BUDGET_MINOR_UNITS:
        priority += 1
    if group_type in EVENT_GROUP_TYPES:
        priority += 1
    return min(priority, MAX_PRIORITY)


class QuoteRequestService:
    """Service for quote request operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.customers = CustomerService(db)
        self.audit = AuditService(db)

    async def get_quote_by_id(self, quote_id: UUID) -> Optional[QuoteRequest]:
        result = await self.db.execute(
            select(QuoteRequest)
            .where(QuoteRequest.id == quote_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_quote_by_id_or_raise(self, quote_id: UUID) -> QuoteRequest:
        quote = await self.get_quote_by_id(quote_id)
        if not quote:
            raise NotFoundError(resource_type="quote_request", resource_id=quote_id)
        return quote

    async def ensure_property_owner(self, property_id: UUID, user: dict) -> None:
        if is_super_admin(user):
            return
        result = await self.db.execute(select(Property.owner_id).where(Property.id == property_id))
        if result.scalar_one_or_none() != user["user_id"]:
            raise ForbiddenError("Only the property owner can manage this quote request")

    async def get_owned_quote(self, quote_id: UUID, user: dict) -> QuoteRequest:
        quote = await self.get_quote_by_id_or_raise(quote_id)
        await self.ensure_property_owner(quote.property_id, user)
        return quote

    async def create_quote_request(
        self, request: CreateQuoteRequest, user: Optional[dict] = None
    ) -> QuoteRequest:
        """
        Submit a quote request for a property.

        Raises:
            NotFoundError: If the property does not exist or is inactive
            ConflictError: If the guest already has a pending request for it
        """
        result = await self.db.execute(select(Property).where(Property.id == request.property_id))
        prop = result.scalar_one_or_none()
        if not prop or not prop.is_active:
            raise NotFoundError(resource_type="property", resource_id=request.property_id)

        customer = await self.customers.find_or_create_customer(
            email=request.guest_email,
            property_id=prop.id,
            company_id=prop.company_id,
            full_name=request.guest_name,
            phone=request.guest_phone,
            user_id=user["user_id"] if user else None,
            source="quote_request",
        )

        existing = await self.db.execute(
            select(QuoteRequest.id).where(
                QuoteRequest.customer_id == customer.id,
                QuoteRequest.property_id == prop.id,
                QuoteRequest.status == QuoteStatus.PENDING.value,
            ).limit(1)
        )
        existing_id = existing.scalar_one_or_none()
        if existing_id is not None:
            raise ConflictError(
                "You already have a pending quote request for this property. "
                "Please wait for the owner to respond.",
                details={"quote_request_id": str(existing_id)},
            )

        group_size = request.adults_count + request.children_count
        quote = QuoteRequest(
            property_id=prop.id,
            company_id=prop.company_id,
            customer_id=customer.id,
            user_id=user["user_id"] if user else customer.user_id,
            guest_name=request.guest_name,
            guest_email=request.guest_email.strip().lower(),
            guest_phone=request.guest_phone,
            date_flexibility=request.date_flexibility.value,
            preferred_check_in=request.preferred_check_in,
            preferred_check_out=request.preferred_check_out,
            flexible_date_start=request.flexible_date_start,
            flexible_date_end=request.flexible_date_end,
            nights_count=request.nights_count,
            adults_count=request.adults_count,
            children_count=request.children_count,
            group_size=group_size,
            group_type=request.group_type.value,
            budget_min=request.budget_min,
            budget_max=request.budget_max,
            currency=prop.currency,
            special_requirements=request.special_requirements,
            dietary_restrictions=request.dietary_restrictions,
            accessibility_needs=request.accessibility_needs,
            event_type=request.event_type,
            event_description=request.event_description,
            status=QuoteStatus.PENDING.value,
            priority=calculate_priority(group_size, request.budget_max, request.group_type.value),
            expires_at=utcnow() + timedelta(days=settings.quote_request_ttl_days),
            source=request.source,
        )
        self.db.add(quote)
        await self.db.flush()
        await self.audit.log(
            user["user_id"] if user else None,
            "quote_request.created",
            "quote_request",
            quote.id,
            None,
            {"status": quote.status, "priority": quote.priority, "group_size": group_size},
        )
        await self.db.commit()

        QUOTE_REQUESTS_CREATED.labels(group_type=quote.group_type).inc()
        logger.info(
            "Quote request created",
            extra={
                "quote_request_id": str(quote.id),
                "property_id": str(prop.id),
                "group_size": group_size,
                "priority": quote.priority,
            },
        )
        return quote

    async def list_quote_requests(
        self,
        user: dict,
        property_id: Optional[UUID] = None,
        status: Optional[str] = None,
        group_type: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[QuoteRequest], int]:
        """Quote requests for the caller's properties, highest priority first."""
        stmt = select(QuoteRequest)
        if not is_super_admin(user):
            owned = select(Property.id).where(Property.owner_id == user["user_id"])
            stmt = stmt.where(QuoteRequest.property_id.in_(owned))
        if property_id:
            stmt = stmt.where(QuoteRequest.property_id == property_id)
        if status:
            stmt = stmt.where(QuoteRequest.status == status)
        if group_type:
            stmt = stmt.where(QuoteRequest.group_type == group_type)
        if search:
            pattern = f"%{search.strip().lower()}%"
            stmt = stmt.where(or_(
                func.lower(QuoteRequest.guest_name).like(pattern),
                func.lower(QuoteRequest.guest_email).like(pattern),
            ))

        total = (await self.db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
        result = await self.db.execute(
            stmt.order_by(QuoteRequest.priority.desc(), QuoteRequest.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_my_quote_requests(self, user: dict) -> list[QuoteRequest]:
        conditions = [QuoteRequest.user_id == user["user_id"]]
        if user.get("email"):
            conditions.append(QuoteRequest.guest_email == user["email"].lower())
        result = await self.db.execute(
            select(QuoteRequest).where(or_(*conditions)).order_by(QuoteRequest.created_at.desc())
        )
        return list(result.scalars().all())

    async def _set_status(self, quote: QuoteRequest, new_status: str, user: dict) -> None:
        current = quote.status
        allowed = QUOTE_TRANSITIONS.get(current, frozenset())
        if new_status not in allowed:
            raise ValidationError(
                f"Cannot change quote request status from {current} to {new_status}",
                details={
                    "current_status": current,
                    "requested_status": new_status,
                    "allowed_transitions": sorted(allowed),
                },
            )
        quote.status = new_status
        await self.audit.log(
            user["user_id"],
            "quote_request.status_changed",
            "quote_request",
            quote.id,
            {"status": current},
            {"status": new_status},
        )
        logger.info(
            "Quote request status changed",
            extra={"quote_request_id": str(quote.id), "from_status": current, "to_status": new_status},
        )

    async def respond(self, quote_id: UUID, owner_response: str, user: dict) -> QuoteRequest:
        """Record the owner's response. Allowed while pending or already responded."""
        quote = await self.get_owned_quote(quote_id, user)
        if quote.status not in OPEN_QUOTE_STATUSES:
            raise ValidationError(
                f"Cannot respond to a {quote.status} quote request",
                details={"current_status": quote.status},
            )

        if quote.status == QuoteStatus.PENDING.value:
            await self._set_status(quote, QuoteStatus.RESPONDED.value, user)
        quote.owner_response = owner_response
        quote.responded_at = utcnow()
        quote.responded_by = user["user_id"]
        await self.db.commit()
        return await self.get_quote_by_id_or_raise(quote_id)

    async def update_status(self, quote_id: UUID, new_status: str, user: dict) -> QuoteRequest:
        quote = await self.get_owned_quote(quote_id, user)
        if new_status == quote.status:
            return quote
        await self._set_status(quote, new_status, user)
        if new_status == QuoteStatus.CONVERTED.value:
            quote.converted_at = utcnow()
        await self.db.commit()
        return await self.get_quote_by_id_or_raise(quote_id)

    async def convert_to_booking(self, quote_id: UUID, booking_id: UUID, user: dict) -> QuoteRequest:
        """
        Link a booking to the quote request and mark it converted.

        Raises:
            ValidationError: If the booking is for another property or the
                quote is no longer open
        """
        quote = await self.get_owned_quote(quote_id, user)
        booking = await self.db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=booking_id)
        if booking.property_id != quote.property_id:
            raise ValidationError(
                "Booking belongs to a different property",
                details={"booking_id": str(booking_id), "property_id": str(quote.property_id)},
            )
        if quote.status not in OPEN_QUOTE_STATUSES:
            raise ValidationError(
                f"Cannot convert a {quote.status} quote request",
                details={"current_status": quote.status},
            )

        if quote.status == QuoteStatus.PENDING.value:
            # Converting skips the response step
            quote.status = QuoteStatus.RESPONDED.value
        await self._set_status(quote, QuoteStatus.CONVERTED.value, user)
        quote.booking_id = booking_id
        quote.converted_at = utcnow()
        await self.db.commit()
        return await self.get_quote_by_id_or_raise(quote_id)

    async def get_stats(self, user: dict, property_id: Optional[UUID] = None) -> dict:
        stmt = select(
            QuoteRequest.status,
            QuoteRequest.group_type,
            QuoteRequest.group_size,
            QuoteRequest.budget_max,
            QuoteRequest.created_at,
            QuoteRequest.responded_at,
        )
        if not is_super_admin(user):
            owned = select(Property.id).where(Property.owner_id == user["user_id"])
            stmt = stmt.where(QuoteRequest.property_id.in_(owned))
        if property_id:
            stmt = stmt.where(QuoteRequest.property_id == property_id)

        rows = (await self.db.execute(stmt)).all()
        total = len(rows)
        if not total:
            return {
                "total": 0,
                "by_status": {},
                "by_group_type": {},
                "average_group_size": 0.0,
                "average_budget": 0.0,
                "conversion_rate": 0.0,
                "average_response_time_hours": 0.0,
            }

        by_status = Counter(row.status for row in rows)
        budgets = [row.budget_max for row in rows if row.budget_max]
        response_hours = [
            (row.responded_at - row.created_at).total_seconds() / 3600
            for row in rows
            if row.responded_at
        ]
        return {
            "total": total,
            "by_status": dict(by_status),
            "by_group_type": dict(Counter(row.group_type for row in rows)),
            "average_group_size": sum(row.group_size for row in rows) / total,
            "average_budget": sum(budgets) / len(budgets) if budgets else 0.0,
            "conversion_rate": by_status.get(QuoteStatus.CONVERTED.value, 0) / total * 100,
            "average_response_time_hours": (
                sum(response_hours) / len(response_hours) if response_hours else 0.0
            ),
        }

    async def expire_old_quote_requests(self) -> int:
        """Expire open quote requests past their expiry time. Returns the count."""
        result = await self.db.execute(
            update(QuoteRequest)
            .where(
                QuoteRequest.status.in_(OPEN_QUOTE_STATUSES),
                QuoteRequest.expires_at <= utcnow(),
            )
            .values(status=QuoteStatus.EXPIRED.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        expired = result.rowcount or 0
        if expired:
            QUOTE_REQUESTS_EXPIRED.inc(expired)
            logger.info("Expired old quote requests", extra={"expired_count": expired})
        return expired
