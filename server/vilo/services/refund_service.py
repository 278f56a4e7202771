"""Refund request lifecycle: eligibility, review, processing and completion."""

import copy
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import today, utcnow
from ..core.dependencies import is_super_admin
from ..core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..core.observability import REFUND_TRANSITIONS, REFUNDS_REQUESTED
from ..models.booking import GATEWAY_METHODS, Booking, PaymentMethod, PaymentStatus, RefundState
from ..models.company import Property
from ..models.refund import (
    ACTIVE_REFUND_STATUSES,
    RefundItemStatus,
    RefundRequest,
    RefundStatus,
    RefundStatusHistory,
)
from ..schemas.refund import (
    ApproveRefundRequest,
    CreateRefundRequest,
    GatewayRefundEvent,
    ManualCompleteRequest,
    RejectRefundRequest,
)
from .audit_service import AuditService
from .booking_service import BookingService
from .payment_gateway import PaymentGatewayClient
from .refund_breakdown import (
    calculate_refund_breakdown,
    days_until,
    final_refund_status,
    suggested_refund_amount,
)

logger = logging.getLogger(__name__)

REFUND_TRANSITIONS_ALLOWED: dict[str, frozenset[str]] = {
    RefundStatus.REQUESTED.value: frozenset({
        RefundStatus.UNDER_REVIEW.value,
        RefundStatus.APPROVED.value,
        RefundStatus.REJECTED.value,
        RefundStatus.WITHDRAWN.value,
    }),
    RefundStatus.UNDER_REVIEW.value: frozenset({
        RefundStatus.APPROVED.value,
        RefundStatus.REJECTED.value,
        RefundStatus.WITHDRAWN.value,
    }),
    RefundStatus.APPROVED.value: frozenset({
        RefundStatus.PROCESSING.value,
        RefundStatus.WITHDRAWN.value,
    }),
    RefundStatus.PROCESSING.value: frozenset({
        RefundStatus.COMPLETED.value,
        RefundStatus.FAILED.value,
    }),
    RefundStatus.FAILED.value: frozenset({RefundStatus.PROCESSING.value}),
    RefundStatus.REJECTED.value: frozenset(),
    RefundStatus.COMPLETED.value: frozenset(),
    RefundStatus.WITHDRAWN.value: frozenset(),
}

REFUNDABLE_PAYMENT_STATUSES = frozenset({PaymentStatus.PAID.value, PaymentStatus.PARTIAL.value})


def _snapshot(refund: RefundRequest) -> dict:
    return {
        "status": refund.status,
        "requested_amount": refund.requested_amount,
        "approved_amount": refund.approved_amount,
        "refunded_amount": refund.refunded_amount,
    }


class RefundService:
    """Service for refund request operations."""

    def __init__(self, db: AsyncSession, gateway: Optional[PaymentGatewayClient] = None):
        self.db = db
        self.gateway = gateway or PaymentGatewayClient()
        self.bookings = BookingService(db)
        self.audit = AuditService(db)

    async def get_refund_by_id(self, refund_id: UUID) -> Optional[RefundRequest]:
        result = await self.db.execute(
            select(RefundRequest)
            .where(RefundRequest.id == refund_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_refund_by_id_or_raise(self, refund_id: UUID) -> RefundRequest:
        refund = await self.get_refund_by_id(refund_id)
        if not refund:
            raise NotFoundError(resource_type="refund_request", resource_id=refund_id)
        return refund

    async def _load(self, refund_id: UUID) -> tuple[RefundRequest, Booking]:
        refund = await self.get_refund_by_id_or_raise(refund_id)
        booking = await self.bookings.get_booking_by_id_or_raise(refund.booking_id)
        return refund, booking

    @staticmethod
    def available_for_refund(booking: Booking) -> int:
        return max(0, booking.amount_paid - booking.total_refunded)

    async def active_refund(self, booking_id: UUID) -> Optional[RefundRequest]:
        result = await self.db.execute(
            select(RefundRequest)
            .where(
                RefundRequest.booking_id == booking_id,
                RefundRequest.status.in_(ACTIVE_REFUND_STATUSES),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _transition(
        self,
        refund: RefundRequest,
        to_status: str,
        actor_id: Optional[UUID],
        reason: Optional[str] = None,
    ) -> None:
        """
        Move a refund to `to_status`, recording history and an audit entry.

        Raises:
            ValidationError: If the lifecycle does not allow the move
        """
        from_status = refund.status
        allowed = REFUND_TRANSITIONS_ALLOWED.get(from_status, frozenset())
        if to_status not in allowed:
            raise ValidationError(
                f"Cannot change refund status from {from_status} to {to_status}",
                details={
                    "current_status": from_status,
                    "requested_status": to_status,
                    "allowed_transitions": sorted(allowed),
                },
            )

        old_data = _snapshot(refund)
        refund.status = to_status
        self.db.add(RefundStatusHistory(
            refund_request_id=refund.id,
            from_status=from_status,
            to_status=to_status,
            changed_by=actor_id,
            change_reason=reason,
        ))
        await self.audit.log(
            actor_id, f"refund.{to_status}", "refund_request", refund.id, old_data, _snapshot(refund)
        )

        REFUND_TRANSITIONS.labels(to_status=to_status).inc()
        logger.info(
            "Refund status changed",
            extra={
                "refund_id": str(refund.id),
                "from_status": from_status,
                "to_status": to_status,
            },
        )

    # Eligibility and creation

    async def get_eligibility(self, booking_id: UUID, user: dict) -> dict:
        booking = await self.bookings.get_booking_by_id_or_raise(booking_id)
        await self.bookings.ensure_can_view(booking, user)
        return await self._eligibility(booking)

    async def _eligibility(self, booking: Booking) -> dict:
        prop = await self.bookings.rooms.get_property_by_id_or_raise(booking.property_id)
        available = self.available_for_refund(booking)
        days = days_until(booking.check_in_date, today())
        active = await self.active_refund(booking.id)

        reason = None
        if booking.payment_status not in REFUNDABLE_PAYMENT_STATUSES:
            reason = "Booking has no payments that can be refunded"
        elif available <= 0:
            reason = "Everything paid on this booking has already been refunded"
        elif active is not None:
            reason = "A refund request is already in progress for this booking"

        return {
            "booking_id": booking.id,
            "eligible": reason is None,
            "reason": reason,
            "payment_status": booking.payment_status,
            "amount_paid": booking.amount_paid,
            "total_refunded": booking.total_refunded,
            "available_for_refund": available,
            "suggested_amount": suggested_refund_amount(prop.cancellation_policy, days, available),
            "cancellation_policy": prop.cancellation_policy,
            "days_until_check_in": days,
            "currency": booking.currency,
            "active_refund_id": active.id if active else None,
        }

    async def create_refund(self, booking_id: UUID, request: CreateRefundRequest, user: dict) -> RefundRequest:
        """
        Open a refund request. The guest or the property owner may ask.

        Raises:
            ConflictError: If another refund request is still active
            ValidationError: If nothing is refundable or the amount is too high
        """
        booking = await self.bookings.get_booking_by_id_or_raise(booking_id)
        await self.bookings.ensure_can_view(booking, user)

        eligibility = await self._eligibility(booking)
        if eligibility["active_refund_id"] is not None:
            raise ConflictError(
                eligibility["reason"],
                details={"active_refund_id": str(eligibility["active_refund_id"])},
            )
        if not eligibility["eligible"]:
            raise ValidationError(eligibility["reason"], details={"booking_id": str(booking_id)})

        available = eligibility["available_for_refund"]
        if request.requested_amount > available:
            raise ValidationError(
                "Requested amount exceeds the amount available for refund",
                details={"requested_amount": request.requested_amount, "available_for_refund": available},
            )

        refund = RefundRequest(
            booking_id=booking.id,
            requested_amount=request.requested_amount,
            suggested_amount=eligibility["suggested_amount"],
            currency=booking.currency,
            status=RefundStatus.REQUESTED.value,
            reason=request.reason.strip(),
            cancellation_policy=eligibility["cancellation_policy"],
            requested_by=user["user_id"],
            requested_at=utcnow(),
        )
        self.db.add(refund)
        await self.db.flush()

        self.db.add(RefundStatusHistory(
            refund_request_id=refund.id,
            from_status=None,
            to_status=RefundStatus.REQUESTED.value,
            changed_by=user["user_id"],
            change_reason=refund.reason,
        ))
        await self.audit.log(
            user["user_id"], "refund.requested", "refund_request", refund.id, None, _snapshot(refund)
        )
        await self.db.commit()

        REFUNDS_REQUESTED.inc()
        logger.info(
            "Refund requested",
            extra={
                "refund_id": str(refund.id),
                "booking_id": str(booking_id),
                "requested_amount": refund.requested_amount,
                "suggested_amount": refund.suggested_amount,
            },
        )
        return await self.get_refund_by_id_or_raise(refund.id)

    # Review

    async def start_review(self, refund_id: UUID, user: dict, notes: Optional[str] = None) -> RefundRequest:
        refund, booking = await self._load(refund_id)
        await self.bookings.ensure_owner(booking, user)

        await self._transition(refund, RefundStatus.UNDER_REVIEW.value, user["user_id"], notes)
        refund.reviewed_by = user["user_id"]
        if notes:
            refund.review_notes = notes
        await self.db.commit()
        return await self.get_refund_by_id_or_raise(refund_id)

    async def approve_refund(self, refund_id: UUID, request: ApproveRefundRequest, user: dict) -> RefundRequest:
        """
        Approve a refund, by default for the amount asked.

        Raises:
            ValidationError: If the approved amount exceeds what is still refundable
        """
        refund, booking = await self._load(refund_id)
        await self.bookings.ensure_owner(booking, user)

        approved = request.approved_amount or refund.requested_amount
        available = self.available_for_refund(booking)
        if approved <= 0 or approved > available:
            raise ValidationError(
                "Approved amount must be positive and not exceed the amount available for refund",
                details={"approved_amount": approved, "available_for_refund": available},
            )

        await self._transition(refund, RefundStatus.APPROVED.value, user["user_id"], request.review_notes)
        refund.approved_amount = approved
        refund.reviewed_by = user["user_id"]
        refund.reviewed_at = utcnow()
        refund.review_notes = request.review_notes or refund.review_notes
        refund.customer_notes = request.customer_notes
        await self.db.commit()
        return await self.get_refund_by_id_or_raise(refund_id)

    async def reject_refund(self, refund_id: UUID, request: RejectRefundRequest, user: dict) -> RefundRequest:
        refund, booking = await self._load(refund_id)
        await self.bookings.ensure_owner(booking, user)

        await self._transition(refund, RefundStatus.REJECTED.value, user["user_id"], request.customer_notes)
        refund.reviewed_by = user["user_id"]
        refund.reviewed_at = utcnow()
        refund.customer_notes = request.customer_notes
        refund.review_notes = request.review_notes or refund.review_notes
        await self.db.commit()
        return await self.get_refund_by_id_or_raise(refund_id)

    async def withdraw_refund(self, refund_id: UUID, user: dict, reason: Optional[str] = None) -> RefundRequest:
        """Withdraw a refund request. Only the person who asked may withdraw."""
        refund = await self.get_refund_by_id_or_raise(refund_id)
        if refund.requested_by != user["user_id"]:
            raise ForbiddenError("Only the requester can withdraw a refund request")

        await self._transition(refund, RefundStatus.WITHDRAWN.value, user["user_id"], reason)
        await self.db.commit()
        return await self.get_refund_by_id_or_raise(refund_id)

    # Processing

    def _gateway_reference(self, booking: Booking, item: dict) -> Optional[str]:
        payment = next((p for p in booking.payments if str(p.id) == item["payment_id"]), None)
        if payment is None:
            return None
        if item["method"] == PaymentMethod.PAYPAL.value:
            return payment.payment_reference or payment.gateway_reference
        return payment.gateway_reference

    async def _send_gateway_items(self, refund: RefundRequest, booking: Booking, items: list[dict]) -> None:
        for item in items:
            if item["method"] not in GATEWAY_METHODS:
                continue
            if item["status"] not in (RefundItemStatus.PENDING.value, RefundItemStatus.FAILED.value):
                continue

            result = await self.gateway.refund(
                item["method"],
                self._gateway_reference(booking, item),
                item["amount"],
                refund.currency,
                refund.reason,
            )
            item["processed_at"] = utcnow().isoformat()
            if result.success:
                item["status"] = (
                    RefundItemStatus.COMPLETED.value if result.completed else RefundItemStatus.PROCESSING.value
                )
                item["gateway_refund_id"] = result.gateway_refund_id
                item["error_message"] = None
            else:
                item["status"] = RefundItemStatus.FAILED.value
                item["error_message"] = result.error or "Gateway refund failed"
                logger.warning(
                    "Gateway refund item failed",
                    extra={
                        "refund_id": str(refund.id),
                        "payment_id": item["payment_id"],
                        "error": item["error_message"],
                    },
                )

    @staticmethod
    def _store_items(refund: RefundRequest, items: list[dict]) -> None:
        refund.refund_breakdown = items
        errors = [item["error_message"] for item in items if item["status"] == RefundItemStatus.FAILED.value]
        refund.auto_process_failed = bool(errors)
        refund.failure_reason = "; ".join(e for e in errors if e) or None

    async def _finalize(self, refund: RefundRequest, booking: Booking, items: list[dict], actor_id) -> None:
        """Store the items and settle the refund status they imply."""
        self._store_items(refund, items)

        outcome = final_refund_status(items)
        if outcome == RefundStatus.COMPLETED.value:
            await self._transition(refund, RefundStatus.COMPLETED.value, actor_id)
            await self._complete(refund, booking)
        elif outcome == RefundStatus.FAILED.value:
            await self._transition(refund, RefundStatus.FAILED.value, actor_id, refund.failure_reason)

    async def _complete(self, refund: RefundRequest, booking: Booking) -> None:
        refund.refunded_amount = refund.approved_amount or 0
        await self.db.flush()

        result = await self.db.execute(
            select(func.coalesce(func.sum(RefundRequest.refunded_amount), 0)).where(
                RefundRequest.booking_id == booking.id,
                RefundRequest.status == RefundStatus.COMPLETED.value,
            )
        )
        booking.total_refunded = int(result.scalar_one())

        if booking.total_refunded <= 0:
            booking.refund_status = RefundState.NONE.value
        elif booking.total_refunded >= booking.amount_paid:
            booking.refund_status = RefundState.FULL.value
            booking.payment_status = PaymentStatus.REFUNDED.value
        else:
            booking.refund_status = RefundState.PARTIAL.value

        if booking.customer_id:
            await self.db.flush()
            await self.bookings.customers.sync_booking_stats(booking.customer_id)

        logger.info(
            "Refund completed",
            extra={
                "refund_id": str(refund.id),
                "booking_id": str(booking.id),
                "refunded_amount": refund.refunded_amount,
                "refund_status": booking.refund_status,
            },
        )

    async def process_refund(self, refund_id: UUID, user: dict) -> RefundRequest:
        """
        Pay out an approved refund.

        The amount is split across the booking's payments; gateway shares are
        sent to the gateway, the rest wait for a manual refund.
        """
        refund, booking = await self._load(refund_id)
        await self.bookings.ensure_owner(booking, user)
        if refund.status != RefundStatus.APPROVED.value:
            raise ValidationError(
                "Only approved refunds can be processed",
                details={"current_status": refund.status},
            )

        items = calculate_refund_breakdown(booking.payments, refund.approved_amount or refund.requested_amount)
        await self._transition(refund, RefundStatus.PROCESSING.value, user["user_id"])
        refund.processed_by = user["user_id"]
        refund.processed_at = utcnow()

        await self._send_gateway_items(refund, booking, items)
        await self._finalize(refund, booking, items, user["user_id"])
        await self.db.commit()

        logger.info(
            "Refund processed",
            extra={"refund_id": str(refund_id), "status": refund.status, "items": len(items)},
        )
        return await self.get_refund_by_id_or_raise(refund_id)

    async def mark_manual_complete(
        self, refund_id: UUID, request: ManualCompleteRequest, user: dict
    ) -> RefundRequest:
        """Confirm the shares refunded outside a gateway (EFT, cash and the like)."""
        refund, booking = await self._load(refund_id)
        await self.bookings.ensure_owner(booking, user)
        if refund.status != RefundStatus.PROCESSING.value:
            raise ValidationError(
                "Only refunds being processed can be marked complete",
                details={"current_status": refund.status},
            )

        items = copy.deepcopy(refund.refund_breakdown or [])
        now = utcnow().isoformat()
        for item in items:
            if item["status"] == RefundItemStatus.MANUAL_PENDING.value:
                item["status"] = RefundItemStatus.COMPLETED.value
                item["refund_reference"] = request.refund_reference
                item["processed_at"] = now

        if request.notes:
            refund.review_notes = request.notes
        await self._finalize(refund, booking, items, user["user_id"])
        await self.db.commit()
        return await self.get_refund_by_id_or_raise(refund_id)

    async def handle_gateway_event(self, event: GatewayRefundEvent) -> RefundRequest:
        """
        Apply a gateway confirmation to the item carrying its refund id.

        A refund that already failed on another item keeps its status; the
        item is recorded so a later retry does not send it again.

        Raises:
            NotFoundError: If no processing or failed refund has an item with that id
        """
        result = await self.db.execute(
            select(RefundRequest).where(
                RefundRequest.status.in_([RefundStatus.PROCESSING.value, RefundStatus.FAILED.value])
            )
        )
        for refund in result.scalars().all():
            items = copy.deepcopy(refund.refund_breakdown or [])
            matched = [item for item in items if item.get("gateway_refund_id") == event.gateway_refund_id]
            if not matched:
                continue

            for item in matched:
                item["status"] = event.status
                item["processed_at"] = utcnow().isoformat()
                item["error_message"] = event.message if event.status == RefundItemStatus.FAILED.value else None

            if refund.status == RefundStatus.PROCESSING.value:
                booking = await self.bookings.get_booking_by_id_or_raise(refund.booking_id)
                await self._finalize(refund, booking, items, None)
            else:
                self._store_items(refund, items)
            await self.db.commit()
            logger.info(
                "Gateway refund event applied",
                extra={
                    "refund_id": str(refund.id),
                    "gateway_refund_id": event.gateway_refund_id,
                    "item_status": event.status,
                },
            )
            return await self.get_refund_by_id_or_raise(refund.id)

        raise NotFoundError(resource_type="refund_item", resource_id=event.gateway_refund_id)

    async def retry_refund(self, refund_id: UUID, user: dict) -> RefundRequest:
        """Re-send the failed gateway shares of a failed refund."""
        refund, booking = await self._load(refund_id)
        await self.bookings.ensure_owner(booking, user)
        if refund.status != RefundStatus.FAILED.value:
            raise ValidationError(
                "Only failed refunds can be retried",
                details={"current_status": refund.status},
            )

        await self._transition(refund, RefundStatus.PROCESSING.value, user["user_id"], "retry")
        items = copy.deepcopy(refund.refund_breakdown or [])
        await self._send_gateway_items(refund, booking, items)
        await self._finalize(refund, booking, items, user["user_id"])
        await self.db.commit()
        return await self.get_refund_by_id_or_raise(refund_id)

    # Reads

    async def get_refund(self, refund_id: UUID, user: dict) -> RefundRequest:
        refund, booking = await self._load(refund_id)
        if refund.requested_by != user["user_id"]:
            await self.bookings.ensure_can_view(booking, user)
        return refund

    async def get_history(self, refund_id: UUID, user: dict) -> list[RefundStatusHistory]:
        await self.get_refund(refund_id, user)
        result = await self.db.execute(
            select(RefundStatusHistory)
            .where(RefundStatusHistory.refund_request_id == refund_id)
            .order_by(RefundStatusHistory.created_at, RefundStatusHistory.id)
        )
        return list(result.scalars().all())

    async def get_summary(self, booking_id: UUID, user: dict) -> dict:
        booking = await self.bookings.get_booking_by_id_or_raise(booking_id)
        await self.bookings.ensure_can_view(booking, user)

        result = await self.db.execute(
            select(RefundRequest)
            .where(RefundRequest.booking_id == booking_id)
            .order_by(RefundRequest.created_at)
        )
        refunds = list(result.scalars().all())
        return {
            "booking_id": booking.id,
            "currency": booking.currency,
            "total_paid": booking.amount_paid,
            "total_refunded": booking.total_refunded,
            "available_for_refund": self.available_for_refund(booking),
            "refund_status": booking.refund_status,
            "active_refunds": [r for r in refunds if r.status in ACTIVE_REFUND_STATUSES],
            "completed_refunds": [r for r in refunds if r.status == RefundStatus.COMPLETED.value],
        }

    async def list_refunds(
        self,
        user: dict,
        status: Optional[str] = None,
        property_id: Optional[UUID] = None,
        booking_id: Optional[UUID] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[RefundRequest], int]:
        """Refund requests the caller manages or asked for."""
        stmt = select(RefundRequest).join(Booking, Booking.id == RefundRequest.booking_id)
        if not is_super_admin(user):
            owned = select(Property.id).where(Property.owner_id == user["user_id"])
            stmt = stmt.where(or_(
                Booking.property_id.in_(owned),
                RefundRequest.requested_by == user["user_id"],
            ))
        if status:
            stmt = stmt.where(RefundRequest.status == status)
        if property_id:
            stmt = stmt.where(Booking.property_id == property_id)
        if booking_id:
            stmt = stmt.where(RefundRequest.booking_id == booking_id)

        total = (await self.db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
        result = await self.db.execute(
            stmt.order_by(RefundRequest.created_at.desc()).offset((page - 1) * limit).limit(limit)
        )
        return list(result.scalars().all()), total
