"""Booking router: creation, lifecycle, payments and invoices."""

import logging
from datetime import date
from typing import Any, Awaitable, Callable, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, IdempotencyKey, RequiredAuth
from ..core.exceptions import AppError, unexpected_error
from ..core.responses import pagination_meta, success_response
from ..models.booking import BookingStatus
from ..schemas.booking import (
    BookingSchema,
    BookingSummarySchema,
    CancelBookingRequest,
    CreateBookingRequest,
    PaymentSchema,
    RecordPaymentRequest,
    UpdateBookingDatesRequest,
    UpdateBookingRequest,
    UpdateBookingStatusRequest,
)
from ..schemas.common import error_responses
from ..services.booking_service import BookingService
from ..services.idempotency_service import IdempotencyService
from ..services.invoice_service import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


async def _handle_idempotent_operation(
    db: AsyncSession,
    request: Request,
    idempotency_key: Optional[str],
    scope: str,
    request_body: Any,
    operation: Callable[[], Awaitable[BaseModel]],
    status_code: int,
) -> JSONResponse:
    """
    Run `operation` once per (Idempotency-Key, scope).

    A retry with the same key and body replays the stored data instead of
    running the operation again. Without a key the operation always runs.
    """
    if not idempotency_key:
        return success_response(await operation(), status_code=status_code, request=request)

    idempotency = IdempotencyService(db)
    cached = await idempotency.check_idempotency(idempotency_key, scope, request_body)
    if cached:
        cached_status, cached_data = cached
        return success_response(cached_data, status_code=cached_status, request=request)

    result = await operation()
    data = result.model_dump(mode="json")
    await idempotency.store_response(idempotency_key, scope, request_body, status_code, data)
    return success_response(data, status_code=status_code, request=request)


@router.post(
    "",
    status_code=201,
    response_model=BookingSchema,
    responses=error_responses(400, 401, 403, 404, 409),
)
async def create_booking(
    body: CreateBookingRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
    idempotency_key: Optional[str] = IdempotencyKey,
):
    """
    Create a booking across one or more rooms.

    Prices every night, applies a coupon and VAT, and holds the rooms against
    concurrent bookings. Send an `Idempotency-Key` header to make retries safe.
    """
    service = BookingService(db)

    async def operation() -> BookingSchema:
        booking = await service.create_booking(body, user)
        return BookingSchema.model_validate(booking)

    try:
        return await _handle_idempotent_operation(
            db,
            request,
            idempotency_key,
            f"bookings.create:{user['user_id']}",
            body.model_dump(mode="json"),
            operation,
            status_code=201,
        )
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error(
            "Unexpected error creating booking",
            e,
            property_id=body.property_id,
            idempotency_key=idempotency_key,
        ) from e


@router.get("", response_model=list[BookingSummarySchema], responses=error_responses(401))
async def list_bookings(
    request: Request,
    property_id: Optional[UUID] = None,
    status: Optional[BookingStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    """Bookings the caller owns or made, newest first."""
    try:
        items, total = await BookingService(db).list_bookings(
            user,
            property_id=property_id,
            status=status.value if status else None,
            date_from=date_from,
            date_to=date_to,
            search=search,
            page=page,
            limit=limit,
        )
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error listing bookings", e) from e

    return success_response(
        [BookingSummarySchema.model_validate(b) for b in items],
        meta=pagination_meta(page, limit, total),
        request=request,
    )


@router.get(
    "/reference/{reference}",
    response_model=BookingSchema,
    responses=error_responses(401, 403, 404),
)
async def get_booking_by_reference(
    reference: str,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        service = BookingService(db)
        booking = await service.get_booking_by_reference_or_raise(reference)
        await service.ensure_can_view(booking, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error getting booking", e, reference=reference) from e

    return success_response(BookingSchema.model_validate(booking), request=request)


@router.get("/{booking_id}", response_model=BookingSchema, responses=error_responses(401, 403, 404))
async def get_booking(
    booking_id: UUID,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        service = BookingService(db)
        booking = await service.get_booking_by_id_or_raise(booking_id)
        await service.ensure_can_view(booking, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error getting booking", e, booking_id=booking_id) from e

    return success_response(BookingSchema.model_validate(booking), request=request)


@router.patch(
    "/{booking_id}",
    response_model=BookingSchema,
    responses=error_responses(400, 401, 403, 404, 423),
)
async def update_booking(
    booking_id: UUID,
    body: UpdateBookingRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    """Edit guest details and notes. Refused while a refund is open."""
    try:
        booking = await BookingService(db).update_booking(booking_id, body, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error updating booking", e, booking_id=booking_id) from e

    return success_response(BookingSchema.model_validate(booking), request=request)


@router.put(
    "/{booking_id}/dates",
    response_model=BookingSchema,
    responses=error_responses(400, 401, 403, 404, 409, 423),
)
async def update_booking_dates(
    booking_id: UUID,
    body: UpdateBookingDatesRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    """
    Move a booking to new dates and reprice it.

    Refused once the booking has been paid (partially or in full) and while a
    refund is open; the guest should cancel and rebook instead.
    """
    try:
        booking = await BookingService(db).update_dates(booking_id, body, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error changing booking dates", e, booking_id=booking_id) from e

    return success_response(BookingSchema.model_validate(booking), request=request)


@router.patch(
    "/{booking_id}/status",
    response_model=BookingSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def update_booking_status(
    booking_id: UUID,
    body: UpdateBookingStatusRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        booking = await BookingService(db).update_status(booking_id, body.status.value, user, body.reason)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error(
            "Unexpected error changing booking status", e, booking_id=booking_id, status=body.status.value
        ) from e

    return success_response(BookingSchema.model_validate(booking), request=request)


@router.post(
    "/{booking_id}/check-in",
    response_model=BookingSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def check_in(
    booking_id: UUID,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        booking = await BookingService(db).check_in(booking_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error checking in", e, booking_id=booking_id) from e

    return success_response(BookingSchema.model_validate(booking), request=request)


@router.post(
    "/{booking_id}/check-out",
    response_model=BookingSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def check_out(
    booking_id: UUID,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        booking = await BookingService(db).check_out(booking_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error checking out", e, booking_id=booking_id) from e

    return success_response(BookingSchema.model_validate(booking), request=request)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def cancel_booking(
    booking_id: UUID,
    body: CancelBookingRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    """Cancel a booking. The guest or the property owner may cancel."""
    try:
        booking = await BookingService(db).cancel_booking(booking_id, user, body.reason)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error cancelling booking", e, booking_id=booking_id) from e

    return success_response(BookingSchema.model_validate(booking), request=request)


@router.post(
    "/{booking_id}/payments",
    status_code=201,
    response_model=PaymentSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def record_payment(
    booking_id: UUID,
    body: RecordPaymentRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
    idempotency_key: Optional[str] = IdempotencyKey,
):
    """Record a payment against a booking. Owner only."""
    service = BookingService(db)

    async def operation() -> PaymentSchema:
        payment = await service.record_payment(booking_id, body, user)
        return PaymentSchema.model_validate(payment)

    try:
        return await _handle_idempotent_operation(
            db,
            request,
            idempotency_key,
            f"payments.create:{booking_id}:{user['user_id']}",
            body.model_dump(mode="json"),
            operation,
            status_code=201,
        )
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error(
            "Unexpected error recording payment", e, booking_id=booking_id, idempotency_key=idempotency_key
        ) from e


@router.get(
    "/{booking_id}/payments",
    response_model=list[PaymentSchema],
    responses=error_responses(401, 403, 404),
)
async def list_payments(
    booking_id: UUID,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        payments = await BookingService(db).list_payments(booking_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error listing payments", e, booking_id=booking_id) from e

    return success_response([PaymentSchema.model_validate(p) for p in payments], request=request)


@router.post(
    "/{booking_id}/payments/{payment_id}/verify",
    response_model=PaymentSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def verify_payment(
    booking_id: UUID,
    payment_id: UUID,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    """Confirm a pending (EFT) payment once the money has arrived."""
    try:
        payment = await BookingService(db).verify_payment(booking_id, payment_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error(
            "Unexpected error verifying payment", e, booking_id=booking_id, payment_id=payment_id
        ) from e

    return success_response(PaymentSchema.model_validate(payment), request=request)


@router.get("/{booking_id}/invoice", responses=error_responses(401, 403, 404))
async def get_invoice(
    booking_id: UUID,
    format: Literal["html", "pdf"] = Query("html"),
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    """Download the booking invoice as HTML or as a PDF."""
    service = InvoiceService(db)
    try:
        if format == "pdf":
            booking, pdf = await service.invoice_pdf(booking_id, user)
            return Response(
                content=pdf,
                media_type="application/pdf",
                headers={
                    "Content-Disposition": f'attachment; filename="invoice-{booking.booking_reference}.pdf"'
                },
            )
        booking, document = await service.invoice_html(booking_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error rendering invoice", e, booking_id=booking_id, format=format) from e

    return HTMLResponse(content=document)
