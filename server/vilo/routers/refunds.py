"""Refund request router: eligibility, review workflow and processing."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, RequiredAuth
from ..core.exceptions import AppError, unexpected_error
from ..core.responses import pagination_meta, success_response
from ..models.refund import RefundStatus
from ..schemas.common import error_responses
from ..schemas.refund import (
    ApproveRefundRequest,
    CreateRefundRequest,
    ManualCompleteRequest,
    RefundEligibilitySchema,
    RefundHistorySchema,
    RefundSchema,
    RefundSummarySchema,
    RejectRefundRequest,
    StartReviewRequest,
    WithdrawRefundRequest,
)
from ..services.payment_gateway import PaymentGatewayClient
from ..services.refund_service import RefundService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["refunds"])


def get_payment_gateway() -> PaymentGatewayClient:
    """Gateway client used to send refunds; overridden in tests."""
    return PaymentGatewayClient()


PaymentGateway = Depends(get_payment_gateway)


@router.get(
    "/bookings/{booking_id}/refunds/eligibility",
    response_model=RefundEligibilitySchema,
    responses=error_responses(401, 403, 404),
)
async def get_refund_eligibility(
    booking_id: UUID,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    """How much of a booking can be refunded, and the policy-suggested amount."""
    try:
        eligibility = await RefundService(db).get_eligibility(booking_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error checking refund eligibility", e, booking_id=booking_id) from e

    return success_response(RefundEligibilitySchema(**eligibility), request=request)


@router.post(
    "/bookings/{booking_id}/refunds",
    status_code=201,
    response_model=RefundSchema,
    responses=error_responses(400, 401, 403, 404, 409),
)
async def create_refund(
    booking_id: UUID,
    body: CreateRefundRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    """Ask for a refund. Only one refund may be open per booking."""
    try:
        refund = await RefundService(db).create_refund(booking_id, body, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error creating refund", e, booking_id=booking_id) from e

    return success_response(RefundSchema.model_validate(refund), status_code=201, request=request)


@router.get(
    "/bookings/{booking_id}/refunds/summary",
    response_model=RefundSummarySchema,
    responses=error_responses(401, 403, 404),
)
async def get_refund_summary(
    booking_id: UUID,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        summary = await RefundService(db).get_summary(booking_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error getting refund summary", e, booking_id=booking_id) from e

    return success_response(RefundSummarySchema.model_validate(summary, from_attributes=True), request=request)


@router.get("/refunds", response_model=list[RefundSchema], responses=error_responses(401))
async def list_refunds(
    request: Request,
    status: Optional[RefundStatus] = None,
    property_id: Optional[UUID] = None,
    booking_id: Optional[UUID] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        items, total = await RefundService(db).list_refunds(
            user,
            status=status.value if status else None,
            property_id=property_id,
            booking_id=booking_id,
            page=page,
            limit=limit,
        )
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error listing refunds", e) from e

    return success_response(
        [RefundSchema.model_validate(r) for r in items],
        meta=pagination_meta(page, limit, total),
        request=request,
    )


@router.get("/refunds/{refund_id}", response_model=RefundSchema, responses=error_responses(401, 403, 404))
async def get_refund(
    refund_id: UUID,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        refund = await RefundService(db).get_refund(refund_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error getting refund", e, refund_id=refund_id) from e

    return success_response(RefundSchema.model_validate(refund), request=request)


@router.get(
    "/refunds/{refund_id}/history",
    response_model=list[RefundHistorySchema],
    responses=error_responses(401, 403, 404),
)
async def get_refund_history(
    refund_id: UUID,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        history = await RefundService(db).get_history(refund_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error getting refund history", e, refund_id=refund_id) from e

    return success_response([RefundHistorySchema.model_validate(h) for h in history], request=request)


@router.post(
    "/refunds/{refund_id}/review",
    response_model=RefundSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def start_review(
    refund_id: UUID,
    body: StartReviewRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        refund = await RefundService(db).start_review(refund_id, user, body.notes)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error starting refund review", e, refund_id=refund_id) from e

    return success_response(RefundSchema.model_validate(refund), request=request)


@router.post(
    "/refunds/{refund_id}/approve",
    response_model=RefundSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def approve_refund(
    refund_id: UUID,
    body: ApproveRefundRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        refund = await RefundService(db).approve_refund(refund_id, body, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error approving refund", e, refund_id=refund_id) from e

    return success_response(RefundSchema.model_validate(refund), request=request)


@router.post(
    "/refunds/{refund_id}/reject",
    response_model=RefundSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def reject_refund(
    refund_id: UUID,
    body: RejectRefundRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        refund = await RefundService(db).reject_refund(refund_id, body, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error rejecting refund", e, refund_id=refund_id) from e

    return success_response(RefundSchema.model_validate(refund), request=request)


@router.post(
    "/refunds/{refund_id}/withdraw",
    response_model=RefundSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def withdraw_refund(
    refund_id: UUID,
    body: WithdrawRefundRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        refund = await RefundService(db).withdraw_refund(refund_id, user, body.reason)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error withdrawing refund", e, refund_id=refund_id) from e

    return success_response(RefundSchema.model_validate(refund), request=request)


@router.post(
    "/refunds/{refund_id}/process",
    response_model=RefundSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def process_refund(
    refund_id: UUID,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
    gateway: PaymentGatewayClient = PaymentGateway,
):
    """
    Split an approved refund across the booking's payments and send it.

    Gateway shares go to Paystack or PayPal; shares paid by EFT, cash or card
    on site wait for `manual-complete`.
    """
    try:
        refund = await RefundService(db, gateway=gateway).process_refund(refund_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error processing refund", e, refund_id=refund_id) from e

    return success_response(RefundSchema.model_validate(refund), request=request)


@router.post(
    "/refunds/{refund_id}/manual-complete",
    response_model=RefundSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def manual_complete_refund(
    refund_id: UUID,
    body: ManualCompleteRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        refund = await RefundService(db).mark_manual_complete(refund_id, body, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error completing refund", e, refund_id=refund_id) from e

    return success_response(RefundSchema.model_validate(refund), request=request)


@router.post(
    "/refunds/{refund_id}/retry",
    response_model=RefundSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def retry_refund(
    refund_id: UUID,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
    gateway: PaymentGatewayClient = PaymentGateway,
):
    try:
        refund = await RefundService(db, gateway=gateway).retry_refund(refund_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error retrying refund", e, refund_id=refund_id) from e

    return success_response(RefundSchema.model_validate(refund), request=request)
