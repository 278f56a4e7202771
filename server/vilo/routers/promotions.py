"""Coupon validation router."""

import logging

from fastapi import APIRouter, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession
from ..core.exceptions import AppError, unexpected_error
from ..core.responses import success_response
from ..schemas.common import error_responses
from ..schemas.pricing import CouponValidationResponse, PromotionSummary, ValidateCouponRequest
from ..services.promotion_service import PromotionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/promotions", tags=["promotions"])


@router.post("/validate", response_model=CouponValidationResponse, responses=error_responses(400))
async def validate_coupon(
    body: ValidateCouponRequest,
    request: Request,
    db: AsyncSession = DatabaseSession,
):
    """
    Check a coupon code against a prospective booking.

    An unusable code is still a 200 response with `valid: false` and the reason.
    """
    try:
        result = await PromotionService(db).validate_coupon(
            body.code,
            body.property_id,
            room_ids=body.room_ids,
            booking_amount=body.booking_amount,
            nights=body.nights,
            guest_email=body.guest_email,
        )
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error validating coupon", e, code=body.code) from e

    data = CouponValidationResponse(
        valid=result.valid,
        error=result.error,
        promotion=PromotionSummary.model_validate(result.promotion) if result.valid else None,
        discount_amount=result.discount_amount,
    )
    return success_response(data, request=request)
