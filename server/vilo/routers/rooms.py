"""Public room pricing and availability router."""

import logging
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession
from ..core.exceptions import AppError, unexpected_error
from ..core.responses import success_response
from ..schemas.common import error_responses
from ..schemas.pricing import (
    AvailabilityResponse,
    NightlyRateSchema,
    PriceQuoteRequest,
    PriceQuoteResponse,
)
from ..services.room_service import RoomService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rooms", tags=["pricing"])


@router.post(
    "/{room_id}/price",
    response_model=PriceQuoteResponse,
    responses=error_responses(400, 404),
)
async def price_room(
    room_id: UUID,
    body: PriceQuoteRequest,
    request: Request,
    db: AsyncSession = DatabaseSession,
):
    """Price a stay with seasonal rates, guests and children applied."""
    try:
        breakdown = await RoomService(db).quote_price(
            room_id,
            body.check_in,
            body.check_out,
            body.adults,
            body.children,
            body.children_ages,
        )
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error pricing room", e, room_id=room_id) from e

    data = PriceQuoteResponse(
        room_id=room_id,
        pricing_mode=breakdown.pricing_mode,
        nights=breakdown.nights,
        currency=breakdown.currency,
        nightly_rates=[NightlyRateSchema(**night.as_dict()) for night in breakdown.nightly_rates],
        base_amount=breakdown.base_amount,
        extra_adults_amount=breakdown.extra_adults_amount,
        children_amount=breakdown.children_amount,
        paying_children=breakdown.paying_children,
        free_children=breakdown.free_children,
        total=breakdown.total,
        notes=breakdown.notes,
    )
    return success_response(data, request=request)


@router.get(
    "/{room_id}/availability",
    response_model=AvailabilityResponse,
    responses=error_responses(400, 404),
)
async def room_availability(
    room_id: UUID,
    request: Request,
    check_in: date = Query(...),
    check_out: date = Query(...),
    db: AsyncSession = DatabaseSession,
):
    """Whether a unit of the room is free for the stay."""
    try:
        service = RoomService(db)
        room = await service.get_room_by_id_or_raise(room_id)
        availability = await service.check_availability(room, check_in, check_out)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error checking availability", e, room_id=room_id) from e

    return success_response(AvailabilityResponse(**availability.__dict__), request=request)
