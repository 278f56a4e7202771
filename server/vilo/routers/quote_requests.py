"""Group quote request router."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, OptionalAuth, QuoteRateLimit, RequiredAuth
from ..core.exceptions import AppError, unexpected_error
from ..core.responses import pagination_meta, success_response
from ..models.quote_request import GroupType, QuoteStatus
from ..schemas.common import error_responses
from ..schemas.quote_request import (
    ConvertQuoteRequest,
    CreateQuoteRequest,
    QuoteRequestSchema,
    QuoteStatsSchema,
    RespondToQuoteRequest,
    UpdateQuoteStatusRequest,
)
from ..services.quote_request_service import QuoteRequestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quote-requests", tags=["quote-requests"])


@router.post(
    "",
    status_code=201,
    response_model=QuoteRequestSchema,
    responses=error_responses(400, 404, 409, 429),
    dependencies=[QuoteRateLimit],
)
async def create_quote_request(
    body: CreateQuoteRequest,
    request: Request,
    user: Optional[dict] = OptionalAuth,
    db: AsyncSession = DatabaseSession,
):
    """
    Ask a property for a group quote.

    Open to anonymous guests and rate limited per client address. Larger
    groups, higher budgets and events are prioritised for the owner.
    """
    try:
        quote = await QuoteRequestService(db).create_quote_request(body, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error(
            "Unexpected error creating quote request", e, property_id=body.property_id
        ) from e

    return success_response(QuoteRequestSchema.model_validate(quote), status_code=201, request=request)


@router.get("", response_model=list[QuoteRequestSchema], responses=error_responses(401))
async def list_quote_requests(
    request: Request,
    property_id: Optional[UUID] = None,
    status: Optional[QuoteStatus] = None,
    group_type: Optional[GroupType] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    """Quote requests for the caller's properties, highest priority first."""
    try:
        items, total = await QuoteRequestService(db).list_quote_requests(
            user,
            property_id=property_id,
            status=status.value if status else None,
            group_type=group_type.value if group_type else None,
            search=search,
            page=page,
            limit=limit,
        )
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error listing quote requests", e) from e

    return success_response(
        [QuoteRequestSchema.model_validate(q) for q in items],
        meta=pagination_meta(page, limit, total),
        request=request,
    )


@router.get("/mine", response_model=list[QuoteRequestSchema], responses=error_responses(401))
async def list_my_quote_requests(
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        items = await QuoteRequestService(db).list_my_quote_requests(user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error listing own quote requests", e) from e

    return success_response([QuoteRequestSchema.model_validate(q) for q in items], request=request)


@router.get("/stats", response_model=QuoteStatsSchema, responses=error_responses(401))
async def get_quote_stats(
    request: Request,
    property_id: Optional[UUID] = None,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        stats = await QuoteRequestService(db).get_stats(user, property_id)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error computing quote stats", e) from e

    return success_response(QuoteStatsSchema(**stats), request=request)


@router.get("/{quote_id}", response_model=QuoteRequestSchema, responses=error_responses(401, 403, 404))
async def get_quote_request(
    quote_id: UUID,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        quote = await QuoteRequestService(db).get_owned_quote(quote_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error getting quote request", e, quote_id=quote_id) from e

    return success_response(QuoteRequestSchema.model_validate(quote), request=request)


@router.post(
    "/{quote_id}/respond",
    response_model=QuoteRequestSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def respond_to_quote_request(
    quote_id: UUID,
    body: RespondToQuoteRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        quote = await QuoteRequestService(db).respond(quote_id, body.owner_response, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error responding to quote request", e, quote_id=quote_id) from e

    return success_response(QuoteRequestSchema.model_validate(quote), request=request)


@router.patch(
    "/{quote_id}/status",
    response_model=QuoteRequestSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def update_quote_status(
    quote_id: UUID,
    body: UpdateQuoteStatusRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    try:
        quote = await QuoteRequestService(db).update_status(quote_id, body.status.value, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error(
            "Unexpected error updating quote status", e, quote_id=quote_id, status=body.status.value
        ) from e

    return success_response(QuoteRequestSchema.model_validate(quote), request=request)


@router.post(
    "/{quote_id}/convert",
    response_model=QuoteRequestSchema,
    responses=error_responses(400, 401, 403, 404),
)
async def convert_quote_request(
    quote_id: UUID,
    body: ConvertQuoteRequest,
    request: Request,
    user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
):
    """Link an existing booking to the quote and mark it converted."""
    try:
        quote = await QuoteRequestService(db).convert_to_booking(quote_id, body.booking_id, user)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error("Unexpected error converting quote request", e, quote_id=quote_id) from e

    return success_response(QuoteRequestSchema.model_validate(quote), request=request)
