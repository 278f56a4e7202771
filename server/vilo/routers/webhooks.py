"""Inbound gateway notifications."""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.dependencies import DatabaseSession
from ..core.exceptions import AppError, UnauthorizedError, unexpected_error
from ..core.responses import success_response
from ..schemas.common import error_responses
from ..schemas.refund import GatewayRefundEvent, RefundSchema
from ..services.refund_service import RefundService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/refunds", response_model=RefundSchema, responses=error_responses(400, 401, 404))
async def refund_webhook(
    event: GatewayRefundEvent,
    request: Request,
    db: AsyncSession = DatabaseSession,
    webhook_secret: Optional[str] = Header(None, alias="X-Webhook-Secret"),
):
    """Apply a gateway's final word on a refund it was sent."""
    if not webhook_secret or not hmac.compare_digest(webhook_secret, settings.refund_webhook_secret):
        logger.warning("Refund webhook rejected", extra={"gateway_refund_id": event.gateway_refund_id})
        raise UnauthorizedError("Invalid webhook secret")

    try:
        refund = await RefundService(db).handle_gateway_event(event)
    except AppError:
        raise
    except Exception as e:
        raise unexpected_error(
            "Unexpected error applying refund webhook", e, gateway_refund_id=event.gateway_refund_id
        ) from e

    return success_response(RefundSchema.model_validate(refund), request=request)
