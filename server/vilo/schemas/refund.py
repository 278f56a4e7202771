"""Refund-related Pydantic schemas."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CreateRefundRequest(BaseModel):
    """Request schema for asking for a refund."""

    requested_amount: int = Field(..., gt=0, description="Amount in minor units")
    reason: str = Field(..., min_length=1, max_length=2000)


class StartReviewRequest(BaseModel):
    """Request schema for moving a refund into review."""

    notes: Optional[str] = Field(None, max_length=2000)


class ApproveRefundRequest(BaseModel):
    """Request schema for approving a refund."""

    approved_amount: Optional[int] = Field(None, gt=0, description="Defaults to the requested amount")
    review_notes: Optional[str] = Field(None, max_length=2000)
    customer_notes: Optional[str] = Field(None, max_length=2000)


class RejectRefundRequest(BaseModel):
    """Request schema for rejecting a refund."""

    customer_notes: str = Field(..., min_length=1, max_length=2000)
    review_notes: Optional[str] = Field(None, max_length=2000)


class WithdrawRefundRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class ManualCompleteRequest(BaseModel):
    """Request schema for confirming refunds paid outside a gateway."""

    refund_reference: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = Field(None, max_length=2000)


class GatewayRefundEvent(BaseModel):
    """Gateway confirmation posted to the refund webhook."""

    gateway_refund_id: str = Field(..., min_length=1, max_length=255)
    status: str = Field(..., pattern=r"^(completed|failed)$")
    message: Optional[str] = Field(None, max_length=1000)


class RefundItemSchema(BaseModel):
    """One payment's share of a refund."""

    payment_id: UUID
    method: str
    amount: int
    status: str
    gateway_refund_id: Optional[str] = None
    refund_reference: Optional[str] = None
    processed_at: Optional[datetime] = None
    error_message: Optional[str] = None


class RefundSchema(BaseModel):
    """Refund request response schema."""

    id: UUID
    booking_id: UUID
    requested_amount: int
    approved_amount: Optional[int] = None
    refunded_amount: int
    suggested_amount: int
    currency: str
    status: str
    reason: str
    cancellation_policy: str
    refund_breakdown: Optional[List[RefundItemSchema]] = None
    requested_by: UUID
    requested_at: datetime
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    customer_notes: Optional[str] = None
    processed_by: Optional[UUID] = None
    processed_at: Optional[datetime] = None
    auto_process_failed: bool
    failure_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RefundHistorySchema(BaseModel):
    """A recorded refund status change."""

    id: UUID
    refund_request_id: UUID
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[UUID] = None
    change_reason: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RefundEligibilitySchema(BaseModel):
    """Whether a booking can be refunded, and how much."""

    booking_id: UUID
    eligible: bool
    reason: Optional[str] = None
    payment_status: str
    amount_paid: int
    total_refunded: int
    available_for_refund: int
    suggested_amount: int
    cancellation_policy: str
    days_until_check_in: int
    currency: str
    active_refund_id: Optional[UUID] = None


class RefundSummarySchema(BaseModel):
    """Refund totals for one booking."""

    booking_id: UUID
    currency: str
    total_paid: int
    total_refunded: int
    available_for_refund: int
    refund_status: str
    active_refunds: List[RefundSchema] = Field(default_factory=list)
    completed_refunds: List[RefundSchema] = Field(default_factory=list)
