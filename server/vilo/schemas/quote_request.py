"""Quote request Pydantic schemas."""

from datetime import date, datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from ..models.quote_request import DateFlexibility, GroupType, QuoteStatus
from .common import EMAIL_PATTERN


class CreateQuoteRequest(BaseModel):
    """
    Request schema for submitting a quote request.

    Exact dates need a preferred check-in and check-out; flexible dates need a
    window to choose from.
    """

    property_id: UUID
    guest_name: str = Field(..., min_length=1, max_length=255)
    guest_email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    guest_phone: Optional[str] = Field(None, max_length=50)

    date_flexibility: DateFlexibility = DateFlexibility.EXACT
    preferred_check_in: Optional[date] = None
    preferred_check_out: Optional[date] = None
    flexible_date_start: Optional[date] = None
    flexible_date_end: Optional[date] = None
    nights_count: Optional[int] = Field(None, ge=1, le=365)

    adults_count: int = Field(1, ge=1, le=500)
    children_count: int = Field(0, ge=0, le=500)
    group_type: GroupType = GroupType.OTHER

    budget_min: Optional[int] = Field(None, ge=0, description="Minor units")
    budget_max: Optional[int] = Field(None, ge=0, description="Minor units")

    special_requirements: Optional[str] = Field(None, max_length=5000)
    dietary_restrictions: Optional[str] = Field(None, max_length=2000)
    accessibility_needs: Optional[str] = Field(None, max_length=2000)
    event_type: Optional[str] = Field(None, max_length=100)
    event_description: Optional[str] = Field(None, max_length=5000)
    source: str = Field("website", max_length=30)

    @model_validator(mode="after")
    def check_dates_and_budget(self):
        if self.date_flexibility == DateFlexibility.EXACT:
            if not self.preferred_check_in or not self.preferred_check_out:
                raise ValueError("Exact dates require preferred_check_in and preferred_check_out")
            if self.preferred_check_out <= self.preferred_check_in:
                raise ValueError("preferred_check_out must be after preferred_check_in")
        elif self.date_flexibility == DateFlexibility.FLEXIBLE:
            if not self.flexible_date_start or not self.flexible_date_end:
                raise ValueError("Flexible dates require flexible_date_start and flexible_date_end")
        if self.flexible_date_start and self.flexible_date_end:
            if self.flexible_date_end < self.flexible_date_start:
                raise ValueError("flexible_date_end must not be before flexible_date_start")
        if self.budget_min is not None and self.budget_max is not None:
            if self.budget_min > self.budget_max:
                raise ValueError("budget_min must not exceed budget_max")
        return self


class RespondToQuoteRequest(BaseModel):
    """Owner response to a quote request."""

    owner_response: str = Field(..., min_length=1, max_length=10000)


class UpdateQuoteStatusRequest(BaseModel):
    status: QuoteStatus


class ConvertQuoteRequest(BaseModel):
    """Link a quote request to the booking it turned into."""

    booking_id: UUID


class QuoteRequestSchema(BaseModel):
    """Quote request response schema."""

    id: UUID
    property_id: UUID
    company_id: UUID
    customer_id: UUID
    user_id: Optional[UUID] = None
    booking_id: Optional[UUID] = None
    guest_name: str
    guest_email: str
    guest_phone: Optional[str] = None
    date_flexibility: str
    preferred_check_in: Optional[date] = None
    preferred_check_out: Optional[date] = None
    flexible_date_start: Optional[date] = None
    flexible_date_end: Optional[date] = None
    nights_count: Optional[int] = None
    adults_count: int
    children_count: int
    group_size: int
    group_type: str
    budget_min: Optional[int] = None
    budget_max: Optional[int] = None
    currency: str
    special_requirements: Optional[str] = None
    dietary_restrictions: Optional[str] = None
    accessibility_needs: Optional[str] = None
    event_type: Optional[str] = None
    event_description: Optional[str] = None
    status: str
    priority: int
    owner_response: Optional[str] = None
    responded_at: Optional[datetime] = None
    responded_by: Optional[UUID] = None
    converted_at: Optional[datetime] = None
    expires_at: datetime
    source: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class QuoteStatsSchema(BaseModel):
    """Aggregate figures over an owner's quote requests."""

    total: int
    by_status: Dict[str, int]
    by_group_type: Dict[str, int]
    average_group_size: float
    average_budget: float = 0.0
    conversion_rate: float
    average_response_time_hours: float = 0.0
