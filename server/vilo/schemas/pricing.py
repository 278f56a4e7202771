"""Pricing, availability and coupon validation schemas."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from .common import EMAIL_PATTERN


class PriceQuoteRequest(BaseModel):
    """Request schema for pricing a room for a stay."""

    check_in: date = Field(..., description="Arrival date")
    check_out: date = Field(..., description="Departure date")
    adults: int = Field(1, ge=1, le=50)
    children: int = Field(0, ge=0, le=50)
    children_ages: List[int] = Field(default_factory=list, description="Ages of the children, when known")

    @model_validator(mode="after")
    def check_dates(self):
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        if len(self.children_ages) > self.children:
            raise ValueError("children_ages has more entries than children")
        if any(age < 0 or age > 17 for age in self.children_ages):
            raise ValueError("children_ages must be between 0 and 17")
        return self


class NightlyRateSchema(BaseModel):
    """The rate applied to one night."""

    date: date
    rate: int
    additional_person_rate: int
    rate_name: str
    is_seasonal: bool


class PriceQuoteResponse(BaseModel):
    """Response schema for a room price quote."""

    room_id: UUID
    pricing_mode: str
    nights: int
    currency: str
    nightly_rates: List[NightlyRateSchema]
    base_amount: int
    extra_adults_amount: int
    children_amount: int
    paying_children: int
    free_children: int
    total: int
    notes: List[str] = Field(default_factory=list)


class AvailabilityResponse(BaseModel):
    """Response schema for a room availability check."""

    room_id: UUID
    check_in: date
    check_out: date
    available: bool
    total_units: int
    booked_units: int
    reason: Optional[str] = None


class ValidateCouponRequest(BaseModel):
    """Request schema for validating a coupon code."""

    code: str = Field(..., min_length=1, max_length=50)
    property_id: UUID
    room_ids: List[UUID] = Field(default_factory=list)
    booking_amount: int = Field(..., ge=0, description="Amount the discount applies to, minor units")
    nights: int = Field(1, ge=1)
    guest_email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)


class PromotionSummary(BaseModel):
    """Public view of a promotion."""

    id: UUID
    code: str
    name: str
    description: Optional[str] = None
    discount_type: str
    discount_value: int

    model_config = {"from_attributes": True}


class CouponValidationResponse(BaseModel):
    """Outcome of a coupon validation."""

    valid: bool
    error: Optional[str] = None
    promotion: Optional[PromotionSummary] = None
    discount_amount: int = 0
