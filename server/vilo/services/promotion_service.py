"""Coupon code validation and discount calculation."""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..models.booking import Booking, BookingStatus
from ..models.promotion import DiscountType, Promotion, normalize_code

logger = logging.getLogger(__name__)


@dataclass
class CouponValidation:
    """Result of validating a coupon against a prospective booking."""

    valid: bool
    error: Optional[str] = None
    promotion: Optional[Promotion] = None
    discount_amount: int = 0


def calculate_discount(discount_type: str, discount_value: int, amount: int, nights: int) -> int:
    """
    Discount a promotion gives on `amount`, never more than `amount`.

    percentage: round(amount * value / 100)
    fixed_amount: min(value, amount)
    free_nights: round(amount * min(value, nights) / nights)
    """
    if amount <= 0:
        return 0

    if discount_type == DiscountType.PERCENTAGE.value:
        discount = round(amount * discount_value / 100)
    elif discount_type == DiscountType.FIXED_AMOUNT.value:
        discount = discount_value
    elif discount_type == DiscountType.FREE_NIGHTS.value:
        nights = max(nights, 1)
        discount = round(amount * min(discount_value, nights) / nights)
    else:
        return 0

    return max(0, min(int(discount), amount))


class PromotionService:
    """Service for promotion (coupon) operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_promotion_by_code(self, property_id: UUID, code: str) -> Optional[Promotion]:
        result = await self.db.execute(
            select(Promotion).where(
                Promotion.property_id == property_id,
                Promotion.code == normalize_code(code),
            )
        )
        return result.scalar_one_or_none()

    async def count_customer_uses(self, promotion_id: UUID, guest_email: str) -> int:
        """Bookings by this guest that used the promotion and were not cancelled."""
        result = await self.db.execute(
            select(func.count(Booking.id)).where(
                Booking.promotion_id == promotion_id,
                func.lower(Booking.guest_email) == guest_email.strip().lower(),
                Booking.booking_status != BookingStatus.CANCELLED.value,
            )
        )
        return result.scalar_one()

    async def validate_coupon(
        self,
        code: str,
        property_id: UUID,
        room_ids: Sequence[UUID] = (),
        booking_amount: int = 0,
        nights: int = 1,
        guest_email: Optional[str] = None,
    ) -> CouponValidation:
        """
        Check a coupon code against a prospective booking.

        Invalid codes are reported in the result rather than raised, so the
        public endpoint can show the reason next to the input.
        """
        normalized = normalize_code(code)
        if not normalized:
            return CouponValidation(valid=False, error="Invalid coupon code")

        promotion = await self.get_promotion_by_code(property_id, normalized)
        if promotion is None:
            return CouponValidation(valid=False, error="Invalid coupon code")

        error = await self._check_rules(promotion, room_ids, booking_amount, nights, guest_email)
        if error:
            logger.info(
                "Coupon rejected",
                extra={"code": normalized, "property_id": str(property_id), "reason": error},
            )
            return CouponValidation(valid=False, error=error, promotion=promotion)

        discount = calculate_discount(
            promotion.discount_type, promotion.discount_value, booking_amount, nights
        )
        return CouponValidation(valid=True, promotion=promotion, discount_amount=discount)

    async def _check_rules(
        self,
        promotion: Promotion,
        room_ids: Sequence[UUID],
        booking_amount: int,
        nights: int,
        guest_email: Optional[str],
    ) -> Optional[str]:
        now = utcnow()
        if not promotion.is_active:
            return "This coupon is no longer active"
        if promotion.valid_from and now < promotion.valid_from:
            return "This coupon is not valid yet"
        if promotion.valid_until and now > promotion.valid_until:
            return "This coupon has expired"
        if promotion.room_id is not None and promotion.room_id not in set(room_ids):
            return "This coupon does not apply to the selected room"
        if promotion.max_uses is not None and promotion.current_uses >= promotion.max_uses:
            return "This coupon has reached its usage limit"
        if guest_email and promotion.max_uses_per_customer:
            used = await self.count_customer_uses(promotion.id, guest_email)
            if used >= promotion.max_uses_per_customer:
                return "You have already used this coupon"
        if promotion.min_booking_amount is not None and booking_amount < promotion.min_booking_amount:
            return "Booking amount is below the minimum for this coupon"
        if promotion.min_nights is not None and nights < promotion.min_nights:
            return f"This coupon requires a stay of at least {promotion.min_nights} nights"
        return None

    async def increment_usage(self, promotion_id: UUID) -> None:
        await self.db.execute(
            update(Promotion)
            .where(Promotion.id == promotion_id)
            .values(current_uses=Promotion.current_uses + 1)
            .execution_options(synchronize_session=False)
        )
        logger.info("Promotion usage incremented", extra={"promotion_id": str(promotion_id)})
