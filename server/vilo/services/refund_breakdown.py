"""Pure refund rules: policy-based suggestions and allocation across payments."""

from datetime import date, datetime
from typing import Iterable, Optional

from ..core.exceptions import NotFoundError, ValidationError
from ..models.booking import GATEWAY_METHODS, SETTLED_PAYMENT_STATUSES
from ..models.company import CancellationPolicy
from ..models.refund import RefundItemStatus

# (minimum whole days before check-in, percent refunded), checked in order
POLICY_TIERS: dict[str, list[tuple[int, int]]] = {
    CancellationPolicy.FLEXIBLE.value: [(1, 100)],
    CancellationPolicy.MODERATE.value: [(5, 100), (1, 50)],
    CancellationPolicy.STRICT.value: [(14, 100), (7, 50)],
    CancellationPolicy.NON_REFUNDABLE.value: [],
}


def days_until(check_in: date, today: date) -> int:
    return (check_in - today).days


def refund_percentage(policy: str, days_until_check_in: int) -> int:
    """Percent of the refundable amount the policy returns at this notice."""
    for min_days, percent in POLICY_TIERS.get(policy, []):
        if days_until_check_in >= min_days:
            return percent
    return 0


def suggested_refund_amount(policy: str, days_until_check_in: int, available: int) -> int:
    if available <= 0:
        return 0
    return available * refund_percentage(policy, days_until_check_in) // 100


def _paid_order(payment) -> datetime:
    return payment.paid_at or payment.created_at


def calculate_refund_breakdown(payments: Iterable, refund_amount: int) -> list[dict]:
    """
    Split `refund_amount` across the settled payments of a booking.

    Payments are taken in the order they were paid. Every payment but the last
    gets floor(amount * refund / total_paid); the last gets what remains, so
    the shares add up to the refund exactly. Zero shares are left out.

    Items for gateway payments start `pending`; the rest are refunded by hand
    and start `manual_pending`.

    Raises:
        NotFoundError: If the booking has no settled payments
        ValidationError: If the refund is not positive or exceeds what was paid
    """
    settled = sorted(
        (p for p in payments if p.status in SETTLED_PAYMENT_STATUSES),
        key=_paid_order,
    )
    if not settled:
        raise NotFoundError(
            resource_type="payment",
            message="No completed payments found for this booking",
        )

    total_paid = sum(p.amount for p in settled)
    if refund_amount <= 0:
        raise ValidationError("Refund amount must be greater than zero")
    if refund_amount > total_paid:
        raise ValidationError(
            "Refund amount exceeds the amount paid",
            details={"refund_amount": refund_amount, "total_paid": total_paid},
        )

    breakdown = []
    remaining = refund_amount
    for index, payment in enumerate(settled):
        if index == len(settled) - 1:
            share = remaining
        else:
            share = payment.amount * refund_amount // total_paid
        remaining -= share
        if share <= 0:
            continue
        breakdown.append(new_item(payment, share))
    return breakdown


def new_item(payment, amount: int) -> dict:
    method = payment.payment_method
    status = (
        RefundItemStatus.PENDING.value
        if method in GATEWAY_METHODS
        else RefundItemStatus.MANUAL_PENDING.value
    )
    return {
        "payment_id": str(payment.id),
        "method": method,
        "amount": amount,
        "status": status,
        "gateway_refund_id": None,
        "refund_reference": None,
        "processed_at": None,
        "error_message": None,
    }


def final_refund_status(items: list[dict]) -> Optional[str]:
    """
    Refund status implied by its items.

    completed when every item completed; failed when some item failed and
    none still awaits a manual refund or a gateway confirmation; otherwise
    None (still processing).
    """
    statuses = [item["status"] for item in items]
    if statuses and all(s == RefundItemStatus.COMPLETED.value for s in statuses):
        return "completed"
    awaiting = {RefundItemStatus.MANUAL_PENDING.value, RefundItemStatus.PROCESSING.value}
    if RefundItemStatus.FAILED.value in statuses and awaiting.isdisjoint(statuses):
        return "failed"
    return None
