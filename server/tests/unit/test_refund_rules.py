"""Unit tests for refund policy and allocation rules."""

from datetime import datetime
from types import SimpleNamespace
from uuid import uuid4

import pytest

from vilo.core.exceptions import NotFoundError, ValidationError
from vilo.services.quote_request_service import calculate_priority
from vilo.services.refund_breakdown import (
    calculate_refund_breakdown,
    final_refund_status,
    refund_percentage,
    suggested_refund_amount,
)


def payment(amount, method="eft", status="completed", paid_at=None):
    return SimpleNamespace(
        id=uuid4(),
        amount=amount,
        payment_method=method,
        status=status,
        paid_at=paid_at,
        created_at=paid_at or datetime(2026, 1, 1),
    )


class TestRefundBreakdown:
    def test_proportional_split_with_remainder_on_last(self):
        first = payment(60000, "eft", paid_at=datetime(2026, 1, 1))
        second = payment(40000, "paystack", paid_at=datetime(2026, 1, 2))

        items = calculate_refund_breakdown([second, first], 50000)

        assert [item["payment_id"] for item in items] == [str(first.id), str(second.id)]
        assert [item["amount"] for item in items] == [30000, 20000]
        assert items[0]["status"] == "manual_pending"
        assert items[1]["status"] == "pending"

    def test_zero_shares_are_dropped(self):
        payments = [payment(1, paid_at=datetime(2026, 1, day)) for day in (1, 2, 3)]
        items = calculate_refund_breakdown(payments, 2)
        assert len(items) == 1
        assert items[0]["amount"] == 2
        assert items[0]["payment_id"] == str(payments[2].id)

    def test_unsettled_payments_are_ignored(self):
        settled = payment(50000, "paypal")
        pending = payment(50000, "eft", status="pending")
        items = calculate_refund_breakdown([settled, pending], 50000)
        assert len(items) == 1
        assert items[0]["method"] == "paypal"

    def test_no_settled_payments(self):
        with pytest.raises(NotFoundError):
            calculate_refund_breakdown([payment(1000, status="failed")], 500)

    def test_amount_must_be_positive_and_covered(self):
        with pytest.raises(ValidationError):
            calculate_refund_breakdown([payment(1000)], 0)
        with pytest.raises(ValidationError):
            calculate_refund_breakdown([payment(1000)], 1001)


@pytest.mark.parametrize(
    "policy,days,percent",
    [
        ("flexible", 1, 100),
        ("flexible", 0, 0),
        ("moderate", 5, 100),
        ("moderate", 4, 50),
        ("moderate", 1, 50),
        ("moderate", 0, 0),
        ("strict", 14, 100),
        ("strict", 13, 50),
        ("strict", 7, 50),
        ("strict", 6, 0),
        ("non_refundable", 60, 0),
        ("unknown", 60, 0),
    ],
)
def test_policy_percentages(policy, days, percent):
    assert refund_percentage(policy, days) == percent


def test_suggested_amount():
    assert suggested_refund_amount("moderate", 3, 345000) == 172500
    assert suggested_refund_amount("moderate", 30, 345000) == 345000
    assert suggested_refund_amount("strict", 30, 0) == 0


def test_final_refund_status():
    assert final_refund_status([{"status": "completed"}, {"status": "completed"}]) == "completed"
    assert final_refund_status([{"status": "completed"}, {"status": "failed"}]) == "failed"
    assert final_refund_status([{"status": "failed"}, {"status": "manual_pending"}]) is None
    assert final_refund_status([{"status": "processing"}]) is None
    assert final_refund_status([{"status": "failed"}, {"status": "processing"}]) is None
    assert final_refund_status([]) is None


@pytest.mark.parametrize(
    "group_size,budget_max,group_type,expected",
    [
        (2, None, "family", 0),
        (10, None, "friends", 1),
        (4, 5_000_000, "family", 1),
        (4, 4_999_999, "wedding", 1),
        (12, 6_000_000, "conference", 3),
        (30, None, "corporate_event", 2),
    ],
)
def test_quote_priority(group_size, budget_max, group_type, expected):
    assert calculate_priority(group_size, budget_max, group_type) == expected
