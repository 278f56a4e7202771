"""Unit tests for the pricing rules."""

from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from vilo.core.exceptions import ValidationError
from vilo.services.pricing import (
    BASE_RATE_NAME,
    calculate_addon_total,
    calculate_price,
    calculate_tax,
    classify_children,
    count_nights,
    select_rate_for_date,
)
from vilo.services.promotion_service import calculate_discount

CHECK_IN = date(2026, 12, 10)


def make_room(**overrides):
    room = {
        "pricing_mode": "per_unit",
        "base_price_per_night": 100000,
        "additional_person_rate": 20000,
        "child_price_per_night": None,
        "child_free_until_age": 2,
        "child_age_limit": 12,
    }
    room.update(overrides)
    return SimpleNamespace(**room)


def make_rate(start, end, price, name="Peak", priority=0, additional=None, is_active=True):
    return SimpleNamespace(
        name=name,
        start_date=start,
        end_date=end,
        price_per_night=price,
        additional_person_rate=additional,
        priority=priority,
        is_active=is_active,
    )


class TestSeasonalRates:
    def test_base_rate_when_no_season_matches(self):
        night = select_rate_for_date([], CHECK_IN, 100000, 20000)
        assert night.rate == 100000
        assert night.additional_person_rate == 20000
        assert night.rate_name == BASE_RATE_NAME
        assert not night.is_seasonal

    def test_date_range_is_inclusive(self):
        rate = make_rate(CHECK_IN, CHECK_IN + timedelta(days=2), 150000)
        assert select_rate_for_date([rate], CHECK_IN, 100000).rate == 150000
        assert select_rate_for_date([rate], CHECK_IN + timedelta(days=2), 100000).rate == 150000
        assert select_rate_for_date([rate], CHECK_IN + timedelta(days=3), 100000).rate == 100000

    def test_first_matching_rate_wins(self):
        """Rates arrive sorted by priority; the first overlap is used."""
        high = make_rate(CHECK_IN, CHECK_IN, 180000, name="Festival", priority=10)
        low = make_rate(CHECK_IN - timedelta(days=5), CHECK_IN + timedelta(days=5), 120000, name="Summer")
        night = select_rate_for_date([high, low], CHECK_IN, 100000)
        assert night.rate == 180000
        assert night.rate_name == "Festival"

    def test_inactive_rate_is_skipped(self):
        rate = make_rate(CHECK_IN, CHECK_IN, 150000, is_active=False)
        assert select_rate_for_date([rate], CHECK_IN, 100000).rate == 100000

    def test_additional_rate_falls_back_to_room(self):
        rate = make_rate(CHECK_IN, CHECK_IN, 150000)
        assert select_rate_for_date([rate], CHECK_IN, 100000, 20000).additional_person_rate == 20000

        rate = make_rate(CHECK_IN, CHECK_IN, 150000, additional=30000)
        assert select_rate_for_date([rate], CHECK_IN, 100000, 20000).additional_person_rate == 30000


class TestCalculatePrice:
    def test_per_unit_ignores_guest_count(self):
        breakdown = calculate_price(make_room(), [], CHECK_IN, CHECK_IN + timedelta(days=3), adults=3)
        assert breakdown.nights == 3
        assert breakdown.base_amount == 300000
        assert breakdown.extra_adults_amount == 0
        assert breakdown.total == 300000
        assert len(breakdown.nightly_rates) == 3

    def test_seasonal_night_in_the_middle_of_a_stay(self):
        rate = make_rate(CHECK_IN + timedelta(days=1), CHECK_IN + timedelta(days=1), 150000)
        breakdown = calculate_price(make_room(), [rate], CHECK_IN, CHECK_IN + timedelta(days=3))
        assert [n.rate for n in breakdown.nightly_rates] == [100000, 150000, 100000]
        assert breakdown.nightly_rates[1].is_seasonal
        assert breakdown.total == 350000

    def test_per_person_charges_every_adult(self):
        room = make_room(pricing_mode="per_person", base_price_per_night=35000)
        breakdown = calculate_price(room, [], CHECK_IN, CHECK_IN + timedelta(days=2), adults=2)
        assert breakdown.base_amount == 70000
        assert breakdown.extra_adults_amount == 70000
        assert breakdown.total == 140000

    def test_per_person_children_with_child_price(self):
        room = make_room(pricing_mode="per_person", base_price_per_night=35000, child_price_per_night=10000)
        breakdown = calculate_price(
            room, [], CHECK_IN, CHECK_IN + timedelta(days=2), adults=1, children=2, children_ages=[1, 8]
        )
        assert breakdown.free_children == 1
        assert breakdown.paying_children == 1
        assert breakdown.children_amount == 20000
        assert breakdown.total == 70000 + 20000
        assert breakdown.notes

    def test_older_child_pays_as_adult(self):
        room = make_room(pricing_mode="per_person", base_price_per_night=35000, child_price_per_night=10000)
        breakdown = calculate_price(
            room, [], CHECK_IN, CHECK_IN + timedelta(days=1), adults=1, children=1, children_ages=[14]
        )
        assert breakdown.paying_children == 0
        assert breakdown.children_amount == 0
        assert breakdown.extra_adults_amount == 35000

    def test_per_person_sharing_uses_additional_rate(self):
        room = make_room(
            pricing_mode="per_person_sharing", base_price_per_night=50000, additional_person_rate=20000
        )
        breakdown = calculate_price(room, [], CHECK_IN, CHECK_IN + timedelta(days=1), adults=3)
        assert breakdown.base_amount == 50000
        assert breakdown.extra_adults_amount == 40000
        assert breakdown.total == 90000

    def test_per_person_sharing_children_without_child_price(self):
        room = make_room(
            pricing_mode="per_person_sharing", base_price_per_night=50000, additional_person_rate=20000
        )
        breakdown = calculate_price(
            room, [], CHECK_IN, CHECK_IN + timedelta(days=2), adults=1, children=1, children_ages=[6]
        )
        assert breakdown.children_amount == 40000

    def test_requires_an_adult(self):
        with pytest.raises(ValidationError):
            calculate_price(make_room(), [], CHECK_IN, CHECK_IN + timedelta(days=1), adults=0)

    def test_rejects_unknown_pricing_mode(self):
        with pytest.raises(ValidationError):
            calculate_price(make_room(pricing_mode="per_bed"), [], CHECK_IN, CHECK_IN + timedelta(days=1))


def test_count_nights_requires_one_night():
    assert count_nights(CHECK_IN, CHECK_IN + timedelta(days=4)) == 4
    with pytest.raises(ValidationError):
        count_nights(CHECK_IN, CHECK_IN)
    with pytest.raises(ValidationError):
        count_nights(CHECK_IN, CHECK_IN - timedelta(days=1))


def test_children_without_ages_pay_child_rate():
    assert classify_children(3, [1], free_until_age=2, age_limit=12) == (1, 2, 0)
    assert classify_children(2, [], free_until_age=2, age_limit=12) == (0, 2, 0)
    assert classify_children(2, [0, 13], free_until_age=2, age_limit=12) == (1, 0, 1)


@pytest.mark.parametrize(
    "pricing_type,expected",
    [
        ("per_booking", 10000 * 2),
        ("per_room", 10000 * 2),
        ("per_night", 10000 * 3 * 2),
        ("per_guest", 10000 * 4 * 2),
        ("per_guest_per_night", 10000 * 4 * 3 * 2),
    ],
)
def test_addon_totals(pricing_type, expected):
    assert calculate_addon_total(10000, pricing_type, quantity=2, nights=3, guests=4) == expected


def test_addon_rejects_unknown_pricing_type():
    with pytest.raises(ValidationError):
        calculate_addon_total(10000, "per_hour", quantity=1, nights=1, guests=1)


def test_tax_rounds_to_nearest_minor_unit():
    assert calculate_tax(324000, 15.0) == 48600
    assert calculate_tax(333, 15.0) == 50
    assert calculate_tax(0, 15.0) == 0
    assert calculate_tax(-100, 15.0) == 0


class TestDiscounts:
    def test_percentage(self):
        assert calculate_discount("percentage", 10, 360000, 3) == 36000

    def test_fixed_amount_is_capped(self):
        assert calculate_discount("fixed_amount", 5000, 360000, 3) == 5000
        assert calculate_discount("fixed_amount", 500000, 360000, 3) == 360000

    def test_free_nights(self):
        assert calculate_discount("free_nights", 1, 300000, 3) == 100000
        assert calculate_discount("free_nights", 5, 300000, 3) == 300000

    def test_unknown_type_and_empty_amount(self):
        assert calculate_discount("buy_one_get_one", 1, 300000, 3) == 0
        assert calculate_discount("percentage", 10, 0, 3) == 0
