"""Pure pricing rules: seasonal rate selection, stay price and add-on totals.

Nothing in this module touches the database; callers pass in the room and its
seasonal rates. All amounts are integers in minor units.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from ..core.exceptions import ValidationError
from ..models.room import AddOnPricingType, PricingMode

BASE_RATE_NAME = "Base Rate"


@dataclass(frozen=True)
class NightlyRate:
    """The price that applies to one night of a stay."""

    date: date
    rate: int
    additional_person_rate: int
    rate_name: str
    is_seasonal: bool

    def as_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "rate": self.rate,
            "additional_person_rate": self.additional_person_rate,
            "rate_name": self.rate_name,
            "is_seasonal": self.is_seasonal,
        }


@dataclass
class PriceBreakdown:
    """Result of pricing one room for a stay."""

    pricing_mode: str
    nights: int
    nightly_rates: list[NightlyRate]
    base_amount: int
    extra_adults_amount: int
    children_amount: int
    paying_children: int
    free_children: int
    total: int
    currency: Optional[str] = None
    notes: list[str] = field(default_factory=list)


def select_rate_for_date(
    rates: Iterable,
    day: date,
    base_price: int,
    base_additional_rate: int = 0,
) -> NightlyRate:
    """
    Return the nightly rate for `day`.

    `rates` is scanned in the order given; the first active rate whose
    inclusive [start_date, end_date] contains `day` wins. When none matches
    the room's base price applies.
    """
    for rate in rates:
        if not rate.is_active:
            continue
        if rate.start_date <= day <= rate.end_date:
            additional = rate.additional_person_rate
            return NightlyRate(
                date=day,
                rate=rate.price_per_night,
                additional_person_rate=base_additional_rate if additional is None else additional,
                rate_name=rate.name,
                is_seasonal=True,
            )
    return NightlyRate(
        date=day,
        rate=base_price,
        additional_person_rate=base_additional_rate,
        rate_name=BASE_RATE_NAME,
        is_seasonal=False,
    )


def count_nights(check_in: date, check_out: date) -> int:
    """Nights between two dates; at least one night is required."""
    nights = (check_out - check_in).days
    if nights < 1:
        raise ValidationError(
            "Check-out date must be after check-in date",
            details={"check_in": check_in.isoformat(), "check_out": check_out.isoformat()},
        )
    return nights


def classify_children(
    children: int,
    children_ages: Optional[Sequence[int]],
    free_until_age: int,
    age_limit: int,
) -> tuple[int, int, int]:
    """
    Split children into (free, paying, adult_rate).

    Children younger than `free_until_age` stay free, those up to and including
    `age_limit` pay the child rate, older ones pay as adults. Children whose age
    was not given are charged the child rate.
    """
    ages = list(children_ages or [])[:children]
    free = sum(1 for age in ages if age < free_until_age)
    as_adults = sum(1 for age in ages if age > age_limit)
    paying = children - free - as_adults
    return free, paying, as_adults


def calculate_price(
    room,
    rates: Iterable,
    check_in: date,
    check_out: date,
    adults: int = 1,
    children: int = 0,
    children_ages: Optional[Sequence[int]] = None,
) -> PriceBreakdown:
    """
    Price one room for a stay.

    The nightly rate comes from `select_rate_for_date`; the room's pricing mode
    then decides how guests are charged:

    - per_unit: the sum of nightly rates, regardless of guests.
    - per_person: the nightly sum for every adult, plus children.
    - per_person_sharing: the nightly sum covers the first adult, each further
      adult pays the additional person rate per night, plus children.

    Paying children are charged `child_price_per_night` per night when the room
    defines one, otherwise the adult per-person amount of the mode.
    """
    if adults < 1:
        raise ValidationError("At least one adult is required")
    if children < 0:
        raise ValidationError("Children cannot be negative")

    nights = count_nights(check_in, check_out)
    rates = list(rates)
    nightly = [
        select_rate_for_date(
            rates,
            check_in + timedelta(days=offset),
            room.base_price_per_night,
            room.additional_person_rate or 0,
        )
        for offset in range(nights)
    ]

    nightly_sum = sum(night.rate for night in nightly)
    additional_sum = sum(night.additional_person_rate for night in nightly)

    free, paying, older = classify_children(
        children, children_ages, room.child_free_until_age, room.child_age_limit
    )
    mode = room.pricing_mode
    extra_adults_amount = 0
    children_amount = 0

    if mode == PricingMode.PER_UNIT.value:
        base_amount = nightly_sum
    elif mode == PricingMode.PER_PERSON.value:
        base_amount = nightly_sum
        extra_adults_amount = nightly_sum * (adults - 1 + older)
        if room.child_price_per_night is not None:
            children_amount = room.child_price_per_night * paying * nights
        else:
            children_amount = nightly_sum * paying
    elif mode == PricingMode.PER_PERSON_SHARING.value:
        base_amount = nightly_sum
        extra_adults_amount = additional_sum * (adults - 1 + older)
        if room.child_price_per_night is not None:
            children_amount = room.child_price_per_night * paying * nights
        else:
            children_amount = additional_sum * paying
    else:
        raise ValidationError(f"Unsupported pricing mode '{mode}'")

    notes = []
    if free:
        notes.append(f"{free} child(ren) under {room.child_free_until_age} stay free")

    return PriceBreakdown(
        pricing_mode=mode,
        nights=nights,
        nightly_rates=nightly,
        base_amount=base_amount,
        extra_adults_amount=extra_adults_amount,
        children_amount=children_amount,
        paying_children=paying,
        free_children=free,
        total=base_amount + extra_adults_amount + children_amount,
        notes=notes,
    )


def calculate_addon_total(
    price: int,
    pricing_type: str,
    quantity: int,
    nights: int,
    guests: int,
) -> int:
    """Total for an add-on line given how its price scales."""
    if quantity < 1:
        raise ValidationError("Add-on quantity must be at least 1")

    if pricing_type in (AddOnPricingType.PER_BOOKING.value, AddOnPricingType.PER_ROOM.value):
        return price * quantity
    if pricing_type == AddOnPricingType.PER_NIGHT.value:
        return price * nights * quantity
    if pricing_type == AddOnPricingType.PER_GUEST.value:
        return price * guests * quantity
    if pricing_type == AddOnPricingType.PER_GUEST_PER_NIGHT.value:
        return price * guests * nights * quantity
    raise ValidationError(f"Unsupported add-on pricing type '{pricing_type}'")


def calculate_tax(taxable_amount: int, vat_percentage: float) -> int:
    """VAT on a taxable amount, rounded to the nearest minor unit."""
    if taxable_amount <= 0:
        return 0
    return int(round(taxable_amount * vat_percentage / 100))
