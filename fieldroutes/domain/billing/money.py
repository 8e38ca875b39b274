"""
Billing arithmetic.

All amounts are integer cents. Rates are integer cents per unit (mile, visit or hour) and each
amount is rounded half-up exactly once, after the full multiplication.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

METERS_PER_MILE = Decimal("1609.344")


class BillingModel(str, Enum):
    MILEAGE = "mileage"
    FLAT_FEE = "flat_fee"
    HOURLY = "hourly"


class Annotation(str, Enum):
    """Data-quality warnings attached to a derived record"""

    AMOUNT_UNAVAILABLE = "amount_unavailable"
    RATE_MISSING = "rate_missing"


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def mileage_amount(rate_cents: int, distance_meters: int) -> int:
    """rate per mile x miles driven, miles derived from metres without intermediate rounding"""
    return round_half_up(Decimal(rate_cents) * Decimal(distance_meters) / METERS_PER_MILE)


def hourly_amount(rate_cents: int, service_minutes: int) -> int:
    return round_half_up(Decimal(rate_cents) * Decimal(service_minutes) / Decimal(60))


def calculate_amount(
    model: BillingModel,
    rate_cents: Optional[int],
    distance_meters: Optional[int] = None,
    service_minutes: Optional[int] = None,
) -> tuple[int, list[str]]:
    """
    Amount in cents for one visit, plus any warning annotations.

    A missing rate or a missing distance / duration never raises: the amount is 0 and the
    record is annotated instead.
    """
    if rate_cents is None:
        return 0, [Annotation.RATE_MISSING.value]

    if model == BillingModel.FLAT_FEE:
        return rate_cents, []

    if model == BillingModel.MILEAGE:
        if distance_meters is None:
            return 0, [Annotation.AMOUNT_UNAVAILABLE.value]
        return mileage_amount(rate_cents, distance_meters), []

    if service_minutes is None:
        return 0, [Annotation.AMOUNT_UNAVAILABLE.value]
    return hourly_amount(rate_cents, service_minutes), []


def format_cents(cents: int) -> str:
    """12345 -> "123.45" """
    return str((Decimal(cents) / Decimal(100)).quantize(Decimal("0.01")))
