"""
Pricing Service

Distance-tiered delivery fees. Within the base radius only the base fee
applies; beyond it every extra mile is charged at the per-mile price; rush
delivery multiplies the total.

All arithmetic uses Decimal at full precision. Rounding to cents happens only
through `PriceQuote.display_fee`, at persistence and response boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from alltown.config import settings
from alltown.exceptions import ValidationError

CENTS = Decimal("0.01")

Number = Decimal | int | float | str


def to_decimal(value: Number, field: str) -> Decimal:
    """Convert a numeric input to Decimal, rejecting None, NaN and infinities."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", field=field)
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    return result


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeSchedule:
    """A tenant's fee schedule. Construction enforces its invariants."""

    base_fee: Decimal
    price_per_mile: Decimal
    base_fee_radius: Decimal
    rush_multiplier: Decimal = Decimal("1.5")

    def __post_init__(self):
        for name in ("base_fee", "price_per_mile", "base_fee_radius", "rush_multiplier"):
            value = to_decimal(getattr(self, name), name)
            object.__setattr__(self, name, value)
            if value < 0:
                raise ValidationError(f"{name} must not be negative", field=name)
        if self.rush_multiplier < 1:
            raise ValidationError("rush_multiplier must be at least 1", field="rush_multiplier")

    @classmethod
    def from_settings(cls, business_settings) -> FeeSchedule:
        """Build from a BusinessSettings row, or the configured defaults when None."""
        if business_settings is None:
            return cls.default()
        return cls(
            base_fee=business_settings.base_delivery_fee,
            price_per_mile=business_settings.price_per_mile,
            base_fee_radius=business_settings.base_fee_radius_miles,
            rush_multiplier=business_settings.rush_delivery_multiplier,
        )

    @classmethod
    def default(cls) -> FeeSchedule:
        return cls(
            base_fee=settings.default_base_delivery_fee,
            price_per_mile=settings.default_price_per_mile,
            base_fee_radius=settings.default_base_fee_radius_miles,
            rush_multiplier=settings.default_rush_multiplier,
        )


@dataclass(frozen=True)
class PriceBreakdown:
    """Itemisation that reproduces the fee: (base + extra * per_mile) * multiplier."""

    base_fee: Decimal
    extra_miles: Decimal
    price_per_mile: Decimal
    base_fee_radius: Decimal
    rush_multiplier_applied: Decimal

    def recompute(self) -> Decimal:
        return (self.base_fee + self.extra_miles * self.price_per_mile) * self.rush_multiplier_applied


@dataclass(frozen=True)
class PriceQuote:
    fee: Decimal
    is_within_base_radius: bool
    breakdown: PriceBreakdown

    @property
    def display_fee(self) -> Decimal:
        return round_money(self.fee)


def quote(pickup_distance_miles: Number, is_rush: bool, schedule: FeeSchedule) -> PriceQuote:
    """
    Price a delivery.

    Args:
        pickup_distance_miles: Pickup-to-delivery driving distance in miles
        is_rush: Apply the rush multiplier to the total fee
        schedule: The tenant's fee schedule

    Raises:
        ValidationError: distance missing, not a number, or negative
    """
    distance = to_decimal(pickup_distance_miles, "distance_miles")
    if distance < 0:
        raise ValidationError("distance_miles must not be negative", field="distance_miles")

    if distance <= schedule.base_fee_radius:
        within_radius = True
        extra_miles = Decimal("0")
        fee = schedule.base_fee
    else:
        within_radius = False
        extra_miles = distance - schedule.base_fee_radius
        fee = schedule.base_fee + extra_miles * schedule.price_per_mile

    multiplier = schedule.rush_multiplier if is_rush else Decimal("1")
    fee = fee * multiplier

    return PriceQuote(
        fee=fee,
        is_within_base_radius=within_radius,
        breakdown=PriceBreakdown(
            base_fee=schedule.base_fee,
            extra_miles=extra_miles,
            price_per_mile=schedule.price_per_mile,
            base_fee_radius=schedule.base_fee_radius,
            rush_multiplier_applied=multiplier,
        ),
    )
