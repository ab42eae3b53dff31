from decimal import Decimal

from pydantic import Field

from .base import CamelModel


class PriceQuoteRequest(CamelModel):
    pickup_address: str = Field(..., min_length=1)
    delivery_address: str = Field(..., min_length=1)
    is_rush: bool = False


class AddressValidationRequest(CamelModel):
    address: str = Field(..., min_length=1)


class AddressValidationResponse(CamelModel):
    is_valid: bool
    formatted_address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    error_message: str | None = None


class PriceBreakdownResponse(CamelModel):
    base_fee: Decimal
    extra_miles: Decimal
    price_per_mile: Decimal
    base_fee_radius: Decimal
    rush_multiplier_applied: Decimal


class PriceQuoteResponse(CamelModel):
    distance_miles: Decimal
    duration_minutes: int
    delivery_fee: Decimal
    is_within_base_radius: bool
    breakdown: PriceBreakdownResponse


class FeeScheduleResponse(CamelModel):
    base_delivery_fee: Decimal
    price_per_mile: Decimal
    base_fee_radius_miles: Decimal
    rush_delivery_multiplier: Decimal
    enable_loyalty_program: bool
    points_for_free_delivery: int


class FeeScheduleUpdate(CamelModel):
    base_delivery_fee: Decimal | None = None
    price_per_mile: Decimal | None = None
    base_fee_radius_miles: Decimal | None = None
    rush_delivery_multiplier: Decimal | None = None
    enable_loyalty_program: bool | None = None
    points_for_free_delivery: int | None = Field(None, gt=0)
