"""
Pricing Routes

POST /pricing/quote            -> measure two addresses and price the trip for the
                                  current tenant without creating a request.
POST /pricing/validate-address -> geocode one address before it is submitted.
"""

from fastapi import APIRouter, Depends

from alltown.dependencies import get_current_tenant, get_distance_client
from alltown.schemas.pricing import (
    AddressValidationRequest,
    AddressValidationResponse,
    PriceBreakdownResponse,
    PriceQuoteRequest,
    PriceQuoteResponse,
)
from alltown.services.geocoding_service import DistanceClient
from alltown.services.pricing_service import quote
from alltown.services.tenant_directory import TenantContext

router = APIRouter(prefix="/pricing", tags=["Pricing"])


@router.post("/quote", response_model=PriceQuoteResponse)
async def quote_delivery_fee(
    payload: PriceQuoteRequest,
    tenant: TenantContext = Depends(get_current_tenant),
    distance_client: DistanceClient = Depends(get_distance_client),
) -> PriceQuoteResponse:
    distance = await distance_client.measure(payload.pickup_address, payload.delivery_address)
    price = quote(distance.distance_miles, payload.is_rush, tenant.fee_schedule)
    return PriceQuoteResponse(
        distance_miles=distance.distance_miles,
        duration_minutes=distance.duration_minutes,
        delivery_fee=price.display_fee,
        is_within_base_radius=price.is_within_base_radius,
        breakdown=PriceBreakdownResponse(
            base_fee=price.breakdown.base_fee,
            extra_miles=price.breakdown.extra_miles,
            price_per_mile=price.breakdown.price_per_mile,
            base_fee_radius=price.breakdown.base_fee_radius,
            rush_multiplier_applied=price.breakdown.rush_multiplier_applied,
        ),
    )


@router.post("/validate-address", response_model=AddressValidationResponse)
async def validate_address(
    payload: AddressValidationRequest,
    _tenant: TenantContext = Depends(get_current_tenant),
    distance_client: DistanceClient = Depends(get_distance_client),
) -> AddressValidationResponse:
    result = await distance_client.validate_address(payload.address)
    return AddressValidationResponse(
        is_valid=result.is_valid,
        formatted_address=result.formatted_address,
        latitude=result.latitude,
        longitude=result.longitude,
        error_message=result.error_message,
    )
