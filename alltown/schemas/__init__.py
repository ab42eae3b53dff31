from .delivery import (
    DeliveryClaim,
    DeliveryHistoryEntry,
    DeliveryRequestCreate,
    DeliveryRequestResponse,
    DeliveryStatusUpdate,
    DriverDutyResponse,
    DriverDutyUpdate,
    DriverSummary,
    LoyaltyAccountResponse,
)
from .pricing import FeeScheduleResponse, FeeScheduleUpdate, PriceQuoteRequest, PriceQuoteResponse
from .tenant import CacheClearResponse, TenantBrandingResponse, TenantBrandingUpdate

__all__ = [
    "DeliveryClaim",
    "DeliveryHistoryEntry",
    "DeliveryRequestCreate",
    "DeliveryRequestResponse",
    "DeliveryStatusUpdate",
    "DriverDutyResponse",
    "DriverDutyUpdate",
    "DriverSummary",
    "LoyaltyAccountResponse",
    "FeeScheduleResponse",
    "FeeScheduleUpdate",
    "PriceQuoteRequest",
    "PriceQuoteResponse",
    "CacheClearResponse",
    "TenantBrandingResponse",
    "TenantBrandingUpdate",
]
