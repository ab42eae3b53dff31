from datetime import datetime
from decimal import Decimal

from pydantic import EmailStr, Field

from alltown.models.delivery_request import DeliveryStatus

from .base import CamelModel


class DeliveryRequestCreate(CamelModel):
    customer_name: str = Field(..., max_length=200, description="Name of the person placing the request.")
    phone: str = Field(..., max_length=40)
    email: EmailStr = Field(..., description="Where booking updates are sent.")
    pickup_address: str
    delivery_address: str
    preferred_date: str = Field(..., max_length=20, description="Requested day, e.g. 2026-10-20.")
    preferred_time: str = Field(..., max_length=20, description="Requested window, e.g. 'morning'.")
    payment_method: str = Field(..., max_length=40)
    special_instructions: str | None = None
    is_rush: bool = False
    use_free_delivery: bool = Field(False, description="Spend one loyalty free-delivery credit.")

    model_config = CamelModel.model_config | {
        "json_schema_extra": {
            "example": {
                "customerName": "Sara Lee",
                "phone": "555-0100",
                "email": "sara@example.com",
                "pickupAddress": "12 Main St, Springfield",
                "deliveryAddress": "80 Oak Ave, Springfield",
                "preferredDate": "2026-10-20",
                "preferredTime": "morning",
                "paymentMethod": "card",
                "isRush": False,
            }
        }
    }


class DeliveryStatusUpdate(CamelModel):
    status: DeliveryStatus
    driver_notes: str | None = None


class DeliveryClaim(CamelModel):
    driver_notes: str | None = None


class DeliveryRequestResponse(CamelModel):
    id: str
    tenant_id: str
    user_id: str | None
    customer_name: str
    phone: str
    email: str
    pickup_address: str
    delivery_address: str
    preferred_date: str
    preferred_time: str
    payment_method: str
    special_instructions: str | None
    is_rush: bool
    distance_miles: Decimal
    duration_minutes: int | None
    delivery_fee: Decimal
    used_free_delivery: bool
    status: str
    claimed_by_driver: str | None
    claimed_at: datetime | None
    driver_notes: str | None
    created_at: datetime
    updated_at: datetime


class DeliveryHistoryEntry(CamelModel):
    event: str
    from_status: str | None
    to_status: str
    actor_id: str | None
    note: str | None
    created_at: datetime


class DriverDutyUpdate(CamelModel):
    is_on_duty: bool


class DriverDutyResponse(CamelModel):
    driver_id: str
    is_on_duty: bool
    released_delivery_ids: list[str] = []


class DriverSummary(CamelModel):
    id: str
    full_name: str | None
    email: str
    phone: str | None
    role: str
    is_on_duty: bool


class LoyaltyAccountResponse(CamelModel):
    loyalty_points: int = 0
    total_deliveries: int = 0
    free_delivery_credits: int = 0
    points_for_free_delivery: int
    enabled: bool
