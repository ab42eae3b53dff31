from .business_settings import BusinessSettings
from .delivery_request import DeliveryEvent, DeliveryRequest, DeliveryStatus, DeliveryStatusHistory
from .loyalty import CustomerLoyaltyAccount, LoyaltyCreditEvent
from .tenant import PlanType, Tenant
from .user_profile import UserProfile

__all__ = [
    "BusinessSettings",
    "CustomerLoyaltyAccount",
    "DeliveryEvent",
    "DeliveryRequest",
    "DeliveryStatus",
    "DeliveryStatusHistory",
    "LoyaltyCreditEvent",
    "PlanType",
    "Tenant",
    "UserProfile",
]
