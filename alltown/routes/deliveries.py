"""
Delivery Request Routes

POST  /deliveries                  -> create (guest or signed-in customer)
GET   /deliveries?status=available -> tenant's requests (drivers: available only)
GET   /deliveries/mine             -> the calling driver's active deliveries
GET   /deliveries/history          -> the calling customer's own requests
GET   /deliveries/{id}             -> one request
GET   /deliveries/{id}/history     -> status history
POST  /deliveries/{id}/claim       -> driver claims an available request
PATCH /deliveries/{id}/status      -> advance the lifecycle
POST  /deliveries/{id}/release     -> hand a claim back to the pool

Every route is scoped to the tenant resolved from the Host header.
"""

import logging

from fastapi import APIRouter, Body, Depends, Query, status

from alltown.auth import get_current_profile, get_optional_profile, require_role
from alltown.constants.roles import RoleName, is_staff
from alltown.dependencies import get_coordinator, get_current_tenant
from alltown.exceptions import AuthorizationError
from alltown.models.delivery_request import DeliveryStatus
from alltown.models.user_profile import UserProfile
from alltown.schemas.delivery import (
    DeliveryClaim,
    DeliveryHistoryEntry,
    DeliveryRequestCreate,
    DeliveryRequestResponse,
    DeliveryStatusUpdate,
)
from alltown.services.delivery_service import DeliveryCoordinator
from alltown.services.tenant_directory import TenantContext

router = APIRouter(prefix="/deliveries", tags=["Deliveries"])
logger = logging.getLogger(__name__)


@router.post("", response_model=DeliveryRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_delivery_request(
    payload: DeliveryRequestCreate,
    tenant: TenantContext = Depends(get_current_tenant),
    profile: UserProfile | None = Depends(get_optional_profile),
    coordinator: DeliveryCoordinator = Depends(get_coordinator),
) -> DeliveryRequestResponse:
    """Measure, price and submit a delivery request."""
    delivery = await coordinator.create(tenant, payload, user_id=profile.id if profile else None)
    return DeliveryRequestResponse.model_validate(delivery)


@router.get("", response_model=list[DeliveryRequestResponse])
async def list_delivery_requests(
    status_filter: DeliveryStatus = Query(DeliveryStatus.available, alias="status"),
    tenant: TenantContext = Depends(get_current_tenant),
    profile: UserProfile = Depends(
        require_role([RoleName.DRIVER.value, RoleName.DISPATCHER.value, RoleName.ADMIN.value])
    ),
    coordinator: DeliveryCoordinator = Depends(get_coordinator),
) -> list[DeliveryRequestResponse]:
    if status_filter == DeliveryStatus.available:
        deliveries = await coordinator.list_available(tenant.id)
    elif is_staff(profile.role):
        deliveries = await coordinator.list_for_tenant(tenant.id, status=status_filter)
    else:
        raise AuthorizationError("Drivers can only list available deliveries")
    return [DeliveryRequestResponse.model_validate(d) for d in deliveries]


@router.get("/mine", response_model=list[DeliveryRequestResponse])
async def list_my_deliveries(
    tenant: TenantContext = Depends(get_current_tenant),
    driver: UserProfile = Depends(require_role([RoleName.DRIVER.value])),
    coordinator: DeliveryCoordinator = Depends(get_coordinator),
) -> list[DeliveryRequestResponse]:
    deliveries = await coordinator.list_for_driver(tenant.id, driver.id)
    return [DeliveryRequestResponse.model_validate(d) for d in deliveries]


@router.get("/history", response_model=list[DeliveryRequestResponse])
async def list_customer_deliveries(
    tenant: TenantContext = Depends(get_current_tenant),
    profile: UserProfile = Depends(get_current_profile),
    coordinator: DeliveryCoordinator = Depends(get_coordinator),
) -> list[DeliveryRequestResponse]:
    """Requests the caller placed with this tenant, newest first."""
    deliveries = await coordinator.list_for_customer(tenant.id, profile.id)
    return [DeliveryRequestResponse.model_validate(d) for d in deliveries]


@router.get("/{delivery_id}", response_model=DeliveryRequestResponse)
async def get_delivery_request(
    delivery_id: str,
    tenant: TenantContext = Depends(get_current_tenant),
    profile: UserProfile = Depends(get_current_profile),
    coordinator: DeliveryCoordinator = Depends(get_coordinator),
) -> DeliveryRequestResponse:
    delivery = await coordinator.get_for_actor(delivery_id, tenant, profile)
    return DeliveryRequestResponse.model_validate(delivery)


@router.get("/{delivery_id}/history", response_model=list[DeliveryHistoryEntry])
async def get_delivery_history(
    delivery_id: str,
    tenant: TenantContext = Depends(get_current_tenant),
    profile: UserProfile = Depends(get_current_profile),
    coordinator: DeliveryCoordinator = Depends(get_coordinator),
) -> list[DeliveryHistoryEntry]:
    await coordinator.get_for_actor(delivery_id, tenant, profile)
    entries = await coordinator.history(delivery_id, tenant)
    return [DeliveryHistoryEntry.model_validate(e) for e in entries]


@router.post("/{delivery_id}/claim", response_model=DeliveryRequestResponse)
async def claim_delivery_request(
    delivery_id: str,
    payload: DeliveryClaim | None = Body(None),
    tenant: TenantContext = Depends(get_current_tenant),
    profile: UserProfile = Depends(get_current_profile),
    coordinator: DeliveryCoordinator = Depends(get_coordinator),
) -> DeliveryRequestResponse:
    """Claim an available request. Exactly one concurrent claimer wins; the rest get 409."""
    notes = payload.driver_notes if payload else None
    delivery = await coordinator.claim(delivery_id, tenant, profile, notes=notes)
    return DeliveryRequestResponse.model_validate(delivery)


@router.patch("/{delivery_id}/status", response_model=DeliveryRequestResponse)
async def update_delivery_status(
    delivery_id: str,
    payload: DeliveryStatusUpdate,
    tenant: TenantContext = Depends(get_current_tenant),
    profile: UserProfile = Depends(get_current_profile),
    coordinator: DeliveryCoordinator = Depends(get_coordinator),
) -> DeliveryRequestResponse:
    delivery = await coordinator.advance_status(
        delivery_id, tenant, profile, payload.status, notes=payload.driver_notes
    )
    return DeliveryRequestResponse.model_validate(delivery)


@router.post("/{delivery_id}/release", response_model=DeliveryRequestResponse)
async def release_delivery_request(
    delivery_id: str,
    tenant: TenantContext = Depends(get_current_tenant),
    profile: UserProfile = Depends(get_current_profile),
    coordinator: DeliveryCoordinator = Depends(get_coordinator),
) -> DeliveryRequestResponse:
    delivery = await coordinator.release(delivery_id, tenant, profile)
    return DeliveryRequestResponse.model_validate(delivery)
