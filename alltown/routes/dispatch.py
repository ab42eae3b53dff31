"""
Dispatch Routes (dispatcher and admin)

GET /dispatch/drivers            -> the tenant's drivers with duty status
GET /dispatch/deliveries?status= -> every request of the tenant, newest first
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alltown.auth import require_role
from alltown.constants.roles import STAFF_ROLES
from alltown.database import get_db
from alltown.dependencies import get_coordinator, get_current_tenant
from alltown.models.delivery_request import DeliveryStatus
from alltown.models.user_profile import UserProfile
from alltown.schemas.delivery import DeliveryRequestResponse, DriverSummary
from alltown.services.delivery_service import DeliveryCoordinator
from alltown.services.driver_service import list_drivers
from alltown.services.tenant_directory import TenantContext

router = APIRouter(prefix="/dispatch", tags=["Dispatch"])

require_staff = require_role(sorted(role.value for role in STAFF_ROLES))


@router.get("/drivers", response_model=list[DriverSummary])
async def list_tenant_drivers(
    on_duty: bool = Query(False, alias="onDuty"),
    tenant: TenantContext = Depends(get_current_tenant),
    _staff: UserProfile = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> list[DriverSummary]:
    drivers = await list_drivers(tenant.id, db, on_duty_only=on_duty)
    return [DriverSummary.model_validate(d) for d in drivers]


@router.get("/deliveries", response_model=list[DeliveryRequestResponse])
async def list_tenant_deliveries(
    status: DeliveryStatus | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    tenant: TenantContext = Depends(get_current_tenant),
    _staff: UserProfile = Depends(require_staff),
    coordinator: DeliveryCoordinator = Depends(get_coordinator),
) -> list[DeliveryRequestResponse]:
    deliveries = await coordinator.list_for_tenant(tenant.id, status=status, skip=skip, limit=limit)
    return [DeliveryRequestResponse.model_validate(d) for d in deliveries]
