"""
Driver Routes

PATCH /driver/status {isOnDuty} -> go on or off duty. Going off duty releases
the driver's claimed (not yet started) deliveries.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from alltown.auth import require_role
from alltown.constants.roles import RoleName
from alltown.database import get_db
from alltown.dependencies import get_current_tenant
from alltown.models.user_profile import UserProfile
from alltown.schemas.delivery import DriverDutyResponse, DriverDutyUpdate
from alltown.services.driver_service import set_duty_status
from alltown.services.tenant_directory import TenantContext

router = APIRouter(prefix="/driver", tags=["Driver"])


@router.patch("/status", response_model=DriverDutyResponse)
async def update_duty_status(
    payload: DriverDutyUpdate,
    _tenant: TenantContext = Depends(get_current_tenant),
    driver: UserProfile = Depends(require_role([RoleName.DRIVER.value])),
    db: AsyncSession = Depends(get_db),
) -> DriverDutyResponse:
    released = await set_duty_status(driver, payload.is_on_duty, db)
    return DriverDutyResponse(driver_id=driver.id, is_on_duty=payload.is_on_duty, released_delivery_ids=released)
