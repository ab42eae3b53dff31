"""
Driver Service

Driver duty status and the dispatcher's view of tenant staff.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from alltown.constants.roles import RoleName, is_driver
from alltown.exceptions import AuthorizationError
from alltown.models.user_profile import UserProfile
from alltown.services.delivery_service import DeliveryCoordinator

logger = logging.getLogger(__name__)


async def set_duty_status(driver: UserProfile, is_on_duty: bool, db: AsyncSession) -> list[str]:
    """
    Put a driver on or off duty.

    Going off duty hands every `claimed` (not yet started) delivery back to the
    available pool in the same transaction. Returns the released delivery ids.
    """
    if not is_driver(driver.role):
        raise AuthorizationError("Only drivers have a duty status", required_roles=[RoleName.DRIVER.value])

    released: list[str] = []
    try:
        await db.execute(
            update(UserProfile)
            .where(UserProfile.id == driver.id)
            .values(is_on_duty=is_on_duty)
            .execution_options(synchronize_session=False)
        )
        if not is_on_duty:
            released = await DeliveryCoordinator(db).release_driver_claims(driver)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    driver.is_on_duty = is_on_duty
    logger.info("Driver %s duty=%s released=%d", driver.id, is_on_duty, len(released))
    return released


async def list_drivers(tenant_id: str, db: AsyncSession, on_duty_only: bool = False) -> list[UserProfile]:
    """Return the tenant's drivers, on-duty first."""
    query = select(UserProfile).where(
        UserProfile.tenant_id == tenant_id,
        UserProfile.role == RoleName.DRIVER.value,
    )
    if on_duty_only:
        query = query.where(UserProfile.is_on_duty.is_(True))
    result = await db.execute(query.order_by(UserProfile.is_on_duty.desc(), UserProfile.full_name))
    return list(result.scalars().all())
