"""
Tenant Routes

GET  /tenant                    -> public branding of the resolved tenant
GET  /admin/fee-schedule        -> the tenant's fee schedule (admin)
PUT  /admin/fee-schedule        -> update the fee schedule (admin)
PUT  /admin/tenant              -> update branding / custom domain (admin)
POST /admin/tenant-cache/clear  -> drop cached tenant lookups (admin)

Writes that change what the tenant directory serves clear its cache, so the
next request sees the new values instead of waiting out the freshness window.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from alltown.auth import require_role
from alltown.constants.roles import RoleName
from alltown.database import get_db
from alltown.dependencies import get_current_tenant, get_resolved_tenant, get_tenant_directory
from alltown.exceptions import TenantNotFoundError
from alltown.models.user_profile import UserProfile
from alltown.schemas.pricing import FeeScheduleResponse, FeeScheduleUpdate
from alltown.schemas.tenant import CacheClearResponse, TenantBrandingResponse, TenantBrandingUpdate
from alltown.services import tenant_service
from alltown.services.pricing_service import FeeSchedule
from alltown.services.tenant_directory import TenantContext, TenantDirectory

router = APIRouter(tags=["Tenants"])
logger = logging.getLogger(__name__)

require_admin = require_role([RoleName.ADMIN.value])


@router.get("/tenant", response_model=TenantBrandingResponse)
async def get_tenant_branding(tenant: TenantContext = Depends(get_resolved_tenant)) -> TenantBrandingResponse:
    return TenantBrandingResponse.model_validate(tenant)


@router.get("/admin/fee-schedule", response_model=FeeScheduleResponse)
async def get_fee_schedule(
    tenant: TenantContext = Depends(get_current_tenant),
    _admin: UserProfile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> FeeScheduleResponse:
    business_settings = await tenant_service.get_business_settings(tenant.id, db)
    if business_settings is not None:
        return FeeScheduleResponse.model_validate(business_settings)
    schedule = tenant.fee_schedule
    return FeeScheduleResponse(
        base_delivery_fee=schedule.base_fee,
        price_per_mile=schedule.price_per_mile,
        base_fee_radius_miles=schedule.base_fee_radius,
        rush_delivery_multiplier=schedule.rush_multiplier,
        enable_loyalty_program=tenant.enable_loyalty_program,
        points_for_free_delivery=tenant.points_for_free_delivery,
    )


@router.put("/admin/fee-schedule", response_model=FeeScheduleResponse)
async def update_fee_schedule(
    payload: FeeScheduleUpdate,
    tenant: TenantContext = Depends(get_current_tenant),
    _admin: UserProfile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    directory: TenantDirectory = Depends(get_tenant_directory),
) -> FeeScheduleResponse:
    """Partial update; the resulting schedule must still satisfy its invariants."""
    updates = payload.model_dump(exclude_none=True)
    current = tenant.fee_schedule
    # Raises ValidationError (400) before anything is written
    FeeSchedule(
        base_fee=updates.get("base_delivery_fee", current.base_fee),
        price_per_mile=updates.get("price_per_mile", current.price_per_mile),
        base_fee_radius=updates.get("base_fee_radius_miles", current.base_fee_radius),
        rush_multiplier=updates.get("rush_delivery_multiplier", current.rush_multiplier),
    )

    business_settings = await tenant_service.upsert_business_settings(tenant.id, updates, db)
    directory.clear()
    logger.info(f"Fee schedule updated for tenant {tenant.id}: {sorted(updates)}")
    return FeeScheduleResponse.model_validate(business_settings)


@router.put("/admin/tenant", response_model=TenantBrandingResponse)
async def update_tenant_branding(
    payload: TenantBrandingUpdate,
    tenant: TenantContext = Depends(get_current_tenant),
    _admin: UserProfile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    directory: TenantDirectory = Depends(get_tenant_directory),
) -> TenantBrandingResponse:
    updated = await tenant_service.update_branding(tenant.id, payload.model_dump(exclude_unset=True), db)
    if updated is None:
        raise TenantNotFoundError()
    directory.clear()
    return TenantBrandingResponse(
        id=updated.id,
        company_name=updated.company_name,
        subdomain=updated.subdomain,
        custom_domain=updated.custom_domain,
        logo_url=updated.logo_url,
        primary_color=updated.primary_color,
        plan_type=updated.plan_type,
        is_main_site=False,
    )


@router.post("/admin/tenant-cache/clear", response_model=CacheClearResponse)
async def clear_tenant_cache(
    _tenant: TenantContext = Depends(get_current_tenant),
    _admin: UserProfile = Depends(require_admin),
    directory: TenantDirectory = Depends(get_tenant_directory),
) -> CacheClearResponse:
    directory.clear()
    return CacheClearResponse()
