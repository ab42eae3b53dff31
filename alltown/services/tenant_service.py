"""
Tenant Service

Async queries and branding updates for Tenant entities.
All functions accept an injected AsyncSession.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alltown.config import settings
from alltown.exceptions import ConflictError, ValidationError
from alltown.models.business_settings import BusinessSettings
from alltown.models.tenant import Tenant

logger = logging.getLogger(__name__)

BRANDING_FIELDS = {"company_name", "logo_url", "primary_color", "custom_domain"}
FEE_SCHEDULE_FIELDS = {
    "base_delivery_fee",
    "price_per_mile",
    "base_fee_radius_miles",
    "rush_delivery_multiplier",
    "enable_loyalty_program",
    "points_for_free_delivery",
}


async def get_tenant_by_id(tenant_id: str, db: AsyncSession) -> Tenant | None:
    """Return a Tenant by primary key, or None if not found."""
    result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
    return result.scalars().first()


async def get_tenant_by_subdomain(subdomain: str, db: AsyncSession) -> Tenant | None:
    """Return a Tenant by subdomain label, or None if not found."""
    result = await db.execute(select(Tenant).where(Tenant.subdomain == subdomain))
    return result.scalars().first()


async def get_tenant_by_custom_domain(domain: str, db: AsyncSession) -> Tenant | None:
    """Return a Tenant by custom domain, or None if not found."""
    result = await db.execute(select(Tenant).where(Tenant.custom_domain == domain))
    return result.scalars().first()


async def get_business_settings(tenant_id: str, db: AsyncSession) -> BusinessSettings | None:
    result = await db.execute(select(BusinessSettings).where(BusinessSettings.tenant_id == tenant_id))
    return result.scalars().first()


async def update_branding(tenant_id: str, updates: dict, db: AsyncSession) -> Tenant | None:
    """
    Apply a partial branding update to a Tenant.

    Only branding keys present in `updates` are changed. A custom domain is
    stored lowercased and must not belong to another tenant.
    Returns None if the tenant does not exist.
    """
    tenant = await get_tenant_by_id(tenant_id, db)
    if tenant is None:
        return None

    domain = updates.get("custom_domain")
    if domain:
        domain = domain.strip().lower().rstrip(".")
        apex = settings.platform_apex_domain.lower()
        if domain == apex or domain.endswith(f".{apex}"):
            raise ValidationError("Custom domain cannot be under the platform domain", field="custom_domain")
        owner = await get_tenant_by_custom_domain(domain, db)
        if owner is not None and owner.id != tenant.id:
            raise ConflictError("Custom domain is already in use", details={"custom_domain": domain})
        updates = {**updates, "custom_domain": domain}
    elif "custom_domain" in updates:
        updates = {**updates, "custom_domain": None}

    for field, value in updates.items():
        if field in BRANDING_FIELDS:
            setattr(tenant, field, value)
    await db.commit()
    await db.refresh(tenant)
    logger.info("Tenant branding updated: id=%s fields=%s", tenant.id, sorted(set(updates) & BRANDING_FIELDS))
    return tenant


async def upsert_business_settings(tenant_id: str, updates: dict, db: AsyncSession) -> BusinessSettings:
    """
    Create or update the tenant's business settings.

    Callers validate the fee schedule invariants before calling; the table's
    CHECK constraints back them up.
    """
    business_settings = await get_business_settings(tenant_id, db)
    if business_settings is None:
        business_settings = BusinessSettings(tenant_id=tenant_id)
        db.add(business_settings)
    for field, value in updates.items():
        if field in FEE_SCHEDULE_FIELDS:
            setattr(business_settings, field, value)
    await db.commit()
    await db.refresh(business_settings)
    logger.info("Business settings saved: tenant_id=%s", tenant_id)
    return business_settings
