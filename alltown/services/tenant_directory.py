"""
Tenant Directory

Resolves an inbound host to the tenant that owns it and memoises successful
lookups for a freshness window.

Resolution order in production:
  1. apex domain or www.<apex>        -> main-site pseudo-tenant
  2. exact custom domain match       -> tenant
  3. first label of a 3+ label host  -> tenant by subdomain
  4. anything else, or inactive      -> TenantNotFoundError

Outside production every host resolves to the main-site pseudo-tenant.

The directory is built once at start-up and held on app.state; tests build
their own with a fake clock.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alltown.config import settings
from alltown.exceptions import TenantDirectoryUnavailableError, TenantNotFoundError
from alltown.models.tenant import PlanType, Tenant
from alltown.services import tenant_service
from alltown.services.pricing_service import FeeSchedule
from alltown.utils.cache import TTLCache
from alltown.utils.metrics import record_tenant_cache_lookup, record_tenant_resolution

logger = logging.getLogger(__name__)

MAIN_SITE_ID = "main-site"


@dataclass(frozen=True)
class TenantContext:
    """Immutable snapshot of a tenant, safe to share between requests."""

    id: str
    company_name: str
    subdomain: str | None = None
    custom_domain: str | None = None
    slug: str | None = None
    logo_url: str | None = None
    primary_color: str = "#0369a1"
    is_active: bool = True
    plan_type: str = PlanType.trial.value
    is_main_site: bool = False
    fee_schedule: FeeSchedule = field(default_factory=FeeSchedule.default)
    enable_loyalty_program: bool = True
    points_for_free_delivery: int = field(default_factory=lambda: settings.default_points_for_free_delivery)

    @classmethod
    def from_tenant(cls, tenant: Tenant) -> TenantContext:
        business = tenant.business_settings
        return cls(
            id=tenant.id,
            company_name=tenant.company_name,
            subdomain=tenant.subdomain,
            custom_domain=tenant.custom_domain,
            slug=tenant.slug,
            logo_url=tenant.logo_url,
            primary_color=tenant.primary_color,
            is_active=tenant.is_active,
            plan_type=tenant.plan_type,
            fee_schedule=FeeSchedule.from_settings(business),
            enable_loyalty_program=business.enable_loyalty_program if business else True,
            points_for_free_delivery=(
                business.points_for_free_delivery if business else settings.default_points_for_free_delivery
            ),
        )


MAIN_SITE = TenantContext(
    id=MAIN_SITE_ID,
    company_name="AllTown Delivery",
    plan_type=PlanType.enterprise.value,
    is_main_site=True,
)


def normalize_host(host: str) -> str:
    """Lowercase, drop the port and any trailing dot."""
    host = (host or "").strip().lower()
    if host.startswith("["):
        # IPv6 literal
        return host.split("]")[0] + "]"
    return host.split(":")[0].rstrip(".")


class TenantDirectory:
    """
    Host -> tenant resolution with a lock-guarded TTL cache.

    Only successful lookups are cached. Store failures surface as
    TenantDirectoryUnavailableError and are never reported as NotFound.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        apex_domain: str,
        production: bool,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self.apex_domain = normalize_host(apex_domain)
        self.production = production
        self._cache: TTLCache[TenantContext] = TTLCache(ttl_seconds, clock=clock)

    async def resolve(self, host: str) -> TenantContext:
        if not self.production:
            record_tenant_resolution("main_site")
            return MAIN_SITE

        hostname = normalize_host(host)
        if hostname in (self.apex_domain, f"www.{self.apex_domain}"):
            record_tenant_resolution("main_site")
            return MAIN_SITE

        try:
            # Custom domains are never registered under the apex
            if hostname.endswith(f".{self.apex_domain}"):
                tenant = await self.get_by_subdomain(hostname.split(".")[0])
                outcome = "subdomain"
            else:
                tenant = await self.get_by_custom_domain(hostname)
                outcome = "custom_domain"
                if tenant is None and hostname.count(".") >= 2:
                    tenant = await self.get_by_subdomain(hostname.split(".")[0])
                    outcome = "subdomain"
        except TenantDirectoryUnavailableError:
            record_tenant_resolution("error")
            raise

        if tenant is None or not tenant.is_active:
            record_tenant_resolution("not_found")
            logger.info("No active tenant for host %s", hostname)
            raise TenantNotFoundError(host=hostname)

        record_tenant_resolution(outcome)
        return tenant

    async def get_by_subdomain(self, subdomain: str) -> TenantContext | None:
        return await self._lookup("subdomain", subdomain.lower(), tenant_service.get_tenant_by_subdomain)

    async def get_by_custom_domain(self, domain: str) -> TenantContext | None:
        return await self._lookup("domain", normalize_host(domain), tenant_service.get_tenant_by_custom_domain)

    async def get_by_id(self, tenant_id: str) -> TenantContext | None:
        if tenant_id == MAIN_SITE_ID:
            return MAIN_SITE
        return await self._lookup("id", tenant_id, tenant_service.get_tenant_by_id)

    def clear(self) -> None:
        """Drop every cached entry; the next lookup of each key queries the store."""
        self._cache.clear()
        logger.info("Tenant directory cache cleared")

    async def _lookup(self, kind: str, value: str, query) -> TenantContext | None:
        key = (kind, value)
        cached = self._cache.get(key)
        record_tenant_cache_lookup(kind, hit=cached is not None)
        if cached is not None:
            return cached

        try:
            async with self._session_factory() as db:
                tenant = await query(value, db)
                context = TenantContext.from_tenant(tenant) if tenant is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Tenant store lookup failed for {kind}={value}: {e}")
            raise TenantDirectoryUnavailableError() from e

        if context is not None:
            self._cache.set(key, context)
        return context
