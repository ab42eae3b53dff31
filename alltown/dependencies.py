"""
Shared FastAPI dependencies: the resolved tenant and app-scoped collaborators.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from alltown.database import get_db
from alltown.exceptions import TenantNotFoundError
from alltown.services.delivery_service import DeliveryCoordinator
from alltown.services.geocoding_service import DistanceClient
from alltown.services.tenant_directory import MAIN_SITE, TenantContext, TenantDirectory


def get_resolved_tenant(request: Request) -> TenantContext:
    """The tenant TenantMiddleware attached, possibly the main-site pseudo-tenant."""
    return getattr(request.state, "tenant", None) or MAIN_SITE


def get_current_tenant(request: Request) -> TenantContext:
    """
    The tenant owning this request.

    Tenant-scoped endpoints are not served on the main site.
    """
    tenant = get_resolved_tenant(request)
    if tenant.is_main_site:
        raise TenantNotFoundError(host=request.headers.get("host"))
    return tenant


def get_tenant_directory(request: Request) -> TenantDirectory:
    return request.app.state.tenant_directory


def get_distance_client(request: Request) -> DistanceClient:
    return request.app.state.distance_client


async def get_coordinator(
    db: AsyncSession = Depends(get_db),
    distance_client: DistanceClient = Depends(get_distance_client),
) -> DeliveryCoordinator:
    return DeliveryCoordinator(db, distance_client=distance_client)
