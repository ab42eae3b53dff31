"""
Application factory.

Collaborators (session factory, tenant directory, distance client) are built
once here and held on app.state; tests pass their own.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alltown.config import settings
from alltown.database import AsyncSessionLocal
from alltown.exception_handlers import register_exception_handlers
from alltown.middleware.logging import StructuredLoggingMiddleware
from alltown.middleware.tenant import TenantMiddleware
from alltown.routes import deliveries, dispatch, driver, loyalty, monitoring, pricing, tenants
from alltown.services.geocoding_service import DistanceClient, GoogleMapsDistanceClient
from alltown.services.tenant_directory import TenantDirectory
from alltown.utils.metrics import PrometheusMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} {settings.app_version} ({settings.environment})")
    yield
    aclose = getattr(app.state.distance_client, "aclose", None)
    if aclose is not None:
        await aclose()
    logger.info("Shutting down the application...")


def create_app(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    distance_client: DistanceClient | None = None,
    tenant_directory: TenantDirectory | None = None,
) -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Multi-tenant local delivery dispatch",
        debug=settings.debug,
        version=settings.app_version,
        lifespan=lifespan,
    )

    session_factory = session_factory or AsyncSessionLocal
    app.state.session_factory = session_factory
    app.state.tenant_directory = tenant_directory or TenantDirectory(
        session_factory,
        apex_domain=settings.platform_apex_domain,
        production=settings.is_production,
        ttl_seconds=settings.tenant_cache_ttl_seconds,
    )
    app.state.distance_client = distance_client or GoogleMapsDistanceClient()

    register_exception_handlers(app)

    # Starlette middleware is LIFO: the last one added runs first
    app.add_middleware(TenantMiddleware)
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(monitoring.router)
    app.include_router(tenants.router)
    app.include_router(pricing.router)
    app.include_router(deliveries.router)
    app.include_router(driver.router)
    app.include_router(dispatch.router)
    app.include_router(loyalty.router)

    return app
