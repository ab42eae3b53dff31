"""
Tenant Resolution Middleware

Resolves the tenant owning each request from its Host header through the
TenantDirectory held on app.state, and attaches the TenantContext as
request.state.tenant for downstream handlers.

Exceptions raised inside BaseHTTPMiddleware never reach the app's exception
handlers, so resolution failures are rendered here:
  - unknown or inactive tenant -> 404 {error, message, isInvalidSubdomain: true}
  - tenant store unavailable   -> 500 {error, message}
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

from alltown.exception_handlers import create_error_response
from alltown.exceptions import TenantDirectoryUnavailableError, TenantNotFoundError
from alltown.middleware.logging import tenant_id_var

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastapi import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)


class TenantMiddleware(BaseHTTPMiddleware):
    """Attach request.state.tenant (a TenantContext) to every request."""

    # Served without a tenant: probes and scraping hit the bare host
    EXEMPT_PATHS = {"/health", "/metrics"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.tenant = None
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        directory = request.app.state.tenant_directory
        host = request.headers.get("host", "")

        try:
            tenant = await directory.resolve(host)
        except TenantNotFoundError as exc:
            logger.warning(f"Unknown tenant host: {host}")
            return create_error_response(
                status_code=exc.status_code,
                message=exc.message,
                error_code=exc.error_code,
                extra=exc.response_fields(),
            )
        except TenantDirectoryUnavailableError as exc:
            logger.error(f"Tenant resolution failed for host {host}: {exc.message}")
            return create_error_response(
                status_code=exc.status_code,
                message=exc.message,
                error_code=exc.error_code,
            )

        request.state.tenant = tenant
        tenant_id_var.set(tenant.id)
        logger.debug("TenantMiddleware: resolved host=%s tenant_id=%s", host, tenant.id)
        return await call_next(request)
