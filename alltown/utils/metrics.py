"""
Prometheus Metrics Module

Provides application metrics using the prometheus_client library.
Metrics are exposed at /metrics endpoint for Prometheus scraping.
"""

import time
from collections.abc import Callable

from prometheus_client import Counter, Gauge, Histogram, Info
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# =============================================================================
# Application Info
# =============================================================================

APP_INFO = Info("alltown_app", "AllTown Dispatch application information")


def set_app_info(version: str, environment: str) -> None:
    """Set application info labels."""
    APP_INFO.info({"version": version, "environment": environment})


# =============================================================================
# HTTP Request Metrics
# =============================================================================

HTTP_REQUESTS_TOTAL = Counter(
    "alltown_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "alltown_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "alltown_http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method"],
)

# =============================================================================
# Tenant Directory Metrics
# =============================================================================

TENANT_CACHE_LOOKUPS_TOTAL = Counter(
    "alltown_tenant_cache_lookups_total",
    "Tenant directory cache lookups",
    ["kind", "result"],  # result: hit, miss
)

TENANT_RESOLUTIONS_TOTAL = Counter(
    "alltown_tenant_resolutions_total",
    "Tenant resolutions by outcome",
    ["outcome"],  # main_site, custom_domain, subdomain, not_found, error
)

# =============================================================================
# Delivery Lifecycle Metrics
# =============================================================================

DELIVERY_CLAIMS_TOTAL = Counter(
    "alltown_delivery_claims_total",
    "Driver claim attempts by outcome",
    ["outcome"],  # claimed, already_claimed, not_found, tenant_mismatch
)

DELIVERY_TRANSITIONS_TOTAL = Counter(
    "alltown_delivery_transitions_total",
    "Delivery status transitions applied",
    ["from_status", "to_status"],
)

DISTANCE_REQUESTS_TOTAL = Counter(
    "alltown_distance_requests_total",
    "Distance matrix requests by outcome",
    ["outcome"],  # ok, error, timeout
)

# =============================================================================
# Application Health Metrics
# =============================================================================

APP_UPTIME_SECONDS = Gauge(
    "alltown_uptime_seconds",
    "Application uptime in seconds",
)

# =============================================================================
# Prometheus Metrics Middleware
# =============================================================================


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect HTTP request metrics for Prometheus.

    Tracks:
    - Request count by method, endpoint, and status code
    - Request duration by method and endpoint
    - In-progress requests by method
    """

    EXCLUDED_PATHS = {"/metrics", "/health", "/favicon.ico"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.EXCLUDED_PATHS:
            return await call_next(request)

        method = request.method
        endpoint = self._normalize_path(path)

        HTTP_REQUESTS_IN_PROGRESS.labels(method=method).inc()
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration = time.perf_counter() - start_time
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, endpoint=endpoint).observe(duration)
            HTTP_REQUESTS_TOTAL.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
            HTTP_REQUESTS_IN_PROGRESS.labels(method=method).dec()

        return response

    @staticmethod
    def _normalize_path(path: str) -> str:
        """
        Normalize URL path for metrics by replacing dynamic segments.

        Examples:
            /deliveries/0b6f...-9c1e/claim -> /deliveries/{uuid}/claim
        """
        normalized = []
        for part in path.split("/"):
            if part.isdigit():
                normalized.append("{id}")
            elif len(part) == 36 and part.count("-") == 4:
                normalized.append("{uuid}")
            else:
                normalized.append(part)
        return "/".join(normalized)


# =============================================================================
# Helper Functions
# =============================================================================


def record_tenant_cache_lookup(kind: str, hit: bool) -> None:
    TENANT_CACHE_LOOKUPS_TOTAL.labels(kind=kind, result="hit" if hit else "miss").inc()


def record_tenant_resolution(outcome: str) -> None:
    TENANT_RESOLUTIONS_TOTAL.labels(outcome=outcome).inc()


def record_claim(outcome: str) -> None:
    DELIVERY_CLAIMS_TOTAL.labels(outcome=outcome).inc()


def record_transition(from_status: str, to_status: str) -> None:
    DELIVERY_TRANSITIONS_TOTAL.labels(from_status=from_status, to_status=to_status).inc()


def record_distance_request(outcome: str) -> None:
    DISTANCE_REQUESTS_TOTAL.labels(outcome=outcome).inc()


def update_uptime(start_time: float) -> None:
    """Update application uptime."""
    APP_UPTIME_SECONDS.set(time.time() - start_time)
