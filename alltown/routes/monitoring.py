"""
Monitoring Routes

Liveness/readiness probe and Prometheus metrics. Both are served on any host,
without tenant resolution.
"""

import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from alltown.config import settings
from alltown.database import get_db
from alltown.utils.metrics import set_app_info, update_uptime

router = APIRouter(tags=["Monitoring"])

APP_START_TIME = time.time()

set_app_info(version=settings.app_version, environment=settings.environment)


class HealthStatus(BaseModel):
    status: str
    timestamp: str
    version: str
    uptime_seconds: float
    checks: dict[str, dict[str, Any]]


@router.get("/health", response_model=HealthStatus)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthStatus:
    """
    Health probe.

    Reports `degraded` (still 200) when the database does not answer, so the
    probe distinguishes a dead process from a sick dependency.
    """
    checks = {"database": await _check_database(db)}
    all_healthy = all(check["status"] == "healthy" for check in checks.values())

    return HealthStatus(
        status="healthy" if all_healthy else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.app_version,
        uptime_seconds=round(time.time() - APP_START_TIME, 2),
        checks=checks,
    )


@router.get("/metrics")
async def prometheus_metrics() -> Response:
    """Prometheus text exposition."""
    update_uptime(APP_START_TIME)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


async def _check_database(db: AsyncSession) -> dict[str, Any]:
    try:
        start = time.perf_counter()
        await db.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000
        return {"status": "healthy", "latency_ms": round(latency_ms, 2)}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}
