"""
Health check service for Portier.

Checks database connectivity, that the main site exists and that the
network home URL is usable, and tracks uptime. Returns structured health responses with per-component status.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import settings
from database import AsyncSessionLocal
from models import Site

logger = logging.getLogger(__name__)

# Uptime is measured from module load
_start_time = time.monotonic()


class ComponentHealth(BaseModel):
    name: str
    status: str  # "ok" | "degraded" | "error"
    message: Optional[str] = None
    response_time_ms: Optional[float] = None


class HealthResponse(BaseModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    app: str
    version: str
    multisite: bool
    uptime_seconds: float
    checks: list[ComponentHealth]
    timestamp: str


async def check_database() -> ComponentHealth:
    """Check database connectivity by running SELECT 1."""
    start = time.perf_counter()
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        elapsed = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            name="database",
            status="ok",
            response_time_ms=round(elapsed, 1),
        )
    except SQLAlchemyError as e:
        elapsed = (time.perf_counter() - start) * 1000
        logger.error(f"Database health check failed: {e}")
        return ComponentHealth(
            name="database",
            status="error",
            message=str(e),
            response_time_ms=round(elapsed, 1),
        )


async def check_main_site() -> ComponentHealth:
    """Check that the configured main site exists; every request falls back to it."""
    try:
        async with AsyncSessionLocal() as session:
            site = await session.get(Site, settings.MAIN_SITE_ID)
    except SQLAlchemyError as e:
        return ComponentHealth(name="main_site", status="error", message=str(e))

    if site is None:
        return ComponentHealth(
            name="main_site",
            status="error",
            message=f"Main site {settings.MAIN_SITE_ID} does not exist",
        )
    return ComponentHealth(name="main_site", status="ok", message=site.domain)


def check_network_home() -> ComponentHealth:
    """Blocked network visitors are sent to NETWORK_HOME_URL; it must be an absolute URL."""
    if not settings.MULTISITE:
        return ComponentHealth(name="network_home", status="ok", message="single site")

    home = urlparse(settings.NETWORK_HOME_URL)
    if home.scheme not in ("http", "https") or not home.netloc:
        return ComponentHealth(
            name="network_home",
            status="error",
            message=f"Not an absolute URL: {settings.NETWORK_HOME_URL!r}",
        )
    return ComponentHealth(name="network_home", status="ok", message=settings.NETWORK_HOME_URL)


async def run_health_checks() -> HealthResponse:
    """Run all health checks and return aggregated status."""
    checks = [
        await check_database(),
        await check_main_site(),
        check_network_home(),
    ]

    # Only a database failure makes the service unhealthy;
    # any other failed check degrades it.
    critical_names = {"database"}
    has_critical_error = any(
        c.status == "error" and c.name in critical_names for c in checks
    )
    has_any_error = any(c.status == "error" for c in checks)

    if has_critical_error:
        overall = "unhealthy"
    elif has_any_error:
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        multisite=settings.MULTISITE,
        uptime_seconds=round(time.monotonic() - _start_time, 1),
        checks=checks,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
