"""
Neighborhood Hub Backend — Health Check Route
=============================================

What:  Liveness/readiness check for Docker and load balancers.

Status levels:
    healthy    database reachable, geocoder available
    degraded   database reachable, geocoder unconfigured or circuit open
               (sign-in and onboarding still work; only the map is down)
    unhealthy  database unreachable
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text

from app import __version__
from app.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        from app.database import engine
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # No request to Mapbox here; a check every few seconds would eat quota
    from app.services.geocoding_service import geocoder
    geocoder_status = geocoder.health_check()
    if geocoder_status != "available" and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        geocoder=geocoder_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
