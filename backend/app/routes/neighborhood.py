"""
Neighborhood Hub Backend — Neighborhood and Map Route Handlers
==============================================================

What:  Dashboard data and the neighborhood map.

Route Inventory:
    GET /api/profile              profile + neighborhood for the dashboard
    GET /api/neighborhood/map     geocode the saved neighborhood, describe the map
    GET /api/geocode              ad-hoc address lookup (onboarding preview)
    GET /api/map/config           public SDK bootstrap (token, style, initial view)

Caching:
    The map depends on the saved address only, so it is cacheable per user
    for a short while; geocoding results for ad-hoc lookups are not cached.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import get_current_user
from app.schemas.auth import SessionUser
from app.schemas.common import ErrorResponse
from app.schemas.map import GeocodeResult, MapConfigResponse, NeighborhoodMap
from app.schemas.onboarding import ProfileResponse
from app.services.geocoding_service import geocoder
from app.services.map_builder import build_map_config, build_neighborhood_map
from app.services.profile_service import profile_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Neighborhood"])

_GEOCODING_RESPONSES = {
    401: {"description": "Not signed in", "model": ErrorResponse},
    404: {"description": "Location not found", "model": ErrorResponse},
    503: {"description": "Mapbox unavailable", "model": ErrorResponse},
}


@router.get(
    "/profile",
    response_model=ProfileResponse,
    responses={
        401: {"description": "Not signed in", "model": ErrorResponse},
        404: {"description": "Onboarding not completed", "model": ErrorResponse},
    },
    summary="Current user's profile",
)
async def get_profile(
    user: SessionUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    return await profile_service.get_profile(db, user.id)


@router.get(
    "/neighborhood/map",
    response_model=NeighborhoodMap,
    response_model_exclude_none=True,
    responses=_GEOCODING_RESPONSES,
    summary="Map of the user's neighborhood",
    description=(
        "Geocodes the saved neighborhood address with Mapbox and returns the camera moves, "
        "marker, sources and layers for the Mapbox GL map."
    ),
)
async def get_neighborhood_map(
    response: Response,
    user: SessionUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NeighborhoodMap:
    neighborhood = await profile_service.get_neighborhood(db, user.id)
    result = await geocoder.geocode(
        address=neighborhood.address,
        city=neighborhood.city,
        state=neighborhood.state,
    )
    if not result.matched_city_state:
        logger.info("Neighborhood for %s matched no feature in its city/state; using first result", user.id)

    response.headers["Cache-Control"] = "private, max-age=300"
    return build_neighborhood_map(neighborhood.name, result)


@router.get(
    "/geocode",
    response_model=GeocodeResult,
    responses=_GEOCODING_RESPONSES,
    summary="Geocode an address",
)
async def geocode_address(
    address: str = Query(..., min_length=1, max_length=255),
    city: Optional[str] = Query(default=None, max_length=120),
    state: Optional[str] = Query(default=None, max_length=120),
    user: SessionUser = Depends(get_current_user),
) -> GeocodeResult:
    return await geocoder.geocode(address=address, city=city, state=state)


@router.get(
    "/map/config",
    response_model=MapConfigResponse,
    response_model_exclude_none=True,
    summary="Map SDK bootstrap settings",
)
async def get_map_config(response: Response) -> MapConfigResponse:
    response.headers["Cache-Control"] = "public, max-age=3600"
    return build_map_config()
