"""
Neighborhood Hub Backend — Neighborhood Map Builder
===================================================

What:  Turns a geocoded neighborhood into the list of Mapbox GL calls the
       browser makes: initial view, controls, flyTo, marker + popup, a
       GeoJSON point source with a circle layer, and the administrative
       boundary layers from the Mapbox Streets v8 tileset.
Why:   Layer ids, colors and filters are product decisions; keeping them on
       the server means every client draws the same map.
"""

import html
from typing import List

from app.config import settings
from app.schemas.map import (
    GeocodeResult,
    MapCamera,
    MapConfigResponse,
    MapControl,
    MapLayer,
    MapMarker,
    MapPopup,
    MapSource,
    NeighborhoodMap,
)

# Before geocoding finishes the map sits here
DEFAULT_CENTER = [-74.5, 40.0]
DEFAULT_ZOOM = 12
NEIGHBORHOOD_ZOOM = 15
FLY_DURATION_MS = 2000
POPUP_OFFSET = 25

NEIGHBORHOOD_SOURCE = "neighborhood"
ADMIN_SOURCE = "admin-boundaries"
ADMIN_TILESET_URL = "mapbox://mapbox.mapbox-streets-v8"
ADMIN_SOURCE_LAYER = "admin"

NEIGHBORHOOD_COLOR = "#0080ff"
CITY_COLOR = "#00ff00"

# Mapbox Streets admin_level values
NEIGHBORHOOD_ADMIN_LEVEL = 8
CITY_ADMIN_LEVEL = 6


def default_controls() -> List[MapControl]:
    return [
        MapControl(type="navigation", position="top-right"),
        MapControl(
            type="geolocate",
            options={
                "positionOptions": {"enableHighAccuracy": True},
                "trackUserLocation": True,
                "showUserHeading": True,
            },
        ),
    ]


def initial_view() -> MapCamera:
    return MapCamera(center=list(DEFAULT_CENTER), zoom=DEFAULT_ZOOM)


def _admin_filter(level: int) -> list:
    return ["==", ["get", "admin_level"], level]


def boundary_layers() -> List[MapLayer]:
    """Fill + outline for neighborhoods (level 8) and cities (level 6), in draw order."""
    return [
        MapLayer(
            id="neighborhood-boundaries",
            type="fill",
            source=ADMIN_SOURCE,
            source_layer=ADMIN_SOURCE_LAYER,
            paint={
                "fill-color": NEIGHBORHOOD_COLOR,
                "fill-opacity": 0.1,
                "fill-outline-color": NEIGHBORHOOD_COLOR,
            },
            filter=_admin_filter(NEIGHBORHOOD_ADMIN_LEVEL),
        ),
        MapLayer(
            id="neighborhood-boundaries-line",
            type="line",
            source=ADMIN_SOURCE,
            source_layer=ADMIN_SOURCE_LAYER,
            paint={
                "line-color": NEIGHBORHOOD_COLOR,
                "line-width": 2,
                "line-opacity": 0.8,
            },
            filter=_admin_filter(NEIGHBORHOOD_ADMIN_LEVEL),
        ),
        MapLayer(
            id="city-boundaries",
            type="fill",
            source=ADMIN_SOURCE,
            source_layer=ADMIN_SOURCE_LAYER,
            paint={
                "fill-color": CITY_COLOR,
                "fill-opacity": 0.05,
                "fill-outline-color": CITY_COLOR,
            },
            filter=_admin_filter(CITY_ADMIN_LEVEL),
        ),
        MapLayer(
            id="city-boundaries-line",
            type="line",
            source=ADMIN_SOURCE,
            source_layer=ADMIN_SOURCE_LAYER,
            paint={
                "line-color": CITY_COLOR,
                "line-width": 2,
                "line-opacity": 0.5,
            },
            filter=_admin_filter(CITY_ADMIN_LEVEL),
        ),
    ]


def popup_html(neighborhood_name: str, full_address: str) -> str:
    # User-entered text; escaped before it reaches setHTML()
    return (
        f'<h3 class="font-bold">{html.escape(neighborhood_name)}</h3>'
        f"<p>{html.escape(full_address)}</p>"
    )


def build_neighborhood_map(neighborhood_name: str, result: GeocodeResult) -> NeighborhoodMap:
    """
    Describe the neighborhood map for a geocoded address.

    Source and layer ids are fixed, so drawing the map a second time for the
    same user replaces the previous sources/layers instead of stacking them.
    """
    center = result.center
    sources = [
        MapSource(
            id=NEIGHBORHOOD_SOURCE,
            spec={
                "type": "geojson",
                "data": {
                    "type": "Feature",
                    "geometry": {"type": "Point", "coordinates": center},
                    "properties": {},
                },
            },
        ),
        MapSource(id=ADMIN_SOURCE, spec={"type": "vector", "url": ADMIN_TILESET_URL}),
    ]
    layers = [
        MapLayer(
            id="neighborhood-fill",
            type="circle",
            source=NEIGHBORHOOD_SOURCE,
            paint={
                "circle-radius": 1000,
                "circle-color": NEIGHBORHOOD_COLOR,
                "circle-opacity": 0.1,
                "circle-stroke-width": 2,
                "circle-stroke-color": NEIGHBORHOOD_COLOR,
                "circle-stroke-opacity": 0.5,
            },
        ),
        *boundary_layers(),
    ]

    return NeighborhoodMap(
        neighborhood_name=neighborhood_name,
        full_address=result.full_address,
        style=settings.mapbox_style_url,
        initial_view=initial_view(),
        fly_to=MapCamera(center=center, zoom=NEIGHBORHOOD_ZOOM, duration=FLY_DURATION_MS),
        controls=default_controls(),
        marker=MapMarker(
            lng_lat=center,
            popup=MapPopup(
                offset=POPUP_OFFSET,
                html=popup_html(neighborhood_name, result.full_address),
            ),
        ),
        sources=sources,
        layers=layers,
    )


def build_map_config() -> MapConfigResponse:
    return MapConfigResponse(
        access_token=settings.mapbox_token,
        style=settings.mapbox_style_url,
        initial_view=initial_view(),
        controls=default_controls(),
    )
