"""
Neighborhood Hub Backend — Map Schemas
======================================

What:  Geocoding results and the map description the browser hands to the
       Mapbox GL SDK (style, camera moves, controls, marker, sources, layers).
Why:   The server decides *what* to draw; drawing stays in the vendor SDK.
How:   Envelope keys are camelCase like the rest of the API. Source and layer
       bodies use Mapbox style-spec key names (`source-layer`, `fill-color`)
       and omit unset keys, so the browser can pass them to `addSource` /
       `addLayer` unchanged.
"""

from typing import Any, Dict, List, Optional

from pydantic import Field, SerializerFunctionWrapHandler, model_serializer

from app.schemas.common import CamelModel


class GeocodeResult(CamelModel):
    lng: float
    lat: float
    full_address: str = Field(description="The address string sent to Mapbox")
    place_name: Optional[str] = Field(default=None, description="Mapbox's label for the chosen feature")
    matched_city_state: bool = Field(
        default=False,
        description="True when the chosen feature's place/region matched the requested city/state",
    )

    @property
    def center(self) -> List[float]:
        return [self.lng, self.lat]


class MapCamera(CamelModel):
    center: List[float]
    zoom: float
    duration: Optional[int] = Field(default=None, description="Animation length in ms (fly_to only)")


class MapControl(CamelModel):
    type: str
    position: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)


class MapPopup(CamelModel):
    offset: int
    html: str


class MapMarker(CamelModel):
    lng_lat: List[float]
    popup: MapPopup


class MapSource(CamelModel):
    id: str
    spec: Dict[str, Any]


class MapLayer(CamelModel):
    id: str
    type: str
    source: str
    source_layer: Optional[str] = Field(default=None, alias="source-layer")
    paint: Dict[str, Any]
    filter: Optional[List[Any]] = None

    @model_serializer(mode="wrap")
    def _drop_unset_keys(self, handler: SerializerFunctionWrapHandler) -> Dict[str, Any]:
        # Mapbox rejects `"filter": null`; an absent key means "no filter"
        return {k: v for k, v in handler(self).items() if v is not None}


class MapConfigResponse(CamelModel):
    """Bootstrap settings for the SDK before any neighborhood is known."""
    access_token: str
    style: str
    initial_view: MapCamera
    controls: List[MapControl]


class NeighborhoodMap(CamelModel):
    neighborhood_name: str
    full_address: str
    style: str
    initial_view: MapCamera
    fly_to: MapCamera
    controls: List[MapControl]
    marker: MapMarker
    sources: List[MapSource]
    layers: List[MapLayer]
