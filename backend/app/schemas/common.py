"""
Neighborhood Hub Backend — Shared Response Schemas
==================================================

What:  The camelCase base model, plus error and health payloads shared by
       every router.
How:   Every JSON body the API sends or accepts uses camelCase keys
       (`neighborhoodName`, `flyTo`, `requestId`); snake_case is accepted on
       input as well.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(CamelModel):
    """
    Standard error body returned by every global exception handler.

    Example:
        {
            "error": "unauthenticated",
            "message": "You need to sign in to continue.",
            "details": {"loginUrl": "/auth/login"},
            "requestId": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Client-safe error fields")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(CamelModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    geocoder: str = Field(description="Mapbox geocoder: available, unconfigured, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
