"""
Neighborhood Hub Backend — Custom Exception Hierarchy
=====================================================

What:  Application-specific exceptions, one per failure the client can see.
How:   Each exception carries a user-facing `message` and a `context` dict
       that is logged but never returned. Global handlers in main.py map them
       to HTTP responses.

Exception Hierarchy:
    NeighborhoodError (base)
    ├── ValidationError          → 400 Bad Request
    ├── OAuthError               → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found
    ├── LocationNotFoundError    → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── DatabaseError            → 500 Internal Server Error
    ├── GeocodingServiceError    → 503 Service Unavailable
    └── CircuitBreakerOpenError  → 503 Service Unavailable
"""

from typing import Any, Dict, Optional


class NeighborhoodError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NeighborhoodError):
    """
    Raised when client input fails a business rule.

    When:  A required onboarding field is blank, an interest or community
           type is not one of the offered options, a step number is out of range.
    HTTP:  400. Pydantic schema errors keep FastAPI's own 422.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class OAuthError(NeighborhoodError):
    """
    Raised when the Google sign-in round trip cannot be completed.

    When:  Google redirects back with `error=`, the `state` does not match the
           cookie we set, or the code exchange / userinfo call fails.
    """

    def __init__(
        self,
        message: str = "Sign-in with Google failed. Please try again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationError(NeighborhoodError):
    """
    Raised when a route needs a signed-in user and there is none.

    The response carries `login_url` so the browser can redirect to the
    sign-in page, the way the onboarding page bounced anonymous visitors.
    """

    def __init__(
        self,
        message: str = "You need to sign in to continue.",
        login_url: str = "/auth/login",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["login_url"] = login_url
        super().__init__(message=message, context=ctx)
        self.login_url = login_url


class NotFoundError(NeighborhoodError):
    """Raised when a requested row does not exist (converted from a None result)."""

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class LocationNotFoundError(NeighborhoodError):
    """Mapbox answered, but no feature matched the neighborhood address."""

    def __init__(
        self,
        message: str = "Could not find the specified location",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class GeocodingServiceError(NeighborhoodError):
    """
    Raised when the Mapbox geocoding call fails after all retries.

    HTTP:    503 Service Unavailable
    Message: kept generic ("Failed to load map data"); the upstream status or
             transport error goes into `context`.
    """

    def __init__(
        self,
        message: str = "Failed to load map data",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(NeighborhoodError):
    """
    Raised while the geocoding circuit breaker is OPEN.

        CLOSED → N consecutive failures → OPEN (fail fast for M seconds)
        → HALF_OPEN (one trial call) → CLOSED on success / OPEN on failure
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Map data is temporarily unavailable due to repeated failures. "
            f"Please try again in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class DatabaseError(NeighborhoodError):
    """
    Raised when a database operation fails unexpectedly.

    The onboarding flow surfaces this message to the user ("An error occurred
    while saving your profile"); the SQL error itself stays in the logs.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(NeighborhoodError):
    """Raised when a client exceeds the per-IP request rate limit."""

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
