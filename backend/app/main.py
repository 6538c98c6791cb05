"""
Neighborhood Hub Backend — FastAPI Application Factory
======================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() assembles middleware, exception handlers and routers;
       uvicorn serves the module-level `app` (uvicorn app.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:  Rate Limit → Request ID → Logging → GZip   │
    │               → CORS                                     │
    │                                                          │
    │  Routes:                                                 │
    │    /api/auth/*          Google sign-in, session, signout │
    │    /api/onboarding/*    three-step profile wizard        │
    │    /api/profile         saved profile                    │
    │    /api/neighborhood/*  geocoded neighborhood map        │
    │    /api/geocode         ad-hoc address lookup            │
    │    /api/map/config      public map defaults              │
    │    /health              liveness + dependency status     │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   logging → config validation → ready
    Shutdown:  close outbound HTTP clients → dispose database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel

from app import __version__
from app.config import settings
from app.database import dispose_engine
from app.exceptions import (
    AuthenticationError,
    CircuitBreakerOpenError,
    DatabaseError,
    GeocodingServiceError,
    LocationNotFoundError,
    NeighborhoodError,
    NotFoundError,
    OAuthError,
    RateLimitExceededError,
    ValidationError,
)
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.routes import auth, health, neighborhood, onboarding
from app.services.auth_service import auth_service
from app.services.geocoding_service import geocoder

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once, at startup.

    Format: 2024-05-01T12:00:00 [INFO] app.services.geocoding_service: ...
    Third-party loggers that chatter at INFO/DEBUG are raised to WARNING.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("Neighborhood Hub Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health reports the geocoder as unconfigured
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Neighborhood Hub Backend shutting down...")
    await geocoder.aclose()
    await auth_service.oauth.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {
        "error": error,
        "message": message,
        "requestId": request_id_var.get(""),
    }
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


# ValidationError context keys a client can act on; the rest stays in the logs
VALIDATION_DETAIL_KEYS = ("field", "missing", "allowed")


def validation_details(exc: ValidationError) -> Dict[str, Any]:
    """Whitelisted context, with form field names spelled as the client sends them."""
    details = {k: exc.context[k] for k in VALIDATION_DETAIL_KEYS if k in exc.context}
    if "field" in details:
        details["field"] = to_camel(details["field"])
    if "missing" in details:
        details["missing"] = [to_camel(name) for name in details["missing"]]
    return details


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map application exceptions to HTTP responses.

        ValidationError         → 400 validation_error
        OAuthError              → 400 oauth_error
        AuthenticationError     → 401 unauthenticated (details.loginUrl)
        NotFoundError           → 404 not_found
        LocationNotFoundError   → 404 location_not_found
        RateLimitExceededError  → 429 rate_limit_exceeded
        DatabaseError           → 500 server_error
        GeocodingServiceError   → 503 geocoding_error
        CircuitBreakerOpenError → 503 service_unavailable
        NeighborhoodError/other → 500

    Response bodies never include stack traces, SQL or `context`; `details`
    is built from named, client-safe fields only.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc.message, validation_details(exc))

    @app.exception_handler(OAuthError)
    async def handle_oauth_error(request: Request, exc: OAuthError):
        logger.warning(
            "[%s] OAuth error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        return _error_response(400, "oauth_error", exc.message)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error_response(
            401,
            "unauthenticated",
            exc.message,
            {"loginUrl": exc.login_url},
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message)

    @app.exception_handler(LocationNotFoundError)
    async def handle_location_not_found(request: Request, exc: LocationNotFoundError):
        logger.info("[%s] No geocoding match | Context: %s", request_id_var.get(""), exc.context)
        return _error_response(404, "location_not_found", exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error_response(
            429,
            "rate_limit_exceeded",
            exc.message,
            {"retryAfter": exc.retry_after},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return _error_response(
            503,
            "service_unavailable",
            exc.message,
            {"recoveryTime": exc.recovery_time},
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(GeocodingServiceError)
    async def handle_geocoding_error(request: Request, exc: GeocodingServiceError):
        logger.error(
            "[%s] Geocoding error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error_response(503, "geocoding_error", exc.message, headers=headers)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        # The message is written for users; the SQL error only lives in context
        logger.error(
            "[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(NeighborhoodError)
    async def handle_application_error(request: Request, exc: NeighborhoodError):
        logger.error(
            "[%s] Unhandled application error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Neighborhood Hub API",
        description=(
            "Sign in with Google, describe your neighborhood in a three-step "
            "onboarding form, and view it on a Mapbox map."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,  # session cookie
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(onboarding.router)
    app.include_router(neighborhood.router)
    app.include_router(health.router)

    return app


app = create_app()
