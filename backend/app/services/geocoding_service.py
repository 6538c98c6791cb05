"""
Neighborhood Hub Backend — Mapbox Geocoding Service
===================================================

What:  Forward-geocodes a neighborhood's street address with the Mapbox
       Geocoding v5 API and picks the best matching feature.
Why:   The map page needs one coordinate pair to fly to and drop a marker on.
How:   One GET per lookup via httpx, wrapped in a tenacity retry for transport
       errors / 5xx / 429 and a process-wide circuit breaker.

Request shape:
    GET {geocoding_url}/{urlencoded "address, city, state"}.json
        ?access_token=…&country=US&types=address&limit=1&language=en
        &place={city}&region={state}&bbox=-112.5,40.0,-111.5,41.0

Feature selection:
    The first feature whose `place` and `region` context entries equal the
    requested city and state (case-insensitive) wins; otherwise the first
    feature. No features at all → LocationNotFoundError.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import settings
from app.exceptions import (
    CircuitBreakerOpenError,
    GeocodingServiceError,
    LocationNotFoundError,
)
from app.schemas.map import GeocodeResult

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Fails geocoding fast while Mapbox is down.

        CLOSED  → each failed lookup increments failure_count;
                  at failure_threshold → OPEN
        OPEN    → can_execute() raises CircuitBreakerOpenError until
                  recovery_timeout seconds have passed → HALF_OPEN
        HALF_OPEN → the next lookup is the trial: success → CLOSED,
                  failure → OPEN again with a fresh timer

    Single-process only; uvicorn workers each keep their own breaker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed < self.recovery_timeout:
                raise CircuitBreakerOpenError(
                    recovery_time=max(1, int(self.recovery_timeout - elapsed))
                )
            logger.info("Geocoding circuit HALF_OPEN after %.1fs", elapsed)
            self.state = self.HALF_OPEN
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Geocoding circuit CLOSED (Mapbox recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()
        if self.state == self.HALF_OPEN:
            logger.warning("Geocoding circuit back to OPEN (trial lookup failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Geocoding circuit OPEN after %d consecutive failures", self.failure_count
            )
            self.state = self.OPEN


class _RetryableStatus(Exception):
    """Mapbox answered 429 or 5xx; worth another attempt."""

    def __init__(self, status_code: int):
        super().__init__(f"Mapbox returned HTTP {status_code}")
        self.status_code = status_code


# ══════════════════════════════════════════════════════════════════════════
# Pure helpers
# ══════════════════════════════════════════════════════════════════════════

def build_full_address(address: str, city: Optional[str] = None, state: Optional[str] = None) -> str:
    """Join the non-empty parts with ", " ("12 Main St, Provo, UT")."""
    return ", ".join(part.strip() for part in (address, city, state) if part and part.strip())


def build_query_params(
    access_token: str,
    city: Optional[str] = None,
    state: Optional[str] = None,
) -> Dict[str, str]:
    params = {
        "access_token": access_token,
        "country": settings.geocoding_country,
        "types": "address",
        "limit": "1",
        "language": settings.geocoding_language,
    }
    if city:
        params["place"] = city
    if state:
        params["region"] = state
    params["bbox"] = settings.geocoding_bbox
    return params


def _context_text(feature: Dict[str, Any], kind: str) -> Optional[str]:
    for ctx in feature.get("context") or []:
        if kind in str(ctx.get("id", "")):
            return ctx.get("text")
    return None


def matches_city_state(feature: Dict[str, Any], city: Optional[str], state: Optional[str]) -> bool:
    feature_city = _context_text(feature, "place")
    feature_state = _context_text(feature, "region")
    return (feature_city or "").lower() == (city or "").lower() and (
        feature_state or ""
    ).lower() == (state or "").lower()


def select_feature(
    features: List[Dict[str, Any]],
    city: Optional[str] = None,
    state: Optional[str] = None,
) -> Dict[str, Any]:
    if not features:
        raise LocationNotFoundError()
    for feature in features:
        if matches_city_state(feature, city, state):
            return feature
    return features[0]


# ══════════════════════════════════════════════════════════════════════════
# Mapbox Geocoder
# ══════════════════════════════════════════════════════════════════════════

class MapboxGeocoder:
    """
    Error Handling Chain:
        transport error / 429 / 5xx → tenacity retries (retry_max_attempts)
        → still failing → circuit breaker failure + GeocodingServiceError
        other 4xx or a body that is not JSON → no retry, GeocodingServiceError
        200 with zero features → LocationNotFoundError (counts as a success)
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.access_token = settings.mapbox_token if access_token is None else access_token
        self.base_url = (base_url or settings.mapbox_geocoding_url).rstrip("/")
        self._client = client
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.geocoding_timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def geocode(
        self,
        address: str,
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> GeocodeResult:
        """
        Resolve `address, city, state` to a (lng, lat) pair.

        Raises:
            LocationNotFoundError:   Mapbox found nothing
            GeocodingServiceError:   Mapbox unreachable or returned an error
            CircuitBreakerOpenError: too many recent failures
        """
        full_address = build_full_address(address, city, state)
        if not full_address:
            raise LocationNotFoundError(context={"reason": "empty address"})

        lookup_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        url = f"{self.base_url}/{quote(full_address, safe='')}.json"
        params = build_query_params(self.access_token, city, state)
        logger.info("[%s] Geocoding neighborhood address (city=%s, state=%s)", lookup_id, city, state)

        try:
            data = await self._fetch_with_retry(url, params, lookup_id)
        except (httpx.HTTPError, _RetryableStatus, ValueError) as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Geocoding failed: %s", lookup_id, str(e))
            raise GeocodingServiceError(
                retry_after=self.circuit_breaker.recovery_timeout
                if self.circuit_breaker.state == CircuitBreaker.OPEN
                else None,
                context={"lookup_id": lookup_id, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        features = data.get("features") or []
        logger.debug("[%s] Mapbox returned %d features", lookup_id, len(features))

        if not features:
            logger.warning("[%s] No features found for neighborhood address", lookup_id)
            raise LocationNotFoundError(context={"lookup_id": lookup_id})

        feature = select_feature(features, city, state)
        try:
            lng, lat = (float(v) for v in feature["center"])
        except (KeyError, TypeError, ValueError):
            raise GeocodingServiceError(context={"lookup_id": lookup_id, "reason": "feature without center"})

        return GeocodeResult(
            lng=lng,
            lat=lat,
            full_address=full_address,
            place_name=feature.get("place_name"),
            matched_city_state=matches_city_state(feature, city, state),
        )

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _fetch_with_retry(self, url: str, params: Dict[str, str], lookup_id: str) -> Dict[str, Any]:
        start_time = time.time()
        response = await self.client.get(url, params=params)
        duration_ms = (time.time() - start_time) * 1000

        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(
                "[%s] Mapbox HTTP %d after %.0fms", lookup_id, response.status_code, duration_ms
            )
            raise _RetryableStatus(response.status_code)
        response.raise_for_status()

        logger.info("[%s] Mapbox answered in %.0fms", lookup_id, duration_ms)
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("Mapbox response is not a JSON object")
        return data

    def health_check(self) -> str:
        """available / unconfigured / circuit_open. Makes no request."""
        if not self.access_token:
            return "unconfigured"
        if self.circuit_breaker.state == CircuitBreaker.OPEN:
            return "circuit_open"
        return "available"


# Shared so the circuit breaker state is process-wide
geocoder = MapboxGeocoder()
