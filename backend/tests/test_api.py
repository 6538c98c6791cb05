"""
Neighborhood Hub Backend — API Endpoint Tests
=============================================

What:  Routes, exception handlers and middleware through the ASGI app.
How:   httpx AsyncClient over ASGITransport (see conftest.test_client);
       Mapbox and Google are patched at the module the route imports them
       into, the database session is the mocked AsyncSession.

What we test:
    ✅ Anonymous requests get 401 with a loginUrl
    ✅ Google sign-in redirect, callback and sign-out cookies
    ✅ Onboarding status, next/back transitions and completion
    ✅ Neighborhood map, geocoding errors → 404 / 503
    ✅ Health status levels, request id header, rate limiting
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from app.config import settings
from app.exceptions import CircuitBreakerOpenError, GeocodingServiceError, LocationNotFoundError
from app.middleware.rate_limit import RateLimitMiddleware
from app.schemas.map import GeocodeResult


def _result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _geocode_result() -> GeocodeResult:
    return GeocodeResult(
        lng=-111.6585,
        lat=40.2338,
        full_address="123 Center St, Provo, UT",
        place_name="123 Center St, Provo, Utah 84601, United States",
        matched_city_state=True,
    )


class TestAuthentication:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/onboarding"),
            ("POST", "/api/onboarding/next"),
            ("POST", "/api/onboarding/complete"),
            ("GET", "/api/profile"),
            ("GET", "/api/neighborhood/map"),
            ("GET", "/api/auth/session"),
        ],
    )
    async def test_requires_sign_in(self, test_client, method, path):
        response = await test_client.request(method, path, json={"step": 1})

        assert response.status_code == 401
        body = response.json()
        assert body["error"] == "unauthenticated"
        assert body["details"] == {"loginUrl": "/auth/login"}

    @pytest.mark.asyncio
    async def test_invalid_token(self, test_client):
        response = await test_client.get(
            "/api/auth/session", headers={"Authorization": "Bearer tampered"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_session(self, test_client, auth_headers, session_user):
        response = await test_client.get("/api/auth/session", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["user"]["id"] == str(session_user.id)
        assert body["user"]["email"] == "resident@example.com"
        assert "expires" in body

    @pytest.mark.asyncio
    async def test_session_cookie_accepted(self, test_client, auth_headers):
        token = auth_headers["Authorization"].split(" ", 1)[1]
        test_client.cookies.set(settings.session_cookie_name, token)

        response = await test_client.get("/api/auth/session")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_signin_redirects_to_google(self, test_client):
        response = await test_client.get("/api/auth/signin/google")

        assert response.status_code == 302
        location = urlparse(response.headers["location"])
        assert location.netloc == "accounts.google.com"
        state = parse_qs(location.query)["state"][0]
        assert f"{settings.oauth_state_cookie_name}={state}" in response.headers["set-cookie"]

    @pytest.mark.asyncio
    async def test_callback_with_google_error(self, test_client):
        response = await test_client.get("/api/auth/callback/google?error=access_denied")

        assert response.status_code == 400
        assert response.json()["error"] == "oauth_error"

    @pytest.mark.asyncio
    async def test_callback_sets_session_and_redirects(self, test_client, session_user):
        expires = datetime.now(timezone.utc) + timedelta(days=30)
        with patch("app.routes.auth.auth_service") as mock_auth:
            mock_auth.sign_in = AsyncMock(
                return_value=(session_user, "session-token", expires, "/onboarding")
            )
            test_client.cookies.set(settings.oauth_state_cookie_name, "s1")
            response = await test_client.get("/api/auth/callback/google?code=c1&state=s1")

        assert response.status_code == 302
        assert response.headers["location"] == "http://localhost:3000/onboarding"
        cookies = response.headers.get_list("set-cookie")
        assert any(c.startswith(f"{settings.session_cookie_name}=session-token") for c in cookies)
        kwargs = mock_auth.sign_in.await_args.kwargs
        assert kwargs["state"] == "s1"
        assert kwargs["expected_state"] == "s1"

    @pytest.mark.asyncio
    async def test_signout_clears_cookie(self, test_client):
        response = await test_client.post("/api/auth/signout")

        assert response.status_code == 200
        assert response.json() == {"message": "Signed out", "redirectTo": "/"}
        cookie = response.headers["set-cookie"]
        assert cookie.startswith(f"{settings.session_cookie_name}=")
        assert "Max-Age=0" in cookie


class TestOnboardingRoutes:

    @pytest.mark.asyncio
    async def test_status_for_new_user(self, test_client, auth_headers, mock_db_session):
        mock_db_session.execute.return_value = _result(None)

        response = await test_client.get("/api/onboarding", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["completed"] is False
        assert body["wizard"]["step"] == 1
        assert body["wizard"]["submitLabel"] == "Next"
        assert body["wizard"]["form"]["communityType"] == "residential"
        assert len(body["wizard"]["interestOptions"]) == 8

    @pytest.mark.asyncio
    async def test_status_for_onboarded_user(self, test_client, auth_headers, mock_db_session, session_user):
        mock_db_session.execute.return_value = _result(session_user.id)

        response = await test_client.get("/api/onboarding", headers=auth_headers)

        assert response.json() == {"completed": True, "redirectTo": "/dashboard"}

    @pytest.mark.asyncio
    async def test_next_requires_neighborhood_name(self, test_client, auth_headers):
        response = await test_client.post(
            "/api/onboarding/next", json={"step": 1, "form": {}}, headers=auth_headers
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["message"] == "Please fill in: Neighborhood Name"
        assert body["details"] == {"field": "neighborhoodName", "missing": ["neighborhoodName"]}

    @pytest.mark.asyncio
    async def test_validation_details_name_only_the_gaps(self, test_client, auth_headers):
        response = await test_client.post(
            "/api/onboarding/next",
            json={"step": 2, "form": {"neighborhoodName": "Maple Grove", "city": "Provo"}},
            headers=auth_headers,
        )

        assert response.status_code == 400
        body = response.json()
        assert body["details"] == {"field": "address", "missing": ["address", "state"]}
        assert "requestId" in body

    @pytest.mark.asyncio
    async def test_next_moves_forward(self, test_client, auth_headers):
        response = await test_client.post(
            "/api/onboarding/next",
            json={"step": 1, "form": {"neighborhoodName": "Maple Grove"}},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["step"] == 2
        assert body["canGoBack"] is True
        assert body["form"]["neighborhoodName"] == "Maple Grove"

    @pytest.mark.asyncio
    async def test_next_on_last_step_is_ready(self, test_client, auth_headers, sample_form):
        response = await test_client.post(
            "/api/onboarding/next", json={"step": 3, "form": sample_form}, headers=auth_headers
        )

        body = response.json()
        assert body["step"] == 3
        assert body["ready"] is True
        assert body["submitLabel"] == "Complete"

    @pytest.mark.asyncio
    async def test_back(self, test_client, auth_headers, sample_form):
        response = await test_client.post(
            "/api/onboarding/back", json={"step": 2, "form": sample_form}, headers=auth_headers
        )

        body = response.json()
        assert body["step"] == 1
        assert body["canGoBack"] is False
        assert body["form"]["city"] == "Provo"

    @pytest.mark.asyncio
    async def test_unknown_interest_is_422(self, test_client, auth_headers, sample_form):
        sample_form["interests"] = ["Knitting"]
        response = await test_client.post(
            "/api/onboarding/complete", json=sample_form, headers=auth_headers
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_complete(self, test_client, auth_headers, sample_form, mock_db_session):
        response = await test_client.post(
            "/api/onboarding/complete", json=sample_form, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {"message": "Profile saved", "redirectTo": "/dashboard"}
        assert mock_db_session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_complete_save_failure(self, test_client, auth_headers, sample_form, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("INSERT", {}, Exception("db down"))

        response = await test_client.post(
            "/api/onboarding/complete", json=sample_form, headers=auth_headers
        )

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "server_error"
        assert body["message"] == "An error occurred while saving your profile"
        assert "db down" not in response.text


class TestNeighborhoodRoutes:

    def _saved_neighborhood(self, mock_db_session):
        neighborhood = MagicMock(address="123 Center St", city="Provo", state="UT")
        neighborhood.name = "Maple Grove"
        mock_db_session.execute.return_value = _result(neighborhood)

    @pytest.mark.asyncio
    async def test_neighborhood_map(self, test_client, auth_headers, mock_db_session):
        self._saved_neighborhood(mock_db_session)
        with patch("app.routes.neighborhood.geocoder") as mock_geocoder:
            mock_geocoder.geocode = AsyncMock(return_value=_geocode_result())
            response = await test_client.get("/api/neighborhood/map", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["cache-control"] == "private, max-age=300"
        body = response.json()
        assert body["neighborhoodName"] == "Maple Grove"
        assert body["flyTo"] == {"center": [-111.6585, 40.2338], "zoom": 15.0, "duration": 2000}
        assert body["initialView"] == {"center": [-74.5, 40.0], "zoom": 12.0}
        assert body["marker"]["lngLat"] == [-111.6585, 40.2338]
        assert body["layers"][1]["source-layer"] == "admin"
        fill = body["layers"][0]
        assert fill["id"] == "neighborhood-fill"
        assert "filter" not in fill
        assert "source-layer" not in fill
        mock_geocoder.geocode.assert_awaited_once_with(address="123 Center St", city="Provo", state="UT")

    @pytest.mark.asyncio
    async def test_map_before_onboarding(self, test_client, auth_headers, mock_db_session):
        mock_db_session.execute.return_value = _result(None)

        response = await test_client.get("/api/neighborhood/map", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_map_location_not_found(self, test_client, auth_headers, mock_db_session):
        self._saved_neighborhood(mock_db_session)
        with patch("app.routes.neighborhood.geocoder") as mock_geocoder:
            mock_geocoder.geocode = AsyncMock(side_effect=LocationNotFoundError())
            response = await test_client.get("/api/neighborhood/map", headers=auth_headers)

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "location_not_found"
        assert body["message"] == "Could not find the specified location"

    @pytest.mark.asyncio
    async def test_map_geocoder_down(self, test_client, auth_headers, mock_db_session):
        self._saved_neighborhood(mock_db_session)
        with patch("app.routes.neighborhood.geocoder") as mock_geocoder:
            mock_geocoder.geocode = AsyncMock(side_effect=GeocodingServiceError())
            response = await test_client.get("/api/neighborhood/map", headers=auth_headers)

        assert response.status_code == 503
        assert response.json()["message"] == "Failed to load map data"

    @pytest.mark.asyncio
    async def test_map_circuit_open(self, test_client, auth_headers, mock_db_session):
        self._saved_neighborhood(mock_db_session)
        with patch("app.routes.neighborhood.geocoder") as mock_geocoder:
            mock_geocoder.geocode = AsyncMock(side_effect=CircuitBreakerOpenError(recovery_time=42))
            response = await test_client.get("/api/neighborhood/map", headers=auth_headers)

        assert response.status_code == 503
        assert response.headers["retry-after"] == "42"
        assert response.json()["error"] == "service_unavailable"

    @pytest.mark.asyncio
    async def test_geocode(self, test_client, auth_headers):
        with patch("app.routes.neighborhood.geocoder") as mock_geocoder:
            mock_geocoder.geocode = AsyncMock(return_value=_geocode_result())
            response = await test_client.get(
                "/api/geocode",
                params={"address": "123 Center St", "city": "Provo", "state": "UT"},
                headers=auth_headers,
            )

        assert response.status_code == 200
        assert response.json()["lng"] == -111.6585

    @pytest.mark.asyncio
    async def test_geocode_requires_address(self, test_client, auth_headers):
        response = await test_client.get("/api/geocode", headers=auth_headers)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_map_config_is_public(self, test_client):
        response = await test_client.get("/api/map/config")

        assert response.status_code == 200
        body = response.json()
        assert body["accessToken"] == "pk.test-token-not-real"
        assert body["initialView"] == {"center": [-74.5, 40.0], "zoom": 12.0}


class TestHealthAndMiddleware:

    @pytest.mark.asyncio
    async def test_health_healthy(self, test_client):
        engine = MagicMock()
        engine.connect.return_value.__aenter__.return_value = AsyncMock()
        with patch("app.database.engine", engine), \
             patch("app.services.geocoding_service.geocoder") as mock_geocoder:
            mock_geocoder.health_check.return_value = "available"
            response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["geocoder"] == "available"
        assert "uptimeSeconds" in body

    @pytest.mark.asyncio
    async def test_health_unhealthy_without_database(self, test_client):
        engine = MagicMock()
        engine.connect.side_effect = OSError("connection refused")
        with patch("app.database.engine", engine), \
             patch("app.services.geocoding_service.geocoder") as mock_geocoder:
            mock_geocoder.health_check.return_value = "circuit_open"
            response = await test_client.get("/health")

        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["database"] == "disconnected"

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.get("/api/map/config", headers={"X-Request-ID": "abc123"})
        assert response.headers["x-request-id"] == "abc123"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, test_client):
        response = await test_client.get("/api/map/config")
        assert len(response.headers["x-request-id"]) == 8

    @pytest.mark.asyncio
    async def test_rate_limit(self, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_requests", 2)
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware)

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            assert (await client.get("/ping")).status_code == 200
            assert (await client.get("/ping")).status_code == 200
            response = await client.get("/ping")

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limit_exceeded"
        assert int(response.headers["retry-after"]) > 0

    @pytest.mark.asyncio
    async def test_rate_limit_body_echoes_caller_request_id(self, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_requests", 1)
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware)

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            await client.get("/ping")
            tagged = await client.get("/ping", headers={"X-Request-ID": "rl-1"})
            untagged = await client.get("/ping")

        assert tagged.status_code == 429
        body = tagged.json()
        assert body["requestId"] == "rl-1"
        assert set(body["details"]) == {"retryAfter"}
        assert "requestId" not in untagged.json()
