"""
Neighborhood Hub Backend — Test Configuration (conftest.py)
===========================================================

What:  Shared pytest fixtures: mocked DB session, a signed-in user, sample
       onboarding data and an ASGI test client.
How:   Environment variables are set before anything under `app` is
       imported, so the `settings` singleton sees test values. No test talks
       to PostgreSQL, Google or Mapbox.

Fixtures:
    mock_db_session    AsyncMock standing in for AsyncSession
    session_user       a SessionUser with a fresh UUID
    auth_headers       "Authorization: Bearer <session token>" for that user
    sample_form        a complete, valid OnboardingForm payload (camelCase)
    mapbox_feature     a Mapbox feature with place/region context
    test_client        httpx AsyncClient bound to the app, DB dependency mocked
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id.apps.googleusercontent.com"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["SESSION_SECRET"] = "test-session-secret-with-enough-length-for-hs256"
os.environ["MAPBOX_TOKEN"] = "pk.test-token-not-real"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"
os.environ["LOG_LEVEL"] = "WARNING"

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.schemas.auth import SessionUser
from app.services.auth_service import issue_session_token


@pytest.fixture
def mock_db_session():
    """
    Mock async database session.

    Usage:
        result = MagicMock()
        result.scalar_one_or_none.return_value = row
        mock_db_session.execute.return_value = result
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def session_user():
    return SessionUser(
        id=uuid4(),
        email="resident@example.com",
        name="Pat Resident",
        image="https://lh3.googleusercontent.com/a/photo",
    )


@pytest.fixture
def auth_headers(session_user):
    token, _expires = issue_session_token(session_user)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sample_form():
    return {
        "neighborhoodName": "Maple Grove",
        "address": "123 Center St",
        "city": "Provo",
        "state": "UT",
        "interests": ["Events", "safety"],
        "communityType": "residential",
    }


@pytest.fixture
def mapbox_feature():
    return {
        "id": "address.123",
        "place_name": "123 Center St, Provo, Utah 84601, United States",
        "center": [-111.6585, 40.2338],
        "context": [
            {"id": "postcode.1", "text": "84601"},
            {"id": "place.2", "text": "Provo"},
            {"id": "region.3", "text": "UT"},
            {"id": "country.4", "text": "United States"},
        ],
    }


@pytest_asyncio.fixture
async def test_client(mock_db_session):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    `get_db_session` is overridden with `mock_db_session` for the duration
    of the test.
    """
    from app.database import get_db_session
    from app.main import app

    async def _mock_session():
        yield mock_db_session

    app.dependency_overrides[get_db_session] = _mock_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
