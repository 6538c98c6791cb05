"""
Neighborhood Hub Backend — Google Sign-In and Sessions
======================================================

What:  Drives the OAuth 2.0 authorization-code flow against Google and issues
       the signed session token the rest of the API trusts.
Why:   Google does the authentication; we only need to know which `users` row
       a browser belongs to.
How:   httpx for the token exchange and userinfo calls (tenacity retry on
       transport errors), PyJWT (HS256) for the session token, a PostgreSQL
       upsert for the `users` row.

Sign-in Flow:
    Browser ── GET /api/auth/signin/google ──▶ 302 accounts.google.com (state)
    Google  ── GET /api/auth/callback/google?code&state ──▶
        1. state == cookie state?           (else OAuthError)
        2. POST oauth2.googleapis.com/token (code → access_token)
        3. GET  openidconnect userinfo      (sub, email, name, picture)
        4. upsert users (google, sub)       → users.id
        5. session JWT {sub: users.id, …}   → HttpOnly cookie
        6. 302 /onboarding or /dashboard
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from urllib.parse import urlencode

import httpx
import jwt
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import settings
from app.exceptions import AuthenticationError, DatabaseError, OAuthError
from app.models.user import User
from app.schemas.auth import GoogleUserInfo, SessionUser
from app.services.profile_service import DASHBOARD_PATH, profile_service

logger = logging.getLogger(__name__)

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_SCOPES = "openid email profile"
PROVIDER = "google"
ONBOARDING_PATH = "/onboarding"
SESSION_ALGORITHM = "HS256"


def new_state() -> str:
    """Unguessable value tying the callback to the browser that started sign-in."""
    return secrets.token_urlsafe(32)


# ══════════════════════════════════════════════════════════════════════════
# Session tokens
# ══════════════════════════════════════════════════════════════════════════

def issue_session_token(user: SessionUser, now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """Sign a session for `user`; `sub` carries the users.id UUID."""
    issued = now or datetime.now(timezone.utc)
    expires = issued + timedelta(seconds=settings.session_max_age)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "name": user.name,
        "picture": user.image,
        "iat": issued,
        "exp": expires,
    }
    token = jwt.encode(payload, settings.session_secret, algorithm=SESSION_ALGORITHM)
    return token, expires


def decode_session_token(token: str) -> Tuple[SessionUser, datetime]:
    """
    Verify signature and expiry.

    Raises:
        AuthenticationError: token missing, tampered with, expired, or malformed
    """
    try:
        payload = jwt.decode(
            token,
            settings.session_secret,
            algorithms=[SESSION_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
        user = SessionUser(
            id=uuid.UUID(payload["sub"]),
            email=payload.get("email"),
            name=payload.get("name"),
            image=payload.get("picture"),
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError(
            message="Your session has expired. Please sign in again.",
            login_url=settings.login_path,
        )
    except (jwt.InvalidTokenError, ValueError) as e:
        logger.warning("Rejected session token: %s", type(e).__name__)
        raise AuthenticationError(login_url=settings.login_path)

    return user, datetime.fromtimestamp(payload["exp"], tz=timezone.utc)


# ══════════════════════════════════════════════════════════════════════════
# Google OAuth client
# ══════════════════════════════════════════════════════════════════════════

class GoogleOAuthClient:
    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.client_id = settings.google_client_id if client_id is None else client_id
        self.client_secret = settings.google_client_secret if client_secret is None else client_secret
        self.redirect_uri = redirect_uri or settings.oauth_redirect_url
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=10.0)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def authorization_url(self, state: str) -> str:
        if not self.client_id:
            raise OAuthError(message="Google sign-in is not configured on this server.")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": GOOGLE_SCOPES,
            "state": state,
            "access_type": "online",
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(initial=settings.retry_min_wait, max=settings.retry_max_wait, jitter=1),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _post_token(self, code: str) -> httpx.Response:
        return await self.client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
            headers={"Accept": "application/json"},
        )

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(initial=settings.retry_min_wait, max=settings.retry_max_wait, jitter=1),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _get_userinfo(self, access_token: str) -> httpx.Response:
        return await self.client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def exchange_code(self, code: str) -> str:
        """Trade the authorization code for an access token."""
        try:
            response = await self._post_token(code)
        except httpx.HTTPError as e:
            logger.error("Google token endpoint unreachable: %s", str(e))
            raise OAuthError(context={"stage": "token", "error_type": type(e).__name__})

        if response.status_code != 200:
            logger.warning("Google token exchange rejected with HTTP %d", response.status_code)
            raise OAuthError(context={"stage": "token", "status": response.status_code})

        try:
            access_token = response.json()["access_token"]
        except (ValueError, KeyError):
            raise OAuthError(context={"stage": "token", "reason": "no access_token"})
        return access_token

    async def fetch_userinfo(self, access_token: str) -> GoogleUserInfo:
        try:
            response = await self._get_userinfo(access_token)
        except httpx.HTTPError as e:
            logger.error("Google userinfo endpoint unreachable: %s", str(e))
            raise OAuthError(context={"stage": "userinfo", "error_type": type(e).__name__})

        if response.status_code != 200:
            logger.warning("Google userinfo rejected with HTTP %d", response.status_code)
            raise OAuthError(context={"stage": "userinfo", "status": response.status_code})

        try:
            return GoogleUserInfo.model_validate(response.json())
        except ValueError:
            raise OAuthError(context={"stage": "userinfo", "reason": "unexpected payload"})


# ══════════════════════════════════════════════════════════════════════════
# Auth service
# ══════════════════════════════════════════════════════════════════════════

class AuthService:
    def __init__(self, oauth_client: Optional[GoogleOAuthClient] = None):
        self.oauth = oauth_client or GoogleOAuthClient()

    async def upsert_user(self, db: AsyncSession, info: GoogleUserInfo) -> SessionUser:
        """Insert or refresh the users row for this Google account; returns its id."""
        now = datetime.now(timezone.utc)
        stmt = pg_insert(User).values(
            provider=PROVIDER,
            provider_account_id=info.sub,
            email=info.email,
            name=info.name,
            image=info.picture,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[User.provider, User.provider_account_id],
            set_={
                "email": stmt.excluded.email,
                "name": stmt.excluded.name,
                "image": stmt.excluded.image,
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(User.id)

        try:
            result = await db.execute(stmt)
            user_id = result.scalar_one()
        except SQLAlchemyError as e:
            logger.error("User upsert failed: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not complete sign-in. Please try again.",
                context={"error_type": type(e).__name__},
            )

        return SessionUser(id=user_id, email=info.email, name=info.name, image=info.picture)

    async def sign_in(
        self,
        db: AsyncSession,
        code: str,
        state: Optional[str],
        expected_state: Optional[str],
    ) -> Tuple[SessionUser, str, datetime, str]:
        """
        Complete the callback leg.

        Returns (user, session token, expiry, path to send the browser to).
        """
        if not state or not expected_state or not secrets.compare_digest(state, expected_state):
            logger.warning("OAuth callback with missing or mismatched state")
            raise OAuthError(
                message="Sign-in session expired or was tampered with. Please try again.",
                context={"stage": "state"},
            )

        access_token = await self.oauth.exchange_code(code)
        info = await self.oauth.fetch_userinfo(access_token)
        user = await self.upsert_user(db, info)
        token, expires = issue_session_token(user)

        completed = await profile_service.has_completed_onboarding(db, user.id)
        next_path = DASHBOARD_PATH if completed else ONBOARDING_PATH
        logger.info("User %s signed in with Google, next=%s", user.id, next_path)
        return user, token, expires, next_path


auth_service = AuthService()
