"""
Neighborhood Hub Backend — Auth Route Handlers
==============================================

What:  Google sign-in redirect, OAuth callback, session lookup and sign-out.
How:   Thin wrappers around AuthService; cookies are set and cleared here
       because they are an HTTP concern.

Route Inventory:
    GET  /api/auth/signin/google     302 → Google consent screen
    GET  /api/auth/callback/google   302 → /onboarding or /dashboard
    GET  /api/auth/session           current user + expiry (401 if signed out)
    POST /api/auth/signout           clears the session cookie
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db_session
from app.dependencies import get_current_user
from app.exceptions import OAuthError
from app.schemas.auth import SessionResponse, SessionUser, SignOutResponse
from app.schemas.common import ErrorResponse
from app.services.auth_service import auth_service, new_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

# The state cookie only has to survive the round trip to Google
STATE_COOKIE_MAX_AGE = 600


def _frontend(path: str) -> str:
    return settings.frontend_url.rstrip("/") + path


@router.get(
    "/signin/google",
    status_code=302,
    summary="Start Google sign-in",
    responses={400: {"description": "Google sign-in not configured", "model": ErrorResponse}},
)
async def signin_google() -> RedirectResponse:
    state = new_state()
    response = RedirectResponse(url=auth_service.oauth.authorization_url(state), status_code=302)
    response.set_cookie(
        settings.oauth_state_cookie_name,
        state,
        max_age=STATE_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return response


@router.get(
    "/callback/google",
    status_code=302,
    summary="Google OAuth callback",
    responses={
        400: {"description": "OAuth round trip failed", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
)
async def callback_google(
    request: Request,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None, description="Set by Google when the user declines"),
    db: AsyncSession = Depends(get_db_session),
) -> RedirectResponse:
    """
    Finish sign-in and send the browser on.

    New users go to /onboarding; users with a saved profile go straight to
    /dashboard.
    """
    if error:
        logger.info("Google sign-in returned error=%s", error)
        raise OAuthError(message="Sign-in with Google was cancelled or denied.", context={"google_error": error})
    if not code:
        raise OAuthError(message="Missing authorization code from Google.")

    expected_state = request.cookies.get(settings.oauth_state_cookie_name)
    _user, token, _expires, next_path = await auth_service.sign_in(
        db=db, code=code, state=state, expected_state=expected_state
    )

    response = RedirectResponse(url=_frontend(next_path), status_code=302)
    response.delete_cookie(settings.oauth_state_cookie_name)
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_max_age,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return response


@router.get(
    "/session",
    response_model=SessionResponse,
    responses={401: {"description": "Not signed in", "model": ErrorResponse}},
    summary="Current session",
)
async def get_session(
    request: Request,
    user: SessionUser = Depends(get_current_user),
) -> SessionResponse:
    return SessionResponse(user=user, expires=request.state.session_expires)


@router.post(
    "/signout",
    response_model=SignOutResponse,
    summary="Sign out",
    description="Clears the session cookie. Safe to call when already signed out.",
)
async def signout(response: Response) -> SignOutResponse:
    response.delete_cookie(settings.session_cookie_name)
    return SignOutResponse()
