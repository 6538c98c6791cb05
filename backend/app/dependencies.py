"""
Request-scoped dependencies shared by the routers.
"""

from typing import Optional

from fastapi import Request

from app.config import settings
from app.exceptions import AuthenticationError
from app.schemas.auth import SessionUser
from app.services.auth_service import decode_session_token


def _session_token(request: Request) -> Optional[str]:
    # Cookie first (browser), then "Authorization: Bearer" (scripts, tests)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value:
        return value.strip()
    return None


async def get_current_user(request: Request) -> SessionUser:
    """Signed-in user or AuthenticationError (401 with login_url)."""
    token = _session_token(request)
    if not token:
        raise AuthenticationError(login_url=settings.login_path)
    user, expires = decode_session_token(token)
    request.state.session_expires = expires
    return user
