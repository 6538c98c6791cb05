"""
Neighborhood Hub Backend — Auth Schemas
=======================================
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.common import CamelModel


class GoogleUserInfo(BaseModel):
    """The fields we keep from Google's OpenID userinfo endpoint."""
    sub: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None


class SessionUser(BaseModel):
    """The signed-in user, as decoded from the session token."""
    id: uuid.UUID
    email: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None


class SessionResponse(BaseModel):
    user: SessionUser
    expires: datetime = Field(description="When the session token stops being accepted (UTC)")


class SignOutResponse(CamelModel):
    message: str = "Signed out"
    redirect_to: str = "/"
