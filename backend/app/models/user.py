"""
Neighborhood Hub Backend — User SQLAlchemy Model
================================================

What:  The `users` table: one row per Google account that has signed in.
Why:   Profiles and neighborhoods hang off a stable internal UUID instead of
       the provider's subject id, so a second provider could be added later.
How:   Upserted on every successful OAuth callback; the row id becomes the
       `sub` claim of the session token.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )

    # ("google", <sub>) identifies the account at the provider
    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="google")
    provider_account_id: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    image: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint("provider", "provider_account_id", name="uq_users_provider_account"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, provider='{self.provider}', email='{self.email}')>"
