"""
Neighborhood Hub Backend — Profile Service
==========================================

What:  Reads and writes the onboarding results (`user_profiles` and
       `neighborhoods`).
Why:   Completing onboarding is the only write path in the app; keeping it
       here lets routes stay HTTP-only and lets tests run without a database.
How:   PostgreSQL `INSERT ... ON CONFLICT (user_id) DO UPDATE` for both rows,
       executed on the request session. The session dependency commits
       both upserts together or rolls both back.

Completion Flow (POST /api/onboarding/complete):
    ┌───────────┐    ┌──────────────┐    ┌────────────────┐    ┌──────────┐
    │ Validate  │───▶│   Upsert     │───▶│    Upsert      │───▶│ Redirect │
    │ all steps │    │ user_profiles│    │ neighborhoods  │    │/dashboard│
    └───────────┘    └──────────────┘    └────────────────┘    └──────────┘
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DatabaseError, NotFoundError
from app.models.profile import Neighborhood, UserProfile
from app.schemas.onboarding import (
    NeighborhoodResponse,
    OnboardingCompleteResponse,
    OnboardingForm,
    ProfileResponse,
)
from app.services.onboarding_wizard import OnboardingWizard

logger = logging.getLogger(__name__)

SAVE_ERROR_MESSAGE = "An error occurred while saving your profile"
DASHBOARD_PATH = "/dashboard"


class ProfileService:
    """
    Stateless service; every method takes the request's AsyncSession.

    Error Handling:
        SQLAlchemy errors are logged with the user id and re-raised as
        DatabaseError carrying a message the onboarding page can show.
    """

    async def has_completed_onboarding(self, db: AsyncSession, user_id: uuid.UUID) -> bool:
        try:
            result = await db.execute(
                select(UserProfile.user_id).where(UserProfile.user_id == user_id)
            )
            return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            logger.error("Database error checking onboarding for %s: %s", user_id, str(e))
            raise DatabaseError(context={"user_id": str(user_id)})

    async def complete_onboarding(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        form: OnboardingForm,
    ) -> OnboardingCompleteResponse:
        """
        Validate the whole form, then upsert the profile and the neighborhood.

        Both rows get `updated_at = now`. `created_at` is written on first
        insert only; the conflict branch leaves it alone.

        Raises:
            ValidationError: a required field from any step is blank
            DatabaseError:   either upsert failed (message is user-facing)
        """
        OnboardingWizard(step=3, form=form).validate_all()

        now = datetime.now(timezone.utc)
        logger.info(
            "Saving onboarding for user %s: neighborhood=%r, community_type=%s, %d interests",
            user_id,
            form.neighborhood_name,
            form.community_type.value,
            len(form.interests),
        )

        try:
            await self._upsert_profile(db, user_id, form, now)
        except SQLAlchemyError as e:
            logger.error("Profile upsert failed for %s: %s", user_id, str(e), exc_info=True)
            raise DatabaseError(
                message=SAVE_ERROR_MESSAGE,
                context={"user_id": str(user_id), "table": "user_profiles", "error_type": type(e).__name__},
            )

        try:
            await self._upsert_neighborhood(db, user_id, form, now)
        except SQLAlchemyError as e:
            logger.error("Neighborhood upsert failed for %s: %s", user_id, str(e), exc_info=True)
            raise DatabaseError(
                message=SAVE_ERROR_MESSAGE,
                context={"user_id": str(user_id), "table": "neighborhoods", "error_type": type(e).__name__},
            )

        logger.info("Onboarding saved for user %s, redirecting to %s", user_id, DASHBOARD_PATH)
        return OnboardingCompleteResponse(message="Profile saved", redirect_to=DASHBOARD_PATH)

    async def _upsert_profile(
        self, db: AsyncSession, user_id: uuid.UUID, form: OnboardingForm, now: datetime
    ) -> None:
        values = {
            "user_id": user_id,
            "neighborhood_name": form.neighborhood_name.strip(),
            "address": form.address.strip(),
            "city": form.city.strip(),
            "state": form.state.strip(),
            "interests": list(form.interests),
            "community_type": form.community_type.value,
            "created_at": now,
            "updated_at": now,
        }
        stmt = pg_insert(UserProfile).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserProfile.user_id],
            set_={k: stmt.excluded[k] for k in values if k not in ("user_id", "created_at")},
        )
        await db.execute(stmt)

    async def _upsert_neighborhood(
        self, db: AsyncSession, user_id: uuid.UUID, form: OnboardingForm, now: datetime
    ) -> None:
        values = {
            "user_id": user_id,
            "name": form.neighborhood_name.strip(),
            "address": form.address.strip(),
            "city": form.city.strip(),
            "state": form.state.strip(),
            "created_at": now,
            "updated_at": now,
        }
        stmt = pg_insert(Neighborhood).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Neighborhood.user_id],
            set_={k: stmt.excluded[k] for k in values if k not in ("user_id", "created_at")},
        )
        await db.execute(stmt)

    async def get_neighborhood(self, db: AsyncSession, user_id: uuid.UUID) -> Neighborhood:
        try:
            result = await db.execute(
                select(Neighborhood).where(Neighborhood.user_id == user_id)
            )
            neighborhood = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error fetching neighborhood for %s: %s", user_id, str(e))
            raise DatabaseError(
                message="Could not load your neighborhood. Please try again.",
                context={"user_id": str(user_id)},
            )
        if neighborhood is None:
            raise NotFoundError(resource="neighborhood", resource_id=str(user_id))
        return neighborhood

    async def get_profile(self, db: AsyncSession, user_id: uuid.UUID) -> ProfileResponse:
        """Profile plus neighborhood for the dashboard; NotFoundError before onboarding."""
        try:
            result = await db.execute(
                select(UserProfile).where(UserProfile.user_id == user_id)
            )
            profile = result.scalar_one_or_none()
            if profile is None:
                raise NotFoundError(resource="profile", resource_id=str(user_id))

            result = await db.execute(
                select(Neighborhood).where(Neighborhood.user_id == user_id)
            )
            neighborhood = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error fetching profile for %s: %s", user_id, str(e))
            raise DatabaseError(
                message="Could not load your profile. Please try again.",
                context={"user_id": str(user_id)},
            )

        return ProfileResponse(
            user_id=profile.user_id,
            neighborhood_name=profile.neighborhood_name,
            address=profile.address,
            city=profile.city,
            state=profile.state,
            interests=list(profile.interests or []),
            community_type=profile.community_type,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
            neighborhood=(
                NeighborhoodResponse(
                    name=neighborhood.name,
                    address=neighborhood.address,
                    city=neighborhood.city,
                    state=neighborhood.state,
                )
                if neighborhood is not None
                else None
            ),
        )


profile_service = ProfileService()
