"""
Neighborhood Hub Backend — Onboarding Route Handlers
====================================================

What:  The server side of the three-step onboarding form.
How:   The browser keeps the form while the user types and posts
       `{step, form}` on every button press. Each handler rebuilds an
       OnboardingWizard, applies one transition, and returns the new state.

Route Inventory:
    GET  /api/onboarding            already onboarded? else a fresh wizard
    POST /api/onboarding/next       "Next" / "Complete" button
    POST /api/onboarding/back       "Back" button
    POST /api/onboarding/complete   persist profile + neighborhood
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import get_current_user
from app.schemas.auth import SessionUser
from app.schemas.common import ErrorResponse
from app.schemas.onboarding import (
    OnboardingCompleteResponse,
    OnboardingForm,
    OnboardingStatus,
    StepRequest,
    WizardState,
)
from app.services.onboarding_wizard import OnboardingWizard
from app.services.profile_service import DASHBOARD_PATH, profile_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/onboarding", tags=["Onboarding"])

_AUTH_RESPONSES = {401: {"description": "Not signed in", "model": ErrorResponse}}


@router.get(
    "",
    response_model=OnboardingStatus,
    response_model_exclude_none=True,
    responses=_AUTH_RESPONSES,
    summary="Onboarding status",
    description=(
        "Users who already saved a profile get `completed: true` and a redirect to the "
        "dashboard; everyone else gets an empty wizard at step 1."
    ),
)
async def get_onboarding(
    user: SessionUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> OnboardingStatus:
    if await profile_service.has_completed_onboarding(db, user.id):
        return OnboardingStatus(completed=True, redirect_to=DASHBOARD_PATH)
    return OnboardingStatus(completed=False, wizard=OnboardingWizard().to_state())


@router.post(
    "/next",
    response_model=WizardState,
    responses={
        400: {"description": "A required field on this step is blank", "model": ErrorResponse},
        **_AUTH_RESPONSES,
    },
    summary="Validate the current step and move forward",
)
async def next_step(
    body: StepRequest,
    user: SessionUser = Depends(get_current_user),
) -> WizardState:
    """On step 3 the step does not change; `ready` turns true instead."""
    wizard = OnboardingWizard(step=body.step, form=body.form)
    ready = wizard.advance()
    return wizard.to_state(ready=ready)


@router.post(
    "/back",
    response_model=WizardState,
    responses=_AUTH_RESPONSES,
    summary="Go back one step",
)
async def previous_step(
    body: StepRequest,
    user: SessionUser = Depends(get_current_user),
) -> WizardState:
    wizard = OnboardingWizard(step=body.step, form=body.form)
    wizard.back()
    return wizard.to_state()


@router.post(
    "/complete",
    response_model=OnboardingCompleteResponse,
    responses={
        400: {"description": "A required field is blank", "model": ErrorResponse},
        500: {"description": "Profile could not be saved", "model": ErrorResponse},
        **_AUTH_RESPONSES,
    },
    summary="Save the onboarding form",
    description=(
        "Upserts the user's profile and neighborhood, then tells the browser to go to "
        "the dashboard."
    ),
)
async def complete_onboarding(
    form: OnboardingForm,
    user: SessionUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> OnboardingCompleteResponse:
    return await profile_service.complete_onboarding(db=db, user_id=user.id, form=form)
