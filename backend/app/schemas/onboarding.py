"""
Neighborhood Hub Backend — Onboarding Schemas
=============================================

What:  The onboarding form, the wizard state exchanged with the browser, and
       the profile returned to the dashboard.
How:   JSON uses the browser form's camelCase names (`neighborhoodName`,
       `communityType`); snake_case is accepted as well.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import ConfigDict, Field, field_validator

from app.schemas.common import CamelModel


class CommunityType(str, Enum):
    RESIDENTIAL = "residential"
    MIXED = "mixed"
    COMMERCIAL = "commercial"
    RURAL = "rural"


COMMUNITY_TYPE_LABELS = {
    CommunityType.RESIDENTIAL: "Residential",
    CommunityType.MIXED: "Mixed Use",
    CommunityType.COMMERCIAL: "Commercial",
    CommunityType.RURAL: "Rural",
}

# Display order of the step-3 checkboxes; values are stored lowercased
INTEREST_OPTIONS = (
    "Events",
    "Safety",
    "Environment",
    "Education",
    "Sports",
    "Arts",
    "Food",
    "Business",
)
INTEREST_VALUES = tuple(option.lower() for option in INTEREST_OPTIONS)


class OnboardingForm(CamelModel):
    """The four text fields, the community type and the interest list."""

    neighborhood_name: str = Field(default="", max_length=255)
    address: str = Field(default="", max_length=255)
    city: str = Field(default="", max_length=120)
    state: str = Field(default="", max_length=120)
    interests: List[str] = Field(default_factory=list)
    community_type: CommunityType = Field(default=CommunityType.RESIDENTIAL)

    @field_validator("interests")
    @classmethod
    def normalize_interests(cls, v: List[str]) -> List[str]:
        """Lowercase, reject unknown options, drop repeats keeping first-seen order."""
        seen: List[str] = []
        for raw in v:
            interest = raw.strip().lower()
            if interest not in INTEREST_VALUES:
                raise ValueError(
                    f"Unknown interest '{raw}'. Must be one of: {', '.join(INTEREST_VALUES)}"
                )
            if interest not in seen:
                seen.append(interest)
        return seen


class StepRequest(CamelModel):
    """Body of POST /api/onboarding/next and /back: where the user is and what they typed."""
    step: int = Field(ge=1, le=3)
    form: OnboardingForm = Field(default_factory=OnboardingForm)


class OnboardingStepInfo(CamelModel):
    number: int
    title: str
    fields: List[str]
    required: List[str]


class OptionInfo(CamelModel):
    value: str
    label: str


class WizardState(CamelModel):
    """Everything the browser needs to render the current step."""
    step: int
    form: OnboardingForm
    can_go_back: bool
    submit_label: str
    ready: bool = Field(default=False, description="True once step 3 validated and the form can be completed")
    error: Optional[str] = None
    steps: List[OnboardingStepInfo] = Field(default_factory=list)
    interest_options: List[OptionInfo] = Field(default_factory=list)
    community_types: List[OptionInfo] = Field(default_factory=list)


class OnboardingStatus(CamelModel):
    """GET /api/onboarding: either "already done, go here" or a fresh wizard."""
    completed: bool
    redirect_to: Optional[str] = None
    wizard: Optional[WizardState] = None


class OnboardingCompleteResponse(CamelModel):
    message: str = "Profile saved"
    redirect_to: str = "/dashboard"


class NeighborhoodResponse(CamelModel):
    name: str
    address: str
    city: str
    state: str

    model_config = ConfigDict(from_attributes=True)


class ProfileResponse(CamelModel):
    user_id: uuid.UUID
    neighborhood_name: str
    address: str
    city: str
    state: str
    interests: List[str]
    community_type: CommunityType
    created_at: datetime
    updated_at: datetime
    neighborhood: Optional[NeighborhoodResponse] = None

    model_config = ConfigDict(from_attributes=True)
