"""
Neighborhood Hub Backend — Onboarding Wizard
============================================

What:  The three-step onboarding form as a small state machine.
Why:   The browser renders one step at a time, but the rules for moving
       between steps (which fields are required, when "Next" becomes
       "Complete") live here so the API can enforce them.
How:   Pure Python, no I/O. Routes rebuild a wizard from the step number and
       form the browser sends, apply one transition and send the new state back.

State Machine:
    ┌────────┐ advance ┌────────┐ advance ┌────────┐ advance
    │ step 1 │────────▶│ step 2 │────────▶│ step 3 │────────▶ ready to submit
    │  name  │◀────────│address │◀────────│interests│
    └────────┘  back   └────────┘  back   └────────┘

    advance() validates only the current step. back() never validates.
    validate_all() re-checks every step before the form is persisted.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from app.exceptions import ValidationError
from app.schemas.onboarding import (
    COMMUNITY_TYPE_LABELS,
    INTEREST_OPTIONS,
    INTEREST_VALUES,
    CommunityType,
    OnboardingForm,
    OnboardingStepInfo,
    OptionInfo,
    WizardState,
)


@dataclass(frozen=True)
class Step:
    number: int
    title: str
    fields: Tuple[str, ...]
    required: Tuple[str, ...]


STEPS: Tuple[Step, ...] = (
    Step(1, "Neighborhood", ("neighborhood_name",), ("neighborhood_name",)),
    Step(
        2,
        "Location",
        ("address", "city", "state", "community_type"),
        ("address", "city", "state", "community_type"),
    ),
    Step(3, "Interests", ("interests",), ()),
)

FIRST_STEP = STEPS[0].number
LAST_STEP = STEPS[-1].number

FIELD_LABELS = {
    "neighborhood_name": "Neighborhood Name",
    "address": "Street Address",
    "city": "City",
    "state": "State",
    "community_type": "Community Type",
    "interests": "Interests",
}

# Fields update_field() may set directly; interests go through toggle_interest()
_SCALAR_FIELDS = ("neighborhood_name", "address", "city", "state", "community_type")


def get_step(number: int) -> Step:
    for step in STEPS:
        if step.number == number:
            return step
    raise ValidationError(
        message=f"Step {number} does not exist. Steps run from {FIRST_STEP} to {LAST_STEP}.",
        field="step",
    )


class OnboardingWizard:
    """
    One user's pass through the onboarding form.

    Attributes:
        step:           Current step number (1-3)
        form:           The values entered so far
        is_submitting:  True between begin_submit() and finish_submit()
        error:          Message from the last failed submit, shown above the form
    """

    def __init__(self, step: int = FIRST_STEP, form: Optional[OnboardingForm] = None):
        get_step(step)
        self.step = step
        self.form = form or OnboardingForm()
        self.is_submitting = False
        self.error: Optional[str] = None

    # ── Field edits ───────────────────────────────────────────────────────

    def update_field(self, name: str, value: Any) -> None:
        if name not in _SCALAR_FIELDS:
            raise ValidationError(message=f"Unknown onboarding field '{name}'", field=name)
        if name == "community_type":
            try:
                value = CommunityType(value)
            except ValueError:
                raise ValidationError(
                    message=f"Community type '{value}' is not supported",
                    field=name,
                    context={"allowed": [c.value for c in CommunityType]},
                )
        else:
            value = "" if value is None else str(value)
        self.form = self.form.model_copy(update={name: value})

    def toggle_interest(self, interest: str) -> List[str]:
        """Add the interest if absent, remove it if present. Returns the new list."""
        value = interest.strip().lower()
        if value not in INTEREST_VALUES:
            raise ValidationError(
                message=f"Interest '{interest}' is not one of the offered options",
                field="interests",
                context={"allowed": list(INTEREST_VALUES)},
            )
        interests = list(self.form.interests)
        if value in interests:
            interests.remove(value)
        else:
            interests.append(value)
        self.form = self.form.model_copy(update={"interests": interests})
        return interests

    # ── Validation ────────────────────────────────────────────────────────

    def missing_fields(self, step_number: Optional[int] = None) -> List[str]:
        step = get_step(self.step if step_number is None else step_number)
        missing = []
        for name in step.required:
            value = getattr(self.form, name)
            if isinstance(value, str) and not value.strip():
                missing.append(name)
            elif value is None:
                missing.append(name)
        return missing

    def validate_step(self, step_number: Optional[int] = None) -> None:
        number = self.step if step_number is None else step_number
        missing = self.missing_fields(number)
        if missing:
            labels = ", ".join(FIELD_LABELS[name] for name in missing)
            raise ValidationError(
                message=f"Please fill in: {labels}",
                field=missing[0],
                context={"step": number, "missing": missing},
            )

    def validate_all(self) -> None:
        for step in STEPS:
            self.validate_step(step.number)

    # ── Transitions ───────────────────────────────────────────────────────

    def advance(self) -> bool:
        """
        Handle the primary button.

        Returns False after moving to the next step, True when the current
        step is the last one and the form is ready to be submitted. Raises
        ValidationError without moving when a required field is blank.
        """
        self.validate_step()
        if self.step < LAST_STEP:
            self.step += 1
            return False
        return True

    def back(self) -> None:
        if self.step > FIRST_STEP:
            self.step -= 1

    def begin_submit(self) -> None:
        self.validate_all()
        self.is_submitting = True
        self.error = None

    def finish_submit(self, error: Optional[str] = None) -> None:
        self.is_submitting = False
        self.error = error

    # ── Presentation ──────────────────────────────────────────────────────

    @property
    def can_go_back(self) -> bool:
        return self.step > FIRST_STEP

    @property
    def is_last_step(self) -> bool:
        return self.step == LAST_STEP

    @property
    def submit_label(self) -> str:
        if self.is_submitting:
            return "Saving..."
        return "Complete" if self.is_last_step else "Next"

    def to_state(self, ready: bool = False) -> WizardState:
        return WizardState(
            step=self.step,
            form=self.form,
            can_go_back=self.can_go_back,
            submit_label=self.submit_label,
            ready=ready,
            error=self.error,
            steps=[
                OnboardingStepInfo(
                    number=s.number,
                    title=s.title,
                    fields=list(s.fields),
                    required=list(s.required),
                )
                for s in STEPS
            ],
            interest_options=[
                OptionInfo(value=option.lower(), label=option) for option in INTEREST_OPTIONS
            ],
            community_types=[
                OptionInfo(value=ctype.value, label=label)
                for ctype, label in COMMUNITY_TYPE_LABELS.items()
            ],
        )
