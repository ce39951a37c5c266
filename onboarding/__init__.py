"""Onboarding flow: steps, ephemeral draft, forms and the state machine."""

from onboarding.steps import OnboardingStep, TRANSITIONS, BACK, can_transition, back_target
from onboarding.draft import OnboardingDraft, DraftStore
from onboarding.forms import (
    CodeForm,
    EstateForm,
    LocationForm,
    LoginForm,
    PhoneForm,
    ProfileForm,
    RegistrationForm,
)
from onboarding.machine import OnboardingStateMachine, StepOutcome
