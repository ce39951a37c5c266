"""Onboarding steps and the legal moves between them."""

from enum import Enum


class OnboardingStep(str, Enum):
    """Onboarding flow position. Values are the stored/wire spelling."""

    WELCOME = "welcome"
    LOGIN = "login"
    EMAIL_REGISTRATION = "email-registration"
    EMAIL_VERIFICATION = "email-verification"
    PHONE_VERIFICATION = "phone-verification"
    PHONE_OTP_VERIFICATION = "phone-otp-verification"
    LOCATION_SETUP = "location-setup"
    ESTATE_SELECTION = "estate-selection"
    PROFILE_SETUP = "profile-setup"
    COMPLETE = "complete"


# Steps from which federated sign-in may be started
FEDERATED_ENTRY_STEPS = frozenset(
    {
        OnboardingStep.WELCOME,
        OnboardingStep.LOGIN,
        OnboardingStep.EMAIL_REGISTRATION,
    }
)

# Where a federated sign-in can land
_FEDERATED_TARGETS = frozenset(
    {
        OnboardingStep.PHONE_VERIFICATION,
        OnboardingStep.LOCATION_SETUP,
        OnboardingStep.COMPLETE,
    }
)

TRANSITIONS: dict[OnboardingStep, frozenset[OnboardingStep]] = {
    OnboardingStep.WELCOME: frozenset(
        {
            OnboardingStep.LOGIN,
            OnboardingStep.EMAIL_REGISTRATION,
            OnboardingStep.PHONE_VERIFICATION,
        }
        | _FEDERATED_TARGETS
    ),
    OnboardingStep.LOGIN: frozenset(
        {
            OnboardingStep.EMAIL_VERIFICATION,
            OnboardingStep.PHONE_VERIFICATION,
            OnboardingStep.EMAIL_REGISTRATION,
        }
        | _FEDERATED_TARGETS
    ),
    OnboardingStep.EMAIL_REGISTRATION: frozenset(
        {OnboardingStep.EMAIL_VERIFICATION} | _FEDERATED_TARGETS
    ),
    OnboardingStep.EMAIL_VERIFICATION: frozenset(
        {OnboardingStep.PHONE_VERIFICATION, OnboardingStep.COMPLETE}
    ),
    OnboardingStep.PHONE_VERIFICATION: frozenset({OnboardingStep.PHONE_OTP_VERIFICATION}),
    OnboardingStep.PHONE_OTP_VERIFICATION: frozenset(
        {OnboardingStep.LOCATION_SETUP, OnboardingStep.COMPLETE}
    ),
    OnboardingStep.LOCATION_SETUP: frozenset({OnboardingStep.ESTATE_SELECTION}),
    OnboardingStep.ESTATE_SELECTION: frozenset({OnboardingStep.PROFILE_SETUP}),
    OnboardingStep.PROFILE_SETUP: frozenset({OnboardingStep.COMPLETE}),
    OnboardingStep.COMPLETE: frozenset(),
}

BACK: dict[OnboardingStep, OnboardingStep] = {
    OnboardingStep.LOGIN: OnboardingStep.WELCOME,
    OnboardingStep.EMAIL_REGISTRATION: OnboardingStep.WELCOME,
    OnboardingStep.EMAIL_VERIFICATION: OnboardingStep.EMAIL_REGISTRATION,
    OnboardingStep.PHONE_VERIFICATION: OnboardingStep.WELCOME,
    OnboardingStep.PHONE_OTP_VERIFICATION: OnboardingStep.PHONE_VERIFICATION,
    OnboardingStep.LOCATION_SETUP: OnboardingStep.PHONE_VERIFICATION,
    OnboardingStep.ESTATE_SELECTION: OnboardingStep.LOCATION_SETUP,
    OnboardingStep.PROFILE_SETUP: OnboardingStep.ESTATE_SELECTION,
}


def can_transition(current: OnboardingStep, target: OnboardingStep) -> bool:
    return target in TRANSITIONS[current]


def back_target(step: OnboardingStep, is_login_mode: bool = False) -> OnboardingStep | None:
    """
    Where "back" goes from step, or None for welcome and complete.

    Verification screens are shared by both branches, so login mode returns
    to the login screen instead of the registration form.
    """
    if is_login_mode and step in (OnboardingStep.EMAIL_VERIFICATION, OnboardingStep.PHONE_VERIFICATION):
        return OnboardingStep.LOGIN
    return BACK.get(step)
