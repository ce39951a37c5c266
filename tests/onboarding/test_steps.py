"""Tests for the onboarding step graph."""

import pytest

from onboarding.steps import BACK, TRANSITIONS, OnboardingStep, back_target, can_transition


class TestTransitions:

    def test_every_step_has_an_entry(self):
        assert set(TRANSITIONS) == set(OnboardingStep)

    def test_complete_is_terminal(self):
        assert TRANSITIONS[OnboardingStep.COMPLETE] == frozenset()

    @pytest.mark.parametrize(
        "current,target",
        [
            (OnboardingStep.WELCOME, OnboardingStep.LOGIN),
            (OnboardingStep.WELCOME, OnboardingStep.EMAIL_REGISTRATION),
            (OnboardingStep.LOGIN, OnboardingStep.EMAIL_VERIFICATION),
            (OnboardingStep.EMAIL_REGISTRATION, OnboardingStep.EMAIL_VERIFICATION),
            (OnboardingStep.EMAIL_VERIFICATION, OnboardingStep.PHONE_VERIFICATION),
            (OnboardingStep.PHONE_VERIFICATION, OnboardingStep.PHONE_OTP_VERIFICATION),
            (OnboardingStep.PHONE_OTP_VERIFICATION, OnboardingStep.LOCATION_SETUP),
            (OnboardingStep.LOCATION_SETUP, OnboardingStep.ESTATE_SELECTION),
            (OnboardingStep.ESTATE_SELECTION, OnboardingStep.PROFILE_SETUP),
            (OnboardingStep.PROFILE_SETUP, OnboardingStep.COMPLETE),
        ],
    )
    def test_forward_moves(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (OnboardingStep.WELCOME, OnboardingStep.PROFILE_SETUP),
            (OnboardingStep.EMAIL_REGISTRATION, OnboardingStep.PHONE_OTP_VERIFICATION),
            (OnboardingStep.LOCATION_SETUP, OnboardingStep.COMPLETE),
            (OnboardingStep.COMPLETE, OnboardingStep.WELCOME),
        ],
    )
    def test_skips_are_illegal(self, current, target):
        assert not can_transition(current, target)

    @pytest.mark.parametrize(
        "entry", [OnboardingStep.WELCOME, OnboardingStep.LOGIN, OnboardingStep.EMAIL_REGISTRATION]
    )
    def test_federated_entries_reach_every_landing(self, entry):
        for target in (OnboardingStep.PHONE_VERIFICATION, OnboardingStep.LOCATION_SETUP, OnboardingStep.COMPLETE):
            assert can_transition(entry, target)


class TestBackTarget:

    def test_registration_branch(self):
        assert back_target(OnboardingStep.EMAIL_VERIFICATION) is OnboardingStep.EMAIL_REGISTRATION
        assert back_target(OnboardingStep.PHONE_OTP_VERIFICATION) is OnboardingStep.PHONE_VERIFICATION

    def test_login_branch_returns_to_login(self):
        assert back_target(OnboardingStep.EMAIL_VERIFICATION, is_login_mode=True) is OnboardingStep.LOGIN
        assert back_target(OnboardingStep.PHONE_VERIFICATION, is_login_mode=True) is OnboardingStep.LOGIN

    @pytest.mark.parametrize("step", [OnboardingStep.WELCOME, OnboardingStep.COMPLETE])
    def test_no_back_from_ends(self, step):
        assert back_target(step) is None

    def test_back_never_lands_on_complete(self):
        assert OnboardingStep.COMPLETE not in BACK.values()
