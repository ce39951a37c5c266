"""
Onboarding state machine.

Sequences a visitor through one identity path and into location and
profile completion. Each step with a form has one handler in an
enum-keyed table; the machine alone decides which step comes next.

A step only advances after its call succeeds. On failure the machine stays
put, keeps every draft field, and exposes the classified error.

Reaching ``complete`` commits in a fixed order: session write, then draft
clear, then navigation. An interruption after the first write leaves a
valid session, so a reload lands on the authenticated surface.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator

import redis
from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from api.base import ErrorKind
from auth.challenge import VerificationChallenge
from auth.config import AuthConfig
from auth.exceptions import InvalidTransitionError
from auth.providers import EmailCodeAdapter, GoogleCredentialPrompt, GoogleSignInAdapter, PhoneCodeAdapter
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.session_store import SessionStore
from auth.types import AuthProvider, DeliveryChannel, IdentityResult, OtpPurpose
from clients.identity_client import IdentityServiceClient
from core.event_bus import EventBus
from core.events import OnboardingCompleted
from onboarding.draft import DraftStore
from onboarding.forms import (
    CodeForm,
    EstateForm,
    FormModel,
    LocationForm,
    LoginForm,
    PhoneForm,
    ProfileForm,
    RegistrationForm,
    first_error_message,
)
from onboarding.steps import FEDERATED_ENTRY_STEPS, OnboardingStep, back_target, can_transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepOutcome:
    """Result of one onboarding action."""

    step: OnboardingStep
    error: ErrorKind | None = None
    message: str | None = None
    destination: str | None = None
    retry_after_seconds: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class OnboardingStateMachine:
    """Drives one device's onboarding flow over its DraftStore and SessionStore."""

    def __init__(
        self,
        draft_store: DraftStore,
        session_store: SessionStore,
        email_adapter: EmailCodeAdapter,
        phone_adapter: PhoneCodeAdapter,
        google_adapter: GoogleSignInAdapter,
        client: IdentityServiceClient,
        config: AuthConfig,
        security_logger: SecurityLogger,
        event_bus: EventBus | None = None,
        navigate: Callable[[str], None] | None = None,
    ):
        self._draft = draft_store
        self._session = session_store
        self._email_adapter = email_adapter
        self._phone_adapter = phone_adapter
        self._google_adapter = google_adapter
        self._client = client
        self._config = config
        self._security_logger = security_logger
        self._event_bus = event_bus
        self._navigate = navigate

        self._challenge: VerificationChallenge | None = None
        self._last_error: ErrorKind | None = None
        self._busy = 0
        self._completed = False

        self._handlers: dict[OnboardingStep, tuple[type[FormModel], Callable[[Any], StepOutcome]]] = {
            OnboardingStep.LOGIN: (LoginForm, self._submit_login),
            OnboardingStep.EMAIL_REGISTRATION: (RegistrationForm, self._submit_registration),
            OnboardingStep.EMAIL_VERIFICATION: (CodeForm, self._submit_email_code),
            OnboardingStep.PHONE_VERIFICATION: (PhoneForm, self._submit_phone),
            OnboardingStep.PHONE_OTP_VERIFICATION: (CodeForm, self._submit_phone_code),
            OnboardingStep.LOCATION_SETUP: (LocationForm, self._submit_location),
            OnboardingStep.ESTATE_SELECTION: (EstateForm, self._submit_estate),
            OnboardingStep.PROFILE_SETUP: (ProfileForm, self._submit_profile),
        }

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def current_step(self) -> OnboardingStep:
        if self._completed:
            return OnboardingStep.COMPLETE
        return self._draft.current_step

    @property
    def last_error(self) -> ErrorKind | None:
        return self._last_error

    @property
    def is_loading(self) -> bool:
        return self._busy > 0 or self._session.is_loading

    @property
    def challenge(self) -> VerificationChallenge | None:
        """Outstanding code request on the current verification step, if any."""
        return self._challenge

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _working(self) -> Iterator[None]:
        self._busy += 1
        try:
            yield
        finally:
            self._busy -= 1

    def _move(self, target: OnboardingStep) -> StepOutcome:
        current = self.current_step
        if not can_transition(current, target):
            raise InvalidTransitionError(current.value, target.value)
        self._draft.set_step(target)
        self._last_error = None
        return StepOutcome(step=target)

    def _fail(
        self,
        kind: ErrorKind,
        message: str | None = None,
        retry_after_seconds: int | None = None,
    ) -> StepOutcome:
        self._last_error = kind
        logger.info(f"Onboarding step {self.current_step.value} failed: {kind.value}")
        return StepOutcome(
            step=self.current_step,
            error=kind,
            message=message,
            retry_after_seconds=retry_after_seconds,
        )

    def _commit_identity(self, identity: IdentityResult, provider: AuthProvider) -> StepOutcome | None:
        """Write identity into the session. Returns a failure outcome, or None."""
        try:
            committed = self._session.apply_identity(identity, provider)
        except (redis.RedisError, ValidationError):
            logger.exception(f"Failed to commit {provider.value} session during onboarding")
            return self._fail(ErrorKind.NETWORK_ERROR, "Could not save your session. Please try again.")
        if not committed:
            return self._fail(
                self._session.last_error or ErrorKind.PROVIDER_REJECTED,
                "Sign-in response did not include a session",
            )
        return None

    def _finish(self, identity: IdentityResult | None = None, provider: AuthProvider | None = None) -> StepOutcome:
        """
        Terminal transition: session, then draft, then navigation.

        identity is None when the session was already written by a login action.
        """
        current = self.current_step
        if not can_transition(current, OnboardingStep.COMPLETE):
            raise InvalidTransitionError(current.value, OnboardingStep.COMPLETE.value)

        if identity is not None:
            failure = self._commit_identity(identity, provider or AuthProvider.LOCAL)
            if failure is not None:
                return failure

        try:
            self._draft.reset()
        except redis.RedisError:
            # The draft key expires on its own; the session is already valid
            logger.exception("Failed to clear onboarding draft after sign-in")

        self._completed = True
        self._challenge = None
        self._last_error = None

        user = self._session.user
        user_id = user.id if user else None
        destination = self._config.authenticated_destination
        self._security_logger.log(
            SecurityEvent.ONBOARDING_COMPLETED,
            user_id=user_id,
            device_id=self._session.device_id,
        )
        if self._event_bus is not None:
            self._event_bus.publish(OnboardingCompleted.create(user_id, destination))

        if self._navigate is not None:
            try:
                self._navigate(destination)
            except Exception:
                logger.exception(f"Navigation to {destination} failed after onboarding completed")

        return StepOutcome(step=OnboardingStep.COMPLETE, destination=destination)

    def _login_failure(self) -> StepOutcome:
        kind = self._session.last_error or ErrorKind.NETWORK_ERROR
        return self._fail(kind, "Verification failed. Please try again.")

    # ------------------------------------------------------------------
    # Entry branches
    # ------------------------------------------------------------------

    def start_login(self) -> StepOutcome:
        outcome = self._move(OnboardingStep.LOGIN)
        self._draft.set_login_mode(True)
        return outcome

    def start_registration(self) -> StepOutcome:
        outcome = self._move(OnboardingStep.EMAIL_REGISTRATION)
        self._draft.set_login_mode(False)
        return outcome

    def choose_phone_login(self) -> StepOutcome:
        outcome = self._move(OnboardingStep.PHONE_VERIFICATION)
        self._draft.set_login_mode(True)
        return outcome

    # ------------------------------------------------------------------
    # Form submission
    # ------------------------------------------------------------------

    def submit(self, data: dict[str, Any] | None = None) -> StepOutcome:
        """
        Validate the current step's form and run its handler.

        Raises:
            InvalidTransitionError: If the current step has no form.
        """
        step = self.current_step
        if step not in self._handlers:
            raise InvalidTransitionError(step.value, "submit")

        form_cls, handler = self._handlers[step]
        try:
            form = form_cls.model_validate(
                data or {},
                context={"code_length": self._config.otp_code_length},
            )
        except ValidationError as e:
            return self._fail(ErrorKind.VALIDATION, first_error_message(e))

        with self._working():
            return handler(form)

    def _submit_login(self, form: LoginForm) -> StepOutcome:
        result = self._email_adapter.request_code(form.email, OtpPurpose.LOGIN)
        if not result.ok:
            return self._fail(result.kind, result.message, result.retry_after_seconds)

        self._challenge = result.data
        self._draft.set_login_mode(True)
        self._draft.merge_user({"email": result.data.target})
        return self._move(OnboardingStep.EMAIL_VERIFICATION)

    def _submit_registration(self, form: RegistrationForm) -> StepOutcome:
        result = self._email_adapter.request_code(form.email, OtpPurpose.REGISTRATION)
        if not result.ok:
            return self._fail(result.kind, result.message, result.retry_after_seconds)

        self._challenge = result.data
        self._draft.set_login_mode(False)
        self._draft.merge_user(
            {
                "email": result.data.target,
                "first_name": form.first_name,
                "last_name": form.last_name,
            }
        )
        return self._move(OnboardingStep.EMAIL_VERIFICATION)

    def _submit_email_code(self, form: CodeForm) -> StepOutcome:
        draft = self._draft.draft
        email = draft.partial_user.get("email")
        if not email:
            return self._fail(ErrorKind.VALIDATION, "Email is missing. Please go back and enter it again.")

        if draft.is_login_mode:
            if not self._session.login_with_email(email, form.code):
                return self._login_failure()
            return self._finish()

        profile = {
            "firstName": draft.partial_user.get("first_name"),
            "lastName": draft.partial_user.get("last_name"),
        }
        result = self._email_adapter.verify_code(
            email,
            form.code,
            OtpPurpose.REGISTRATION,
            profile={key: value for key, value in profile.items() if value},
        )
        if not result.ok:
            return self._fail(result.kind, result.message)

        failure = self._commit_identity(result.data, AuthProvider.LOCAL)
        if failure is not None:
            return failure

        user = result.data.user
        self._draft.merge_user({"id": result.data.user_id, "is_verified": user.is_verified if user else None})
        self._challenge = None
        return self._move(OnboardingStep.PHONE_VERIFICATION)

    def _submit_phone(self, form: PhoneForm) -> StepOutcome:
        draft = self._draft.draft
        purpose = OtpPurpose.LOGIN if draft.is_login_mode else OtpPurpose.REGISTRATION
        email = None if draft.is_login_mode else draft.partial_user.get("email")

        result = self._phone_adapter.request_code(form.phone, purpose, form.channel, email)
        if not result.ok:
            return self._fail(result.kind, result.message, result.retry_after_seconds)

        self._challenge = result.data
        self._draft.set_phone_number(result.data.target)
        return self._move(OnboardingStep.PHONE_OTP_VERIFICATION)

    def _submit_phone_code(self, form: CodeForm) -> StepOutcome:
        draft = self._draft.draft
        phone = draft.phone_number
        if not phone:
            return self._fail(ErrorKind.VALIDATION, "Phone number is missing. Please go back and enter it again.")

        if draft.is_login_mode:
            if not self._session.login_with_phone(phone, form.code):
                return self._login_failure()
            return self._finish()

        signed_in = self._session.user
        user_id = signed_in.id if signed_in else draft.partial_user.get("id")
        result = self._phone_adapter.verify_code(phone, form.code, OtpPurpose.REGISTRATION, user_id)
        if not result.ok:
            return self._fail(result.kind, result.message)

        # Verified with nothing new: the session from the email or Google step stands
        if result.data.tokens is not None or result.data.user is not None:
            # Keep the provider that started the session (email or Google)
            failure = self._commit_identity(result.data, self._session.auth_provider or AuthProvider.PHONE)
            if failure is not None:
                return failure

        user = result.data.user
        if user is not None:
            self._draft.merge_user(
                {
                    "id": user.id,
                    "phone_number": user.phone_number,
                    "phone_verified": user.phone_verified,
                    "is_verified": user.is_verified,
                }
            )
        self._challenge = None
        return self._move(OnboardingStep.LOCATION_SETUP)

    def _submit_location(self, form: LocationForm) -> StepOutcome:
        self._draft.merge_location(form.model_dump(exclude_none=True))
        return self._move(OnboardingStep.ESTATE_SELECTION)

    def _submit_estate(self, form: EstateForm) -> StepOutcome:
        self._draft.merge_location({"estate_id": form.estate_id})
        return self._move(OnboardingStep.PROFILE_SETUP)

    def _submit_profile(self, form: ProfileForm) -> StepOutcome:
        location = self._draft.draft.location_data
        if not location.get("estate_id"):
            return self._fail(ErrorKind.VALIDATION, "Estate selection is missing. Please go back and select your estate.")
        if not self._session.is_authenticated:
            return self._fail(ErrorKind.UNAUTHORIZED, "Your session has expired. Please sign in again.")

        profile = form.model_dump(exclude_none=True)
        self._draft.merge_user(profile)

        fields = {
            "state_id": location.get("state_id"),
            "lga_id": location.get("lga_id"),
            # The estate is stored as the user's neighborhood
            "neighborhood_id": location["estate_id"],
            "city_town": location.get("city_town"),
            "address": location.get("address"),
            "latitude": location.get("latitude"),
            "longitude": location.get("longitude"),
            **profile,
        }
        payload = {to_camel(key): value for key, value in fields.items() if value is not None}

        result = self._client.complete_registration(self._session.access_token, payload)
        if not result.ok:
            return self._fail(result.kind, result.message)

        data = result.data
        identity = None
        if data.user is not None:
            identity = IdentityResult(
                user_id=data.user.id,
                tokens=data.token_pair(),
                user=data.user,
                is_new_user=True,
                requires_onboarding=False,
            )
        return self._finish(identity, self._session.auth_provider or AuthProvider.LOCAL)

    # ------------------------------------------------------------------
    # Federated sign-in
    # ------------------------------------------------------------------

    def continue_with_google(self, prompt: GoogleCredentialPrompt) -> StepOutcome:
        """
        Sign in with Google from an entry step.

        Returning, fully verified users finish immediately. Everyone else
        keeps the session and continues with phone verification (or
        location setup when the phone is already verified).

        Raises:
            InvalidTransitionError: If called outside an entry step.
        """
        current = self.current_step
        if current not in FEDERATED_ENTRY_STEPS:
            raise InvalidTransitionError(current.value, "google-sign-in")

        with self._working():
            result = self._google_adapter.sign_in(prompt)
            if not result.ok:
                return self._fail(result.kind, result.message)

            identity = result.data
            failure = self._commit_identity(identity, AuthProvider.GOOGLE)
            if failure is not None:
                return failure

            if not identity.requires_onboarding:
                return self._finish()

            user = identity.user
            self._draft.set_login_mode(False)
            self._draft.merge_user(
                {
                    "id": identity.user_id,
                    "email": user.email if user else None,
                    "first_name": user.first_name if user else None,
                    "last_name": user.last_name if user else None,
                }
            )
            if user is not None and user.phone_verified:
                return self._move(OnboardingStep.LOCATION_SETUP)
            return self._move(OnboardingStep.PHONE_VERIFICATION)

    # ------------------------------------------------------------------
    # Resend, back, reset
    # ------------------------------------------------------------------

    def resend_code(self, channel: DeliveryChannel | None = None) -> StepOutcome:
        """
        Resend the code for the current verification step.

        Within the cool-down this returns a rate_limited outcome without any
        network call. After a reload there is no challenge in memory, so a
        fresh code is requested. channel switches a phone code between SMS
        and WhatsApp.

        Raises:
            InvalidTransitionError: If the current step is not a code entry step.
        """
        step = self.current_step
        draft = self._draft.draft
        purpose = OtpPurpose.LOGIN if draft.is_login_mode else OtpPurpose.REGISTRATION

        with self._working():
            if step is OnboardingStep.EMAIL_VERIFICATION:
                if self._challenge is not None:
                    result = self._email_adapter.resend_code(self._challenge)
                else:
                    result = self._email_adapter.request_code(draft.partial_user.get("email", ""), purpose)
            elif step is OnboardingStep.PHONE_OTP_VERIFICATION:
                email = None if draft.is_login_mode else draft.partial_user.get("email")
                challenge = self._challenge
                if challenge is not None and channel is not None and channel is not challenge.channel:
                    challenge = VerificationChallenge(
                        target=challenge.target,
                        purpose=challenge.purpose,
                        channel=channel,
                        cooldown_seconds=challenge.cooldown_seconds,
                        issued_at=challenge.issued_at,
                    )
                if challenge is not None:
                    result = self._phone_adapter.resend_code(challenge, email)
                else:
                    result = self._phone_adapter.request_code(
                        draft.phone_number or "", purpose, channel or DeliveryChannel.SMS, email
                    )
            else:
                raise InvalidTransitionError(step.value, "resend-code")

        if not result.ok:
            return self._fail(result.kind, result.message, result.retry_after_seconds)

        self._challenge = result.data
        self._last_error = None
        return StepOutcome(step=step)

    def back(self) -> StepOutcome:
        """Go to the previous step. Draft fields are kept."""
        current = self.current_step
        target = back_target(current, self._draft.draft.is_login_mode)
        if target is None:
            return StepOutcome(step=current)

        self._draft.set_step(target)
        self._challenge = None
        self._last_error = None
        return StepOutcome(step=target)

    def reset(self) -> None:
        """Abandon the flow. The durable session is untouched."""
        self._draft.reset()
        self._challenge = None
        self._last_error = None
        self._completed = False
