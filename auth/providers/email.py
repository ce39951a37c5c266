"""Email one-time-code adapter."""

import logging
from typing import Any

from pydantic import EmailStr, TypeAdapter, ValidationError

from api.base import ApiResult, Err, ErrorKind, Ok
from auth.challenge import VerificationChallenge
from auth.config import AuthConfig
from auth.exceptions import InvalidContactError, RateLimitedError
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.types import DeliveryChannel, IdentityResult, OtpPurpose
from clients.identity_client import IdentityServiceClient

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


def normalize_email(email: str) -> str:
    """
    Lowercase, trim and syntax-check an email address.

    Raises:
        InvalidContactError: If the address is malformed.
    """
    candidate = (email or "").strip().lower()
    try:
        return _email_adapter.validate_python(candidate)
    except ValidationError:
        raise InvalidContactError("email", "Please enter a valid email address")


def validate_code(code: str) -> str:
    """
    Raises:
        InvalidContactError: If the code is blank or not all digits.
    """
    code = (code or "").strip()
    if not code or not code.isdigit():
        raise InvalidContactError("code", "Please enter the verification code")
    return code


class EmailCodeAdapter:
    """Requests and verifies email codes, normalizing to IdentityResult."""

    def __init__(
        self,
        client: IdentityServiceClient,
        config: AuthConfig,
        security_logger: SecurityLogger,
    ):
        self._client = client
        self._config = config
        self._security_logger = security_logger

    def request_code(self, email: str, purpose: OtpPurpose) -> ApiResult[VerificationChallenge]:
        """Trigger delivery of a code to email."""
        try:
            email = normalize_email(email)
        except InvalidContactError as e:
            return Err(ErrorKind.VALIDATION, str(e))

        result = self._client.request_email_code(email, purpose.value)
        if not result.ok:
            self._security_logger.log(
                SecurityEvent.OTP_REQUEST_FAILED,
                contact=email,
                details={"channel": "email", "purpose": purpose.value, "reason": result.kind.value},
            )
            return result

        self._security_logger.log(
            SecurityEvent.OTP_REQUESTED,
            contact=email,
            details={"channel": "email", "purpose": purpose.value},
        )
        return Ok(
            VerificationChallenge(
                target=email,
                purpose=purpose,
                channel=DeliveryChannel.EMAIL,
                cooldown_seconds=self._config.resend_cooldown_seconds,
            )
        )

    def resend_code(self, challenge: VerificationChallenge) -> ApiResult[VerificationChallenge]:
        """Resend once the challenge's cool-down has elapsed."""
        try:
            challenge.check_resend()
        except RateLimitedError as e:
            return Err(ErrorKind.RATE_LIMITED, str(e), retry_after_seconds=e.retry_after_seconds)
        return self.request_code(challenge.target, challenge.purpose)

    def verify_code(
        self,
        email: str,
        code: str,
        purpose: OtpPurpose,
        profile: dict[str, Any] | None = None,
    ) -> ApiResult[IdentityResult]:
        """
        Verify a code. Registration also submits the profile fields
        (firstName, lastName, preferredLanguage).
        """
        try:
            email = normalize_email(email)
            code = validate_code(code)
        except InvalidContactError as e:
            return Err(ErrorKind.VALIDATION, str(e))

        if purpose is OtpPurpose.REGISTRATION:
            profile = {"preferredLanguage": "en", **(profile or {})}

        result = self._client.verify_email_code(email, code, purpose.value, profile)
        if not result.ok:
            self._security_logger.log(
                SecurityEvent.OTP_FAILED,
                contact=email,
                details={"channel": "email", "reason": result.kind.value},
            )
            return result

        data = result.data
        if data.verified is False:
            self._security_logger.log(
                SecurityEvent.OTP_FAILED,
                contact=email,
                details={"channel": "email", "reason": ErrorKind.INVALID_CODE.value},
            )
            return Err(ErrorKind.INVALID_CODE, "Invalid verification code")
        if data.user is None:
            logger.error("Email verification succeeded without a user payload")
            return Err(ErrorKind.PROVIDER_REJECTED, "Verification response did not include a user")

        is_new_user = data.is_new_user if data.is_new_user is not None else purpose is OtpPurpose.REGISTRATION
        self._security_logger.log(
            SecurityEvent.OTP_VERIFIED,
            contact=email,
            user_id=data.user.id,
            details={"channel": "email", "purpose": purpose.value},
        )
        return Ok(
            IdentityResult(
                user_id=data.user.id,
                tokens=data.token_pair(),
                user=data.user,
                is_new_user=is_new_user,
                requires_onboarding=purpose is OtpPurpose.REGISTRATION,
            )
        )
