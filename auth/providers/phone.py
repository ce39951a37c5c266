"""Phone one-time-code adapter (SMS or WhatsApp)."""

import logging
import re

from api.base import ApiResult, Err, ErrorKind, Ok
from auth.challenge import VerificationChallenge
from auth.config import AuthConfig
from auth.exceptions import InvalidContactError, RateLimitedError
from auth.providers.email import validate_code
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.types import DeliveryChannel, IdentityResult, OtpPurpose
from clients.identity_client import IdentityServiceClient

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str, country_code: str = "234", national_length: int = 10) -> str:
    """
    Reduce any accepted spelling of a number to +<country><national>.

    "08012345678", "8012345678", "+234 801 234 5678" and "002348012345678"
    all become "+2348012345678".

    Raises:
        InvalidContactError: If what remains is not exactly national_length digits.
    """
    digits = _NON_DIGITS.sub("", raw or "")

    # International dialing prefix
    if digits.startswith("00"):
        digits = digits[2:]
    if digits.startswith(country_code) and len(digits) > national_length:
        digits = digits[len(country_code):]
    # Trunk prefix
    if digits.startswith("0"):
        digits = digits[1:]

    if len(digits) != national_length:
        raise InvalidContactError(
            "phone",
            f"Please enter a valid phone number ({national_length} digits after +{country_code})",
        )
    return f"+{country_code}{digits}"


class PhoneCodeAdapter:
    """Requests and verifies phone codes. Owns the single normalization rule."""

    def __init__(
        self,
        client: IdentityServiceClient,
        config: AuthConfig,
        security_logger: SecurityLogger,
    ):
        self._client = client
        self._config = config
        self._security_logger = security_logger

    def normalize(self, phone: str) -> str:
        return normalize_phone(
            phone,
            country_code=self._config.default_country_code,
            national_length=self._config.national_number_length,
        )

    def request_code(
        self,
        phone: str,
        purpose: OtpPurpose,
        channel: DeliveryChannel = DeliveryChannel.SMS,
        email: str | None = None,
    ) -> ApiResult[VerificationChallenge]:
        """Trigger delivery over SMS or WhatsApp."""
        if channel not in (DeliveryChannel.SMS, DeliveryChannel.WHATSAPP):
            return Err(ErrorKind.VALIDATION, f"Unsupported channel for phone codes: {channel.value}")
        try:
            phone = self.normalize(phone)
        except InvalidContactError as e:
            return Err(ErrorKind.VALIDATION, str(e))

        result = self._client.request_phone_code(phone, purpose.value, channel.value, email)
        if not result.ok:
            self._security_logger.log(
                SecurityEvent.OTP_REQUEST_FAILED,
                contact=phone,
                details={"channel": channel.value, "purpose": purpose.value, "reason": result.kind.value},
            )
            return result

        self._security_logger.log(
            SecurityEvent.OTP_REQUESTED,
            contact=phone,
            details={"channel": channel.value, "purpose": purpose.value},
        )
        return Ok(
            VerificationChallenge(
                target=phone,
                purpose=purpose,
                channel=channel,
                cooldown_seconds=self._config.resend_cooldown_seconds,
            )
        )

    def resend_code(
        self,
        challenge: VerificationChallenge,
        email: str | None = None,
    ) -> ApiResult[VerificationChallenge]:
        """Resend over the same channel once the cool-down has elapsed."""
        try:
            challenge.check_resend()
        except RateLimitedError as e:
            return Err(ErrorKind.RATE_LIMITED, str(e), retry_after_seconds=e.retry_after_seconds)
        return self.request_code(challenge.target, challenge.purpose, challenge.channel, email)

    def verify_code(
        self,
        phone: str,
        code: str,
        purpose: OtpPurpose,
        user_id: str | None = None,
    ) -> ApiResult[IdentityResult]:
        """
        Check a phone OTP.

        Login needs a user in the response to start a session. Registration
        may come back verified with no user or tokens; the account is then
        the one already signed in, identified by user_id.
        """
        try:
            phone = self.normalize(phone)
            code = validate_code(code)
        except InvalidContactError as e:
            return Err(ErrorKind.VALIDATION, str(e))

        result = self._client.verify_phone_code(phone, code, purpose.value)
        if not result.ok:
            self._security_logger.log(
                SecurityEvent.OTP_FAILED,
                contact=phone,
                details={"channel": "phone", "reason": result.kind.value},
            )
            return result

        data = result.data
        if not data.verified:
            self._security_logger.log(
                SecurityEvent.OTP_FAILED,
                contact=phone,
                details={"channel": "phone", "reason": ErrorKind.INVALID_CODE.value},
            )
            return Err(ErrorKind.INVALID_CODE, "Invalid verification code")
        if data.user is None and purpose is OtpPurpose.LOGIN:
            logger.error("Phone login verified without a user payload")
            return Err(ErrorKind.PROVIDER_REJECTED, "Verification response did not include a user")

        verified_user_id = data.user.id if data.user else (user_id or "")
        self._security_logger.log(
            SecurityEvent.OTP_VERIFIED,
            contact=phone,
            user_id=verified_user_id or None,
            details={"channel": "phone", "purpose": purpose.value},
        )
        return Ok(
            IdentityResult(
                user_id=verified_user_id,
                tokens=data.token_pair(),
                user=data.user,
                is_new_user=purpose is OtpPurpose.REGISTRATION,
                requires_onboarding=purpose is OtpPurpose.REGISTRATION,
            )
        )
