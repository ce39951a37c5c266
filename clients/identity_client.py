"""
HTTP client for the remote identity/verification service.

Issues one-time codes, verifies them, exchanges federated tokens, refreshes
credentials and resolves the current user. Never raises on a failed call:
every method returns ``Ok(payload)`` or a classified ``Err``.
"""

import logging
from typing import Any, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from api.base import APIResponse, ApiResult, Err, ErrorKind, Ok, SERVER_ERROR_CODES
from api.schemas import (
    EmailVerifyData,
    GoogleAuthData,
    PhoneVerifyData,
    RegistrationCompleteData,
    TokenPair,
    User,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class IdentityServiceClient:
    """Talks JSON over HTTP to the identity service."""

    DEVICE_TYPE = "web"

    def __init__(self, base_url: str, timeout_seconds: int = 10):
        """
        Initialize with the service base URL.

        Args:
            base_url: e.g. https://api.example.com/api (no trailing slash needed)
            timeout_seconds: Per-request timeout

        Raises:
            ValueError: If base_url is empty
        """
        if not base_url:
            raise ValueError("base_url is required")

        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def _classify(
        self,
        status_code: int,
        envelope: APIResponse | None,
        default_kind: ErrorKind,
        authenticated: bool,
    ) -> ErrorKind:
        """Map an HTTP failure onto the client error taxonomy."""
        message = envelope.error_message().lower() if envelope else ""

        if envelope is not None and envelope.error is not None and envelope.error.code:
            known = SERVER_ERROR_CODES.get(envelope.error.code.upper())
            if known is not None:
                return known

        if status_code == 401 and authenticated:
            return ErrorKind.TOKEN_EXPIRED if "expired" in message else ErrorKind.UNAUTHORIZED
        if status_code == 429:
            return ErrorKind.RATE_LIMITED
        if status_code == 408 or status_code >= 500:
            return ErrorKind.NETWORK_ERROR
        if default_kind is ErrorKind.INVALID_CODE and "expired" in message:
            return ErrorKind.EXPIRED_CODE
        return default_kind

    def _request(
        self,
        method: str,
        path: str,
        payload: dict | None = None,
        access_token: str | None = None,
        default_kind: ErrorKind = ErrorKind.PROVIDER_REJECTED,
    ) -> ApiResult[Any]:
        """
        Send one request and unwrap the service envelope.

        Args:
            method: HTTP method
            path: Endpoint path, e.g. /otp/email
            payload: JSON body
            access_token: Bearer token for authenticated endpoints
            default_kind: Classification for an unrecognised 4xx failure

        Returns:
            Ok(envelope.data) or Err(kind, message)
        """
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            response = requests.request(
                method,
                url,
                json=payload,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"Identity service connection failed for {path}: {e}")
            return Err(ErrorKind.NETWORK_ERROR, f"Connection failed: {e}")

        try:
            body = response.json()
        except ValueError:
            logger.error(f"Identity service returned invalid JSON for {path} (status {response.status_code})")
            if response.ok:
                return Err(ErrorKind.PROVIDER_REJECTED, "Invalid response from identity service")
            kind = self._classify(response.status_code, None, default_kind, access_token is not None)
            return Err(kind, "Invalid response from identity service", status_code=response.status_code)

        if not isinstance(body, dict) or "success" not in body:
            body = {"success": response.ok, "data": body}

        try:
            envelope = APIResponse.model_validate(body)
        except ValidationError:
            logger.error(f"Identity service returned malformed envelope for {path}")
            return Err(ErrorKind.PROVIDER_REJECTED, "Malformed response from identity service")

        if response.ok and envelope.success:
            return Ok(envelope.data)

        kind = self._classify(response.status_code, envelope, default_kind, access_token is not None)
        retry_after = response.headers.get("Retry-After")
        logger.warning(f"Identity service rejected {path}: {kind.value} (status {response.status_code})")
        return Err(
            kind,
            envelope.error_message(),
            status_code=response.status_code,
            retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
        )

    def _parse(self, result: ApiResult[Any], model: type[M], path: str) -> ApiResult[M]:
        """Validate Ok data against the endpoint's payload model."""
        if not result.ok:
            return result
        try:
            return Ok(model.model_validate(result.data))
        except ValidationError as e:
            logger.error(f"Unexpected payload shape from {path}: {e.error_count()} validation errors")
            return Err(ErrorKind.PROVIDER_REJECTED, f"Malformed {model.__name__} payload")

    # Email codes

    def request_email_code(self, email: str, purpose: str) -> ApiResult[None]:
        """POST /otp/email - trigger delivery of an email code."""
        result = self._request(
            "POST",
            "/otp/email",
            {"email": email, "purpose": purpose},
            default_kind=ErrorKind.DELIVERY_FAILED,
        )
        return Ok(None) if result.ok else result

    def verify_email_code(
        self,
        email: str,
        code: str,
        purpose: str,
        profile: dict[str, Any] | None = None,
    ) -> ApiResult[EmailVerifyData]:
        """POST /otp/email/verify - registration also carries the profile fields."""
        payload = {"email": email, "code": code, "purpose": purpose}
        if profile:
            payload.update(profile)
        result = self._request(
            "POST", "/otp/email/verify", payload, default_kind=ErrorKind.INVALID_CODE
        )
        return self._parse(result, EmailVerifyData, "/otp/email/verify")

    # Phone codes

    def request_phone_code(
        self,
        phone: str,
        purpose: str,
        channel: str,
        email: str | None = None,
    ) -> ApiResult[None]:
        """POST /otp/phone - channel is 'sms' or 'whatsapp'."""
        payload = {"phone": phone, "purpose": purpose, "channel": channel}
        if email:
            payload["email"] = email
        result = self._request(
            "POST", "/otp/phone", payload, default_kind=ErrorKind.DELIVERY_FAILED
        )
        return Ok(None) if result.ok else result

    def verify_phone_code(self, phone: str, code: str, purpose: str) -> ApiResult[PhoneVerifyData]:
        """POST /otp/phone/verify"""
        result = self._request(
            "POST",
            "/otp/phone/verify",
            {
                "phone": phone,
                "code": code,
                "purpose": purpose,
                "deviceInfo": {"deviceType": self.DEVICE_TYPE},
            },
            default_kind=ErrorKind.INVALID_CODE,
        )
        return self._parse(result, PhoneVerifyData, "/otp/phone/verify")

    # Federated sign-in

    def google_sign_in(self, id_token: str) -> ApiResult[GoogleAuthData]:
        """POST /auth/google - exchange a Google ID token for local tokens."""
        result = self._request(
            "POST", "/auth/google", {"idToken": id_token}, default_kind=ErrorKind.PROVIDER_REJECTED
        )
        return self._parse(result, GoogleAuthData, "/auth/google")

    # Session

    def refresh_tokens(self, refresh_token: str) -> ApiResult[TokenPair]:
        """POST /auth/refresh - a rejected refresh token is UNAUTHORIZED."""
        result = self._request(
            "POST",
            "/auth/refresh",
            {"refreshToken": refresh_token},
            default_kind=ErrorKind.UNAUTHORIZED,
        )
        return self._parse(result, TokenPair, "/auth/refresh")

    def get_current_user(self, access_token: str) -> ApiResult[User]:
        """GET /users/me"""
        result = self._request("GET", "/users/me", access_token=access_token)
        return self._parse(result, User, "/users/me")

    def logout(self, access_token: str) -> ApiResult[None]:
        """POST /auth/logout - best effort, callers ignore failures."""
        result = self._request("POST", "/auth/logout", access_token=access_token)
        return Ok(None) if result.ok else result

    def complete_registration(
        self,
        access_token: str | None,
        payload: dict[str, Any],
    ) -> ApiResult[RegistrationCompleteData]:
        """POST /auth/location/setup with completeRegistration=true."""
        body = dict(payload)
        body["completeRegistration"] = True
        result = self._request(
            "POST",
            "/auth/location/setup",
            body,
            access_token=access_token,
            default_kind=ErrorKind.VALIDATION,
        )
        return self._parse(result, RegistrationCompleteData, "/auth/location/setup")
