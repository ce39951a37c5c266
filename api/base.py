"""Identity service wire envelope, error taxonomy, and result types.

Every identity endpoint answers with the same envelope:

    {"success": bool, "data": ..., "error": "..." | {"code": ..., "message": ...}}

Callers never see the envelope. The HTTP client turns it into either
``Ok(data)`` or ``Err(kind, message)`` so a malformed or failed response
can't leak past the adapter boundary as a half-parsed dict.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel, Field, field_validator

T = TypeVar("T")


class APIError(BaseModel):
    """Error details in an identity service response."""

    code: str | None = Field(default=None, description="Machine-readable error code")
    message: str = Field(default="Request failed", description="Human-readable error message")


class APIResponse(BaseModel):
    """Envelope returned by every identity service endpoint."""

    success: bool
    data: Any | None = None
    error: APIError | None = None
    message: str | None = None

    @field_validator("error", mode="before")
    @classmethod
    def _coerce_error(cls, value: Any) -> Any:
        # The service sends either a bare string or a {code, message} object
        if isinstance(value, str):
            return {"message": value}
        return value

    def error_message(self) -> str:
        if self.error is not None:
            return self.error.message
        return self.message or "Request failed"


class ErrorKind(str, Enum):
    """Classified failure of a single identity action."""

    VALIDATION = "validation"
    DELIVERY_FAILED = "delivery_failed"
    INVALID_CODE = "invalid_code"
    EXPIRED_CODE = "expired_code"
    NETWORK_ERROR = "network_error"
    UNAUTHORIZED = "unauthorized"
    TOKEN_EXPIRED = "token_expired"
    PROVIDER_REJECTED = "provider_rejected"
    RATE_LIMITED = "rate_limited"

    @property
    def is_correctable(self) -> bool:
        """User can fix this inline on the current step."""
        return self in (ErrorKind.VALIDATION, ErrorKind.INVALID_CODE, ErrorKind.EXPIRED_CODE)

    @property
    def is_retryable(self) -> bool:
        """Resubmitting the same action may succeed."""
        return self in (ErrorKind.NETWORK_ERROR, ErrorKind.RATE_LIMITED)

    @property
    def triggers_refresh(self) -> bool:
        """Access token was rejected; a refresh-token exchange may recover."""
        return self in (ErrorKind.UNAUTHORIZED, ErrorKind.TOKEN_EXPIRED)


# Server error codes we recognise, mapped onto the client taxonomy
SERVER_ERROR_CODES: dict[str, ErrorKind] = {
    "INVALID_CODE": ErrorKind.INVALID_CODE,
    "INVALID_OTP": ErrorKind.INVALID_CODE,
    "EXPIRED_CODE": ErrorKind.EXPIRED_CODE,
    "OTP_EXPIRED": ErrorKind.EXPIRED_CODE,
    "DELIVERY_FAILED": ErrorKind.DELIVERY_FAILED,
    "VALIDATION_ERROR": ErrorKind.VALIDATION,
    "NOT_AUTHENTICATED": ErrorKind.UNAUTHORIZED,
    "UNAUTHORIZED": ErrorKind.UNAUTHORIZED,
    "INVALID_TOKEN": ErrorKind.UNAUTHORIZED,
    "TOKEN_EXPIRED": ErrorKind.TOKEN_EXPIRED,
    "SESSION_EXPIRED": ErrorKind.TOKEN_EXPIRED,
    "RATE_LIMITED": ErrorKind.RATE_LIMITED,
    "PROVIDER_REJECTED": ErrorKind.PROVIDER_REJECTED,
}


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result carrying typed data."""

    data: T
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Err:
    """Failed result carrying a classified error."""

    kind: ErrorKind
    message: str = ""
    status_code: int | None = None
    retry_after_seconds: int | None = None
    ok: bool = field(default=False, init=False)


ApiResult = Union[Ok[T], Err]
