"""Identity service wire format: envelope, error taxonomy, payload schemas."""

from api.base import (
    APIError,
    APIResponse,
    ApiResult,
    Err,
    ErrorKind,
    Ok,
    SERVER_ERROR_CODES,
)
from api.schemas import (
    EmailVerifyData,
    GoogleAuthData,
    PhoneVerifyData,
    RegistrationCompleteData,
    TokenPair,
    User,
)
