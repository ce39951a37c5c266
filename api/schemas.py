"""Typed ``data`` payloads for each identity service endpoint.

Field names are snake_case in Python and camelCase on the wire.

The service is inconsistent about where it puts tokens: some endpoints
return them flat (``accessToken``/``refreshToken``), others nest them under
``tokens``. ``token_pair()`` hides that difference.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for models that travel as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(CamelModel):
    """Resolved identity of the signed-in user.

    The service returns many optional profile fields; unknown ones are kept
    so they survive an update_user() round trip.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone_number: str | None = None
    is_verified: bool = False
    phone_verified: bool = False
    estate: str | None = None


class TokenPair(CamelModel):
    """Access/refresh credential pair issued by the identity service."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)


class _TokenBearing(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    access_token: str | None = None
    refresh_token: str | None = None
    tokens: TokenPair | None = None

    def token_pair(self) -> TokenPair | None:
        if self.tokens is not None:
            return self.tokens
        if self.access_token and self.refresh_token:
            return TokenPair(access_token=self.access_token, refresh_token=self.refresh_token)
        return None


class EmailVerifyData(_TokenBearing):
    """POST /otp/email/verify"""

    user: User | None = None
    verified: bool | None = None
    is_new_user: bool | None = None


class PhoneVerifyData(_TokenBearing):
    """POST /otp/phone/verify"""

    verified: bool = False
    user: User | None = None


class GoogleAuthData(_TokenBearing):
    """POST /auth/google"""

    user: User
    is_new_user: bool = False


class RegistrationCompleteData(_TokenBearing):
    """POST /auth/location/setup"""

    user: User | None = None
