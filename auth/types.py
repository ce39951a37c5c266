"""Pydantic models for the identity and session domain."""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from api.schemas import TokenPair, User


class AuthProvider(str, Enum):
    """Which identity path established the session."""

    LOCAL = "local"
    GOOGLE = "google"
    PHONE = "phone"


class OtpPurpose(str, Enum):
    """Why a one-time code was requested."""

    LOGIN = "login"
    REGISTRATION = "registration"


class DeliveryChannel(str, Enum):
    """How a one-time code reaches the user."""

    SMS = "sms"
    WHATSAPP = "whatsapp"
    EMAIL = "email"


class IdentityResult(BaseModel):
    """Normalized success payload from any identity provider adapter.

    Transient: its fields are distributed into the session and/or the
    onboarding draft by the caller, never stored as-is.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    tokens: TokenPair | None = None
    user: User | None = None
    is_new_user: bool | None = None
    requires_onboarding: bool | None = None


class Session(BaseModel):
    """Read-only snapshot of the durable session state."""

    model_config = ConfigDict(frozen=True)

    access_token: str | None = None
    refresh_token: str | None = None
    user: User | None = None
    auth_provider: AuthProvider | None = None
    is_loading: bool = False
    is_initialized: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None


__all__ = [
    "AuthProvider",
    "DeliveryChannel",
    "IdentityResult",
    "OtpPurpose",
    "Session",
    "TokenPair",
    "User",
]
