"""Identity acquisition and session lifecycle."""

from auth.exceptions import (
    AuthError,
    InvalidContactError,
    InvalidTransitionError,
    RateLimitedError,
)
from auth.types import (
    AuthProvider,
    DeliveryChannel,
    IdentityResult,
    OtpPurpose,
    Session,
    TokenPair,
    User,
)
from auth.config import AuthConfig
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.challenge import VerificationChallenge
from auth.session_store import SessionStore, RefreshOutcome
from auth.initializer import SessionInitializer
from auth.guard import RouteGuard, GuardDecision, GuardResult
