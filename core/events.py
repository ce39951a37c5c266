"""
Change events for the identity session and onboarding flow.

Immutable event objects the presentation layer subscribes to instead of
polling store fields. Events carry a full snapshot so handlers never read
a store mid-transition.

Event Categories:
- SessionEvent: durable session changes (tokens, user, loading, initialized)
- OnboardingEvent: step changes and completion
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class IdentityEvent:
    """Base class for all identity events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# SESSION EVENTS
# =============================================================================


@dataclass(frozen=True)
class SessionEvent(IdentityEvent):
    """Events related to the durable session."""
    pass


@dataclass(frozen=True)
class SessionChanged(SessionEvent):
    """Session state settled into a new value."""
    session: Any = None  # auth.types.Session; core does not import auth

    @classmethod
    def create(cls, session: Any) -> "SessionChanged":
        return cls(session=session)


@dataclass(frozen=True)
class SessionCleared(SessionEvent):
    """Device returned to the unauthenticated state."""
    reason: str = ""

    @classmethod
    def create(cls, reason: str) -> "SessionCleared":
        return cls(reason=reason)


# =============================================================================
# ONBOARDING EVENTS
# =============================================================================


@dataclass(frozen=True)
class OnboardingEvent(IdentityEvent):
    """Events related to the onboarding flow."""
    pass


@dataclass(frozen=True)
class OnboardingStepChanged(OnboardingEvent):
    """The active onboarding step moved."""
    previous: str = ""
    current: str = ""

    @classmethod
    def create(cls, previous: str, current: str) -> "OnboardingStepChanged":
        return cls(previous=previous, current=current)


@dataclass(frozen=True)
class OnboardingCompleted(OnboardingEvent):
    """Onboarding finished; the session is live and the draft is gone."""
    user_id: str | None = None
    destination: str = ""

    @classmethod
    def create(cls, user_id: str | None, destination: str) -> "OnboardingCompleted":
        return cls(user_id=user_id, destination=destination)
