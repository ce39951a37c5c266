"""Security event logging for the identity audit trail.

Append-only, bounded in-memory trail mirrored to the ``auth.security``
logger. Tokens and one-time codes are never recorded.
"""

import logging
from collections import deque
from enum import Enum
from typing import Any

from utils.timezone import now_utc

logger = logging.getLogger("auth.security")


class SecurityEvent(Enum):
    """Identity security event types."""

    OTP_REQUESTED = "otp_requested"
    OTP_REQUEST_FAILED = "otp_request_failed"
    OTP_VERIFIED = "otp_verified"
    OTP_FAILED = "otp_failed"
    FEDERATED_SIGN_IN = "federated_sign_in"
    FEDERATED_SIGN_IN_FAILED = "federated_sign_in_failed"
    SESSION_CREATED = "session_created"
    SESSION_RESTORED = "session_restored"
    TOKEN_REFRESHED = "token_refreshed"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"
    SESSION_CLEARED = "session_cleared"
    LOGOUT = "logout"
    ONBOARDING_COMPLETED = "onboarding_completed"


class SecurityLogger:
    """Append-only security event logger with archiving."""

    def __init__(self, max_events: int = 500):
        self._events: deque[dict[str, Any]] = deque(maxlen=max_events)

    def log(
        self,
        event: SecurityEvent,
        contact: str | None = None,
        user_id: str | None = None,
        device_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record security event."""
        record = {
            "event_type": event.value,
            "contact": contact,
            "user_id": user_id,
            "device_id": device_id,
            "details": details,
            "created_at": now_utc(),
        }
        self._events.append(record)
        logger.info(
            "%s contact=%s user_id=%s device_id=%s details=%s",
            event.value,
            contact,
            user_id,
            device_id,
            details,
        )

    def get_recent_events(
        self,
        contact: str | None = None,
        user_id: str | None = None,
        event_type: SecurityEvent | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Query recent security events with optional filters, newest first."""
        matches = []
        for record in reversed(self._events):
            if contact and record["contact"] != contact:
                continue
            if user_id and record["user_id"] != user_id:
                continue
            if event_type and record["event_type"] != event_type.value:
                continue
            matches.append(dict(record))
            if len(matches) >= limit:
                break
        return matches
