"""One outstanding one-time-code request and its resend cool-down.

Challenges live only as long as the form that issued them. They are never
persisted: codes expire server-side and are worthless across reloads.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from auth.exceptions import RateLimitedError
from auth.types import DeliveryChannel, OtpPurpose
from utils.timezone import now_utc, seconds_until


@dataclass(frozen=True)
class VerificationChallenge:
    """A code was sent to ``target`` and may be resent after the cool-down."""

    target: str
    purpose: OtpPurpose
    channel: DeliveryChannel
    cooldown_seconds: int
    issued_at: datetime = field(default_factory=now_utc)

    @property
    def resend_available_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.cooldown_seconds)

    def seconds_until_resend(self, now: datetime | None = None) -> int:
        """Remaining cool-down in whole seconds; 0 once a resend is allowed."""
        return seconds_until(self.resend_available_at, now)

    def can_resend(self, now: datetime | None = None) -> bool:
        return self.seconds_until_resend(now) == 0

    def check_resend(self, now: datetime | None = None) -> None:
        """
        Raises:
            RateLimitedError: If the cool-down has not elapsed.
        """
        remaining = self.seconds_until_resend(now)
        if remaining > 0:
            raise RateLimitedError(retry_after_seconds=remaining)
