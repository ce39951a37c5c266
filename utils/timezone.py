"""UTC-everywhere time handling for cool-downs and event timestamps."""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def seconds_until(deadline: datetime, now: datetime | None = None) -> int:
    """
    Whole seconds remaining until deadline, rounded up, never negative.

    Used for resend cool-downs: 0 means the deadline has passed.
    """
    now = now or now_utc()
    remaining = (to_utc(deadline) - to_utc(now)).total_seconds()
    if remaining <= 0:
        return 0
    whole = int(remaining)
    return whole if whole == remaining else whole + 1
