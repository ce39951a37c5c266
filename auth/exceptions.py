"""Typed exceptions for auth failures.

These stay inside the auth package: adapters translate them into
classified ``Err`` results before anything crosses their boundary.
"""


class AuthError(Exception):
    """Base class for authentication errors."""


class InvalidContactError(AuthError):
    """
    Email or phone number is malformed.

    Raised before any network call; the code is never sent.
    """

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited. Retry after {retry_after_seconds} seconds.")


class InvalidTransitionError(AuthError):
    """Onboarding was asked to move to a step its current step cannot reach."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move from '{current}' to '{target}'")
