"""Route protection based on the settled session."""

from dataclasses import dataclass
from enum import Enum

from auth.config import AuthConfig
from auth.session_store import SessionStore


class GuardDecision(str, Enum):
    LOADING = "loading"
    ALLOW = "allow"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class GuardResult:
    decision: GuardDecision
    redirect_to: str | None = None


class RouteGuard:
    """
    Gates protected content on isInitialized and isAuthenticated.

    Nothing is decided until the session has been initialized, so a
    reload never flashes the sign-in screen for a signed-in device.
    """

    def __init__(self, session_store: SessionStore, config: AuthConfig):
        self._session_store = session_store
        self._config = config

    def check(self) -> GuardResult:
        if not self._session_store.is_initialized:
            return GuardResult(GuardDecision.LOADING)
        if self._session_store.is_authenticated:
            return GuardResult(GuardDecision.ALLOW)
        return GuardResult(GuardDecision.REDIRECT, redirect_to=self._config.unauthenticated_destination)
