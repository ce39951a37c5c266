"""Session initialization: runs once per application load."""

import logging
import threading

import redis

from auth.security_logger import SecurityEvent, SecurityLogger
from auth.session_store import RefreshOutcome, SessionStore

logger = logging.getLogger(__name__)


class SessionInitializer:
    """
    Settles the rehydrated session exactly once.

    With no stored access token the session is marked initialized at once
    with no network calls. Otherwise the current user is fetched (with a
    single refresh on token rejection) and auth is cleared only when the
    session is provably dead. A network failure keeps the tokens so an
    offline boot stays signed in with an unresolved user. A storage
    failure is logged rather than raised, for the same reason.
    """

    def __init__(self, session_store: SessionStore, security_logger: SecurityLogger):
        self._session_store = session_store
        self._security_logger = security_logger
        self._lock = threading.Lock()
        self._started = False

    @property
    def has_started(self) -> bool:
        return self._started

    def run(self) -> RefreshOutcome | None:
        """
        Initialize the session. Later calls are no-ops.

        Returns:
            The refresh outcome, or None when nothing was fetched (no stored
            token, already run, or session storage failed).
        """
        with self._lock:
            if self._started:
                return None
            self._started = True

        store = self._session_store
        try:
            if not store.is_authenticated:
                logger.debug(f"No stored session for device {store.device_id}")
                return None

            outcome = store.refresh_user()
            if outcome.session_unrecoverable:
                logger.info(f"Stored session for device {store.device_id} is no longer valid ({outcome.error.value})")
                store.clear_auth(reason="session_expired")
            elif outcome.ok:
                self._security_logger.log(
                    SecurityEvent.SESSION_RESTORED,
                    user_id=outcome.user.id,
                    device_id=store.device_id,
                    details={"refreshed": outcome.refreshed},
                )
            else:
                logger.warning(
                    f"Could not resolve user for device {store.device_id} ({outcome.error.value}); keeping stored tokens"
                )
            return outcome
        except redis.RedisError:
            logger.exception(f"Session storage failed while initializing device {store.device_id}; keeping stored tokens")
            return None
        finally:
            store.mark_initialized()
