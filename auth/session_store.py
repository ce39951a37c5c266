"""Durable session store: the single source of truth for "is this device signed in".

Credentials live in Valkey under ``auth:{device_id}:*`` and survive reloads.
The resolved user is held in memory only and fetched fresh after a reload.
Token, user and provider change together in one transition; a reload never
observes half of a credential pair because multi-key writes are atomic.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator

import redis
from pydantic import ValidationError

from api.base import ApiResult, ErrorKind
from auth.providers import EmailCodeAdapter, GoogleSignInAdapter, PhoneCodeAdapter
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.types import AuthProvider, IdentityResult, OtpPurpose, Session, TokenPair, User
from clients.identity_client import IdentityServiceClient
from clients.valkey_client import ValkeyClient
from core.event_bus import EventBus
from core.events import SessionChanged, SessionCleared

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshOutcome:
    """What refresh_user() observed; the caller decides whether to clear auth."""

    user: User | None = None
    error: ErrorKind | None = None
    refresh_attempted: bool = False
    refreshed: bool = False
    session_unrecoverable: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.user is not None


class SessionStore:
    """Durable session state for one device.

    Only this class writes ``auth:{device_id}:*`` keys. Fields are read-only
    from outside; every change goes through one of the action methods.
    """

    KEY_PREFIX = "auth:"
    ACCESS_TOKEN = "accessToken"
    REFRESH_TOKEN = "refreshToken"
    AUTH_PROVIDER = "authProvider"

    def __init__(
        self,
        valkey: ValkeyClient,
        client: IdentityServiceClient,
        device_id: str,
        email_adapter: EmailCodeAdapter,
        phone_adapter: PhoneCodeAdapter,
        google_adapter: GoogleSignInAdapter,
        security_logger: SecurityLogger,
        event_bus: EventBus | None = None,
    ):
        if not device_id:
            raise ValueError("device_id is required")

        self._valkey = valkey
        self._client = client
        self._device_id = device_id
        self._email_adapter = email_adapter
        self._phone_adapter = phone_adapter
        self._google_adapter = google_adapter
        self._security_logger = security_logger
        self._event_bus = event_bus

        self._access_token: str | None = None
        self._refresh_token: str | None = None
        self._auth_provider: AuthProvider | None = None
        self._user: User | None = None
        self._loading_depth = 0
        self._is_initialized = False
        self._last_error: ErrorKind | None = None

        self._rehydrate()

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _key(self, field: str) -> str:
        """Generate Valkey key for a durable session field."""
        return f"{self.KEY_PREFIX}{self._device_id}:{field}"

    @property
    def _keys(self) -> tuple[str, str, str]:
        return (
            self._key(self.ACCESS_TOKEN),
            self._key(self.REFRESH_TOKEN),
            self._key(self.AUTH_PROVIDER),
        )

    def _rehydrate(self) -> None:
        """Load the credential pair and provider tag left by a previous load."""
        access_key, refresh_key, provider_key = self._keys
        stored = self._valkey.get_many(self._keys)
        access_token = stored[access_key]
        refresh_token = stored[refresh_key]

        if not access_token or not refresh_token:
            if access_token or refresh_token:
                logger.warning(f"Ignoring incomplete credential pair for device {self._device_id}")
            return

        self._access_token = access_token
        self._refresh_token = refresh_token
        provider = stored[provider_key]
        try:
            self._auth_provider = AuthProvider(provider) if provider else None
        except ValueError:
            logger.warning(f"Unknown auth provider tag '{provider}' for device {self._device_id}")
            self._auth_provider = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def refresh_token(self) -> str | None:
        return self._refresh_token

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def auth_provider(self) -> AuthProvider | None:
        return self._auth_provider

    @property
    def is_loading(self) -> bool:
        return self._loading_depth > 0

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None

    @property
    def last_error(self) -> ErrorKind | None:
        """Classified failure of the most recent login action, if any."""
        return self._last_error

    def snapshot(self) -> Session:
        return Session(
            access_token=self._access_token,
            refresh_token=self._refresh_token,
            user=self._user,
            auth_provider=self._auth_provider,
            is_loading=self.is_loading,
            is_initialized=self._is_initialized,
        )

    def _publish_changed(self) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(SessionChanged.create(self.snapshot()))

    @contextmanager
    def _loading(self) -> Iterator[None]:
        """Hold is_loading true for the duration of a network-backed action."""
        self._loading_depth += 1
        if self._loading_depth == 1:
            self._publish_changed()
        try:
            yield
        finally:
            self._loading_depth -= 1
            if self._loading_depth == 0:
                self._publish_changed()

    # ------------------------------------------------------------------
    # Primitive mutators
    # ------------------------------------------------------------------

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        """Store both tokens durably, then in memory.

        Raises:
            pydantic.ValidationError: If either token is empty.
            redis.RedisError: If the durable write fails (memory is untouched).
        """
        pair = TokenPair(access_token=access_token, refresh_token=refresh_token)
        access_key, refresh_key, _ = self._keys
        self._valkey.set_many({access_key: pair.access_token, refresh_key: pair.refresh_token})
        self._access_token = pair.access_token
        self._refresh_token = pair.refresh_token
        self._publish_changed()

    def set_user(self, user: User | None) -> None:
        """Replace the resolved identity. Tokens are not touched."""
        self._user = user
        self._publish_changed()

    def update_user(self, updates: dict[str, Any]) -> None:
        """Shallow-merge field updates into the resolved user. No-op without one."""
        if self._user is None:
            return
        merged = {**self._user.model_dump(), **updates}
        self.set_user(User.model_validate(merged))

    def clear_auth(self, reason: str = "cleared") -> None:
        """Remove tokens, user and provider tag from storage and memory.

        The only path to the unauthenticated state. Idempotent and never raises:
        a storage failure is logged and memory is cleared regardless.
        """
        had_session = self._access_token is not None
        try:
            self._valkey.delete(*self._keys)
        except redis.RedisError:
            logger.exception(f"Failed to delete durable session keys for device {self._device_id}")

        self._access_token = None
        self._refresh_token = None
        self._auth_provider = None
        self._user = None

        if had_session:
            self._security_logger.log(
                SecurityEvent.SESSION_CLEARED,
                device_id=self._device_id,
                details={"reason": reason},
            )
        if self._event_bus is not None:
            self._event_bus.publish(SessionCleared.create(reason))
        self._publish_changed()

    def mark_initialized(self) -> bool:
        """Flip is_initialized once. Returns False if it was already set."""
        if self._is_initialized:
            return False
        self._is_initialized = True
        self._publish_changed()
        return True

    # ------------------------------------------------------------------
    # Identity transitions
    # ------------------------------------------------------------------

    def apply_identity(self, identity: IdentityResult, provider: AuthProvider) -> bool:
        """Commit an adapter's IdentityResult as the session in one transition.

        Without tokens the result can only refresh the user of an existing
        session. Returns True if the device ends up authenticated.

        Raises:
            redis.RedisError: If the durable write fails (memory is untouched).
        """
        if identity.tokens is None:
            if self.is_authenticated and identity.user is not None:
                self.set_user(identity.user)
                return True
            logger.error(f"Identity result for user {identity.user_id} carried no tokens")
            self._last_error = ErrorKind.PROVIDER_REJECTED
            return False

        access_key, refresh_key, provider_key = self._keys
        self._valkey.set_many(
            {
                access_key: identity.tokens.access_token,
                refresh_key: identity.tokens.refresh_token,
                provider_key: provider.value,
            }
        )
        self._access_token = identity.tokens.access_token
        self._refresh_token = identity.tokens.refresh_token
        self._auth_provider = provider
        self._user = identity.user
        self._last_error = None

        self._security_logger.log(
            SecurityEvent.SESSION_CREATED,
            user_id=identity.user_id,
            device_id=self._device_id,
            details={"provider": provider.value},
        )
        self._publish_changed()

        if self._user is None:
            # Tokens arrived without a profile; resolve it now
            self.refresh_user()
        return True

    def _login(
        self,
        attempt: Callable[[], ApiResult[IdentityResult]],
        provider: AuthProvider,
    ) -> bool:
        with self._loading():
            result = attempt()
            if not result.ok:
                self._last_error = result.kind
                return False
            try:
                return self.apply_identity(result.data, provider)
            except (redis.RedisError, ValidationError):
                logger.exception(f"Failed to commit {provider.value} session for device {self._device_id}")
                return False

    def login_with_email(self, email: str, code: str) -> bool:
        """Verify an email login code and establish the session."""
        return self._login(
            lambda: self._email_adapter.verify_code(email, code, OtpPurpose.LOGIN),
            AuthProvider.LOCAL,
        )

    def login_with_phone(self, phone: str, code: str) -> bool:
        """Verify a phone login code and establish the session."""
        return self._login(
            lambda: self._phone_adapter.verify_code(phone, code, OtpPurpose.LOGIN),
            AuthProvider.PHONE,
        )

    def sign_in_with_google(self, id_token: str) -> bool:
        """Exchange a Google ID token and establish the session."""
        return self._login(
            lambda: self._google_adapter.exchange(id_token),
            AuthProvider.GOOGLE,
        )

    def refresh_user(self) -> RefreshOutcome:
        """Fetch the current user, recovering once from a rejected access token.

        On unauthorized/token_expired: exactly one refresh exchange, the new
        tokens committed durably, then exactly one retried fetch. Other
        failures return immediately. Never clears auth itself.
        """
        if self._access_token is None:
            return RefreshOutcome(error=ErrorKind.UNAUTHORIZED)

        with self._loading():
            first = self._client.get_current_user(self._access_token)
            if first.ok:
                self.set_user(first.data)
                return RefreshOutcome(user=first.data)

            if not first.kind.triggers_refresh:
                return RefreshOutcome(error=first.kind)

            if not self._refresh_token:
                return RefreshOutcome(error=first.kind, session_unrecoverable=True)

            exchange = self._client.refresh_tokens(self._refresh_token)
            if not exchange.ok:
                self._security_logger.log(
                    SecurityEvent.TOKEN_REFRESH_FAILED,
                    device_id=self._device_id,
                    details={"reason": exchange.kind.value},
                )
                return RefreshOutcome(
                    error=exchange.kind,
                    refresh_attempted=True,
                    session_unrecoverable=not exchange.kind.is_retryable,
                )

            # Commit before retrying so the retry carries the new token
            self.set_tokens(exchange.data.access_token, exchange.data.refresh_token)
            self._security_logger.log(SecurityEvent.TOKEN_REFRESHED, device_id=self._device_id)

            retry = self._client.get_current_user(self._access_token)
            if retry.ok:
                self.set_user(retry.data)
                return RefreshOutcome(user=retry.data, refresh_attempted=True, refreshed=True)

            return RefreshOutcome(
                error=retry.kind,
                refresh_attempted=True,
                refreshed=True,
                session_unrecoverable=retry.kind.triggers_refresh,
            )

    def logout(self) -> None:
        """Best-effort server invalidation, then unconditional clear_auth()."""
        access_token = self._access_token
        user_id = self._user.id if self._user else None
        try:
            if access_token:
                with self._loading():
                    result = self._client.logout(access_token)
                if not result.ok:
                    logger.warning(f"Logout request failed ({result.kind.value}); clearing local session anyway")
        finally:
            self._security_logger.log(SecurityEvent.LOGOUT, user_id=user_id, device_id=self._device_id)
            self.clear_auth(reason="logout")
