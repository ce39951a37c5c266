"""Federated sign-in through Google Identity Services.

Google hands the credential to a one-shot callback registered at
initialization time. ``GoogleCredentialPrompt`` bridges that callback into
a future so the rest of the system only ever makes a blocking call that
returns a result.
"""

import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Any, Callable, Protocol

from api.base import ApiResult, Err, ErrorKind, Ok
from auth.config import AuthConfig
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.types import IdentityResult
from clients.identity_client import IdentityServiceClient

logger = logging.getLogger(__name__)


class CredentialPromptProvider(Protocol):
    """The callback-style surface of the Google Identity Services client."""

    def initialize(self, client_id: str, callback: Callable[[dict[str, Any]], None]) -> None:
        ...

    def prompt(self) -> None:
        ...


class GoogleCredentialPrompt:
    """Turns Google's one-shot credential callback into a single call."""

    def __init__(
        self,
        provider: CredentialPromptProvider,
        client_id: str | None,
        timeout_seconds: int = 120,
    ):
        self._provider = provider
        self._client_id = client_id
        self._timeout_seconds = timeout_seconds

    def request_credential(self) -> ApiResult[str]:
        """
        Show the Google prompt and wait for its callback.

        Returns:
            Ok(id_token), or Err(PROVIDER_REJECTED) when no credential came
            back, or Err(NETWORK_ERROR) when the callback never fired.
        """
        if not self._client_id:
            return Err(ErrorKind.PROVIDER_REJECTED, "Google Client ID is not configured")

        future: Future[str | None] = Future()
        lock = threading.Lock()

        def _on_credential(response: dict[str, Any]) -> None:
            with lock:
                # Late or repeated callbacks are ignored
                if future.done():
                    return
                future.set_result((response or {}).get("credential"))

        try:
            self._provider.initialize(self._client_id, _on_credential)
            self._provider.prompt()
        except Exception as e:
            logger.exception("Google Identity Services failed to start")
            return Err(ErrorKind.PROVIDER_REJECTED, f"Google Sign-In unavailable: {e}")

        try:
            credential = future.result(timeout=self._timeout_seconds)
        except FutureTimeoutError:
            logger.warning("Timed out waiting for Google credential")
            return Err(ErrorKind.NETWORK_ERROR, "Timed out waiting for Google Sign-In")

        if not credential:
            return Err(ErrorKind.PROVIDER_REJECTED, "No credential received from Google")
        return Ok(credential)


class GoogleSignInAdapter:
    """Exchanges a Google ID token for local tokens in one call."""

    def __init__(
        self,
        client: IdentityServiceClient,
        config: AuthConfig,
        security_logger: SecurityLogger,
    ):
        self._client = client
        self._config = config
        self._security_logger = security_logger

    def exchange(self, id_token: str) -> ApiResult[IdentityResult]:
        """
        Always reports is_new_user and requires_onboarding, so callers can
        send returning, fully verified users straight to the app.
        """
        if not id_token:
            return Err(ErrorKind.VALIDATION, "Google credential is required")

        result = self._client.google_sign_in(id_token)
        if not result.ok:
            self._security_logger.log(
                SecurityEvent.FEDERATED_SIGN_IN_FAILED,
                details={"reason": result.kind.value},
            )
            return result

        data = result.data
        tokens = data.token_pair()
        if tokens is None:
            logger.error("Google sign-in succeeded without tokens")
            return Err(ErrorKind.PROVIDER_REJECTED, "Google sign-in response did not include tokens")

        requires_onboarding = data.is_new_user or (
            self._config.require_verified_phone_for_google and not data.user.phone_verified
        )
        self._security_logger.log(
            SecurityEvent.FEDERATED_SIGN_IN,
            contact=data.user.email,
            user_id=data.user.id,
            details={"is_new_user": data.is_new_user, "requires_onboarding": requires_onboarding},
        )
        return Ok(
            IdentityResult(
                user_id=data.user.id,
                tokens=tokens,
                user=data.user,
                is_new_user=data.is_new_user,
                requires_onboarding=requires_onboarding,
            )
        )

    def sign_in(self, prompt: GoogleCredentialPrompt) -> ApiResult[IdentityResult]:
        """Prompt for a credential, then exchange it."""
        credential = prompt.request_credential()
        if not credential.ok:
            return credential
        return self.exchange(credential.data)
