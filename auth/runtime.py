"""Per-device wiring of the session and onboarding containers."""

import logging
from dataclasses import dataclass
from typing import Callable

from auth.config import AuthConfig
from auth.guard import RouteGuard
from auth.initializer import SessionInitializer
from auth.providers import (
    CredentialPromptProvider,
    EmailCodeAdapter,
    GoogleCredentialPrompt,
    GoogleSignInAdapter,
    PhoneCodeAdapter,
)
from auth.security_logger import SecurityLogger
from auth.session_store import SessionStore
from clients.identity_client import IdentityServiceClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import get_identity_config, get_valkey_url
from core.event_bus import EventBus
from onboarding.draft import DraftStore
from onboarding.machine import OnboardingStateMachine

logger = logging.getLogger(__name__)


@dataclass
class AuthRuntime:
    """Everything one device needs, constructed once and passed by reference."""

    device_id: str
    config: AuthConfig
    event_bus: EventBus
    security_logger: SecurityLogger
    session_store: SessionStore
    draft_store: DraftStore
    onboarding: OnboardingStateMachine
    initializer: SessionInitializer
    guard: RouteGuard

    def google_prompt(self, provider: CredentialPromptProvider) -> GoogleCredentialPrompt:
        """Credential prompt bound to the configured client id and timeout."""
        return GoogleCredentialPrompt(
            provider,
            self.config.google_client_id,
            timeout_seconds=self.config.google_prompt_timeout_seconds,
        )


def build_runtime(
    device_id: str,
    config: AuthConfig | None = None,
    valkey: ValkeyClient | None = None,
    client: IdentityServiceClient | None = None,
    event_bus: EventBus | None = None,
    navigate: Callable[[str], None] | None = None,
) -> AuthRuntime:
    """
    Build independent session and onboarding containers for one device.

    Missing collaborators are resolved from Vault: the identity service URL
    and Google client id when config is None, the Valkey URL when valkey is
    None.

    Raises:
        ValueError: If device_id is empty or Vault is not configured.
        PermissionError: If Vault rejects the lookup.
        redis.ConnectionError: If Valkey is unreachable.
    """
    if not device_id:
        raise ValueError("device_id is required")

    if config is None:
        config = AuthConfig(**get_identity_config())
    if valkey is None:
        valkey = ValkeyClient(get_valkey_url())
    if client is None:
        client = IdentityServiceClient(config.api_base_url, timeout_seconds=config.request_timeout_seconds)
    if event_bus is None:
        event_bus = EventBus()

    security_logger = SecurityLogger()
    email_adapter = EmailCodeAdapter(client, config, security_logger)
    phone_adapter = PhoneCodeAdapter(client, config, security_logger)
    google_adapter = GoogleSignInAdapter(client, config, security_logger)

    session_store = SessionStore(
        valkey,
        client,
        device_id,
        email_adapter,
        phone_adapter,
        google_adapter,
        security_logger,
        event_bus=event_bus,
    )
    draft_store = DraftStore(valkey, device_id, config, event_bus=event_bus)
    onboarding = OnboardingStateMachine(
        draft_store,
        session_store,
        email_adapter,
        phone_adapter,
        google_adapter,
        client,
        config,
        security_logger,
        event_bus=event_bus,
        navigate=navigate,
    )

    logger.info(f"Identity runtime ready for device {device_id}")
    return AuthRuntime(
        device_id=device_id,
        config=config,
        event_bus=event_bus,
        security_logger=security_logger,
        session_store=session_store,
        draft_store=draft_store,
        onboarding=onboarding,
        initializer=SessionInitializer(session_store, security_logger),
        guard=RouteGuard(session_store, config),
    )
