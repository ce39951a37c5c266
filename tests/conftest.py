"""Shared test fixtures for the identity test suite."""

from pathlib import Path
from unittest.mock import Mock

import fakeredis
import pytest
import redis
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from api.base import Ok
from api.schemas import TokenPair, User
from auth.config import AuthConfig
from auth.providers import EmailCodeAdapter, GoogleSignInAdapter, PhoneCodeAdapter
from auth.security_logger import SecurityLogger
from auth.session_store import SessionStore
from clients.identity_client import IdentityServiceClient
from clients.valkey_client import ValkeyClient
from core.event_bus import EventBus
from onboarding.draft import DraftStore


# =============================================================================
# TEST CONSTANTS
# =============================================================================

DEVICE_ID = "device-a"
OTHER_DEVICE_ID = "device-b"
TEST_EMAIL = "ada@mecabal.com"
TEST_PHONE = "+2348012345678"


# =============================================================================
# VALKEY FIXTURES
# =============================================================================


@pytest.fixture
def fake_server():
    """One in-memory Valkey server per test; reconnecting simulates a reload."""
    return fakeredis.FakeServer()


@pytest.fixture
def valkey(fake_server, monkeypatch):
    """ValkeyClient backed by fakeredis instead of a live server."""
    monkeypatch.setattr(
        redis,
        "from_url",
        lambda url, **kwargs: fakeredis.FakeStrictRedis(server=fake_server, **kwargs),
    )
    client = ValkeyClient("redis://localhost:6379/0")
    yield client
    client.close()


# =============================================================================
# DOMAIN FIXTURES
# =============================================================================


@pytest.fixture
def device_id() -> str:
    return DEVICE_ID


@pytest.fixture
def config() -> AuthConfig:
    return AuthConfig(google_client_id="test-client-id.apps.googleusercontent.com")


@pytest.fixture
def user() -> User:
    return User(
        id="u1",
        email=TEST_EMAIL,
        first_name="Ada",
        last_name="Obi",
        phone_number=TEST_PHONE,
        is_verified=True,
        phone_verified=True,
    )


@pytest.fixture
def tokens() -> TokenPair:
    return TokenPair(access_token="access-1", refresh_token="refresh-1")


@pytest.fixture
def client(user) -> Mock:
    """Identity service client stub. /users/me succeeds unless a test says otherwise."""
    stub = Mock(spec=IdentityServiceClient)
    stub.get_current_user.return_value = Ok(user)
    stub.logout.return_value = Ok(None)
    return stub


@pytest.fixture
def security_logger() -> SecurityLogger:
    return SecurityLogger()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def email_adapter(client, config, security_logger) -> EmailCodeAdapter:
    return EmailCodeAdapter(client, config, security_logger)


@pytest.fixture
def phone_adapter(client, config, security_logger) -> PhoneCodeAdapter:
    return PhoneCodeAdapter(client, config, security_logger)


@pytest.fixture
def google_adapter(client, config, security_logger) -> GoogleSignInAdapter:
    return GoogleSignInAdapter(client, config, security_logger)


@pytest.fixture
def make_session_store(valkey, client, email_adapter, phone_adapter, google_adapter, security_logger, event_bus):
    """Factory: each call is a fresh load of the store for a device."""

    def _make(device_id: str = DEVICE_ID) -> SessionStore:
        return SessionStore(
            valkey,
            client,
            device_id,
            email_adapter,
            phone_adapter,
            google_adapter,
            security_logger,
            event_bus=event_bus,
        )

    return _make


@pytest.fixture
def session_store(make_session_store) -> SessionStore:
    return make_session_store()


@pytest.fixture
def make_draft_store(valkey, config, event_bus):
    """Factory: each call is a fresh load of the draft for a device."""

    def _make(device_id: str = DEVICE_ID) -> DraftStore:
        return DraftStore(valkey, device_id, config, event_bus=event_bus)

    return _make


@pytest.fixture
def draft_store(make_draft_store) -> DraftStore:
    return make_draft_store()
