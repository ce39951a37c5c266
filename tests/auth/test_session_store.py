"""Tests for SessionStore - durable session state and its transitions."""

from unittest.mock import patch

import pytest
import redis
from pydantic import ValidationError

from api.base import Err, ErrorKind, Ok
from api.schemas import EmailVerifyData, GoogleAuthData, PhoneVerifyData, TokenPair
from auth.types import AuthProvider, IdentityResult, User


ACCESS_KEY = "auth:device-a:accessToken"
REFRESH_KEY = "auth:device-a:refreshToken"
PROVIDER_KEY = "auth:device-a:authProvider"
TEST_PHONE = "+2348012345678"


@pytest.fixture
def signed_in(session_store, tokens, user):
    """Store holding a committed email session."""
    session_store.apply_identity(
        IdentityResult(user_id=user.id, tokens=tokens, user=user),
        AuthProvider.LOCAL,
    )
    return session_store


class TestRehydrate:
    """Construction reads whatever a previous load left behind."""

    def test_fresh_device_is_unauthenticated(self, session_store):
        assert session_store.is_authenticated is False
        assert session_store.is_initialized is False
        assert session_store.user is None

    def test_round_trip(self, session_store, make_session_store):
        """The pair last written is the pair a reload sees."""
        session_store.set_tokens("access-1", "refresh-1")
        session_store.set_tokens("access-2", "refresh-2")

        reloaded = make_session_store()

        assert reloaded.access_token == "access-2"
        assert reloaded.refresh_token == "refresh-2"
        assert reloaded.is_authenticated

    def test_user_is_not_persisted(self, signed_in, make_session_store):
        reloaded = make_session_store()

        assert reloaded.is_authenticated
        assert reloaded.auth_provider is AuthProvider.LOCAL
        assert reloaded.user is None

    def test_incomplete_pair_ignored(self, valkey, make_session_store):
        valkey.set(ACCESS_KEY, "orphan")

        assert make_session_store().is_authenticated is False

    def test_unknown_provider_tag(self, valkey, make_session_store):
        valkey.set_many({ACCESS_KEY: "a", REFRESH_KEY: "r", PROVIDER_KEY: "myspace"})

        reloaded = make_session_store()

        assert reloaded.is_authenticated
        assert reloaded.auth_provider is None

    def test_devices_are_isolated(self, signed_in, make_session_store):
        assert make_session_store("device-b").is_authenticated is False

    def test_device_id_required(self, make_session_store):
        with pytest.raises(ValueError, match="device_id"):
            make_session_store("")


class TestSetTokens:

    def test_writes_storage_and_memory(self, session_store, valkey):
        session_store.set_tokens("a", "r")

        assert valkey.get(ACCESS_KEY) == "a"
        assert valkey.get(REFRESH_KEY) == "r"
        assert session_store.access_token == "a"

    def test_empty_token_rejected(self, session_store, valkey):
        with pytest.raises(ValidationError):
            session_store.set_tokens("", "r")

        assert valkey.get(ACCESS_KEY) is None
        assert session_store.is_authenticated is False

    def test_storage_failure_leaves_memory_untouched(self, session_store, valkey):
        with patch.object(valkey, "set_many", side_effect=redis.ConnectionError("down")):
            with pytest.raises(redis.ConnectionError):
                session_store.set_tokens("a", "r")

        assert session_store.is_authenticated is False

    def test_publishes_change(self, session_store, event_bus):
        changes = []
        event_bus.subscribe("SessionChanged", changes.append)

        session_store.set_tokens("a", "r")

        assert changes[-1].session.access_token == "a"


class TestSetUser:

    def test_does_not_touch_tokens(self, signed_in, user):
        signed_in.set_user(None)

        assert signed_in.user is None
        assert signed_in.access_token == "access-1"

    def test_update_user_merges(self, signed_in):
        signed_in.update_user({"first_name": "Adaeze", "estate": "Lekki Gardens"})

        assert signed_in.user.first_name == "Adaeze"
        assert signed_in.user.estate == "Lekki Gardens"
        assert signed_in.user.email == "ada@mecabal.com"

    def test_update_user_without_user_is_noop(self, session_store):
        session_store.update_user({"first_name": "Ada"})

        assert session_store.user is None


class TestClearAuth:

    def test_removes_everything(self, signed_in, valkey):
        signed_in.clear_auth()

        assert signed_in.is_authenticated is False
        assert signed_in.user is None
        assert signed_in.auth_provider is None
        assert valkey.get_many([ACCESS_KEY, REFRESH_KEY, PROVIDER_KEY]) == {
            ACCESS_KEY: None,
            REFRESH_KEY: None,
            PROVIDER_KEY: None,
        }

    def test_idempotent(self, signed_in):
        signed_in.clear_auth()
        once = signed_in.snapshot()

        signed_in.clear_auth()

        assert signed_in.snapshot() == once

    def test_on_fresh_device(self, session_store):
        session_store.clear_auth()

        assert session_store.is_authenticated is False

    def test_leaves_draft_namespace_alone(self, signed_in, valkey):
        valkey.set_json("onboarding:device-a:draft", {"currentStep": "login"})

        signed_in.clear_auth()

        assert valkey.get_json("onboarding:device-a:draft") == {"currentStep": "login"}

    def test_storage_failure_still_clears_memory(self, signed_in, valkey):
        with patch.object(valkey, "delete", side_effect=redis.ConnectionError("down")):
            signed_in.clear_auth()

        assert signed_in.is_authenticated is False

    def test_publishes_cleared_with_reason(self, signed_in, event_bus):
        cleared = []
        event_bus.subscribe("SessionCleared", cleared.append)

        signed_in.clear_auth(reason="session_expired")

        assert [e.reason for e in cleared] == ["session_expired"]

    def test_records_security_event(self, signed_in, security_logger):
        signed_in.clear_auth()

        assert security_logger.get_recent_events()[0]["event_type"] == "session_cleared"


class TestLoginWithEmail:

    def test_success_commits_session(self, session_store, client, user):
        client.verify_email_code.return_value = Ok(
            EmailVerifyData(user=user, access_token="a", refresh_token="r")
        )

        assert session_store.login_with_email("ada@mecabal.com", "1234") is True

        assert session_store.access_token == "a"
        assert session_store.user == user
        assert session_store.auth_provider is AuthProvider.LOCAL
        assert session_store.last_error is None
        assert session_store.is_loading is False

    def test_wrong_code(self, session_store, client):
        client.verify_email_code.return_value = Err(ErrorKind.INVALID_CODE, "Invalid OTP")

        assert session_store.login_with_email("ada@mecabal.com", "0000") is False

        assert session_store.last_error is ErrorKind.INVALID_CODE
        assert session_store.is_authenticated is False
        assert session_store.is_loading is False

    def test_storage_failure_returns_false(self, session_store, client, valkey, user):
        client.verify_email_code.return_value = Ok(
            EmailVerifyData(user=user, access_token="a", refresh_token="r")
        )

        with patch.object(valkey, "set_many", side_effect=redis.ConnectionError("down")):
            assert session_store.login_with_email("ada@mecabal.com", "1234") is False

        assert session_store.is_authenticated is False
        assert session_store.is_loading is False



class TestLoginWithPhone:

    def test_phone_login_then_reload(self, session_store, make_session_store, client, user):
        client.verify_phone_code.return_value = Ok(
            PhoneVerifyData(verified=True, user=user, tokens=TokenPair(access_token="a", refresh_token="r"))
        )

        assert session_store.login_with_phone(TEST_PHONE, "4321") is True
        assert session_store.auth_provider is AuthProvider.PHONE
        assert session_store.user.id == "u1"

        reloaded = make_session_store()
        outcome = reloaded.refresh_user()

        assert outcome.ok
        assert reloaded.user.id == "u1"
        assert reloaded.auth_provider is AuthProvider.PHONE
        client.refresh_tokens.assert_not_called()
        client.get_current_user.assert_called_once_with("a")

    def test_phone_verification_without_tokens_fails(self, session_store, client, user):
        client.verify_phone_code.return_value = Ok(PhoneVerifyData(verified=True, user=user))

        assert session_store.login_with_phone(TEST_PHONE, "4321") is False
        assert session_store.last_error is ErrorKind.PROVIDER_REJECTED


class TestSignInWithGoogle:

    def test_sets_google_provider(self, session_store, client, user):
        client.google_sign_in.return_value = Ok(
            GoogleAuthData(user=user, access_token="a", refresh_token="r")
        )

        assert session_store.sign_in_with_google("id-token") is True
        assert session_store.auth_provider is AuthProvider.GOOGLE

    def test_rejected(self, session_store, client):
        client.google_sign_in.return_value = Err(ErrorKind.PROVIDER_REJECTED, "Invalid token")

        assert session_store.sign_in_with_google("id-token") is False
        assert session_store.last_error is ErrorKind.PROVIDER_REJECTED


class TestApplyIdentity:

    def test_without_tokens_when_signed_out(self, session_store, user):
        committed = session_store.apply_identity(IdentityResult(user_id="u1", user=user), AuthProvider.LOCAL)

        assert committed is False
        assert session_store.is_authenticated is False
        assert session_store.last_error is ErrorKind.PROVIDER_REJECTED

    def test_without_tokens_updates_existing_session_user(self, signed_in):
        updated = User(id="u1", phone_verified=True, phone_number=TEST_PHONE)

        assert signed_in.apply_identity(IdentityResult(user_id="u1", user=updated), AuthProvider.PHONE) is True

        assert signed_in.user.phone_verified is True
        assert signed_in.auth_provider is AuthProvider.LOCAL

    def test_tokens_without_profile_fetch_user(self, session_store, client, tokens, user):
        assert session_store.apply_identity(IdentityResult(user_id="u1", tokens=tokens), AuthProvider.LOCAL)

        client.get_current_user.assert_called_once_with("access-1")
        assert session_store.user == user

    def test_single_atomic_write(self, session_store, valkey, tokens, user):
        with patch.object(valkey, "set_many", wraps=valkey.set_many) as set_many:
            session_store.apply_identity(IdentityResult(user_id="u1", tokens=tokens, user=user), AuthProvider.GOOGLE)

        set_many.assert_called_once_with(
            {ACCESS_KEY: "access-1", REFRESH_KEY: "refresh-1", PROVIDER_KEY: "google"}
        )


class TestRefreshUser:
    """Bounded refresh-then-retry."""

    def test_success_without_refresh(self, signed_in, client, user):
        outcome = signed_in.refresh_user()

        assert outcome.ok
        assert outcome.refresh_attempted is False
        client.refresh_tokens.assert_not_called()

    def test_unauthorized_refreshes_exactly_once(self, signed_in, client, valkey, user):
        client.get_current_user.side_effect = [Err(ErrorKind.UNAUTHORIZED), Ok(user)]
        client.refresh_tokens.return_value = Ok(TokenPair(access_token="access-2", refresh_token="refresh-2"))

        outcome = signed_in.refresh_user()

        assert outcome.ok
        assert outcome.refreshed is True
        assert client.refresh_tokens.call_count == 1
        assert client.get_current_user.call_count == 2
        client.refresh_tokens.assert_called_once_with("refresh-1")
        # Retry carries the committed new token
        assert client.get_current_user.call_args_list[1].args == ("access-2",)
        assert valkey.get(ACCESS_KEY) == "access-2"
        assert valkey.get(REFRESH_KEY) == "refresh-2"

    def test_retry_failure_is_unrecoverable(self, signed_in, client):
        client.get_current_user.side_effect = [Err(ErrorKind.UNAUTHORIZED), Err(ErrorKind.UNAUTHORIZED)]
        client.refresh_tokens.return_value = Ok(TokenPair(access_token="access-2", refresh_token="refresh-2"))

        outcome = signed_in.refresh_user()

        assert outcome.session_unrecoverable is True
        assert client.refresh_tokens.call_count == 1
        assert client.get_current_user.call_count == 2

    def test_dead_refresh_token(self, signed_in, client):
        client.get_current_user.return_value = Err(ErrorKind.TOKEN_EXPIRED)
        client.refresh_tokens.return_value = Err(ErrorKind.UNAUTHORIZED)

        outcome = signed_in.refresh_user()

        assert outcome.session_unrecoverable is True
        assert outcome.refresh_attempted is True
        assert client.get_current_user.call_count == 1

    def test_refresh_network_error_is_recoverable(self, signed_in, client):
        client.get_current_user.return_value = Err(ErrorKind.UNAUTHORIZED)
        client.refresh_tokens.return_value = Err(ErrorKind.NETWORK_ERROR)

        outcome = signed_in.refresh_user()

        assert outcome.session_unrecoverable is False
        assert signed_in.access_token == "access-1"

    def test_network_error_skips_refresh(self, signed_in, client):
        client.get_current_user.return_value = Err(ErrorKind.NETWORK_ERROR)

        outcome = signed_in.refresh_user()

        assert outcome.error is ErrorKind.NETWORK_ERROR
        assert outcome.session_unrecoverable is False
        client.refresh_tokens.assert_not_called()

    def test_never_clears_auth_itself(self, signed_in, client):
        client.get_current_user.return_value = Err(ErrorKind.UNAUTHORIZED)
        client.refresh_tokens.return_value = Err(ErrorKind.UNAUTHORIZED)

        signed_in.refresh_user()

        assert signed_in.is_authenticated is True

    def test_signed_out_makes_no_calls(self, session_store, client):
        outcome = session_store.refresh_user()

        assert outcome.error is ErrorKind.UNAUTHORIZED
        client.get_current_user.assert_not_called()

    def test_loading_settles(self, signed_in, client):
        seen = []

        def fetch(token):
            seen.append(signed_in.is_loading)
            return Err(ErrorKind.NETWORK_ERROR)

        client.get_current_user.side_effect = fetch

        signed_in.refresh_user()

        assert seen == [True]
        assert signed_in.is_loading is False


class TestLogout:

    def test_invalidates_then_clears(self, signed_in, client, valkey):
        signed_in.logout()

        client.logout.assert_called_once_with("access-1")
        assert signed_in.is_authenticated is False
        assert valkey.get(ACCESS_KEY) is None

    def test_server_failure_still_clears(self, signed_in, client):
        client.logout.return_value = Err(ErrorKind.NETWORK_ERROR)

        signed_in.logout()

        assert signed_in.is_authenticated is False

    def test_signed_out_skips_server(self, session_store, client):
        session_store.logout()

        client.logout.assert_not_called()

    def test_records_logout(self, signed_in, security_logger):
        signed_in.logout()

        types = [e["event_type"] for e in security_logger.get_recent_events()]
        assert types[:2] == ["session_cleared", "logout"]


class TestInitializedFlag:

    def test_mark_once(self, session_store):
        assert session_store.mark_initialized() is True
        assert session_store.mark_initialized() is False
        assert session_store.is_initialized is True

    def test_snapshot(self, signed_in):
        signed_in.mark_initialized()
        snapshot = signed_in.snapshot()

        assert snapshot.is_authenticated
        assert snapshot.is_initialized
        assert snapshot.user.id == "u1"
        assert snapshot.is_loading is False
