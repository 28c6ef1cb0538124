"""Unit tests for the auth session state machine and refresh coordination."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from pocketbase_client.core.auth_session import (
    AUTHORIZATION_HEADER,
    SUPERUSERS_COLLECTION_ID,
    AuthSession,
    AuthState,
)
from pocketbase_client.core.auth_stores import FileAuthStore
from pocketbase_client.core.credential import Credential
from pocketbase_client.models import RecordModel


class TestAuthSessionState:
    """Test set/clear/restore transitions."""

    def test_starts_unauthenticated(self):
        session = AuthSession()
        assert session.state is AuthState.UNAUTHENTICATED
        assert session.credential is None
        assert session.token == ""
        assert not session.is_valid

    def test_save_authenticates(self, make_token, user_record):
        session = AuthSession()
        token = make_token()
        credential = session.save(token, RecordModel.model_validate(user_record))

        assert session.state is AuthState.AUTHENTICATED
        assert session.credential is credential
        assert session.token == token
        assert session.record.get("email") == "jane@example.com"
        assert session.is_valid

    def test_clear_from_any_state(self, make_token):
        session = AuthSession()
        session.save(make_token())
        session.on_response_signal(401, session.token)
        assert session.state is AuthState.EXPIRED

        session.clear()
        assert session.state is AuthState.UNAUTHENTICATED
        assert session.credential is None

    def test_set_persists_to_store(self, tmp_path, make_token):
        store = FileAuthStore(tmp_path / "auth.json")
        session = AuthSession(store)
        session.save(make_token())

        assert store.load().token == session.token

    def test_set_survives_store_failure(self, make_token):
        store = Mock()
        store.save.side_effect = OSError("disk full")
        session = AuthSession(store)

        session.save(make_token())
        assert session.state is AuthState.AUTHENTICATED

    def test_restore_loads_valid_credential(self, tmp_path, make_token):
        store = FileAuthStore(tmp_path / "auth.json")
        store.save(Credential.from_token(make_token()))

        session = AuthSession(store)
        assert session.restore()
        assert session.state is AuthState.AUTHENTICATED

    def test_restore_discards_expired_credential(self, tmp_path, make_token):
        path = tmp_path / "auth.json"
        store = FileAuthStore(path)
        store.save(Credential.from_token(make_token(expires_in=-60)))

        session = AuthSession(store)
        assert not session.restore()
        assert session.state is AuthState.UNAUTHENTICATED
        assert not path.exists()

    def test_restore_with_empty_store(self):
        assert not AuthSession().restore()

    def test_listeners_are_notified(self, make_token):
        session = AuthSession()
        seen = []
        unsubscribe = session.on_change(seen.append)

        credential = session.save(make_token())
        session.clear()
        unsubscribe()
        session.save(make_token())

        assert seen == [credential, None]

    def test_failing_listener_does_not_break_set(self, make_token):
        session = AuthSession()
        session.on_change(Mock(side_effect=RuntimeError("boom")))
        session.save(make_token())
        assert session.state is AuthState.AUTHENTICATED

    def test_needs_refresh(self, make_token):
        session = AuthSession()
        assert not session.needs_refresh()
        session.save(make_token(expires_in=60))
        assert session.needs_refresh()
        assert not session.needs_refresh(threshold_seconds=10)


class TestSuperuserDetection:
    def test_superuser_by_collection_id(self, make_token):
        session = AuthSession()
        session.save(make_token(collection_id=SUPERUSERS_COLLECTION_ID))
        assert session.is_superuser

    def test_superuser_by_record_collection(self, make_token):
        session = AuthSession()
        record = RecordModel(id="a1", collectionName="_superusers")
        session.save(make_token(collection_id="other"), record)
        assert session.is_superuser

    def test_regular_user(self, make_token, user_record):
        session = AuthSession()
        session.save(make_token(), RecordModel.model_validate(user_record))
        assert not session.is_superuser

    def test_non_auth_token_is_not_superuser(self, make_token):
        session = AuthSession()
        session.save(make_token(collection_id=SUPERUSERS_COLLECTION_ID, token_type="file"))
        assert not session.is_superuser


class TestDecorate:
    def test_adds_raw_token_when_authenticated(self, make_token):
        session = AuthSession()
        token = make_token()
        session.save(token)

        headers = {"Accept-Language": "en-US"}
        decorated = session.decorate(headers)

        assert decorated[AUTHORIZATION_HEADER] == token
        assert AUTHORIZATION_HEADER not in headers

    def test_no_token_when_unauthenticated(self):
        assert AuthSession().decorate({"X": "1"}) == {"X": "1"}

    def test_no_token_when_expired(self, make_token):
        session = AuthSession()
        session.save(make_token())
        session.on_response_signal(401, session.token)
        assert AUTHORIZATION_HEADER not in session.decorate()


class TestResponseSignal:
    """Test interpretation of auth-failure responses."""

    def test_401_with_live_token_expires_session(self, make_token):
        session = AuthSession()
        session.save(make_token())

        assert session.on_response_signal(401, session.token)
        assert session.state is AuthState.EXPIRED
        assert session.credential is not None

    @pytest.mark.parametrize("status", [200, 400, 403, 404, 500])
    def test_other_statuses_are_ignored(self, make_token, status):
        session = AuthSession()
        session.save(make_token())
        assert not session.on_response_signal(status, session.token)
        assert session.state is AuthState.AUTHENTICATED

    def test_401_without_sent_token_is_ignored(self, make_token):
        session = AuthSession()
        session.save(make_token())
        assert not session.on_response_signal(401, None)
        assert session.state is AuthState.AUTHENTICATED

    def test_401_without_sent_token_signals_while_expired(self, make_token):
        session = AuthSession()
        session.save(make_token())
        session.on_response_signal(401, session.token)

        assert session.on_response_signal(401, None)
        assert session.state is AuthState.EXPIRED
        assert not session.on_response_signal(403, None)

    def test_401_without_credential_is_ignored(self):
        session = AuthSession()
        assert not session.on_response_signal(401, "some-token")
        assert session.state is AuthState.UNAUTHENTICATED

    def test_stale_token_does_not_expire_new_credential(self, make_token):
        session = AuthSession()
        stale = make_token(record_id="old")
        session.save(stale)
        session.save(make_token(record_id="new"))

        assert session.on_response_signal(401, stale)
        assert session.state is AuthState.AUTHENTICATED


@pytest.mark.asyncio
class TestRefresh:
    """Test single-flight refresh."""

    async def test_successful_refresh_installs_credential(self, make_token):
        session = AuthSession()
        stale = make_token(record_id="old")
        session.save(stale)
        session.on_response_signal(401, stale)

        fresh = Credential.from_token(make_token(record_id="new"))
        handler = AsyncMock(return_value=fresh)

        assert await session.refresh(handler, stale)
        assert session.state is AuthState.AUTHENTICATED
        assert session.credential is fresh
        handler.assert_awaited_once_with(session)

    async def test_handler_returning_none_keeps_expired(self, make_token):
        session = AuthSession()
        stale = make_token()
        session.save(stale)
        session.on_response_signal(401, stale)

        assert not await session.refresh(AsyncMock(return_value=None), stale)
        assert session.state is AuthState.EXPIRED

    async def test_handler_raising_keeps_expired(self, make_token):
        session = AuthSession()
        stale = make_token()
        session.save(stale)
        session.on_response_signal(401, stale)

        handler = AsyncMock(side_effect=RuntimeError("refresh endpoint down"))
        assert not await session.refresh(handler, stale)
        assert session.state is AuthState.EXPIRED

    async def test_handler_that_installs_itself_is_not_set_twice(self, make_token):
        session = AuthSession()
        stale = make_token(record_id="old")
        session.save(stale)
        session.on_response_signal(401, stale)

        seen = []
        session.on_change(seen.append)

        async def handler(s):
            return s.save(make_token(record_id="new"))

        assert await session.refresh(handler, stale)
        assert len(seen) == 1

    async def test_concurrent_refreshes_run_handler_once(self, make_token):
        session = AuthSession()
        stale = make_token(record_id="old")
        session.save(stale)
        session.on_response_signal(401, stale)

        calls = 0

        async def handler(s):
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return Credential.from_token(make_token(record_id="new"))

        results = await asyncio.gather(*(session.refresh(handler, stale) for _ in range(5)))

        assert results == [True] * 5
        assert calls == 1
        assert session.state is AuthState.AUTHENTICATED
