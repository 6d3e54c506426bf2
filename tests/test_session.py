"""Unit tests for auth/session.py -- the SessionManager state machine.

Covers:
- login/load round trip and the persisted entry format
- Expiry window: valid just inside, purged at and past `expires`
- auth_token() recovery from storage (bump + re-persist) and Unauthenticated
- is_logged() as a non-mutating check
- Malformed stored entries are purged, never raised
- A no-op store never crashes the manager
"""

import json

import pytest
from conftest import NOW, TOKEN, make_auth

from auth.session import SessionManager, SessionState, is_expired
from auth.store import MemoryTokenStore, NullTokenStore
from auth.tokens import AUTHENTICATION_KEY, decode_entry, encode_entry
from core.errors import Unauthenticated

# ---------------------------------------------------------------------------
# TestLoginLogout
# ---------------------------------------------------------------------------


class TestLoginLogout:
    def test_login_round_trips_through_storage(self, session, clock):
        auth = make_auth(last_access_time=int(clock()))
        session.login(auth)
        assert session.load_from_storage() == auth

    def test_login_persists_base64_json_by_default(self, session, store):
        session.login(make_auth())
        raw = store.get(AUTHENTICATION_KEY)
        assert raw is not None
        assert not raw.startswith("{")
        assert decode_entry(raw)["lastAccessTime"] == NOW

    def test_plain_json_when_encoding_disabled(self, store, clock):
        manager = SessionManager(store, encode=False, clock=clock)
        manager.login(make_auth())
        assert json.loads(store.get(AUTHENTICATION_KEY))["token"] == TOKEN

    def test_login_overwrites_previous_session(self, session):
        session.login(make_auth(token="first"))
        session.login(make_auth(token="second"))
        assert session.load_from_storage().token == "second"
        assert session.auth_token() == "second"

    def test_logout_clears_memory_and_storage(self, session, store):
        session.login(make_auth())
        session.logout()
        assert session.state is SessionState.LOGGED_OUT
        assert AUTHENTICATION_KEY not in store
        assert session.is_logged() is False

    def test_state_follows_transitions(self, session):
        assert session.state is SessionState.LOGGED_OUT
        session.login(make_auth())
        assert session.state is SessionState.AUTHENTICATED


# ---------------------------------------------------------------------------
# TestExpiry
# ---------------------------------------------------------------------------


class TestExpiry:
    def test_is_expired_boundary(self):
        auth = make_auth(expires=60, last_access_time=1000)
        assert is_expired(auth, 1059) is False
        assert is_expired(auth, 1060) is True

    def test_valid_just_inside_window(self, session, clock):
        session.login(make_auth(expires=60))
        clock.advance(59)
        assert session.load_from_storage() is not None

    def test_expired_entry_is_purged(self, session, store, clock):
        session.login(make_auth(expires=60))
        clock.advance(61)
        assert session.load_from_storage() is None
        assert AUTHENTICATION_KEY not in store

    def test_expired_at_exact_boundary(self, session, store, clock):
        session.login(make_auth(expires=60))
        clock.advance(60)
        assert session.load_from_storage() is None
        assert AUTHENTICATION_KEY not in store


# ---------------------------------------------------------------------------
# TestAuthToken
# ---------------------------------------------------------------------------


class TestAuthToken:
    def test_empty_store_raises_unauthenticated(self, session):
        with pytest.raises(Unauthenticated) as exc:
            session.auth_token()
        assert exc.value.login_url == "/auth/login"

    def test_in_memory_session_returned_without_storage(self, store, clock):
        manager = SessionManager(store, clock=clock)
        manager.login(make_auth())
        store.clear()
        assert manager.auth_token() == TOKEN

    def test_recovers_from_storage_and_bumps_access_time(self, store, clock):
        SessionManager(store, clock=clock).login(make_auth(expires=600))
        clock.advance(300)

        fresh = SessionManager(store, clock=clock)  # a restarted process
        assert fresh.state is SessionState.LOGGED_OUT
        assert fresh.auth_token() == TOKEN
        assert fresh.state is SessionState.AUTHENTICATED
        assert decode_entry(store.get(AUTHENTICATION_KEY))["lastAccessTime"] == NOW + 300

    def test_refresh_extends_the_window(self, store, clock):
        SessionManager(store, clock=clock).login(make_auth(expires=600))
        clock.advance(500)
        SessionManager(store, clock=clock).auth_token()
        clock.advance(500)  # 1000s after login, 500s after the refresh
        assert SessionManager(store, clock=clock).auth_token() == TOKEN

    def test_expired_storage_raises(self, store, clock):
        SessionManager(store, clock=clock).login(make_auth(expires=60))
        clock.advance(61)
        with pytest.raises(Unauthenticated):
            SessionManager(store, clock=clock).auth_token()

    def test_authentication_returns_none_instead_of_raising(self, session):
        assert session.authentication() is None

    def test_custom_login_url_carried_on_error(self, store, clock):
        manager = SessionManager(store, clock=clock, login_url="/passport/login")
        with pytest.raises(Unauthenticated) as exc:
            manager.auth_token()
        assert exc.value.login_url == "/passport/login"


# ---------------------------------------------------------------------------
# TestIsLogged
# ---------------------------------------------------------------------------


class TestIsLogged:
    def test_true_for_valid_stored_session_without_state_change(self, store, clock):
        SessionManager(store, clock=clock).login(make_auth())
        fresh = SessionManager(store, clock=clock)
        assert fresh.is_logged() is True
        assert fresh.state is SessionState.LOGGED_OUT
        assert decode_entry(store.get(AUTHENTICATION_KEY))["lastAccessTime"] == NOW

    def test_false_for_empty_store(self, session):
        assert session.is_logged() is False


# ---------------------------------------------------------------------------
# TestMalformedStorage
# ---------------------------------------------------------------------------


class TestMalformedStorage:
    @pytest.mark.parametrize(
        "raw",
        [
            "not base64 !!",
            "{not json",
            encode_entry({"token": "x"}),  # missing expires / lastAccessTime
            encode_entry({"token": "", "expires": 10, "lastAccessTime": NOW}),
            "[1, 2, 3]",
            '{"token": "t", "expires": 1e400, "lastAccessTime": 0}',
            encode_entry({"token": "t", "expires": 1800, "lastAccessTime": float("inf")}),
        ],
    )
    def test_unreadable_entry_is_purged(self, raw, store, clock):
        store.set(AUTHENTICATION_KEY, raw)
        manager = SessionManager(store, clock=clock)
        assert manager.load_from_storage() is None
        assert AUTHENTICATION_KEY not in store

    def test_unreadable_entry_surfaces_as_unauthenticated(self, store, clock):
        store.set(AUTHENTICATION_KEY, "{garbage")
        with pytest.raises(Unauthenticated):
            SessionManager(store, clock=clock).auth_token()

    def test_plain_json_entry_still_readable(self, store, clock):
        store.set(AUTHENTICATION_KEY, json.dumps(make_auth().to_dict()))
        assert SessionManager(store, clock=clock).load_from_storage().token == TOKEN


# ---------------------------------------------------------------------------
# TestNullStore
# ---------------------------------------------------------------------------


class TestNullStore:
    def test_session_works_in_memory_only(self, clock):
        manager = SessionManager(NullTokenStore(), clock=clock)
        manager.login(make_auth())
        assert manager.auth_token() == TOKEN
        manager.logout()
        with pytest.raises(Unauthenticated):
            manager.auth_token()

    def test_nothing_recoverable_after_restart(self, clock):
        store = NullTokenStore()
        SessionManager(store, clock=clock).login(make_auth())
        assert SessionManager(store, clock=clock).is_logged() is False


def test_details_payload_round_trips_untouched(clock):
    store = MemoryTokenStore()
    details = {"username": "张三", "tenant": {"code": "0"}, "authorities": ["ROLE_ADMIN"]}
    SessionManager(store, clock=clock).login(make_auth(details=details))
    assert SessionManager(store, clock=clock).load_from_storage().details == details
