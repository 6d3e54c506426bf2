"""
auth/session.py -- The authentication state machine.

States:
  LoggedOut      -- nothing in memory. A valid stored entry may still exist.
  Authenticated  -- an Authentication is held in memory.

Transitions:
  login(auth)    any -> Authenticated. Persists the entry, overwriting any prior.
  logout()       any -> LoggedOut. Drops memory and the stored entry.
  auth_token()   LoggedOut -> Authenticated when storage holds a valid entry
                 (last_access_time bumped to now and re-persisted); raises
                 Unauthenticated when it does not.

Expiry is a pure function of stored data (is_expired). A second process or a
restarted CLI reaches the same verdict from the same entry without any shared
flag. The stale entry is purged on the first load that notices it.

Concurrency: all mutations are short synchronous sections with no await
inside, so on a single event loop they never interleave and no lock is needed.
A multi-threaded caller must guard the manager with its own mutex.

Layer rule: no imports from core/ other than core.errors and core.config.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum

from auth.models import Authentication
from auth.store import TokenStore
from auth.tokens import AUTHENTICATION_KEY, decode_entry, encode_entry
from core.config import get_settings
from core.errors import MalformedPersisted, SessionExpired, Unauthenticated

logger = logging.getLogger("plate.session")


class SessionState(str, Enum):
    LOGGED_OUT = "LoggedOut"
    AUTHENTICATED = "Authenticated"


def is_expired(authentication: Authentication, now: float) -> bool:
    """True once `expires` seconds have elapsed since the last access."""
    return now - authentication.last_access_time >= authentication.expires


class SessionManager:
    """Owns the in-memory Authentication and its persisted copy.

    Usage:
        session = SessionManager(SqlTokenStore())
        session.login(authentication)
        headers = {"Authorization": f"Bearer {session.auth_token()}"}
        session.logout()

    The raw Authentication is never exposed for mutation; authentication()
    returns the held object for reading, and every state change goes through
    login()/logout().
    """

    def __init__(
        self,
        store: TokenStore,
        encode: bool | None = None,
        clock: Callable[[], float] = time.time,
        login_url: str | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._encode = settings.encode_storage if encode is None else encode
        self._clock = clock
        self.login_url = login_url or settings.login_url
        self._authentication: Authentication | None = None

    @property
    def state(self) -> SessionState:
        return SessionState.AUTHENTICATED if self._authentication is not None else SessionState.LOGGED_OUT

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def login(self, authentication: Authentication) -> None:
        self._authentication = authentication
        self._store.set(AUTHENTICATION_KEY, encode_entry(authentication.to_dict(), encode=self._encode))
        logger.debug("Session stored (expires in %ss)", authentication.expires)

    def logout(self) -> None:
        self._authentication = None
        self._store.remove(AUTHENTICATION_KEY)
        logger.debug("Session cleared")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def auth_token(self) -> str:
        """Return the bearer token, recovering the session from storage if needed.

        Raises Unauthenticated when neither memory nor storage holds a valid
        session. Callers must treat that as "redirect to login".
        """
        authentication = self.authentication()
        if authentication is None:
            raise Unauthenticated(login_url=self.login_url)
        return authentication.token

    def authentication(self) -> Authentication | None:
        """Like auth_token() but returns the whole Authentication, or None."""
        if self._authentication is not None:
            return self._authentication
        authentication = self.load_from_storage()
        if authentication is None:
            return None
        authentication.last_access_time = int(self._clock())
        self.login(authentication)
        logger.info("Session restored from storage")
        return authentication

    def is_logged(self) -> bool:
        """True if a session is held in memory or a valid one is stored.

        Does not move the state machine. Callers that need the refresh-on-load
        side effect call auth_token() instead.
        """
        if self._authentication is not None:
            return True
        return self.load_from_storage() is not None

    def load_from_storage(self) -> Authentication | None:
        """Read and validate the stored entry. Never raises.

        Absent -> None. Unreadable or expired -> entry removed, None.
        Otherwise the stored Authentication, unchanged; bumping
        last_access_time is the caller's job.
        """
        raw = self._store.get(AUTHENTICATION_KEY)
        if not raw:
            return None
        try:
            authentication = Authentication.from_dict(decode_entry(raw))
            if is_expired(authentication, self._clock()):
                raise SessionExpired(login_url=self.login_url)
        except MalformedPersisted as e:
            logger.warning("Discarding unreadable stored session: %s", e)
            self._store.remove(AUTHENTICATION_KEY)
            return None
        except SessionExpired:
            logger.info("Stored session expired; removing it")
            self._store.remove(AUTHENTICATION_KEY)
            return None
        return authentication
