"""
auth/client.py -- Talk to the auth server on behalf of the SessionManager.

  login(credentials)   GET /oauth2/token with HTTP Basic credentials. The
                       returned Authentication is handed to session.login().
  logout()             Local logout first, then a best-effort
                       GET /oauth2/logout. Server-side failures are logged and
                       swallowed -- the local session is gone either way.
  remember/forget      "Remember me": credentials persisted base64-wrapped
                       under the "credentials" key.
  auto_login()         Log in with remembered credentials when no valid session
                       can be recovered. Returns None when there is nothing to
                       remember or the server refuses them.

The httpx client passed in should carry auth.httpauth.SessionAuth so a
401 from the server consistently means "logout and redirect".
"""

from __future__ import annotations

import logging

import httpx

from auth.models import Authentication, Credentials
from auth.session import SessionManager
from auth.store import TokenStore
from auth.tokens import CREDENTIALS_KEY, basic_authorization, decode_entry, encode_entry
from core.config import get_settings
from core.errors import MalformedPersisted, PermanentFetchError, TransientFetchError, Unauthenticated

logger = logging.getLogger("plate.auth")

TOKEN_PATH = "/oauth2/token"
LOGOUT_PATH = "/oauth2/logout"


class AuthClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        session: SessionManager,
        store: TokenStore,
        encode: bool | None = None,
        token_path: str = TOKEN_PATH,
        logout_path: str = LOGOUT_PATH,
    ) -> None:
        self._client = client
        self.session = session
        self._store = store
        self._encode = get_settings().encode_storage if encode is None else encode
        self.token_path = token_path
        self.logout_path = logout_path

    async def login(self, credentials: Credentials, remember: bool = False) -> Authentication:
        """Exchange credentials for an Authentication and start the session.

        Raises Unauthenticated when the server rejects the credentials,
        TransientFetchError on network failure or 5xx, PermanentFetchError
        on any other unusable answer.
        """
        headers = {"Authorization": basic_authorization(credentials.username, credentials.password)}
        try:
            resp = await self._client.get(self.token_path, headers=headers)
        except httpx.TransportError as e:
            raise TransientFetchError(f"{self.token_path}: {e!r}") from e

        if resp.status_code in (401, 403):
            raise Unauthenticated("Invalid username or password.", login_url=self.session.login_url)
        if resp.status_code >= 500:
            raise TransientFetchError(f"{self.token_path} returned {resp.status_code}", status_code=resp.status_code)
        if resp.status_code >= 400:
            raise PermanentFetchError(f"{self.token_path} returned {resp.status_code}", status_code=resp.status_code)
        try:
            authentication = Authentication.from_dict(resp.json())
        except (ValueError, MalformedPersisted) as e:
            raise PermanentFetchError(f"{self.token_path}: unusable authentication body ({e})") from e

        self.session.login(authentication)
        if remember:
            self.remember(credentials)
        logger.info("Logged in as %s", credentials.username)
        return authentication

    async def logout(self, forget: bool = True) -> None:
        had_session = self.session.is_logged()
        token = None
        if had_session:
            token = self.session.auth_token()
        self.session.logout()
        if forget:
            self.forget()
        if token is None:
            return
        try:
            resp = await self._client.get(self.logout_path, headers={"Authorization": f"Bearer {token}"})
            if resp.status_code >= 400:
                logger.warning("Server logout returned %d (ignored)", resp.status_code)
        except (httpx.HTTPError, Unauthenticated) as e:
            logger.warning("Server logout failed (ignored): %s", e)

    # ------------------------------------------------------------------
    # Remember me
    # ------------------------------------------------------------------

    def remember(self, credentials: Credentials) -> None:
        self._store.set(CREDENTIALS_KEY, encode_entry(credentials.to_dict(), encode=self._encode))

    def remembered(self) -> Credentials | None:
        raw = self._store.get(CREDENTIALS_KEY)
        if not raw:
            return None
        try:
            return Credentials.from_dict(decode_entry(raw))
        except MalformedPersisted as e:
            logger.warning("Discarding unreadable remembered credentials: %s", e)
            self._store.remove(CREDENTIALS_KEY)
            return None

    def forget(self) -> None:
        self._store.remove(CREDENTIALS_KEY)

    async def auto_login(self) -> Authentication | None:
        """Recover a session: stored session first, then remembered credentials."""
        authentication = self.session.authentication()
        if authentication is not None:
            return authentication
        credentials = self.remembered()
        if credentials is None:
            return None
        try:
            return await self.login(credentials)
        except Unauthenticated:
            logger.info("Remembered credentials were rejected; forgetting them")
            self.forget()
            return None
