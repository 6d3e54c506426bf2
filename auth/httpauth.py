"""
auth/httpauth.py -- httpx auth hook that ties outbound requests to the session.

SessionAuth plays the role of the console's request interceptor:

  1. Every request gets X-Requested-With: XMLHttpRequest so the backend
     answers auth failures with a status code instead of a login redirect.
  2. If the session is (or can be recovered as) authenticated, the request
     gets Authorization: Bearer <token>. An anonymous request goes out
     unchanged -- the login call itself is one.
  3. A 401 (or 407) response logs the session out and raises Unauthenticated.
     The caller's job is then the redirect to the login page. Responses to
     requests that carry Basic credentials (the token exchange) are not
     inspected; AuthClient maps those itself.

Pass an instance as `auth=` when building the httpx.AsyncClient (see
core/fetcher.py build_client) and every call through that client is covered.

Layer rule: no imports from core/ other than core.errors.
"""

from __future__ import annotations

import logging
from collections.abc import Generator

import httpx

from auth.session import SessionManager
from auth.tokens import bearer_authorization
from core.errors import Unauthenticated

logger = logging.getLogger("plate.auth")

_LOGOUT_STATUSES = {401, 407}


class SessionAuth(httpx.Auth):
    def __init__(self, session: SessionManager) -> None:
        self.session = session

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["X-Requested-With"] = "XMLHttpRequest"
        if request.headers.get("Authorization", "").startswith("Basic "):
            # Credential exchange; AuthClient maps its 401 to bad credentials.
            yield request
            return
        if "Authorization" not in request.headers:
            authentication = self.session.authentication()
            if authentication is not None:
                request.headers["Authorization"] = bearer_authorization(authentication.token)

        response = yield request

        if response.status_code in _LOGOUT_STATUSES:
            logger.warning("%s %s returned %d; logging out", request.method, request.url.path, response.status_code)
            self.session.logout()
            raise Unauthenticated(login_url=self.session.login_url)
