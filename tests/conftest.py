"""
tests/conftest.py -- Shared fixtures for the console core tests.

This module provides:
  - FakeClock / clock: a controllable time source for session expiry tests
  - store / session: an in-memory TokenStore and a SessionManager over it
  - ScriptedFetcher / scripted: a ResourceFetcher driven by a parent->children map,
    with per-code transient/permanent failure scripts
  - make_backend(): a FastAPI app standing in for the auth + menus backend
  - http_client(): an httpx.AsyncClient wired to that app via ASGITransport,
    carrying SessionAuth exactly like production code

TOKEN_STORE is forced to "memory" before any project import so no test ever
creates the SQLite session file next to the package.
"""

from __future__ import annotations

import asyncio
import base64
import os

os.environ.setdefault("TOKEN_STORE", "memory")

import httpx
import pytest
from fastapi import FastAPI, HTTPException, Request

from auth.httpauth import SessionAuth
from auth.models import Authentication
from auth.session import SessionManager
from auth.store import MemoryTokenStore
from core.config import get_settings
from core.errors import PermanentFetchError, TransientFetchError
from core.fetcher import build_client
from core.models import ResourceNode

get_settings.cache_clear()

NOW = 1_700_000_000
TOKEN = "tok-abc123"

# ---------------------------------------------------------------------------
# Clock / session
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryTokenStore:
    return MemoryTokenStore()


@pytest.fixture
def session(store: MemoryTokenStore, clock: FakeClock) -> SessionManager:
    return SessionManager(store, clock=clock)


def make_auth(token: str = TOKEN, expires: int = 1800, last_access_time: int = NOW, details=None) -> Authentication:
    return Authentication(
        token=token,
        expires=expires,
        last_access_time=last_access_time,
        details=details if details is not None else {"username": "admin", "roles": ["ROLE_ADMIN"]},
    )


# ---------------------------------------------------------------------------
# Scripted fetcher
# ---------------------------------------------------------------------------


class ScriptedFetcher:
    """Answers fetch_children from a {parent_code: [child codes]} map.

    transient[code] = n makes the first n calls for code raise
    TransientFetchError. Codes in `permanent` always raise
    PermanentFetchError. delays[code] holds the fetch for that many seconds,
    to force a completion order.
    """

    def __init__(
        self,
        children: dict[str, list[str]],
        transient: dict[str, int] | None = None,
        permanent: set[str] | None = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.children = children
        self.transient = dict(transient or {})
        self.permanent = set(permanent or ())
        self.delays = dict(delays or {})
        self.calls: list[str] = []
        self.params: list[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_children(self, parent_code: str, tenant_scope: str, params=None) -> list[ResourceNode]:
        self.calls.append(parent_code)
        self.params.append(dict(params or {}))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(parent_code, 0))
            if parent_code in self.permanent:
                raise PermanentFetchError("forbidden", parent_code=parent_code, status_code=403)
            if self.transient.get(parent_code, 0) > 0:
                self.transient[parent_code] -= 1
                raise TransientFetchError("connection reset", parent_code=parent_code)
            return [
                ResourceNode(code=code, parent_code=parent_code, name=f"Menu {code}", tenant_code=tenant_scope)
                for code in self.children.get(parent_code, [])
            ]
        finally:
            self.in_flight -= 1


async def no_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


@pytest.fixture
def scripted():
    return ScriptedFetcher


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------

MENU_TREE: dict[str, list[dict]] = {
    "0": [
        {"code": "sys", "pcode": "0", "tenantCode": "0", "name": "System", "type": "FOLDER", "sort": 1},
        {"code": "rpt", "pcode": "0", "tenantCode": "0", "name": "Reports", "type": "FOLDER", "sort": 2},
    ],
    "sys": [
        {"code": "sys.users", "pcode": "sys", "tenantCode": "0", "name": "Users", "type": "MENU", "path": "/users"},
        {"code": "sys.menus", "pcode": "sys", "tenantCode": "0", "name": "Menus", "type": "MENU", "path": "/menus"},
    ],
    "sys.users": [
        {"code": "sys.users.add", "pcode": "sys.users", "tenantCode": "0", "name": "Add user", "type": "POINT"},
    ],
}


def make_backend(
    tree: dict[str, list[dict]] | None = None,
    users: dict[str, str] | None = None,
    token: str = TOKEN,
    expires: int = 1800,
    now: int = NOW,
) -> FastAPI:
    """Build a FastAPI app that behaves like the auth server + menus API.

    app.state.calls records every (endpoint, pcode) served and app.state.queries
    the full query string of each; app.state.fail
    maps pcode -> list of status codes to answer with before succeeding.
    """
    tree = MENU_TREE if tree is None else tree
    users = users if users is not None else {"admin": "s3cret"}

    app = FastAPI()
    app.state.calls = []
    app.state.queries = []
    app.state.fail = {}
    app.state.logged_out = []

    def _require_bearer(request: Request) -> None:
        if request.headers.get("authorization") != f"Bearer {token}":
            raise HTTPException(status_code=401, detail="unauthorized")

    @app.get("/oauth2/token")
    async def issue_token(request: Request):
        header = request.headers.get("authorization", "")
        if not header.startswith("Basic "):
            raise HTTPException(status_code=401, detail="credentials required")
        username, _, password = base64.b64decode(header[6:]).decode("utf-8").partition(":")
        if users.get(username) != password:
            raise HTTPException(status_code=401, detail="bad credentials")
        return {"token": token, "expires": expires, "lastAccessTime": now, "details": {"username": username}}

    @app.get("/oauth2/logout")
    async def logout(request: Request):
        app.state.logged_out.append(request.headers.get("authorization"))
        return {"ok": True}

    def _serve(endpoint: str, request: Request, pcode: str) -> list[dict]:
        _require_bearer(request)
        app.state.calls.append((endpoint, pcode))
        app.state.queries.append(dict(request.query_params))
        pending = app.state.fail.get(pcode)
        if pending:
            raise HTTPException(status_code=pending.pop(0), detail="scripted failure")
        return tree.get(pcode, [])

    @app.get("/menus/search")
    async def search(request: Request, pcode: str = "0", tenantCode: str = "0"):
        return _serve("search", request, pcode)

    @app.get("/menus/me")
    async def me(request: Request, pcode: str = "0", tenantCode: str = "0"):
        content = _serve("me", request, pcode)
        return {"content": content, "totalElements": len(content), "pageable": {"page": 0, "size": 25}}

    return app


def http_client(app: FastAPI, session: SessionManager) -> httpx.AsyncClient:
    return build_client(auth=SessionAuth(session), transport=httpx.ASGITransport(app=app))
