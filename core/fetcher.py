"""
fetcher.py -- The one-level resource query the tree resolver drives.

A ResourceFetcher answers a single question: "what are the direct children of
parent_code in tenant_scope?". It returns flat ResourceNodes with no
descendants populated, or raises a FetchError subclass. It never retries --
core/resolver.py is the only component allowed to.

Classification of failures:
  httpx.TransportError (connect, read, timeout), HTTP 429, HTTP 5xx,
  any non-PlateError exception from an injected request function
      -> TransientFetchError
  HTTP 401 / 407
      -> Unauthenticated, raised by auth.httpauth.SessionAuth after logout
  other HTTP 4xx, a body that is neither a list nor a page wrapper
      -> PermanentFetchError
"""

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, Optional, Protocol, Union

import httpx

from core.config import Settings, get_settings
from core.errors import PermanentFetchError, PlateError, TransientFetchError
from core.models import ResourceNode, ResourceQuery

logger = logging.getLogger("plate.fetcher")

# Menus are the resource every console screen resolves on load.
DEFAULT_RESOURCE = "menus"


class ResourceFetcher(Protocol):
    async def fetch_children(
        self,
        parent_code: str,
        tenant_scope: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> list[ResourceNode]: ...


def build_client(
    settings: Optional[Settings] = None,
    auth: Optional[httpx.Auth] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Return an AsyncClient pointed at the console backend.

    Connect timeout is capped at 5s (the first byte matters most for a menu
    load); the remaining phases use Settings.request_timeout.
    """
    settings = settings or get_settings()
    return httpx.AsyncClient(
        base_url=settings.api_base_url,
        timeout=httpx.Timeout(settings.request_timeout, connect=min(5.0, settings.request_timeout)),
        auth=auth,
        transport=transport,
        follow_redirects=False,
    )


def parse_records(body: Any, parent_code: Optional[str] = None) -> list[ResourceNode]:
    """Accept a bare JSON array or a page wrapper {content: [...], totalElements, ...}."""
    if isinstance(body, dict) and "content" in body:
        body = body["content"]
    if not isinstance(body, list):
        raise PermanentFetchError(
            f"expected a list of records, got {type(body).__name__}",
            parent_code=parent_code,
        )
    nodes: list[ResourceNode] = []
    for item in body:
        if isinstance(item, ResourceNode):
            nodes.append(item)
        elif isinstance(item, dict):
            nodes.append(ResourceNode.from_dict(item))
        else:
            raise PermanentFetchError(f"unexpected record {item!r}", parent_code=parent_code)
    return nodes


class HttpResourceFetcher:
    """GET /<resource>/<endpoint>?pcode=<parent_code>&tenantCode=<tenant>.

    endpoint is "search" for the admin listing (every record the tenant has)
    or "me" for the records the logged-in user may see.

    Usage:
        async with build_client(auth=SessionAuth(session)) as client:
            fetcher = HttpResourceFetcher(client, "menus", endpoint="me")
            roots = await fetcher.fetch_children("0", "0")
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        resource: str = DEFAULT_RESOURCE,
        endpoint: str = "search",
        params: Optional[dict[str, Any]] = None,
    ) -> None:
        self._client = client
        self.path = f"/{resource.strip('/')}/{endpoint.strip('/')}"
        self._query = ResourceQuery(params=dict(params or {}))

    async def fetch_children(
        self,
        parent_code: str,
        tenant_scope: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> list[ResourceNode]:
        """Per-call params are layered over the constructor's."""
        query = ResourceQuery(pcode=parent_code, tenant_code=tenant_scope, params={**self._query.params, **(params or {})})
        try:
            resp = await self._client.get(self.path, params=query.to_params())
        except httpx.TransportError as e:
            raise TransientFetchError(f"{self.path} pcode={parent_code}: {e!r}", parent_code=parent_code) from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientFetchError(
                f"{self.path} pcode={parent_code} returned {resp.status_code}",
                parent_code=parent_code,
                status_code=resp.status_code,
            )
        if resp.status_code >= 400:
            raise PermanentFetchError(
                f"{self.path} pcode={parent_code} returned {resp.status_code}",
                parent_code=parent_code,
                status_code=resp.status_code,
            )
        try:
            body = resp.json()
        except ValueError as e:
            raise PermanentFetchError(f"{self.path} pcode={parent_code}: body is not JSON", parent_code=parent_code) from e
        nodes = parse_records(body, parent_code)
        logger.debug("%s pcode=%s -> %d record(s)", self.path, parent_code, len(nodes))
        return nodes


RecordsFn = Callable[..., Awaitable[Iterable[Union[ResourceNode, dict[str, Any]]]]]


class CallableResourceFetcher:
    """Adapt any async (parent_code, tenant_scope) -> records function.

    The injected function may return dicts in wire shape or ready ResourceNodes.
    Extra filter params, when a query carries any, are passed as params=.

    PlateError subclasses it raises pass through untouched. Any other
    Exception (a dropped connection, a timeout, a bug in the request code) is
    reported as TransientFetchError so the resolver retries it and isolates the
    subtree. Cancellation is not an Exception and is never wrapped.
    """

    def __init__(self, fn: RecordsFn) -> None:
        self._fn = fn

    async def fetch_children(
        self,
        parent_code: str,
        tenant_scope: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> list[ResourceNode]:
        try:
            if params:
                records = await self._fn(parent_code, tenant_scope, params=dict(params))
            else:
                records = await self._fn(parent_code, tenant_scope)
        except PlateError:
            raise
        except Exception as e:
            raise TransientFetchError(f"pcode={parent_code}: {e!r}", parent_code=parent_code) from e
        return parse_records(records, parent_code)
