"""
core/resolver.py -- Assemble a full parent/child tree from one-level queries.

Algorithm (level by level, data-driven depth):
  1. Fetch the root set for the filter's pcode. The filter's tenant_code and
     extra params go with every fetch of the pass, roots and descendants alike.
  2. For every node in the frontier, fetch its children (pcode = node.code).
     Dispatch inside a level is staggered by stagger_seconds * position and
     capped by a semaphore, so a wide level never fires all requests at once.
  3. Each fetch is retried on TransientFetchError, up to max_attempts in
     total, with exponential backoff. When a child fetch exhausts its budget
     (or fails permanently) that subtree is left as a leaf and recorded in the
     ResolveReport; siblings are unaffected.
  4. Only non-empty child lists are attached. A leaf keeps children = None.
  5. The next frontier is every child attached in this level. Resolution ends
     when a level attaches nothing.

A level is a fan-out/fan-in join: every fetch in it settles before the next
level starts. Results are merged by position, not completion order, so the
tree is the same however the requests interleave.

A code already expanded during this pass is not fetched again. That bounds the
work when the backend returns a cycle or the same record under two parents;
the later occurrences stay leaves and the flattener's dedup drops them.

Unauthenticated aborts the whole resolution: in-flight fetches are cancelled
and the error propagates. Cancelling the task awaiting resolve() does the
same. The resolver holds no session state, so neither path can corrupt it.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Optional

from core.config import Settings, get_settings
from core.errors import FetchError, TransientFetchError
from core.fetcher import ResourceFetcher
from core.models import ResourceNode, ResourceQuery

logger = logging.getLogger("plate.resolver")


@dataclass
class ResolveReport:
    fetched: int = 0  # successful fetch calls
    retried: int = 0  # transient failures that were retried
    failed: dict[str, str] = field(default_factory=dict)  # parent code -> last error

    @property
    def complete(self) -> bool:
        return not self.failed


class TreeResolver:
    """Drive a ResourceFetcher recursively into a tree.

    Tuning defaults come from Settings (RESOLVE_MAX_ATTEMPTS=3,
    RESOLVE_STAGGER_SECONDS=0.1, RESOLVE_BACKOFF_SECONDS=0.2,
    RESOLVE_MAX_CONCURRENCY=8); keyword arguments override them per instance.
    `sleep` is injectable so tests can run without real delays.

    Usage:
        resolver = TreeResolver(fetcher)
        roots = await resolver.resolve(ResourceQuery(pcode="0", tenant_code="0"))
    """

    def __init__(
        self,
        fetcher: ResourceFetcher,
        max_attempts: Optional[int] = None,
        stagger_seconds: Optional[float] = None,
        backoff_seconds: Optional[float] = None,
        max_concurrency: Optional[int] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        settings = settings or get_settings()
        self._fetcher = fetcher
        self.max_attempts = max_attempts if max_attempts is not None else settings.resolve_max_attempts
        self.stagger_seconds = stagger_seconds if stagger_seconds is not None else settings.resolve_stagger_seconds
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.resolve_backoff_seconds
        self.max_concurrency = max_concurrency if max_concurrency is not None else settings.resolve_max_concurrency
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._sleep = sleep

    async def resolve(self, root_filter: ResourceQuery) -> list[ResourceNode]:
        """Return the root set with every reachable descendant attached."""
        roots, _report = await self.resolve_with_report(root_filter)
        return roots

    async def resolve_with_report(self, root_filter: ResourceQuery) -> tuple[list[ResourceNode], ResolveReport]:
        """Like resolve(), plus a ResolveReport of fetch counts and failed subtrees.

        A failure fetching the root set itself propagates: there is no tree
        to return a partial copy of.
        """
        report = ResolveReport()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        roots = await self._fetch_with_retry(root_filter.pcode, root_filter, report, semaphore)
        expanded: set[str] = set()
        frontier = roots
        depth = 0
        while frontier:
            # One fetch per distinct code; every node sharing the code gets the result.
            batch: dict[str, list[ResourceNode]] = {}
            for node in frontier:
                if not node.code or node.code in expanded:
                    continue
                batch.setdefault(node.code, []).append(node)
            if not batch:
                break
            expanded.update(batch)

            codes = list(batch)
            results = await self._gather_level(codes, root_filter, report, semaphore)

            frontier = []
            for code, children in zip(codes, results):
                if not children:
                    continue
                for node in batch[code]:
                    node.children = children
                frontier.extend(children)
            depth += 1
            logger.debug("Level %d: %d parent(s), %d child record(s)", depth, len(codes), len(frontier))

        if report.failed:
            logger.warning(
                "Resolved %d root(s) with %d failed subtree(s): %s",
                len(roots),
                len(report.failed),
                ", ".join(sorted(report.failed)),
            )
        else:
            logger.info("Resolved %d root(s) across %d level(s) in %d fetch(es)", len(roots), depth, report.fetched)
        return roots, report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _gather_level(
        self,
        codes: list[str],
        query: ResourceQuery,
        report: ResolveReport,
        semaphore: asyncio.Semaphore,
    ) -> list[list[ResourceNode]]:
        tasks = [
            asyncio.ensure_future(self._expand(code, index, query, report, semaphore))
            for index, code in enumerate(codes)
        ]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _expand(
        self,
        parent_code: str,
        index: int,
        query: ResourceQuery,
        report: ResolveReport,
        semaphore: asyncio.Semaphore,
    ) -> list[ResourceNode]:
        if index and self.stagger_seconds:
            await self._sleep(self.stagger_seconds * index)
        try:
            return await self._fetch_with_retry(parent_code, query, report, semaphore)
        except FetchError as e:
            report.failed[parent_code] = str(e)
            logger.warning("Children of %s omitted: %s", parent_code, e)
            return []

    async def _fetch_with_retry(
        self,
        parent_code: str,
        query: ResourceQuery,
        report: ResolveReport,
        semaphore: asyncio.Semaphore,
    ) -> list[ResourceNode]:
        attempt = 0
        while True:
            attempt += 1
            try:
                async with semaphore:
                    nodes = await self._fetcher.fetch_children(parent_code, query.tenant_code, query.params)
            except TransientFetchError as e:
                if attempt >= self.max_attempts:
                    raise
                report.retried += 1
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.info(
                    "Fetch for pcode=%s failed (%s); retry %d/%d in %.2fs",
                    parent_code,
                    e,
                    attempt,
                    self.max_attempts - 1,
                    delay,
                )
                if delay:
                    await self._sleep(delay)
                continue
            report.fetched += 1
            return nodes
