"""
core/pipeline.py — Resolve-then-flatten pipeline behind a tree screen.

No side effects beyond the fetches. No print statements. Designed to be called
by the CLI (main.py) and by anything else that needs a menu tree plus its
per-root row lists.

Cancellation: load_tree() is a plain coroutine. Cancel the task awaiting it
(for example when the consumer goes away) and every in-flight child fetch is
cancelled with it; see core/resolver.py.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from core.fetcher import ResourceFetcher
from core.models import ROOT_CODE, ResourceNode, ResourceQuery
from core.resolver import ResolveReport, TreeResolver
from core.tree import flatten_forest


@dataclass
class TreeView:
    """A resolved forest and the flattened rows of each root, keyed by root code."""

    roots: list[ResourceNode]
    rows: dict[str, list[ResourceNode]]
    report: ResolveReport = field(default_factory=ResolveReport)

    def all_rows(self) -> list[ResourceNode]:
        """Every root's rows, concatenated in root order."""
        out: list[ResourceNode] = []
        for root in self.roots:
            out.extend(self.rows.get(root.key, []))
        return out


async def load_tree(
    fetcher: ResourceFetcher,
    tenant_code: str = ROOT_CODE,
    pcode: str = ROOT_CODE,
    resolver: Optional[TreeResolver] = None,
    params: Optional[dict[str, Any]] = None,
) -> TreeView:
    """Resolve the forest under pcode and flatten each root.

    params are extra query filters sent with every fetch of the tree.

    Raises whatever the root fetch raises (Unauthenticated, FetchError).
    Failed subtrees are reported in TreeView.report, not raised.
    """
    resolver = resolver or TreeResolver(fetcher)
    query = ResourceQuery(pcode=pcode, tenant_code=tenant_code, params=dict(params or {}))
    roots, report = await resolver.resolve_with_report(query)
    return TreeView(roots=roots, rows=flatten_forest(roots), report=report)
