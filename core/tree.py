"""
core/tree.py -- Flatten a resolved tree into rows and toggle subtree expansion.

flatten() turns one root into the ordered, leveled list a tree-table renders:
pre-order, each row annotated with level, expanded=False and parent_ref (the
parent's code). It walks with an explicit stack, so depth and width of the
input are bounded only by memory, never by the interpreter's recursion limit.

Rows are shallow copies of the tree nodes. The resolved tree is left as it
was, and flattening it twice gives two independent row lists.

collapse() mutates only the `expanded` flag of rows already in a list. It never
adds or removes rows; hiding collapsed rows is the renderer's business (see
visible()).
"""

from collections.abc import Iterable
from dataclasses import replace
from typing import Optional

from core.models import ResourceNode


def flatten(root: ResourceNode) -> list[ResourceNode]:
    """Return root and its descendants as pre-order rows, one per distinct code.

    A code seen earlier in the walk (a repeated child pointer, or the same
    record under two parents) is skipped together with its subtree, so the
    first occurrence in pre-order wins.
    """
    stack: list[ResourceNode] = [replace(root, level=0, expanded=False, parent_ref=None)]
    rows: list[ResourceNode] = []
    seen: set[str] = set()
    while stack:
        node = stack.pop()
        if node.key in seen:
            continue
        seen.add(node.key)
        rows.append(node)
        if node.children:
            # Reverse push so the first child pops next.
            for child in reversed(node.children):
                stack.append(replace(child, level=node.level + 1, expanded=False, parent_ref=node.key))
    return rows


def flatten_forest(roots: Iterable[ResourceNode]) -> dict[str, list[ResourceNode]]:
    """Flatten every root independently, keyed by the root's code."""
    return {root.key: flatten(root) for root in roots}


def _index(rows: Iterable[ResourceNode]) -> dict[str, ResourceNode]:
    index: dict[str, ResourceNode] = {}
    for row in rows:
        index.setdefault(row.key, row)
    return index


def find_parent(rows: list[ResourceNode], node: ResourceNode) -> Optional[ResourceNode]:
    """Resolve node.parent_ref against rows. None for a root or an unknown parent."""
    if node.parent_ref is None:
        return None
    return _index(rows).get(node.parent_ref)


def collapse(rows: list[ResourceNode], node: ResourceNode, expand_requested: bool) -> None:
    """Apply an expand/collapse toggle on node.

    The node's own flag takes the requested value. Collapsing additionally
    clears the flag on every descendant row, found by code, so reopening the
    node shows its children folded. Expanding leaves descendants alone. A
    leaf only has its own flag set.
    """
    index = _index(rows)
    target = index.get(node.key, node)
    target.expanded = expand_requested
    node.expanded = expand_requested
    if expand_requested:
        return

    visited: set[str] = {target.key}
    stack: list[ResourceNode] = [target]
    while stack:
        current = stack.pop()
        for child in current.children or ():
            row = index.get(child.key)
            if row is None or row.key in visited:
                continue
            visited.add(row.key)
            row.expanded = False
            stack.append(row)


def visible(rows: list[ResourceNode]) -> list[ResourceNode]:
    """Rows a tree-table would show: roots, plus rows whose ancestors are all expanded."""
    index = _index(rows)
    shown: set[str] = set()
    out: list[ResourceNode] = []
    for row in rows:
        parent = index.get(row.parent_ref) if row.parent_ref is not None else None
        if row.parent_ref is None or (parent is not None and parent.expanded and parent.key in shown):
            shown.add(row.key)
            out.append(row)
    return out


def expand_all(rows: list[ResourceNode]) -> None:
    """Open every row that has children, so visible() returns all rows."""
    for row in rows:
        if row.children:
            row.expanded = True
