"""
formatter.py — Renders flattened resource rows to terminal text or JSON.
"""

import json
import os
import re
import sys
from typing import Optional

from .models import ResourceNode
from .pipeline import TreeView
from .tree import visible

W = 68  # output width

# ---------------------------------------------------------------------------
# ANSI color control
# ---------------------------------------------------------------------------

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from a string."""
    return _ANSI_RE.sub("", text)


def _use_color() -> bool:
    """Return True if stdout is a TTY and color has not been disabled.

    Respects NO_COLOR env var (https://no-color.org) and checks sys.stdout.isatty().
    Can be overridden by calling disable_color().
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


_color_enabled: Optional[bool] = None  # None = auto-detect


def disable_color() -> None:
    """Force-disable color output (called when --no-color flag is set)."""
    global _color_enabled
    _color_enabled = False


def _color_active() -> bool:
    if _color_enabled is not None:
        return _color_enabled
    return _use_color()


def _reset() -> str:
    return "\033[0m" if _color_active() else ""


def _bold() -> str:
    return "\033[1m" if _color_active() else ""


def _dim() -> str:
    return "\033[2m" if _color_active() else ""


def _red() -> str:
    return "\033[91m" if _color_active() else ""


def _bar(char: str = "═") -> str:
    return char * W


# ---------------------------------------------------------------------------
# Terminal renderer
# ---------------------------------------------------------------------------


def render_rows(rows: list[ResourceNode], indent: int = 2) -> str:
    """One line per visible row, indented by level.

    Rows under a collapsed parent are hidden. Rows with children get a marker:
    ▾ when expanded, ▸ when collapsed.
    """
    bold = _bold()
    dim = _dim()
    reset = _reset()
    lines = []
    for row in visible(rows):
        pad = " " * (indent * row.level)
        if row.children:
            marker = "▾ " if row.expanded else "▸ "
        else:
            marker = "  "
        name = row.name or row.key
        label = f"{bold}{name}{reset}" if row.level == 0 else name
        path = f"  {dim}{row.path}{reset}" if row.path else ""
        lines.append(f"  {pad}{marker}{label} {dim}[{row.key}]{reset}{path}")
    return "\n".join(lines)


def print_tree(view: TreeView) -> None:
    bold = _bold()
    reset = _reset()
    red = _red()

    rows = view.all_rows()
    print(f"\n{bold}{_bar()}{reset}")
    print(f"  {bold}{len(view.roots)} root(s), {len(rows)} record(s){reset}")
    print(f"{bold}{_bar()}{reset}")
    if rows:
        print(render_rows(rows))
    for code, error in sorted(view.report.failed.items()):
        print(f"  {red}[!] children of {code} unavailable: {error}{reset}")
    print(f"{_bar()}\n")


# ---------------------------------------------------------------------------
# JSON export
# ---------------------------------------------------------------------------


def to_json(view: TreeView, flat: bool = False) -> str:
    """Nested tree by default; with flat=True, the leveled rows of every root."""
    if flat:
        payload = [row.to_dict(include_children=False) for row in view.all_rows()]
    else:
        payload = [root.to_dict() for root in view.roots]
    return json.dumps(payload, indent=2, ensure_ascii=False)
