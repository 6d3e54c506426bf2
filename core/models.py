from dataclasses import dataclass, field
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Sentinel parent code for top-level records. Roots carry pcode "0" or no pcode.
ROOT_CODE = "0"

# Wire name -> attribute name for ResourceNode. Keys not listed here are kept
# verbatim in ResourceNode.extra so nothing the backend sends is lost.
_WIRE_FIELDS: dict[str, str] = {
    "id": "id",
    "code": "code",
    "pcode": "parent_code",
    "tenantCode": "tenant_code",
    "name": "name",
    "type": "kind",
    "sort": "sort_order",
    "path": "path",
    "authority": "authority",
    "icons": "icons",
}

# View-state keys the backend never sends but the flattener adds.
_VIEW_FIELDS = ("children", "level", "expand", "expanded", "parent")


@dataclass
class ResourceNode:
    """One coded record in a parent/child hierarchy (a menu entry, a category...).

    children is None for a leaf. The resolver only ever attaches a non-empty
    list, so `node.children` is a reliable "has descendants" test.

    parent_ref holds the parent's code rather than the parent object. It is a
    lookup key into the same flattened list (see core.tree.find_parent), so a
    node never owns its parent.
    """

    code: Optional[str] = None
    parent_code: Optional[str] = None
    name: str = ""
    kind: str = ""
    sort_order: int = 0
    tenant_code: Optional[str] = None
    path: Optional[str] = None
    authority: Optional[str] = None
    icons: Optional[str] = None
    id: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict)
    children: Optional[list["ResourceNode"]] = None
    level: int = 0
    expanded: bool = False
    parent_ref: Optional[str] = None

    @property
    def key(self) -> str:
        """Dedup key used by the flattener. Missing codes collapse onto ROOT_CODE."""
        return self.code if self.code else ROOT_CODE

    @property
    def is_root(self) -> bool:
        return self.parent_code in (None, "", ROOT_CODE)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResourceNode":
        """Build a node from a backend record. Nested children are not read."""
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for wire_key, value in data.items():
            attr = _WIRE_FIELDS.get(wire_key)
            if attr is not None:
                kwargs[attr] = value
            elif wire_key not in _VIEW_FIELDS:
                extra[wire_key] = value
        if kwargs.get("sort_order") is None:
            kwargs.pop("sort_order", None)
        for text_attr in ("name", "kind"):
            if kwargs.get(text_attr) is None:
                kwargs.pop(text_attr, None)
        if kwargs.get("code") is not None:
            kwargs["code"] = str(kwargs["code"])
        if kwargs.get("parent_code") is not None:
            kwargs["parent_code"] = str(kwargs["parent_code"])
        return cls(extra=extra, **kwargs)

    def to_dict(self, include_children: bool = True) -> dict[str, Any]:
        """Serialize back to wire names. View state is included; parent_ref as `parent`."""
        out: dict[str, Any] = dict(self.extra)
        for wire_key, attr in _WIRE_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                out[wire_key] = value
        out["level"] = self.level
        out["expand"] = self.expanded
        if self.parent_ref is not None:
            out["parent"] = self.parent_ref
        if include_children and self.children:
            out["children"] = [child.to_dict() for child in self.children]
        return out


@dataclass
class ResourceQuery:
    """Filter for one child query: GET /<resource>/<endpoint>?pcode=..&tenantCode=.."""

    pcode: str = ROOT_CODE
    tenant_code: str = ROOT_CODE
    params: dict[str, Any] = field(default_factory=dict)

    def to_params(self) -> dict[str, str]:
        out = {k: str(v) for k, v in self.params.items() if v is not None}
        out["pcode"] = self.pcode
        out["tenantCode"] = self.tenant_code
        return out

