"""
Reflected type graph representation.

Converts the reflector's output into a normalized node tree that the
validator and emitter walk. Nodes are transient: they live for one
generation pass only.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional
from enum import Enum


class NodeKind(Enum):
    """Structural kinds of type graph nodes."""

    CLASS = "class"  # hierarchy root
    SUBOBJECT = "subobject"
    FIELD_GROUP = "field_group"
    FIELD = "field"


class ComponentCategory(Enum):
    """Data partitions a class or subobject is split into on the wire."""

    STATE = "data"
    OWNER_RESTRICTED = "owner_only"
    TRANSFERABLE = "handover"

    @property
    def suffix(self) -> str:
        """Component name suffix for this category ("" for state)."""
        return _CATEGORY_SUFFIXES[self]


_CATEGORY_SUFFIXES = {
    ComponentCategory.STATE: "",
    ComponentCategory.OWNER_RESTRICTED: "OwnerOnly",
    ComponentCategory.TRANSFERABLE: "Handover",
}

# Fixed iteration order used everywhere categories are emitted or persisted
ALL_CATEGORIES = (
    ComponentCategory.STATE,
    ComponentCategory.OWNER_RESTRICTED,
    ComponentCategory.TRANSFERABLE,
)


@dataclass
class TypeNode:
    """A node in the reflected type graph."""

    path: str
    name: str  # raw, unsanitized
    kind: NodeKind
    children: List["TypeNode"] = field(default_factory=list)

    # FIELD_GROUP only
    category: Optional[ComponentCategory] = None

    # FIELD only
    field_type: str = "bytes"

    # SUBOBJECT only: class of the attached instance
    class_path: Optional[str] = None

    # top-level CLASS only
    net_cull_distance: Optional[float] = None

    # class filter flags
    editor_only: bool = False
    spatial_type: bool = True

    @property
    def is_root(self) -> bool:
        """True for hierarchy roots (actor-like classes)."""
        return self.kind == NodeKind.CLASS

    def field_groups(self) -> List["TypeNode"]:
        """Direct FIELD_GROUP children in declared order."""
        return [c for c in self.children if c.kind == NodeKind.FIELD_GROUP]

    def subobjects(self) -> List["TypeNode"]:
        """Direct SUBOBJECT children in declared order."""
        return [c for c in self.children if c.kind == NodeKind.SUBOBJECT]

    def fields_by_category(self) -> Dict[ComponentCategory, List["FlatField"]]:
        """Flatten every field group of this node, keyed by category.

        Several groups of the same category are concatenated in order.
        """
        result: Dict[ComponentCategory, List[FlatField]] = {}
        for group in self.field_groups():
            flat = result.setdefault(group.category, [])
            for child in group.children:
                flat.extend(_flatten_field(child, []))
        return result

    def categories_with_fields(self) -> List[ComponentCategory]:
        """Categories that apply to this node, in canonical order."""
        fields = self.fields_by_category()
        return [c for c in ALL_CATEGORIES if fields.get(c)]


@dataclass
class FlatField:
    """A leaf field with the full chain of raw names leading to it."""

    chain: List[str]
    field_type: str
    path: str


def _flatten_field(node: TypeNode, prefix: List[str]) -> Iterator[FlatField]:
    chain = prefix + [node.name]
    nested = [c for c in node.children if c.kind == NodeKind.FIELD]
    if not nested:
        yield FlatField(chain=chain, field_type=node.field_type, path=node.path)
        return
    for child in nested:
        yield from _flatten_field(child, chain)


def asset_name_from_path(path: str) -> str:
    """Return the asset name of a class path (the part after the last '.')."""
    tail = path.rsplit("/", 1)[-1]
    tail = tail.rsplit(":", 1)[-1]
    return tail.rsplit(".", 1)[-1]


def convert_reflector_output(data: Dict[str, Any]) -> TypeNode:
    """
    Convert one reflector class entry to a TypeNode tree.

    Expected shape::

        {"path": "/Game/Hero.Hero_C", "name": "Hero_C", "kind": "class",
         "net_cull_distance": 22500.0,
         "groups": {"data": [{"name": "Health", "type": "uint32"}], ...},
         "subobjects": [{"path": "...", "name": "Mesh",
                         "class_path": "/Script/Engine.StaticMeshComponent",
                         "groups": {...}}]}

    Args:
        data: Reflector class entry

    Returns:
        TypeNode: Root of the converted tree
    """
    kind = NodeKind(data.get("kind", "class"))
    if kind not in (NodeKind.CLASS, NodeKind.SUBOBJECT):
        raise ValueError(f"Expected class or subobject entry, got {kind.value}")
    return _convert_object(data, kind)


def _convert_object(data: Dict[str, Any], kind: NodeKind) -> TypeNode:
    path = data["path"]
    node = TypeNode(
        path=path,
        name=data.get("name", asset_name_from_path(path)),
        kind=kind,
        net_cull_distance=data.get("net_cull_distance"),
        class_path=data.get("class_path", path) if kind == NodeKind.SUBOBJECT else None,
        editor_only=data.get("editor_only", False),
        spatial_type=data.get("spatial_type", True),
    )

    for category in ALL_CATEGORIES:
        fields = data.get("groups", {}).get(category.value)
        if not fields:
            continue
        group = TypeNode(
            path=f"{path}#{category.value}",
            name=category.value,
            kind=NodeKind.FIELD_GROUP,
            category=category,
        )
        group.children = [_convert_field(f, group.path) for f in fields]
        node.children.append(group)

    for sub in data.get("subobjects", []):
        node.children.append(_convert_object(sub, NodeKind.SUBOBJECT))

    return node


def _convert_field(data: Dict[str, Any], parent_path: str) -> TypeNode:
    path = f"{parent_path}.{data['name']}"
    node = TypeNode(
        path=path,
        name=data["name"],
        kind=NodeKind.FIELD,
        field_type=data.get("type", "bytes"),
    )
    node.children = [_convert_field(f, path) for f in data.get("fields", [])]
    return node

