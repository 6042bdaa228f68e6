"""Fiber snapshot to linked UI tree.

The page-side script serializes the fiber subtree below the chat container
into nested JSON records. This adapter rebuilds the parent/child/sibling
links so the core traversal can walk it like the live tree.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from core.models import ComponentType, NodeType


class SnapshotNode:
    """One node of a rebuilt tree; satisfies the core ``UiNode`` protocol."""

    __slots__ = ("tag", "type", "key", "props", "state", "element", "parent", "child", "sibling", "index")

    def __init__(
        self,
        tag: int = 0,
        type: NodeType = None,
        key: Optional[str] = None,
        props: Optional[Mapping[str, Any]] = None,
        state: Any = None,
        element: Any = None,
        index: int = 0,
    ) -> None:
        self.tag = tag
        self.type = type
        self.key = key
        self.props = props or {}
        self.state = state
        self.element = element
        self.index = index
        self.parent: Optional[SnapshotNode] = None
        self.child: Optional[SnapshotNode] = None
        self.sibling: Optional[SnapshotNode] = None

    def __repr__(self) -> str:
        return f"SnapshotNode(tag={self.tag!r}, type={self.type!r}, key={self.key!r})"


def _node_type(raw: Any) -> NodeType:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, Mapping) and isinstance(raw.get("name"), str):
        display_name = raw.get("displayName")
        return ComponentType(
            name=raw["name"],
            display_name=display_name if isinstance(display_name, str) else None,
        )
    return None


def _make_node(record: Mapping[str, Any]) -> SnapshotNode:
    props = record.get("props")
    key = record.get("key")
    tag = record.get("tag")
    index = record.get("index")
    return SnapshotNode(
        tag=tag if isinstance(tag, int) else 0,
        type=_node_type(record.get("type")),
        key=key if isinstance(key, str) else None,
        props=props if isinstance(props, Mapping) else {},
        state=record.get("state"),
        element=record.get("element"),
        index=index if isinstance(index, int) else 0,
    )


def build_tree(snapshot: Any) -> Optional[SnapshotNode]:
    """Rebuild a linked tree from a nested snapshot record.

    Returns None when the snapshot is not a record. Children keep their
    order: ``child`` points at the first one, ``sibling`` chains the rest.
    Records under the root's ``siblings`` key become the root's own sibling
    chain; their common parent was not captured, so ``parent`` stays None.
    """

    if not isinstance(snapshot, Mapping):
        return None

    root = _build_subtree(snapshot)
    previous = root
    for record in snapshot.get("siblings") or ():
        if not isinstance(record, Mapping):
            continue
        node = _build_subtree(record)
        previous.sibling = node
        previous = node
    return root


def _build_subtree(snapshot: Mapping[str, Any]) -> SnapshotNode:
    root = _make_node(snapshot)
    pending = [(root, snapshot)]
    while pending:
        node, record = pending.pop()
        previous: Optional[SnapshotNode] = None
        for child_record in record.get("children") or ():
            if not isinstance(child_record, Mapping):
                continue
            child = _make_node(child_record)
            child.parent = node
            if previous is None:
                node.child = child
            else:
                previous.sibling = child
            previous = child
            pending.append((child, child_record))
    return root
