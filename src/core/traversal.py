"""Traversal over the host page's UI tree (core domain).

Every function here is pure: it follows parent/child/sibling links of nodes
it was handed and never touches the browser. This keeps the engine testable
with synthetic trees.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, List, Optional

from core.models import ParseError, ParseErrorType, UiNode
from core.result import Result, err, ok

NodePredicate = Callable[[UiNode], bool]

DEFAULT_MAX_DEPTH = 100
DEFAULT_MAX_NODES = 1000

# React attaches the fiber to DOM elements under randomized property names
# starting with one of these prefixes, probed in this order.
FIBER_KEY_PREFIXES = (
    "__reactFiber$",
    "__reactInternalInstance$",
    "__reactProps$",
)


def find_fiber_property_key(keys: Iterable[str], prefix: str) -> Optional[str]:
    """Return the first key starting with ``prefix``, if any."""

    for key in keys:
        if key.startswith(prefix):
            return key
    return None


def _traversal_failed(message: str, **context: Any) -> ParseError:
    return ParseError(ParseErrorType.TRAVERSAL_FAILED, message, context or None)


def traverse_upward(
    node: Optional[UiNode],
    predicate: NodePredicate,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Result[UiNode, ParseError]:
    """Walk the parent chain and return the first node matching ``predicate``.

    Depth 0 is ``node`` itself. The depth bound is checked before the
    predicate, so a match at exactly ``max_depth`` still succeeds.
    """

    current = node
    depth = 0
    while True:
        if current is None:
            return err(_traversal_failed("Reached root of the UI tree without finding a match"))
        if depth > max_depth:
            return err(
                _traversal_failed(
                    f"Max depth {max_depth} exceeded during upward traversal",
                    max_depth=max_depth,
                )
            )
        if predicate(current):
            return ok(current)
        current = current.parent
        depth += 1


def traverse_downward(
    node: Optional[UiNode],
    predicate: NodePredicate,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Result[UiNode, ParseError]:
    """Depth-first, pre-order search below ``node`` (siblings included).

    The first child subtree is searched before the next sibling. The depth
    counter grows by one across both child and sibling links.
    """

    depth_exceeded = False
    stack: List[tuple[Optional[UiNode], int]] = [(node, 0)]
    while stack:
        current, depth = stack.pop()
        if current is None:
            continue
        if depth > max_depth:
            depth_exceeded = True
            continue
        if predicate(current):
            return ok(current)
        # Sibling goes first so the child subtree is popped (searched) first.
        stack.append((current.sibling, depth + 1))
        stack.append((current.child, depth + 1))

    if depth_exceeded:
        return err(
            _traversal_failed(
                f"Max depth {max_depth} exceeded during downward traversal",
                max_depth=max_depth,
            )
        )
    return err(_traversal_failed("No matching node found in subtree"))


def collect_nodes(
    node: Optional[UiNode],
    predicate: NodePredicate,
    max_nodes: int = DEFAULT_MAX_NODES,
) -> List[UiNode]:
    """Collect every match in pre-order until ``max_nodes`` are held.

    Walking stops as soon as the cap is reached, so nodes past that point
    are never visited. An empty list is a valid outcome.
    """

    results: List[UiNode] = []
    visited: set[int] = set()
    stack: List[Optional[UiNode]] = [node]
    while stack and len(results) < max_nodes:
        current = stack.pop()
        if current is None or id(current) in visited:
            continue
        visited.add(id(current))
        if predicate(current):
            results.append(current)
        stack.append(current.sibling)
        stack.append(current.child)
    return results


def is_component_named(node: UiNode, name: str) -> bool:
    node_type = node.type
    if node_type is None:
        return False
    if isinstance(node_type, str):
        return node_type == name
    return getattr(node_type, "name", None) == name or getattr(node_type, "display_name", None) == name


def by_type(name: str) -> NodePredicate:
    """Match host tags equal to ``name`` or components named/displayed as it."""

    return lambda node: is_component_named(node, name)


def with_property(key: str) -> NodePredicate:
    return lambda node: key in node.props


def with_property_value(key: str, value: Any) -> NodePredicate:
    return lambda node: key in node.props and node.props[key] == value


def all_of(*predicates: NodePredicate) -> NodePredicate:
    return lambda node: all(predicate(node) for predicate in predicates)


def any_of(*predicates: NodePredicate) -> NodePredicate:
    return lambda node: any(predicate(node) for predicate in predicates)
