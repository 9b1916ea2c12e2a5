from __future__ import annotations

import logging
from collections import defaultdict, deque
from collections.abc import Iterable, Mapping, Sequence

from ..models.hierarchy import (
    HierarchyNode,
    InvalidMove,
    MoveValidationResult,
    PendingMove,
    PendingMovesValidation,
)

"""Department move validation (drag-and-drop reorganization).

A move reparents one node. Uncommitted moves are passed in as
`pending_moves`; they override the stored parent during every ancestor
walk without touching the stored nodes. When the same node has several
pending moves the one with the latest timestamp wins.

Rules, in order (the first failing rule ends validation):
1. node exists
2. node is not its own parent
3. new parent exists (inactive parent only warns)
4. new parent is not a descendant of the node
5. resulting depth of the node's subtree stays within max_depth
6. warn when more than `large_subtree_threshold` descendants move along
"""

logger = logging.getLogger(__name__)

__all__ = [
    "MAX_HIERARCHY_DEPTH",
    "pending_overrides",
    "effective_parents",
    "node_depth",
    "descendants_of",
    "would_create_cycle",
    "validate_move",
    "validate_all_pending_moves",
]

MAX_HIERARCHY_DEPTH = 10


def pending_overrides(pending_moves: Iterable[PendingMove]) -> dict[str, str | None]:
    """node_key -> new parent, latest timestamp wins (ties keep input order)."""
    ordered = sorted(enumerate(pending_moves), key=lambda im: (im[1].timestamp, im[0]))
    return {move.node_key: move.new_parent_key for _, move in ordered}


def effective_parents(
    nodes: Mapping[str, HierarchyNode], overrides: Mapping[str, str | None]
) -> dict[str, str | None]:
    parents = {key: node.parent_key for key, node in nodes.items()}
    parents.update(overrides)
    return parents


def node_depth(key: str, parents: Mapping[str, str | None]) -> int | None:
    """Number of ancestors above `key` (a root has depth 0).

    None when the ancestor walk runs into a loop.
    """
    depth = 0
    seen = {key}
    current = parents.get(key)
    while current:
        if current in seen:
            return None
        seen.add(current)
        depth += 1
        current = parents.get(current)
    return depth


def descendants_of(key: str, parents: Mapping[str, str | None]) -> dict[str, int]:
    """Every descendant of `key` with its depth relative to `key`."""
    children: dict[str, list[str]] = defaultdict(list)
    for child, parent in parents.items():
        if parent:
            children[parent].append(child)

    found: dict[str, int] = {}
    queue = deque([(key, 0)])
    while queue:
        current, level = queue.popleft()
        for child in children.get(current, ()):
            if child == key or child in found:
                continue
            found[child] = level + 1
            queue.append((child, level + 1))
    return found


def would_create_cycle(
    node_key: str, new_parent_key: str | None, parents: Mapping[str, str | None]
) -> bool:
    """True when `new_parent_key` is `node_key` or one of its descendants.

    Walks from the new parent toward the root.
    """
    if not new_parent_key:
        return False
    seen: set[str] = set()
    current: str | None = new_parent_key
    while current:
        if current == node_key:
            return True
        if current in seen:
            # loop above the target that does not contain node_key
            return False
        seen.add(current)
        current = parents.get(current)
    return False


def _index(nodes: Iterable[HierarchyNode] | Mapping[str, HierarchyNode]) -> dict[str, HierarchyNode]:
    if isinstance(nodes, Mapping):
        return dict(nodes)
    return {node.key: node for node in nodes}


def validate_move(
    node_key: str,
    new_parent_key: str | None,
    nodes: Iterable[HierarchyNode] | Mapping[str, HierarchyNode],
    pending_moves: Sequence[PendingMove] = (),
    *,
    max_depth: int = MAX_HIERARCHY_DEPTH,
    depth_warning_margin: int = 2,
    large_subtree_threshold: int = 20,
) -> MoveValidationResult:
    index = _index(nodes)
    warnings: list[str] = []

    def invalid(message: str) -> MoveValidationResult:
        return MoveValidationResult(is_valid=False, errors=(message,), warnings=tuple(warnings))

    if node_key not in index:
        return invalid("Department not found")

    if node_key == new_parent_key:
        return invalid("Cannot move a department under itself")

    if new_parent_key:
        parent = index.get(new_parent_key)
        if parent is None:
            return invalid("Target parent department not found")
        if not parent.is_active:
            warnings.append("Moving to an inactive department")

    parents = effective_parents(index, pending_overrides(pending_moves))
    if would_create_cycle(node_key, new_parent_key, parents):
        return invalid("This move would create a circular reference")

    # Depth and subtree checks see the tree as it would be after this move
    parents[node_key] = new_parent_key
    depth = node_depth(node_key, parents)
    if depth is None:
        return invalid("This move would place the department inside a hierarchy loop")
    subtree = descendants_of(node_key, parents)
    total_depth = depth + max(subtree.values(), default=0)

    if total_depth > max_depth:
        return invalid(
            f"This move would create a hierarchy depth of {total_depth}, "
            f"exceeding the maximum of {max_depth}"
        )
    if total_depth >= max_depth - depth_warning_margin:
        warnings.append(
            f"This move will create a deep hierarchy (depth: {total_depth}). Consider restructuring."
        )

    if len(subtree) > large_subtree_threshold:
        warnings.append(
            f"This department has {len(subtree)} descendants. "
            "Moving it will affect the entire subtree."
        )

    return MoveValidationResult(is_valid=True, errors=(), warnings=tuple(warnings))


def validate_all_pending_moves(
    moves: Sequence[PendingMove],
    nodes: Iterable[HierarchyNode] | Mapping[str, HierarchyNode],
    **limits: int,
) -> PendingMovesValidation:
    """Validate every move with the whole pending set visible."""
    index = _index(nodes)
    invalid_moves: list[InvalidMove] = []
    for move in moves:
        result = validate_move(move.node_key, move.new_parent_key, index, moves, **limits)
        if not result.is_valid:
            invalid_moves.append(InvalidMove(move=move, result=result))

    if invalid_moves:
        logger.info("pending moves rejected: %d of %d", len(invalid_moves), len(moves))
    return PendingMovesValidation(is_valid=not invalid_moves, invalid_moves=tuple(invalid_moves))
