from __future__ import annotations

import time
from dataclasses import dataclass, field

"""Hierarchy reorganization models (drag-and-drop department moves)."""

__all__ = [
    "HierarchyNode",
    "PendingMove",
    "MoveValidationResult",
    "InvalidMove",
    "PendingMovesValidation",
]


@dataclass(frozen=True)
class HierarchyNode:
    """Stored state of one node: its key and current parent."""
    key: str
    parent_key: str | None
    is_active: bool = True
    name: str | None = None


@dataclass(frozen=True)
class PendingMove:
    """An uncommitted parent reassignment.

    Pending moves are validated together: a later move may depend on an
    earlier one, so every check sees the whole pending set.
    """
    node_key: str
    old_parent_key: str | None
    new_parent_key: str | None
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class MoveValidationResult:
    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class InvalidMove:
    move: PendingMove
    result: MoveValidationResult


@dataclass(frozen=True)
class PendingMovesValidation:
    """Batch outcome; safe to commit only when `invalid_moves` is empty."""
    is_valid: bool
    invalid_moves: tuple[InvalidMove, ...] = ()
