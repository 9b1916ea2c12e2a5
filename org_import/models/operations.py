from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .rows import DepartmentRow, PositionRow

"""Classified operation and summary models.

A ClassifiedOperation is a parsed row plus the CREATE/UPDATE decision taken
from existing-key membership. ImportSummary and ImportResult are aggregate
counts derived from the operation list (the summary) or from the batch
execution outcome (the result).
"""

__all__ = [
    "OperationType",
    "EntityType",
    "ClassifiedOperation",
    "EntitySummary",
    "ImportSummary",
    "ImportResult",
]


class OperationType(Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"


class EntityType(Enum):
    DEPARTMENT = "department"
    POSITION = "position"


@dataclass(frozen=True)
class ClassifiedOperation:
    row: DepartmentRow | PositionRow
    operation: OperationType
    entity_type: EntityType

    @property
    def code(self) -> str:
        return self.row.code


@dataclass(frozen=True)
class EntitySummary:
    total: int
    creates: int
    updates: int


@dataclass(frozen=True)
class ImportSummary:
    """Preview counts, derived from the classified operation list only."""
    total_rows: int
    departments: EntitySummary
    positions: EntitySummary


@dataclass(frozen=True)
class ImportResult:
    """Applied counts for the success screen."""
    departments_created: int = 0
    departments_updated: int = 0
    positions_created: int = 0
    positions_updated: int = 0
    total_departments: int = 0
    total_positions: int = 0
    failed: int = 0  # permanent per-item failures

    @property
    def applied(self) -> int:
        return (
            self.departments_created
            + self.departments_updated
            + self.positions_created
            + self.positions_updated
        )

    @property
    def created(self) -> int:
        return self.departments_created + self.positions_created

    @property
    def updated(self) -> int:
        return self.departments_updated + self.positions_updated
