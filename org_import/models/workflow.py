from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .finding import ValidationFinding
from .operations import ClassifiedOperation, ImportResult, ImportSummary
from .rows import DepartmentRow, PositionRow

"""Import workflow state and context.

State transitions:
    IDLE → UPLOADING → PARSING → PREVIEW → CONFIRMING → (SUCCESS | ERROR)
cancel / reset go back to IDLE from any state.

The context is frozen; every transition replaces it as a whole so that an
observer never sees a half-updated context.
"""

__all__ = [
    "ImportType",
    "WorkflowState",
    "ImportPreview",
    "WorkflowContext",
    "VALID_TRANSITIONS",
]


class ImportType(Enum):
    DEPARTMENTS = "departments"
    POSITIONS = "positions"


class WorkflowState(Enum):
    IDLE = "IDLE"
    UPLOADING = "UPLOADING"
    PARSING = "PARSING"
    PREVIEW = "PREVIEW"
    CONFIRMING = "CONFIRMING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


# Valid state transitions; IDLE is reached through cancel / reset from any state
VALID_TRANSITIONS = {
    WorkflowState.IDLE: [WorkflowState.UPLOADING, WorkflowState.ERROR],  # ERROR: parse without upload
    WorkflowState.UPLOADING: [WorkflowState.UPLOADING, WorkflowState.PARSING, WorkflowState.ERROR],
    WorkflowState.PARSING: [WorkflowState.PREVIEW, WorkflowState.ERROR],
    WorkflowState.PREVIEW: [WorkflowState.UPLOADING, WorkflowState.PARSING, WorkflowState.CONFIRMING],
    WorkflowState.CONFIRMING: [WorkflowState.SUCCESS, WorkflowState.ERROR],
    WorkflowState.SUCCESS: [WorkflowState.UPLOADING],
    WorkflowState.ERROR: [WorkflowState.UPLOADING, WorkflowState.PARSING, WorkflowState.ERROR],  # Allow re-parse
}


@dataclass(frozen=True)
class ImportPreview:
    summary: ImportSummary
    departments: tuple[ClassifiedOperation, ...] = ()
    positions: tuple[ClassifiedOperation, ...] = ()

    @property
    def operations(self) -> tuple[ClassifiedOperation, ...]:
        return self.departments + self.positions


@dataclass(frozen=True)
class WorkflowContext:
    state: WorkflowState = WorkflowState.IDLE
    file_name: str | None = None
    buffer: bytes | None = None
    departments: tuple[DepartmentRow, ...] = ()
    positions: tuple[PositionRow, ...] = ()
    preview: ImportPreview | None = None
    findings: tuple[ValidationFinding, ...] = field(default_factory=tuple)
    result: ImportResult | None = None
    error_message: str | None = None

    @property
    def blocking_findings(self) -> tuple[ValidationFinding, ...]:
        return tuple(f for f in self.findings if f.is_blocking)
