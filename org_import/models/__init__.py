"""Domain models for the organization structure import.

This package contains the value objects shared by the parser, validators,
classifier, batch controller and workflow.
"""

from .batch import (
    BatchImportItem,
    BatchImportResult,
    BatchItemError,
    BatchItemFailure,
    BatchProcessResult,
    BatchState,
    BatchStatus,
)
from .config_models import BatchConfig, DatabaseConfig, HierarchyLimits, ImportConfig
from .finding import ErrorCategory, FindingKind, Severity, SheetType, ValidationFinding
from .hierarchy import (
    HierarchyNode,
    InvalidMove,
    MoveValidationResult,
    PendingMove,
    PendingMovesValidation,
)
from .operations import (
    ClassifiedOperation,
    EntitySummary,
    EntityType,
    ImportResult,
    ImportSummary,
    OperationType,
)
from .rows import DepartmentRow, PositionRow
from .workflow import ImportPreview, ImportType, WorkflowContext, WorkflowState

__all__ = [
    # Configuration models
    "BatchConfig",
    "DatabaseConfig",
    "HierarchyLimits",
    "ImportConfig",
    # Rows and findings
    "DepartmentRow",
    "PositionRow",
    "ErrorCategory",
    "FindingKind",
    "Severity",
    "SheetType",
    "ValidationFinding",
    # Classification
    "ClassifiedOperation",
    "EntitySummary",
    "EntityType",
    "ImportResult",
    "ImportSummary",
    "OperationType",
    # Hierarchy moves
    "HierarchyNode",
    "InvalidMove",
    "MoveValidationResult",
    "PendingMove",
    "PendingMovesValidation",
    # Batch execution
    "BatchImportItem",
    "BatchImportResult",
    "BatchItemError",
    "BatchItemFailure",
    "BatchProcessResult",
    "BatchState",
    "BatchStatus",
    # Workflow
    "ImportPreview",
    "ImportType",
    "WorkflowContext",
    "WorkflowState",
]
