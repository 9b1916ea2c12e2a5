from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Validation finding model.

A finding is a structured validation result (error or warning) with its
location in the uploaded sheet and a remediation hint. Findings with
severity ERROR are blocking: a preview holding any of them cannot be
submitted. Warnings are advisory only.

Error taxonomy:
- STRUCTURAL: missing/invalid file structure, fatal before validation
- VALIDATION: per-row findings, blocking or advisory
- REFERENCE: dangling or circular references, always blocking
- EXECUTION: a batch item failed against the remote service
"""

__all__ = [
    "ErrorCategory",
    "FindingKind",
    "Severity",
    "SheetType",
    "ValidationFinding",
]


class ErrorCategory(Enum):
    STRUCTURAL = "STRUCTURAL"
    VALIDATION = "VALIDATION"
    REFERENCE = "REFERENCE"
    EXECUTION = "EXECUTION"


class FindingKind(Enum):
    """Closed vocabulary of finding kinds."""
    INVALID_FILE_FORMAT = "INVALID_FILE_FORMAT"
    MISSING_SHEET = "MISSING_SHEET"
    MISSING_COLUMN = "MISSING_COLUMN"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    DUPLICATE_CODE_IN_FILE = "DUPLICATE_CODE_IN_FILE"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    CIRCULAR_REFERENCE = "CIRCULAR_REFERENCE"
    INVALID_DATA_TYPE = "INVALID_DATA_TYPE"
    INVALID_JSON = "INVALID_JSON"
    BUSINESS_RULE = "BUSINESS_RULE"  # e.g. multiple root departments
    EXECUTION_FAILURE = "EXECUTION_FAILURE"

    @property
    def category(self) -> ErrorCategory:
        return _KIND_CATEGORIES[self]


_KIND_CATEGORIES = {
    FindingKind.INVALID_FILE_FORMAT: ErrorCategory.STRUCTURAL,
    FindingKind.MISSING_SHEET: ErrorCategory.STRUCTURAL,
    FindingKind.MISSING_COLUMN: ErrorCategory.STRUCTURAL,
    FindingKind.MISSING_REQUIRED_FIELD: ErrorCategory.VALIDATION,
    FindingKind.DUPLICATE_CODE_IN_FILE: ErrorCategory.VALIDATION,
    FindingKind.INVALID_REFERENCE: ErrorCategory.REFERENCE,
    FindingKind.CIRCULAR_REFERENCE: ErrorCategory.REFERENCE,
    FindingKind.INVALID_DATA_TYPE: ErrorCategory.VALIDATION,
    FindingKind.INVALID_JSON: ErrorCategory.VALIDATION,
    FindingKind.BUSINESS_RULE: ErrorCategory.VALIDATION,
    FindingKind.EXECUTION_FAILURE: ErrorCategory.EXECUTION,
}


class Severity(Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


class SheetType(Enum):
    DEPARTMENTS = "DEPARTMENTS"
    POSITIONS = "POSITIONS"


@dataclass(frozen=True)
class ValidationFinding:
    """Structured validation result.

    Attributes:
        kind: What was found
        severity: ERROR (blocking) or WARNING (advisory)
        sheet: Sheet the row belongs to
        row: 1-based spreadsheet row number
        message: Human readable description
        column: Spreadsheet column name, when the finding points at a cell
        field: Logical field name on the row model
        value: Offending cell value
        suggestion: Remediation hint
        affected_keys: Codes involved (cycle members, referenced codes, ...)
        related_rows: Other rows involved (e.g. first occurrence of a duplicate)
    """
    kind: FindingKind
    severity: Severity
    sheet: SheetType
    row: int
    message: str
    column: str | None = None
    field: str | None = None
    value: str | int | None = None
    suggestion: str | None = None
    affected_keys: tuple[str, ...] = ()
    related_rows: tuple[int, ...] = ()

    @property
    def category(self) -> ErrorCategory:
        return self.kind.category

    @property
    def is_blocking(self) -> bool:
        return self.severity is Severity.ERROR
