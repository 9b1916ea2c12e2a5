from __future__ import annotations

import difflib
import json
import logging
import math
from collections.abc import Callable, Collection, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from ..models.finding import FindingKind, Severity, SheetType, ValidationFinding
from ..models.rows import DepartmentRow, PositionRow

"""Cycle & reference validation for self-referential row collections.

The routines here are generic over any collection whose items carry a key
and an optional parent key, so the same code checks department parent
links and position reports-to links. All findings are collected; nothing
stops at the first problem.

Cycle detection builds a key -> parent map and walks it depth first with an
explicit "on current path" set. Every node has at most one parent, so each
node is entered once and the whole pass is O(V+E).
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ValidationContext",
    "is_empty_parent",
    "validate_circular_references",
    "validate_duplicate_codes",
    "validate_department_required_fields",
    "validate_position_required_fields",
    "validate_references",
    "validate_department_hierarchy",
    "validate_row_count",
    "WARN_ROWS_THRESHOLD",
    "validate_departments",
    "validate_positions",
]

T = TypeVar("T")

CYCLE_ARROW = " → "
WARN_ROWS_THRESHOLD = 1_000


def is_empty_parent(key: str | None) -> bool:
    """Empty, whitespace or "-" parent means a root node."""
    if key is None:
        return True
    return key.strip() in ("", "-")


def _row_of(item: Any) -> int:
    return int(getattr(item, "source_row", -1))


# ---------------------------------------------------------------------------
# Circular references
# ---------------------------------------------------------------------------

def validate_circular_references(
    nodes: Iterable[T],
    key_of: Callable[[T], str],
    parent_key_of: Callable[[T], str | None],
    sheet: SheetType,
    column: str | None = None,
) -> list[ValidationFinding]:
    """Detect cycles in the parent links of `nodes`.

    Every node of a cycle gets one finding; all findings of a cycle share
    the same `affected_keys` (the cycle members in walk order). A node whose
    parent is itself is a one-node cycle. Nodes that merely lead into a
    cycle are not reported. When a key appears more than once the first
    occurrence defines its parent.
    """
    parent_of: dict[str, str] = {}
    first_row: dict[str, int] = {}
    order: list[str] = []
    for node in nodes:
        key = key_of(node)
        if not key or key in first_row:
            continue
        first_row[key] = _row_of(node)
        order.append(key)
        parent = parent_key_of(node)
        if not is_empty_parent(parent):
            parent_of[key] = parent  # type: ignore[assignment]

    findings: list[ValidationFinding] = []
    visited: set[str] = set()
    for start in order:
        if start in visited:
            continue
        path: list[str] = []
        on_path: dict[str, int] = {}
        current: str | None = start
        # Keys outside the collection (persisted parents, dangling refs) end the walk
        while current is not None and current in first_row:
            if current in on_path:
                cycle = path[on_path[current]:]
                findings.extend(_cycle_findings(cycle, first_row, sheet, column))
                break
            if current in visited:
                break
            visited.add(current)
            on_path[current] = len(path)
            path.append(current)
            current = parent_of.get(current)

    if findings:
        logger.debug("circular references on %s: %d findings", sheet.value, len(findings))
    return findings


def _cycle_findings(
    cycle: Sequence[str],
    first_row: dict[str, int],
    sheet: SheetType,
    column: str | None,
) -> list[ValidationFinding]:
    message = "Circular reference detected: " + CYCLE_ARROW.join([*cycle, cycle[0]])
    members = tuple(cycle)
    return [
        ValidationFinding(
            kind=FindingKind.CIRCULAR_REFERENCE,
            severity=Severity.ERROR,
            sheet=sheet,
            row=first_row[key],
            column=column,
            field="parent_key",
            value=key,
            message=message,
            suggestion="Remove the circular reference by changing parent/reporting relationships",
            affected_keys=members,
        )
        for key in cycle
    ]


# ---------------------------------------------------------------------------
# Duplicates
# ---------------------------------------------------------------------------

def validate_duplicate_codes(
    nodes: Iterable[T],
    key_of: Callable[[T], str],
    sheet: SheetType,
    column: str,
    label: str,
) -> list[ValidationFinding]:
    """Flag every repeated key; the first occurrence wins."""
    first_seen: dict[str, int] = {}
    findings: list[ValidationFinding] = []
    for node in nodes:
        key = key_of(node)
        if not key:
            continue  # reported as a missing required field
        row = _row_of(node)
        if key not in first_seen:
            first_seen[key] = row
            continue
        first = first_seen[key]
        findings.append(
            ValidationFinding(
                kind=FindingKind.DUPLICATE_CODE_IN_FILE,
                severity=Severity.ERROR,
                sheet=sheet,
                row=row,
                column=column,
                field="code",
                value=key,
                message=f"Duplicate {label} code '{key}' found in file (first seen at row {first})",
                suggestion=(
                    f"Each {label} code must be unique. "
                    f"Keep row {first} and remove or rename row {row}"
                ),
                affected_keys=(key,),
                related_rows=(first,),
            )
        )
    return findings


# ---------------------------------------------------------------------------
# Required fields
# ---------------------------------------------------------------------------

def _missing(
    sheet: SheetType, row: int, column: str, field_name: str, message: str, suggestion: str
) -> ValidationFinding:
    return ValidationFinding(
        kind=FindingKind.MISSING_REQUIRED_FIELD,
        severity=Severity.ERROR,
        sheet=sheet,
        row=row,
        column=column,
        field=field_name,
        message=message,
        suggestion=suggestion,
    )


def _invalid_type(
    sheet: SheetType, row: int, column: str, message: str, suggestion: str, value: Any = None
) -> ValidationFinding:
    return ValidationFinding(
        kind=FindingKind.INVALID_DATA_TYPE,
        severity=Severity.ERROR,
        sheet=sheet,
        row=row,
        column=column,
        field=column,
        value=value,
        message=message,
        suggestion=suggestion,
    )


def validate_department_required_fields(
    departments: Iterable[DepartmentRow],
) -> list[ValidationFinding]:
    findings: list[ValidationFinding] = []
    sheet = SheetType.DEPARTMENTS
    for dept in departments:
        if not dept.code:
            findings.append(_missing(
                sheet, dept.source_row, "dept_code", "code",
                "Department code is required", "Provide a unique department code",
            ))
        if not dept.name:
            findings.append(_missing(
                sheet, dept.source_row, "name", "name",
                "Department name is required", "Provide a department name",
            ))
        if dept.metadata is not None:
            try:
                json.loads(dept.metadata)
            except ValueError:
                findings.append(ValidationFinding(
                    kind=FindingKind.INVALID_JSON,
                    severity=Severity.ERROR,
                    sheet=sheet,
                    row=dept.source_row,
                    column="metadata",
                    field="metadata",
                    value=dept.metadata,
                    message="Invalid JSON in metadata field",
                    suggestion="Ensure metadata is valid JSON format or leave empty",
                ))
    return findings


def validate_position_required_fields(
    positions: Iterable[PositionRow],
) -> list[ValidationFinding]:
    findings: list[ValidationFinding] = []
    sheet = SheetType.POSITIONS
    for pos in positions:
        row = pos.source_row
        if not pos.code:
            findings.append(_missing(
                sheet, row, "pos_code", "code",
                "Position code is required", "Provide a unique position code",
            ))
        if not pos.title:
            findings.append(_missing(
                sheet, row, "title", "title",
                "Position title is required", "Provide a position title",
            ))
        if not pos.dept_code:
            findings.append(_missing(
                sheet, row, "dept_code", "dept_code",
                "Department code is required", "Provide a valid department code",
            ))
        for column, value in (("is_manager", pos.is_manager), ("is_active", pos.is_active)):
            if value is None:
                findings.append(_invalid_type(
                    sheet, row, column,
                    f"'{column}' must be a yes/no value",
                    "Use TRUE/FALSE, yes/no or 1/0",
                ))
        if pos.incumbents_count is None:
            findings.append(_invalid_type(
                sheet, row, "incumbents_count",
                "'incumbents_count' must be a whole number",
                "Use a whole number such as 0, 1 or 12",
            ))
        elif pos.incumbents_count < 0:
            findings.append(_invalid_type(
                sheet, row, "incumbents_count",
                "'incumbents_count' cannot be negative",
                "Use zero or a positive whole number",
                value=pos.incumbents_count,
            ))
    return findings


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------

def _closest(value: str, candidates: Collection[str]) -> str | None:
    matches = difflib.get_close_matches(value, list(candidates), n=1, cutoff=0.6)
    return matches[0] if matches else None


def validate_references(
    nodes: Iterable[T],
    key_of: Callable[[T], str],
    ref_of: Callable[[T], str | None],
    valid_keys: Collection[str],
    sheet: SheetType,
    column: str,
    label: str,
) -> list[ValidationFinding]:
    """Every non-empty reference must exist in `valid_keys`.

    `valid_keys` is the union of the keys in the file and the keys already
    persisted; the caller builds it.
    """
    findings: list[ValidationFinding] = []
    for node in nodes:
        ref = ref_of(node)
        if is_empty_parent(ref) or ref in valid_keys:
            continue
        suggestion = f"Ensure {label.lower()} '{ref}' exists in the file or database"
        closest = _closest(ref, valid_keys)  # type: ignore[arg-type]
        if closest:
            suggestion += f". Did you mean '{closest}'?"
        findings.append(
            ValidationFinding(
                kind=FindingKind.INVALID_REFERENCE,
                severity=Severity.ERROR,
                sheet=sheet,
                row=_row_of(node),
                column=column,
                field=column,
                value=ref,
                message=f"{label} '{ref}' does not exist",
                suggestion=suggestion,
                affected_keys=(key_of(node), ref),  # type: ignore[arg-type]
            )
        )
    return findings


def validate_department_hierarchy(
    departments: Sequence[DepartmentRow],
) -> list[ValidationFinding]:
    """Warn when the file declares more than one root department."""
    roots = [d for d in departments if is_empty_parent(d.parent_code)]
    if len(roots) <= 1:
        return []
    codes = [d.code for d in roots]
    return [
        ValidationFinding(
            kind=FindingKind.BUSINESS_RULE,
            severity=Severity.WARNING,
            sheet=SheetType.DEPARTMENTS,
            row=roots[0].source_row,
            column="parent_dept_code",
            message=f"Multiple root departments found ({len(roots)}): {', '.join(codes)}",
            suggestion=(
                "Typically there is one top-level department. "
                "You can proceed as is or connect departments to a single root"
            ),
            affected_keys=tuple(codes),
            related_rows=tuple(d.source_row for d in roots[1:]),
        )
    ]


def validate_row_count(
    row_count: int, sheet: SheetType, label: str, threshold: int = WARN_ROWS_THRESHOLD,
) -> list[ValidationFinding]:
    """Advisory warning for sheets above `threshold` data rows."""
    if row_count <= threshold:
        return []
    return [
        ValidationFinding(
            kind=FindingKind.BUSINESS_RULE,
            severity=Severity.WARNING,
            sheet=sheet,
            row=1,
            message=f"Large number of {label} ({row_count}); processing takes about {math.ceil(row_count / 1000)}s",
            value=row_count,
            suggestion="Consider importing in smaller batches for better performance",
        )
    ]


# ---------------------------------------------------------------------------
# Complete validation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationContext:
    """Rows under validation plus the keys already persisted."""
    departments: Sequence[DepartmentRow] = ()
    positions: Sequence[PositionRow] = ()
    existing_department_codes: frozenset[str] = field(default_factory=frozenset)
    existing_position_codes: frozenset[str] = field(default_factory=frozenset)

    @property
    def valid_department_codes(self) -> frozenset[str]:
        in_file = {d.code for d in self.departments if d.code}
        return self.existing_department_codes | in_file

    @property
    def valid_position_codes(self) -> frozenset[str]:
        in_file = {p.code for p in self.positions if p.code}
        return self.existing_position_codes | in_file


def validate_departments(context: ValidationContext) -> list[ValidationFinding]:
    departments = context.departments
    sheet = SheetType.DEPARTMENTS
    findings: list[ValidationFinding] = []
    findings.extend(validate_department_required_fields(departments))
    findings.extend(validate_duplicate_codes(
        departments, lambda d: d.code, sheet, "dept_code", "department",
    ))
    findings.extend(validate_references(
        departments, lambda d: d.code, lambda d: d.parent_code,
        context.valid_department_codes, sheet, "parent_dept_code", "Parent department",
    ))
    findings.extend(validate_department_hierarchy(departments))
    findings.extend(validate_circular_references(
        departments, lambda d: d.code, lambda d: d.parent_code, sheet, "parent_dept_code",
    ))
    return findings


def validate_positions(context: ValidationContext) -> list[ValidationFinding]:
    positions = context.positions
    sheet = SheetType.POSITIONS
    findings: list[ValidationFinding] = []
    findings.extend(validate_position_required_fields(positions))
    findings.extend(validate_duplicate_codes(
        positions, lambda p: p.code, sheet, "pos_code", "position",
    ))
    findings.extend(validate_references(
        [p for p in positions if p.dept_code], lambda p: p.code, lambda p: p.dept_code,
        context.valid_department_codes, sheet, "dept_code", "Department",
    ))
    findings.extend(validate_references(
        positions, lambda p: p.code, lambda p: p.reports_to_code,
        context.valid_position_codes, sheet, "reports_to_pos_code", "Reporting position",
    ))
    findings.extend(validate_circular_references(
        positions, lambda p: p.code, lambda p: p.reports_to_code, sheet, "reports_to_pos_code",
    ))
    return findings
