from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ..models.finding import ErrorCategory, FindingKind, SheetType, ValidationFinding

"""Finding aggregation & user-facing formatting.

Blocking findings (severity ERROR) gate the confirm step; warnings are
shown but never block. The helpers here group findings for display and
render a single finding as one readable line.
"""

__all__ = [
    "FindingSummary",
    "partition_findings",
    "summarize_findings",
    "group_by_row",
    "group_by_kind",
    "format_finding_message",
    "format_findings_report",
]

_KIND_TITLES = {
    FindingKind.INVALID_FILE_FORMAT: "Invalid file format",
    FindingKind.MISSING_SHEET: "Missing sheet",
    FindingKind.MISSING_COLUMN: "Missing column",
    FindingKind.MISSING_REQUIRED_FIELD: "Missing required field",
    FindingKind.DUPLICATE_CODE_IN_FILE: "Duplicate code",
    FindingKind.INVALID_REFERENCE: "Invalid reference",
    FindingKind.CIRCULAR_REFERENCE: "Circular reference",
    FindingKind.INVALID_DATA_TYPE: "Invalid data type",
    FindingKind.INVALID_JSON: "Invalid JSON",
    FindingKind.BUSINESS_RULE: "Business rule",
    FindingKind.EXECUTION_FAILURE: "Execution failure",
}


@dataclass(frozen=True)
class FindingSummary:
    total: int = 0
    errors: int = 0
    warnings: int = 0
    by_kind: dict[FindingKind, int] = field(default_factory=dict)
    by_category: dict[ErrorCategory, int] = field(default_factory=dict)
    by_sheet: dict[SheetType, int] = field(default_factory=dict)
    critical: int = 0  # reference findings (dangling / circular)

    @property
    def can_proceed(self) -> bool:
        return self.errors == 0


def partition_findings(
    findings: Iterable[ValidationFinding],
) -> tuple[list[ValidationFinding], list[ValidationFinding]]:
    """Split into (blocking, advisory), order kept."""
    blocking: list[ValidationFinding] = []
    advisory: list[ValidationFinding] = []
    for finding in findings:
        (blocking if finding.is_blocking else advisory).append(finding)
    return blocking, advisory


def summarize_findings(findings: Sequence[ValidationFinding]) -> FindingSummary:
    errors = sum(1 for f in findings if f.is_blocking)
    by_category = Counter(f.category for f in findings)
    return FindingSummary(
        total=len(findings),
        errors=errors,
        warnings=len(findings) - errors,
        by_kind=dict(Counter(f.kind for f in findings)),
        by_category=dict(by_category),
        by_sheet=dict(Counter(f.sheet for f in findings)),
        critical=by_category.get(ErrorCategory.REFERENCE, 0),
    )


def group_by_row(
    findings: Iterable[ValidationFinding],
) -> dict[tuple[SheetType, int], list[ValidationFinding]]:
    """Findings keyed by (sheet, row), rows in ascending order."""
    grouped: dict[tuple[SheetType, int], list[ValidationFinding]] = defaultdict(list)
    for finding in findings:
        grouped[(finding.sheet, finding.row)].append(finding)
    return dict(sorted(grouped.items(), key=lambda kv: (kv[0][0].value, kv[0][1])))


def group_by_kind(
    findings: Iterable[ValidationFinding],
) -> dict[FindingKind, list[ValidationFinding]]:
    grouped: dict[FindingKind, list[ValidationFinding]] = defaultdict(list)
    for finding in findings:
        grouped[finding.kind].append(finding)
    return dict(grouped)


def format_finding_message(finding: ValidationFinding) -> str:
    """One line: location, title, message and the hint when there is one.

    e.g. ``DEPARTMENTS row 3 [name]: Missing required field - Department name is required``
    """
    location = f"{finding.sheet.value} row {finding.row}"
    if finding.column:
        location += f" [{finding.column}]"
    text = f"{location}: {_KIND_TITLES[finding.kind]} - {finding.message}"
    if finding.suggestion:
        text += f" (hint: {finding.suggestion})"
    return text


def format_findings_report(findings: Sequence[ValidationFinding], limit: int = 50) -> list[str]:
    """Report lines for CLI output, errors first then warnings."""
    blocking, advisory = partition_findings(findings)
    summary = summarize_findings(findings)
    lines = [f"findings total={summary.total} errors={summary.errors} warnings={summary.warnings}"]
    for finding in (blocking + advisory)[:limit]:
        lines.append(format_finding_message(finding))
    if summary.total > limit:
        lines.append(f"... {summary.total - limit} more")
    return lines
