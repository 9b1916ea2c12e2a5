from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from .batch import BatchItemError
from .finding import SheetType, ValidationFinding

"""ErrorRecord model for the structured error log.

One JSON object per line with a fixed key set. `row` is the 1-based
spreadsheet row; -1 is used when the row is unknown (file-level errors and
execution failures whose payload carries no row).
"""

__all__ = [
    "ErrorRecord",
]


_ITEM_SHEETS = {
    "department": SheetType.DEPARTMENTS.value,
    "position": SheetType.POSITIONS.value,
}


def _utc_now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Uploaded file name
        sheet: Sheet label (DEPARTMENTS / POSITIONS / FILE)
        row: Row number (1-based), -1 when unknown
        error_type: Finding kind or EXECUTION_FAILURE, UPPER_SNAKE_CASE
        message: Description
    """
    timestamp: str
    file: str
    sheet: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(file: str, sheet: str, row: int, error_type: str, message: str) -> ErrorRecord:
        return ErrorRecord(
            timestamp=_utc_now(),
            file=file,
            sheet=sheet,
            row=row,
            error_type=error_type,
            message=message,
        )

    @staticmethod
    def from_finding(file: str, finding: ValidationFinding) -> ErrorRecord:
        return ErrorRecord.create(
            file=file,
            sheet=finding.sheet.value,
            row=finding.row,
            error_type=finding.kind.value,
            message=finding.message,
        )

    @staticmethod
    def from_batch_error(file: str, error: BatchItemError) -> ErrorRecord:
        row = error.payload.get("source_row", -1)
        return ErrorRecord.create(
            file=file,
            sheet=_ITEM_SHEETS.get(error.item_type, error.item_type.upper()),
            row=row if isinstance(row, int) else -1,
            error_type="EXECUTION_FAILURE",
            message=f"{error.item_id}: {error.error} (attempts={error.attempt})",
        )

    def to_json_line(self) -> str:
        """Serialize to one JSON line without extra keys."""
        return json.dumps(asdict(self), ensure_ascii=False)
