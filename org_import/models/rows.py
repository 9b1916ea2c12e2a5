from __future__ import annotations

from dataclasses import dataclass

"""Row models for the organization structure import.

A row is one parsed spreadsheet record, either a department or a position,
before it is classified as CREATE or UPDATE. Rows are immutable once the
parser has produced them. Hierarchy links are expressed by code, never by a
generated id, because ids do not exist until the record is persisted.
"""

__all__ = [
    "DepartmentRow",
    "PositionRow",
    "DEPARTMENT_COLUMNS",
    "DEPARTMENT_REQUIRED_COLUMNS",
    "POSITION_COLUMNS",
    "POSITION_REQUIRED_COLUMNS",
]

DEPARTMENT_COLUMNS = ("dept_code", "name", "parent_dept_code", "metadata")
DEPARTMENT_REQUIRED_COLUMNS = ("dept_code", "name")
POSITION_COLUMNS = (
    "pos_code",
    "title",
    "dept_code",
    "reports_to_pos_code",
    "is_manager",
    "is_active",
    "incumbents_count",
)
POSITION_REQUIRED_COLUMNS = ("pos_code", "title", "dept_code")


@dataclass(frozen=True)
class DepartmentRow:
    """A department record read from the Departments sheet.

    `source_row` is the 1-based spreadsheet row number used in findings.
    `metadata` keeps the raw cell text so that the validator can report
    malformed JSON; it is parsed when the row is turned into a payload.
    """
    code: str  # dept_code
    name: str
    parent_code: str | None  # parent_dept_code, None for a root department
    metadata: str | None
    source_row: int

    @property
    def parent_key(self) -> str | None:
        return self.parent_code


@dataclass(frozen=True)
class PositionRow:
    """A position record read from the Positions sheet.

    Scalar fields are `None` when the cell held a value the parser could not
    coerce; the validator reports those as INVALID_DATA_TYPE.
    """
    code: str  # pos_code
    title: str
    dept_code: str
    reports_to_code: str | None  # reports_to_pos_code
    is_manager: bool | None
    is_active: bool | None
    incumbents_count: int | None
    source_row: int

    @property
    def parent_key(self) -> str | None:
        return self.reports_to_code
