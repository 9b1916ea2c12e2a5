from __future__ import annotations

import json
from typing import Any

from ..models.rows import DepartmentRow, PositionRow
from .reader import EmptySheetError, SheetData

"""Typed row parsing for the Departments / Positions sheets.

Type coercion only, no business rules: codes and names become stripped
strings, an empty or "-" parent becomes None, booleans and counts are
coerced and left as None when the cell cannot be read so the validator can
report it.
"""

__all__ = [
    "EMPTY_PARENT_MARKERS",
    "parse_department_rows",
    "parse_position_rows",
    "to_text",
    "to_bool",
    "to_int",
]

EMPTY_PARENT_MARKERS = frozenset({"", "-"})
_TRUE = frozenset({"true", "yes", "y", "1"})
_FALSE = frozenset({"false", "no", "n", "0"})


def to_text(value: Any) -> str:
    """Cell value as a stripped string ("" for empty)."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # numeric codes come back from the sheet as floats
        return str(int(value))
    return str(value).strip()


def _parent(value: Any) -> str | None:
    text = to_text(value)
    return None if text in EMPTY_PARENT_MARKERS else text


def to_bool(value: Any, default: bool) -> bool | None:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value in (0, 1):
            return bool(value)
        return None
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    return None


def to_int(value: Any, default: int = 0) -> int | None:
    if value is None:
        return default
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _metadata(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    text = str(value).strip()
    return text or None


def parse_department_rows(sheet: SheetData) -> list[DepartmentRow]:
    rows = [
        DepartmentRow(
            code=to_text(r.values.get("dept_code")),
            name=to_text(r.values.get("name")),
            parent_code=_parent(r.values.get("parent_dept_code")),
            metadata=_metadata(r.values.get("metadata")),
            source_row=r.row_number,
        )
        for r in sheet.rows
    ]
    if not rows:
        raise EmptySheetError("Excel file contains no department data")
    return rows


def parse_position_rows(sheet: SheetData) -> list[PositionRow]:
    rows = [
        PositionRow(
            code=to_text(r.values.get("pos_code")),
            title=to_text(r.values.get("title")),
            dept_code=to_text(r.values.get("dept_code")),
            reports_to_code=_parent(r.values.get("reports_to_pos_code")),
            is_manager=to_bool(r.values.get("is_manager"), default=False),
            is_active=to_bool(r.values.get("is_active"), default=True),
            incumbents_count=to_int(r.values.get("incumbents_count")),
            source_row=r.row_number,
        )
        for r in sheet.rows
    ]
    if not rows:
        raise EmptySheetError("Excel file contains no position data")
    return rows

