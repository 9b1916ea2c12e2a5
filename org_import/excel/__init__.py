"""Spreadsheet row extraction and typed row parsing."""

from .reader import (
    EmptySheetError,
    MissingColumnsError,
    SheetData,
    SheetHeaderError,
    SheetRow,
    StructuralError,
    TooManyRowsError,
    normalize_sheet,
    read_first_sheet,
    read_workbook,
)
from .row_parser import parse_department_rows, parse_position_rows

__all__ = [
    "EmptySheetError",
    "MissingColumnsError",
    "SheetData",
    "SheetHeaderError",
    "SheetRow",
    "StructuralError",
    "TooManyRowsError",
    "normalize_sheet",
    "read_first_sheet",
    "read_workbook",
    "parse_department_rows",
    "parse_position_rows",
]
