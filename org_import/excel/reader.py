from __future__ import annotations

import io
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

"""Spreadsheet reader (row extraction only).

Opens a workbook with pandas (openpyxl engine for .xlsx) and turns one sheet
into header-keyed rows. The first row is the header; data starts on the
second row, and every row keeps its spreadsheet row number for findings.

Anything that prevents reading rows at all is a StructuralError and aborts
the import before validation.
"""

__all__ = [
    "StructuralError",
    "SheetHeaderError",
    "MissingColumnsError",
    "EmptySheetError",
    "TooManyRowsError",
    "SheetRow",
    "SheetData",
    "MIN_FILE_SIZE",
    "MAX_FILE_SIZE",
    "MAX_ROWS_PER_SHEET",
    "read_workbook",
    "normalize_sheet",
    "read_first_sheet",
]

MIN_FILE_SIZE = 100  # bytes; anything smaller cannot be a workbook
MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_ROWS_PER_SHEET = 10_000


class StructuralError(Exception):
    """Missing or invalid file structure. Fatal for the import."""


class SheetHeaderError(StructuralError):
    """Raised when the header row is missing."""


class MissingColumnsError(StructuralError):
    """Raised when expected columns are missing in sheet header."""

    def __init__(self, sheet_name: str, missing: Iterable[str]) -> None:
        self.sheet_name = sheet_name
        self.missing = sorted(missing)
        super().__init__(f"sheet '{sheet_name}' missing columns: {', '.join(self.missing)}")


class EmptySheetError(StructuralError):
    """Raised when a sheet has a header but no data rows."""


class TooManyRowsError(StructuralError):
    """Raised when a sheet holds more data rows than one import accepts."""

    def __init__(self, sheet_name: str, row_count: int, limit: int) -> None:
        self.sheet_name = sheet_name
        self.row_count = row_count
        self.limit = limit
        super().__init__(
            f"Too many rows in sheet '{sheet_name}' ({row_count}); maximum allowed: {limit}. "
            "Please split your data into multiple imports"
        )


@dataclass(frozen=True)
class SheetRow:
    row_number: int  # spreadsheet row number (header is row 1)
    values: dict[str, Any]  # column name -> normalized value


@dataclass
class SheetData:
    sheet_name: str
    columns: list[str]
    rows: list[SheetRow]


def read_workbook(
    source: Path | bytes, target_sheets: Iterable[str] | None = None
) -> dict[str, pd.DataFrame]:
    """Read a workbook returning raw DataFrames keyed by sheet name.

    Parameters
    ----------
    source: workbook path or the uploaded bytes
    target_sheets: restrict to these sheet names (None reads all sheets)
    """
    if isinstance(source, (bytes, bytearray)):
        if len(source) == 0:
            raise StructuralError("Empty or invalid file buffer")
        size = len(source)
        handle: Any = io.BytesIO(source)
    else:
        if not source.exists():
            raise StructuralError(f"file not found: {source}")
        size = source.stat().st_size
        handle = source
    if size < MIN_FILE_SIZE:
        raise StructuralError("File is too small to be a valid Excel file")
    if size > MAX_FILE_SIZE:
        raise StructuralError(
            f"File size exceeds maximum limit of {MAX_FILE_SIZE // (1024 * 1024)} MB (file is {size} bytes)"
        )

    try:
        xls = pd.ExcelFile(handle)
    except Exception as e:
        raise StructuralError(f"Failed to read Excel file: {e}") from e

    if not xls.sheet_names:
        raise StructuralError("Invalid Excel file: No sheets found")

    wanted = set(target_sheets) if target_sheets is not None else None
    dfs: dict[str, pd.DataFrame] = {}
    for name in xls.sheet_names:
        if wanted is not None and str(name) not in wanted:
            continue
        # Header is applied by normalize_sheet
        dfs[str(name)] = xls.parse(name, header=None)
    return dfs


def _normalize_value(val: Any) -> Any:
    if val is None:
        return None
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        # list-like cells are kept as-is
        return val
    if isinstance(val, str):
        stripped = val.strip()
        return stripped if stripped != "" else None
    return val


def normalize_sheet(
    df: pd.DataFrame,
    sheet_name: str,
    expected_columns: Iterable[str] | None = None,
) -> SheetData:
    """Normalize a raw DataFrame using the first row as header.

    Steps:
    1. Validate the header row exists
    2. Header names are stripped and lower-cased
    3. Remaining rows become data rows; fully blank rows are skipped but
       still count for row numbering
    4. Validate expected columns subset
    """
    if df.shape[0] < 1:
        raise SheetHeaderError(f"sheet '{sheet_name}' has no header row")
    columns = [
        str(c).strip().lower() if not pd.isna(c) else "" for c in df.iloc[0].tolist()
    ]

    if expected_columns is not None:
        missing = set(expected_columns) - set(columns)
        if missing:
            raise MissingColumnsError(sheet_name, missing)

    rows: list[SheetRow] = []
    for offset, (_, raw) in enumerate(df.iloc[1:].iterrows()):
        if raw.isna().all():
            continue
        values: dict[str, Any] = {}
        for col, val in zip(columns, raw.tolist(), strict=False):
            if not col:
                continue
            values[col] = _normalize_value(val)
        rows.append(SheetRow(row_number=offset + 2, values=values))

    return SheetData(sheet_name=sheet_name, columns=columns, rows=rows)


def read_first_sheet(
    source: Path | bytes,
    expected_columns: Iterable[str] | None = None,
    max_rows: int = MAX_ROWS_PER_SHEET,
) -> SheetData:
    """Read the first sheet of a workbook (one logical sheet per import)."""
    frames = read_workbook(source)
    sheet_name, df = next(iter(frames.items()))
    sheet = normalize_sheet(df, sheet_name, expected_columns=expected_columns)
    if not sheet.rows:
        raise EmptySheetError(f"sheet '{sheet_name}' contains no data rows")
    if len(sheet.rows) > max_rows:
        raise TooManyRowsError(sheet_name, len(sheet.rows), max_rows)
    return sheet
