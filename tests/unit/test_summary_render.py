from __future__ import annotations

import re

import pytest

from org_import.models.operations import ImportResult
from org_import.models.workflow import ImportType
from org_import.services.summary import format_number, render_summary_line

"""Unit tests for summary rendering.

The SUMMARY line is the last line of every CLI run and is parsed by
scripts, so the field order and number formatting are fixed.
"""

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY\s+type=(departments|positions)\s+rows=([0-9]+)\s+created=([0-9]+)\s+"
    r"updated=([0-9]+)\s+failed=([0-9]+)\s+elapsed_sec=([0-9]+\.?[0-9]*)\s+"
    r"throughput_rps=([0-9]+\.?[0-9]*)$"
)


def test_render_summary_line_all_success():
    """Test SUMMARY rendering for a fully applied import."""
    result = ImportResult(departments_created=3, departments_updated=1, total_departments=4)

    summary_line = render_summary_line(ImportType.DEPARTMENTS, 4, result, 2.0)

    match = SUMMARY_PATTERN.match(summary_line)
    assert match, f"SUMMARY line should match regex: {summary_line}"
    assert summary_line == (
        "SUMMARY type=departments rows=4 created=3 updated=1 failed=0 elapsed_sec=2 throughput_rps=2"
    )


def test_render_summary_line_partial_failure():
    """Failed items do not count toward the throughput."""
    result = ImportResult(positions_created=400, positions_updated=100, total_positions=510, failed=10)

    summary_line = render_summary_line(ImportType.POSITIONS, 510, result, 3.0)

    match = SUMMARY_PATTERN.match(summary_line)
    assert match, f"SUMMARY line should match regex: {summary_line}"
    assert match.group(1) == "positions"
    assert match.group(3) == "400"  # created
    assert match.group(4) == "100"  # updated
    assert match.group(5) == "10"  # failed
    assert match.group(7) == "166.667"


def test_render_summary_line_without_result():
    """Dry runs and blocked imports print zero counters."""
    summary_line = render_summary_line(ImportType.DEPARTMENTS, 12, None, 0.0)

    assert SUMMARY_PATTERN.match(summary_line)
    assert "rows=12 created=0 updated=0 failed=0" in summary_line
    assert summary_line.endswith("elapsed_sec=0 throughput_rps=0")


@pytest.mark.parametrize(
    "value,expected",
    [(0, "0"), (5.0, "5"), (0.84, "0.84"), (66.666666, "66.667"), (0.00005, "0.00005")],
)
def test_format_number(value, expected):
    assert format_number(value) == expected


def test_very_small_elapsed_time_has_no_scientific_notation():
    summary_line = render_summary_line(ImportType.DEPARTMENTS, 0, ImportResult(), 0.00005)
    assert SUMMARY_PATTERN.match(summary_line)
    assert "e-" not in summary_line
    assert "elapsed_sec=0.00005" in summary_line
