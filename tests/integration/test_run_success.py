from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from org_import.cli import main as cli_main
from org_import.models.operations import EntityType
from scripts.gen_sample_workbook import generate_departments, generate_positions

"""Integration test: full CLI runs that apply every row.

Workbooks come from the sample generator, so they carry realistic trees
(metadata JSON, yes/no flags, TRUE strings) rather than hand-picked rows.
"""


def _write(df: pd.DataFrame, path: Path, sheet: str) -> Path:
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet, index=False)
    return path


@pytest.fixture
def departments_workbook(temp_workdir: Path, write_config: Any) -> Path:
    return _write(generate_departments(120, seed=7), temp_workdir / "data" / "departments.xlsx", "Departments")


def test_departments_mock_mode(departments_workbook: Path, temp_workdir: Path, capsys):
    code = cli_main([str(departments_workbook)])
    out = capsys.readouterr().out

    assert code == 0
    assert "INFO mode=mock" in out
    assert "preview rows=120 departments(create=120 update=0)" in out
    assert "SUMMARY type=departments rows=120 created=120 updated=0 failed=0" in out
    # a clean run leaves no error log behind
    assert list((temp_workdir / "logs").glob("errors-*.log")) == []


def test_positions_live_mode(temp_workdir: Path, write_config: Any, monkeypatch, processor_factory, capsys):
    monkeypatch.delenv("DISABLE_DB_CONNECT")
    workbook = _write(
        generate_positions(60, departments=10, seed=3), temp_workdir / "data" / "positions.xlsx", "Positions"
    )
    existing = {
        EntityType.DEPARTMENT: frozenset(f"D{i:04d}" for i in range(1, 11)),
        EntityType.POSITION: frozenset({"P00001", "P00002"}),
    }
    processor = processor_factory()

    with patch("org_import.cli.__main__._open_connection", return_value=MagicMock()), \
         patch("org_import.cli.__main__.fetch_existing_codes",
               side_effect=lambda cur, entity, org: existing[entity]), \
         patch("org_import.cli.__main__.PostgresBatchProcessor", return_value=processor):
        code = cli_main([str(workbook), "--type", "positions"])

    out = capsys.readouterr().out
    assert code == 0, out
    assert "INFO mode=live" in out
    assert "SUMMARY type=positions rows=60 created=58 updated=2 failed=0" in out

    sent = [item_id for call in processor.calls for item_id in call]
    assert len(sent) == 60
    # a position is always written after the position it reports to
    seen: set[str] = set()
    df = generate_positions(60, departments=10, seed=3)
    manager_of = dict(zip(df["pos_code"], df["reports_to_pos_code"], strict=True))
    for item_id in sent:
        pos_code = item_id.split(":")[1]
        manager = manager_of[pos_code]
        assert pd.isna(manager) or manager in seen
        seen.add(pos_code)
