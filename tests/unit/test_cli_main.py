from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from org_import.cli import main as cli_main
from org_import.cli.__main__ import _parse_args, _resolve_dsn
from org_import.models.batch import BatchProcessResult
from org_import.models.config_models import DatabaseConfig
from org_import.models.operations import EntityType
from org_import.models.workflow import WorkflowContext, WorkflowState

DEPT_COLUMNS = ["dept_code", "name", "parent_dept_code"]
DEPT_ROWS = [
    {"dept_code": "HQ", "name": "Head Office", "parent_dept_code": None},
    {"dept_code": "SALES", "name": "Sales", "parent_dept_code": "HQ"},
    {"dept_code": "OPS", "name": "Operations", "parent_dept_code": "HQ"},
]


@pytest.fixture()
def departments_file(make_workbook) -> Path:
    return make_workbook("departments.xlsx", DEPT_ROWS, DEPT_COLUMNS)


def test_parse_args_defaults():
    args = _parse_args(["data/departments.xlsx"])
    assert args.file == Path("data/departments.xlsx")
    assert args.type == "departments"
    assert args.config == Path("config/import.yml")
    assert not args.dry_run and not args.debug and not args.inspect_data


def test_parse_args_rejects_unknown_type():
    with pytest.raises(SystemExit):
        _parse_args(["x.xlsx", "--type", "employees"])


class TestResolveDsn:
    @pytest.fixture(autouse=True)
    def _clear_env(self, monkeypatch):
        for name in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
            monkeypatch.delenv(name, raising=False)

    def test_database_url_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u@db/app")
        assert _resolve_dsn(DatabaseConfig(dsn="postgresql://other/x")) == "postgresql://u@db/app"

    def test_config_values_are_fallback(self, monkeypatch):
        monkeypatch.setenv("PGHOST", "envhost")
        dsn = _resolve_dsn(DatabaseConfig(host="cfghost", port=6543, user="app", password="pw", database="org"))
        assert dsn == "host=envhost port=6543 user=app dbname=org password=pw"

    def test_defaults(self):
        assert _resolve_dsn(DatabaseConfig()) == "host=localhost port=5432 user=postgres dbname=postgres"


def test_mock_mode_run(write_config, departments_file, capsys):
    code = cli_main([str(departments_file)])
    out = capsys.readouterr().out
    assert code == 0
    assert "INFO mode=mock" in out
    assert "INFO preview rows=3 departments(create=3 update=0) positions(create=0 update=0)" in out
    assert "SUMMARY type=departments rows=3 created=3 updated=0 failed=0" in out


def test_dry_run_writes_nothing(write_config, departments_file, capsys):
    with patch("org_import.cli.__main__._accept_all") as processor:
        code = cli_main([str(departments_file), "--dry-run"])
    out = capsys.readouterr().out
    assert code == 0
    processor.assert_not_called()
    assert "INFO dry run: no changes written" in out
    assert "created=0 updated=0 failed=0" in out


def test_debug_mode(write_config, departments_file, capsys):
    code = cli_main([str(departments_file), "--debug", "--dry-run"])
    out = capsys.readouterr().out
    assert code == 0
    assert "DEBUG debug mode enabled" in out


def test_inspect_data(write_config, departments_file, capsys):
    code = cli_main([str(departments_file), "--inspect-data"])
    out = capsys.readouterr().out
    assert code == 0
    assert "FILE: departments.xlsx" in out
    assert "cols=['dept_code', 'name', 'parent_dept_code']" in out
    assert "SUMMARY" not in out


def test_missing_workbook(write_config, temp_workdir, capsys):
    code = cli_main([str(temp_workdir / "data" / "nope.xlsx")])
    assert code == 1
    assert "ERROR file not found:" in capsys.readouterr().out


def test_live_mode_uses_existing_codes(write_config, departments_file, monkeypatch, capsys):
    monkeypatch.delenv("DISABLE_DB_CONNECT")
    conn = MagicMock()

    def existing(cur, entity_type, organization_id):
        assert organization_id == "org-1"
        return frozenset({"HQ"}) if entity_type is EntityType.DEPARTMENT else frozenset()

    async def accept(items):
        return BatchProcessResult(succeeded=list(items))

    with patch("org_import.cli.__main__._open_connection", return_value=conn), \
         patch("org_import.cli.__main__.fetch_existing_codes", side_effect=existing), \
         patch("org_import.cli.__main__.PostgresBatchProcessor", return_value=accept) as processor_cls:
        code = cli_main([str(departments_file)])

    out = capsys.readouterr().out
    assert code == 0
    assert "INFO mode=live" in out
    assert "created=2 updated=1" in out
    processor_cls.assert_called_once_with(conn, "org-1")
    conn.rollback.assert_called_once()
    conn.close.assert_called_once()


def test_connection_failure_falls_back_to_mock(write_config, departments_file, monkeypatch, capsys):
    monkeypatch.delenv("DISABLE_DB_CONNECT")
    with patch(
        "org_import.cli.__main__._open_connection",
        side_effect=psycopg2.OperationalError("could not connect"),
    ):
        code = cli_main([str(departments_file)])
    out = capsys.readouterr().out
    assert code == 0
    assert "DB connection failed -> fallback to mock mode" in out
    assert "INFO mode=mock" in out


def test_env_file_is_loaded(write_config, departments_file, temp_workdir, monkeypatch, capsys):
    monkeypatch.delenv("DISABLE_DB_CONNECT")
    (temp_workdir / ".env").write_text("DISABLE_DB_CONNECT=1\n", encoding="utf-8")
    with patch("org_import.cli.__main__._open_connection") as opener:
        code = cli_main([str(departments_file), "--dry-run"])
    assert code == 0
    opener.assert_not_called()


def test_missing_preview_is_fatal(write_config, departments_file, capsys):
    with patch(
        "org_import.cli.__main__.ImportWorkflow.parse",
        return_value=WorkflowContext(state=WorkflowState.PREVIEW),
    ):
        code = cli_main([str(departments_file)])
    out = capsys.readouterr().out
    assert code == 1
    assert "ERROR file: no preview produced (state=PREVIEW)" in out
    assert out.rstrip().splitlines()[-1].startswith("SUMMARY type=departments rows=0")
