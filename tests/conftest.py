# Shared pytest fixtures
from __future__ import annotations

import io
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from org_import.logging.init import reset_logging
from org_import.models.batch import BatchImportItem, BatchItemFailure, BatchProcessResult


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """organization_id: org-1
error_log_dir: ./logs
batch:
  delay_between_batches: 0
  retry_attempts: 1
  retry_delay: 0
hierarchy:
  max_depth: 10
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture(autouse=True)
def _clean_logging(monkeypatch):
    # CLI tests must never reach a real database
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    reset_logging()
    yield
    reset_logging()


def workbook_bytes(rows: list[dict[str, Any]], columns: list[str], sheet: str = "Sheet1") -> bytes:
    """Real .xlsx bytes (openpyxl) with `columns` as the header row."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame(rows, columns=columns).to_excel(writer, sheet_name=sheet, index=False)
    return buf.getvalue()


@pytest.fixture()
def make_workbook(temp_workdir: Path) -> Callable[..., Path]:
    def _make(name: str, rows: list[dict[str, Any]], columns: list[str], sheet: str = "Sheet1") -> Path:
        path = temp_workdir / "data" / name
        path.write_bytes(workbook_bytes(rows, columns, sheet))
        return path

    return _make


def make_items(count: int, item_type: str = "department") -> list[BatchImportItem]:
    return [
        BatchImportItem(
            id=f"{item_type}:C{i:04d}:{i + 2}",
            type=item_type,
            payload={"operation": "CREATE", "code": f"C{i:04d}", "source_row": i + 2},
        )
        for i in range(count)
    ]


class ScriptedProcessor:
    """Processor double: fails items while `fail_times[item.id]` > 0.

    Records every call so tests can assert batch sizes and retries.
    """

    def __init__(self, fail_times: dict[str, int] | None = None, error: str = "boom") -> None:
        self.fail_times = dict(fail_times or {})
        self.error = error
        self.calls: list[list[str]] = []

    async def __call__(self, items: list[BatchImportItem]) -> BatchProcessResult:
        self.calls.append([i.id for i in items])
        ok: list[BatchImportItem] = []
        failed: list[BatchItemFailure] = []
        for item in items:
            if self.fail_times.get(item.id, 0) > 0:
                self.fail_times[item.id] -= 1
                failed.append(BatchItemFailure(item=item, error=self.error))
            else:
                ok.append(item)
        return BatchProcessResult(succeeded=ok, failed=failed)


class FakeSleep:
    """Async sleep double recording the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture()
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture()
def no_tty(monkeypatch):
    monkeypatch.setattr("org_import.services.progress.is_tty_enabled", lambda: False)
    return None


@pytest.fixture()
def xlsx_bytes() -> Callable[..., bytes]:
    return workbook_bytes


@pytest.fixture()
def item_factory() -> Callable[..., list[BatchImportItem]]:
    return make_items


@pytest.fixture()
def processor_factory() -> type[ScriptedProcessor]:
    return ScriptedProcessor
