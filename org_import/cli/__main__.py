from __future__ import annotations

import argparse
import asyncio
import os
import sys
import time
from collections.abc import Sequence
from contextlib import closing
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from org_import.config.loader import ConfigError, load_config
from org_import.db.persistence import (
    PersistenceError,
    PostgresBatchProcessor,
    fetch_existing_codes,
)
from org_import.excel.reader import StructuralError, normalize_sheet, read_workbook
from org_import.logging.error_log import ErrorLogBuffer
from org_import.logging.init import log_summary, setup_logging
from org_import.models.batch import BatchImportItem, BatchProcessResult
from org_import.models.config_models import DatabaseConfig, ImportConfig
from org_import.models.error_record import ErrorRecord
from org_import.models.finding import FindingKind
from org_import.models.operations import EntityType
from org_import.models.workflow import ImportType, WorkflowState
from org_import.services.findings import format_finding_message, partition_findings
from org_import.services.progress import BatchProgressDisplay
from org_import.services.summary import render_summary_line
from org_import.services.workflow import ExistingCodes, ImportWorkflow

"""CLI entrypoint.

    python -m org_import.cli <workbook.xlsx> [--type departments|positions]

Flow: load config -> read & validate the workbook -> preview counts ->
execute batches against PostgreSQL (or mock mode) -> SUMMARY line.

Exit codes:
    0  everything applied (or dry run without blocking findings)
    2  blocking findings, or some items failed permanently
    1  fatal: config, unreadable workbook, nothing applied
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_CONFIG_PATH = Path("config/import.yml")


def _resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Connection string, environment first.

    Order: DATABASE_URL / PGDSN, then individual PG* variables, then the
    database section of the config file, then libpq style defaults.
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


def _open_connection(cfg: ImportConfig) -> Any:
    conn = psycopg2.connect(_resolve_dsn(cfg.database))
    conn.autocommit = False  # commit per batch in PostgresBatchProcessor
    return conn


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


async def _accept_all(items: list[BatchImportItem]) -> BatchProcessResult:
    """Mock mode processor: every item succeeds without touching a database."""
    return BatchProcessResult(succeeded=list(items))


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="org_import", description="Import departments / positions from a spreadsheet"
    )
    p.add_argument("file", type=Path, help="Workbook (.xlsx) to import")
    p.add_argument(
        "--type",
        choices=[t.value for t in ImportType],
        default=ImportType.DEPARTMENTS.value,
        help="What the workbook contains (default: departments)",
    )
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config YAML path")
    p.add_argument("--dry-run", action="store_true", help="Validate and preview only")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print sheet headers & first rows then exit")
    return p.parse_args(list(argv))


def _inspect_data(path: Path) -> int:
    try:
        raw = read_workbook(path)
    except StructuralError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    print(f"FILE: {path.name}")
    for sname, df in raw.items():
        try:
            sd = normalize_sheet(df, sname)
        except StructuralError as e:
            print(f"  SHEET: {sname} error={e}")
            continue
        print(f"  SHEET: {sname} cols={sd.columns}")
        print("    sample_rows=", [r.values for r in sd.rows[:3]])
    return EXIT_SUCCESS_ALL


def _run(
    args: argparse.Namespace,
    cfg: ImportConfig,
    processor: Any,
    existing: ExistingCodes,
    error_log: ErrorLogBuffer,
) -> int:
    logger = setup_logging()
    import_type = ImportType(args.type)
    started = time.perf_counter()

    def summary(total_rows: int, result: Any = None) -> None:
        line = render_summary_line(import_type, total_rows, result, time.perf_counter() - started)
        log_summary(line[len("SUMMARY "):])

    def flush_errors() -> None:
        path = error_log.flush()
        if path is not None:
            logger.info(f"error log written: {path}")

    workflow = ImportWorkflow(import_type, batch_config=cfg.batch)
    workflow.upload(args.file.read_bytes(), args.file.name)
    ctx = workflow.parse(existing)

    if ctx.state is WorkflowState.ERROR:
        logger.error(f"file: {ctx.error_message}")
        error_log.append(
            ErrorRecord.create(
                file=args.file.name,
                sheet="FILE",
                row=-1,
                error_type=FindingKind.INVALID_FILE_FORMAT.value,
                message=ctx.error_message or "unreadable workbook",
            )
        )
        flush_errors()
        summary(0)
        return EXIT_FATAL

    preview = ctx.preview
    if preview is None:
        logger.error(f"file: no preview produced (state={ctx.state.value})")
        summary(0)
        return EXIT_FATAL
    s = preview.summary
    logger.info(
        f"preview rows={s.total_rows} "
        f"departments(create={s.departments.creates} update={s.departments.updates}) "
        f"positions(create={s.positions.creates} update={s.positions.updates})"
    )

    blocking, advisory = partition_findings(ctx.findings)
    for finding in advisory:
        logger.warning(format_finding_message(finding))
    for finding in blocking:
        logger.error(format_finding_message(finding))

    if blocking:
        logger.error(f"{len(blocking)} blocking findings; nothing was imported")
        error_log.add_findings(args.file.name, blocking)
        flush_errors()
        summary(s.total_rows)
        return EXIT_PARTIAL_FAILURE

    if args.dry_run:
        logger.info("dry run: no changes written")
        summary(s.total_rows)
        return EXIT_SUCCESS_ALL

    with BatchProgressDisplay(s.total_rows) as display:
        ctx = asyncio.run(workflow.confirm(processor, on_progress=display.update))

    outcome = workflow.last_batch_result
    if outcome is not None and outcome.errors:
        error_log.add_batch_errors(args.file.name, outcome.errors)
        flush_errors()

    if ctx.state is WorkflowState.ERROR:
        logger.error(f"import: {ctx.error_message}")
        summary(s.total_rows, ctx.result)
        return EXIT_FATAL
    summary(s.total_rows, ctx.result)
    if ctx.result is not None and ctx.result.failed > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def main(argv: Sequence[str] | None = None) -> int:
    logger = setup_logging()

    # Only read sys.argv when no argument list was given ([] is a valid list)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    # .env has priority for the DB connection parameters
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        setup_logging(debug=True)
        logger.debug("debug mode enabled")

    if not args.file.exists():
        logger.error(f"file not found: {args.file}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(args.file)

    error_log = ErrorLogBuffer(cfg.error_log_dir)

    # DISABLE_DB_CONNECT=1 forces mock mode (tests, dry environments)
    conn = None
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
    else:
        try:
            conn = _open_connection(cfg)
        except psycopg2.Error as e:
            logger.info(f"DB connection failed -> fallback to mock mode: {e}")

    if conn is None:
        logger.info("mode=mock")
        return _run(args, cfg, _accept_all, ExistingCodes(), error_log)

    logger.info("mode=live")
    with closing(conn):
        try:
            with conn.cursor() as cur:
                existing = ExistingCodes(
                    departments=fetch_existing_codes(cur, EntityType.DEPARTMENT, cfg.organization_id),
                    positions=fetch_existing_codes(cur, EntityType.POSITION, cfg.organization_id),
                )
            conn.rollback()  # end the read-only transaction
        except PersistenceError as e:
            logger.error(f"database: {e}")
            return EXIT_FATAL
        processor = PostgresBatchProcessor(conn, cfg.organization_id)
        return _run(args, cfg, processor, existing, error_log)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
