from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import psycopg2
from psycopg2.extras import Json

from ..models.batch import BatchImportItem, BatchItemFailure, BatchProcessResult
from ..models.operations import EntityType

"""PostgreSQL remote-write adapter.

- fetch_existing_codes(): codes already persisted for the organization,
  used to classify rows as CREATE or UPDATE
- PostgresBatchProcessor: the batch processor callback for
  BatchImportController

Each item runs inside its own SAVEPOINT so one failing row never rolls back
its siblings; the batch is committed once at the end. Parents are resolved
by code at write time, so rows created earlier in the same import (earlier
batch or earlier item of the same batch) are visible to later ones.

Expected tables (unique key on (organization_id, <code column>)):
    departments(id, organization_id, dept_code, name, parent_id, metadata jsonb)
    positions(id, organization_id, pos_code, title, department_id,
              reports_to_id, is_manager, is_active, incumbents_count)
"""

logger = logging.getLogger(__name__)

__all__ = [
    "PersistenceError",
    "ItemRejected",
    "CODE_COLUMNS",
    "fetch_existing_codes",
    "PostgresBatchProcessor",
]

# entity -> (table, code column)
CODE_COLUMNS = {
    EntityType.DEPARTMENT: ("departments", "dept_code"),
    EntityType.POSITION: ("positions", "pos_code"),
}

UPSERT_DEPARTMENT_SQL = """
INSERT INTO departments (organization_id, dept_code, name, parent_id, metadata)
VALUES (%s, %s, %s, %s, %s)
ON CONFLICT (organization_id, dept_code) DO UPDATE SET
    name = EXCLUDED.name,
    parent_id = EXCLUDED.parent_id,
    metadata = COALESCE(EXCLUDED.metadata, departments.metadata)
"""

UPSERT_POSITION_SQL = """
INSERT INTO positions (
    organization_id, pos_code, title, department_id, reports_to_id,
    is_manager, is_active, incumbents_count
)
VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
ON CONFLICT (organization_id, pos_code) DO UPDATE SET
    title = EXCLUDED.title,
    department_id = EXCLUDED.department_id,
    reports_to_id = EXCLUDED.reports_to_id,
    is_manager = EXCLUDED.is_manager,
    is_active = EXCLUDED.is_active,
    incumbents_count = EXCLUDED.incumbents_count
"""

SAVEPOINT = "import_item"


class PersistenceError(Exception):
    """Batch level failure (connection lost, commit failed)."""


class ItemRejected(Exception):
    """A single item cannot be written (e.g. its parent does not exist)."""


def fetch_existing_codes(cursor: Any, entity_type: EntityType, organization_id: str) -> frozenset[str]:
    table, column = CODE_COLUMNS[entity_type]
    try:
        cursor.execute(f"SELECT {column} FROM {table} WHERE organization_id = %s", (organization_id,))
        rows = cursor.fetchall()
    except psycopg2.Error as e:
        raise PersistenceError(f"failed to read existing {table}: {e}") from e
    return frozenset(str(r[0]) for r in rows)


def _error_message(e: Exception) -> str:
    if isinstance(e, psycopg2.Error) and e.pgerror:
        return e.pgerror.strip().splitlines()[0]
    return str(e)


class PostgresBatchProcessor:
    """Processor callback writing batch items through one psycopg2 connection.

    The connection must have autocommit disabled. Calls are serialized by
    the controller (one batch at a time), so the connection is not shared
    between threads concurrently.
    """

    def __init__(self, connection: Any, organization_id: str) -> None:
        self.connection = connection
        self.organization_id = organization_id

    async def __call__(self, items: list[BatchImportItem]) -> BatchProcessResult:
        return await asyncio.to_thread(self.process_batch, items)

    def process_batch(self, items: Sequence[BatchImportItem]) -> BatchProcessResult:
        succeeded: list[BatchImportItem] = []
        failed: list[BatchItemFailure] = []
        try:
            with self.connection.cursor() as cur:
                for item in items:
                    cur.execute(f"SAVEPOINT {SAVEPOINT}")
                    try:
                        self._apply(cur, item)
                    except (psycopg2.Error, ItemRejected) as e:
                        cur.execute(f"ROLLBACK TO SAVEPOINT {SAVEPOINT}")
                        failed.append(BatchItemFailure(item=item, error=_error_message(e)))
                        logger.debug("item %s rejected: %s", item.id, e)
                    else:
                        cur.execute(f"RELEASE SAVEPOINT {SAVEPOINT}")
                        succeeded.append(item)
            self.connection.commit()
        except psycopg2.Error as e:
            self.connection.rollback()
            raise PersistenceError(f"batch write failed: {_error_message(e)}") from e
        return BatchProcessResult(succeeded=succeeded, failed=failed)

    def _lookup_id(self, cur: Any, entity_type: EntityType, code: str, label: str) -> Any:
        table, column = CODE_COLUMNS[entity_type]
        cur.execute(
            f"SELECT id FROM {table} WHERE organization_id = %s AND {column} = %s",
            (self.organization_id, code),
        )
        row = cur.fetchone()
        if row is None:
            raise ItemRejected(f"{label} '{code}' not found")
        return row[0]

    def _apply(self, cur: Any, item: BatchImportItem) -> None:
        p = item.payload
        if item.type == EntityType.DEPARTMENT.value:
            parent_id = None
            if p.get("parent_code"):
                parent_id = self._lookup_id(cur, EntityType.DEPARTMENT, p["parent_code"], "parent department")
            metadata = p.get("metadata")
            cur.execute(
                UPSERT_DEPARTMENT_SQL,
                (
                    self.organization_id,
                    p["code"],
                    p["name"],
                    parent_id,
                    Json(metadata) if metadata is not None else None,
                ),
            )
        elif item.type == EntityType.POSITION.value:
            department_id = self._lookup_id(cur, EntityType.DEPARTMENT, p["dept_code"], "department")
            reports_to_id = None
            if p.get("reports_to_code"):
                reports_to_id = self._lookup_id(
                    cur, EntityType.POSITION, p["reports_to_code"], "reporting position"
                )
            cur.execute(
                UPSERT_POSITION_SQL,
                (
                    self.organization_id,
                    p["code"],
                    p["title"],
                    department_id,
                    reports_to_id,
                    p.get("is_manager", False),
                    p.get("is_active", True),
                    p.get("incumbents_count", 0),
                ),
            )
        else:
            raise ItemRejected(f"unsupported item type: {item.type}")
