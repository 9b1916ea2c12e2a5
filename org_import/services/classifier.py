from __future__ import annotations

import json
from collections.abc import Collection, Iterable, Sequence
from typing import Any

from ..models.batch import BatchImportItem, BatchImportResult
from ..models.operations import (
    ClassifiedOperation,
    EntitySummary,
    EntityType,
    ImportResult,
    ImportSummary,
    OperationType,
)
from ..models.rows import DepartmentRow, PositionRow

"""Row classification (CREATE vs UPDATE) and batch item building.

Classification is exact, case-sensitive membership of the row code in the
set of codes already persisted for the organization. Input order is kept
and duplicates are not collapsed (duplicate detection is a validation
concern). Parents are resolved by code when the item is applied, so items
are ordered parents-first before they are handed to the batch controller.
"""

__all__ = [
    "classify",
    "summarize",
    "order_parents_first",
    "build_batch_items",
    "tally_result",
]


def classify(
    rows: Iterable[DepartmentRow | PositionRow],
    existing_keys: Collection[str],
    entity_type: EntityType,
) -> list[ClassifiedOperation]:
    """Pair every row with CREATE or UPDATE, preserving order."""
    return [
        ClassifiedOperation(
            row=row,
            operation=OperationType.UPDATE if row.code in existing_keys else OperationType.CREATE,
            entity_type=entity_type,
        )
        for row in rows
    ]


def _entity_summary(ops: Sequence[ClassifiedOperation]) -> EntitySummary:
    creates = sum(1 for op in ops if op.operation is OperationType.CREATE)
    return EntitySummary(total=len(ops), creates=creates, updates=len(ops) - creates)


def summarize(
    departments: Sequence[ClassifiedOperation] = (),
    positions: Sequence[ClassifiedOperation] = (),
) -> ImportSummary:
    """Preview counts; derived from the operation lists only."""
    return ImportSummary(
        total_rows=len(departments) + len(positions),
        departments=_entity_summary(departments),
        positions=_entity_summary(positions),
    )


def order_parents_first(ops: Sequence[ClassifiedOperation]) -> list[ClassifiedOperation]:
    """Stable reorder so a row comes after the in-file row it points to.

    Rows whose parent is not in the list (roots, persisted parents) keep
    their relative order. Cyclic rows never get here because cycles are
    blocking findings; if they do, they are appended in input order.
    """
    index_by_code: dict[str, int] = {}
    for i, op in enumerate(ops):
        index_by_code.setdefault(op.code, i)

    placed = [False] * len(ops)
    ordered: list[ClassifiedOperation] = []

    for i in range(len(ops)):
        chain: list[int] = []
        seen: set[int] = set()
        current: int | None = i
        while current is not None and not placed[current] and current not in seen:
            seen.add(current)
            chain.append(current)
            parent = ops[current].row.parent_key
            current = index_by_code.get(parent) if parent else None
        for j in reversed(chain):
            placed[j] = True
            ordered.append(ops[j])
    return ordered


def _metadata_object(raw: str | None) -> Any:
    if raw is None:
        return None
    return json.loads(raw)


def _payload(op: ClassifiedOperation) -> dict[str, Any]:
    row = op.row
    payload: dict[str, Any] = {"operation": op.operation.value, "source_row": row.source_row}
    if isinstance(row, DepartmentRow):
        payload.update(
            code=row.code,
            name=row.name,
            parent_code=row.parent_code,
            metadata=_metadata_object(row.metadata),
        )
    else:
        payload.update(
            code=row.code,
            title=row.title,
            dept_code=row.dept_code,
            reports_to_code=row.reports_to_code,
            is_manager=bool(row.is_manager),
            is_active=True if row.is_active is None else row.is_active,
            incumbents_count=row.incumbents_count or 0,
        )
    return payload


def build_batch_items(ops: Sequence[ClassifiedOperation]) -> list[BatchImportItem]:
    """Turn operations into processor items, parents first."""
    return [
        BatchImportItem(
            id=f"{op.entity_type.value}:{op.code}:{op.row.source_row}",
            type=op.entity_type.value,
            payload=_payload(op),
        )
        for op in order_parents_first(ops)
    ]


def tally_result(
    departments: Sequence[ClassifiedOperation],
    positions: Sequence[ClassifiedOperation],
    outcome: BatchImportResult,
) -> ImportResult:
    """Applied counts from the items that actually succeeded."""
    counts = {
        (EntityType.DEPARTMENT.value, OperationType.CREATE.value): 0,
        (EntityType.DEPARTMENT.value, OperationType.UPDATE.value): 0,
        (EntityType.POSITION.value, OperationType.CREATE.value): 0,
        (EntityType.POSITION.value, OperationType.UPDATE.value): 0,
    }
    for item in outcome.successful_items:
        key = (item.type, item.payload.get("operation"))
        if key in counts:
            counts[key] += 1

    return ImportResult(
        departments_created=counts[(EntityType.DEPARTMENT.value, OperationType.CREATE.value)],
        departments_updated=counts[(EntityType.DEPARTMENT.value, OperationType.UPDATE.value)],
        positions_created=counts[(EntityType.POSITION.value, OperationType.CREATE.value)],
        positions_updated=counts[(EntityType.POSITION.value, OperationType.UPDATE.value)],
        total_departments=len(departments),
        total_positions=len(positions),
        failed=len(outcome.failed_items),
    )
