from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

"""Batch execution models.

BatchImportItem is the unit submitted to the remote processor. It is kept
independent of ClassifiedOperation so the controller can drive operations
that have no upsert semantics.

BatchStatus is the only progress state in the engine. The controller owns
it and publishes it to observers as frozen snapshots; a new snapshot (with
a higher `version`) is built for every change.
"""

__all__ = [
    "BatchState",
    "BatchImportItem",
    "BatchItemFailure",
    "BatchProcessResult",
    "BatchItemError",
    "BatchStatus",
    "BatchImportResult",
]


class BatchState(Enum):
    """Controller lifecycle.

    IDLE → RUNNING ⇄ PAUSED → (COMPLETED | CANCELLED | FAILED)
    """
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchState.COMPLETED, BatchState.CANCELLED, BatchState.FAILED)


@dataclass(frozen=True)
class BatchImportItem:
    id: str
    type: str  # entity type label, e.g. "department"
    payload: dict[str, Any]


@dataclass(frozen=True)
class BatchItemFailure:
    item: BatchImportItem
    error: str


@dataclass(frozen=True)
class BatchProcessResult:
    """What a processor returns for one batch call."""
    succeeded: list[BatchImportItem] = field(default_factory=list)
    failed: list[BatchItemFailure] = field(default_factory=list)


@dataclass(frozen=True)
class BatchItemError:
    """A permanent failure: the item failed every attempt."""
    item_id: str
    item_type: str
    attempt: int  # number of attempts made
    error: str  # last error message
    payload: dict[str, Any]


@dataclass(frozen=True)
class BatchStatus:
    """Immutable progress snapshot published by the controller.

    Invariant: processed == succeeded + failed.
    """
    state: BatchState = BatchState.IDLE
    version: int = 0
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    retrying: int = 0
    current_batch: int = 0
    total_batches: int = 0
    progress: float = 0.0  # fraction 0..1
    estimated_time_remaining: float | None = None  # seconds
    speed: float | None = None  # items per second
    elapsed_time: float = 0.0  # seconds
    is_paused: bool = False
    is_cancelled: bool = False
    is_complete: bool = False
    errors: tuple[BatchItemError, ...] = ()

    @property
    def remaining(self) -> int:
        return self.total - self.processed


@dataclass(frozen=True)
class BatchImportResult:
    success: bool
    status: BatchStatus
    successful_items: tuple[BatchImportItem, ...] = ()
    failed_items: tuple[BatchImportItem, ...] = ()
    errors: tuple[BatchItemError, ...] = ()
