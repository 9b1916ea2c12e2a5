from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from ..excel.reader import StructuralError, read_first_sheet
from ..excel.row_parser import parse_department_rows, parse_position_rows
from ..models.batch import BatchImportResult
from ..models.config_models import BatchConfig
from ..models.finding import SheetType
from ..models.operations import EntityType
from ..models.rows import (
    DEPARTMENT_REQUIRED_COLUMNS,
    POSITION_REQUIRED_COLUMNS,
    DepartmentRow,
    PositionRow,
)
from ..models.workflow import (
    VALID_TRANSITIONS,
    ImportPreview,
    ImportType,
    WorkflowContext,
    WorkflowState,
)
from .batch_controller import BatchImportController, BatchProcessor, StatusListener
from .classifier import build_batch_items, classify, summarize, tally_result
from .validation import ValidationContext, validate_departments, validate_positions, validate_row_count

"""Import workflow state machine.

    IDLE → UPLOADING → PARSING → PREVIEW → CONFIRMING → (SUCCESS | ERROR)

cancel() / reset() go back to IDLE from any state. Every other transition
must be listed in VALID_TRANSITIONS, otherwise WorkflowTransitionError is
raised and the context is left as it was. Each transition replaces the
frozen WorkflowContext as a whole and notifies subscribers.

Guards:
- parse() without an uploaded buffer ends in ERROR ("No file uploaded")
- parse() is refused while confirming or after SUCCESS (upload again)
- confirm() needs PREVIEW and zero blocking findings, otherwise it raises
  WorkflowTransitionError and the context is left as it was
- confirm() is refused while a previous controller is still draining
- SUCCESS needs at least one applied operation; zero applied is ERROR
"""

logger = logging.getLogger(__name__)

__all__ = [
    "NO_FILE_MESSAGE",
    "NOTHING_APPLIED_MESSAGE",
    "WorkflowTransitionError",
    "ExistingCodes",
    "ImportWorkflow",
]

NO_FILE_MESSAGE = "No file uploaded"
NOTHING_APPLIED_MESSAGE = "Import failed - no records were created or updated"

WorkflowListener = Callable[[WorkflowContext], None]


class WorkflowTransitionError(Exception):
    """Raised when an action is not allowed in the current state."""


@dataclass(frozen=True)
class ExistingCodes:
    """Codes already persisted for the organization."""
    departments: frozenset[str] = field(default_factory=frozenset)
    positions: frozenset[str] = field(default_factory=frozenset)


class ImportWorkflow:
    def __init__(
        self,
        import_type: ImportType = ImportType.DEPARTMENTS,
        *,
        batch_config: BatchConfig | None = None,
        controller_options: dict[str, Any] | None = None,
    ) -> None:
        self.import_type = import_type
        self.batch_config = batch_config or BatchConfig()
        # extra keyword arguments for BatchImportController (sleep / clock)
        self._controller_options = controller_options or {}
        self._context = WorkflowContext()
        self._listeners: list[WorkflowListener] = []
        self._session = 0
        self._controller: BatchImportController | None = None
        self.last_batch_result: BatchImportResult | None = None

    # ------------------------------------------------------------------
    # State & observers
    # ------------------------------------------------------------------
    @property
    def context(self) -> WorkflowContext:
        return self._context

    @property
    def state(self) -> WorkflowState:
        return self._context.state

    def subscribe(self, listener: WorkflowListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, context: WorkflowContext) -> WorkflowContext:
        self._context = context
        logger.debug("workflow state -> %s", context.state.value)
        for listener in list(self._listeners):
            listener(context)
        return context

    def _check(self, target: WorkflowState) -> None:
        current = self._context.state
        if target not in VALID_TRANSITIONS.get(current, []):
            raise WorkflowTransitionError(f"invalid transition {current.value} -> {target.value}")

    def _transition(self, **changes: Any) -> WorkflowContext:
        if "state" in changes:
            self._check(changes["state"])
        return self._set(replace(self._context, **changes))

    # ------------------------------------------------------------------
    # Computed
    # ------------------------------------------------------------------
    @property
    def can_parse(self) -> bool:
        return bool(self._context.buffer) and WorkflowState.PARSING in VALID_TRANSITIONS[self.state]

    @property
    def can_confirm(self) -> bool:
        return (
            self.state is WorkflowState.PREVIEW
            and self._context.preview is not None
            and not self._context.blocking_findings
        )

    @property
    def has_errors(self) -> bool:
        return bool(self._context.blocking_findings) or bool(self._context.error_message)

    @property
    def is_loading(self) -> bool:
        return self.state in (
            WorkflowState.UPLOADING,
            WorkflowState.PARSING,
            WorkflowState.CONFIRMING,
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def upload(self, buffer: bytes, file_name: str) -> WorkflowContext:
        """Start a new session with the uploaded workbook bytes."""
        self._check(WorkflowState.UPLOADING)
        self._session += 1
        return self._set(
            WorkflowContext(state=WorkflowState.UPLOADING, file_name=file_name, buffer=buffer)
        )

    def parse(self, existing: ExistingCodes | None = None) -> WorkflowContext:
        """Read, validate and classify the uploaded workbook."""
        self._check(WorkflowState.PARSING if self._context.buffer else WorkflowState.ERROR)
        if not self._context.buffer:
            return self._transition(state=WorkflowState.ERROR, error_message=NO_FILE_MESSAGE)

        existing = existing or ExistingCodes()
        self._transition(state=WorkflowState.PARSING, error_message=None)
        buffer = self._context.buffer

        departments: tuple[DepartmentRow, ...] = ()
        positions: tuple[PositionRow, ...] = ()
        try:
            if self.import_type is ImportType.DEPARTMENTS:
                sheet = read_first_sheet(buffer, expected_columns=DEPARTMENT_REQUIRED_COLUMNS)
                departments = tuple(parse_department_rows(sheet))
            else:
                sheet = read_first_sheet(buffer, expected_columns=POSITION_REQUIRED_COLUMNS)
                positions = tuple(parse_position_rows(sheet))
        except StructuralError as e:
            logger.error("parse failed: %s", e)
            return self._transition(state=WorkflowState.ERROR, error_message=str(e))

        validation = ValidationContext(
            departments=departments,
            positions=positions,
            existing_department_codes=existing.departments,
            existing_position_codes=existing.positions,
        )
        if self.import_type is ImportType.DEPARTMENTS:
            findings = validate_row_count(len(departments), SheetType.DEPARTMENTS, "departments")
            findings.extend(validate_departments(validation))
        else:
            findings = validate_row_count(len(positions), SheetType.POSITIONS, "positions")
            findings.extend(validate_positions(validation))

        dept_ops = classify(departments, existing.departments, EntityType.DEPARTMENT)
        pos_ops = classify(positions, existing.positions, EntityType.POSITION)
        preview = ImportPreview(
            summary=summarize(dept_ops, pos_ops),
            departments=tuple(dept_ops),
            positions=tuple(pos_ops),
        )
        logger.info(
            "parsed %s rows=%d findings=%d",
            self.import_type.value, preview.summary.total_rows, len(findings),
        )
        return self._transition(
            state=WorkflowState.PREVIEW,
            departments=departments,
            positions=positions,
            preview=preview,
            findings=tuple(findings),
        )

    async def confirm(
        self,
        processor: BatchProcessor,
        *,
        on_progress: StatusListener | None = None,
    ) -> WorkflowContext:
        """Execute the previewed operations through `processor`.

        Raises:
            WorkflowTransitionError: not in PREVIEW, or blocking findings exist
        """
        context = self._context
        if context.state is not WorkflowState.PREVIEW or context.preview is None:
            raise WorkflowTransitionError(
                f"cannot confirm from state {context.state.value}; a preview is required"
            )
        if context.blocking_findings:
            raise WorkflowTransitionError(
                f"cannot confirm with {len(context.blocking_findings)} blocking findings"
            )
        if self._controller is not None:
            raise WorkflowTransitionError("cannot confirm while a previous import is still running")

        session = self._session
        preview = context.preview
        self._transition(state=WorkflowState.CONFIRMING)

        controller = BatchImportController(
            build_batch_items(preview.operations),
            processor,
            self.batch_config,
            **self._controller_options,
        )
        if on_progress is not None:
            controller.subscribe(on_progress)
        self._controller = controller

        try:
            outcome = await controller.run()
        except Exception as e:
            if session != self._session:
                return self._context
            logger.exception("import execution failed")
            return self._transition(state=WorkflowState.ERROR, error_message=str(e) or "Failed to import data")
        finally:
            controller.dispose()
            if self._controller is controller:
                self._controller = None

        if session != self._session:
            # cancelled or reset while running; the session's result is stale
            logger.info("discarding result of a cancelled import session")
            return self._context

        self.last_batch_result = outcome
        result = tally_result(preview.departments, preview.positions, outcome)
        if result.applied == 0:
            return self._transition(
                state=WorkflowState.ERROR, result=result, error_message=NOTHING_APPLIED_MESSAGE
            )
        return self._transition(state=WorkflowState.SUCCESS, result=result)

    def cancel(self) -> WorkflowContext:
        """Back to IDLE; a running import stops at its next batch boundary."""
        if self._controller is not None:
            self._controller.cancel()
        self._session += 1
        return self._set(WorkflowContext())

    def reset(self) -> WorkflowContext:
        self.last_batch_result = None
        return self.cancel()
