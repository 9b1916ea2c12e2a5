from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from ..models.batch import (
    BatchImportItem,
    BatchImportResult,
    BatchItemError,
    BatchItemFailure,
    BatchProcessResult,
    BatchState,
    BatchStatus,
)
from ..models.config_models import BatchConfig

"""Batch import controller.

Runs a list of items through a caller supplied async processor in
sequential batches (one processor call per batch attempt). Items that fail
are retried as a subset with exponential backoff; tenacity computes the
waits and drives the attempt loop. Items still failing after the last
retry become permanent failures; they never block sibling items.

Pause and cancel are cooperative: both are honored only at batch
boundaries, so a pause takes effect within one batch's processing time and
an in-flight batch always finishes.

Every change publishes a new frozen BatchStatus (higher `version`) to the
subscribers; `processed == succeeded + failed` holds on each snapshot.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "BatchControllerError",
    "BatchProcessor",
    "StatusListener",
    "TARGET_BATCH_COUNT",
    "calculate_optimal_batch_size",
    "BatchImportController",
]

BatchProcessor = Callable[[list[BatchImportItem]], Awaitable[BatchProcessResult]]
StatusListener = Callable[[BatchStatus], None]

TARGET_BATCH_COUNT = 20


class BatchControllerError(Exception):
    """Controller misuse, e.g. running it twice."""


def calculate_optimal_batch_size(total: int, min_size: int = 10, max_size: int = 200) -> int:
    """Size aiming at ~20 batches, clamped to [min_size, max_size].

    >>> calculate_optimal_batch_size(500)
    25
    >>> calculate_optimal_batch_size(30)
    10
    """
    if total <= 0:
        return min_size
    return max(min_size, min(max_size, math.ceil(total / TARGET_BATCH_COUNT)))


@dataclass
class _BatchAttempt:
    """Mutable bookkeeping for one batch across its retry attempts."""
    pending: list[BatchImportItem]
    attempts: dict[str, int] = field(default_factory=dict)


class BatchImportController:
    def __init__(
        self,
        items: Sequence[BatchImportItem],
        processor: BatchProcessor,
        config: BatchConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.items = list(items)
        self.processor = processor
        self.config = config or BatchConfig()
        self._sleep = sleep
        self._clock = clock

        self.batch_size = self.config.batch_size or calculate_optimal_batch_size(
            len(self.items), self.config.min_batch_size, self.config.max_batch_size
        )
        total_batches = math.ceil(len(self.items) / self.batch_size) if self.items else 0

        self._status = BatchStatus(total=len(self.items), total_batches=total_batches)
        self._subscribers: list[StatusListener] = []
        self._resume = asyncio.Event()
        self._resume.set()
        self._cancelled = False
        self._started_at: float | None = None
        self._successful: list[BatchImportItem] = []
        self._failed: list[BatchImportItem] = []
        self._errors: list[BatchItemError] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def status(self) -> BatchStatus:
        return self._status

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener; returns the function that removes it."""
        self._subscribers.append(listener)

        def unsubscribe() -> None:
            if listener in self._subscribers:
                self._subscribers.remove(listener)

        return unsubscribe

    def _publish(self, **changes: Any) -> None:
        status = replace(self._status, **changes)
        elapsed = 0.0 if self._started_at is None else max(0.0, self._clock() - self._started_at)
        speed = status.processed / elapsed if elapsed > 0 and status.processed > 0 else None
        remaining = status.total - status.processed
        self._status = replace(
            status,
            version=self._status.version + 1,
            progress=status.processed / status.total if status.total else 1.0,
            elapsed_time=elapsed,
            speed=speed,
            estimated_time_remaining=remaining / speed if speed else None,
        )
        for listener in list(self._subscribers):
            try:
                listener(self._status)
            except Exception:
                logger.exception("status listener failed")

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------
    def pause(self) -> bool:
        """Stop starting new batches. Returns False when not running or cancelling."""
        if self._status.state is not BatchState.RUNNING or self._cancelled:
            return False
        self._resume.clear()
        self._publish(state=BatchState.PAUSED, is_paused=True)
        logger.info("batch import paused")
        return True

    def resume(self) -> bool:
        if self._status.state is not BatchState.PAUSED:
            return False
        self._resume.set()
        self._publish(state=BatchState.RUNNING, is_paused=False)
        logger.info("batch import resumed")
        return True

    def cancel(self) -> None:
        """Stop at the next batch boundary; the in-flight batch finishes."""
        if self._status.state.is_terminal or self._cancelled:
            return
        self._cancelled = True
        self._resume.set()
        if self._status.state is BatchState.IDLE:
            self._publish(state=BatchState.CANCELLED, is_cancelled=True)
        else:
            self._publish(state=BatchState.RUNNING, is_cancelled=True, is_paused=False)
        logger.info("batch import cancellation requested")

    def dispose(self) -> None:
        """Drop every listener and stop a running import at the next boundary."""
        self.cancel()
        self._subscribers.clear()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    async def run(self) -> BatchImportResult:
        if self._status.state is not BatchState.IDLE:
            raise BatchControllerError(f"controller cannot start from state {self._status.state.value}")

        self._started_at = self._clock()
        self._publish(state=BatchState.RUNNING)
        logger.info(
            "batch import started items=%d batch_size=%d batches=%d",
            len(self.items), self.batch_size, self._status.total_batches,
        )

        for number, start in enumerate(range(0, len(self.items), self.batch_size), start=1):
            if self._cancelled:
                break
            while not self._resume.is_set() and not self._cancelled:
                await self._resume.wait()
            if self._cancelled:
                break

            batch = self.items[start:start + self.batch_size]
            self._publish(current_batch=number)
            await self._run_batch(batch)

            if number < self._status.total_batches and not self._cancelled:
                await self._sleep(self.config.delay_between_batches)

        return self._finish()

    def _retrying(self, attempt: _BatchAttempt) -> AsyncRetrying:
        cfg = self.config

        def before_sleep(retry_state: RetryCallState) -> None:
            self._publish(retrying=len(attempt.pending))
            logger.warning(
                "batch %d attempt %d failed for %d items, retrying in %.2fs",
                self._status.current_batch,
                retry_state.attempt_number,
                len(attempt.pending),
                retry_state.next_action.sleep if retry_state.next_action else 0.0,
            )

        def give_up(retry_state: RetryCallState) -> list[BatchItemFailure]:
            outcome = retry_state.outcome
            if outcome is not None and outcome.failed:
                message = str(outcome.exception()) or type(outcome.exception()).__name__
                return [BatchItemFailure(item=item, error=message) for item in attempt.pending]
            return outcome.result() if outcome is not None else []

        return AsyncRetrying(
            stop=stop_after_attempt(cfg.retry_attempts + 1),
            wait=wait_exponential(
                multiplier=cfg.retry_delay, exp_base=cfg.backoff_factor, max=cfg.max_retry_delay
            ),
            retry=retry_if_result(bool) | retry_if_exception_type(Exception),
            sleep=self._sleep,
            before_sleep=before_sleep,
            retry_error_callback=give_up,
        )

    async def _attempt(self, attempt: _BatchAttempt) -> list[BatchItemFailure]:
        """One processor call for the still pending items; returns the failures."""
        pending = attempt.pending
        for item in pending:
            attempt.attempts[item.id] = attempt.attempts.get(item.id, 0) + 1

        result = await self.processor(list(pending))

        succeeded_ids = {item.id for item in result.succeeded}
        failures = [f for f in result.failed if f.item.id not in succeeded_ids]
        answered = succeeded_ids | {f.item.id for f in failures}
        failures.extend(
            BatchItemFailure(item=item, error="processor returned no result for item")
            for item in pending
            if item.id not in answered
        )

        done = [item for item in pending if item.id in succeeded_ids]
        if done:
            self._successful.extend(done)
            self._publish(
                processed=self._status.processed + len(done),
                succeeded=self._status.succeeded + len(done),
            )

        attempt.pending = [f.item for f in failures]
        return failures

    async def _run_batch(self, batch: list[BatchImportItem]) -> None:
        attempt = _BatchAttempt(pending=list(batch))
        failures = await self._retrying(attempt)(self._attempt, attempt)

        for failure in failures:
            item = failure.item
            self._failed.append(item)
            self._errors.append(
                BatchItemError(
                    item_id=item.id,
                    item_type=item.type,
                    attempt=attempt.attempts.get(item.id, 0),
                    error=failure.error,
                    payload=item.payload,
                )
            )
            logger.error("item %s failed permanently: %s", item.id, failure.error)

        self._publish(
            processed=self._status.processed + len(failures),
            failed=self._status.failed + len(failures),
            retrying=0,
            errors=tuple(self._errors),
        )

    def _finish(self) -> BatchImportResult:
        status = self._status
        if self._cancelled:
            state = BatchState.CANCELLED
        elif status.succeeded == 0 and status.failed > 0:
            state = BatchState.FAILED
        else:
            state = BatchState.COMPLETED

        self._resume.set()
        self._publish(
            state=state,
            is_paused=False,
            is_cancelled=self._cancelled,
            is_complete=not self._cancelled,
        )
        logger.info(
            "batch import %s succeeded=%d failed=%d processed=%d/%d",
            state.value, self._status.succeeded, self._status.failed,
            self._status.processed, self._status.total,
        )
        return BatchImportResult(
            success=not self._cancelled and self._status.failed == 0,
            status=self._status,
            successful_items=tuple(self._successful),
            failed_items=tuple(self._failed),
            errors=tuple(self._errors),
        )
