from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.batch import BatchState, BatchStatus

"""Batch progress display.

Text helpers for the full and compact status views, plus a tqdm bar fed by
controller snapshots. The bar is only drawn when stdout is a TTY so that CI
logs do not fill up with ANSI control sequences.
"""

__all__ = [
    "is_tty_enabled",
    "format_elapsed_time",
    "format_eta",
    "format_speed",
    "render_status",
    "BatchProgressDisplay",
]

_STATE_LABELS = {
    BatchState.IDLE: "Waiting",
    BatchState.RUNNING: "Importing",
    BatchState.PAUSED: "Paused",
    BatchState.COMPLETED: "Completed",
    BatchState.CANCELLED: "Cancelled",
    BatchState.FAILED: "Failed",
}


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


def format_elapsed_time(seconds: float) -> str:
    """`45s`, `2m 05s`, `1h 02m`."""
    total = int(seconds)
    if total < 60:
        return f"{total}s"
    minutes, secs = divmod(total, 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m"


def format_eta(seconds: float | None) -> str:
    if seconds is None:
        return "calculating..."
    if seconds < 1:
        return "< 1s"
    return f"~{format_elapsed_time(seconds)}"


def format_speed(items_per_second: float | None) -> str:
    if not items_per_second:
        return "-"
    if items_per_second >= 10:
        return f"{items_per_second:.0f} items/s"
    return f"{items_per_second:.1f} items/s"


def render_status(status: BatchStatus, compact: bool = False) -> str:
    """Human readable status.

    Compact: one line for inline indicators. Full: a multi-line block with
    batch position, counters, speed and the remaining time.
    """
    percent = round(status.progress * 100)
    label = _STATE_LABELS[status.state]
    if compact:
        line = f"{label} {status.processed}/{status.total} ({percent}%)"
        if status.failed:
            line += f" failed={status.failed}"
        return line

    lines = [
        f"{label}: {percent}% ({status.processed}/{status.total})",
        f"Batch {status.current_batch}/{status.total_batches}",
        f"Succeeded: {status.succeeded}  Failed: {status.failed}",
    ]
    if status.retrying:
        lines.append(f"Retrying: {status.retrying}")
    lines.append(f"Elapsed: {format_elapsed_time(status.elapsed_time)}")
    if not status.state.is_terminal:
        lines.append(f"Speed: {format_speed(status.speed)}")
        lines.append(f"Remaining: {format_eta(status.estimated_time_remaining)}")
    return "\n".join(lines)


class BatchProgressDisplay:
    """tqdm progress bar driven by BatchStatus snapshots.

    Pass `update` to BatchImportController.subscribe. Nothing is drawn when
    stdout is not a TTY.
    """

    def __init__(self, total: int, *, description: str = "Importing") -> None:
        self.total = total
        self.description = description
        self._shown = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total,
                desc=description,
                unit="item",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def update(self, status: BatchStatus) -> None:
        if self.pbar is None:
            return
        if status.processed > self._shown:
            self.pbar.update(status.processed - self._shown)
            self._shown = status.processed
        self.pbar.set_description(f"{self.description} [{_STATE_LABELS[status.state]}]")
        self.pbar.set_postfix(ok=status.succeeded, failed=status.failed, retry=status.retrying)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> BatchProgressDisplay:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
