from __future__ import annotations

from unittest.mock import Mock, call, patch

from org_import.models.batch import BatchState, BatchStatus
from org_import.services.progress import (
    BatchProgressDisplay,
    format_elapsed_time,
    format_eta,
    format_speed,
    is_tty_enabled,
    render_status,
)

"""Unit tests for the batch progress helpers and the tqdm display."""


def test_is_tty_enabled_returns_stdout_isatty():
    with patch('sys.stdout.isatty', return_value=True):
        assert is_tty_enabled() is True

    with patch('sys.stdout.isatty', return_value=False):
        assert is_tty_enabled() is False


def test_format_elapsed_time():
    assert format_elapsed_time(0) == "0s"
    assert format_elapsed_time(45.9) == "45s"
    assert format_elapsed_time(125) == "2m 05s"
    assert format_elapsed_time(3720) == "1h 02m"


def test_format_eta():
    assert format_eta(None) == "calculating..."
    assert format_eta(0.4) == "< 1s"
    assert format_eta(125) == "~2m 05s"


def test_format_speed():
    assert format_speed(None) == "-"
    assert format_speed(0) == "-"
    assert format_speed(2.5) == "2.5 items/s"
    assert format_speed(42.4) == "42 items/s"


class TestRenderStatus:
    """Full and compact status views."""

    def running(self, **kw) -> BatchStatus:
        fields = dict(
            state=BatchState.RUNNING, total=40, processed=10, succeeded=9, failed=1,
            current_batch=2, total_batches=4, progress=0.25, elapsed_time=5.0,
        )
        fields.update(kw)
        return BatchStatus(**fields)

    def test_compact(self):
        assert render_status(self.running(), compact=True) == "Importing 10/40 (25%) failed=1"
        assert render_status(self.running(failed=0, succeeded=10), compact=True) == "Importing 10/40 (25%)"

    def test_full_running(self):
        text = render_status(self.running(retrying=2, speed=2.0, estimated_time_remaining=15.0))
        lines = text.splitlines()
        assert lines[0] == "Importing: 25% (10/40)"
        assert "Batch 2/4" in lines
        assert "Succeeded: 9  Failed: 1" in lines
        assert "Retrying: 2" in lines
        assert "Speed: 2.0 items/s" in lines
        assert "Remaining: ~15s" in lines

    def test_full_terminal_has_no_eta(self):
        text = render_status(self.running(state=BatchState.COMPLETED, processed=40, progress=1.0))
        assert text.startswith("Completed: 100% (40/40)")
        assert "Remaining" not in text
        assert "Retrying" not in text

    def test_paused_label(self):
        assert render_status(self.running(state=BatchState.PAUSED), compact=True).startswith("Paused ")


class TestBatchProgressDisplay:
    def test_init_with_tty_enabled(self):
        """tqdm is created with the display settings when stdout is a TTY."""
        with patch('org_import.services.progress.is_tty_enabled', return_value=True), \
             patch('org_import.services.progress.tqdm') as mock_tqdm:

            display = BatchProgressDisplay(50, description="Departments")

            assert display.enabled is True
            mock_tqdm.assert_called_once_with(
                total=50,
                desc="Departments",
                unit="item",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def test_init_with_tty_disabled(self):
        with patch('org_import.services.progress.is_tty_enabled', return_value=False):
            display = BatchProgressDisplay(50)
            assert display.enabled is False
            assert display.pbar is None
            # no-ops without a bar
            display.update(BatchStatus(total=50, processed=10))
            display.close()

    def test_update_advances_by_delta(self):
        mock_pbar = Mock()
        with patch('org_import.services.progress.is_tty_enabled', return_value=True), \
             patch('org_import.services.progress.tqdm', return_value=mock_pbar):

            display = BatchProgressDisplay(20)
            display.update(BatchStatus(state=BatchState.RUNNING, total=20, processed=5, succeeded=5))
            display.update(BatchStatus(state=BatchState.RUNNING, total=20, processed=5, succeeded=5, retrying=1))
            display.update(BatchStatus(state=BatchState.PAUSED, total=20, processed=8, succeeded=7, failed=1))

            assert mock_pbar.update.call_args_list == [call(5), call(3)]
            mock_pbar.set_description.assert_called_with("Importing [Paused]")
            mock_pbar.set_postfix.assert_called_with(ok=7, failed=1, retry=0)

    def test_context_manager_closes_bar(self):
        mock_pbar = Mock()
        with patch('org_import.services.progress.is_tty_enabled', return_value=True), \
             patch('org_import.services.progress.tqdm', return_value=mock_pbar):

            with BatchProgressDisplay(3) as display:
                pass

            mock_pbar.close.assert_called_once()
            assert display.pbar is None
