from __future__ import annotations

from ..models.operations import ImportResult
from ..models.workflow import ImportType

"""Summary line rendering.

Format:
SUMMARY type={type} rows={rows} created={created} updated={updated}
failed={failed} elapsed_sec={elapsed} throughput_rps={throughput}
"""

__all__ = [
    "format_number",
    "render_summary_line",
]


def format_number(value: float) -> str:
    """Integers without a decimal point, tiny values without scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_line(
    import_type: ImportType,
    total_rows: int,
    result: ImportResult | None,
    elapsed_seconds: float,
) -> str:
    """Render the SUMMARY line.

    `result` is None when nothing was executed (dry run or blocked by
    findings); the counters are then 0.

    Examples:
        >>> render_summary_line(ImportType.DEPARTMENTS, 4, ImportResult(departments_created=3,
        ...     departments_updated=1, total_departments=4), 2.0)
        'SUMMARY type=departments rows=4 created=3 updated=1 failed=0 elapsed_sec=2 throughput_rps=2'
    """
    result = result or ImportResult()
    throughput = result.applied / elapsed_seconds if elapsed_seconds > 0 else 0.0
    return (
        f"SUMMARY type={import_type.value} "
        f"rows={total_rows} "
        f"created={result.created} "
        f"updated={result.updated} "
        f"failed={result.failed} "
        f"elapsed_sec={format_number(elapsed_seconds)} "
        f"throughput_rps={format_number(throughput)}"
    )
