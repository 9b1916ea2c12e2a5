#!/usr/bin/env python3
"""Sample workbook generation for manual and performance runs.

Generates a Departments or Positions workbook with a random but valid
hierarchy (every parent appears before its children, no cycles), in the
layout the importer expects:
- Row 1: header row with the column names
- Row 2+: data rows

Optional flags inject problems (duplicate codes, a cycle, dangling
references) to exercise the validation path.
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import numpy as np
import pandas as pd

from org_import.models.rows import DEPARTMENT_COLUMNS, POSITION_COLUMNS


def generate_departments(rows: int, seed: int = 42, max_fanout_depth: int = 6) -> pd.DataFrame:
    """Departments forming a single tree rooted at D0001.

    Each department picks its parent among earlier rows, biased to recent
    rows so the tree gets some depth, capped at `max_fanout_depth` levels.
    """
    rng = np.random.default_rng(seed)
    codes = [f"D{i:04d}" for i in range(1, rows + 1)]
    depth = [0] * rows
    parents: list[str | None] = [None]
    for i in range(1, rows):
        candidates = [j for j in range(max(0, i - 10), i) if depth[j] < max_fanout_depth - 1]
        j = int(rng.choice(candidates)) if candidates else 0
        parents.append(codes[j])
        depth[i] = depth[j] + 1

    return pd.DataFrame(
        {
            "dept_code": codes,
            "name": [f"Department {c}" for c in codes],
            "parent_dept_code": parents,
            "metadata": [
                json.dumps({"cost_center": int(rng.integers(1000, 9999))}) if i % 3 == 0 else None
                for i in range(rows)
            ],
        },
        columns=list(DEPARTMENT_COLUMNS),
    )


def generate_positions(rows: int, departments: int, seed: int = 42) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    codes = [f"P{i:05d}" for i in range(1, rows + 1)]
    reports_to: list[str | None] = [None]
    for i in range(1, rows):
        reports_to.append(codes[int(rng.integers(max(0, i - 20), i))])
    return pd.DataFrame(
        {
            "pos_code": codes,
            "title": [f"Position {c}" for c in codes],
            "dept_code": [f"D{int(rng.integers(1, departments + 1)):04d}" for _ in range(rows)],
            "reports_to_pos_code": reports_to,
            "is_manager": rng.choice(["yes", "no"], rows, p=[0.2, 0.8]).tolist(),
            "is_active": ["TRUE"] * rows,
            "incumbents_count": rng.integers(0, 5, rows).tolist(),
        },
        columns=list(POSITION_COLUMNS),
    )


def inject_problems(df: pd.DataFrame, code_col: str, parent_col: str, *, duplicates: int, cycle: bool,
                    dangling: int) -> pd.DataFrame:
    df = df.copy()
    if duplicates:
        df = pd.concat([df, df.head(duplicates)], ignore_index=True)
    if cycle and len(df) >= 3:
        # rows 0 -> 2 -> 1 -> 0
        df.loc[0, parent_col] = df.loc[2, code_col]
        df.loc[2, parent_col] = df.loc[1, code_col]
        df.loc[1, parent_col] = df.loc[0, code_col]
    for k in range(dangling):
        df.loc[len(df) - 1 - k, parent_col] = f"MISSING{k}"
    return df


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a sample org-structure workbook")
    parser.add_argument("--type", choices=["departments", "positions"], default="departments")
    parser.add_argument("--rows", type=int, default=500)
    parser.add_argument("--departments", type=int, default=50, help="Department codes to reference (positions)")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--duplicates", type=int, default=0)
    parser.add_argument("--cycle", action="store_true")
    parser.add_argument("--dangling", type=int, default=0)
    parser.add_argument("--output", type=Path, default=Path("data/sample.xlsx"))
    args = parser.parse_args()

    if args.rows < 1:
        print("Error: --rows must be >= 1", file=sys.stderr)
        return 1

    if args.type == "departments":
        df = generate_departments(args.rows, args.seed)
        df = inject_problems(df, "dept_code", "parent_dept_code", duplicates=args.duplicates,
                             cycle=args.cycle, dangling=args.dangling)
        sheet = "Departments"
    else:
        df = generate_positions(args.rows, args.departments, args.seed)
        df = inject_problems(df, "pos_code", "reports_to_pos_code", duplicates=args.duplicates,
                             cycle=args.cycle, dangling=args.dangling)
        sheet = "Positions"

    args.output.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(args.output, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet, index=False)

    print(f"wrote {len(df)} rows to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
