"""Adapter for headerless bank statement CSV exports.

Column order (no header row):
``Date, Description, Money Out, Money In, Balance``

Each non-blank row becomes one raw field bag with keys
``Date, Description, MoneyOut, MoneyIn, Balance``. Values are kept as the
uploaded text; parsing happens later in :mod:`ledger_pipeline.normalizers`.
Short rows leave the missing keys as ``None``; extra trailing cells are
ignored.
"""

from __future__ import annotations

import csv
from collections.abc import Iterable, Iterator
from os import PathLike
from pathlib import Path
from typing import Any

from ..normalizers import BALANCE_KEY, DATE_KEY, DESCRIPTION_KEY, INFLOW_KEY, OUTFLOW_KEY

COLUMNS: tuple[str, ...] = (DATE_KEY, DESCRIPTION_KEY, OUTFLOW_KEY, INFLOW_KEY, BALANCE_KEY)


def _is_blank(row: list[str]) -> bool:
    return not row or all(not cell.strip() for cell in row)


def to_raw_rows(rows: Iterable[list[str]]) -> Iterator[dict[str, Any]]:
    """Map positional CSV rows to raw field bags, skipping blank lines."""

    for row in rows:
        if _is_blank(row):
            continue
        yield {key: (row[i] if i < len(row) else None) for i, key in enumerate(COLUMNS)}


def read_statement_csv(csv_path: str | PathLike[str]) -> list[dict[str, Any]]:
    """Read a statement CSV file and return its raw field bags in file order."""

    p = Path(csv_path)
    with p.open(encoding="utf-8-sig", newline="") as f:
        return list(to_raw_rows(csv.reader(f)))


__all__ = ["COLUMNS", "read_statement_csv", "to_raw_rows"]
