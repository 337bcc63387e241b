"""Raw statement line → draft transaction normalization.

Sign convention: money out is stored negative (expenditure), money in is
stored positive (income). The sign is fixed here and never re-derived from
classifier output. Every input row yields exactly one draft; unparseable
amounts count as zero and unparseable dates fall back to the processing date.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from dateutil import parser as date_parser

from .models import DraftTransaction, RawRecord, TransactionType

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")
# Leading numeric prefix of the stripped text ("12.50-" -> "12.50").
_NUMBER_PREFIX_RE = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)")
_ZERO = Decimal("0.00")

# Raw field bag keys as written by the statement upload.
DATE_KEY = "Date"
DESCRIPTION_KEY = "Description"
OUTFLOW_KEY = "MoneyOut"
INFLOW_KEY = "MoneyIn"
BALANCE_KEY = "Balance"


def _field(raw: Mapping[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    return str(value)


def parse_magnitude(text: str | None) -> Decimal:
    """Return ``|amount|`` parsed from statement text, or ``0.00``.

    Non-numeric characters (currency symbols, thousands separators, spaces)
    are stripped first; only the leading numeric prefix is read.
    """

    if not text:
        return _ZERO
    stripped = _NON_NUMERIC_RE.sub("", text)
    m = _NUMBER_PREFIX_RE.match(stripped)
    if m is None:
        return _ZERO
    try:
        d = Decimal(m.group(0))
    except InvalidOperation:
        return _ZERO
    return abs(d).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def signed_amount(outflow: str | None, inflow: str | None) -> Decimal:
    """Apply the outflow-first sign rule to the two amount columns."""

    out_mag = parse_magnitude(outflow)
    if out_mag != 0:
        return -out_mag
    in_mag = parse_magnitude(inflow)
    if in_mag != 0:
        return in_mag
    return _ZERO


def transaction_type_for(amount: Decimal) -> TransactionType:
    return TransactionType.EXPENDITURE if amount < 0 else TransactionType.INCOME


def parse_statement_date(text: str | None, *, today: date) -> date:
    if text is None or not text.strip():
        return today
    try:
        return date_parser.parse(text.strip()).date()
    except (ValueError, OverflowError):
        return today


def normalize_record(record: RawRecord, *, today: date | None = None) -> DraftTransaction:
    processing_date = today or datetime.now(UTC).date()
    raw = record.raw_data or {}

    amount = signed_amount(_field(raw, OUTFLOW_KEY), _field(raw, INFLOW_KEY))
    description = (_field(raw, DESCRIPTION_KEY) or "").strip()

    return DraftTransaction(
        id=record.id,
        description=description,
        amount=amount,
        date=parse_statement_date(_field(raw, DATE_KEY), today=processing_date),
        type=transaction_type_for(amount),
        account=record.account,
    )


def normalize_records(
    records: Iterable[RawRecord], *, today: date | None = None
) -> list[DraftTransaction]:
    """Normalize a batch of raw records, preserving input order."""

    processing_date = today or datetime.now(UTC).date()
    return [normalize_record(r, today=processing_date) for r in records]


__all__ = [
    "BALANCE_KEY",
    "DATE_KEY",
    "DESCRIPTION_KEY",
    "INFLOW_KEY",
    "OUTFLOW_KEY",
    "normalize_record",
    "normalize_records",
    "parse_magnitude",
    "parse_statement_date",
    "signed_amount",
    "transaction_type_for",
]
