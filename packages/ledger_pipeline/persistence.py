"""Persistence integration for ledger_pipeline.

Functions here read and write the raw and canonical stores owned by
``libs/db``. They rely on SQLAlchemy ORM models defined in
``ledger_db.models.ledger`` and a session provided by the caller (usually via
``ledger_db.client.session_scope``). Nothing here commits; callers own the
transaction boundary.

Scope:
- Atomic claim of pending raw records (``pending -> in_flight``) and release of
  claims (after a backend failure or when stale).
- Canonical upsert keyed on ``bronze_id`` that never overwrites edited rows.
- Raw status updates and physical deletion of raw records.
- Raw inserts for ingest, file deletion and the per-user reprocess reset.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from ledger_db.models.ledger import CanonicalTransaction, RawTransaction

from .models import RawRecord, RecordStatus


@dataclass(frozen=True, slots=True)
class CanonicalRow:
    """Values written to ``canonical_transactions`` for one raw record."""

    bronze_id: str
    user_id: str
    description: str
    category: str
    amount: Decimal
    date: date
    transaction_type: str
    account: str | None
    processed_at: datetime


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _insert_for(session: Session):
    """Return the dialect-specific ``insert`` construct supporting ON CONFLICT."""

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"canonical upsert is not supported on dialect {dialect!r}")


def _to_raw_record(row: RawTransaction) -> RawRecord:
    return RawRecord(
        id=row.id,
        user_id=row.user_id,
        raw_data=dict(row.raw_data or {}),
        account=row.account,
        file_id=row.file_id,
        file_name=row.file_name,
    )


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------


def claim_pending(
    session: Session,
    *,
    limit: int,
    claim_token: str | None = None,
    now: datetime | None = None,
) -> tuple[str, list[RawRecord]]:
    """Claim up to ``limit`` pending raw records, oldest first.

    The conditional update only flips rows that are still ``pending``, so a
    concurrent claimer never receives the same row. Returns the claim token and
    the records that actually carry it, in creation order.
    """

    token = claim_token or str(uuid.uuid4())
    claimed_at = now or _utcnow()

    candidate_ids = (
        session.execute(
            select(RawTransaction.id)
            .where(RawTransaction.status == RecordStatus.PENDING.value)
            .order_by(RawTransaction.created_at, RawTransaction.id)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    if not candidate_ids:
        return token, []

    session.execute(
        update(RawTransaction)
        .where(
            RawTransaction.id.in_(candidate_ids),
            RawTransaction.status == RecordStatus.PENDING.value,
        )
        .values(
            status=RecordStatus.IN_FLIGHT.value,
            claim_token=token,
            claimed_at=claimed_at,
        )
        .execution_options(synchronize_session=False)
    )
    rows = (
        session.execute(
            select(RawTransaction)
            .where(RawTransaction.claim_token == token)
            .order_by(RawTransaction.created_at, RawTransaction.id)
        )
        .scalars()
        .all()
    )
    return token, [_to_raw_record(r) for r in rows]


def held_claims(session: Session, ids: Sequence[str], claim_token: str) -> set[str]:
    """Return the ids in ``ids`` that are still in flight under ``claim_token``.

    The matching rows are locked (``FOR UPDATE`` where the dialect has it)
    until the caller's transaction ends, so a concurrent claim or reset waits
    for the caller's writes instead of racing them.
    """

    if not ids:
        return set()
    held = (
        session.execute(
            select(RawTransaction.id)
            .where(
                RawTransaction.id.in_(list(ids)),
                RawTransaction.status == RecordStatus.IN_FLIGHT.value,
                RawTransaction.claim_token == claim_token,
            )
            .with_for_update()
        )
        .scalars()
        .all()
    )
    return set(held)


def release_claims(
    session: Session, ids: Sequence[str], *, claim_token: str | None = None
) -> int:
    """Return in-flight records in ``ids`` to ``pending``.

    With ``claim_token``, only rows still carrying that token are released.
    """

    if not ids:
        return 0
    stmt = update(RawTransaction).where(
        RawTransaction.id.in_(list(ids)),
        RawTransaction.status == RecordStatus.IN_FLIGHT.value,
    )
    if claim_token is not None:
        stmt = stmt.where(RawTransaction.claim_token == claim_token)
    result = session.execute(
        stmt.values(
            status=RecordStatus.PENDING.value, claim_token=None, claimed_at=None
        ).execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def release_stale_claims(
    session: Session, *, ttl: timedelta, now: datetime | None = None
) -> int:
    """Release in-flight claims older than ``ttl`` (e.g. from a crashed run)."""

    cutoff = (now or _utcnow()) - ttl
    result = session.execute(
        update(RawTransaction)
        .where(
            RawTransaction.status == RecordStatus.IN_FLIGHT.value,
            RawTransaction.claimed_at < cutoff,
        )
        .values(status=RecordStatus.PENDING.value, claim_token=None, claimed_at=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


# ---------------------------------------------------------------------------
# Reconciliation writes
# ---------------------------------------------------------------------------


def delete_raw_records(session: Session, ids: Sequence[str]) -> int:
    """Physically delete raw records (canonical rows follow via cascade)."""

    if not ids:
        return 0
    result = session.execute(
        delete(RawTransaction)
        .where(RawTransaction.id.in_(list(ids)))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def upsert_canonical(session: Session, rows: Iterable[CanonicalRow]) -> None:
    """Insert or update canonical rows keyed on ``bronze_id``.

    Existing rows with ``is_edited`` set keep their values.
    """

    payloads: list[dict[str, Any]] = [
        {
            "bronze_id": r.bronze_id,
            "user_id": r.user_id,
            "description": r.description,
            "category": r.category,
            "amount": r.amount,
            "date": r.date,
            "transaction_type": r.transaction_type,
            "account": r.account,
            "processed_at": r.processed_at,
        }
        for r in rows
    ]
    if not payloads:
        return

    insert = _insert_for(session)
    stmt = insert(CanonicalTransaction).values(payloads)
    stmt = stmt.on_conflict_do_update(
        index_elements=[CanonicalTransaction.bronze_id],
        set_={
            "user_id": stmt.excluded.user_id,
            "description": stmt.excluded.description,
            "category": stmt.excluded.category,
            "amount": stmt.excluded.amount,
            "date": stmt.excluded.date,
            "transaction_type": stmt.excluded.transaction_type,
            "account": stmt.excluded.account,
            "processed_at": stmt.excluded.processed_at,
        },
        where=CanonicalTransaction.is_edited.is_(False),
    )
    session.execute(stmt)


def mark_status(
    session: Session,
    ids: Sequence[str],
    status: RecordStatus,
    *,
    error_message: str | None = None,
    claim_token: str | None = None,
) -> int:
    """Set a terminal status on raw records and clear their claim.

    With ``claim_token``, rows whose claim was released or taken over by
    another run are left alone.
    """

    if not ids:
        return 0
    stmt = update(RawTransaction).where(RawTransaction.id.in_(list(ids)))
    if claim_token is not None:
        stmt = stmt.where(
            RawTransaction.status == RecordStatus.IN_FLIGHT.value,
            RawTransaction.claim_token == claim_token,
        )
    result = session.execute(
        stmt.values(
            status=status.value,
            error_message=error_message,
            claim_token=None,
            claimed_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


# ---------------------------------------------------------------------------
# Ingest, file deletion, reprocess
# ---------------------------------------------------------------------------


def insert_raw_records(
    session: Session,
    *,
    user_id: str,
    file_id: str,
    file_name: str | None,
    account: str | None,
    rows: Iterable[Mapping[str, Any]],
) -> list[str]:
    """Insert one pending raw record per field bag; return the new ids."""

    ids: list[str] = []
    for raw in rows:
        rid = str(uuid.uuid4())
        session.add(
            RawTransaction(
                id=rid,
                user_id=user_id,
                file_id=file_id,
                file_name=file_name,
                account=account,
                raw_data=dict(raw),
                status=RecordStatus.PENDING.value,
            )
        )
        ids.append(rid)
    session.flush()
    return ids


def delete_file_records(session: Session, *, user_id: str, file_id: str) -> int:
    """Delete every raw record of one uploaded file owned by ``user_id``."""

    result = session.execute(
        delete(RawTransaction)
        .where(RawTransaction.user_id == user_id, RawTransaction.file_id == file_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def reset_user(session: Session, user_id: str) -> tuple[int, int]:
    """Discard a user's canonical rows and return their raw records to pending.

    Returns ``(canonical_deleted, raw_reset)``.
    """

    deleted = session.execute(
        delete(CanonicalTransaction)
        .where(CanonicalTransaction.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    reset = session.execute(
        update(RawTransaction)
        .where(
            RawTransaction.user_id == user_id,
            RawTransaction.status != RecordStatus.PENDING.value,
        )
        .values(
            status=RecordStatus.PENDING.value,
            error_message=None,
            claim_token=None,
            claimed_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    return deleted.rowcount or 0, reset.rowcount or 0


__all__ = [
    "CanonicalRow",
    "claim_pending",
    "delete_file_records",
    "delete_raw_records",
    "held_claims",
    "insert_raw_records",
    "mark_status",
    "release_claims",
    "release_stale_claims",
    "reset_user",
    "upsert_canonical",
]
