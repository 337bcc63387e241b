"""Apply one user's classification results to the stores.

Planning is pure: :func:`plan_reconciliation` decides, per raw record in the
user's slice, whether it is deleted (deletion sentinel), upserted into the
canonical store, or omitted (no item returned). :func:`apply_plan` then writes
in a fixed order:

1. physical deletion of sentinel records,
2. canonical upserts,
3. raw status updates.

Deletions and upserts each run inside a savepoint. A failed upsert redirects
every would-be-processed id to ``error`` before any status is written, so a
record is never marked processed without its canonical row.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import persistence
from .errors import PersistenceError
from .logging_setup import get_logger
from .models import ClassifiedItem, DraftTransaction, RecordStatus, is_delete_sentinel
from .persistence import CanonicalRow

_logger = get_logger("ledger_pipeline.reconcile")

CANONICAL_WRITE_FAILED = "Canonical write failed"
DELETION_FAILED = "Raw record deletion failed"


@dataclass(frozen=True, slots=True)
class ReconciliationPlan:
    user_id: str
    deletions: tuple[str, ...] = ()
    upserts: tuple[CanonicalRow, ...] = ()
    omitted: tuple[str, ...] = ()
    unknown_ids: tuple[str, ...] = ()

    @property
    def processed_ids(self) -> tuple[str, ...]:
        """Ids that end as ``processed`` when every write succeeds."""

        return tuple(r.bronze_id for r in self.upserts) + self.omitted


@dataclass(frozen=True, slots=True)
class ApplyResult:
    processed: int = 0
    deleted: int = 0
    errored: int = 0
    error_message: str | None = None


def plan_reconciliation(
    drafts: Sequence[DraftTransaction],
    items: Iterable[ClassifiedItem],
    *,
    user_id: str,
    processed_at: datetime,
) -> ReconciliationPlan:
    """Match classifier items to the user's drafts.

    Items for ids outside the slice are ignored; for duplicate ids the last
    item wins. A blank category is treated like an omitted item.
    """

    slice_ids = {d.id for d in drafts}
    by_id: dict[str, ClassifiedItem] = {}
    unknown: list[str] = []
    for item in items:
        if item.id not in slice_ids:
            unknown.append(item.id)
            continue
        by_id[item.id] = item

    deletions: list[str] = []
    upserts: list[CanonicalRow] = []
    omitted: list[str] = []
    for draft in drafts:
        item = by_id.get(draft.id)
        if item is None or not item.category:
            omitted.append(draft.id)
            continue
        if is_delete_sentinel(item.category):
            deletions.append(draft.id)
            continue
        upserts.append(
            CanonicalRow(
                bronze_id=draft.id,
                user_id=user_id,
                description=item.description or draft.description,
                category=item.category,
                amount=draft.amount,
                date=draft.date,
                transaction_type=draft.type.value,
                account=draft.account,
                processed_at=processed_at,
            )
        )

    if unknown:
        _logger.warning(
            "reconcile:unknown_ids user=%s count=%d ids=%s",
            user_id,
            len(unknown),
            ",".join(unknown[:10]),
        )
    return ReconciliationPlan(
        user_id=user_id,
        deletions=tuple(deletions),
        upserts=tuple(upserts),
        omitted=tuple(omitted),
        unknown_ids=tuple(unknown),
    )


def _savepoint_write(session: Session, label: str, fn) -> PersistenceError | None:
    try:
        with session.begin_nested():
            fn()
    except SQLAlchemyError as e:
        err = PersistenceError(str(getattr(e, "orig", None) or e))
        _logger.error("reconcile:%s_failed error=%s", label, err)
        return err
    return None


def apply_plan(
    session: Session, plan: ReconciliationPlan, *, claim_token: str | None = None
) -> ApplyResult:
    """Write ``plan`` using the caller's session; the caller commits.

    With ``claim_token``, status writes only touch rows still claimed under it.
    """

    errors: list[tuple[tuple[str, ...], str]] = []
    deleted = 0

    if plan.deletions:
        del_err = _savepoint_write(
            session, "delete", lambda: persistence.delete_raw_records(session, plan.deletions)
        )
        if del_err is None:
            deleted = len(plan.deletions)
        else:
            errors.append((plan.deletions, f"{DELETION_FAILED}: {del_err}"))

    processed_ids = plan.processed_ids
    if plan.upserts:
        up_err = _savepoint_write(
            session, "upsert", lambda: persistence.upsert_canonical(session, plan.upserts)
        )
        if up_err is not None:
            errors.append((processed_ids, f"{CANONICAL_WRITE_FAILED}: {up_err}"))
            processed_ids = ()

    persistence.mark_status(
        session, processed_ids, RecordStatus.PROCESSED, claim_token=claim_token
    )
    errored = 0
    last_message: str | None = None
    for ids, message in errors:
        persistence.mark_status(
            session, ids, RecordStatus.ERROR, error_message=message, claim_token=claim_token
        )
        errored += len(ids)
        last_message = message

    _logger.info(
        "reconcile:applied user=%s processed=%d deleted=%d errored=%d omitted=%d",
        plan.user_id,
        len(processed_ids),
        deleted,
        errored,
        len(plan.omitted),
    )
    return ApplyResult(
        processed=len(processed_ids),
        deleted=deleted,
        errored=errored,
        error_message=last_message,
    )


__all__ = [
    "ApplyResult",
    "CANONICAL_WRITE_FAILED",
    "DELETION_FAILED",
    "ReconciliationPlan",
    "apply_plan",
    "plan_reconciliation",
]
