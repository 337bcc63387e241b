"""One bounded batch cycle over globally pending raw records.

A cycle claims up to ``batch_size`` pending records (oldest first), groups them
by owner in first-seen order and, per owner, loads the classification
context, normalizes, classifies and reconciles. Each owner's writes are
committed before the next owner starts.

Failure scoping:
- :class:`ResponseParseError` marks the owner's whole slice ``error`` with
  ``LLM Parsing Failed`` and the cycle moves on.
- :class:`ClassificationBackendError` aborts the cycle: owners already
  committed stay committed, claims of the remaining owners are released back
  to ``pending`` and the error is re-raised.
- Records whose claim was released or taken over while the classifier ran
  are left untouched; status writes only match rows still carrying this
  cycle's claim token.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from sqlalchemy.orm import Session

from . import persistence
from .classifier import Classifier
from .config import DEFAULT_BATCH_SIZE, DEFAULT_CLAIM_TTL_MINUTES
from .context import load_user_context, resolve_active_prompt
from .errors import ClassificationBackendError, ResponseParseError
from .logging_setup import get_logger
from .models import PromptConfig, RawRecord, RecordStatus
from .normalizers import normalize_records
from .prompting import build_classification_request
from .reconcile import apply_plan, plan_reconciliation

PARSE_FAILED_MESSAGE = "LLM Parsing Failed"
EMPTY_BACKLOG_MESSAGE = "No pending transactions found."
DEFAULT_CLAIM_TTL = timedelta(minutes=DEFAULT_CLAIM_TTL_MINUTES)

_logger = get_logger("ledger_pipeline.cycle")


@dataclass(frozen=True, slots=True)
class UserCycleResult:
    user_id: str
    claimed: int
    processed: int = 0
    deleted: int = 0
    errored: int = 0
    lost: int = 0
    error_message: str | None = None


@dataclass(frozen=True, slots=True)
class CycleReport:
    claimed: int = 0
    users: tuple[UserCycleResult, ...] = ()
    released_stale: int = 0
    empty_backlog: bool = False
    message: str = ""

    @property
    def processed_count(self) -> int:
        """Records newly finished by this cycle (processed plus deleted)."""

        return sum(u.processed + u.deleted for u in self.users)

    @property
    def error_count(self) -> int:
        return sum(u.errored for u in self.users)


def group_by_user(records: Sequence[RawRecord]) -> dict[str, list[RawRecord]]:
    """Group records by owner, preserving first-seen owner order."""

    groups: dict[str, list[RawRecord]] = {}
    for r in records:
        groups.setdefault(r.user_id, []).append(r)
    return groups


def _summary(claimed: int, users: Sequence[UserCycleResult]) -> str:
    processed = sum(u.processed for u in users)
    deleted = sum(u.deleted for u in users)
    errored = sum(u.errored for u in users)
    return (
        f"Processed {processed} of {claimed} claimed transactions "
        f"({deleted} deleted, {errored} errors)."
    )


def _process_user(
    session: Session,
    classifier: Classifier,
    user_id: str,
    records: Sequence[RawRecord],
    *,
    claim_token: str,
    prompt: PromptConfig,
    today: date | None,
    now: datetime,
) -> UserCycleResult:
    ids = [r.id for r in records]
    context = load_user_context(session, user_id)
    drafts = normalize_records(records, today=today)
    request = build_classification_request(user_id, prompt, context, drafts)

    try:
        items = classifier.classify(request)
    except ResponseParseError as e:
        _logger.warning("cycle:parse_failed user=%s records=%d error=%s", user_id, len(ids), e)
        errored = persistence.mark_status(
            session,
            ids,
            RecordStatus.ERROR,
            error_message=PARSE_FAILED_MESSAGE,
            claim_token=claim_token,
        )
        session.commit()
        return UserCycleResult(
            user_id=user_id,
            claimed=len(ids),
            errored=errored,
            lost=len(ids) - errored,
            error_message=PARSE_FAILED_MESSAGE,
        )

    # Records released as stale or reset while the classifier ran belong to
    # someone else now.
    held = persistence.held_claims(session, ids, claim_token)
    lost = [i for i in ids if i not in held]
    if lost:
        _logger.warning(
            "cycle:claims_lost user=%s count=%d ids=%s", user_id, len(lost), ",".join(lost[:10])
        )
        drafts = [d for d in drafts if d.id in held]
        items = [item for item in items if item.id not in lost]

    plan = plan_reconciliation(drafts, items, user_id=user_id, processed_at=now)
    result = apply_plan(session, plan, claim_token=claim_token)
    session.commit()
    return UserCycleResult(
        user_id=user_id,
        claimed=len(ids),
        processed=result.processed,
        deleted=result.deleted,
        errored=result.errored,
        lost=len(lost),
        error_message=result.error_message,
    )


def run_cycle(
    session: Session,
    classifier: Classifier,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    claim_ttl: timedelta = DEFAULT_CLAIM_TTL,
    today: date | None = None,
    now: datetime | None = None,
) -> CycleReport:
    """Run one batch cycle; commits after the claim and after each owner."""

    started = now or datetime.now(UTC)
    # Resolved once and before any record is touched.
    prompt = resolve_active_prompt(session)

    released = persistence.release_stale_claims(session, ttl=claim_ttl, now=started)
    token, records = persistence.claim_pending(session, limit=batch_size, now=started)
    session.commit()
    if released:
        _logger.warning("cycle:stale_claims_released count=%d", released)

    if not records:
        _logger.info("cycle:empty_backlog")
        return CycleReport(
            released_stale=released, empty_backlog=True, message=EMPTY_BACKLOG_MESSAGE
        )

    groups = group_by_user(records)
    _logger.info(
        "cycle:claimed token=%s records=%d users=%d prompt_version=%d",
        token,
        len(records),
        len(groups),
        prompt.version,
    )

    results: list[UserCycleResult] = []
    pending_users = list(groups)
    try:
        for user_id in list(pending_users):
            result = _process_user(
                session,
                classifier,
                user_id,
                groups[user_id],
                claim_token=token,
                prompt=prompt,
                today=today,
                now=started,
            )
            pending_users.remove(user_id)
            results.append(result)
            _logger.info(
                "cycle:user_done user=%s processed=%d deleted=%d errored=%d",
                user_id,
                result.processed,
                result.deleted,
                result.errored,
            )
    except Exception as e:
        session.rollback()
        unfinished = [r.id for u in pending_users for r in groups[u]]
        released_now = persistence.release_claims(session, unfinished, claim_token=token)
        session.commit()
        log = _logger.error if isinstance(e, ClassificationBackendError) else _logger.exception
        log(
            "cycle:aborted users_done=%d users_released=%d records_released=%d error=%s",
            len(results),
            len(pending_users),
            released_now,
            e.__class__.__name__,
        )
        raise

    report = CycleReport(
        claimed=len(records),
        users=tuple(results),
        released_stale=released,
        message=_summary(len(records), results),
    )
    _logger.info(
        "cycle:done claimed=%d processed=%d errors=%d",
        report.claimed,
        report.processed_count,
        report.error_count,
    )
    return report


__all__ = [
    "CycleReport",
    "EMPTY_BACKLOG_MESSAGE",
    "PARSE_FAILED_MESSAGE",
    "UserCycleResult",
    "group_by_user",
    "run_cycle",
]
