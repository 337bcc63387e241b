"""Drain the pending backlog by repeating batch cycles, and the reprocess flow.

Cycles are issued strictly one at a time. A drain stops at the first of:

- a cycle reporting an empty backlog,
- a cycle finishing zero records (processed plus deleted),
- the iteration cap,
- a classification backend error (reported, not re-raised).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from sqlalchemy.orm import Session

from . import persistence
from .config import DEFAULT_MAX_ITERATIONS
from .cycle import CycleReport
from .errors import ClassificationBackendError
from .logging_setup import get_logger

_logger = get_logger("ledger_pipeline.drain")


class StopReason(StrEnum):
    EMPTY_BACKLOG = "empty_backlog"
    NO_PROGRESS = "no_progress"
    ITERATION_CAP = "iteration_cap"
    BACKEND_ERROR = "backend_error"


@dataclass(frozen=True, slots=True)
class DrainReport:
    iterations: int
    total_processed: int
    total_errors: int
    stop_reason: StopReason
    error: ClassificationBackendError | None = None

    @property
    def message(self) -> str:
        if self.error is not None:
            return f"{self.error.hint} ({self.error.detail})"
        if self.stop_reason is StopReason.ITERATION_CAP:
            return (
                f"Stopped after {self.iterations} cycles; "
                f"{self.total_processed} transactions processed, more may be pending."
            )
        return f"Drain complete: {self.total_processed} transactions processed."


@dataclass(frozen=True, slots=True)
class ReprocessResult:
    user_id: str
    canonical_deleted: int
    raw_reset: int


def reprocess(session: Session, user_id: str) -> ReprocessResult:
    """Discard ``user_id``'s canonical rows and reset their raw records to pending.

    Both writes are committed together.
    """

    try:
        canonical_deleted, raw_reset = persistence.reset_user(session, user_id)
        session.commit()
    except Exception:
        session.rollback()
        raise
    _logger.info(
        "reprocess:reset user=%s canonical_deleted=%d raw_reset=%d",
        user_id,
        canonical_deleted,
        raw_reset,
    )
    return ReprocessResult(
        user_id=user_id, canonical_deleted=canonical_deleted, raw_reset=raw_reset
    )


class DrainController:
    """Run batch cycles until the backlog is exhausted or a stop condition hits.

    ``run_cycle`` is a zero-argument callable returning a :class:`CycleReport`
    (typically ``functools.partial(cycle.run_cycle, session, classifier, ...)``).
    ``reset_user`` performs the reprocess reset for one user; it is only
    required by :meth:`reprocess`.
    """

    def __init__(
        self,
        run_cycle: Callable[[], CycleReport],
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        reset_user: Callable[[str], ReprocessResult] | None = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self._run_cycle = run_cycle
        self._reset_user = reset_user
        self.max_iterations = max_iterations

    def drain(self) -> DrainReport:
        iterations = 0
        total_processed = 0
        total_errors = 0
        stop_reason = StopReason.ITERATION_CAP
        error: ClassificationBackendError | None = None

        while iterations < self.max_iterations:
            try:
                report = self._run_cycle()
            except ClassificationBackendError as e:
                stop_reason = StopReason.BACKEND_ERROR
                error = e
                break
            iterations += 1
            total_processed += report.processed_count
            total_errors += report.error_count
            _logger.info(
                "drain:cycle iteration=%d processed=%d errors=%d",
                iterations,
                report.processed_count,
                report.error_count,
            )
            if report.empty_backlog:
                stop_reason = StopReason.EMPTY_BACKLOG
                break
            if report.processed_count == 0:
                stop_reason = StopReason.NO_PROGRESS
                break

        result = DrainReport(
            iterations=iterations,
            total_processed=total_processed,
            total_errors=total_errors,
            stop_reason=stop_reason,
            error=error,
        )
        log = _logger.error if error is not None else _logger.info
        log(
            "drain:stopped reason=%s iterations=%d processed=%d errors=%d",
            stop_reason.value,
            iterations,
            total_processed,
            total_errors,
        )
        return result

    def reprocess(self, user_id: str) -> tuple[ReprocessResult, DrainReport]:
        """Reset ``user_id`` and then drain the (now refilled) backlog."""

        if self._reset_user is None:
            raise RuntimeError("DrainController was built without a reset_user callable")
        reset = self._reset_user(user_id)
        return reset, self.drain()


__all__ = [
    "DrainController",
    "DrainReport",
    "ReprocessResult",
    "StopReason",
    "reprocess",
]
