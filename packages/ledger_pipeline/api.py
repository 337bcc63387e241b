"""Public entry points wiring settings, sessions and the classifier together.

This module is the stable import surface used by the CLI and host
applications. Each function opens its own ``session_scope`` unless a session
is supplied, so callers can either hand over a DSN through :class:`Settings`
or manage the transaction themselves.
"""

from __future__ import annotations

import functools
from datetime import timedelta
from os import PathLike

from sqlalchemy.orm import Session

from ledger_db.client import session_scope

from .classifier import Classifier, OpenAIClassifier
from .config import Settings
from .cycle import CycleReport, run_cycle
from .drain import DrainController, DrainReport, ReprocessResult, reprocess
from .ingest import IngestResult, delete_file, ingest_statement_csv


def build_classifier(settings: Settings) -> OpenAIClassifier:
    return OpenAIClassifier(
        api_key=settings.require_openai_key(),
        model=settings.model,
        max_retries=settings.max_retries,
    )


def build_drain_controller(
    session: Session, classifier: Classifier, settings: Settings
) -> DrainController:
    """Return a controller whose cycles and resets share ``session``."""

    cycle = functools.partial(
        run_cycle,
        session,
        classifier,
        batch_size=settings.batch_size,
        claim_ttl=timedelta(minutes=settings.claim_ttl_minutes),
    )
    return DrainController(
        cycle,
        max_iterations=settings.max_iterations,
        reset_user=functools.partial(reprocess, session),
    )


def run_single_cycle(settings: Settings, classifier: Classifier | None = None) -> CycleReport:
    classifier = classifier or build_classifier(settings)
    with session_scope(database_url=settings.database_url) as session:
        return run_cycle(
            session,
            classifier,
            batch_size=settings.batch_size,
            claim_ttl=timedelta(minutes=settings.claim_ttl_minutes),
        )


def drain_backlog(settings: Settings, classifier: Classifier | None = None) -> DrainReport:
    classifier = classifier or build_classifier(settings)
    with session_scope(database_url=settings.database_url) as session:
        return build_drain_controller(session, classifier, settings).drain()


def reprocess_user(
    settings: Settings, user_id: str, classifier: Classifier | None = None
) -> tuple[ReprocessResult, DrainReport]:
    """Reset ``user_id``'s pipeline output, then drain the refilled backlog."""

    classifier = classifier or build_classifier(settings)
    with session_scope(database_url=settings.database_url) as session:
        return build_drain_controller(session, classifier, settings).reprocess(user_id)


def ingest_file(
    settings: Settings, user_id: str, csv_path: str | PathLike[str], account: str | None = None
) -> IngestResult:
    with session_scope(database_url=settings.database_url) as session:
        return ingest_statement_csv(session, user_id, csv_path, account)


def remove_file(settings: Settings, user_id: str, file_id: str) -> int:
    with session_scope(database_url=settings.database_url) as session:
        return delete_file(session, user_id, file_id)


__all__ = [
    "build_classifier",
    "build_drain_controller",
    "drain_backlog",
    "ingest_file",
    "remove_file",
    "reprocess_user",
    "run_single_cycle",
]
