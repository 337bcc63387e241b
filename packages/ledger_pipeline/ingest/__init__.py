"""Raw-side ingest: statement upload into the raw store and file deletion.

Functions take a caller-owned session and never commit.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from os import PathLike
from pathlib import Path

from sqlalchemy.orm import Session

from .. import persistence
from ..logging_setup import get_logger
from .statement_csv import read_statement_csv

_logger = get_logger("ledger_pipeline.ingest")


@dataclass(frozen=True, slots=True)
class IngestResult:
    file_id: str
    file_name: str
    inserted: int


def ingest_statement_csv(
    session: Session,
    user_id: str,
    csv_path: str | PathLike[str],
    account: str | None = None,
) -> IngestResult:
    """Insert one pending raw record per statement line under a fresh file id."""

    p = Path(csv_path)
    rows = read_statement_csv(p)
    file_id = str(uuid.uuid4())
    ids = persistence.insert_raw_records(
        session,
        user_id=user_id,
        file_id=file_id,
        file_name=p.name,
        account=account,
        rows=rows,
    )
    _logger.info(
        "ingest:file_done user=%s file_id=%s file_name=%s rows=%d",
        user_id,
        file_id,
        p.name,
        len(ids),
    )
    return IngestResult(file_id=file_id, file_name=p.name, inserted=len(ids))


def delete_file(session: Session, user_id: str, file_id: str) -> int:
    """Remove every raw record of an uploaded file; canonical rows cascade.

    Returns the number of raw records removed.
    """

    removed = persistence.delete_file_records(session, user_id=user_id, file_id=file_id)
    _logger.info("ingest:file_deleted user=%s file_id=%s rows=%d", user_id, file_id, removed)
    return removed


__all__ = ["IngestResult", "delete_file", "ingest_statement_csv"]
