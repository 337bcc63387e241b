"""DB helpers for tests: bootstrap a temporary SQLite DB and seed ledger rows."""

from __future__ import annotations

import os
import uuid
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_db import Base
from ledger_db.client import get_engine, session_scope
from ledger_db.models.ledger import (
    CanonicalTransaction,
    LlmPrompt,
    RawTransaction,
    UserCategory,
    UserRule,
)

# Fixed base so "oldest first" ordering is deterministic across inserts.
_BASE_CREATED_AT = datetime(2024, 1, 1, tzinfo=UTC)


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=get_engine(database_url=url))

    if set_default_env:
        os.environ.setdefault("DATABASE_URL", url)
    return url


def seed_prompt(
    session: Session, *, version: int = 1, text: str = "Categorize these.", active: bool = True
) -> None:
    session.add(LlmPrompt(version=version, prompt_text=text, is_active=active))
    session.flush()


def seed_categories(session: Session, user_id: str, names: Iterable[str]) -> None:
    for name in names:
        session.add(UserCategory(user_id=user_id, name=name))
    session.flush()


def seed_structured_rule(
    session: Session,
    user_id: str,
    *,
    name: str,
    priority: int = 0,
    field: str = "description",
    operator: str = "contains",
    value: str,
    category: str,
    description_override: str | None = None,
    active: bool = True,
) -> None:
    actions: dict[str, Any] = {"category": category}
    if description_override is not None:
        actions["description_override"] = description_override
    session.add(
        UserRule(
            user_id=user_id,
            name=name,
            priority=priority,
            is_active=active,
            conditions={"field": field, "operator": operator, "value": value},
            actions=actions,
        )
    )
    session.flush()


def seed_free_text_rule(
    session: Session, user_id: str, *, name: str, instruction: str, priority: int = 0
) -> None:
    session.add(
        UserRule(user_id=user_id, name=name, priority=priority, instruction=instruction)
    )
    session.flush()


def seed_raw(
    session: Session,
    user_id: str,
    rows: Iterable[Mapping[str, Any]],
    *,
    account: str | None = "Chequing",
    file_id: str | None = None,
    status: str = "pending",
    start: int = 0,
) -> list[str]:
    """Insert raw records with strictly increasing ``created_at``; return their ids.

    ``start`` offsets the creation timestamps (in seconds) so separate calls
    keep a global oldest-first order.
    """

    fid = file_id or str(uuid.uuid4())
    ids: list[str] = []
    for i, raw in enumerate(rows):
        rid = str(uuid.uuid4())
        session.add(
            RawTransaction(
                id=rid,
                user_id=user_id,
                file_id=fid,
                file_name="statement.csv",
                account=account,
                raw_data=dict(raw),
                status=status,
                created_at=_BASE_CREATED_AT + timedelta(seconds=start + i),
            )
        )
        ids.append(rid)
    session.flush()
    return ids


def raw_row(
    description: str, *, out: str = "", inflow: str = "", day: str = "01/15/2024"
) -> dict[str, Any]:
    return {
        "Date": day,
        "Description": description,
        "MoneyOut": out,
        "MoneyIn": inflow,
        "Balance": "1000.00",
    }


def raw_statuses(database_url: str) -> dict[str, tuple[str, str | None]]:
    """Return ``{id: (status, error_message)}`` for every raw record."""

    with session_scope(database_url=database_url) as session:
        rows = session.execute(
            select(RawTransaction.id, RawTransaction.status, RawTransaction.error_message)
        ).all()
    return {r[0]: (r[1], r[2]) for r in rows}


def canonical_rows(database_url: str) -> dict[str, CanonicalTransaction]:
    """Return canonical rows keyed by bronze id (detached, attributes loaded)."""

    with session_scope(database_url=database_url) as session:
        rows = session.execute(select(CanonicalTransaction)).scalars().all()
        return {r.bronze_id: r for r in rows}


__all__ = [
    "bootstrap_sqlite_db",
    "canonical_rows",
    "raw_row",
    "raw_statuses",
    "seed_categories",
    "seed_free_text_rule",
    "seed_prompt",
    "seed_raw",
    "seed_structured_rule",
]
