"""Engine and session helpers for the ledger stores.

Usage
-----
from ledger_db.client import session_scope

with session_scope(database_url=url) as s:
    s.execute(...)

Engines are cached per database URL, so a worker and a maintenance command
pointed at different stores can share a process. SQLite connections get
foreign key enforcement on connect; without it, deleting a raw record would
leave its canonical row behind instead of cascading as it does on Postgres.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

_ENGINES: dict[str, tuple[Engine, sessionmaker[Session]]] = {}


def resolve_database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot reach the ledger stores")
    return url


def _enable_sqlite_foreign_keys(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


def _bind(url: str) -> tuple[Engine, sessionmaker[Session]]:
    bound = _ENGINES.get(url)
    if bound is None:
        engine = create_engine(url, pool_pre_ping=True)
        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        bound = (engine, sessionmaker(bind=engine, expire_on_commit=False, class_=Session))
        _ENGINES[url] = bound
    return bound


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the engine for ``database_url`` (or ``DATABASE_URL``), creating it once."""

    return _bind(resolve_database_url(database_url))[0]


def dispose_engine() -> None:
    """Dispose every cached engine and forget it."""

    for engine, _ in _ENGINES.values():
        engine.dispose()
    _ENGINES.clear()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Commit on success, roll back on error, always close."""

    session = _bind(resolve_database_url(database_url))[1]()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "dispose_engine",
    "get_engine",
    "resolve_database_url",
    "session_scope",
]
