"""Pytest configuration for test isolation.

Each test gets its own file-backed SQLite database. The shared engine in
``ledger_db.client`` is module-global, so it is disposed around every test to
keep one test's DSN from leaking into the next. Pipeline environment
variables are cleared so a developer's ``.env`` never reaches the tests.
"""

# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make sure the workspace package dirs are on sys.path so the packages import uninstalled
_ROOT = Path(__file__).resolve().parents[1]
_PATHS = [_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT]
sys.path[:0] = [str(p) for p in _PATHS if str(p) not in sys.path]

from ledger_db.client import dispose_engine

from tests.helpers.db import bootstrap_sqlite_db

_PIPELINE_ENV = (
    "DATABASE_URL",
    "OPENAI_API_KEY",
    "LEDGER_PIPELINE_MODEL",
    "LEDGER_PIPELINE_BATCH_SIZE",
    "LEDGER_PIPELINE_MAX_ITERATIONS",
    "LEDGER_PIPELINE_CLAIM_TTL_MINUTES",
    "LEDGER_PIPELINE_MAX_RETRIES",
    "LEDGER_PIPELINE_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _PIPELINE_ENV:
        monkeypatch.delenv(name, raising=False)
    dispose_engine()
    yield
    dispose_engine()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "ledger.sqlite3")
