"""ledger_db: shared database library for the raw and canonical ledger stores.

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``ledger_db.models.ledger`` (re-exported for convenience)
- Engine/session helpers in ``ledger_db.client``
"""

from __future__ import annotations

from .models.ledger import (
    Base,
    CanonicalTransaction,
    LlmPrompt,
    RawTransaction,
    UserCategory,
    UserRule,
)

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "CanonicalTransaction",
    "LlmPrompt",
    "RawTransaction",
    "UserCategory",
    "UserRule",
]
