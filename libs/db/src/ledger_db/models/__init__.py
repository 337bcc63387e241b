"""Shared SQLAlchemy models registry for the ledger stores.

Includes the raw store, canonical store and classification context tables
used by ``ledger_pipeline``.
"""

from .ledger import (
    Base,
    CanonicalTransaction,
    LlmPrompt,
    RawTransaction,
    UserCategory,
    UserRule,
)

__all__ = [
    "Base",
    "CanonicalTransaction",
    "LlmPrompt",
    "RawTransaction",
    "UserCategory",
    "UserRule",
]
