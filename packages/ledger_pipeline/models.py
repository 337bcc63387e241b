"""Data models and type aliases for ``ledger_pipeline``.

Records crossing component boundaries are frozen dataclasses detached from
the ORM, so the normalizer, prompt builder and reconciler stay pure and can be
exercised without a database. Classifier output is validated with Pydantic.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, Literal, TypeAlias

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Reserved category instructing the pipeline to discard a raw record.
DELETE_SENTINEL = "DELETE"


class RecordStatus(StrEnum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    PROCESSED = "processed"
    ERROR = "error"


class TransactionType(StrEnum):
    EXPENDITURE = "expenditure"
    INCOME = "income"


def is_delete_sentinel(category: str | None) -> bool:
    """Return True when ``category`` is the deletion sentinel (any case)."""

    return category is not None and category.strip().upper() == DELETE_SENTINEL


# ---------------------------------------------------------------------------
# Raw input and normalized drafts
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawRecord:
    """A raw statement line as claimed from the raw store.

    ``raw_data`` is the uploaded field bag with keys ``Date``, ``Description``,
    ``MoneyOut``, ``MoneyIn`` and ``Balance`` (all text, any may be missing).
    """

    id: str
    user_id: str
    raw_data: Mapping[str, Any]
    account: str | None = None
    file_id: str | None = None
    file_name: str | None = None


@dataclass(frozen=True, slots=True)
class DraftTransaction:
    """Normalized transaction; ``amount``/``date``/``type`` are authoritative."""

    id: str
    description: str
    amount: Decimal
    date: date
    type: TransactionType
    account: str | None = None


# ---------------------------------------------------------------------------
# Rules (tagged variant) and classification context
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StructuredRule:
    name: str
    priority: int
    field: str
    operator: str
    value: str
    category: str
    description_override: str | None = None
    kind: Literal["structured"] = "structured"


@dataclass(frozen=True, slots=True)
class FreeTextRule:
    name: str
    priority: int
    instruction: str
    kind: Literal["free_text"] = "free_text"


Rule: TypeAlias = StructuredRule | FreeTextRule


def rule_sort_key(rule: Rule) -> tuple[int, str]:
    """Order rules by priority (highest first), then by name."""

    return (-rule.priority, rule.name)


@dataclass(frozen=True, slots=True)
class PromptConfig:
    """Versioned classification prompt resolved once per invocation."""

    version: int
    text: str


@dataclass(frozen=True, slots=True)
class UserContext:
    user_id: str
    categories: tuple[str, ...]
    structured_rules: tuple[StructuredRule, ...] = ()
    free_text_rules: tuple[FreeTextRule, ...] = ()


# ---------------------------------------------------------------------------
# Classifier request/response
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TransactionProjection:
    """Minimal view sent to the classifier; date/type/account are withheld."""

    id: str
    description: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class ClassificationRequest:
    user_id: str
    prompt: PromptConfig
    categories: tuple[str, ...]
    structured_rules: tuple[StructuredRule, ...]
    free_text_rules: tuple[FreeTextRule, ...]
    transactions: tuple[TransactionProjection, ...] = ()


class ClassifiedItem(BaseModel):
    """One classifier decision for a raw record.

    The legacy field names (``uuid``, ``final_category``,
    ``final_description``) are accepted as aliases.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, frozen=True)

    id: str = Field(validation_alias=AliasChoices("id", "uuid"))
    category: str = Field(validation_alias=AliasChoices("category", "final_category"))
    description: str | None = Field(
        default=None, validation_alias=AliasChoices("description", "final_description")
    )

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        # Models sometimes echo numeric-looking ids as numbers.
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("id")
    @classmethod
    def _id_non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("id must be non-empty")
        return v

    @field_validator("description")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        return v or None


__all__ = [
    "DELETE_SENTINEL",
    "ClassificationRequest",
    "ClassifiedItem",
    "DraftTransaction",
    "FreeTextRule",
    "PromptConfig",
    "RawRecord",
    "RecordStatus",
    "Rule",
    "StructuredRule",
    "TransactionProjection",
    "TransactionType",
    "UserContext",
    "is_delete_sentinel",
    "rule_sort_key",
]
