"""Prompt construction and transaction serialization for classification.

This module builds:
- A deterministic JSON serialization of the minimal transaction projection
  ``{id, description, amount}`` with a fixed field order.
- The system instructions and the per-user content for one classification
  request (prompt template, categories, structured rules, high-priority
  free-text rules, transactions).
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from .models import (
    DELETE_SENTINEL,
    ClassificationRequest,
    DraftTransaction,
    FreeTextRule,
    PromptConfig,
    StructuredRule,
    TransactionProjection,
    UserContext,
)

BEGIN_MARKER = "BEGIN_TRANSACTIONS_JSON"
END_MARKER = "END_TRANSACTIONS_JSON"


def _amount_to_json(amount: Decimal) -> float:
    # Two-decimal amounts survive the float round-trip exactly as printed.
    return float(amount)


def project_transactions(drafts: Sequence[DraftTransaction]) -> tuple[TransactionProjection, ...]:
    return tuple(
        TransactionProjection(id=d.id, description=d.description, amount=d.amount)
        for d in drafts
    )


def serialize_transactions_to_json(items: Sequence[TransactionProjection]) -> str:
    """Serialize projections to a JSON array with field order ``id, description, amount``."""

    arr: list[dict[str, Any]] = []
    for item in items:
        arr.append(
            {
                "id": item.id,
                "description": item.description,
                "amount": _amount_to_json(item.amount),
            }
        )
    return json.dumps(arr, ensure_ascii=False)


def serialize_structured_rules(rules: Sequence[StructuredRule]) -> str:
    """Serialize structured rules (already priority-ordered) as a JSON array."""

    arr: list[dict[str, Any]] = []
    for r in rules:
        then: dict[str, Any] = {"category": r.category}
        if r.description_override:
            then["description"] = r.description_override
        arr.append(
            {
                "name": r.name,
                "priority": r.priority,
                "if": {"field": r.field, "operator": r.operator, "value": r.value},
                "then": then,
            }
        )
    return json.dumps(arr, ensure_ascii=False)


def render_free_text_rules(rules: Sequence[FreeTextRule]) -> str:
    """Return a numbered, high-priority list of free-text instructions."""

    if not rules:
        return "(none)"
    return "\n".join(
        f"{i}. [HIGH PRIORITY] {r.instruction}" for i, r in enumerate(rules, start=1)
    )


def build_classification_request(
    user_id: str,
    prompt: PromptConfig,
    context: UserContext,
    drafts: Sequence[DraftTransaction],
) -> ClassificationRequest:
    return ClassificationRequest(
        user_id=user_id,
        prompt=prompt,
        categories=context.categories,
        structured_rules=context.structured_rules,
        free_text_rules=context.free_text_rules,
        transactions=project_transactions(drafts),
    )


def build_system_instructions() -> str:
    return (
        "You are an agent that categorizes bank statement transactions for one user. "
        "Choose exactly one category per transaction from the user's categories, or "
        f'"{DELETE_SENTINEL}" when a rule says the transaction should be discarded. '
        "Never invent categories. Output a JSON array only, with no commentary."
    )


def build_user_content(request: ClassificationRequest) -> str:
    """Render the per-user request body.

    Transactions are embedded between ``BEGIN_TRANSACTIONS_JSON`` and
    ``END_TRANSACTIONS_JSON`` markers on their own lines.
    """

    categories_json = json.dumps(list(request.categories), ensure_ascii=False)
    lines: list[str] = [
        request.prompt.text.strip(),
        "",
        f"User Categories: {categories_json}",
        f'Deletion: use the category "{DELETE_SENTINEL}" only when a rule asks to remove '
        "a transaction.",
        "",
        "User Rules (structured, highest priority first):",
        serialize_structured_rules(request.structured_rules),
        "",
        "User Instructions (apply these before anything else):",
        render_free_text_rules(request.free_text_rules),
        "",
        "Transactions to Categorize:",
        BEGIN_MARKER,
        serialize_transactions_to_json(request.transactions),
        END_MARKER,
        "",
        "Output a JSON array where each object has:",
        "- id: the transaction id provided",
        "- category: the selected category based on description and rules",
        '- description: a cleaned-up merchant name (e.g. "UBER *TRIP" -> "Uber")',
    ]
    return "\n".join(lines)


__all__ = [
    "BEGIN_MARKER",
    "END_MARKER",
    "build_classification_request",
    "build_system_instructions",
    "build_user_content",
    "project_transactions",
    "render_free_text_rules",
    "serialize_structured_rules",
    "serialize_transactions_to_json",
]
