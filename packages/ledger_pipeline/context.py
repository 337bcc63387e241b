"""Classification context: active prompt version, user rules and categories.

Rules are handed to the classifier as context; they are never executed
deterministically here. The category vocabulary is authoritative and closed.

Callers own the session/transaction scope.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_db.models.ledger import LlmPrompt, UserCategory, UserRule

from .errors import ConfigurationError
from .logging_setup import get_logger
from .models import FreeTextRule, PromptConfig, StructuredRule, UserContext, rule_sort_key

DEFAULT_PROMPT = PromptConfig(version=0, text="Categorize these transactions.")

_logger = get_logger("ledger_pipeline.context")


def resolve_active_prompt(session: Session) -> PromptConfig:
    """Return the single active prompt version.

    More than one active row is a configuration error. When no row is active,
    the built-in default prompt (version 0) is used.
    """

    rows = (
        session.execute(
            select(LlmPrompt).where(LlmPrompt.is_active.is_(True)).order_by(LlmPrompt.version)
        )
        .scalars()
        .all()
    )
    if len(rows) > 1:
        versions = ", ".join(str(r.version) for r in rows)
        raise ConfigurationError(
            f"exactly one active prompt is required; found {len(rows)} (versions {versions})"
        )
    if not rows:
        _logger.warning("context:prompt_default reason=no_active_prompt")
        return DEFAULT_PROMPT
    row = rows[0]
    return PromptConfig(version=row.version, text=row.prompt_text)


def _str_or_none(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def rule_from_row(row: UserRule) -> StructuredRule | FreeTextRule | None:
    """Convert a ``user_rules`` row to its variant, or ``None`` when malformed."""

    name = (row.name or "").strip() or f"rule-{row.id}"
    priority = int(row.priority or 0)

    instruction = _str_or_none(row.instruction)
    if instruction is not None:
        return FreeTextRule(name=name, priority=priority, instruction=instruction)

    conditions: Mapping[str, Any] = row.conditions or {}
    actions: Mapping[str, Any] = row.actions or {}
    field = _str_or_none(conditions.get("field"))
    operator = _str_or_none(conditions.get("operator"))
    value = _str_or_none(conditions.get("value"))
    category = _str_or_none(actions.get("category"))
    if not (field and operator and value and category):
        return None
    return StructuredRule(
        name=name,
        priority=priority,
        field=field,
        operator=operator,
        value=value,
        category=category,
        description_override=_str_or_none(
            actions.get("description_override", actions.get("descriptionOverride"))
        ),
    )


def partition_rules(
    rules: Iterable[StructuredRule | FreeTextRule],
) -> tuple[tuple[StructuredRule, ...], tuple[FreeTextRule, ...]]:
    """Split rules into (structured, free-text), each in priority order."""

    ordered = sorted(rules, key=rule_sort_key)
    structured = tuple(r for r in ordered if isinstance(r, StructuredRule))
    free_text = tuple(r for r in ordered if isinstance(r, FreeTextRule))
    return structured, free_text


def load_user_context(session: Session, user_id: str) -> UserContext:
    rule_rows = (
        session.execute(
            select(UserRule).where(UserRule.user_id == user_id, UserRule.is_active.is_(True))
        )
        .scalars()
        .all()
    )
    rules: list[StructuredRule | FreeTextRule] = []
    for row in rule_rows:
        rule = rule_from_row(row)
        if rule is None:
            _logger.warning(
                "context:rule_skipped user=%s rule_id=%s reason=malformed", user_id, row.id
            )
            continue
        rules.append(rule)
    structured, free_text = partition_rules(rules)

    names = session.execute(
        select(UserCategory.name).where(UserCategory.user_id == user_id)
    ).scalars()
    categories = tuple(sorted(dict.fromkeys(n.strip() for n in names if n and n.strip())))

    _logger.info(
        "context:loaded user=%s categories=%d structured_rules=%d free_text_rules=%d",
        user_id,
        len(categories),
        len(structured),
        len(free_text),
    )
    return UserContext(
        user_id=user_id,
        categories=categories,
        structured_rules=structured,
        free_text_rules=free_text,
    )


__all__ = [
    "DEFAULT_PROMPT",
    "load_user_context",
    "partition_rules",
    "resolve_active_prompt",
    "rule_from_row",
]
