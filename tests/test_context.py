import pytest

from ledger_db.client import session_scope
from ledger_pipeline.context import DEFAULT_PROMPT, load_user_context, resolve_active_prompt
from ledger_pipeline.errors import ConfigurationError
from ledger_pipeline.models import FreeTextRule, StructuredRule
from ledger_db.models.ledger import UserRule
from tests.helpers.db import (
    seed_categories,
    seed_free_text_rule,
    seed_prompt,
    seed_structured_rule,
)


def test_active_prompt_is_resolved(db_url):
    with session_scope(database_url=db_url) as s:
        seed_prompt(s, version=1, text="Old.", active=False)
        seed_prompt(s, version=2, text="Current.", active=True)

    with session_scope(database_url=db_url) as s:
        prompt = resolve_active_prompt(s)
    assert (prompt.version, prompt.text) == (2, "Current.")


def test_missing_active_prompt_uses_default(db_url):
    with session_scope(database_url=db_url) as s:
        assert resolve_active_prompt(s) == DEFAULT_PROMPT
    assert DEFAULT_PROMPT.version == 0


def test_multiple_active_prompts_is_configuration_error(db_url):
    with session_scope(database_url=db_url) as s:
        seed_prompt(s, version=1, active=True)
        seed_prompt(s, version=2, active=True)

    with session_scope(database_url=db_url) as s, pytest.raises(ConfigurationError):
        resolve_active_prompt(s)


def test_user_context_orders_and_partitions_rules(db_url):
    with session_scope(database_url=db_url) as s:
        seed_categories(s, "u1", ["Transport", "Groceries"])
        seed_categories(s, "u2", ["Other"])
        seed_structured_rule(s, "u1", name="b-low", priority=1, value="TIM", category="Food")
        seed_structured_rule(
            s, "u1", name="a-high", priority=10, value="UBER", category="Transport"
        )
        seed_structured_rule(
            s, "u1", name="inactive", priority=99, value="X", category="Other", active=False
        )
        seed_free_text_rule(s, "u1", name="xfer", instruction="Delete transfers.", priority=5)
        seed_structured_rule(s, "u2", name="other-user", value="Y", category="Other")

    with session_scope(database_url=db_url) as s:
        ctx = load_user_context(s, "u1")

    assert ctx.categories == ("Groceries", "Transport")
    assert [r.name for r in ctx.structured_rules] == ["a-high", "b-low"]
    assert all(isinstance(r, StructuredRule) for r in ctx.structured_rules)
    assert ctx.free_text_rules == (
        FreeTextRule(name="xfer", priority=5, instruction="Delete transfers."),
    )


def test_malformed_structured_rule_is_skipped(db_url):
    with session_scope(database_url=db_url) as s:
        s.add(
            UserRule(
                user_id="u1",
                name="broken",
                priority=0,
                conditions={"field": "description"},
                actions={"category": "Food"},
            )
        )

    with session_scope(database_url=db_url) as s:
        ctx = load_user_context(s, "u1")
    assert ctx.structured_rules == ()
    assert ctx.categories == ()
