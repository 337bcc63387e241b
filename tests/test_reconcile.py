from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy.exc import OperationalError

import ledger_pipeline.persistence as persistence_mod
from ledger_db.client import session_scope
from ledger_db.models.ledger import CanonicalTransaction
from ledger_pipeline.models import ClassifiedItem, DraftTransaction, TransactionType
from ledger_pipeline.reconcile import apply_plan, plan_reconciliation
from tests.helpers.db import canonical_rows, raw_row, raw_statuses, seed_raw

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=UTC)


def _draft(rid: str, description: str = "UBER *TRIP", amount: str = "-15.00") -> DraftTransaction:
    return DraftTransaction(
        id=rid,
        description=description,
        amount=Decimal(amount),
        date=date(2024, 1, 15),
        type=TransactionType.EXPENDITURE,
        account="Chequing",
    )


def _item(rid: str, category: str, description: str | None = None) -> ClassifiedItem:
    return ClassifiedItem(id=rid, category=category, description=description)


def test_plan_routes_delete_upsert_and_omission():
    drafts = [_draft("a"), _draft("b"), _draft("c"), _draft("d", description="RAW D")]
    items = [
        _item("a", "Transport", "Uber"),
        _item("b", " delete "),
        _item("zzz", "Food"),
        _item("d", "Food", None),
    ]
    plan = plan_reconciliation(drafts, items, user_id="u1", processed_at=NOW)

    assert plan.deletions == ("b",)
    assert [r.bronze_id for r in plan.upserts] == ["a", "d"]
    assert plan.omitted == ("c",)
    assert plan.unknown_ids == ("zzz",)
    assert plan.processed_ids == ("a", "d", "c")

    a, d = plan.upserts
    assert (a.description, a.category, a.amount) == ("Uber", "Transport", Decimal("-15.00"))
    assert a.transaction_type == "expenditure"
    # Blank classifier description falls back to the raw description.
    assert d.description == "RAW D"


def test_plan_last_duplicate_wins():
    plan = plan_reconciliation(
        [_draft("a")],
        [_item("a", "Food"), _item("a", "Transport")],
        user_id="u1",
        processed_at=NOW,
    )
    assert [r.category for r in plan.upserts] == ["Transport"]


def _seed_three(db_url: str) -> list[str]:
    with session_scope(database_url=db_url) as s:
        return seed_raw(
            s,
            "u1",
            [raw_row("UBER *TRIP", out="15.00"), raw_row("TRANSFER", out="100.00"), raw_row("X")],
            status="in_flight",
        )


def test_apply_writes_deletes_and_statuses(db_url):
    ids = _seed_three(db_url)
    drafts = [_draft(ids[0]), _draft(ids[1]), _draft(ids[2])]
    plan = plan_reconciliation(
        drafts,
        [_item(ids[0], "Transport", "Uber"), _item(ids[1], "DELETE")],
        user_id="u1",
        processed_at=NOW,
    )

    with session_scope(database_url=db_url) as s:
        result = apply_plan(s, plan)

    assert (result.processed, result.deleted, result.errored) == (2, 1, 0)
    statuses = raw_statuses(db_url)
    assert ids[1] not in statuses
    assert statuses[ids[0]] == ("processed", None)
    assert statuses[ids[2]] == ("processed", None)

    rows = canonical_rows(db_url)
    assert set(rows) == {ids[0]}
    assert rows[ids[0]].category == "Transport"
    assert rows[ids[0]].amount == Decimal("-15.00")


def test_upsert_is_idempotent_and_respects_edited_rows(db_url):
    ids = _seed_three(db_url)
    drafts = [_draft(ids[0]), _draft(ids[2])]

    with session_scope(database_url=db_url) as s:
        apply_plan(
            s,
            plan_reconciliation(
                drafts,
                [_item(ids[0], "Transport"), _item(ids[2], "Food")],
                user_id="u1",
                processed_at=NOW,
            ),
        )

    with session_scope(database_url=db_url) as s:
        row = s.query(CanonicalTransaction).filter_by(bronze_id=ids[2]).one()
        row.category = "Hand Picked"
        row.is_edited = True

    with session_scope(database_url=db_url) as s:
        apply_plan(
            s,
            plan_reconciliation(
                drafts,
                [_item(ids[0], "Travel"), _item(ids[2], "Food")],
                user_id="u1",
                processed_at=NOW,
            ),
        )

    rows = canonical_rows(db_url)
    assert len(rows) == 2
    assert rows[ids[0]].category == "Travel"
    assert rows[ids[2]].category == "Hand Picked"


def test_failed_upsert_downgrades_processed_to_error(db_url, monkeypatch):
    ids = _seed_three(db_url)

    def _boom(session, rows):
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(persistence_mod, "upsert_canonical", _boom)
    plan = plan_reconciliation(
        [_draft(i) for i in ids],
        [_item(ids[0], "Transport"), _item(ids[1], "DELETE")],
        user_id="u1",
        processed_at=NOW,
    )

    with session_scope(database_url=db_url) as s:
        result = apply_plan(s, plan)

    assert (result.processed, result.deleted, result.errored) == (0, 1, 2)
    statuses = raw_statuses(db_url)
    assert ids[1] not in statuses
    assert statuses[ids[0]] == ("error", "Canonical write failed: disk full")
    assert statuses[ids[2]] == ("error", "Canonical write failed: disk full")
    assert canonical_rows(db_url) == {}


def test_failed_delete_marks_error(db_url, monkeypatch):
    ids = _seed_three(db_url)

    def _boom(session, rows):
        raise OperationalError("DELETE", {}, Exception("locked"))

    monkeypatch.setattr(persistence_mod, "delete_raw_records", _boom)
    plan = plan_reconciliation(
        [_draft(ids[1])], [_item(ids[1], "DELETE")], user_id="u1", processed_at=NOW
    )

    with session_scope(database_url=db_url) as s:
        result = apply_plan(s, plan)

    assert (result.deleted, result.errored) == (0, 1)
    assert raw_statuses(db_url)[ids[1]] == ("error", "Raw record deletion failed: locked")
