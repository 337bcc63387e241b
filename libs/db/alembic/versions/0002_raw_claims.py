# ruff: noqa: I001
"""Add claim columns and the in_flight status to raw transactions.

Cycles reserve pending rows with a conditional update (pending -> in_flight)
tagged by a per-cycle claim token before classification.

Revision ID: 0002_raw_claims
Revises: 0001_ledger_core
Create Date: 2026-02-03
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_raw_claims"
down_revision: str | None = "0001_ledger_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column("raw_transactions", sa.Column("claim_token", sa.String(36), nullable=True))
    op.add_column(
        "raw_transactions",
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_raw_tx_claim_token", "raw_transactions", ["claim_token"], unique=False)

    op.drop_constraint("ck_raw_tx_status", table_name="raw_transactions")
    op.create_check_constraint(
        "ck_raw_tx_status",
        "raw_transactions",
        condition=sa.text("status in ('pending','in_flight','processed','error')"),
    )


def downgrade() -> None:
    # Return in-flight rows to the backlog before narrowing the constraint
    op.execute(
        "UPDATE raw_transactions SET status = 'pending' WHERE status = 'in_flight'"
    )
    op.drop_constraint("ck_raw_tx_status", table_name="raw_transactions")
    op.create_check_constraint(
        "ck_raw_tx_status",
        "raw_transactions",
        condition=sa.text("status in ('pending','processed','error')"),
    )
    op.drop_index("ix_raw_tx_claim_token", table_name="raw_transactions")
    op.drop_column("raw_transactions", "claimed_at")
    op.drop_column("raw_transactions", "claim_token")
