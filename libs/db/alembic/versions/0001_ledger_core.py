# ruff: noqa: I001
"""Raw and canonical ledger stores plus classification context tables.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-01-12
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # raw_transactions (bronze)
    op.create_table(
        "raw_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("file_id", sa.String(36), nullable=False),
        sa.Column("file_name", sa.Text(), nullable=True),
        sa.Column("account", sa.Text(), nullable=True),
        sa.Column("raw_data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "status in ('pending','processed','error')",
            name="ck_raw_tx_status",
        ),
    )
    op.create_index(
        "ix_raw_tx_status_created", "raw_transactions", ["status", "created_at"], unique=False
    )
    op.create_index(
        "ix_raw_tx_user_status", "raw_transactions", ["user_id", "status"], unique=False
    )
    op.create_index("ix_raw_tx_file", "raw_transactions", ["file_id"], unique=False)

    # canonical_transactions (silver)
    op.create_table(
        "canonical_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("bronze_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("transaction_type", sa.Text(), nullable=False),
        sa.Column("account", sa.Text(), nullable=True),
        sa.Column(
            "processed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("is_edited", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.ForeignKeyConstraint(
            ["bronze_id"],
            ["raw_transactions.id"],
            name="fk_canonical_tx_bronze",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("bronze_id", name="uq_canonical_tx_bronze_id"),
        sa.CheckConstraint(
            "transaction_type in ('expenditure','income')",
            name="ck_canonical_tx_type",
        ),
    )
    op.create_index(
        "ix_canonical_transactions_user_id", "canonical_transactions", ["user_id"], unique=False
    )

    # user_rules
    op.create_table(
        "user_rules",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("conditions", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("actions", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("instruction", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "(instruction IS NULL AND conditions IS NOT NULL AND actions IS NOT NULL) OR "
            "(instruction IS NOT NULL AND conditions IS NULL AND actions IS NULL)",
            name="ck_user_rules_variant",
        ),
    )
    op.create_index("ix_user_rules_user_id", "user_rules", ["user_id"], unique=False)

    # user_categories
    op.create_table(
        "user_categories",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("user_id", "name", name="uq_user_categories_user_name"),
    )

    # llm_prompts
    op.create_table(
        "llm_prompts",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("version", sa.Integer(), nullable=False, unique=True),
        sa.Column("prompt_text", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    # At most one active prompt at the database level
    op.create_index(
        "uq_llm_prompts_single_active",
        "llm_prompts",
        ["is_active"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.bulk_insert(
        sa.table(
            "llm_prompts",
            sa.column("version", sa.Integer()),
            sa.column("prompt_text", sa.Text()),
            sa.column("is_active", sa.Boolean()),
        ),
        [
            {
                "version": 1,
                "prompt_text": (
                    "You categorize bank statement transactions for a single user. "
                    "Use only the user's categories and follow the user's rules."
                ),
                "is_active": True,
            }
        ],
    )


def downgrade() -> None:
    op.drop_index("uq_llm_prompts_single_active", table_name="llm_prompts")
    op.drop_table("llm_prompts")
    op.drop_table("user_categories")
    op.drop_index("ix_user_rules_user_id", table_name="user_rules")
    op.drop_table("user_rules")
    op.drop_index("ix_canonical_transactions_user_id", table_name="canonical_transactions")
    op.drop_table("canonical_transactions")
    op.drop_index("ix_raw_tx_file", table_name="raw_transactions")
    op.drop_index("ix_raw_tx_user_status", table_name="raw_transactions")
    op.drop_index("ix_raw_tx_status_created", table_name="raw_transactions")
    op.drop_table("raw_transactions")
