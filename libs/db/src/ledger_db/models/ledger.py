from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Raw store: raw_transactions
# ---------------------------


class RawTransaction(Base):
    """One ingested statement line awaiting (or done with) classification."""

    __tablename__ = "raw_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    file_id: Mapped[str] = mapped_column(String(36), nullable=False)
    file_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    account: Mapped[str | None] = mapped_column(String, nullable=True)
    # Field bag exactly as uploaded: Date, Description, MoneyOut, MoneyIn, Balance.
    raw_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'pending'")
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Set together by the cycle claim (pending -> in_flight); cleared on release.
    claim_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "status in ('pending','in_flight','processed','error')",
            name="ck_raw_tx_status",
        ),
        Index("ix_raw_tx_status_created", "status", "created_at"),
        Index("ix_raw_tx_user_status", "user_id", "status"),
        Index("ix_raw_tx_file", "file_id"),
        Index("ix_raw_tx_claim_token", "claim_token"),
    )


# ---------------------------------
# Canonical store: canonical_transactions
# ---------------------------------


class CanonicalTransaction(Base):
    __tablename__ = "canonical_transactions"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    # At most one canonical row per raw record; removing the raw record removes it too.
    bronze_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("raw_transactions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String, nullable=False)
    account: Mapped[str | None] = mapped_column(String, nullable=True)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    # Set by human edits; pipeline upserts leave such rows untouched.
    is_edited: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )

    __table_args__ = (
        CheckConstraint(
            "transaction_type in ('expenditure','income')",
            name="ck_canonical_tx_type",
        ),
    )


# ---------------------------
# Classification context
# ---------------------------


class UserRule(Base):
    """A user-authored rule: structured (conditions/actions) or free-text."""

    __tablename__ = "user_rules"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    # Structured variant: {"field", "operator", "value"} -> {"category", "description_override"}
    conditions: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    actions: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    # Free-text variant
    instruction: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "(instruction IS NULL AND conditions IS NOT NULL AND actions IS NOT NULL) OR "
            "(instruction IS NOT NULL AND conditions IS NULL AND actions IS NULL)",
            name="ck_user_rules_variant",
        ),
    )


class UserCategory(Base):
    __tablename__ = "user_categories"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_user_categories_user_name"),)


class LlmPrompt(Base):
    """Versioned classification prompt; exactly one row is expected to be active."""

    __tablename__ = "llm_prompts"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    prompt_text: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    # At most one active prompt. Partial indexes are Postgres-only here; other
    # backends rely on the resolver rejecting more than one active row.
    __table_args__ = (
        Index(
            "uq_llm_prompts_single_active",
            "is_active",
            unique=True,
            postgresql_where=text("is_active"),
        ).ddl_if(dialect="postgresql"),
    )


__all__ = [
    "Base",
    "CanonicalTransaction",
    "LlmPrompt",
    "RawTransaction",
    "UserCategory",
    "UserRule",
]
