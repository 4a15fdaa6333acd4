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

# BIGINT identity on Postgres; SQLite only autoincrements INTEGER primary keys.
_PK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: accounts / credit_cards
# ---------------------------


class Account(Base):
    """Bank account owned by a household; read-only to the import core."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    household_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    institution: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class CreditCard(Base):
    __tablename__ = "credit_cards"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    household_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    institution: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Statement cycle boundaries (day of month).
    closing_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Core: transactions
# ---------------------------


class Transaction(Base):
    """Household expense. Imported rows always carry a negative ``amount``.

    There is no stored import hash: duplicates are detected by recomputing the
    hash over ``(transaction_date, amount, description)`` of persisted rows.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    household_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    member_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    # Fixed code ("food") or "custom:<id>"; never validated against a FK.
    category: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'other'"))
    status: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'paid'"))
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_recurring: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    account_id: Mapped[int | None] = mapped_column(
        _PK, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    credit_card_id: Mapped[int | None] = mapped_column(
        _PK, ForeignKey("credit_cards.id", ondelete="SET NULL"), nullable=True
    )
    installment_group_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    installment_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    attachments: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "account_id IS NULL OR credit_card_id IS NULL",
            name="ck_tx_single_link",
        ),
        CheckConstraint("status in ('paid','pending')", name="ck_tx_status"),
        Index("ix_tx_household_category", "household_id", "category"),
        Index("ix_tx_household_date", "household_id", "transaction_date"),
    )


# ---------------------------
# Categorization: rules and merchant cache
# ---------------------------


class CategorizationRuleRow(Base):
    """User or global (``household_id IS NULL``) categorization rule."""

    __tablename__ = "categorization_rules"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    household_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    pattern: Mapped[str] = mapped_column(Text, nullable=False)
    match_type: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'contains'")
    )
    category: Mapped[str] = mapped_column(String, nullable=False)
    flags: Mapped[str | None] = mapped_column(String(8), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    confidence: Mapped[Decimal] = mapped_column(
        Numeric(3, 2), nullable=False, server_default=text("0.9")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "match_type in ('equals','startsWith','contains','regex')",
            name="ck_rule_match_type",
        ),
        CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_rule_confidence",
        ),
        UniqueConstraint(
            "household_id", "category", "match_type", "pattern", name="uq_rule_identity"
        ),
    )


class MerchantCategoryCache(Base):
    """Household hint: merchant fingerprint → category (last writer wins)."""

    __tablename__ = "merchant_category_cache"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    household_id: Mapped[str] = mapped_column(String(36), nullable=False)
    fingerprint: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    confidence: Mapped[Decimal] = mapped_column(
        Numeric(3, 2), nullable=False, server_default=text("1.0")
    )
    source: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'manual'"))
    hits: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("household_id", "fingerprint", name="uq_merchant_cache_household_fp"),
        CheckConstraint("source in ('manual','rule','ai')", name="ck_merchant_cache_source"),
        CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_merchant_cache_confidence",
        ),
        Index("ix_merchant_cache_household_category", "household_id", "category"),
    )


__all__ = [
    "Account",
    "Base",
    "CategorizationRuleRow",
    "CreditCard",
    "MerchantCategoryCache",
    "Transaction",
]
