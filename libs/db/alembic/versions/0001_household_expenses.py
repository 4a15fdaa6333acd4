# ruff: noqa: I001
"""Household expense tables: accounts, cards, transactions, rules, merchant cache.

Revision ID: 0001_household_expenses
Revises: None
Create Date: 2026-01-12
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_household_expenses"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    # accounts / credit_cards are owned by the household settings; imports only link to them
    op.create_table(
        "accounts",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("household_id", sa.String(36), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("institution", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_accounts_household_id", "accounts", ["household_id"])

    op.create_table(
        "credit_cards",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("household_id", sa.String(36), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("institution", sa.Text(), nullable=True),
        sa.Column("closing_day", sa.Integer(), nullable=True),
        sa.Column("due_day", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_credit_cards_household_id", "credit_cards", ["household_id"])

    # transactions
    op.create_table(
        "transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("household_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("member_id", sa.String(36), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("category", sa.String(), nullable=False, server_default=sa.text("'other'")),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'paid'")),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "account_id",
            sa.BigInteger(),
            sa.ForeignKey("accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "credit_card_id",
            sa.BigInteger(),
            sa.ForeignKey("credit_cards.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("installment_group_id", sa.String(36), nullable=True),
        sa.Column("installment_number", sa.Integer(), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "account_id IS NULL OR credit_card_id IS NULL",
            name="ck_tx_single_link",
        ),
        sa.CheckConstraint("status in ('paid','pending')", name="ck_tx_status"),
    )
    op.create_index("ix_tx_household_category", "transactions", ["household_id", "category"])
    op.create_index("ix_tx_household_date", "transactions", ["household_id", "transaction_date"])

    # categorization_rules (household_id NULL = global rule)
    op.create_table(
        "categorization_rules",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("household_id", sa.String(36), nullable=True),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("pattern", sa.Text(), nullable=False),
        sa.Column("match_type", sa.String(), nullable=False, server_default=sa.text("'contains'")),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("flags", sa.String(8), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("confidence", sa.Numeric(3, 2), nullable=False, server_default=sa.text("0.9")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint(
            "match_type in ('equals','startsWith','contains','regex')",
            name="ck_rule_match_type",
        ),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_rule_confidence",
        ),
        sa.UniqueConstraint(
            "household_id", "category", "match_type", "pattern", name="uq_rule_identity"
        ),
    )

    # merchant_category_cache
    op.create_table(
        "merchant_category_cache",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("household_id", sa.String(36), nullable=False),
        sa.Column("fingerprint", sa.Text(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("confidence", sa.Numeric(3, 2), nullable=False, server_default=sa.text("1.0")),
        sa.Column("source", sa.String(), nullable=False, server_default=sa.text("'manual'")),
        sa.Column("hits", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "last_used_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        *_timestamps(),
        sa.UniqueConstraint("household_id", "fingerprint", name="uq_merchant_cache_household_fp"),
        sa.CheckConstraint(
            "source in ('manual','rule','ai')",
            name="ck_merchant_cache_source",
        ),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_merchant_cache_confidence",
        ),
    )
    op.create_index(
        "ix_merchant_cache_household_category",
        "merchant_category_cache",
        ["household_id", "category"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_merchant_cache_household_category", table_name="merchant_category_cache"
    )
    op.drop_table("merchant_category_cache")
    op.drop_table("categorization_rules")
    op.drop_index("ix_tx_household_date", table_name="transactions")
    op.drop_index("ix_tx_household_category", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_credit_cards_household_id", table_name="credit_cards")
    op.drop_table("credit_cards")
    op.drop_index("ix_accounts_household_id", table_name="accounts")
    op.drop_table("accounts")
