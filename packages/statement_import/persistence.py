# ruff: noqa: I001
"""Persistence integration for statement_import.

Functions here read and write the household tables owned by ``libs/db``
through a caller-provided SQLAlchemy session. Every query is scoped by
``household_id``; nothing here commits, the caller owns the transaction.

Scope:
- Sanitize insert payloads against the ``transactions`` column whitelist.
- Recompute dedup hashes for already-persisted transactions.
- Batch-insert imported expenses.
- Load uncategorized transactions and active categorization rules.
- Update the category of a single transaction.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, NamedTuple

from sqlalchemy import Table, func, insert, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from db.models.finance import CategorizationRuleRow, Transaction
from .categories import Category, FixedCategory, category_code, parse_category
from .logging_setup import get_logger
from .models import CategorizationRule, MatchType
from .parsers import generate_dedup_hash

_logger = get_logger("statement_import.persistence")

_UNCATEGORIZED_LIMIT: int = 200

VALID_TRANSACTION_FIELDS: frozenset[str] = frozenset(
    {
        "user_id",
        "household_id",
        "description",
        "amount",
        "category",
        "status",
        "transaction_date",
        "notes",
        "is_recurring",
        "account_id",
        "credit_card_id",
        "member_id",
        "due_date",
        "installment_group_id",
        "installment_number",
        "attachments",
        "created_at",
        "updated_at",
    }
)


def sanitize_transaction(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``payload`` restricted to real ``transactions`` columns.

    Parser-only keys (``payment_method``, ``type``, ``import_hash``) never
    reach the insert.
    """

    dropped = [k for k in payload if k not in VALID_TRANSACTION_FIELDS]
    if dropped:
        _logger.debug("persistence:sanitize dropped=%s", ",".join(sorted(dropped)))
    return {k: v for k, v in payload.items() if k in VALID_TRANSACTION_FIELDS}


def dialect_insert(session: Session, table: Any):
    """Dialect-specific ``INSERT`` supporting ``on_conflict_do_update``.

    Postgres in production; SQLite in local runs and tests.
    """

    target = table if isinstance(table, Table) else table.__table__
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(target)
    return pg_insert(target)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def load_existing_hashes(session: Session, household_id: str) -> set[str]:
    """Dedup hashes of every transaction already stored for the household."""

    rows = session.execute(
        select(Transaction.transaction_date, Transaction.amount, Transaction.description).where(
            Transaction.household_id == household_id
        )
    ).all()
    return {generate_dedup_hash(d, amt, desc) for d, amt, desc in rows}


def insert_transactions(session: Session, payloads: Sequence[Mapping[str, Any]]) -> int:
    """Insert sanitized payloads in one statement; returns the row count."""

    if not payloads:
        return 0
    session.execute(insert(Transaction), [sanitize_transaction(p) for p in payloads])
    return len(payloads)


class UncategorizedTransaction(NamedTuple):
    id: int
    description: str


def load_uncategorized(
    session: Session,
    household_id: str,
    transaction_ids: Iterable[int] | None = None,
    *,
    limit: int = _UNCATEGORIZED_LIMIT,
) -> list[UncategorizedTransaction]:
    """Household transactions still in ``other``, newest first.

    When ``transaction_ids`` is given the selection is further restricted to
    those ids (still scoped by household and ``other``).
    """

    stmt = (
        select(Transaction.id, Transaction.description)
        .where(
            Transaction.household_id == household_id,
            Transaction.category == FixedCategory.OTHER.value,
        )
        .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        .limit(limit)
    )
    if transaction_ids is not None:
        ids = list(transaction_ids)
        if not ids:
            return []
        stmt = stmt.where(Transaction.id.in_(ids))
    return [UncategorizedTransaction(int(i), d or "") for i, d in session.execute(stmt).all()]


def update_category(
    session: Session,
    *,
    household_id: str,
    transaction_id: int,
    category: Category,
) -> bool:
    """Set the category of one transaction; False when no row matched."""

    result = session.execute(
        update(Transaction)
        .where(Transaction.id == transaction_id, Transaction.household_id == household_id)
        .values(category=category_code(category), updated_at=func.now())
    )
    return bool(result.rowcount)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _to_rule(row: CategorizationRuleRow) -> CategorizationRule | None:
    try:
        match_type = MatchType(row.match_type)
    except ValueError:
        _logger.warning("persistence:rule_skipped id=%s match_type=%r", row.id, row.match_type)
        return None
    return CategorizationRule(
        pattern=row.pattern or "",
        match_type=match_type,
        category=parse_category(row.category),
        priority=int(row.priority or 0),
        confidence=float(row.confidence),
        flags=row.flags,
        id=str(row.id),
    )


def load_rules(session: Session, household_id: str) -> list[CategorizationRule]:
    """Active global and household rules, highest priority first."""

    rows = session.scalars(
        select(CategorizationRuleRow)
        .where(
            CategorizationRuleRow.is_active.is_(True),
            or_(
                CategorizationRuleRow.household_id.is_(None),
                CategorizationRuleRow.household_id == household_id,
            ),
        )
        .order_by(CategorizationRuleRow.priority.desc(), CategorizationRuleRow.id)
    ).all()
    return [r for r in (_to_rule(row) for row in rows) if r is not None]


__all__ = [
    "UncategorizedTransaction",
    "VALID_TRANSACTION_FIELDS",
    "dialect_insert",
    "insert_transactions",
    "load_existing_hashes",
    "load_rules",
    "load_uncategorized",
    "sanitize_transaction",
    "update_category",
]
