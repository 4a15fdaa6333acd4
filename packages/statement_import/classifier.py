"""Row classification: every data row becomes OK, SKIPPED or ERROR.

Per row, in order:

1. Non-transaction filter (statement banners, card summary lines, repeated
   headers, empty lines) → SKIPPED.
2. Expense/income decision (:func:`should_import_as_expense`). Only expenses
   are imported; income, payments and refunds are SKIPPED with a
   machine-checkable :class:`~statement_import.models.SkipReason`.
3. Date resolution. A missing date is an ERROR flagged for confirmation and an
   unreadable one is an ERROR; neither is ever defaulted to today.
4. Category: explicit category cell, then the caller's default, then keyword
   inference over the description.
5. Finalization: ``amount = -abs(amount)`` and the dedup hash over the final
   values.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from datetime import date
from decimal import Decimal
from typing import Any, NamedTuple

from .categories import Category, category_from_label, infer_category, parse_category
from .inference import infer_card_date_column
from .logging_setup import get_logger
from .models import (
    CSVAnalysis,
    ColumnMappings,
    ParsedExpense,
    ParsedRow,
    Polarity,
    RawRow,
    RowStatus,
    SemanticField,
    SkipReason,
    SourceType,
)
from .parsers import generate_dedup_hash, parse_amount, parse_date
from .polarity import resolve_polarity
from .row_filters import FALLBACK_DESCRIPTION, dual_amounts, non_transaction_reason, row_description

_MAX_DESCRIPTION_LEN: int = 255
_MAX_NOTES_LEN: int = 500
_SERIAL_MIN_EXCLUSIVE: int = 1
_SERIAL_MAX_EXCLUSIVE: int = 100000

MISSING_DATE_REASON = "date not found in statement"

_logger = get_logger("statement_import.classifier")


class ExpenseDecision(NamedTuple):
    """Outcome of :func:`should_import_as_expense`.

    ``amount`` is the positive magnitude to persist (as a negative value) when
    ``should_import`` is true; ``reason`` is set otherwise.
    """

    should_import: bool
    amount: Decimal | None = None
    reason: SkipReason | None = None


def should_import_as_expense(
    row: RawRow,
    mappings: ColumnMappings,
    source_type: SourceType,
    polarity: Polarity | None = None,
) -> ExpenseDecision:
    """Decide whether ``row`` is an expense to import.

    Dual credit/debit columns behave the same for both source types. With a
    single amount column, bank accounts import negatives only and card
    statements import the sign ``polarity`` names as purchases.
    """

    if mappings.has_dual_columns:
        credit, debit = dual_amounts(row, mappings)
        if debit:
            return ExpenseDecision(True, abs(debit))
        if credit:
            return ExpenseDecision(False, reason=SkipReason.INCOME_CREDIT)
        return ExpenseDecision(False, reason=SkipReason.NO_AMOUNT)

    idx = mappings.index_of(SemanticField.AMOUNT)
    if idx is None:
        return ExpenseDecision(False, reason=SkipReason.NO_AMOUNT)

    value = parse_amount(row.cell(idx))
    if not value:
        return ExpenseDecision(False, reason=SkipReason.ZERO_VALUE)

    if source_type == SourceType.CREDIT_CARD:
        purchases_positive = polarity is not None and polarity.purchases_are_positive
        if (value > 0) == purchases_positive:
            return ExpenseDecision(True, abs(value))
        return ExpenseDecision(False, reason=SkipReason.POSITIVE_VALUE_CARTAO)

    if value < 0:
        return ExpenseDecision(True, abs(value))
    return ExpenseDecision(False, reason=SkipReason.INCOME_POSITIVE_VALUE)


def _parse_card_date(raw: str) -> date | None:
    parsed = parse_date(raw)
    if parsed is not None:
        return parsed
    # Spreadsheet exports sometimes render the serial with a decimal comma.
    if "," in raw and "." not in raw:
        digits = re.sub(r"\D", "", raw)
        return parse_date(int(digits)) if digits else None
    numeric = re.sub(r"[^\d.]", "", raw.strip())
    if re.fullmatch(r"\d+(\.\d+)?", numeric):
        n = float(numeric)
        if _SERIAL_MIN_EXCLUSIVE < n < _SERIAL_MAX_EXCLUSIVE:
            return parse_date(n)
    return None


def _resolve_category(
    row: RawRow,
    mappings: ColumnMappings,
    description: str,
    default_category: Category | None,
) -> Category:
    idx = mappings.index_of(SemanticField.CATEGORY)
    if idx is not None:
        explicit = category_from_label(row.cell(idx))
        if explicit is not None:
            return explicit
    if default_category is not None:
        return default_category
    return infer_category(description)


def classify_row(
    row: RawRow,
    mappings: ColumnMappings,
    source_type: SourceType,
    polarity: Polarity | None = None,
    default_category: Category | None = None,
) -> ParsedRow:
    """Classify a single row; never raises on malformed cell content."""

    skip = non_transaction_reason(row, source_type)
    if skip is not None:
        return ParsedRow(row.line_number, row.line, RowStatus.SKIPPED, reason=skip)

    description = row_description(row, mappings) or FALLBACK_DESCRIPTION

    decision = should_import_as_expense(row, mappings, source_type, polarity)
    if not decision.should_import:
        return ParsedRow(row.line_number, row.line, RowStatus.SKIPPED, reason=decision.reason)
    amount = decision.amount

    date_idx = mappings.index_of(SemanticField.DATE)
    raw_date = row.cell(date_idx).strip().strip("\"'") if date_idx is not None else ""
    if not raw_date:
        return ParsedRow(
            row.line_number,
            row.line,
            RowStatus.ERROR,
            reason=MISSING_DATE_REASON,
            requires_date_confirmation=True,
        )
    if source_type == SourceType.CREDIT_CARD:
        tx_date = _parse_card_date(raw_date)
    else:
        tx_date = parse_date(raw_date)
    if tx_date is None:
        return ParsedRow(
            row.line_number, row.line, RowStatus.ERROR, reason=f'invalid date: "{raw_date}"'
        )

    category = _resolve_category(row, mappings, description, default_category)

    notes_idx = mappings.index_of(SemanticField.NOTES)
    notes = row.cell(notes_idx).strip()[:_MAX_NOTES_LEN] if notes_idx is not None else ""

    final_description = description[:_MAX_DESCRIPTION_LEN]
    final_amount = -abs(amount)
    expense = ParsedExpense(
        description=final_description,
        amount=final_amount,
        category=category,
        transaction_date=tx_date,
        import_hash=generate_dedup_hash(tx_date, final_amount, final_description),
        notes=notes or None,
    )
    return ParsedRow(row.line_number, row.line, RowStatus.OK, parsed_expense=expense)


def classify_rows(
    analysis: CSVAnalysis,
    source_type: SourceType | str,
    polarity: Polarity | None = None,
    default_category: Category | str | None = None,
) -> list[ParsedRow]:
    """Classify every data row of ``analysis``.

    For credit-card sources the card date inference runs first, and when
    ``polarity`` is not supplied it is resolved once over the file.
    """

    source = SourceType(source_type)
    default = parse_category(default_category) if default_category is not None else None
    if default_category is not None and default is None:
        raise ValueError(f"Unknown default category: {default_category!r}")

    if source == SourceType.CREDIT_CARD:
        analysis = infer_card_date_column(analysis)
        if polarity is None:
            polarity = resolve_polarity(analysis.rows, analysis.column_mappings)

    rows = [
        classify_row(r, analysis.column_mappings, source, polarity, default)
        for r in analysis.rows
    ]
    counts = summarize(rows)
    _logger.info(
        "classify:done source=%s ok=%d skipped=%d error=%d",
        source.value,
        counts[RowStatus.OK],
        counts[RowStatus.SKIPPED],
        counts[RowStatus.ERROR],
    )
    return rows


def summarize(rows: list[ParsedRow]) -> dict[RowStatus, int]:
    counts = {status: 0 for status in RowStatus}
    for r in rows:
        counts[r.status] += 1
    return counts


def iter_expenses(rows: list[ParsedRow]) -> Iterator[tuple[ParsedRow, ParsedExpense]]:
    for r in rows:
        if r.status == RowStatus.OK and r.parsed_expense is not None:
            yield r, r.parsed_expense


def row_to_dict(row: ParsedRow) -> dict[str, Any]:
    """JSON-friendly view of a classified row (CLI output)."""

    out: dict[str, Any] = {
        "row_index": row.row_index,
        "status": row.status.value,
        "reason": str(row.reason) if row.reason is not None else None,
        "raw": row.raw_text,
    }
    if row.requires_date_confirmation:
        out["requires_date_confirmation"] = True
    exp = row.parsed_expense
    if exp is not None:
        out["expense"] = {
            "description": exp.description,
            "amount": str(exp.amount),
            "category": str(exp.category),
            "transaction_date": exp.transaction_date.isoformat(),
            "notes": exp.notes,
            "import_hash": exp.import_hash,
        }
    return out


__all__ = [
    "ExpenseDecision",
    "MISSING_DATE_REASON",
    "classify_row",
    "classify_rows",
    "iter_expenses",
    "row_to_dict",
    "should_import_as_expense",
    "summarize",
]
