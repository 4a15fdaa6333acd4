"""Per-row helpers shared by the polarity resolver and the row classifier.

The non-transaction filter recognizes the informational lines bank and card
exports interleave with transactions (agency/account banners, period and
balance lines, repeated headers, invoice totals).
"""

from __future__ import annotations

import re
from decimal import Decimal

from .inference import is_amount_like, is_date_like
from .models import (
    ColumnMappings,
    RawRow,
    SemanticField,
    SourceType,
)
from .parsers import parse_amount

FALLBACK_DESCRIPTION = "Transação importada"

NON_TRANSACTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.I)
    for p in (
        r"^ag[êe]ncia\s*[:/-]",
        r"^conta\s*[:/-]",
        r"^extrato\s+(gerado|de|para)",
        r"^per[íi]odo\s*[:/-]",
        r"^saldo\s+(anterior|inicial|final)",
        r"^data\s+de\s+(emiss[ãa]o|gera[çc][ãa]o)",
        r"^cliente\s*[:/-]",
        r"^cpf\s*[:/-]",
        r"^cnpj\s*[:/-]",
        r"^total\s+(do\s+per[íi]odo|geral)",
        r"^(resumo|totais|consolidado)",
    )
)

CARD_SUMMARY_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.I)
    for p in (
        r"^total",
        r"^pagamento",
        r"^saldo",
        r"^encargos",
        r"^juros",
        r"^anuidade",
        r"^resumo",
        r"^parcelamento",
        r"^iof",
        r"^multa",
        r"^desconto",
        r"^ajuste",
        r"^estorno",
        r"^fatura\s+(anterior|atual|fechada)",
        r"^limite",
        r"^dispon[ií]vel",
    )
)

HEADER_CELL_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.I)
    for p in (
        r"^data$",
        r"^descri[çc][ãa]o$",
        r"^valor$",
        r"^entrada\s*\(?\s*r?\$?\s*\)?$",
        r"^sa[íi]da\s*\(?\s*r?\$?\s*\)?$",
        r"^saldo\s*\(?\s*r?\$?\s*\)?$",
        r"^hist[óo]rico$",
        r"^lan[çc]amento$",
    )
)

_NUMERIC_NOISE_RE = re.compile(r"R\$|[\s.,]")


def _is_card_summary_line(row: RawRow) -> bool:
    joined = " ".join(row.cells).strip().lower()
    raw = row.line.lower()
    if any(p.search(joined) or p.search(raw) for p in CARD_SUMMARY_PATTERNS):
        return True
    non_empty = [c for c in row.cells if c.strip()]
    numeric = [c for c in non_empty if _NUMERIC_NOISE_RE.sub("", c).isdigit()]
    # Every cell a bare number: invoice totals row.
    return len(numeric) >= 2 and len(numeric) == len(non_empty)


def non_transaction_reason(row: RawRow, source_type: SourceType) -> str | None:
    """Return why ``row`` is not a transaction, or ``None`` when it may be one."""

    non_empty = [c for c in row.cells if c.strip()]
    if not non_empty:
        return "empty line"
    if source_type == SourceType.CREDIT_CARD and _is_card_summary_line(row):
        return "card statement summary/total line"
    joined = " ".join(row.cells).strip()
    if any(p.search(joined) or p.search(row.line) for p in NON_TRANSACTION_PATTERNS):
        return "statement information line"
    header_hits = sum(
        1 for c in row.cells if any(p.search(c.strip()) for p in HEADER_CELL_PATTERNS)
    )
    if header_hits >= 2 and header_hits >= len(non_empty) * 0.5:
        return "repeated header line"
    if len(non_empty) == 1 and not re.search(r"\d", non_empty[0]):
        return "line without transaction data"
    return None


def is_non_transaction_line(row: RawRow, source_type: SourceType) -> bool:
    return non_transaction_reason(row, source_type) is not None


def row_description(row: RawRow, mappings: ColumnMappings) -> str:
    """Mapped description cell, else the first textual cell; ``""`` when none."""

    idx = mappings.index_of(SemanticField.DESCRIPTION)
    description = row.cell(idx).strip() if idx is not None else ""
    if description:
        return description
    for cell in row.cells:
        c = cell.strip()
        if len(c) > 2 and not is_amount_like(c) and not is_date_like(c):
            return c
    return ""


def dual_amounts(row: RawRow, mappings: ColumnMappings) -> tuple[Decimal | None, Decimal | None]:
    """Return ``(inflow, outflow)`` parsed from the credit/debit columns."""

    inflow = mappings.first_of((SemanticField.CREDITO, SemanticField.ENTRADA))
    outflow = mappings.first_of((SemanticField.DEBITO, SemanticField.SAIDA))
    credit = parse_amount(row.cell(inflow.column_index)) if inflow else None
    debit = parse_amount(row.cell(outflow.column_index)) if outflow else None
    return credit, debit


def signed_amount(row: RawRow, mappings: ColumnMappings) -> Decimal | None:
    """Signed row amount: debits negative and credits positive in dual mode."""

    if mappings.has_dual_columns:
        credit, debit = dual_amounts(row, mappings)
        if debit:
            return -abs(debit)
        if credit:
            return abs(credit)
        return None
    idx = mappings.index_of(SemanticField.AMOUNT)
    if idx is None:
        return None
    return parse_amount(row.cell(idx))


__all__ = [
    "CARD_SUMMARY_PATTERNS",
    "FALLBACK_DESCRIPTION",
    "HEADER_CELL_PATTERNS",
    "NON_TRANSACTION_PATTERNS",
    "dual_amounts",
    "is_non_transaction_line",
    "non_transaction_reason",
    "row_description",
    "signed_amount",
]
