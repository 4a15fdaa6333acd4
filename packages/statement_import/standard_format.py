"""The application's own fixed CSV template.

Files exported by the app (or filled in from :func:`generate_csv_template`)
skip column inference entirely: the header is ``data,descricao,tipo,valor,
categoria,conta`` (card files omit ``conta``), the separator is a comma and
lines starting with ``#`` are comments.

A row with an amount but no date is an ERROR flagged with
``requires_date_confirmation``. Unlike statement imports, template imports can
then be confirmed with :func:`confirm_missing_dates`, which dates those rows
with the supplied day.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from .categories import (
    FixedCategory,
    category_code,
    category_from_label,
    infer_category,
    parse_category,
)
from .classifier import classify_rows, summarize
from .inference import analyze_csv, split_line
from .logging_setup import get_logger
from .models import ParsedExpense, ParsedRow, Polarity, RowStatus, SkipReason, SourceType
from .parsers import generate_dedup_hash, parse_amount, parse_date
from .row_filters import FALLBACK_DESCRIPTION

TEMPLATE_HEADER = "data,descricao,tipo,valor,categoria,conta"
TEMPLATE_HEADER_CREDIT_CARD = "data,descricao,tipo,valor,categoria"

_TEMPLATE_EXAMPLES: tuple[str, ...] = (
    "2026-01-16,Supermercado Pão de Açúcar,EXPENSE,350.50,food,Conta Corrente",
    "2026-01-17,Uber - corrida trabalho,EXPENSE,25.90,transport,Conta Corrente",
)
_TEMPLATE_EXAMPLES_CREDIT_CARD: tuple[str, ...] = (
    "2026-01-16,Supermercado Pão de Açúcar,EXPENSE,350.50,food",
    "2026-01-17,Uber - corrida trabalho,EXPENSE,25.90,transport",
)

_MIN_FIELDS: int = 4
_POLARITY_SAMPLE: int = 200
_MAX_DESCRIPTION_LEN: int = 255

_logger = get_logger("statement_import.standard_format")


def _content_lines(text: str) -> list[str]:
    if text.startswith("\ufeff"):
        text = text[1:]
    return [ln for ln in text.splitlines() if ln.strip() and not ln.startswith("#")]


def is_standard_format(text: str) -> bool:
    """Return True when the first non-comment line is the template header."""

    lines = _content_lines(text)
    if not lines:
        return False
    header = "".join(lines[0].lower().split())
    return (
        header == TEMPLATE_HEADER
        or "data,descricao,tipo,valor" in header
        or "data,descrição,tipo,valor" in header
    )


def _standard_polarity(rows: Sequence[list[str]]) -> Polarity:
    positives = negatives = 0
    for cells in rows[:_POLARITY_SAMPLE]:
        if len(cells) < _MIN_FIELDS:
            continue
        amount = parse_amount(cells[3])
        if not amount or not cells[1].strip():
            continue
        if amount > 0:
            positives += 1
        else:
            negatives += 1
    return Polarity(positives >= negatives, positives, negatives)


def _parse_standard_row(
    line_number: int,
    line: str,
    cells: list[str],
    source_type: SourceType,
    polarity: Polarity,
    *,
    date_override: date | None = None,
) -> ParsedRow:
    if len(cells) < _MIN_FIELDS:
        return ParsedRow(line_number, line, RowStatus.SKIPPED, reason="too few fields")

    raw_date, description, _tipo, raw_amount = (c.strip() for c in cells[:4])
    category_cell = cells[4].strip() if len(cells) > 4 else ""

    tx_date = date_override or parse_date(raw_date)
    if tx_date is None:
        if raw_date:
            return ParsedRow(
                line_number, line, RowStatus.ERROR, reason=f'invalid date: "{raw_date}"'
            )
        return ParsedRow(
            line_number,
            line,
            RowStatus.ERROR,
            reason="date not found in line",
            requires_date_confirmation=True,
        )

    amount = parse_amount(raw_amount)
    if not amount:
        return ParsedRow(
            line_number, line, RowStatus.ERROR, reason=f'invalid amount: "{raw_amount}"'
        )

    if source_type == SourceType.CREDIT_CARD:
        if (amount > 0) != polarity.purchases_are_positive:
            return ParsedRow(
                line_number, line, RowStatus.SKIPPED, reason=SkipReason.POSITIVE_VALUE_CARTAO
            )
    elif amount > 0:
        return ParsedRow(
            line_number, line, RowStatus.SKIPPED, reason=SkipReason.INCOME_POSITIVE_VALUE
        )

    final_description = description[:_MAX_DESCRIPTION_LEN] or FALLBACK_DESCRIPTION
    category = (
        category_from_label(category_cell)
        or parse_category(category_cell)
        or infer_category(description)
    )
    final_amount = -abs(amount)
    expense = ParsedExpense(
        description=final_description,
        amount=final_amount,
        category=category,
        transaction_date=tx_date,
        import_hash=generate_dedup_hash(tx_date, final_amount, final_description),
    )
    return ParsedRow(line_number, line, RowStatus.OK, parsed_expense=expense)


def parse_standard_csv(
    text: str, source_type: SourceType | str = SourceType.BANK_ACCOUNT
) -> list[ParsedRow]:
    """Parse a template file; returns ``[]`` when there is no data line.

    ``row_index`` counts non-comment lines (header = 1), matching what the
    import screen shows next to each row.
    """

    source = SourceType(source_type)
    lines = _content_lines(text)
    if len(lines) < 2:
        return []
    split = [split_line(ln, ",") for ln in lines[1:]]
    polarity = _standard_polarity(split)
    out = [
        _parse_standard_row(i + 2, line, cells, source, polarity)
        for i, (line, cells) in enumerate(zip(lines[1:], split, strict=True))
    ]
    counts = summarize(out)
    _logger.info(
        "standard:parsed source=%s ok=%d skipped=%d error=%d",
        source.value,
        counts[RowStatus.OK],
        counts[RowStatus.SKIPPED],
        counts[RowStatus.ERROR],
    )
    return out


def confirm_missing_dates(
    rows: Iterable[ParsedRow],
    today: date,
    source_type: SourceType | str = SourceType.BANK_ACCOUNT,
) -> list[ParsedRow]:
    """Re-parse template rows awaiting date confirmation using ``today``.

    Rows without ``requires_date_confirmation`` are returned unchanged.
    Polarity for card files is recomputed over the rows' raw lines.
    """

    source = SourceType(source_type)
    rows = list(rows)
    split = {r.row_index: split_line(r.raw_text, ",") for r in rows}
    polarity = _standard_polarity(list(split.values()))
    out: list[ParsedRow] = []
    confirmed = 0
    for r in rows:
        if not r.requires_date_confirmation:
            out.append(r)
            continue
        out.append(
            _parse_standard_row(
                r.row_index,
                r.raw_text,
                split[r.row_index],
                source,
                polarity,
                date_override=today,
            )
        )
        confirmed += 1
    _logger.info("standard:dates_confirmed count=%d date=%s", confirmed, today.isoformat())
    return out


def generate_csv_template(source_type: SourceType | str = SourceType.BANK_ACCOUNT) -> str:
    """Return the downloadable template with instructions as ``#`` comments."""

    source = SourceType(source_type)
    is_card = source == SourceType.CREDIT_CARD
    instructions = [
        "# MODELO CSV PADRÃO (" + ("Cartão de Crédito" if is_card else "Conta Corrente") + ")",
        "#",
        "# CAMPOS:",
        "#   data: formato YYYY-MM-DD (ex: 2026-01-15) ou DD/MM/YYYY",
        "#   descricao: texto descritivo da transação",
        "#   tipo: EXPENSE (apenas despesas são importadas)",
        "#   valor: valor da despesa (ex: 150.50)",
        "#   categoria: " + ", ".join(c.value for c in FixedCategory),
    ]
    if not is_card:
        instructions.append("#   conta: nome da conta (opcional)")
    instructions += ["#", "# REMOVA estas linhas de comentário antes de importar", "#"]
    header = TEMPLATE_HEADER_CREDIT_CARD if is_card else TEMPLATE_HEADER
    examples = _TEMPLATE_EXAMPLES_CREDIT_CARD if is_card else _TEMPLATE_EXAMPLES
    return "\n".join([*instructions, header, *examples])


@dataclass(frozen=True, slots=True)
class ConvertedTransaction:
    """One statement row rendered in template terms (``valor`` is a magnitude)."""

    status: RowStatus
    original_row: str
    data: str = ""
    descricao: str = ""
    tipo: str = "EXPENSE"
    valor: Decimal = Decimal("0")
    categoria: str = FixedCategory.OTHER.value
    conta: str = ""
    reason: str | None = None


@dataclass(slots=True)
class ConversionResult:
    converted: list[ConvertedTransaction] = field(default_factory=list)
    total: int = 0
    ok: int = 0
    skipped: int = 0
    errors: int = 0
    total_expense: Decimal = Decimal("0")


def _to_converted(row: ParsedRow) -> ConvertedTransaction:
    exp: ParsedExpense | None = row.parsed_expense
    if row.status == RowStatus.OK and exp is not None:
        return ConvertedTransaction(
            status=row.status,
            original_row=row.raw_text,
            data=exp.transaction_date.isoformat(),
            descricao=exp.description,
            valor=abs(exp.amount),
            categoria=category_code(exp.category),
        )
    return ConvertedTransaction(
        status=row.status, original_row=row.raw_text, reason=str(row.reason)
    )


def convert_bank_statement(
    text: str,
    source_type: SourceType | str = SourceType.BANK_ACCOUNT,
    default_category: str | None = None,
) -> ConversionResult:
    """Analyze and classify an arbitrary statement, returning template rows plus counts."""

    analysis = analyze_csv(text)
    rows = classify_rows(analysis, source_type, default_category=default_category)
    result = ConversionResult(converted=[_to_converted(r) for r in rows])
    for c in result.converted:
        result.total += 1
        if c.status == RowStatus.OK:
            result.ok += 1
            result.total_expense += c.valor
        elif c.status == RowStatus.SKIPPED:
            result.skipped += 1
        else:
            result.errors += 1
    return result


def generate_standard_csv(
    transactions: Iterable[ConvertedTransaction],
    source_type: SourceType | str = SourceType.BANK_ACCOUNT,
) -> str:
    """Render OK conversions in the template format (RFC 4180 quoting)."""

    is_card = SourceType(source_type) == SourceType.CREDIT_CARD
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    header = TEMPLATE_HEADER_CREDIT_CARD if is_card else TEMPLATE_HEADER
    writer.writerow(header.split(","))
    for t in transactions:
        if t.status != RowStatus.OK:
            continue
        row = [t.data, t.descricao, t.tipo, f"{t.valor:.2f}", t.categoria]
        if not is_card:
            row.append(t.conta)
        writer.writerow(row)
    return buf.getvalue().rstrip("\n")


__all__ = [
    "ConversionResult",
    "ConvertedTransaction",
    "TEMPLATE_HEADER",
    "TEMPLATE_HEADER_CREDIT_CARD",
    "confirm_missing_dates",
    "convert_bank_statement",
    "generate_csv_template",
    "generate_standard_csv",
    "is_standard_format",
    "parse_standard_csv",
]
