"""Column inference for statement files of unknown shape.

Given the raw text of a delimited export, :func:`analyze_csv` detects the
separator, whether the first line is a header, and which column carries each
semantic field (description, amount or credit/debit, date, category, ...).

Two passes:

1. Header names, matched against Portuguese/English vocabularies. A match
   here is authoritative.
2. Content shape, for fields still unmapped: every unused column is scored by
   how many sampled values look like the field, the best non-zero score wins
   and ties go to the leftmost column. Description, if still missing, is the
   remaining column with the longest average text.

Notes
-----
- Columns with at most one non-empty value (header included) are never
  mapped, nor are running-balance (``saldo``/``balance``) columns.
- Credit-card statements frequently lack a recognizable date header;
  :func:`infer_card_date_column` runs an expanded search before rows are
  classified.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from .categories import category_from_label
from .logging_setup import get_logger
from .models import (
    CSVAnalysis,
    ColumnMapping,
    ColumnMappings,
    RawRow,
    SemanticField,
    UnanalyzableFileError,
)
from .parsers import parse_date

# ---- Tunables (private) ------------------------------------------------------

_MAX_INPUT_CHARS: int = 5 * 1024 * 1024
_MIN_NON_EMPTY_LINES: int = 2
_SEPARATOR_SAMPLE_LINES: int = 10
_SEPARATORS: tuple[str, ...] = (",", ";", "\t")
_ANALYSIS_ROWS: int = 50
_PREVIEW_ROWS: int = 15
_CONTENT_SAMPLE_ROWS: int = 5
_DATE_SAMPLE_ROWS: int = 50
_MIN_AMOUNT_MATCHES: int = 3
_MIN_DATE_MATCHES: int = 3
# Excel serials below this (≈1954) are indistinguishable from small amounts.
_MIN_SHAPE_SERIAL: int = 20000
_MAX_SHAPE_SERIAL: int = 73415  # 2100-12-31

_logger = get_logger("statement_import.inference")

# ---- Vocabularies ------------------------------------------------------------

_HEADER_CELL_RE = re.compile(
    r"^(data|date|descri|description|valor|amount|entrada|sa[ií]da|hist[oó]rico)", re.I
)
_BALANCE_RE = re.compile(r"saldo|balance", re.I)
_ENTRADA_RE = re.compile(r"entrada", re.I)
_SAIDA_RE = re.compile(r"sa[ií]da", re.I)
_CREDITO_RE = re.compile(r"cr[eé]dito", re.I)
_DEBITO_RE = re.compile(r"d[eé]bito", re.I)
_DATE_HEADER_RE = re.compile(
    r"^(data|date|dia|dt|movimenta|vencimento|lan[cç]amento|compra|transa)", re.I
)
_CARD_DATE_HEADER_RE = re.compile(
    r"^(data|date|dia|dt|mov|movimenta|vencimento|lan[cç]amento|compra|transa)", re.I
)
_DESCRIPTION_HEADER_RE = re.compile(
    r"descri|nome|hist[oó]rico|lan[cç]amento|estabelecimento|merchant", re.I
)
_AMOUNT_HEADER_RE = re.compile(r"valor|amount|total|pre[cç]o|custo", re.I)
_TYPE_HEADER_RE = re.compile(
    r"natureza|^type$|debit|credit|d[eé]bito|cr[eé]dito|^tipo$|entrada|sa[ií]da", re.I
)
_CATEGORY_HEADER_RE = re.compile(r"categ", re.I)
_NOTES_HEADER_RE = re.compile(r"^(obs|observa[cç]|notas?$|notes?$|memo)", re.I)

_AMOUNT_SHAPE_RES: tuple[re.Pattern[str], ...] = (
    re.compile(r"^-?\d{1,3}([.,]\d{3})*([.,]\d{1,2})?$"),
    re.compile(r"^-?\d+([.,]\d{1,2})?$"),
)
_DATE_SHAPE_RE = re.compile(r"^\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}$|^\d{4}[/\-]\d{1,2}[/\-]\d{1,2}$")
_AMOUNT_NOISE_RE = re.compile(r"R\$|\s")

_PAYMENT_METHOD_VOCAB: frozenset[str] = frozenset(
    {
        "pix",
        "boleto",
        "dinheiro",
        "cash",
        "débito",
        "debito",
        "crédito",
        "credito",
        "cartão",
        "cartao",
        "cartão de crédito",
        "cartao de credito",
        "cartão de débito",
        "cartao de debito",
        "credit card",
        "debit card",
        "transferência",
        "transferencia",
        "ted",
        "doc",
    }
)


# ---------------------------------------------------------------------------
# Splitting
# ---------------------------------------------------------------------------


def _strip_cell(cell: str) -> str:
    s = cell.strip()
    if len(s) >= 1 and s[0] in "\"'":
        s = s[1:]
    if len(s) >= 1 and s[-1] in "\"'":
        s = s[:-1]
    return s.strip()


def split_line(line: str, separator: str) -> list[str]:
    """Split one line on ``separator`` honoring double-quoted cells."""

    try:
        parsed = next(csv.reader([line], delimiter=separator, skipinitialspace=True), [])
    except csv.Error:
        # Malformed quoting; fall back to a plain split of the raw line.
        parsed = line.split(separator)
    return [_strip_cell(c) for c in parsed]


def non_empty_lines(text: str) -> list[tuple[int, str]]:
    """Return ``(line_number, line)`` pairs for lines with content (1-based)."""

    if text.startswith("\ufeff"):
        text = text[1:]
    return [(n, line) for n, line in enumerate(text.splitlines(), start=1) if line.strip()]


def detect_separator(lines: Sequence[str]) -> str:
    """Pick the separator with the most occurrences across the first lines."""

    sample = [ln for ln in lines if ln.strip()][:_SEPARATOR_SAMPLE_LINES]
    counts = {sep: sum(ln.count(sep) for ln in sample) for sep in _SEPARATORS}
    return max(_SEPARATORS, key=lambda sep: counts[sep])


def detect_header(cells: Sequence[str]) -> bool:
    """Return True when any cell uses known header vocabulary."""

    return any(_HEADER_CELL_RE.match(c.strip().lower()) for c in cells)


# ---------------------------------------------------------------------------
# Shape predicates
# ---------------------------------------------------------------------------


def is_amount_like(value: str) -> bool:
    cleaned = _AMOUNT_NOISE_RE.sub("", value or "").strip()
    return bool(cleaned) and any(p.fullmatch(cleaned) for p in _AMOUNT_SHAPE_RES)


def is_date_like(value: Any) -> bool:
    s = str(value or "").strip()
    if not s:
        return False
    if _DATE_SHAPE_RE.fullmatch(s):
        return True
    if s.isdigit():
        return _MIN_SHAPE_SERIAL <= int(s) <= _MAX_SHAPE_SERIAL
    return False


def _is_category_like(value: str) -> bool:
    return category_from_label(value) is not None


def _is_payment_method_like(value: str) -> bool:
    return value.strip().lower() in _PAYMENT_METHOD_VOCAB


# ---------------------------------------------------------------------------
# Scoring (pure reduction)
# ---------------------------------------------------------------------------


def column_rank_key(candidate: tuple[int, int]) -> tuple[int, int]:
    """Ordering for ``(column_index, score)`` candidates.

    Higher score ranks first; on equal scores the leftmost column wins.
    """

    col, score = candidate
    return (score, -col)


def best_column(candidates: Iterable[tuple[int, int]]) -> int | None:
    """Return the column with the best non-zero score, or ``None``."""

    scored = [c for c in candidates if c[1] > 0]
    if not scored:
        return None
    return max(scored, key=column_rank_key)[0]


def _score_columns(
    rows: Sequence[RawRow],
    columns: Iterable[int],
    predicate: Callable[[str], bool],
) -> list[tuple[int, int]]:
    return [(col, sum(1 for r in rows if predicate(r.cell(col)))) for col in columns]


def _num_columns(rows: Iterable[RawRow]) -> int:
    return max((len(r.cells) for r in rows), default=0)


def _empty_columns(rows: Sequence[RawRow], num_cols: int) -> set[int]:
    empty: set[int] = set()
    for col in range(num_cols):
        non_empty = sum(1 for r in rows if r.cell(col).strip())
        if non_empty <= 1:
            empty.add(col)
    return empty


def _first_index(labels: Sequence[str], pattern: re.Pattern[str]) -> int:
    for i, label in enumerate(labels):
        if pattern.search(label):
            return i
    return -1


# ---------------------------------------------------------------------------
# Mapping passes
# ---------------------------------------------------------------------------


def _map_by_header(
    labels: Sequence[str],
    *,
    empty_cols: set[int],
) -> tuple[ColumnMappings, bool]:
    lower = [label.strip().lower() for label in labels]
    entrada_idx = _first_index(lower, _ENTRADA_RE)
    saida_idx = _first_index(lower, _SAIDA_RE)
    credito_idx = _first_index(lower, _CREDITO_RE)
    debito_idx = _first_index(lower, _DEBITO_RE)
    has_dual = (entrada_idx >= 0 and saida_idx >= 0) or (credito_idx >= 0 and debito_idx >= 0)

    mappings = ColumnMappings()

    def _assign(i: int, field: SemanticField, confidence: float) -> None:
        nonlocal mappings
        mappings = mappings.with_mapping(ColumnMapping(labels[i], i, field, confidence))

    for i, h in enumerate(lower):
        if i in empty_cols or _BALANCE_RE.search(h):
            continue
        if (has_dual and i == entrada_idx) or (credito_idx >= 0 and i == credito_idx):
            field = SemanticField.CREDITO if i == credito_idx else SemanticField.ENTRADA
            _assign(i, field, 0.95)
        elif (has_dual and i == saida_idx) or (debito_idx >= 0 and i == debito_idx):
            field = SemanticField.DEBITO if i == debito_idx else SemanticField.SAIDA
            _assign(i, field, 0.95)
        elif _DATE_HEADER_RE.search(h):
            _assign(i, SemanticField.DATE, 0.9)
        elif _DESCRIPTION_HEADER_RE.search(h):
            _assign(i, SemanticField.DESCRIPTION, 0.9)
        elif not has_dual and _AMOUNT_HEADER_RE.search(h):
            _assign(i, SemanticField.AMOUNT, 0.9)
        elif _TYPE_HEADER_RE.search(h) and mappings.get(SemanticField.TRANSACTION_TYPE) is None:
            _assign(i, SemanticField.TRANSACTION_TYPE, 0.85)
        elif _CATEGORY_HEADER_RE.search(h):
            _assign(i, SemanticField.CATEGORY, 0.8)
        elif _NOTES_HEADER_RE.search(h):
            _assign(i, SemanticField.NOTES, 0.8)
    return mappings, has_dual


def _map_by_content(
    mappings: ColumnMappings,
    labels: Sequence[str],
    data_rows: Sequence[RawRow],
    *,
    num_cols: int,
    empty_cols: set[int],
    has_dual: bool,
) -> ColumnMappings:
    content_rows = data_rows[:_CONTENT_SAMPLE_ROWS]
    date_rows = data_rows[:_DATE_SAMPLE_ROWS]

    def _unused() -> list[int]:
        used = mappings.mapped_indices
        return [c for c in range(num_cols) if c not in used and c not in empty_cols]

    def _assign(col: int | None, field: SemanticField, confidence: float) -> None:
        nonlocal mappings
        if col is not None:
            mappings = mappings.with_mapping(ColumnMapping(labels[col], col, field, confidence))

    if mappings.get(SemanticField.DATE) is None:
        candidates = []
        for col, score in _score_columns(date_rows, _unused(), is_date_like):
            non_empty = sum(1 for r in date_rows if r.cell(col).strip())
            if score >= max(_MIN_DATE_MATCHES, int(non_empty * 0.5)):
                candidates.append((col, score))
        _assign(best_column(candidates), SemanticField.DATE, 0.7)

    if not has_dual and mappings.get(SemanticField.AMOUNT) is None:
        candidates = [
            (col, score)
            for col, score in _score_columns(content_rows, _unused(), is_amount_like)
            if score >= _MIN_AMOUNT_MATCHES
        ]
        _assign(best_column(candidates), SemanticField.AMOUNT, 0.7)

    if mappings.get(SemanticField.CATEGORY) is None:
        scores = _score_columns(content_rows, _unused(), _is_category_like)
        _assign(best_column(scores), SemanticField.CATEGORY, 0.6)

    if mappings.get(SemanticField.PAYMENT_METHOD) is None:
        scores = _score_columns(content_rows, _unused(), _is_payment_method_like)
        _assign(best_column(scores), SemanticField.PAYMENT_METHOD, 0.6)

    if mappings.get(SemanticField.DESCRIPTION) is None:
        # Average over a fixed window so short samples do not inflate lengths.
        lengths = [
            (col, sum(len(r.cell(col)) for r in content_rows))
            for col in _unused()
        ]
        _assign(best_column(lengths), SemanticField.DESCRIPTION, 0.6)

    return mappings


def infer_column_mappings(
    header_labels: Sequence[str],
    rows: Sequence[RawRow],
    data_rows: Sequence[RawRow],
) -> tuple[ColumnMappings, bool]:
    """Infer field→column mappings; returns ``(mappings, has_entrada_saida)``.

    ``rows`` is every sampled line (header included) and is only used to
    exclude near-empty columns; ``data_rows`` feeds content scoring.
    """

    num_cols = max(_num_columns(rows), len(header_labels))
    labels = list(header_labels) + [f"Coluna {i + 1}" for i in range(len(header_labels), num_cols)]
    empty_cols = _empty_columns(rows, num_cols)
    mappings, has_dual = _map_by_header(labels, empty_cols=empty_cols)
    mappings = _map_by_content(
        mappings,
        labels,
        data_rows,
        num_cols=num_cols,
        empty_cols=empty_cols,
        has_dual=has_dual,
    )
    return mappings, has_dual


# ---------------------------------------------------------------------------
# Public entrypoints
# ---------------------------------------------------------------------------


def split_rows(text: str) -> tuple[str, list[RawRow]]:
    """Detect the separator and split every non-empty line into a :class:`RawRow`."""

    lines = non_empty_lines(text)
    separator = detect_separator([ln for _, ln in lines])
    rows = [RawRow(tuple(split_line(ln, separator)), ln, n) for n, ln in lines]
    return separator, rows


def _sample_rows(mappings: ColumnMappings, rows: Sequence[RawRow]) -> tuple[dict[str, Any], ...]:
    out: list[dict[str, Any]] = []
    for r in rows[:_PREVIEW_ROWS]:
        mapped: dict[str, Any] = {m.semantic_field.value: r.cell(m.column_index) for m in mappings}
        mapped["_raw"] = r.line
        mapped["_row_index"] = r.line_number
        out.append(mapped)
    return tuple(out)


def analyze_csv(text: str) -> CSVAnalysis:
    """Infer the structure of a statement export.

    Raises
    ------
    UnanalyzableFileError
        When the input exceeds 5MB, has fewer than two non-empty lines, or no
        amount (or credit/debit) column can be identified.
    """

    if len(text) > _MAX_INPUT_CHARS:
        raise UnanalyzableFileError("file too large (max 5MB); split it into smaller parts")

    separator, rows = split_rows(text)
    if len(rows) < _MIN_NON_EMPTY_LINES:
        raise UnanalyzableFileError(
            "statement must have at least 2 non-empty lines (header + data)"
        )

    has_header = detect_header(rows[0].cells)
    data_rows = rows[1:] if has_header else rows
    num_cols = _num_columns(rows)
    if has_header:
        header_labels = tuple(
            rows[0].cell(i) or f"Coluna {i + 1}" for i in range(num_cols)
        )
    else:
        header_labels = tuple(f"Coluna {i + 1}" for i in range(num_cols))

    sample = data_rows[:_ANALYSIS_ROWS]
    mappings, has_dual = infer_column_mappings(
        header_labels,
        ([rows[0]] if has_header else []) + sample,
        sample,
    )
    if not mappings.has_amount_source:
        raise UnanalyzableFileError(
            "could not identify an amount (or credit/debit) column in this file"
        )

    _logger.info(
        "analyze:done separator=%r has_header=%s rows=%d mappings=%s",
        separator,
        has_header,
        len(data_rows),
        ",".join(f"{m.semantic_field.value}@{m.column_index}" for m in mappings),
    )
    return CSVAnalysis(
        separator=separator,
        has_header=has_header,
        has_entrada_saida=has_dual,
        column_mappings=mappings,
        header_labels=header_labels,
        rows=tuple(data_rows),
        sample_rows=_sample_rows(mappings, data_rows),
    )


def infer_card_date_column(analysis: CSVAnalysis) -> CSVAnalysis:
    """Ensure a credit-card analysis carries a date mapping when one can be found.

    Tries the expanded header vocabulary first (confidence 0.85), then the
    first column with at least three parseable dates among the first 50 rows
    (confidence 0.7). Returns ``analysis`` unchanged when a date is already
    mapped or nothing qualifies.
    """

    mappings = analysis.column_mappings
    if mappings.get(SemanticField.DATE) is not None:
        return analysis

    used = mappings.mapped_indices
    num_cols = max(_num_columns(analysis.rows[:5]), len(analysis.header_labels))
    labels = list(analysis.header_labels) + [
        f"Coluna {i + 1}" for i in range(len(analysis.header_labels), num_cols)
    ]
    inferred: ColumnMapping | None = None

    if analysis.has_header:
        for col in range(num_cols):
            if col in used:
                continue
            if _CARD_DATE_HEADER_RE.match(labels[col].strip().lower()):
                inferred = ColumnMapping(labels[col], col, SemanticField.DATE, 0.85)
                break

    if inferred is None:
        sample = analysis.rows[:_DATE_SAMPLE_ROWS]
        for col in range(num_cols):
            if col in used:
                continue
            hits = sum(1 for r in sample if r.cell(col).strip() and parse_date(r.cell(col)))
            if hits >= _MIN_DATE_MATCHES:
                inferred = ColumnMapping(labels[col], col, SemanticField.DATE, 0.7)
                break

    if inferred is None:
        _logger.info("analyze:card_date_not_found columns=%d", num_cols)
        return analysis

    _logger.info(
        "analyze:card_date_inferred column=%r index=%d confidence=%.2f",
        inferred.source_column_label,
        inferred.column_index,
        inferred.confidence,
    )
    new_mappings = mappings.with_mapping(inferred)
    return CSVAnalysis(
        separator=analysis.separator,
        has_header=analysis.has_header,
        has_entrada_saida=analysis.has_entrada_saida,
        column_mappings=new_mappings,
        header_labels=analysis.header_labels,
        rows=analysis.rows,
        sample_rows=_sample_rows(new_mappings, analysis.rows),
        encoding=analysis.encoding,
        date_format=analysis.date_format,
        currency_format=analysis.currency_format,
    )


__all__ = [
    "analyze_csv",
    "best_column",
    "column_rank_key",
    "detect_header",
    "detect_separator",
    "infer_card_date_column",
    "infer_column_mappings",
    "is_amount_like",
    "is_date_like",
    "non_empty_lines",
    "split_line",
    "split_rows",
]
