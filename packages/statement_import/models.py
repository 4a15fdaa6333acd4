"""Data models for ``statement_import``.

Pipeline records (rows, mappings, parsed expenses) are frozen dataclasses:
they are produced once by one stage and read by the next. Payloads that cross
a JSON boundary (AI responses, the remote import endpoint) are pydantic models
so their shape is validated on the way in.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from .categories import ALLOWED_CATEGORIES, Category

AUTO_APPLY_THRESHOLD: float = 0.85


class UnanalyzableFileError(ValueError):
    """The input cannot be analyzed at all (size, line count, no amount column)."""


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SourceType(StrEnum):
    BANK_ACCOUNT = "bank_account"
    CREDIT_CARD = "credit_card"


class SemanticField(StrEnum):
    DESCRIPTION = "description"
    AMOUNT = "amount"
    ENTRADA = "entrada"
    SAIDA = "saida"
    CREDITO = "credito"
    DEBITO = "debito"
    DATE = "date"
    CATEGORY = "category"
    NOTES = "notes"
    TRANSACTION_TYPE = "transaction_type"
    PAYMENT_METHOD = "payment_method"
    IGNORE = "ignore"


# Inflow/outflow columns of dual-column statements.
INFLOW_FIELDS: tuple[SemanticField, ...] = (SemanticField.ENTRADA, SemanticField.CREDITO)
OUTFLOW_FIELDS: tuple[SemanticField, ...] = (SemanticField.SAIDA, SemanticField.DEBITO)


class RowStatus(StrEnum):
    OK = "OK"
    SKIPPED = "SKIPPED"
    ERROR = "ERROR"


class SkipReason(StrEnum):
    """Machine-checkable reasons emitted by the expense/income decision."""

    INCOME_CREDIT = "income_credit"
    NO_AMOUNT = "no_amount"
    INCOME_POSITIVE_VALUE = "income_positive_value"
    ZERO_VALUE = "zero_value"
    POSITIVE_VALUE_CARTAO = "positive_value_cartao"


class MatchType(StrEnum):
    EQUALS = "equals"
    STARTS_WITH = "startsWith"
    CONTAINS = "contains"
    REGEX = "regex"


# ---------------------------------------------------------------------------
# Raw input and column mappings
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawRow:
    """One split line of the input; ``line_number`` is 1-based."""

    cells: tuple[str, ...]
    line: str
    line_number: int

    def cell(self, index: int | None) -> str:
        if index is None or index < 0 or index >= len(self.cells):
            return ""
        return self.cells[index]


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    source_column_label: str
    column_index: int
    semantic_field: SemanticField
    confidence: float


@dataclass(frozen=True, slots=True)
class ColumnMappings:
    """Ordered set of mappings with at most one column per semantic field.

    :meth:`with_mapping` returns a new instance; assigning a field evicts the
    column previously mapped to it, and a column carries a single field.
    """

    items: tuple[ColumnMapping, ...] = ()

    def with_mapping(self, mapping: ColumnMapping) -> ColumnMappings:
        kept = tuple(
            m
            for m in self.items
            if m.semantic_field != mapping.semantic_field
            and m.column_index != mapping.column_index
        )
        if mapping.semantic_field == SemanticField.IGNORE:
            return ColumnMappings(kept)
        return ColumnMappings((*kept, mapping))

    def get(self, semantic_field: SemanticField) -> ColumnMapping | None:
        for m in self.items:
            if m.semantic_field == semantic_field:
                return m
        return None

    def index_of(self, semantic_field: SemanticField) -> int | None:
        m = self.get(semantic_field)
        return m.column_index if m is not None else None

    def first_of(self, fields: tuple[SemanticField, ...]) -> ColumnMapping | None:
        for f in fields:
            m = self.get(f)
            if m is not None:
                return m
        return None

    @property
    def mapped_indices(self) -> frozenset[int]:
        return frozenset(m.column_index for m in self.items)

    @property
    def has_dual_columns(self) -> bool:
        return self.first_of(INFLOW_FIELDS) is not None or self.first_of(OUTFLOW_FIELDS) is not None

    @property
    def has_amount_source(self) -> bool:
        return self.get(SemanticField.AMOUNT) is not None or self.has_dual_columns

    def __iter__(self) -> Iterator[ColumnMapping]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True, slots=True)
class CSVAnalysis:
    """Structure inferred from a statement file.

    ``rows`` holds the data rows only (the header line, when detected, is
    excluded). ``sample_rows`` is a UI preview: up to 15 rows keyed by
    semantic field plus ``_raw`` and ``_row_index``.
    """

    separator: str
    has_header: bool
    has_entrada_saida: bool
    column_mappings: ColumnMappings
    header_labels: tuple[str, ...]
    rows: tuple[RawRow, ...]
    sample_rows: tuple[dict[str, Any], ...] = ()
    encoding: str = "UTF-8"
    date_format: str = "dd/MM/yyyy"
    currency_format: str = "BR"


@dataclass(frozen=True, slots=True)
class Polarity:
    """Sign convention of a credit-card file, decided once per file."""

    purchases_are_positive: bool
    positives: int = 0
    negatives: int = 0


# ---------------------------------------------------------------------------
# Classified rows
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedExpense:
    description: str
    amount: Decimal
    category: Category
    transaction_date: date
    import_hash: str
    notes: str | None = None

    def __post_init__(self) -> None:
        if self.amount >= 0:
            raise ValueError(f"ParsedExpense.amount must be negative, got {self.amount}")


@dataclass(frozen=True, slots=True)
class ParsedRow:
    """Classifier output for one input row.

    OK rows carry ``parsed_expense`` and no reason; SKIPPED and ERROR rows
    carry a reason and no expense.
    """

    row_index: int
    raw_text: str
    status: RowStatus
    reason: str | None = None
    parsed_expense: ParsedExpense | None = None
    requires_date_confirmation: bool = False

    def __post_init__(self) -> None:
        if self.status == RowStatus.OK:
            if self.parsed_expense is None or self.reason is not None:
                raise ValueError("OK rows require parsed_expense and no reason")
        elif self.parsed_expense is not None or not self.reason:
            raise ValueError(f"{self.status} rows require a reason and no parsed_expense")


# ---------------------------------------------------------------------------
# Categorization
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CategorizationRule:
    """User-defined rule; owned by the household settings, read-only here.

    ``category`` is ``None`` when the stored value is empty or unusable; such
    rules never match.
    """

    pattern: str
    match_type: MatchType
    category: Category | None
    priority: int
    confidence: float
    flags: str | None = None
    id: str | None = None


@dataclass(frozen=True, slots=True)
class CategoryMatch:
    category: Category
    confidence: float
    source: str  # cache | rule | builtin | ai
    rule_id: str | None = None
    match_length: int = 0


@dataclass(frozen=True, slots=True)
class CategorySuggestion:
    transaction_id: int
    description: str
    category: Category
    confidence: float
    source: str


@dataclass(slots=True)
class LocalCategorizeResult:
    applied: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class CategorizeRunResult:
    applied_by_cache: int = 0
    applied_by_rules: int = 0
    sent_to_ai: int = 0
    applied_by_ai: int = 0
    remaining_uncategorized: int = 0
    errors: list[str] = field(default_factory=list)
    suggestions: list[CategorySuggestion] = field(default_factory=list)


class AiCategoryDecision(BaseModel):
    """One item of the AI classification response.

    Validation context keys:
      - ``allowed_set``: set of allowed category codes. Values outside the set
        are rejected.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str
    category: str
    confidence: float

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("category")
    @classmethod
    def _category_allowed(cls, v: str, info: ValidationInfo) -> str:
        ctx = info.context or {}
        allowed = ctx.get("allowed_set") or set(ALLOWED_CATEGORIES)
        cat = v.lower()
        if cat not in allowed:
            raise ValueError(f"category outside the allowed vocabulary: {v!r}")
        return cat

    @field_validator("confidence")
    @classmethod
    def _confidence_in_unit_interval(cls, v: float) -> float:
        fv = float(v)
        if 0.0 <= fv <= 1.0:
            return fv
        raise ValueError("confidence must be within [0,1]")


# ---------------------------------------------------------------------------
# Import results
# ---------------------------------------------------------------------------


class ImportRowError(NamedTuple):
    row: int
    reason: str


class ImportResult(BaseModel):
    """Outcome of one import operation; returned to the caller, never stored.

    Field aliases are camelCase so the same model validates the remote import
    endpoint's JSON response.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    imported: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: list[ImportRowError] = []
    ignored_income: int | None = None
    source_type: SourceType | None = None
    linked_account_id: int | None = None
    linked_card_id: int | None = None

    @field_validator("errors", mode="before")
    @classmethod
    def _errors_from_json(cls, v: Any) -> Any:
        if isinstance(v, list):
            out = []
            for item in v:
                if isinstance(item, dict):
                    out.append(ImportRowError(int(item.get("row", 0)), str(item.get("reason", ""))))
                else:
                    out.append(item)
            return out
        return v


__all__ = [
    "AUTO_APPLY_THRESHOLD",
    "AiCategoryDecision",
    "CSVAnalysis",
    "CategorizationRule",
    "CategorizeRunResult",
    "CategoryMatch",
    "CategorySuggestion",
    "ColumnMapping",
    "ColumnMappings",
    "INFLOW_FIELDS",
    "ImportResult",
    "ImportRowError",
    "LocalCategorizeResult",
    "MatchType",
    "OUTFLOW_FIELDS",
    "ParsedExpense",
    "ParsedRow",
    "Polarity",
    "RawRow",
    "RowStatus",
    "SemanticField",
    "SkipReason",
    "SourceType",
    "UnanalyzableFileError",
]
