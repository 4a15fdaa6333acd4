"""Public interface for the ``statement_import`` package.

Statement CSVs go through column inference, row classification and
categorization before being written as household expenses. This module only
re-exports the stable import surface; there is no runtime logic here.
"""

from .categories import ALLOWED_CATEGORIES, Category, CustomCategory, FixedCategory
from .categorization import categorize_local, resolve_category, should_auto_apply
from .categorize import categorize_transactions, classify_with_ai
from .classifier import classify_rows
from .importer import (
    DirectWriteStrategy,
    ImportOptions,
    RemoteWriteStrategy,
    import_expenses,
    prepare_import,
)
from .inference import analyze_csv, infer_card_date_column
from .institutions import infer_institution_from_filename, match_institution
from .models import (
    AUTO_APPLY_THRESHOLD,
    CSVAnalysis,
    CategorizationRule,
    CategorizeRunResult,
    ColumnMapping,
    ColumnMappings,
    ImportResult,
    ImportRowError,
    LocalCategorizeResult,
    MatchType,
    ParsedExpense,
    ParsedRow,
    Polarity,
    RowStatus,
    SemanticField,
    SourceType,
    UnanalyzableFileError,
)
from .normalizers import merchant_fingerprint, normalize_text
from .parsers import generate_dedup_hash, parse_amount, parse_date
from .polarity import resolve_polarity
from .standard_format import (
    confirm_missing_dates,
    convert_bank_statement,
    generate_csv_template,
    generate_standard_csv,
    parse_standard_csv,
)

__all__ = [
    # Pipeline
    "analyze_csv",
    "infer_card_date_column",
    "resolve_polarity",
    "classify_rows",
    "categorize_local",
    "categorize_transactions",
    "classify_with_ai",
    "resolve_category",
    "should_auto_apply",
    "import_expenses",
    "prepare_import",
    "DirectWriteStrategy",
    "RemoteWriteStrategy",
    "ImportOptions",
    # Helpers
    "normalize_text",
    "merchant_fingerprint",
    "parse_amount",
    "parse_date",
    "generate_dedup_hash",
    "infer_institution_from_filename",
    "match_institution",
    "parse_standard_csv",
    "confirm_missing_dates",
    "generate_csv_template",
    "generate_standard_csv",
    "convert_bank_statement",
    # Models / types
    "ALLOWED_CATEGORIES",
    "AUTO_APPLY_THRESHOLD",
    "Category",
    "CustomCategory",
    "FixedCategory",
    "CSVAnalysis",
    "CategorizationRule",
    "CategorizeRunResult",
    "ColumnMapping",
    "ColumnMappings",
    "ImportResult",
    "ImportRowError",
    "LocalCategorizeResult",
    "MatchType",
    "ParsedExpense",
    "ParsedRow",
    "Polarity",
    "RowStatus",
    "SemanticField",
    "SourceType",
    "UnanalyzableFileError",
]
