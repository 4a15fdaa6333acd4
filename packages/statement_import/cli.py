# ruff: noqa: I001
"""CLI for the ``statement_import`` package.

This module exposes callable command handlers (``cmd_analyze``,
``cmd_import`` ...) returning process exit codes, and a Typer-based console
interface around them. Environment variables (``DATABASE_URL``,
``OPENAI_API_KEY``, ``STATEMENT_IMPORT_*``) are loaded from a local ``.env``
using ``python-dotenv`` before delegating to command logic.
"""

from __future__ import annotations

import dataclasses
import json
import sys
from datetime import date
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .logging_setup import configure_logging
from .models import ParsedRow, SourceType, UnanalyzableFileError


# ---- Small module-level helpers used by CLI commands -------------------------


def _read_text(path: Path) -> str:
    """Read a statement file, tolerating a UTF-8 BOM and Latin-1 exports."""

    data = path.read_bytes()
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def _err(msg: str) -> int:
    print(f"Error: {msg}", file=sys.stderr)
    return 1


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _classify_file(
    text: str,
    source_type: SourceType,
    default_category: str | None,
    confirm_date: date | None = None,
) -> list[ParsedRow]:
    """Template files use the fixed parser; anything else goes through inference."""

    from .classifier import classify_rows
    from .inference import analyze_csv
    from .standard_format import confirm_missing_dates, is_standard_format, parse_standard_csv

    if is_standard_format(text):
        rows = parse_standard_csv(text, source_type)
        if confirm_date is not None:
            rows = confirm_missing_dates(rows, confirm_date, source_type)
        return rows
    analysis = analyze_csv(text)
    return classify_rows(analysis, source_type, default_category=default_category)


def _auto_link(
    session: Any,
    *,
    household_id: str,
    filename: str,
    source_type: SourceType,
) -> tuple[int | None, int | None]:
    """Pick the account/card suggested by the file name when exactly one matches."""

    from sqlalchemy import select

    from db.models.finance import Account, CreditCard
    from .institutions import infer_institution_from_filename, match_institution
    from .logging_setup import get_logger

    inferred = infer_institution_from_filename(filename)
    if inferred is None:
        return None, None
    # The caller's source type wins over the keyword guess.
    kind = "card" if source_type == SourceType.CREDIT_CARD else "account"
    inferred = dataclasses.replace(inferred, kind=kind)
    accounts = session.scalars(
        select(Account).where(Account.household_id == household_id, Account.is_active.is_(True))
    ).all()
    cards = session.scalars(
        select(CreditCard).where(
            CreditCard.household_id == household_id, CreditCard.is_active.is_(True)
        )
    ).all()
    match = match_institution(inferred, accounts, cards)
    get_logger("statement_import.cli").info(
        "import:auto_link inferred=%s kind=%s confidence=%s",
        inferred.name,
        inferred.kind,
        match.confidence,
    )
    if match.confidence != "high":
        return None, None
    return match.account_id, match.card_id


# ---- Command handlers --------------------------------------------------------


def cmd_analyze(path: Path) -> int:
    """Print the inferred structure of a statement file as JSON."""

    from .inference import analyze_csv

    try:
        analysis = analyze_csv(_read_text(path))
    except OSError as e:
        return _err(f"cannot read '{path}': {e}")
    except UnanalyzableFileError as e:
        return _err(str(e))

    _print_json(
        {
            "separator": analysis.separator,
            "has_header": analysis.has_header,
            "has_entrada_saida": analysis.has_entrada_saida,
            "rows": len(analysis.rows),
            "column_mappings": [
                {
                    "field": m.semantic_field.value,
                    "column": m.column_index,
                    "label": m.source_column_label,
                    "confidence": m.confidence,
                }
                for m in analysis.column_mappings
            ],
            "sample_rows": list(analysis.sample_rows),
        }
    )
    return 0


def cmd_parse(
    path: Path,
    *,
    source_type: SourceType,
    default_category: str | None = None,
) -> int:
    """Classify every row and print one JSON object per row plus a summary."""

    from .classifier import row_to_dict, summarize

    try:
        rows = _classify_file(_read_text(path), source_type, default_category)
    except OSError as e:
        return _err(f"cannot read '{path}': {e}")
    except ValueError as e:
        return _err(str(e))

    counts = summarize(rows)
    _print_json(
        {
            "rows": [row_to_dict(r) for r in rows],
            "summary": {status.value: n for status, n in counts.items()},
        }
    )
    return 0


def cmd_import(
    path: Path,
    *,
    household_id: str,
    source_type: SourceType,
    account_id: int | None = None,
    credit_card_id: int | None = None,
    skip_duplicates: bool = True,
    default_category: str | None = None,
    confirm_date: date | None = None,
    user_id: str | None = None,
    database_url: str | None = None,
) -> int:
    """Classify a file and import its expenses for ``household_id``."""

    from db.client import session_scope
    from .importer import ImportOptions, import_expenses, remote_strategy_from_env

    try:
        rows = _classify_file(_read_text(path), source_type, default_category, confirm_date)
    except OSError as e:
        return _err(f"cannot read '{path}': {e}")
    except ValueError as e:
        return _err(str(e))

    try:
        with session_scope(database_url=database_url) as session:
            if account_id is None and credit_card_id is None:
                account_id, credit_card_id = _auto_link(
                    session,
                    household_id=household_id,
                    filename=path.name,
                    source_type=source_type,
                )
            options = ImportOptions(
                source_type=source_type,
                account_id=account_id,
                credit_card_id=credit_card_id,
                skip_duplicates=skip_duplicates,
                user_id=user_id,
                original_filename=path.name,
            )
            result = import_expenses(
                rows,
                household_id=household_id,
                options=options,
                session=session,
                remote=remote_strategy_from_env(),
            )
    except (ValueError, RuntimeError) as e:
        return _err(str(e))

    out = result.model_dump(mode="json", by_alias=True, exclude={"errors"})
    out["errors"] = [{"row": e.row, "reason": e.reason} for e in result.errors]
    _print_json(out)
    return 0


def cmd_categorize(
    *,
    household_id: str,
    use_ai: bool = True,
    database_url: str | None = None,
) -> int:
    """Run the household categorization pass and print its counters."""

    import os

    from db.client import session_scope
    from .categorize import categorize_transactions

    if use_ai and not os.getenv("OPENAI_API_KEY"):
        return _err(
            "OPENAI_API_KEY is not set in the environment (use --no-ai to skip the AI pass)."
        )

    try:
        with session_scope(database_url=database_url) as session:
            result = categorize_transactions(session, household_id, use_ai=use_ai)
    except (ValueError, RuntimeError) as e:
        return _err(str(e))

    out = dataclasses.asdict(result)
    out["suggestions"] = [
        {
            "transaction_id": s.transaction_id,
            "description": s.description,
            "category": str(s.category),
            "confidence": s.confidence,
            "source": s.source,
        }
        for s in result.suggestions
    ]
    _print_json(out)
    return 0


def cmd_template(*, source_type: SourceType) -> int:
    from .standard_format import generate_csv_template

    print(generate_csv_template(source_type))
    return 0


def cmd_convert(
    path: Path,
    *,
    source_type: SourceType,
    default_category: str | None = None,
) -> int:
    """Rewrite an arbitrary statement as a template file on stdout."""

    from .standard_format import convert_bank_statement, generate_standard_csv

    try:
        result = convert_bank_statement(_read_text(path), source_type, default_category)
    except OSError as e:
        return _err(f"cannot read '{path}': {e}")
    except ValueError as e:
        return _err(str(e))

    print(generate_standard_csv(result.converted, source_type))
    print(
        f"converted total={result.total} ok={result.ok} skipped={result.skipped} "
        f"errors={result.errors} total_expense={result.total_expense:.2f}",
        file=sys.stderr,
    )
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank and credit card statement CSVs as household expenses and "
        "categorize them. Loads settings from a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
SOURCE_TYPE_OPTION: OptionInfo = typer.Option(
    "--source-type",
    help="Statement kind: bank_account or credit_card.",
)
DEFAULT_CATEGORY_OPTION: OptionInfo = typer.Option(
    "--default-category",
    help="Category for rows the keyword heuristics cannot place (e.g. food).",
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
HOUSEHOLD_OPTION: OptionInfo = typer.Option("--household-id", help="Household to act on.")


@app.command("analyze")
def analyze_cmd(path: Annotated[Path, typer.Argument(dir_okay=False)]) -> None:
    """Show the separator, header and column mapping inferred for a file."""

    raise typer.Exit(cmd_analyze(path))


@app.command("parse")
def parse_cmd(
    path: Annotated[Path, typer.Argument(dir_okay=False)],
    source_type: Annotated[SourceType, SOURCE_TYPE_OPTION] = SourceType.BANK_ACCOUNT,
    default_category: Annotated[str | None, DEFAULT_CATEGORY_OPTION] = None,
) -> None:
    """Classify each row as OK, SKIPPED or ERROR without writing anything."""

    raise typer.Exit(cmd_parse(path, source_type=source_type, default_category=default_category))


@app.command("import")
def import_cmd(
    path: Annotated[Path, typer.Argument(dir_okay=False)],
    household_id: Annotated[str, HOUSEHOLD_OPTION],
    source_type: Annotated[SourceType, SOURCE_TYPE_OPTION] = SourceType.BANK_ACCOUNT,
    account_id: Annotated[
        int | None, typer.Option(help="Account to link (bank statements).")
    ] = None,
    credit_card_id: Annotated[
        int | None, typer.Option(help="Credit card to link (required for card invoices).")
    ] = None,
    skip_duplicates: Annotated[
        bool, typer.Option(help="Skip rows already imported for this household.")
    ] = True,
    default_category: Annotated[str | None, DEFAULT_CATEGORY_OPTION] = None,
    confirm_date: Annotated[
        str | None,
        typer.Option(help="YYYY-MM-DD date for template rows that have no date."),
    ] = None,
    user_id: Annotated[str | None, typer.Option(help="User recorded on inserted rows.")] = None,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Import the expenses of a statement file."""

    confirmed: date | None = None
    if confirm_date:
        try:
            confirmed = date.fromisoformat(confirm_date)
        except ValueError:
            raise typer.Exit(_err(f"invalid --confirm-date: {confirm_date!r}")) from None
    raise typer.Exit(
        cmd_import(
            path,
            household_id=household_id,
            source_type=source_type,
            account_id=account_id,
            credit_card_id=credit_card_id,
            skip_duplicates=skip_duplicates,
            default_category=default_category,
            confirm_date=confirmed,
            user_id=user_id,
            database_url=database_url,
        )
    )


@app.command("categorize")
def categorize_cmd(
    household_id: Annotated[str, HOUSEHOLD_OPTION],
    ai: Annotated[bool, typer.Option(help="Send unresolved rows to the AI fallback.")] = True,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Categorize the household's transactions still marked 'other'."""

    raise typer.Exit(
        cmd_categorize(household_id=household_id, use_ai=ai, database_url=database_url)
    )


@app.command("template")
def template_cmd(
    source_type: Annotated[SourceType, SOURCE_TYPE_OPTION] = SourceType.BANK_ACCOUNT,
) -> None:
    """Print the standard CSV template."""

    raise typer.Exit(cmd_template(source_type=source_type))


@app.command("convert")
def convert_cmd(
    path: Annotated[Path, typer.Argument(dir_okay=False)],
    source_type: Annotated[SourceType, SOURCE_TYPE_OPTION] = SourceType.BANK_ACCOUNT,
    default_category: Annotated[str | None, DEFAULT_CATEGORY_OPTION] = None,
) -> None:
    """Convert a bank statement into the standard template format."""

    raise typer.Exit(
        cmd_convert(path, source_type=source_type, default_category=default_category)
    )


@app.callback()
def _root(
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="Level for the statement_import loggers (default: $STATEMENT_IMPORT_LOG_LEVEL "
            "or INFO). Per-module levels come from $STATEMENT_IMPORT_LOG_LEVELS.",
        ),
    ] = None,
) -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps variables already set in the environment
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    try:
        configure_logging(log_level)
    except ValueError as e:
        raise typer.Exit(_err(str(e))) from None


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover - exercised via the console script
    main()
