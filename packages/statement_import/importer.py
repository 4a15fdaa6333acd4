# ruff: noqa: I001
"""Import executor: turn classified rows into persisted household expenses.

Two write paths share one contract (:class:`WriteStrategy`):

- :class:`RemoteWriteStrategy` posts the rows to the household import
  endpoint over HTTP (``requests``). It is tried first when configured and
  its health probe answers.
- :class:`DirectWriteStrategy` writes through a SQLAlchemy session.

Both apply :func:`prepare_import` semantics (per-row validation, dedup
against existing hashes and within the file, account/card linking, payload
sanitizing) and batch the inserts, so the caller cannot tell them apart. A
transport failure of the remote path falls back to the direct one.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Protocol

import requests
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models.finance import Account, CreditCard
from .categories import FixedCategory, category_code
from .classifier import iter_expenses
from .logging_setup import get_logger
from .models import (
    ImportResult,
    ImportRowError,
    ParsedRow,
    RowStatus,
    SkipReason,
    SourceType,
)
from .parsers import generate_dedup_hash, parse_amount, parse_date
from .persistence import insert_transactions, load_existing_hashes, sanitize_transaction

_logger = get_logger("statement_import.importer")

# ---- Tunables (private) ------------------------------------------------------

_BATCH_SIZE: int = 50
_REMOTE_MAX_ROWS: int = 2000
_HEALTH_TIMEOUT_SEC: float = 2.0
_REQUEST_TIMEOUT_SEC: float = 60.0
_MAX_DESCRIPTION_LEN: int = 255
_MAX_NOTES_LEN: int = 500

_REMOTE_URL_ENV_VAR = "STATEMENT_IMPORT_REMOTE_URL"
_REMOTE_TOKEN_ENV_VAR = "STATEMENT_IMPORT_REMOTE_TOKEN"

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

NO_VALID_TRANSACTIONS = "no valid transactions"


@dataclass(frozen=True, slots=True)
class ImportOptions:
    """Caller choices for one import.

    Bank imports link to ``account_id`` (optional); card imports require
    ``credit_card_id``. Whichever id does not belong to the source type is
    ignored, so a row is never linked to both.
    """

    source_type: SourceType = SourceType.BANK_ACCOUNT
    account_id: int | None = None
    credit_card_id: int | None = None
    skip_duplicates: bool = True
    user_id: str | None = None
    original_filename: str | None = None

    @property
    def linked_account_id(self) -> int | None:
        return self.account_id if self.source_type == SourceType.BANK_ACCOUNT else None

    @property
    def linked_card_id(self) -> int | None:
        return self.credit_card_id if self.source_type == SourceType.CREDIT_CARD else None


# ---------------------------------------------------------------------------
# Shared plan
# ---------------------------------------------------------------------------


def expense_items(rows: Sequence[ParsedRow]) -> list[dict[str, Any]]:
    """Transfer items for the OK rows, amounts forced negative."""

    items: list[dict[str, Any]] = []
    for _row, exp in iter_expenses(list(rows)):
        items.append(
            {
                "description": exp.description,
                "amount": -abs(exp.amount),
                "category": category_code(exp.category),
                "status": "paid",
                "transaction_date": exp.transaction_date.isoformat(),
                "notes": exp.notes,
                "import_hash": exp.import_hash,
            }
        )
    return items


_INCOME_REASONS = frozenset({SkipReason.INCOME_CREDIT, SkipReason.INCOME_POSITIVE_VALUE})


def count_ignored_income(rows: Sequence[ParsedRow]) -> int:
    """Number of rows skipped because they are income, not expenses."""

    return sum(1 for r in rows if r.status == RowStatus.SKIPPED and r.reason in _INCOME_REASONS)


@dataclass(slots=True)
class ImportPlan:
    """Validated, deduplicated and linked insert payloads for one import."""

    payloads: list[dict[str, Any]] = field(default_factory=list)
    duplicates: int = 0
    failed: int = 0
    errors: list[ImportRowError] = field(default_factory=list)


def _coerce_date(raw: Any) -> date | None:
    if isinstance(raw, date):
        return raw
    s = str(raw).strip()
    if _ISO_DATE_RE.match(s):
        try:
            return date.fromisoformat(s)
        except ValueError:
            return None
    return parse_date(s)


def prepare_import(
    items: Sequence[Mapping[str, Any]],
    *,
    household_id: str,
    options: ImportOptions,
    existing_hashes: set[str],
) -> ImportPlan:
    """Validate, dedup, link and sanitize ``items``.

    ``existing_hashes`` is not mutated. Row numbers in errors are 1-based
    positions in ``items``.
    """

    plan = ImportPlan()
    seen = set(existing_hashes) if options.skip_duplicates else set()
    for i, item in enumerate(items):
        row_no = i + 1
        description = str(item.get("description") or "").strip()
        if not description:
            plan.failed += 1
            plan.errors.append(ImportRowError(row_no, "description required"))
            continue

        amount = parse_amount(item.get("amount"))
        if amount is None:
            plan.failed += 1
            plan.errors.append(ImportRowError(row_no, "invalid amount"))
            continue
        amount = -abs(amount)

        raw_date = item.get("transaction_date")
        if raw_date is None or (isinstance(raw_date, str) and not raw_date.strip()):
            plan.failed += 1
            plan.errors.append(ImportRowError(row_no, "date not found"))
            continue
        tx_date = _coerce_date(raw_date)
        if tx_date is None:
            plan.failed += 1
            plan.errors.append(
                ImportRowError(row_no, f'invalid date: "{raw_date}" (expected YYYY-MM-DD)')
            )
            continue

        description = description[:_MAX_DESCRIPTION_LEN]
        dedup_hash = generate_dedup_hash(tx_date, amount, description)
        if options.skip_duplicates:
            if dedup_hash in seen:
                plan.duplicates += 1
                continue
            seen.add(dedup_hash)

        notes = item.get("notes")
        plan.payloads.append(
            sanitize_transaction(
                {
                    "user_id": options.user_id,
                    "household_id": household_id,
                    "description": description,
                    "amount": amount.quantize(Decimal("0.01")),
                    "category": str(item.get("category") or FixedCategory.OTHER.value),
                    "status": str(item.get("status") or "paid"),
                    "transaction_date": tx_date,
                    "notes": str(notes)[:_MAX_NOTES_LEN] if notes else None,
                    "is_recurring": False,
                    "account_id": options.linked_account_id,
                    "credit_card_id": options.linked_card_id,
                    "import_hash": dedup_hash,
                }
            )
        )
    return plan


def validate_link(options: ImportOptions) -> None:
    """Raise ``ValueError`` when the options cannot produce a valid link."""

    if options.source_type == SourceType.CREDIT_CARD and options.credit_card_id is None:
        raise ValueError("credit_card_id is required for credit card imports")


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class WriteStrategy(Protocol):
    name: str

    def write(
        self,
        household_id: str,
        items: Sequence[Mapping[str, Any]],
        options: ImportOptions,
    ) -> ImportResult: ...


def _base_result(options: ImportOptions) -> ImportResult:
    return ImportResult(
        source_type=options.source_type,
        linked_account_id=options.linked_account_id,
        linked_card_id=options.linked_card_id,
    )


class DirectWriteStrategy:
    """Write through a SQLAlchemy session, one savepoint per batch.

    A failed batch rolls back to its savepoint, adds its size to ``failed``
    and records one error; later batches still run. The caller commits.
    """

    name = "direct"

    def __init__(self, session: Session, *, batch_size: int = _BATCH_SIZE) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be a positive integer")
        self._session = session
        self._batch_size = batch_size

    def _check_link_ownership(self, household_id: str, options: ImportOptions) -> None:
        if options.linked_account_id is not None:
            found = self._session.scalar(
                select(Account.id).where(
                    Account.id == options.linked_account_id, Account.household_id == household_id
                )
            )
            if found is None:
                raise ValueError(
                    f"account {options.linked_account_id} does not belong to this household"
                )
        if options.linked_card_id is not None:
            found = self._session.scalar(
                select(CreditCard.id).where(
                    CreditCard.id == options.linked_card_id,
                    CreditCard.household_id == household_id,
                )
            )
            if found is None:
                raise ValueError(
                    f"credit card {options.linked_card_id} does not belong to this household"
                )

    def write(
        self,
        household_id: str,
        items: Sequence[Mapping[str, Any]],
        options: ImportOptions,
    ) -> ImportResult:
        self._check_link_ownership(household_id, options)
        existing = (
            load_existing_hashes(self._session, household_id) if options.skip_duplicates else set()
        )
        plan = prepare_import(
            items, household_id=household_id, options=options, existing_hashes=existing
        )
        result = _base_result(options)
        result.duplicates = plan.duplicates
        result.failed = plan.failed
        result.errors = list(plan.errors)

        for start in range(0, len(plan.payloads), self._batch_size):
            batch = plan.payloads[start : start + self._batch_size]
            try:
                with self._session.begin_nested():
                    insert_transactions(self._session, batch)
            except SQLAlchemyError as e:
                reason = str(e).splitlines()[0] if str(e) else e.__class__.__name__
                _logger.error(
                    "import:batch_failed start=%d size=%d error=%s",
                    start,
                    len(batch),
                    e.__class__.__name__,
                )
                result.failed += len(batch)
                result.errors.append(ImportRowError(start + 1, f"batch insert failed: {reason}"))
                continue
            result.imported += len(batch)

        _logger.info(
            "import:direct_done household=%s imported=%d duplicates=%d failed=%d",
            household_id,
            result.imported,
            result.duplicates,
            result.failed,
        )
        return result


class RemoteWriteStrategy:
    """Post the import to the household import endpoint.

    Transport errors (``requests.RequestException``, including non-2xx
    statuses and undecodable bodies) propagate so the caller can fall back.
    """

    name = "remote"

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        http: requests.Session | None = None,
        timeout: float = _REQUEST_TIMEOUT_SEC,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._http = http or requests.Session()
        self._timeout = timeout

    @property
    def max_rows(self) -> int:
        return _REMOTE_MAX_ROWS

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def is_available(self) -> bool:
        try:
            resp = self._http.get(
                f"{self._base_url}/health", headers=self._headers(), timeout=_HEALTH_TIMEOUT_SEC
            )
        except requests.RequestException as e:
            _logger.warning("import:remote_unavailable error=%s", e.__class__.__name__)
            return False
        return resp.ok

    def write(
        self,
        household_id: str,
        items: Sequence[Mapping[str, Any]],
        options: ImportOptions,
    ) -> ImportResult:
        if len(items) > _REMOTE_MAX_ROWS:
            raise ValueError(f"at most {_REMOTE_MAX_ROWS} transactions per remote import")
        body = {
            "householdId": household_id,
            "sourceType": options.source_type.value,
            "accountId": options.linked_account_id,
            "creditCardId": options.linked_card_id,
            "skipDuplicates": options.skip_duplicates,
            "originalFilename": options.original_filename,
            "transactions": [_jsonable_item(it) for it in items],
        }
        resp = self._http.post(
            self._base_url, json=body, headers=self._headers(), timeout=self._timeout
        )
        resp.raise_for_status()
        result = ImportResult.model_validate(resp.json())
        if result.source_type is None:
            result.source_type = options.source_type
        if result.linked_account_id is None:
            result.linked_account_id = options.linked_account_id
        if result.linked_card_id is None:
            result.linked_card_id = options.linked_card_id
        _logger.info(
            "import:remote_done household=%s imported=%d duplicates=%d failed=%d",
            household_id,
            result.imported,
            result.duplicates,
            result.failed,
        )
        return result


def _jsonable_item(item: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(item)
    amount = out.get("amount")
    if isinstance(amount, Decimal):
        out["amount"] = float(amount)
    tx_date = out.get("transaction_date")
    if isinstance(tx_date, date):
        out["transaction_date"] = tx_date.isoformat()
    return out


def remote_strategy_from_env() -> RemoteWriteStrategy | None:
    url = os.getenv(_REMOTE_URL_ENV_VAR)
    if not url:
        return None
    return RemoteWriteStrategy(url, token=os.getenv(_REMOTE_TOKEN_ENV_VAR))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def import_expenses(
    rows: Sequence[ParsedRow],
    *,
    household_id: str,
    options: ImportOptions,
    session: Session | None = None,
    remote: RemoteWriteStrategy | None = None,
) -> ImportResult:
    """Import the OK rows of ``rows`` for ``household_id``.

    Without OK rows nothing is written: ``failed`` is the number of ERROR rows
    and a single ``(0, "no valid transactions")`` error is returned.
    """

    if not household_id:
        raise ValueError("household_id is required")
    ignored_income = count_ignored_income(rows)
    items = expense_items(rows)
    if not items:
        result = _base_result(options)
        result.failed = sum(1 for r in rows if r.status == RowStatus.ERROR)
        result.errors = [ImportRowError(0, NO_VALID_TRANSACTIONS)]
        result.ignored_income = ignored_income
        return result
    validate_link(options)

    if remote is not None and len(items) <= remote.max_rows and remote.is_available():
        try:
            result = remote.write(household_id, items, options)
        except requests.RequestException as e:
            _logger.warning(
                "import:remote_fallback household=%s error=%s", household_id, e.__class__.__name__
            )
        else:
            if result.ignored_income is None:
                result.ignored_income = ignored_income
            return result

    if session is None:
        raise ValueError("a database session is required for the direct import path")
    result = DirectWriteStrategy(session).write(household_id, items, options)
    result.ignored_income = ignored_income
    return result


__all__ = [
    "DirectWriteStrategy",
    "ImportOptions",
    "ImportPlan",
    "NO_VALID_TRANSACTIONS",
    "RemoteWriteStrategy",
    "WriteStrategy",
    "count_ignored_income",
    "expense_items",
    "import_expenses",
    "prepare_import",
    "remote_strategy_from_env",
    "validate_link",
]
