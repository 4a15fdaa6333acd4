"""Locale-aware amount/date parsing and the import dedup hash.

Parsers here never raise on malformed input: they return ``None`` and leave
it to callers to turn a missing value into a row-level outcome.

Amounts
-------
Brazilian (``1.234,56``) and US (``1,234.56``) conventions are told apart by
the position of the last separator: a comma or dot among the last three
characters is the decimal separator. Currency symbols and whitespace are
ignored, and a value wrapped in parentheses is negative.

Dates
-----
Accepted inputs are ``date``/``datetime`` objects, Excel serial numbers
(epoch 1899-12-30, 1..100000) and the textual formats ``DD/MM/YYYY``,
``DD-MM-YYYY``, ``YYYY-MM-DD``, ``YYYY/MM/DD`` and their two-digit-year
variants, optionally followed by a time component. Every candidate is checked
against the calendar; ``31/02/2024`` is rejected rather than rolled over.
"""

from __future__ import annotations

import hashlib
import math
import re
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

_CURRENCY_RE = re.compile(r"R\$|[€£¥$]|\s+")
_DECIMAL_RE = re.compile(r"^\d+(\.\d+)?$")

_EXCEL_EPOCH = date(1899, 12, 30)
_EXCEL_SERIAL_MIN: int = 1
_EXCEL_SERIAL_MAX: int = 100000
_YEAR_MIN: int = 1900
_YEAR_MAX: int = 2100
_TWO_DIGIT_YEAR_PIVOT: int = 50

_DATE_PREFIX_RE = re.compile(r"^(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}|\d{4}[/\-]\d{1,2}[/\-]\d{1,2})")

# (pattern, group order); group order names which match group holds d/m/y.
_DATE_FORMATS: tuple[tuple[re.Pattern[str], tuple[str, str, str]], ...] = (
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), ("d", "m", "y")),
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), ("d", "m", "y")),
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), ("y", "m", "d")),
    (re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), ("y", "m", "d")),
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2})$"), ("d", "m", "yy")),
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{2})$"), ("d", "m", "yy")),
)


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------


def _strip_markers(s: str) -> tuple[str, bool]:
    """Peel sign, currency and parentheses markers in any order."""

    negative = False
    s = _CURRENCY_RE.sub("", s)
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:]
            changed = True
        elif s.startswith("-") and len(s) > 1:
            negative = True
            s = s[1:]
            changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1]
            changed = True
        if s.endswith("-") and len(s) > 1:
            # Trailing minus, as some bank exports render debits.
            negative = True
            s = s[:-1]
            changed = True
        if not changed:
            return s, negative


def _to_dot_decimal(s: str) -> str:
    last_comma = s.rfind(",")
    last_dot = s.rfind(".")
    n = len(s)
    if last_comma > last_dot and last_comma > n - 4:
        return s.replace(".", "").replace(",", ".")
    if last_dot > last_comma and last_dot > n - 4:
        return s.replace(",", "")
    if last_comma >= 0 and last_dot < 0:
        # Repeated commas are thousands groups; a single one is a decimal comma.
        return s.replace(",", "") if s.count(",") > 1 else s.replace(",", ".")
    if last_dot >= 0 and last_comma < 0 and s.count(".") > 1:
        return s.replace(".", "")
    if last_comma >= 0 and last_dot >= 0:
        # Both present but neither in decimal position: thousands groups only.
        return s.replace(".", "").replace(",", "")
    return s


def parse_amount(raw: Any) -> Decimal | None:
    """Parse a localized monetary value; ``None`` when it cannot be read.

    ``0`` is returned only when the cleaned text is exactly zero.
    """

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else None
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and not math.isfinite(raw):
            return None
        return Decimal(str(raw))
    if not isinstance(raw, str):
        return None

    text = raw.strip()
    if not text or not any(ch.isdigit() for ch in text):
        return None

    body, negative = _strip_markers(text)
    if not body or body == "-":
        return None

    candidate = _to_dot_decimal(body)
    if not _DECIMAL_RE.fullmatch(candidate):
        return None
    try:
        value = Decimal(candidate)
    except InvalidOperation:
        return None
    return -value if negative else value


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def _from_excel_serial(serial: float) -> date | None:
    if not (_EXCEL_SERIAL_MIN <= serial <= _EXCEL_SERIAL_MAX):
        return None
    d = _EXCEL_EPOCH + timedelta(days=int(serial))
    if not (_YEAR_MIN <= d.year <= _YEAR_MAX):
        return None
    return d


def _build_date(year: int, month: int, day: int) -> date | None:
    if not (1 <= day <= 31 and 1 <= month <= 12 and _YEAR_MIN <= year <= _YEAR_MAX):
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(raw: Any) -> date | None:
    """Parse a statement date; ``None`` for missing or invalid values.

    Never falls back to today's date.
    """

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and not math.isfinite(raw):
            return None
        return _from_excel_serial(raw)
    if not isinstance(raw, str):
        return None

    s = raw.strip()
    if not s:
        return None
    # Discard any time component ("15/03/2024 10:30", "2024-03-15T10:30:00").
    s = s.split()[0].split("T", 1)[0]

    if s.isdigit():
        serial = _from_excel_serial(int(s))
        if serial is not None:
            return serial

    m = _DATE_PREFIX_RE.match(s)
    if m:
        s = m.group(1)

    for pattern, order in _DATE_FORMATS:
        fm = pattern.fullmatch(s)
        if not fm:
            continue
        parts = dict(zip(order, (int(g) for g in fm.groups()), strict=True))
        if "yy" in parts:
            yy = parts["yy"]
            year = 1900 + yy if yy > _TWO_DIGIT_YEAR_PIVOT else 2000 + yy
        else:
            year = parts["y"]
        return _build_date(year, parts["m"], parts["d"])
    return None


# ---------------------------------------------------------------------------
# Dedup hash
# ---------------------------------------------------------------------------


def _cents(amount: Any) -> int:
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def generate_dedup_hash(
    tx_date: date | str, amount: Decimal | float | int, description: str
) -> str:
    """Deterministic dedup key over ``date | cents | lowercased description``.

    Not a security primitive; only used to compare incoming rows with rows
    already stored for the same household.
    """

    date_str = tx_date.isoformat() if isinstance(tx_date, date) else str(tx_date).strip()
    payload = f"{date_str}|{_cents(amount)}|{(description or '').lower().strip()}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


__all__ = ["generate_dedup_hash", "parse_amount", "parse_date"]
