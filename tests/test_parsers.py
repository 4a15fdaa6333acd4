from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from statement_import.parsers import generate_dedup_hash, parse_amount, parse_date


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("-150,00", Decimal("-150.00")),
        ("R$ -150,00", Decimal("-150.00")),
        ("R$ 1.000.000,00", Decimal("1000000.00")),
        ("$1,000,000", Decimal("1000000")),
        ("(45.10)", Decimal("-45.10")),
        ("150,00-", Decimal("-150.00")),
        ("+99.9", Decimal("99.9")),
        ("3000", Decimal("3000")),
        ("0,00", Decimal("0")),
    ],
)
def test_parse_amount_locales(raw: str, expected: Decimal) -> None:
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "abc", "R$", "€ $", "-", "12a,34", True])
def test_parse_amount_unreadable_returns_none(raw) -> None:
    assert parse_amount(raw) is None


def test_parse_amount_round_trips_both_conventions_within_a_cent() -> None:
    for cents in (1, 99, 1050, 123456, 98765432):
        value = Decimal(cents) / 100
        integer, frac = f"{value:.2f}".split(".")
        groups = f"{int(integer):,}"
        br = groups.replace(",", ".") + "," + frac
        us = groups + "." + frac
        for text in (br, us, "-" + br, "-" + us):
            parsed = parse_amount(text)
            assert parsed is not None
            assert abs(abs(parsed) - value) < Decimal("0.01")


def test_parse_amount_numbers_pass_through() -> None:
    assert parse_amount(12) == Decimal("12")
    assert parse_amount(-1.5) == Decimal("-1.5")
    assert parse_amount(float("nan")) is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("15/03/2024", date(2024, 3, 15)),
        ("15-03-2024", date(2024, 3, 15)),
        ("2024-03-15", date(2024, 3, 15)),
        ("2024/03/15", date(2024, 3, 15)),
        ("15/03/24", date(2024, 3, 15)),
        ("15/03/99", date(1999, 3, 15)),
        ("15/03/2024 10:30", date(2024, 3, 15)),
        ("2024-03-15T10:30:00", date(2024, 3, 15)),
        ("45366", date(2024, 3, 15)),
        (45366, date(2024, 3, 15)),
        (datetime(2024, 3, 15, 8, 0), date(2024, 3, 15)),
        (date(2024, 3, 15), date(2024, 3, 15)),
    ],
)
def test_parse_date_formats(raw, expected: date) -> None:
    assert parse_date(raw) == expected


@pytest.mark.parametrize(
    "raw", ["31/02/2024", "32/01/2024", "15/13/2024", "", "amanha", None, "01/01/1850"]
)
def test_parse_date_invalid_returns_none(raw) -> None:
    assert parse_date(raw) is None


def test_parse_date_round_trips_dd_mm_yyyy_across_range() -> None:
    d = date(1900, 1, 1)
    end = date(2100, 12, 31)
    while d <= end:
        assert parse_date(d.strftime("%d/%m/%Y")) == d
        d += timedelta(days=97)
    assert parse_date(end.strftime("%d/%m/%Y")) == end


def test_dedup_hash_is_stable_across_amount_types_and_case() -> None:
    d = date(2024, 3, 15)
    h = generate_dedup_hash(d, Decimal("-150.00"), "Supermercado Extra")
    assert h == generate_dedup_hash(d, -150.0, "supermercado extra ")
    assert h == generate_dedup_hash("2024-03-15", -150, "SUPERMERCADO EXTRA")
    assert h != generate_dedup_hash(d, Decimal("-150.01"), "Supermercado Extra")
    assert h != generate_dedup_hash(date(2024, 3, 16), Decimal("-150.00"), "Supermercado Extra")
    assert len(h) == 64
