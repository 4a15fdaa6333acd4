from datetime import date
from pathlib import Path

import pytest

from db.client import session_scope
from statement_import.cache import load_cache, upsert_cache_entry
from statement_import.categories import CustomCategory, FixedCategory
from statement_import.categorization import categorize_local
from statement_import.persistence import (
    load_existing_hashes,
    load_rules,
    load_uncategorized,
    sanitize_transaction,
    update_category,
)
from statement_import.parsers import generate_dedup_hash
from tests.helpers.db import (
    HOUSEHOLD,
    OTHER_HOUSEHOLD,
    add_cache_entry,
    add_rule,
    add_transaction,
    bootstrap_sqlite_db,
    cache_rows,
    categories_by_description,
)


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "db.sqlite")


def test_local_pass_uses_cache_rules_and_builtins(db_url: str) -> None:
    add_cache_entry(db_url, "padaria pao quente", "custom:bakery")
    add_rule(db_url, "NETFLIX", "leisure", priority=10)
    add_transaction(db_url, "Padaria Pao Quente 12345", "-12.50")
    add_transaction(db_url, "NETFLIX.COM", "-39.90")
    add_transaction(db_url, "UBER *TRIP 12345678", "-22.00")
    add_transaction(db_url, "XPTO SERVICOS", "-10.00")
    add_transaction(db_url, "Mercado manual", "-10.00", category="bills")

    with session_scope(database_url=db_url) as session:
        result = categorize_local(session, HOUSEHOLD)

    assert result.applied == 3
    assert result.skipped == 1
    assert result.errors == []
    cats = categories_by_description(db_url)
    assert cats["Padaria Pao Quente 12345"] == "custom:bakery"
    assert cats["NETFLIX.COM"] == "leisure"
    assert cats["UBER *TRIP 12345678"] == "transport"
    assert cats["XPTO SERVICOS"] == "other"
    # Manual categorizations are never touched.
    assert cats["Mercado manual"] == "bills"

    cache = cache_rows(db_url)
    assert cache["uber trip"] == ("transport", "rule", 1)
    assert cache["netflix com"] == ("leisure", "rule", 1)
    assert cache["padaria pao quente"][1] == "manual"


def test_low_confidence_rule_is_not_applied(db_url: str) -> None:
    add_rule(db_url, "XPTO", "shopping", confidence="0.60")
    add_transaction(db_url, "XPTO SERVICOS", "-10.00")

    with session_scope(database_url=db_url) as session:
        result = categorize_local(session, HOUSEHOLD)

    assert result.applied == 0
    assert result.skipped == 1
    assert categories_by_description(db_url)["XPTO SERVICOS"] == "other"


def test_local_pass_respects_transaction_ids_and_household(db_url: str) -> None:
    a = add_transaction(db_url, "UBER *TRIP 1", "-5.00")
    add_transaction(db_url, "UBER *TRIP 2", "-6.00")
    other = add_transaction(db_url, "UBER *TRIP 3", "-7.00", household_id=OTHER_HOUSEHOLD)

    with session_scope(database_url=db_url) as session:
        result = categorize_local(session, HOUSEHOLD, [a, other])

    assert result.applied == 1
    assert categories_by_description(db_url) == {
        "UBER *TRIP 1": "transport",
        "UBER *TRIP 2": "other",
    }
    assert categories_by_description(db_url, household_id=OTHER_HOUSEHOLD) == {
        "UBER *TRIP 3": "other"
    }


def test_load_rules_scope_and_order(db_url: str) -> None:
    add_rule(db_url, "A", "food", priority=1)
    add_rule(db_url, "B", "food", priority=50, household_id=None)
    add_rule(db_url, "C", "food", priority=99, household_id=OTHER_HOUSEHOLD)
    add_rule(db_url, "D", "food", priority=70, is_active=False)
    add_rule(db_url, "E", "custom:7", priority=5, match_type="regex", flags="i")

    with session_scope(database_url=db_url) as session:
        rules = load_rules(session, HOUSEHOLD)

    assert [r.pattern for r in rules] == ["B", "E", "A"]
    assert rules[1].category == CustomCategory("7")
    assert rules[1].flags == "i"


def test_load_uncategorized_newest_first(db_url: str) -> None:
    add_transaction(db_url, "old", "-1.00", tx_date=date(2024, 1, 1))
    add_transaction(db_url, "new", "-1.00", tx_date=date(2024, 5, 1))
    add_transaction(db_url, "done", "-1.00", category="food")

    with session_scope(database_url=db_url) as session:
        rows = load_uncategorized(session, HOUSEHOLD)
        assert load_uncategorized(session, HOUSEHOLD, []) == []

    assert [r.description for r in rows] == ["new", "old"]


def test_update_category_is_household_scoped(db_url: str) -> None:
    tx = add_transaction(db_url, "x", "-1.00")
    with session_scope(database_url=db_url) as session:
        assert not update_category(
            session, household_id=OTHER_HOUSEHOLD, transaction_id=tx, category=FixedCategory.FOOD
        )
        assert update_category(
            session, household_id=HOUSEHOLD, transaction_id=tx, category=CustomCategory("9")
        )
    assert categories_by_description(db_url) == {"x": "custom:9"}


def test_cache_upsert_is_last_writer_wins(db_url: str) -> None:
    with session_scope(database_url=db_url) as session:
        upsert_cache_entry(
            session,
            household_id=HOUSEHOLD,
            fingerprint="posto shell",
            category=FixedCategory.TRANSPORT,
            confidence=0.9,
            source="rule",
        )
    with session_scope(database_url=db_url) as session:
        upsert_cache_entry(
            session,
            household_id=HOUSEHOLD,
            fingerprint="posto shell",
            category=CustomCategory("car"),
            confidence=1.0,
            source="manual",
        )
        upsert_cache_entry(
            session,
            household_id=HOUSEHOLD,
            fingerprint="",
            category=FixedCategory.FOOD,
            confidence=1.0,
            source="manual",
        )

    assert cache_rows(db_url) == {"posto shell": ("custom:car", "manual", 2)}
    with session_scope(database_url=db_url) as session:
        assert load_cache(session, HOUSEHOLD, ["posto shell", "nope", ""]) == {
            "posto shell": CustomCategory("car")
        }
        assert load_cache(session, OTHER_HOUSEHOLD, ["posto shell"]) == {}


def test_existing_hashes_match_classifier_hashes(db_url: str) -> None:
    add_transaction(db_url, "Supermercado Extra", "-150.00", tx_date=date(2024, 3, 15))
    with session_scope(database_url=db_url) as session:
        hashes = load_existing_hashes(session, HOUSEHOLD)
    assert hashes == {generate_dedup_hash(date(2024, 3, 15), -150, "Supermercado Extra")}


def test_sanitize_transaction_drops_unknown_keys() -> None:
    out = sanitize_transaction(
        {
            "description": "x",
            "amount": -1,
            "import_hash": "h",
            "payment_method": "pix",
            "type": "EXPENSE",
        }
    )
    assert out == {"description": "x", "amount": -1}
