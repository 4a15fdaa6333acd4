from io import StringIO
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config

ALEMBIC_DIR = Path(__file__).resolve().parents[1] / "libs" / "db" / "alembic"


def test_offline_upgrade_creates_household_tables(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", "postgresql://user:pw@localhost/expenses")
    out = StringIO()
    cfg = Config(output_buffer=out)
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))

    command.upgrade(cfg, "head", sql=True)

    sql = out.getvalue()
    for table in (
        "accounts",
        "credit_cards",
        "transactions",
        "categorization_rules",
        "merchant_category_cache",
    ):
        assert f"CREATE TABLE {table}" in sql
    assert "ck_tx_status" in sql
    assert "0001_household_expenses" in sql
