import json
import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from statement_import.cli import app
from tests.helpers.db import (
    HOUSEHOLD,
    add_account,
    add_transaction,
    bootstrap_sqlite_db,
    categories_by_description,
    count_transactions,
)

STATEMENT = "\n".join(
    [
        "Data;Descrição;Valor",
        "01/03/2024;Padaria Pao Quente;-12,50",
        "02/03/2024;Farmacia Sao Joao;-35,90",
        "03/03/2024;Salário;3000,00",
    ]
)

runner = CliRunner()


@pytest.fixture(autouse=True)
def _in_tmp(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep any developer .env out of the run.
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


def _write(tmp_path: Path, name: str, text: str) -> Path:
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_template_prints_header() -> None:
    result = runner.invoke(app, ["template", "--source-type", "credit_card"])
    assert result.exit_code == 0
    assert "data,descricao,tipo,valor,categoria" in result.output
    assert "Cartão de Crédito" in result.output


def test_parse_prints_rows_and_summary(tmp_path: Path) -> None:
    path = _write(tmp_path, "extrato.csv", STATEMENT)

    result = runner.invoke(app, ["parse", str(path)])

    assert result.exit_code == 0
    out = json.loads(result.output)
    assert out["summary"] == {"OK": 2, "SKIPPED": 1, "ERROR": 0}
    assert out["rows"][0]["expense"]["category"] == "food"


def test_analyze_reports_mapping(tmp_path: Path) -> None:
    path = _write(tmp_path, "extrato.csv", STATEMENT)

    result = runner.invoke(app, ["analyze", str(path)])

    assert result.exit_code == 0
    out = json.loads(result.output)
    assert out["separator"] == ";"
    assert out["has_header"] is True
    assert {m["field"] for m in out["column_mappings"]} >= {"date", "description", "amount"}


def test_analyze_unanalyzable_file_exits_nonzero(tmp_path: Path) -> None:
    path = _write(tmp_path, "people.csv", "Nome;Cidade\nJoao;Sao Paulo\nMaria;Rio de Janeiro")

    result = runner.invoke(app, ["analyze", str(path)])

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_import_links_account_from_file_name(tmp_path: Path) -> None:
    url = bootstrap_sqlite_db(tmp_path / "db.sqlite")
    acct = add_account(url, "Nubank Conta")
    path = _write(tmp_path, "extrato_nubank_marco.csv", STATEMENT)
    args = ["import", str(path), "--household-id", HOUSEHOLD, "--database-url", url]

    first = runner.invoke(app, args)
    second = runner.invoke(app, args)

    assert first.exit_code == 0
    out = json.loads(first.output)
    assert out["imported"] == 2
    assert out["linkedAccountId"] == acct
    assert out["sourceType"] == "bank_account"
    assert json.loads(second.output)["duplicates"] == 2
    assert count_transactions(url) == 2


def test_card_import_without_card_fails(tmp_path: Path) -> None:
    url = bootstrap_sqlite_db(tmp_path / "db.sqlite")
    path = _write(tmp_path, "gastos.csv", STATEMENT)

    result = runner.invoke(
        app,
        [
            "import",
            str(path),
            "--household-id",
            HOUSEHOLD,
            "--source-type",
            "credit_card",
            "--database-url",
            url,
        ],
    )

    assert result.exit_code == 1
    assert "credit_card_id" in result.output
    assert count_transactions(url) == 0


def test_import_rejects_bad_confirm_date(tmp_path: Path) -> None:
    path = _write(tmp_path, "extrato.csv", STATEMENT)
    result = runner.invoke(
        app, ["import", str(path), "--household-id", HOUSEHOLD, "--confirm-date", "03/2024"]
    )
    assert result.exit_code == 1


def test_categorize_without_ai(tmp_path: Path) -> None:
    url = bootstrap_sqlite_db(tmp_path / "db.sqlite")
    add_transaction(url, "UBER *TRIP 12345678", "-22.00")
    add_transaction(url, "XPTO SERVICOS", "-10.00")

    result = runner.invoke(
        app, ["categorize", "--household-id", HOUSEHOLD, "--no-ai", "--database-url", url]
    )

    assert result.exit_code == 0
    out = json.loads(result.output)
    assert out["applied_by_rules"] == 1
    assert out["sent_to_ai"] == 0
    assert out["remaining_uncategorized"] == 1
    assert categories_by_description(url)["UBER *TRIP 12345678"] == "transport"


def test_categorize_with_ai_requires_api_key(tmp_path: Path) -> None:
    url = bootstrap_sqlite_db(tmp_path / "db.sqlite")
    result = runner.invoke(app, ["categorize", "--household-id", HOUSEHOLD, "--database-url", url])
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


def test_convert_writes_template(tmp_path: Path) -> None:
    path = _write(tmp_path, "extrato.csv", STATEMENT)

    result = runner.invoke(app, ["convert", str(path)])

    assert result.exit_code == 0
    assert "data,descricao,tipo,valor,categoria,conta" in result.output
    assert "Padaria Pao Quente" in result.output


def test_log_level_option_configures_package_loggers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STATEMENT_IMPORT_LOG_LEVELS", "categorize=DEBUG")

    result = runner.invoke(app, ["--log-level", "WARNING", "template"])

    assert result.exit_code == 0
    pkg = logging.getLogger("statement_import")
    assert pkg.level == logging.WARNING
    assert pkg.propagate is False
    assert logging.getLogger("statement_import.categorize").getEffectiveLevel() == logging.DEBUG
    assert logging.getLogger("statement_import.importer").getEffectiveLevel() == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING


def test_log_level_from_env_and_repeated_runs_keep_one_handler(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("STATEMENT_IMPORT_LOG_LEVEL", "debug")

    for _ in range(2):
        assert runner.invoke(app, ["template"]).exit_code == 0

    pkg = logging.getLogger("statement_import")
    assert pkg.level == logging.DEBUG
    assert len([h for h in pkg.handlers if isinstance(h, logging.StreamHandler)]) == 1
    assert logging.getLogger("openai").level == logging.DEBUG


def test_unknown_log_level_exits_nonzero() -> None:
    result = runner.invoke(app, ["--log-level", "LOUD", "template"])
    assert result.exit_code == 1
    assert "unknown log level" in result.output
