from datetime import date
from decimal import Decimal

from statement_import.categories import CustomCategory, FixedCategory
from statement_import.models import RowStatus, SkipReason, SourceType
from statement_import.standard_format import (
    TEMPLATE_HEADER,
    TEMPLATE_HEADER_CREDIT_CARD,
    confirm_missing_dates,
    convert_bank_statement,
    generate_csv_template,
    generate_standard_csv,
    is_standard_format,
    parse_standard_csv,
)

TEMPLATE = "\n".join(
    [
        "# comentário",
        "data,descricao,tipo,valor,categoria,conta",
        "2026-01-16,Supermercado Pão de Açúcar,EXPENSE,-350.50,food,Conta Corrente",
        "16/01/2026,Salário,INCOME,5000.00,other,Conta Corrente",
        ",Uber corrida,EXPENSE,-25.90,,Conta Corrente",
        "2026-13-40,Loja,EXPENSE,-10.00,shopping,",
        "2026-01-18,Academia,EXPENSE,-99.90,custom:gym-1,",
    ]
)


def test_is_standard_format_detects_template_header() -> None:
    assert is_standard_format(TEMPLATE)
    assert is_standard_format("\ufeffdata,descricao,tipo,valor\n2026-01-01,x,EXPENSE,-1")
    assert not is_standard_format("Descrição;Valor;Data\nx;-1,00;01/01/2024")
    assert not is_standard_format("# only comments")


def test_parse_standard_csv_rows() -> None:
    rows = parse_standard_csv(TEMPLATE, SourceType.BANK_ACCOUNT)

    assert [r.row_index for r in rows] == [2, 3, 4, 5, 6]
    assert [r.status for r in rows] == [
        RowStatus.OK,
        RowStatus.SKIPPED,
        RowStatus.ERROR,
        RowStatus.ERROR,
        RowStatus.OK,
    ]
    first = rows[0].parsed_expense
    assert first.amount == Decimal("-350.50")
    assert first.category == FixedCategory.FOOD
    assert first.transaction_date == date(2026, 1, 16)
    assert rows[1].reason == SkipReason.INCOME_POSITIVE_VALUE
    assert rows[2].requires_date_confirmation is True
    assert rows[3].reason == 'invalid date: "2026-13-40"'
    assert rows[3].requires_date_confirmation is False
    assert rows[4].parsed_expense.category == CustomCategory("gym-1")


def test_confirm_missing_dates_only_touches_flagged_rows() -> None:
    rows = parse_standard_csv(TEMPLATE, SourceType.BANK_ACCOUNT)
    confirmed = confirm_missing_dates(rows, date(2026, 2, 1))

    assert confirmed[0] is rows[0]
    assert confirmed[3] is rows[3]
    assert confirmed[2].status == RowStatus.OK
    assert confirmed[2].parsed_expense.transaction_date == date(2026, 2, 1)
    assert confirmed[2].parsed_expense.category == FixedCategory.TRANSPORT


def test_parse_standard_csv_without_data_lines() -> None:
    assert parse_standard_csv("# x\n" + TEMPLATE_HEADER) == []


def test_generate_csv_template_variants() -> None:
    bank = generate_csv_template(SourceType.BANK_ACCOUNT)
    card = generate_csv_template("credit_card")

    assert TEMPLATE_HEADER in bank.splitlines()
    assert TEMPLATE_HEADER_CREDIT_CARD in card.splitlines()
    assert TEMPLATE_HEADER not in card.splitlines()
    assert all(
        ln.startswith("#") or ln.startswith("data,") or ln.startswith("2026-")
        for ln in bank.splitlines()
    )
    assert is_standard_format(bank)


def test_template_round_trips_through_the_parser() -> None:
    rows = parse_standard_csv(generate_csv_template(SourceType.CREDIT_CARD), SourceType.CREDIT_CARD)

    assert [r.status for r in rows] == [RowStatus.OK, RowStatus.OK]
    assert rows[0].parsed_expense.amount == Decimal("-350.50")


def test_convert_bank_statement_and_render() -> None:
    text = (
        "Descrição;Valor;Data\n"
        "Supermercado Extra;-150,00;15/03/2024\n"
        "Salário;3000,00;01/03/2024"
    )
    result = convert_bank_statement(text, SourceType.BANK_ACCOUNT)

    assert (result.total, result.ok, result.skipped, result.errors) == (2, 1, 1, 0)
    assert result.total_expense == Decimal("150.00")
    assert result.converted[0].valor == Decimal("150.00")
    assert result.converted[0].categoria == "food"

    csv_text = generate_standard_csv(result.converted, SourceType.BANK_ACCOUNT)
    assert csv_text.splitlines() == [
        TEMPLATE_HEADER,
        "2024-03-15,Supermercado Extra,EXPENSE,150.00,food,",
    ]


def test_generate_standard_csv_quotes_commas() -> None:
    text = 'Data;Descrição;Valor\n15/03/2024;"Loja, Centro";-10,00\n16/03/2024;Loja Norte;-5,00'
    result = convert_bank_statement(text, SourceType.CREDIT_CARD)
    csv_text = generate_standard_csv(result.converted, SourceType.CREDIT_CARD)

    lines = csv_text.splitlines()
    assert lines[0] == TEMPLATE_HEADER_CREDIT_CARD
    assert lines[1] == '2024-03-15,"Loja, Centro",EXPENSE,10.00,other'
