from dataclasses import dataclass

import pytest

from statement_import.institutions import (
    InferredInstitution,
    infer_institution_from_filename,
    match_institution,
)


@dataclass
class _Rec:
    id: int
    name: str


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("fatura-nubank-2024-03.csv", InferredInstitution("card", "nubank")),
        ("Extrato_Itaú.csv", InferredInstitution("account", "itau")),
        ("Cartão Santander.CSV", InferredInstitution("card", "santander")),
        ("extrato banco do brasil.txt", InferredInstitution("account", "banco do brasil")),
        ("xyz_bank.csv", InferredInstitution("account", "xyz")),
    ],
)
def test_infer_institution_from_filename(filename: str, expected: InferredInstitution) -> None:
    assert infer_institution_from_filename(filename) == expected


@pytest.mark.parametrize("filename", ["", None, "a.csv", "-.csv"])
def test_infer_institution_needs_a_usable_name(filename) -> None:
    assert infer_institution_from_filename(filename) is None


def test_match_single_account_is_high_confidence() -> None:
    accounts = [_Rec(1, "Nubank Conta"), _Rec(2, "Itaú Corrente")]
    cards = [_Rec(10, "Nubank Mastercard")]

    bank = match_institution(InferredInstitution("account", "nubank"), accounts, cards)
    card = match_institution(InferredInstitution("card", "nubank"), accounts, cards)
    itau = match_institution(InferredInstitution("account", "itau"), accounts, cards)

    assert (bank.confidence, bank.account_id, bank.card_id) == ("high", 1, None)
    assert (card.confidence, card.account_id, card.card_id) == ("high", None, 10)
    assert (itau.confidence, itau.account_id) == ("high", 2)


def test_match_several_candidates_is_low_confidence() -> None:
    cards = [_Rec(10, "Nubank Black"), _Rec(11, "Nubank Gold"), _Rec(12, "Inter")]

    match = match_institution(InferredInstitution("card", "nubank"), [], cards)

    assert match.confidence == "low"
    assert match.card_id is None
    assert match.suggested_ids == (10, 11)
    assert match.matched_name == "Nubank Black, Nubank Gold"


def test_match_nothing() -> None:
    accounts = [_Rec(1, "Bradesco"), _Rec(2, "")]
    nubank = InferredInstitution("account", "nubank")
    assert match_institution(nubank, accounts, []).confidence == "none"
    assert match_institution(None, accounts, []).confidence == "none"
    assert match_institution(InferredInstitution("account", ""), accounts, []).confidence == "none"
