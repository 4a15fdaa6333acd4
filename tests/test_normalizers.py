from statement_import.normalizers import merchant_fingerprint, normalize_text


def test_normalize_text_strips_accents_punctuation_and_noise() -> None:
    assert normalize_text("PIX Enviado - Padaria São João") == "padaria sao joao"
    assert normalize_text("Compra débito: FARMÁCIA*Drogasil") == "farmacia drogasil"


def test_normalize_text_is_total() -> None:
    assert normalize_text(None) == ""
    assert normalize_text("") == ""
    assert normalize_text(123) == ""
    assert normalize_text("*** --- ***") == ""


def test_fingerprint_ignores_reference_numbers() -> None:
    a = merchant_fingerprint("UBER *TRIP 12345678")
    b = merchant_fingerprint("UBER *TRIP 87654321")
    assert a == b == "uber trip"


def test_fingerprint_keeps_first_four_tokens() -> None:
    assert (
        merchant_fingerprint("Posto Shell Avenida Paulista 1000 Sao Paulo")
        == "posto shell avenida paulista"
    )


def test_fingerprint_drops_single_character_tokens() -> None:
    assert merchant_fingerprint("A B Mercado X Central") == "mercado central"


def test_fingerprint_falls_back_to_normalized_text() -> None:
    assert merchant_fingerprint("12345678") == "12345678"
    assert merchant_fingerprint("") == ""


def test_fingerprint_is_deterministic() -> None:
    desc = "PAG*JoseDaSilva Restaurante 998877"
    assert {merchant_fingerprint(desc) for _ in range(5)} == {merchant_fingerprint(desc)}
