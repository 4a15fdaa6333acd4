import pytest

from statement_import.categories import (
    CustomCategory,
    FixedCategory,
    category_code,
    category_from_label,
    infer_category,
    parse_category,
)
from statement_import.categorization import resolve_category, should_auto_apply
from statement_import.models import CategorizationRule, MatchType
from statement_import.rules import (
    BUILT_IN_RULES,
    apply_built_in_rules,
    apply_user_rules,
    match_user_rule,
    rule_sort_key,
)


def _rule(
    pattern: str,
    match_type: MatchType = MatchType.CONTAINS,
    category=FixedCategory.LEISURE,
    *,
    priority: int = 10,
    confidence: float = 0.9,
    flags: str | None = None,
    id: str = "r",
) -> CategorizationRule:
    return CategorizationRule(pattern, match_type, category, priority, confidence, flags, id)


def test_builtin_uber_is_transport_at_095() -> None:
    match = resolve_category("UBER *TRIP 12345678", {}, [])

    assert match is not None
    assert match.category == FixedCategory.TRANSPORT
    assert match.confidence == pytest.approx(0.95)
    assert match.source == "builtin"
    assert match.rule_id == "transport-uber-99"


def test_user_rule_beats_builtin() -> None:
    rule = _rule("NETFLIX", category=FixedCategory.LEISURE, id="user-netflix")
    match = resolve_category("NETFLIX.COM 0800", {}, [rule])

    assert match.source == "rule"
    assert match.rule_id == "user-netflix"
    assert match.category == FixedCategory.LEISURE


def test_user_rule_custom_category_beats_builtin() -> None:
    rule = _rule("uber", category=CustomCategory("work-trips"), id="u1")
    match = resolve_category("UBER *TRIP 12345678", {}, [rule])

    assert match.category == CustomCategory("work-trips")


def test_cache_beats_rules() -> None:
    rule = _rule("uber", category=FixedCategory.OTHER)
    match = resolve_category("UBER *TRIP 999999", {"uber trip": FixedCategory.FOOD}, [rule])

    assert match.source == "cache"
    assert match.category == FixedCategory.FOOD
    assert match.confidence == pytest.approx(0.95)


def test_nothing_matches() -> None:
    assert resolve_category("XPTO 123", {}, []) is None


@pytest.mark.parametrize(
    ("match_type", "pattern", "description", "expected"),
    [
        (MatchType.EQUALS, "netflix", "NETFLIX", 7),
        (MatchType.EQUALS, "netflix", "NETFLIX.COM", None),
        (MatchType.STARTS_WITH, "posto", "POSTO SHELL", 5),
        (MatchType.STARTS_WITH, "shell", "POSTO SHELL", None),
        (MatchType.CONTAINS, "shell", "POSTO SHELL 123", 5),
        (MatchType.REGEX, r"ifd\*\w+", "IFD*RESTAURANTE", 15),
        (MatchType.REGEX, "([", "anything", None),
        (MatchType.CONTAINS, "  ", "anything", None),
    ],
)
def test_match_user_rule(match_type, pattern, description, expected) -> None:
    assert match_user_rule(_rule(pattern, match_type), description) == expected


def test_regex_flags_default_to_case_insensitive() -> None:
    assert match_user_rule(_rule("ifood", MatchType.REGEX), "IFOOD") == 5
    assert match_user_rule(_rule("ifood", MatchType.REGEX, flags=""), "IFOOD") is None


def test_tie_break_strength_then_confidence_then_length() -> None:
    contains = _rule("posto", MatchType.CONTAINS, FixedCategory.TRANSPORT, priority=50, id="c")
    equals = _rule("posto shell", MatchType.EQUALS, FixedCategory.OTHER, priority=1, id="e")
    assert apply_user_rules("POSTO SHELL", [contains, equals]).rule_id == "e"

    low = _rule("posto", confidence=0.7, id="low")
    high = _rule("shell", confidence=0.95, id="high")
    assert apply_user_rules("POSTO SHELL", [low, high]).rule_id == "high"

    short = _rule("posto", id="short")
    longer = _rule("posto sh", id="long")
    assert apply_user_rules("POSTO SHELL", [short, longer]).rule_id == "long"

    assert rule_sort_key(equals, 3) > rule_sort_key(contains, 30)


def test_full_tie_goes_to_higher_priority() -> None:
    first = _rule("shell", priority=5, id="p5")
    second = _rule("shell", priority=20, id="p20")
    assert apply_user_rules("POSTO SHELL", [first, second]).rule_id == "p20"


def test_rules_without_category_or_priority_are_ignored() -> None:
    no_cat = _rule("shell", category=None, id="none")
    zero = _rule("shell", priority=0, id="zero")
    assert apply_user_rules("POSTO SHELL", [no_cat, zero]) is None


def test_stronger_rule_without_category_does_not_shadow_a_usable_one() -> None:
    no_cat = _rule(
        "posto shell", MatchType.EQUALS, None, priority=99, confidence=0.99, id="none"
    )
    usable = _rule("shell", category=FixedCategory.TRANSPORT, priority=1, id="usable")

    match = apply_user_rules("POSTO SHELL", [no_cat, usable])

    assert match is not None
    assert match.rule_id == "usable"
    assert match.category == FixedCategory.TRANSPORT


def test_builtin_table_is_priority_ordered_and_fixed_only() -> None:
    priorities = [r.priority for r in BUILT_IN_RULES]
    assert priorities == sorted(priorities, reverse=True)
    assert all(isinstance(r.category, FixedCategory) for r in BUILT_IN_RULES)


@pytest.mark.parametrize(
    ("description", "category"),
    [
        ("IFOOD *RESTAURANTE", FixedCategory.FOOD),
        ("DROGASIL 123", FixedCategory.HEALTH),
        ("Aluguel março", FixedCategory.BILLS),
        ("SPOTIFY P1234", FixedCategory.LEISURE),
        ("IOF COMPRA EXTERIOR", FixedCategory.OTHER),
    ],
)
def test_builtin_examples(description: str, category: FixedCategory) -> None:
    match = apply_built_in_rules(description)
    assert match is not None and match.category == category


def test_auto_apply_threshold() -> None:
    assert should_auto_apply(0.85)
    assert should_auto_apply(0.95)
    assert not should_auto_apply(0.84)


def test_category_parsing_and_codes() -> None:
    assert parse_category("FOOD") == FixedCategory.FOOD
    assert parse_category("custom:42") == CustomCategory("42")
    assert parse_category("custom:") is None
    assert parse_category("groceries") is None
    assert parse_category(None) is None
    assert category_code(CustomCategory("42")) == "custom:42"
    assert category_code(FixedCategory.BILLS) == "bills"
    assert category_from_label(" Alimentação ") == FixedCategory.FOOD
    assert category_from_label("Supermercado Extra") is None
    assert infer_category("Supermercado Extra") == FixedCategory.FOOD
    assert infer_category("") == FixedCategory.OTHER
