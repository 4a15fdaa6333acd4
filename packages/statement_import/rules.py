"""Deterministic categorization rules.

Two rule sources:

- **User rules** (:class:`~statement_import.models.CategorizationRule`), owned
  by the household settings and read-only here. Rules are considered in
  descending priority; among the rules that match, the winner is the maximum
  of :func:`rule_sort_key` (match-type strength, then declared confidence,
  then match length). On a full tie the higher-priority rule wins.
- **Built-in heuristics** (:data:`BUILT_IN_RULES`), a fixed table of regexes
  over the normalized-plus-raw description. Built-ins only ever produce fixed
  categories.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from .categories import Category, FixedCategory
from .logging_setup import get_logger
from .models import CategorizationRule, CategoryMatch, MatchType
from .normalizers import normalize_text

_logger = get_logger("statement_import.rules")

# Higher means more specific.
MATCH_TYPE_STRENGTH: dict[MatchType, int] = {
    MatchType.EQUALS: 4,
    MatchType.STARTS_WITH: 3,
    MatchType.CONTAINS: 2,
    MatchType.REGEX: 1,
}

_REGEX_FLAG_MAP: dict[str, re.RegexFlag] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


# ---------------------------------------------------------------------------
# User rules
# ---------------------------------------------------------------------------


def _compile_flags(flags: str | None) -> re.RegexFlag:
    out = re.RegexFlag(0)
    for ch in flags if flags is not None else "i":
        out |= _REGEX_FLAG_MAP.get(ch, re.RegexFlag(0))
    return out


def match_user_rule(rule: CategorizationRule, description: str) -> int | None:
    """Return the match length when ``rule`` matches ``description``, else ``None``.

    ``equals``/``startsWith``/``contains`` compare uppercased text and report
    the pattern length. ``regex`` runs against the raw description and
    reports the length of the matched span. Invalid regex patterns never
    match.
    """

    pattern = rule.pattern.strip()
    if not pattern:
        return None
    upper = description.upper()
    pat_upper = pattern.upper()
    if rule.match_type == MatchType.EQUALS:
        return len(pattern) if upper == pat_upper else None
    if rule.match_type == MatchType.STARTS_WITH:
        return len(pattern) if upper.startswith(pat_upper) else None
    if rule.match_type == MatchType.CONTAINS:
        return len(pattern) if pat_upper in upper else None
    try:
        m = re.search(pattern, description, _compile_flags(rule.flags))
    except re.error:
        _logger.debug("rules:invalid_regex rule_id=%s pattern=%r", rule.id, pattern)
        return None
    return len(m.group(0)) if m else None


def rule_sort_key(rule: CategorizationRule, match_length: int) -> tuple[int, float, int]:
    """Ordering of matching user rules; the maximum wins."""

    return (MATCH_TYPE_STRENGTH.get(rule.match_type, 0), rule.confidence, match_length)


def _eligible(
    rules: Iterable[CategorizationRule],
) -> list[tuple[CategorizationRule, Category]]:
    usable = [(r, r.category) for r in rules if r.category is not None and r.priority != 0]
    # Stable sort keeps input order among equal priorities.
    return sorted(usable, key=lambda rc: rc[0].priority, reverse=True)


def apply_user_rules(description: str, rules: Iterable[CategorizationRule]) -> CategoryMatch | None:
    """Return the winning user rule as a :class:`CategoryMatch`, or ``None``.

    Rules with no usable category or a zero priority are ignored.
    """

    text = description or ""
    matches: list[tuple[CategorizationRule, Category, int]] = []
    for rule, category in _eligible(rules):
        length = match_user_rule(rule, text)
        if length is not None:
            matches.append((rule, category, length))
    if not matches:
        return None
    # max() keeps the first of equal keys, i.e. the higher-priority rule.
    best, category, length = max(matches, key=lambda m: rule_sort_key(m[0], m[2]))
    return CategoryMatch(
        category=category,
        confidence=best.confidence,
        source="rule",
        rule_id=best.id,
        match_length=length,
    )


# ---------------------------------------------------------------------------
# Built-in heuristics
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BuiltInRule:
    id: str
    category: FixedCategory
    priority: int
    pattern: re.Pattern[str]
    confidence: float


def _rule(
    id: str, category: FixedCategory, priority: int, pattern: str, confidence: float
) -> BuiltInRule:
    return BuiltInRule(id, category, priority, re.compile(pattern, re.I), confidence)


_F = FixedCategory

_TABLE: tuple[BuiltInRule, ...] = (
    # transport
    _rule(
        "transport-uber-99",
        _F.TRANSPORT,
        100,
        r"\b(uber|99\s*pop|99\s*app|in\s*driver)\b",
        0.95,
    ),
    _rule(
        "transport-gas",
        _F.TRANSPORT,
        90,
        r"\b(posto|gasolina|combust[ií]vel|shell|ipiranga|br\s*distribuidora)\b",
        0.9,
    ),
    _rule(
        "transport-parking",
        _F.TRANSPORT,
        90,
        r"\b(estacionamento|sem\s*parar|parking|ped[aá]gio)\b",
        0.9,
    ),
    _rule(
        "transport-bus",
        _F.TRANSPORT,
        85,
        r"\b([oô]nibus|metro|metr[oô]|bilhete\s*[uú]nico)\b",
        0.85,
    ),
    # food
    _rule("food-ifood", _F.FOOD, 100, r"\b(ifood|uber\s*eats|rappi)\b", 0.95),
    _rule(
        "food-market",
        _F.FOOD,
        95,
        r"\b(supermercado|mercado|padaria|a[cç]ougue|hortifruti|atacad[aã]o)\b",
        0.9,
    ),
    _rule(
        "food-restaurant",
        _F.FOOD,
        90,
        r"\b(restaurante|lanchonete|lanche|pizzaria|hamburgueria|caf[eé]|confeitaria)\b",
        0.85,
    ),
    _rule("food-delivery", _F.FOOD, 85, r"\b(delivery|entrega)\b", 0.75),
    # bills
    _rule("bills-rent", _F.BILLS, 95, r"\b(aluguel|condominio|condom[ií]nio)\b", 0.95),
    _rule("bills-utils", _F.BILLS, 95, r"\b(luz|energia|agua|[aá]gua|enel|cpfl|sabesp)\b", 0.9),
    _rule(
        "bills-internet",
        _F.BILLS,
        90,
        r"\b(internet|banda\s*larga|net\s*virtua|oi\s*fibra|vivo\s*fibra|claro\s*internet)\b",
        0.9,
    ),
    _rule("bills-phone", _F.BILLS, 90, r"\b(telefone|celular|tim|vivo|claro|oi)\b", 0.85),
    # health
    _rule(
        "health-pharmacy",
        _F.HEALTH,
        95,
        r"\b(farm[aá]cia|drogaria|droga\s*raia|drogasil|pacheco)\b",
        0.95,
    ),
    _rule(
        "health-medical",
        _F.HEALTH,
        90,
        r"\b(m[eé]dico|hospital|cl[ií]nica|laborat[oó]rio|exame|consulta)\b",
        0.9,
    ),
    _rule("health-gym", _F.HEALTH, 85, r"\b(academia|smart\s*fit|bio\s*ritmo)\b", 0.85),
    # education
    _rule(
        "education-school",
        _F.EDUCATION,
        90,
        r"\b(escola|faculdade|universidade|curso|ingles|idioma)\b",
        0.9,
    ),
    _rule("education-books", _F.EDUCATION, 85, r"\b(livraria|livro|amazon\s*kindle)\b", 0.8),
    # leisure
    _rule(
        "leisure-streaming",
        _F.LEISURE,
        100,
        r"\b(netflix|spotify|disney\s*plus|amazon\s*prime|hbo|youtube\s*premium|deezer)\b",
        0.95,
    ),
    _rule("leisure-apple", _F.LEISURE, 95, r"\b(app\s*store|apple\s*\.com|itunes)\b", 0.9),
    _rule("leisure-google", _F.LEISURE, 95, r"\b(google\s*play|google\s*one)\b", 0.9),
    _rule("leisure-cinema", _F.LEISURE, 85, r"\b(cinema|cin[eé]polis|kinoplex|movie)\b", 0.85),
    _rule("leisure-bar", _F.LEISURE, 80, r"\b(bar|pub|cervejaria)\b", 0.75),
    # shopping
    _rule(
        "shopping-amazon",
        _F.SHOPPING,
        95,
        r"\b(amazon|mercado\s*livre|magazine\s*luiza)\b",
        0.9,
    ),
    _rule(
        "shopping-clothes",
        _F.SHOPPING,
        85,
        r"\b(roupa|sapato|loja|zara|renner|cea|riachuelo)\b",
        0.8,
    ),
    # taxes and fees stay in "other"
    _rule("other-iof", _F.OTHER, 90, r"\b(iof|tarifa|juros|anuidade|multa|taxa)\b", 0.85),
)

# Priority order; ties keep table order.
BUILT_IN_RULES: tuple[BuiltInRule, ...] = tuple(
    sorted(_TABLE, key=lambda r: r.priority, reverse=True)
)


def apply_built_in_rules(description: str) -> CategoryMatch | None:
    """Return the highest-priority built-in rule matching ``description``."""

    if not description:
        return None
    text = f"{normalize_text(description)} {description}".lower()
    for rule in BUILT_IN_RULES:
        if rule.pattern.search(text):
            return CategoryMatch(
                category=rule.category,
                confidence=rule.confidence,
                source="builtin",
                rule_id=rule.id,
            )
    return None


__all__ = [
    "BUILT_IN_RULES",
    "BuiltInRule",
    "MATCH_TYPE_STRENGTH",
    "apply_built_in_rules",
    "apply_user_rules",
    "match_user_rule",
    "rule_sort_key",
]
