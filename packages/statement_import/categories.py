"""Expense category vocabulary.

A category is either one of the fixed application categories
(:class:`FixedCategory`) or an opaque household-defined category referenced as
``"custom:<id>"`` (:class:`CustomCategory`). Built-in heuristics and the AI
fallback only ever produce fixed categories; the merchant cache and user rules
may carry either kind and custom values are accepted verbatim.

Notes
-----
The keyword vocabulary below serves two purposes: translating an explicit
category cell from a statement (``"Alimentação"``, ``"transport"``) and a last
resort inference over the transaction description. Keyword order matters for
inference (first substring hit wins).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

CUSTOM_PREFIX = "custom:"


class FixedCategory(StrEnum):
    BILLS = "bills"
    FOOD = "food"
    LEISURE = "leisure"
    SHOPPING = "shopping"
    TRANSPORT = "transport"
    HEALTH = "health"
    EDUCATION = "education"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class CustomCategory:
    """Household-defined category; ``id`` is opaque and never validated."""

    id: str

    def __str__(self) -> str:
        return f"{CUSTOM_PREFIX}{self.id}"


type Category = FixedCategory | CustomCategory

ALLOWED_CATEGORIES: tuple[str, ...] = tuple(c.value for c in FixedCategory)


def parse_category(value: Any) -> Category | None:
    """Return a :data:`Category` for ``value`` or ``None`` when unusable.

    Accepts existing category objects, fixed codes (case-insensitive) and
    ``custom:<id>`` strings. Anything else returns ``None``.
    """

    if isinstance(value, (FixedCategory, CustomCategory)):
        return value
    if not isinstance(value, str):
        return None
    s = value.strip()
    if not s:
        return None
    if s.startswith(CUSTOM_PREFIX):
        custom_id = s[len(CUSTOM_PREFIX) :].strip()
        return CustomCategory(custom_id) if custom_id else None
    try:
        return FixedCategory(s.lower())
    except ValueError:
        return None


def category_code(category: Category) -> str:
    """Storage representation of a category (``"food"``, ``"custom:<id>"``)."""

    return str(category) if isinstance(category, CustomCategory) else category.value


# Keyword → category, Portuguese and English. Insertion order is significant.
CATEGORY_KEYWORDS: dict[str, FixedCategory] = {
    "alimentação": FixedCategory.FOOD,
    "alimentacao": FixedCategory.FOOD,
    "comida": FixedCategory.FOOD,
    "mercado": FixedCategory.FOOD,
    "supermercado": FixedCategory.FOOD,
    "restaurante": FixedCategory.FOOD,
    "ifood": FixedCategory.FOOD,
    "uber eats": FixedCategory.FOOD,
    "padaria": FixedCategory.FOOD,
    "transporte": FixedCategory.TRANSPORT,
    "uber": FixedCategory.TRANSPORT,
    "99": FixedCategory.TRANSPORT,
    "combustível": FixedCategory.TRANSPORT,
    "combustivel": FixedCategory.TRANSPORT,
    "gasolina": FixedCategory.TRANSPORT,
    "posto": FixedCategory.TRANSPORT,
    "estacionamento": FixedCategory.TRANSPORT,
    "moradia": FixedCategory.BILLS,
    "aluguel": FixedCategory.BILLS,
    "casa": FixedCategory.BILLS,
    "condomínio": FixedCategory.BILLS,
    "condominio": FixedCategory.BILLS,
    "lazer": FixedCategory.LEISURE,
    "entretenimento": FixedCategory.LEISURE,
    "diversão": FixedCategory.LEISURE,
    "cinema": FixedCategory.LEISURE,
    "netflix": FixedCategory.LEISURE,
    "spotify": FixedCategory.LEISURE,
    "saúde": FixedCategory.HEALTH,
    "saude": FixedCategory.HEALTH,
    "farmácia": FixedCategory.HEALTH,
    "farmacia": FixedCategory.HEALTH,
    "médico": FixedCategory.HEALTH,
    "medico": FixedCategory.HEALTH,
    "educação": FixedCategory.EDUCATION,
    "educacao": FixedCategory.EDUCATION,
    "curso": FixedCategory.EDUCATION,
    "escola": FixedCategory.EDUCATION,
    "faculdade": FixedCategory.EDUCATION,
    "livro": FixedCategory.EDUCATION,
    "compras": FixedCategory.SHOPPING,
    "roupas": FixedCategory.SHOPPING,
    "vestuário": FixedCategory.SHOPPING,
    "amazon": FixedCategory.SHOPPING,
    "mercado livre": FixedCategory.SHOPPING,
    "magazine": FixedCategory.SHOPPING,
    "contas": FixedCategory.BILLS,
    "conta": FixedCategory.BILLS,
    "luz": FixedCategory.BILLS,
    "água": FixedCategory.BILLS,
    "agua": FixedCategory.BILLS,
    "internet": FixedCategory.BILLS,
    "telefone": FixedCategory.BILLS,
    "celular": FixedCategory.BILLS,
    "energia": FixedCategory.BILLS,
    "food": FixedCategory.FOOD,
    "transport": FixedCategory.TRANSPORT,
    "housing": FixedCategory.BILLS,
    "entertainment": FixedCategory.LEISURE,
    "health": FixedCategory.HEALTH,
    "education": FixedCategory.EDUCATION,
    "shopping": FixedCategory.SHOPPING,
    "bills": FixedCategory.BILLS,
    "leisure": FixedCategory.LEISURE,
    "outros": FixedCategory.OTHER,
    "outro": FixedCategory.OTHER,
    "other": FixedCategory.OTHER,
    "salário": FixedCategory.OTHER,
    "salario": FixedCategory.OTHER,
    "renda": FixedCategory.OTHER,
    "pix recebido": FixedCategory.OTHER,
    "transferência recebida": FixedCategory.OTHER,
}


def category_from_label(label: str | None) -> FixedCategory | None:
    """Translate an explicit category cell (exact keyword match) into a category."""

    if not label:
        return None
    return CATEGORY_KEYWORDS.get(label.strip().lower())


def infer_category(description: str) -> FixedCategory:
    """Keyword inference over ``description``; ``other`` when nothing matches."""

    lower = (description or "").lower()
    for keyword, category in CATEGORY_KEYWORDS.items():
        if keyword in lower:
            return category
    return FixedCategory.OTHER


__all__ = [
    "ALLOWED_CATEGORIES",
    "CATEGORY_KEYWORDS",
    "CUSTOM_PREFIX",
    "Category",
    "CustomCategory",
    "FixedCategory",
    "category_code",
    "category_from_label",
    "infer_category",
    "parse_category",
]
