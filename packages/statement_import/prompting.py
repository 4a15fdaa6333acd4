"""Prompt construction for the AI categorization fallback.

This module builds:
- The request payload ``{descriptions: [{id, description}], allowedCategories}``
  serialized with a fixed key order.
- The system and user prompts for the classification task.
- The strict ``response_format`` (JSON Schema) object for the OpenAI
  Responses API, whose enum is the fixed category vocabulary.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

from .categories import ALLOWED_CATEGORIES

BEGIN_MARKER = "BEGIN_TRANSACTIONS_JSON"
END_MARKER = "END_TRANSACTIONS_JSON"

_CATEGORY_HINTS: dict[str, str] = {
    "bills": "rent, condo fees, utilities, internet, phone",
    "food": "supermarkets, bakeries, restaurants, delivery apps",
    "leisure": "streaming, app stores, cinema, bars, travel",
    "shopping": "marketplaces, apparel, electronics, general retail",
    "transport": "ride hailing, fuel, parking, tolls, public transit",
    "health": "pharmacies, clinics, labs, gyms, health plans",
    "education": "schools, courses, books",
    "other": "bank fees, taxes, interest, or anything unclear",
}


def serialize_request(
    items: Sequence[tuple[str, str]],
    allowed_categories: Sequence[str] = ALLOWED_CATEGORIES,
) -> str:
    """Serialize ``(id, description)`` pairs into the request JSON object."""

    payload = {
        "descriptions": [{"id": i, "description": d} for i, d in items],
        "allowedCategories": list(allowed_categories),
    }
    return json.dumps(payload, ensure_ascii=False)


def build_system_instructions() -> str:
    return (
        "You categorize household expenses from Brazilian bank and credit card statements. "
        "Choose exactly one category per description from allowedCategories. Never invent "
        "categories. Use 'other' with low confidence when unsure. Output JSON only that "
        "conforms to the specified schema."
    )


def build_user_content(request_json: str) -> str:
    """User content with the request JSON between BEGIN/END markers."""

    lines = ["Categories:"]
    for code in ALLOWED_CATEGORIES:
        lines.append(f"- {code}: {_CATEGORY_HINTS.get(code, '')}")
    lines += [
        "",
        "For every description return its id, one category and a confidence in [0, 1].",
        "Descriptions are raw statement text: merchant names, card processor prefixes",
        "(e.g. 'PAG*', 'MP*'), installment markers and reference numbers.",
        "",
        BEGIN_MARKER,
        request_json,
        END_MARKER,
    ]
    return "\n".join(lines)


def build_response_format(
    allowed_categories: Sequence[str] = ALLOWED_CATEGORIES,
) -> ResponseFormatTextJSONSchemaConfigParam:
    """Return the strict JSON Schema response_format object.

    Schema shape::

        {"categories": [{"id": str, "category": <enum>, "confidence": 0..1}]}
    """

    codes = [c for c in dict.fromkeys(s.strip() for s in allowed_categories) if c]
    if not codes:
        raise ValueError("allowed_categories must contain at least one non-blank code")

    result: ResponseFormatTextJSONSchemaConfigParam = {
        "type": "json_schema",
        "name": "expense_categories",
        "schema": {
            "type": "object",
            "properties": {
                "categories": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {"type": "string"},
                            "category": {"type": "string", "enum": codes},
                            "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                        },
                        "required": ["id", "category", "confidence"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["categories"],
            "additionalProperties": False,
        },
        "strict": True,
    }
    return result


__all__ = [
    "BEGIN_MARKER",
    "END_MARKER",
    "build_response_format",
    "build_system_instructions",
    "build_user_content",
    "serialize_request",
]
