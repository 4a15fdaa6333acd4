"""Local categorization: merchant cache, user rules, built-in heuristics.

Resolution order for one description (first hit wins):

1. Merchant cache keyed by :func:`~statement_import.normalizers.merchant_fingerprint`
   (always reported at confidence 0.95).
2. User rules (:func:`~statement_import.rules.apply_user_rules`).
3. Built-in heuristics (:func:`~statement_import.rules.apply_built_in_rules`).

A match auto-applies when its confidence reaches
:data:`~statement_import.models.AUTO_APPLY_THRESHOLD`; below that it is only a
suggestion. Transactions whose category is not ``other`` are never selected,
so manual categorizations are never touched.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from .cache import CACHE_HIT_CONFIDENCE, load_cache, upsert_cache_entry
from .categories import Category
from .logging_setup import get_logger
from .models import (
    AUTO_APPLY_THRESHOLD,
    CategorizationRule,
    CategoryMatch,
    CategorySuggestion,
    LocalCategorizeResult,
)
from .normalizers import merchant_fingerprint
from .persistence import UncategorizedTransaction, load_rules, load_uncategorized, update_category
from .rules import apply_built_in_rules, apply_user_rules

_logger = get_logger("statement_import.categorization")

# Confidence stored when a rule decision back-fills the cache.
_CACHE_BACKFILL_CONFIDENCE: float = 0.95


def resolve_category(
    description: str,
    cache: Mapping[str, Category],
    rules: Sequence[CategorizationRule],
) -> CategoryMatch | None:
    """Resolve ``description`` through cache, user rules and built-ins."""

    fp = merchant_fingerprint(description)
    if fp and fp in cache:
        return CategoryMatch(category=cache[fp], confidence=CACHE_HIT_CONFIDENCE, source="cache")
    return apply_user_rules(description, rules) or apply_built_in_rules(description)


def should_auto_apply(confidence: float) -> bool:
    return confidence >= AUTO_APPLY_THRESHOLD


@dataclass(slots=True)
class LocalPass:
    """Outcome of the cache/rule pass over a set of uncategorized rows."""

    applied_by_cache: int = 0
    applied_by_rules: int = 0
    unresolved: list[UncategorizedTransaction] = field(default_factory=list)
    suggestions: list[CategorySuggestion] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def applied(self) -> int:
        return self.applied_by_cache + self.applied_by_rules


def run_local_pass(
    session: Session,
    household_id: str,
    rows: Iterable[UncategorizedTransaction],
) -> LocalPass:
    """Apply cache/rule/built-in decisions to ``rows``.

    Every resolution finishes before this returns; rows nothing resolved are
    handed back in ``unresolved`` for the AI fallback. Rule and built-in
    applies back-fill the merchant cache with source ``rule``.
    """

    rows = list(rows)
    out = LocalPass()
    if not rows:
        return out
    fingerprints = {tx.id: merchant_fingerprint(tx.description) for tx in rows}
    cache = load_cache(session, household_id, fingerprints.values())
    rules = load_rules(session, household_id)

    for tx in rows:
        match = resolve_category(tx.description, cache, rules)
        if match is None:
            out.unresolved.append(tx)
            continue
        if not should_auto_apply(match.confidence):
            out.suggestions.append(
                CategorySuggestion(
                    transaction_id=tx.id,
                    description=tx.description,
                    category=match.category,
                    confidence=match.confidence,
                    source=match.source,
                )
            )
            continue
        if not update_category(
            session, household_id=household_id, transaction_id=tx.id, category=match.category
        ):
            out.errors.append(f"failed to update {tx.id}")
            continue
        if match.source == "cache":
            out.applied_by_cache += 1
            continue
        out.applied_by_rules += 1
        upsert_cache_entry(
            session,
            household_id=household_id,
            fingerprint=fingerprints[tx.id],
            category=match.category,
            confidence=_CACHE_BACKFILL_CONFIDENCE,
            source="rule",
        )
    return out


def categorize_local(
    session: Session,
    household_id: str,
    transaction_ids: Iterable[int] | None = None,
) -> LocalCategorizeResult:
    """Categorize the household's ``other`` transactions without any AI call."""

    rows = load_uncategorized(session, household_id, transaction_ids)
    local = run_local_pass(session, household_id, rows)
    result = LocalCategorizeResult(
        applied=local.applied,
        skipped=len(rows) - local.applied - len(local.errors),
        errors=local.errors,
    )
    _logger.info(
        "categorize:local household=%s candidates=%d applied=%d skipped=%d errors=%d",
        household_id,
        len(rows),
        result.applied,
        result.skipped,
        len(result.errors),
    )
    return result


__all__ = [
    "LocalPass",
    "categorize_local",
    "resolve_category",
    "run_local_pass",
    "should_auto_apply",
]
