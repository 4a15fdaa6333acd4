# ruff: noqa: I001
"""Household merchant cache: ``(household_id, fingerprint) -> category``.

The cache is a hint, not a source of truth. Writes are last-writer-wins
upserts on the ``(household_id, fingerprint)`` key; concurrent runs for the
same household may race on one fingerprint and the later write stands.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.models.finance import MerchantCategoryCache
from .categories import Category, category_code, parse_category
from .logging_setup import get_logger
from .persistence import dialect_insert

_logger = get_logger("statement_import.cache")

# Entries come only from rule matches and manual edits; AI output is never cached.
type CacheSource = Literal["manual", "rule"]

# Confidence reported for any cache hit, regardless of the stored value.
CACHE_HIT_CONFIDENCE: float = 0.95


def load_cache(
    session: Session,
    household_id: str,
    fingerprints: Iterable[str],
) -> dict[str, Category]:
    """Return cached categories for the given fingerprints.

    Entries whose stored category cannot be parsed are left out.
    """

    wanted = sorted({fp for fp in fingerprints if fp})
    if not wanted:
        return {}
    rows = session.execute(
        select(MerchantCategoryCache.fingerprint, MerchantCategoryCache.category).where(
            MerchantCategoryCache.household_id == household_id,
            MerchantCategoryCache.fingerprint.in_(wanted),
        )
    ).all()
    out: dict[str, Category] = {}
    for fp, raw in rows:
        cat = parse_category(raw)
        if cat is None:
            _logger.debug("cache:unparseable fingerprint=%s category=%r", fp, raw)
            continue
        out[fp] = cat
    _logger.debug(
        "cache:load household=%s requested=%d hits=%d", household_id, len(wanted), len(out)
    )
    return out


def upsert_cache_entry(
    session: Session,
    *,
    household_id: str,
    fingerprint: str,
    category: Category,
    confidence: float,
    source: CacheSource,
) -> None:
    """Insert or overwrite the cache entry for ``(household_id, fingerprint)``."""

    if not fingerprint:
        return
    now = func.now()
    stmt = dialect_insert(session, MerchantCategoryCache).values(
        household_id=household_id,
        fingerprint=fingerprint,
        category=category_code(category),
        confidence=confidence,
        source=source,
        hits=1,
        last_used_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[MerchantCategoryCache.household_id, MerchantCategoryCache.fingerprint],
        set_={
            "category": stmt.excluded.category,
            "confidence": stmt.excluded.confidence,
            "source": stmt.excluded.source,
            "hits": MerchantCategoryCache.hits + 1,
            "last_used_at": now,
            "updated_at": now,
        },
    )
    session.execute(stmt)


__all__ = [
    "CACHE_HIT_CONFIDENCE",
    "CacheSource",
    "load_cache",
    "upsert_cache_entry",
]
