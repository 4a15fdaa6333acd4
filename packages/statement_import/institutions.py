"""Infer the bank or card behind a statement from its file name.

Pure and offline. The inferred name is then matched against the household's
accounts (bank statements) or credit cards (card invoices) so an import can
be linked without asking the user.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

type InstitutionKind = Literal["account", "card"]
type MatchConfidence = Literal["high", "low", "none"]

# Canonical name → aliases accepted in file names. Dict order is match order.
INSTITUTION_ALIASES: dict[str, tuple[str, ...]] = {
    "itau": ("itau", "itaú", "itau unibanco"),
    "nubank": ("nubank", "nu", "roxinho"),
    "santander": ("santander",),
    "banco do brasil": ("bb", "banco do brasil", "banco do brasil bb"),
    "bradesco": ("bradesco",),
    "inter": ("inter", "banco inter"),
    "caixa": ("caixa", "cef", "caixa economica"),
    "picpay": ("picpay",),
    "mercado pago": ("mercadopago", "mercado pago", "mp"),
    "c6": ("c6", "c6 bank", "c6bank"),
    "nexo": ("nexo",),
    "sicoob": ("sicoob",),
    "sicredi": ("sicredi",),
}

CARD_KEYWORDS: tuple[str, ...] = (
    "fatura",
    "card",
    "cartao",
    "cartão",
    "credit",
    "credito",
    "crédito",
)

_EXTENSION_RE = re.compile(r"\.(csv|txt)$", re.I)
_SEPARATORS_RE = re.compile(r"[_\-.]+")


def _normalize(s: str) -> str:
    decomposed = unicodedata.normalize("NFD", s.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _SEPARATORS_RE.sub(" ", stripped).strip()


@dataclass(frozen=True, slots=True)
class InferredInstitution:
    kind: InstitutionKind
    name: str


def infer_institution_from_filename(filename: str | None) -> InferredInstitution | None:
    """Return the institution suggested by ``filename`` or ``None``.

    ``kind`` is ``"card"`` when the name mentions an invoice or card keyword.
    Without a known alias the first word (two characters or more) is used.
    """

    if not filename or not isinstance(filename, str):
        return None
    normalized = _normalize(_EXTENSION_RE.sub("", filename).strip())
    if len(normalized) < 2:
        return None

    kind: InstitutionKind = "card" if any(kw in normalized for kw in CARD_KEYWORDS) else "account"
    for canonical, aliases in INSTITUTION_ALIASES.items():
        if any(a in normalized or _normalize(a) in normalized for a in aliases):
            return InferredInstitution(kind, canonical)

    parts = normalized.split()
    if parts and len(parts[0]) >= 2:
        return InferredInstitution(kind, parts[0])
    return None


class _Named(Protocol):
    id: int
    name: str


@dataclass(frozen=True, slots=True)
class InstitutionMatch:
    """Result of matching an inferred institution to household records.

    ``high`` carries the single matched id; ``low`` lists every candidate
    without choosing one.
    """

    confidence: MatchConfidence
    account_id: int | None = None
    card_id: int | None = None
    matched_name: str | None = None
    suggested_ids: tuple[int, ...] = ()


def match_institution(
    inferred: InferredInstitution | None,
    accounts: Sequence[_Named],
    cards: Sequence[_Named],
) -> InstitutionMatch:
    """Match ``inferred`` against account names (bank) or card names (card)."""

    if inferred is None or not inferred.name:
        return InstitutionMatch("none")
    wanted = _normalize(inferred.name)
    pool = cards if inferred.kind == "card" else accounts
    matches = []
    for r in pool:
        name = _normalize(r.name or "")
        if name and (wanted in name or name in wanted):
            matches.append(r)
    if len(matches) == 1:
        only = matches[0]
        if inferred.kind == "card":
            return InstitutionMatch("high", card_id=only.id, matched_name=only.name)
        return InstitutionMatch("high", account_id=only.id, matched_name=only.name)
    if matches:
        return InstitutionMatch(
            "low",
            matched_name=", ".join(m.name for m in matches),
            suggested_ids=tuple(m.id for m in matches),
        )
    return InstitutionMatch("none")


__all__ = [
    "CARD_KEYWORDS",
    "INSTITUTION_ALIASES",
    "InferredInstitution",
    "InstitutionMatch",
    "infer_institution_from_filename",
    "match_institution",
]
