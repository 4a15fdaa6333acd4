"""Text canonicalization and merchant fingerprints.

``normalize_text`` is the shared canonical form used by the heuristic rule
table and by :func:`merchant_fingerprint`, the join key between transactions
and the household merchant cache. Both functions are total: any input that is
not a non-empty string yields ``""``.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

# Transactional noise that carries no merchant identity.
NOISE_TOKENS: frozenset[str] = frozenset(
    {
        "pix",
        "enviado",
        "recebido",
        "debito",
        "credito",
        "aut",
        "pagamento",
        "compra",
        "doc",
        "ted",
        "transferencia",
        "referencia",
        "pf",
        "pj",
        "pag",
        "valor",
        "ref",
        "id",
        "nr",
        "num",
        "nº",
    }
)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_LONG_DIGITS_RE = re.compile(r"\b\d{5,}\b")

_FINGERPRINT_TOKENS: int = 4
_FINGERPRINT_FALLBACK_LEN: int = 50


def _strip_accents(s: str) -> str:
    decomposed = unicodedata.normalize("NFD", s)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: Any) -> str:
    """Lowercase, strip accents and punctuation, drop noise tokens."""

    if not isinstance(text, str) or not text:
        return ""
    s = _strip_accents(text.lower())
    s = _NON_ALNUM_RE.sub(" ", s)
    tokens = [t for t in s.split() if t not in NOISE_TOKENS]
    return " ".join(tokens)


def merchant_fingerprint(description: Any) -> str:
    """Return a merchant key that ignores reference numbers and noise.

    Digit runs of five or more characters (authorization codes, account
    numbers) are removed, then the first four tokens of length two or more are
    kept. When no such token survives, the first 50 characters of the
    normalized text are used instead.
    """

    norm = normalize_text(description)
    if not norm:
        return ""
    without_refs = _LONG_DIGITS_RE.sub(" ", norm)
    tokens = [t for t in without_refs.split() if len(t) >= 2][:_FINGERPRINT_TOKENS]
    if tokens:
        return " ".join(tokens)
    return norm[:_FINGERPRINT_FALLBACK_LEN]


__all__ = ["NOISE_TOKENS", "merchant_fingerprint", "normalize_text"]
