"""Sign convention of credit-card statements.

Card issuers disagree on whether purchases are exported as positive or
negative values. :func:`resolve_polarity` decides it once per file by
majority vote over a sample; the resulting :class:`~statement_import.models.Polarity`
is passed read-only into the row classifier.
"""

from __future__ import annotations

from collections.abc import Sequence

from .logging_setup import get_logger
from .models import ColumnMappings, Polarity, RawRow, SourceType
from .row_filters import is_non_transaction_line, row_description, signed_amount

_SAMPLE_SIZE: int = 200

_logger = get_logger("statement_import.polarity")


def resolve_polarity(
    rows: Sequence[RawRow],
    mappings: ColumnMappings,
    start_index: int = 0,
) -> Polarity:
    """Count positive vs negative amounts over up to 200 rows from ``start_index``.

    Rows that are not transactions, have a zero or unreadable amount, or have
    no description are ignored. Ties (including an empty sample) resolve to
    ``purchases_are_positive=True``.
    """

    positives = 0
    negatives = 0
    for row in rows[start_index : start_index + _SAMPLE_SIZE]:
        if is_non_transaction_line(row, SourceType.CREDIT_CARD):
            continue
        amount = signed_amount(row, mappings)
        if not amount:
            continue
        if not row_description(row, mappings):
            continue
        if amount > 0:
            positives += 1
        else:
            negatives += 1

    polarity = Polarity(
        purchases_are_positive=positives >= negatives,
        positives=positives,
        negatives=negatives,
    )
    _logger.info(
        "polarity:resolved purchases_are_positive=%s positives=%d negatives=%d",
        polarity.purchases_are_positive,
        positives,
        negatives,
    )
    return polarity


__all__ = ["resolve_polarity"]
