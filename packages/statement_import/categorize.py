"""Household categorization run: local pass first, AI fallback for the rest.

Public API:
    - :func:`classify_with_ai`
    - :func:`categorize_transactions`

No side effects occur at import time (no client creation, no logging handler
attachment, no environment reads).
"""

from __future__ import annotations

import json
import os
import random
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, NamedTuple

from openai import OpenAI, OpenAIError
from openai.types.responses import ResponseTextConfigParam
from pydantic import ValidationError
from sqlalchemy.orm import Session

from . import prompting
from .categories import ALLOWED_CATEGORIES, FixedCategory
from .categorization import run_local_pass, should_auto_apply
from .logging_setup import get_logger
from .models import AiCategoryDecision, CategorizeRunResult, CategorySuggestion
from .persistence import UncategorizedTransaction, load_uncategorized, update_category
from .pmap import p_map

# ---- Tunables (private) ------------------------------------------------------

_BATCH_SIZE: int = 80
_CONCURRENCY: int = 2
_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20
_MAX_ERROR_MESSAGE_LEN: int = 120

_MODEL_ENV_VAR = "STATEMENT_IMPORT_AI_MODEL"
_DEFAULT_MODEL: str = "gpt-5-mini"

AI_UNAVAILABLE_MESSAGE = "AI categorization unavailable (network or service error)"
_TRANSPORT_HINTS: tuple[str, ...] = ("connection", "network", "timeout", "timed out", "fetch")

_logger = get_logger("statement_import.categorize")


# ---- Internal helpers --------------------------------------------------------


def _model() -> str:
    return os.getenv(_MODEL_ENV_VAR) or _DEFAULT_MODEL


def _create_client() -> OpenAI:
    return OpenAI()


def _extract_response_json_mapping(resp: Any) -> Mapping[str, Any]:
    """Decode the JSON mapping from an OpenAI Responses SDK result.

    Prefers ``resp.output_text`` and falls back to
    ``resp.output[0].content[0].text``. Raises ``ValueError`` when no text can
    be located or it is not valid JSON.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        output = getattr(resp, "output", None) or []
        content = getattr(output[0], "content", None) if output else None
        if content:
            txt_obj = getattr(content[0], "text", None)
            if isinstance(txt_obj, str):
                text = txt_obj
            else:
                # Some SDKs expose text as an object with a ``value`` string.
                maybe_val = getattr(txt_obj, "value", None)
                if isinstance(maybe_val, str):
                    text = maybe_val
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON per the requested schema") from e
    if not isinstance(decoded, Mapping):
        raise ValueError("Model output must be a JSON object")
    return decoded


def _parse_decisions(
    decoded: Mapping[str, Any],
    *,
    expected_ids: set[str],
) -> dict[str, AiCategoryDecision]:
    """Validate response items; items outside the vocabulary or batch are dropped."""

    items = decoded.get("categories")
    if not isinstance(items, list):
        raise ValueError("Model output is missing the 'categories' array")
    allowed = set(ALLOWED_CATEGORIES)
    out: dict[str, AiCategoryDecision] = {}
    for item in items:
        try:
            decision = AiCategoryDecision.model_validate(item, context={"allowed_set": allowed})
        except ValidationError as e:
            _logger.debug("categorize:ai_item_discarded error_count=%d", e.error_count())
            continue
        if decision.id in expected_ids:
            out[decision.id] = decision
    return out


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for HTTP 429 and 5xx errors."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    delay = base + random.uniform(-jitter, jitter)
    time.sleep(max(0.0, delay))


def _normalize_ai_error(exc: BaseException) -> str:
    """User-facing message for a failed batch; one per run."""

    if isinstance(exc, OpenAIError) and getattr(exc, "status_code", None) is None:
        # Client-side failures: missing credentials, connection errors.
        return AI_UNAVAILABLE_MESSAGE
    msg = str(exc)
    lower = msg.lower()
    if any(h in lower for h in _TRANSPORT_HINTS) or _is_retryable(exc):
        return AI_UNAVAILABLE_MESSAGE
    return msg if msg and len(msg) < _MAX_ERROR_MESSAGE_LEN else AI_UNAVAILABLE_MESSAGE


class BatchResult(NamedTuple):
    batch_index: int
    decisions: dict[str, AiCategoryDecision]
    error: BaseException | None = None


def _classify_batch(
    batch_index: int,
    items: Sequence[tuple[str, str]],
    *,
    system_instructions: str,
    text_cfg: ResponseTextConfigParam,
) -> BatchResult:
    """Classify one batch. Failures are returned, not raised."""

    user_content = prompting.build_user_content(prompting.serialize_request(items))
    expected_ids = {i for i, _ in items}
    _logger.info("categorize:ai_batch batch_index=%d size=%d", batch_index, len(items))

    client: OpenAI | None = None
    attempt = 1
    while True:
        t0 = time.perf_counter()
        try:
            if client is None:
                # Raises OpenAIError when no API key is configured.
                client = _create_client()
            resp = client.responses.create(
                model=_model(),
                instructions=system_instructions,
                input=user_content,
                text=text_cfg,
            )
            decoded = _extract_response_json_mapping(resp)
            decisions = _parse_decisions(decoded, expected_ids=expected_ids)
            dt_ms = (time.perf_counter() - t0) * 1000.0
            _logger.info(
                "categorize:ai_batch_done batch_index=%d decisions=%d latency_ms=%.2f",
                batch_index,
                len(decisions),
                dt_ms,
            )
            return BatchResult(batch_index, decisions)
        except Exception as e:  # noqa: BLE001 - collapsed into one run-level error
            dt_ms = (time.perf_counter() - t0) * 1000.0
            # Parsing/validation errors (ValueError) are terminal.
            if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                _logger.error(
                    "categorize:ai_batch_failed batch_index=%d size=%d latency_ms=%.2f error=%s",
                    batch_index,
                    len(items),
                    dt_ms,
                    e.__class__.__name__,
                )
                return BatchResult(batch_index, {}, e)
            _logger.warning(
                "categorize:ai_batch_retry batch_index=%d latency_ms=%.2f error=%s attempt=%d",
                batch_index,
                dt_ms,
                e.__class__.__name__,
                attempt,
            )
            _sleep_backoff(attempt)
            attempt += 1


def classify_with_ai(
    items: Iterable[tuple[str, str]],
    *,
    batch_size: int = _BATCH_SIZE,
) -> list[BatchResult]:
    """Classify ``(id, description)`` pairs in batches, one result per batch.

    Results keep batch order. A failed batch carries its exception in
    ``error`` and no decisions.
    """

    seq = list(items)
    if not seq:
        return []
    if not isinstance(batch_size, int) or batch_size <= 0:
        raise ValueError("batch_size must be a positive integer")

    system_instructions = prompting.build_system_instructions()
    text_cfg = ResponseTextConfigParam(format=prompting.build_response_format())
    batches = [seq[i : i + batch_size] for i in range(0, len(seq), batch_size)]

    def _map_batch(indexed: tuple[int, list[tuple[str, str]]]) -> BatchResult:
        batch_index, batch = indexed
        return _classify_batch(
            batch_index,
            batch,
            system_instructions=system_instructions,
            text_cfg=text_cfg,
        )

    return p_map(list(enumerate(batches)), _map_batch, concurrency=_CONCURRENCY)


# ---- Public API -------------------------------------------------------------


def categorize_transactions(
    session: Session,
    household_id: str,
    transaction_ids: Iterable[int] | None = None,
    *,
    use_ai: bool = True,
    batch_size: int = _BATCH_SIZE,
) -> CategorizeRunResult:
    """Categorize the household's ``other`` transactions.

    The cache/rule pass completes for every row before any AI batch is sent.
    Only rows nothing local resolved go to the AI; an AI decision never
    replaces a cache or rule decision. AI results at or above the auto-apply
    threshold are written to the transaction only; the merchant cache is
    never fed from AI output, so the next run asks again. The rest become
    suggestions. Any number of failed batches yields a single message in
    ``errors`` and their rows count as remaining.
    """

    rows = load_uncategorized(session, household_id, transaction_ids)
    local = run_local_pass(session, household_id, rows)
    result = CategorizeRunResult(
        applied_by_cache=local.applied_by_cache,
        applied_by_rules=local.applied_by_rules,
        errors=list(local.errors),
        suggestions=list(local.suggestions),
        remaining_uncategorized=len(local.suggestions),
    )
    remaining: list[UncategorizedTransaction] = local.unresolved

    if not use_ai or not remaining:
        result.remaining_uncategorized += len(remaining)
        _log_run(household_id, len(rows), result)
        return result

    by_id = {str(tx.id): tx for tx in remaining}
    result.sent_to_ai = len(remaining)
    batch_results = classify_with_ai(
        [(str(tx.id), tx.description) for tx in remaining], batch_size=batch_size
    )

    ai_error_reported = False
    for br in batch_results:
        batch_ids = [str(tx.id) for tx in remaining[br.batch_index * batch_size :][:batch_size]]
        if br.error is not None:
            if not ai_error_reported:
                result.errors.append(_normalize_ai_error(br.error))
                ai_error_reported = True
            result.remaining_uncategorized += len(batch_ids)
            continue

        applied = 0
        for tx_id in batch_ids:
            decision = br.decisions.get(tx_id)
            if decision is None:
                continue
            tx = by_id[tx_id]
            category = FixedCategory(decision.category)
            if not should_auto_apply(decision.confidence):
                result.suggestions.append(
                    CategorySuggestion(
                        transaction_id=tx.id,
                        description=tx.description,
                        category=category,
                        confidence=decision.confidence,
                        source="ai",
                    )
                )
                continue
            if not update_category(
                session, household_id=household_id, transaction_id=tx.id, category=category
            ):
                result.errors.append(f"failed to update {tx.id}")
                continue
            applied += 1
        result.applied_by_ai += applied
        result.remaining_uncategorized += len(batch_ids) - applied

    _log_run(household_id, len(rows), result)
    return result


def _log_run(household_id: str, candidates: int, result: CategorizeRunResult) -> None:
    _logger.info(
        (
            "categorize:done household=%s candidates=%d by_cache=%d by_rules=%d "
            "sent_to_ai=%d by_ai=%d remaining=%d errors=%d"
        ),
        household_id,
        candidates,
        result.applied_by_cache,
        result.applied_by_rules,
        result.sent_to_ai,
        result.applied_by_ai,
        result.remaining_uncategorized,
        len(result.errors),
    )


__all__ = [
    "AI_UNAVAILABLE_MESSAGE",
    "BatchResult",
    "categorize_transactions",
    "classify_with_ai",
]
