"""Test helpers to stub the OpenAI Responses client used by categorize.py.

The stub parses the user-content payload to extract the embedded request JSON
and returns a deterministic ``{"categories": [...]}`` response. Tests provide a
``decide`` callable mapping each ``{id, description}`` item to a
``(category, confidence)`` tuple, or ``None`` to leave the item out.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

BEGIN = "BEGIN_TRANSACTIONS_JSON\n"
END = "\nEND_TRANSACTIONS_JSON"


def extract_request(user_content: str) -> dict[str, Any]:
    b = user_content.find(BEGIN)
    e = user_content.rfind(END)
    if b == -1 or e == -1 or e <= b:
        raise AssertionError("categorize: user content missing embedded request JSON block")
    return json.loads(user_content[b + len(BEGIN) : e])


class OpenAIStub:
    """Minimal stub matching ``openai.OpenAI`` shape for ``categorize.py``.

    Parameters
    ----------
    decide:
        Receives one request item and returns ``(category, confidence)`` or
        ``None``.
    calls_out:
        A list appended with each call's kwargs for lightweight assertions.
    fail_with:
        When set, every call raises this exception instead of answering.
    """

    def __init__(
        self,
        decide: Callable[[dict[str, Any]], tuple[str, float] | None],
        calls_out: list[dict[str, Any]] | None = None,
        fail_with: BaseException | None = None,
    ) -> None:
        self._decide = decide
        self._calls = calls_out if calls_out is not None else []
        self._fail_with = fail_with

        class _Responses:
            def __init__(self, outer: OpenAIStub) -> None:
                self._outer = outer

            def create(self, **kwargs):
                self._outer._calls.append(kwargs)
                if self._outer._fail_with is not None:
                    raise self._outer._fail_with
                request = extract_request(kwargs["input"])
                results = []
                for item in request["descriptions"]:
                    decided = self._outer._decide(item)
                    if decided is None:
                        continue
                    cat, confidence = decided
                    results.append(
                        {"id": item["id"], "category": cat, "confidence": float(confidence)}
                    )

                class _Resp:
                    output_text: str

                resp = _Resp()
                resp.output_text = json.dumps({"categories": results})
                return resp

        self.responses = _Responses(self)

    @property
    def calls(self) -> list[dict[str, Any]]:
        return self._calls
