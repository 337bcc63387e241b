"""Test doubles for the classifier seam.

``StubClassifier`` implements the ``Classifier`` protocol directly and lets a
test decide, per request, which items come back (or which error is raised).
``OpenAIStub`` matches the ``openai.OpenAI`` shape used by
``OpenAIClassifier`` and parses the transactions block embedded in the user
content, so the real prompt rendering is exercised end to end.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any, TypeAlias

from ledger_pipeline.models import ClassificationRequest, ClassifiedItem

BEGIN = "BEGIN_TRANSACTIONS_JSON\n"
END = "\nEND_TRANSACTIONS_JSON"

Decide: TypeAlias = Callable[[ClassificationRequest], list[dict[str, Any]] | Exception]


def extract_transactions(user_content: str) -> list[dict[str, Any]]:
    b = user_content.find(BEGIN)
    e = user_content.rfind(END)
    if b == -1 or e == -1 or e <= b:
        raise AssertionError("user content missing embedded transactions JSON block")
    return json.loads(user_content[b + len(BEGIN) : e])


def categorize_all(category: str) -> Decide:
    """Return a ``decide`` callable assigning ``category`` to every transaction."""

    def _decide(request: ClassificationRequest) -> list[dict[str, Any]]:
        return [
            {"id": t.id, "category": category, "description": t.description.title()}
            for t in request.transactions
        ]

    return _decide


class StubClassifier:
    """Classifier double; records every request it receives."""

    def __init__(self, decide: Decide) -> None:
        self._decide = decide
        self.requests: list[ClassificationRequest] = []

    def classify(self, request: ClassificationRequest) -> list[ClassifiedItem]:
        self.requests.append(request)
        outcome = self._decide(request)
        if isinstance(outcome, Exception):
            raise outcome
        return [ClassifiedItem.model_validate(item) for item in outcome]


class OpenAIStub:
    """Minimal stub matching ``openai.OpenAI`` for ``OpenAIClassifier``.

    ``respond`` receives the parsed transactions list and returns either the
    raw ``output_text`` string or an exception instance to raise.
    """

    def __init__(
        self,
        respond: Callable[[list[dict[str, Any]]], str | Exception],
        calls_out: list[dict[str, Any]] | None = None,
    ) -> None:
        self._respond = respond
        self._calls = calls_out if calls_out is not None else []

        class _Responses:
            def __init__(self, outer: OpenAIStub) -> None:
                self._outer = outer

            def create(self, **kwargs):
                self._outer._calls.append(kwargs)
                outcome = self._outer._respond(extract_transactions(kwargs["input"]))
                if isinstance(outcome, Exception):
                    raise outcome

                class _Resp:
                    output_text: str

                resp = _Resp()
                resp.output_text = outcome
                return resp

        self.responses = _Responses(self)

    @property
    def calls(self) -> list[dict[str, Any]]:
        return self._calls
