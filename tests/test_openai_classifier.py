import json
from decimal import Decimal
from typing import Any

import httpx
import openai
import pytest

import ledger_pipeline.classifier as classifier_mod
from ledger_pipeline.classifier import OpenAIClassifier, translate_backend_error
from ledger_pipeline.errors import (
    BackendTransportError,
    ModelUnavailableError,
    QuotaExceededError,
    ResponseParseError,
)
from ledger_pipeline.models import (
    ClassificationRequest,
    PromptConfig,
    TransactionProjection,
)
from tests.helpers.classifier_stub import OpenAIStub

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/responses")


def _request(*ids: str) -> ClassificationRequest:
    return ClassificationRequest(
        user_id="u1",
        prompt=PromptConfig(version=1, text="Categorize these transactions."),
        categories=("Transport",),
        structured_rules=(),
        free_text_rules=(),
        transactions=tuple(
            TransactionProjection(id=i, description="UBER *TRIP", amount=Decimal("-15.00"))
            for i in ids
        ),
    )


def _status_error(cls, status: int, message: str):
    return cls(message, response=httpx.Response(status, request=_REQUEST), body=None)


def test_classify_sends_prompt_and_parses_fenced_output():
    calls: list[dict[str, Any]] = []

    def respond(items):
        payload = [{"id": it["id"], "category": "Transport", "description": "Uber"} for it in items]
        return "```json\n" + json.dumps(payload) + "\n```"

    stub = OpenAIStub(respond, calls)
    items = OpenAIClassifier(api_key="sk-test", model="gpt-test", client=stub).classify(
        _request("t1", "t2")
    )

    assert [(i.id, i.category, i.description) for i in items] == [
        ("t1", "Transport", "Uber"),
        ("t2", "Transport", "Uber"),
    ]
    (call,) = calls
    assert call["model"] == "gpt-test"
    assert "BEGIN_TRANSACTIONS_JSON" in call["input"]
    assert "categorizes bank statement transactions" in call["instructions"]


def test_empty_request_skips_backend():
    calls: list[dict[str, Any]] = []
    stub = OpenAIStub(lambda items: "[]", calls)
    assert OpenAIClassifier(client=stub).classify(_request()) == []
    assert calls == []


def test_client_is_created_lazily_without_retries(monkeypatch):
    created: list[dict[str, Any]] = []

    def factory(**kwargs):
        created.append(kwargs)
        return OpenAIStub(lambda items: "[]")

    monkeypatch.setattr(classifier_mod, "OpenAI", factory)
    clf = OpenAIClassifier(api_key="sk-test")
    assert created == []
    clf.classify(_request("t1"))
    clf.classify(_request("t2"))
    assert created == [{"api_key": "sk-test", "max_retries": 0}]


def test_non_json_output_raises_parse_error():
    stub = OpenAIStub(lambda items: "I could not decide.")
    with pytest.raises(ResponseParseError):
        OpenAIClassifier(client=stub).classify(_request("t1"))


@pytest.mark.parametrize(
    ("exc", "expected", "status"),
    [
        (_status_error(openai.RateLimitError, 429, "Rate limit reached"), QuotaExceededError, 429),
        (
            _status_error(openai.PermissionDeniedError, 403, "You exceeded your current quota"),
            QuotaExceededError,
            403,
        ),
        (_status_error(openai.NotFoundError, 404, "model not found"), ModelUnavailableError, 404),
        (
            _status_error(openai.InternalServerError, 500, "server error"),
            BackendTransportError,
            500,
        ),
        (openai.APIConnectionError(request=_REQUEST), BackendTransportError, None),
    ],
)
def test_backend_errors_are_translated(exc, expected, status):
    stub = OpenAIStub(lambda items: exc)
    with pytest.raises(expected) as info:
        OpenAIClassifier(client=stub).classify(_request("t1"))
    assert info.value.status_code == status
    assert info.value.hint
    assert info.value.__cause__ is exc


def test_translate_hints():
    quota = translate_backend_error(_status_error(openai.RateLimitError, 429, "slow down"))
    assert quota.hint.startswith("AI Quota Exceeded.")
    missing = translate_backend_error(_status_error(openai.NotFoundError, 404, "nope"))
    assert missing.hint.startswith("AI Model Not Found.")
