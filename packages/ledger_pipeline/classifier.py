"""Classifier capability and its OpenAI Responses API implementation.

Public API:
    - :class:`Classifier` (protocol): ``classify(request) -> list[ClassifiedItem]``
    - :class:`OpenAIClassifier`

A classifier either returns validated items or raises
:class:`~ledger_pipeline.errors.ResponseParseError` (recoverable, scoped to the
request's user) or a :class:`~ledger_pipeline.errors.ClassificationBackendError`
subtype (fatal for the invocation). No retries are performed here; the SDK
client is created with ``max_retries`` from settings (default 0).
"""

from __future__ import annotations

import time
from typing import Any, Protocol

import openai
from openai import OpenAI

from . import prompting
from .classification import parse_classifier_response
from .config import DEFAULT_MODEL
from .errors import (
    BackendTransportError,
    ClassificationBackendError,
    ModelUnavailableError,
    QuotaExceededError,
)
from .logging_setup import get_logger
from .models import ClassificationRequest, ClassifiedItem

_logger = get_logger("ledger_pipeline.classifier")


class Classifier(Protocol):
    def classify(self, request: ClassificationRequest) -> list[ClassifiedItem]: ...


def _extract_output_text(resp: Any) -> str | None:
    """Locate the text output of a Responses SDK result.

    Prefer ``resp.output_text``; fall back to ``resp.output[0].content[0].text``
    (or its ``.value`` when the SDK wraps text in an object).
    """

    text: str | None = getattr(resp, "output_text", None)
    if text:
        return text
    output = getattr(resp, "output", None)
    if not output:
        return None
    content = getattr(output[0], "content", None)
    if not content:
        return None
    txt_obj = getattr(content[0], "text", None)
    if isinstance(txt_obj, str):
        return txt_obj
    maybe_val = getattr(txt_obj, "value", None)
    return maybe_val if isinstance(maybe_val, str) else None


def translate_backend_error(exc: Exception) -> ClassificationBackendError:
    """Map an SDK/transport exception to the pipeline's backend error types."""

    status_code = getattr(exc, "status_code", None)
    detail = str(exc) or exc.__class__.__name__
    if isinstance(exc, openai.RateLimitError) or status_code == 429 or "quota" in detail.lower():
        return QuotaExceededError(detail, status_code=status_code or 429)
    if isinstance(exc, openai.NotFoundError) or status_code == 404:
        return ModelUnavailableError(detail, status_code=status_code or 404)
    return BackendTransportError(detail, status_code=status_code)


class OpenAIClassifier:
    """Classify one user's slice per call via the OpenAI Responses API."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        max_retries: int = 0,
        client: Any | None = None,
    ) -> None:
        self.model = model
        self._api_key = api_key
        self._max_retries = max_retries
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key, max_retries=self._max_retries)
        return self._client

    def classify(self, request: ClassificationRequest) -> list[ClassifiedItem]:
        if not request.transactions:
            return []

        instructions = prompting.build_system_instructions()
        user_content = prompting.build_user_content(request)

        _logger.info(
            "classify:request user=%s num_transactions=%d prompt_version=%d model=%s",
            request.user_id,
            len(request.transactions),
            request.prompt.version,
            self.model,
        )
        t0 = time.perf_counter()
        try:
            resp = self._get_client().responses.create(
                model=self.model,
                instructions=instructions,
                input=user_content,
            )
        except openai.OpenAIError as e:
            dt_ms = (time.perf_counter() - t0) * 1000.0
            err = translate_backend_error(e)
            _logger.error(
                "classify:backend_failed user=%s latency_ms=%.2f error=%s status=%s",
                request.user_id,
                dt_ms,
                err.__class__.__name__,
                err.status_code,
            )
            raise err from e

        dt_ms = (time.perf_counter() - t0) * 1000.0
        items = parse_classifier_response(_extract_output_text(resp))
        _logger.info(
            "classify:done user=%s num_items=%d latency_ms=%.2f",
            request.user_id,
            len(items),
            dt_ms,
        )
        return items


__all__ = ["Classifier", "OpenAIClassifier", "translate_backend_error"]
