"""Error taxonomy for the ingestion → classification → reconciliation pipeline.

Fatal errors (abort the invocation):
    - :class:`ConfigurationError`
    - :class:`ClassificationBackendError` and its subtypes

Recoverable errors (scoped to one user's slice of a cycle):
    - :class:`ResponseParseError`
    - :class:`PersistenceError`
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PipelineError):
    """Missing or invalid configuration; raised before any record is touched."""


class ClassificationBackendError(PipelineError):
    """The classification backend could not be reached or refused the request.

    ``hint`` is a short, user-facing explanation suitable for display next to
    the verbatim backend ``detail``.
    """

    default_hint = "AI processing failed. Please try again later."

    def __init__(
        self,
        detail: str,
        *,
        status_code: int | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.hint = hint or self.default_hint


class QuotaExceededError(ClassificationBackendError):
    default_hint = (
        "AI Quota Exceeded. Your plan has strict rate limits. "
        "Please wait a minute and try again."
    )


class ModelUnavailableError(ClassificationBackendError):
    default_hint = (
        "AI Model Not Found. Check your API key and the configured model name."
    )


class BackendTransportError(ClassificationBackendError):
    pass


class ResponseParseError(PipelineError):
    """The classifier answered, but not with a JSON array of result objects."""

    def __init__(self, message: str, *, raw_text: str | None = None) -> None:
        super().__init__(message)
        self.raw_text = raw_text


class PersistenceError(PipelineError):
    """A canonical or raw store write failed."""


__all__ = [
    "BackendTransportError",
    "ClassificationBackendError",
    "ConfigurationError",
    "ModelUnavailableError",
    "PersistenceError",
    "PipelineError",
    "QuotaExceededError",
    "ResponseParseError",
]
