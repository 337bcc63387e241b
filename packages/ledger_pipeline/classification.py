"""Shape-level parsing of classifier responses.

The backend is asked for a JSON array of ``{id, category, description}``
objects. Parsing is tolerant of Markdown code fences around the array but
otherwise strict about shape: anything that is not a JSON array of objects
carrying ``id`` and ``category`` raises :class:`ResponseParseError`.
Category values are not checked against the user's vocabulary here.
"""

from __future__ import annotations

import json
import re

from pydantic import TypeAdapter, ValidationError

from .errors import ResponseParseError
from .models import ClassifiedItem

# ```json ... ``` or ``` ... ``` wrapping the whole payload.
_FENCE_RE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\r?\n?(?P<body>.*?)\r?\n?```$", re.DOTALL)

_ITEMS_ADAPTER: TypeAdapter[list[ClassifiedItem]] = TypeAdapter(list[ClassifiedItem])


def strip_code_fences(text: str) -> str:
    """Return ``text`` without a surrounding Markdown code fence, if present."""

    s = text.strip()
    m = _FENCE_RE.match(s)
    if m is None:
        return s
    return m.group("body").strip()


def parse_classifier_response(text: str | None) -> list[ClassifiedItem]:
    """Decode and validate the classifier's raw response text."""

    if text is None or not text.strip():
        raise ResponseParseError("Empty classifier response", raw_text=text)

    body = strip_code_fences(text)
    try:
        decoded = json.loads(body)
    except json.JSONDecodeError as e:
        raise ResponseParseError(
            f"Classifier response was not valid JSON: {e.msg}", raw_text=text
        ) from e

    if not isinstance(decoded, list):
        raise ResponseParseError(
            f"Classifier response must be a JSON array, got {type(decoded).__name__}",
            raw_text=text,
        )

    try:
        return _ITEMS_ADAPTER.validate_python(decoded)
    except ValidationError as e:
        raise ResponseParseError(
            f"Classifier response items have the wrong shape ({e.error_count()} errors)",
            raw_text=text,
        ) from e


__all__ = ["parse_classifier_response", "strip_code_fences"]
