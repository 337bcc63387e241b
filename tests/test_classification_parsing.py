import json

import pytest

from ledger_pipeline.classification import parse_classifier_response, strip_code_fences
from ledger_pipeline.errors import ResponseParseError

_PAYLOAD = [{"id": "t1", "category": "Transport", "description": "Uber"}]


@pytest.mark.parametrize(
    "text",
    [
        json.dumps(_PAYLOAD),
        "```json\n" + json.dumps(_PAYLOAD) + "\n```",
        "```\n" + json.dumps(_PAYLOAD) + "\n```",
        "  ```JSON\n" + json.dumps(_PAYLOAD, indent=2) + "\n```  ",
    ],
)
def test_parses_plain_and_fenced_arrays(text):
    items = parse_classifier_response(text)
    assert len(items) == 1
    assert items[0].id == "t1"
    assert items[0].category == "Transport"
    assert items[0].description == "Uber"


def test_strip_code_fences_leaves_unfenced_text_alone():
    assert strip_code_fences(' [1, 2] ') == "[1, 2]"


def test_accepts_legacy_field_names():
    text = json.dumps([{"uuid": "t9", "final_category": "DELETE", "final_description": ""}])
    (item,) = parse_classifier_response(text)
    assert item.id == "t9"
    assert item.category == "DELETE"
    assert item.description is None


def test_numeric_ids_are_coerced_and_extra_fields_ignored():
    (item,) = parse_classifier_response('[{"id": 7, "category": "Food", "score": 0.9}]')
    assert item.id == "7"
    assert item.description is None


def test_empty_array_is_valid():
    assert parse_classifier_response("[]") == []


@pytest.mark.parametrize(
    "text",
    [
        None,
        "",
        "   ",
        "Sorry, I cannot help with that.",
        '{"id": "t1", "category": "Food"}',
        '["t1", "Food"]',
        '[{"category": "Food"}]',
        '[{"id": "t1"}]',
        '[{"id": "", "category": "Food"}]',
    ],
)
def test_shape_failures_raise_parse_error(text):
    with pytest.raises(ResponseParseError):
        parse_classifier_response(text)
