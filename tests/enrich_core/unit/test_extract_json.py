from __future__ import annotations

import pytest

from enrich_core.errors import MalformedResponseError, ResponseError
from enrich_core.extraction import KeywordRecord, deserialize, extract_json


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"a": 1}', '{"a": 1}'),
        ('```json\n{"a":1}\n```', '{"a":1}'),
        ('```\n{"a":1}\n```', '{"a":1}'),
        ('Here you go: {"a": {"b": 2}} hope it helps', '{"a": {"b": 2}}'),
        ('{"a": 1} trailing {"b": 2}', '{"a": 1}'),
        ("no json here", "no json here"),
        ("  padded prose  ", "padded prose"),
    ],
)
def test_extract_json_recovers_first_object(raw: str, expected: str) -> None:
    assert extract_json(raw) == expected


def test_extract_json_ignores_braces_inside_strings() -> None:
    raw = 'Result: {"text": "has } brace", "n": 1} done'

    assert extract_json(raw) == '{"text": "has } brace", "n": 1}'


def test_extract_json_honours_escaped_quotes() -> None:
    raw = r'{"text": "say \"}\" now", "n": 1} tail'

    assert extract_json(raw) == r'{"text": "say \"}\" now", "n": 1}'


def test_extract_json_returns_stripped_text_when_unbalanced() -> None:
    raw = '```json\n{"entities": [{"name": "x"\n```'

    assert extract_json(raw) == '{"entities": [{"name": "x"'


def test_deserialize_validates_recovered_object() -> None:
    record = deserialize('Sure! {"keywords": ["a", "b"]}', KeywordRecord, shape="keyword")

    assert record.keywords == ["a", "b"]


@pytest.mark.parametrize(
    "raw",
    [
        "no json here",
        '{"keywords": ["a", ',
        '{"keywords": "not-a-list"}',
        "[1, 2, 3]",
    ],
)
def test_deserialize_raises_malformed_response(raw: str) -> None:
    with pytest.raises(MalformedResponseError) as exc_info:
        deserialize(raw, KeywordRecord, shape="keyword")

    error = exc_info.value
    assert error.shape == "keyword"
    assert error.payload == extract_json(raw)
    assert str(error).startswith("failed to parse keyword JSON: ")
    assert isinstance(error, ResponseError)
    assert isinstance(error, ValueError)
