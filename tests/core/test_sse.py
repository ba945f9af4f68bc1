"""Tests for SSE chunk parsing."""

from __future__ import annotations

import pytest

from thirra_memory.core.sse import (
    extract_content_from_chunk,
    extract_error_from_chunk,
    extract_reasoning_from_chunk,
    parse_chunk,
)


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ('data: {"choices":[{"delta":{"content":"Hi"}}]}', {"choices": [{"delta": {"content": "Hi"}}]}),
        ("data: [DONE]", None),
        (": keep-alive", None),
        ("data: not json", None),
        ("data: [1, 2]", None),
        ("", None),
    ],
)
def test_parse_chunk(line: str, expected: dict | None) -> None:
    assert parse_chunk(line) == expected


def test_extract_content_and_reasoning() -> None:
    chunk = {"choices": [{"delta": {"content": "A", "reasoning_content": "R"}}]}
    assert extract_content_from_chunk(chunk) == "A"
    assert extract_reasoning_from_chunk(chunk) == "R"
    assert extract_content_from_chunk({"choices": []}) == ""
    assert extract_content_from_chunk({"choices": [{"delta": {"content": None}}]}) == ""
    assert extract_content_from_chunk({"choices": [{"message": {"content": "full"}}]}) == "full"


def test_extract_error() -> None:
    assert extract_error_from_chunk({"error": {"message": "rate limited"}}) == "rate limited"
    assert extract_error_from_chunk({"error": "bad"}) == "bad"
    assert extract_error_from_chunk({"choices": []}) is None
