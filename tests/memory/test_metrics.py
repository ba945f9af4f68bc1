"""Tests for tuning metrics helpers."""

from __future__ import annotations

import json
import logging

import pytest

from thirra_memory.memory.metrics import (
    collect_input_metrics,
    estimate_tokens_from_chars,
    heuristic_quality_score,
    log_tuning_metrics,
    relevance_token_ratio,
)
from thirra_memory.memory.models import Message, Role


def test_estimate_tokens_never_below_one() -> None:
    assert estimate_tokens_from_chars(0) == 1
    assert estimate_tokens_from_chars(400) == 100


def test_collect_input_metrics_sums_sections() -> None:
    metrics = collect_input_metrics(
        history_messages=[Message(role=Role.USER, content="a" * 40)],
        context_text="b" * 20,
        input_messages=[Message(role=Role.USER, content="c" * 20)],
    )
    assert metrics.history_chars == 40
    assert metrics.context_chars == 20
    assert metrics.input_chars == 20
    assert metrics.total_chars == 80
    assert metrics.token_estimate == 20


def test_relevance_token_ratio() -> None:
    assert relevance_token_ratio([0.5, 0.5], 10) == pytest.approx(0.1)
    assert relevance_token_ratio([], None) == 0.0


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("", 0.6),
        ("Short answer.", 0.6),
        ("Version 3 is out, see https://example.com for the release notes today.", 1.0),
        ("no no no", 0.1),
    ],
)
def test_heuristic_quality_score(text: str, expected: float) -> None:
    assert heuristic_quality_score(text) == pytest.approx(expected)


def test_log_tuning_metrics_emits_json(caplog: pytest.LogCaptureFixture) -> None:
    metrics = collect_input_metrics(context_text="x" * 8)
    with caplog.at_level(logging.INFO, logger="thirra_memory.memory.metrics"):
        record = log_tuning_metrics("pre", input_metrics=metrics, details={"k": 1})
    assert record["phase"] == "pre"
    assert record["input_token_estimate"] == 2
    logged = caplog.records[-1].getMessage()
    assert logged.startswith("Tuning metrics: ")
    assert json.loads(logged.removeprefix("Tuning metrics: "))["details"] == {"k": 1}
