"""Evaluation hooks used to tune context efficiency."""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from thirra_memory.memory.models import Message

LOGGER = logging.getLogger(__name__)

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+\s+")
_DIGIT_RE = re.compile(r"\d")
_LINK_RE = re.compile(r"(https?://|www\.)")
_REPETITION_RE = re.compile(r"(\b\w+\b)(?:\s+\1){2,}", re.IGNORECASE)
_LONG_SENTENCE_CHARS = 60


class InputMetrics(BaseModel):
    """Character and token estimates for one assembled prompt."""

    history_chars: int
    context_chars: int
    input_chars: int
    total_chars: int
    token_estimate: int


def estimate_tokens_from_chars(char_count: int) -> int:
    """Approximate tokens as characters / 4, never below one."""
    return max(1, char_count // 4)


def collect_input_metrics(
    *,
    history_messages: Sequence[Message] = (),
    context_text: str = "",
    input_messages: Sequence[Message] = (),
) -> InputMetrics:
    """Measure history, retrieved context and input together."""
    history_chars = sum(len(m.content) for m in history_messages)
    context_chars = len(context_text or "")
    input_chars = sum(len(m.content) for m in input_messages)
    total_chars = history_chars + context_chars + input_chars
    return InputMetrics(
        history_chars=history_chars,
        context_chars=context_chars,
        input_chars=input_chars,
        total_chars=total_chars,
        token_estimate=estimate_tokens_from_chars(total_chars),
    )


def relevance_token_ratio(similarities: Iterable[float], token_count: int | None) -> float:
    """Sum of retrieval similarities per input token."""
    return sum(similarities) / max(1, token_count or 1)


def heuristic_quality_score(text: str) -> float:
    """Score a response in [0, 1] from cheap surface signals.

    Numbers, links and longer sentences each add a little; a word repeated three
    times in a row is penalized.
    """
    s = text or ""
    sentences = [part for part in _SENTENCE_SPLIT_RE.split(s) if part]
    avg_len = len(s) / len(sentences) if sentences else len(s)
    score = 0.5
    score += 0.2 if _DIGIT_RE.search(s) else 0.0
    score += 0.2 if _LINK_RE.search(s) else 0.0
    score += 0.2 if avg_len > _LONG_SENTENCE_CHARS else 0.1
    score -= 0.5 if _REPETITION_RE.search(s) else 0.0
    return max(0.0, min(1.0, score))


def log_tuning_metrics(
    phase: str,
    *,
    input_metrics: InputMetrics | None = None,
    relevance_per_token: float | None = None,
    output_tokens: int | None = None,
    quality_score: float | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Log one JSON line of tuning metrics and return the logged record."""
    record: dict[str, Any] = {
        "phase": phase,
        "input_token_estimate": input_metrics.token_estimate if input_metrics else None,
        "input_char_total": input_metrics.total_chars if input_metrics else None,
        "relevance_per_token": relevance_per_token,
        "output_tokens": output_tokens,
        "quality_score": quality_score,
        "details": details or {},
    }
    LOGGER.info("Tuning metrics: %s", json.dumps(record, default=str))
    return record
