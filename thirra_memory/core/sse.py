"""Parsing helpers for OpenAI-compatible Server-Sent Events."""

from __future__ import annotations

import json
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


def parse_chunk(line: str) -> dict[str, Any] | None:
    """Decode one SSE line into a chunk dict, or None for keep-alives and [DONE]."""
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    data = line[len(SSE_DATA_PREFIX) :].strip()
    if not data or data == SSE_DONE:
        return None
    try:
        chunk = json.loads(data)
    except json.JSONDecodeError:
        LOGGER.debug("Skipping non-JSON SSE payload: %s", data[:200])
        return None
    return chunk if isinstance(chunk, dict) else None


def _first_delta(chunk: dict[str, Any]) -> dict[str, Any]:
    choices = chunk.get("choices") or []
    if not choices:
        return {}
    return choices[0].get("delta") or choices[0].get("message") or {}


def extract_content_from_chunk(chunk: dict[str, Any]) -> str:
    """Return the assistant content delta carried by a chunk ('' when absent)."""
    content = _first_delta(chunk).get("content")
    return content if isinstance(content, str) else ""


def extract_reasoning_from_chunk(chunk: dict[str, Any]) -> str:
    """Return the reasoning delta some providers stream next to the content."""
    delta = _first_delta(chunk)
    reasoning = delta.get("reasoning") or delta.get("reasoning_content")
    return reasoning if isinstance(reasoning, str) else ""


def extract_error_from_chunk(chunk: dict[str, Any]) -> str | None:
    """Return the upstream error message if the chunk is an error payload."""
    error = chunk.get("error")
    if error is None:
        return None
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)
