"""Shared utilities for the semantic index."""

from __future__ import annotations

import re
from pathlib import PurePath
from typing import TYPE_CHECKING

import numpy as np

from thirra_memory import constants

if TYPE_CHECKING:
    from collections.abc import Sequence

    from thirra_memory.rag.models import EphemeralFile

_WHITESPACE_RE = re.compile(r"\s+")
_TEXT_MIME_RE = re.compile(r"(json|xml|yaml|yml|csv|markdown|md|html)", re.IGNORECASE)
_TEXT_EXTENSIONS = frozenset({"txt", "md", "json", "csv", "html", "xml", "yaml", "yml"})


def normalize_text(text: str) -> str:
    """Collapse whitespace runs to single spaces and strip."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def chunk_text(
    text: str,
    chunk_size: int = constants.CHUNK_SIZE,
    overlap: int = constants.CHUNK_OVERLAP,
) -> list[str]:
    """Split normalized text into fixed-size chunks with overlap.

    The final chunk ends exactly at the end of the text.
    """
    if overlap >= chunk_size:
        msg = f"overlap ({overlap}) must be < chunk_size ({chunk_size})"
        raise ValueError(msg)

    normalized = normalize_text(text)
    chunks: list[str] = []
    start = 0
    while start < len(normalized):
        end = min(len(normalized), start + chunk_size)
        chunks.append(normalized[start:end])
        if end >= len(normalized):
            break
        start = end - overlap
    return chunks


def is_text_like_file(file: EphemeralFile) -> bool:
    """Return whether an attachment should be read as text."""
    mimetype = file.mimetype.lower()
    suffix = PurePath(file.name).suffix.lstrip(".").lower()
    return (
        mimetype.startswith("text/")
        or bool(_TEXT_MIME_RE.search(mimetype))
        or suffix in _TEXT_EXTENSIONS
    )


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 for mismatched lengths or zero vectors."""
    if len(a) != len(b) or not len(a):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if not denom:
        return 0.0
    return float(np.dot(va, vb) / denom)

