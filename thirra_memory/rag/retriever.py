"""Adaptive semantic recall: dynamic top-K, relative threshold and compression."""

from __future__ import annotations

import logging
import re
from time import perf_counter
from typing import TYPE_CHECKING

from thirra_memory import constants
from thirra_memory.core.utils import elapsed_ms
from thirra_memory.rag.compression import compress_chunks
from thirra_memory.rag.models import ContextStats, ScoredChunk, SemanticContext

if TYPE_CHECKING:
    from collections.abc import Sequence

    from thirra_memory.rag.compression import Compressor
    from thirra_memory.rag.index import SemanticIndex
    from thirra_memory.rag.models import EphemeralFile

LOGGER = logging.getLogger(__name__)

_ANALYTICAL_RE = re.compile(
    r"how|why|compare|design|implement|debug|optimi|trade[- ]?off|architecture|performance",
)
_REFERENTIAL_RE = re.compile(r"previous|earlier|as we discussed|context|memory|file|code")
_LENGTH_NORMALIZER = 400


def estimate_query_complexity(query: str) -> float:
    """Score a query in [0, 1] from its length and analytical or referential wording."""
    q = (query or "").lower()
    score = min(1.0, len(q) / _LENGTH_NORMALIZER)
    if _ANALYTICAL_RE.search(q):
        score += 0.3
    if _REFERENTIAL_RE.search(q):
        score += 0.3
    return max(0.0, min(1.0, score))


def dynamic_top_k(
    query: str,
    *,
    threshold: float = constants.COMPLEX_QUERY_THRESHOLD,
) -> int:
    """Retrieve three chunks for complex queries and two otherwise."""
    return 3 if estimate_query_complexity(query) >= threshold else 2


def filter_by_threshold(
    chunks: Sequence[ScoredChunk],
    max_similarity: float,
    threshold_factor: float = constants.THRESHOLD_FACTOR,
) -> tuple[list[ScoredChunk], float]:
    """Keep chunks scoring at least ``threshold_factor`` of the best similarity."""
    cutoff = max_similarity * threshold_factor
    return [c for c in chunks if c.similarity >= cutoff], cutoff


async def get_semantic_context(
    index: SemanticIndex,
    conversation_id: str,
    query: str,
    *,
    instruction: str | None = None,
    ephemeral_files: Sequence[EphemeralFile] = (),
    threshold_factor: float = constants.THRESHOLD_FACTOR,
    complex_query_threshold: float = constants.COMPLEX_QUERY_THRESHOLD,
    compressor: Compressor | None = None,
    target_high: float = 0.6,
) -> SemanticContext:
    """Index new text, retrieve, threshold and optionally compress chunks for a query."""
    start = perf_counter()
    complexity = estimate_query_complexity(query)
    top_k = dynamic_top_k(query, threshold=complex_query_threshold)

    await index.ensure_indexed(conversation_id, ephemeral_files)
    result = await index.retrieve(conversation_id, query, top_k)
    selected, cutoff = filter_by_threshold(result.chunks, result.max_similarity, threshold_factor)
    stats = ContextStats(
        top_k=top_k,
        complexity=complexity,
        max_similarity=result.max_similarity,
        cutoff=cutoff,
        selected=len(selected),
    )
    if not selected:
        return SemanticContext(stats=stats)

    items = selected
    if compressor is not None:
        texts, ratios = await compress_chunks(
            [c.text for c in selected],
            compressor,
            target_high=target_high,
            instruction=instruction,
        )
        items = [
            ScoredChunk(text=text, similarity=chunk.similarity)
            for text, chunk in zip(texts, selected, strict=True)
            if text
        ]
        stats.compressed = True
        stats.ratios = ratios

    LOGGER.info(
        "Semantic context: %d of %d chunks (max=%.3f cutoff=%.3f) in %.1f ms (conversation=%s)",
        len(items),
        len(result.chunks),
        result.max_similarity,
        cutoff,
        elapsed_ms(start),
        conversation_id,
    )
    return SemanticContext(items=items, stats=stats)
