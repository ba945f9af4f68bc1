"""Tests for adaptive semantic recall."""

from __future__ import annotations

import pytest

from thirra_memory.memory.turns import InMemoryTurnStore, TurnCache
from thirra_memory.rag.index import SemanticIndex
from thirra_memory.rag.models import ScoredChunk
from thirra_memory.rag.retriever import (
    dynamic_top_k,
    estimate_query_complexity,
    filter_by_threshold,
    get_semantic_context,
)


@pytest.mark.parametrize(
    ("query", "expected"),
    [
        ("hi", 2),
        ("How should I design this?", 2),
        ("How do we optimize the code from earlier?", 3),
        ("x" * 400, 3),
    ],
)
def test_dynamic_top_k(query: str, expected: int) -> None:
    assert dynamic_top_k(query) == expected


def test_complexity_is_bounded() -> None:
    assert estimate_query_complexity("") == 0.0
    assert estimate_query_complexity("why compare the previous file " * 50) == 1.0


def test_filter_by_threshold_keeps_chunks_near_best() -> None:
    chunks = [
        ScoredChunk(text="a", similarity=0.9),
        ScoredChunk(text="b", similarity=0.75),
        ScoredChunk(text="c", similarity=0.71),
    ]
    kept, cutoff = filter_by_threshold(chunks, 0.9, 0.8)
    assert cutoff == pytest.approx(0.72)
    assert [c.text for c in kept] == ["a", "b"]


def test_filter_by_threshold_empty() -> None:
    assert filter_by_threshold([], 0.0) == ([], 0.0)


class _HalvingCompressor:
    def __init__(self) -> None:
        self.instructions: list[str | None] = []

    async def __call__(self, chunk: str, instruction: str | None = None) -> str:
        self.instructions.append(instruction)
        return chunk[: len(chunk) // 2]


def _semantic_index(make_turns, embeddings) -> SemanticIndex:
    texts = [("python python", "python budget"), ("japan trip", "dog days")]
    turns = TurnCache(InMemoryTurnStore(make_turns(2, texts=texts)))
    return SemanticIndex(turns, embeddings)


@pytest.mark.asyncio
async def test_get_semantic_context_thresholds(make_turns, keyword_embeddings) -> None:
    index = _semantic_index(make_turns, keyword_embeddings)

    context = await get_semantic_context(index, "conv1", "python")

    assert [item.text for item in context.items] == ["python python"]
    assert context.stats.top_k == 2
    assert context.stats.max_similarity == pytest.approx(1.0)
    assert context.stats.selected == 1
    assert not context.stats.compressed
    assert context.context_text == "- python python"


@pytest.mark.asyncio
async def test_get_semantic_context_compresses(make_turns, keyword_embeddings) -> None:
    index = _semantic_index(make_turns, keyword_embeddings)
    compressor = _HalvingCompressor()

    context = await get_semantic_context(
        index,
        "conv1",
        "python",
        instruction="focus",
        threshold_factor=0.5,
        compressor=compressor,
    )

    assert [item.text for item in context.items] == ["python", "python"]
    assert context.stats.compressed
    assert context.stats.ratios == [pytest.approx(6 / 13), pytest.approx(6 / 13)]
    assert compressor.instructions == ["focus", "focus"]


@pytest.mark.asyncio
async def test_get_semantic_context_without_history(make_turns, keyword_embeddings) -> None:
    turns = TurnCache(InMemoryTurnStore())
    index = SemanticIndex(turns, keyword_embeddings)
    context = await get_semantic_context(index, "empty", "python")
    assert context.items == []
    assert context.context_text == ""
