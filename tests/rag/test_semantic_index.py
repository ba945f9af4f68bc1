"""Tests for the in-memory semantic index."""

from __future__ import annotations

import pytest

from thirra_memory.memory.turns import InMemoryTurnStore, TurnCache
from thirra_memory.rag.index import SemanticIndex
from thirra_memory.rag.models import EphemeralFile

TURNS = [
    ("python python", "budget travel"),
    ("japan trip", "cat and dog"),
]


def _index(make_turns, embeddings, clock=None, store=None, **kwargs) -> tuple[SemanticIndex, InMemoryTurnStore]:
    store = store or InMemoryTurnStore(make_turns(2, texts=TURNS))
    turns = TurnCache(store, ttl_seconds=0.001, clock=clock)
    return SemanticIndex(turns, embeddings, chunk_size=100, chunk_overlap=10, **kwargs), store


@pytest.mark.asyncio
async def test_ensure_indexed_is_incremental(make_turns, keyword_embeddings, clock) -> None:
    index, store = _index(make_turns, keyword_embeddings, clock)

    assert await index.ensure_indexed("conv1") == 4
    assert await index.ensure_indexed("conv1") == 0
    assert len(keyword_embeddings.batches) == 1

    await store.append_turn("conv1", user_text="database question", assistant_text=None)
    clock.advance(1)
    assert await index.ensure_indexed("conv1") == 1
    assert keyword_embeddings.batches[-1] == ["database question"]
    assert index.chunk_count("conv1") == 5


@pytest.mark.asyncio
async def test_duplicate_chunks_are_embedded_once(make_turns, keyword_embeddings) -> None:
    store = InMemoryTurnStore(make_turns(2, texts=[("same text", "same text"), ("same text", None)]))
    index, _ = _index(make_turns, keyword_embeddings, store=store)
    assert await index.ensure_indexed("conv1") == 1


@pytest.mark.asyncio
async def test_retrieve_orders_by_similarity(make_turns, keyword_embeddings) -> None:
    index, _ = _index(make_turns, keyword_embeddings)
    await index.ensure_indexed("conv1")

    result = await index.retrieve("conv1", "Python  help", top_k=2)

    assert [c.text for c in result.chunks] == ["python python", "budget travel"]
    assert result.max_similarity == pytest.approx(1.0)
    assert keyword_embeddings.queries == ["Python help"]


@pytest.mark.asyncio
@pytest.mark.parametrize("top_k", [0, 1, 3, 10])
async def test_retrieve_never_exceeds_top_k(make_turns, keyword_embeddings, top_k: int) -> None:
    index, _ = _index(make_turns, keyword_embeddings)
    await index.ensure_indexed("conv1")
    result = await index.retrieve("conv1", "japan", top_k=top_k)
    assert len(result.chunks) == min(top_k, 4)
    if top_k:
        assert result.chunks[0].text == "japan trip"
    else:
        assert result.max_similarity == 0.0


@pytest.mark.asyncio
async def test_retrieve_cuts_long_chunks(make_turns, keyword_embeddings) -> None:
    store = InMemoryTurnStore(make_turns(1, texts=[("dog " * 40, None)]))
    index, _ = _index(make_turns, keyword_embeddings, store=store, max_chars_per_chunk=20)
    await index.ensure_indexed("conv1")
    result = await index.retrieve("conv1", "dog", top_k=1)
    assert len(result.chunks[0].text) == 20


@pytest.mark.asyncio
async def test_retrieve_empty_cases(make_turns, keyword_embeddings) -> None:
    index, _ = _index(make_turns, keyword_embeddings)
    assert (await index.retrieve("conv1", "python", top_k=2)).chunks == []
    await index.ensure_indexed("conv1")
    assert (await index.retrieve("conv1", "   ", top_k=2)).chunks == []


@pytest.mark.asyncio
async def test_embedding_failure_is_retried_later(make_turns, keyword_embeddings) -> None:
    index, _ = _index(make_turns, keyword_embeddings)
    keyword_embeddings.fail = True
    assert await index.ensure_indexed("conv1") == 0
    assert index.chunk_count("conv1") == 0

    keyword_embeddings.fail = False
    assert await index.ensure_indexed("conv1") == 4


@pytest.mark.asyncio
async def test_query_embedding_failure_returns_nothing(make_turns, keyword_embeddings) -> None:
    index, _ = _index(make_turns, keyword_embeddings)
    await index.ensure_indexed("conv1")
    keyword_embeddings.fail = True
    result = await index.retrieve("conv1", "python", top_k=2)
    assert result.chunks == []
    assert result.max_similarity == 0.0


@pytest.mark.asyncio
async def test_oldest_chunks_evicted_past_cap(make_turns, keyword_embeddings) -> None:
    index, _ = _index(make_turns, keyword_embeddings, max_chunks=3)
    await index.ensure_indexed("conv1")
    assert index.chunk_count("conv1") == 3
    result = await index.retrieve("conv1", "python", top_k=3)
    assert "python python" not in [c.text for c in result.chunks]


@pytest.mark.asyncio
async def test_text_attachments_are_indexed(make_turns, keyword_embeddings) -> None:
    index, _ = _index(make_turns, keyword_embeddings)
    files = [
        EphemeralFile(name="a.txt", mimetype="text/plain", content=b"summary notes"),
        EphemeralFile(name="b.png", mimetype="image/png", content=b"summary image"),
    ]
    assert await index.ensure_indexed("conv1", files) == 5
    result = await index.retrieve("conv1", "summary", top_k=1)
    assert result.chunks[0].text == "summary notes"


@pytest.mark.asyncio
async def test_clear_and_stats(make_turns, keyword_embeddings) -> None:
    index, _ = _index(make_turns, keyword_embeddings)
    await index.ensure_indexed("conv1")
    assert index.stats()["chunks"] == 4
    index.clear()
    assert index.chunk_count("conv1") == 0
    assert index.stats()["entries"] == 0
