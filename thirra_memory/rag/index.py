"""In-memory per-conversation embedding index."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from time import perf_counter
from typing import TYPE_CHECKING, Protocol

from thirra_memory import constants
from thirra_memory.core.llm import TRANSIENT_ERRORS
from thirra_memory.core.utils import elapsed_ms
from thirra_memory.memory._store import ConversationStore
from thirra_memory.rag._utils import chunk_text, cosine_similarity, is_text_like_file, normalize_text
from thirra_memory.rag.models import IndexedChunk, RetrievalResult, ScoredChunk

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from thirra_memory.memory.turns import TurnCache
    from thirra_memory.rag.models import EphemeralFile

LOGGER = logging.getLogger(__name__)


class EmbeddingsProvider(Protocol):
    """Anything that can embed text."""

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        ...

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed several texts, preserving order."""
        ...


@dataclass
class _ConversationIndex:
    chunks: deque[IndexedChunk] = field(default_factory=deque)
    seen: set[str] = field(default_factory=set)
    indexed_count: int = 0
    """How many turn texts have already been chunked and embedded."""


class SemanticIndex:
    """Embeds conversation text incrementally and answers similarity queries."""

    def __init__(
        self,
        turns: TurnCache,
        embeddings: EmbeddingsProvider,
        *,
        chunk_size: int = constants.CHUNK_SIZE,
        chunk_overlap: int = constants.CHUNK_OVERLAP,
        max_chunks: int = constants.MAX_CHUNKS_PER_CONVERSATION,
        max_chars_per_chunk: int = constants.RETRIEVAL_CHUNK_MAX_CHARS,
        max_conversations: int = constants.MAX_CACHED_CONVERSATIONS,
    ) -> None:
        """Create an empty index over cached turns."""
        self.turns = turns
        self.embeddings = embeddings
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.max_chunks = max_chunks
        self.max_chars_per_chunk = max_chars_per_chunk
        self._indexes: ConversationStore[_ConversationIndex] = ConversationStore(
            "semantic",
            max_entries=max_conversations,
        )

    def _new_chunks(self, index: _ConversationIndex, texts: Iterable[str]) -> list[str]:
        fresh: list[str] = []
        for text in texts:
            for chunk in chunk_text(text, self.chunk_size, self.chunk_overlap):
                if chunk and chunk not in index.seen:
                    index.seen.add(chunk)
                    fresh.append(chunk)
        return fresh

    async def ensure_indexed(
        self,
        conversation_id: str,
        ephemeral_files: Sequence[EphemeralFile] = (),
    ) -> int:
        """Embed turn text and text-like attachments not indexed yet.

        Returns the number of chunks added. If embedding fails, nothing is added and
        the same text is retried on the next call.
        """
        index = self._indexes.get_or_create(conversation_id, _ConversationIndex)
        turns = await self.turns.get(conversation_id)
        all_texts = [
            text for turn in turns for text in (turn.user_text, turn.assistant_text) if text
        ]
        file_texts = [f.text() for f in ephemeral_files if is_text_like_file(f)]
        fresh = self._new_chunks(index, [*all_texts[index.indexed_count :], *file_texts])
        if not fresh:
            index.indexed_count = len(all_texts)
            return 0

        start = perf_counter()
        try:
            vectors = await self.embeddings.embed_batch(fresh)
        except TRANSIENT_ERRORS:
            LOGGER.warning(
                "Embedding %d chunks failed (conversation=%s)",
                len(fresh),
                conversation_id,
                exc_info=True,
            )
            index.seen.difference_update(fresh)
            return 0

        added = 0
        for text, vector in zip(fresh, vectors, strict=False):
            if not vector:
                index.seen.discard(text)
                continue
            index.chunks.append(IndexedChunk(text=text, embedding=list(vector)))
            added += 1
        while len(index.chunks) > self.max_chunks:
            evicted = index.chunks.popleft()
            index.seen.discard(evicted.text)
        index.indexed_count = len(all_texts)
        LOGGER.info(
            "Indexed %d chunks in %.1f ms (conversation=%s, total=%d)",
            added,
            elapsed_ms(start),
            conversation_id,
            len(index.chunks),
        )
        return added

    async def retrieve(self, conversation_id: str, query: str, top_k: int) -> RetrievalResult:
        """Return at most ``top_k`` chunks for a query, most similar first."""
        index = self._indexes.get(conversation_id)
        normalized = normalize_text(query)
        if index is None or not index.chunks or not normalized:
            return RetrievalResult()

        start = perf_counter()
        try:
            query_vector = await self.embeddings.embed(normalized)
        except TRANSIENT_ERRORS:
            LOGGER.warning(
                "Query embedding failed; skipping retrieval (conversation=%s)",
                conversation_id,
                exc_info=True,
            )
            return RetrievalResult()

        scored = sorted(
            (
                ScoredChunk(
                    text=chunk.text[: self.max_chars_per_chunk],
                    similarity=cosine_similarity(query_vector, chunk.embedding),
                )
                for chunk in index.chunks
            ),
            key=lambda c: c.similarity,
            reverse=True,
        )
        top = scored[: max(0, top_k)]
        LOGGER.debug(
            "Scored %d chunks in %.1f ms (conversation=%s)",
            len(scored),
            elapsed_ms(start),
            conversation_id,
        )
        return RetrievalResult(chunks=top, max_similarity=top[0].similarity if top else 0.0)

    def chunk_count(self, conversation_id: str) -> int:
        """Return how many chunks a conversation's index holds."""
        index = self._indexes.get(conversation_id)
        return len(index.chunks) if index else 0

    def clear(self) -> None:
        """Drop every index."""
        self._indexes.clear()

    def stats(self) -> dict[str, int | float | None]:
        """Return store counters plus the total chunk count."""
        stats = self._indexes.stats()
        stats["chunks"] = sum(len(index.chunks) for index in self._indexes.values())
        return stats
