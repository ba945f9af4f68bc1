"""Core context assembly engine."""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from time import perf_counter
from typing import TYPE_CHECKING, Any, Protocol

import httpx
import openai

from thirra_memory.config import Settings
from thirra_memory.core.llm import OpenAIChatCompletion, OpenAIEmbeddings
from thirra_memory.core.utils import elapsed_ms
from thirra_memory.errors import CompletionError
from thirra_memory.memory.budget import BudgetGuard, BudgetResult
from thirra_memory.memory.facts import FactStore
from thirra_memory.memory.metrics import (
    InputMetrics,
    collect_input_metrics,
    heuristic_quality_score,
    log_tuning_metrics,
    relevance_token_ratio,
)
from thirra_memory.memory.models import Message, Role
from thirra_memory.memory.streaming import (
    StreamingAccumulator,
    TurnResult,
    accumulate_streaming_data,
    finish_stream,
)
from thirra_memory.memory.summary import LongTermMemory, PydanticAISummarizer
from thirra_memory.memory.turns import ShortTermMemory, TurnCache
from thirra_memory.output.parser import parse_model_output
from thirra_memory.output.prompt import build_prompt
from thirra_memory.rag._utils import is_text_like_file
from thirra_memory.rag.compression import PydanticAICompressor
from thirra_memory.rag.index import SemanticIndex
from thirra_memory.rag.models import SemanticContext
from thirra_memory.rag.retriever import get_semantic_context
from thirra_memory.routing.router import PydanticAIClassifier, QueryRouter

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable, Sequence

    from thirra_memory.memory.models import Fact
    from thirra_memory.memory.streaming import StreamEvent
    from thirra_memory.memory.summary import Summarizer
    from thirra_memory.memory.turns import TurnStore
    from thirra_memory.output.models import ParsedOutput
    from thirra_memory.rag.compression import Compressor
    from thirra_memory.rag.index import EmbeddingsProvider
    from thirra_memory.rag.models import EphemeralFile, ScoredChunk
    from thirra_memory.routing.router import ClassificationResult, Classifier

    StreamCallback = Callable[[StreamEvent], Awaitable[None] | None]

logger = logging.getLogger(__name__)

_TRUNCATED_MARKER = "\n[...truncated...]"
_BINARY_PLACEHOLDER = "[binary or unsupported format; content omitted]"


class ChatCompletionProvider(Protocol):
    """Streams a completion for an assembled prompt."""

    def stream_complete(
        self,
        system_prompt: str,
        history: Sequence[Message],
        input_messages: Sequence[Message],
        model_id: str,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield decoded completion chunks."""
        ...


@dataclass
class AssembledContext:
    """Everything needed to send one turn to the model."""

    conversation_id: str
    query: str
    system_prompt: str
    history_messages: list[Message]
    input_messages: list[Message]
    context_text: str
    facts_text: str
    routing: ClassificationResult
    budget: BudgetResult
    semantic: SemanticContext
    input_metrics: InputMetrics
    has_summary: bool = False
    short_term_count: int = 0
    context_pruned: bool = False
    details: dict[str, Any] = field(default_factory=dict)


def build_attachment_messages(
    files: Sequence[EphemeralFile],
    *,
    max_chars: int = 5000,
) -> list[Message]:
    """Render attached files as user messages, text inline and binary as a placeholder."""
    messages: list[Message] = []
    for f in files:
        content = f.text() if is_text_like_file(f) else ""
        if content:
            if len(content) > max_chars:
                content = content[:max_chars] + _TRUNCATED_MARKER
            text = f"Attached file: {f.name}\nType: {f.mimetype}\n---\n{content}"
        else:
            text = f"Attached file: {f.name}\nType: {f.mimetype}\nContent: {_BINARY_PLACEHOLDER}"
        messages.append(Message(role=Role.USER, content=text))
    return messages


def query_message(query: str) -> Message:
    """Wrap the user's query as the final input message."""
    return Message(role=Role.USER, content=f"QUERY: {query}")


def prune_context_items(
    items: Sequence[ScoredChunk],
    *,
    history_messages: Sequence[Message],
    input_messages: Sequence[Message],
    token_threshold: int,
) -> list[ScoredChunk]:
    """Keep the most similar items whose combined prompt stays under the token threshold.

    When not even the best item fits, it is kept alone.
    """
    ranked = sorted(items, key=lambda item: item.similarity, reverse=True)
    kept: list[ScoredChunk] = []
    for item in ranked:
        candidate = [*kept, item]
        estimate = collect_input_metrics(
            history_messages=history_messages,
            context_text=SemanticContext(items=candidate).context_text,
            input_messages=input_messages,
        ).token_estimate
        if estimate > token_threshold:
            break
        kept = candidate
    return kept or ranked[:1]


class ContextEngine:
    """Assemble per-turn context from layered memory and stream routed completions.

    All per-conversation state lives in bounded stores owned by the engine and is
    dropped by `close`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        turn_store: TurnStore,
        embeddings: EmbeddingsProvider | None = None,
        completion: ChatCompletionProvider | None = None,
        summarizer: Summarizer | None = None,
        classifier: Classifier | None = None,
        compressor: Compressor | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Wire the memory layers around the injected collaborators.

        Without ``embeddings`` there is no semantic recall, without ``summarizer``
        no long-term summary, and without ``classifier`` routing uses keywords only.
        """
        self.settings = settings or Settings()
        s = self.settings
        self.embeddings = embeddings
        self.completion = completion
        self.compressor = compressor if s.rag.compress_context else None
        self.turns = TurnCache(
            turn_store,
            ttl_seconds=s.cache.turns_ttl_seconds,
            max_conversations=s.cache.max_conversations,
            clock=clock,
        )
        self.short_term = ShortTermMemory(self.turns, k=s.memory.recent_message_count)
        self.long_term = (
            LongTermMemory(
                self.turns,
                summarizer,
                window=s.memory.recent_message_count,
                drift_threshold=s.cache.summary_drift_threshold,
                ttl_seconds=s.cache.summary_ttl_seconds,
                summary_cap_chars=s.memory.summary_cap_chars,
                max_conversations=s.cache.max_conversations,
                clock=clock,
            )
            if summarizer is not None
            else None
        )
        self.facts = FactStore(
            max_facts=s.memory.max_facts_per_conversation,
            max_conversations=s.cache.max_conversations,
        )
        self.semantic = (
            SemanticIndex(
                self.turns,
                embeddings,
                chunk_size=s.rag.chunk_size,
                chunk_overlap=s.rag.chunk_overlap,
                max_chunks=s.rag.max_chunks_per_conversation,
                max_chars_per_chunk=s.rag.retrieval_chunk_max_chars,
                max_conversations=s.cache.max_conversations,
            )
            if embeddings is not None
            else None
        )
        self.guard = BudgetGuard(s.budget)
        self.router = QueryRouter(s.routing, classifier=classifier)

    @classmethod
    def from_settings(cls, settings: Settings, *, turn_store: TurnStore) -> ContextEngine:
        """Build an engine whose model and embedding calls go to the configured endpoint."""
        provider = settings.provider
        return cls(
            settings,
            turn_store=turn_store,
            embeddings=OpenAIEmbeddings(provider),
            completion=OpenAIChatCompletion(provider),
            summarizer=PydanticAISummarizer(
                provider,
                max_tokens=settings.memory.summary_max_tokens,
            ),
            classifier=PydanticAIClassifier(provider, model=settings.routing.classifier_model),
            compressor=PydanticAICompressor(
                provider,
                target_low=settings.rag.compress_target_low,
                target_high=settings.rag.compress_target_high,
            ),
        )

    async def __aenter__(self) -> ContextEngine:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # --- Exposed operations ---

    def record_facts_from_text(self, conversation_id: str, text: str) -> list[Fact]:
        """Extract ``key=value`` style facts from text and remember them."""
        return self.facts.record_from_text(conversation_id, text)

    def invalidate_conversation(self, conversation_id: str) -> None:
        """Make the next turn refetch the conversation's turns from the store."""
        self.turns.invalidate(conversation_id)

    def parse_model_output(self, raw: str, *, expect_title: bool = False) -> ParsedOutput:
        """Parse block-formatted output, falling back to lenient parsing."""
        return parse_model_output(raw, expect_title=expect_title)

    async def assemble_context(
        self,
        conversation_id: str,
        query: str,
        user_instruction: str | None = None,
        *,
        ephemeral_files: Sequence[EphemeralFile] = (),
        needs_title: bool = False,
    ) -> AssembledContext:
        """Build the history, retrieved context, facts and routing for one turn."""
        start = perf_counter()
        s = self.settings
        self.record_facts_from_text(conversation_id, query)

        # Fetch turns once up front; the layers below share the cached copy.
        short_term = await self.short_term.get(conversation_id)
        summary_msg, semantic = await asyncio.gather(
            self._long_term_summary(conversation_id, user_instruction),
            self._semantic_context(conversation_id, query, user_instruction, ephemeral_files),
        )
        base_history = [summary_msg, *short_term] if summary_msg else list(short_term)
        facts_text = self.facts.get_text(conversation_id)

        input_messages = [
            *build_attachment_messages(ephemeral_files, max_chars=s.budget.attachment_max_chars),
            query_message(query),
        ]
        budget = self.guard.apply(base_history, input_messages, query)
        history = budget.history_messages

        metrics = collect_input_metrics(
            history_messages=history,
            context_text=semantic.context_text,
            input_messages=input_messages,
        )
        token_threshold = int(s.budget.max_context_tokens * s.budget.context_token_ratio)
        pruned = False
        if metrics.token_estimate > token_threshold and semantic.items:
            kept = prune_context_items(
                semantic.items,
                history_messages=history,
                input_messages=input_messages,
                token_threshold=token_threshold,
            )
            pruned = len(kept) < len(semantic.items)
            semantic = semantic.model_copy(update={"items": kept})
            metrics = collect_input_metrics(
                history_messages=history,
                context_text=semantic.context_text,
                input_messages=input_messages,
            )
            logger.info(
                "Pruned retrieved context to %d items (conversation=%s)",
                len(kept),
                conversation_id,
            )

        routing = await self.router.route(query, short_term)
        system_prompt = build_prompt(
            needs_title=needs_title,
            user_instruction=user_instruction,
            context_text=semantic.context_text,
            facts_text=facts_text,
        )
        details = {
            "semantic_recall": semantic.stats.model_dump(),
            "short_count": len(short_term),
            "has_summary": summary_msg is not None,
            "budget_stages": budget.stages,
            "over_budget": budget.over_budget,
            "context_pruned": pruned,
            "category": routing.category.value,
        }
        log_tuning_metrics(
            "pre",
            input_metrics=metrics,
            relevance_per_token=relevance_token_ratio(
                (item.similarity for item in semantic.items),
                metrics.token_estimate,
            ),
            details=details,
        )
        logger.info(
            "Assembled context in %.1f ms (conversation=%s)",
            elapsed_ms(start),
            conversation_id,
        )
        return AssembledContext(
            conversation_id=conversation_id,
            query=query,
            system_prompt=system_prompt,
            history_messages=history,
            input_messages=input_messages,
            context_text=semantic.context_text,
            facts_text=facts_text,
            routing=routing,
            budget=budget,
            semantic=semantic,
            input_metrics=metrics,
            has_summary=summary_msg is not None,
            short_term_count=len(short_term),
            context_pruned=pruned,
            details=details,
        )

    async def _long_term_summary(
        self,
        conversation_id: str,
        instruction: str | None,
    ) -> Message | None:
        if self.long_term is None:
            return None
        return await self.long_term.get(conversation_id, instruction)

    async def _semantic_context(
        self,
        conversation_id: str,
        query: str,
        instruction: str | None,
        ephemeral_files: Sequence[EphemeralFile],
    ) -> SemanticContext:
        if self.semantic is None:
            return SemanticContext()
        rag = self.settings.rag
        return await get_semantic_context(
            self.semantic,
            conversation_id,
            query,
            instruction=instruction,
            ephemeral_files=ephemeral_files,
            threshold_factor=rag.threshold_factor,
            complex_query_threshold=rag.complex_query_threshold,
            compressor=self.compressor,
            target_high=rag.compress_target_high,
        )

    async def stream_turn(
        self,
        conversation_id: str,
        query: str,
        user_instruction: str | None = None,
        *,
        ephemeral_files: Sequence[EphemeralFile] = (),
        needs_title: bool = False,
        on_chunk: StreamCallback | None = None,
    ) -> TurnResult:
        """Assemble context, stream the routed model and parse the finished output.

        Content and reasoning markers are delivered to ``on_chunk`` as they arrive.
        Nothing is persisted; appending the turn to the store is the caller's job.

        Raises:
            CompletionError: If no completion provider is configured or the stream fails.

        """
        if self.completion is None:
            msg = "No chat completion provider configured"
            raise CompletionError(msg)
        context = await self.assemble_context(
            conversation_id,
            query,
            user_instruction,
            ephemeral_files=ephemeral_files,
            needs_title=needs_title,
        )
        accumulator = StreamingAccumulator()
        start = perf_counter()
        stream = self.completion.stream_complete(
            context.system_prompt,
            context.history_messages,
            context.input_messages,
            context.routing.model_id,
        )
        try:
            async with aclosing(stream) as chunks:
                async for chunk in chunks:
                    for event in accumulate_streaming_data(chunk, accumulator):
                        await _emit(on_chunk, event)
        except (httpx.HTTPError, openai.OpenAIError) as exc:
            msg = f"Completion stream failed: {exc}"
            raise CompletionError(msg) from exc
        for event in finish_stream(accumulator):
            await _emit(on_chunk, event)

        logger.info(
            "LLM tokens conversation=%s prompt=%s completion=%s total=%s in %.1f ms",
            conversation_id,
            accumulator.prompt_tokens,
            accumulator.completion_tokens,
            accumulator.total_tokens,
            elapsed_ms(start),
        )
        raw_output = accumulator.raw_output
        parsed = parse_model_output(raw_output, expect_title=needs_title)
        quality = heuristic_quality_score(parsed.response or "")
        log_tuning_metrics(
            "post",
            input_metrics=context.input_metrics,
            relevance_per_token=relevance_token_ratio(
                (item.similarity for item in context.semantic.items),
                context.input_metrics.token_estimate,
            ),
            output_tokens=accumulator.total_tokens,
            quality_score=quality,
            details={"context_chars": len(context.context_text), "used_fallback": parsed.used_fallback},
        )
        return TurnResult(
            context=context,
            raw_output=raw_output,
            parsed=parsed,
            model=accumulator.model or context.routing.model_id,
            prompt_tokens=accumulator.prompt_tokens,
            completion_tokens=accumulator.completion_tokens,
            total_tokens=accumulator.total_tokens,
            quality_score=quality,
        )

    # --- Cache maintenance ---

    def clear_all_caches(self) -> None:
        """Drop every conversation's cached turns, summary, facts and index."""
        self.turns.clear()
        self.facts.clear()
        if self.long_term is not None:
            self.long_term.clear()
        if self.semantic is not None:
            self.semantic.clear()

    def get_cache_stats(self) -> dict[str, dict[str, int | float | None]]:
        """Return per-store size and hit/miss counters."""
        stats = {"turns": self.turns.stats(), "facts": self.facts.stats()}
        if self.long_term is not None:
            stats["summaries"] = self.long_term.stats()
        if self.semantic is not None:
            stats["semantic"] = self.semantic.stats()
        return stats

    async def close(self) -> None:
        """Drop all state and release the embeddings client if it holds one."""
        self.clear_all_caches()
        close = getattr(self.embeddings, "close", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result


async def _emit(callback: StreamCallback | None, event: StreamEvent) -> None:
    if callback is None:
        return
    result = callback(event)
    if inspect.isawaitable(result):
        await result
