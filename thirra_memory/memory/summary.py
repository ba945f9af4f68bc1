"""Rolling long-term summary of the messages older than the short-term window."""

from __future__ import annotations

import logging
import re
import time
from time import perf_counter
from typing import TYPE_CHECKING, Protocol

from pydantic_ai import Agent

from thirra_memory import constants
from thirra_memory.core.llm import TRANSIENT_ERRORS, build_chat_model
from thirra_memory.core.utils import elapsed_ms
from thirra_memory.errors import SummarizationError
from thirra_memory.memory._prompt import (
    SUMMARY_INSTRUCTION_TEMPLATE,
    SUMMARY_REFINE_TEMPLATE,
    SUMMARY_SYSTEM_PROMPT,
    SUMMARY_USER_TEMPLATE,
)
from thirra_memory.memory._store import ConversationStore
from thirra_memory.memory.models import Message, Role, SummaryCacheEntry, SummaryOutput
from thirra_memory.memory.turns import messages_from_turns

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from thirra_memory.config import ProviderSettings
    from thirra_memory.memory.turns import TurnCache

LOGGER = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


class Summarizer(Protocol):
    """Lightweight model call turning prompts into summary text."""

    async def __call__(self, system_prompt: str, user_prompt: str) -> str:
        """Return the summary text."""
        ...


class PydanticAISummarizer:
    """Summarizer backed by a pydantic_ai agent with structured output."""

    def __init__(
        self,
        provider: ProviderSettings,
        *,
        model: str | None = None,
        max_tokens: int = 256,
    ) -> None:
        """Bind the summarizer to an endpoint and model."""
        self.provider = provider
        self.model = model or provider.lightweight_model
        self.max_tokens = max_tokens

    async def __call__(self, system_prompt: str, user_prompt: str) -> str:
        """Run the summarization agent.

        Raises:
            SummarizationError: If the model call fails.

        """
        agent = Agent(
            model=build_chat_model(
                self.provider,
                self.model,
                temperature=0.2,
                max_tokens=self.max_tokens,
            ),
            system_prompt=system_prompt,
            output_type=SummaryOutput,
            retries=2,
        )
        try:
            result = await agent.run(user_prompt)
        except TRANSIENT_ERRORS as e:
            msg = f"Summarization failed: {e}"
            raise SummarizationError(msg) from e
        return result.output.summary


def format_transcript(messages: Sequence[Message]) -> str:
    """Render messages as ``role: content`` paragraphs."""
    return "\n\n".join(f"{m.role.value}: {m.content}" for m in messages)


def build_summary_prompts(
    messages: Sequence[Message],
    *,
    instruction: str | None = None,
    prior_summary: str | None = None,
) -> tuple[str, str]:
    """Return the (system, user) prompt pair for a summarization pass."""
    parts = [SUMMARY_SYSTEM_PROMPT]
    if instruction and instruction.strip():
        parts.append(SUMMARY_INSTRUCTION_TEMPLATE.format(instruction=instruction.strip()))
    if prior_summary:
        parts.append(SUMMARY_REFINE_TEMPLATE.format(summary=prior_summary))
    system_prompt = "\n\n".join(parts)
    return system_prompt, SUMMARY_USER_TEMPLATE.format(content=format_transcript(messages))


def compact_summary(text: str, cap: int = constants.SUMMARY_CAP_CHARS) -> str:
    """Collapse whitespace and cap the summary length."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()[:cap]


def summary_message(summary_text: str) -> Message:
    """Wrap summary text as the system message injected into history."""
    return Message(role=Role.SYSTEM, content=f"{constants.SUMMARY_PREFIX}\n{summary_text}")


def is_summary_message(message: Message) -> bool:
    """Return whether a message is the long-term summary message."""
    return message.role is Role.SYSTEM and message.content.startswith(constants.SUMMARY_PREFIX)


class LongTermMemory:
    """Incremental summary cache, refreshed only when the turn count drifts."""

    def __init__(
        self,
        turns: TurnCache,
        summarizer: Summarizer,
        *,
        window: int = constants.RECENT_MESSAGE_COUNT,
        drift_threshold: int = constants.SUMMARY_DRIFT_THRESHOLD,
        ttl_seconds: float | None = constants.SUMMARY_CACHE_TTL_SECONDS,
        summary_cap_chars: int = constants.SUMMARY_CAP_CHARS,
        max_conversations: int = constants.MAX_CACHED_CONVERSATIONS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Create the summary layer over cached turns."""
        self.turns = turns
        self.summarizer = summarizer
        self.window = window
        self.drift_threshold = drift_threshold
        self.summary_cap_chars = summary_cap_chars
        self._clock = clock or time.monotonic
        self._cache: ConversationStore[SummaryCacheEntry] = ConversationStore(
            "summaries",
            max_entries=max_conversations,
            ttl_seconds=ttl_seconds,
            clock=self._clock,
        )

    async def get(self, conversation_id: str, instruction: str | None = None) -> Message | None:
        """Return the summary message for messages older than the window, if any."""
        turns = await self.turns.get(conversation_id)
        messages = messages_from_turns(turns)
        if len(messages) <= self.window:
            return None
        older = messages[: -self.window]
        turn_count = len(turns)

        entry = self._cache.get(conversation_id)
        if entry is not None and abs(entry.turn_count_at_summarization - turn_count) < self.drift_threshold:
            return summary_message(entry.summary_text)

        prior_summary: str | None = None
        pending = older
        if entry is not None and entry.summarized_message_count <= len(older):
            prior_summary = entry.summary_text
            pending = older[entry.summarized_message_count :]
        if not pending and entry is not None:
            self._store(conversation_id, entry.summary_text, turn_count, len(older))
            return summary_message(entry.summary_text)

        system_prompt, user_prompt = build_summary_prompts(
            pending,
            instruction=instruction,
            prior_summary=prior_summary,
        )
        start = perf_counter()
        try:
            raw = await self.summarizer(system_prompt, user_prompt)
        except TRANSIENT_ERRORS:
            LOGGER.warning(
                "Summary generation failed; continuing without long-term memory (conversation=%s)",
                conversation_id,
                exc_info=True,
            )
            return None
        summary = compact_summary(raw, self.summary_cap_chars)
        if not summary:
            LOGGER.warning("Summary generation returned no text (conversation=%s)", conversation_id)
            return None
        LOGGER.info(
            "Summarized %d messages in %.1f ms (conversation=%s)",
            len(pending),
            elapsed_ms(start),
            conversation_id,
        )
        self._store(conversation_id, summary, turn_count, len(older))
        return summary_message(summary)

    def _store(self, conversation_id: str, summary: str, turn_count: int, folded: int) -> None:
        self._cache.set(
            conversation_id,
            SummaryCacheEntry(
                conversation_id=conversation_id,
                summary_text=summary,
                turn_count_at_summarization=turn_count,
                summarized_message_count=folded,
                generated_at=self._clock(),
            ),
        )

    def peek(self, conversation_id: str) -> SummaryCacheEntry | None:
        """Return the cached entry without triggering summarization."""
        return self._cache.get(conversation_id)

    def clear(self) -> None:
        """Drop every cached summary."""
        self._cache.clear()

    def stats(self) -> dict[str, int | float | None]:
        """Return cache counters."""
        return self._cache.stats()
