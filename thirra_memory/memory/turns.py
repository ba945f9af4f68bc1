"""Turn caching and the short-term message window."""

from __future__ import annotations

import logging
import time
import uuid
from datetime import UTC, datetime
from time import perf_counter
from typing import TYPE_CHECKING, Protocol

from thirra_memory import constants
from thirra_memory.core.utils import elapsed_ms
from thirra_memory.memory._store import ConversationStore
from thirra_memory.memory.models import CachedTurns, ConversationTurn, Message

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

LOGGER = logging.getLogger(__name__)


class TurnStore(Protocol):
    """Persistence layer for conversation turns."""

    async def list_turns(self, conversation_id: str) -> list[ConversationTurn]:
        """Return all turns of a conversation ordered by creation time."""
        ...

    async def append_turn(
        self,
        conversation_id: str,
        *,
        user_text: str | None,
        assistant_text: str | None,
    ) -> ConversationTurn:
        """Persist a new turn and return it."""
        ...


class InMemoryTurnStore:
    """Process-local turn store, used by the CLI and in tests."""

    def __init__(self, turns: Iterable[ConversationTurn] = ()) -> None:
        """Seed the store with existing turns."""
        self._turns: dict[str, list[ConversationTurn]] = {}
        for turn in turns:
            self._turns.setdefault(turn.conversation_id, []).append(turn)

    async def list_turns(self, conversation_id: str) -> list[ConversationTurn]:
        """Return the conversation's turns sorted by creation time."""
        return sorted(self._turns.get(conversation_id, []), key=lambda t: t.created_at)

    async def append_turn(
        self,
        conversation_id: str,
        *,
        user_text: str | None,
        assistant_text: str | None,
    ) -> ConversationTurn:
        """Append a turn stamped with the current time."""
        turn = ConversationTurn(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            user_text=user_text,
            assistant_text=assistant_text,
            created_at=datetime.now(UTC),
        )
        self._turns.setdefault(conversation_id, []).append(turn)
        return turn


class TurnCache:
    """Serve a conversation's turns from memory for a short time window."""

    def __init__(
        self,
        store: TurnStore,
        *,
        ttl_seconds: float = constants.TURNS_CACHE_TTL_SECONDS,
        max_conversations: int = constants.MAX_CACHED_CONVERSATIONS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Wrap a turn store with a TTL cache."""
        self.store = store
        self._clock = clock or time.monotonic
        self._cache: ConversationStore[CachedTurns] = ConversationStore(
            "turns",
            max_entries=max_conversations,
            ttl_seconds=ttl_seconds,
            clock=self._clock,
        )

    async def get(self, conversation_id: str) -> list[ConversationTurn]:
        """Return cached turns, fetching from the store at most once per TTL window."""
        cached = self._cache.get(conversation_id)
        if cached is not None:
            return cached.turns
        start = perf_counter()
        turns = await self.store.list_turns(conversation_id)
        LOGGER.debug(
            "Fetched %d turns in %.1f ms (conversation=%s)",
            len(turns),
            elapsed_ms(start),
            conversation_id,
        )
        self._cache.set(
            conversation_id,
            CachedTurns(conversation_id=conversation_id, turns=turns, fetched_at=self._clock()),
        )
        return turns

    def invalidate(self, conversation_id: str) -> None:
        """Force the next `get` to refetch from the store."""
        self._cache.delete(conversation_id)

    def clear(self) -> None:
        """Drop every cached conversation."""
        self._cache.clear()

    def stats(self) -> dict[str, int | float | None]:
        """Return cache counters."""
        return self._cache.stats()


def messages_from_turns(turns: Iterable[ConversationTurn]) -> list[Message]:
    """Flatten turns into chronological role-tagged messages."""
    return [message for turn in turns for message in turn.to_messages()]


def last_messages(messages: list[Message], k: int) -> list[Message]:
    """Return the final ``k`` messages (all of them when there are fewer)."""
    if k <= 0:
        return []
    return messages[-k:]


class ShortTermMemory:
    """The last-K-message window of a conversation."""

    def __init__(self, turns: TurnCache, *, k: int = constants.RECENT_MESSAGE_COUNT) -> None:
        """Derive windows from cached turns."""
        self.turns = turns
        self.k = k

    async def get(self, conversation_id: str, k: int | None = None) -> list[Message]:
        """Return the most recent ``k`` messages of the conversation."""
        turns = await self.turns.get(conversation_id)
        return last_messages(messages_from_turns(turns), self.k if k is None else k)
