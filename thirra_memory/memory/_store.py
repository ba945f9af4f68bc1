"""Bounded per-conversation state container."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

LOGGER = logging.getLogger(__name__)

V = TypeVar("V")


class ConversationStore(Generic[V]):
    """LRU map from conversation id to state, with an optional time-to-live.

    Entries past ``ttl_seconds`` are dropped on access. When more than
    ``max_entries`` conversations are held, the least recently used one is evicted.
    """

    def __init__(
        self,
        name: str,
        *,
        max_entries: int = 1000,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create an empty store."""
        if max_entries <= 0:
            msg = f"max_entries must be positive, got {max_entries}"
            raise ValueError(msg)
        self.name = name
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, V]] = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def _expired(self, stored_at: float) -> bool:
        return self.ttl_seconds is not None and self._clock() - stored_at >= self.ttl_seconds

    def get(self, conversation_id: str) -> V | None:
        """Return the live entry for a conversation, or None."""
        item = self._entries.get(conversation_id)
        if item is None:
            self.misses += 1
            return None
        stored_at, value = item
        if self._expired(stored_at):
            del self._entries[conversation_id]
            self.misses += 1
            return None
        self._entries.move_to_end(conversation_id)
        self.hits += 1
        return value

    def set(self, conversation_id: str, value: V) -> None:
        """Store (or replace) a conversation's entry and refresh its age."""
        self._entries[conversation_id] = (self._clock(), value)
        self._entries.move_to_end(conversation_id)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.evictions += 1
            LOGGER.debug("Evicted conversation %s from %s store", evicted, self.name)

    def get_or_create(self, conversation_id: str, factory: Callable[[], V]) -> V:
        """Return the live entry, creating it with ``factory`` when missing."""
        value = self.get(conversation_id)
        if value is None:
            value = factory()
            self.set(conversation_id, value)
        return value

    def delete(self, conversation_id: str) -> bool:
        """Drop a conversation's entry; return whether one existed."""
        return self._entries.pop(conversation_id, None) is not None

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def values(self) -> list[V]:
        """Return every stored value without touching recency or counters."""
        return [value for _, value in self._entries.values()]

    def stats(self) -> dict[str, int | float | None]:
        """Return size and hit/miss counters."""
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }
