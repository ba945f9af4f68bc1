"""Tests for the turn cache, bounded store and short-term window."""

from __future__ import annotations

import pytest

from thirra_memory.memory._store import ConversationStore
from thirra_memory.memory.models import ConversationTurn, Message, Role
from thirra_memory.memory.turns import (
    InMemoryTurnStore,
    ShortTermMemory,
    TurnCache,
    last_messages,
    messages_from_turns,
)


class _CountingStore(InMemoryTurnStore):
    def __init__(self, turns: list[ConversationTurn]) -> None:
        super().__init__(turns)
        self.calls = 0

    async def list_turns(self, conversation_id: str) -> list[ConversationTurn]:
        self.calls += 1
        return await super().list_turns(conversation_id)


def test_store_ttl_expiry(clock) -> None:
    store: ConversationStore[int] = ConversationStore("t", ttl_seconds=10, clock=clock)
    store.set("a", 1)
    clock.advance(9)
    assert store.get("a") == 1
    clock.advance(1)
    assert store.get("a") is None
    assert "a" not in store
    assert store.stats()["hits"] == 1
    assert store.stats()["misses"] == 1


def test_store_evicts_least_recently_used() -> None:
    store: ConversationStore[str] = ConversationStore("t", max_entries=2)
    store.set("a", "A")
    store.set("b", "B")
    store.get("a")
    store.set("c", "C")
    assert "b" not in store
    assert store.values() == ["A", "C"]
    assert store.evictions == 1


def test_store_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError, match="max_entries"):
        ConversationStore("t", max_entries=0)


def test_turn_to_messages_skips_missing_sides() -> None:
    turn = ConversationTurn(id="1", conversation_id="c", user_text="hi", assistant_text=None)
    assert turn.to_messages() == [Message(role=Role.USER, content="hi")]
    assert ConversationTurn(id="2", conversation_id="c").to_messages() == []


def test_last_messages_bounds(make_turns) -> None:
    messages = messages_from_turns(make_turns(3))
    assert len(messages) == 6
    assert last_messages(messages, 4) == messages[2:]
    assert last_messages(messages, 10) == messages
    assert last_messages(messages, 0) == []


@pytest.mark.asyncio
async def test_turn_cache_fetches_once_within_ttl(make_turns, clock) -> None:
    store = _CountingStore(make_turns(2))
    cache = TurnCache(store, ttl_seconds=30, clock=clock)

    first = await cache.get("conv1")
    second = await cache.get("conv1")
    assert first == second
    assert store.calls == 1

    clock.advance(30)
    await cache.get("conv1")
    assert store.calls == 2


@pytest.mark.asyncio
async def test_turn_cache_invalidate_forces_refetch(make_turns, clock) -> None:
    store = _CountingStore(make_turns(1))
    cache = TurnCache(store, clock=clock)
    await cache.get("conv1")
    await store.append_turn("conv1", user_text="new question", assistant_text="new answer")

    assert len(await cache.get("conv1")) == 1
    cache.invalidate("conv1")
    assert len(await cache.get("conv1")) == 2
    assert store.calls == 2


@pytest.mark.asyncio
async def test_in_memory_store_orders_by_created_at(make_turns) -> None:
    turns = make_turns(3)
    store = InMemoryTurnStore(reversed(turns))
    assert await store.list_turns("conv1") == turns
    assert await store.list_turns("missing") == []


@pytest.mark.asyncio
async def test_short_term_window_is_last_k_messages(make_turns) -> None:
    memory = ShortTermMemory(TurnCache(InMemoryTurnStore(make_turns(6))), k=5)

    window = await memory.get("conv1")
    assert len(window) == 5
    assert window[0] == Message(role=Role.ASSISTANT, content="assistant 3")
    assert window[-1] == Message(role=Role.ASSISTANT, content="assistant 5")

    assert [m.content for m in await memory.get("conv1", k=2)] == ["user 5", "assistant 5"]


@pytest.mark.asyncio
async def test_short_term_window_of_short_conversation(make_turns) -> None:
    memory = ShortTermMemory(TurnCache(InMemoryTurnStore(make_turns(1))), k=5)
    assert [m.content for m in await memory.get("conv1")] == ["user 0", "assistant 0"]
    assert await memory.get("other") == []


class _FailingStore(InMemoryTurnStore):
    async def list_turns(self, conversation_id: str) -> list[ConversationTurn]:
        msg = f"turn store unavailable for {conversation_id}"
        raise RuntimeError(msg)


@pytest.mark.asyncio
async def test_turn_cache_propagates_store_failure(clock) -> None:
    cache = TurnCache(_FailingStore(), clock=clock)
    with pytest.raises(RuntimeError, match="turn store unavailable for conv1"):
        await cache.get("conv1")
    assert cache.stats()["entries"] == 0
