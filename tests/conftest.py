"""Shared test fixtures and configuration."""

from __future__ import annotations

import contextlib
import io
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import httpx
import pytest
from rich.console import Console

from thirra_memory.memory.models import ConversationTurn

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Set default timeout for all tests."""
    for item in items:
        with contextlib.suppress(AttributeError):
            item.add_marker(pytest.mark.timeout(3))


@pytest.fixture
def mock_console() -> Console:
    """Provide a console that writes to a StringIO for testing."""
    return Console(file=io.StringIO(), width=80, force_terminal=True)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Provide a clock tests can move forward explicitly."""
    return FakeClock()


@pytest.fixture
def make_turns() -> Callable[..., list[ConversationTurn]]:
    """Build ``count`` user/assistant turns with increasing timestamps."""

    def _make(
        count: int,
        *,
        conversation_id: str = "conv1",
        start: int = 0,
        texts: Sequence[tuple[str | None, str | None]] | None = None,
    ) -> list[ConversationTurn]:
        base = datetime(2024, 1, 1, tzinfo=UTC)
        pairs = texts or [(f"user {i}", f"assistant {i}") for i in range(start, start + count)]
        return [
            ConversationTurn(
                id=f"{conversation_id}-{start + i}",
                conversation_id=conversation_id,
                user_text=user,
                assistant_text=assistant,
                created_at=base + timedelta(minutes=start + i),
            )
            for i, (user, assistant) in enumerate(pairs)
        ]

    return _make


class KeywordEmbeddings:
    """Deterministic embeddings: one dimension per vocabulary word (count of occurrences)."""

    VOCAB = ("python", "budget", "travel", "japan", "database", "summary", "cat", "dog")

    def __init__(self) -> None:
        self.batches: list[list[str]] = []
        self.queries: list[str] = []
        self.fail = False

    def _vector(self, text: str) -> list[float]:
        lowered = text.lower()
        return [float(lowered.count(word)) for word in self.VOCAB]

    async def embed(self, text: str) -> list[float]:
        if self.fail:
            msg = "embedding backend down"
            raise httpx.ConnectError(msg)
        self.queries.append(text)
        return self._vector(text)

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if self.fail:
            msg = "embedding backend down"
            raise httpx.ConnectError(msg)
        self.batches.append(list(texts))
        return [self._vector(t) for t in texts]


@pytest.fixture
def keyword_embeddings() -> KeywordEmbeddings:
    """Provide deterministic in-memory embeddings."""
    return KeywordEmbeddings()
