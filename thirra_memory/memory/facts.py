"""Key/value fact extraction and the per-conversation fact store."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING

from thirra_memory import constants
from thirra_memory.memory._store import ConversationStore
from thirra_memory.memory.models import Fact

if TYPE_CHECKING:
    from collections.abc import Iterable

LOGGER = logging.getLogger(__name__)

_KEY = r"([A-Za-z_][\w.-]*)"
# A quoted value ends at its closing quote, a bare one at a word boundary.
_VALUE = r"([\"']?)([^\s\"']+)\2(?:(?<=[\"'])|\b)"

# Ordered grammar; each pattern captures (key, quote, value).
ASSIGNMENT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"\b{_KEY}\s*=\s*{_VALUE}"),
    re.compile(rf"\b{_KEY}\s*:\s*{_VALUE}"),
    re.compile(rf"\b(?:value\s+of\s+)?{_KEY}\s+is\s+{_VALUE}", re.IGNORECASE),
    re.compile(rf"\bset\s+{_KEY}\s+to\s+{_VALUE}", re.IGNORECASE),
)


def extract_assignments(text: str) -> list[Fact]:
    """Extract ``key=value`` style assignments from free text.

    Every pattern is scanned over the whole text. When a key is assigned more
    than once, the occurrence that appears last in the text wins. Keys are
    lowercased; the result holds one fact per key, in order of first mention.
    """
    if not text:
        return []
    matches: list[tuple[int, int, str, str]] = []
    for rank, pattern in enumerate(ASSIGNMENT_PATTERNS):
        for match in pattern.finditer(text):
            key, _quote, value = match.groups()
            matches.append((match.start(), rank, key.lower(), value))
    matches.sort(key=lambda m: (m[0], m[1]))

    latest: dict[str, str] = {}
    for _pos, _rank, key, value in matches:
        latest[key] = value
    return [Fact(key=key, value=value) for key, value in latest.items()]


class FactStore:
    """In-memory fact map per conversation, capped at a fixed number of keys."""

    def __init__(
        self,
        *,
        max_facts: int = constants.MAX_FACTS_PER_CONVERSATION,
        max_conversations: int = constants.MAX_CACHED_CONVERSATIONS,
    ) -> None:
        """Create an empty store."""
        self.max_facts = max_facts
        self._facts: ConversationStore[dict[str, str]] = ConversationStore(
            "facts",
            max_entries=max_conversations,
        )

    def upsert(self, conversation_id: str, facts: Iterable[Fact] | Mapping[str, str]) -> None:
        """Merge facts into the conversation's map; the newest value of a key wins."""
        pairs = facts.items() if isinstance(facts, Mapping) else ((f.key, f.value) for f in facts)
        current = self._facts.get_or_create(conversation_id, dict)
        for raw_key, raw_value in pairs:
            key = str(raw_key).strip().lower()
            value = str(raw_value).strip()
            if not key or not value:
                continue
            current[key] = value
            if len(current) > self.max_facts:
                oldest = next(iter(current))
                del current[oldest]
                LOGGER.debug("Evicted fact %r (conversation=%s)", oldest, conversation_id)

    def get(self, conversation_id: str) -> dict[str, str]:
        """Return a copy of the conversation's facts in insertion order."""
        return dict(self._facts.get(conversation_id) or {})

    def get_text(self, conversation_id: str) -> str:
        """Render facts as ``k1=v1; k2=v2`` (empty string when there are none)."""
        current = self._facts.get(conversation_id) or {}
        return "; ".join(f"{key}={value}" for key, value in current.items())

    def record_from_text(self, conversation_id: str, text: str) -> list[Fact]:
        """Extract assignments from text and store them; return what was found."""
        facts = extract_assignments(text)
        if facts:
            self.upsert(conversation_id, facts)
            LOGGER.debug("Recorded %d facts (conversation=%s)", len(facts), conversation_id)
        return facts

    def clear(self, conversation_id: str | None = None) -> None:
        """Forget one conversation's facts, or every conversation's."""
        if conversation_id is None:
            self._facts.clear()
        else:
            self._facts.delete(conversation_id)

    def stats(self) -> dict[str, int | float | None]:
        """Return store counters."""
        return self._facts.stats()
