"""Character budget enforcement for the assembled prompt."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from thirra_memory.config import BudgetSettings
from thirra_memory.memory.models import Message, Role
from thirra_memory.memory.summary import is_summary_message

if TYPE_CHECKING:
    from collections.abc import Sequence

LOGGER = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

# Fewer messages than this leaves nothing in front of the final pair to compress.
_MIN_MESSAGES_TO_COMPRESS = 4


def normalize_text(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", (text or "").lower()).strip()


def count_chars(messages: Sequence[Message]) -> int:
    """Return the total content length of messages."""
    return sum(len(m.content) for m in messages)


@dataclass
class BudgetResult:
    """History after budget enforcement plus what was done to it."""

    history_messages: list[Message]
    history_chars: int
    input_chars: int
    total_chars: int
    budget: int
    stages: list[str] = field(default_factory=list)

    @property
    def over_budget(self) -> bool:
        """Whether the prompt still exceeds the budget after every stage."""
        return self.total_chars > self.budget


def _compress_recent(message: Message, limit: int) -> Message:
    text = _WHITESPACE_RE.sub(" ", message.content).strip()[:limit]
    return Message(role=Role.SYSTEM, content=f"Compressed recent ({message.role.value}): {text}")


class BudgetGuard:
    """Reconcile history and new input against a character budget in ordered stages."""

    def __init__(self, settings: BudgetSettings | None = None) -> None:
        """Use the given budget parameters (defaults otherwise)."""
        self.settings = settings or BudgetSettings()

    def apply(
        self,
        base_history: Sequence[Message],
        input_messages: Sequence[Message],
        raw_query: str,
    ) -> BudgetResult:
        """Trim history so that history plus input fits the prompt budget.

        Stages run in order, each only when needed: drop the summary for a repeated
        question, compress the two messages before the final pair when history is
        long, then cut the summary down when the whole prompt is over budget.
        Messages no stage touches (the final pair and any short-term message in
        front of the compressed pair) are irreducible, so a prompt can stay over
        budget; that is logged and flagged, never raised.
        """
        s = self.settings
        history = list(base_history)
        stages: list[str] = []

        last_user = next((m for m in reversed(history) if m.role is Role.USER), None)
        if last_user is not None and normalize_text(last_user.content) == normalize_text(raw_query):
            summary_index = next((i for i, m in enumerate(history) if is_summary_message(m)), None)
            if summary_index is not None:
                del history[summary_index]
                stages.append("repeat_question")
                LOGGER.info("Skipped summary due to repeated question")

        if count_chars(history) > s.max_history_chars and len(history) >= _MIN_MESSAGES_TO_COMPRESS:
            n = len(history)
            history[n - 4 : n - 2] = [
                _compress_recent(m, s.compressed_recent_chars) for m in history[n - 4 : n - 2]
            ]
            stages.append("compress_history")
            LOGGER.info("Compressed prior recent messages due to history cap")

        input_chars = count_chars(input_messages)
        total_chars = count_chars(history) + input_chars
        if total_chars > s.prompt_char_budget:
            summary_index = next((i for i, m in enumerate(history) if is_summary_message(m)), None)
            if summary_index is not None:
                content = history[summary_index].content
                history[summary_index] = Message(
                    role=Role.SYSTEM,
                    content=content[: s.summary_cap_chars],
                )
                total_chars = count_chars(history) + input_chars
                stages.append("truncate_summary")

        result = BudgetResult(
            history_messages=history,
            history_chars=count_chars(history),
            input_chars=input_chars,
            total_chars=total_chars,
            budget=s.prompt_char_budget,
            stages=stages,
        )
        LOGGER.info(
            "Prompt budget: history_chars=%d input_chars=%d total_chars=%d",
            result.history_chars,
            result.input_chars,
            result.total_chars,
        )
        if result.over_budget:
            LOGGER.warning(
                "Prompt exceeds budget after all reductions: total_chars=%d budget=%d",
                result.total_chars,
                result.budget,
            )
        return result


def apply_budget_guard(
    base_history: Sequence[Message],
    input_messages: Sequence[Message],
    raw_query: str,
    settings: BudgetSettings | None = None,
) -> BudgetResult:
    """Run a `BudgetGuard` once with the given settings."""
    return BudgetGuard(settings).apply(base_history, input_messages, raw_query)
