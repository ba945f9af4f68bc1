"""Memory data models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(StrEnum):
    """Chat message role."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """Chat message model."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str

    def to_payload(self) -> dict[str, str]:
        """Return the OpenAI chat message dict."""
        return {"role": self.role.value, "content": self.content}


class ConversationTurn(BaseModel):
    """One stored exchange of a conversation, as supplied by the turn store."""

    model_config = ConfigDict(frozen=True)

    id: str
    conversation_id: str
    user_text: str | None = None
    assistant_text: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_messages(self) -> list[Message]:
        """Expand the turn into zero, one or two role-tagged messages."""
        messages: list[Message] = []
        if self.user_text:
            messages.append(Message(role=Role.USER, content=self.user_text))
        if self.assistant_text:
            messages.append(Message(role=Role.ASSISTANT, content=self.assistant_text))
        return messages


class CachedTurns(BaseModel):
    """Turns fetched for one conversation and when they were fetched."""

    conversation_id: str
    turns: list[ConversationTurn]
    fetched_at: float
    """Monotonic clock reading at fetch time."""


class Fact(BaseModel):
    """A normalized key/value assignment remembered for a conversation."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str

    @field_validator("key")
    @classmethod
    def _key_not_empty(cls, v: str) -> str:
        key = v.strip().lower()
        if not key:
            msg = "fact key must be non-empty"
            raise ValueError(msg)
        return key


class SummaryCacheEntry(BaseModel):
    """Rolling summary of the messages older than the short-term window."""

    conversation_id: str
    summary_text: str
    turn_count_at_summarization: int = Field(..., ge=0)
    summarized_message_count: int = Field(..., ge=0)
    """How many of the oldest messages are already folded into the summary."""
    generated_at: float


class SummaryOutput(BaseModel):
    """Structured summary returned by the LLM."""

    summary: str

    @field_validator("summary")
    @classmethod
    def _not_empty(cls, v: str) -> str:
        if not v or not str(v).strip():
            msg = "field must be non-empty"
            raise ValueError(msg)
        return str(v).strip()
