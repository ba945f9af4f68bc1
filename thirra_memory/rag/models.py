"""RAG data models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EphemeralFile(BaseModel):
    """A file attached to the current request only."""

    name: str
    mimetype: str = "application/octet-stream"
    content: bytes = b""

    def text(self) -> str:
        """Decode the content as UTF-8, replacing undecodable bytes."""
        return self.content.decode("utf-8", errors="replace")


class IndexedChunk(BaseModel):
    """A normalized text chunk and its embedding."""

    model_config = ConfigDict(frozen=True)

    text: str
    embedding: list[float]

    @field_validator("text")
    @classmethod
    def _not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "chunk text must be non-empty"
            raise ValueError(msg)
        return v


class ScoredChunk(BaseModel):
    """A retrieved chunk with its cosine similarity to the query."""

    text: str
    similarity: float


class RetrievalResult(BaseModel):
    """Top-K chunks for a query, most similar first."""

    chunks: list[ScoredChunk] = Field(default_factory=list)
    max_similarity: float = 0.0


class ContextStats(BaseModel):
    """How the semantic context for one query was selected."""

    top_k: int = 0
    complexity: float = 0.0
    max_similarity: float = 0.0
    cutoff: float = 0.0
    selected: int = 0
    compressed: bool = False
    ratios: list[float] = Field(default_factory=list)


class SemanticContext(BaseModel):
    """Selected (and possibly compressed) chunks rendered for the prompt."""

    items: list[ScoredChunk] = Field(default_factory=list)
    stats: ContextStats = Field(default_factory=ContextStats)

    @property
    def context_text(self) -> str:
        """Render the items as ``- text`` lines."""
        return "\n".join(f"- {item.text}" for item in self.items)
