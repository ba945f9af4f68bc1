"""Streaming helpers for chat completions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from thirra_memory.core.sse import extract_content_from_chunk, extract_reasoning_from_chunk

if TYPE_CHECKING:
    from thirra_memory.memory.engine import AssembledContext
    from thirra_memory.output.models import ParsedOutput

StreamEventKind = Literal["content", "reasoning_start", "reasoning_end"]


@dataclass(frozen=True)
class StreamEvent:
    """One item delivered to the stream callback."""

    kind: StreamEventKind
    text: str = ""


@dataclass
class StreamingAccumulator:
    """Accumulator for streaming response text and metadata."""

    text_chunks: list[str] = field(default_factory=list)
    model: str | None = None
    system_fingerprint: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    in_reasoning: bool = False

    @property
    def raw_output(self) -> str:
        """Return the accumulated text exactly as streamed."""
        return "".join(self.text_chunks)


def accumulate_streaming_data(
    chunk: dict[str, Any],
    accumulator: StreamingAccumulator,
) -> list[StreamEvent]:
    """Fold one decoded chunk into the accumulator and return the events it produced."""
    events: list[StreamEvent] = []

    if extract_reasoning_from_chunk(chunk) and not accumulator.in_reasoning:
        accumulator.in_reasoning = True
        events.append(StreamEvent("reasoning_start"))

    piece = extract_content_from_chunk(chunk)
    if piece:
        if accumulator.in_reasoning:
            accumulator.in_reasoning = False
            events.append(StreamEvent("reasoning_end"))
        accumulator.text_chunks.append(piece)
        events.append(StreamEvent("content", piece))

    # Capture model from first chunk
    if chunk.get("model") and not accumulator.model:
        accumulator.model = chunk["model"]

    if chunk.get("system_fingerprint") and not accumulator.system_fingerprint:
        accumulator.system_fingerprint = chunk["system_fingerprint"]

    # Usage usually arrives in the final chunk
    if chunk.get("usage"):
        usage = chunk["usage"]
        accumulator.prompt_tokens = usage.get("prompt_tokens", accumulator.prompt_tokens)
        accumulator.completion_tokens = usage.get(
            "completion_tokens",
            accumulator.completion_tokens,
        )
        accumulator.total_tokens = usage.get("total_tokens")
        if accumulator.total_tokens is None and None not in (
            accumulator.prompt_tokens,
            accumulator.completion_tokens,
        ):
            accumulator.total_tokens = accumulator.prompt_tokens + accumulator.completion_tokens
    return events


def finish_stream(accumulator: StreamingAccumulator) -> list[StreamEvent]:
    """Close an open reasoning section once the stream ends."""
    if accumulator.in_reasoning:
        accumulator.in_reasoning = False
        return [StreamEvent("reasoning_end")]
    return []


@dataclass
class TurnResult:
    """Everything produced by one streamed turn."""

    context: AssembledContext
    raw_output: str
    parsed: ParsedOutput
    model: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    quality_score: float | None = None
