"""Lightweight-model compression of retrieved chunks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from pydantic_ai import Agent

from thirra_memory.core.llm import TRANSIENT_ERRORS, build_chat_model
from thirra_memory.rag._prompt import (
    COMPRESSION_INSTRUCTION_TEMPLATE,
    COMPRESSION_SYSTEM_PROMPT,
    COMPRESSION_USER_TEMPLATE,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from thirra_memory.config import ProviderSettings

LOGGER = logging.getLogger(__name__)


class Compressor(Protocol):
    """Model call that shortens one chunk of context."""

    async def __call__(self, chunk: str, instruction: str | None = None) -> str:
        """Return the compressed text."""
        ...


def build_compression_prompt(
    instruction: str | None = None,
    *,
    target_low: float = 0.4,
    target_high: float = 0.6,
) -> str:
    """Return the system prompt for a compression pass."""
    prompt = COMPRESSION_SYSTEM_PROMPT.format(
        low_pct=round(target_low * 100),
        high_pct=round(target_high * 100),
    )
    if instruction and instruction.strip():
        extra = COMPRESSION_INSTRUCTION_TEMPLATE.format(instruction=instruction.strip())
        return f"{prompt}\n\n{extra}"
    return prompt


class PydanticAICompressor:
    """Compressor backed by a pydantic_ai agent returning plain text."""

    def __init__(
        self,
        provider: ProviderSettings,
        *,
        model: str | None = None,
        target_low: float = 0.4,
        target_high: float = 0.6,
    ) -> None:
        """Bind the compressor to an endpoint, model and target length range."""
        self.provider = provider
        self.model = model or provider.lightweight_model
        self.target_low = target_low
        self.target_high = target_high

    async def __call__(self, chunk: str, instruction: str | None = None) -> str:
        """Compress one chunk."""
        agent = Agent(
            model=build_chat_model(self.provider, self.model, temperature=0.0, max_tokens=512),
            system_prompt=build_compression_prompt(
                instruction,
                target_low=self.target_low,
                target_high=self.target_high,
            ),
            output_type=str,
            retries=1,
        )
        result = await agent.run(COMPRESSION_USER_TEMPLATE.format(chunk=chunk))
        return result.output


async def compress_chunks(
    chunks: Sequence[str],
    compressor: Compressor,
    *,
    target_high: float = 0.6,
    instruction: str | None = None,
) -> tuple[list[str], list[float]]:
    """Compress each chunk, clamping output to ``target_high`` of its length.

    A chunk whose compression call fails is kept as is. Returns the texts and
    their length ratios against the originals.
    """
    compressed: list[str] = []
    ratios: list[float] = []
    for chunk in chunks:
        original_len = len(chunk)
        if not original_len:
            compressed.append("")
            ratios.append(0.0)
            continue
        try:
            text = await compressor(chunk, instruction)
        except TRANSIENT_ERRORS:
            LOGGER.warning("Chunk compression failed; keeping raw text", exc_info=True)
            compressed.append(chunk)
            ratios.append(1.0)
            continue
        text = text[: int(original_len * target_high)]
        compressed.append(text)
        ratios.append(len(text) / original_len)
    return compressed, ratios
