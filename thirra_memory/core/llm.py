"""Clients for the OpenAI-compatible chat and embedding endpoints."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

import httpx
import openai
from openai import AsyncOpenAI
from pydantic_ai.exceptions import AgentRunError, UnexpectedModelBehavior
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from thirra_memory.core.sse import extract_error_from_chunk, parse_chunk
from thirra_memory.errors import CompletionError, SummarizationError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterator, Sequence

    from thirra_memory.config import ProviderSettings
    from thirra_memory.memory.models import Message

LOGGER = logging.getLogger(__name__)

# Upstream failures that degrade a pipeline stage instead of failing the turn.
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    httpx.HTTPError,
    openai.OpenAIError,
    AgentRunError,
    UnexpectedModelBehavior,
    SummarizationError,
)


def _openai_client(provider: ProviderSettings) -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=provider.openai_api_key or "dummy",
        base_url=provider.openai_base_url,
        default_headers=provider.default_headers,
        timeout=provider.request_timeout,
    )


def build_chat_model(
    provider: ProviderSettings,
    model_name: str,
    *,
    temperature: float = 0.2,
    max_tokens: int = 256,
) -> OpenAIChatModel:
    """Return a pydantic_ai chat model bound to the configured endpoint."""
    return OpenAIChatModel(
        model_name=model_name,
        provider=OpenAIProvider(openai_client=_openai_client(provider)),
        settings=ModelSettings(temperature=temperature, max_tokens=max_tokens),
    )


class OpenAIEmbeddings:
    """Embeddings provider backed by the `embeddings` endpoint."""

    def __init__(self, provider: ProviderSettings, *, client: AsyncOpenAI | None = None) -> None:
        """Create the client lazily from provider settings unless one is injected."""
        self.model = provider.embedding_model
        self._client = client or _openai_client(provider)

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts in one request, preserving input order."""
        if not texts:
            return []
        response = await self._client.embeddings.create(model=self.model, input=list(texts))
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]

    async def close(self) -> None:
        """Release the underlying HTTP client."""
        await self._client.close()


async def stream_chat_sse(
    *,
    openai_base_url: str,
    payload: dict[str, Any],
    headers: dict[str, str] | None = None,
    request_timeout: float = 120.0,
) -> AsyncGenerator[str, None]:
    """Stream Server-Sent Events from an OpenAI-compatible chat completion endpoint."""
    url = f"{openai_base_url.rstrip('/')}/chat/completions"
    async with (
        httpx.AsyncClient(timeout=request_timeout) as client,
        client.stream("POST", url, json=payload, headers=headers) as response,
    ):
        if response.status_code != 200:  # noqa: PLR2004
            error_text = await response.aread()
            msg = (
                f"Chat completion failed with HTTP {response.status_code}: "
                f"{error_text.decode(errors='ignore')[:500]}"
            )
            raise CompletionError(msg)
        async for line in response.aiter_lines():
            if line:
                yield line


class OpenAIChatCompletion:
    """Streaming chat completion provider over the `/chat/completions` SSE endpoint."""

    def __init__(self, provider: ProviderSettings) -> None:
        """Store endpoint settings; a new HTTP client is opened per stream."""
        self.provider = provider

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **self.provider.default_headers}
        if self.provider.openai_api_key:
            headers["Authorization"] = f"Bearer {self.provider.openai_api_key}"
        return headers

    async def stream_complete(
        self,
        system_prompt: str,
        history: Sequence[Message],
        input_messages: Sequence[Message],
        model_id: str,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded completion chunks; usage arrives on the final chunk."""
        payload = {
            "model": model_id,
            "stream": True,
            "stream_options": {"include_usage": True},
            "messages": [
                {"role": "system", "content": system_prompt},
                *(m.to_payload() for m in history),
                *(m.to_payload() for m in input_messages),
            ],
        }
        LOGGER.debug("Streaming completion from %s (%d messages)", model_id, len(payload["messages"]))
        try:
            async with aclosing(
                stream_chat_sse(
                    openai_base_url=self.provider.openai_base_url,
                    payload=payload,
                    headers=self._headers(),
                    request_timeout=self.provider.request_timeout,
                ),
            ) as lines:
                async for line in lines:
                    chunk = parse_chunk(line)
                    if chunk is None:
                        continue
                    error = extract_error_from_chunk(chunk)
                    if error is not None:
                        msg = f"Upstream error during streaming: {error}"
                        raise CompletionError(msg)
                    yield chunk
        except httpx.HTTPError as exc:
            msg = f"Chat completion transport failure: {exc}"
            raise CompletionError(msg) from exc
