"""Streaming chat completions through the async OpenAI client."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import AsyncIterator, Mapping, Sequence

import httpx
import openai
from openai import AsyncOpenAI

from domain.errors import ProviderError
from domain.interfaces import CompletionClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OpenAICompletionConfig:
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    base_url: str | None = None
    temperature: float | None = None
    timeout: float = 120.0


class OpenAICompletionClient(CompletionClient):
    """Yield answer tokens as the provider streams them.

    Works with any OpenAI-compatible server (Ollama, vLLM) through ``base_url``.
    """

    def __init__(self, config: OpenAICompletionConfig | None = None, client: AsyncOpenAI | None = None) -> None:
        self._config = config or OpenAICompletionConfig()
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            api_key = self._config.api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ProviderError("Missing OpenAI API key.")
            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=self._config.base_url,
                timeout=self._config.timeout,
            )
        return self._client

    async def stream_complete(self, messages: Sequence[Mapping[str, str]]) -> AsyncIterator[str]:
        client = self._get_client()
        create_kwargs: dict[str, object] = {
            "model": self._config.model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "stream": True,
        }
        if self._config.temperature is not None:
            create_kwargs["temperature"] = self._config.temperature

        try:
            stream = await client.chat.completions.create(**create_kwargs)
        except openai.OpenAIError as exc:
            raise ProviderError(f"openai stream: {exc}") from exc

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                token = chunk.choices[0].delta.content
                if token:
                    yield token
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise ProviderError(f"stream recv: {exc}") from exc
        finally:
            await stream.close()


__all__ = ["OpenAICompletionClient", "OpenAICompletionConfig"]
