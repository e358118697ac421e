"""Embedder that calls an OpenAI-compatible embeddings endpoint."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Sequence

import requests

from domain.errors import ProviderError
from domain.interfaces import Embedder

logger = logging.getLogger(__name__)

_KNOWN_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


@dataclass(slots=True)
class OpenAIEmbedderConfig:
    model: str = "text-embedding-3-small"
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    timeout: float = 60.0


class OpenAIEmbedder(Embedder):
    """Fetch embeddings over HTTP. Failures surface as ``ProviderError``."""

    def __init__(self, config: OpenAIEmbedderConfig | None = None, session: requests.Session | None = None) -> None:
        self._config = config or OpenAIEmbedderConfig()
        self._session = session or requests.Session()

    @property
    def model_id(self) -> str:
        return self._config.model

    @property
    def dimension(self) -> int:
        return _KNOWN_DIMENSIONS.get(self._config.model, 1536)

    def embed(self, text: str) -> list[float]:
        return self.embed_texts([text])[0]

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        api_key = self._config.api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ProviderError("Missing OpenAI API key.")
        try:
            response = self._session.post(
                f"{self._config.base_url.rstrip('/')}/embeddings",
                headers={"Authorization": f"Bearer {api_key}"},
                json={"model": self._config.model, "input": list(texts)},
                timeout=self._config.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise ProviderError(f"Embedding request failed: {exc}") from exc
        except ValueError as exc:
            raise ProviderError("Embedding provider returned invalid JSON.") from exc

        try:
            items = sorted(payload["data"], key=lambda item: item["index"])
            vectors = [list(map(float, item["embedding"])) for item in items]
        except (KeyError, TypeError) as exc:
            raise ProviderError(f"Unexpected embedding payload: {exc}") from exc
        if len(vectors) != len(texts):
            raise ProviderError(f"Expected {len(texts)} embeddings, got {len(vectors)}.")
        logger.debug("Embedded %d text(s) with %s", len(texts), self._config.model)
        return vectors


__all__ = ["OpenAIEmbedder", "OpenAIEmbedderConfig"]
