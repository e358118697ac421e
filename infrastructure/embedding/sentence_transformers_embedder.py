"""Эмбеддеры на базе sentence-transformers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sentence_transformers import SentenceTransformer

from domain.errors import ProviderError
from domain.interfaces import Embedder


@dataclass(slots=True)
class SentenceTransformersConfig:
    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    device: str = "cpu"
    normalize_embeddings: bool = True
    batch_size: int = 16


logger = logging.getLogger(__name__)


class SentenceTransformersEmbedder(Embedder):
    """Локальный эмбеддер на базе библиотеки sentence-transformers."""

    def __init__(self, config: SentenceTransformersConfig | None = None) -> None:
        self._config = config or SentenceTransformersConfig()
        logger.info("Загрузка модели sentence-transformers: %s", self._config.model_name)
        self._model = SentenceTransformer(self._config.model_name, device=self._config.device)
        self._dimension = int(self._model.get_sentence_embedding_dimension())

    @property
    def model_id(self) -> str:
        return self._config.model_name

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> list[float]:
        return self.embed_texts([text])[0]

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        logger.debug("Кодирование %d текстов моделью %s", len(texts), self._config.model_name)
        try:
            embeddings = self._model.encode(
                list(texts),
                batch_size=self._config.batch_size,
                normalize_embeddings=self._config.normalize_embeddings,
                show_progress_bar=False,
            )
        except RuntimeError as exc:
            raise ProviderError(f"sentence-transformers encoding failed: {exc}") from exc
        return embeddings.tolist()


__all__ = ["SentenceTransformersEmbedder", "SentenceTransformersConfig"]
