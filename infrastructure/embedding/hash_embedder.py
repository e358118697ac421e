"""Embedder that averages hashed word vectors (offline toy model)."""
from __future__ import annotations

import hashlib
import math
import re
from collections import Counter
from typing import Sequence

from domain.interfaces import Embedder

_WORD_RE = re.compile(r"\w+", re.UNICODE)


class HashEmbedder(Embedder):
    """Produces deterministic vectors by hashing individual words.

    Texts sharing words end up close in cosine space, which is enough for
    demos and tests that must not reach a provider.
    """

    def __init__(self, dimension: int = 64) -> None:
        self._dimension = dimension
        self._model_id = f"hash-words-{dimension}"

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def dimension(self) -> int:
        return self._dimension

    def _word_vector(self, word: str) -> list[float]:
        digest = hashlib.md5(word.encode("utf-8")).digest()
        return [digest[i % len(digest)] / 255.0 - 0.5 for i in range(self._dimension)]

    def embed(self, text: str) -> list[float]:
        counts = Counter(word.lower() for word in _WORD_RE.findall(text))
        vector = [0.0] * self._dimension
        if not counts:
            return vector
        total = sum(counts.values())
        for word, count in counts.items():
            for idx, value in enumerate(self._word_vector(word)):
                vector[idx] += value * count / total
        norm = math.sqrt(sum(value * value for value in vector)) or 1.0
        return [value / norm for value in vector]

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]


__all__ = ["HashEmbedder"]
