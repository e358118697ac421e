"""BM25 индекс с кэшированием для повторного использования между запросами."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Sequence

from rank_bm25 import BM25Okapi

from domain.entities import Chunk

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


@dataclass(slots=True)
class _State:
    index: BM25Okapi | None
    chunk_ids: list[str]
    token_sets: list[frozenset[str]] = field(default_factory=list)
    fingerprint: str = ""


class BM25Index:
    """Кэширует BM25 индекс, перестраивая его только при изменении набора чанков."""

    def __init__(self) -> None:
        self._state = _State(index=None, chunk_ids=[])

    def update_chunks(self, chunks: Sequence[Chunk]) -> None:
        fingerprint = self._fingerprint(chunks)
        if fingerprint == self._state.fingerprint:
            return
        corpus = [tokenize(chunk.text) for chunk in chunks]
        if not chunks or not any(corpus):
            self._state = _State(index=None, chunk_ids=[], fingerprint=fingerprint)
            return
        self._state = _State(
            index=BM25Okapi(corpus),
            chunk_ids=[chunk.id for chunk in chunks],
            token_sets=[frozenset(tokens) for tokens in corpus],
            fingerprint=fingerprint,
        )

    def rank(self, query_text: str, limit: int) -> list[str]:
        """Вернуть id чанков, совпадающих с запросом хотя бы по одному слову, по убыванию BM25."""
        if self._state.index is None or limit <= 0:
            return []
        query_tokens = tokenize(query_text)
        if not query_tokens:
            return []
        query_set = set(query_tokens)
        values = self._state.index.get_scores(query_tokens)
        # Чанки без лексического пересечения исключаются, а не ставятся в конец.
        matched = [
            (float(score), chunk_id)
            for chunk_id, tokens, score in zip(self._state.chunk_ids, self._state.token_sets, values)
            if tokens & query_set
        ]
        matched.sort(key=lambda item: (-item[0], item[1]))
        return [chunk_id for _score, chunk_id in matched[:limit]]

    @staticmethod
    def _fingerprint(chunks: Sequence[Chunk]) -> str:
        return "|".join(sorted(f"{chunk.id}:{len(chunk.text)}" for chunk in chunks))


def tokenize(text: str) -> list[str]:
    return [token for token in _TOKEN_RE.findall(text.lower()) if token]


__all__ = ["BM25Index", "tokenize"]
