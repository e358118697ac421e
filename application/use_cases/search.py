"""Use case that performs hybrid (vector + keyword) search over ingested chunks."""
from __future__ import annotations

import logging
from typing import Sequence

from application.services.rrf import DEFAULT_RRF_K, collect_ranks, fuse
from domain.entities import FusedResult
from domain.errors import ValidationError
from domain.interfaces import ChunkIndex, Embedder

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 10


class HybridRetriever:
    """Fuse vector-similarity and BM25 rankings with Reciprocal Rank Fusion."""

    def __init__(self, embedder: Embedder, index: ChunkIndex, rrf_k: int = DEFAULT_RRF_K) -> None:
        self._embedder = embedder
        self._index = index
        self._rrf_k = rrf_k

    def search(
        self,
        query_text: str,
        collection_ids: Sequence[str] = (),
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> list[str]:
        """Return up to ``limit`` passage texts, best first."""
        return [result.text for result in self.search_ranked(query_text, collection_ids, limit)]

    def search_ranked(
        self,
        query_text: str,
        collection_ids: Sequence[str] = (),
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> list[FusedResult]:
        if not query_text or not query_text.strip():
            raise ValidationError("query must not be empty")
        if limit <= 0:
            return []

        # Provider errors propagate: retrieval fails closed.
        query_embedding = self._embedder.embed(query_text)
        vector_hits = self._index.vector_search(query_embedding, collection_ids, limit)
        keyword_hits = self._index.keyword_search(query_text, collection_ids, limit)
        if not vector_hits and not keyword_hits:
            return []

        fused = fuse(collect_ranks(vector_hits, keyword_hits), limit, k=self._rrf_k)
        logger.debug(
            "Hybrid search: %d vector hit(s), %d keyword hit(s), %d fused",
            len(vector_hits),
            len(keyword_hits),
            len(fused),
        )
        return fused


__all__ = ["HybridRetriever", "DEFAULT_SEARCH_LIMIT"]
