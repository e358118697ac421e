"""Reciprocal Rank Fusion of independent rankings."""
from __future__ import annotations

from typing import Sequence

from domain.entities import Chunk, FusedResult, RankedResult

DEFAULT_RRF_K = 60


def collect_ranks(vector_hits: Sequence[Chunk], keyword_hits: Sequence[Chunk]) -> list[RankedResult]:
    """Union both rankings, recording each chunk's 1-based position in each of them."""
    results: dict[str, RankedResult] = {}
    for position, chunk in enumerate(vector_hits, start=1):
        entry = results.setdefault(chunk.id, RankedResult(chunk_id=chunk.id, text=chunk.text))
        if entry.vector_rank is None:
            entry.vector_rank = position
    for position, chunk in enumerate(keyword_hits, start=1):
        entry = results.setdefault(chunk.id, RankedResult(chunk_id=chunk.id, text=chunk.text))
        if entry.keyword_rank is None:
            entry.keyword_rank = position
    return list(results.values())


def rrf_score(ranked: RankedResult, k: int = DEFAULT_RRF_K) -> float:
    score = 0.0
    for rank in (ranked.vector_rank, ranked.keyword_rank):
        if rank is not None:
            score += 1.0 / (k + rank)
    return score


def fuse(ranked: Sequence[RankedResult], limit: int, k: int = DEFAULT_RRF_K) -> list[FusedResult]:
    """Score every chunk by ``sum(1 / (k + rank))`` and keep the best ``limit``.

    Ties are broken by chunk id so results are reproducible.
    """
    fused = [FusedResult(chunk_id=item.chunk_id, text=item.text, score=rrf_score(item, k)) for item in ranked]
    fused.sort(key=lambda item: (-item.score, item.chunk_id))
    return fused[: max(limit, 0)]


__all__ = ["DEFAULT_RRF_K", "collect_ranks", "rrf_score", "fuse"]
