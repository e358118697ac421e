"""Numpy helpers shared by the chunk indexes."""
from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from domain.entities import Chunk

logger = logging.getLogger(__name__)


def rank_by_cosine_distance(
    query_embedding: Sequence[float],
    chunks: Sequence[Chunk],
    limit: int,
) -> list[Chunk]:
    """Order chunks by ascending cosine distance to the query; ties by chunk id."""
    if limit <= 0 or not chunks:
        return []
    query = np.asarray(query_embedding, dtype="float32")
    candidates = [chunk for chunk in chunks if len(chunk.embedding) == query.shape[0]]
    if len(candidates) != len(chunks):
        logger.debug("Skipped %d chunk(s) with mismatched dimension", len(chunks) - len(candidates))
    if not candidates:
        return []

    matrix = np.asarray([chunk.embedding for chunk in candidates], dtype="float32")
    norms = np.linalg.norm(matrix, axis=1) * (np.linalg.norm(query) or 1.0)
    norms[norms == 0] = 1.0
    distances = 1.0 - (matrix @ query) / norms
    order = sorted(range(len(candidates)), key=lambda idx: (float(distances[idx]), candidates[idx].id))
    return [candidates[idx] for idx in order[:limit]]


__all__ = ["rank_by_cosine_distance"]
