"""Token-aware recursive splitter with overlapping chunks."""
from __future__ import annotations

import logging
import re
from typing import Sequence

from domain.interfaces import ChunkSplitter, Tokenizer

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 500
DEFAULT_OVERLAP_TOKENS = 100

# Coarsest to finest: paragraph, line, sentence end, word.
DEFAULT_SEPARATORS: tuple[str, ...] = (r"\n\n", r"\n", r"(?<=[.!?]) ", r" ")


class RecursiveTokenSplitter(ChunkSplitter):
    """Split text on progressively finer separators, measuring length in tokens.

    Pieces are accumulated greedily until the next one would overflow
    ``max_tokens``. A flushed chunk that is still too large is split again
    with the finer separators; once they run out, a sliding token window is
    used. Each new chunk starts with the last ``overlap_tokens`` tokens of
    the previous one.
    """

    def __init__(
        self,
        tokenizer: Tokenizer,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
        separators: Sequence[str] = DEFAULT_SEPARATORS,
    ) -> None:
        if max_tokens <= 0:
            max_tokens = DEFAULT_MAX_TOKENS
        if overlap_tokens <= 0:
            overlap_tokens = DEFAULT_OVERLAP_TOKENS
        if overlap_tokens >= max_tokens:
            clamped = max_tokens - 1
            logger.warning(
                "overlap_tokens=%d does not fit in max_tokens=%d, clamping to %d",
                overlap_tokens,
                max_tokens,
                clamped,
            )
            overlap_tokens = clamped
        self.tokenizer = tokenizer
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens
        self._separators = tuple(re.compile(pattern) for pattern in separators)

    def split(self, text: str) -> list[str]:
        if not text or not text.strip():
            return []
        if self._length(text) <= self.max_tokens:
            return [text]
        return self._split_recursive(text, self._separators)

    def split_text(self, text: str) -> list[str]:
        return self.split(text)

    def _length(self, text: str) -> int:
        return self.tokenizer.count(text)

    def _split_recursive(self, text: str, separators: Sequence[re.Pattern[str]]) -> list[str]:
        if not separators:
            return self._split_by_window(text)

        separator, finer = separators[0], separators[1:]
        pieces = _split_keep_separator(text, separator)
        if len(pieces) <= 1:
            return self._split_recursive(text, finer)

        chunks: list[str] = []
        buffer = ""
        for piece in pieces:
            if buffer and self._length(buffer + piece) > self.max_tokens:
                chunks.extend(self._finalize(buffer, finer))
                room = self.max_tokens - self._length(piece)
                buffer = self._overlap_seed(buffer, min(self.overlap_tokens, room))
            buffer += piece
        if buffer:
            chunks.extend(self._finalize(buffer, finer))
        return chunks

    def _finalize(self, candidate: str, finer: Sequence[re.Pattern[str]]) -> list[str]:
        if not candidate.strip():
            return []
        if self._length(candidate) <= self.max_tokens:
            return [candidate]
        return self._split_recursive(candidate, finer)

    def _overlap_seed(self, chunk: str, limit: int) -> str:
        """Return the longest exact text suffix of ``chunk`` spanning at most ``limit`` tokens."""
        if limit <= 0:
            return ""
        tokens = self.tokenizer.encode(chunk)
        size = min(limit, len(tokens))
        while size > 0:
            seed = self.tokenizer.decode(tokens[-size:])
            # A suffix cut inside a multi-byte character does not decode back to a suffix.
            if chunk.endswith(seed):
                return seed
            size -= 1
        return ""

    def _split_by_window(self, text: str) -> list[str]:
        cuts = self._character_cuts(text)
        chunks: list[str] = []
        start = 0
        while start < len(cuts) - 1:
            token_start = cuts[start][0]
            end = start + 1
            while end + 1 < len(cuts) and cuts[end + 1][0] - token_start <= self.max_tokens:
                end += 1
            fragment = text[cuts[start][1] : cuts[end][1]]
            # Re-encoding a substring can merge differently than the full text did.
            while end > start + 1 and self._length(fragment) > self.max_tokens:
                end -= 1
                fragment = text[cuts[start][1] : cuts[end][1]]
            if fragment.strip():
                chunks.append(fragment)
            if end == len(cuts) - 1:
                break
            overlap_from = cuts[end][0] - self.overlap_tokens
            next_start = end
            while next_start - 1 > start and cuts[next_start - 1][0] >= overlap_from:
                next_start -= 1
            start = next_start
        return chunks

    def _character_cuts(self, text: str) -> list[tuple[int, int]]:
        """Token positions that fall on character boundaries, as ``(token_index, char_offset)``.

        A byte-level token may hold only part of a multi-byte character; windows
        are cut only where the decoded tokens match the source text exactly.
        """
        tokens = self.tokenizer.encode(text)
        cuts = [(0, 0)]
        last_token, offset = 0, 0
        for index in range(1, len(tokens) + 1):
            piece = self.tokenizer.decode(tokens[last_token:index])
            if piece and text.startswith(piece, offset):
                offset += len(piece)
                last_token = index
                cuts.append((index, offset))
        if offset < len(text):
            cuts.append((len(tokens), len(text)))
        return cuts


def _split_keep_separator(text: str, separator: re.Pattern[str]) -> list[str]:
    """Cut ``text`` after every separator match so the pieces concatenate back to it."""
    pieces: list[str] = []
    start = 0
    for match in separator.finditer(text):
        end = match.end()
        if end > start:
            pieces.append(text[start:end])
            start = end
    if start < len(text):
        pieces.append(text[start:])
    return pieces


def chunk_text(
    text: str,
    tokenizer: Tokenizer,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
) -> list[str]:
    """Functional shortcut for ``RecursiveTokenSplitter(...).split(text)``."""
    return RecursiveTokenSplitter(tokenizer, max_tokens, overlap_tokens).split(text)


__all__ = [
    "RecursiveTokenSplitter",
    "chunk_text",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_OVERLAP_TOKENS",
    "DEFAULT_SEPARATORS",
]
