"""Tokenizer backed by tiktoken, matching the OpenAI embedding models."""
from __future__ import annotations

import logging
from typing import Sequence

import tiktoken

from domain.interfaces import Tokenizer

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"


class TiktokenTokenizer(Tokenizer):
    """Counts and slices text in the token space of ``text-embedding-3-*``."""

    def __init__(self, encoding_name: str = DEFAULT_ENCODING) -> None:
        logger.debug("Loading tiktoken encoding %s", encoding_name)
        self._encoding = tiktoken.get_encoding(encoding_name)
        self.encoding_name = encoding_name

    def encode(self, text: str) -> list[int]:
        return self._encoding.encode(text, disallowed_special=())

    def decode(self, tokens: Sequence[int]) -> str:
        return self._encoding.decode(list(tokens))


__all__ = ["TiktokenTokenizer", "DEFAULT_ENCODING"]
