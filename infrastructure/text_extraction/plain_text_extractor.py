"""Text extractor for source files and other plain UTF-8 payloads."""
from __future__ import annotations

from domain.interfaces import TextExtractor

_BOM = "\ufeff"


class PlainTextExtractor(TextExtractor):
    """Decode bytes as UTF-8, dropping a leading BOM and normalising line endings."""

    def __init__(self, normalize_newlines: bool = True) -> None:
        self.normalize_newlines = normalize_newlines

    def extract(self, source: bytes | str) -> str:
        text = source.decode("utf-8", errors="replace") if isinstance(source, bytes) else source
        if text.startswith(_BOM):
            text = text[len(_BOM) :]
        if self.normalize_newlines:
            text = text.replace("\r\n", "\n").replace("\r", "\n")
        return text


__all__ = ["PlainTextExtractor"]
