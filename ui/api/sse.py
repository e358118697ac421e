"""Server-Sent Events encoding of chat events."""
from __future__ import annotations

import re
from typing import AsyncIterator

from domain.entities import ChatEvent, ChatEventKind

DONE_SENTINEL = "[DONE]"

# SSE parsers end a line at CRLF, a lone CR or a lone LF.
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def _data_lines(payload: str) -> str:
    return "".join(f"data: {line}\n" for line in _LINE_BREAK.split(payload))


def format_event(event: ChatEvent) -> str:
    """Encode one event; multi-line payloads become several ``data:`` lines.

    Tokens use the default ``message`` type, so a token that reads ``[DONE]``
    stays distinguishable from the terminal ``done`` event.
    """
    if event.kind is ChatEventKind.DONE:
        return f"event: done\ndata: {DONE_SENTINEL}\n\n"
    body = _data_lines(event.data)
    if event.kind is ChatEventKind.ERROR:
        return f"event: error\n{body}\n"
    return f"{body}\n"


async def encode_events(events: AsyncIterator[ChatEvent]) -> AsyncIterator[str]:
    try:
        async for event in events:
            yield format_event(event)
    finally:
        # Closing the source cancels generation when the client goes away.
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()


__all__ = ["DONE_SENTINEL", "format_event", "encode_events"]
