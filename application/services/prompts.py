"""System prompts used to ground chat answers."""
from __future__ import annotations

from typing import Sequence

PASSAGE_DELIMITER = "\n\n---\n\n"

SYSTEM_PROMPT_WITH_CONTEXT = """You are an expert software engineering assistant.

Answer using the provided context from the user's project files. If the context does not contain enough information to answer, say so and explain what you do know based on the context.

Context from project files:
{context}

Answer clearly and include file names if relevant."""

SYSTEM_PROMPT_NO_CONTEXT = """You are an expert software engineering assistant.

No project files have been uploaded yet, or no relevant content was found for this question. Answer the user's question to the best of your ability as a general assistant. If the question is about specific project files, let the user know they should upload files first."""


def build_context(passages: Sequence[str]) -> str:
    return PASSAGE_DELIMITER.join(passages)


def system_prompt(passages: Sequence[str]) -> str:
    if passages:
        return SYSTEM_PROMPT_WITH_CONTEXT.format(context=build_context(passages))
    return SYSTEM_PROMPT_NO_CONTEXT


__all__ = [
    "PASSAGE_DELIMITER",
    "SYSTEM_PROMPT_WITH_CONTEXT",
    "SYSTEM_PROMPT_NO_CONTEXT",
    "build_context",
    "system_prompt",
]
