"""Use case that answers one user message with a grounded, streamed reply."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Sequence

from application.services.prompts import system_prompt
from application.use_cases.search import DEFAULT_SEARCH_LIMIT, HybridRetriever
from domain.entities import ChatEvent, ChatEventKind, Conversation, ConversationTurn
from domain.errors import ContextChatError, NotFoundError, ValidationError
from domain.interfaces import CompletionClient, ConversationRepository

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50
STALLED_MESSAGE = "stream stalled: the answer was cut short because the client stopped reading"


class TurnState(str, Enum):
    STARTED = "started"
    USER_PERSISTED = "user_persisted"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class ChatSettings:
    history_limit: int = 20
    retrieval_limit: int = DEFAULT_SEARCH_LIMIT
    queue_size: int = 100
    enqueue_timeout: float = 30.0


class _ConsumerStalled(Exception):
    """The caller stopped draining the event queue."""


def make_title(message: str, limit: int = TITLE_MAX_CHARS) -> str:
    """Truncate to ``limit`` characters (not bytes), marking the cut with an ellipsis."""
    if len(message) > limit:
        return message[:limit] + "..."
    return message


class _Turn:
    """State of a single in-flight user turn."""

    def __init__(
        self,
        conversation: Conversation,
        message: str,
        scope: Sequence[str],
        queue: asyncio.Queue[ChatEvent],
        enqueue_timeout: float,
    ) -> None:
        self.conversation = conversation
        self.message = message
        self.scope = list(scope)
        self.queue = queue
        self.enqueue_timeout = enqueue_timeout
        self.state = TurnState.STARTED

    def transition(self, state: TurnState) -> None:
        logger.debug("Turn in %s: %s -> %s", self.conversation.id, self.state.value, state.value)
        self.state = state

    async def emit(self, event: ChatEvent) -> None:
        try:
            await asyncio.wait_for(self.queue.put(event), timeout=self.enqueue_timeout)
        except asyncio.TimeoutError as exc:
            raise _ConsumerStalled() from exc

    async def try_emit(self, event: ChatEvent) -> bool:
        try:
            await self.emit(event)
        except _ConsumerStalled:
            logger.warning("Dropping %s event for %s: consumer stalled", event.kind.value, self.conversation.id)
            return False
        return True


class ChatOrchestrator:
    """Drive one conversational turn: persist, retrieve, prompt, stream, persist.

    Events reach the caller through a single bounded queue as tokens,
    at most one error, and exactly one terminal ``done`` event. Closing
    the returned iterator cancels generation; partial output is then
    discarded.
    """

    def __init__(
        self,
        *,
        conversations: ConversationRepository,
        retriever: HybridRetriever,
        completion_client: CompletionClient,
        settings: ChatSettings | None = None,
    ) -> None:
        self._conversations = conversations
        self._retriever = retriever
        self._completion = completion_client
        self._settings = settings or ChatSettings()

    async def send_message(
        self,
        conversation_id: str,
        message: str,
        collection_ids: Sequence[str] | None = None,
    ) -> AsyncIterator[ChatEvent]:
        """Validate the request and return the event stream for the turn.

        Raises ValidationError or NotFoundError before any side effect.
        """
        if not message or not message.strip():
            raise ValidationError("message is required")
        conversation = await asyncio.to_thread(self._conversations.get, conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        scope = conversation.collection_filter if collection_ids is None else collection_ids
        return self._stream(conversation, message, scope)

    async def _stream(
        self,
        conversation: Conversation,
        message: str,
        scope: Sequence[str],
    ) -> AsyncIterator[ChatEvent]:
        queue: asyncio.Queue[ChatEvent] = asyncio.Queue(maxsize=self._settings.queue_size)
        turn = _Turn(conversation, message, scope, queue, self._settings.enqueue_timeout)
        producer = asyncio.create_task(self._run_turn(turn))
        getter: asyncio.Future[ChatEvent] | None = None
        errored = False
        try:
            while True:
                if not queue.empty():
                    event = queue.get_nowait()
                elif producer.done():
                    # The producer gave up on a stalled consumer before sending ``done``.
                    logger.warning("Turn in %s ended without a terminal event", conversation.id)
                    if not errored:
                        yield ChatEvent.error(STALLED_MESSAGE)
                    yield ChatEvent.done()
                    break
                else:
                    getter = asyncio.ensure_future(queue.get())
                    await asyncio.wait((getter, producer), return_when=asyncio.FIRST_COMPLETED)
                    if not getter.done():
                        getter.cancel()
                        continue
                    event = getter.result()
                errored = errored or event.kind is ChatEventKind.ERROR
                yield event
                if event.kind is ChatEventKind.DONE:
                    break
        finally:
            if getter is not None and not getter.done():
                getter.cancel()
            if not producer.done():
                producer.cancel()
            try:
                await producer
            except asyncio.CancelledError:
                logger.info("Turn in %s cancelled by caller in state %s", conversation.id, turn.state.value)

    async def _run_turn(self, turn: _Turn) -> None:
        try:
            await self._execute(turn)
        except asyncio.CancelledError:
            turn.transition(TurnState.FAILED)
            raise
        except _ConsumerStalled:
            turn.transition(TurnState.FAILED)
            logger.warning("Aborting turn in %s: consumer stopped reading", turn.conversation.id)
            return
        except ContextChatError as exc:
            logger.warning("Turn in %s failed in state %s: %s", turn.conversation.id, turn.state.value, exc)
            turn.transition(TurnState.FAILED)
            if not await turn.try_emit(ChatEvent.error(str(exc))):
                return
        except Exception as exc:
            logger.exception("Unexpected failure of turn in %s", turn.conversation.id)
            turn.transition(TurnState.FAILED)
            if not await turn.try_emit(ChatEvent.error(str(exc) or exc.__class__.__name__)):
                return
        await turn.try_emit(ChatEvent.done())

    async def _execute(self, turn: _Turn) -> None:
        conversation_id = turn.conversation.id
        user_turn = await asyncio.to_thread(
            self._conversations.append_turn, conversation_id, "user", turn.message
        )
        turn.transition(TurnState.USER_PERSISTED)

        turn.transition(TurnState.RETRIEVING)
        passages = await self._retrieve(turn)
        history = await self._history(conversation_id, user_turn)
        messages = self._build_messages(passages, history, turn.message)

        turn.transition(TurnState.GENERATING)
        answer = await self._generate(turn, messages)

        await asyncio.to_thread(self._conversations.append_turn, conversation_id, "assistant", answer)
        try:
            await asyncio.to_thread(self._conversations.update_title, conversation_id, make_title(turn.message))
        except ContextChatError as exc:
            logger.warning("Could not update title of %s: %s", conversation_id, exc)
        turn.transition(TurnState.COMPLETED)

    async def _retrieve(self, turn: _Turn) -> list[str]:
        try:
            return await asyncio.to_thread(
                self._retriever.search, turn.message, turn.scope, self._settings.retrieval_limit
            )
        except Exception as exc:
            # Retrieval only improves the answer; the turn goes on without context.
            logger.warning("Retrieval failed for %s, answering without context: %s", turn.conversation.id, exc)
            return []

    async def _history(self, conversation_id: str, user_turn: ConversationTurn) -> list[ConversationTurn]:
        try:
            turns = await asyncio.to_thread(self._conversations.list_turns, conversation_id)
        except ContextChatError as exc:
            logger.warning("Could not load history of %s: %s", conversation_id, exc)
            return []
        prior = [
            item
            for item in turns
            if item.id != user_turn.id
            and (item.created_at is None or user_turn.created_at is None or item.created_at < user_turn.created_at)
        ]
        limit = self._settings.history_limit
        return prior[-limit:] if limit > 0 else []

    @staticmethod
    def _build_messages(
        passages: Sequence[str],
        history: Sequence[ConversationTurn],
        message: str,
    ) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt(passages)}]
        messages.extend({"role": item.role, "content": item.content} for item in history)
        messages.append({"role": "user", "content": message})
        return messages

    async def _generate(self, turn: _Turn, messages: list[dict[str, str]]) -> str:
        parts: list[str] = []
        stream = self._completion.stream_complete(messages)
        try:
            async for token in stream:
                parts.append(token)
                await turn.emit(ChatEvent.token(token))
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return "".join(parts)


__all__ = ["ChatOrchestrator", "ChatSettings", "TurnState", "make_title", "TITLE_MAX_CHARS", "STALLED_MESSAGE"]
