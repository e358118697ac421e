import asyncio
import tempfile
import unittest
from pathlib import Path

from application.services.prompts import SYSTEM_PROMPT_NO_CONTEXT, SYSTEM_PROMPT_WITH_CONTEXT
from application.use_cases.chat import STALLED_MESSAGE, ChatOrchestrator, ChatSettings, make_title
from application.use_cases.conversations import DEFAULT_TITLE, create_conversation
from domain.entities import ChatEvent, ChatEventKind
from domain.errors import NotFoundError, ValidationError
from fakes import FaultyRepository, HangingCompletionClient, RecordingRetriever, ScriptedCompletionClient
from infrastructure.repositories.sqlite_conversation_repository import SqliteConversationRepository


async def collect(stream) -> list[ChatEvent]:
    return [event async for event in stream]


class TestMakeTitle(unittest.TestCase):
    def test_short_message_is_kept(self):
        self.assertEqual(make_title("x" * 50), "x" * 50)

    def test_long_message_is_cut_at_fifty_characters(self):
        self.assertEqual(make_title("x" * 51), "x" * 50 + "...")

    def test_multibyte_characters_are_not_split(self):
        self.assertEqual(make_title("é" * 60), "é" * 50 + "...")
        self.assertEqual(make_title("日本語" * 20), ("日本語" * 20)[:50] + "...")


class ChatTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.repo = SqliteConversationRepository(db_path=Path(self._tmp.name) / "chat.db")
        self.conversation = create_conversation(repository=self.repo, collection_ids=["repo-a"])

    def make_orchestrator(self, *, completion=None, retriever=None, repository=None, settings=None):
        self.completion = completion or ScriptedCompletionClient()
        self.retriever = retriever or RecordingRetriever()
        return ChatOrchestrator(
            conversations=repository or self.repo,
            retriever=self.retriever,
            completion_client=self.completion,
            settings=settings,
        )

    def roles(self) -> list[str]:
        return [turn.role for turn in self.repo.list_turns(self.conversation.id)]


class TestChatOrchestrator(ChatTestCase):
    async def test_successful_turn_streams_tokens_then_done(self):
        orchestrator = self.make_orchestrator()
        events = await collect(await orchestrator.send_message(self.conversation.id, "What does main do?"))

        self.assertEqual(events, [ChatEvent.token("Hel"), ChatEvent.token("lo"), ChatEvent.done()])
        turns = self.repo.list_turns(self.conversation.id)
        self.assertEqual([(t.role, t.content) for t in turns], [("user", "What does main do?"), ("assistant", "Hello")])
        self.assertEqual(self.repo.get(self.conversation.id).title, "What does main do?")

    async def test_passages_are_joined_into_the_system_prompt(self):
        orchestrator = self.make_orchestrator(retriever=RecordingRetriever(["first passage", "second passage"]))
        await collect(await orchestrator.send_message(self.conversation.id, "question"))

        messages = self.completion.calls[0]
        expected = SYSTEM_PROMPT_WITH_CONTEXT.format(context="first passage\n\n---\n\nsecond passage")
        self.assertEqual(messages[0], {"role": "system", "content": expected})
        self.assertEqual(messages[-1], {"role": "user", "content": "question"})
        self.assertEqual(self.retriever.calls, [("question", ["repo-a"], 10)])

    async def test_collection_override_replaces_conversation_scope(self):
        orchestrator = self.make_orchestrator()
        await collect(await orchestrator.send_message(self.conversation.id, "question", collection_ids=["repo-b"]))
        self.assertEqual(self.retriever.calls[0][1], ["repo-b"])

    async def test_retrieval_failure_falls_back_to_plain_prompt(self):
        orchestrator = self.make_orchestrator(retriever=RecordingRetriever(error=RuntimeError("index offline")))
        events = await collect(await orchestrator.send_message(self.conversation.id, "question"))

        self.assertEqual(events[-1], ChatEvent.done())
        self.assertNotIn(ChatEventKind.ERROR, [event.kind for event in events])
        self.assertEqual(self.completion.calls[0][0]["content"], SYSTEM_PROMPT_NO_CONTEXT)

    async def test_history_is_limited_to_recent_turns(self):
        for number in range(30):
            self.repo.append_turn(self.conversation.id, "user" if number % 2 == 0 else "assistant", f"turn {number}")
        orchestrator = self.make_orchestrator()
        await collect(await orchestrator.send_message(self.conversation.id, "latest"))

        messages = self.completion.calls[0]
        self.assertEqual(len(messages), 22)
        self.assertEqual(messages[1]["content"], "turn 10")
        self.assertEqual(messages[20]["content"], "turn 29")
        self.assertEqual(messages[21], {"role": "user", "content": "latest"})

    async def test_blank_message_is_rejected_before_side_effects(self):
        orchestrator = self.make_orchestrator()
        with self.assertRaises(ValidationError):
            await orchestrator.send_message(self.conversation.id, "  \n ")
        self.assertEqual(self.roles(), [])
        self.assertEqual(self.completion.calls, [])

    async def test_unknown_conversation_is_rejected(self):
        orchestrator = self.make_orchestrator()
        with self.assertRaises(NotFoundError):
            await orchestrator.send_message("missing", "hello")


class TestChatFailures(ChatTestCase):
    async def test_mid_stream_failure_discards_partial_answer(self):
        orchestrator = self.make_orchestrator(completion=ScriptedCompletionClient(fail_after=1))
        events = await collect(await orchestrator.send_message(self.conversation.id, "question"))

        self.assertEqual([event.kind for event in events], [ChatEventKind.TOKEN, ChatEventKind.ERROR, ChatEventKind.DONE])
        self.assertEqual(events[0].data, "Hel")
        self.assertIn("connection reset", events[1].data)
        self.assertEqual(self.roles(), ["user"])
        self.assertEqual(self.repo.get(self.conversation.id).title, DEFAULT_TITLE)

    async def test_stream_start_failure(self):
        orchestrator = self.make_orchestrator(completion=ScriptedCompletionClient(fail_on_start=True))
        events = await collect(await orchestrator.send_message(self.conversation.id, "question"))

        self.assertEqual([event.kind for event in events], [ChatEventKind.ERROR, ChatEventKind.DONE])
        self.assertEqual(self.roles(), ["user"])

    async def test_user_persistence_failure_streams_nothing(self):
        repository = FaultyRepository(self.repo, fail_roles=["user"])
        orchestrator = self.make_orchestrator(repository=repository)
        events = await collect(await orchestrator.send_message(self.conversation.id, "question"))

        self.assertEqual([event.kind for event in events], [ChatEventKind.ERROR, ChatEventKind.DONE])
        self.assertIn("Cannot save user message", events[0].data)
        self.assertEqual(self.completion.calls, [])

    async def test_assistant_persistence_failure_reports_error(self):
        repository = FaultyRepository(self.repo, fail_roles=["assistant"])
        orchestrator = self.make_orchestrator(repository=repository)
        events = await collect(await orchestrator.send_message(self.conversation.id, "question"))

        self.assertEqual(
            [event.kind for event in events],
            [ChatEventKind.TOKEN, ChatEventKind.TOKEN, ChatEventKind.ERROR, ChatEventKind.DONE],
        )
        self.assertEqual(self.roles(), ["user"])

    async def test_title_failure_is_not_surfaced(self):
        repository = FaultyRepository(self.repo, fail_title=True)
        orchestrator = self.make_orchestrator(repository=repository)
        events = await collect(await orchestrator.send_message(self.conversation.id, "question"))

        self.assertEqual(events[-1], ChatEvent.done())
        self.assertNotIn(ChatEventKind.ERROR, [event.kind for event in events])
        self.assertEqual(self.roles(), ["user", "assistant"])


class TestChatCancellation(ChatTestCase):
    async def test_closing_the_stream_cancels_generation(self):
        completion = HangingCompletionClient()
        orchestrator = self.make_orchestrator(completion=completion)
        stream = await orchestrator.send_message(self.conversation.id, "question")

        first = await stream.__anext__()
        self.assertEqual(first, ChatEvent.token("partial"))
        await stream.aclose()

        await asyncio.wait_for(completion.cancelled.wait(), timeout=1)
        self.assertEqual(self.roles(), ["user"])

    async def test_stalled_consumer_does_not_block_producer(self):
        settings = ChatSettings(queue_size=1, enqueue_timeout=0.05)
        completion = ScriptedCompletionClient(tokens=[f"t{i}" for i in range(10)])
        orchestrator = self.make_orchestrator(completion=completion, settings=settings)
        stream = await orchestrator.send_message(self.conversation.id, "question")

        first = await stream.__anext__()
        await asyncio.sleep(0.3)
        rest = await asyncio.wait_for(collect(stream), timeout=2)

        self.assertEqual(first, ChatEvent.token("t0"))
        self.assertEqual(rest[-2:], [ChatEvent.error(STALLED_MESSAGE), ChatEvent.done()])
        self.assertTrue(all(event.kind is ChatEventKind.TOKEN for event in rest[:-2]))
        self.assertEqual(self.roles(), ["user"])

    async def test_stall_after_an_error_adds_only_done(self):
        settings = ChatSettings(queue_size=1, enqueue_timeout=0.05)
        completion = ScriptedCompletionClient(tokens=["a"], fail_after=1)
        orchestrator = self.make_orchestrator(completion=completion, settings=settings)
        stream = await orchestrator.send_message(self.conversation.id, "question")

        first = await stream.__anext__()
        await asyncio.sleep(0.3)
        events = await asyncio.wait_for(collect(stream), timeout=2)

        self.assertEqual(first, ChatEvent.token("a"))
        kinds = [event.kind for event in events]
        self.assertEqual(kinds.count(ChatEventKind.ERROR), 1)
        self.assertEqual(kinds[-1], ChatEventKind.DONE)


if __name__ == "__main__":
    unittest.main()
