"""
Tests for conversation management and streamed chat turns.

Tests cover:
1. Conversation CRUD
2. Event order and persistence of the assistant message
3. Knowledge base grounding and citations
4. Memory injection, usage counters and auto-capture
5. Failure modes (LLM error, missing completion, bookkeeping failure)
"""

import math
from unittest.mock import AsyncMock, patch

import pytest
from loguru import logger

from ragchat.models.chat import (
    CapturedMemoriesEvent,
    ChatChunk,
    DoneEvent,
    MetadataEvent,
    TokenEvent,
)
from ragchat.models.conversation import Message
from ragchat.models.document import Chunk, Document, DocumentStatus, SourceKind
from ragchat.models.memory import MemoryScope
from ragchat.models.retrieval import GroundingConfidence, RagSource
from ragchat.services.chat import ChatService, dedupe_sources, make_title
from ragchat.services.context import GROUNDING_GUARDRAIL
from ragchat.services.retrieval import REASON_DISABLED, REASON_EMPTY, RetrievalService
from ragchat.utils.exceptions import LLMError, MemoryStoreError, NotFoundError, ValidationError

QUESTION = "how do I install the agent"


def _unit(similarity: float) -> list[float]:
    return [similarity, math.sqrt(1.0 - similarity**2)]


class TrackedStream:
    """Model stream that never completes on its own and records closing."""

    def __init__(self, fragments: list[str]):
        self.fragments = list(fragments)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChatChunk:
        if self.closed or not self.fragments:
            raise StopAsyncIteration
        return ChatChunk(content=self.fragments.pop(0))

    async def aclose(self):
        self.closed = True


async def _collect(events) -> list:
    return [event async for event in events]


async def _index_guide(record_store, vector_store) -> None:
    await record_store.add_document(
        Document(
            id="doc_guide",
            filename="guide.md",
            source_kind=SourceKind.MARKDOWN,
            content_hash="h_guide",
            status=DocumentStatus.INDEXED,
        )
    )
    chunks = [
        Chunk(id="chunk_a", document_id="doc_guide", content="Run the installer.", chunk_index=0),
        Chunk(id="chunk_b", document_id="doc_guide", content="Then start it.", chunk_index=1),
    ]
    await vector_store.add_chunks(chunks, [_unit(0.95), _unit(0.9)])


@pytest.fixture
def chat(record_store, vector_store, memory_store, embedder, llm, config) -> ChatService:
    retrieval = RetrievalService(
        embedder, vector_store, record_store, config.rag, config.grounding
    )
    return ChatService(record_store, memory_store, retrieval, llm, config)


@pytest.mark.unit
@pytest.mark.asyncio
class TestConversations:
    """Tests for conversation management."""

    async def test_create_defaults(self, chat):
        """Test a new conversation gets the placeholder title and auto model."""
        conversation = await chat.create_conversation()

        assert conversation.id.startswith("conv_")
        assert conversation.title == "New Chat"
        assert conversation.model == "auto"
        assert (await chat.get_conversation(conversation.id)).id == conversation.id

    async def test_get_missing(self, chat):
        """Test missing conversations raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await chat.get_conversation("conv_missing")
        with pytest.raises(NotFoundError):
            await chat.get_messages("conv_missing")

    async def test_list_and_delete(self, chat):
        """Test listing and deleting conversations."""
        first = await chat.create_conversation(title="First")
        await chat.create_conversation(title="Second")

        assert len(await chat.list_conversations()) == 2
        assert await chat.delete_conversation(first.id) is True
        assert await chat.delete_conversation(first.id) is False
        assert [c.title for c in await chat.list_conversations()] == ["Second"]

    async def test_update_conversation(self, chat, llm):
        """Test a partial update persists and drives the next turn."""
        conversation = await chat.create_conversation(title="Draft")

        updated = await chat.update_conversation(
            conversation.id,
            {"title": "  Release plan ", "system_prompt": "Be brief.", "rag_enabled": False},
        )

        assert updated.title == "Release plan"
        assert updated.model == "auto"
        assert updated.updated_at >= conversation.updated_at
        stored = await chat.get_conversation(conversation.id)
        assert stored.system_prompt == "Be brief."
        assert stored.rag_enabled is False

        await _collect(await chat.stream_turn(conversation.id, "hello"))
        assert llm.requests[0][1][0].content == "Be brief."

    async def test_update_conversation_clears_model(self, chat):
        """Test an empty model falls back to auto routing."""
        conversation = await chat.create_conversation(model="llama3")

        updated = await chat.update_conversation(conversation.id, {"model": ""})

        assert updated.model == "auto"

    @pytest.mark.parametrize(
        "changes,match",
        [
            ({"id": "conv_other"}, "unknown fields: id"),
            ({"title": "   "}, "title cannot be empty"),
            ({"memory_enabled": "sometimes"}, "invalid conversation"),
        ],
    )
    async def test_update_conversation_invalid(self, chat, changes, match):
        """Test invalid updates are rejected and nothing is written."""
        conversation = await chat.create_conversation(title="Keep")

        with pytest.raises(ValidationError, match=match):
            await chat.update_conversation(conversation.id, changes)

        assert (await chat.get_conversation(conversation.id)).title == "Keep"

    async def test_update_missing_conversation(self, chat):
        """Test updating an unknown conversation raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await chat.update_conversation("conv_missing", {"title": "x"})


@pytest.mark.unit
@pytest.mark.asyncio
class TestStreamTurn:
    """Tests for a full chat turn."""

    async def test_event_order_and_persistence(self, chat, llm):
        """Test metadata, tokens and done arrive in order and both messages are saved."""
        conversation = await chat.create_conversation()

        events = await _collect(await chat.stream_turn(conversation.id, "hello"))

        assert isinstance(events[0], MetadataEvent)
        assert [e.content for e in events if isinstance(e, TokenEvent)] == ["Hello", " there"]
        assert isinstance(events[-1], DoneEvent)

        metadata = events[0]
        assert metadata.routed_model == "qwen2.5:14b"
        assert metadata.routing_reason == "default"
        assert metadata.grounding.confidence == GroundingConfidence.LOW
        assert metadata.grounding.reason == REASON_EMPTY

        messages = await chat.get_messages(conversation.id)
        assert [(m.role, m.content) for m in messages] == [
            ("user", "hello"),
            ("assistant", "Hello there"),
        ]
        assistant = messages[1]
        assert assistant.model == "qwen2.5:14b"
        assert assistant.grounding_confidence == GroundingConfidence.LOW
        assert assistant.grounding_reason == REASON_EMPTY
        assert assistant.grounding_used_chunk_count == 0

    async def test_explicit_model_not_routed(self, chat, llm):
        """Test a pinned model is used as-is."""
        conversation = await chat.create_conversation(model="llama3:8b")

        events = await _collect(await chat.stream_turn(conversation.id, "write a python function"))

        assert events[0].routed_model == "llama3:8b"
        assert events[0].routing_reason is None
        assert llm.requests[0][0] == "llama3:8b"

    async def test_grounded_turn_saves_citations(
        self, chat, llm, embedder, record_store, vector_store
    ):
        """Test retrieved chunks become sources, high grounding and citations."""
        await _index_guide(record_store, vector_store)
        embedder.vectors = {QUESTION: [1.0, 0.0]}
        conversation = await chat.create_conversation()

        events = await _collect(await chat.stream_turn(conversation.id, QUESTION))

        metadata = events[0]
        assert [s.chunk_index for s in metadata.rag_sources] == [0, 1]
        assert metadata.grounding.confidence == GroundingConfidence.HIGH
        assert metadata.grounding.used_chunk_count == 2

        assistant = (await chat.get_messages(conversation.id))[-1]
        citations = await record_store.list_citations(assistant.id)
        assert assistant.grounding_confidence == GroundingConfidence.HIGH
        assert sorted(c.chunk_index for c in citations) == [0, 1]
        assert all(c.filename == "guide.md" for c in citations)

        prompt = llm.requests[0][1]
        assert any("Source: guide.md (chunk 1)" in m.content for m in prompt)
        assert all(m.content != GROUNDING_GUARDRAIL for m in prompt)

    async def test_low_grounding_adds_guardrail(self, chat, llm):
        """Test an empty knowledge base adds the guardrail to the prompt."""
        conversation = await chat.create_conversation()

        await _collect(await chat.stream_turn(conversation.id, "hello"))

        prompt = llm.requests[0][1]
        assert prompt[0].role == "system"
        assert prompt[0].content == GROUNDING_GUARDRAIL
        assert prompt[-1].content == "hello"

    async def test_rag_disabled(self, chat, llm, embedder):
        """Test disabled retrieval skips embedding and the guardrail."""
        conversation = await chat.create_conversation(rag_enabled=False, system_prompt="Be kind.")

        events = await _collect(await chat.stream_turn(conversation.id, "hello"))

        assert events[0].grounding.reason == REASON_DISABLED
        assert embedder.calls == []
        prompt = llm.requests[0][1]
        assert [m.role for m in prompt] == ["system", "user"]
        assert prompt[0].content == "Be kind."

    async def test_rag_disabled_globally(self, chat, llm, embedder, config):
        """Test the global switch also suppresses retrieval and the guardrail."""
        config.rag.enabled = False
        conversation = await chat.create_conversation()

        events = await _collect(await chat.stream_turn(conversation.id, "hello"))

        assert events[0].grounding.reason == REASON_DISABLED
        assert embedder.calls == []
        prompt = llm.requests[0][1]
        assert all(m.content != GROUNDING_GUARDRAIL for m in prompt)
        assert [m.role for m in prompt] == ["user"]

    async def test_history_excludes_current_message(self, chat, llm):
        """Test the second turn sees the first exchange once, then the new message."""
        conversation = await chat.create_conversation(rag_enabled=False)

        await _collect(await chat.stream_turn(conversation.id, "hello"))
        await _collect(await chat.stream_turn(conversation.id, "and again please"))

        prompt = llm.requests[1][1]
        assert [(m.role, m.content) for m in prompt] == [
            ("user", "hello"),
            ("assistant", "Hello there"),
            ("user", "and again please"),
        ]

    async def test_auto_title(self, chat):
        """Test the placeholder title is replaced by the first message, truncated."""
        conversation = await chat.create_conversation()
        message = "x" * 60

        await _collect(await chat.stream_turn(conversation.id, message))

        title = (await chat.get_conversation(conversation.id)).title
        assert title == "x" * 50 + "..."

    async def test_explicit_title_kept(self, chat):
        """Test a user-set title is never overwritten."""
        conversation = await chat.create_conversation(title="Release plan")

        await _collect(await chat.stream_turn(conversation.id, "hello"))

        assert (await chat.get_conversation(conversation.id)).title == "Release plan"

    async def test_turn_logs_tagged_with_conversation(self, chat):
        """Test records from preparing and finishing a turn carry the conversation."""
        records = []
        sink_id = logger.add(lambda message: records.append(message.record), level="INFO")
        conversation = await chat.create_conversation()
        try:
            await _collect(await chat.stream_turn(conversation.id, "hello"))
        finally:
            logger.remove(sink_id)

        tagged = {
            r["message"].split(" for ")[0]
            for r in records
            if r["extra"].get("conversation_id") == conversation.id
        }
        assert {"Prepared turn", "Completed turn"} <= tagged


@pytest.mark.unit
@pytest.mark.asyncio
class TestTurnMemory:
    """Tests for memory injection and capture during a turn."""

    async def test_memory_injected_and_marked_used(self, chat, llm, memory_store):
        """Test selected items open the prompt, are reported and counted."""
        item = await memory_store.create_item("Answers should use metric units", type="preference")
        conversation = await chat.create_conversation(rag_enabled=False)

        events = await _collect(await chat.stream_turn(conversation.id, "which units to use"))

        assert [m.id for m in events[0].used_memory_items] == [item.id]
        assert "Answers should use metric units" in llm.requests[0][1][0].content

        stored = await memory_store.get_item(item.id)
        assert stored.use_count == 1
        assistant = (await chat.get_messages(conversation.id))[-1]
        assert assistant.used_memory_ids == [item.id]

    async def test_memory_disabled(self, chat, memory_store):
        """Test memory-disabled conversations neither inject nor capture."""
        await memory_store.create_item("Answers should use metric units")
        conversation = await chat.create_conversation(memory_enabled=False)

        events = await _collect(
            await chat.stream_turn(conversation.id, "I always prefer concise answers.")
        )

        assert events[0].used_memory_items == []
        assert not any(isinstance(e, CapturedMemoriesEvent) for e in events)
        assert len(await memory_store.list_items()) == 1

    async def test_captured_memories_event(self, chat, memory_store):
        """Test a preference statement is captured and announced before done."""
        conversation = await chat.create_conversation()

        events = await _collect(
            await chat.stream_turn(conversation.id, "I always prefer concise answers.")
        )

        assert isinstance(events[-2], CapturedMemoriesEvent)
        captured = events[-2].captured_memories
        assert [c["content"] for c in captured] == ["I always prefer concise answers"]

        item = await memory_store.get_item(captured[0]["id"])
        assert item.scope == MemoryScope.GLOBAL
        assert item.tags == ["auto"]
        user_message = (await chat.get_messages(conversation.id))[0]
        assert item.source_message_id == user_message.id

    async def test_assistant_text_not_captured(self, chat, llm, memory_store):
        """Test only the user's message is inspected for capture."""
        llm.fragments = ["I always prefer to answer briefly."]
        conversation = await chat.create_conversation()

        await _collect(await chat.stream_turn(conversation.id, "hello"))

        assert await memory_store.list_items() == []

    async def test_bookkeeping_failure_is_not_fatal(self, chat, memory_store):
        """Test a failing usage update still completes the turn."""
        await memory_store.create_item("Answers should use metric units")
        conversation = await chat.create_conversation()

        with patch.object(
            memory_store, "mark_used", AsyncMock(side_effect=MemoryStoreError("database is locked"))
        ):
            events = await _collect(await chat.stream_turn(conversation.id, "hello"))

        assert isinstance(events[-1], DoneEvent)
        messages = await chat.get_messages(conversation.id)
        assert messages[-1].role == "assistant"


@pytest.mark.unit
@pytest.mark.asyncio
class TestTurnFailures:
    """Tests for failure modes of a turn."""

    async def test_empty_message(self, chat):
        """Test empty messages are rejected before anything is saved."""
        conversation = await chat.create_conversation()

        with pytest.raises(ValidationError):
            await chat.stream_turn(conversation.id, "   ")

        assert await chat.get_messages(conversation.id) == []

    async def test_missing_conversation(self, chat, llm):
        """Test a missing conversation fails before streaming starts."""
        with pytest.raises(NotFoundError):
            await chat.stream_turn("conv_missing", "hello")
        assert llm.requests == []

    async def test_llm_error_propagates(self, chat, llm):
        """Test an upstream failure mid-stream saves no assistant message."""
        llm.error = LLMError("model crashed")
        conversation = await chat.create_conversation()
        events = await chat.stream_turn(conversation.id, "hello")

        with pytest.raises(LLMError, match="model crashed"):
            await _collect(events)

        messages = await chat.get_messages(conversation.id)
        assert [m.role for m in messages] == ["user"]

    async def test_missing_completion(self, chat, llm):
        """Test a stream that ends without done saves nothing and sends no sentinel."""
        llm.send_done = False
        conversation = await chat.create_conversation()

        events = await _collect(await chat.stream_turn(conversation.id, "hello"))

        assert not any(isinstance(e, DoneEvent) for e in events)
        assert [m.role for m in await chat.get_messages(conversation.id)] == ["user"]
        assert (await chat.get_conversation(conversation.id)).title == "New Chat"

    async def test_caller_close_closes_upstream(self, chat, llm):
        """Test closing the event stream mid-turn closes the model stream and saves nothing."""
        upstream = TrackedStream(["Hel", "lo", ""])
        conversation = await chat.create_conversation()

        with patch.object(llm, "stream_chat", lambda model, messages: upstream):
            events = await chat.stream_turn(conversation.id, "hello")
            assert isinstance(await events.__anext__(), MetadataEvent)
            assert (await events.__anext__()).content == "Hel"
            await events.aclose()

        assert upstream.closed is True
        assert [m.role for m in await chat.get_messages(conversation.id)] == ["user"]


@pytest.mark.unit
class TestTurnHelpers:
    """Tests for source dedup and title derivation."""

    def test_dedupe_sources_keeps_first(self):
        """Test duplicates by (document, chunk) keep the first occurrence."""
        sources = [
            RagSource(document_id="doc_1", filename="a.md", chunk_index=0, score=0.9),
            RagSource(document_id="doc_1", filename="a.md", chunk_index=0, score=0.7),
            RagSource(document_id="doc_1", filename="a.md", chunk_index=1, score=0.8),
            RagSource(document_id="doc_2", filename="b.md", chunk_index=0, score=0.6),
        ]

        unique = dedupe_sources(sources)

        assert [(s.document_id, s.chunk_index, s.score) for s in unique] == [
            ("doc_1", 0, 0.9),
            ("doc_1", 1, 0.8),
            ("doc_2", 0, 0.6),
        ]

    def test_make_title_prefers_first_user_message(self):
        """Test the earliest user message wins over the current one."""
        history = [
            Message(id="msg_1", conversation_id="conv_1", role="user", content="First question"),
            Message(id="msg_2", conversation_id="conv_1", role="assistant", content="Answer"),
        ]

        assert make_title(history, "Later question") == "First question"
        assert make_title([], "Short") == "Short"
        assert make_title([], "y" * 51, max_length=50) == "y" * 50 + "..."
