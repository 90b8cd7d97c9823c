"""
Chat turn orchestration.

Turn flow:
1. Validate and load the conversation (errors raise before any streaming)
2. Resolve the model, persist the user message
3. Select memory, retrieve knowledge base context, assemble the prompt
4. Stream: metadata event -> token events -> completion
5. On completion: persist the assistant message and citations, memory
   bookkeeping (best effort), auto-title, terminal sentinel
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ragchat.config import Config
from ragchat.core.llm.base import ChatLLM
from ragchat.core.memory_store import MemoryStore
from ragchat.core.record_store.base import RecordStore
from ragchat.models.chat import (
    CapturedMemoriesEvent,
    ChatMessage,
    DoneEvent,
    MetadataEvent,
    StreamEvent,
    TokenEvent,
)
from ragchat.models.conversation import AUTO_MODEL, Citation, Conversation, Message
from ragchat.models.memory import MemoryItem, UsedMemoryItem
from ragchat.models.retrieval import GroundingInfo, RagSource
from ragchat.services.context import assemble_context
from ragchat.services.memory_capture import capture_candidates
from ragchat.services.memory_selector import select_memory
from ragchat.services.retrieval import RetrievalService
from ragchat.services.router import ModelResolution, resolve_model
from ragchat.utils.exceptions import NotFoundError, ValidationError
from ragchat.utils.id_generator import generate_conversation_id, generate_message_id
from ragchat.utils.logger import get_logger, turn_context

logger = get_logger(__name__)

CONVERSATION_UPDATABLE_FIELDS = {
    "title",
    "model",
    "system_prompt",
    "rag_enabled",
    "memory_enabled",
}


def dedupe_sources(sources: list[RagSource]) -> list[RagSource]:
    """Keep the first source per (document, chunk index)."""
    seen = set()
    unique = []
    for source in sources:
        key = f"{source.document_id}:{source.chunk_index}"
        if key in seen:
            continue
        seen.add(key)
        unique.append(source)
    return unique


def make_title(history: list[Message], user_message: str, max_length: int = 50) -> str:
    """Title from the first user message of the conversation, truncated with '...'."""
    first_user = next((m.content for m in history if m.role == "user" and m.content), None)
    source = first_user or user_message
    if len(source) > max_length:
        return source[:max_length] + "..."
    return source


@dataclass
class ChatTurn:
    """Everything prepared for one turn before the model is called."""

    conversation: Conversation
    user_message: Message
    history: list[Message]
    resolution: ModelResolution
    grounding: GroundingInfo
    sources: list[RagSource] = field(default_factory=list)
    memory_items: list[UsedMemoryItem] = field(default_factory=list)
    prompt: list[ChatMessage] = field(default_factory=list)


class ChatService:
    """
    Conversation management and streamed chat turns.

    Usage:
        events = await chat.stream_turn(conversation_id, "hello")
        async for event in events:
            ...
    """

    def __init__(
        self,
        record_store: RecordStore,
        memory_store: MemoryStore,
        retrieval: RetrievalService,
        llm: ChatLLM,
        config: Config,
    ):
        """
        Initialize chat service.

        Args:
            record_store: Conversations, messages, citations
            memory_store: Memory facade for selection and capture
            retrieval: Knowledge base retrieval
            llm: Streaming chat runtime
            config: Full configuration (llm routing, memory, chat)
        """
        self.record_store = record_store
        self.memory_store = memory_store
        self.retrieval = retrieval
        self.llm = llm
        self.config = config

    # ═══════════════════════════════════════════════════════════
    # CONVERSATIONS
    # ═══════════════════════════════════════════════════════════

    async def create_conversation(
        self,
        title: str | None = None,
        model: str = AUTO_MODEL,
        system_prompt: str | None = None,
        rag_enabled: bool = True,
        memory_enabled: bool = True,
    ) -> Conversation:
        conversation = Conversation(
            id=generate_conversation_id(),
            title=title or self.config.chat.title_placeholder,
            model=model or AUTO_MODEL,
            system_prompt=system_prompt or None,
            rag_enabled=rag_enabled,
            memory_enabled=memory_enabled,
        )
        await self.record_store.add_conversation(conversation)
        logger.info(f"Created conversation {conversation.id}", extra={"model": conversation.model})
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation:
        """
        Raises:
            NotFoundError: If the conversation does not exist
        """
        conversation = await self.record_store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation not found: {conversation_id}")
        return conversation

    async def update_conversation(
        self, conversation_id: str, changes: dict[str, Any]
    ) -> Conversation:
        """
        Apply a partial update to a conversation's settings.

        Args:
            conversation_id: Conversation to update
            changes: Any of title, model, system_prompt, rag_enabled, memory_enabled

        Returns:
            The updated conversation

        Raises:
            NotFoundError: If the conversation does not exist
            ValidationError: If a field is unknown or invalid
        """
        unknown = set(changes) - CONVERSATION_UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"unknown fields: {', '.join(sorted(unknown))}")

        updates = dict(changes)
        if "title" in updates:
            updates["title"] = str(updates["title"] or "").strip()
            if not updates["title"]:
                raise ValidationError("title cannot be empty")
        if "model" in updates:
            updates["model"] = str(updates["model"] or "").strip() or AUTO_MODEL
        if "system_prompt" in updates:
            updates["system_prompt"] = updates["system_prompt"] or None

        current = await self.get_conversation(conversation_id)
        try:
            conversation = Conversation.model_validate(
                {**current.model_dump(), **updates, "updated_at": datetime.now()}
            )
        except PydanticValidationError as e:
            raise ValidationError(f"invalid conversation: {e}") from e

        await self.record_store.update_conversation(conversation)
        logger.info(
            f"Updated conversation {conversation_id}", extra={"fields": sorted(updates)}
        )
        return conversation

    async def list_conversations(self) -> list[Conversation]:
        return await self.record_store.list_conversations()

    async def get_messages(self, conversation_id: str) -> list[Message]:
        await self.get_conversation(conversation_id)
        return await self.record_store.list_messages(conversation_id)

    async def delete_conversation(self, conversation_id: str) -> bool:
        return await self.record_store.delete_conversation(conversation_id)

    # ═══════════════════════════════════════════════════════════
    # TURNS
    # ═══════════════════════════════════════════════════════════

    async def stream_turn(self, conversation_id: str, message: str) -> AsyncIterator[StreamEvent]:
        """
        Prepare a turn and return its event stream.

        Validation, persistence of the user message, memory selection and
        retrieval happen here, so a missing conversation fails before any
        event is produced.

        Args:
            conversation_id: Target conversation
            message: User message

        Returns:
            Async iterator of stream events ending with DoneEvent

        Raises:
            ValidationError: If the message is empty
            NotFoundError: If the conversation does not exist
        """
        if not message or not message.strip():
            raise ValidationError("message is required")

        with turn_context(conversation_id):
            turn = await self.prepare_turn(conversation_id, message)
        return self._stream(turn)

    async def prepare_turn(self, conversation_id: str, message: str) -> ChatTurn:
        conversation = await self.get_conversation(conversation_id)
        history = await self.record_store.list_messages(conversation_id)

        resolution = resolve_model(conversation.model, message, self.config.llm)

        user_message = Message(
            id=generate_message_id(),
            conversation_id=conversation_id,
            role="user",
            content=message,
        )
        await self.record_store.add_message(user_message)
        await self.record_store.update_conversation(
            conversation.model_copy(update={"updated_at": datetime.now()})
        )

        memory_items: list[UsedMemoryItem] = []
        if conversation.memory_enabled:
            visible = await self.memory_store.list_visible(conversation_id)
            memory_items = select_memory(visible, message, self.config.memory)

        # Retrieval is on only when both the conversation and the global switch allow it
        rag_on = conversation.rag_enabled and self.config.rag.enabled
        retrieved, sources, grounding = await self.retrieval.retrieve_for_turn(message, rag_on)

        prompt = assemble_context(
            history,
            message,
            system_prompt=conversation.system_prompt,
            memory_items=memory_items,
            retrieved=retrieved,
            grounding=grounding,
            rag_enabled=rag_on,
        )

        logger.info(
            f"Prepared turn for {conversation_id}",
            extra={
                "model": resolution.model,
                "routing_reason": resolution.reason,
                "memory_items": len(memory_items),
                "sources": len(sources),
                "grounding": grounding.confidence.value,
            },
        )

        return ChatTurn(
            conversation=conversation,
            user_message=user_message,
            history=history,
            resolution=resolution,
            grounding=grounding,
            sources=sources,
            memory_items=memory_items,
            prompt=prompt,
        )

    async def _stream(self, turn: ChatTurn) -> AsyncIterator[StreamEvent]:
        yield MetadataEvent(
            routed_model=turn.resolution.model,
            routing_reason=turn.resolution.reason,
            rag_sources=turn.sources,
            grounding=turn.grounding,
            used_memory_items=turn.memory_items,
        )

        parts: list[str] = []
        completed = False
        upstream = self.llm.stream_chat(turn.resolution.model, turn.prompt)
        try:
            async for chunk in upstream:
                if chunk.content:
                    parts.append(chunk.content)
                    yield TokenEvent(content=chunk.content)
                if chunk.done:
                    completed = True
                    break
        finally:
            await upstream.aclose()

        # No yield inside this block so the context never spans a suspension
        with turn_context(turn.conversation.id):
            if not completed:
                logger.warning(
                    f"Model stream ended without completion for {turn.conversation.id}",
                    extra={"model": turn.resolution.model},
                )
                return

            assistant = await self._save_assistant_message(turn, "".join(parts))
            captured = await self._memory_bookkeeping(turn)
            await self._auto_title(turn)

            logger.info(
                f"Completed turn for {turn.conversation.id}",
                extra={"message_id": assistant.id, "chars": len(assistant.content)},
            )

        if captured:
            yield CapturedMemoriesEvent(
                captured_memories=[{"id": item.id, "content": item.content} for item in captured]
            )
        yield DoneEvent()

    async def _save_assistant_message(self, turn: ChatTurn, content: str) -> Message:
        assistant = Message(
            id=generate_message_id(),
            conversation_id=turn.conversation.id,
            role="assistant",
            content=content,
            model=turn.resolution.model,
            grounding_confidence=turn.grounding.confidence,
            grounding_reason=turn.grounding.reason,
            grounding_avg_similarity=turn.grounding.avg_similarity,
            grounding_used_chunk_count=turn.grounding.used_chunk_count,
            used_memory_ids=[item.id for item in turn.memory_items],
        )
        citations = [
            Citation(
                message_id=assistant.id,
                document_id=source.document_id,
                filename=source.filename,
                chunk_index=source.chunk_index,
                score=source.score,
                metadata=source.metadata,
            )
            for source in dedupe_sources(turn.sources)
        ]

        async with self.record_store.transaction():
            await self.record_store.add_message(assistant)
            if citations:
                await self.record_store.add_citations(citations)
        return assistant

    async def _memory_bookkeeping(self, turn: ChatTurn) -> list[MemoryItem]:
        """Mark used items and auto-capture from the user turn. Failures are non-fatal."""
        try:
            if turn.memory_items:
                await self.memory_store.mark_used([item.id for item in turn.memory_items])

            if not turn.conversation.memory_enabled:
                return []

            existing = await self.memory_store.list_visible(turn.conversation.id)
            candidates = capture_candidates(
                turn.user_message.content,
                turn.conversation.id,
                existing,
                max_candidates=self.config.memory.max_captures_per_turn,
                source_message_id=turn.user_message.id,
            )
            return await self.memory_store.create_captured(candidates, turn.conversation.id)

        except Exception as e:
            logger.error(
                f"Memory bookkeeping failed (non-fatal): {e}",
                extra={"conversation_id": turn.conversation.id, "error": str(e)},
            )
            return []

    async def _auto_title(self, turn: ChatTurn) -> None:
        if turn.conversation.title != self.config.chat.title_placeholder:
            return
        try:
            current = await self.record_store.get_conversation(turn.conversation.id)
            if current is None:
                return
            title = make_title(
                turn.history, turn.user_message.content, self.config.chat.title_max_length
            )
            await self.record_store.update_conversation(current.model_copy(update={"title": title}))
        except Exception as e:
            logger.warning(f"Auto-title failed for {turn.conversation.id}: {e}")
