"""
Prompt messages and server-sent stream events.

Each event serializes to one SSE frame: ``data: <json>\\n\\n``.
"""

import json
from typing import Any

from pydantic import BaseModel, Field

from ragchat.models.memory import UsedMemoryItem
from ragchat.models.retrieval import GroundingInfo, RagSource

DONE_SENTINEL = "[DONE]"


class ChatMessage(BaseModel):
    """A message sent to the model runtime."""

    role: str
    content: str


class ChatChunk(BaseModel):
    """One parsed line of the runtime's streaming response."""

    content: str = ""
    done: bool = False


class StreamEvent(BaseModel):
    """Base class for events emitted to the caller."""

    def payload(self) -> Any:
        return self.model_dump(mode="json")

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.payload())}\n\n"


class MetadataEvent(StreamEvent):
    """First event of a turn: attribution available before any content."""

    routed_model: str
    routing_reason: str | None = None
    rag_sources: list[RagSource] = Field(default_factory=list)
    grounding: GroundingInfo
    used_memory_items: list[UsedMemoryItem] = Field(default_factory=list)


class TokenEvent(StreamEvent):
    """Incremental generated text."""

    content: str


class CapturedMemoriesEvent(StreamEvent):
    """Memory items auto-captured from the user's turn."""

    captured_memories: list[dict[str, str]]


class DoneEvent(StreamEvent):
    """Terminal sentinel."""

    def payload(self) -> Any:
        return DONE_SENTINEL

    def to_sse(self) -> str:
        return f"data: {DONE_SENTINEL}\n\n"
