"""
Conversation, message and citation models.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ragchat.models.retrieval import GroundingConfidence

AUTO_MODEL = "auto"


class Conversation(BaseModel):
    """Chat conversation with per-conversation RAG/memory switches."""

    id: str = Field(..., description="Unique conversation ID (conv_xxx)")
    title: str = Field(default="New Chat")
    model: str = Field(default=AUTO_MODEL, description="Model name or 'auto' for routing")
    system_prompt: str | None = None
    rag_enabled: bool = True
    memory_enabled: bool = True
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Message(BaseModel):
    """
    Persisted conversation turn.

    Assistant messages carry the grounding snapshot taken at generation time;
    it is never recomputed.
    """

    id: str
    conversation_id: str
    role: str
    content: str
    model: str | None = None
    grounding_confidence: GroundingConfidence | None = None
    grounding_reason: str | None = None
    grounding_avg_similarity: float | None = None
    grounding_used_chunk_count: int | None = None
    used_memory_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)


class Citation(BaseModel):
    """A knowledge base chunk cited by an assistant message."""

    message_id: str
    document_id: str
    filename: str
    chunk_index: int
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)
