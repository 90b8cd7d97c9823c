"""
Retrieval and grounding models.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class GroundingConfidence(str, Enum):
    """How well retrieved evidence supports an answer."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class GroundingInfo(BaseModel):
    """Grounding snapshot persisted with each assistant turn."""

    confidence: GroundingConfidence
    avg_similarity: float | None = None
    used_chunk_count: int = 0
    reason: str


class RetrievedChunk(BaseModel):
    """A chunk returned by vector search, hydrated with its document filename."""

    content: str
    document_id: str
    filename: str
    score: float = Field(..., description="Cosine similarity (1 - distance)")
    chunk_index: int
    metadata: dict[str, Any] = Field(default_factory=dict)


class RagSource(BaseModel):
    """Attribution entry shown to the client and stored as a citation."""

    document_id: str
    filename: str
    chunk_index: int
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_chunk(cls, chunk: RetrievedChunk) -> "RagSource":
        return cls(
            document_id=chunk.document_id,
            filename=chunk.filename,
            chunk_index=chunk.chunk_index,
            score=chunk.score,
            metadata=chunk.metadata,
        )


class RetrievedContext(BaseModel):
    """Result of a knowledge base lookup."""

    chunks: list[RetrievedChunk] = Field(default_factory=list)
    prompt_addition: str = ""
    reason: str | None = Field(default=None, description="Why nothing was retrieved, if so")
