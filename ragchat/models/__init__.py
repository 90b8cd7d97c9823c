"""
Data models for ragchat.

Core models:
- Document, Chunk, ChunkDraft, IngestSource: knowledge base content
- MemoryItem and its enums: curated long-term memory
- Conversation, Message, Citation: chat persistence
- RetrievedChunk, RagSource, GroundingInfo: retrieval results
- ChatMessage and stream events: prompt assembly and streaming
"""

from ragchat.models.chat import (
    DONE_SENTINEL,
    CapturedMemoriesEvent,
    ChatChunk,
    ChatMessage,
    DoneEvent,
    MetadataEvent,
    StreamEvent,
    TokenEvent,
)
from ragchat.models.conversation import AUTO_MODEL, Citation, Conversation, Message
from ragchat.models.document import (
    Chunk,
    ChunkDraft,
    Document,
    DocumentStatus,
    IngestionResult,
    IngestSource,
    SourceKind,
    compute_content_hash,
)
from ragchat.models.memory import (
    MemoryCandidate,
    MemoryFilter,
    MemoryItem,
    MemoryScope,
    MemoryStatus,
    MemoryType,
    UsedMemoryItem,
    normalize_tags,
)
from ragchat.models.retrieval import (
    GroundingConfidence,
    GroundingInfo,
    RagSource,
    RetrievedChunk,
    RetrievedContext,
)

__all__ = [
    # Knowledge base
    "Document",
    "Chunk",
    "ChunkDraft",
    "DocumentStatus",
    "SourceKind",
    "IngestSource",
    "IngestionResult",
    "compute_content_hash",
    # Memory
    "MemoryItem",
    "MemoryType",
    "MemoryScope",
    "MemoryStatus",
    "MemoryCandidate",
    "MemoryFilter",
    "UsedMemoryItem",
    "normalize_tags",
    # Conversations
    "AUTO_MODEL",
    "Conversation",
    "Message",
    "Citation",
    # Retrieval
    "GroundingConfidence",
    "GroundingInfo",
    "RagSource",
    "RetrievedChunk",
    "RetrievedContext",
    # Chat
    "ChatMessage",
    "ChatChunk",
    "StreamEvent",
    "MetadataEvent",
    "TokenEvent",
    "CapturedMemoriesEvent",
    "DoneEvent",
    "DONE_SENTINEL",
]
