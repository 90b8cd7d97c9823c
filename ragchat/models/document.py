"""
Document and Chunk models for the knowledge base.

A Document is one ingested source (file, URL or inline content). It owns
its Chunks exclusively: deleting or re-indexing a document destroys them.
"""

import hashlib
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class SourceKind(str, Enum):
    """Format of the ingested source, selects parser and chunking strategy."""

    MARKDOWN = "markdown"
    TEXT = "text"
    PDF = "pdf"
    CODE = "code"
    URL = "url"


class DocumentStatus(str, Enum):
    """
    Ingestion lifecycle.

    processing -> indexed | error. Both terminal states may be re-ingested.
    """

    PROCESSING = "processing"
    INDEXED = "indexed"
    ERROR = "error"


class Document(BaseModel):
    """Knowledge base document record."""

    id: str = Field(..., description="Unique document ID (doc_xxx)")
    filename: str = Field(..., description="Display filename")
    filepath: str | None = Field(default=None, description="Absolute path for file sources")
    source_url: str | None = Field(default=None, description="Original URL for web sources")
    source_kind: SourceKind = Field(..., description="Parser selection")
    content_hash: str = Field(..., description="SHA256 hex digest used for deduplication")
    file_size: int | None = Field(default=None, ge=0, description="Size in bytes for file sources")
    status: DocumentStatus = Field(default=DocumentStatus.PROCESSING)
    error: str | None = Field(default=None, description="Failure message when status is error")
    chunk_count: int = Field(default=0, ge=0)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def is_indexed(self) -> bool:
        return self.status == DocumentStatus.INDEXED


class ChunkDraft(BaseModel):
    """
    Chunker output before persistence.

    Carries the text slice, its estimated token count, its ordinal within the
    document and free-form metadata (heading, language, line range).
    """

    content: str
    token_count: int = Field(..., ge=0)
    chunk_index: int = Field(..., ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class Chunk(BaseModel):
    """
    Persisted document chunk.

    Immutable once created except for vector assignment.
    """

    id: str = Field(..., description="Unique chunk ID (chunk_xxx)")
    document_id: str = Field(..., description="Owning document ID")
    content: str = Field(..., description="Chunk text")
    token_count: int = Field(default=0, ge=0)
    chunk_index: int = Field(..., ge=0, description="Zero-based index within document")
    metadata: dict[str, Any] = Field(default_factory=dict)
    embedding: list[float] | None = Field(default=None, description="Vector once indexed")
    created_at: datetime = Field(default_factory=datetime.now)


class IngestSource(BaseModel):
    """
    Reference to content to ingest.

    Exactly one origin is used, in priority order url, content, filepath
    (mirrors how the parser dispatches).
    """

    filepath: str | None = None
    url: str | None = None
    content: str | None = None
    filename: str = ""
    source_kind: SourceKind | None = None

    @model_validator(mode="after")
    def _require_origin(self) -> "IngestSource":
        if not (self.filepath or self.url or self.content):
            raise ValueError("Must provide filepath, url, or content")
        return self


class IngestionResult(BaseModel):
    """Outcome of an ingestion request."""

    document_id: str
    duplicate: bool = Field(default=False, description="Matched an already indexed document")
    queued: bool = Field(default=False, description="Processing was enqueued")


def compute_content_hash(content: str | bytes) -> str:
    """
    Compute SHA256 hex digest used as the document dedup key.

    Args:
        content: Raw file bytes, URL string or inline text

    Returns:
        Lower-case hex digest
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()
