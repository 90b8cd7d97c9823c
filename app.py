"""
ragchat FastAPI Application

A REST API server for the ragchat engine.
Provides endpoints for documents, retrieval, memory, conversations and
streamed chat.
"""

import json
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ragchat.config import Config
from ragchat.models.document import DocumentStatus, IngestSource, SourceKind
from ragchat.models.memory import MemoryFilter, MemoryScope, MemoryStatus, MemoryType
from ragchat.services.engine import ChatEngine
from ragchat.utils.exceptions import (
    ContentError,
    LLMError,
    NotFoundError,
    RagChatError,
    ValidationError,
)
from ragchat.utils.logger import get_logger, setup_logging

# Global engine instance
engine: ChatEngine | None = None
logger = get_logger(__name__)


# Pydantic models for API
class IngestRequest(BaseModel):
    """Request model for adding a document (one of filepath, url, content)."""

    filepath: str | None = None
    url: str | None = None
    content: str | None = None
    filename: str = ""
    source_kind: SourceKind | None = None


class SearchRequest(BaseModel):
    """Request model for knowledge base search."""

    query: str = Field(..., min_length=1)
    top_k: int | None = Field(default=None, ge=1, le=100)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)


class CreateMemoryRequest(BaseModel):
    """Request model for creating a memory item."""

    content: str
    type: MemoryType = MemoryType.FACT
    scope: MemoryScope = MemoryScope.GLOBAL
    status: MemoryStatus = MemoryStatus.ACTIVE
    conversation_id: str | None = None
    source_message_id: str | None = None
    supersedes_memory_id: str | None = None
    tags: list[str] = Field(default_factory=list)


class UpdateMemoryRequest(BaseModel):
    """Partial update; only fields that are sent are applied."""

    content: str | None = None
    type: MemoryType | None = None
    scope: MemoryScope | None = None
    status: MemoryStatus | None = None
    conversation_id: str | None = None
    source_message_id: str | None = None
    supersedes_memory_id: str | None = None
    tags: list[str] | None = None


class CreateConversationRequest(BaseModel):
    """Request model for creating a conversation."""

    title: str | None = None
    model: str = "auto"
    system_prompt: str | None = None
    rag_enabled: bool = True
    memory_enabled: bool = True


class UpdateConversationRequest(BaseModel):
    """Partial update; only fields that are sent are applied."""

    title: str | None = None
    model: str | None = None
    system_prompt: str | None = None
    rag_enabled: bool | None = None
    memory_enabled: bool | None = None


class UpdateSettingsRequest(BaseModel):
    """Runtime settings change; only fields that are sent are applied."""

    rag_enabled: bool | None = None
    top_k: int | None = None
    similarity_threshold: float | None = None
    chunk_size: int | None = None
    chunk_overlap: int | None = None
    watched_folders: list[str] | None = None
    supported_types: list[str] | None = None
    memory_token_budget: int | None = None


class ChatRequest(BaseModel):
    """Request model for one chat turn."""

    conversation_id: str
    message: str


def _require_engine() -> ChatEngine:
    if not engine:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine


def _http_error(e: Exception, action: str) -> HTTPException:
    """Translate a domain exception to an HTTP error."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, (ValidationError, ContentError)):
        return HTTPException(status_code=400, detail=e.message)
    if isinstance(e, LLMError):
        return HTTPException(status_code=502, detail=e.message)
    logger.error(f"Error {action}: {e}")
    detail = e.message if isinstance(e, RagChatError) else str(e)
    return HTTPException(status_code=500, detail=detail)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    global engine

    # Load configuration: env vars > YAML (RAGCHAT_CONFIG) > defaults
    config = Config.from_env_or_yaml(os.getenv("RAGCHAT_CONFIG", "config.yaml"))

    setup_logging(config.logging)

    logger.info("Starting ragchat server")
    logger.info(
        f"Configuration: LLM={config.llm.default_model}, "
        f"Embedder={config.embedder.provider}/{config.embedder.model}, "
        f"Vectors={config.storage.vector_backend}"
    )

    engine = await ChatEngine.from_config(config)
    await engine.initialize()
    logger.info("ragchat engine initialized")

    yield

    logger.info("Shutting down ragchat server")
    await engine.close()
    engine = None
    logger.info("Cleanup complete")


# Create FastAPI app
app = FastAPI(
    title="ragchat API",
    description="Self-hosted chat with a local knowledge base and curated memory",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Embedding model availability and knowledge base counters."""
    if not engine:
        return {"status": "initializing", "engine_initialized": False}

    try:
        report = await engine.health()
        status = "healthy" if report["embedding"]["ok"] else "degraded"
        return {"status": status, "engine_initialized": True, **report}
    except Exception as e:
        raise _http_error(e, "checking health") from e


@app.get("/models")
async def list_models():
    """Models installed on the chat runtime."""
    current = _require_engine()
    try:
        return {"models": await current.llm.list_models()}
    except Exception as e:
        raise _http_error(e, "listing models") from e


# Document endpoints
@app.get("/documents")
async def list_documents(status: DocumentStatus | None = Query(default=None)):
    """List knowledge base documents, newest first."""
    current = _require_engine()
    try:
        documents = await current.ingestion.list_documents(status)
        return [document.model_dump(mode="json") for document in documents]
    except Exception as e:
        raise _http_error(e, "listing documents") from e


@app.post("/documents")
async def add_document(request: IngestRequest):
    """
    Add a document to the knowledge base.

    The record is created immediately with status ``processing``; parsing,
    chunking and embedding run on the background queue. Content identical
    to an indexed document returns that document's ID.
    """
    current = _require_engine()
    try:
        source = IngestSource(**request.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Provide a filepath, url, or content") from e

    try:
        result = await current.ingestion.submit(source)
        return result.model_dump()
    except Exception as e:
        raise _http_error(e, "adding document") from e


@app.get("/documents/{document_id}")
async def get_document(document_id: str):
    current = _require_engine()
    document = await current.ingestion.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return document.model_dump(mode="json")


@app.post("/documents/{document_id}/reindex")
async def reindex_document(document_id: str):
    """Purge a document and re-ingest it from its original file or URL."""
    current = _require_engine()
    try:
        result = await current.ingestion.reindex_document(document_id)
        return result.model_dump()
    except Exception as e:
        raise _http_error(e, "re-indexing document") from e


@app.delete("/documents/{document_id}")
async def delete_document(document_id: str):
    """Delete a document with its chunks and vectors."""
    current = _require_engine()
    try:
        deleted = await current.ingestion.delete_document(document_id)
    except Exception as e:
        raise _http_error(e, "deleting document") from e
    if not deleted:
        raise HTTPException(status_code=404, detail="Document not found")
    return {"id": document_id, "deleted": True}


@app.post("/search")
async def search(request: SearchRequest):
    """Retrieve the chunks most similar to a query."""
    current = _require_engine()
    try:
        context = await current.retrieval.retrieve(
            request.query, top_k=request.top_k, threshold=request.threshold
        )
        return context.model_dump(mode="json")
    except Exception as e:
        raise _http_error(e, "searching") from e


# Memory endpoints
@app.get("/memory")
async def list_memory(
    scope: MemoryScope | None = None,
    type: MemoryType | None = None,
    status: MemoryStatus | None = None,
    conversation_id: str | None = None,
    q: str | None = None,
    tag: str | None = None,
):
    """List memory items, most recently updated first."""
    current = _require_engine()
    filters = MemoryFilter(
        scope=scope,
        type=type,
        status=status,
        conversation_id=conversation_id,
        query=q,
        tag=tag,
    )
    try:
        items = await current.memory_store.list_items(filters)
        return [item.model_dump(mode="json") for item in items]
    except Exception as e:
        raise _http_error(e, "listing memory") from e


@app.post("/memory")
async def create_memory(request: CreateMemoryRequest):
    current = _require_engine()
    try:
        item = await current.memory_store.create_item(**request.model_dump())
        return item.model_dump(mode="json")
    except Exception as e:
        raise _http_error(e, "creating memory") from e


@app.post("/memory/archive")
async def bulk_archive_memory(status: MemoryStatus = MemoryStatus.ACTIVE):
    """Archive every memory item currently in ``status``."""
    current = _require_engine()
    try:
        count = await current.memory_store.bulk_archive(status)
        return {"archived": count}
    except Exception as e:
        raise _http_error(e, "archiving memory") from e


@app.patch("/memory/{memory_id}")
async def update_memory(memory_id: str, request: UpdateMemoryRequest):
    """
    Update a memory item.

    Setting ``supersedes_memory_id`` archives the referenced item in the
    same transaction.
    """
    current = _require_engine()
    try:
        item = await current.memory_store.update_item(
            memory_id, request.model_dump(exclude_unset=True)
        )
        return item.model_dump(mode="json")
    except Exception as e:
        raise _http_error(e, "updating memory") from e


@app.post("/memory/{memory_id}/archive")
async def archive_memory(memory_id: str):
    current = _require_engine()
    try:
        item = await current.memory_store.archive_item(memory_id)
        return item.model_dump(mode="json")
    except Exception as e:
        raise _http_error(e, "archiving memory") from e


# Conversation endpoints
@app.get("/conversations")
async def list_conversations():
    current = _require_engine()
    conversations = await current.chat.list_conversations()
    return [conversation.model_dump(mode="json") for conversation in conversations]


@app.post("/conversations")
async def create_conversation(request: CreateConversationRequest):
    current = _require_engine()
    try:
        conversation = await current.chat.create_conversation(**request.model_dump())
        return conversation.model_dump(mode="json")
    except Exception as e:
        raise _http_error(e, "creating conversation") from e


@app.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str):
    """Conversation with its messages, oldest first."""
    current = _require_engine()
    try:
        conversation = await current.chat.get_conversation(conversation_id)
        messages = await current.chat.get_messages(conversation_id)
    except Exception as e:
        raise _http_error(e, "getting conversation") from e

    result: dict[str, Any] = conversation.model_dump(mode="json")
    result["messages"] = [message.model_dump(mode="json") for message in messages]
    return result


@app.patch("/conversations/{conversation_id}")
async def update_conversation(conversation_id: str, request: UpdateConversationRequest):
    """Change title, model, system prompt or the RAG/memory switches."""
    current = _require_engine()
    try:
        conversation = await current.chat.update_conversation(
            conversation_id, request.model_dump(exclude_unset=True)
        )
        return conversation.model_dump(mode="json")
    except Exception as e:
        raise _http_error(e, "updating conversation") from e


@app.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str):
    current = _require_engine()
    if not await current.chat.delete_conversation(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"id": conversation_id, "deleted": True}


# Chat endpoint
@app.post("/chat")
async def chat(request: ChatRequest):
    """
    Stream one chat turn as server-sent events.

    Frames, in order: metadata (routed model, sources, grounding, memory),
    content tokens, optional captured memories, then ``[DONE]``. A runtime
    failure mid-stream ends the stream with an error frame.
    """
    current = _require_engine()
    try:
        events = await current.chat.stream_turn(request.conversation_id, request.message)
    except Exception as e:
        raise _http_error(e, "starting chat turn") from e

    async def event_stream():
        try:
            async for event in events:
                yield event.to_sse()
        except LLMError as e:
            logger.error(f"Chat stream failed: {e}")
            yield f"data: {json.dumps({'error': e.message})}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


# Runtime settings endpoints
@app.get("/config")
async def get_settings():
    return _require_engine().get_settings()


@app.put("/config")
async def update_settings(request: UpdateSettingsRequest):
    """
    Change runtime settings without a restart.

    Changing watched folders or supported types rebuilds the folder watcher.
    """
    current = _require_engine()
    try:
        return await current.update_settings(request.model_dump(exclude_unset=True))
    except Exception as e:
        raise _http_error(e, "updating settings") from e


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "ragchat API",
        "version": "1.0.0",
        "description": "Self-hosted chat with a local knowledge base and curated memory",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
