"""Fixtures for service tests.

Storage fixtures use a real SQLite file per test; model runtimes are
replaced with in-process fakes so no Ollama instance is needed.
"""

from collections.abc import AsyncGenerator, AsyncIterator
from unittest.mock import AsyncMock

import pytest

from ragchat.config import Config
from ragchat.core.embeddings.base import Embedder, EmbeddingHealth
from ragchat.core.llm.base import ChatLLM
from ragchat.core.memory_store import MemoryStore
from ragchat.core.record_store.sqlite_store import SQLiteRecordStore
from ragchat.core.vector_store.sqlite import SQLiteVectorStore
from ragchat.models.chat import ChatChunk, ChatMessage
from ragchat.services.ingestion import IngestionQueue, IngestionService


class FakeEmbedder(Embedder):
    """Deterministic embedder: vectors are looked up by text, else derived from length."""

    model = "fake-embed"

    def __init__(self, vectors: dict[str, list[float]] | None = None, healthy: bool = True):
        self.vectors = vectors or {}
        self.healthy = healthy
        self.calls: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        if text in self.vectors:
            return self.vectors[text]
        return [1.0, float(len(text) % 7), 0.5]

    async def embed(self, text: str, **kwargs) -> list[float]:
        self.calls.append([text])
        return self._vector(text)

    async def batch_embed(self, texts: list[str], batch_size: int = 0, **kwargs):
        self.calls.append(list(texts))
        return [self._vector(text) for text in texts]

    async def check_model(self) -> EmbeddingHealth:
        if self.healthy:
            return EmbeddingHealth(ok=True)
        return EmbeddingHealth(
            ok=False, error='Embedding model "fake-embed" not found. Run: ollama pull fake-embed'
        )

    async def close(self):
        pass


class FakeLLM(ChatLLM):
    """Streams canned fragments and records the prompts it received."""

    def __init__(self, fragments: list[str] | None = None, error: Exception | None = None):
        self.fragments = fragments if fragments is not None else ["Hello", " there"]
        self.error = error
        self.send_done = True
        self.requests: list[tuple[str, list[ChatMessage]]] = []

    async def stream_chat(
        self, model: str, messages: list[ChatMessage], **kwargs
    ) -> AsyncIterator[ChatChunk]:
        self.requests.append((model, messages))
        for fragment in self.fragments:
            yield ChatChunk(content=fragment)
        if self.error:
            raise self.error
        if self.send_done:
            yield ChatChunk(content="", done=True)

    async def list_models(self) -> list[str]:
        return ["qwen2.5:14b"]

    async def close(self):
        pass


@pytest.fixture
def config(tmp_path) -> Config:
    """Default config pointing storage at the temp directory."""
    config = Config()
    config.storage.db_path = str(tmp_path / "services.db")
    return config


@pytest.fixture
async def record_store(config) -> AsyncGenerator:
    """Initialized SQLite record store."""
    store = SQLiteRecordStore(db_path=config.storage.db_path)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def vector_store(record_store) -> SQLiteVectorStore:
    return SQLiteVectorStore(record_store)


@pytest.fixture
def memory_store(record_store) -> MemoryStore:
    return MemoryStore(record_store)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def mock_embedder():
    """Embedder double for failure injection."""
    embedder = AsyncMock(spec=Embedder)
    embedder.check_model.return_value = EmbeddingHealth(ok=True)
    return embedder


@pytest.fixture
async def ingestion(record_store, vector_store, embedder, config) -> AsyncGenerator:
    """Ingestion service with its own (not started) queue."""
    queue = IngestionQueue()
    service = IngestionService(record_store, vector_store, embedder, config.rag, queue=queue)
    yield service
    await queue.stop()
