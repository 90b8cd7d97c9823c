"""
Chat Engine - wires stores, clients and services together.

Brings together:
- Record store, vector store and memory store
- Embedder and chat runtime
- Ingestion (queue + folder watcher), retrieval and chat services
"""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ragchat.config import Config, MemoryConfig, RAGConfig
from ragchat.core.embeddings import EmbedderFactory
from ragchat.core.embeddings.base import Embedder
from ragchat.core.llm import OllamaLLM
from ragchat.core.llm.base import ChatLLM
from ragchat.core.memory_store import MemoryStore
from ragchat.core.record_store import SQLiteRecordStore
from ragchat.core.record_store.base import RecordStore
from ragchat.core.vector_store import VectorStoreFactory
from ragchat.core.vector_store.base import VectorStore
from ragchat.models.document import DocumentStatus
from ragchat.services.chat import ChatService
from ragchat.services.ingestion import IngestionQueue, IngestionService
from ragchat.services.retrieval import RetrievalService
from ragchat.services.watcher import FolderWatcher
from ragchat.utils.exceptions import ValidationError
from ragchat.utils.logger import get_logger

logger = get_logger(__name__)

# Runtime setting name -> (config section, field)
RUNTIME_SETTINGS = {
    "rag_enabled": ("rag", "enabled"),
    "top_k": ("rag", "top_k"),
    "similarity_threshold": ("rag", "similarity_threshold"),
    "chunk_size": ("rag", "chunk_size"),
    "chunk_overlap": ("rag", "chunk_overlap"),
    "watched_folders": ("rag", "watched_folders"),
    "supported_types": ("rag", "supported_types"),
    "memory_token_budget": ("memory", "token_budget"),
}
SECTION_MODELS = {"rag": RAGConfig, "memory": MemoryConfig}
WATCHER_FIELDS = {"watched_folders", "supported_types"}


class ChatEngine:
    """
    Unified engine for the chat core.

    Features:
    - Knowledge base ingestion with a serialized background queue
    - Folder watching for automatic re-indexing
    - Retrieval with grounding classification
    - Curated memory with auto-capture
    - Streamed chat turns
    """

    def __init__(
        self,
        llm: ChatLLM,
        embedder: Embedder,
        record_store: RecordStore,
        vector_store: VectorStore,
        config: Config,
    ):
        """
        Initialize Chat Engine.

        Args:
            llm: Streaming chat runtime
            embedder: Embedding client
            record_store: Relational persistence
            vector_store: Chunk vector backend (shares the record store)
            config: Configuration object
        """
        self.llm = llm
        self.embedder = embedder
        self.record_store = record_store
        self.vector_store = vector_store
        self.config = config

        self.memory_store = MemoryStore(record_store)
        self.queue = IngestionQueue()
        self.ingestion = IngestionService(
            record_store=record_store,
            vector_store=vector_store,
            embedder=embedder,
            rag_config=config.rag,
            queue=self.queue,
        )
        self.retrieval = RetrievalService(
            embedder=embedder,
            vector_store=vector_store,
            record_store=record_store,
            rag_config=config.rag,
            grounding_config=config.grounding,
        )
        self.chat = ChatService(
            record_store=record_store,
            memory_store=self.memory_store,
            retrieval=self.retrieval,
            llm=llm,
            config=config,
        )
        self.watcher = FolderWatcher(
            ingestion=self.ingestion,
            record_store=record_store,
            rag_config=config.rag,
        )
        self._started = False

    @classmethod
    async def from_config(cls, config: Config) -> "ChatEngine":
        """
        Build an engine from configuration using the factories.

        The embedding dimension is only measured when the backend needs it.
        """
        logger.info("Creating embedder")
        embedder = EmbedderFactory.create(config.embedder)

        logger.info("Creating record store")
        record_store = SQLiteRecordStore(config.storage.db_path)

        vector_size = None
        if config.storage.vector_backend == "qdrant":
            vector_size = await EmbedderFactory.get_dimension(embedder, config.embedder)
            logger.info(f"Embedding dimension: {vector_size}")

        logger.info("Creating vector store")
        vector_store = VectorStoreFactory.create(config, record_store, vector_size)

        llm = OllamaLLM(host=config.llm.base_url, timeout=config.llm.timeout)

        return cls(
            llm=llm,
            embedder=embedder,
            record_store=record_store,
            vector_store=vector_store,
            config=config,
        )

    async def initialize(self) -> None:
        """Open stores, start the ingestion worker and the folder watcher."""
        logger.info("Initializing Chat Engine")

        await self.vector_store.initialize()
        logger.info("Stores initialized")

        self.queue.start()
        self.watcher.start()
        self._started = True

        logger.info("Chat Engine ready")

    async def health(self) -> dict[str, Any]:
        """Embedding availability and knowledge base counters."""
        embedding = await self.retrieval.check_health()
        documents = await self.record_store.list_documents()
        by_status = {status.value: 0 for status in DocumentStatus}
        for document in documents:
            by_status[document.status.value] += 1

        return {
            "embedding": embedding.model_dump(),
            "documents": by_status,
            "vectors": await self.vector_store.count(),
            "queue_pending": self.queue.pending,
        }

    # ═══════════════════════════════════════════════════════════
    # RUNTIME SETTINGS
    # ═══════════════════════════════════════════════════════════

    def get_settings(self) -> dict[str, Any]:
        """Current values of the settings that can change at runtime."""
        return {
            name: getattr(getattr(self.config, section), attr)
            for name, (section, attr) in RUNTIME_SETTINGS.items()
        }

    async def update_settings(self, changes: dict[str, Any]) -> dict[str, Any]:
        """
        Apply runtime setting changes to the live configuration.

        Services hold references to the same config sections, so the next
        ingestion, retrieval or turn sees the new values. The folder watcher
        is rebuilt when the watched folders or supported types change.

        Args:
            changes: Subset of ``RUNTIME_SETTINGS`` names with new values

        Returns:
            All runtime settings after the update

        Raises:
            ValidationError: If a name is unknown or the result is invalid
        """
        unknown = set(changes) - set(RUNTIME_SETTINGS)
        if unknown:
            raise ValidationError(f"unknown settings: {', '.join(sorted(unknown))}")

        by_section: dict[str, dict[str, Any]] = {section: {} for section in SECTION_MODELS}
        for name, value in changes.items():
            section, attr = RUNTIME_SETTINGS[name]
            by_section[section][attr] = value

        # Validate every section before touching the live objects
        validated = {}
        for section, updates in by_section.items():
            if not updates:
                continue
            live = getattr(self.config, section)
            try:
                validated[section] = SECTION_MODELS[section].model_validate(
                    {**live.model_dump(), **updates}
                )
            except PydanticValidationError as e:
                raise ValidationError(f"invalid {section} settings: {e}") from e

        watcher_changed = False
        for section, candidate in validated.items():
            live = getattr(self.config, section)
            for attr in by_section[section]:
                new_value = getattr(candidate, attr)
                if section == "rag" and attr in WATCHER_FIELDS:
                    watcher_changed = watcher_changed or new_value != getattr(live, attr)
                setattr(live, attr, new_value)

        logger.info("Runtime settings updated", extra={"settings": sorted(changes)})

        if watcher_changed:
            await self.restart_watcher()

        return self.get_settings()

    async def restart_watcher(self) -> None:
        """Replace the folder watcher with one built from the current settings."""
        await self.watcher.stop()
        self.watcher = FolderWatcher(
            ingestion=self.ingestion,
            record_store=self.record_store,
            rag_config=self.config.rag,
        )
        if self._started:
            self.watcher.start()
        logger.info(
            "Folder watcher rebuilt",
            extra={"folders": self.watcher.folders, "running": self._started},
        )

    async def close(self) -> None:
        """Stop workers and close all connections."""
        logger.info("Shutting down Chat Engine")

        self._started = False
        await self.watcher.stop()
        await self.queue.stop()

        await self.vector_store.close()
        await self.record_store.close()

        await self.llm.close()
        await self.embedder.close()

        logger.info("Chat Engine shutdown complete")
