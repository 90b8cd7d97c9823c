"""
Factory for creating vector store backends.
"""

from urllib.parse import urlparse

from ragchat.config import Config
from ragchat.core.record_store.sqlite_store import SQLiteRecordStore
from ragchat.core.vector_store.base import VectorStore
from ragchat.core.vector_store.qdrant import QdrantStore
from ragchat.core.vector_store.sqlite import SQLiteVectorStore
from ragchat.utils.exceptions import ConfigurationError


class VectorStoreFactory:
    """Factory for creating vector store backends from configuration."""

    @staticmethod
    def create(
        config: Config, record_store: SQLiteRecordStore, vector_size: int | None = None
    ) -> VectorStore:
        """
        Create vector store from configuration.

        Args:
            config: Application configuration (storage and qdrant sections)
            record_store: Record store the backend persists chunk rows in
            vector_size: Embedding dimension, required for Qdrant

        Returns:
            Vector store instance

        Raises:
            ConfigurationError: If the backend is unknown or misconfigured
        """
        backend = config.storage.vector_backend
        if backend == "sqlite":
            return SQLiteVectorStore(record_store)

        if backend == "qdrant":
            if not vector_size:
                raise ConfigurationError("Qdrant backend needs the embedding dimension")
            parsed = urlparse(config.qdrant.url)
            return QdrantStore(
                record_store=record_store,
                host=parsed.hostname or "localhost",
                port=parsed.port or 6333,
                collection_name=config.qdrant.collection_name,
                vector_size=vector_size,
                use_grpc=config.qdrant.use_grpc,
                use_quantization=config.qdrant.use_quantization,
                hnsw_m=config.qdrant.hnsw_m,
                hnsw_ef_construct=config.qdrant.hnsw_ef_construct,
                on_disk=config.qdrant.on_disk,
                batch_size=config.qdrant.batch_size,
                timeout=config.qdrant.timeout,
            )

        raise ConfigurationError(f"Unsupported vector backend: {backend}")
