"""Utility modules for ragchat."""

from ragchat.utils.exceptions import (
    ConfigurationError,
    ContentError,
    EmbeddingError,
    EmbeddingModelUnavailableError,
    IngestionError,
    LLMError,
    MemoryStoreError,
    NotFoundError,
    RagChatError,
    RecordStoreError,
    StoreError,
    ValidationError,
    VectorStoreError,
)
from ragchat.utils.id_generator import (
    generate_chunk_id,
    generate_conversation_id,
    generate_document_id,
    generate_job_id,
    generate_memory_id,
    generate_message_id,
)
from ragchat.utils.logger import document_context, get_logger, setup_logging, turn_context

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "turn_context",
    "document_context",
    # ID Generators
    "generate_document_id",
    "generate_chunk_id",
    "generate_memory_id",
    "generate_conversation_id",
    "generate_message_id",
    "generate_job_id",
    # Exceptions
    "RagChatError",
    "StoreError",
    "VectorStoreError",
    "RecordStoreError",
    "ValidationError",
    "NotFoundError",
    "ConfigurationError",
    "EmbeddingError",
    "EmbeddingModelUnavailableError",
    "LLMError",
    "IngestionError",
    "ContentError",
    "MemoryStoreError",
]
