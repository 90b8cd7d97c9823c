"""
Custom exception hierarchy for ragchat.

Provides structured error types for ingestion, retrieval, memory and chat.
All exceptions inherit from RagChatError for easy catching.
"""


class RagChatError(Exception):
    """
    Base exception for all ragchat errors.
    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, context: dict | None = None):
        """
        Initialize ragchat error.
        Args:
            message: Error message
            context: Optional context dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class StoreError(RagChatError):
    """
    Base exception for store operations.
    Used for errors related to data storage operations.
    """

    pass


class VectorStoreError(StoreError):
    """
    Vector store operation errors.
    Raised when vector database operations fail.
    """

    pass


class RecordStoreError(StoreError):
    """
    Record store operation errors.
    Raised when relational persistence (documents, memory, conversations) fails.
    """

    pass


class ValidationError(RagChatError):
    """
    Validation errors.
    Raised when input validation fails or data is invalid.
    """

    pass


class NotFoundError(RagChatError):
    """
    Resource not found errors.
    Raised when a requested resource (document, memory item, conversation) doesn't exist.
    """

    pass


class ConfigurationError(RagChatError):
    """
    Configuration errors.
    Raised when configuration is invalid or missing required values.
    """

    pass


class EmbeddingError(RagChatError):
    """
    Embedding generation errors.
    Raised when the embedding backend fails, times out or returns garbage.
    """

    pass


class EmbeddingModelUnavailableError(EmbeddingError):
    """
    Raised when the embedding backend is unreachable or the model is not installed.
    """

    pass


class LLMError(RagChatError):
    """
    LLM operation errors.
    Raised when the chat runtime fails (HTTP errors, timeouts, broken streams).
    """

    pass


class IngestionError(RagChatError):
    """
    Document ingestion errors.
    Raised when a document cannot be parsed, chunked or indexed.
    """

    pass


class ContentError(IngestionError):
    """
    Content errors.
    Raised when a source has no extractable text or cannot be fetched.
    """

    pass


class MemoryStoreError(RagChatError):
    """
    Memory-specific errors.
    Raised for memory item operation failures.
    """

    pass
