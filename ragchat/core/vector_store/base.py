"""
Base interface for vector storage.

A vector store persists chunk rows together with their embeddings and
answers cosine nearest-neighbour queries over them.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from ragchat.models.document import Chunk


class VectorMatch(BaseModel):
    """Nearest-neighbour hit: chunk ID and cosine distance (0 = identical)."""

    chunk_id: str
    distance: float

    @property
    def similarity(self) -> float:
        return 1.0 - self.distance


class VectorStore(ABC):
    """Abstract base class for vector storage implementations."""

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the vector store (create collections/indices).

        Raises:
            VectorStoreError: If initialization fails
        """
        pass

    @abstractmethod
    async def add_chunks(self, chunks: list[Chunk], embeddings: list[list[float]]) -> None:
        """
        Persist chunk rows and their vectors.

        Args:
            chunks: Chunks of one document
            embeddings: One vector per chunk, same order

        Raises:
            ValidationError: If chunk and vector counts differ
            VectorStoreError: If the write fails
        """
        pass

    @abstractmethod
    async def search(
        self, vector: list[float], limit: int = 5, threshold: float = 0.0
    ) -> list[VectorMatch]:
        """
        Cosine nearest-neighbour search.

        Args:
            vector: Query embedding
            limit: Maximum matches (top-K)
            threshold: Similarity floor; matches need ``distance <= 1 - threshold``

        Returns:
            Matches ordered by ascending distance
        """
        pass

    @abstractmethod
    async def delete_document(self, document_id: str) -> None:
        """
        Remove a document's vectors, chunk rows and document row.

        Args:
            document_id: Document identifier
        """
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored vectors."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        pass
