"""
SQLite vector store.

Vectors live in the ``chunks`` table of the record store's database, so
chunk insertion and document deletion are single transactions. Search is an
exact cosine scan with numpy, which is fine for a personal knowledge base.
"""

import numpy as np

from ragchat.core.record_store.sqlite_store import SQLiteRecordStore
from ragchat.core.vector_store.base import VectorMatch, VectorStore
from ragchat.models.document import Chunk
from ragchat.utils.exceptions import ValidationError, VectorStoreError
from ragchat.utils.logger import get_logger

logger = get_logger(__name__)


def cosine_distances(matrix: np.ndarray, vector: np.ndarray) -> np.ndarray:
    """Cosine distance of each row of ``matrix`` to ``vector`` (zero vectors score 1.0)."""
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(vector)
    dots = matrix @ vector
    with np.errstate(divide="ignore", invalid="ignore"):
        similarities = np.where(norms > 0, dots / norms, 0.0)
    return 1.0 - similarities


class SQLiteVectorStore(VectorStore):
    """Exact-search vector store sharing the record store's SQLite connection."""

    def __init__(self, record_store: SQLiteRecordStore):
        self.record_store = record_store

    async def initialize(self) -> None:
        await self.record_store.initialize()

    async def add_chunks(self, chunks: list[Chunk], embeddings: list[list[float]]) -> None:
        if len(chunks) != len(embeddings):
            raise ValidationError(
                "Chunk and embedding counts differ",
                {"chunks": len(chunks), "embeddings": len(embeddings)},
            )

        rows = [
            chunk.model_copy(update={"embedding": list(vector)})
            for chunk, vector in zip(chunks, embeddings)
        ]
        try:
            async with self.record_store.transaction():
                await self.record_store.add_chunks(rows)
        except Exception as e:
            logger.error(
                f"Failed to store chunks: {e}",
                extra={"count": len(rows), "error": str(e)},
            )
            raise VectorStoreError(f"Failed to store chunks: {e}") from e

    async def search(
        self, vector: list[float], limit: int = 5, threshold: float = 0.0
    ) -> list[VectorMatch]:
        if limit <= 0:
            return []

        chunk_ids, matrix = await self.record_store.load_embeddings()
        if matrix is None:
            return []

        query = np.asarray(vector, dtype=np.float32)
        if matrix.shape[1] != query.shape[0]:
            raise VectorStoreError(
                f"Query dimension {query.shape[0]} does not match stored dimension {matrix.shape[1]}"
            )

        distances = cosine_distances(matrix, query)
        max_distance = 1.0 - threshold

        # Stable sort keeps insertion order among equal distances
        order = np.argsort(distances, kind="stable")[:limit]
        return [
            VectorMatch(chunk_id=chunk_ids[i], distance=float(distances[i]))
            for i in order
            if distances[i] <= max_distance
        ]

    async def delete_document(self, document_id: str) -> None:
        # Chunks go with the document row through ON DELETE CASCADE
        async with self.record_store.transaction():
            await self.record_store.delete_document(document_id)

    async def count(self) -> int:
        return await self.record_store.count_embeddings()

    async def close(self) -> None:
        """Connection is owned by the record store."""
        pass
