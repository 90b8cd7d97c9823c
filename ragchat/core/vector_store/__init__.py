"""
Vector storage for chunk embeddings.

Backends:
- SQLite (default, exact cosine search beside the chunk rows)
- Qdrant
"""

from ragchat.core.vector_store.base import VectorMatch, VectorStore
from ragchat.core.vector_store.factory import VectorStoreFactory
from ragchat.core.vector_store.qdrant import QdrantStore
from ragchat.core.vector_store.sqlite import SQLiteVectorStore

__all__ = [
    "VectorMatch",
    "VectorStore",
    "VectorStoreFactory",
    "QdrantStore",
    "SQLiteVectorStore",
]
