"""Curated memory item storage."""

from ragchat.core.memory_store.memory_store import AUTO_CAPTURE_TAG, MemoryStore

__all__ = ["AUTO_CAPTURE_TAG", "MemoryStore"]
