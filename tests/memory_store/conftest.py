"""
Shared test fixtures for memory store tests.
"""

from collections.abc import AsyncGenerator

import pytest

from ragchat.core.memory_store import MemoryStore
from ragchat.core.record_store.sqlite_store import SQLiteRecordStore


@pytest.fixture
async def record_store(tmp_path) -> AsyncGenerator:
    """Initialized SQLite record store backed by a temp file."""
    store = SQLiteRecordStore(db_path=str(tmp_path / "memory.db"))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def memory_store(record_store):
    """MemoryStore facade over the temp record store."""
    return MemoryStore(record_store)
