"""
Shared test fixtures for storage tests.
"""

from collections.abc import AsyncGenerator

import pytest

from ragchat.core.record_store.sqlite_store import SQLiteRecordStore


@pytest.fixture
async def record_store(tmp_path) -> AsyncGenerator:
    """Initialized SQLite record store backed by a temp file."""
    store = SQLiteRecordStore(db_path=str(tmp_path / "test.db"))
    await store.initialize()
    yield store
    await store.close()
