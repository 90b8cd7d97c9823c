"""
Shared test fixtures for factory tests.
"""

import pytest

from ragchat.core.record_store.sqlite_store import SQLiteRecordStore


@pytest.fixture
def record_store(tmp_path):
    """Create an unconnected record store in a temp directory."""
    return SQLiteRecordStore(db_path=str(tmp_path / "factory.db"))
