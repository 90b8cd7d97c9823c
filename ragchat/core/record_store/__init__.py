"""Relational persistence for documents, chunks, memory and conversations."""

from ragchat.core.record_store.base import RecordStore
from ragchat.core.record_store.sqlite_store import SQLiteRecordStore

__all__ = ["RecordStore", "SQLiteRecordStore"]
