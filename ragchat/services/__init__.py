"""
Services for ragchat.

High-level business logic services:
- ChatEngine: Wires stores, clients and services together
- ChatService: Conversations and streamed chat turns
- IngestionService / IngestionQueue: Serialized document indexing
- FolderWatcher: Keeps watched folders in sync with the knowledge base
- RetrievalService: Knowledge base lookup and grounding classification
"""

from ragchat.services.chat import ChatService
from ragchat.services.engine import ChatEngine
from ragchat.services.ingestion import IngestionQueue, IngestionService
from ragchat.services.retrieval import RetrievalService
from ragchat.services.watcher import FolderWatcher

__all__ = [
    "ChatEngine",
    "ChatService",
    "IngestionService",
    "IngestionQueue",
    "FolderWatcher",
    "RetrievalService",
]
