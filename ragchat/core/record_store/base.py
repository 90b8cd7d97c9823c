"""
Base interface for relational record storage.

Documents, chunks, memory items, conversations, messages and citations all
live in one transactional store; vector backends layer on top of it.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime

from ragchat.models.conversation import Citation, Conversation, Message
from ragchat.models.document import Chunk, Document, DocumentStatus
from ragchat.models.memory import MemoryFilter, MemoryItem, MemoryStatus


class RecordStore(ABC):
    """Abstract base class for record storage implementations."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the store (create tables/schema)."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager["RecordStore"]:
        """
        Open a multi-row transaction.

        Writes issued by the same task inside the block commit together on
        exit, or roll back together if the block raises.

        Usage:
            async with store.transaction():
                await store.update_memory(old)
                await store.add_memory(new)
        """
        pass

    # ═══════════════════════════════════════════════════════════
    # DOCUMENTS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def add_document(self, document: Document) -> None:
        """Insert a document record."""
        pass

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Get document by ID, or None."""
        pass

    @abstractmethod
    async def find_document_by_hash(self, content_hash: str) -> Document | None:
        """
        Find a document with the given content hash.

        Indexed documents are preferred when several share the hash.
        """
        pass

    @abstractmethod
    async def find_document_by_filepath(self, filepath: str) -> Document | None:
        """Find the most recent document ingested from a file path."""
        pass

    @abstractmethod
    async def list_documents(self, status: DocumentStatus | None = None) -> list[Document]:
        """List documents, newest first."""
        pass

    @abstractmethod
    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error: str | None = None,
        chunk_count: int | None = None,
    ) -> bool:
        """
        Move a document to a new lifecycle status.

        Returns:
            False if the document no longer exists
        """
        pass

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and (by cascade) its chunks."""
        pass

    # ═══════════════════════════════════════════════════════════
    # CHUNKS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def add_chunks(self, chunks: list[Chunk]) -> None:
        """Insert chunk rows (embedding stored only if the backend keeps it here)."""
        pass

    @abstractmethod
    async def get_chunks_with_filenames(
        self, chunk_ids: list[str]
    ) -> dict[str, tuple[Chunk, str]]:
        """
        Hydrate chunks with their owning document's filename.

        Returns:
            Mapping chunk_id -> (chunk, filename); unknown IDs are absent
        """
        pass

    @abstractmethod
    async def list_chunks(self, document_id: str) -> list[Chunk]:
        """List a document's chunks in index order."""
        pass

    # ═══════════════════════════════════════════════════════════
    # MEMORY ITEMS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def add_memory(self, item: MemoryItem) -> None:
        """Insert a memory item."""
        pass

    @abstractmethod
    async def get_memory(self, memory_id: str) -> MemoryItem | None:
        """Get memory item by ID, or None."""
        pass

    @abstractmethod
    async def update_memory(self, item: MemoryItem) -> None:
        """Overwrite a memory item."""
        pass

    @abstractmethod
    async def query_memories(
        self, filters: MemoryFilter, limit: int | None = None
    ) -> list[MemoryItem]:
        """Query memory items, newest first."""
        pass

    @abstractmethod
    async def set_memory_status(
        self, memory_ids: list[str], status: MemoryStatus, when: datetime
    ) -> int:
        """Set status on several items. Returns number of rows changed."""
        pass

    @abstractmethod
    async def archive_memories_with_status(self, status: MemoryStatus, when: datetime) -> int:
        """Archive every item currently in ``status``. Returns count."""
        pass

    @abstractmethod
    async def mark_memories_used(self, memory_ids: list[str], when: datetime) -> None:
        """Increment use_count and stamp last_used_at."""
        pass

    # ═══════════════════════════════════════════════════════════
    # CONVERSATIONS, MESSAGES, CITATIONS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def add_conversation(self, conversation: Conversation) -> None:
        pass

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        pass

    @abstractmethod
    async def update_conversation(self, conversation: Conversation) -> None:
        pass

    @abstractmethod
    async def list_conversations(self) -> list[Conversation]:
        """List conversations, most recently updated first."""
        pass

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation with its messages (memory items are untouched)."""
        pass

    @abstractmethod
    async def add_message(self, message: Message) -> None:
        pass

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> list[Message]:
        """List a conversation's messages in creation order."""
        pass

    @abstractmethod
    async def add_citations(self, citations: list[Citation]) -> None:
        pass

    @abstractmethod
    async def list_citations(self, message_id: str) -> list[Citation]:
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connections."""
        pass
