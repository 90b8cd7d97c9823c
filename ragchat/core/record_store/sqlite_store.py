"""
SQLite record store implementation.

Clean, efficient implementation using aiosqlite.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import numpy as np

from ragchat.core.record_store.base import RecordStore
from ragchat.models.conversation import Citation, Conversation, Message
from ragchat.models.document import Chunk, Document, DocumentStatus, SourceKind
from ragchat.models.memory import (
    MemoryFilter,
    MemoryItem,
    MemoryScope,
    MemoryStatus,
    MemoryType,
)
from ragchat.models.retrieval import GroundingConfidence
from ragchat.utils.exceptions import RecordStoreError
from ragchat.utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        filename TEXT NOT NULL,
        filepath TEXT,
        source_url TEXT,
        source_kind TEXT NOT NULL,
        content_hash TEXT NOT NULL,
        file_size INTEGER,
        status TEXT NOT NULL,
        error TEXT,
        chunk_count INTEGER DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chunks (
        id TEXT PRIMARY KEY,
        document_id TEXT NOT NULL,
        content TEXT NOT NULL,
        token_count INTEGER DEFAULT 0,
        chunk_index INTEGER NOT NULL,
        metadata TEXT DEFAULT '{}',
        embedding BLOB,
        created_at TEXT NOT NULL,
        FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memory_items (
        id TEXT PRIMARY KEY,
        type TEXT NOT NULL,
        scope TEXT NOT NULL,
        content TEXT NOT NULL,
        status TEXT NOT NULL,
        conversation_id TEXT,
        source_message_id TEXT,
        supersedes_memory_id TEXT,
        tags TEXT DEFAULT '[]',
        use_count INTEGER DEFAULT 0,
        last_used_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        model TEXT NOT NULL,
        system_prompt TEXT,
        rag_enabled INTEGER DEFAULT 1,
        memory_enabled INTEGER DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL,
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        model TEXT,
        grounding_confidence TEXT,
        grounding_reason TEXT,
        grounding_avg_similarity REAL,
        grounding_used_chunk_count INTEGER,
        used_memory_ids TEXT DEFAULT '[]',
        created_at TEXT NOT NULL,
        FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS citations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        message_id TEXT NOT NULL,
        document_id TEXT NOT NULL,
        filename TEXT NOT NULL,
        chunk_index INTEGER NOT NULL,
        score REAL NOT NULL,
        metadata TEXT DEFAULT '{}',
        FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_documents_hash ON documents(content_hash)",
    "CREATE INDEX IF NOT EXISTS idx_documents_filepath ON documents(filepath)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id)",
    "CREATE INDEX IF NOT EXISTS idx_memory_status ON memory_items(status)",
    "CREATE INDEX IF NOT EXISTS idx_memory_conversation ON memory_items(conversation_id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id)",
    "CREATE INDEX IF NOT EXISTS idx_citations_message ON citations(message_id)",
]


def encode_vector(vector: list[float]) -> bytes:
    """Pack a vector as little-endian float32 bytes."""
    return np.asarray(vector, dtype="<f4").tobytes()


def decode_vector(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype="<f4")


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteRecordStore(RecordStore):
    """
    SQLite-based record store.

    Features:
    - Single connection shared by all services
    - JSON columns for metadata, tags and used memory IDs
    - Foreign keys with cascade (documents -> chunks, messages -> citations)
    - Task-owned transactions for multi-row atomic work
    """

    def __init__(self, db_path: str = "data/ragchat.db"):
        """
        Initialize SQLite record store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._tx_owner: asyncio.Task | None = None

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def connect(self) -> None:
        """Establish connection to SQLite."""
        if self.connection is None:
            self.connection = await aiosqlite.connect(self.db_path)
            self.connection.row_factory = aiosqlite.Row
            await self.connection.execute("PRAGMA foreign_keys = ON")
            await self.connection.execute("PRAGMA journal_mode = WAL")
            await self.connection.commit()

    async def initialize(self) -> None:
        """Initialize database schema."""
        await self.connect()
        for statement in SCHEMA:
            await self.connection.execute(statement)
        await self.connection.commit()
        logger.info(f"Record store ready at {self.db_path}")

    def _in_own_transaction(self) -> bool:
        return self._tx_owner is not None and self._tx_owner is asyncio.current_task()

    @asynccontextmanager
    async def transaction(self):
        await self.connect()
        if self._in_own_transaction():
            # Nested block joins the outer transaction
            yield self
            return

        async with self._lock:
            self._tx_owner = asyncio.current_task()
            try:
                await self.connection.execute("BEGIN")
                yield self
                await self.connection.commit()
            except BaseException:
                await self.connection.rollback()
                raise
            finally:
                self._tx_owner = None

    async def _write(self, sql: str, params: Any = ()) -> aiosqlite.Cursor:
        """Execute a write, committing unless the calling task holds a transaction."""
        await self.connect()
        try:
            if self._in_own_transaction():
                return await self.connection.execute(sql, params)
            async with self._lock:
                cursor = await self.connection.execute(sql, params)
                await self.connection.commit()
                return cursor
        except aiosqlite.Error as e:
            raise RecordStoreError(f"Write failed: {e}", {"sql": sql.split()[0]}) from e

    async def _write_many(self, sql: str, rows: list[tuple]) -> None:
        await self.connect()
        try:
            if self._in_own_transaction():
                await self.connection.executemany(sql, rows)
                return
            async with self._lock:
                await self.connection.executemany(sql, rows)
                await self.connection.commit()
        except aiosqlite.Error as e:
            raise RecordStoreError(f"Batch write failed: {e}") from e

    async def _fetchall(self, sql: str, params: Any = ()) -> list[aiosqlite.Row]:
        await self.connect()
        cursor = await self.connection.execute(sql, params)
        return list(await cursor.fetchall())

    async def _fetchone(self, sql: str, params: Any = ()) -> aiosqlite.Row | None:
        await self.connect()
        cursor = await self.connection.execute(sql, params)
        return await cursor.fetchone()

    # ═══════════════════════════════════════════════════════════
    # DOCUMENTS
    # ═══════════════════════════════════════════════════════════

    async def add_document(self, document: Document) -> None:
        await self._write(
            """
            INSERT INTO documents (
                id, filename, filepath, source_url, source_kind, content_hash,
                file_size, status, error, chunk_count, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                document.id,
                document.filename,
                document.filepath,
                document.source_url,
                document.source_kind.value,
                document.content_hash,
                document.file_size,
                document.status.value,
                document.error,
                document.chunk_count,
                document.created_at.isoformat(),
                document.updated_at.isoformat(),
            ),
        )

    async def get_document(self, document_id: str) -> Document | None:
        row = await self._fetchone("SELECT * FROM documents WHERE id = ?", (document_id,))
        return self._row_to_document(row) if row else None

    async def find_document_by_hash(self, content_hash: str) -> Document | None:
        row = await self._fetchone(
            """
            SELECT * FROM documents WHERE content_hash = ?
            ORDER BY CASE status WHEN 'indexed' THEN 0 ELSE 1 END, created_at DESC
            LIMIT 1
            """,
            (content_hash,),
        )
        return self._row_to_document(row) if row else None

    async def find_document_by_filepath(self, filepath: str) -> Document | None:
        row = await self._fetchone(
            "SELECT * FROM documents WHERE filepath = ? ORDER BY created_at DESC LIMIT 1",
            (filepath,),
        )
        return self._row_to_document(row) if row else None

    async def list_documents(self, status: DocumentStatus | None = None) -> list[Document]:
        query = "SELECT * FROM documents"
        params: list[Any] = []
        if status:
            query += " WHERE status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC"
        rows = await self._fetchall(query, params)
        return [self._row_to_document(row) for row in rows]

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error: str | None = None,
        chunk_count: int | None = None,
    ) -> bool:
        query = "UPDATE documents SET status = ?, error = ?, updated_at = ?"
        params: list[Any] = [status.value, error, datetime.now().isoformat()]
        if chunk_count is not None:
            query += ", chunk_count = ?"
            params.append(chunk_count)
        query += " WHERE id = ?"
        params.append(document_id)

        cursor = await self._write(query, params)
        return cursor.rowcount > 0

    async def delete_document(self, document_id: str) -> bool:
        cursor = await self._write("DELETE FROM documents WHERE id = ?", (document_id,))
        return cursor.rowcount > 0

    # ═══════════════════════════════════════════════════════════
    # CHUNKS
    # ═══════════════════════════════════════════════════════════

    async def add_chunks(self, chunks: list[Chunk]) -> None:
        rows = [
            (
                chunk.id,
                chunk.document_id,
                chunk.content,
                chunk.token_count,
                chunk.chunk_index,
                json.dumps(chunk.metadata),
                encode_vector(chunk.embedding) if chunk.embedding else None,
                chunk.created_at.isoformat(),
            )
            for chunk in chunks
        ]
        await self._write_many(
            """
            INSERT INTO chunks (
                id, document_id, content, token_count, chunk_index, metadata,
                embedding, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )

    async def get_chunks_with_filenames(
        self, chunk_ids: list[str]
    ) -> dict[str, tuple[Chunk, str]]:
        if not chunk_ids:
            return {}
        placeholders = ",".join("?" * len(chunk_ids))
        rows = await self._fetchall(
            f"""
            SELECT c.*, d.filename AS filename
            FROM chunks c JOIN documents d ON c.document_id = d.id
            WHERE c.id IN ({placeholders})
            """,
            chunk_ids,
        )
        return {row["id"]: (self._row_to_chunk(row), row["filename"]) for row in rows}

    async def list_chunks(self, document_id: str) -> list[Chunk]:
        rows = await self._fetchall(
            "SELECT * FROM chunks WHERE document_id = ? ORDER BY chunk_index",
            (document_id,),
        )
        return [self._row_to_chunk(row) for row in rows]

    async def load_embeddings(self) -> tuple[list[str], np.ndarray | None]:
        """
        Load every stored chunk vector.

        Returns:
            (chunk_ids, matrix) with one row per chunk, or ([], None) when empty
        """
        rows = await self._fetchall("SELECT id, embedding FROM chunks WHERE embedding IS NOT NULL")
        if not rows:
            return [], None
        ids = [row["id"] for row in rows]
        matrix = np.vstack([decode_vector(row["embedding"]) for row in rows])
        return ids, matrix

    async def count_embeddings(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) FROM chunks WHERE embedding IS NOT NULL")
        return row[0] if row else 0

    # ═══════════════════════════════════════════════════════════
    # MEMORY ITEMS
    # ═══════════════════════════════════════════════════════════

    async def add_memory(self, item: MemoryItem) -> None:
        await self._write(
            """
            INSERT INTO memory_items (
                id, type, scope, content, status, conversation_id, source_message_id,
                supersedes_memory_id, tags, use_count, last_used_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            self._memory_params(item),
        )

    async def get_memory(self, memory_id: str) -> MemoryItem | None:
        row = await self._fetchone("SELECT * FROM memory_items WHERE id = ?", (memory_id,))
        return self._row_to_memory(row) if row else None

    async def update_memory(self, item: MemoryItem) -> None:
        await self._write(
            """
            INSERT OR REPLACE INTO memory_items (
                id, type, scope, content, status, conversation_id, source_message_id,
                supersedes_memory_id, tags, use_count, last_used_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            self._memory_params(item),
        )

    async def query_memories(
        self, filters: MemoryFilter, limit: int | None = None
    ) -> list[MemoryItem]:
        query = "SELECT * FROM memory_items WHERE 1=1"
        params: list[Any] = []

        if filters.scope:
            query += " AND scope = ?"
            params.append(filters.scope.value)
        if filters.type:
            query += " AND type = ?"
            params.append(filters.type.value)
        if filters.status:
            query += " AND status = ?"
            params.append(filters.status.value)
        if filters.conversation_id:
            query += " AND conversation_id = ?"
            params.append(filters.conversation_id)
        if filters.query:
            query += " AND content LIKE ?"
            params.append(f"%{filters.query}%")
        if filters.tag:
            query += " AND EXISTS (SELECT 1 FROM json_each(memory_items.tags) WHERE value = ?)"
            params.append(filters.tag.strip().lower())

        query += " ORDER BY updated_at DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        rows = await self._fetchall(query, params)
        return [self._row_to_memory(row) for row in rows]

    async def set_memory_status(
        self, memory_ids: list[str], status: MemoryStatus, when: datetime
    ) -> int:
        if not memory_ids:
            return 0
        placeholders = ",".join("?" * len(memory_ids))
        cursor = await self._write(
            f"UPDATE memory_items SET status = ?, updated_at = ? WHERE id IN ({placeholders})",
            [status.value, when.isoformat(), *memory_ids],
        )
        return cursor.rowcount

    async def archive_memories_with_status(self, status: MemoryStatus, when: datetime) -> int:
        cursor = await self._write(
            "UPDATE memory_items SET status = ?, updated_at = ? WHERE status = ?",
            (MemoryStatus.ARCHIVED.value, when.isoformat(), status.value),
        )
        return cursor.rowcount

    async def mark_memories_used(self, memory_ids: list[str], when: datetime) -> None:
        if not memory_ids:
            return
        placeholders = ",".join("?" * len(memory_ids))
        await self._write(
            f"""
            UPDATE memory_items SET use_count = use_count + 1, last_used_at = ?
            WHERE id IN ({placeholders})
            """,
            [when.isoformat(), *memory_ids],
        )

    # ═══════════════════════════════════════════════════════════
    # CONVERSATIONS, MESSAGES, CITATIONS
    # ═══════════════════════════════════════════════════════════

    async def add_conversation(self, conversation: Conversation) -> None:
        await self._write(
            """
            INSERT INTO conversations (
                id, title, model, system_prompt, rag_enabled, memory_enabled,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            self._conversation_params(conversation),
        )

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        row = await self._fetchone(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        )
        return self._row_to_conversation(row) if row else None

    async def update_conversation(self, conversation: Conversation) -> None:
        await self._write(
            """
            UPDATE conversations SET title = ?, model = ?, system_prompt = ?,
                rag_enabled = ?, memory_enabled = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                conversation.title,
                conversation.model,
                conversation.system_prompt,
                int(conversation.rag_enabled),
                int(conversation.memory_enabled),
                conversation.updated_at.isoformat(),
                conversation.id,
            ),
        )

    async def list_conversations(self) -> list[Conversation]:
        rows = await self._fetchall("SELECT * FROM conversations ORDER BY updated_at DESC")
        return [self._row_to_conversation(row) for row in rows]

    async def delete_conversation(self, conversation_id: str) -> bool:
        cursor = await self._write("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        return cursor.rowcount > 0

    async def add_message(self, message: Message) -> None:
        await self._write(
            """
            INSERT INTO messages (
                id, conversation_id, role, content, model, grounding_confidence,
                grounding_reason, grounding_avg_similarity, grounding_used_chunk_count,
                used_memory_ids, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.id,
                message.conversation_id,
                message.role,
                message.content,
                message.model,
                message.grounding_confidence.value if message.grounding_confidence else None,
                message.grounding_reason,
                message.grounding_avg_similarity,
                message.grounding_used_chunk_count,
                json.dumps(message.used_memory_ids),
                message.created_at.isoformat(),
            ),
        )

    async def list_messages(self, conversation_id: str) -> list[Message]:
        rows = await self._fetchall(
            "SELECT * FROM messages WHERE conversation_id = ? ORDER BY created_at, rowid",
            (conversation_id,),
        )
        return [self._row_to_message(row) for row in rows]

    async def add_citations(self, citations: list[Citation]) -> None:
        if not citations:
            return
        await self._write_many(
            """
            INSERT INTO citations (message_id, document_id, filename, chunk_index, score, metadata)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    c.message_id,
                    c.document_id,
                    c.filename,
                    c.chunk_index,
                    c.score,
                    json.dumps(c.metadata),
                )
                for c in citations
            ],
        )

    async def list_citations(self, message_id: str) -> list[Citation]:
        rows = await self._fetchall(
            "SELECT * FROM citations WHERE message_id = ? ORDER BY id", (message_id,)
        )
        return [
            Citation(
                message_id=row["message_id"],
                document_id=row["document_id"],
                filename=row["filename"],
                chunk_index=row["chunk_index"],
                score=row["score"],
                metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            )
            for row in rows
        ]

    async def close(self) -> None:
        """Close the connection."""
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    # ═══════════════════════════════════════════════════════════
    # HELPER METHODS
    # ═══════════════════════════════════════════════════════════

    @staticmethod
    def _memory_params(item: MemoryItem) -> tuple:
        return (
            item.id,
            item.type.value,
            item.scope.value,
            item.content,
            item.status.value,
            item.conversation_id,
            item.source_message_id,
            item.supersedes_memory_id,
            json.dumps(item.tags),
            item.use_count,
            _ts(item.last_used_at),
            item.created_at.isoformat(),
            item.updated_at.isoformat(),
        )

    @staticmethod
    def _conversation_params(conversation: Conversation) -> tuple:
        return (
            conversation.id,
            conversation.title,
            conversation.model,
            conversation.system_prompt,
            int(conversation.rag_enabled),
            int(conversation.memory_enabled),
            conversation.created_at.isoformat(),
            conversation.updated_at.isoformat(),
        )

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> Document:
        return Document(
            id=row["id"],
            filename=row["filename"],
            filepath=row["filepath"],
            source_url=row["source_url"],
            source_kind=SourceKind(row["source_kind"]),
            content_hash=row["content_hash"],
            file_size=row["file_size"],
            status=DocumentStatus(row["status"]),
            error=row["error"],
            chunk_count=row["chunk_count"] or 0,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_chunk(row: aiosqlite.Row) -> Chunk:
        return Chunk(
            id=row["id"],
            document_id=row["document_id"],
            content=row["content"],
            token_count=row["token_count"] or 0,
            chunk_index=row["chunk_index"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            embedding=decode_vector(row["embedding"]).tolist() if row["embedding"] else None,
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_memory(row: aiosqlite.Row) -> MemoryItem:
        return MemoryItem(
            id=row["id"],
            type=MemoryType(row["type"]),
            scope=MemoryScope(row["scope"]),
            content=row["content"],
            status=MemoryStatus(row["status"]),
            conversation_id=row["conversation_id"],
            source_message_id=row["source_message_id"],
            supersedes_memory_id=row["supersedes_memory_id"],
            tags=json.loads(row["tags"]) if row["tags"] else [],
            use_count=row["use_count"] or 0,
            last_used_at=_dt(row["last_used_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_conversation(row: aiosqlite.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            title=row["title"],
            model=row["model"],
            system_prompt=row["system_prompt"],
            rag_enabled=bool(row["rag_enabled"]),
            memory_enabled=bool(row["memory_enabled"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> Message:
        confidence = row["grounding_confidence"]
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            content=row["content"],
            model=row["model"],
            grounding_confidence=GroundingConfidence(confidence) if confidence else None,
            grounding_reason=row["grounding_reason"],
            grounding_avg_similarity=row["grounding_avg_similarity"],
            grounding_used_chunk_count=row["grounding_used_chunk_count"],
            used_memory_ids=json.loads(row["used_memory_ids"]) if row["used_memory_ids"] else [],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
