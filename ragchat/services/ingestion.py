"""
Document ingestion: dedup, parse, chunk, embed, store.

All processing work goes through one FIFO queue with a single worker, so
at most one document is parsed and embedded at a time.

Document lifecycle:
    processing -> indexed   (success)
    processing -> error     (model unavailable, no content, parse/network failure)
"""

import asyncio
import hashlib
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from ragchat.config import RAGConfig
from ragchat.core.embeddings.base import Embedder
from ragchat.core.parsers import detect_source_kind, parse_source
from ragchat.core.record_store.base import RecordStore
from ragchat.core.vector_store.base import VectorStore
from ragchat.models.document import (
    Chunk,
    Document,
    DocumentStatus,
    IngestionResult,
    IngestSource,
    SourceKind,
    compute_content_hash,
)
from ragchat.utils.exceptions import (
    ContentError,
    EmbeddingModelUnavailableError,
    NotFoundError,
    ValidationError,
)
from ragchat.utils.id_generator import generate_chunk_id, generate_document_id, generate_job_id
from ragchat.utils.logger import document_context, get_logger

logger = get_logger(__name__)

HASH_BLOCK_SIZE = 1024 * 1024


def _hash_file_sync(filepath: str) -> tuple[str, int]:
    digest = hashlib.sha256()
    with open(filepath, "rb") as f:
        for block in iter(lambda: f.read(HASH_BLOCK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest(), os.path.getsize(filepath)


async def hash_file(filepath: str) -> tuple[str, int]:
    """
    SHA256 of a file's bytes, streamed off the event loop.

    Returns:
        (hex digest, size in bytes)

    Raises:
        ContentError: If the file cannot be read
    """
    try:
        return await asyncio.to_thread(_hash_file_sync, filepath)
    except OSError as e:
        raise ContentError(f"Cannot read {filepath}: {e}", {"filepath": filepath}) from e


# ═══════════════════════════════════════════════════════════
# QUEUE
# ═══════════════════════════════════════════════════════════


@dataclass
class IngestionJob:
    """A unit of queued work."""

    name: str
    run: Callable[[], Awaitable[object]]
    id: str = field(default_factory=generate_job_id)


class IngestionQueue:
    """
    FIFO job queue drained by a single worker task.

    A failing job is logged and the worker moves on to the next one.
    """

    def __init__(self):
        self._queue: asyncio.Queue[IngestionJob] = asyncio.Queue()
        self._worker_task: asyncio.Task | None = None
        self.current_job: IngestionJob | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def start(self) -> None:
        """Start the worker task (idempotent)."""
        if not self.running:
            self._worker_task = asyncio.create_task(self._worker())
            logger.info("Ingestion queue worker started")

    async def stop(self) -> None:
        """Cancel the worker; queued jobs that have not started are dropped."""
        if self._worker_task is None:
            return
        self._worker_task.cancel()
        try:
            await self._worker_task
        except asyncio.CancelledError:
            pass
        self._worker_task = None
        logger.info("Ingestion queue worker stopped")

    def enqueue(self, run: Callable[[], Awaitable[object]], name: str = "job") -> str:
        """
        Append a job to the queue.

        Args:
            run: Zero-argument coroutine function doing the work
            name: Label used in logs

        Returns:
            Job ID
        """
        job = IngestionJob(name=name, run=run)
        self._queue.put_nowait(job)
        logger.debug(f"Enqueued {job.name}", extra={"job_id": job.id, "pending": self.pending})
        return job.id

    async def join(self) -> None:
        """Wait until every enqueued job has finished."""
        await self._queue.join()

    async def _worker(self) -> None:
        while True:
            job = await self._queue.get()
            self.current_job = job
            try:
                await job.run()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Background job {job.name} failed: {e}",
                    extra={"job_id": job.id, "error": str(e)},
                )
            finally:
                self.current_job = None
                self._queue.task_done()


# ═══════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════


class IngestionService:
    """
    Ingestion orchestrator.

    Features:
    - Content-hash dedup against indexed documents
    - Format-aware parsing and chunking
    - Batch embedding with a model availability gate
    - Serialized background processing
    """

    def __init__(
        self,
        record_store: RecordStore,
        vector_store: VectorStore,
        embedder: Embedder,
        rag_config: RAGConfig,
        queue: IngestionQueue | None = None,
    ):
        """
        Initialize ingestion service.

        Args:
            record_store: Document and chunk rows
            vector_store: Chunk vectors
            embedder: Embedding client
            rag_config: Chunking and fetch settings
            queue: Job queue (a private one is created if omitted)
        """
        self.record_store = record_store
        self.vector_store = vector_store
        self.embedder = embedder
        self.rag_config = rag_config
        self.queue = queue or IngestionQueue()

    @staticmethod
    def resolve_kind(source: IngestSource) -> SourceKind:
        if source.source_kind:
            return source.source_kind
        if source.url:
            return SourceKind.URL
        return detect_source_kind(source.filepath or source.filename)

    async def create_document_record(self, source: IngestSource) -> IngestionResult:
        """
        Hash the source and create a ``processing`` document record.

        A hash matching an ``indexed`` document short-circuits and returns
        that document's ID; a match on a non-indexed document does not.

        Raises:
            ContentError: If a file source cannot be read
        """
        kind = self.resolve_kind(source)
        file_size = None

        if source.filepath:
            content_hash, file_size = await hash_file(source.filepath)
        elif source.url:
            content_hash = compute_content_hash(source.url)
        else:
            content_hash = compute_content_hash(source.content)

        existing = await self.record_store.find_document_by_hash(content_hash)
        if existing and existing.is_indexed():
            logger.info(
                f"Duplicate content, reusing {existing.id}",
                extra={"document_id": existing.id, "hash": content_hash},
            )
            return IngestionResult(document_id=existing.id, duplicate=True)

        filename = source.filename
        if not filename:
            filename = Path(source.filepath).name if source.filepath else (source.url or "unknown")

        document = Document(
            id=generate_document_id(),
            filename=filename,
            filepath=source.filepath,
            source_url=source.url,
            source_kind=kind,
            content_hash=content_hash,
            file_size=file_size,
            status=DocumentStatus.PROCESSING,
        )
        await self.record_store.add_document(document)

        logger.info(
            f"Created document {document.id} ({filename})",
            extra={"document_id": document.id, "kind": kind.value},
        )
        return IngestionResult(document_id=document.id)

    async def process_document(self, document_id: str, source: IngestSource) -> DocumentStatus:
        """
        Parse, chunk, embed and store a document.

        Never raises: any failure is recorded on the document as ``error``.

        Returns:
            Final document status
        """
        with document_context(document_id):
            return await self._process(document_id, source)

    async def _process(self, document_id: str, source: IngestSource) -> DocumentStatus:
        try:
            health = await self.embedder.check_model()
            if not health.ok:
                raise EmbeddingModelUnavailableError(health.error or "Embedding model unavailable")

            document = await self.record_store.get_document(document_id)
            if document is None:
                raise NotFoundError(f"Document not found: {document_id}")

            drafts = await parse_source(source, document.source_kind, self.rag_config)
            if not drafts:
                raise ContentError("No content could be extracted from this source")

            embeddings = await self.embedder.batch_embed([draft.content for draft in drafts])

            chunks = [
                Chunk(
                    id=generate_chunk_id(),
                    document_id=document_id,
                    content=draft.content,
                    token_count=draft.token_count,
                    chunk_index=draft.chunk_index,
                    metadata=draft.metadata,
                )
                for draft in drafts
            ]
            await self.vector_store.add_chunks(chunks, embeddings)
            await self.record_store.update_document_status(
                document_id, DocumentStatus.INDEXED, chunk_count=len(chunks)
            )

            logger.info(
                f"Indexed {document.filename}",
                extra={"document_id": document_id, "chunks": len(chunks)},
            )
            return DocumentStatus.INDEXED

        except Exception as e:
            logger.error(
                f"Ingestion failed for {document_id}: {e}",
                extra={"document_id": document_id, "error": str(e)},
            )
            try:
                found = await self.record_store.update_document_status(
                    document_id, DocumentStatus.ERROR, error=str(e)
                )
                if not found:
                    logger.warning(f"Document {document_id} was deleted while processing")
            except Exception as status_error:
                logger.warning(
                    f"Could not record error status for {document_id}: {status_error}"
                )
            return DocumentStatus.ERROR

    async def submit(self, source: IngestSource) -> IngestionResult:
        """
        Create the record now and queue processing.

        Duplicates of an indexed document are returned without queuing.
        """
        result = await self.create_document_record(source)
        if result.duplicate:
            return result

        self.queue.enqueue(
            lambda: self.process_document(result.document_id, source),
            name=f"ingest {result.document_id}",
        )
        return result.model_copy(update={"queued": True})

    async def ingest_document(self, source: IngestSource) -> IngestionResult:
        """Create and process inline (blocking)."""
        result = await self.create_document_record(source)
        if not result.duplicate:
            await self.process_document(result.document_id, source)
        return result

    async def reindex_document(self, document_id: str) -> IngestionResult:
        """
        Purge a document and re-ingest it from its original file or URL.

        The purge happens immediately; processing is queued. The re-ingested
        document gets a new ID.

        Raises:
            NotFoundError: If the document does not exist
            ValidationError: If it was ingested from inline content
        """
        document = await self.record_store.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document not found: {document_id}")
        if not document.filepath and not document.source_url:
            raise ValidationError("Inline documents cannot be re-indexed", {"document_id": document_id})

        await self.vector_store.delete_document(document_id)
        logger.info(f"Purged {document_id} for re-index", extra={"document_id": document_id})

        return await self.submit(
            IngestSource(
                filepath=document.filepath,
                url=document.source_url,
                filename=document.filename,
                source_kind=document.source_kind,
            )
        )

    async def delete_document(self, document_id: str) -> bool:
        """
        Delete a document with its chunks and vectors.

        Returns:
            False if the document did not exist
        """
        document = await self.record_store.get_document(document_id)
        if document is None:
            return False
        await self.vector_store.delete_document(document_id)
        logger.info(f"Deleted document {document_id}", extra={"document_id": document_id})
        return True

    async def get_document(self, document_id: str) -> Document | None:
        return await self.record_store.get_document(document_id)

    async def list_documents(self, status: DocumentStatus | None = None) -> list[Document]:
        return await self.record_store.list_documents(status)
