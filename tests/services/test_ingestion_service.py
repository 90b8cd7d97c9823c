"""
Tests for document ingestion.

Tests cover:
1. Inline ingestion of files and content
2. Content-hash dedup
3. Error states (model unavailable, empty content, unreadable file)
4. Queued submission, re-index and delete
"""

import hashlib

import pytest

from ragchat.models.document import DocumentStatus, IngestSource, SourceKind
from ragchat.services.ingestion import IngestionService, hash_file
from ragchat.utils.exceptions import ContentError, NotFoundError, ValidationError

GUIDE = "# Install\nRun the installer.\n\n## Configure\nEdit the config file.\n"


@pytest.fixture
def guide_file(tmp_path):
    path = tmp_path / "guide.md"
    path.write_text(GUIDE, encoding="utf-8")
    return path


@pytest.mark.unit
@pytest.mark.asyncio
class TestHashFile:
    """Tests for file hashing."""

    async def test_hash_and_size(self, guide_file):
        """Test digest matches content hashing and size is reported."""
        digest, size = await hash_file(str(guide_file))

        assert digest == hashlib.sha256(GUIDE.encode("utf-8")).hexdigest()
        assert size == len(GUIDE.encode("utf-8"))

    async def test_missing_file(self, tmp_path):
        """Test unreadable files raise ContentError."""
        with pytest.raises(ContentError, match="Cannot read"):
            await hash_file(str(tmp_path / "missing.md"))


@pytest.mark.unit
@pytest.mark.asyncio
class TestIngestDocument:
    """Tests for inline ingestion."""

    async def test_markdown_file_indexed(self, ingestion, record_store, guide_file, embedder):
        """Test a markdown file is chunked per heading and indexed."""
        result = await ingestion.ingest_document(IngestSource(filepath=str(guide_file)))

        document = await record_store.get_document(result.document_id)
        chunks = await record_store.list_chunks(result.document_id)

        assert result.duplicate is False
        assert document.status == DocumentStatus.INDEXED
        assert document.filename == "guide.md"
        assert document.source_kind == SourceKind.MARKDOWN
        assert document.chunk_count == 2
        assert [c.metadata["heading"] for c in chunks] == ["Install", "Configure"]
        assert all(c.embedding is not None for c in chunks)
        # One batch request for the whole document
        assert len(embedder.calls) == 1

    async def test_inline_content(self, ingestion, record_store):
        """Test inline content is indexed with its given filename."""
        result = await ingestion.ingest_document(
            IngestSource(content="# Notes\nRemember the milk.", filename="notes.md")
        )

        document = await record_store.get_document(result.document_id)
        assert document.status == DocumentStatus.INDEXED
        assert document.filename == "notes.md"
        assert document.filepath is None

    async def test_duplicate_content_is_idempotent(
        self, ingestion, record_store, guide_file, tmp_path, embedder
    ):
        """Test identical bytes map to the same document without re-embedding."""
        copy = tmp_path / "copy.md"
        copy.write_text(GUIDE, encoding="utf-8")

        first = await ingestion.ingest_document(IngestSource(filepath=str(guide_file)))
        second = await ingestion.ingest_document(IngestSource(filepath=str(copy)))

        assert second.duplicate is True
        assert second.document_id == first.document_id
        assert len(await record_store.list_documents()) == 1
        assert len(embedder.calls) == 1

    async def test_model_unavailable(self, ingestion, record_store, guide_file, embedder):
        """Test a missing embedding model marks the document as error."""
        embedder.healthy = False

        result = await ingestion.ingest_document(IngestSource(filepath=str(guide_file)))

        document = await record_store.get_document(result.document_id)
        assert document.status == DocumentStatus.ERROR
        assert "ollama pull fake-embed" in document.error
        assert embedder.calls == []

    async def test_errored_document_can_be_retried(
        self, ingestion, record_store, guide_file, embedder
    ):
        """Test a hash match on an errored document does not dedupe."""
        embedder.healthy = False
        failed = await ingestion.ingest_document(IngestSource(filepath=str(guide_file)))
        embedder.healthy = True

        retried = await ingestion.ingest_document(IngestSource(filepath=str(guide_file)))

        assert retried.duplicate is False
        assert retried.document_id != failed.document_id
        assert (await record_store.get_document(retried.document_id)).is_indexed()

    async def test_empty_content(self, ingestion, record_store, tmp_path):
        """Test files with no extractable text end in error."""
        empty = tmp_path / "empty.md"
        empty.write_text("\n\n   \n", encoding="utf-8")

        result = await ingestion.ingest_document(IngestSource(filepath=str(empty)))

        document = await record_store.get_document(result.document_id)
        assert document.status == DocumentStatus.ERROR
        assert document.error == "No content could be extracted from this source"

    async def test_unreadable_file(self, ingestion, tmp_path):
        """Test missing files fail before a record is created."""
        with pytest.raises(ContentError):
            await ingestion.ingest_document(IngestSource(filepath=str(tmp_path / "gone.md")))

    async def test_process_missing_document(self, ingestion):
        """Test processing a vanished document reports error without raising."""
        status = await ingestion.process_document("doc_missing", IngestSource(content="# x\ny"))
        assert status == DocumentStatus.ERROR


@pytest.mark.unit
@pytest.mark.asyncio
class TestQueuedIngestion:
    """Tests for submit, re-index and delete."""

    async def test_submit_queues_processing(self, ingestion, record_store, guide_file):
        """Test submit returns a processing record and the worker indexes it."""
        result = await ingestion.submit(IngestSource(filepath=str(guide_file)))

        assert result.queued is True
        assert (await record_store.get_document(result.document_id)).status == (
            DocumentStatus.PROCESSING
        )

        ingestion.queue.start()
        await ingestion.queue.join()

        assert (await record_store.get_document(result.document_id)).is_indexed()

    async def test_submit_duplicate_not_queued(self, ingestion, guide_file):
        """Test duplicates return the indexed document without queuing."""
        first = await ingestion.ingest_document(IngestSource(filepath=str(guide_file)))

        again = await ingestion.submit(IngestSource(filepath=str(guide_file)))

        assert again.duplicate is True
        assert again.queued is False
        assert again.document_id == first.document_id
        assert ingestion.queue.pending == 0

    async def test_reindex(self, ingestion, record_store, vector_store, guide_file):
        """Test re-index purges the old document and indexes the current file."""
        original = await ingestion.ingest_document(IngestSource(filepath=str(guide_file)))
        guide_file.write_text("# Only\nOne section now.\n", encoding="utf-8")

        result = await ingestion.reindex_document(original.document_id)
        ingestion.queue.start()
        await ingestion.queue.join()

        assert result.document_id != original.document_id
        assert await record_store.get_document(original.document_id) is None
        document = await record_store.get_document(result.document_id)
        assert document.is_indexed()
        assert document.chunk_count == 1
        assert await vector_store.count() == 1

    async def test_reindex_unchanged_file(self, ingestion, record_store, guide_file):
        """Test re-indexing an unchanged file is not swallowed by dedup."""
        original = await ingestion.ingest_document(IngestSource(filepath=str(guide_file)))

        result = await ingestion.reindex_document(original.document_id)

        assert result.duplicate is False
        assert result.queued is True

    async def test_reindex_missing(self, ingestion):
        """Test unknown documents raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await ingestion.reindex_document("doc_missing")

    async def test_reindex_inline_content(self, ingestion):
        """Test inline documents have no source to re-read."""
        result = await ingestion.ingest_document(IngestSource(content="# A\nbody text"))

        with pytest.raises(ValidationError, match="cannot be re-indexed"):
            await ingestion.reindex_document(result.document_id)

    async def test_delete(self, ingestion, record_store, vector_store, guide_file):
        """Test delete removes rows and vectors and reports missing documents."""
        result = await ingestion.ingest_document(IngestSource(filepath=str(guide_file)))

        assert await ingestion.delete_document(result.document_id) is True
        assert await ingestion.get_document(result.document_id) is None
        assert await vector_store.count() == 0
        assert await ingestion.delete_document(result.document_id) is False

    async def test_list_by_status(self, ingestion, guide_file, tmp_path, embedder):
        """Test listing filters by status."""
        await ingestion.ingest_document(IngestSource(filepath=str(guide_file)))
        embedder.healthy = False
        await ingestion.ingest_document(IngestSource(content="# Other\ntext here"))

        errored = await ingestion.list_documents(DocumentStatus.ERROR)

        assert len(errored) == 1
        assert len(await ingestion.list_documents()) == 2


@pytest.mark.unit
class TestResolveKind:
    """Tests for source kind resolution."""

    def test_resolve_kind(self):
        """Test explicit kind, URL and extension resolution."""
        assert IngestionService.resolve_kind(IngestSource(url="https://x.dev")) == SourceKind.URL
        assert IngestionService.resolve_kind(IngestSource(filepath="/a/b.py")) == SourceKind.CODE
        assert (
            IngestionService.resolve_kind(
                IngestSource(filepath="/a/b.py", source_kind=SourceKind.TEXT)
            )
            == SourceKind.TEXT
        )
        assert IngestionService.resolve_kind(IngestSource(content="x")) == SourceKind.CODE
