"""
Folder watcher: keeps the knowledge base in sync with watched directories.

Events:
- added / modified: re-ingest when the file's hash changed
- deleted: remove the document recorded for the path
"""

import asyncio
import os
from pathlib import Path

from watchfiles import Change, DefaultFilter, awatch

from ragchat.config import RAGConfig
from ragchat.core.record_store.base import RecordStore
from ragchat.models.document import IngestSource
from ragchat.services.ingestion import IngestionService, hash_file
from ragchat.utils.logger import get_logger

logger = get_logger(__name__)


class SupportedFileFilter(DefaultFilter):
    """watchfiles filter accepting only configured extensions (plus the default ignores)."""

    def __init__(self, supported_types: list[str]):
        super().__init__()
        self.extensions = tuple(f".{ext.lower().lstrip('.')}" for ext in supported_types)

    def accepts(self, path: str) -> bool:
        return path.lower().endswith(self.extensions)

    def __call__(self, change: Change, path: str) -> bool:
        return self.accepts(path) and super().__call__(change, path)


class FolderWatcher:
    """
    Watches ``rag.watched_folders`` and feeds changes into ingestion.

    Per-file failures are logged and never stop the watcher.
    """

    def __init__(
        self,
        ingestion: IngestionService,
        record_store: RecordStore,
        rag_config: RAGConfig,
    ):
        self.ingestion = ingestion
        self.record_store = record_store
        self.folders = [
            str(Path(folder).expanduser().resolve()) for folder in rag_config.watched_folders
        ]
        self.filter = SupportedFileFilter(rag_config.supported_types)
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    def _list_files(self) -> list[str]:
        files = []
        for folder in self.folders:
            root = Path(folder)
            if not root.is_dir():
                logger.warning(f"Watched folder does not exist: {folder}")
                continue
            for path in sorted(root.rglob("*")):
                if path.is_file() and self.filter.accepts(str(path)):
                    files.append(str(path))
        return files

    async def handle_file(self, filepath: str) -> bool:
        """
        Ingest a new or modified file.

        Returns:
            True if ingestion was queued, False if skipped or failed
        """
        try:
            content_hash, _ = await hash_file(filepath)
            existing = await self.record_store.find_document_by_filepath(filepath)

            if existing and existing.content_hash == content_hash and existing.is_indexed():
                logger.debug(f"Unchanged, skipping {filepath}")
                return False

            if existing:
                await self.ingestion.delete_document(existing.id)

            result = await self.ingestion.submit(
                IngestSource(filepath=filepath, filename=os.path.basename(filepath))
            )
            logger.info(f"Queued {filepath}", extra={"document_id": result.document_id})
            return result.queued

        except Exception as e:
            logger.error(f"Watcher failed to ingest {filepath}: {e}", extra={"error": str(e)})
            return False

    async def handle_delete(self, filepath: str) -> bool:
        """
        Remove the document recorded for a deleted file.

        Returns:
            True if a document was removed
        """
        try:
            existing = await self.record_store.find_document_by_filepath(filepath)
            if existing is None:
                return False
            await self.ingestion.delete_document(existing.id)
            logger.info(f"Removed {filepath}", extra={"document_id": existing.id})
            return True
        except Exception as e:
            logger.error(f"Watcher failed to remove {filepath}: {e}", extra={"error": str(e)})
            return False

    async def handle_changes(self, changes: set[tuple[Change, str]]) -> None:
        for change, path in sorted(changes, key=lambda c: c[1]):
            if change == Change.deleted:
                await self.handle_delete(path)
            else:
                await self.handle_file(path)

    async def initial_scan(self) -> int:
        """
        Submit every supported file already present in the watched folders.

        Returns:
            Number of files queued
        """
        files = await asyncio.to_thread(self._list_files)
        queued = 0
        for filepath in files:
            if await self.handle_file(filepath):
                queued += 1
        logger.info(f"Initial scan queued {queued} of {len(files)} files")
        return queued

    async def _run(self) -> None:
        await self.initial_scan()
        folders = [folder for folder in self.folders if os.path.isdir(folder)]
        if not folders:
            return
        async for changes in awatch(
            *folders, watch_filter=self.filter, stop_event=self._stop_event
        ):
            await self.handle_changes(changes)

    def start(self) -> None:
        """Scan and start watching in the background (no-op without folders)."""
        if not self.folders:
            logger.info("No watched folders configured, watcher disabled")
            return
        if self._task is not None and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Watching {len(self.folders)} folders", extra={"folders": self.folders})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Watcher stopped with error: {e}")
        self._task = None
        logger.info("Folder watcher stopped")
