"""
Source kind detection and parser dispatch.
"""

from pathlib import Path

from ragchat.config import RAGConfig
from ragchat.core.chunker import Chunker
from ragchat.core.parsers.code import parse_code
from ragchat.core.parsers.markdown import parse_markdown, parse_markdown_content
from ragchat.core.parsers.pdf import parse_pdf
from ragchat.core.parsers.url import parse_url
from ragchat.models.document import ChunkDraft, IngestSource, SourceKind

MARKDOWN_EXTS = {".md", ".mdx", ".markdown"}
TEXT_EXTS = {".txt", ".text"}
PDF_EXTS = {".pdf"}


def detect_source_kind(filepath: str) -> SourceKind:
    """Classify a file by extension; anything unrecognised is treated as code."""
    ext = Path(filepath).suffix.lower()
    if ext in MARKDOWN_EXTS:
        return SourceKind.MARKDOWN
    if ext in TEXT_EXTS:
        return SourceKind.TEXT
    if ext in PDF_EXTS:
        return SourceKind.PDF
    return SourceKind.CODE


async def parse_source(
    source: IngestSource, kind: SourceKind, config: RAGConfig
) -> list[ChunkDraft]:
    """
    Parse and chunk a source with the strategy for its kind.

    URL sources are fetched and token-windowed, inline content is treated as
    markdown, files dispatch on kind.

    Args:
        source: Ingestion source reference
        kind: Resolved source kind
        config: Chunking and fetch settings

    Returns:
        Ordered chunk drafts (may be empty)
    """
    chunker = Chunker(chunk_size=config.chunk_size, chunk_overlap=config.chunk_overlap)

    if source.url:
        return await parse_url(
            source.url, chunker, timeout=config.url_timeout, user_agent=config.user_agent
        )

    if source.content:
        return parse_markdown_content(source.content, chunker)

    if kind == SourceKind.PDF:
        return await parse_pdf(source.filepath, chunker)
    if kind == SourceKind.CODE:
        return await parse_code(source.filepath, chunker)
    return await parse_markdown(source.filepath, chunker)
