"""Markdown and plain text parsing."""

import asyncio
from pathlib import Path

from ragchat.core.chunker import Chunker
from ragchat.models.document import ChunkDraft


async def parse_markdown(filepath: str, chunker: Chunker) -> list[ChunkDraft]:
    # Undecodable bytes become U+FFFD so one bad byte does not fail the whole file
    content = await asyncio.to_thread(
        Path(filepath).read_text, encoding="utf-8", errors="replace"
    )
    return chunker.chunk_markdown(content)


def parse_markdown_content(content: str, chunker: Chunker) -> list[ChunkDraft]:
    return chunker.chunk_markdown(content)
