"""Source code parsing."""

import asyncio
from pathlib import Path

from ragchat.core.chunker import Chunker
from ragchat.models.document import ChunkDraft

EXTENSION_TO_LANGUAGE: dict[str, str] = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".py": "python",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".cpp": "cpp",
    ".c": "c",
    ".html": "html",
    ".css": "css",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
}


def detect_language(filepath: str) -> str:
    """Map a file extension to a language name, "text" when unknown."""
    return EXTENSION_TO_LANGUAGE.get(Path(filepath).suffix, "text")


async def parse_code(filepath: str, chunker: Chunker) -> list[ChunkDraft]:
    # Undecodable bytes become U+FFFD so one bad byte does not fail the whole file
    content = await asyncio.to_thread(
        Path(filepath).read_text, encoding="utf-8", errors="replace"
    )
    return chunker.chunk_code(content, detect_language(filepath))
