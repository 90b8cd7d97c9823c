"""
Format-aware text chunking.

Three strategies:
- Token window (plain text, PDF, web pages): word windows with overlap
- Heading-aware (markdown): one chunk per section, oversized sections windowed
- Block-aware (code): split at top-level declarations, oversized blocks windowed

Token counts are estimated as words / 0.75. Chunking is deterministic for a
given input and configuration.
"""

import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ragchat.models.document import ChunkDraft

WORDS_PER_TOKEN = 0.75

HEADING_PATTERN = re.compile(r"^#{1,6}\s")
HEADING_PREFIX = re.compile(r"^#+\s*")
BLOCK_STARTER = re.compile(
    r"^(?:export\s+)?(?:function|class|interface|type|const|let|var|def|fn|pub|impl"
    r"|struct|enum|async\s+function|module|package)\s"
)


def estimate_tokens(text: str) -> int:
    """Rough token count: ~0.75 words per token."""
    return math.ceil(len(text.split()) / WORDS_PER_TOKEN)


@dataclass
class _Section:
    content: str
    heading: str = ""
    start_line: int = 0
    end_line: int = 0


class Chunker:
    """
    Splits raw text into retrieval-sized chunks.

    Usage:
        chunker = Chunker(chunk_size=500, chunk_overlap=50)
        drafts = chunker.chunk_markdown(text)
    """

    def __init__(self, chunk_size: int = 500, chunk_overlap: int = 50):
        """
        Initialize chunker.

        Args:
            chunk_size: Target chunk size in estimated tokens
            chunk_overlap: Overlap between consecutive windows in estimated tokens
        """
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    @property
    def words_per_chunk(self) -> int:
        return max(1, math.floor(self.chunk_size * WORDS_PER_TOKEN))

    @property
    def overlap_words(self) -> int:
        # The window must always advance by at least one word
        overlap = max(0, math.floor(self.chunk_overlap * WORDS_PER_TOKEN))
        return min(overlap, self.words_per_chunk - 1)

    def chunk_text(self, content: str) -> list[ChunkDraft]:
        """
        Split text into overlapping word windows.

        The last window absorbs the remainder; the loop ends once a window
        reaches the final word.

        Args:
            content: Raw text

        Returns:
            Ordered chunk drafts
        """
        words = content.split()
        chunks: list[ChunkDraft] = []

        start = 0
        index = 0
        while start < len(words):
            end = min(start + self.words_per_chunk, len(words))
            chunk_content = " ".join(words[start:end])
            chunks.append(
                ChunkDraft(
                    content=chunk_content,
                    token_count=estimate_tokens(chunk_content),
                    chunk_index=index,
                )
            )
            if end == len(words):
                break
            start = end - self.overlap_words
            index += 1

        return chunks

    def chunk_markdown(self, content: str) -> list[ChunkDraft]:
        """
        Split markdown into heading sections, windowing oversized ones.

        Each section keeps its heading line; the owning heading text is
        recorded in metadata (empty for text before the first heading).

        Args:
            content: Markdown source

        Returns:
            Ordered chunk drafts
        """
        sections: list[_Section] = []
        current_heading = ""
        current_lines: list[str] = []

        for line in content.split("\n"):
            if HEADING_PATTERN.match(line):
                if current_lines:
                    sections.append(_Section("\n".join(current_lines), current_heading))
                current_heading = HEADING_PREFIX.sub("", line).strip()
                current_lines = [line]
            else:
                current_lines.append(line)
        if current_lines:
            sections.append(_Section("\n".join(current_lines), current_heading))

        return self._chunk_sections(sections, lambda section: {"heading": section.heading})

    def chunk_code(self, content: str, language: str) -> list[ChunkDraft]:
        """
        Split source code at top-level declarations.

        A split happens only where a declaration starts right after a blank
        line or a closing brace. Each chunk records the language and the
        1-based line range of its block.

        Args:
            content: Source code
            language: Detected language name

        Returns:
            Ordered chunk drafts
        """
        lines = content.split("\n")
        blocks: list[_Section] = []
        current_lines: list[str] = []
        block_start = 1

        for i, line in enumerate(lines):
            previous = lines[i - 1].strip() if i > 0 else ""
            if current_lines and BLOCK_STARTER.match(line) and previous in ("", "}"):
                blocks.append(
                    _Section("\n".join(current_lines), start_line=block_start, end_line=i)
                )
                current_lines = [line]
                block_start = i + 1
            else:
                current_lines.append(line)
        if current_lines:
            blocks.append(
                _Section("\n".join(current_lines), start_line=block_start, end_line=len(lines))
            )

        return self._chunk_sections(
            blocks,
            lambda block: {
                "language": language,
                "start_line": block.start_line,
                "end_line": block.end_line,
            },
        )

    def _chunk_sections(
        self,
        sections: list[_Section],
        metadata_for: Callable[[_Section], dict[str, Any]],
    ) -> list[ChunkDraft]:
        chunks: list[ChunkDraft] = []
        index = 0

        for section in sections:
            if not section.content.strip():
                continue

            tokens = estimate_tokens(section.content)
            metadata = metadata_for(section)

            if tokens <= self.chunk_size:
                chunks.append(
                    ChunkDraft(
                        content=section.content,
                        token_count=tokens,
                        chunk_index=index,
                        metadata=metadata,
                    )
                )
                index += 1
                continue

            for sub in self.chunk_text(section.content):
                chunks.append(
                    sub.model_copy(
                        update={"chunk_index": index, "metadata": {**sub.metadata, **metadata}}
                    )
                )
                index += 1

        return chunks
