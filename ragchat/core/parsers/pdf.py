"""PDF text extraction using pypdf."""

import asyncio

from pypdf import PdfReader

from ragchat.core.chunker import Chunker
from ragchat.models.document import ChunkDraft


def extract_pdf_text(filepath: str) -> str:
    reader = PdfReader(filepath)
    return "\n".join(page.extract_text() or "" for page in reader.pages)


async def parse_pdf(filepath: str, chunker: Chunker) -> list[ChunkDraft]:
    text = await asyncio.to_thread(extract_pdf_text, filepath)
    return chunker.chunk_text(text)
