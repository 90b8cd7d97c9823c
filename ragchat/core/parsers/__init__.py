"""
Document parsers.

Supported sources:
- Markdown / plain text files and inline content
- PDF (pypdf)
- Source code (block-aware chunking)
- Web pages (httpx + BeautifulSoup)
"""

from ragchat.core.parsers.code import detect_language
from ragchat.core.parsers.dispatch import detect_source_kind, parse_source
from ragchat.core.parsers.url import extract_main_text

__all__ = [
    "detect_language",
    "detect_source_kind",
    "extract_main_text",
    "parse_source",
]
