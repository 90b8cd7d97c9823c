"""
Web page fetching and main-content extraction.
"""

import re

import httpx
from bs4 import BeautifulSoup

from ragchat.core.chunker import Chunker
from ragchat.models.document import ChunkDraft
from ragchat.utils.exceptions import ContentError
from ragchat.utils.logger import get_logger

logger = get_logger(__name__)

NON_CONTENT_TAGS = ["script", "style", "nav", "footer", "header", "aside", "iframe", "noscript"]
MAIN_CONTENT_SELECTOR = "article, main, [role='main']"


def extract_main_text(html: str) -> str:
    """
    Strip page chrome and return whitespace-collapsed main text.

    Prefers article/main elements, falls back to body (or the whole page).
    """
    soup = BeautifulSoup(html, "html.parser")

    for element in soup(NON_CONTENT_TAGS):
        element.decompose()

    main = soup.select_one(MAIN_CONTENT_SELECTOR)
    root = main or soup.body or soup
    return re.sub(r"\s+", " ", root.get_text(" ")).strip()


async def fetch_url(url: str, timeout: float, user_agent: str) -> str:
    """
    GET a page following redirects.

    Raises:
        ContentError: On transport failure or non-success status
    """
    headers = {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,*/*",
    }
    try:
        async with httpx.AsyncClient(
            timeout=timeout, follow_redirects=True, headers=headers
        ) as client:
            logger.info(f"Fetching {url}")
            response = await client.get(url)
    except httpx.HTTPError as e:
        raise ContentError(f"Failed to fetch {url}: {e}", {"url": url}) from e

    if response.status_code >= 400:
        raise ContentError(
            f"Failed to fetch {url}: {response.status_code} {response.reason_phrase}",
            {"url": url, "status": response.status_code},
        )
    return response.text


async def parse_url(
    url: str, chunker: Chunker, timeout: float = 30.0, user_agent: str = "RagChat/1.0"
) -> list[ChunkDraft]:
    html = await fetch_url(url, timeout=timeout, user_agent=user_agent)
    return chunker.chunk_text(extract_main_text(html))
