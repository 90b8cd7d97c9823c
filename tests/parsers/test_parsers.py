"""
Tests for source parsers and dispatch.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from ragchat.config import RAGConfig
from ragchat.core.chunker import Chunker
from ragchat.core.parsers import (
    detect_language,
    detect_source_kind,
    extract_main_text,
    parse_source,
)
from ragchat.core.parsers.pdf import parse_pdf
from ragchat.core.parsers.url import fetch_url, parse_url
from ragchat.models.document import IngestSource, SourceKind
from ragchat.utils.exceptions import ContentError


@pytest.mark.unit
class TestDetection:
    """Tests for source kind and language detection."""

    @pytest.mark.parametrize(
        "path,kind",
        [
            ("notes.md", SourceKind.MARKDOWN),
            ("README.MDX", SourceKind.MARKDOWN),
            ("todo.txt", SourceKind.TEXT),
            ("paper.pdf", SourceKind.PDF),
            ("main.py", SourceKind.CODE),
            ("Makefile", SourceKind.CODE),
        ],
    )
    def test_detect_source_kind(self, path, kind):
        """Test extension based classification (unknown -> code)."""
        assert detect_source_kind(path) == kind

    @pytest.mark.parametrize(
        "path,language",
        [
            ("a.ts", "typescript"),
            ("a.tsx", "typescript"),
            ("a.py", "python"),
            ("a.rs", "rust"),
            ("a.yml", "yaml"),
            ("a.unknown", "text"),
        ],
    )
    def test_detect_language(self, path, language):
        """Test extension to language mapping."""
        assert detect_language(path) == language


@pytest.mark.unit
class TestExtractMainText:
    """Tests for HTML main-content extraction."""

    def test_prefers_article(self):
        """Test article content wins over page chrome."""
        html = """
        <html><body>
          <nav>Home About</nav>
          <article><h1>Title</h1><p>Body   text here.</p></article>
          <footer>Copyright</footer>
        </body></html>
        """
        assert extract_main_text(html) == "Title Body text here."

    def test_strips_scripts_and_falls_back_to_body(self):
        """Test scripts/styles are removed and body is used without main."""
        html = "<html><body><script>var x=1;</script><style>p{}</style><p>Hello</p></body></html>"
        assert extract_main_text(html) == "Hello"

    def test_role_main(self):
        """Test role=main is treated as main content."""
        html = "<body><div>skip</div><div role='main'>Keep this</div></body>"
        assert extract_main_text(html) == "Keep this"


@pytest.mark.unit
@pytest.mark.asyncio
class TestFetchUrl:
    """Tests for URL fetching."""

    async def test_transport_error(self):
        """Test network failures become ContentError."""
        with patch(
            "ragchat.core.parsers.url.httpx.AsyncClient",
            side_effect=httpx.ConnectError("connection refused"),
        ):
            with pytest.raises(ContentError, match="Failed to fetch"):
                await fetch_url("https://example.com", timeout=1.0, user_agent="test")

    async def test_error_status(self):
        """Test non-success status becomes ContentError."""
        client = AsyncMock()
        client.get.return_value = MagicMock(status_code=404, reason_phrase="Not Found", text="")
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = client

        with patch("ragchat.core.parsers.url.httpx.AsyncClient", factory):
            with pytest.raises(ContentError, match="404 Not Found"):
                await fetch_url("https://example.com/missing", timeout=1.0, user_agent="test")

    async def test_success_sends_user_agent(self):
        """Test redirects are followed and the user agent is sent."""
        client = AsyncMock()
        client.get.return_value = MagicMock(status_code=200, text="<p>ok</p>")
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = client

        with patch("ragchat.core.parsers.url.httpx.AsyncClient", factory):
            html = await fetch_url("https://example.com", timeout=5.0, user_agent="RagChat-Test")

        assert html == "<p>ok</p>"
        kwargs = factory.call_args.kwargs
        assert kwargs["follow_redirects"] is True
        assert kwargs["timeout"] == 5.0
        assert kwargs["headers"]["User-Agent"] == "RagChat-Test"

    async def test_parse_url_windows_main_text(self):
        """Test fetched pages are token-windowed."""
        html = "<main>" + " ".join(f"word{i}" for i in range(30)) + "</main>"
        with patch("ragchat.core.parsers.url.fetch_url", AsyncMock(return_value=html)):
            chunks = await parse_url("https://example.com", Chunker(chunk_size=20, chunk_overlap=4))

        assert len(chunks) == 3
        assert chunks[0].content.startswith("word0")


@pytest.mark.unit
@pytest.mark.asyncio
class TestParseSource:
    """Tests for parser dispatch."""

    async def test_inline_content_as_markdown(self):
        """Test inline content uses heading-aware chunking."""
        source = IngestSource(content="# A\nalpha\n# B\nbeta", filename="inline.md")

        chunks = await parse_source(source, SourceKind.MARKDOWN, RAGConfig())

        assert [c.metadata["heading"] for c in chunks] == ["A", "B"]

    async def test_markdown_file(self, tmp_path):
        """Test markdown files are read from disk."""
        path = tmp_path / "guide.md"
        path.write_text("# Setup\nInstall it.\n## Run\nRun it.", encoding="utf-8")

        chunks = await parse_source(IngestSource(filepath=str(path)), SourceKind.MARKDOWN, RAGConfig())

        assert len(chunks) == 2

    async def test_text_file_uses_markdown_parser(self, tmp_path):
        """Test plain text goes through the markdown parser (one section)."""
        path = tmp_path / "plain.txt"
        path.write_text("Just some plain text.", encoding="utf-8")

        chunks = await parse_source(IngestSource(filepath=str(path)), SourceKind.TEXT, RAGConfig())

        assert len(chunks) == 1
        assert chunks[0].metadata == {"heading": ""}

    async def test_code_file(self, tmp_path):
        """Test code files record language."""
        path = tmp_path / "app.py"
        path.write_text("def a():\n    pass\n\ndef b():\n    pass\n", encoding="utf-8")

        chunks = await parse_source(IngestSource(filepath=str(path)), SourceKind.CODE, RAGConfig())

        assert len(chunks) == 2
        assert all(c.metadata["language"] == "python" for c in chunks)

    async def test_code_file_with_latin1_bytes(self, tmp_path):
        """Test a stray non-UTF-8 byte is replaced instead of failing the file."""
        path = tmp_path / "legacy.py"
        path.write_bytes(b"def caf\xe9():\n    pass\n")

        chunks = await parse_source(IngestSource(filepath=str(path)), SourceKind.CODE, RAGConfig())

        assert len(chunks) == 1
        assert "caf\ufffd" in chunks[0].content

    async def test_markdown_file_with_latin1_bytes(self, tmp_path):
        """Test markdown with a latin-1 byte still parses."""
        path = tmp_path / "notes.md"
        path.write_bytes(b"# Caf\xe9\nOpen daily.")

        chunks = await parse_source(IngestSource(filepath=str(path)), SourceKind.MARKDOWN, RAGConfig())

        assert chunks[0].metadata["heading"] == "Caf\ufffd"

    async def test_pdf_file(self):
        """Test PDF text is token-windowed."""
        with patch(
            "ragchat.core.parsers.pdf.extract_pdf_text", return_value="page one text\npage two"
        ):
            chunks = await parse_pdf("/tmp/fake.pdf", Chunker())

        assert len(chunks) == 1
        assert chunks[0].content == "page one text page two"

    async def test_url_source(self):
        """Test URL sources dispatch to the fetcher with configured settings."""
        config = RAGConfig(url_timeout=12.0, user_agent="UA")
        with patch(
            "ragchat.core.parsers.dispatch.parse_url", AsyncMock(return_value=[])
        ) as mock_parse:
            await parse_source(IngestSource(url="https://example.com"), SourceKind.URL, config)

        assert mock_parse.call_args.kwargs == {"timeout": 12.0, "user_agent": "UA"}
