"""
Ollama embedder using native ollama-python SDK.
"""

import asyncio

import ollama

from ragchat.core.embeddings.base import Embedder, EmbeddingHealth
from ragchat.utils.exceptions import EmbeddingError, ValidationError
from ragchat.utils.logger import get_logger

logger = get_logger(__name__)


class OllamaEmbedder(Embedder):
    """
    Ollama embedder for generating text embeddings.

    Uses the /api/embed endpoint, which accepts a list of inputs so a whole
    document is embedded in one request.
    Supports models like nomic-embed-text, mxbai-embed-large, etc.
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        timeout: float = 60.0,
        batch_timeout: float = 120.0,
    ):
        """
        Initialize Ollama embedder.

        Args:
            host: Ollama server URL
            model: Embedding model name (e.g., "nomic-embed-text", "mxbai-embed-large")
            timeout: Timeout for single embeddings in seconds
            batch_timeout: Timeout for batch embeddings in seconds
        """
        self.host = host
        self.model = model
        self.timeout = timeout
        self.batch_timeout = batch_timeout
        self._dimension = None

        self.client = ollama.AsyncClient(host=host)

    async def _embed_inputs(
        self, inputs: str | list[str], timeout: float, **kwargs
    ) -> list[list[float]]:
        try:
            response = await asyncio.wait_for(
                self.client.embed(model=self.model, input=inputs, **kwargs),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                f"Ollama embedding timed out after {timeout}s",
                extra={"model": self.model, "host": self.host},
            )
            raise EmbeddingError(f"Embedding timed out after {timeout}s") from e
        except Exception as e:
            logger.error(
                f"Ollama embedding error: {e}",
                extra={"model": self.model, "host": self.host, "error": str(e)},
            )
            raise EmbeddingError(f"Embedding failed: {e}") from e

        embeddings = response["embeddings"] if response else None
        if not embeddings:
            raise EmbeddingError("Ollama returned invalid embedding response")
        return [list(vector) for vector in embeddings]

    async def embed(self, text: str, **kwargs) -> list[float]:
        """
        Generate embedding for text using Ollama.

        Args:
            text: Text to embed
            **kwargs: Additional options passed to Ollama

        Returns:
            Embedding vector as list of floats

        Raises:
            ValidationError: If text is invalid
            EmbeddingError: If Ollama embedding fails or times out
        """
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")

        embeddings = await self._embed_inputs(text, self.timeout, **kwargs)
        return embeddings[0]

    async def batch_embed(
        self, texts: list[str], batch_size: int = 0, **kwargs
    ) -> list[list[float]]:
        """
        Embed many texts in a single request.

        Args:
            texts: List of texts to embed
            batch_size: Unused; the whole list goes in one request
            **kwargs: Additional options

        Returns:
            List of embedding vectors in input order
        """
        if not texts:
            return []

        embeddings = await self._embed_inputs(texts, self.batch_timeout, **kwargs)
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Ollama returned {len(embeddings)} embeddings for {len(texts)} inputs"
            )
        return embeddings

    async def check_model(self) -> EmbeddingHealth:
        """
        Check Ollama reachability and that the embedding model is pulled.

        A model matches when its listed name equals the configured name or
        carries it with a tag (``nomic-embed-text:latest``).
        """
        try:
            response = await self.client.list()
        except ollama.ResponseError:
            return EmbeddingHealth(ok=False, error="Ollama is not reachable")
        except Exception:
            return EmbeddingHealth(ok=False, error=f"Cannot connect to Ollama at {self.host}")

        names = []
        for entry in response["models"] or []:
            name = entry.get("model") or entry.get("name")
            if name:
                names.append(name)

        found = any(name == self.model or name.startswith(f"{self.model}:") for name in names)
        if not found:
            return EmbeddingHealth(
                ok=False,
                error=f'Embedding model "{self.model}" not found. Run: ollama pull {self.model}',
            )
        return EmbeddingHealth(ok=True)

    async def get_dimension(self) -> int:
        """
        Get embedding dimension.
        Caches result after first call.

        Returns:
            Embedding vector dimension
        """
        if self._dimension is None:
            test_embedding = await self.embed("test")
            self._dimension = len(test_embedding)
        return self._dimension

    async def close(self):
        """Close client (Ollama SDK handles cleanup internally)."""
        pass
