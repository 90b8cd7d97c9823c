"""
OpenAI embedder using official SDK.
"""

from openai import AsyncOpenAI, NotFoundError

from ragchat.core.embeddings.base import Embedder, EmbeddingHealth
from ragchat.utils.exceptions import EmbeddingError, ValidationError
from ragchat.utils.logger import get_logger

logger = get_logger(__name__)


class OpenAIEmbedder(Embedder):
    """
    OpenAI-compatible embedder for hosted or self-hosted endpoints.

    Useful when the embedding model is served behind an OpenAI-style API
    (vLLM, LM Studio, llama.cpp server) instead of Ollama.
    """

    _MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str | None = None,
        timeout: float = 60.0,
        batch_size: int = 2048,
    ):
        """
        Initialize OpenAI embedder.

        Args:
            api_key: API key
            model: Embedding model name
            base_url: Optional custom base URL
            timeout: Request timeout in seconds
            batch_size: Maximum inputs per request
        """
        self.model = model
        self.base_url = base_url
        self.batch_size = batch_size

        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    async def embed(self, text: str, **kwargs) -> list[float]:
        """
        Generate embedding for text.

        Raises:
            ValidationError: If text is invalid
            EmbeddingError: If the API call fails
        """
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")

        embeddings = await self.batch_embed([text], **kwargs)
        return embeddings[0]

    async def batch_embed(
        self, texts: list[str], batch_size: int | None = None, **kwargs
    ) -> list[list[float]]:
        """
        Batch embed using the native batch API.

        Args:
            texts: List of texts to embed
            batch_size: Inputs per request (defaults to the configured size)
            **kwargs: Additional parameters (e.g., dimensions)

        Returns:
            List of embedding vectors in input order

        Raises:
            EmbeddingError: If batch embedding fails
        """
        if not texts:
            return []

        size = batch_size or self.batch_size
        try:
            embeddings = []
            for i in range(0, len(texts), size):
                batch = texts[i : i + size]
                response = await self.client.embeddings.create(
                    model=self.model, input=batch, **kwargs
                )
                if not response.data:
                    raise EmbeddingError("OpenAI returned empty embedding response")
                embeddings.extend(item.embedding for item in response.data)
            return embeddings
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error(
                f"OpenAI embedding error: {e}",
                extra={"model": self.model, "num_texts": len(texts), "error": str(e)},
            )
            raise EmbeddingError(f"OpenAI embedding error: {e}") from e

    async def check_model(self) -> EmbeddingHealth:
        """Check the endpoint answers and knows the configured model."""
        try:
            await self.client.models.retrieve(self.model)
        except NotFoundError:
            return EmbeddingHealth(
                ok=False, error=f'Embedding model "{self.model}" not found'
            )
        except Exception:
            endpoint = self.base_url or "the OpenAI API"
            return EmbeddingHealth(ok=False, error=f"Cannot connect to {endpoint}")
        return EmbeddingHealth(ok=True)

    async def get_dimension(self) -> int:
        """Known dimension for stock models, measured from one embedding otherwise."""
        if self.model in self._MODEL_DIMENSIONS:
            return self._MODEL_DIMENSIONS[self.model]
        return await super().get_dimension()

    async def close(self):
        """Close OpenAI client."""
        await self.client.close()
