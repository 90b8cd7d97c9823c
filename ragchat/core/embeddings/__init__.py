"""
Embedder abstraction layer for text embeddings.

Supported providers:
- Ollama (native SDK)
- OpenAI-compatible endpoints (official SDK)
"""

from ragchat.core.embeddings.base import Embedder, EmbeddingHealth
from ragchat.core.embeddings.factory import EmbedderFactory
from ragchat.core.embeddings.ollama import OllamaEmbedder
from ragchat.core.embeddings.openai import OpenAIEmbedder

__all__ = [
    "Embedder",
    "EmbedderFactory",
    "EmbeddingHealth",
    "OllamaEmbedder",
    "OpenAIEmbedder",
]
