"""
Chat model runtimes.

Supported providers:
- Ollama (native SDK)
"""

from ragchat.core.llm.base import ChatLLM
from ragchat.core.llm.ollama import OllamaLLM

__all__ = ["ChatLLM", "OllamaLLM"]
