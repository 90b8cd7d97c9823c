"""
Abstract base class for chat model runtimes.
Handles streaming chat generation.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from ragchat.models.chat import ChatChunk, ChatMessage


class ChatLLM(ABC):
    """
    Abstract base for streaming chat runtimes.

    Responsibilities:
    - Stream incremental content for an ordered message list
    - List locally available models
    """

    @abstractmethod
    def stream_chat(
        self, model: str, messages: list[ChatMessage], **kwargs
    ) -> AsyncIterator[ChatChunk]:
        """
        Stream a chat completion.

        Args:
            model: Model identifier
            messages: Ordered prompt messages (role, content)
            **kwargs: Runtime-specific options

        Yields:
            ChatChunk per streamed line; the last one has ``done=True``

        Raises:
            LLMError: On non-success status or transport failure
        """
        pass

    @abstractmethod
    async def list_models(self) -> list[str]:
        """
        List model names available on the runtime.

        Raises:
            LLMError: If the runtime cannot be reached
        """
        pass

    @abstractmethod
    async def close(self):
        """
        Close any open connections.
        Optional to override if provider needs cleanup.
        """
        pass
