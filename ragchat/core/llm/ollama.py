"""
Ollama chat runtime using native ollama-python SDK.
"""

from collections.abc import AsyncIterator

import ollama

from ragchat.core.llm.base import ChatLLM
from ragchat.models.chat import ChatChunk, ChatMessage
from ragchat.utils.exceptions import LLMError
from ragchat.utils.logger import get_logger

logger = get_logger(__name__)


class OllamaLLM(ChatLLM):
    """
    Ollama chat runtime.

    Streams ``/api/chat`` responses: each line carries an incremental
    ``message.content`` fragment and a terminal ``done`` flag.
    """

    def __init__(self, host: str = "http://localhost:11434", timeout: float = 300.0):
        """
        Initialize Ollama chat runtime.

        Args:
            host: Ollama server URL
            timeout: Request timeout in seconds
        """
        self.host = host
        self.timeout = timeout

        self.client = ollama.AsyncClient(host=host, timeout=timeout)

    async def stream_chat(
        self, model: str, messages: list[ChatMessage], **kwargs
    ) -> AsyncIterator[ChatChunk]:
        """
        Stream a chat completion from Ollama.

        Closing this generator early (caller disconnect) closes the upstream
        response as well.

        Raises:
            LLMError: On non-success status or transport failure
        """
        payload = [message.model_dump() for message in messages]
        try:
            stream = await self.client.chat(model=model, messages=payload, stream=True, **kwargs)
        except ollama.ResponseError as e:
            logger.error(
                f"Ollama chat error: {e.error}",
                extra={"model": model, "status_code": e.status_code},
            )
            raise LLMError(f"Ollama error: {e.error}", {"status_code": e.status_code}) from e
        except Exception as e:
            logger.error(f"Ollama chat request failed: {e}", extra={"model": model, "host": self.host})
            raise LLMError(f"Cannot reach Ollama at {self.host}: {e}") from e

        try:
            async for part in stream:
                message = part.get("message") or {}
                done = bool(part.get("done"))
                yield ChatChunk(content=message.get("content") or "", done=done)
                if done:
                    break
        except ollama.ResponseError as e:
            raise LLMError(f"Ollama error: {e.error}", {"status_code": e.status_code}) from e
        except Exception as e:
            logger.error(f"Ollama stream interrupted: {e}", extra={"model": model})
            raise LLMError(f"Ollama stream interrupted: {e}") from e
        finally:
            await stream.aclose()

    async def list_models(self) -> list[str]:
        try:
            response = await self.client.list()
        except Exception as e:
            raise LLMError(f"Cannot reach Ollama at {self.host}: {e}") from e

        names = []
        for entry in response["models"] or []:
            name = entry.get("model") or entry.get("name")
            if name:
                names.append(name)
        return names

    async def close(self):
        """Close client (Ollama SDK handles cleanup internally)."""
        pass
