"""
Prompt context assembly.

The model input is built from named stages in a fixed order:

    system prompt -> memory block -> RAG evidence -> grounding guardrail
    -> conversation history -> new user message

Each stage returns zero or one system message; ``assemble_context`` is the
only place that decides their order.
"""

from ragchat.models.chat import ChatMessage
from ragchat.models.conversation import Message
from ragchat.models.memory import UsedMemoryItem
from ragchat.models.retrieval import GroundingConfidence, GroundingInfo, RetrievedContext
from ragchat.services.memory_selector import format_memory_block

GROUNDING_GUARDRAIL = (
    "Grounding confidence is low or no relevant knowledge-base evidence was retrieved. "
    "Do not present uncertain claims as facts. "
    "If the answer depends on missing evidence, explicitly say you do not know from the "
    "current knowledge base and ask for a source or clarification."
)


def _system(content: str) -> ChatMessage:
    return ChatMessage(role="system", content=content)


def system_prompt_stage(system_prompt: str | None) -> list[ChatMessage]:
    return [_system(system_prompt)] if system_prompt else []


def memory_stage(memory_items: list[UsedMemoryItem]) -> list[ChatMessage]:
    return [_system(format_memory_block(memory_items))] if memory_items else []


def rag_stage(retrieved: RetrievedContext | None) -> list[ChatMessage]:
    if not retrieved or not retrieved.chunks or not retrieved.prompt_addition:
        return []
    return [_system(retrieved.prompt_addition)]


def guardrail_stage(grounding: GroundingInfo | None, rag_enabled: bool) -> list[ChatMessage]:
    """Guardrail only when retrieval was on for the turn and confidence is low."""
    if not rag_enabled or grounding is None:
        return []
    if grounding.confidence != GroundingConfidence.LOW:
        return []
    return [_system(GROUNDING_GUARDRAIL)]


def history_stage(history: list[Message], user_message: str) -> list[ChatMessage]:
    turns = [ChatMessage(role=message.role, content=message.content) for message in history]
    turns.append(ChatMessage(role="user", content=user_message))
    return turns


def assemble_context(
    history: list[Message],
    user_message: str,
    system_prompt: str | None = None,
    memory_items: list[UsedMemoryItem] | None = None,
    retrieved: RetrievedContext | None = None,
    grounding: GroundingInfo | None = None,
    rag_enabled: bool = True,
) -> list[ChatMessage]:
    """
    Build the ordered message list sent to the model.

    Args:
        history: Prior conversation messages, oldest first (excluding this turn)
        user_message: The new user message
        system_prompt: Conversation system prompt, if any
        memory_items: Memory selected for this turn
        retrieved: Knowledge base context for this turn
        grounding: Grounding classification for this turn
        rag_enabled: Whether retrieval was enabled for the conversation

    Returns:
        System injections first, then history, then the user message
    """
    return [
        *system_prompt_stage(system_prompt),
        *memory_stage(memory_items or []),
        *rag_stage(retrieved),
        *guardrail_stage(grounding, rag_enabled),
        *history_stage(history, user_message),
    ]
