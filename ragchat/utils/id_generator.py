"""
ID generation utilities for ragchat.

Provides consistent ID generation for all entity types:
- Documents: doc_xxx
- Chunks: chunk_xxx
- Memory items: mem_xxx
- Conversations: conv_xxx
- Messages: msg_xxx
- Ingestion jobs: job_xxx
"""

from uuid import uuid4


def _short_hex() -> str:
    return uuid4().hex[:12]


def generate_document_id() -> str:
    """
    Generate unique Document ID.

    Returns:
        ID in format "doc_xxx" where xxx is 12 hex characters
    """
    return f"doc_{_short_hex()}"


def generate_chunk_id() -> str:
    """
    Generate unique Chunk ID.

    Chunk IDs are not derived from the document ID because a re-indexed
    document gets fresh chunk rows.

    Returns:
        ID in format "chunk_xxx"
    """
    return f"chunk_{_short_hex()}"


def generate_memory_id() -> str:
    """
    Generate unique memory item ID.

    Returns:
        ID in format "mem_xxx" where xxx is 12 hex characters
    """
    return f"mem_{_short_hex()}"


def generate_conversation_id() -> str:
    """Generate unique Conversation ID ("conv_xxx")."""
    return f"conv_{_short_hex()}"


def generate_message_id() -> str:
    """Generate unique Message ID ("msg_xxx")."""
    return f"msg_{_short_hex()}"


def generate_job_id() -> str:
    """
    Generate unique ingestion Job ID.

    Returns:
        ID in format "job_xxx" where xxx is 12 hex characters
    """
    return f"job_{_short_hex()}"
